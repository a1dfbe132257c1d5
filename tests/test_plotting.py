import numpy as np
import pandas as pd
import pytest
from plotly.graph_objects import Figure

from expression_pipeline import processor
from expression_pipeline.plotting.plot_expression import (
    build_expression_boxplot,
    build_expression_heatmap,
    build_expression_histogram,
    build_sample_scatter,
    build_summary_barplot,
)
from expression_pipeline.plotting.utils import samples_by_group, to_long_format


@pytest.fixture
def log_matrix():
    matrix = pd.DataFrame(
        np.log2([[2.0, 4.0, 8.0, 16.0], [1.0, 2.0, 2.0, 4.0], [8.0, 8.0, 4.0, 4.0]]),
        index=["p1", "p2", "p3"],
        columns=["T1", "N1", "T2", "N2"],
    )
    annotation = pd.Series({"T1": "tumor", "N1": "normal", "T2": "tumor", "N2": "normal"})
    return matrix, annotation


def test_to_long_format(log_matrix):
    matrix, annotation = log_matrix
    long_df = to_long_format(matrix, annotation)
    assert list(long_df.columns) == ["feature", "sample", "group", "value"]
    assert len(long_df) == 12
    row = long_df[(long_df["feature"] == "p1") & (long_df["sample"] == "T2")].iloc[0]
    assert row["group"] == "tumor"
    assert row["value"] == 3.0


def test_samples_by_group(log_matrix):
    _, annotation = log_matrix
    assert samples_by_group(annotation) == ["T1", "T2", "N1", "N2"]
    assert samples_by_group(annotation, ["N2", "T2"]) == ["T2", "N2"]


def test_summary_barplot(log_matrix):
    matrix, annotation = log_matrix
    summary = processor.summarize(matrix, annotation)
    fig = build_summary_barplot(summary, features=["p1", "p2"])

    assert isinstance(fig, Figure)
    assert {trace.name for trace in fig.data} == {"tumor", "normal"}
    assert all(len(trace.x) == 2 for trace in fig.data)
    assert fig.data[0].error_y.array is not None


def test_expression_boxplot(log_matrix):
    matrix, annotation = log_matrix
    fig = build_expression_boxplot(matrix, annotation, features=["p3"])
    assert len(fig.data) == 2
    assert all(trace.boxpoints == "all" for trace in fig.data)


def test_expression_histogram(log_matrix):
    matrix, annotation = log_matrix
    fig = build_expression_histogram(matrix, annotation, nbins=5)
    assert {trace.name for trace in fig.data} == {"tumor", "normal"}


def test_expression_heatmap_orders_columns_by_group(log_matrix):
    matrix, annotation = log_matrix
    fig = build_expression_heatmap(matrix, features=["p2", "p1"], annotation=annotation)
    heatmap = fig.data[0]
    assert list(heatmap.y) == ["p2", "p1"]
    assert list(heatmap.x) == ["T1 (tumor)", "T2 (tumor)", "N1 (normal)", "N2 (normal)"]
    assert heatmap.z[0][0] == 0.0


def test_sample_scatter(log_matrix):
    matrix, _ = log_matrix
    fig = build_sample_scatter(matrix, "T1", "N1")
    assert list(fig.data[0].x) == [1.0, 0.0, 3.0]
    with pytest.raises(KeyError):
        build_sample_scatter(matrix, "T1", "GSM404")
