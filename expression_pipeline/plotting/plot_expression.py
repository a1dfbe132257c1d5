# expression_pipeline/plotting/plot_expression.py

from typing import Optional, Union

import pandas as pd
import plotly.express as px
from plotly.graph_objects import Figure

from expression_pipeline.converters import select_features, to_annotation
from expression_pipeline.plotting.utils import samples_by_group, to_long_format


def build_summary_barplot(
    summary: pd.DataFrame,
    features: Optional[list[str]] = None,
    ylabel: str = "log₂(expression)",
) -> Figure:
    """Grouped bar chart of group means with SEM error bars."""
    summary = _filter_features(summary, features)
    summary = summary[summary["mean"].notna() & (summary["count"] > 0)]

    fig = px.bar(
        summary,
        x="feature",
        y="mean",
        error_y="sem",
        color="group",
        labels={"feature": "", "mean": ylabel, "sem": "SEM"},
        category_orders={"feature": list(pd.unique(summary["feature"]))},
    )
    fig.update_layout(barmode="group", margin=dict(t=40, b=40))
    fig.update_xaxes(tickangle=0)
    return fig


def build_expression_boxplot(
    matrix: pd.DataFrame,
    annotation: Union[pd.Series, dict],
    features: Optional[list[str]] = None,
    ylabel: str = "log₂(expression)",
) -> Figure:
    """Box plot per feature and group with every sample drawn as a dot."""
    if features is not None:
        matrix = select_features(matrix, features)
    long_df = to_long_format(matrix, annotation)

    fig = px.box(
        long_df,
        x="feature",
        y="value",
        color="group",
        points="all",
        hover_data=["sample"],
        labels={"feature": "", "value": ylabel},
        category_orders={"feature": [str(f) for f in matrix.index]},
    )
    fig.update_layout(margin=dict(t=40, b=40))
    fig.update_xaxes(tickangle=0)
    return fig


def build_expression_histogram(
    matrix: pd.DataFrame,
    annotation: Union[pd.Series, dict],
    nbins: int = 50,
    xlabel: str = "log₂(expression)",
) -> Figure:
    long_df = to_long_format(matrix, annotation).dropna(subset=["value"])

    fig = px.histogram(
        long_df,
        x="value",
        color="group",
        nbins=nbins,
        barmode="overlay",
        histnorm="probability density",
        opacity=0.6,
        labels={"value": xlabel},
    )
    fig.update_layout(margin=dict(t=40, b=40))
    return fig


def build_expression_heatmap(
    matrix: pd.DataFrame,
    features: Optional[list[str]] = None,
    annotation: Optional[Union[pd.Series, dict]] = None,
    color_scale: str = "RdBu_r",
) -> Figure:
    """Heatmap of a row subset; with an annotation, columns are grouped by label."""
    if features is not None:
        matrix = select_features(matrix, features)

    if annotation is not None:
        annotation = to_annotation(annotation)
        columns = samples_by_group(annotation, list(matrix.columns))
        matrix = matrix[columns]
        x_labels = [f"{s} ({annotation[s]})" for s in columns]
    else:
        x_labels = [str(c) for c in matrix.columns]

    fig = px.imshow(
        matrix.to_numpy(dtype=float),
        x=x_labels,
        y=[str(f) for f in matrix.index],
        color_continuous_scale=color_scale,
        aspect="auto",
        labels={"x": "Sample", "y": "Feature", "color": "value"},
    )
    fig.update_layout(margin=dict(t=40, b=40))
    return fig


def build_sample_scatter(matrix: pd.DataFrame, x_sample: str, y_sample: str) -> Figure:
    missing = [s for s in (x_sample, y_sample) if s not in matrix.columns]
    if missing:
        raise KeyError(f"Samples not in matrix: {missing}")

    df = matrix[[x_sample, y_sample]].rename_axis("feature").reset_index()
    fig = px.scatter(df, x=x_sample, y=y_sample, hover_name="feature")
    fig.update_layout(margin=dict(t=40, b=40))
    return fig


# --- Helpers ---

def _filter_features(df: pd.DataFrame, features: Optional[list[str]]) -> pd.DataFrame:
    if features is None:
        return df.copy()
    return df[df["feature"].isin(features)].copy()
