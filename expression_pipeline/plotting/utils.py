# expression_pipeline/plotting/utils.py

from typing import Optional, Union

import pandas as pd

from expression_pipeline.converters import to_annotation


def to_long_format(matrix: pd.DataFrame, annotation: Union[pd.Series, dict]) -> pd.DataFrame:
    """Melt a features x samples matrix into feature, sample, group, value rows."""
    annotation = to_annotation(annotation)
    long_df = (
        matrix.rename_axis(index="feature", columns="sample")
        .reset_index()
        .melt(id_vars="feature", var_name="sample", value_name="value")
    )
    long_df["feature"] = long_df["feature"].astype(str)
    long_df["sample"] = long_df["sample"].astype(str)
    long_df["group"] = long_df["sample"].map(annotation)
    return long_df[["feature", "sample", "group", "value"]]


def samples_by_group(annotation: Union[pd.Series, dict], samples: Optional[list[str]] = None) -> list[str]:
    """Sample ids ordered by group (first-seen label order), then original order."""
    annotation = to_annotation(annotation)
    if samples is not None:
        annotation = annotation[annotation.index.isin(samples)]
    order = {label: i for i, label in enumerate(pd.unique(annotation))}
    return sorted(annotation.index, key=lambda s: order[annotation[s]])
