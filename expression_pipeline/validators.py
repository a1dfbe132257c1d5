# expression_pipeline/validators.py

from typing import Iterable

import pandas as pd

from expression_pipeline.errors import AnnotationMismatchError


def validate_inputs(matrix: pd.DataFrame, annotation: pd.Series) -> list[str]:
    errors = []

    dup_features = matrix.index[matrix.index.duplicated()].unique().tolist()
    if dup_features:
        errors.append(f"Duplicate feature ids: {dup_features}")

    # sample ids are compared as str on both sides
    columns = pd.Index([str(c) for c in matrix.columns])
    annotated_ids = pd.Index([str(s) for s in annotation.index])

    dup_samples = columns[columns.duplicated()].unique().tolist()
    if dup_samples:
        errors.append(f"Duplicate sample ids: {dup_samples}")

    dup_annotated = annotated_ids[annotated_ids.duplicated()].unique().tolist()
    if dup_annotated:
        errors.append(f"Duplicate annotated samples: {dup_annotated}")

    samples = set(columns)
    annotated = set(annotated_ids)

    unannotated = [s for s in columns if s not in annotated]
    if unannotated:
        errors.append(f"Samples without annotation: {unannotated}")

    absent = [s for s in annotated_ids if s not in samples]
    if absent:
        errors.append(f"Annotated samples missing from matrix: {absent}")

    if annotation.isna().any():
        errors.append(f"Missing label for samples: {annotation.index[annotation.isna()].tolist()}")

    non_numeric = [c for c, dtype in matrix.dtypes.items() if not pd.api.types.is_numeric_dtype(dtype)]
    if non_numeric:
        errors.append(f"Non-numeric sample columns: {non_numeric}")

    return errors


def validate_labels(annotation: pd.Series, labels: Iterable[str]) -> list[str]:
    present = set(annotation.dropna())
    return [f"Group label '{label}' not found in annotation" for label in labels if label not in present]


def check_inputs(matrix: pd.DataFrame, annotation: pd.Series) -> None:
    """Fail fast when the annotation and matrix disagree about the sample set."""
    errors = validate_inputs(matrix, annotation)
    if errors:
        raise AnnotationMismatchError(errors)
