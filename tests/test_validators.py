import pandas as pd
import pytest

from expression_pipeline.errors import AnnotationMismatchError
from expression_pipeline.validators import check_inputs, validate_inputs, validate_labels


def _matrix():
    return pd.DataFrame(
        {"GSM1": [1.0, 2.0], "GSM2": [3.0, 4.0], "GSM3": [5.0, 6.0]},
        index=["p1", "p2"],
    )


def test_valid_inputs_have_no_errors():
    annotation = pd.Series({"GSM1": "normal", "GSM2": "tumor", "GSM3": "tumor"})
    assert validate_inputs(_matrix(), annotation) == []
    check_inputs(_matrix(), annotation)


def test_unannotated_and_absent_samples_are_reported():
    annotation = pd.Series({"GSM1": "normal", "GSM2": "tumor", "GSM9": "tumor"})
    errors = validate_inputs(_matrix(), annotation)
    assert any("GSM3" in e and "without annotation" in e for e in errors)
    assert any("GSM9" in e and "missing from matrix" in e for e in errors)


def test_check_inputs_fails_fast_on_count_mismatch():
    # more annotated samples than matrix columns must not be silently tolerated
    annotation = pd.Series({f"GSM{i}": "tumor" for i in range(1, 6)})
    with pytest.raises(AnnotationMismatchError) as excinfo:
        check_inputs(_matrix(), annotation)
    assert "GSM4" in str(excinfo.value)


def test_duplicate_ids_are_reported():
    matrix = pd.DataFrame([[1.0, 2.0], [3.0, 4.0]], index=["p1", "p1"], columns=["GSM1", "GSM2"])
    annotation = pd.Series({"GSM1": "normal", "GSM2": "tumor"})
    errors = validate_inputs(matrix, annotation)
    assert errors == ["Duplicate feature ids: ['p1']"]


def test_non_numeric_columns_are_reported():
    matrix = _matrix()
    matrix["GSM3"] = ["a", "b"]
    annotation = pd.Series({"GSM1": "normal", "GSM2": "tumor", "GSM3": "tumor"})
    errors = validate_inputs(matrix, annotation)
    assert errors == ["Non-numeric sample columns: ['GSM3']"]


def test_missing_labels_are_reported():
    annotation = pd.Series({"GSM1": "normal", "GSM2": None, "GSM3": "tumor"})
    errors = validate_inputs(_matrix(), annotation)
    assert errors == ["Missing label for samples: ['GSM2']"]


def test_validate_labels():
    annotation = pd.Series({"GSM1": "normal", "GSM2": "tumor"})
    assert validate_labels(annotation, ["normal", "tumor"]) == []
    assert validate_labels(annotation, ["normal", "metastasis"]) == [
        "Group label 'metastasis' not found in annotation"
    ]


def test_sample_ids_are_compared_as_strings():
    matrix = pd.DataFrame([[1.0, 2.0, 3.0]], index=["p1"], columns=[1, 2, 3])
    annotation = pd.Series({"1": "normal", "2": "tumor", "3": "tumor"})
    assert validate_inputs(matrix, annotation) == []

    annotation = pd.Series({"1": "normal", "2": "tumor", "4": "tumor"})
    assert validate_inputs(matrix, annotation) == [
        "Samples without annotation: ['3']",
        "Annotated samples missing from matrix: ['4']",
    ]
