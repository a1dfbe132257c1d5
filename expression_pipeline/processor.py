# expression_pipeline/processor.py

import logging
import warnings
from typing import Iterable, Literal, Optional, Union

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.multitest import multipletests

from expression_pipeline.config import AnalysisConfig, merge_config
from expression_pipeline.converters import SUMMARY_COLUMNS, TEST_COLUMNS, select_features, to_annotation, to_matrix
from expression_pipeline.errors import DomainError
from expression_pipeline.types import PipelineResult
from expression_pipeline.validators import check_inputs, validate_labels

logger = logging.getLogger(__name__)


# --- Cleaner ---

def count_missing_loop(matrix: pd.DataFrame) -> pd.Series:
    counts = []
    for _, row in matrix.iterrows():
        n = 0
        for value in row:
            if pd.isna(value):
                n += 1
        counts.append(n)
    return pd.Series(counts, index=matrix.index, dtype="int64")


def count_missing_apply(matrix: pd.DataFrame) -> pd.Series:
    if matrix.empty:
        return pd.Series(0, index=matrix.index, dtype="int64")
    return matrix.apply(lambda row: row.isna().sum(), axis=1).astype("int64")


MISSING_COUNTERS = {
    "loop": count_missing_loop,
    "apply": count_missing_apply,
}


def clean(matrix: pd.DataFrame, method: Literal["apply", "loop"] = "apply") -> pd.DataFrame:
    """Drop every row with at least one missing cell; row order and columns are kept."""
    if method not in MISSING_COUNTERS:
        raise ValueError(f"Unknown missing-value method {method!r}; expected one of {sorted(MISSING_COUNTERS)}")

    n_missing = MISSING_COUNTERS[method](matrix)
    cleaned = matrix.loc[n_missing == 0].copy()

    logger.info(f"Dropped {len(matrix) - len(cleaned)} of {len(matrix)} rows with missing values")
    return cleaned


# --- Transformer ---

def log_transform(matrix: pd.DataFrame, base: float = 2) -> pd.DataFrame:
    if base <= 0 or base == 1:
        raise ValueError(f"Log base must be positive and not 1, got {base}")

    non_positive = matrix <= 0
    if non_positive.to_numpy().any():
        where = non_positive.stack()
        cells = where[where].index.tolist()[:5]
        raise DomainError(f"log{base:g} is undefined for non-positive values, e.g. at {cells}")

    if base == 2:
        return np.log2(matrix)
    return np.log(matrix) / np.log(base)


# --- Aggregator ---

def _label_order(annotation: pd.Series, group_labels: Optional[Iterable[str]]) -> list[str]:
    if group_labels is None:
        return list(pd.unique(annotation.dropna()))

    group_labels = list(group_labels)
    errors = validate_labels(annotation, group_labels)
    if errors:
        raise ValueError("; ".join(errors))
    return group_labels


def summarize(
    matrix: pd.DataFrame,
    annotation: Union[pd.Series, dict],
    group_labels: Optional[Iterable[str]] = None,
) -> pd.DataFrame:
    """Per-feature, per-group count, mean, SD (ddof=1) and SEM.

    Groups with a single sample keep their row with NaN std/sem.
    Output is ordered by feature (matrix order), then group.
    """
    matrix = to_matrix(matrix)
    annotation = to_annotation(annotation)
    check_inputs(matrix, annotation)
    labels = _label_order(annotation, group_labels)

    parts = []
    for label in labels:
        samples = annotation.index[annotation == label].tolist()
        values = matrix[samples]
        count = values.count(axis=1)
        std = values.std(axis=1, ddof=1)
        parts.append(pd.DataFrame({
            "feature": matrix.index.astype(str),
            "group": label,
            "count": count.to_numpy(dtype="int64"),
            "mean": values.mean(axis=1).to_numpy(dtype=float),
            "std": std.to_numpy(dtype=float),
            "sem": (std / np.sqrt(count)).to_numpy(dtype=float),
            "_row": np.arange(len(matrix)),
        }))

        if len(samples) < 2:
            logger.warning(f"Group '{label}' has {len(samples)} sample(s); std and sem will be NaN")

    if not parts:
        return pd.DataFrame(columns=SUMMARY_COLUMNS)

    summary = pd.concat(parts, ignore_index=True)
    summary = summary.sort_values("_row", kind="stable").drop(columns="_row").reset_index(drop=True)

    logger.info(f"Summarized {len(matrix)} features over groups {labels}")
    return summary[SUMMARY_COLUMNS]


# --- Differential tester ---

def _bh_adjust(pvalues: np.ndarray) -> np.ndarray:
    padj = np.full(pvalues.shape, np.nan)
    finite = np.isfinite(pvalues)
    if finite.any():
        padj[finite] = multipletests(pvalues[finite], method="fdr_bh")[1]
    return padj


def test_all(
    matrix: pd.DataFrame,
    annotation: Union[pd.Series, dict],
    label_a: str,
    label_b: str,
) -> pd.DataFrame:
    """Welch's t-test of label_a vs label_b for every row of `matrix`.

    Groups with fewer than two samples give NaN for every row. When both
    groups have zero variance the p-value is NaN for equal means and 0.0
    otherwise. `log2_fold_change` is mean(b) - mean(a) of the (log) values.
    """
    matrix = to_matrix(matrix)
    annotation = to_annotation(annotation)
    check_inputs(matrix, annotation)
    errors = validate_labels(annotation, [label_a, label_b])
    if errors:
        raise ValueError("; ".join(errors))

    a = matrix[annotation.index[annotation == label_a]].to_numpy(dtype=float)
    b = matrix[annotation.index[annotation == label_b]].to_numpy(dtype=float)
    n_rows = len(matrix)

    if a.shape[1] and b.shape[1]:
        fold_change = b.mean(axis=1) - a.mean(axis=1)
    else:
        fold_change = np.full(n_rows, np.nan)

    if a.shape[1] < 2 or b.shape[1] < 2:
        logger.warning(f"Groups '{label_a}' (n={a.shape[1]}) and '{label_b}' (n={b.shape[1]}) "
                       f"need at least 2 samples each; p-values will be NaN")
        statistic = np.full(n_rows, np.nan)
        pvalues = np.full(n_rows, np.nan)
    elif n_rows == 0:
        statistic = pvalues = np.array([], dtype=float)
    else:
        # zero-variance rows warn about precision loss; their NaN or 0.0 p-values are intended
        with np.errstate(divide="ignore", invalid="ignore"), warnings.catch_warnings():
            warnings.simplefilter("ignore", RuntimeWarning)
            result = stats.ttest_ind(a, b, axis=1, equal_var=False)
        statistic = np.asarray(result.statistic, dtype=float)
        pvalues = np.asarray(result.pvalue, dtype=float)

    tests = pd.DataFrame({
        "feature": matrix.index.astype(str),
        "statistic": statistic,
        "pvalue": pvalues,
        "log2_fold_change": np.asarray(fold_change, dtype=float),
        "padj": _bh_adjust(pvalues),
    }, columns=TEST_COLUMNS)

    logger.info(f"Tested {n_rows} features ({label_a} vs {label_b}); "
                f"{int(np.isnan(pvalues).sum())} without a p-value")
    return tests


def filter_significant(tests: pd.DataFrame, alpha: float = 0.05, column: str = "pvalue") -> pd.DataFrame:
    if column not in tests.columns:
        raise ValueError(f"Column '{column}' not in test results")
    hits = tests[tests[column] < alpha]
    return hits.sort_values(column, kind="stable").reset_index(drop=True)


# --- Pipeline ---

def run_pipeline(
    matrix: pd.DataFrame,
    annotation: Union[pd.Series, dict],
    config: Optional[Union[AnalysisConfig, dict]] = None,
) -> PipelineResult:
    """Validate, clean, log-transform, summarize and test a matrix."""
    config = merge_config(config)
    matrix = to_matrix(matrix)
    annotation = to_annotation(annotation)
    check_inputs(matrix, annotation)

    if config["features"] is not None:
        matrix = select_features(matrix, config["features"])

    cleaned = clean(matrix, method=config["missing_method"])
    transformed = log_transform(cleaned, base=config["log_base"])
    summary = summarize(transformed, annotation, config["group_labels"])
    tests = test_all(transformed, annotation, config["label_a"], config["label_b"])

    messages = []
    n_nan = int(tests["pvalue"].isna().sum())
    if n_nan:
        messages.append(f"{n_nan} feature(s) have no p-value")

    return PipelineResult(
        cleaned=cleaned,
        transformed=transformed,
        summary=summary,
        tests=tests,
        significant=filter_significant(tests, alpha=config["alpha"]),
        dropped=len(matrix) - len(cleaned),
        warnings=messages,
    )
