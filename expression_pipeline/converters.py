# expression_pipeline/converters.py

import gzip
import io
import logging
from dataclasses import asdict, fields
from pathlib import Path
from typing import Iterable, Optional, TextIO, Tuple, Union

import pandas as pd

from expression_pipeline.types import GroupSummary, TestResult

logger = logging.getLogger(__name__)

PathOrBuffer = Union[str, Path, TextIO]

SUMMARY_COLUMNS = [f.name for f in fields(GroupSummary)]
TEST_COLUMNS = [f.name for f in fields(TestResult)]


def to_annotation(annotation: Union[pd.Series, dict]) -> pd.Series:
    """Return the sample -> label mapping as a string-indexed Series copy."""
    if isinstance(annotation, dict):
        annotation = pd.Series(annotation, dtype=object)
    annotation = annotation.copy()
    annotation.index = annotation.index.astype(str)
    annotation.name = annotation.name or "group"
    return annotation


def to_matrix(matrix: pd.DataFrame) -> pd.DataFrame:
    """Return `matrix` with sample ids as str, matching `to_annotation` keys."""
    if all(isinstance(c, str) for c in matrix.columns):
        return matrix
    matrix = matrix.copy()
    matrix.columns = matrix.columns.astype(str)
    return matrix


def summary_to_records(df: pd.DataFrame) -> list[GroupSummary]:
    return [
        GroupSummary(
            feature=row["feature"],
            group=row["group"],
            count=int(row["count"]),
            mean=float(row["mean"]),
            std=float(row["std"]),
            sem=float(row["sem"]),
        )
        for _, row in df.iterrows()
    ]


def records_to_summary(records: list[GroupSummary]) -> pd.DataFrame:
    return pd.DataFrame([asdict(r) for r in records], columns=SUMMARY_COLUMNS)


def results_to_records(df: pd.DataFrame) -> list[TestResult]:
    return [
        TestResult(**{k: row[k] for k in TEST_COLUMNS})
        for _, row in df.iterrows()
    ]


def records_to_results(records: list[TestResult]) -> pd.DataFrame:
    return pd.DataFrame([asdict(r) for r in records], columns=TEST_COLUMNS)


# --- Table readers ---

EXCEL_SUFFIXES = {".xlsx", ".xlsm", ".xls"}
TAB_SUFFIXES = {".tsv", ".txt", ".tab"}


def _read_table(path: Union[str, Path], sheet_name=0, **kwargs) -> pd.DataFrame:
    suffixes = [s.lower() for s in Path(path).suffixes]
    if any(s in EXCEL_SUFFIXES for s in suffixes):
        return pd.read_excel(path, sheet_name=sheet_name, **kwargs)
    sep = "\t" if any(s in TAB_SUFFIXES for s in suffixes) else ","
    return pd.read_csv(path, sep=sep, **kwargs)


def read_expression_table(path: Union[str, Path], index_col=0, sheet_name=0) -> pd.DataFrame:
    """Read a features x samples table from CSV, TSV or Excel.

    Non-numeric cells become NaN so the cleaner can drop them.
    """
    df = _read_table(path, sheet_name=sheet_name, index_col=index_col)
    df = df.apply(pd.to_numeric, errors="coerce")
    df.index = df.index.astype(str)
    df.columns = df.columns.astype(str)
    df.index.name = "feature"
    logger.info(f"Read expression table {path}: {df.shape[0]} features x {df.shape[1]} samples")
    return df


def read_annotation(
    path: Union[str, Path],
    sample_col: str = "sample_id",
    label_col: str = "group",
    sheet_name=0,
) -> pd.Series:
    df = _read_table(path, sheet_name=sheet_name)
    df.columns = df.columns.astype(str).str.strip()

    missing = [col for col in (sample_col, label_col) if col not in df.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    df = df.dropna(subset=[sample_col])
    return to_annotation(pd.Series(
        df[label_col].astype(str).str.strip().values,
        index=df[sample_col].astype(str).str.strip().values,
        name=label_col,
    ))


# --- GEO series matrix ---

TABLE_BEGIN = "!series_matrix_table_begin"
TABLE_END = "!series_matrix_table_end"


def _open_text(source: PathOrBuffer) -> TextIO:
    if hasattr(source, "read"):
        return source
    if str(source).endswith(".gz"):
        return gzip.open(source, "rt", encoding="utf-8")
    return open(source, "r", encoding="utf-8")


def _split_fields(line: str) -> list[str]:
    return [v.strip().strip('"') for v in line.rstrip("\r\n").split("\t")]


def parse_series_matrix(source: PathOrBuffer) -> Tuple[pd.DataFrame, pd.DataFrame]:
    """Parse a GEO series-matrix file into (matrix, sample metadata).

    `!Sample_*` header lines become metadata columns (repeated keys such as
    `characteristics_ch1` get `.1`, `.2` suffixes); the block between the
    table markers becomes the expression matrix with `null` read as NaN.
    """
    sample_fields: dict[str, list[str]] = {}
    table_lines: list[str] = []
    in_table = False
    seen_end = False

    handle = _open_text(source)
    try:
        for line in handle:
            if line.startswith(TABLE_BEGIN):
                in_table = True
                continue
            if line.startswith(TABLE_END):
                seen_end = True
                break
            if in_table:
                table_lines.append(line)
            elif line.startswith("!Sample_"):
                values = _split_fields(line)
                key = values[0][len("!Sample_"):]
                name, n = key, 1
                while name in sample_fields:
                    name = f"{key}.{n}"
                    n += 1
                sample_fields[name] = values[1:]
    finally:
        if handle is not source:
            handle.close()

    if not in_table or not seen_end:
        raise ValueError("Could not find series matrix table markers.")

    matrix = pd.read_csv(
        io.StringIO("".join(table_lines)),
        sep="\t",
        index_col=0,
        na_values=["null", "NA", ""],
        quotechar='"',
    )
    matrix = matrix.apply(pd.to_numeric, errors="coerce")
    matrix.index = matrix.index.astype(str)
    matrix.columns = matrix.columns.astype(str)
    matrix.index.name = "feature"

    samples = sample_fields.get("geo_accession", list(matrix.columns))
    metadata = pd.DataFrame(
        {k: v for k, v in sample_fields.items() if len(v) == len(samples)},
        index=pd.Index(samples, name="sample_id"),
    )

    logger.info(f"Parsed series matrix: {matrix.shape[0]} features x {matrix.shape[1]} samples, "
                f"{metadata.shape[1]} metadata fields")
    return matrix, metadata


def annotation_from_metadata(
    metadata: pd.DataFrame,
    field: str,
    mapping: Optional[dict[str, str]] = None,
) -> pd.Series:
    """Derive group labels from a sample metadata column.

    With `mapping`, each value is labelled by the first key found in it
    (case-insensitive substring), e.g. {"tumor": "tumor", "normal": "normal"}.
    """
    if field not in metadata.columns:
        raise ValueError(f"Metadata field '{field}' not found. Available: {list(metadata.columns)}")

    values = metadata[field].astype(str)
    if mapping is None:
        return to_annotation(values.rename("group"))

    labels = {}
    unmatched = []
    for sample, value in values.items():
        label = next((lbl for key, lbl in mapping.items() if key.casefold() in value.casefold()), None)
        if label is None:
            unmatched.append(sample)
        labels[sample] = label

    if unmatched:
        raise ValueError(f"No label matched for samples: {unmatched}")
    return to_annotation(pd.Series(labels, name="group", dtype=object))


# --- Feature selection ---

def probes_for_gene(
    platform: pd.DataFrame,
    symbol: str,
    id_col: str = "ID",
    symbol_col: str = "Gene Symbol",
) -> list[str]:
    """Probe set ids annotated to `symbol` in a platform table (symbols split on '///')."""
    missing = [col for col in (id_col, symbol_col) if col not in platform.columns]
    if missing:
        raise ValueError(f"Missing required columns: {missing}")

    symbols = platform[symbol_col].fillna("").astype(str)
    hits = symbols.map(lambda s: symbol in {x.strip() for x in s.split("///")})
    return platform.loc[hits, id_col].astype(str).tolist()


def select_features(matrix: pd.DataFrame, features: Iterable[str]) -> pd.DataFrame:
    features = list(features)
    missing = [f for f in features if f not in matrix.index]
    if missing:
        raise KeyError(f"Features not in matrix: {missing}")
    return matrix.loc[features].copy()
