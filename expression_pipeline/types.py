# expression_pipeline/types.py

from dataclasses import dataclass, field

import pandas as pd


@dataclass(frozen=True)
class GroupSummary:
    feature: str
    group: str
    count: int
    mean: float
    std: float  # NaN when count < 2
    sem: float


@dataclass(frozen=True)
class TestResult:
    __test__ = False  # not a pytest class

    feature: str
    statistic: float
    pvalue: float
    log2_fold_change: float
    padj: float


@dataclass(frozen=True)
class PipelineResult:
    cleaned: pd.DataFrame
    transformed: pd.DataFrame
    summary: pd.DataFrame
    tests: pd.DataFrame
    significant: pd.DataFrame
    dropped: int = 0
    warnings: list[str] = field(default_factory=list)
