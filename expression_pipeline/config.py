# expression_pipeline/config.py

import json
from copy import deepcopy
from pathlib import Path
from typing import Any, Dict, Literal, Optional, TypedDict, Union


class AnalysisConfig(TypedDict):
    group_labels: Optional[list[str]]
    label_a: str
    label_b: str
    log_base: float
    missing_method: Literal["apply", "loop"]
    features: Optional[list[str]]
    alpha: float


DEFAULTS: AnalysisConfig = {
    "group_labels": None,
    "label_a": "normal",
    "label_b": "tumor",
    "log_base": 2.0,
    "missing_method": "apply",
    "features": None,
    "alpha": 0.05,
}


def default_config() -> AnalysisConfig:
    return deepcopy(DEFAULTS)


def merge_config(overrides: Optional[Dict[str, Any]] = None) -> AnalysisConfig:
    """Overlay user settings on the defaults, rejecting keys nobody reads."""
    config = default_config()
    if not overrides:
        return config

    unknown = sorted(set(overrides) - set(DEFAULTS))
    if unknown:
        raise ValueError(f"Unknown config keys: {unknown}")

    config.update(overrides)
    if config["missing_method"] not in {"apply", "loop"}:
        raise ValueError(f"missing_method must be 'apply' or 'loop', got {config['missing_method']!r}")
    if not 0 < config["alpha"] <= 1:
        raise ValueError(f"alpha must be in (0, 1], got {config['alpha']}")
    if config["label_a"] == config["label_b"]:
        raise ValueError("label_a and label_b must differ")
    return config


def load_config(path: Union[str, Path]) -> AnalysisConfig:
    """Read a JSON config file and merge it over the defaults."""
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"Config file {path} must contain a JSON object")
    return merge_config(data)


def config_to_json(config: AnalysisConfig) -> str:
    return json.dumps(dict(config), indent=2)
