"""
Configuration file support for the sexdeg CLI and app.

Supports YAML and JSON config files; CLI arguments that are explicitly given
override file values.

Example config (YAML):
    expression: data/GSE93272_expression.csv
    phenotype: data/GSE93272_phenotype.csv
    output: results/
    thresholds:
      logfc: 0.5
      adjpval: 0.05
      min_variance: 0.01
      log_transform: auto
    phenotype_columns:
      sex: characteristics_gender
      status: disease_state
    selection:
      workflows: [boruta, elastic_net, rfe]
      sexes: [female, male]
      degs_only: true
      l1_ratio: 0.5
"""

from __future__ import annotations

import json
import logging
import os
from argparse import Namespace
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from sexdeg.io.phenotype import (
    SEXES,
    ExplicitColumnInferencer,
    PatternColumnInferencer,
    PhenotypeColumnInferencer,
)
from sexdeg.selection import DEFAULT_RFE_SIZES, WORKFLOWS

logger = logging.getLogger(__name__)

CONFIG_ENV_VAR = "SEXDEG_CONFIG"


@dataclass
class ThresholdConfig:
    """Loading and DEG thresholds."""
    logfc: float = 0.5
    adjpval: float = 0.05
    min_variance: float = 0.01
    log_transform: str = "auto"


@dataclass
class PhenotypeColumnConfig:
    """Explicit phenotype column names. With none set, columns are inferred from the headers."""
    sample: Optional[str] = None
    sex: Optional[str] = None
    status: Optional[str] = None

    def inferencer(self) -> PhenotypeColumnInferencer:
        if self.sex is None and self.status is None and self.sample is None:
            return PatternColumnInferencer()
        return ExplicitColumnInferencer(
            sample=self.sample or "sample",
            sex=self.sex or "gender",
            status=self.status or "status",
        )


@dataclass
class SelectionConfig:
    """Feature-selection workflows."""
    workflows: List[str] = field(default_factory=lambda: list(WORKFLOWS))
    sexes: List[str] = field(default_factory=lambda: list(SEXES))
    degs_only: bool = False
    l1_ratio: float = 0.5
    cv_folds: int = 5
    boruta_max_iter: int = 100
    boruta_alpha: float = 0.01
    rfe_sizes: List[int] = field(default_factory=lambda: list(DEFAULT_RFE_SIZES))
    random_state: int = 42


@dataclass
class AnalysisConfig:
    """
    Complete configuration for `sexdeg run` and the app.

    Mirrors the CLI argument structure.
    """
    expression: Optional[Path] = None
    phenotype: Optional[Path] = None
    output: Optional[Path] = None
    thresholds: ThresholdConfig = field(default_factory=ThresholdConfig)
    phenotype_columns: PhenotypeColumnConfig = field(default_factory=PhenotypeColumnConfig)
    selection: SelectionConfig = field(default_factory=SelectionConfig)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        for key in ('expression', 'phenotype', 'output'):
            if data[key] is not None:
                data[key] = str(data[key])
        return data


def load_config(config_path: Path) -> Dict[str, Any]:
    """
    Load configuration from YAML or JSON file.

    Parameters:
        config_path: Path to config file (.yaml, .yml, or .json)

    Returns:
        Dictionary with configuration values

    Raises:
        FileNotFoundError: If config file doesn't exist
        ValueError: If file format is unsupported or invalid
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    suffix = config_path.suffix.lower()

    try:
        with open(config_path, 'r') as f:
            if suffix in ('.yaml', '.yml'):
                config = yaml.safe_load(f)
            elif suffix == '.json':
                config = json.load(f)
            else:
                raise ValueError(
                    f"Unsupported config format: {suffix}. "
                    f"Use .yaml, .yml, or .json"
                )
    except yaml.YAMLError as e:
        raise ValueError(f"Invalid YAML in config file: {e}") from e
    except json.JSONDecodeError as e:
        raise ValueError(f"Invalid JSON in config file: {e}") from e

    if config is None:
        return {}

    if not isinstance(config, dict):
        raise ValueError("Config file must contain a dictionary/mapping at top level")

    return config


def _section(cls, values: Any, name: str):
    if values is None:
        return cls()
    if not isinstance(values, dict):
        raise ValueError(f"Config section '{name}' must be a mapping")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(values) - known)
    if unknown:
        raise ValueError(
            f"Unknown key(s) in '{name}': {', '.join(unknown)}. Valid keys: {', '.join(sorted(known))}"
        )
    return cls(**values)


def config_from_dict(data: Dict[str, Any]) -> AnalysisConfig:
    """
    Build an AnalysisConfig from a loaded config mapping.

    Raises:
        ValueError: Unknown sections or keys
    """
    sections = {
        'thresholds': ThresholdConfig,
        'phenotype_columns': PhenotypeColumnConfig,
        'selection': SelectionConfig,
    }
    top_level = {'expression', 'phenotype', 'output', *sections}
    unknown = sorted(set(data) - top_level)
    if unknown:
        raise ValueError(f"Unknown config section(s): {', '.join(unknown)}")

    return AnalysisConfig(
        expression=Path(data['expression']) if data.get('expression') else None,
        phenotype=Path(data['phenotype']) if data.get('phenotype') else None,
        output=Path(data['output']) if data.get('output') else None,
        **{name: _section(cls, data.get(name), name) for name, cls in sections.items()},
    )


def _merge_value(cli_value: Any, config_value: Any) -> Any:
    """
    Merge a single config value with a CLI argument.

    CLI arguments default to None, so a non-None CLI value was explicitly
    given and always wins.
    """
    if cli_value is not None:
        return cli_value
    return config_value


# CLI attribute -> (section, key); section None means top level
_ARG_MAPPINGS = {
    'expression': (None, 'expression'),
    'phenotype': (None, 'phenotype'),
    'output': (None, 'output'),
    'logfc': ('thresholds', 'logfc'),
    'adjpval': ('thresholds', 'adjpval'),
    'min_variance': ('thresholds', 'min_variance'),
    'log_transform': ('thresholds', 'log_transform'),
    'sample_column': ('phenotype_columns', 'sample'),
    'sex_column': ('phenotype_columns', 'sex'),
    'status_column': ('phenotype_columns', 'status'),
    'workflows': ('selection', 'workflows'),
    'sexes': ('selection', 'sexes'),
    'degs_only': ('selection', 'degs_only'),
    'l1_ratio': ('selection', 'l1_ratio'),
    'cv_folds': ('selection', 'cv_folds'),
    'boruta_max_iter': ('selection', 'boruta_max_iter'),
    'boruta_alpha': ('selection', 'boruta_alpha'),
    'rfe_sizes': ('selection', 'rfe_sizes'),
    'random_state': ('selection', 'random_state'),
}


def merge_config_with_args(config: AnalysisConfig, args: Namespace) -> AnalysisConfig:
    """
    Overlay explicitly given CLI arguments on a config.

    Priority (highest to lowest):
    1. Explicitly provided CLI arguments
    2. Config file values
    3. Dataclass defaults
    """
    for arg_name, (section, key) in _ARG_MAPPINGS.items():
        if not hasattr(args, arg_name):
            continue
        target = config if section is None else getattr(config, section)
        merged = _merge_value(getattr(args, arg_name), getattr(target, key))
        if section is None and merged is not None:
            merged = Path(merged)
        setattr(target, key, merged)
    return config


def validate_config(config: AnalysisConfig) -> None:
    """
    Validate configuration values.

    Raises:
        ValueError: If configuration is invalid
    """
    t = config.thresholds
    if not isinstance(t.logfc, (int, float)) or t.logfc < 0:
        raise ValueError(f"logfc must be a non-negative number, got: {t.logfc}")
    if not isinstance(t.adjpval, (int, float)) or not 0 < t.adjpval <= 1:
        raise ValueError(f"adjpval must be in (0, 1], got: {t.adjpval}")
    if not isinstance(t.min_variance, (int, float)) or t.min_variance < 0:
        raise ValueError(f"min_variance must be a non-negative number, got: {t.min_variance}")
    if t.log_transform not in ('auto', 'always', 'never'):
        raise ValueError(
            f"Invalid log_transform '{t.log_transform}'. Choose from: auto, always, never"
        )

    s = config.selection
    invalid = [w for w in s.workflows if w not in WORKFLOWS]
    if invalid:
        raise ValueError(
            f"Invalid workflow(s) {', '.join(invalid)}. Choose from: {', '.join(WORKFLOWS)}"
        )
    invalid = [sex for sex in s.sexes if sex not in SEXES]
    if invalid or not s.sexes:
        raise ValueError(f"sexes must be a non-empty subset of {', '.join(SEXES)}, got: {s.sexes}")
    if not isinstance(s.l1_ratio, (int, float)) or not 0 <= s.l1_ratio <= 1:
        raise ValueError(f"l1_ratio must be in [0, 1], got: {s.l1_ratio}")
    if not isinstance(s.cv_folds, int) or s.cv_folds < 2:
        raise ValueError(f"cv_folds must be an integer >= 2, got: {s.cv_folds}")
    if not isinstance(s.boruta_max_iter, int) or s.boruta_max_iter < 1:
        raise ValueError(f"boruta_max_iter must be a positive integer, got: {s.boruta_max_iter}")
    if not isinstance(s.boruta_alpha, (int, float)) or not 0 < s.boruta_alpha < 1:
        raise ValueError(f"boruta_alpha must be in (0, 1), got: {s.boruta_alpha}")
    if not s.rfe_sizes or any(not isinstance(n, int) or n < 1 for n in s.rfe_sizes):
        raise ValueError(f"rfe_sizes must be positive integers, got: {s.rfe_sizes}")


def load_app_config() -> AnalysisConfig:
    """Defaults for the app, optionally from the file named by $SEXDEG_CONFIG."""
    path = os.environ.get(CONFIG_ENV_VAR)
    if not path:
        return AnalysisConfig()
    config = config_from_dict(load_config(Path(path)))
    validate_config(config)
    logger.info(f"Loaded app configuration from {path}")
    return config
