"""
Configuration for analysis runs.

Handles:
- Domain defaults for every test (alpha, resample counts, minimum sizes)
- Session filters applied by the aggregation pipeline
- Loading YAML overrides and merging them over the defaults
"""

import logging
from dataclasses import dataclass, asdict, field, fields
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from .exceptions import ConfigurationError

logger = logging.getLogger(__name__)


# Fixed default so repeated runs are bit-identical
DEFAULT_SEED = 12345

COMPLETION_MODES = ('all', 'completers', 'nonCompleters')
SESSION_ORDINALS = ('all', 'first', 'repeat')


@dataclass(frozen=True)
class FilterSpec:
    """Which sessions an analysis run looks at."""
    completion: str = 'all'
    condition: Optional[str] = None
    session_type: Optional[str] = None
    data_source: Optional[str] = None
    session_ordinal: str = 'all'
    session_weighted: bool = False

    def __post_init__(self):
        if self.completion not in COMPLETION_MODES:
            raise ConfigurationError(
                f"completion must be one of {COMPLETION_MODES}, got {self.completion!r}"
            )
        if self.session_ordinal not in SESSION_ORDINALS:
            raise ConfigurationError(
                f"session_ordinal must be one of {SESSION_ORDINALS}, got {self.session_ordinal!r}"
            )

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'FilterSpec':
        _check_keys(cls, data, 'filters')
        return cls(**data)


@dataclass(frozen=True)
class AnalysisConfig:
    """Domain defaults for every statistic in a report."""
    alpha: float = 0.05
    n_bootstrap: int = 1000
    n_permutations: int = 10000
    seed: int = DEFAULT_SEED
    # Bootstrap/permutation are skipped (result None) above this many observations
    max_resample_n: int = 100000

    block_lags: Tuple[int, ...] = (1, 2, 3, 4, 5)
    trial_lags: Tuple[int, ...] = (1, 2, 3, 5, 10)

    min_blocks_temporal: int = 10
    min_chi_square_total: int = 50
    min_correlation_n: int = 3
    min_hold_trials: int = 20
    min_sessions_per_group: int = 2

    min_spectral_length: int = 32
    welch_below: int = 500
    segment_length: int = 64

    dependence_r_threshold: float = 0.5
    independence_alpha: float = 0.001

    primary_groups: Tuple[str, ...] = ('human', 'ai_agent', 'baseline')

    filters: FilterSpec = field(default_factory=FilterSpec)

    def __post_init__(self):
        if not 0.0 < self.alpha < 1.0:
            raise ConfigurationError(f"alpha must be in (0, 1), got {self.alpha}")
        if not 0.0 < self.independence_alpha < 1.0:
            raise ConfigurationError(
                f"independence_alpha must be in (0, 1), got {self.independence_alpha}"
            )
        for name in ('n_bootstrap', 'n_permutations', 'max_resample_n', 'segment_length',
                     'min_spectral_length'):
            if getattr(self, name) < 1:
                raise ConfigurationError(f"{name} must be >= 1, got {getattr(self, name)}")
        if any(lag < 1 for lag in self.block_lags + self.trial_lags):
            raise ConfigurationError("lags must be >= 1")
        if len(self.primary_groups) < 2:
            raise ConfigurationError("primary_groups needs at least two groups")

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data['block_lags'] = list(self.block_lags)
        data['trial_lags'] = list(self.trial_lags)
        data['primary_groups'] = list(self.primary_groups)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AnalysisConfig':
        """
        Build a config from a plain dict (e.g. parsed YAML).

        Raises:
            ConfigurationError: On unknown keys or invalid values
        """
        _check_keys(cls, data, 'analysis config')
        values = dict(data)
        for key in ('block_lags', 'trial_lags', 'primary_groups'):
            if key in values:
                if not isinstance(values[key], (list, tuple)):
                    raise ConfigurationError(f"{key} must be a list")
                values[key] = tuple(values[key])
        if 'filters' in values:
            if not isinstance(values['filters'], dict):
                raise ConfigurationError("filters must be a mapping")
            values['filters'] = FilterSpec.from_dict(values['filters'])
        try:
            return cls(**values)
        except TypeError as e:
            raise ConfigurationError(f"Invalid analysis config: {e}")


def _check_keys(cls, data: Any, label: str):
    if not isinstance(data, dict):
        raise ConfigurationError(f"{label} must be a mapping, got {type(data).__name__}")
    known = {f.name for f in fields(cls)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ConfigurationError(f"Unknown {label} keys: {', '.join(unknown)}")


def load_yaml(file_path: Path) -> Dict[str, Any]:
    """
    Load a YAML configuration file.

    Args:
        file_path: Path to YAML file

    Returns:
        Parsed mapping (empty dict for an empty file)

    Raises:
        ConfigurationError: If the file doesn't exist or the YAML is invalid
    """
    file_path = Path(file_path)
    if not file_path.exists():
        raise ConfigurationError(f"Configuration file not found: {file_path}")

    try:
        with open(file_path, 'r') as f:
            config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {file_path}: {e}")

    if config is None:
        return {}
    if not isinstance(config, dict):
        raise ConfigurationError(f"Top level of {file_path} must be a mapping")
    return config


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two configuration dictionaries.

    Args:
        base: Base configuration (defaults)
        override: Override configuration

    Returns:
        Merged configuration (override takes precedence)
    """
    merged = base.copy()

    for key, value in override.items():
        if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
            merged[key] = merge_configs(merged[key], value)
        else:
            merged[key] = value

    return merged


def load_config(
    config_path: Optional[Union[str, Path]] = None,
    overrides: Optional[Dict[str, Any]] = None,
) -> AnalysisConfig:
    """
    Load an analysis configuration.

    Starts from the built-in defaults, merges the YAML file (if given) and
    then any explicit overrides (e.g. from the command line). An optional
    top-level `analysis:` key is unwrapped.

    Args:
        config_path: Optional YAML file
        overrides: Optional dict merged last

    Returns:
        Validated AnalysisConfig

    Raises:
        ConfigurationError: If the file is missing/invalid or a value is bad
    """
    config = AnalysisConfig().to_dict()

    if config_path is not None:
        loaded = load_yaml(Path(config_path))
        if set(loaded) == {'analysis'} and isinstance(loaded['analysis'], dict):
            loaded = loaded['analysis']
        config = merge_configs(config, loaded)
        logger.info("Loaded analysis config from %s", config_path)

    if overrides:
        config = merge_configs(config, overrides)

    return AnalysisConfig.from_dict(config)
