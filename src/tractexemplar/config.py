"""
Exemplar Generation Configuration

Parameters for exemplar accumulation and resampling, loadable from JSON.
"""

import json
import logging
from dataclasses import dataclass, asdict, fields
from pathlib import Path
from typing import Any, Dict, Optional, Union

from .connectome.exemplar import BISECTION_ITERATIONS, ENDPOINT_CONVERGE_FRACTION, MIN_RESOLUTION

logger = logging.getLogger(__name__)


class ConfigError(Exception):
    """Exception raised for invalid configuration values"""
    pass


@dataclass
class ExemplarConfig:
    """Settings for exemplar generation."""
    resolution: int = 200
    step_size: float = 1.0
    n_threads: int = 1
    endpoint_converge_fraction: float = ENDPOINT_CONVERGE_FRACTION
    bisection_iterations: int = BISECTION_ITERATIONS
    output_hdf5: Optional[str] = None

    def __post_init__(self):
        if self.resolution < MIN_RESOLUTION:
            raise ConfigError(f"resolution must be at least {MIN_RESOLUTION}, got {self.resolution}")
        if self.step_size <= 0:
            raise ConfigError(f"step_size must be positive, got {self.step_size}")
        if self.n_threads < 1:
            raise ConfigError(f"n_threads must be at least 1, got {self.n_threads}")
        if not 0.0 <= self.endpoint_converge_fraction <= 0.5:
            raise ConfigError(
                f"endpoint_converge_fraction must be within [0, 0.5], "
                f"got {self.endpoint_converge_fraction}"
            )
        if self.bisection_iterations < 1:
            raise ConfigError(
                f"bisection_iterations must be at least 1, got {self.bisection_iterations}"
            )

    @classmethod
    def from_dict(cls, values: Dict[str, Any]) -> "ExemplarConfig":
        known = {f.name for f in fields(cls)}
        unknown = set(values) - known
        if unknown:
            logger.warning(f"Ignoring unknown configuration keys: {sorted(unknown)}")
        return cls(**{k: v for k, v in values.items() if k in known})

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    def update(self, **overrides) -> "ExemplarConfig":
        """Copy with the given non-None values replaced"""
        values = self.to_dict()
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ExemplarConfig.from_dict(values)


def load_config(path: Optional[Union[str, Path]] = None) -> ExemplarConfig:
    """
    Load exemplar configuration from a JSON file

    Args:
        path: JSON file path; defaults are used if None

    Returns:
        Configuration
    """
    if path is None:
        return ExemplarConfig()

    logger.info(f"Loading configuration from {path}")
    with open(path, 'r') as f:
        values = json.load(f)

    if not isinstance(values, dict):
        raise ConfigError(f"Configuration file {path} must contain a JSON object")

    return ExemplarConfig.from_dict(values)
