# src/circuitsim_core/simulation/config.py
import logging
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Any, Dict, Optional, Union

import cerberus
import pint
import yaml

from ..constants import (
    DEFAULT_CONVERGENCE_TOLERANCE,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MIN_UPDATE_INTERVAL_S,
    DEFAULT_TIME_STEP_S,
    STABILITY_EPSILON,
)
from ..units import to_si_magnitude
from .solver import SOLVER_STRATEGIES

logger = logging.getLogger(__name__)



class ConfigParsingError(ValueError):
    """Custom exception for errors during simulator configuration parsing."""
    pass


@dataclass(frozen=True)
class SimulatorConfig:
    """Numerical settings of the nonlinear simulator."""
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    convergence_tolerance: float = DEFAULT_CONVERGENCE_TOLERANCE
    time_step_s: float = DEFAULT_TIME_STEP_S
    min_update_interval_s: float = DEFAULT_MIN_UPDATE_INTERVAL_S
    solver_strategy: str = "direct"
    epsilon: float = STABILITY_EPSILON

    def __post_init__(self):
        if self.max_iterations < 1:
            raise ConfigParsingError(f"max_iterations must be at least 1, got {self.max_iterations}.")
        if self.convergence_tolerance <= 0.0:
            raise ConfigParsingError(f"convergence_tolerance must be positive, got {self.convergence_tolerance}.")
        if self.time_step_s < 0.0 or self.min_update_interval_s < 0.0:
            raise ConfigParsingError("time_step and min_update_interval must not be negative.")
        if self.solver_strategy not in SOLVER_STRATEGIES:
            raise ConfigParsingError(
                f"Unknown solver_strategy '{self.solver_strategy}'. Allowed: {list(SOLVER_STRATEGIES)}."
            )
        if self.epsilon <= 0.0:
            raise ConfigParsingError(f"epsilon must be positive, got {self.epsilon}.")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


_time_rule = {"type": ["number", "string"], "required": False}

_SCHEMA = {
    "max_iterations": {"type": "integer", "required": False, "min": 1},
    "convergence_tolerance": {"type": "number", "required": False},
    "time_step": _time_rule,
    "min_update_interval": _time_rule,
    "solver_strategy": {"type": "string", "required": False, "allowed": list(SOLVER_STRATEGIES)},
    "epsilon": {"type": "number", "required": False},
}


def _parse_time(raw: Dict[str, Any], key: str, default: float) -> float:
    if key not in raw:
        return default
    try:
        return to_si_magnitude(raw[key], "second")
    except (pint.DimensionalityError, pint.UndefinedUnitError, ValueError, TypeError) as e:
        raise ConfigParsingError(f"Invalid value for '{key}' ({raw[key]!r}): {e}") from e


def load_simulator_config(raw: Optional[Dict[str, Any]]) -> SimulatorConfig:
    """
    Validates a raw configuration mapping and builds a `SimulatorConfig`.

    Time values may be bare numbers (seconds) or unit strings such as "10 ms".
    Missing keys keep their defaults.
    """
    raw = raw or {}
    if not isinstance(raw, dict):
        raise ConfigParsingError(f"Simulator configuration must be a mapping, got {type(raw).__name__}.")

    validator = cerberus.Validator(_SCHEMA)
    validator.allow_unknown = False
    if not validator.validate(raw):
        raise ConfigParsingError(f"Simulator configuration failed validation: {validator.errors}")

    config = SimulatorConfig(
        max_iterations=raw.get("max_iterations", DEFAULT_MAX_ITERATIONS),
        convergence_tolerance=float(raw.get("convergence_tolerance", DEFAULT_CONVERGENCE_TOLERANCE)),
        time_step_s=_parse_time(raw, "time_step", DEFAULT_TIME_STEP_S),
        min_update_interval_s=_parse_time(raw, "min_update_interval", DEFAULT_MIN_UPDATE_INTERVAL_S),
        solver_strategy=raw.get("solver_strategy", "direct"),
        epsilon=float(raw.get("epsilon", STABILITY_EPSILON)),
    )
    logger.debug(f"Loaded simulator configuration: {config}")
    return config


def load_simulator_config_file(path: Union[str, Path]) -> SimulatorConfig:
    """Loads a `SimulatorConfig` from a YAML file. An empty file yields the defaults."""
    source = Path(path)
    if not source.is_file():
        raise ConfigParsingError(f"Simulator configuration file not found at path: {source}")
    try:
        with source.open("r", encoding="utf-8") as f:
            content = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigParsingError(f"Invalid YAML syntax in {source}: {e}") from e
    if content is not None and not isinstance(content, dict):
        raise ConfigParsingError(f"The root of {source} must be a mapping.")
    return load_simulator_config(content)
