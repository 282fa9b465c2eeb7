"""
evobid — Configuration loader.

Loads from YAML file with environment variable overrides.

Usage:
    config = load_config("evaluator.yaml")
    config = load_config()  # defaults only
"""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List

import yaml

from evobid.interfaces.enums import ExecutionBackend
from evobid.simulation.converters import CONVERTERS, MAX_SIM_TIME_MS, TRAINING_TICK_LENGTH_MS
from evobid.simulation.postprocessors import POST_PROCESSORS

logger = logging.getLogger("evobid.config")


# ═════════════════════════════════════════════════════════════
# Config dataclasses
# ═════════════════════════════════════════════════════════════

@dataclass
class DatasetConfig:
    path: str = "files/train-dataset"
    filter: str = r"regex:.*0\.50-20-1\.00-.*\.scen"
    scenarios_per_generation: int = 1

@dataclass
class ExecutionConfig:
    distributed: bool = False
    workers: int = 0               # 0 = os.cpu_count()
    backend: str = "thread"        # "thread" or "process"
    repetitions: int = 1
    master_seed: int = 123
    max_retries: int = 0

@dataclass
class SimulationConfig:
    converter: str = "evo-training"
    post_processor: str = "auction"
    tick_length_ms: int = TRAINING_TICK_LENGTH_MS
    max_sim_time_ms: int = MAX_SIM_TIME_MS
    realtime: bool = False
    reauction_cooldown_ms: int = 60_000
    min_bids: int = 2
    bid_timeout_ms: int = 5_000
    max_auction_duration_ms: int = 30 * 60 * 1000

@dataclass
class ObjectiveConfig:
    vehicle_speed_kmh: float = 50.0

@dataclass
class DiagnosticsConfig:
    enabled: bool = True
    results_dir: str = "files/results"
    experiment_name: str = ""      # "" = timestamped directory

@dataclass
class LoggingConfig:
    log_level: str = "INFO"
    log_file: str = ""

@dataclass
class EvaluatorConfig:
    """Top-level configuration."""
    dataset: DatasetConfig = field(default_factory=DatasetConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    simulation: SimulationConfig = field(default_factory=SimulationConfig)
    objective: ObjectiveConfig = field(default_factory=ObjectiveConfig)
    diagnostics: DiagnosticsConfig = field(default_factory=DiagnosticsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def expected_results_per_candidate(self) -> int:
        return self.dataset.scenarios_per_generation * self.execution.repetitions

    def validate(self) -> List[str]:
        """Return list of validation errors (empty = valid)."""
        errors = []
        if self.dataset.scenarios_per_generation < 1:
            errors.append("dataset.scenarios_per_generation must be >= 1")
        if self.execution.repetitions < 1:
            errors.append("execution.repetitions must be >= 1")
        if self.execution.workers < 0:
            errors.append("execution.workers must be >= 0")
        if self.execution.max_retries < 0:
            errors.append("execution.max_retries must be >= 0")
        if self.execution.backend not in {b.value for b in ExecutionBackend}:
            errors.append(f"execution.backend must be one of "
                          f"{sorted(b.value for b in ExecutionBackend)}")
        if self.simulation.converter not in CONVERTERS:
            errors.append(f"simulation.converter must be one of {sorted(CONVERTERS)}")
        if self.simulation.post_processor not in POST_PROCESSORS:
            errors.append(f"simulation.post_processor must be one of "
                          f"{sorted(POST_PROCESSORS)}")
        if self.simulation.tick_length_ms <= 0:
            errors.append("simulation.tick_length_ms must be > 0")
        if self.objective.vehicle_speed_kmh <= 0:
            errors.append("objective.vehicle_speed_kmh must be > 0")
        return errors


# ═════════════════════════════════════════════════════════════
# Loader
# ═════════════════════════════════════════════════════════════

_TRUE_STRINGS = {"1", "true", "yes", "on"}


def _as_bool(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)


def _apply_section(target: Any, raw: Dict[str, Any]) -> None:
    for field_name, value in raw.items():
        if not hasattr(target, field_name):
            logger.warning("unknown config key %s.%s ignored",
                           type(target).__name__, field_name)
            continue
        current = getattr(target, field_name)
        if isinstance(current, bool):
            setattr(target, field_name, _as_bool(value))
        else:
            setattr(target, field_name, type(current)(value))


def load_config(path: str | None = None) -> EvaluatorConfig:
    """
    Load config from YAML file with env var overrides.

    Priority: env vars > YAML file > defaults
    """
    raw: Dict[str, Any] = {}

    if path and Path(path).exists():
        with open(path) as f:
            raw = yaml.safe_load(f) or {}
        logger.info("loaded config from %s", path)
    elif path:
        logger.warning("config file %s not found, using defaults", path)

    config = EvaluatorConfig()

    def _env_bool(name: str, default: bool) -> bool:
        raw_val = os.getenv(name)
        if raw_val is None:
            return default
        return _as_bool(raw_val)

    def _env_int(name: str, default: int) -> int:
        raw_val = os.getenv(name)
        if raw_val is None or raw_val.strip() == "":
            return default
        try:
            return int(raw_val)
        except ValueError:
            logger.warning("invalid int in %s=%r; using default=%s", name, raw_val, default)
            return default

    for section in ("dataset", "execution", "simulation", "objective",
                    "diagnostics", "logging"):
        _apply_section(getattr(config, section), raw.get(section) or {})

    # Dataset
    config.dataset.path = os.getenv("EVOBID_DATASET", config.dataset.path)
    config.dataset.filter = os.getenv("EVOBID_FILTER", config.dataset.filter)
    config.dataset.scenarios_per_generation = _env_int(
        "EVOBID_SCENARIOS_PER_GEN", config.dataset.scenarios_per_generation)

    # Execution
    config.execution.distributed = _env_bool(
        "EVOBID_DISTRIBUTED", config.execution.distributed)
    config.execution.workers = _env_int("EVOBID_WORKERS", config.execution.workers)
    config.execution.backend = os.getenv("EVOBID_BACKEND", config.execution.backend)

    # Diagnostics
    config.diagnostics.results_dir = os.getenv(
        "EVOBID_RESULTS_DIR", config.diagnostics.results_dir)
    config.diagnostics.enabled = _env_bool(
        "EVOBID_DIAGNOSTICS", config.diagnostics.enabled)

    # Logging
    config.logging.log_level = os.getenv("LOG_LEVEL", config.logging.log_level)

    return config
