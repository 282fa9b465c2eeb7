"""
evobid — Enumerations.
Layer 0 (interfaces). Zero dependencies.
"""
from enum import Enum


class JobStatus(Enum):
    OK     = "ok"
    FAILED = "failed"


class FailureStrategy(Enum):
    ABORT_RUN = "abort_run"
    RETRY     = "retry"


class ExecutionBackend(Enum):
    THREAD  = "thread"
    PROCESS = "process"


class FileState(Enum):
    """Lifecycle of one diagnostics target file."""
    IDLE           = "idle"
    HEADER_WRITTEN = "header_written"
    APPENDING      = "appending"


class OutputField(Enum):
    """Fixed leading columns of the per-configuration diagnostics CSV."""
    SCENARIO_ID  = "scenario_id"
    DYNAMISM     = "dynamism"
    URGENCY      = "urgency"
    SCALE        = "scale"
    NUM_ORDERS   = "num_orders"
    NUM_VEHICLES = "num_vehicles"
    RANDOM_SEED  = "random_seed"
    REPETITION   = "repetition"


class AuctionField(Enum):
    NUM_REAUCTIONS              = "num_reauctions"
    NUM_UNSUCCESSFUL_REAUCTIONS = "num_unsuccessful_reauctions"
    NUM_FAILED_REAUCTIONS       = "num_failed_reauctions"
