"""
evobid — Diagnostics output.

Offline-analysis files only; nothing here feeds back into fitness.

Components:
    ResultWriter    Per-configuration CSV + per-run auction / bid-timing files.
    StatsLogger     Flat per-candidate statistics CSV for stand-alone runs.
"""

from evobid.diagnostics.result_writer import (
    AUCTION_HEADER,
    BID_COMPUTATION_HEADER,
    COMPUTATION_TIME_DIR,
    ResultWriter,
    bid_computation_rows,
)
from evobid.diagnostics.stats_logger import StatsLogger

__all__ = [
    "AUCTION_HEADER",
    "BID_COMPUTATION_HEADER",
    "COMPUTATION_TIME_DIR",
    "ResultWriter",
    "StatsLogger",
    "bid_computation_rows",
]
