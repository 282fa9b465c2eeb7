"""
evobid — Diagnostics result writer.

Appends one CSV row per finished simulation to
``<experiment_dir>/<config name>.csv`` and, for runs that carry auction
side-channel data, writes two small per-run files under
``<experiment_dir>/computation-time-stats/``:

    <config>-<problem class>-<instance id>-<seed>-<rep>-auctions.csv
        auction_start,auction_end,num_bids
    <config>-<problem class>-<instance id>-<seed>-<rep>-bid-computations.csv
        bidder_id,comp_start_sim_time,route_length,duration_ns

Rows in the per-configuration file are joined with the scenario's
metadata (dynamism, urgency, scale, order and vehicle counts); a missing
or broken metadata file raises, it is never skipped, because offline
analysis groups on those columns.

CONCURRENCY:
    Results may arrive from several workers at once. Each target file
    has its own lock; header creation and appends happen under it.
    Metadata lookups go through the shared ScenarioMetadataCache.

STATE (per target file):   IDLE → HEADER_WRITTEN → APPENDING ...
STATE (writer):            open → closed (on_result raises afterwards)
"""
from __future__ import annotations

import csv
import logging
import threading
from collections import defaultdict
from pathlib import Path
from typing import Any, Dict, List, Mapping, Union

from evobid.evaluation.objective import ObjectiveFunction
from evobid.interfaces.enums import AuctionField, FileState, OutputField
from evobid.interfaces.types import BidTimeMeasurement, RawResult
from evobid.scenarios.metadata import ScenarioMetadataCache

logger = logging.getLogger("evobid.diagnostics")

COMPUTATION_TIME_DIR = "computation-time-stats"
AUCTION_HEADER = ["auction_start", "auction_end", "num_bids"]
BID_COMPUTATION_HEADER = [
    "bidder_id", "comp_start_sim_time", "route_length", "duration_ns",
]


def _bidder_order(bidder: str):
    return (0, int(bidder), "") if bidder.isdigit() else (1, 0, bidder)


def bid_computation_rows(measurements) -> List[List[Any]]:
    """
    Group measurements per bidder and number bidders 0..n-1 by sorted
    bidder key. Rows within a bidder are ordered by simulation time, so
    the output does not depend on the order measurements were logged.
    """
    by_bidder: Dict[str, List[BidTimeMeasurement]] = defaultdict(list)
    for m in measurements:
        by_bidder[m.bidder].append(m)

    rows: List[List[Any]] = []
    for bidder_id, bidder in enumerate(sorted(by_bidder, key=_bidder_order)):
        ms = sorted(by_bidder[bidder],
                    key=lambda m: (m.sim_time, m.route_length, m.duration_ns))
        for m in ms:
            rows.append([bidder_id, m.sim_time, m.route_length, m.duration_ns])
    return rows


class ResultWriter:

    __slots__ = (
        "_dir", "_objective", "_metadata", "_enabled", "_closed",
        "_states", "_file_locks", "_registry_lock", "_rows_written",
    )

    def __init__(
        self,
        experiment_dir: Union[str, Path],
        objective: ObjectiveFunction,
        metadata_cache: ScenarioMetadataCache,
        enabled: bool = True,
    ) -> None:
        self._dir = Path(experiment_dir)
        self._objective = objective
        self._metadata = metadata_cache
        self._enabled = enabled
        self._closed = False
        self._states: Dict[Path, FileState] = {}
        self._file_locks: Dict[Path, threading.Lock] = {}
        self._registry_lock = threading.Lock()
        self._rows_written = 0

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def experiment_dir(self) -> Path:
        return self._dir

    @property
    def rows_written(self) -> int:
        return self._rows_written

    @property
    def fields(self) -> List[str]:
        return ([f.value for f in OutputField]
                + self._objective.output_fields()
                + [f.value for f in AuctionField])

    def target_file(self, config_name: str) -> Path:
        return self._dir / f"{config_name}.csv"

    def state(self, path: Union[str, Path]) -> FileState:
        return self._states.get(Path(path), FileState.IDLE)

    # ── Listener entry point ─────────────────────────────────

    def on_result(self, result: RawResult) -> None:
        if self._closed:
            raise RuntimeError("ResultWriter is closed")
        if not self._enabled:
            return
        if result.failed:
            logger.debug("no diagnostics row for failed job %s", result.job.key)
            return

        row = self._build_row(result)
        self._append_row(self.target_file(result.configuration.name), row)
        self._write_computation_stats(result)

    def close(self) -> None:
        with self._registry_lock:
            if not self._closed:
                self._closed = True
                logger.info("diagnostics closed: %d rows in %s",
                            self._rows_written, self._dir)

    def __enter__(self) -> "ResultWriter":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ════════════════════════════════════════════════════════
    # Internal helpers
    # ════════════════════════════════════════════════════════

    def _lock_for(self, path: Path) -> threading.Lock:
        with self._registry_lock:
            lock = self._file_locks.get(path)
            if lock is None:
                lock = self._file_locks[path] = threading.Lock()
            return lock

    def _build_row(self, result: RawResult) -> List[Any]:
        job = result.job
        props: Mapping[str, str] = self._metadata.get_for(job.scenario)
        stats = result.payload.statistics

        values: Dict[str, Any] = {
            OutputField.SCENARIO_ID.value: job.scenario.scenario_id,
            OutputField.DYNAMISM.value: props["dynamism_bin"],
            OutputField.URGENCY.value: props["urgency"],
            OutputField.SCALE.value: props["scale"],
            OutputField.NUM_ORDERS.value: props["AddParcelEvent"],
            OutputField.NUM_VEHICLES.value: props["AddVehicleEvent"],
            OutputField.RANDOM_SEED.value: job.seed,
            OutputField.REPETITION.value: job.repetition,
        }
        values.update(self._objective.summarize(stats))

        auction = result.payload.auction_stats
        values[AuctionField.NUM_REAUCTIONS.value] = (
            auction.num_reauctions if auction else "")
        values[AuctionField.NUM_UNSUCCESSFUL_REAUCTIONS.value] = (
            auction.num_unsuccessful if auction else "")
        values[AuctionField.NUM_FAILED_REAUCTIONS.value] = (
            auction.num_failed if auction else "")

        missing = [f for f in self.fields if f not in values]
        if missing:
            raise ValueError(f"objective summary lacks columns: {missing}")
        return [values[f] for f in self.fields]

    def _append_row(self, path: Path, row: List[Any]) -> None:
        with self._lock_for(path):
            state = self._states.get(path, FileState.IDLE)
            if state is FileState.IDLE:
                self._dir.mkdir(parents=True, exist_ok=True)
                if not path.exists() or path.stat().st_size == 0:
                    with open(path, "w", newline="") as f:
                        csv.writer(f).writerow(self.fields)
                    logger.debug("header written: %s", path)
                self._states[path] = FileState.HEADER_WRITTEN

            with open(path, "a", newline="") as f:
                csv.writer(f).writerow(row)
            self._states[path] = FileState.APPENDING
        with self._registry_lock:
            self._rows_written += 1

    def _write_computation_stats(self, result: RawResult) -> None:
        payload = result.payload
        if not payload.auction_events or not payload.time_measurements:
            return

        job = result.job
        run_id = "-".join(str(p) for p in (
            job.configuration.name,
            job.scenario.problem_class,
            job.scenario.instance_id,
            job.seed,
            job.repetition,
        ))
        stats_dir = self._dir / COMPUTATION_TIME_DIR
        stats_dir.mkdir(parents=True, exist_ok=True)

        # one file per run: no other job writes to these paths
        with open(stats_dir / f"{run_id}-auctions.csv", "w", newline="") as f:
            w = csv.writer(f)
            w.writerow(AUCTION_HEADER)
            for e in payload.auction_events:
                w.writerow([e.start_time, e.end_time, e.num_bids])

        with open(stats_dir / f"{run_id}-bid-computations.csv", "w", newline="") as f:
            w = csv.writer(f)
            w.writerow(BID_COMPUTATION_HEADER)
            w.writerows(bid_computation_rows(payload.time_measurements))
