"""
evobid — Stats logger.

Flat CSV of raw simulation statistics, one row per result, tagged with
the candidate that produced it. Used by the stand-alone evaluation path
(FitnessEvaluator.evaluate) where results are inspected by hand rather
than fed back into evolution.
"""
from __future__ import annotations

import csv
import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from evobid.interfaces.types import RawResult, SimulationStatistics

logger = logging.getLogger("evobid.stats")

_RUN_FIELDS = ["candidate_id", "config", "scenario_id", "random_seed",
               "repetition", "status", "error"]
_STAT_FIELDS = [f.name for f in dataclasses.fields(SimulationStatistics)]

FIELDS: List[str] = _RUN_FIELDS + _STAT_FIELDS


class StatsLogger:

    __slots__ = ("_dest",)

    def __init__(self, dest: Union[str, Path]) -> None:
        self._dest = Path(dest)

    @property
    def dest(self) -> Path:
        return self._dest

    def create_header(self) -> None:
        """Start a fresh file; an existing one is overwritten."""
        self._dest.parent.mkdir(parents=True, exist_ok=True)
        with open(self._dest, "w", newline="") as f:
            csv.writer(f).writerow(FIELDS)

    def append_results(self, results: Iterable[RawResult], candidate_id: str) -> int:
        rows = [self._row(r, candidate_id) for r in results]
        with open(self._dest, "a", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=FIELDS)
            writer.writerows(rows)
        return len(rows)

    @staticmethod
    def _row(result: RawResult, candidate_id: str) -> Dict[str, Any]:
        job = result.job
        row: Dict[str, Any] = {
            "candidate_id": candidate_id,
            "config": job.configuration.name,
            "scenario_id": job.scenario.scenario_id,
            "random_seed": job.seed,
            "repetition": job.repetition,
            "status": result.status.value,
            "error": result.error,
        }
        if result.payload is not None:
            row.update(dataclasses.asdict(result.payload.statistics))
        else:
            row.update({k: "" for k in _STAT_FIELDS})
        return row
