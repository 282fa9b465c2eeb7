"""
evobid — Fitness Scorer.

Converts one correlated simulation result into a FitnessRecord.

  failed run (simulation aborted)         → WORST_FITNESS, stats ignored
  completed, objective says invalid       → WORST_FITNESS
  completed, valid                        → objective.compute_cost(stats)

Failed and invalid runs share the same sentinel, so every infeasible
candidate ranks strictly behind every feasible one. A low but valid
score is never an error.
"""
from __future__ import annotations

import logging
import sys

from evobid.evaluation.objective import ObjectiveFunction
from evobid.interfaces.types import Candidate, FitnessRecord, RawResult

logger = logging.getLogger("evobid.scorer")

WORST_FITNESS: float = sys.float_info.max


class FitnessScorer:

    __slots__ = ("_objective",)

    def __init__(self, objective: ObjectiveFunction) -> None:
        self._objective = objective

    @property
    def objective(self) -> ObjectiveFunction:
        return self._objective

    def score(self, candidate: Candidate, result: RawResult) -> FitnessRecord:
        if result.failed:
            return FitnessRecord(candidate.id, WORST_FITNESS, result, penalized=True)

        stats = result.payload.statistics
        try:
            cost = float(self._objective.compute_cost(stats))
            valid = self._objective.is_valid_result(stats)
        except Exception as exc:
            logger.warning("objective failed for %s on %s: %s",
                           candidate.id, result.scenario.scenario_id, exc)
            return FitnessRecord(candidate.id, WORST_FITNESS, result, penalized=True)

        if not valid:
            return FitnessRecord(candidate.id, WORST_FITNESS, result, penalized=True)
        return FitnessRecord(candidate.id, cost, result)
