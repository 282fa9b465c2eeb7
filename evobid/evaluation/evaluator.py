"""
evobid — FitnessEvaluator.

Evaluation orchestrator between the evolutionary engine and the
simulator. One instance lives for a whole evolutionary run.

PER GENERATION:

  ScenarioCatalog.window_for(g, w)       scenarios [g*w, g*w + w)
        │
  JobBuilder.build_batch(population)     one configuration per candidate id
  JobBuilder.jobs(...)                   scenario × configuration × repetition
        │
  BatchExecutor.run(jobs)  ──────────►   ResultWriter.on_result (diagnostics)
        │
  correlate(results, table)              configuration name → candidate
        │
  FitnessScorer.score(...)               cost, or WORST_FITNESS if failed/invalid
        │
  {candidate_id: [FitnessRecord, ...]}   exactly w × repetitions per candidate

USAGE:

    with FitnessEvaluator(load_config("evaluator.yaml"), engine) as ev:
        records = ev.evaluate_population(state.generation, population)
"""
from __future__ import annotations

import logging
import random
import statistics
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

from evobid.config import EvaluatorConfig
from evobid.diagnostics.result_writer import ResultWriter
from evobid.diagnostics.stats_logger import StatsLogger
from evobid.evaluation.correlator import correlate
from evobid.evaluation.objective import Gendreau06Objective, ObjectiveFunction
from evobid.evaluation.scorer import FitnessScorer
from evobid.execution.executor import BatchExecutor
from evobid.interfaces.errors import ConfigurationError, CorrelationError
from evobid.interfaces.types import (
    AuctionSettings, Candidate, FitnessRecord, Scenario,
)
from evobid.jobs.builder import BuilderSettings, JobBuilder
from evobid.scenarios.catalog import ScenarioCatalog
from evobid.scenarios.metadata import ScenarioMetadataCache
from evobid.simulation.converters import EvoTrainingConverter, converter_for
from evobid.simulation.engine import SimulationEngine
from evobid.simulation.postprocessors import post_processor_for

logger = logging.getLogger("evobid.evaluator")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def derive_seeds(master_seed: int, repetitions: int) -> List[int]:
    """One seed per repetition, identical for every scenario and candidate."""
    rng = random.Random(master_seed)
    return [rng.randrange(2 ** 31) for _ in range(repetitions)]


# ═════════════════════════════════════════════════════════════
# Per-candidate summary
# ═════════════════════════════════════════════════════════════

@dataclass(slots=True)
class CandidateSummary:
    candidate_id: str = ""
    n_results: int = 0
    n_penalized: int = 0
    n_failed: int = 0
    mean_fitness: float = 0.0   # over non-penalized records only
    best_fitness: float = 0.0

    @classmethod
    def from_records(cls, candidate_id: str,
                     records: Sequence[FitnessRecord]) -> "CandidateSummary":
        scored = [r.fitness for r in records if not r.penalized]
        return cls(
            candidate_id=candidate_id,
            n_results=len(records),
            n_penalized=sum(1 for r in records if r.penalized),
            n_failed=sum(1 for r in records if r.result.failed),
            mean_fitness=statistics.fmean(scored) if scored else 0.0,
            best_fitness=min(scored) if scored else 0.0,
        )


@dataclass
class GenerationReport:
    generation: int = 0
    scenario_ids: List[str] = field(default_factory=list)
    n_jobs: int = 0
    elapsed_ms: float = 0.0
    summaries: List[CandidateSummary] = field(default_factory=list)


# ═════════════════════════════════════════════════════════════
# FitnessEvaluator
# ═════════════════════════════════════════════════════════════

class FitnessEvaluator:

    __slots__ = (
        "_cfg", "_catalog", "_objective", "_metadata", "_writer",
        "_builder", "_converter", "_executor", "_scorer", "_seeds",
        "_last_report", "_closed",
    )

    def __init__(
        self,
        config: EvaluatorConfig,
        engine: SimulationEngine,
        objective: Optional[ObjectiveFunction] = None,
        catalog: Optional[ScenarioCatalog] = None,
        experiment_dir: Optional[Path] = None,
    ) -> None:
        errors = config.validate()
        if errors:
            raise ConfigurationError("invalid configuration: " + "; ".join(errors))

        self._cfg = config
        self._catalog = catalog if catalog is not None else ScenarioCatalog.load(
            config.dataset.path, config.dataset.filter)
        self._objective = objective or Gendreau06Objective(
            config.objective.vehicle_speed_kmh)

        self._metadata = ScenarioMetadataCache()
        self._writer = ResultWriter(
            experiment_dir or self._default_experiment_dir(),
            self._objective,
            self._metadata,
            enabled=config.diagnostics.enabled,
        )

        sim = config.simulation
        self._builder = JobBuilder(BuilderSettings(
            realtime=sim.realtime,
            auction=AuctionSettings(
                min_bids=sim.min_bids,
                bid_timeout_ms=sim.bid_timeout_ms,
                max_auction_duration_ms=sim.max_auction_duration_ms,
                reauction_cooldown_ms=sim.reauction_cooldown_ms,
            ),
        ))
        if sim.converter == EvoTrainingConverter.name:
            self._converter = converter_for(
                sim.converter, tick_length_ms=sim.tick_length_ms,
                time_limit_ms=sim.max_sim_time_ms)
        else:
            self._converter = converter_for(sim.converter)

        ex = config.execution
        self._executor = BatchExecutor(
            engine,
            post_processor_for(sim.post_processor),
            distributed=ex.distributed,
            workers=ex.workers or None,
            backend=ex.backend,
            max_retries=ex.max_retries,
            listeners=[self._writer],
        )
        self._scorer = FitnessScorer(self._objective)
        self._seeds = derive_seeds(ex.master_seed, ex.repetitions)
        self._last_report: Optional[GenerationReport] = None
        self._closed = False

    # ── Properties ───────────────────────────────────────────

    @property
    def catalog(self) -> ScenarioCatalog:
        return self._catalog

    @property
    def metadata_cache(self) -> ScenarioMetadataCache:
        return self._metadata

    @property
    def result_writer(self) -> ResultWriter:
        return self._writer

    @property
    def seeds(self) -> List[int]:
        return list(self._seeds)

    @property
    def last_report(self) -> Optional[GenerationReport]:
        return self._last_report

    def expected_results_per_candidate(self) -> int:
        return self._cfg.expected_results_per_candidate

    # ── Evolution-facing API ─────────────────────────────────

    def evaluate_population(
        self, generation: int, population: Iterable[Candidate],
    ) -> Dict[str, List[FitnessRecord]]:
        """
        Score every distinct candidate of the population on this
        generation's scenario window. Returns candidate id → records,
        each list holding exactly expected_results_per_candidate() entries.
        """
        self._check_open()
        t0 = time.monotonic()
        window = self._catalog.window_for(
            generation, self._cfg.dataset.scenarios_per_generation)
        logger.info("GEN %d: scenarios %s", generation,
                    [s.scenario_id for s in window])

        records = self._run(population, window)

        expected = self.expected_results_per_candidate()
        for cid, recs in records.items():
            if len(recs) != expected:
                raise CorrelationError(
                    f"candidate {cid!r} got {len(recs)} results, expected {expected}")

        summaries = [CandidateSummary.from_records(cid, recs)
                     for cid, recs in records.items()]
        self._last_report = GenerationReport(
            generation=generation,
            scenario_ids=[s.scenario_id for s in window],
            n_jobs=sum(len(r) for r in records.values()),
            elapsed_ms=(time.monotonic() - t0) * 1000,
            summaries=summaries,
        )
        best = min((s for s in summaries if s.n_penalized < s.n_results),
                   key=lambda s: s.mean_fitness, default=None)
        logger.info(
            "GEN %d COMPLETE: %d candidates, %d jobs, %d penalized, best=%s (%.2f), %.0fms",
            generation, len(summaries), self._last_report.n_jobs,
            sum(s.n_penalized for s in summaries),
            best.candidate_id if best else "-",
            best.mean_fitness if best else 0.0,
            self._last_report.elapsed_ms,
        )
        return records

    def evaluate(
        self,
        candidates: Iterable[Candidate],
        scenarios: Optional[Sequence[Scenario]] = None,
        dest: Optional[Path] = None,
    ) -> Dict[str, List[FitnessRecord]]:
        """
        Stand-alone evaluation on arbitrary scenarios (default: the whole
        catalog). Raw statistics of every run go to a stats CSV.
        """
        self._check_open()
        scenarios = list(scenarios) if scenarios is not None else list(self._catalog)
        records = self._run(candidates, scenarios)

        stats_log = StatsLogger(dest or self._writer.experiment_dir / "test.csv")
        stats_log.create_header()
        for cid, recs in records.items():
            stats_log.append_results([r.result for r in recs], cid)
        logger.info("stand-alone evaluation: %d candidates × %d scenarios → %s",
                    len(records), len(scenarios), stats_log.dest)
        return records

    def close(self) -> None:
        """Tear down per-run state: diagnostics writer and metadata cache."""
        if self._closed:
            return
        self._closed = True
        self._writer.close()
        self._metadata.clear()

    def __enter__(self) -> "FitnessEvaluator":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    # ════════════════════════════════════════════════════════
    # Internal helpers
    # ════════════════════════════════════════════════════════

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError("FitnessEvaluator is closed")

    def _default_experiment_dir(self) -> Path:
        d = self._cfg.diagnostics
        name = d.experiment_name or _utcnow().strftime("%Y%m%d-%H%M%S")
        return Path(d.results_dir) / name

    def _run(
        self, candidates: Iterable[Candidate], scenarios: Sequence[Scenario],
    ) -> Dict[str, List[FitnessRecord]]:
        table = self._builder.build_batch(candidates)
        jobs = self._builder.jobs(table, scenarios, self._seeds, self._converter)
        results = self._executor.run(jobs)
        if len(results) != len(jobs):
            raise CorrelationError(
                f"executor returned {len(results)} results for {len(jobs)} jobs")

        records: Dict[str, List[FitnessRecord]] = {c.id: [] for c in table.candidates}
        for candidate, result in correlate(results, table):
            records[candidate.id].append(self._scorer.score(candidate, result))

        # completion order is arbitrary; present records in job order
        for recs in records.values():
            recs.sort(key=lambda r: (r.result.scenario.instance_id,
                                     r.result.job.repetition))
        return records
