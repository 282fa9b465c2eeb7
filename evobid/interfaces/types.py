"""
evobid — Shared value types.
Layer 0. Depends only on interfaces.enums.

Types that travel to worker processes (Scenario, JobConfiguration, Job,
RunSettings, RawResult and its payload) are plain picklable dataclasses.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional, Tuple

from evobid.interfaces.enums import JobStatus


# ── Scenarios ────────────────────────────────────────────────

@dataclass(frozen=True)
class Scenario:
    """
    One problem instance on disk. Identity is (problem_class, instance_id),
    both parsed from the file name ``<problem_class>-<instance_id>.scen``.
    """
    problem_class: str
    instance_id: int
    path: Path = field(compare=False)
    name: str = field(default="", compare=False)

    @property
    def scenario_id(self) -> str:
        return self.name or f"{self.problem_class}-{self.instance_id}"

    @property
    def metadata_path(self) -> Path:
        return self.path.with_suffix(".properties")


# ── Candidates & configurations ─────────────────────────────

@dataclass(frozen=True)
class Candidate:
    """Heuristic program under evaluation. Owned by the evolutionary engine."""
    id: str
    program: Any = field(default=None, compare=False, repr=False)


@dataclass(frozen=True)
class AuctionSettings:
    # stop when min_bids are in AND (all bidders answered OR bid_timeout passed)
    min_bids: int = 2
    bid_timeout_ms: int = 5_000
    max_auction_duration_ms: int = 30 * 60 * 1000
    reauction_cooldown_ms: int = 60_000


@dataclass(frozen=True)
class JobConfiguration:
    """
    Simulation actor setup derived from exactly one candidate.

    Equality and hashing only look at ``name`` and ``candidate_id``; both
    are functions of the candidate id, so two configurations compare equal
    iff they were built from the same candidate. Everything else is
    carried along for the engine and ignored by comparisons.
    """
    name: str
    candidate_id: str
    heuristic: Any = field(default=None, compare=False, repr=False)
    realtime: bool = field(default=False, compare=False)
    route_planner: str = field(default="cheapest-insertion", compare=False)
    auction: AuctionSettings = field(default_factory=AuctionSettings, compare=False)
    models: Tuple[str, ...] = field(default=(), compare=False)


@dataclass(frozen=True)
class RunSettings:
    """Per-run overrides a scenario converter applies on top of the scenario."""
    tick_length_ms: Optional[int] = None
    time_limit_ms: Optional[int] = None
    evo_stop_condition: bool = False


@dataclass(frozen=True)
class Job:
    scenario: Scenario
    configuration: JobConfiguration
    seed: int = 0
    repetition: int = 0
    settings: RunSettings = field(default_factory=RunSettings)

    @property
    def key(self) -> Tuple[str, str, int, int]:
        return (self.scenario.scenario_id, self.configuration.name,
                self.seed, self.repetition)


# ── Simulation output ────────────────────────────────────────

@dataclass(slots=True)
class SimulationStatistics:
    """End-of-run statistics. Times in ms, distance in km."""
    total_distance: float = 0.0
    total_parcels: int = 0
    accepted_parcels: int = 0
    total_pickups: int = 0
    total_deliveries: int = 0
    pickup_tardiness: int = 0
    delivery_tardiness: int = 0
    over_time: int = 0
    computation_time: int = 0
    simulation_time: int = 0
    sim_finish: bool = False
    total_vehicles: int = 0
    moved_vehicles: int = 0
    vehicles_at_depot: int = 0


@dataclass(frozen=True)
class AuctionStats:
    num_parcels: int = 0
    num_reauctions: int = 0
    num_unsuccessful: int = 0
    num_failed: int = 0


@dataclass(frozen=True)
class AuctionEvent:
    start_time: int
    end_time: int
    num_bids: int


@dataclass(frozen=True)
class BidTimeMeasurement:
    """One bid computation: who computed it, when, on how long a route."""
    bidder: str
    sim_time: int
    route_length: int
    duration_ns: int


@dataclass(slots=True)
class ResultPayload:
    statistics: SimulationStatistics
    auction_stats: Optional[AuctionStats] = None
    auction_events: Tuple[AuctionEvent, ...] = ()
    time_measurements: Tuple[BidTimeMeasurement, ...] = ()


@dataclass(slots=True)
class RawResult:
    """Outcome of one job, tagged with the job rather than the candidate."""
    job: Job
    status: JobStatus = JobStatus.OK
    payload: Optional[ResultPayload] = None
    error: str = ""
    attempts: int = 1
    elapsed_ms: float = 0.0

    @property
    def failed(self) -> bool:
        return self.status is JobStatus.FAILED or self.payload is None

    @property
    def scenario(self) -> Scenario:
        return self.job.scenario

    @property
    def configuration(self) -> JobConfiguration:
        return self.job.configuration


# ── Fitness ──────────────────────────────────────────────────

@dataclass(slots=True)
class FitnessRecord:
    candidate_id: str
    fitness: float
    result: RawResult
    penalized: bool = False
