"""
evobid — Simulation engine contract.

The discrete-event simulator lives outside this package. The evaluator
only needs something that takes a Job and hands back a SimulationRun;
how vehicles move, how auctions are held and how routes are planned is
the engine's business. Raising from simulate() marks that one job as
failed; it never aborts the batch.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, runtime_checkable

from evobid.interfaces.types import (
    AuctionEvent, BidTimeMeasurement, Job, SimulationStatistics,
)


@dataclass(slots=True)
class AuctionModelSnapshot:
    """Counters read from the auction communication model at the end of a run."""
    num_parcels: int = 0
    num_auctions: int = 0
    num_unsuccessful_auctions: int = 0
    num_failed_auctions: int = 0


@dataclass(slots=True)
class SimulationRun:
    """Everything a finished simulation exposes to post-processing."""
    statistics: SimulationStatistics
    auction_model: Optional[AuctionModelSnapshot] = None
    auction_events: List[AuctionEvent] = field(default_factory=list)
    time_measurements: List[BidTimeMeasurement] = field(default_factory=list)


@runtime_checkable
class SimulationEngine(Protocol):

    def simulate(self, job: Job) -> SimulationRun:
        """Run job.configuration on job.scenario with job.seed; block until done."""
        ...
