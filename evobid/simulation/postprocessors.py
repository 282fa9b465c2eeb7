"""
evobid — Result post-processors.

A post-processor turns a finished SimulationRun into the ResultPayload
the rest of the pipeline consumes, and decides what happens when a
simulation raises. Like converters they are stateless strategies picked
by name from the configuration.
"""
from __future__ import annotations

import logging
from typing import Dict, Type

from evobid.interfaces.enums import FailureStrategy
from evobid.interfaces.errors import ConfigurationError
from evobid.interfaces.types import AuctionStats, Job, ResultPayload
from evobid.simulation.engine import SimulationRun

logger = logging.getLogger("evobid.postprocess")


class PostProcessor:
    name = "base"

    def collect(self, run: SimulationRun, job: Job) -> ResultPayload:
        raise NotImplementedError

    def handle_failure(self, exc: BaseException, job: Job) -> FailureStrategy:
        logger.warning("job failed: scenario=%s config=%s seed=%d: %s",
                       job.scenario.scenario_id, job.configuration.name,
                       job.seed, exc)
        return FailureStrategy.ABORT_RUN


class StatsPostProcessor(PostProcessor):
    """Statistics only; auction side-channel data is dropped."""
    name = "stats"

    def collect(self, run: SimulationRun, job: Job) -> ResultPayload:
        return ResultPayload(statistics=run.statistics)


class AuctionPostProcessor(PostProcessor):
    """Statistics plus auction counters and the per-run auction/bid logs."""
    name = "auction"

    def collect(self, run: SimulationRun, job: Job) -> ResultPayload:
        stats = None
        model = run.auction_model
        if model is not None:
            # every parcel is auctioned once; anything beyond is a re-auction
            stats = AuctionStats(
                num_parcels=model.num_parcels,
                num_reauctions=model.num_auctions - model.num_parcels,
                num_unsuccessful=model.num_unsuccessful_auctions,
                num_failed=model.num_failed_auctions,
            )
        return ResultPayload(
            statistics=run.statistics,
            auction_stats=stats,
            auction_events=tuple(run.auction_events),
            time_measurements=tuple(run.time_measurements),
        )


class RetryingAuctionPostProcessor(AuctionPostProcessor):
    """Asks the executor to re-run failed jobs (bounded by max_retries)."""
    name = "auction-retry"

    def handle_failure(self, exc: BaseException, job: Job) -> FailureStrategy:
        logger.warning("job failed, retrying: scenario=%s config=%s: %s",
                       job.scenario.scenario_id, job.configuration.name, exc)
        return FailureStrategy.RETRY


POST_PROCESSORS: Dict[str, Type[PostProcessor]] = {
    StatsPostProcessor.name: StatsPostProcessor,
    AuctionPostProcessor.name: AuctionPostProcessor,
    RetryingAuctionPostProcessor.name: RetryingAuctionPostProcessor,
}


def post_processor_for(name: str) -> PostProcessor:
    try:
        return POST_PROCESSORS[name]()
    except KeyError:
        raise ConfigurationError(
            f"unknown post-processor {name!r}; "
            f"choose from {sorted(POST_PROCESSORS)}") from None
