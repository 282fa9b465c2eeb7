"""
evobid — Job Builder.

Turns candidates into simulation configurations and configurations into
jobs. The simulator reports results per configuration, not per
candidate, so the builder also records which candidate each
configuration came from (CorrelationTable). The table is keyed by the
configuration name, which embeds the candidate id; object identity of
the configuration is never used.

ACTOR SETUP (per configuration):

  vehicles   route planner  cheapest insertion, re-planned on new parcels
             bidder         candidate heuristic, 60 s re-auction cooldown
  auction    stop when >= 2 bids AND (all bidders answered OR 5 s passed)
             hard limit 30 min per auction
  solver     simulated time: plain solver model
             real time:      solver pool of 3 threads + clock logger
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, Iterator, List, Sequence, Tuple

from evobid.interfaces.errors import CorrelationError
from evobid.interfaces.types import (
    AuctionSettings, Candidate, Job, JobConfiguration, Scenario,
)
from evobid.simulation.converters import PassthroughConverter, ScenarioConverter

logger = logging.getLogger("evobid.builder")

CONFIG_NAME_PREFIX = "ReAuction-RP-EVO-BID-EVO-"
RT_SOLVER_THREADS = 3

SIM_TIME_MODELS: Tuple[str, ...] = ("auction-comm", "solver")
REALTIME_MODELS: Tuple[str, ...] = (
    "auction-comm", f"rt-solver(threads={RT_SOLVER_THREADS},grouped)",
    "realtime-clock-logger",
)


@dataclass(frozen=True)
class BuilderSettings:
    prefix: str = CONFIG_NAME_PREFIX
    realtime: bool = False
    route_planner: str = "cheapest-insertion"
    auction: AuctionSettings = field(default_factory=AuctionSettings)


class CorrelationTable:
    """config name -> candidate, filled while a batch is being built."""

    __slots__ = ("_by_name", "_configs")

    def __init__(self) -> None:
        self._by_name: Dict[str, Candidate] = {}
        self._configs: Dict[str, JobConfiguration] = {}

    def register(self, configuration: JobConfiguration, candidate: Candidate) -> None:
        existing = self._by_name.get(configuration.name)
        if existing is not None and existing.id != candidate.id:
            raise CorrelationError(
                f"configuration {configuration.name!r} already belongs to "
                f"candidate {existing.id!r}, cannot map it to {candidate.id!r}")
        self._by_name[configuration.name] = candidate
        self._configs[configuration.name] = configuration

    def resolve(self, configuration: JobConfiguration) -> Candidate:
        try:
            candidate = self._by_name[configuration.name]
        except KeyError:
            raise CorrelationError(
                f"no candidate registered for configuration "
                f"{configuration.name!r}") from None
        if candidate.id != configuration.candidate_id:
            raise CorrelationError(
                f"configuration {configuration.name!r} names candidate "
                f"{configuration.candidate_id!r} but maps to {candidate.id!r}")
        return candidate

    @property
    def configurations(self) -> List[JobConfiguration]:
        return list(self._configs.values())

    @property
    def candidates(self) -> List[Candidate]:
        return list(self._by_name.values())

    def __contains__(self, configuration: object) -> bool:
        return (isinstance(configuration, JobConfiguration)
                and configuration.name in self._by_name)

    def __len__(self) -> int:
        return len(self._by_name)

    def __iter__(self) -> Iterator[Tuple[JobConfiguration, Candidate]]:
        for name, config in self._configs.items():
            yield config, self._by_name[name]


class JobBuilder:

    __slots__ = ("_settings",)

    def __init__(self, settings: BuilderSettings | None = None) -> None:
        self._settings = settings or BuilderSettings()

    @property
    def settings(self) -> BuilderSettings:
        return self._settings

    def config_name(self, candidate_id: str) -> str:
        return f"{self._settings.prefix}{candidate_id}"

    def build(self, candidate: Candidate) -> JobConfiguration:
        s = self._settings
        return JobConfiguration(
            name=self.config_name(candidate.id),
            candidate_id=candidate.id,
            heuristic=candidate.program,
            realtime=s.realtime,
            route_planner=s.route_planner,
            auction=s.auction,
            models=REALTIME_MODELS if s.realtime else SIM_TIME_MODELS,
        )

    def build_batch(self, candidates: Iterable[Candidate]) -> CorrelationTable:
        """One configuration per distinct candidate id."""
        table = CorrelationTable()
        duplicates = 0
        for candidate in candidates:
            config = self.build(candidate)
            if config in table:
                duplicates += 1
            table.register(config, candidate)
        if duplicates:
            logger.debug("build_batch: %d duplicate candidates collapsed", duplicates)
        return table

    @staticmethod
    def jobs(
        table: CorrelationTable,
        scenarios: Sequence[Scenario],
        seeds: Sequence[int] = (0,),
        converter: ScenarioConverter | None = None,
    ) -> List[Job]:
        """scenario × configuration × repetition; seeds[i] is repetition i."""
        converter = converter or PassthroughConverter()
        jobs: List[Job] = []
        for scenario in scenarios:
            settings = converter.convert(scenario)
            for config in table.configurations:
                for repetition, seed in enumerate(seeds):
                    jobs.append(Job(
                        scenario=scenario,
                        configuration=config,
                        seed=seed,
                        repetition=repetition,
                        settings=settings,
                    ))
        return jobs
