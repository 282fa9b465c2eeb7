"""
evobid — Scenario converters.

A converter decides how a stored scenario is run: tick length, a hard
time limit and whether the evolution stop condition applies. Converters
are stateless; the configuration names one and converter_for() returns
an instance.
"""
from __future__ import annotations

from typing import Dict, Type

from evobid.interfaces.errors import ConfigurationError
from evobid.interfaces.types import RunSettings, Scenario

TRAINING_TICK_LENGTH_MS = 250
MAX_SIM_TIME_MS = 8 * 60 * 60 * 1000


class ScenarioConverter:
    name = "base"

    def convert(self, scenario: Scenario) -> RunSettings:
        raise NotImplementedError


class PassthroughConverter(ScenarioConverter):
    """Run the scenario exactly as stored."""
    name = "passthrough"

    def convert(self, scenario: Scenario) -> RunSettings:
        return RunSettings()


class EvoTrainingConverter(ScenarioConverter):
    """
    Training runs: coarse 250 ms ticks, stop after 8 simulated hours at
    the latest, and stop early once the evolution stop condition fires.
    """
    name = "evo-training"

    def __init__(self, tick_length_ms: int = TRAINING_TICK_LENGTH_MS,
                 time_limit_ms: int = MAX_SIM_TIME_MS) -> None:
        self.tick_length_ms = tick_length_ms
        self.time_limit_ms = time_limit_ms

    def convert(self, scenario: Scenario) -> RunSettings:
        return RunSettings(
            tick_length_ms=self.tick_length_ms,
            time_limit_ms=self.time_limit_ms,
            evo_stop_condition=True,
        )


CONVERTERS: Dict[str, Type[ScenarioConverter]] = {
    PassthroughConverter.name: PassthroughConverter,
    EvoTrainingConverter.name: EvoTrainingConverter,
}


def converter_for(name: str, **kwargs) -> ScenarioConverter:
    try:
        cls = CONVERTERS[name]
    except KeyError:
        raise ConfigurationError(
            f"unknown scenario converter {name!r}; "
            f"choose from {sorted(CONVERTERS)}") from None
    return cls(**kwargs)
