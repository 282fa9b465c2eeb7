"""
evobid — Objective functions.

An objective function maps end-of-run statistics to a cost (lower is
better) and says whether the run counts at all. It also names the
output columns it contributes to the diagnostics CSV and fills them.

Gendreau06Objective — the dynamic PDPTW objective of Gendreau et al.
(2006) with the travel speed as parameter:

    cost = travel_time + tardiness + over_time        (all in minutes)

    travel_time = total_distance [km] / speed [km/h] * 60
    tardiness   = (pickup_tardiness + delivery_tardiness) [ms] / 60000
    over_time   = over_time [ms] / 60000
"""
from __future__ import annotations

from typing import Any, Dict, List, Protocol, runtime_checkable

from evobid.interfaces.types import SimulationStatistics

_MS_PER_MINUTE = 60_000.0


@runtime_checkable
class ObjectiveFunction(Protocol):

    def compute_cost(self, stats: SimulationStatistics) -> float: ...

    def is_valid_result(self, stats: SimulationStatistics) -> bool: ...

    def output_fields(self) -> List[str]: ...

    def summarize(self, stats: SimulationStatistics) -> Dict[str, Any]: ...


class Gendreau06Objective:
    """Stateless. Thread-safe."""

    __slots__ = ("_speed",)

    OUTPUT_FIELDS = [
        "cost", "travel_time", "tardiness", "over_time",
        "is_valid", "computation_time",
    ]

    def __init__(self, vehicle_speed_kmh: float = 50.0) -> None:
        if vehicle_speed_kmh <= 0:
            raise ValueError(f"vehicle speed must be > 0, got {vehicle_speed_kmh}")
        self._speed = vehicle_speed_kmh

    @property
    def vehicle_speed_kmh(self) -> float:
        return self._speed

    def travel_time(self, stats: SimulationStatistics) -> float:
        return stats.total_distance / self._speed * 60.0

    @staticmethod
    def tardiness(stats: SimulationStatistics) -> float:
        return (stats.pickup_tardiness + stats.delivery_tardiness) / _MS_PER_MINUTE

    @staticmethod
    def over_time(stats: SimulationStatistics) -> float:
        return stats.over_time / _MS_PER_MINUTE

    def compute_cost(self, stats: SimulationStatistics) -> float:
        return self.travel_time(stats) + self.tardiness(stats) + self.over_time(stats)

    def is_valid_result(self, stats: SimulationStatistics) -> bool:
        """Every parcel served, simulation finished, whole fleet back home."""
        return (
            stats.total_parcels == stats.accepted_parcels
            and stats.total_parcels == stats.total_pickups
            and stats.total_parcels == stats.total_deliveries
            and stats.sim_finish
            and stats.total_vehicles == stats.vehicles_at_depot
        )

    def output_fields(self) -> List[str]:
        return list(self.OUTPUT_FIELDS)

    def summarize(self, stats: SimulationStatistics) -> Dict[str, Any]:
        return {
            "cost": self.compute_cost(stats),
            "travel_time": self.travel_time(stats),
            "tardiness": self.tardiness(stats),
            "over_time": self.over_time(stats),
            "is_valid": self.is_valid_result(stats),
            "computation_time": stats.computation_time,
        }
