"""Central repository for tunable cost, routing, and instance defaults.

All numerical values that influence the objective of the fleet LP, the route
precomputation, or the sample instance generator are collected here so they
can be updated from a single location without touching the formulation code.
The constants are exposed as frozen dataclasses to provide structure and
discoverability while keeping them easily serialisable.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Tuple


@dataclass(frozen=True)
class CostParameters:
    """Weight configuration for the fleet LP objective.

    ``value_of_time`` is billed per time step for every vehicle carrying
    passengers (on the road or plugged into a charger).  ``charge_unit_j`` is
    the energy represented by one discrete charge level and converts charger
    prices (currency per joule) into a per-link cost.
    """

    value_of_time: float = 1.0
    vehicle_cost_per_m: float = 0.0005
    congestion_toll: float = 0.0
    source_relax_cost: float = 1_000.0
    charge_unit_j: float = 3.6e6

    def __post_init__(self) -> None:
        for name in ("value_of_time", "vehicle_cost_per_m", "congestion_toll", "source_relax_cost"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative, got {getattr(self, name)}")
        if self.charge_unit_j <= 0:
            raise ValueError(f"charge_unit_j must be positive, got {self.charge_unit_j}")

    def road_cost(self, travel_time: int, distance_m: float, *, carries_passengers: bool, is_idle: bool) -> float:
        """Return the per-vehicle cost of one road link."""

        cost = self.vehicle_cost_per_m * distance_m
        if not is_idle:
            cost += self.congestion_toll
        if carries_passengers:
            cost += self.value_of_time * travel_time
        return cost


@dataclass(frozen=True)
class RouteSearchParams:
    """Knobs for the charge-constrained route precomputation."""

    warn_on_zero_capacity_routes: bool = True


@dataclass(frozen=True)
class GridInstanceDefaults:
    """Baseline grid-city scenario parameters used by the sample builder."""

    side: int
    horizon: int
    charge_levels: int
    num_chargers: int
    num_sinks: int
    sources_per_sink: int
    edge_length_m: float = 1_000.0
    edge_travel_time: int = 1
    edge_charge: int = 1
    road_capacity: float = 10.0
    charger_rate: int = 1
    charger_time: int = 1
    charger_capacity: float = 4.0
    vehicles_per_node: float = 2.0
    demand_range: Tuple[float, float] = (0.5, 2.0)
    # Currency per joule; one 3.6 MJ charge unit costs roughly 0.07-0.18.
    price_range: Tuple[float, float] = (2e-8, 5e-8)
    seed: int = 7


DEFAULT_COST_PARAMETERS = CostParameters()
DEFAULT_ROUTE_SEARCH_PARAMS = RouteSearchParams()
DEFAULT_GRID_INSTANCE = GridInstanceDefaults(
    side=3,
    horizon=8,
    charge_levels=4,
    num_chargers=2,
    num_sinks=2,
    sources_per_sink=2,
)
GRID_INSTANCE_PRESETS: Dict[str, GridInstanceDefaults] = {
    "small": DEFAULT_GRID_INSTANCE,
    "medium": GridInstanceDefaults(
        side=4,
        horizon=12,
        charge_levels=6,
        num_chargers=3,
        num_sinks=4,
        sources_per_sink=3,
        seed=11,
    ),
    "large": GridInstanceDefaults(
        side=5,
        horizon=16,
        charge_levels=8,
        num_chargers=4,
        num_sinks=6,
        sources_per_sink=4,
        seed=17,
    ),
}
