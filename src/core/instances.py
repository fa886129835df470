"""Deterministic sample instances for tests, examples and benchmarks."""

from __future__ import annotations

import random as _random
from typing import List, Optional

import numpy as np

from config import DEFAULT_GRID_INSTANCE, CostParameters, GridInstanceDefaults
from core.problem_spec import (
    DemandSource,
    Formulation,
    ProblemSpec,
    RoadEdge,
    RoadGraph,
    SinkBundle,
    chargers_at,
    uniform_initial_position,
)

INF = float("inf")


def build_two_node_instance(
    *,
    travel_time: int = 1,
    charge: int = 1,
    distance_m: float = 1_000.0,
    capacity: float = INF,
    charge_levels: int = 3,
    horizon: int = 2,
    demand: float = 1.0,
    vehicles: float = 1.0,
    costs: Optional[CostParameters] = None,
    formulation: Formulation = Formulation.STANDARD,
    source_relaxation: bool = False,
) -> ProblemSpec:
    """Nodes A=0 and B=1 joined by a single edge A->B.

    Demand travels from A (start time 0) to the sink at B; ``vehicles`` empty
    vehicles wait at A with a full battery.
    """

    graph = RoadGraph.from_edges(2, [RoadEdge(0, 1, travel_time, charge, distance_m, capacity)])
    empty = np.zeros((2, charge_levels))
    empty[0, charge_levels - 1] = vehicles
    return ProblemSpec(
        road_graph=graph,
        horizon=horizon,
        charge_levels=charge_levels,
        sinks=(SinkBundle(node=1, sources=(DemandSource(node=0, start_time=0, demand=demand),)),),
        empty_vehicle_initial_position=empty,
        costs=costs or CostParameters(),
        formulation=formulation,
        source_relaxation=source_relaxation,
    )


def grid_road_graph(defaults: GridInstanceDefaults) -> RoadGraph:
    """Square grid with 4-neighbour streets and an idle self-loop per node."""

    side = defaults.side
    edges: List[RoadEdge] = []
    for row in range(side):
        for col in range(side):
            node = row * side + col
            edges.append(RoadEdge(node, node, 1, 0, 0.0, INF))
            for d_row, d_col in ((-1, 0), (1, 0), (0, -1), (0, 1)):
                n_row, n_col = row + d_row, col + d_col
                if 0 <= n_row < side and 0 <= n_col < side:
                    edges.append(
                        RoadEdge(
                            node,
                            n_row * side + n_col,
                            defaults.edge_travel_time,
                            defaults.edge_charge,
                            defaults.edge_length_m,
                            defaults.road_capacity,
                        )
                    )
    return RoadGraph.from_edges(side * side, edges)


def build_grid_instance(
    defaults: GridInstanceDefaults = DEFAULT_GRID_INSTANCE,
    *,
    costs: Optional[CostParameters] = None,
    formulation: Formulation = Formulation.STANDARD,
    source_relaxation: bool = False,
    seed: Optional[int] = None,
) -> ProblemSpec:
    """Seeded grid city whose every source can reach its sink in time."""

    rng = _random.Random(defaults.seed if seed is None else seed)
    side = defaults.side
    num_nodes = side * side
    if defaults.num_sinks > num_nodes or defaults.num_chargers > num_nodes:
        raise ValueError(f"A {side}x{side} grid cannot host the requested sinks and chargers")

    graph = grid_road_graph(defaults)
    charger_nodes = sorted(rng.sample(range(num_nodes), defaults.num_chargers))
    chargers = chargers_at(
        charger_nodes,
        charge_rate=defaults.charger_rate,
        charge_time=defaults.charger_time,
        capacity=defaults.charger_capacity,
    )

    sinks = []
    for sink_node in rng.sample(range(num_nodes), defaults.num_sinks):
        candidates = _nodes_within_budget(sink_node, defaults)
        sources = []
        for _ in range(defaults.sources_per_sink):
            node, hops = rng.choice(candidates)
            latest_start = defaults.horizon - 1 - hops * defaults.edge_travel_time
            sources.append(
                DemandSource(
                    node=node,
                    start_time=rng.randint(0, latest_start),
                    demand=round(rng.uniform(*defaults.demand_range), 3),
                )
            )
        sinks.append(SinkBundle(node=sink_node, sources=tuple(sources)))

    price = np.array(
        [[rng.uniform(*defaults.price_range) for _ in range(defaults.horizon)] for _ in chargers]
    ).reshape(len(chargers), defaults.horizon)

    return ProblemSpec(
        road_graph=graph,
        horizon=defaults.horizon,
        charge_levels=defaults.charge_levels,
        sinks=tuple(sinks),
        empty_vehicle_initial_position=uniform_initial_position(
            num_nodes, defaults.charge_levels, defaults.vehicles_per_node
        ),
        chargers=chargers,
        electricity_price=price,
        costs=costs or CostParameters(),
        formulation=formulation,
        source_relaxation=source_relaxation,
    )


def _nodes_within_budget(sink_node: int, defaults: GridInstanceDefaults):
    side = defaults.side
    sink_row, sink_col = divmod(sink_node, side)
    candidates = []
    for node in range(side * side):
        row, col = divmod(node, side)
        hops = abs(row - sink_row) + abs(col - sink_col)
        if hops * defaults.edge_charge > defaults.charge_levels - 1:
            continue
        if hops * defaults.edge_travel_time > defaults.horizon - 1:
            continue
        candidates.append((node, hops))
    return candidates
