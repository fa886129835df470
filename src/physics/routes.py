"""Charge-constrained shortest routes between every ordered node pair.

The route table is precomputed once per problem and then read as an O(1)
lookup by the real-time formulation, which moves passengers along these
routes instead of through explicit road-link variables.

Each origin runs a label-correcting search.  A label is the tuple
(arrival time, charge consumed, distance, path); labels are popped from a
binary heap in (time, charge, distance) order and a label is pruned when
another label at the same node is no slower, consumes no more charge and,
when both tie, is no longer.
A vehicle leaves with a full battery, so the cumulative charge along a route
may never exceed ``charge_levels - 1``.

Unreachable pairs are a distinct state: the numeric tables hold ``-1`` and
every accessor raises :class:`UnreachableRouteError`.
"""

from __future__ import annotations

import heapq
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from config import DEFAULT_ROUTE_SEARCH_PARAMS, RouteSearchParams
from core.errors import UnreachableRouteError
from core.problem_spec import RoadGraph

logger = logging.getLogger(__name__)

UNREACHABLE = -1


@dataclass(frozen=True, order=True)
class _Label:
    time: int
    charge: int
    distance: float
    node: int = field(compare=False)
    path: Tuple[int, ...] = field(compare=False)


@dataclass(frozen=True, eq=False)
class RouteTable:
    """Read-only minimum-time route data for every ordered node pair."""

    route_time: np.ndarray
    route_charge: np.ndarray
    route_distance: np.ndarray
    routes: Tuple[Tuple[Optional[Tuple[int, ...]], ...], ...]

    @property
    def num_nodes(self) -> int:
        return len(self.routes)

    @property
    def reachable(self) -> np.ndarray:
        return self.route_time >= 0

    def is_reachable(self, origin: int, destination: int) -> bool:
        return self.routes[origin][destination] is not None

    def require(self, origin: int, destination: int) -> Tuple[int, ...]:
        """Return the node sequence of a route, failing for unreachable pairs."""

        path = self.routes[origin][destination]
        if path is None:
            raise UnreachableRouteError(origin, destination, "no path within the battery budget")
        return path

    def time(self, origin: int, destination: int) -> int:
        self.require(origin, destination)
        return int(self.route_time[origin, destination])

    def charge(self, origin: int, destination: int) -> int:
        self.require(origin, destination)
        return int(self.route_charge[origin, destination])

    def distance(self, origin: int, destination: int) -> float:
        self.require(origin, destination)
        return float(self.route_distance[origin, destination])

    def hops(self, origin: int, destination: int, graph: RoadGraph) -> List[Tuple[int, int, int]]:
        """Return ``(departure offset, i, j)`` for every edge along the route."""

        path = self.require(origin, destination)
        offset = 0
        hops = []
        for i, j in zip(path[:-1], path[1:]):
            hops.append((offset, i, j))
            offset += int(graph.travel_time[i, j])
        return hops


def build_routes(
    graph: RoadGraph,
    charge_levels: int,
    params: Optional[RouteSearchParams] = None,
) -> RouteTable:
    """Compute minimum-time, charge-feasible routes between all node pairs."""

    params = params or DEFAULT_ROUTE_SEARCH_PARAMS
    n = graph.num_nodes
    budget = charge_levels - 1

    route_time = np.full((n, n), UNREACHABLE, dtype=np.int64)
    route_charge = np.full((n, n), UNREACHABLE, dtype=np.int64)
    route_distance = np.full((n, n), float(UNREACHABLE))
    routes: List[List[Optional[Tuple[int, ...]]]] = [[None] * n for _ in range(n)]

    for origin in range(n):
        for destination, label in _search_from(graph, origin, budget).items():
            route_time[origin, destination] = label.time
            route_charge[origin, destination] = label.charge
            route_distance[origin, destination] = label.distance
            routes[origin][destination] = label.path

    for array in (route_time, route_charge, route_distance):
        array.setflags(write=False)
    table = RouteTable(
        route_time=route_time,
        route_charge=route_charge,
        route_distance=route_distance,
        routes=tuple(tuple(row) for row in routes),
    )

    unreachable = int(n * n - np.count_nonzero(table.reachable))
    logger.debug(f"[ROUTES] Built {n}x{n} route table, budget={budget}, unreachable pairs={unreachable}")
    if params.warn_on_zero_capacity_routes:
        _flag_zero_capacity_routes(graph, table)
    return table


def _search_from(
    graph: RoadGraph,
    origin: int,
    budget: int,
) -> Dict[int, _Label]:
    kept: Dict[int, List[Tuple[int, int, float]]] = {origin: [(0, 0, 0.0)]}
    best: Dict[int, _Label] = {}
    heap = [_Label(0, 0, 0.0, origin, (origin,))]

    while heap:
        label = heapq.heappop(heap)
        if (label.time, label.charge, label.distance) not in kept.get(label.node, ()):
            continue  # pruned after it was pushed
        if label.node not in best:
            best[label.node] = label

        for successor in graph.successors[label.node]:
            if successor == label.node or successor in label.path:
                continue
            charge = label.charge + int(graph.charge_to_traverse[label.node, successor])
            if charge > budget:
                continue
            candidate = _Label(
                time=label.time + int(graph.travel_time[label.node, successor]),
                charge=charge,
                distance=label.distance + float(graph.distance_m[label.node, successor]),
                node=successor,
                path=label.path + (successor,),
            )
            if _insert_pareto(kept.setdefault(successor, []), candidate):
                heapq.heappush(heap, candidate)

    return best


def _dominates(first: Tuple[int, int, float], second: Tuple[int, int, float]) -> bool:
    if first[0] > second[0] or first[1] > second[1]:
        return False
    return first[:2] != second[:2] or first[2] <= second[2]


def _insert_pareto(front: List[Tuple[int, int, float]], label: _Label) -> bool:
    entry = (label.time, label.charge, label.distance)
    if any(_dominates(other, entry) for other in front):
        return False
    front[:] = [other for other in front if not _dominates(entry, other)]
    front.append(entry)
    return True


def _flag_zero_capacity_routes(graph: RoadGraph, table: RouteTable) -> None:
    flagged = []
    for origin in range(table.num_nodes):
        for destination in range(table.num_nodes):
            path = table.routes[origin][destination]
            if path is None or len(path) < 2:
                continue
            if any(graph.road_capacity[i, j] == 0 for i, j in zip(path[:-1], path[1:])):
                flagged.append((origin, destination))
    if flagged:
        logger.warning(
            f"[ROUTES] {len(flagged)} reachable routes traverse a zero-capacity edge "
            f"(first: {flagged[0]}); check the road capacities"
        )
