"""Assembly of the fleet LP from a problem spec and an index scheme.

Every constraint family accumulates its own ``(row, col, value)`` triplets in
its own row space and is converted to a ``scipy.sparse`` CSR matrix on its
own; :meth:`ConstraintAssembler.assemble` stacks the families in the order
given by the index scheme.  Rows read ``outflow - inflow = supply``.

A link that would arrive after the last time step or outside the charge
range keeps its column (and its departure coefficients) but is bounded at
zero.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Callable, Dict, Iterable, List, Mapping, Optional, Tuple

import numpy as np
from scipy import sparse

from core.problem_spec import ProblemSpec
from formulation.index_scheme import IndexScheme, RowFamily, build_index_scheme
from physics.routes import RouteTable, build_routes

logger = logging.getLogger(__name__)

Family = Tuple[sparse.csr_matrix, np.ndarray]
Encoder = Callable[..., int]


@dataclass(frozen=True, eq=False)
class CostVector:
    """Objective coefficients split by what they pay for."""

    passenger: np.ndarray
    rebalancing: np.ndarray
    electricity: np.ndarray
    relaxation: np.ndarray
    total: np.ndarray = field(init=False)

    def __post_init__(self) -> None:
        total = self.passenger + self.rebalancing + self.electricity + self.relaxation
        for array in (self.passenger, self.rebalancing, self.electricity, self.relaxation, total):
            array.setflags(write=False)
        object.__setattr__(self, "total", total)

    def components(self) -> Dict[str, np.ndarray]:
        return {
            "passenger": self.passenger,
            "rebalancing": self.rebalancing,
            "electricity": self.electricity,
            "relaxation": self.relaxation,
        }


@dataclass(frozen=True, eq=False)
class LinearProgram:
    """``min c.x  s.t.  A_eq x = b_eq,  A_ub x <= b_ub,  lb <= x <= ub``."""

    costs: CostVector
    A_eq: sparse.csr_matrix
    b_eq: np.ndarray
    A_ub: sparse.csr_matrix
    b_ub: np.ndarray
    lb: np.ndarray
    ub: np.ndarray
    eq_blocks: Mapping[RowFamily, slice]
    ub_blocks: Mapping[RowFamily, slice]

    @property
    def c(self) -> np.ndarray:
        return self.costs.total

    @property
    def num_variables(self) -> int:
        return int(self.c.shape[0])

    @property
    def num_eq(self) -> int:
        return int(self.A_eq.shape[0])

    @property
    def num_ub(self) -> int:
        return int(self.A_ub.shape[0])

    def rows(self, family: RowFamily) -> Family:
        """Return the matrix block and right-hand side of one row family."""

        if family in self.eq_blocks:
            block = self.eq_blocks[family]
            return self.A_eq[block], self.b_eq[block]
        block = self.ub_blocks[family]
        return self.A_ub[block], self.b_ub[block]


class _Triplets:
    def __init__(self, num_rows: int, num_cols: int) -> None:
        self.shape = (num_rows, num_cols)
        self.rows: List[int] = []
        self.cols: List[int] = []
        self.values: List[float] = []

    def add(self, row: int, col: int, value: float) -> None:
        self.rows.append(row)
        self.cols.append(col)
        self.values.append(value)

    def to_csr(self) -> sparse.csr_matrix:
        # duplicate (row, col) entries are summed
        return sparse.csr_matrix((self.values, (self.rows, self.cols)), shape=self.shape, dtype=float)


class ConstraintAssembler:
    """Build cost vector, constraint families and bounds for one spec."""

    def __init__(
        self,
        spec: ProblemSpec,
        scheme: Optional[IndexScheme] = None,
        routes: Optional[RouteTable] = None,
    ) -> None:
        self.spec = spec
        self.scheme = scheme or build_index_scheme(spec)
        self.routes = routes or build_routes(spec.road_graph, spec.charge_levels)
        self.dims = self.scheme.dims
        if spec.uses_real_time:
            self._require_passenger_routes()

    def _require_passenger_routes(self) -> None:
        for k, _, source in self.spec.iter_sources():
            self.routes.require(source.node, self.spec.sinks[k].node)

    # ------------------------------------------------------------------
    # Link geometry
    # ------------------------------------------------------------------

    def road_arrival(self, t: int, c: int, i: int, j: int) -> Optional[Tuple[int, int]]:
        """Return ``(time, charge)`` at the head of a road link, or None."""

        graph = self.spec.road_graph
        arrival = t + int(graph.travel_time[i, j])
        charge = c - int(graph.charge_to_traverse[i, j])
        if arrival > self.dims.horizon - 1 or charge < 0:
            return None
        return arrival, charge

    def charger_arrival(self, t: int, c: int, l: int, *, discharge: bool) -> Optional[Tuple[int, int]]:
        charger = self.spec.chargers[l]
        arrival = t + charger.charge_time
        charge = c - charger.charge_rate if discharge else c + charger.charge_rate
        if arrival > self.dims.horizon - 1 or not 0 <= charge < self.dims.charge_levels:
            return None
        return arrival, charge

    def source_route(self, k: int, s: int) -> Tuple[int, int, float]:
        """Route time, charge and distance from source ``(k, s)`` to its sink."""

        origin = self.spec.source(k, s).node
        destination = self.spec.sinks[k].node
        return (
            self.routes.time(origin, destination),
            self.routes.charge(origin, destination),
            self.routes.distance(origin, destination),
        )

    def _source_affordable(self, c: int, k: int, s: int) -> bool:
        route_time, route_charge, _ = self.source_route(k, s)
        return c >= route_charge and self.spec.source(k, s).start_time + route_time <= self.dims.horizon - 1

    def _commodity_links(self) -> List[Tuple[int, Encoder, Encoder, Encoder]]:
        """(commodity, road encoder, charge encoder, discharge encoder) per commodity."""

        scheme = self.scheme
        links = []
        for k in range(self.dims.num_passenger_flows):
            links.append(
                (
                    k,
                    lambda t, c, i, j, k=k: scheme.road_link_pax(t, c, k, i, j),
                    lambda t, c, l, k=k: scheme.charge_link_pax(t, c, k, l),
                    lambda t, c, l, k=k: scheme.discharge_link_pax(t, c, k, l),
                )
            )
        links.append(
            (self.dims.rebalancing_commodity, scheme.road_link_reb, scheme.charge_link_reb, scheme.discharge_link_reb)
        )
        return links

    def _add_link_flows(
        self,
        triplets: _Triplets,
        road: Encoder,
        charge: Encoder,
        discharge: Encoder,
        row_of: Encoder,
    ) -> None:
        """Add +1 at the departure row and -1 at the arrival row of every link."""

        d = self.dims
        for t in range(d.horizon):
            for c in range(d.charge_levels):
                for i, j in d.edges:
                    col = road(t, c, i, j)
                    triplets.add(row_of(t, c, i), col, 1.0)
                    arrival = self.road_arrival(t, c, i, j)
                    if arrival is not None:
                        triplets.add(row_of(arrival[0], arrival[1], j), col, -1.0)
                for l, charger in enumerate(self.spec.chargers):
                    for encoder, is_discharge in ((charge, False), (discharge, True)):
                        col = encoder(t, c, l)
                        triplets.add(row_of(t, c, charger.node), col, 1.0)
                        arrival = self.charger_arrival(t, c, l, discharge=is_discharge)
                        if arrival is not None:
                            triplets.add(row_of(arrival[0], arrival[1], charger.node), col, -1.0)

    # ------------------------------------------------------------------
    # Objective
    # ------------------------------------------------------------------

    def cost_vector(self) -> CostVector:
        spec = self.spec
        d = self.dims
        scheme = self.scheme
        costs = spec.costs
        graph = spec.road_graph
        size = scheme.total_size
        passenger = np.zeros(size)
        rebalancing = np.zeros(size)
        electricity = np.zeros(size)
        relaxation = np.zeros(size)

        for k, road, charge, discharge in self._commodity_links():
            carries = k != d.rebalancing_commodity
            target = passenger if carries else rebalancing
            for t in range(d.horizon):
                for c in range(d.charge_levels):
                    for i, j in d.edges:
                        target[road(t, c, i, j)] = costs.road_cost(
                            int(graph.travel_time[i, j]),
                            float(graph.distance_m[i, j]),
                            carries_passengers=carries,
                            is_idle=i == j,
                        )
                    for l, charger in enumerate(spec.chargers):
                        energy_price = spec.electricity_price[l, t] * charger.charge_rate * costs.charge_unit_j
                        electricity[charge(t, c, l)] = energy_price
                        electricity[discharge(t, c, l)] = -energy_price
                        if carries:
                            passenger[charge(t, c, l)] = costs.value_of_time * charger.charge_time
                            passenger[discharge(t, c, l)] = costs.value_of_time * charger.charge_time

        if spec.uses_real_time:
            for k, s, _ in spec.iter_sources():
                route_time, _, route_distance = self.source_route(k, s)
                trip = costs.value_of_time * route_time + costs.vehicle_cost_per_m * route_distance
                for c in range(d.charge_levels):
                    passenger[scheme.pax_source(c, k, s)] = trip

        if d.relaxation:
            for k, s, _ in spec.iter_sources():
                relaxation[scheme.source_relax(k, s)] = costs.source_relax_cost

        return CostVector(passenger=passenger, rebalancing=rebalancing, electricity=electricity, relaxation=relaxation)

    # ------------------------------------------------------------------
    # Equality families
    # ------------------------------------------------------------------

    def pax_conservation(self) -> Family:
        spec = self.spec
        d = self.dims
        scheme = self.scheme
        triplets = _Triplets(scheme.row_family_size(RowFamily.PAX_CONSERVATION), scheme.total_size)
        rhs = np.zeros(triplets.shape[0])

        for k, road, charge, discharge in self._commodity_links():
            if k == d.rebalancing_commodity:
                continue
            row_of = lambda t, c, i, k=k: scheme.pax_conservation(t, c, k, i)
            self._add_link_flows(triplets, road, charge, discharge, row_of)
            sink_node = spec.sinks[k].node
            for t in range(d.horizon):
                for c in range(d.charge_levels):
                    triplets.add(row_of(t, c, sink_node), scheme.pax_sink(t, c, k), 1.0)
            for s, source in enumerate(spec.sinks[k].sources):
                for c in range(d.charge_levels):
                    triplets.add(row_of(source.start_time, c, source.node), scheme.pax_source(c, k, s), -1.0)
            for i in range(d.num_nodes):
                for c in range(d.charge_levels):
                    rhs[row_of(0, c, i)] = spec.full_vehicle_initial_position[k, i, c]

        return triplets.to_csr(), rhs

    def reb_conservation(self) -> Family:
        spec = self.spec
        d = self.dims
        scheme = self.scheme
        triplets = _Triplets(scheme.row_family_size(RowFamily.REB_CONSERVATION), scheme.total_size)
        rhs = np.zeros(triplets.shape[0])
        row_of = scheme.reb_conservation

        self._add_link_flows(
            triplets,
            scheme.road_link_reb,
            scheme.charge_link_reb,
            scheme.discharge_link_reb,
            row_of,
        )
        for k, s, source in spec.iter_sources():
            for c in range(d.charge_levels):
                triplets.add(row_of(source.start_time, c, source.node), scheme.pax_source(c, k, s), 1.0)
        for k, sink in enumerate(spec.sinks):
            for t in range(d.horizon):
                for c in range(d.charge_levels):
                    triplets.add(row_of(t, c, sink.node), scheme.pax_sink(t, c, k), -1.0)
        for c in range(d.charge_levels):
            for i in range(d.num_nodes):
                triplets.add(row_of(d.horizon - 1, c, i), scheme.end_reb_location(c, i), 1.0)
                rhs[row_of(0, c, i)] = spec.empty_vehicle_initial_position[i, c]

        return triplets.to_csr(), rhs

    def source_conservation(self) -> Family:
        spec = self.spec
        scheme = self.scheme
        triplets = _Triplets(scheme.row_family_size(RowFamily.SOURCE_CONSERVATION), scheme.total_size)
        rhs = np.zeros(triplets.shape[0])
        for k, s, source in spec.iter_sources():
            row = scheme.source_conservation(k, s)
            for c in range(self.dims.charge_levels):
                triplets.add(row, scheme.pax_source(c, k, s), 1.0)
            if self.dims.relaxation:
                triplets.add(row, scheme.source_relax(k, s), 1.0)
            rhs[row] = source.demand
        return triplets.to_csr(), rhs

    def sink_conservation(self) -> Family:
        spec = self.spec
        d = self.dims
        scheme = self.scheme
        triplets = _Triplets(scheme.row_family_size(RowFamily.SINK_CONSERVATION), scheme.total_size)
        rhs = np.zeros(triplets.shape[0])
        for k, sink in enumerate(spec.sinks):
            row = scheme.sink_conservation(k)
            for t in range(d.horizon):
                for c in range(d.charge_levels):
                    triplets.add(row, scheme.pax_sink(t, c, k), 1.0)
            if d.relaxation:
                for s in range(len(sink.sources)):
                    triplets.add(row, scheme.source_relax(k, s), 1.0)
            rhs[row] = sink.total_demand + float(spec.full_vehicle_initial_position[k].sum())
        return triplets.to_csr(), rhs

    def customer_charge_conservation(self) -> Family:
        spec = self.spec
        d = self.dims
        scheme = self.scheme
        triplets = _Triplets(scheme.row_family_size(RowFamily.CUSTOMER_CHARGE_CONSERVATION), scheme.total_size)
        for k in range(d.num_sinks):
            for t in range(d.horizon):
                for c in range(d.charge_levels):
                    triplets.add(scheme.customer_charge_conservation(t, c, k), scheme.pax_sink(t, c, k), 1.0)
        for k, s, source in spec.iter_sources():
            route_time, route_charge, _ = self.source_route(k, s)
            arrival = source.start_time + route_time
            if arrival > d.horizon - 1:
                continue
            for c in range(d.charge_levels - route_charge):
                row = scheme.customer_charge_conservation(arrival, c, k)
                triplets.add(row, scheme.pax_source(c + route_charge, k, s), -1.0)
        return triplets.to_csr(), np.zeros(triplets.shape[0])

    # ------------------------------------------------------------------
    # Inequality families
    # ------------------------------------------------------------------

    def road_congestion(self) -> Family:
        spec = self.spec
        d = self.dims
        scheme = self.scheme
        graph = spec.road_graph
        triplets = _Triplets(scheme.row_family_size(RowFamily.ROAD_CONGESTION), scheme.total_size)
        rhs = np.zeros(triplets.shape[0])

        for _, road, _, _ in self._commodity_links():
            for t in range(d.horizon):
                for c in range(d.charge_levels):
                    for i, j in d.edges:
                        triplets.add(scheme.road_congestion(t, i, j), road(t, c, i, j), 1.0)
        if spec.uses_real_time:
            for k, s, source in spec.iter_sources():
                hops = self.routes.hops(source.node, spec.sinks[k].node, graph)
                for offset, i, j in hops:
                    t = source.start_time + offset
                    if t > d.horizon - 1:
                        break
                    for c in range(d.charge_levels):
                        triplets.add(scheme.road_congestion(t, i, j), scheme.pax_source(c, k, s), 1.0)
        for t in range(d.horizon):
            for i, j in d.edges:
                rhs[scheme.road_congestion(t, i, j)] = graph.road_capacity[i, j]
        return triplets.to_csr(), rhs

    def charger_congestion(self) -> Family:
        spec = self.spec
        d = self.dims
        scheme = self.scheme
        triplets = _Triplets(scheme.row_family_size(RowFamily.CHARGER_CONGESTION), scheme.total_size)
        rhs = np.zeros(triplets.shape[0])

        for _, _, charge, discharge in self._commodity_links():
            for l, charger in enumerate(spec.chargers):
                for t in range(d.horizon):
                    row = scheme.charger_congestion(t, l)
                    rhs[row] = charger.capacity
                    for started in range(max(0, t - charger.charge_time + 1), t + 1):
                        for c in range(d.charge_levels):
                            triplets.add(row, charge(started, c, l), 1.0)
                            triplets.add(row, discharge(started, c, l), 1.0)
        return triplets.to_csr(), rhs

    # ------------------------------------------------------------------
    # Bounds and assembly
    # ------------------------------------------------------------------

    def bounds(self) -> Tuple[np.ndarray, np.ndarray]:
        spec = self.spec
        d = self.dims
        scheme = self.scheme
        lb = np.zeros(scheme.total_size)
        ub = np.full(scheme.total_size, np.inf)

        for _, road, charge, discharge in self._commodity_links():
            for t in range(d.horizon):
                for c in range(d.charge_levels):
                    for i, j in d.edges:
                        if self.road_arrival(t, c, i, j) is None:
                            ub[road(t, c, i, j)] = 0.0
                    for l in range(d.num_chargers):
                        if self.charger_arrival(t, c, l, discharge=False) is None:
                            ub[charge(t, c, l)] = 0.0
                        if self.charger_arrival(t, c, l, discharge=True) is None:
                            ub[discharge(t, c, l)] = 0.0

        if spec.uses_real_time:
            for k, s, _ in spec.iter_sources():
                for c in range(d.charge_levels):
                    if not self._source_affordable(c, k, s):
                        ub[scheme.pax_source(c, k, s)] = 0.0

        for c in range(spec.min_end_charge):
            for i in range(d.num_nodes):
                ub[scheme.end_reb_location(c, i)] = 0.0

        if d.relaxation:
            for k, s, source in spec.iter_sources():
                ub[scheme.source_relax(k, s)] = source.demand

        return lb, ub

    def assemble(self) -> LinearProgram:
        """Build every family and merge them into one immutable LP."""

        costs = self.cost_vector()
        eq_matrices, eq_rhs, eq_blocks = self._stack(self.scheme.equality_families())
        ub_matrices, ub_rhs, ub_blocks = self._stack(self.scheme.inequality_families())
        lb, ub = self.bounds()

        A_eq = sparse.vstack(eq_matrices, format="csr") if eq_matrices else sparse.csr_matrix((0, self.scheme.total_size))
        A_ub = sparse.vstack(ub_matrices, format="csr") if ub_matrices else sparse.csr_matrix((0, self.scheme.total_size))
        for array in (eq_rhs, ub_rhs, lb, ub):
            array.setflags(write=False)

        logger.debug(
            f"[ASSEMBLY] {self.spec.formulation.value}: {self.scheme.total_size} variables, "
            f"{A_eq.shape[0]} equality rows, {A_ub.shape[0]} inequality rows, "
            f"{A_eq.nnz + A_ub.nnz} nonzeros"
        )
        return LinearProgram(
            costs=costs,
            A_eq=A_eq,
            b_eq=eq_rhs,
            A_ub=A_ub,
            b_ub=ub_rhs,
            lb=lb,
            ub=ub,
            eq_blocks=MappingProxyType(eq_blocks),
            ub_blocks=MappingProxyType(ub_blocks),
        )

    def _stack(self, families: Iterable[RowFamily]) -> Tuple[List[sparse.csr_matrix], np.ndarray, Dict[RowFamily, slice]]:
        matrices = []
        rhs_parts = []
        blocks: Dict[RowFamily, slice] = {}
        start = 0
        for family in families:
            matrix, rhs = getattr(self, family.value)()
            matrices.append(matrix)
            rhs_parts.append(rhs)
            blocks[family] = slice(start, start + matrix.shape[0])
            start += matrix.shape[0]
            logger.debug(f"[ASSEMBLY] {family.value}: {matrix.shape[0]} rows, {matrix.nnz} nonzeros")
        rhs = np.concatenate(rhs_parts) if rhs_parts else np.zeros(0)
        return matrices, rhs, blocks
