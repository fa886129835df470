"""Extended-network index scheme for the two formulation regimes.

The scheme maps structured tuples (time, charge, commodity, node, edge,
charger, source) onto flat positions of the decision vector and onto rows of
each constraint family.  Both regimes share one engine; they only differ in
how many passenger commodities carry explicit link variables:

    - ``StandardIndexScheme``: one commodity per sink bundle plus the
      rebalancing commodity, and a passenger conservation family.
    - ``RealTimeIndexScheme``: only the rebalancing commodity; passengers
      travel along precomputed routes, tied together by the customer-charge
      conservation family.

All sizes are derived once in :class:`IndexDimensions`.  Every accessor
validates its components and raises :class:`IndexRangeError` instead of
wrapping or clamping.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from itertools import product
from typing import Any, Callable, Dict, Iterator, Mapping, Optional, Sequence, Tuple

import numpy as np

from core.errors import IndexRangeError, RegimeMismatchError
from core.problem_spec import Formulation, ProblemSpec
from formulation import index_formulas as fx


class FlowFamily(Enum):
    """Families of the decision vector."""

    ROAD_PAX = "road_link_pax"
    ROAD_REB = "road_link_reb"
    CHARGE_PAX = "charge_link_pax"
    CHARGE_REB = "charge_link_reb"
    DISCHARGE_PAX = "discharge_link_pax"
    DISCHARGE_REB = "discharge_link_reb"
    SOURCE = "pax_source"
    SINK = "pax_sink"
    END_LOCATION = "end_reb_location"
    RELAXATION = "source_relax"


class RowFamily(Enum):
    """Families of constraint rows, each with its own row space."""

    PAX_CONSERVATION = "pax_conservation"
    REB_CONSERVATION = "reb_conservation"
    SOURCE_CONSERVATION = "source_conservation"
    SINK_CONSERVATION = "sink_conservation"
    CUSTOMER_CHARGE_CONSERVATION = "customer_charge_conservation"
    ROAD_CONGESTION = "road_congestion"
    CHARGER_CONGESTION = "charger_congestion"


@dataclass(frozen=True)
class DecodedIndex:
    family: FlowFamily
    components: Tuple[int, ...]


@dataclass(frozen=True)
class IndexDimensions:
    """Immutable size record shared by the index scheme and the assembler."""

    horizon: int
    charge_levels: int
    num_nodes: int
    num_edges: int
    num_chargers: int
    num_sinks: int
    num_passenger_flows: int
    total_sources: int
    cum_sources: Tuple[int, ...]
    edges: Tuple[Tuple[int, int], ...]
    edge_positions: Mapping[Tuple[int, int], int]
    relaxation: bool

    num_commodities: int = field(init=False)
    time_block: int = field(init=False)
    offsets: Mapping[str, int] = field(init=False)
    state_size: int = field(init=False)
    total_size: int = field(init=False)

    def __post_init__(self) -> None:
        num_commodities = self.num_passenger_flows + 1
        offsets = fx.family_offsets(
            horizon=self.horizon,
            num_nodes=self.num_nodes,
            num_edges=self.num_edges,
            num_chargers=self.num_chargers,
            num_commodities=num_commodities,
            num_charge_levels=self.charge_levels,
            num_sinks=self.num_sinks,
            total_sources=self.total_sources,
        )
        object.__setattr__(self, "num_commodities", num_commodities)
        object.__setattr__(
            self,
            "time_block",
            fx.link_time_block(self.num_edges, num_commodities, self.charge_levels, self.num_chargers),
        )
        object.__setattr__(self, "offsets", offsets)
        object.__setattr__(self, "state_size", offsets["relaxation"])
        relax_size = self.total_sources if self.relaxation else 0
        object.__setattr__(self, "total_size", offsets["relaxation"] + relax_size)

    @classmethod
    def from_spec(cls, spec: ProblemSpec, num_passenger_flows: int) -> "IndexDimensions":
        graph = spec.road_graph
        return cls(
            horizon=spec.horizon,
            charge_levels=spec.charge_levels,
            num_nodes=spec.num_nodes,
            num_edges=spec.num_edges,
            num_chargers=spec.num_chargers,
            num_sinks=spec.num_sinks,
            num_passenger_flows=num_passenger_flows,
            total_sources=spec.total_sources,
            cum_sources=spec.cum_num_sources_per_sink,
            edges=graph.edges,
            edge_positions=graph.edge_positions,
            relaxation=spec.source_relaxation,
        )

    @property
    def rebalancing_commodity(self) -> int:
        return self.num_passenger_flows

    def num_sources(self, k: int) -> int:
        return self.cum_sources[k + 1] - self.cum_sources[k]


def _check(
    family: str,
    components: Tuple[Any, ...],
    limits: Sequence[Tuple[str, int]],
    values: Optional[Sequence[Any]] = None,
) -> None:
    for value, (name, upper) in zip(components if values is None else values, limits):
        if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
            raise IndexRangeError(family, components, f"{name}={value!r} is not an integer")
        if not 0 <= value < upper:
            raise IndexRangeError(family, components, f"{name}={value} outside [0, {upper})")


class IndexScheme(ABC):
    """Shared engine of both regimes; subclasses fix the passenger flows."""

    formulation: Formulation

    def __init__(self, dims: IndexDimensions) -> None:
        self.dims = dims

    # ------------------------------------------------------------------
    # Sizes
    # ------------------------------------------------------------------

    @property
    def state_size(self) -> int:
        return self.dims.state_size

    @property
    def total_size(self) -> int:
        return self.dims.total_size

    @property
    def state_range(self) -> range:
        return range(0, self.dims.state_size)

    @property
    def relax_range(self) -> range:
        return range(self.dims.state_size, self.dims.total_size)

    @abstractmethod
    def flow_families(self) -> Tuple[FlowFamily, ...]:
        """Decision-vector families present in this regime, in index order."""

    @abstractmethod
    def equality_families(self) -> Tuple[RowFamily, ...]:
        """Equality row families in stacking order."""

    def inequality_families(self) -> Tuple[RowFamily, ...]:
        return (RowFamily.ROAD_CONGESTION, RowFamily.CHARGER_CONGESTION)

    def family_shape(self, family: FlowFamily) -> Tuple[Tuple[str, int], ...]:
        d = self.dims
        shapes = {
            FlowFamily.ROAD_PAX: (("t", d.horizon), ("c", d.charge_levels), ("k", d.num_passenger_flows), ("edge", d.num_edges)),
            FlowFamily.ROAD_REB: (("t", d.horizon), ("c", d.charge_levels), ("edge", d.num_edges)),
            FlowFamily.CHARGE_PAX: (("t", d.horizon), ("c", d.charge_levels), ("k", d.num_passenger_flows), ("l", d.num_chargers)),
            FlowFamily.CHARGE_REB: (("t", d.horizon), ("c", d.charge_levels), ("l", d.num_chargers)),
            FlowFamily.DISCHARGE_PAX: (("t", d.horizon), ("c", d.charge_levels), ("k", d.num_passenger_flows), ("l", d.num_chargers)),
            FlowFamily.DISCHARGE_REB: (("t", d.horizon), ("c", d.charge_levels), ("l", d.num_chargers)),
            FlowFamily.SOURCE: (("c", d.charge_levels), ("source", d.total_sources)),
            FlowFamily.SINK: (("t", d.horizon), ("c", d.charge_levels), ("k", d.num_sinks)),
            FlowFamily.END_LOCATION: (("c", d.charge_levels), ("i", d.num_nodes)),
            FlowFamily.RELAXATION: (("source", d.total_sources if d.relaxation else 0),),
        }
        return shapes[family]

    def family_size(self, family: FlowFamily) -> int:
        if family not in self.flow_families():
            return 0
        return int(np.prod([upper for _, upper in self.family_shape(family)], dtype=np.int64))

    def row_family_size(self, family: RowFamily) -> int:
        d = self.dims
        sizes = {
            RowFamily.PAX_CONSERVATION: d.horizon * d.charge_levels * d.num_sinks * d.num_nodes,
            RowFamily.REB_CONSERVATION: d.horizon * d.charge_levels * d.num_nodes,
            RowFamily.SOURCE_CONSERVATION: d.total_sources,
            RowFamily.SINK_CONSERVATION: d.num_sinks,
            RowFamily.CUSTOMER_CHARGE_CONSERVATION: d.horizon * d.charge_levels * d.num_sinks,
            RowFamily.ROAD_CONGESTION: d.horizon * d.num_edges,
            RowFamily.CHARGER_CONGESTION: d.horizon * d.num_chargers,
        }
        if family not in self.equality_families() + self.inequality_families():
            return 0
        return sizes[family]

    # ------------------------------------------------------------------
    # Shared encoders
    # ------------------------------------------------------------------

    def _edge_position(self, family: str, components: Tuple[Any, ...], i: int, j: int) -> int:
        d = self.dims
        _check(family, components, (("i", d.num_nodes), ("j", d.num_nodes)), values=(i, j))
        position = d.edge_positions.get((int(i), int(j)))
        if position is None:
            raise IndexRangeError(family, components, f"({i}, {j}) is not a road edge")
        return position

    def _road(self, family: str, t: int, c: int, k: int, i: int, j: int) -> int:
        d = self.dims
        components = (t, c, k, i, j)
        _check(family, components, (("t", d.horizon), ("c", d.charge_levels), ("k", d.num_commodities)))
        pos = self._edge_position(family, components, i, j)
        return fx.road_link_index(t, c, k, pos, num_edges=d.num_edges, num_commodities=d.num_commodities, time_block=d.time_block)

    def _charger_link(self, family: str, encoder: Callable[..., int], t: int, c: int, k: int, l: int) -> int:
        d = self.dims
        _check(
            family,
            (t, c, k, l),
            (("t", d.horizon), ("c", d.charge_levels), ("k", d.num_commodities), ("l", d.num_chargers)),
        )
        return encoder(
            t,
            c,
            k,
            l,
            num_edges=d.num_edges,
            num_commodities=d.num_commodities,
            num_charge_levels=d.charge_levels,
            num_chargers=d.num_chargers,
            time_block=d.time_block,
        )

    def road_link_reb(self, t: int, c: int, i: int, j: int) -> int:
        return self._road("road_link_reb", t, c, self.dims.rebalancing_commodity, i, j)

    def charge_link_reb(self, t: int, c: int, l: int) -> int:
        return self._charger_link("charge_link_reb", fx.charge_link_index, t, c, self.dims.rebalancing_commodity, l)

    def discharge_link_reb(self, t: int, c: int, l: int) -> int:
        return self._charger_link("discharge_link_reb", fx.discharge_link_index, t, c, self.dims.rebalancing_commodity, l)

    def _check_source(self, family: str, components: Tuple[Any, ...], k: int, s: int) -> None:
        d = self.dims
        _check(family, components, (("k", d.num_sinks),), values=(k,))
        _check(family, components, (("s", d.num_sources(k)),), values=(s,))

    def pax_source(self, c: int, k: int, s: int) -> int:
        d = self.dims
        _check("pax_source", (c, k, s), (("c", d.charge_levels),))
        self._check_source("pax_source", (c, k, s), k, s)
        return fx.source_index(
            c, k, s, source_offset=d.offsets["sources"], total_sources=d.total_sources, cum_sources=d.cum_sources
        )

    def pax_sink(self, t: int, c: int, k: int) -> int:
        d = self.dims
        _check("pax_sink", (t, c, k), (("t", d.horizon), ("c", d.charge_levels), ("k", d.num_sinks)))
        return fx.sink_index(t, c, k, sink_offset=d.offsets["sinks"], num_charge_levels=d.charge_levels, num_sinks=d.num_sinks)

    def end_reb_location(self, c: int, i: int) -> int:
        d = self.dims
        _check("end_reb_location", (c, i), (("c", d.charge_levels), ("i", d.num_nodes)))
        return fx.end_location_index(c, i, end_offset=d.offsets["end_locations"], num_nodes=d.num_nodes)

    def source_relax(self, k: int, s: int) -> int:
        d = self.dims
        if not d.relaxation:
            raise IndexRangeError("source_relax", (k, s), "source relaxation is disabled")
        self._check_source("source_relax", (k, s), k, s)
        return fx.relaxation_index(k, s, relax_offset=d.offsets["relaxation"], cum_sources=d.cum_sources)

    # ------------------------------------------------------------------
    # Regime-specific encoders
    # ------------------------------------------------------------------

    @abstractmethod
    def road_link_pax(self, t: int, c: int, k: int, i: int, j: int) -> int:
        """Flat index of a passenger road link."""

    @abstractmethod
    def charge_link_pax(self, t: int, c: int, k: int, l: int) -> int:
        """Flat index of a passenger charging link."""

    @abstractmethod
    def discharge_link_pax(self, t: int, c: int, k: int, l: int) -> int:
        """Flat index of a passenger discharging link."""

    @abstractmethod
    def pax_conservation(self, t: int, c: int, k: int, i: int) -> int:
        """Row of the passenger conservation family."""

    @abstractmethod
    def customer_charge_conservation(self, t: int, c: int, k: int) -> int:
        """Row of the customer-charge conservation family."""

    # ------------------------------------------------------------------
    # Shared row encoders
    # ------------------------------------------------------------------

    def reb_conservation(self, t: int, c: int, i: int) -> int:
        d = self.dims
        _check("reb_conservation", (t, c, i), (("t", d.horizon), ("c", d.charge_levels), ("i", d.num_nodes)))
        return fx.reb_conservation_row(t, c, i, num_nodes=d.num_nodes, num_charge_levels=d.charge_levels)

    def source_conservation(self, k: int, s: int) -> int:
        self._check_source("source_conservation", (k, s), k, s)
        return fx.source_conservation_row(k, s, cum_sources=self.dims.cum_sources)

    def sink_conservation(self, k: int) -> int:
        _check("sink_conservation", (k,), (("k", self.dims.num_sinks),))
        return fx.sink_conservation_row(k)

    def road_congestion(self, t: int, i: int, j: int) -> int:
        d = self.dims
        components = (t, i, j)
        _check("road_congestion", components, (("t", d.horizon),))
        pos = self._edge_position("road_congestion", components, i, j)
        return fx.road_congestion_row(t, pos, num_edges=d.num_edges)

    def charger_congestion(self, t: int, l: int) -> int:
        d = self.dims
        _check("charger_congestion", (t, l), (("t", d.horizon), ("l", d.num_chargers)))
        return fx.charger_congestion_row(t, l, num_chargers=d.num_chargers)

    # ------------------------------------------------------------------
    # Decoding and enumeration
    # ------------------------------------------------------------------

    def decode(self, index: int) -> DecodedIndex:
        """Map a flat position back to its family and tuple."""

        d = self.dims
        _check("decode", (index,), (("index", d.total_size),))
        offsets = d.offsets
        if index < offsets["sources"]:
            kind, t, c, k, pos = fx.split_link_index(
                index,
                num_edges=d.num_edges,
                num_commodities=d.num_commodities,
                num_charge_levels=d.charge_levels,
                num_chargers=d.num_chargers,
                time_block=d.time_block,
            )
            rebalancing = k == d.rebalancing_commodity
            if kind == "road":
                i, j = d.edges[pos]
                if rebalancing:
                    return DecodedIndex(FlowFamily.ROAD_REB, (t, c, i, j))
                return DecodedIndex(FlowFamily.ROAD_PAX, (t, c, k, i, j))
            if kind == "charge":
                if rebalancing:
                    return DecodedIndex(FlowFamily.CHARGE_REB, (t, c, pos))
                return DecodedIndex(FlowFamily.CHARGE_PAX, (t, c, k, pos))
            if rebalancing:
                return DecodedIndex(FlowFamily.DISCHARGE_REB, (t, c, pos))
            return DecodedIndex(FlowFamily.DISCHARGE_PAX, (t, c, k, pos))
        if index < offsets["sinks"]:
            c, flat = divmod(index - offsets["sources"], d.total_sources)
            k, s = fx.split_flat_source(flat, d.cum_sources)
            return DecodedIndex(FlowFamily.SOURCE, (c, k, s))
        if index < offsets["end_locations"]:
            t, rest = divmod(index - offsets["sinks"], d.charge_levels * d.num_sinks)
            c, k = divmod(rest, d.num_sinks)
            return DecodedIndex(FlowFamily.SINK, (t, c, k))
        if index < offsets["relaxation"]:
            c, i = divmod(index - offsets["end_locations"], d.num_nodes)
            return DecodedIndex(FlowFamily.END_LOCATION, (c, i))
        k, s = fx.split_flat_source(index - offsets["relaxation"], d.cum_sources)
        return DecodedIndex(FlowFamily.RELAXATION, (k, s))

    def encode(self, family: FlowFamily, components: Tuple[int, ...]) -> int:
        return getattr(self, family.value)(*components)

    def iter_family(self, family: FlowFamily) -> Iterator[Tuple[Tuple[int, ...], int]]:
        """Yield ``(components, index)`` for every valid tuple of a family."""

        if family not in self.flow_families():
            return
        d = self.dims
        if family in (FlowFamily.SOURCE, FlowFamily.RELAXATION):
            charge_levels = range(d.charge_levels) if family is FlowFamily.SOURCE else (None,)
            for c in charge_levels:
                for k in range(d.num_sinks):
                    for s in range(d.num_sources(k)):
                        components = (k, s) if c is None else (c, k, s)
                        yield components, self.encode(family, components)
            return
        axes = []
        for name, upper in self.family_shape(family):
            if name == "edge":
                axes.append(d.edges)
            else:
                axes.append(range(upper))
        for combo in product(*axes):
            components = []
            for value in combo:
                components.extend(value if isinstance(value, tuple) else (value,))
            components = tuple(components)
            yield components, self.encode(family, components)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(state_size={self.state_size}, total_size={self.total_size})"


class StandardIndexScheme(IndexScheme):
    """One link commodity per sink bundle plus rebalancing."""

    formulation = Formulation.STANDARD

    def flow_families(self) -> Tuple[FlowFamily, ...]:
        families = (
            FlowFamily.ROAD_PAX,
            FlowFamily.ROAD_REB,
            FlowFamily.CHARGE_PAX,
            FlowFamily.CHARGE_REB,
            FlowFamily.DISCHARGE_PAX,
            FlowFamily.DISCHARGE_REB,
            FlowFamily.SOURCE,
            FlowFamily.SINK,
            FlowFamily.END_LOCATION,
        )
        return families + ((FlowFamily.RELAXATION,) if self.dims.relaxation else ())

    def equality_families(self) -> Tuple[RowFamily, ...]:
        return (
            RowFamily.PAX_CONSERVATION,
            RowFamily.REB_CONSERVATION,
            RowFamily.SOURCE_CONSERVATION,
            RowFamily.SINK_CONSERVATION,
        )

    def _check_pax(self, family: str, components: Tuple[Any, ...], k: int) -> None:
        _check(family, components, (("k", self.dims.num_passenger_flows),), values=(k,))

    def road_link_pax(self, t: int, c: int, k: int, i: int, j: int) -> int:
        self._check_pax("road_link_pax", (t, c, k, i, j), k)
        return self._road("road_link_pax", t, c, k, i, j)

    def charge_link_pax(self, t: int, c: int, k: int, l: int) -> int:
        self._check_pax("charge_link_pax", (t, c, k, l), k)
        return self._charger_link("charge_link_pax", fx.charge_link_index, t, c, k, l)

    def discharge_link_pax(self, t: int, c: int, k: int, l: int) -> int:
        self._check_pax("discharge_link_pax", (t, c, k, l), k)
        return self._charger_link("discharge_link_pax", fx.discharge_link_index, t, c, k, l)

    def pax_conservation(self, t: int, c: int, k: int, i: int) -> int:
        d = self.dims
        _check(
            "pax_conservation",
            (t, c, k, i),
            (("t", d.horizon), ("c", d.charge_levels), ("k", d.num_sinks), ("i", d.num_nodes)),
        )
        return fx.pax_conservation_row(t, c, k, i, num_nodes=d.num_nodes, num_sinks=d.num_sinks, num_charge_levels=d.charge_levels)

    def customer_charge_conservation(self, t: int, c: int, k: int) -> int:
        raise RegimeMismatchError("customer_charge_conservation", self.formulation.value)


class RealTimeIndexScheme(IndexScheme):
    """Rebalancing links only; passengers ride precomputed routes."""

    formulation = Formulation.REAL_TIME

    def flow_families(self) -> Tuple[FlowFamily, ...]:
        families = (
            FlowFamily.ROAD_REB,
            FlowFamily.CHARGE_REB,
            FlowFamily.DISCHARGE_REB,
            FlowFamily.SOURCE,
            FlowFamily.SINK,
            FlowFamily.END_LOCATION,
        )
        return families + ((FlowFamily.RELAXATION,) if self.dims.relaxation else ())

    def equality_families(self) -> Tuple[RowFamily, ...]:
        return (
            RowFamily.REB_CONSERVATION,
            RowFamily.SOURCE_CONSERVATION,
            RowFamily.SINK_CONSERVATION,
            RowFamily.CUSTOMER_CHARGE_CONSERVATION,
        )

    def road_link_pax(self, t: int, c: int, k: int, i: int, j: int) -> int:
        raise RegimeMismatchError("road_link_pax", self.formulation.value)

    def charge_link_pax(self, t: int, c: int, k: int, l: int) -> int:
        raise RegimeMismatchError("charge_link_pax", self.formulation.value)

    def discharge_link_pax(self, t: int, c: int, k: int, l: int) -> int:
        raise RegimeMismatchError("discharge_link_pax", self.formulation.value)

    def pax_conservation(self, t: int, c: int, k: int, i: int) -> int:
        raise RegimeMismatchError("pax_conservation", self.formulation.value)

    def customer_charge_conservation(self, t: int, c: int, k: int) -> int:
        d = self.dims
        _check(
            "customer_charge_conservation",
            (t, c, k),
            (("t", d.horizon), ("c", d.charge_levels), ("k", d.num_sinks)),
        )
        return fx.customer_charge_row(t, c, k, num_sinks=d.num_sinks, num_charge_levels=d.charge_levels)


_SCHEMES: Dict[Formulation, type] = {
    Formulation.STANDARD: StandardIndexScheme,
    Formulation.REAL_TIME: RealTimeIndexScheme,
}


def build_index_scheme(spec: ProblemSpec) -> IndexScheme:
    """Select the regime strategy once and derive its dimensions."""

    passenger_flows = 0 if spec.uses_real_time else spec.num_passenger_classes
    dims = IndexDimensions.from_spec(spec, passenger_flows)
    return _SCHEMES[spec.formulation](dims)
