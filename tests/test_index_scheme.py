"""Tests for the extended-network index scheme of both regimes."""

from __future__ import annotations

import numpy as np
import pytest

from core.errors import IndexRangeError, RegimeMismatchError
from core.problem_spec import (
    Charger,
    DemandSource,
    Formulation,
    ProblemSpec,
    RoadEdge,
    RoadGraph,
    SinkBundle,
    uniform_initial_position,
)
from formulation import index_formulas as fx
from formulation.index_scheme import (
    DecodedIndex,
    FlowFamily,
    RealTimeIndexScheme,
    RowFamily,
    StandardIndexScheme,
    build_index_scheme,
)

HORIZON = 3
CHARGE_LEVELS = 3


def _spec(formulation: Formulation = Formulation.STANDARD, relaxation: bool = True) -> ProblemSpec:
    edges = [RoadEdge(node, node, 1, 0, 0.0) for node in range(3)]
    edges += [
        RoadEdge(0, 1, 1, 1, 500.0),
        RoadEdge(1, 2, 1, 1, 500.0),
        RoadEdge(2, 0, 1, 1, 500.0),
        RoadEdge(1, 0, 1, 1, 500.0),
    ]
    return ProblemSpec(
        road_graph=RoadGraph.from_edges(3, edges),
        horizon=HORIZON,
        charge_levels=CHARGE_LEVELS,
        sinks=(
            SinkBundle(node=2, sources=(DemandSource(0, 0, 1.0), DemandSource(1, 1, 0.5))),
            SinkBundle(node=0, sources=(DemandSource(1, 0, 2.0),)),
        ),
        empty_vehicle_initial_position=uniform_initial_position(3, CHARGE_LEVELS, 2.0),
        chargers=(Charger(node=1, capacity=2.0),),
        formulation=formulation,
        source_relaxation=relaxation,
    )


@pytest.fixture(params=[Formulation.STANDARD, Formulation.REAL_TIME], ids=["standard", "real_time"])
def scheme(request):
    return build_index_scheme(_spec(request.param))


def test_builder_selects_regime_strategy():
    assert isinstance(build_index_scheme(_spec()), StandardIndexScheme)
    assert isinstance(build_index_scheme(_spec(Formulation.REAL_TIME)), RealTimeIndexScheme)


def test_commodity_counts_per_regime():
    standard = build_index_scheme(_spec()).dims
    real_time = build_index_scheme(_spec(Formulation.REAL_TIME)).dims
    assert (standard.num_passenger_flows, standard.num_commodities, standard.rebalancing_commodity) == (2, 3, 2)
    assert (real_time.num_passenger_flows, real_time.num_commodities, real_time.rebalancing_commodity) == (0, 1, 0)


def test_state_size_matches_closed_form(scheme):
    d = scheme.dims
    k, e, l, c, t = d.num_commodities, d.num_edges, d.num_chargers, d.charge_levels, d.horizon
    expected = t * (e * k * c + 2 * k * l * c) + c * d.total_sources + t * c * d.num_sinks + c * d.num_nodes
    assert scheme.state_size == expected
    assert scheme.total_size == expected + d.total_sources
    assert scheme.relax_range == range(expected, expected + d.total_sources)
    assert sum(scheme.family_size(family) for family in scheme.flow_families()) == scheme.total_size


def test_families_tile_the_decision_vector(scheme):
    seen = []
    for family in scheme.flow_families():
        seen.extend(index for _, index in scheme.iter_family(family))
    assert sorted(seen) == list(range(scheme.total_size))


def test_decode_inverts_every_encoder(scheme):
    for family in scheme.flow_families():
        for components, index in scheme.iter_family(family):
            assert scheme.decode(index) == DecodedIndex(family, components)


def test_state_boundary_separates_relaxation(scheme):
    assert scheme.decode(scheme.state_size - 1).family is FlowFamily.END_LOCATION
    assert scheme.decode(scheme.state_size) == DecodedIndex(FlowFamily.RELAXATION, (0, 0))
    assert scheme.source_relax(1, 0) == scheme.total_size - 1


def test_standard_link_layout_is_time_major():
    scheme = build_index_scheme(_spec())
    d = scheme.dims
    e, k = d.num_edges, d.num_commodities
    pos = d.edge_positions[(1, 2)]
    assert scheme.road_link_pax(1, 2, 1, 1, 2) == d.time_block + 2 * e * k + 1 * e + pos
    assert scheme.road_link_reb(0, 0, 1, 2) == 2 * e + pos
    charge_base = d.charge_levels * e * k
    assert scheme.charge_link_pax(2, 1, 0, 0) == 2 * d.time_block + charge_base + 1 * d.num_chargers * k
    assert scheme.discharge_link_reb(0, 0, 0) == charge_base + d.charge_levels * d.num_chargers * k + 2


def test_real_time_uses_single_commodity_layout():
    scheme = build_index_scheme(_spec(Formulation.REAL_TIME))
    d = scheme.dims
    pos = d.edge_positions[(0, 1)]
    assert d.time_block == d.num_edges * d.charge_levels + 2 * d.num_chargers * d.charge_levels
    assert scheme.road_link_reb(2, 1, 0, 1) == 2 * d.time_block + d.num_edges + pos


def test_source_sink_and_end_offsets_follow_closed_form(scheme):
    d = scheme.dims
    flow = d.horizon * d.time_block
    s = d.total_sources
    assert scheme.pax_source(0, 0, 0) == flow
    assert scheme.pax_source(2, 1, 0) == flow + 2 * s + 2
    assert scheme.pax_sink(1, 2, 1) == flow + d.charge_levels * s + d.charge_levels * d.num_sinks + 2 * d.num_sinks + 1
    end_base = flow + d.charge_levels * s + d.horizon * d.charge_levels * d.num_sinks
    assert scheme.end_reb_location(1, 2) == end_base + d.num_nodes + 2


def test_standard_only_accessors_raise_under_real_time():
    scheme = build_index_scheme(_spec(Formulation.REAL_TIME))
    for call in (
        lambda: scheme.road_link_pax(0, 0, 0, 0, 1),
        lambda: scheme.charge_link_pax(0, 0, 0, 0),
        lambda: scheme.discharge_link_pax(0, 0, 0, 0),
        lambda: scheme.pax_conservation(0, 0, 0, 0),
    ):
        with pytest.raises(RegimeMismatchError, match="real_time"):
            call()
    assert scheme.customer_charge_conservation(1, 2, 1) == 1 * CHARGE_LEVELS * 2 + 2 * 2 + 1


def test_customer_charge_rows_raise_under_standard():
    scheme = build_index_scheme(_spec())
    with pytest.raises(RegimeMismatchError, match="customer_charge_conservation"):
        scheme.customer_charge_conservation(0, 0, 0)


def test_regime_mismatch_is_an_index_range_error():
    scheme = build_index_scheme(_spec(Formulation.REAL_TIME))
    with pytest.raises(IndexRangeError):
        scheme.road_link_pax(0, 0, 0, 0, 1)


@pytest.mark.parametrize(
    "call, message",
    [
        (lambda s: s.road_link_reb(HORIZON, 0, 0, 1), "t=3 outside"),
        (lambda s: s.road_link_reb(0, -1, 0, 1), "c=-1 outside"),
        (lambda s: s.road_link_reb(0, 0, 0, 2), "not a road edge"),
        (lambda s: s.road_link_reb(0, 0, 5, 1), "i=5 outside"),
        (lambda s: s.road_link_pax(0, 0, 2, 0, 1), "k=2 outside"),
        (lambda s: s.charge_link_reb(0, CHARGE_LEVELS, 0), "c=3 outside"),
        (lambda s: s.pax_source(0, 0, 2), "s=2 outside"),
        (lambda s: s.pax_source(0, 2, 0), "k=2 outside"),
        (lambda s: s.pax_sink(0, 0, True), "not an integer"),
        (lambda s: s.end_reb_location(0, 1.0), "not an integer"),
        (lambda s: s.decode(s.total_size), "outside"),
    ],
)
def test_out_of_range_components_raise(call, message):
    scheme = build_index_scheme(_spec())
    with pytest.raises(IndexRangeError, match=message):
        call(scheme)


def test_range_error_reports_family_and_tuple():
    scheme = build_index_scheme(_spec())
    with pytest.raises(IndexRangeError) as excinfo:
        scheme.pax_sink(HORIZON, 0, 0)
    assert excinfo.value.family == "pax_sink"
    assert excinfo.value.components == (HORIZON, 0, 0)


def test_relaxation_accessor_requires_enabled_relaxation():
    scheme = build_index_scheme(_spec(relaxation=False))
    assert scheme.relax_range == range(scheme.state_size, scheme.state_size)
    assert FlowFamily.RELAXATION not in scheme.flow_families()
    with pytest.raises(IndexRangeError, match="disabled"):
        scheme.source_relax(0, 0)


def test_numpy_integers_are_accepted():
    scheme = build_index_scheme(_spec())
    assert scheme.pax_sink(np.int64(1), np.int32(0), np.int64(1)) == scheme.pax_sink(1, 0, 1)


def _row_indices(scheme, family):
    d = scheme.dims
    if family is RowFamily.PAX_CONSERVATION:
        return [
            scheme.pax_conservation(t, c, k, i)
            for t in range(d.horizon)
            for c in range(d.charge_levels)
            for k in range(d.num_sinks)
            for i in range(d.num_nodes)
        ]
    if family is RowFamily.REB_CONSERVATION:
        return [
            scheme.reb_conservation(t, c, i)
            for t in range(d.horizon)
            for c in range(d.charge_levels)
            for i in range(d.num_nodes)
        ]
    if family is RowFamily.SOURCE_CONSERVATION:
        return [scheme.source_conservation(k, s) for k in range(d.num_sinks) for s in range(d.num_sources(k))]
    if family is RowFamily.SINK_CONSERVATION:
        return [scheme.sink_conservation(k) for k in range(d.num_sinks)]
    if family is RowFamily.CUSTOMER_CHARGE_CONSERVATION:
        return [
            scheme.customer_charge_conservation(t, c, k)
            for t in range(d.horizon)
            for c in range(d.charge_levels)
            for k in range(d.num_sinks)
        ]
    if family is RowFamily.ROAD_CONGESTION:
        return [scheme.road_congestion(t, i, j) for t in range(d.horizon) for i, j in d.edges]
    return [scheme.charger_congestion(t, l) for t in range(d.horizon) for l in range(d.num_chargers)]


def test_row_families_fill_their_own_row_spaces(scheme):
    for family in scheme.equality_families() + scheme.inequality_families():
        rows = _row_indices(scheme, family)
        assert sorted(rows) == list(range(scheme.row_family_size(family)))


def test_row_formulas_match_closed_form():
    assert fx.pax_conservation_row(1, 2, 1, 2, num_nodes=3, num_sinks=2, num_charge_levels=3) == 18 + 12 + 3 + 2
    assert fx.reb_conservation_row(2, 1, 0, num_nodes=3, num_charge_levels=3) == 18 + 3
    assert fx.road_congestion_row(2, 4, num_edges=7) == 18
    assert fx.charger_congestion_row(3, 1, num_chargers=2) == 7
    assert fx.source_conservation_row(1, 0, cum_sources=(0, 2, 3)) == 2


def test_split_flat_source_inverts_prefix_sums():
    cum = (0, 2, 3, 6)
    assert [fx.split_flat_source(flat, cum) for flat in range(6)] == [
        (0, 0),
        (0, 1),
        (1, 0),
        (2, 0),
        (2, 1),
        (2, 2),
    ]
