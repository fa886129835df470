"""Tests for problem-spec validation and road-graph packing."""

from __future__ import annotations

import numpy as np
import pytest

from core.errors import SpecError
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


def _triangle_graph() -> RoadGraph:
    return RoadGraph.from_edges(
        3,
        [
            RoadEdge(0, 1, 1, 1, 100.0),
            RoadEdge(0, 2, 2, 1, 250.0),
            RoadEdge(1, 2, 1, 1, 100.0, 5.0),
            RoadEdge(2, 2, 1, 0, 0.0),
        ],
    )


def _spec(**overrides) -> ProblemSpec:
    params = dict(
        road_graph=_triangle_graph(),
        horizon=4,
        charge_levels=3,
        sinks=(SinkBundle(node=2, sources=(DemandSource(node=0, start_time=0, demand=1.0),)),),
        empty_vehicle_initial_position=uniform_initial_position(3, 3, 1.0),
    )
    params.update(overrides)
    return ProblemSpec(**params)


def test_edges_are_packed_per_origin_in_successor_order():
    graph = _triangle_graph()
    assert graph.edges == ((0, 1), (0, 2), (1, 2), (2, 2))
    assert graph.cum_road_neighbors == (0, 2, 3, 4)
    assert graph.edge_positions[(1, 2)] == 2
    assert graph.predecessors[2] == (0, 1, 2)
    assert graph.has_edge(2, 2)
    assert not graph.has_edge(2, 0)


def test_missing_capacity_defaults_to_unbounded_and_arrays_are_frozen():
    graph = _triangle_graph()
    assert np.isinf(graph.road_capacity[0, 1])
    assert graph.road_capacity[1, 2] == 5.0
    assert not graph.travel_time.flags.writeable
    with pytest.raises(ValueError):
        graph.travel_time[0, 1] = 7


def test_edge_must_take_at_least_one_step():
    with pytest.raises(SpecError, match="at least one time step"):
        RoadGraph.from_edges(2, [RoadEdge(0, 1, 0, 1, 10.0)])


def test_duplicate_successor_is_rejected():
    with pytest.raises(SpecError, match="duplicate successor"):
        RoadGraph.from_edges(2, [RoadEdge(0, 1, 1, 1, 10.0), RoadEdge(0, 1, 2, 1, 10.0)])


def test_edge_outside_graph_is_rejected():
    with pytest.raises(SpecError, match="outside"):
        RoadGraph.from_edges(2, [RoadEdge(0, 3, 1, 1, 10.0)])


def test_spec_derives_source_prefix_sums():
    spec = _spec(
        sinks=(
            SinkBundle(node=2, sources=(DemandSource(0, 0, 1.0), DemandSource(1, 1, 0.5))),
            SinkBundle(node=0, sources=(DemandSource(2, 0, 2.0),)),
        )
    )
    assert spec.num_sources_per_sink == (2, 1)
    assert spec.cum_num_sources_per_sink == (0, 2, 3)
    assert spec.total_sources == 3
    assert spec.total_demand() == pytest.approx(3.5)
    assert [(k, s) for k, s, _ in spec.iter_sources()] == [(0, 0), (0, 1), (1, 0)]
    assert spec.full_vehicle_initial_position.shape == (2, 3, 3)
    assert spec.electricity_price.shape == (0, 4)


def test_source_outside_horizon_is_rejected():
    sinks = (SinkBundle(node=2, sources=(DemandSource(node=0, start_time=4, demand=1.0),)),)
    with pytest.raises(SpecError, match="outside"):
        _spec(sinks=sinks)


def test_sink_without_sources_is_rejected():
    with pytest.raises(SpecError, match="no demand sources"):
        _spec(sinks=(SinkBundle(node=2, sources=()),))


def test_spec_error_is_a_value_error():
    with pytest.raises(ValueError):
        _spec(horizon=0)


def test_initial_position_shape_is_checked():
    with pytest.raises(SpecError, match="shape"):
        _spec(empty_vehicle_initial_position=np.ones((3, 2)))


def test_negative_vehicles_are_rejected():
    empty = uniform_initial_position(3, 3, 1.0)
    empty[0, 0] = -1.0
    with pytest.raises(SpecError, match="non-negative"):
        _spec(empty_vehicle_initial_position=empty)


def test_min_end_charge_must_be_a_charge_level():
    with pytest.raises(SpecError, match="min_end_charge"):
        _spec(min_end_charge=3)


def test_charger_must_sit_on_a_known_node():
    with pytest.raises(SpecError, match="unknown node"):
        _spec(chargers=(Charger(node=5),))


def test_electricity_price_shape_follows_chargers_and_horizon():
    chargers = (Charger(node=0), Charger(node=1))
    with pytest.raises(SpecError, match="electricity_price"):
        _spec(chargers=chargers, electricity_price=np.zeros((2, 3)))
    spec = _spec(chargers=chargers, electricity_price=np.full((2, 4), 1e-8))
    assert spec.num_chargers == 2


def test_real_time_rejects_vehicles_with_passengers_on_board():
    full = np.zeros((1, 3, 3))
    full[0, 0, 2] = 1.0
    spec = _spec(full_vehicle_initial_position=full)
    assert spec.full_vehicle_initial_position.sum() == 1.0
    with pytest.raises(SpecError, match="real-time"):
        spec.with_formulation(Formulation.REAL_TIME)


def test_formulation_and_relaxation_copies_leave_original_untouched():
    spec = _spec()
    real_time = spec.with_formulation(Formulation.REAL_TIME).with_source_relaxation(True)
    assert spec.formulation is Formulation.STANDARD
    assert not spec.source_relaxation
    assert real_time.uses_real_time
    assert real_time.source_relaxation
    assert ProblemSpec(
        road_graph=spec.road_graph,
        horizon=4,
        charge_levels=3,
        sinks=spec.sinks,
        empty_vehicle_initial_position=spec.empty_vehicle_initial_position,
        formulation="real_time",
    ).uses_real_time
