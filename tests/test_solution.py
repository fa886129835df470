"""Tests for decoding a decision vector back into structured flows."""

from __future__ import annotations

import numpy as np
import pytest

from core.instances import build_two_node_instance
from core.problem_spec import Formulation
from formulation import AMoDProblem, FlowFamily


def _problem(**kwargs) -> AMoDProblem:
    return AMoDProblem(build_two_node_instance(**kwargs))


def test_decode_places_each_variable_in_its_family_array():
    problem = _problem(source_relaxation=True)
    scheme = problem.scheme
    x = np.zeros(scheme.total_size)
    x[scheme.road_link_pax(0, 2, 0, 0, 1)] = 1.0
    x[scheme.road_link_reb(0, 1, 0, 1)] = 0.5
    x[scheme.pax_source(2, 0, 0)] = 1.0
    x[scheme.pax_sink(1, 1, 0)] = 1.0
    x[scheme.end_reb_location(1, 1)] = 1.5
    x[scheme.source_relax(0, 0)] = 0.25

    solution = problem.decode(x)
    reb = scheme.dims.rebalancing_commodity
    assert solution.road_flows.shape == (2, 3, 2, 1)
    assert solution.road_flows[0, 2, 0, 0] == 1.0
    assert solution.road_flows[0, 1, reb, 0] == 0.5
    assert solution.source_flows[2, 0] == 1.0
    assert solution.sink_flows[1, 1, 0] == 1.0
    assert solution.end_locations[1, 1] == 1.5
    assert solution.relaxation.tolist() == [0.25]
    assert solution.passenger_road_flow()[0, 0] == 1.0
    assert solution.rebalancing_road_flow()[0, 0] == 0.5
    assert solution.vehicles_at_end() == 1.5
    assert solution.final_vehicle_distribution().shape == (2, 3)


def test_decoded_arrays_are_read_only_and_input_is_copied():
    problem = _problem()
    x = np.zeros(problem.scheme.total_size)
    solution = problem.decode(x)
    assert x.flags.writeable
    assert not solution.x.flags.writeable
    assert not solution.road_flows.flags.writeable


def test_decode_rejects_wrong_length():
    problem = _problem()
    with pytest.raises(ValueError, match="shape"):
        problem.decode(np.zeros(problem.scheme.total_size + 1))


def test_cost_breakdown_splits_the_objective():
    problem = _problem(source_relaxation=True)
    scheme = problem.scheme
    x = np.zeros(scheme.total_size)
    x[scheme.road_link_pax(0, 2, 0, 0, 1)] = 1.0
    x[scheme.road_link_reb(0, 2, 0, 1)] = 2.0
    x[scheme.source_relax(0, 0)] = 0.5
    breakdown = problem.decode(x).cost_breakdown()
    assert breakdown["passenger"] == pytest.approx(1.5)
    assert breakdown["rebalancing"] == pytest.approx(1.0)
    assert breakdown["electricity"] == 0.0
    assert breakdown["relaxation"] == pytest.approx(500.0)
    assert breakdown["total"] == pytest.approx(502.5)


def test_real_time_solution_has_only_rebalancing_links():
    problem = _problem(formulation=Formulation.REAL_TIME)
    solution = problem.decode(np.ones(problem.scheme.total_size))
    assert solution.road_flows.shape == (2, 3, 1, 1)
    assert not solution.passenger_road_flow().any()
    assert solution.vehicles_at_start() == 1.0


def test_model_spec_counts_every_family():
    problem = _problem(source_relaxation=True)
    model = problem.model_spec()
    assert model.formulation == "standard"
    assert model.num_variables == problem.scheme.total_size
    assert model.variables[FlowFamily.RELAXATION.value] == 1
    assert sum(model.equality_rows.values()) == problem.lp.num_eq
    assert sum(model.inequality_rows.values()) == problem.lp.num_ub
    assert any("relaxation" in term for term in model.objective_terms)
