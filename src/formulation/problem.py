"""Facade tying route precomputation, indexing, assembly and solving together."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

import numpy as np

from config import RouteSearchParams
from core.problem_spec import ProblemSpec
from formulation.assembler import ConstraintAssembler, LinearProgram
from formulation.index_scheme import IndexScheme, build_index_scheme
from formulation.solution import FlowSolution
from physics.routes import RouteTable, build_routes
from solvers import LPSolver, SolveResult, get_default_solver

logger = logging.getLogger(__name__)


@dataclass
class FormulationModelSpec:
    """Human-readable representation of one assembled formulation."""

    formulation: str
    variables: Dict[str, int]
    equality_rows: Dict[str, int]
    inequality_rows: Dict[str, int]
    nonzeros: int
    objective_terms: List[str]

    @property
    def num_variables(self) -> int:
        return sum(self.variables.values())


class AMoDProblem:
    """One fleet LP, built once from a validated spec.

    Routes, the index scheme and the LP matrices are computed in the
    constructor and never change afterwards; solving and decoding only read
    them.
    """

    def __init__(self, spec: ProblemSpec, *, route_params: Optional[RouteSearchParams] = None) -> None:
        self.spec = spec
        self.routes: RouteTable = build_routes(spec.road_graph, spec.charge_levels, route_params)
        self.scheme: IndexScheme = build_index_scheme(spec)
        self.assembler = ConstraintAssembler(spec, self.scheme, self.routes)
        self.lp: LinearProgram = self.assembler.assemble()
        logger.info(
            f"[ASSEMBLY] Built {spec.formulation.value} LP: {self.lp.num_variables} variables, "
            f"{self.lp.num_eq} equality rows, {self.lp.num_ub} inequality rows"
        )

    def solve(self, solver: Optional[LPSolver] = None) -> SolveResult:
        solver = solver or get_default_solver()
        return solver.solve(self.lp)

    def decode(self, x: np.ndarray) -> FlowSolution:
        return FlowSolution.from_vector(self.spec, self.scheme, self.lp.costs, x)

    def solve_and_decode(self, solver: Optional[LPSolver] = None) -> Tuple[SolveResult, Optional[FlowSolution]]:
        """Solve and decode; the solution is None when the solver produced no point."""

        result = self.solve(solver)
        if result.solution is None:
            return result, None
        return result, self.decode(result.solution)

    def model_spec(self) -> FormulationModelSpec:
        scheme = self.scheme
        objective_terms = [
            "passenger: value_of_time * travel time + vehicle_cost_per_m * distance + toll",
            "rebalancing: vehicle_cost_per_m * distance + toll",
            "electricity: price[l, t] * charge_rate * charge_unit_j (discharge earns it back)",
        ]
        if self.spec.source_relaxation:
            objective_terms.append("relaxation: source_relax_cost * dropped demand")
        return FormulationModelSpec(
            formulation=self.spec.formulation.value,
            variables={family.value: scheme.family_size(family) for family in scheme.flow_families()},
            equality_rows={family.value: scheme.row_family_size(family) for family in scheme.equality_families()},
            inequality_rows={family.value: scheme.row_family_size(family) for family in scheme.inequality_families()},
            nonzeros=int(self.lp.A_eq.nnz + self.lp.A_ub.nnz),
            objective_terms=objective_terms,
        )
