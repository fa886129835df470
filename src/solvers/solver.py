"""OR-Tools implementation of the fleet LP solver adapter."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from core.errors import SolverError
from formulation.assembler import LinearProgram
from solvers.config import SolverConfig

logger = logging.getLogger(__name__)

OK_STATUSES = ("OPTIMAL",)


@dataclass(frozen=True, eq=False)
class SolveResult:
    """Outcome of one solver run.

    ``solution`` is ``None`` whenever the backend produced no usable point.
    Non-optimal outcomes are reported through ``status``; call
    :meth:`raise_for_status` to turn them into a :class:`SolverError`.
    """

    status: str
    objective_value: Optional[float] = None
    solution: Optional[np.ndarray] = None
    solve_time_s: float = 0.0
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_optimal(self) -> bool:
        return self.status == "OPTIMAL"

    def raise_for_status(self) -> "SolveResult":
        if self.status not in OK_STATUSES:
            raise SolverError(self.status, self.diagnostics)
        return self


@dataclass(frozen=True)
class LPSolver:
    """Base class for fleet LP solvers."""

    solver_config: SolverConfig

    def solve(self, lp: LinearProgram) -> SolveResult:
        raise NotImplementedError


class ORToolsLPSolver(LPSolver):
    """Solve the fleet LP with an OR-Tools linear backend (GLOP by default)."""

    def __init__(self, solver_config: Optional[SolverConfig] = None) -> None:
        super().__init__(solver_config or SolverConfig())

    def solve(self, lp: LinearProgram) -> SolveResult:
        try:
            from ortools.linear_solver import pywraplp
        except ImportError as exc:  # pragma: no cover - runtime environment check
            raise RuntimeError(
                "OR-Tools is not installed. Run `python3 -m pip install ortools` first."
            ) from exc

        config = self.solver_config
        solver = pywraplp.Solver.CreateSolver(config.backend)
        if solver is None:
            raise RuntimeError(f"Failed to create OR-Tools {config.backend} solver.")
        if config.time_limit_s > 0:
            solver.SetTimeLimit(int(config.time_limit_s * 1000))
        if config.enable_output:
            solver.EnableOutput()

        infinity = solver.infinity()

        def bound(value: float) -> float:
            if np.isposinf(value):
                return infinity
            if np.isneginf(value):
                return -infinity
            return float(value)

        x = [
            solver.NumVar(bound(lower), bound(upper), f"x_{index}")
            for index, (lower, upper) in enumerate(zip(lp.lb, lp.ub))
        ]

        for row, rhs in enumerate(lp.b_eq):
            constraint = solver.RowConstraint(bound(rhs), bound(rhs), f"eq_{row}")
            _set_row(constraint, lp.A_eq, row, x)
        for row, rhs in enumerate(lp.b_ub):
            constraint = solver.RowConstraint(-infinity, bound(rhs), f"ub_{row}")
            _set_row(constraint, lp.A_ub, row, x)

        objective = solver.Objective()
        for index in np.flatnonzero(lp.c):
            objective.SetCoefficient(x[index], float(lp.c[index]))
        objective.SetMinimization()

        logger.debug(
            f"[SOLVER] Starting {config.backend}: {lp.num_variables} variables, "
            f"{lp.num_eq} equality rows, {lp.num_ub} inequality rows"
        )
        started = time.perf_counter()
        status_code = solver.Solve()
        solve_time_s = time.perf_counter() - started
        status = _status_label(status_code, pywraplp)

        diagnostics = {
            "backend": config.backend,
            "iterations": solver.iterations(),
            "wall_time_ms": solver.wall_time(),
            "num_variables": lp.num_variables,
            "num_constraints": lp.num_eq + lp.num_ub,
        }

        keep = status == "OPTIMAL" or (status == "FEASIBLE" and config.keep_feasible_solution)
        if not keep:
            logger.warning(f"[SOLVER] {config.backend} finished with status {status}")
            return SolveResult(status=status, solve_time_s=solve_time_s, diagnostics=diagnostics)

        solution = np.array([variable.solution_value() for variable in x])
        solution.setflags(write=False)
        objective_value = float(objective.Value())
        logger.info(
            f"[SOLVER] {status}: objective={objective_value:.6f}, "
            f"time={solve_time_s:.3f}s, iterations={diagnostics['iterations']}"
        )
        return SolveResult(
            status=status,
            objective_value=objective_value,
            solution=solution,
            solve_time_s=solve_time_s,
            diagnostics=diagnostics,
        )


def _set_row(constraint, matrix, row: int, variables) -> None:
    start, end = matrix.indptr[row], matrix.indptr[row + 1]
    for col, value in zip(matrix.indices[start:end], matrix.data[start:end]):
        if value != 0.0:
            constraint.SetCoefficient(variables[col], float(value))


def _status_label(status_code: int, pywraplp_module) -> str:
    if status_code == pywraplp_module.Solver.OPTIMAL:
        return "OPTIMAL"
    if status_code == pywraplp_module.Solver.FEASIBLE:
        return "FEASIBLE"
    if status_code == pywraplp_module.Solver.INFEASIBLE:
        return "INFEASIBLE"
    if status_code == pywraplp_module.Solver.UNBOUNDED:
        return "UNBOUNDED"
    if status_code == pywraplp_module.Solver.ABNORMAL:
        return "ABNORMAL"
    if status_code == pywraplp_module.Solver.NOT_SOLVED:
        return "NOT_SOLVED"
    return "UNKNOWN"


def get_default_solver(solver_config: Optional[SolverConfig] = None) -> LPSolver:
    config = solver_config or SolverConfig()
    name = config.solver_name.lower()
    if name in ("ortools", "or-tools", "or_tools"):
        return ORToolsLPSolver(config)
    raise ValueError(f"Unsupported LP solver: {config.solver_name}")
