"""LP solver adapters for the fleet formulation."""

from solvers.config import DEFAULT_SOLVER_CONFIG, SolverConfig
from solvers.solver import (
    LPSolver,
    ORToolsLPSolver,
    SolveResult,
    get_default_solver,
)

__all__ = [
    "DEFAULT_SOLVER_CONFIG",
    "SolverConfig",
    "LPSolver",
    "ORToolsLPSolver",
    "SolveResult",
    "get_default_solver",
]
