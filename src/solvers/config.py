"""Configuration for the LP solver adapter."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class SolverConfig:
    """Default solver choice and switches for the fleet LP."""

    solver_name: str = "ortools"
    # Any OR-Tools linear backend id: GLOP, PDLP, CLP, ...
    backend: str = "GLOP"
    time_limit_s: float = 60.0
    enable_output: bool = False
    # Report the solution vector for FEASIBLE as well as OPTIMAL runs.
    keep_feasible_solution: bool = True

    def __post_init__(self) -> None:
        if self.time_limit_s < 0:
            raise ValueError(f"time_limit_s must be non-negative, got {self.time_limit_s}")


DEFAULT_SOLVER_CONFIG = SolverConfig()
