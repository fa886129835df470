"""Error taxonomy for the fleet LP builder.

None of these errors is recovered internally: they all propagate to the
caller with enough context (family name, offending tuple, node pair, solver
diagnostics) to diagnose the problem.
"""

from __future__ import annotations

from typing import Any, Dict, Optional, Tuple


class AMoDError(Exception):
    """Base class for every error raised by this package."""


class SpecError(AMoDError, ValueError):
    """The problem description is malformed or internally inconsistent."""


class UnreachableRouteError(AMoDError):
    """A node pair that must be routed has no charge-feasible path."""

    def __init__(self, origin: int, destination: int, reason: str = "") -> None:
        self.origin = origin
        self.destination = destination
        message = f"No charge-feasible route from node {origin} to node {destination}"
        if reason:
            message = f"{message} ({reason})"
        super().__init__(message)


class IndexRangeError(AMoDError, IndexError):
    """A tuple component lies outside its declared domain."""

    def __init__(self, family: str, components: Tuple[Any, ...], detail: str) -> None:
        self.family = family
        self.components = tuple(components)
        super().__init__(f"{family}{self.components}: {detail}")


class RegimeMismatchError(IndexRangeError):
    """An accessor was called under the regime that does not define it."""

    def __init__(self, family: str, regime: str) -> None:
        self.regime = regime
        super().__init__(family, (), f"undefined for the {regime} formulation")


class SolverError(AMoDError):
    """The solver returned a non-optimal status."""

    def __init__(self, status: str, diagnostics: Optional[Dict[str, Any]] = None) -> None:
        self.status = status
        self.diagnostics = dict(diagnostics or {})
        super().__init__(f"Solver finished with status {status}: {self.diagnostics}")
