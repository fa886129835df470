"""Project-wide defaults for costs, route search, and sample instances."""

from config.defaults import (
    DEFAULT_COST_PARAMETERS,
    DEFAULT_GRID_INSTANCE,
    DEFAULT_ROUTE_SEARCH_PARAMS,
    GRID_INSTANCE_PRESETS,
    CostParameters,
    GridInstanceDefaults,
    RouteSearchParams,
)

__all__ = [
    "DEFAULT_COST_PARAMETERS",
    "DEFAULT_GRID_INSTANCE",
    "DEFAULT_ROUTE_SEARCH_PARAMS",
    "GRID_INSTANCE_PRESETS",
    "CostParameters",
    "GridInstanceDefaults",
    "RouteSearchParams",
]
