"""Time-expanded network-flow formulation of the electric fleet LP."""

from formulation.assembler import ConstraintAssembler, CostVector, LinearProgram
from formulation.index_scheme import (
    DecodedIndex,
    FlowFamily,
    IndexDimensions,
    IndexScheme,
    RealTimeIndexScheme,
    RowFamily,
    StandardIndexScheme,
    build_index_scheme,
)
from formulation.problem import AMoDProblem, FormulationModelSpec
from formulation.solution import FlowSolution

__all__ = [
    "AMoDProblem",
    "ConstraintAssembler",
    "CostVector",
    "DecodedIndex",
    "FlowFamily",
    "FlowSolution",
    "FormulationModelSpec",
    "IndexDimensions",
    "IndexScheme",
    "LinearProgram",
    "RealTimeIndexScheme",
    "RowFamily",
    "StandardIndexScheme",
    "build_index_scheme",
]
