"""Decoding of a solved decision vector into per-family flow arrays."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict

import numpy as np

from core.problem_spec import ProblemSpec
from formulation.assembler import CostVector
from formulation.index_scheme import FlowFamily, IndexScheme


@dataclass(frozen=True, eq=False)
class FlowSolution:
    """Structured view of one solution vector.

    Array axes follow the tuple order of the matching family:

        road_flows       (t, c, commodity, edge)   commodity K-1 is rebalancing
        charge_flows     (t, c, commodity, charger)
        discharge_flows  (t, c, commodity, charger)
        source_flows     (c, flat source)
        sink_flows       (t, c, sink)
        end_locations    (c, node)
        relaxation       (flat source,)
    """

    spec: ProblemSpec
    x: np.ndarray
    costs: CostVector
    road_flows: np.ndarray
    charge_flows: np.ndarray
    discharge_flows: np.ndarray
    source_flows: np.ndarray
    sink_flows: np.ndarray
    end_locations: np.ndarray
    relaxation: np.ndarray

    @classmethod
    def from_vector(cls, spec: ProblemSpec, scheme: IndexScheme, costs: CostVector, x: np.ndarray) -> "FlowSolution":
        x = np.array(x, dtype=float)
        if x.shape != (scheme.total_size,):
            raise ValueError(f"Solution vector must have shape ({scheme.total_size},), got {x.shape}")
        d = scheme.dims
        reb = d.rebalancing_commodity

        road = np.zeros((d.horizon, d.charge_levels, d.num_commodities, d.num_edges))
        charge = np.zeros((d.horizon, d.charge_levels, d.num_commodities, d.num_chargers))
        discharge = np.zeros_like(charge)
        sources = np.zeros((d.charge_levels, d.total_sources))
        sinks = np.zeros((d.horizon, d.charge_levels, d.num_sinks))
        ends = np.zeros((d.charge_levels, d.num_nodes))
        relax = np.zeros(d.total_sources)

        for family in scheme.flow_families():
            for components, index in scheme.iter_family(family):
                value = x[index]
                if family is FlowFamily.ROAD_PAX:
                    t, c, k, i, j = components
                    road[t, c, k, d.edge_positions[(i, j)]] = value
                elif family is FlowFamily.ROAD_REB:
                    t, c, i, j = components
                    road[t, c, reb, d.edge_positions[(i, j)]] = value
                elif family is FlowFamily.CHARGE_PAX:
                    charge[components] = value
                elif family is FlowFamily.CHARGE_REB:
                    t, c, l = components
                    charge[t, c, reb, l] = value
                elif family is FlowFamily.DISCHARGE_PAX:
                    discharge[components] = value
                elif family is FlowFamily.DISCHARGE_REB:
                    t, c, l = components
                    discharge[t, c, reb, l] = value
                elif family is FlowFamily.SOURCE:
                    c, k, s = components
                    sources[c, d.cum_sources[k] + s] = value
                elif family is FlowFamily.SINK:
                    sinks[components] = value
                elif family is FlowFamily.END_LOCATION:
                    ends[components] = value
                else:
                    k, s = components
                    relax[d.cum_sources[k] + s] = value

        for array in (x, road, charge, discharge, sources, sinks, ends, relax):
            array.setflags(write=False)
        return cls(
            spec=spec,
            x=x,
            costs=costs,
            road_flows=road,
            charge_flows=charge,
            discharge_flows=discharge,
            source_flows=sources,
            sink_flows=sinks,
            end_locations=ends,
            relaxation=relax,
        )

    def cost_breakdown(self) -> Dict[str, float]:
        breakdown = {name: float(vector @ self.x) for name, vector in self.costs.components().items()}
        breakdown["total"] = float(self.costs.total @ self.x)
        return breakdown

    def vehicles_at_start(self) -> float:
        return float(self.spec.empty_vehicle_initial_position.sum() + self.spec.full_vehicle_initial_position.sum())

    def vehicles_at_end(self) -> float:
        return float(self.end_locations.sum())

    def final_vehicle_distribution(self) -> np.ndarray:
        """Rebalancing vehicles left at each (node, charge level) after the horizon."""

        return self.end_locations.T.copy()

    def served_demand(self) -> np.ndarray:
        """Demand picked up per flat source, summed over charge levels."""

        return self.source_flows.sum(axis=0)

    def unmet_demand(self) -> float:
        return float(self.relaxation.sum())

    def passenger_road_flow(self) -> np.ndarray:
        """Passenger-carrying road flow per (t, edge); zero when passengers ride precomputed routes."""

        return self.road_flows[:, :, :-1, :].sum(axis=(1, 2))

    def rebalancing_road_flow(self) -> np.ndarray:
        return self.road_flows[:, :, -1, :].sum(axis=1)
