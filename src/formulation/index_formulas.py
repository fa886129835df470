"""Closed-form affine index formulas of the extended network.

Every family of the decision vector and of the constraint rows has its own
pure function taking the tuple components plus only the dimension constants
it needs.  No function reads a running offset: family base offsets are
closed-form sums of the sizes of the families before it (see
:func:`family_offsets`).

Decision-vector layout (0-based), with ``K`` commodities (passenger classes
plus one rebalancing commodity), ``E`` edges, ``L`` chargers, ``C`` charge
levels, ``S`` sources in total and ``M`` sinks::

    per time step t:   road links   [c][k][edge]   E*K*C
                       charge links [c][k][l]      L*K*C
                       discharge    [c][k][l]      L*K*C
    then               sources      [c][flat source]
                       sinks        [t][c][k]
                       end locations[c][i]
                       relaxation   [flat source]          (optional)

The innermost component varies fastest.
"""

from __future__ import annotations

from bisect import bisect_right
from typing import Dict, Sequence, Tuple


# ----------------------------------------------------------------------
# Family sizes and offsets
# ----------------------------------------------------------------------

def link_time_block(num_edges: int, num_commodities: int, num_charge_levels: int, num_chargers: int) -> int:
    """Number of link variables that depart in one time step."""

    return num_edges * num_commodities * num_charge_levels + 2 * num_chargers * num_commodities * num_charge_levels


def family_offsets(
    *,
    horizon: int,
    num_nodes: int,
    num_edges: int,
    num_chargers: int,
    num_commodities: int,
    num_charge_levels: int,
    num_sinks: int,
    total_sources: int,
) -> Dict[str, int]:
    """Base offset of every decision-vector family and the total size."""

    time_block = link_time_block(num_edges, num_commodities, num_charge_levels, num_chargers)
    flow_size = horizon * time_block
    source_size = num_charge_levels * total_sources
    sink_size = horizon * num_charge_levels * num_sinks
    end_size = num_charge_levels * num_nodes
    return {
        "links": 0,
        "sources": flow_size,
        "sinks": flow_size + source_size,
        "end_locations": flow_size + source_size + sink_size,
        "relaxation": flow_size + source_size + sink_size + end_size,
    }


# ----------------------------------------------------------------------
# Decision-vector families
# ----------------------------------------------------------------------

def road_link_index(t: int, c: int, k: int, edge_pos: int, *, num_edges: int, num_commodities: int, time_block: int) -> int:
    return t * time_block + c * num_edges * num_commodities + k * num_edges + edge_pos


def charge_link_index(
    t: int,
    c: int,
    k: int,
    l: int,
    *,
    num_edges: int,
    num_commodities: int,
    num_charge_levels: int,
    num_chargers: int,
    time_block: int,
) -> int:
    road_block = num_charge_levels * num_edges * num_commodities
    return t * time_block + road_block + c * num_chargers * num_commodities + k * num_chargers + l


def discharge_link_index(
    t: int,
    c: int,
    k: int,
    l: int,
    *,
    num_edges: int,
    num_commodities: int,
    num_charge_levels: int,
    num_chargers: int,
    time_block: int,
) -> int:
    road_block = num_charge_levels * num_edges * num_commodities
    charge_block = num_charge_levels * num_chargers * num_commodities
    return t * time_block + road_block + charge_block + c * num_chargers * num_commodities + k * num_chargers + l


def source_index(c: int, k: int, s: int, *, source_offset: int, total_sources: int, cum_sources: Sequence[int]) -> int:
    return source_offset + c * total_sources + cum_sources[k] + s


def sink_index(t: int, c: int, k: int, *, sink_offset: int, num_charge_levels: int, num_sinks: int) -> int:
    return sink_offset + t * num_charge_levels * num_sinks + c * num_sinks + k


def end_location_index(c: int, i: int, *, end_offset: int, num_nodes: int) -> int:
    return end_offset + c * num_nodes + i


def relaxation_index(k: int, s: int, *, relax_offset: int, cum_sources: Sequence[int]) -> int:
    return relax_offset + cum_sources[k] + s


# ----------------------------------------------------------------------
# Constraint-row families
# ----------------------------------------------------------------------

def pax_conservation_row(t: int, c: int, k: int, i: int, *, num_nodes: int, num_sinks: int, num_charge_levels: int) -> int:
    return num_nodes * num_sinks * num_charge_levels * t + num_nodes * num_sinks * c + num_nodes * k + i


def reb_conservation_row(t: int, c: int, i: int, *, num_nodes: int, num_charge_levels: int) -> int:
    return num_nodes * num_charge_levels * t + num_nodes * c + i


def source_conservation_row(k: int, s: int, *, cum_sources: Sequence[int]) -> int:
    return cum_sources[k] + s


def sink_conservation_row(k: int) -> int:
    return k


def customer_charge_row(t: int, c: int, k: int, *, num_sinks: int, num_charge_levels: int) -> int:
    return num_charge_levels * num_sinks * t + num_sinks * c + k


def road_congestion_row(t: int, edge_pos: int, *, num_edges: int) -> int:
    return num_edges * t + edge_pos


def charger_congestion_row(t: int, l: int, *, num_chargers: int) -> int:
    return num_chargers * t + l


# ----------------------------------------------------------------------
# Decoding helpers
# ----------------------------------------------------------------------

def split_link_index(
    index: int,
    *,
    num_edges: int,
    num_commodities: int,
    num_charge_levels: int,
    num_chargers: int,
    time_block: int,
) -> Tuple[str, int, int, int, int]:
    """Invert the link formulas: return ``(kind, t, c, k, position)``.

    ``kind`` is ``"road"``, ``"charge"`` or ``"discharge"``; ``position`` is
    the packed edge position for road links and the charger otherwise.
    """

    t, rest = divmod(index, time_block)
    road_block = num_charge_levels * num_edges * num_commodities
    if rest < road_block:
        c, rest = divmod(rest, num_edges * num_commodities)
        k, pos = divmod(rest, num_edges)
        return "road", t, c, k, pos
    rest -= road_block
    charger_block = num_charge_levels * num_chargers * num_commodities
    kind = "charge"
    if rest >= charger_block:
        kind = "discharge"
        rest -= charger_block
    c, rest = divmod(rest, num_chargers * num_commodities)
    k, l = divmod(rest, num_chargers)
    return kind, t, c, k, l


def split_flat_source(flat: int, cum_sources: Sequence[int]) -> Tuple[int, int]:
    """Map a flat source position to ``(sink k, source s)``."""

    k = bisect_right(cum_sources, flat) - 1
    return k, flat - cum_sources[k]
