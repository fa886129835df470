"""Solve a grid-city instance under both formulations and compare them."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List

PROJECT_ROOT = Path(__file__).resolve().parents[1]
SRC_ROOT = PROJECT_ROOT / "src"
for candidate in (SRC_ROOT, PROJECT_ROOT):
    candidate_str = str(candidate)
    if candidate_str not in sys.path:
        sys.path.insert(0, candidate_str)

from config import GRID_INSTANCE_PRESETS
from core.instances import build_grid_instance
from core.problem_spec import Formulation
from formulation import AMoDProblem
from solvers import SolverConfig, SolveResult, get_default_solver


def _relative_difference(reference: float, other: float) -> float:
    if reference == 0:
        return 0.0 if other == 0 else float("inf")
    return (other - reference) / abs(reference)


def _result_to_record(formulation: Formulation, problem: AMoDProblem, result: SolveResult) -> Dict[str, Any]:
    record: Dict[str, Any] = {
        "formulation": formulation.value,
        "status": result.status,
        "objective_value": result.objective_value,
        "solve_time_s": result.solve_time_s,
        "num_variables": problem.lp.num_variables,
        "num_eq_rows": problem.lp.num_eq,
        "num_ub_rows": problem.lp.num_ub,
        "diagnostics": dict(result.diagnostics),
    }
    if result.solution is not None:
        solution = problem.decode(result.solution)
        record["cost_breakdown"] = solution.cost_breakdown()
        record["unmet_demand"] = solution.unmet_demand()
    return record


def _print_record(record: Dict[str, Any]) -> None:
    run_id = record["formulation"]
    print(f"[{run_id}] status: {record['status']}")
    if record["objective_value"] is not None:
        print(f"[{run_id}] objective: {record['objective_value']:.4f}")
    print(f"[{run_id}] solve_time_s: {record['solve_time_s']:.3f}")
    print(f"[{run_id}] size: {record['num_variables']} vars, {record['num_eq_rows']} eq, {record['num_ub_rows']} ub")


def main() -> int:
    parser = argparse.ArgumentParser(description="Compare the standard and real-time fleet LPs.")
    parser.add_argument(
        "--preset",
        type=str,
        default="small",
        choices=sorted(GRID_INSTANCE_PRESETS),
        help="Grid-city preset from config.GRID_INSTANCE_PRESETS.",
    )
    parser.add_argument("--seed", type=int, default=None, help="Override the preset seed.")
    parser.add_argument("--horizon", type=int, default=None, help="Override the preset horizon.")
    parser.add_argument("--relax", action="store_true", help="Enable source relaxation.")
    parser.add_argument("--backend", type=str, default="GLOP", help="OR-Tools linear backend id.")
    parser.add_argument("--time-limit", type=float, default=60.0, help="Time limit (seconds).")
    parser.add_argument("--verbose", action="store_true", help="Log assembly and solver details.")
    parser.add_argument("--output-json", type=str, default=None, help="Optional JSON summary output path.")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    defaults = GRID_INSTANCE_PRESETS[args.preset]
    if args.horizon is not None:
        defaults = replace(defaults, horizon=args.horizon)
    solver = get_default_solver(SolverConfig(backend=args.backend, time_limit_s=args.time_limit))

    records: List[Dict[str, Any]] = []
    for formulation in (Formulation.STANDARD, Formulation.REAL_TIME):
        spec = build_grid_instance(
            defaults,
            formulation=formulation,
            source_relaxation=args.relax,
            seed=args.seed,
        )
        problem = AMoDProblem(spec)
        record = _result_to_record(formulation, problem, problem.solve(solver))
        _print_record(record)
        records.append(record)

    standard, real_time = records
    comparison: Dict[str, Any] = {
        "solve_time_ratio": (
            real_time["solve_time_s"] / standard["solve_time_s"] if standard["solve_time_s"] > 0 else None
        ),
    }
    if standard["objective_value"] is not None and real_time["objective_value"] is not None:
        comparison["objective_relative_difference"] = _relative_difference(
            standard["objective_value"], real_time["objective_value"]
        )

    payload = {"preset": args.preset, "results": records, "comparison": comparison}
    print(json.dumps(comparison, indent=2))
    if args.output_json:
        out_path = Path(args.output_json)
        out_path.parent.mkdir(parents=True, exist_ok=True)
        out_path.write_text(json.dumps(payload, ensure_ascii=True, indent=2), encoding="utf-8")
        print(f"saved_summary: {out_path}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
