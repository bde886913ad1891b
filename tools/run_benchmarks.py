#!/usr/bin/env python3
"""Run the analytical benchmark suite and (optionally) a case file.

This script:
- Runs every benchmark (or the ones named with --only)
- Writes the comparison table as text + CSV/JSON
- Plots percent error per benchmark against its limit
- Optionally solves a JSON case file and writes its summary + temperature plot

Everything lands in build/reports/<timestamp>/ and is mirrored to latest/.

Usage:
  python3 tools/run_benchmarks.py
  python3 tools/run_benchmarks.py --only two_node_conduction heat_pipe
  python3 tools/run_benchmarks.py --case cases/cubesat.json --format json
"""

from __future__ import annotations

import argparse
import csv
import json
import logging
import shutil
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

# Force headless plotting
import matplotlib

matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from thermal_engine.analysis.benchmarks import (  # noqa: E402
    BENCHMARKS,
    BenchmarkResult,
    format_benchmark_table,
    run_benchmark_suite,
)
from thermal_engine.core.config import SimulationConfig  # noqa: E402
from thermal_engine.core.errors import ThermalEngineError  # noqa: E402
from thermal_engine.core.results import export_summary  # noqa: E402
from thermal_engine.core.serialization import load_case  # noqa: E402
from thermal_engine.solver.simulator import run_simulation  # noqa: E402
from thermal_engine.utils.logger import initialize_logger, log_section  # noqa: E402

DEFAULT_OUT_ROOT = REPO_ROOT / "build" / "reports"


def _utc_stamp() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%d_%H%M%SZ")


def _write_rows(path: Path, rows: list[dict[str, Any]], fmt: str) -> Path:
    path = path.with_suffix(f".{fmt}")
    path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "json":
        path.write_text(json.dumps(rows, indent=2) + "\n", encoding="utf-8")
        return path
    with path.open("w", encoding="utf-8", newline="") as f:
        if rows:
            writer = csv.DictWriter(f, fieldnames=list(rows[0].keys()))
            writer.writeheader()
            writer.writerows(rows)
    return path


def _plot_errors(results: list[BenchmarkResult], out_png: Path) -> None:
    out_png.parent.mkdir(parents=True, exist_ok=True)
    names = [r.name for r in results]
    errors = np.array([r.error_percent for r in results])
    limits = np.array([r.tolerance_percent for r in results])
    colors = ["tab:green" if r.passed else "tab:red" for r in results]

    fig, ax = plt.subplots(figsize=(10, 5))
    x = np.arange(len(results))
    ax.bar(x, errors, color=colors, label="error %")
    ax.scatter(x, limits, marker="_", s=600, color="black", label="limit %")
    ax.set_xticks(x)
    ax.set_xticklabels(names, rotation=30, ha="right")
    ax.set_yscale("symlog", linthresh=1e-6)
    ax.set_ylabel("Error [%]")
    ax.set_title("Benchmark error vs analytical solution")
    ax.grid(True, alpha=0.3)
    ax.legend()
    fig.tight_layout()
    fig.savefig(out_png, dpi=150)
    plt.close(fig)


def _run_case(case_path: Path, out_dir: Path, fmt: str) -> dict[str, Any]:
    snapshot, config = load_case(case_path)
    result = run_simulation(snapshot, config or SimulationConfig())
    names = snapshot.node_names()
    summary_path = export_summary(result, out_dir / "data" / f"{case_path.stem}_summary.{fmt}", names)

    fig, ax = plt.subplots(figsize=(12, 6))
    for node_id, history in result.node_results.items():
        if len(history.times) > 1:
            ax.plot(history.times / 60.0, history.temperatures, label=names.get(node_id, node_id))
    ax.set_xlabel("Time [min]")
    ax.set_ylabel("Temperature [K]")
    ax.set_title(f"{case_path.stem}: node temperatures")
    ax.grid(True, alpha=0.3)
    if result.node_results:
        ax.legend(loc="best", fontsize="small")
    fig.tight_layout()
    png = out_dir / "images" / f"{case_path.stem}_temperatures.png"
    png.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(png, dpi=150)
    plt.close(fig)

    return {
        "status": result.status.value,
        "energy_balance_error": result.energy_balance_error,
        "summary": str(summary_path),
        "plot": str(png),
    }


def main() -> int:
    parser = argparse.ArgumentParser(description="Run analytical benchmarks and write artifacts into build/")
    parser.add_argument("--out", default=str(DEFAULT_OUT_ROOT), help="Output root (default: build/reports)")
    parser.add_argument("--only", nargs="+", choices=sorted(BENCHMARKS), help="Benchmarks to run (default: all)")
    parser.add_argument("--format", choices=["csv", "json"], default="csv", help="Table format (default: csv)")
    parser.add_argument("--case", type=Path, help="Also solve this JSON case file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log solver progress to the console")
    args = parser.parse_args()

    out_root = Path(args.out)
    stamp = _utc_stamp()
    run_dir = out_root / stamp
    latest_dir = out_root / "latest"
    (run_dir / "logs").mkdir(parents=True, exist_ok=True)

    initialize_logger(
        log_dir=str(run_dir / "logs"),
        console_level=logging.INFO if args.verbose else logging.WARNING,
    )

    with log_section("benchmarks"):
        results = run_benchmark_suite(args.only)
    table = format_benchmark_table(results)
    print(table)
    (run_dir / "benchmarks.txt").write_text(table + "\n", encoding="utf-8")
    _write_rows(run_dir / "data" / "benchmarks", [r.as_row() for r in results], args.format)
    _plot_errors(results, run_dir / "images" / "benchmark_errors.png")

    exit_code = 0 if all(r.passed for r in results) else 1

    if args.case is not None:
        try:
            with log_section(f"case {args.case.name}"):
                case = _run_case(args.case, run_dir, args.format)
            print(f"\nCase {args.case.name}: {case['status']}, summary in {case['summary']}")
        except (ThermalEngineError, OSError) as e:
            (run_dir / "logs" / "case_error.log").write_text(f"{type(e).__name__}: {e}\n", encoding="utf-8")
            print(f"\nCase {args.case.name} failed: {e}", file=sys.stderr)
            exit_code = 1

    if latest_dir.exists():
        shutil.rmtree(latest_dir)
    shutil.copytree(run_dir, latest_dir)

    return exit_code


if __name__ == "__main__":
    raise SystemExit(main())
