#!/usr/bin/env python3
"""
main.py
=======
Command-line entry point.

Sub-commands
------------
search        coverage-driven seed search (optionally followed by a replay)
random-seeds  random baseline seed set and its coverage
coverage      coverage matrix of an existing seed file
distribution  uncapped per-box histogram of a seed file
replay        run the simulation for every seed of a seed file
map-metrics   append map criteria and statistics to a CSV of seeds
compare       accident totals and means of several summary files

Environment overrides: ``SITCOV_OUT_DIR``, ``SITCOV_QUOTA``, ``SITCOV_JOBS``.
"""

import argparse
import logging
import os
from typing import Callable, Dict, List, Optional

import pandas as pd

from config import (
    DEFAULT_ITERATION_LIMIT,
    DEFAULT_OUT_DIR,
    DEFAULT_PERCENTAGE_FAULTS,
    NO_CATEGORIES,
    REQ_COV_COUNT,
)
from logging_setup import setup_logging
from search.search_loop import (
    SearchLoop,
    coverage_distribution,
    measure_coverage,
    random_seeds,
)
from search.seed_files import (
    SeedFileWriter,
    matrix_path,
    random_seeds_path,
    read_seeds,
    selected_seeds_path,
    write_lines,
    write_seeds,
)
from sim.batch import compare_summaries, map_metrics, replay_seeds
from sim.map_builder import MapEvaluator
from sim.world import FaultKind

log = logging.getLogger("main")

OUT_DIR = os.environ.get("SITCOV_OUT_DIR", DEFAULT_OUT_DIR)
QUOTA = int(os.environ.get("SITCOV_QUOTA", REQ_COV_COUNT))
JOBS = int(os.environ.get("SITCOV_JOBS", 1))


def _run_step(name: str, step: Callable[[], object]) -> bool:
    """Run one batch step; an I/O failure is logged and only ends that step."""
    try:
        step()
    except OSError as exc:
        log.error("%s failed: %s", name, exc)
        return False
    return True


def _fault_set(text: str) -> Optional[List[FaultKind]]:
    """argparse type for ``--fault-set``: comma-separated fault names, any case."""
    faults = []
    for name in text.split(","):
        name = name.strip()
        if not name:
            continue
        try:
            faults.append(FaultKind[name.upper()])
        except KeyError:
            known = ", ".join(kind.name for kind in FaultKind)
            raise argparse.ArgumentTypeError(f"unknown fault {name!r} (choose from {known})") from None
    return faults or None


# ── Sub-commands ─────────────────────────────────────────────────────────────

def cmd_search(args: argparse.Namespace) -> int:
    os.makedirs(args.out, exist_ok=True)
    seeds_file = selected_seeds_path(args.out, args.iterations)

    def search() -> None:
        with SeedFileWriter(seeds_file) as writer:
            result = SearchLoop(
                MapEvaluator(),
                args.iterations,
                quota=args.quota,
                search_seed=args.search_seed,
                n_jobs=args.jobs,
                on_accept=writer.append,
            ).run()
        write_lines(matrix_path(args.out, "search", args.iterations), result.matrix_lines())
        log.info(
            "accepted %d seeds in %d iterations, coverage %.4f",
            len(result.accepted), result.iterations, result.percentage_covered,
        )

    ok = _run_step("search", search)
    if ok and args.replay:
        ok = _run_step("replay", lambda: replay_seeds(
            seeds_file, args.out,
            map_no=args.iterations,
            percentage_faults=args.faults,
            internal_seed=args.internal_seed,
        ))
    return 0 if ok else 1


def cmd_random_seeds(args: argparse.Namespace) -> int:
    os.makedirs(args.out, exist_ok=True)

    def generate() -> None:
        seeds = random_seeds(args.count, args.search_seed)
        write_seeds(random_seeds_path(args.out, args.count), seeds)
        result = measure_coverage(seeds, MapEvaluator(), quota=args.quota)
        write_lines(matrix_path(args.out, "random", args.count), result.matrix_lines())
        log.info("random set of %d seeds covers %.4f", args.count, result.percentage_covered)

    return 0 if _run_step("random-seeds", generate) else 1


def cmd_coverage(args: argparse.Namespace) -> int:
    os.makedirs(args.out, exist_ok=True)

    def coverage() -> None:
        seeds = read_seeds(args.seeds)
        result = measure_coverage(seeds, MapEvaluator(), quota=args.quota)
        write_lines(matrix_path(args.out, args.label, len(seeds)), result.matrix_lines())
        log.info("%s: %d seeds cover %.4f", args.seeds, len(seeds), result.percentage_covered)

    return 0 if _run_step("coverage", coverage) else 1


def cmd_distribution(args: argparse.Namespace) -> int:
    os.makedirs(args.out, exist_ok=True)

    def distribution() -> None:
        seeds = read_seeds(args.seeds)
        histogram = coverage_distribution(seeds, MapEvaluator())
        rows = [
            {"Criterion1": c1, "Criterion2": c2, "Criterion3": c3, "Count": int(histogram[c1, c2, c3])}
            for c1 in range(NO_CATEGORIES)
            for c2 in range(NO_CATEGORIES)
            for c3 in range(NO_CATEGORIES)
        ]
        path = os.path.join(args.out, f"sitCovDistribution_{args.label}_{len(seeds)}.csv")
        pd.DataFrame(rows).to_csv(path, index=False)
        log.info("wrote distribution of %d seeds to %s", len(seeds), path)

    return 0 if _run_step("distribution", distribution) else 1


def cmd_replay(args: argparse.Namespace) -> int:
    failed = 0
    for seeds_file in args.seeds:
        ok = _run_step(f"replay {seeds_file}", lambda path=seeds_file: replay_seeds(
            path, args.out,
            map_no=args.map_no,
            percentage_faults=args.faults,
            fault_set=args.fault_set,
            internal_seed=args.internal_seed,
            max_ticks=args.max_ticks,
        ))
        failed += not ok
    return 0 if failed == 0 else 1


def cmd_map_metrics(args: argparse.Namespace) -> int:
    return 0 if _run_step("map-metrics", lambda: map_metrics(args.input, args.output)) else 1


def cmd_compare(args: argparse.Namespace) -> int:
    paths: Dict[str, str] = {}
    for item in args.summaries:
        label, sep, path = item.partition("=")
        if not sep:
            label, path = os.path.splitext(os.path.basename(item))[0], item
        paths[label] = path

    def compare() -> None:
        table = compare_summaries(paths)
        if args.output:
            table.to_csv(args.output)
        print(table.to_string())

    return 0 if _run_step("compare", compare) else 1


# ── Argument parsing ─────────────────────────────────────────────────────────

def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(description="Situation-coverage scenario search and accident replay")
    ap.add_argument("--out", default=OUT_DIR, help="output directory")
    ap.add_argument("--log-level", default="INFO")
    sub = ap.add_subparsers(dest="command", required=True)

    p = sub.add_parser("search", help="coverage-driven seed search")
    p.add_argument("--iterations", type=int, default=DEFAULT_ITERATION_LIMIT)
    p.add_argument("--quota", type=int, default=QUOTA)
    p.add_argument("--search-seed", type=int, default=None)
    p.add_argument("--jobs", type=int, default=JOBS)
    p.add_argument("--replay", action="store_true", help="replay the accepted seeds afterwards")
    p.add_argument("--faults", type=float, default=DEFAULT_PERCENTAGE_FAULTS)
    p.add_argument("--internal-seed", type=int, default=None)
    p.set_defaults(func=cmd_search)

    p = sub.add_parser("random-seeds", help="random baseline seed set")
    p.add_argument("--count", type=int, default=DEFAULT_ITERATION_LIMIT)
    p.add_argument("--quota", type=int, default=QUOTA)
    p.add_argument("--search-seed", type=int, default=None)
    p.set_defaults(func=cmd_random_seeds)

    p = sub.add_parser("coverage", help="coverage matrix of a seed file")
    p.add_argument("seeds")
    p.add_argument("--label", default="measured")
    p.add_argument("--quota", type=int, default=QUOTA)
    p.set_defaults(func=cmd_coverage)

    p = sub.add_parser("distribution", help="uncapped per-box histogram of a seed file")
    p.add_argument("seeds")
    p.add_argument("--label", default="measured")
    p.set_defaults(func=cmd_distribution)

    p = sub.add_parser("replay", help="simulate every seed of one or more seed files")
    p.add_argument("seeds", nargs="+")
    p.add_argument("--map-no", type=int, default=DEFAULT_ITERATION_LIMIT)
    p.add_argument("--faults", type=float, default=DEFAULT_PERCENTAGE_FAULTS)
    p.add_argument("--fault-set", type=_fault_set, default=None,
                   help="comma-separated faults, one pass per fault (e.g. DRIFT,OVERSPEED)")
    p.add_argument("--internal-seed", type=int, default=None)
    p.add_argument("--max-ticks", type=int, default=None)
    p.set_defaults(func=cmd_replay)

    p = sub.add_parser("map-metrics", help="append map measurements to a seed CSV")
    p.add_argument("input")
    p.add_argument("output")
    p.set_defaults(func=cmd_map_metrics)

    p = sub.add_parser("compare", help="compare accident summary files")
    p.add_argument("summaries", nargs="+", help="LABEL=PATH or PATH")
    p.add_argument("--output", default=None)
    p.set_defaults(func=cmd_compare)
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(getattr(logging, args.log_level.upper(), logging.INFO), log_dir=args.out)
    log.info("Starting %s...", args.command)
    return args.func(args)


if __name__ == "__main__":
    raise SystemExit(main())
