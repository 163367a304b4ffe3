"""
sim/batch.py
============
Batch drivers over seed files and accident summaries.

* :func:`replay_seeds`: run one :class:`~sim.world.World` per external seed
  of an accepted-seed file and write the accident log and summary.
* :func:`map_metrics`: regenerate maps listed in a CSV without running
  them and append their criteria and complexity measures.
* :func:`load_summary` / :func:`compare_summaries`: tabulate accident
  counts of several scenario sets side by side.
"""

from __future__ import annotations

import logging
import os
import random
from typing import Dict, List, Optional, Sequence

import pandas as pd

from config import DEFAULT_PERCENTAGE_FAULTS
from search.seed_files import read_seeds
from sim.accident_oracle import CATEGORY_COLUMNS, AccidentLog, AccidentSummary
from sim.map_builder import MapEvaluator, MapParams
from sim.traffic_policy import SimPolicy
from sim.world import FaultKind, RunOutcome, World

log = logging.getLogger("batch")


def replay_seeds(
    seed_path: str,
    out_dir: str,
    *,
    map_no: int,
    percentage_faults: float = DEFAULT_PERCENTAGE_FAULTS,
    fault_set: Optional[Sequence[FaultKind]] = None,
    internal_seed: Optional[int] = None,
    max_ticks: Optional[int] = None,
    policy: Optional[SimPolicy] = None,
    params: Optional[MapParams] = None,
) -> List[RunOutcome]:
    """Replay every external seed in *seed_path*.

    Parameters
    ----------
    seed_path : str
        Accepted-seed file, one integer per line.
    out_dir : str
        Directory receiving ``AccidentLog*`` and ``AccidentSummary*`` files.
    map_no : int
        Label used in the output file names (usually the iteration limit of
        the search that produced the seeds).
    percentage_faults : float
        Per-fault activation probability for random fault injection.
    fault_set : sequence of FaultKind, optional
        When given, the whole file is replayed once per listed fault with
        exactly that fault active, instead of drawing faults at random.
    internal_seed : int, optional
        Seeds the generator of per-run internal seeds.

    Raises
    ------
    SeedFileError
        If a line of *seed_path* is not an integer.
    OSError
        If the seed file or an output file cannot be opened.
    """
    seeds = read_seeds(seed_path)
    os.makedirs(out_dir, exist_ok=True)
    rng = random.Random(internal_seed)
    passes: List[Optional[List[FaultKind]]] = (
        [[fault] for fault in fault_set] if fault_set else [None]
    )

    outcomes: List[RunOutcome] = []
    for forced in passes:
        if forced is None:
            pct, label = percentage_faults, str(map_no)
        else:
            pct, label = 0.0, f"{map_no}_{forced[0].value}"
        accident_log = AccidentLog(out_dir, pct, label)
        summary = AccidentSummary(out_dir, pct, label)
        for external in seeds:
            world = World(
                external,
                rng.getrandbits(63),
                policy=policy,
                params=params,
                percentage_faults=percentage_faults,
                faults=forced,
            )
            outcome = world.run(max_ticks=max_ticks)
            accident_log.write_run(
                world.ctx, world.evaluation.stats, [f.value for f in outcome.faults], outcome.records,
            )
            outcome.summary = world.oracle.end_run(
                world.ctx, world.evaluation, len(outcome.faults),
            )
            summary.append(outcome.summary)
            outcomes.append(outcome)
        log.info("replayed %d seeds from %s (faults=%s)", len(seeds), seed_path, forced or "random")
    return outcomes


def map_metrics(
    input_csv: str,
    output_csv: str,
    evaluator: Optional[MapEvaluator] = None,
) -> pd.DataFrame:
    """Append map criteria and statistics to rows of *input_csv*.

    Each input row holds ``internal seed, external seed, percent faults``
    without a header.  The map of every external seed is regenerated (not
    run) and the measurements are written to *output_csv*.
    """
    evaluator = evaluator or MapEvaluator()
    frame = pd.read_csv(
        input_csv,
        header=None,
        usecols=[0, 1, 2],
        names=["InternalSeed", "ExternalSeed", "PercentFaults"],
        skipinitialspace=True,
    )
    rows: List[Dict[str, object]] = []
    for internal, external, pct in frame.itertuples(index=False):
        evaluation = evaluator.evaluate(int(external))
        row: Dict[str, object] = {
            "InternalSeed": int(internal),
            "ExternalSeed": int(external),
            "PercentFaults": float(pct) / 100.0,
        }
        row.update(evaluation.criteria_dict())
        row.update(evaluation.stats.as_dict())
        rows.append(row)
    result = pd.DataFrame(rows)
    result.to_csv(output_csv, index=False)
    log.info("wrote map metrics for %d seeds to %s", len(result), output_csv)
    return result


def load_summary(path: str) -> pd.DataFrame:
    """Read an ``AccidentSummary`` file into a DataFrame."""
    frame = pd.read_csv(path, skipinitialspace=True)
    frame.columns = [c.strip() for c in frame.columns]
    return frame


def compare_summaries(paths: Dict[str, str]) -> pd.DataFrame:
    """Per-set accident totals and per-run means.

    Parameters
    ----------
    paths : dict
        Label (e.g. ``"search"``, ``"random"``) → summary file path.

    Returns
    -------
    pandas.DataFrame
        One row per label with ``runs``, ``<column>_total`` and
        ``<column>_mean`` for every accident column.
    """
    columns = ["#Accidents"] + list(CATEGORY_COLUMNS.values())
    table = {}
    for label, path in paths.items():
        frame = load_summary(path)
        entry: Dict[str, float] = {"runs": float(len(frame))}
        for column in columns:
            entry[f"{column}_total"] = float(frame[column].sum())
            entry[f"{column}_mean"] = float(frame[column].mean()) if len(frame) else 0.0
        table[label] = entry
    return pd.DataFrame.from_dict(table, orient="index")
