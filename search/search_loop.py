"""
search/search_loop.py
=====================
Single-pass online accept/reject search over external seeds.

Each iteration draws a fresh candidate seed, scores its map through a
:class:`~sim.map_builder.MapEvaluator` (no simulation is run), places it in
a box of the :class:`~search.coverage_space.CoverageSpace` and keeps it only
if that box is still below quota.  Rejected seeds are never revisited.  The
loop stops when the iteration budget is spent or every box is saturated.

With ``n_jobs > 1`` map evaluation is farmed out to :mod:`joblib` workers in
batches, while accept/reject decisions stay in this process and follow the
candidate order, so the outcome matches a sequential run.
"""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass, field
from typing import Callable, Iterable, Iterator, List, Optional, Protocol, Set, Tuple

import numpy as np
from joblib import Parallel, delayed

from config import NO_CATEGORIES, REQ_COV_COUNT
from search.coverage_space import CoverageSpace

log = logging.getLogger("search")

Criteria = Tuple[float, float, float]


class Evaluator(Protocol):
    def criteria(self, seed: int) -> Criteria: ...


class SeedSampler:
    """Draws distinct signed 64-bit seeds.

    Parameters
    ----------
    search_seed : int or None
        Makes the candidate sequence reproducible; ``None`` draws from the
        operating system.
    """

    def __init__(self, search_seed: Optional[int] = None) -> None:
        self._rng = random.Random(search_seed) if search_seed is not None else random.SystemRandom()
        self._seen: Set[int] = set()

    def next(self) -> int:
        while True:
            seed = self._rng.getrandbits(64) - (1 << 63)
            if seed not in self._seen:
                self._seen.add(seed)
                return seed

    def take(self, count: int) -> List[int]:
        return [self.next() for _ in range(count)]


@dataclass
class SearchResult:
    """Outputs of one search."""

    accepted: List[int]
    space: CoverageSpace
    iterations: int
    duration_ms: float
    rejected: int = 0

    @property
    def percentage_covered(self) -> float:
        return self.space.percentage_covered

    @property
    def matrix(self) -> np.ndarray:
        return self.space.counts.copy()

    def matrix_lines(self) -> List[str]:
        return self.space.matrix_lines(self.duration_ms)


def _criteria_of(evaluator: Evaluator, seed: int) -> Criteria:
    return evaluator.criteria(seed)


@dataclass
class SearchLoop:
    """Coverage-driven seed search.

    Parameters
    ----------
    evaluator : Evaluator
        Anything with ``criteria(seed) -> (c1, c2, c3)``.
    iteration_limit : int
        Budget of candidate evaluations.
    quota : int
        Seeds needed per box.
    on_accept : callable, optional
        Called with every accepted seed, in discovery order.
    """

    evaluator: Evaluator
    iteration_limit: int
    quota: int = REQ_COV_COUNT
    categories: int = NO_CATEGORIES
    search_seed: Optional[int] = None
    n_jobs: int = 1
    batch_size: int = 0
    backend: Optional[str] = None
    on_accept: Optional[Callable[[int], None]] = field(default=None, repr=False)

    def run(self) -> SearchResult:
        space = CoverageSpace(self.categories, self.quota)
        sampler = SeedSampler(self.search_seed)
        accepted: List[int] = []
        iterations = 0
        started = time.perf_counter()

        candidates = self._candidates(sampler)
        while iterations < self.iteration_limit and not space.is_full:
            seed, criteria = next(candidates)
            iterations += 1
            box = space.box_for(criteria)
            if not space.is_open(box):
                log.debug("iteration %d: seed %d rejected, box %s full", iterations, seed, box)
                continue
            space.record(box)
            accepted.append(seed)
            if self.on_accept is not None:
                self.on_accept(seed)
            log.debug("iteration %d: seed %d accepted into box %s", iterations, seed, box)
        candidates.close()

        duration_ms = (time.perf_counter() - started) * 1000.0
        log.info(
            "search finished: %d iterations, %d accepted, coverage %d/%d",
            iterations, len(accepted), space.covered_boxes, space.total_boxes,
        )
        return SearchResult(
            accepted=accepted,
            space=space,
            iterations=iterations,
            duration_ms=duration_ms,
            rejected=iterations - len(accepted),
        )

    def _candidates(self, sampler: SeedSampler) -> Iterator[Tuple[int, Criteria]]:
        """Endless ``(seed, criteria)`` stream in sampling order."""
        if self.n_jobs == 1:
            while True:
                seed = sampler.next()
                yield seed, self.evaluator.criteria(seed)
        batch = self.batch_size or 4 * max(1, abs(self.n_jobs))
        with Parallel(n_jobs=self.n_jobs, backend=self.backend) as parallel:
            while True:
                seeds = sampler.take(batch)
                results = parallel(delayed(_criteria_of)(self.evaluator, s) for s in seeds)
                yield from zip(seeds, results)


def random_seeds(count: int, search_seed: Optional[int] = None) -> List[int]:
    """*count* distinct seeds with no coverage filtering (the random baseline)."""
    return SeedSampler(search_seed).take(count)


def measure_coverage(
    seeds: Iterable[int],
    evaluator: Evaluator,
    quota: int = REQ_COV_COUNT,
    categories: int = NO_CATEGORIES,
) -> SearchResult:
    """Coverage an existing seed set achieves under the quota rule."""
    space = CoverageSpace(categories, quota)
    started = time.perf_counter()
    filling: List[int] = []
    count = 0
    for seed in seeds:
        count += 1
        box = space.box_for(evaluator.criteria(seed))
        if space.is_open(box):
            space.record(box)
            filling.append(seed)
    return SearchResult(
        accepted=filling,
        space=space,
        iterations=count,
        duration_ms=(time.perf_counter() - started) * 1000.0,
        rejected=count - len(filling),
    )


def coverage_distribution(
    seeds: Iterable[int],
    evaluator: Evaluator,
    categories: int = NO_CATEGORIES,
) -> np.ndarray:
    """Uncapped number of seeds falling into each box."""
    space = CoverageSpace(categories)
    histogram = np.zeros_like(space.counts)
    for seed in seeds:
        histogram[space.box_for(evaluator.criteria(seed))] += 1
    return histogram
