"""
search/coverage_space.py
========================
Discretisation of map measurements into the 3-D situation-coverage grid.

:func:`categorize` turns one raw criterion into a bucket.  The boundary
formulas are fixed: results are compared across experiments.

:class:`CoverageSpace` keeps a ``K × K × K`` counter per box, each capped
at the quota ``Q``, and counts the boxes that have reached it.
"""

from __future__ import annotations

import math
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Sequence, Tuple

import numpy as np

from config import NO_CATEGORIES, REQ_COV_COUNT

Box = Tuple[int, int, int]


def categorize(value: float, criterion: int) -> int:
    """Bucket of *value* for criterion 1, 2 or 3.

    * 1 (target–obstacle distance): ``max(0, floor((min(v, 31) - 1.01) / 5))``
    * 2 (ego–target distance): ``floor(v / 40)``
    * 3 (previous junction–target distance): ``min(floor(v / 10), 5)``
    """
    if criterion == 1:
        return max(0, math.floor((min(value, 31) - 1.01) / 5))
    if criterion == 2:
        return math.floor(value / 40)
    if criterion == 3:
        return min(math.floor(value / 10), 5)
    raise ValueError(f"unknown coverage criterion {criterion!r}")


def format_pct(pct: float) -> str:
    """Two decimals, halves rounded up."""
    return str(Decimal(repr(pct)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


class CoverageSpace:
    """Quota-capped box counters.

    Parameters
    ----------
    categories : int
        Buckets per criterion (``K``).
    quota : int
        Seeds required to saturate a box (``Q``).
    """

    def __init__(self, categories: int = NO_CATEGORIES, quota: int = REQ_COV_COUNT) -> None:
        if categories < 1 or quota < 1:
            raise ValueError("categories and quota must be positive")
        self.categories = categories
        self.quota = quota
        self.counts = np.zeros((categories, categories, categories), dtype=np.int64)
        self.covered_boxes = 0

    @property
    def total_boxes(self) -> int:
        return self.categories ** 3

    @property
    def percentage_covered(self) -> float:
        return self.covered_boxes / self.total_boxes

    @property
    def is_full(self) -> bool:
        return self.covered_boxes == self.total_boxes

    def box_for(self, criteria: Sequence[float]) -> Box:
        """Box of a ``(c1, c2, c3)`` triple, each bucket clamped to the grid."""
        top = self.categories - 1
        b1, b2, b3 = (
            min(max(categorize(value, index + 1), 0), top)
            for index, value in enumerate(criteria)
        )
        return (b1, b2, b3)

    def is_open(self, box: Box) -> bool:
        return int(self.counts[box]) < self.quota

    def record(self, box: Box) -> bool:
        """Count one seed in *box*.

        Returns
        -------
        bool
            True only if this increment brought the box up to the quota.
            A box already at quota is left unchanged.
        """
        if not self.is_open(box):
            return False
        self.counts[box] += 1
        if int(self.counts[box]) == self.quota:
            self.covered_boxes += 1
            return True
        return False

    def matrix_lines(self, duration_ms: float) -> List[str]:
        """Text dump of the counters, one table per criterion-3 category."""
        k = self.categories
        lines: List[str] = []
        for t in range(k):
            lines.append(f"Criterion #3 : Category {t}.")
            lines.append("Criterion #2, " + ", ".join(str(c) for c in range(k)))
            for r in range(k):
                lines.append(f"{r}, " + ", ".join(str(int(self.counts[c, r, t])) for c in range(k)))
            lines.append("")
        lines.append(
            f"Situation Coverage = {self.covered_boxes}/{self.total_boxes} = "
            f"{format_pct(self.percentage_covered)}."
        )
        lines.append(f"Duration of Search = {int(round(duration_ms))}.")
        return lines
