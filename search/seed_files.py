"""
search/seed_files.py
====================
Reading and writing the plain-text experiment files.

* accepted / random seed files: one decimal integer per line
* coverage matrix dumps: see :meth:`CoverageSpace.matrix_lines`

A non-numeric seed line is a fatal error for its batch: it raises
:class:`SeedFileError` instead of being skipped.
"""

from __future__ import annotations

import os
from typing import IO, Iterable, List, Optional


class SeedFileError(ValueError):
    """A seed file line is not a decimal integer."""

    def __init__(self, path: str, line_no: int, text: str) -> None:
        super().__init__(f"{path}:{line_no}: not a seed: {text!r}")
        self.path = path
        self.line_no = line_no
        self.text = text


def selected_seeds_path(out_dir: str, iteration_limit: int) -> str:
    return os.path.join(out_dir, f"selectedExternalSeeds_{iteration_limit}.txt")


def random_seeds_path(out_dir: str, count: int) -> str:
    return os.path.join(out_dir, f"RandomExternalSeeds_{count}.txt")


def matrix_path(out_dir: str, label: str, iteration_limit: int) -> str:
    return os.path.join(out_dir, f"sitCovMatrix_{label}_{iteration_limit}.txt")


def read_seeds(path: str) -> List[int]:
    """Seeds of *path* in file order; blank lines are ignored."""
    seeds: List[int] = []
    with open(path, "r", encoding="utf-8") as fh:
        for line_no, line in enumerate(fh, start=1):
            text = line.strip()
            if not text:
                continue
            try:
                seeds.append(int(text))
            except ValueError:
                raise SeedFileError(path, line_no, text) from None
    return seeds


def write_seeds(path: str, seeds: Iterable[int]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        for seed in seeds:
            fh.write(f"{seed}\n")


def write_lines(path: str, lines: Iterable[str]) -> None:
    with open(path, "w", encoding="utf-8") as fh:
        for line in lines:
            fh.write(line + "\n")


class SeedFileWriter:
    """Appends accepted seeds to a file as they are discovered.

    Use as a context manager; each :meth:`append` is flushed so an
    interrupted search still leaves every accepted seed on disk.
    """

    def __init__(self, path: str) -> None:
        self.path = path
        self._fh: Optional[IO[str]] = None

    def __enter__(self) -> "SeedFileWriter":
        self._fh = open(self.path, "w", encoding="utf-8")
        return self

    def __exit__(self, *exc) -> None:
        if self._fh is not None:
            self._fh.close()
            self._fh = None

    def append(self, seed: int) -> None:
        if self._fh is None:
            raise RuntimeError("SeedFileWriter used outside its context")
        self._fh.write(f"{seed}\n")
        self._fh.flush()
