#!/usr/bin/env python3
"""
config.py
=========
Application-wide configuration constants.

Values can be overridden via environment variables (see :mod:`main`).
This module is a thin, import-safe leaf; it never imports from
other project packages.
"""

# ── World extents (metres) ───────────────────────────────────────────────────
WORLD_X: float = 200.0
WORLD_Y: float = 100.0

# ── Entity ranges per generated map ──────────────────────────────────────────
MIN_JUNCTIONS: int = 5
MAX_JUNCTIONS: int = 25
MIN_OBSTACLES: int = 5
MAX_OBSTACLES: int = 10
MIN_CARS: int = 5
MAX_CARS: int = 20
MAX_ITERATIONS: int = 50          # placement attempts per obstacle / car

# ── Situation coverage ───────────────────────────────────────────────────────
NO_CATEGORIES: int = 6
REQ_COV_COUNT: int = 1
DEFAULT_ITERATION_LIMIT: int = 100

# ── Fault injection ──────────────────────────────────────────────────────────
DEFAULT_PERCENTAGE_FAULTS: float = 0.05

# ── Output ───────────────────────────────────────────────────────────────────
DEFAULT_OUT_DIR: str = "results"
LOG_FILE: str = "sitcov.log"
ORACLE_DEBUG_LOG: str = "oracle_debug.log"
