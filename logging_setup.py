#!/usr/bin/env python3
"""
logging_setup.py
================
Configures the root logger with a console handler and a rotating file
handler (``sitcov.log``, 1 MB, 2 backups).

Call :func:`setup_logging` once at startup, from :mod:`main`, before a
search or replay starts emitting records.
"""

import logging
import os
from logging.handlers import RotatingFileHandler

from config import LOG_FILE, ORACLE_DEBUG_LOG


def setup_logging(level: int = logging.INFO, log_dir: str = ".") -> None:
    """Apply a unified log format to both console and file output.

    Parameters
    ----------
    level : int
        Minimum severity level (e.g. ``logging.DEBUG``, ``logging.INFO``).
    log_dir : str
        Directory receiving the log files; created when missing.
    """
    os.makedirs(log_dir, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)

    fmt = logging.Formatter(
        "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
    )

    console = logging.StreamHandler()
    console.setLevel(level)
    console.setFormatter(fmt)

    rotating = RotatingFileHandler(
        os.path.join(log_dir, LOG_FILE), maxBytes=1_000_000, backupCount=2
    )
    rotating.setLevel(level)
    rotating.setFormatter(fmt)

    root.handlers.clear()
    root.addHandler(console)
    root.addHandler(rotating)

    # ── Dedicated debug file for per-tick oracle and arbiter traces ───
    trace = RotatingFileHandler(
        os.path.join(log_dir, ORACLE_DEBUG_LOG), maxBytes=5_000_000, backupCount=2
    )
    trace.setLevel(logging.DEBUG)
    trace.setFormatter(fmt)
    for name in ("oracle", "arbiter"):
        traced = logging.getLogger(name)
        traced.setLevel(logging.DEBUG)
        traced.handlers.clear()
        traced.addHandler(trace)
