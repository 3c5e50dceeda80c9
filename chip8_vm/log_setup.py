"""
CHIP-8 VM: Logging Setup

Library modules only ever call logging.getLogger(__name__). Handlers are
installed here, and only by front ends (chip8kit.py, test harnesses).

Console output goes through rich's RichHandler; an optional log file
captures everything at DEBUG with the long format:
  <asctime> | <level> | <logger> | <func>:<line> | <message>
"""

from __future__ import annotations
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.logging import RichHandler

ROOT_LOGGER = "chip8_vm"

FILE_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


def setup_logging(
    name: str = ROOT_LOGGER,
    console_level: int = logging.WARNING,
    log_dir: Optional[Path] = None,
    log_file: Optional[Path] = None,
) -> logging.Logger:
    """Configure and return the package logger.

    log_file wins over log_dir; with log_dir a timestamped
    ``<log_dir>/<name>_YYYYMMDD_HHMMSS.log`` is created. With neither,
    only the console handler is installed.

    Calling twice returns the already-configured logger untouched.
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger
    logger.setLevel(logging.DEBUG)

    # ── Console handler: WARNING+ by default ──
    ch = RichHandler(
        level=console_level,
        show_time=True,
        show_path=False,
        markup=False,
        rich_tracebacks=True,
    )
    logger.addHandler(ch)

    # ── File handler: everything ──
    if log_file is None and log_dir is not None:
        log_dir = Path(log_dir)
        log_dir.mkdir(parents=True, exist_ok=True)
        ts = datetime.now().strftime("%Y%m%d_%H%M%S")
        log_file = log_dir / f"{name}_{ts}.log"

    if log_file is not None:
        log_file = Path(log_file)
        log_file.parent.mkdir(parents=True, exist_ok=True)
        fh = logging.FileHandler(str(log_file), encoding="utf-8")
        fh.setLevel(logging.DEBUG)
        fh.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=FILE_DATEFMT))
        logger.addHandler(fh)
        logger.info("Log file: %s", log_file)

    logger.debug("Logger initialized: %s (console level %s)",
                 name, logging.getLevelName(console_level))
    return logger


def level_from_verbosity(verbose: int, quiet: bool = False) -> int:
    """Map -v counts to a console level (same ladder as the CLI base)."""
    if quiet:
        return logging.ERROR
    if verbose <= 0:
        return logging.WARNING
    if verbose == 1:
        return logging.INFO
    return logging.DEBUG
