# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Log sink configuration.

The shell owns the terminal, so nothing is logged to stdout/stderr; all
records go to <data_root>/scopesh/logs/scopesh.log.
"""

from __future__ import annotations

import os
from pathlib import Path

from loguru import logger

LOG_FORMAT = (
    "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | "
    "{name}:{function}:{line} - {message}"
)


def setup_logging(log_dir: Path, debug: bool | None = None) -> Path:
    """Replace loguru's default stderr sink with a rotating file sink.

    Args:
        log_dir: Directory that receives scopesh.log
        debug: Force DEBUG level; defaults to SCOPESH_DEBUG=1

    Returns:
        Path of the log file
    """
    if debug is None:
        debug = os.environ.get("SCOPESH_DEBUG") == "1"

    log_dir.mkdir(parents=True, exist_ok=True)
    log_path = log_dir / "scopesh.log"

    logger.remove()
    logger.add(
        str(log_path),
        level="DEBUG" if debug else "INFO",
        format=LOG_FORMAT,
        rotation="1 MB",
        retention=5,
        backtrace=True,
        diagnose=False,
    )
    return log_path
