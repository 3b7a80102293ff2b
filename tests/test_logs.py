# tests/test_logs.py
"""
Tests for the loguru sink setup.
"""

from __future__ import annotations

from pathlib import Path

import pytest
from loguru import logger

from scopesh.logs import setup_logging


@pytest.fixture(autouse=True)
def _reset_logger():
    yield
    logger.remove()


def test_setup_logging_writes_file(tmp_path: Path) -> None:
    log_path = setup_logging(tmp_path / "logs", debug=False)

    logger.info("plugin added")
    logger.debug("not at INFO level")
    logger.complete()

    text = log_path.read_text(encoding="utf-8")
    assert log_path.name == "scopesh.log"
    assert "plugin added" in text
    assert "not at INFO level" not in text


def test_setup_logging_debug_from_env(tmp_path: Path, monkeypatch) -> None:
    monkeypatch.setenv("SCOPESH_DEBUG", "1")
    log_path = setup_logging(tmp_path / "logs")

    logger.debug("segment skipped")
    logger.complete()

    assert "segment skipped" in log_path.read_text(encoding="utf-8")
