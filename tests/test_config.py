# tests/test_config.py
"""
Tests for configuration loading and data root resolution.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from scopesh import config


def test_get_data_root_uses_env(monkeypatch, tmp_path: Path) -> None:
    target = tmp_path / "custom"
    monkeypatch.setenv("SCOPESH_DATA_HOME", str(target))

    root = config.get_data_root()

    assert root == target
    assert root.is_dir()


def test_get_data_root_defaults_to_local_share(monkeypatch, tmp_path) -> None:
    monkeypatch.delenv("SCOPESH_DATA_HOME", raising=False)
    monkeypatch.setenv("HOME", str(tmp_path))

    assert config.get_data_root() == tmp_path / ".local" / "share"


def test_db_and_logs_paths(tmp_path: Path) -> None:
    assert config.default_db_path(tmp_path) == (
        tmp_path / "scopesh" / "scopesh.db"
    )
    assert config.logs_dir(tmp_path) == tmp_path / "scopesh" / "logs"


def test_system_defaults_load() -> None:
    cfg = config.load_system_config()

    assert cfg.system["name"] == "ScopeSh"
    assert cfg.get_path("plugins.timeout") == 10
    assert cfg.get_path("plugins.min_api_version") == "0.2"
    assert cfg.get_path("aliases.max_depth") == 10
    assert cfg.get_path("execution.timeout") == 0
    assert cfg.get_path("history.length") == 500
    assert cfg.get_path("history.amount") == 20
    assert cfg.get_path("history.save_invalid") is False


def test_system_defaults_ship_builtin_help() -> None:
    help_cfg = config.load_system_config().help
    for topic in (
        "cd", "exit", "set", "unset", "exec", "alias", "plugin", "history"
    ):
        assert topic in help_cfg
        assert help_cfg[topic]["usage"]


def test_get_path_missing_returns_default() -> None:
    cfg = config.YAMLConfig({"a": {"b": 1}})
    assert cfg.get_path("a.b") == 1
    assert cfg.get_path("a.c", "x") == "x"
    assert cfg.get_path("a.b.c", 5) == 5
    assert cfg.get_path("", 7) == 7


def test_missing_defaults_file_raises() -> None:
    with pytest.raises(FileNotFoundError):
        config.load_defaults_yaml("nope.yaml")


def test_colorize() -> None:
    assert config.colorize("x", "red") == "\033[31mx\033[0m"
    assert config.colorize("x", "no-such-color") == "x"
    assert config.colorize("x", "") == "x"
