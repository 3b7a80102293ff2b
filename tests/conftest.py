# tests/conftest.py
"""
Shared fixtures: a real SQLiteStore in tmp_path, a recording executor,
a scripted interviewer and a kernel wired from them.

The environment is restored after every test because variable scopes and
``cd`` write to os.environ.
"""

from __future__ import annotations

import os
import stat
from pathlib import Path

import pytest

from scopesh import config as scopesh_config
from scopesh import db as scopesh_db
from scopesh.kernel import Kernel
from scopesh.store import SQLiteStore


class FakeExecutor:
    """Records every command; exit codes come from ``codes``."""

    def __init__(self, codes: dict[str, int] | None = None):
        self.codes = codes or {}
        self.calls: list[dict] = []

    def run(self, command: str, cwd=None, output: str = "stdout") -> int:
        self.calls.append({"command": command, "cwd": cwd, "output": output})
        return self.codes.get(command, 0)

    def run_argv(self, argv, cwd=None, output: str = "stdout") -> int:
        command = " ".join(argv)
        self.calls.append(
            {"command": command, "argv": list(argv), "cwd": cwd,
             "output": output}
        )
        return self.codes.get(command, 0)

    @property
    def commands(self) -> list[str]:
        return [c["command"] for c in self.calls]


class ScriptedInterviewer:
    """Answers form questions from a list; records everything shown."""

    def __init__(self, answers: list[str] | None = None):
        self.answers = list(answers or [])
        self.prompts: list[str] = []
        self.written: list[str] = []

    def write(self, text: str) -> None:
        self.written.append(text)

    def ask(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if not self.answers:
            raise EOFError
        return self.answers.pop(0)


def make_config(**sections) -> scopesh_config.YAMLConfig:
    """Packaged defaults with whole top-level sections replaced."""
    data = scopesh_config.load_defaults_yaml("system.yaml")
    data.update(sections)
    return scopesh_config.YAMLConfig(data)


def write_plugin(path: Path, body: str) -> Path:
    """Write an executable /bin/sh plugin script."""
    path.write_text("#!/bin/sh\n" + body, encoding="utf-8")
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture(autouse=True)
def _isolated_environ(tmp_path: Path):
    saved = dict(os.environ)
    os.environ["SCOPESH_DATA_HOME"] = str(tmp_path / "data")
    yield
    os.environ.clear()
    os.environ.update(saved)


@pytest.fixture
def tmp_db(tmp_path: Path) -> Path:
    return tmp_path / "test.db"


@pytest.fixture
def ensured_db(tmp_db: Path) -> Path:
    """Ensure schema via scopesh.db (the sole schema authority)."""
    scopesh_db.ensure_schema(tmp_db)
    return tmp_db


@pytest.fixture
def store(ensured_db: Path) -> SQLiteStore:
    return SQLiteStore(ensured_db)


@pytest.fixture
def executor() -> FakeExecutor:
    return FakeExecutor()


@pytest.fixture
def interviewer() -> ScriptedInterviewer:
    return ScriptedInterviewer()


@pytest.fixture
def workdir(tmp_path: Path) -> Path:
    d = tmp_path / "work"
    d.mkdir()
    return d


@pytest.fixture
def output() -> dict[str, list[str]]:
    return {"out": [], "err": []}


@pytest.fixture
def kernel(store, executor, interviewer, workdir, output) -> Kernel:
    k = Kernel(
        store=store,
        executor=executor,
        config=make_config(),
        cwd=str(workdir),
        interviewer=interviewer,
        output_fn=output["out"].append,
        error_fn=output["err"].append,
    )
    k.start()
    return k
