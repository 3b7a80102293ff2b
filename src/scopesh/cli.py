# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
ScopeSh CLI entry point and REPL loop.

Design:
- CLI owns process startup, DB resolution and log sink setup.
- Kernel is the session engine (config+store+executor injected).
- UI is terminal-friendly PromptSession (keeps scrollback + copy/select).
"""

from __future__ import annotations

import argparse
import os
import sys
from collections.abc import Callable
from pathlib import Path

from loguru import logger

from . import __version__, config, db
from .executor import SubprocessExecutor
from .kernel import Kernel, write_crash_log
from .logs import setup_logging
from .store import SQLiteStore
from .ui import PromptToolkitUI
from .utils import is_shell_input_incomplete

USAGE = """\
Usage: scopesh [--db PATH] [-c COMMAND] [-h|--help] [-v|--version]

  --db PATH     use PATH as the database (default: <data_root>/scopesh/scopesh.db)
  -c COMMAND    run COMMAND and exit with its status
  -h, --help    show this help and exit
  -v, --version show the version and exit
"""

CONTINUATION_PROMPT = (
    config.ANSI_COLORS["cyan"] + "..." +
    config.ANSI_COLORS["pink"] + ">" +
    config.ANSI_COLORS["reset"]
)


class UsageError(Exception):
    """Invalid command-line arguments."""


class _ArgumentParser(argparse.ArgumentParser):
    """Raise UsageError instead of printing and exiting."""

    def error(self, message: str):
        raise UsageError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(
        prog="scopesh", add_help=False, allow_abbrev=False
    )
    parser.add_argument("--db", default=None, metavar="PATH")
    parser.add_argument("-c", dest="command", default=None, metavar="COMMAND")
    parser.add_argument("-h", "--help", action="store_true")
    parser.add_argument("-v", "--version", action="store_true")
    return parser


def parse_args(argv: list[str]) -> dict[str, str | None]:
    """Parse the process arguments.

    Returns a dict with keys ``action`` ("run", "help", "version"),
    ``db`` and ``command``.
    """
    ns, extra = _build_parser().parse_known_args(argv)
    if extra:
        raise UsageError(f"Unknown argument: {extra[0]}")

    action = "run"
    if ns.help:
        action = "help"
    elif ns.version:
        action = "version"
    return {"action": action, "db": ns.db, "command": ns.command}


def _read_continued(
    line: str,
    ui: PromptToolkitUI | None,
    input_fn: Callable[[str], str],
) -> str:
    """Keep reading lines while quotes are open or a backslash ends the line."""
    while is_shell_input_incomplete(line):
        if ui is not None:
            continuation = ui.read(CONTINUATION_PROMPT)
        else:
            continuation = input_fn(CONTINUATION_PROMPT + " ")
        line = line + "\n" + continuation
    return line


def run_repl(
    kernel: Kernel,
    ui: PromptToolkitUI | None = None,
    input_fn: Callable[[str], str] = input,
    output_fn: Callable[[str], None] = print,
) -> None:
    """Run the standard ScopeSh REPL loop."""

    def emit(msg: str) -> None:
        if ui is not None:
            ui.write(msg)
        else:
            output_fn(msg)

    while kernel.running:
        try:
            prompt = kernel.prompt()

            if ui is not None:
                line = ui.read(prompt)
            else:
                line = input_fn(prompt + " ")

            line = (line or "").strip()
            if not line:
                continue

            try:
                line = _read_continued(line, ui, input_fn)
            except (KeyboardInterrupt, EOFError):
                # User aborted the continuation - run nothing
                emit("\n[Cancelled]\n")
                continue

            try:
                kernel.handle_command(line)
            except Exception as e:
                # Unhandled exception - write crash log
                logger.exception("Unhandled exception for '{}'", line)
                write_crash_log(
                    e,
                    raw_command=line,
                    cwd=kernel.context.cwd,
                    db_path=getattr(kernel.store, "db_path", None),
                )
                emit(
                    f"[ERROR] Unhandled exception: "
                    f"{type(e).__name__}: {e}\n"
                )
                # Continue session

        except (KeyboardInterrupt, EOFError):
            emit("\nBye!\n")
            break


def _stdout_write(text: str) -> None:
    sys.stdout.write(text)
    sys.stdout.flush()


def _stderr_write(text: str) -> None:
    sys.stderr.write(text)
    sys.stderr.flush()


def build_kernel(db_path: Path | None = None) -> Kernel:
    """Wire config, store and executor into a Kernel."""
    root = config.get_data_root()
    setup_logging(config.logs_dir(root))

    if db_path is None:
        db_path = config.default_db_path(root)
    db.ensure_schema(db_path)
    store = SQLiteStore(db_path)

    # Explicit wiring: config + executor + store injected into kernel
    cfg = config.load_system_config()
    executor = SubprocessExecutor(
        force_color=bool(cfg.get_path("execution.force_color", False)),
        timeout=int(cfg.get_path("execution.timeout", 0) or 0),
    )
    logger.info("Using database {}", db_path)
    return Kernel(store=store, executor=executor, config=cfg)


def main(argv: list[str] | None = None) -> int:
    """Main entry point for ScopeSh CLI."""
    try:
        opts = parse_args(sys.argv[1:] if argv is None else argv)
    except UsageError as e:
        _stderr_write(f"scopesh: {e}\n{USAGE}")
        return 2

    if opts["action"] == "help":
        _stdout_write(USAGE)
        return 0
    if opts["action"] == "version":
        _stdout_write(f"scopesh {__version__}\n")
        return 0

    db_path = Path(opts["db"]).expanduser() if opts["db"] else None
    kernel = build_kernel(db_path)

    # One-shot mode: run a single line and exit with its status
    if opts["command"] is not None:
        kernel.set_output(_stdout_write, _stderr_write)
        kernel.start()
        status = kernel.handle_command(opts["command"])
        return kernel.exit_code if not kernel.running else status

    # If user explicitly disables prompt_toolkit UI:
    if os.environ.get("SCOPESH_LEGACY_UI") == "1":
        kernel.set_output(_stdout_write, _stderr_write)
        start_output = kernel.start()
        if start_output:
            print(start_output)
        run_repl(kernel, output_fn=_stdout_write)
        return kernel.exit_code

    # Default: PromptToolkitUI (keeps terminal scrollback/copy/select)
    ui = PromptToolkitUI(kernel)

    # Route shell, plugin and form output through the UI
    kernel.set_output(ui.write, ui.write)
    kernel.context.interviewer = ui

    start_output = kernel.start()
    if start_output:
        ui.write(start_output)
        if not start_output.endswith("\n"):
            ui.write("\n")

    run_repl(kernel, ui=ui)
    return kernel.exit_code
