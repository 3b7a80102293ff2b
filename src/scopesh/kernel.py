# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
ScopeSh kernel.

Core session state and engine:
- ShellContext: the state every component shares (registry, scopes,
  plugin host, working directory, output callbacks)
- Kernel: wires the context, seeds built-ins and help topics, starts
  plugins and hands input lines to the execution pipeline

Important boundary:
- Kernel does not load YAML or discover defaults.
- Kernel consumes the injected ConfigModel, ShellStore and Executor.
"""

from __future__ import annotations

import os
import traceback
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

from loguru import logger

from . import config as cfg_module
from .commands import BUILTINS
from .config import ANSI_COLORS
from .interfaces import ConfigModel, Executor, Interviewer, ShellStore
from .interfaces import StdIOInterviewer
from .models import OUTPUT_INHERIT
from .pipeline import ExecutionPipeline
from .plugins import PluginHost
from .registry import BuiltinHandler, CommandRegistry
from .scope import AliasScope, VariableScope


def write_crash_log(
    error: Exception,
    raw_command: str = "",
    cwd: str = "",
    db_path: Path | None = None,
) -> None:
    """Write an entry to the crash log.

    Logs unhandled exceptions or critical failures.
    Only creates the log directory when actually needed.
    Appends to crash.log (never overwrites).
    """
    try:
        logs_dir = cfg_module.logs_dir(cfg_module.get_data_root())
        logs_dir.mkdir(parents=True, exist_ok=True)

        crash_log_path = logs_dir / "crash.log"

        timestamp = datetime.now().isoformat()
        lines = [f"{timestamp}"]

        if raw_command:
            lines.append(f"raw={raw_command}")
        if cwd:
            lines.append(f"cwd={cwd}")
        if db_path:
            lines.append(f"db_path={db_path}")

        lines.append(f"error={type(error).__name__}: {error}")
        lines.append("traceback:")
        lines.append(traceback.format_exc())
        lines.append("----")

        with crash_log_path.open("a", encoding="utf-8") as f:
            f.write("\n".join(lines) + "\n")

    except OSError:
        # Already in an error state; the session must go on
        pass


@dataclass
class ShellContext:
    """State shared by the pipeline, the built-ins and the plugin host."""

    store: ShellStore
    executor: Executor
    config: ConfigModel

    registry: CommandRegistry = field(default_factory=CommandRegistry)
    interviewer: Interviewer = field(default_factory=StdIOInterviewer)

    cwd: str = field(default_factory=os.getcwd)
    prev_cwd: str | None = None

    # Line remembered for "."
    last_line: str = ""

    running: bool = False
    exit_status: int = 0
    exit_code: int = 0

    # Output mode of the alias being executed
    redirect: str = OUTPUT_INHERIT

    output_fn: Callable[[str], None] | None = None
    error_fn: Callable[[str], None] | None = None

    aliases: AliasScope = field(init=False)
    variables: VariableScope = field(init=False)
    plugins: PluginHost = field(init=False)

    def __post_init__(self) -> None:
        self.aliases = AliasScope(self.store)
        self.variables = VariableScope(self.store)
        self.plugins = PluginHost(self)

    def change_directory(self, target: str) -> None:
        """Move to ``target`` and recompute aliases and variables."""
        self.prev_cwd = self.cwd
        self.cwd = target
        os.environ["OLDPWD"] = self.prev_cwd
        os.environ["PWD"] = target
        self.recompute_scope()

    def recompute_scope(self) -> None:
        self.aliases.recompute(self.cwd)
        self.variables.recompute(self.cwd)


@dataclass
class Kernel:
    """ScopeSh session engine."""

    store: ShellStore
    executor: Executor
    config: ConfigModel

    cwd: str = field(default_factory=os.getcwd)
    interviewer: Interviewer | None = None

    output_fn: Callable[[str], None] | None = None
    error_fn: Callable[[str], None] | None = None

    context: ShellContext = field(init=False)
    pipeline: ExecutionPipeline = field(init=False)

    def __post_init__(self) -> None:
        self.context = ShellContext(
            store=self.store,
            executor=self.executor,
            config=self.config,
            interviewer=self.interviewer or StdIOInterviewer(),
            cwd=os.path.normpath(self.cwd),
            output_fn=self.output_fn,
            error_fn=self.error_fn,
        )
        self.pipeline = ExecutionPipeline(self.context)
        for name, func in BUILTINS.items():
            self.context.registry.register(name, BuiltinHandler(func))

    # -----------------------
    # Output wiring
    # -----------------------

    def set_output(
        self,
        output_fn: Callable[[str], None] | None,
        error_fn: Callable[[str], None] | None,
    ) -> None:
        """Route shell and plugin output (used by the UI)."""
        self.output_fn = self.context.output_fn = output_fn
        self.error_fn = self.context.error_fn = error_fn

    @property
    def running(self) -> bool:
        return self.context.running

    @property
    def exit_code(self) -> int:
        return self.context.exit_code

    # -----------------------
    # UI helper hooks
    # -----------------------

    def command_names(self) -> list[str]:
        """Registry names plus aliases in scope, for completion."""
        return sorted(
            set(self.context.registry.names()) |
            set(self.context.aliases.names())
        )

    def list_alias_completions(self) -> list[dict[str, str]]:
        """Used by prompt_toolkit UI for completion menus.

        Returns:
            [{"key": "<alias>", "expanded": "<commands>"}...]
        """
        return [
            {"key": a.name, "expanded": "; ".join(a.lines)}
            for a in self.context.aliases.list()
        ]

    def expand_alias(self, token: str) -> str | None:
        """Used by UI bottom toolbar to preview expansion."""
        if not token:
            return None
        alias = self.context.aliases.lookup(token.strip())
        if alias is None:
            return None
        return "; ".join(alias.lines)

    # -----------------------
    # Session
    # -----------------------

    def start(self) -> str:
        """Start a session and return the welcome text."""
        self.context.running = True
        self._seed_help()
        self.context.recompute_scope()
        self.context.plugins.init_all()
        logger.info("Session started in {}", self.context.cwd)

        sys_cfg = self.config.system or {}
        welcome = sys_cfg.get("welcome") or {}
        msg = welcome.get("message") if isinstance(welcome, dict) else None
        return msg.strip() if isinstance(msg, str) else ""

    def _seed_help(self) -> None:
        """Store shipped help topics, never overwriting plugin topics."""
        for topic, entry in (self.config.help or {}).items():
            if not isinstance(entry, dict):
                continue
            existing = self.store.get_help(str(topic))
            if existing is not None and existing.get("plugin"):
                continue
            self.store.set_help(
                str(topic),
                str(entry.get("usage", "")),
                str(entry.get("content", "")),
            )

    def prompt(self) -> str:
        """Return the current prompt string with ANSI colors."""
        prompt_cfg = (self.config.system or {}).get("prompt") or {}
        path_color = ANSI_COLORS.get(
            prompt_cfg.get("path_color", "cyan"), ANSI_COLORS["reset"]
        )
        caret_key = (
            prompt_cfg.get("error_color", "red")
            if self.context.exit_status != 0
            else prompt_cfg.get("caret_color", "pink")
        )
        caret_color = ANSI_COLORS.get(caret_key, ANSI_COLORS["reset"])
        reset = ANSI_COLORS["reset"]

        cwd = self.context.cwd
        home = os.path.expanduser("~")
        if cwd == home or cwd.startswith(home + os.sep):
            cwd = "~" + cwd[len(home):]

        return f"{path_color}{cwd}{reset}{caret_color}>{reset}"

    # -----------------------
    # Command handling
    # -----------------------

    def handle_command(self, line: str) -> int:
        """Execute one input line and return its exit status."""
        status = self.pipeline.run(line)
        self._remember(line, status)
        return status

    def _remember(self, line: str, status: int) -> None:
        """Add the line to the command history."""
        text = line.strip()
        if not text:
            return
        save_invalid = bool(self.config.get_path("history.save_invalid", False))
        if status != 0 and not save_invalid:
            return
        try:
            length = int(self.config.get_path("history.length", 500))
        except (TypeError, ValueError):
            length = 500
        self.store.add_history(text, length)
