# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Protocol definitions for dependency injection.

These interfaces enable clean separation between the shell core,
database operations, command execution and interactive forms.
"""

from __future__ import annotations

from typing import Any, Protocol

from .models import AliasDefinition, PluginRecord, VariableDefinition


class ShellStore(Protocol):
    """Protocol for persistent storage operations."""

    def add_alias(self, alias: AliasDefinition) -> int:
        """Insert an alias and return its id."""
        ...

    def update_alias(self, alias_id: int, alias: AliasDefinition) -> bool:
        """Replace an alias; False if the id is unknown."""
        ...

    def delete_alias(self, alias_id: int) -> bool:
        ...

    def get_alias(self, alias_id: int) -> AliasDefinition | None:
        ...

    def list_aliases(self) -> list[AliasDefinition]:
        ...

    def add_variable(self, variable: VariableDefinition) -> int:
        ...

    def update_variable(
        self, variable_id: int, variable: VariableDefinition
    ) -> bool:
        ...

    def delete_variable(self, variable_id: int) -> bool:
        ...

    def get_variable(self, variable_id: int) -> VariableDefinition | None:
        ...

    def list_variables(self) -> list[VariableDefinition]:
        ...

    def add_plugin(
        self,
        path: str,
        name: str = "",
        description: str = "",
        api_version: str = "",
        calls: tuple[str, ...] = (),
        enabled: bool = False,
    ) -> int:
        ...

    def set_plugin_enabled(self, plugin_id: int, enabled: bool) -> bool:
        ...

    def update_plugin_info(
        self,
        plugin_id: int,
        name: str,
        description: str,
        api_version: str,
        calls: tuple[str, ...],
    ) -> bool:
        ...

    def delete_plugin(self, plugin_id: int) -> bool:
        ...

    def get_plugin(self, plugin_id: int) -> PluginRecord | None:
        ...

    def find_plugin_by_path(self, path: str) -> PluginRecord | None:
        ...

    def list_plugins(self) -> list[PluginRecord]:
        ...

    def set_option(
        self,
        name: str,
        value: str,
        description: str = "",
        value_type: str = "text",
    ) -> None:
        ...

    def get_option(self, name: str) -> str | None:
        ...

    def remove_option(self, name: str) -> bool:
        ...

    def set_help(
        self, topic: str, usage: str, content: str, plugin: str = ""
    ) -> None:
        ...

    def get_help(self, topic: str) -> dict[str, Any] | None:
        ...

    def delete_help(self, topic: str) -> bool:
        ...

    def delete_plugin_help(self, plugin_path: str) -> int:
        ...

    def list_help_topics(self) -> list[str]:
        ...

    def add_history(self, command: str, max_length: int = 500) -> None:
        """Record an entered command line."""
        ...

    def list_history(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Entries oldest first, at most the newest ``limit``."""
        ...

    def clear_history(self) -> int:
        ...


class Executor(Protocol):
    """Protocol for external program execution."""

    def run(
        self, command: str, cwd: str | None = None, output: str = "stdout"
    ) -> int:
        """Run a command line through the system shell.

        Returns:
            exit code
        """
        ...

    def run_argv(
        self, argv: list[str], cwd: str | None = None,
        output: str = "stdout"
    ) -> int:
        """Run a program directly, bypassing the system shell."""
        ...


class ConfigModel(Protocol):
    """Protocol for configuration access."""

    @property
    def system(self) -> dict[str, Any]:
        """System configuration."""
        ...

    @property
    def help(self) -> dict[str, dict[str, str]]:
        """Shipped help topics."""
        ...

    def get_path(self, path: str, default: Any = None) -> Any:
        """Dotted lookup."""
        ...


class Interviewer(Protocol):
    """Minimal interface for interactive forms."""

    def write(self, text: str) -> None: ...

    def ask(self, prompt: str) -> str: ...


class StdIOInterviewer:
    """Default interviewer for real CLI usage (input/print)."""

    def write(self, text: str) -> None:
        print(text)

    def ask(self, prompt: str) -> str:
        return input(prompt)
