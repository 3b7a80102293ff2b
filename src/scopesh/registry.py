# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Command name -> handler dispatch.

Handlers are one of two variants sharing ``execute(arguments, context)``:
- BuiltinHandler wraps a Python function shipped with the shell
- PluginTrampoline re-invokes a plugin process with the command name

Policy:
- register() never overwrites, whatever the origin of the existing entry
- the reserved names (cd, exit, set, unset, exec) can only be replaced by
  callers that pass allow_reserved=True; plugins never do
- other built-ins may be replaced by a plugin; the built-in handler is
  kept and comes back when the plugin entry is removed
- built-ins can never be unregistered
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING, Union

from loguru import logger

from .errors import AlreadyExists, Forbidden, NotFound

if TYPE_CHECKING:
    from .kernel import ShellContext  # pragma: no cover

RESERVED: frozenset[str] = frozenset({"cd", "exit", "set", "unset", "exec"})


@dataclass(frozen=True)
class BuiltinHandler:
    func: Callable[[list[str], "ShellContext"], int]

    def available(self, context: ShellContext) -> bool:
        return True

    def execute(self, arguments: list[str], context: ShellContext) -> int:
        return self.func(arguments, context)


@dataclass(frozen=True)
class PluginTrampoline:
    """Runs command ``name`` by calling plugin ``plugin_id``."""

    plugin_id: int
    name: str

    def available(self, context: ShellContext) -> bool:
        return context.plugins.is_enabled(self.plugin_id)

    def execute(self, arguments: list[str], context: ShellContext) -> int:
        return context.plugins.call_command(
            self.plugin_id, self.name, arguments
        )


Handler = Union[BuiltinHandler, PluginTrampoline]


@dataclass(frozen=True)
class CommandEntry:
    name: str
    handler: Handler
    plugin_id: int | None = None
    # Shipped handler hidden while a plugin replaces it
    builtin: Handler | None = None

    @property
    def origin(self) -> str:
        return "builtin" if self.plugin_id is None else "plugin"


class CommandRegistry:
    """Flat map of command names to handlers."""

    def __init__(self) -> None:
        self._entries: dict[str, CommandEntry] = {}

    def __contains__(self, name: str) -> bool:
        return name in self._entries

    def register(
        self, name: str, handler: Handler, plugin_id: int | None = None
    ) -> None:
        if name in self._entries:
            raise AlreadyExists(f"Command '{name}' already exists")
        self._entries[name] = CommandEntry(
            name=name, handler=handler, plugin_id=plugin_id
        )
        logger.debug("Registered command {} (plugin={})", name, plugin_id)

    def replace(
        self,
        name: str,
        handler: Handler,
        plugin_id: int | None = None,
        allow_reserved: bool = False,
    ) -> None:
        entry = self._entries.get(name)
        if entry is None:
            raise NotFound(f"Command '{name}' does not exist")
        if name in RESERVED and not allow_reserved:
            raise Forbidden(f"Command '{name}' is a reserved built-in")

        builtin = entry.builtin
        if builtin is None and entry.plugin_id is None:
            builtin = entry.handler
        if plugin_id is None:
            builtin = None

        self._entries[name] = CommandEntry(
            name=name, handler=handler, plugin_id=plugin_id, builtin=builtin
        )
        logger.debug("Replaced command {} (plugin={})", name, plugin_id)

    def unregister(self, name: str) -> None:
        entry = self._entries.get(name)
        if entry is None:
            raise NotFound(f"Command '{name}' does not exist")
        if entry.plugin_id is None:
            raise Forbidden(f"Command '{name}' is a built-in")
        if entry.builtin is not None:
            self._entries[name] = CommandEntry(name=name, handler=entry.builtin)
        else:
            del self._entries[name]
        logger.debug("Unregistered command {}", name)

    def unregister_plugin(self, plugin_id: int) -> list[str]:
        """Drop every entry owned by a plugin. Returns the affected names."""
        owned = [
            e.name for e in self._entries.values() if e.plugin_id == plugin_id
        ]
        for name in owned:
            self.unregister(name)
        return owned

    def resolve(
        self, name: str, context: ShellContext | None = None
    ) -> Handler | None:
        """Return the handler for ``name`` or None for an unknown command.

        With a context, a handler whose plugin is disabled is skipped in
        favour of the built-in it replaced, if any.
        """
        entry = self._entries.get(name)
        if entry is None:
            return None
        if context is None or entry.handler.available(context):
            return entry.handler
        return entry.builtin

    def entry(self, name: str) -> CommandEntry | None:
        return self._entries.get(name)

    def names(self) -> list[str]:
        return sorted(self._entries)

    def is_known(self, name: str) -> bool:
        return name in self._entries
