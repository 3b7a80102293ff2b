# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Value types shared by the store, the scope resolver and the plugin host.
"""

from __future__ import annotations

from dataclasses import dataclass, field

OUTPUT_INHERIT = "stdout"
OUTPUT_STDERR = "stderr"


@dataclass(frozen=True)
class AliasDefinition:
    """A named, directory-scoped substitution for shell commands.

    ``commands`` holds one command line per text line. ``output`` is
    "stdout" (inherit), "stderr" or a file path to append to.
    """

    id: int
    name: str
    path: str
    recursive: bool
    commands: str
    description: str = ""
    output: str = OUTPUT_INHERIT

    @property
    def lines(self) -> list[str]:
        return [ln for ln in self.commands.splitlines() if ln.strip()]


@dataclass(frozen=True)
class VariableDefinition:
    """A directory-scoped environment variable."""

    id: int
    name: str
    path: str
    recursive: bool
    value: str
    description: str = ""


@dataclass(frozen=True)
class PluginRecord:
    id: int
    path: str
    enabled: bool
    name: str = ""
    description: str = ""
    api_version: str = ""
    calls: tuple[str, ...] = field(default_factory=tuple)

    def declares(self, call: str) -> bool:
        """True if the plugin listed ``call`` in its info answer."""
        wanted = call.lower()
        return any(c.lower() == wanted for c in self.calls)


@dataclass(frozen=True)
class PluginInfo:
    """Parsed answer of the mandatory ``info`` call."""

    name: str
    description: str
    api_version: str
    calls: tuple[str, ...]


@dataclass(frozen=True)
class PluginResponse:
    """Outcome of one plugin process invocation."""

    code: int
    answer: str = ""
    timed_out: bool = False

    @property
    def ok(self) -> bool:
        return self.code == 0 and not self.timed_out

    @property
    def unsupported(self) -> bool:
        return self.code == 2 and not self.timed_out


@dataclass(frozen=True)
class Segment:
    """One command of a ``&&``/``||`` chain.

    ``gate`` is None for the first segment, otherwise the operator that
    preceded it.
    """

    text: str
    gate: str | None = None
