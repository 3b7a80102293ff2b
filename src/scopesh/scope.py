# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Directory-scoped aliases and variables.

A definition is in scope when its path equals the current directory, or
when it is recursive and its path is an ancestor of the current directory.
Paths are compared component by component, so /home/use never covers
/home/user.

Duplicate names in scope are resolved differently per kind:
- aliases: the lowest id wins, later duplicates are shadowed
- variables: the highest id wins, so a newer variable overrides the value
  of an older one without deleting it
"""

from __future__ import annotations

import os
import re
from dataclasses import replace
from pathlib import PurePath
from typing import Generic, TypeVar

from loguru import logger

from .errors import AlreadyExists, NotFound, ValidationError
from .interfaces import ShellStore
from .models import (
    OUTPUT_INHERIT,
    OUTPUT_STDERR,
    AliasDefinition,
    VariableDefinition,
)

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_]+$")

D = TypeVar("D", AliasDefinition, VariableDefinition)


def in_scope(path: str, recursive: bool, directory: str) -> bool:
    """True if a definition at ``path`` applies to ``directory``."""
    own = PurePath(os.path.normpath(path)).parts
    cur = PurePath(os.path.normpath(directory)).parts
    if own == cur:
        return True
    return recursive and cur[:len(own)] == own


class ScopedDefinitions(Generic[D]):
    """Shared recompute/lookup/delete logic over one definition kind."""

    kind = "definition"
    lowest_id_wins = True

    def __init__(self, store: ShellStore) -> None:
        self.store = store
        self.directory: str | None = None
        self._winners: dict[str, D] = {}

    # --- storage hooks ---

    def _load(self) -> list[D]:
        raise NotImplementedError

    def _get(self, def_id: int) -> D | None:
        raise NotImplementedError

    def _insert(self, definition: D) -> int:
        raise NotImplementedError

    def _update(self, def_id: int, definition: D) -> bool:
        raise NotImplementedError

    def _remove(self, def_id: int) -> bool:
        raise NotImplementedError

    def _applied(self) -> None:
        """Called after every recompute with the new winners in place."""

    # --- public API ---

    def recompute(self, directory: str | None = None) -> dict[str, int]:
        """Rebuild the in-scope name -> id map for ``directory``.

        Without an argument the last directory is reused.
        """
        if directory is not None:
            self.directory = directory
        if self.directory is None:
            self.directory = os.getcwd()

        winners: dict[str, D] = {}
        for definition in self._load():
            if not in_scope(
                definition.path, definition.recursive, self.directory
            ):
                continue
            if self.lowest_id_wins and definition.name in winners:
                continue
            winners[definition.name] = definition

        self._winners = winners
        self._applied()
        logger.debug(
            "{} scope for {}: {}", self.kind, self.directory,
            sorted(winners),
        )
        return {name: d.id for name, d in winners.items()}

    def lookup(self, name: str) -> D | None:
        return self._winners.get(name)

    def names(self) -> list[str]:
        return sorted(self._winners)

    def list(self, in_scope_only: bool = True) -> list[D]:
        """Definitions ordered by id; only the winning ones by default."""
        if in_scope_only:
            return sorted(self._winners.values(), key=lambda d: d.id)
        return self._load()

    def get(self, def_id: int) -> D:
        definition = self._get(def_id)
        if definition is None:
            raise NotFound(f"The {self.kind} with index {def_id} not found")
        return definition

    def delete(self, def_id: int) -> None:
        if not self._remove(def_id):
            raise NotFound(f"The {self.kind} with index {def_id} not found")
        logger.info("Deleted {} {}", self.kind, def_id)
        self.recompute()

    def add(self, definition: D) -> int:
        self._validate(definition, def_id=None)
        def_id = self._insert(definition)
        logger.info("Added {} {} ({})", self.kind, definition.name, def_id)
        self.recompute()
        return def_id

    def edit(self, def_id: int, definition: D) -> None:
        """Replace every field of an existing definition."""
        self.get(def_id)
        self._validate(definition, def_id=def_id)
        self._update(def_id, replace(definition, id=def_id))
        logger.info("Edited {} {}", self.kind, def_id)
        self.recompute()

    # --- validation ---

    def _validate(self, definition: D, def_id: int | None) -> None:
        if not NAME_PATTERN.match(definition.name or ""):
            raise ValidationError(
                f"Invalid {self.kind} name '{definition.name}'. "
                "Use letters, digits and underscores only."
            )
        if not os.path.isabs(definition.path):
            raise ValidationError(
                f"Path '{definition.path}' must be absolute"
            )
        if not os.path.isdir(definition.path):
            raise ValidationError(
                f"Path '{definition.path}' does not exist"
            )


class AliasScope(ScopedDefinitions[AliasDefinition]):
    kind = "alias"
    lowest_id_wins = True

    def _load(self) -> list[AliasDefinition]:
        return self.store.list_aliases()

    def _get(self, def_id: int) -> AliasDefinition | None:
        return self.store.get_alias(def_id)

    def _insert(self, definition: AliasDefinition) -> int:
        return self.store.add_alias(definition)

    def _update(self, def_id: int, definition: AliasDefinition) -> bool:
        return self.store.update_alias(def_id, definition)

    def _remove(self, def_id: int) -> bool:
        return self.store.delete_alias(def_id)

    def _validate(
        self, definition: AliasDefinition, def_id: int | None
    ) -> None:
        super()._validate(definition, def_id)
        if not definition.lines:
            raise ValidationError("Alias must contain at least one command")
        if not definition.output:
            raise ValidationError(
                "Output must be 'stdout', 'stderr' or a file path"
            )
        if definition.output not in (OUTPUT_INHERIT, OUTPUT_STDERR):
            parent = os.path.dirname(os.path.abspath(definition.output))
            if not os.path.isdir(parent):
                raise ValidationError(
                    f"Directory for output file '{definition.output}' "
                    "does not exist"
                )
        wanted = os.path.normpath(definition.path)
        for existing in self._load():
            if existing.id == def_id:
                continue
            if (existing.name == definition.name and
                    os.path.normpath(existing.path) == wanted):
                raise AlreadyExists(
                    f"There is an alias with name '{definition.name}' "
                    f"for path '{definition.path}'"
                )


class VariableScope(ScopedDefinitions[VariableDefinition]):
    """Variables; winners are exported to ``os.environ`` on recompute.

    Values may reference other environment variables as ``$NAME`` or
    ``${NAME}``. When a variable leaves scope the environment value it
    shadowed (if any) is restored.
    """

    kind = "variable"
    lowest_id_wins = False

    def __init__(self, store: ShellStore) -> None:
        super().__init__(store)
        self._exported: set[str] = set()
        self._shadowed: dict[str, str | None] = {}

    def _load(self) -> list[VariableDefinition]:
        return self.store.list_variables()

    def _get(self, def_id: int) -> VariableDefinition | None:
        return self.store.get_variable(def_id)

    def _insert(self, definition: VariableDefinition) -> int:
        return self.store.add_variable(definition)

    def _update(self, def_id: int, definition: VariableDefinition) -> bool:
        return self.store.update_variable(def_id, definition)

    def _remove(self, def_id: int) -> bool:
        return self.store.delete_variable(def_id)

    def _applied(self) -> None:
        # Restore first so "$PATH:/extra" never expands twice
        for name in self._exported:
            previous = self._shadowed.pop(name, None)
            if previous is None:
                os.environ.pop(name, None)
            else:
                os.environ[name] = previous

        for definition in sorted(self._winners.values(), key=lambda d: d.id):
            self._shadowed[definition.name] = os.environ.get(definition.name)
            os.environ[definition.name] = os.path.expandvars(
                definition.value
            )

        self._exported = set(self._winners)
