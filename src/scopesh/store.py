# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
SQLite-backed storage implementation for ScopeSh.

Handles all database operations: aliases, variables, plugins, options,
help topics and command history.
"""

from __future__ import annotations

import sqlite3
from pathlib import Path
from typing import Any

from .models import AliasDefinition, PluginRecord, VariableDefinition


def _alias_from_row(row: tuple) -> AliasDefinition:
    return AliasDefinition(
        id=row[0],
        name=row[1],
        path=row[2],
        recursive=bool(row[3]),
        commands=row[4],
        description=row[5] or "",
        output=row[6] or "stdout",
    )


def _variable_from_row(row: tuple) -> VariableDefinition:
    return VariableDefinition(
        id=row[0],
        name=row[1],
        path=row[2],
        recursive=bool(row[3]),
        value=row[4],
        description=row[5] or "",
    )


def _plugin_from_row(row: tuple) -> PluginRecord:
    calls = tuple(c for c in (row[6] or "").split(",") if c)
    return PluginRecord(
        id=row[0],
        path=row[1],
        enabled=bool(row[2]),
        name=row[3] or "",
        description=row[4] or "",
        api_version=row[5] or "",
        calls=calls,
    )


_ALIAS_COLUMNS = "id, name, path, recursive, commands, description, output"
_VARIABLE_COLUMNS = "id, name, path, recursive, value, description"
_PLUGIN_COLUMNS = (
    "id, location, enabled, name, description, api_version, calls"
)


class SQLiteStore:
    """SQLite implementation of ShellStore protocol."""

    def __init__(self, db_path: Path):
        """Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (must have schema)

        Note:
            Store does NOT create schema. Schema must be created by
            db.ensure_schema() before constructing SQLiteStore.
        """
        self.db_path = db_path

        db_path.parent.mkdir(parents=True, exist_ok=True)

    # ----------------------------------------------------------------
    # Alias operations
    # ----------------------------------------------------------------

    def add_alias(self, alias: AliasDefinition) -> int:
        """Insert an alias and return its new id."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                """
                INSERT INTO aliases
                (name, path, recursive, commands, description, output)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    alias.name, alias.path, int(alias.recursive),
                    alias.commands, alias.description, alias.output,
                ),
            )
            conn.commit()
            return int(cur.lastrowid)
        finally:
            conn.close()

    def update_alias(self, alias_id: int, alias: AliasDefinition) -> bool:
        """Replace every field of an alias. Returns False if absent."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                """
                UPDATE aliases
                SET name = ?, path = ?, recursive = ?, commands = ?,
                    description = ?, output = ?
                WHERE id = ?
                """,
                (
                    alias.name, alias.path, int(alias.recursive),
                    alias.commands, alias.description, alias.output,
                    alias_id,
                ),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def delete_alias(self, alias_id: int) -> bool:
        """Remove an alias (hard delete). Returns False if absent."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                "DELETE FROM aliases WHERE id = ?", (alias_id,)
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def get_alias(self, alias_id: int) -> AliasDefinition | None:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                f"SELECT {_ALIAS_COLUMNS} FROM aliases WHERE id = ?",
                (alias_id,),
            )
            row = cur.fetchone()
            return _alias_from_row(row) if row else None
        finally:
            conn.close()

    def list_aliases(self) -> list[AliasDefinition]:
        """List every alias, ordered by id."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                f"SELECT {_ALIAS_COLUMNS} FROM aliases ORDER BY id"
            )
            return [_alias_from_row(row) for row in cur.fetchall()]
        finally:
            conn.close()

    # ----------------------------------------------------------------
    # Variable operations
    # ----------------------------------------------------------------

    def add_variable(self, variable: VariableDefinition) -> int:
        """Insert a variable and return its new id."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                """
                INSERT INTO variables
                (name, path, recursive, value, description)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    variable.name, variable.path, int(variable.recursive),
                    variable.value, variable.description,
                ),
            )
            conn.commit()
            return int(cur.lastrowid)
        finally:
            conn.close()

    def update_variable(
        self, variable_id: int, variable: VariableDefinition
    ) -> bool:
        """Replace every field of a variable. Returns False if absent."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                """
                UPDATE variables
                SET name = ?, path = ?, recursive = ?, value = ?,
                    description = ?
                WHERE id = ?
                """,
                (
                    variable.name, variable.path, int(variable.recursive),
                    variable.value, variable.description, variable_id,
                ),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def delete_variable(self, variable_id: int) -> bool:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                "DELETE FROM variables WHERE id = ?", (variable_id,)
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def get_variable(self, variable_id: int) -> VariableDefinition | None:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                f"SELECT {_VARIABLE_COLUMNS} FROM variables WHERE id = ?",
                (variable_id,),
            )
            row = cur.fetchone()
            return _variable_from_row(row) if row else None
        finally:
            conn.close()

    def list_variables(self) -> list[VariableDefinition]:
        """List every variable, ordered by id."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                f"SELECT {_VARIABLE_COLUMNS} FROM variables ORDER BY id"
            )
            return [_variable_from_row(row) for row in cur.fetchall()]
        finally:
            conn.close()

    # ----------------------------------------------------------------
    # Plugin operations
    # ----------------------------------------------------------------

    def add_plugin(
        self,
        path: str,
        name: str = "",
        description: str = "",
        api_version: str = "",
        calls: tuple[str, ...] = (),
        enabled: bool = False,
    ) -> int:
        """Insert a plugin record and return its new id."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                """
                INSERT INTO plugins
                (location, enabled, name, description, api_version, calls)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (
                    path, int(enabled), name, description, api_version,
                    ",".join(calls),
                ),
            )
            conn.commit()
            return int(cur.lastrowid)
        finally:
            conn.close()

    def set_plugin_enabled(self, plugin_id: int, enabled: bool) -> bool:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                "UPDATE plugins SET enabled = ? WHERE id = ?",
                (int(enabled), plugin_id),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def update_plugin_info(
        self,
        plugin_id: int,
        name: str,
        description: str,
        api_version: str,
        calls: tuple[str, ...],
    ) -> bool:
        """Refresh the metadata taken from a plugin's info answer."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                """
                UPDATE plugins
                SET name = ?, description = ?, api_version = ?, calls = ?
                WHERE id = ?
                """,
                (name, description, api_version, ",".join(calls), plugin_id),
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def delete_plugin(self, plugin_id: int) -> bool:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                "DELETE FROM plugins WHERE id = ?", (plugin_id,)
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def get_plugin(self, plugin_id: int) -> PluginRecord | None:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                f"SELECT {_PLUGIN_COLUMNS} FROM plugins WHERE id = ?",
                (plugin_id,),
            )
            row = cur.fetchone()
            return _plugin_from_row(row) if row else None
        finally:
            conn.close()

    def find_plugin_by_path(self, path: str) -> PluginRecord | None:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                f"SELECT {_PLUGIN_COLUMNS} FROM plugins WHERE location = ?",
                (path,),
            )
            row = cur.fetchone()
            return _plugin_from_row(row) if row else None
        finally:
            conn.close()

    def list_plugins(self) -> list[PluginRecord]:
        """List every plugin record, ordered by id."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                f"SELECT {_PLUGIN_COLUMNS} FROM plugins ORDER BY id"
            )
            return [_plugin_from_row(row) for row in cur.fetchall()]
        finally:
            conn.close()

    # ----------------------------------------------------------------
    # Options
    # ----------------------------------------------------------------

    def set_option(
        self,
        name: str,
        value: str,
        description: str = "",
        value_type: str = "text",
    ) -> None:
        """Create or update an option."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.execute(
                """
                INSERT INTO options
                (option, value, description, value_type, default_value)
                VALUES (?, ?, ?, ?, ?)
                ON CONFLICT(option) DO UPDATE SET
                    value = excluded.value,
                    description = excluded.description,
                    value_type = excluded.value_type
                """,
                (name, value, description, value_type, value),
            )
            conn.commit()
        finally:
            conn.close()

    def get_option(self, name: str) -> str | None:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                "SELECT value FROM options WHERE option = ?", (name,)
            )
            row = cur.fetchone()
            return row[0] if row else None
        finally:
            conn.close()

    def remove_option(self, name: str) -> bool:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                "DELETE FROM options WHERE option = ?", (name,)
            )
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    # ----------------------------------------------------------------
    # Help topics
    # ----------------------------------------------------------------

    def set_help(
        self, topic: str, usage: str, content: str, plugin: str = ""
    ) -> None:
        """Create or update a help topic."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            conn.execute(
                """
                INSERT INTO help (topic, usage, content, plugin)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(topic) DO UPDATE SET
                    usage = excluded.usage,
                    content = excluded.content,
                    plugin = excluded.plugin
                """,
                (topic, usage, content, plugin),
            )
            conn.commit()
        finally:
            conn.close()

    def get_help(self, topic: str) -> dict[str, Any] | None:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                """
                SELECT topic, usage, content, plugin
                FROM help WHERE topic = ?
                """,
                (topic,),
            )
            row = cur.fetchone()
            if row is None:
                return None
            return {
                "topic": row[0],
                "usage": row[1],
                "content": row[2],
                "plugin": row[3],
            }
        finally:
            conn.close()

    def delete_help(self, topic: str) -> bool:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute("DELETE FROM help WHERE topic = ?", (topic,))
            conn.commit()
            return cur.rowcount > 0
        finally:
            conn.close()

    def delete_plugin_help(self, plugin_path: str) -> int:
        """Remove every help topic owned by a plugin. Returns the count."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                "DELETE FROM help WHERE plugin = ?", (plugin_path,)
            )
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()

    def list_help_topics(self) -> list[str]:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute("SELECT topic FROM help ORDER BY topic")
            return [row[0] for row in cur.fetchall()]
        finally:
            conn.close()

    # ----------------------------------------------------------------
    # Command history
    # ----------------------------------------------------------------

    def add_history(self, command: str, max_length: int = 500) -> None:
        """Record a command line, bumping its use count if already known.

        When the history is full the least recently used entry is
        dropped first.
        """
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                """
                UPDATE history
                SET amount = amount + 1,
                    lastused = datetime('now'),
                    seq = (SELECT COALESCE(MAX(seq), 0) + 1 FROM history)
                WHERE command = ?
                """,
                (command,),
            )
            if cur.rowcount == 0:
                if max_length > 0:
                    (count,) = conn.execute(
                        "SELECT COUNT(*) FROM history"
                    ).fetchone()
                    if count >= max_length:
                        conn.execute(
                            """
                            DELETE FROM history WHERE command IN (
                                SELECT command FROM history
                                ORDER BY seq ASC LIMIT ?
                            )
                            """,
                            (count - max_length + 1,),
                        )
                conn.execute(
                    """
                    INSERT INTO history (command, amount, lastused, seq)
                    VALUES (?, 1, datetime('now'),
                        (SELECT COALESCE(MAX(seq), 0) + 1 FROM history))
                    """,
                    (command,),
                )
            conn.commit()
        finally:
            conn.close()

    def list_history(self, limit: int | None = None) -> list[dict[str, Any]]:
        """Return history entries, oldest first; ``limit`` keeps the newest."""
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute(
                """
                SELECT command, amount, lastused
                FROM history ORDER BY seq DESC LIMIT ?
                """,
                (limit if limit and limit > 0 else -1,),
            )
            rows = [
                {"command": command, "amount": amount, "lastused": lastused}
                for command, amount, lastused in cur.fetchall()
            ]
            rows.reverse()
            return rows
        finally:
            conn.close()

    def clear_history(self) -> int:
        conn = sqlite3.connect(str(self.db_path))
        try:
            cur = conn.execute("DELETE FROM history")
            conn.commit()
            return cur.rowcount
        finally:
            conn.close()
