# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Low-level database schema for ScopeSh.

Handles:
- Schema creation
- Column migration for databases created before a column existed
"""

from __future__ import annotations

import sqlite3
from pathlib import Path


def ensure_schema(db_path: Path) -> None:
    """Create or migrate database schema.

    Creates required tables if they don't exist:
    - aliases: directory-scoped command aliases
    - variables: directory-scoped environment variables
    - plugins: installed plugin records
    - options: option store written by plugins
    - help: help topics (shipped and plugin-provided)
    - history: entered command lines with use count and last use

    Args:
        db_path: Path to SQLite database file

    This function is idempotent - safe to call multiple times.
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(str(db_path))
    try:
        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS aliases (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                path TEXT NOT NULL,
                recursive INTEGER NOT NULL DEFAULT 0,
                commands TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                output TEXT NOT NULL DEFAULT 'stdout'
            )
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS variables (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                path TEXT NOT NULL,
                recursive INTEGER NOT NULL DEFAULT 0,
                value TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT ''
            )
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS plugins (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                location TEXT NOT NULL UNIQUE,
                enabled INTEGER NOT NULL DEFAULT 0,
                name TEXT NOT NULL DEFAULT '',
                description TEXT NOT NULL DEFAULT '',
                api_version TEXT NOT NULL DEFAULT '',
                calls TEXT NOT NULL DEFAULT ''
            )
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS options (
                option TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                description TEXT NOT NULL DEFAULT '',
                value_type TEXT NOT NULL DEFAULT 'text',
                default_value TEXT NOT NULL DEFAULT ''
            )
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS help (
                topic TEXT PRIMARY KEY,
                usage TEXT NOT NULL DEFAULT '',
                content TEXT NOT NULL DEFAULT '',
                plugin TEXT NOT NULL DEFAULT ''
            )
            """
        )

        conn.execute(
            """
            CREATE TABLE IF NOT EXISTS history (
                command TEXT PRIMARY KEY,
                amount INTEGER NOT NULL DEFAULT 1,
                lastused TEXT NOT NULL,
                seq INTEGER NOT NULL DEFAULT 0
            )
            """
        )

        # Migration: alias output mode was added after the first release
        cur = conn.execute("PRAGMA table_info(aliases)")
        cols = {row[1] for row in cur.fetchall()}
        if "output" not in cols:
            conn.execute(
                "ALTER TABLE aliases "
                "ADD COLUMN output TEXT NOT NULL DEFAULT 'stdout'"
            )

        # Migration: plugin metadata columns
        cur = conn.execute("PRAGMA table_info(plugins)")
        cols = {row[1] for row in cur.fetchall()}
        for column in ("name", "description", "api_version", "calls"):
            if column not in cols:
                conn.execute(
                    f"ALTER TABLE plugins "
                    f"ADD COLUMN {column} TEXT NOT NULL DEFAULT ''"
                )

        conn.commit()
    finally:
        conn.close()
