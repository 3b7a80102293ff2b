# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Utility functions for ScopeSh.
"""

import re
import shlex
from enum import Enum, auto
from typing import Any

from .errors import MissingArgument, ParseError
from .models import Segment

OPERATORS = ("&&", "||")

_POSITIONAL = re.compile(r"\$([0-9])")


def format_table(
    headers: list[str],
    rows: list[list[Any]],
    title: str = ""
) -> str:
    """
    Format data as a simple text table without external dependencies.

    Args:
        headers: List of column header names
        rows: List of rows, where each row is a list of values
        title: Optional title to display above the table

    Returns:
        Formatted table as a string
    """
    if not rows:
        return ""

    str_headers = [str(h) for h in headers]
    str_rows = [[str(val) for val in row] for row in rows]

    # Column width is the max of header and all row values
    col_widths = []
    for i, header in enumerate(str_headers):
        max_width = len(header)
        for row in str_rows:
            if i < len(row):
                max_width = max(max_width, len(row[i]))
        col_widths.append(max_width)

    lines = []

    if title:
        lines.append(title)

    header_parts = []
    for i, header in enumerate(str_headers):
        header_parts.append(header.ljust(col_widths[i]))
    lines.append("  ".join(header_parts).rstrip())

    for row in str_rows:
        row_parts = []
        for i, val in enumerate(row):
            row_parts.append(val.ljust(col_widths[i]))
        lines.append("  ".join(row_parts).rstrip())

    return "\n".join(lines)


class LexerState(Enum):
    """States for quote-aware lexer."""
    NORMAL = auto()
    SINGLE_QUOTE = auto()
    DOUBLE_QUOTE = auto()
    ESCAPE = auto()


def split_commands(line: str) -> list[Segment]:
    """Split a line into segments on ``&&`` and ``||``.

    Operators inside single or double quotes, or preceded by a backslash,
    are part of the segment text. The first segment has no gate; every
    following segment carries the operator in front of it.

    Args:
        line: Raw input line

    Returns:
        Ordered list of Segment; empty for a blank line

    Raises:
        ParseError: an operator has no command on one of its sides
    """
    if not line.strip():
        return []

    segments: list[Segment] = []
    current: list[str] = []
    gate: str | None = None
    state = LexerState.NORMAL

    def flush(next_gate: str | None) -> None:
        nonlocal current, gate
        text = "".join(current).strip()
        if not text:
            op = next_gate or gate
            raise ParseError(f"Missing command around '{op}'")
        segments.append(Segment(text=text, gate=gate))
        current = []
        gate = next_gate

    i = 0
    while i < len(line):
        ch = line[i]

        if state == LexerState.ESCAPE:
            current.append(ch)
            state = LexerState.NORMAL
            i += 1
            continue

        if state == LexerState.NORMAL:
            pair = line[i:i + 2]
            if pair in OPERATORS:
                flush(pair)
                i += 2
                continue
            if ch == "\\":
                state = LexerState.ESCAPE
            elif ch == "'":
                state = LexerState.SINGLE_QUOTE
            elif ch == '"':
                state = LexerState.DOUBLE_QUOTE
            current.append(ch)
            i += 1
            continue

        if state == LexerState.SINGLE_QUOTE:
            current.append(ch)
            if ch == "'":
                state = LexerState.NORMAL
            i += 1
            continue

        # DOUBLE_QUOTE
        current.append(ch)
        if ch == "\\" and i + 1 < len(line):
            i += 1
            current.append(line[i])
        elif ch == '"':
            state = LexerState.NORMAL
        i += 1

    flush(None)
    return segments


def split_first_word(text: str) -> tuple[str, str]:
    """Return (first word, rest of the text with original spacing)."""
    stripped = text.strip()
    if not stripped:
        return "", ""
    parts = stripped.split(maxsplit=1)
    rest = parts[1] if len(parts) > 1 else ""
    return parts[0], rest


def substitute_arguments(body: str, remainder: str) -> str:
    """Replace positional placeholders in an alias command line.

    ``$1`` .. ``$9`` take the matching word of ``remainder`` (split with
    shell quoting rules); ``$0`` takes the whole remainder verbatim.

    Raises:
        MissingArgument: a referenced position was not supplied
        ParseError: remainder has unbalanced quotes
    """
    try:
        words = shlex.split(remainder)
    except ValueError as e:
        raise ParseError(f"Invalid arguments: {e}") from e

    def _replace(match: re.Match) -> str:
        index = int(match.group(1))
        if index == 0:
            return remainder.strip()
        if index > len(words):
            raise MissingArgument(
                f"Not enough arguments entered: ${index} is required"
            )
        return words[index - 1]

    return _POSITIONAL.sub(_replace, body)


def is_quote_balanced(text: str) -> bool:
    """Check if quotes are balanced in a shell command string.

    Handles:
    - Single quotes ('...')
    - Double quotes ("...")
    - Backslash escapes (both in normal and double-quote contexts)
    """
    state = LexerState.NORMAL
    i = 0

    while i < len(text):
        ch = text[i]

        if state == LexerState.ESCAPE:
            state = LexerState.NORMAL
            i += 1
            continue

        if state == LexerState.NORMAL:
            if ch == '\\':
                state = LexerState.ESCAPE
            elif ch == "'":
                state = LexerState.SINGLE_QUOTE
            elif ch == '"':
                state = LexerState.DOUBLE_QUOTE
            i += 1

        elif state == LexerState.SINGLE_QUOTE:
            if ch == "'":
                state = LexerState.NORMAL
            i += 1

        elif state == LexerState.DOUBLE_QUOTE:
            if ch == '\\' and i + 1 < len(text):
                i += 2
                continue
            if ch == '"':
                state = LexerState.NORMAL
            i += 1

    return state == LexerState.NORMAL


def is_shell_input_incomplete(text: str) -> bool:
    """True if the line has an open quote or ends with a backslash."""
    if not is_quote_balanced(text):
        return True
    stripped = text.rstrip("\n")
    trailing = len(stripped) - len(stripped.rstrip("\\"))
    return trailing % 2 == 1
