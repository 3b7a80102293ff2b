# tests/test_utils.py
"""
Tests for the lexer helpers: segmentation, argument substitution,
quote balance and table formatting.
"""

from __future__ import annotations

import pytest

from scopesh.errors import MissingArgument, ParseError
from scopesh.models import Segment
from scopesh.utils import (
    format_table,
    is_quote_balanced,
    is_shell_input_incomplete,
    split_commands,
    split_first_word,
    substitute_arguments,
)

# ----------------------------------------------------------------
# split_commands
# ----------------------------------------------------------------


def test_split_commands_single_segment() -> None:
    assert split_commands("ls -la") == [Segment("ls -la")]


def test_split_commands_blank_line_is_empty() -> None:
    assert split_commands("   ") == []


def test_split_commands_gates_follow_operators() -> None:
    """Each segment after the first carries the operator before it."""
    segments = split_commands("make && make test || echo failed")
    assert segments == [
        Segment("make", None),
        Segment("make test", "&&"),
        Segment("echo failed", "||"),
    ]


def test_split_commands_ignores_operators_in_single_quotes() -> None:
    segments = split_commands("echo 'a || b' && true")
    assert [s.text for s in segments] == ["echo 'a || b'", "true"]


def test_split_commands_ignores_operators_in_double_quotes() -> None:
    segments = split_commands('grep "x && y" file || echo none')
    assert [s.text for s in segments] == ['grep "x && y" file', "echo none"]
    assert segments[1].gate == "||"


def test_split_commands_escaped_operator_stays_in_text() -> None:
    segments = split_commands(r"echo a \&& b")
    assert len(segments) == 1


def test_split_commands_single_pipe_is_not_an_operator() -> None:
    assert split_commands("ls | wc -l") == [Segment("ls | wc -l")]


@pytest.mark.parametrize("line", ["&& ls", "ls &&", "ls && || pwd"])
def test_split_commands_missing_command_raises(line: str) -> None:
    with pytest.raises(ParseError):
        split_commands(line)


# ----------------------------------------------------------------
# split_first_word
# ----------------------------------------------------------------


def test_split_first_word_keeps_rest() -> None:
    assert split_first_word("  git  commit -m 'x y'") == (
        "git", "commit -m 'x y'"
    )


def test_split_first_word_single_word() -> None:
    assert split_first_word("pwd") == ("pwd", "")


# ----------------------------------------------------------------
# substitute_arguments
# ----------------------------------------------------------------


FOSSIL = "fossil open fossil/$1.fossil --workdir $1"


def test_substitute_arguments_positional() -> None:
    assert substitute_arguments(FOSSIL, "myrepo") == (
        "fossil open fossil/myrepo.fossil --workdir myrepo"
    )


def test_substitute_arguments_missing_raises() -> None:
    """Zero arguments for a body that uses $1 must fail."""
    with pytest.raises(MissingArgument):
        substitute_arguments(FOSSIL, "")


def test_substitute_arguments_second_missing_raises() -> None:
    with pytest.raises(MissingArgument) as exc:
        substitute_arguments("cp $1 $2", "only")
    assert "$2" in str(exc.value)


def test_substitute_arguments_quoted_argument_is_one_word() -> None:
    assert substitute_arguments("echo $1", '"hello world" x') == (
        "echo hello world"
    )


def test_substitute_arguments_dollar_zero_is_whole_remainder() -> None:
    assert substitute_arguments("git commit $0", " -m 'fix' ") == (
        "git commit -m 'fix'"
    )


def test_substitute_arguments_without_placeholders() -> None:
    assert substitute_arguments("ls -la", "ignored") == "ls -la"


def test_substitute_arguments_unbalanced_quotes_raise() -> None:
    with pytest.raises(ParseError):
        substitute_arguments("echo $1", "'open")


# ----------------------------------------------------------------
# Quote balance / continuation
# ----------------------------------------------------------------


@pytest.mark.parametrize(
    "text,expected",
    [
        ("echo hi", True),
        ("echo 'hi", False),
        ('echo "hi', False),
        ("echo \"it's\"", True),
        (r"echo \'", True),
        ('echo "a \\" b"', True),
    ],
)
def test_is_quote_balanced(text: str, expected: bool) -> None:
    assert is_quote_balanced(text) is expected


def test_is_shell_input_incomplete_trailing_backslash() -> None:
    assert is_shell_input_incomplete("ls \\")
    assert not is_shell_input_incomplete("ls \\\\")
    assert not is_shell_input_incomplete("ls")


# ----------------------------------------------------------------
# format_table
# ----------------------------------------------------------------


def test_format_table_aligns_columns() -> None:
    table = format_table(["ID", "Name"], [[1, "build"], [12, "x"]], "Aliases:")
    lines = table.splitlines()
    assert lines[0] == "Aliases:"
    assert lines[1] == "ID  Name"
    assert lines[2] == "1   build"
    assert lines[3] == "12  x"


def test_format_table_empty_rows() -> None:
    assert format_table(["ID"], []) == ""
