# tests/test_scope.py
"""
Tests for directory-scoped aliases and variables.

Resolution rules under test:
- equality for non-recursive definitions, component prefix for recursive
- aliases: lowest id wins among duplicates in scope
- variables: highest id wins, winners are exported to os.environ
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from scopesh.errors import AlreadyExists, NotFound, ValidationError
from scopesh.models import AliasDefinition, VariableDefinition
from scopesh.scope import AliasScope, VariableScope, in_scope


@pytest.fixture
def tree(tmp_path: Path) -> dict[str, str]:
    a = tmp_path / "a"
    (a / "b" / "c").mkdir(parents=True)
    (tmp_path / "ab").mkdir()
    return {
        "root": str(tmp_path),
        "a": str(a),
        "abc": str(a / "b" / "c"),
        "ab": str(tmp_path / "ab"),
    }


@pytest.fixture
def aliases(store) -> AliasScope:
    return AliasScope(store)


@pytest.fixture
def variables(store) -> VariableScope:
    return VariableScope(store)


def _alias(name: str, path: str, commands: str = "echo x", **kw):
    return AliasDefinition(
        id=0, name=name, path=path, recursive=kw.pop("recursive", False),
        commands=commands, **kw
    )


def _variable(name: str, path: str, value: str, recursive: bool = False):
    return VariableDefinition(
        id=0, name=name, path=path, recursive=recursive, value=value
    )


# ----------------------------------------------------------------
# in_scope
# ----------------------------------------------------------------


def test_in_scope_equal_path() -> None:
    assert in_scope("/a", False, "/a")
    assert in_scope("/a/", False, "/a")


def test_in_scope_non_recursive_does_not_cover_children() -> None:
    assert not in_scope("/a", False, "/a/b")


def test_in_scope_recursive_covers_descendants_only() -> None:
    """Recursive /a is visible from /a/b/c but not from /ab."""
    assert in_scope("/a", True, "/a/b/c")
    assert not in_scope("/a", True, "/ab")
    assert not in_scope("/a/b", True, "/a")


# ----------------------------------------------------------------
# Alias resolution
# ----------------------------------------------------------------


def test_alias_recursive_visibility(aliases, tree) -> None:
    aliases.add(_alias("build", tree["a"], recursive=True))

    aliases.recompute(tree["abc"])
    assert aliases.lookup("build") is not None

    aliases.recompute(tree["ab"])
    assert aliases.lookup("build") is None


def test_alias_duplicate_name_lowest_id_wins(aliases, tree) -> None:
    """Two aliases with the same name in scope: the older one resolves."""
    first = aliases.add(_alias("go", tree["a"], "echo first", recursive=True))
    aliases.add(_alias("go", tree["abc"], "echo second"))

    aliases.recompute(tree["abc"])
    found = aliases.lookup("go")
    assert found is not None
    assert found.id == first
    assert found.commands == "echo first"


def test_alias_list_in_scope_vs_all(aliases, tree) -> None:
    aliases.add(_alias("one", tree["a"]))
    aliases.add(_alias("two", tree["ab"]))

    aliases.recompute(tree["a"])
    assert [a.name for a in aliases.list()] == ["one"]
    assert [a.name for a in aliases.list(in_scope_only=False)] == [
        "one", "two"
    ]


def test_alias_edit_recursive_round_trip(aliases, tree) -> None:
    """add -> edit (recursive false -> true) -> visible from a child."""
    alias_id = aliases.add(_alias("deploy", tree["a"]))

    aliases.recompute(tree["abc"])
    assert aliases.lookup("deploy") is None

    current = aliases.get(alias_id)
    aliases.edit(alias_id, _alias(
        current.name, current.path, current.commands, recursive=True
    ))

    assert aliases.lookup("deploy") is not None
    assert aliases.get(alias_id).recursive is True


def test_alias_edit_keeps_id(aliases, tree) -> None:
    alias_id = aliases.add(_alias("x", tree["a"]))
    aliases.edit(alias_id, _alias("y", tree["a"], "echo y"))

    edited = aliases.get(alias_id)
    assert edited.id == alias_id
    assert edited.name == "y"
    assert edited.commands == "echo y"


def test_alias_delete_then_get_raises(aliases, tree) -> None:
    alias_id = aliases.add(_alias("x", tree["a"]))
    aliases.recompute(tree["a"])

    aliases.delete(alias_id)

    assert aliases.lookup("x") is None
    with pytest.raises(NotFound):
        aliases.get(alias_id)


def test_alias_delete_missing_raises(aliases) -> None:
    with pytest.raises(NotFound):
        aliases.delete(999)


def test_alias_same_name_same_path_rejected(aliases, tree) -> None:
    aliases.add(_alias("x", tree["a"]))
    with pytest.raises(AlreadyExists):
        aliases.add(_alias("x", tree["a"] + "/"))


def test_alias_edit_may_keep_its_own_name_and_path(aliases, tree) -> None:
    alias_id = aliases.add(_alias("x", tree["a"]))
    aliases.edit(alias_id, _alias("x", tree["a"], "echo changed"))
    assert aliases.get(alias_id).commands == "echo changed"


@pytest.mark.parametrize(
    "name,path_key,commands",
    [
        ("bad-name", "a", "echo"),
        ("", "a", "echo"),
        ("ok", None, "echo"),
        ("ok", "missing", "echo"),
        ("ok", "a", "   \n  "),
    ],
)
def test_alias_validation(aliases, tree, name, path_key, commands) -> None:
    if path_key is None:
        path = "relative/dir"
    elif path_key == "missing":
        path = tree["root"] + "/does-not-exist"
    else:
        path = tree[path_key]
    with pytest.raises(ValidationError):
        aliases.add(_alias(name, path, commands))


def test_alias_output_file_directory_must_exist(aliases, tree) -> None:
    with pytest.raises(ValidationError):
        aliases.add(_alias(
            "log", tree["a"], output=tree["root"] + "/nope/out.log"
        ))

    alias_id = aliases.add(_alias("log", tree["a"], output=tree["a"] + "/o"))
    assert aliases.get(alias_id).output == tree["a"] + "/o"


# ----------------------------------------------------------------
# Variable resolution
# ----------------------------------------------------------------


def test_variable_duplicate_name_highest_id_wins(variables, tree) -> None:
    variables.add(_variable("MODE", tree["a"], "old", recursive=True))
    newest = variables.add(_variable("MODE", tree["abc"], "new"))

    variables.recompute(tree["abc"])
    found = variables.lookup("MODE")
    assert found is not None
    assert found.id == newest
    assert os.environ["MODE"] == "new"


def test_variable_exported_and_restored(variables, tree) -> None:
    os.environ["SCOPE_TEST"] = "outer"
    variables.add(_variable("SCOPE_TEST", tree["a"], "inner"))

    variables.recompute(tree["a"])
    assert os.environ["SCOPE_TEST"] == "inner"

    variables.recompute(tree["ab"])
    assert os.environ["SCOPE_TEST"] == "outer"


def test_variable_removed_when_leaving_scope(variables, tree) -> None:
    os.environ.pop("ONLY_HERE", None)
    variables.add(_variable("ONLY_HERE", tree["a"], "1"))

    variables.recompute(tree["a"])
    assert os.environ["ONLY_HERE"] == "1"

    variables.recompute(tree["root"])
    assert "ONLY_HERE" not in os.environ


def test_variable_value_expands_once(variables, tree) -> None:
    """Recomputing in the same directory must not grow $PATH again."""
    os.environ["PATH"] = "/usr/bin"
    variables.add(_variable("PATH", tree["a"], "$PATH:/opt/tool/bin"))

    variables.recompute(tree["a"])
    variables.recompute(tree["a"])

    assert os.environ["PATH"] == "/usr/bin:/opt/tool/bin"


def test_variable_invalid_name_rejected(variables, tree) -> None:
    with pytest.raises(ValidationError):
        variables.add(_variable("MY-VAR", tree["a"], "x"))


def test_variables_may_share_name_and_path(variables, tree) -> None:
    variables.add(_variable("X", tree["a"], "1"))
    variables.add(_variable("X", tree["a"], "2"))
    assert len(variables.list(in_scope_only=False)) == 2
