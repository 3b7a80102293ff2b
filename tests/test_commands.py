# tests/test_commands.py
"""
Built-in command tests through Kernel.handle_command.

Interactive forms (alias/variable add and edit) are driven by the
ScriptedInterviewer: answers are consumed in question order and an
exhausted answer list behaves like Ctrl-D.
"""

from __future__ import annotations

import os
from pathlib import Path

import pytest
from conftest import make_config, write_plugin

from scopesh.kernel import Kernel
from scopesh.models import AliasDefinition, VariableDefinition


def _out(output) -> str:
    return "".join(output["out"])


def _errors(output) -> str:
    return "".join(output["err"])


# ----------------------------------------------------------------
# cd
# ----------------------------------------------------------------


def test_cd_relative_and_back(kernel, workdir) -> None:
    (workdir / "sub").mkdir()

    assert kernel.handle_command("cd sub") == 0
    assert kernel.context.cwd == str(workdir / "sub")
    assert os.environ["PWD"] == str(workdir / "sub")
    assert os.environ["OLDPWD"] == str(workdir)

    assert kernel.handle_command("cd -") == 0
    assert kernel.context.cwd == str(workdir)


def test_cd_without_argument_goes_home(kernel, tmp_path, monkeypatch):
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))

    kernel.handle_command("cd")

    assert kernel.context.cwd == str(home)


def test_cd_dash_without_previous_directory(kernel, output) -> None:
    assert kernel.handle_command("cd -") == 1
    assert "no previous directory" in _errors(output)


def test_cd_missing_directory(kernel, workdir, output) -> None:
    assert kernel.handle_command("cd nope") == 1
    assert kernel.context.cwd == str(workdir)
    assert "no such directory" in _errors(output)


def test_cd_recomputes_scope(kernel, workdir) -> None:
    sub = workdir / "sub"
    sub.mkdir()
    os.environ.pop("STAGE", None)
    kernel.context.variables.add(
        VariableDefinition(
            id=0, name="STAGE", path=str(sub), recursive=False, value="dev"
        )
    )
    kernel.context.aliases.add(
        AliasDefinition(
            id=0, name="here", path=str(sub), recursive=False,
            commands="echo here",
        )
    )

    kernel.handle_command("cd sub")
    assert os.environ["STAGE"] == "dev"
    assert kernel.context.aliases.lookup("here") is not None

    kernel.handle_command("cd ..")
    assert "STAGE" not in os.environ
    assert kernel.context.aliases.lookup("here") is None


# ----------------------------------------------------------------
# exit / set / unset / exec
# ----------------------------------------------------------------


def test_exit_stops_session(kernel) -> None:
    assert kernel.running
    kernel.handle_command("exit 3")
    assert not kernel.running
    assert kernel.exit_code == 3


def test_exit_non_numeric(kernel, output) -> None:
    assert kernel.handle_command("exit soon") == 1
    assert kernel.running


def test_set_and_unset(kernel) -> None:
    kernel.handle_command("set COLOR=blue")
    assert os.environ["COLOR"] == "blue"

    kernel.handle_command("unset COLOR")
    assert "COLOR" not in os.environ


def test_set_without_assignment(kernel, output) -> None:
    assert kernel.handle_command("set COLOR") == 1
    assert "usage" in _errors(output)


def test_set_empty_value(kernel) -> None:
    kernel.handle_command("set EMPTY=")
    assert os.environ["EMPTY"] == ""


def test_exec_runs_program_directly(kernel, executor, workdir) -> None:
    kernel.handle_command("exec grep -r 'a b' .")
    call = executor.calls[0]
    assert call["argv"] == ["grep", "-r", "a b", "."]
    assert call["cwd"] == str(workdir)


def test_exec_without_program(kernel) -> None:
    assert kernel.handle_command("exec") == 1


# ----------------------------------------------------------------
# help
# ----------------------------------------------------------------


def test_help_lists_topics(kernel, output) -> None:
    kernel.handle_command("help")
    text = _out(output)
    assert "Available help topics:" in text
    assert "  cd\n" in text


def test_help_topic(kernel, output) -> None:
    kernel.handle_command("help cd")
    assert "cd [directory]" in _out(output)


def test_help_unknown_topic(kernel, output) -> None:
    assert kernel.handle_command("help nothing") == 1
    assert "No help entry" in _errors(output)


# ----------------------------------------------------------------
# alias
# ----------------------------------------------------------------


def test_alias_add_form(kernel, interviewer, workdir, output) -> None:
    interviewer.answers = [
        "build", "Builds it", "", "n", "make", "make test", "", "",
    ]

    assert kernel.handle_command("alias add") == 0

    alias = kernel.context.aliases.lookup("build")
    assert alias is not None
    assert alias.path == str(workdir)
    assert alias.commands == "make\nmake test"
    assert alias.output == "stdout"
    assert "added with index 1" in _out(output)


def test_alias_add_cancelled(kernel, interviewer, output) -> None:
    interviewer.answers = ["build"]

    assert kernel.handle_command("alias add") == 1

    assert kernel.store.list_aliases() == []
    assert "Cancelled." in _errors(output)


def test_alias_add_invalid_name(kernel, interviewer, output) -> None:
    interviewer.answers = ["no spaces", "", "", "n", "ls", "", ""]

    assert kernel.handle_command("alias add") == 1
    assert kernel.store.list_aliases() == []


def test_alias_edit_form_keeps_unanswered_fields(
    kernel, interviewer, workdir
) -> None:
    alias_id = kernel.context.aliases.add(
        AliasDefinition(
            id=0, name="build", path=str(workdir), recursive=False,
            commands="make", description="d",
        )
    )
    interviewer.answers = ["", "", "", "y", "", ""]

    assert kernel.handle_command(f"alias edit {alias_id}") == 0

    edited = kernel.store.get_alias(alias_id)
    assert edited.recursive is True
    assert edited.name == "build"
    assert edited.commands == "make"
    assert edited.description == "d"


def test_alias_list_show_delete(kernel, workdir, output) -> None:
    alias_id = kernel.context.aliases.add(
        AliasDefinition(
            id=0, name="build", path=str(workdir), recursive=True,
            commands="make\nmake test", description="Builds",
        )
    )

    kernel.handle_command("alias list")
    assert "build" in _out(output)

    output["out"].clear()
    kernel.handle_command(f"alias show {alias_id}")
    shown = _out(output)
    assert "make; make test" in shown
    assert "(recursive)" in shown

    assert kernel.handle_command(f"alias delete {alias_id}") == 0
    assert kernel.context.aliases.lookup("build") is None


def test_alias_list_empty(kernel, output) -> None:
    kernel.handle_command("alias")
    assert "no defined aliases" in _out(output)


@pytest.mark.parametrize(
    "line,message",
    [
        ("alias delete", "Enter the index"),
        ("alias delete x", "must be a number"),
        ("alias show 42", "not found"),
        ("alias rename", "Unknown alias command"),
    ],
)
def test_alias_argument_errors(kernel, output, line, message) -> None:
    assert kernel.handle_command(line) == 1
    assert message in _errors(output)


# ----------------------------------------------------------------
# variable
# ----------------------------------------------------------------


def test_variable_add_form_exports(kernel, interviewer) -> None:
    os.environ.pop("MODE", None)
    interviewer.answers = ["MODE", "", "", "n", "dev"]

    assert kernel.handle_command("variable add") == 0

    assert os.environ["MODE"] == "dev"
    assert kernel.context.variables.lookup("MODE").value == "dev"


def test_variable_add_requires_value(kernel, interviewer) -> None:
    interviewer.answers = ["MODE", "", "", "n", ""]

    assert kernel.handle_command("variable add") == 1
    assert kernel.store.list_variables() == []


def test_variable_edit_and_list(kernel, interviewer, output) -> None:
    interviewer.answers = ["MODE", "", "", "n", "dev"]
    kernel.handle_command("variable add")

    interviewer.answers = ["", "", "", "", "prod"]
    assert kernel.handle_command("variable edit 1") == 0
    assert os.environ["MODE"] == "prod"

    kernel.handle_command("variable list all")
    assert "prod" in _out(output)


def test_variable_delete(kernel, interviewer) -> None:
    interviewer.answers = ["MODE", "", "", "n", "dev"]
    kernel.handle_command("variable add")

    assert kernel.handle_command("variable delete 1") == 0
    assert "MODE" not in os.environ


# ----------------------------------------------------------------
# plugin
# ----------------------------------------------------------------


def test_plugin_list_empty(kernel, output) -> None:
    kernel.handle_command("plugin")
    assert "There are no enabled plugins." in _out(output)


def test_plugin_add_requires_path(kernel, output) -> None:
    assert kernel.handle_command("plugin add") == 1


def test_plugin_show_and_list(kernel, tmp_path: Path, output) -> None:
    path = write_plugin(
        tmp_path / "p.sh",
        """case "$1" in
  info) echo 'answer "tiny;Tiny plugin;0.3;info"' ;;
  *) exit 2 ;;
esac
""",
    )
    assert kernel.handle_command(f"plugin add {path}") == 0

    output["out"].clear()
    kernel.handle_command("plugin show 1")
    shown = _out(output)
    assert "tiny" in shown
    assert "0.3" in shown
    assert "Yes" in shown

    output["out"].clear()
    kernel.handle_command("plugin list all")
    assert str(path) in _out(output)


# ----------------------------------------------------------------
# history
# ----------------------------------------------------------------


def test_successful_lines_are_remembered(kernel, executor) -> None:
    executor.codes["false"] = 1

    kernel.handle_command("make")
    kernel.handle_command("false")
    kernel.handle_command("  make  ")

    entries = kernel.store.list_history()
    assert [e["command"] for e in entries] == ["make"]
    assert entries[0]["amount"] == 2


def test_failed_lines_kept_when_configured(
    store, executor, interviewer, workdir
) -> None:
    k = Kernel(
        store=store, executor=executor, cwd=str(workdir),
        config=make_config(
            history={"length": 500, "amount": 20, "save_invalid": True}
        ),
        interviewer=interviewer,
    )
    executor.codes["false"] = 1

    k.handle_command("false")

    assert [e["command"] for e in store.list_history()] == ["false"]


def test_history_show(kernel, output) -> None:
    kernel.handle_command("cd .")
    output["out"].clear()

    assert kernel.handle_command("history") == 0

    shown = "".join(output["out"])
    assert "commands from the history" in shown
    assert "cd ." in shown


def test_history_show_respects_amount(
    store, executor, interviewer, workdir, output
) -> None:
    k = Kernel(
        store=store, executor=executor, cwd=str(workdir),
        config=make_config(
            history={"length": 500, "amount": 1, "save_invalid": False}
        ),
        interviewer=interviewer,
    )
    k.set_output(output["out"].append, output["err"].append)
    for line in ("first", "second"):
        k.handle_command(line)

    k.handle_command("history show")

    shown = "".join(output["out"])
    assert "second" in shown
    assert "first" not in shown


def test_history_clear(kernel, output) -> None:
    kernel.handle_command("make")

    assert kernel.handle_command("history clear") == 0

    # the clear line itself is the only entry left
    assert [e["command"] for e in kernel.store.list_history()] == [
        "history clear"
    ]
    assert "cleared" in "".join(output["out"])


def test_history_unknown_subcommand(kernel, output) -> None:
    assert kernel.handle_command("history rewind") == 1
    assert "Unknown history command" in _errors(output)
