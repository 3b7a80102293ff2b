# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Built-in commands.

Every handler has the signature ``handler(arguments, context) -> int``.
Failures are raised as ShellError; the pipeline reports them.
"""

from __future__ import annotations

import os
from collections.abc import Callable
from typing import TYPE_CHECKING

from .config import colorize
from .errors import MissingArgument, NotFound, ShellError, ValidationError
from .models import OUTPUT_INHERIT, AliasDefinition, VariableDefinition
from .utils import format_table

if TYPE_CHECKING:
    from .kernel import ShellContext  # pragma: no cover


def _write(ctx: ShellContext, text: str) -> None:
    if ctx.output_fn is not None and text:
        ctx.output_fn(text if text.endswith("\n") else text + "\n")


def _index(arguments: list[str], usage: str) -> int:
    if len(arguments) < 2:
        raise MissingArgument(f"Enter the index. Usage: {usage}")
    try:
        return int(arguments[1])
    except ValueError as e:
        raise ValidationError(
            f"The index must be a number, got '{arguments[1]}'"
        ) from e


def _resolve_path(ctx: ShellContext, path: str) -> str:
    return os.path.normpath(
        os.path.join(ctx.cwd, os.path.expanduser(path))
    )


# -----------------------
# Interactive form helpers
# -----------------------


def _ask(ctx: ShellContext, prompt: str, default: str = "") -> str:
    label = f"{prompt} [{default}]: " if default else f"{prompt}: "
    try:
        answer = ctx.interviewer.ask(label)
    except (EOFError, KeyboardInterrupt) as e:
        raise ShellError("Cancelled.") from e
    answer = (answer or "").strip()
    return answer if answer else default


def _ask_bool(ctx: ShellContext, prompt: str, default: bool) -> bool:
    answer = _ask(ctx, f"{prompt} (y/n)", "y" if default else "n").lower()
    if answer in ("y", "yes", "1", "true"):
        return True
    if answer in ("n", "no", "0", "false"):
        return False
    raise ValidationError(f"Expected y or n, got '{answer}'")


def _ask_lines(ctx: ShellContext, prompt: str, default: str) -> str:
    ctx.interviewer.write(
        f"{prompt} (one per line, empty line to finish"
        + (", keeps the current ones)" if default else ")")
    )
    lines: list[str] = []
    while True:
        try:
            line = ctx.interviewer.ask("> ")
        except (EOFError, KeyboardInterrupt) as e:
            raise ShellError("Cancelled.") from e
        if not (line or "").strip():
            break
        lines.append(line.rstrip())
    return "\n".join(lines) if lines else default


# -----------------------
# Reserved built-ins
# -----------------------


def cmd_cd(arguments: list[str], ctx: ShellContext) -> int:
    if not arguments:
        target = os.path.expanduser("~")
    elif arguments[0] == "-":
        if ctx.prev_cwd is None:
            raise NotFound("cd: no previous directory")
        target = ctx.prev_cwd
    else:
        target = os.path.expanduser(" ".join(arguments))

    if not os.path.isabs(target):
        target = os.path.join(ctx.cwd, target)
    target = os.path.normpath(target)

    if not os.path.isdir(target):
        raise NotFound(f"cd: no such directory: {target}")

    ctx.change_directory(target)
    return 0


def cmd_exit(arguments: list[str], ctx: ShellContext) -> int:
    code = 0
    if arguments:
        try:
            code = int(arguments[0])
        except ValueError as e:
            raise ValidationError(
                f"exit: numeric argument required, got '{arguments[0]}'"
            ) from e
    ctx.running = False
    ctx.exit_code = code
    return code


def cmd_set(arguments: list[str], ctx: ShellContext) -> int:
    assignment = " ".join(arguments)
    name, sep, value = assignment.partition("=")
    name = name.strip()
    if not sep or not name:
        raise MissingArgument("set: usage set name=value")
    os.environ[name] = value
    return 0


def cmd_unset(arguments: list[str], ctx: ShellContext) -> int:
    if not arguments:
        raise MissingArgument("unset: usage unset name")
    for name in arguments:
        os.environ.pop(name, None)
    return 0


def cmd_exec(arguments: list[str], ctx: ShellContext) -> int:
    if not arguments:
        raise MissingArgument("exec: usage exec program [arguments]")
    return ctx.executor.run_argv(arguments, cwd=ctx.cwd, output=ctx.redirect)


# -----------------------
# help
# -----------------------


def cmd_help(arguments: list[str], ctx: ShellContext) -> int:
    if not arguments:
        topics = ctx.store.list_help_topics()
        lines = ["Available help topics:"]
        lines.extend(f"  {topic}" for topic in topics)
        lines.append("Type 'help <topic>' for details.")
        _write(ctx, "\n".join(lines))
        return 0

    topic = " ".join(arguments)
    entry = ctx.store.get_help(topic)
    if entry is None:
        raise NotFound(f"No help entry for '{topic}'")
    usage = colorize(entry["usage"], "cyan") if entry["usage"] else ""
    _write(ctx, "\n\n".join(s for s in (usage, entry["content"]) if s))
    return 0


# -----------------------
# history
# -----------------------

HISTORY_USAGE = "history [show|clear]"


def cmd_history(arguments: list[str], ctx: ShellContext) -> int:
    sub = arguments[0] if arguments else "show"

    if sub == "show":
        try:
            amount = int(ctx.config.get_path("history.amount", 20))
        except (TypeError, ValueError):
            amount = 20
        entries = ctx.store.list_history(amount)
        if not entries:
            _write(ctx, "The history of commands is empty.")
            return 0
        rows = [[e["lastused"], e["amount"], e["command"]] for e in entries]
        _write(
            ctx,
            format_table(
                ["Last used", "Times", "Command"], rows,
                f"The last {len(rows)} commands from the history:",
            ),
        )
        return 0

    if sub == "clear":
        ctx.store.clear_history()
        _write(ctx, "The history of commands cleared.")
        return 0

    raise ValidationError(
        f"Unknown history command '{sub}'. Usage: {HISTORY_USAGE}"
    )


# -----------------------
# alias
# -----------------------

ALIAS_USAGE = "alias [list [all]|delete|show|add|edit] [index]"


def cmd_alias(arguments: list[str], ctx: ShellContext) -> int:
    sub = arguments[0] if arguments else "list"

    if sub == "list":
        show_all = len(arguments) > 1 and arguments[1] == "all"
        aliases = ctx.aliases.list(in_scope_only=not show_all)
        if not aliases:
            _write(
                ctx,
                "There are no defined aliases."
                if show_all else
                "There are no defined aliases for the current directory.",
            )
            return 0
        title = "All aliases:" if show_all else "Aliases in scope:"
        rows = [[a.id, a.name, a.description] for a in aliases]
        _write(ctx, format_table(["ID", "Name", "Description"], rows, title))
        return 0

    if sub == "delete":
        alias_id = _index(arguments, "alias delete <index>")
        ctx.aliases.delete(alias_id)
        _write(ctx, f"Deleted the alias with index {alias_id}.")
        return 0

    if sub == "show":
        alias = ctx.aliases.get(_index(arguments, "alias show <index>"))
        rows = [
            ["Id:", alias.id],
            ["Name:", alias.name],
            ["Path:", alias.path + (" (recursive)" if alias.recursive else "")],
            ["Output:", alias.output],
            ["Description:", alias.description],
            ["Commands:", alias.commands.replace("\n", "; ")],
        ]
        _write(ctx, format_table(["Field", "Value"], rows))
        return 0

    if sub == "add":
        ctx.interviewer.write(
            "Adding a new alias. Press Ctrl-C to cancel."
        )
        alias = _alias_form(ctx, None)
        alias_id = ctx.aliases.add(alias)
        _write(ctx, f"The new alias '{alias.name}' added with index {alias_id}.")
        return 0

    if sub == "edit":
        alias_id = _index(arguments, "alias edit <index>")
        current = ctx.aliases.get(alias_id)
        ctx.interviewer.write(
            f"Editing the alias {alias_id}. Empty answers keep the value."
        )
        ctx.aliases.edit(alias_id, _alias_form(ctx, current))
        _write(ctx, f"The alias with index {alias_id} edited.")
        return 0

    raise ValidationError(f"Unknown alias command '{sub}'. Usage: {ALIAS_USAGE}")


def _alias_form(
    ctx: ShellContext, current: AliasDefinition | None
) -> AliasDefinition:
    name = _ask(ctx, "Name", current.name if current else "")
    description = _ask(
        ctx, "Description", current.description if current else ""
    )
    path = _ask(ctx, "Path", current.path if current else ctx.cwd)
    recursive = _ask_bool(
        ctx, "Recursive", current.recursive if current else False
    )
    commands = _ask_lines(
        ctx, "Commands", current.commands if current else ""
    )
    output = _ask(
        ctx,
        "Output (stdout, stderr or file path)",
        current.output if current else OUTPUT_INHERIT,
    )
    if output not in ("stdout", "stderr"):
        output = _resolve_path(ctx, output)
    return AliasDefinition(
        id=current.id if current else 0,
        name=name,
        path=_resolve_path(ctx, path),
        recursive=recursive,
        commands=commands,
        description=description,
        output=output,
    )


# -----------------------
# variable
# -----------------------

VARIABLE_USAGE = "variable [list [all]|delete|show|add|edit] [index]"


def cmd_variable(arguments: list[str], ctx: ShellContext) -> int:
    sub = arguments[0] if arguments else "list"

    if sub == "list":
        show_all = len(arguments) > 1 and arguments[1] == "all"
        variables = ctx.variables.list(in_scope_only=not show_all)
        if not variables:
            _write(
                ctx,
                "There are no defined variables."
                if show_all else
                "There are no defined variables for the current directory.",
            )
            return 0
        title = "All variables:" if show_all else "Variables in scope:"
        rows = [[v.id, v.name, v.value, v.description] for v in variables]
        _write(
            ctx,
            format_table(["ID", "Name", "Value", "Description"], rows, title),
        )
        return 0

    if sub == "delete":
        variable_id = _index(arguments, "variable delete <index>")
        ctx.variables.delete(variable_id)
        _write(ctx, f"Deleted the variable with index {variable_id}.")
        return 0

    if sub == "show":
        variable = ctx.variables.get(_index(arguments, "variable show <index>"))
        rows = [
            ["Id:", variable.id],
            ["Name:", variable.name],
            [
                "Path:",
                variable.path + (" (recursive)" if variable.recursive else ""),
            ],
            ["Value:", variable.value],
            ["Description:", variable.description],
        ]
        _write(ctx, format_table(["Field", "Value"], rows))
        return 0

    if sub == "add":
        ctx.interviewer.write(
            "Adding a new variable. Press Ctrl-C to cancel."
        )
        variable = _variable_form(ctx, None)
        variable_id = ctx.variables.add(variable)
        _write(
            ctx,
            f"The new variable '{variable.name}' added with index "
            f"{variable_id}.",
        )
        return 0

    if sub == "edit":
        variable_id = _index(arguments, "variable edit <index>")
        current = ctx.variables.get(variable_id)
        ctx.interviewer.write(
            f"Editing the variable {variable_id}. Empty answers keep the value."
        )
        ctx.variables.edit(variable_id, _variable_form(ctx, current))
        _write(ctx, f"The variable with index {variable_id} edited.")
        return 0

    raise ValidationError(
        f"Unknown variable command '{sub}'. Usage: {VARIABLE_USAGE}"
    )


def _variable_form(
    ctx: ShellContext, current: VariableDefinition | None
) -> VariableDefinition:
    name = _ask(ctx, "Name", current.name if current else "")
    description = _ask(
        ctx, "Description", current.description if current else ""
    )
    path = _ask(ctx, "Path", current.path if current else ctx.cwd)
    recursive = _ask_bool(
        ctx, "Recursive", current.recursive if current else False
    )
    value = _ask(ctx, "Value", current.value if current else "")
    if not value:
        raise ValidationError("Variable value can't be empty")
    return VariableDefinition(
        id=current.id if current else 0,
        name=name,
        path=_resolve_path(ctx, path),
        recursive=recursive,
        value=value,
        description=description,
    )


# -----------------------
# plugin
# -----------------------

PLUGIN_USAGE = "plugin [list [all]|remove|show|add|enable|disable] [path|index]"


def cmd_plugin(arguments: list[str], ctx: ShellContext) -> int:
    sub = arguments[0] if arguments else "list"

    if sub == "list":
        show_all = len(arguments) > 1 and arguments[1] == "all"
        records = ctx.plugins.list(show_all=show_all)
        if not records:
            _write(
                ctx,
                "There are no installed plugins."
                if show_all else "There are no enabled plugins.",
            )
            return 0
        if show_all:
            rows = [
                [r.id, r.name, "Yes" if r.enabled else "No", r.path]
                for r in records
            ]
            headers = ["ID", "Name", "Enabled", "Path"]
        else:
            rows = [[r.id, r.name, r.description] for r in records]
            headers = ["ID", "Name", "Description"]
        title = "All plugins:" if show_all else "Enabled plugins:"
        _write(ctx, format_table(headers, rows, title))
        return 0

    if sub == "add":
        if len(arguments) < 2:
            raise MissingArgument("Enter the path to the plugin.")
        record = ctx.plugins.add(" ".join(arguments[1:]))
        record = ctx.plugins.enable(record.id)
        _write(
            ctx,
            f"The plugin '{record.name}' added with index {record.id}.",
        )
        return 0

    if sub == "remove":
        plugin_id = _index(arguments, "plugin remove <index>")
        ctx.plugins.remove(plugin_id)
        _write(ctx, f"Removed the plugin with index {plugin_id}.")
        return 0

    if sub == "enable":
        plugin_id = _index(arguments, "plugin enable <index>")
        ctx.plugins.enable(plugin_id)
        _write(ctx, f"Enabled the plugin with index {plugin_id}.")
        return 0

    if sub == "disable":
        plugin_id = _index(arguments, "plugin disable <index>")
        ctx.plugins.disable(plugin_id)
        _write(ctx, f"Disabled the plugin with index {plugin_id}.")
        return 0

    if sub == "show":
        record = ctx.plugins.get(_index(arguments, "plugin show <index>"))
        rows = [
            ["Id:", record.id],
            ["Path:", record.path],
            ["Enabled:", "Yes" if record.enabled else "No"],
            ["API version:", record.api_version],
            ["API used:", ", ".join(record.calls)],
            ["Name:", record.name],
            ["Description:", record.description],
        ]
        _write(ctx, format_table(["Field", "Value"], rows))
        return 0

    raise ValidationError(
        f"Unknown plugin command '{sub}'. Usage: {PLUGIN_USAGE}"
    )


BUILTINS: dict[str, Callable[[list[str], "ShellContext"], int]] = {
    "cd": cmd_cd,
    "exit": cmd_exit,
    "set": cmd_set,
    "unset": cmd_unset,
    "exec": cmd_exec,
    "help": cmd_help,
    "history": cmd_history,
    "alias": cmd_alias,
    "variable": cmd_variable,
    "plugin": cmd_plugin,
}

