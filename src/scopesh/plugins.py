# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Plugin process lifecycle and call protocol.

A call spawns ``<plugin> <call> [arguments...]`` with pipes on stdin and
stdout. Every line the plugin prints is a request for the shell:

    verb argument "argument with spaces" ...

The host reads one line, dispatches one verb, and repeats until the
plugin closes stdout and exits, or the timeout expires. Replies (only
``getOption`` has one) are written back on the plugin's stdin.

Exit codes: 0 success, 1 failure, 2 call not supported by the plugin.

Lifecycle: add (info + install) -> enable <-> disable -> remove
(uninstall). Calls made during a transition fail the transition on any
exit code except 0 and 2.
"""

from __future__ import annotations

import os
import re
import select
import shlex
import subprocess
import time
from collections.abc import Callable
from dataclasses import replace
from typing import TYPE_CHECKING

from loguru import logger

from .config import colorize
from .errors import (
    AlreadyExists,
    NotFound,
    PluginUnavailable,
    ProtocolViolation,
    ShellError,
)
from .executor import EXIT_INTERRUPTED, stop_process
from .models import PluginInfo, PluginRecord, PluginResponse
from .registry import PluginTrampoline

if TYPE_CHECKING:
    from .kernel import ShellContext  # pragma: no cover

MIN_API_VERSION = "0.2"
DEFAULT_TIMEOUT = 10

_VERSION = re.compile(r"^\s*(\d+)\.(\d+)\s*$")


def parse_version(text: str) -> tuple[int, int]:
    """Parse a ``major.minor`` API version.

    Raises:
        PluginUnavailable: text is not a version
    """
    match = _VERSION.match(text or "")
    if match is None:
        raise PluginUnavailable(f"Invalid plugin API version '{text}'")
    return int(match.group(1)), int(match.group(2))


def parse_info(answer: str) -> PluginInfo:
    """Parse ``name;description;api-version;call,call,...``."""
    fields = answer.split(";")
    if len(fields) < 4:
        raise PluginUnavailable(
            f"Invalid info answer '{answer}': expected "
            "name;description;api-version;calls"
        )
    name, description, api_version, calls = (f.strip() for f in fields[:4])
    parse_version(api_version)
    return PluginInfo(
        name=name,
        description=description,
        api_version=api_version,
        calls=tuple(c.strip() for c in calls.split(",") if c.strip()),
    )


class PluginHost:
    """Runs plugin processes and applies their requests to the shell."""

    def __init__(self, context: ShellContext) -> None:
        self.context = context
        # verb -> (handler, minimal argument count)
        self._verbs: dict[str, tuple[Callable, int]] = {
            "showOutput": (self._show_output, 1),
            "showError": (self._show_error, 1),
            "setOption": (self._set_option, 4),
            "removeOption": (self._remove_option, 1),
            "getOption": (self._get_option, 1),
            "answer": (self._answer, 1),
            "addCommand": (self._add_command, 1),
            "deleteCommand": (self._delete_command, 1),
            "replaceCommand": (self._replace_command, 1),
            "addHelp": (self._add_help, 3),
            "updateHelp": (self._update_help, 3),
            "deleteHelp": (self._delete_help, 1),
        }

    # ------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------

    @property
    def timeout(self) -> float:
        value = self.context.config.get_path(
            "plugins.timeout", DEFAULT_TIMEOUT
        )
        try:
            return float(value)
        except (TypeError, ValueError):
            return float(DEFAULT_TIMEOUT)

    @property
    def min_api_version(self) -> str:
        return str(
            self.context.config.get_path(
                "plugins.min_api_version", MIN_API_VERSION
            )
        )

    # ------------------------------------------------------------
    # Process invocation
    # ------------------------------------------------------------

    def exec_plugin(
        self,
        path: str,
        call: str,
        arguments: list[str] | None = None,
        owner: PluginRecord | None = None,
    ) -> PluginResponse:
        """Run one plugin call and serve its requests until it exits.

        Args:
            path: plugin executable
            call: call name, passed lower-cased as the first argument
            arguments: further arguments for the plugin
            owner: installed record the requests are made on behalf of;
                None for calls made before the plugin is recorded

        Returns:
            PluginResponse with the exit code and any ``answer`` text

        Raises:
            PluginUnavailable: the process could not be spawned
        """
        argv = [path, call.lower(), *(arguments or [])]
        logger.debug("Plugin call: {}", argv)
        try:
            proc = subprocess.Popen(
                argv,
                stdin=subprocess.PIPE,
                stdout=subprocess.PIPE,
                stderr=None,
                cwd=self.context.cwd,
                env=os.environ.copy(),
            )
        except OSError as e:
            raise PluginUnavailable(
                f"Can't execute plugin '{path}': {e}"
            ) from e

        assert proc.stdout is not None
        answers: list[str] = []
        timed_out = False
        deadline = time.time() + self.timeout
        fd = proc.stdout.fileno()
        pending = b""

        try:
            while True:
                remaining = deadline - time.time()
                if remaining <= 0:
                    timed_out = True
                    break
                ready, _, _ = select.select([fd], [], [], min(remaining, 0.1))
                if not ready:
                    continue
                chunk = os.read(fd, 4096)
                if not chunk:
                    break
                pending += chunk
                while b"\n" in pending:
                    raw, pending = pending.split(b"\n", 1)
                    self._serve_line(raw, proc, path, owner, answers)

            if not timed_out and pending.strip():
                self._serve_line(pending, proc, path, owner, answers)

            if not timed_out:
                try:
                    proc.wait(timeout=max(deadline - time.time(), 0.1))
                except subprocess.TimeoutExpired:
                    timed_out = True
        except KeyboardInterrupt:
            stop_process(proc)
            _close_pipes(proc)
            return PluginResponse(code=EXIT_INTERRUPTED)

        if timed_out:
            logger.warning(
                "Plugin {} timed out on '{}' after {}s",
                path, call, self.timeout,
            )
            stop_process(proc)
            _close_pipes(proc)
            return PluginResponse(
                code=1, answer="\n".join(answers), timed_out=True
            )

        _close_pipes(proc)
        code = proc.returncode if proc.returncode is not None else 1
        logger.debug("Plugin {} '{}' exited with {}", path, call, code)
        return PluginResponse(code=code, answer="\n".join(answers))

    def _serve_line(
        self,
        raw: bytes,
        proc: subprocess.Popen,
        path: str,
        owner: PluginRecord | None,
        answers: list[str],
    ) -> None:
        line = raw.decode("utf-8", errors="replace").strip()
        if not line:
            return
        try:
            self.dispatch(line, proc, owner, answers)
        except ProtocolViolation as e:
            logger.warning("Plugin {}: {}", path, e)
            self._error(f"Plugin '{path}': {e}")
        except ShellError as e:
            logger.warning("Plugin {} request failed: {}", path, e)
            self._error(f"Plugin '{path}': {e}")

    def dispatch(
        self,
        line: str,
        proc: subprocess.Popen | None,
        owner: PluginRecord | None,
        answers: list[str],
    ) -> None:
        """Apply one request line.

        Raises:
            ProtocolViolation: malformed line, unknown verb or missing
                arguments
        """
        try:
            words = shlex.split(line)
        except ValueError as e:
            raise ProtocolViolation(f"Malformed line '{line}': {e}") from e
        if not words:
            return

        verb, args = words[0], words[1:]
        entry = self._verbs.get(verb)
        if entry is None:
            raise ProtocolViolation(f"Unknown API call '{verb}'")
        handler, min_args = entry
        if len(args) < min_args:
            raise ProtocolViolation(
                f"Insufficient arguments for '{verb}': "
                f"{min_args} required, {len(args)} given"
            )
        handler(args, proc, owner, answers)

    # ------------------------------------------------------------
    # Verbs
    # ------------------------------------------------------------

    def _show_output(self, args, proc, owner, answers) -> None:
        color = args[1] if len(args) > 1 else ""
        self._output(colorize(args[0], color))

    def _show_error(self, args, proc, owner, answers) -> None:
        self._error(" ".join(args))

    def _set_option(self, args, proc, owner, answers) -> None:
        name, value, description, value_type = args[:4]
        self.context.store.set_option(name, value, description, value_type)

    def _remove_option(self, args, proc, owner, answers) -> None:
        if not self.context.store.remove_option(args[0]):
            raise NotFound(f"Option '{args[0]}' does not exist")

    def _get_option(self, args, proc, owner, answers) -> None:
        value = self.context.store.get_option(args[0]) or ""
        if proc is None or proc.stdin is None:
            return
        try:
            proc.stdin.write((value + "\n").encode("utf-8"))
            proc.stdin.flush()
        except BrokenPipeError:
            logger.debug("Plugin closed stdin before getOption reply")

    def _answer(self, args, proc, owner, answers) -> None:
        answers.append(" ".join(args))

    def _require_owner(self, verb: str, owner: PluginRecord | None) -> int:
        if owner is None:
            raise ProtocolViolation(
                f"'{verb}' is only allowed for installed plugins"
            )
        return owner.id

    def _add_command(self, args, proc, owner, answers) -> None:
        plugin_id = self._require_owner("addCommand", owner)
        self.context.registry.register(
            args[0], PluginTrampoline(plugin_id, args[0]), plugin_id
        )

    def _delete_command(self, args, proc, owner, answers) -> None:
        self._require_owner("deleteCommand", owner)
        self.context.registry.unregister(args[0])

    def _replace_command(self, args, proc, owner, answers) -> None:
        plugin_id = self._require_owner("replaceCommand", owner)
        self.context.registry.replace(
            args[0], PluginTrampoline(plugin_id, args[0]), plugin_id
        )

    def _add_help(self, args, proc, owner, answers) -> None:
        self._require_owner("addHelp", owner)
        topic, usage, content = args[:3]
        if self.context.store.get_help(topic) is not None:
            raise AlreadyExists(f"Help topic '{topic}' already exists")
        self.context.store.set_help(topic, usage, content, owner.path)

    def _update_help(self, args, proc, owner, answers) -> None:
        self._require_owner("updateHelp", owner)
        topic, usage, content = args[:3]
        if self.context.store.get_help(topic) is None:
            raise NotFound(f"Help topic '{topic}' does not exist")
        self.context.store.set_help(topic, usage, content, owner.path)

    def _delete_help(self, args, proc, owner, answers) -> None:
        self._require_owner("deleteHelp", owner)
        if not self.context.store.delete_help(args[0]):
            raise NotFound(f"Help topic '{args[0]}' does not exist")

    # ------------------------------------------------------------
    # info + compatibility
    # ------------------------------------------------------------

    def info(self, path: str) -> PluginInfo:
        """Run the mandatory ``info`` call.

        Raises:
            PluginUnavailable: no answer, unsupported or malformed
        """
        response = self.exec_plugin(path, "info")
        if response.unsupported or not response.answer:
            raise PluginUnavailable(
                f"Plugin '{path}' did not answer the info call"
            )
        if not response.ok:
            raise PluginUnavailable(
                f"Plugin '{path}' failed the info call "
                f"(exit code {response.code})"
            )
        return parse_info(response.answer.splitlines()[0])

    def check_compatible(self, info: PluginInfo) -> None:
        if parse_version(info.api_version) < parse_version(
            self.min_api_version
        ):
            raise PluginUnavailable(
                f"Plugin '{info.name}' uses API version {info.api_version}, "
                f"at least {self.min_api_version} is required"
            )

    # ------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------

    def get(self, plugin_id: int) -> PluginRecord:
        record = self.context.store.get_plugin(plugin_id)
        if record is None:
            raise NotFound(f"The plugin with index {plugin_id} not found")
        return record

    def is_enabled(self, plugin_id: int) -> bool:
        record = self.context.store.get_plugin(plugin_id)
        return bool(record and record.enabled)

    def list(self, show_all: bool = False) -> list[PluginRecord]:
        records = self.context.store.list_plugins()
        if show_all:
            return records
        return [r for r in records if r.enabled]

    def add(self, path: str) -> PluginRecord:
        """Record a new plugin and run its ``install`` call.

        The plugin is left disabled; ``enable`` activates it.
        """
        full = os.path.normpath(
            os.path.join(self.context.cwd, os.path.expanduser(path))
        )
        if not os.path.isfile(full):
            raise PluginUnavailable(f"Plugin file '{full}' does not exist")
        if self.context.store.find_plugin_by_path(full) is not None:
            raise AlreadyExists(f"Plugin '{full}' is already added")

        info = self.info(full)
        self.check_compatible(info)

        plugin_id = self.context.store.add_plugin(
            full,
            name=info.name,
            description=info.description,
            api_version=info.api_version,
            calls=info.calls,
            enabled=False,
        )
        record = self.get(plugin_id)
        try:
            self._transition(record, "install")
        except ShellError:
            self._purge(record)
            raise
        logger.info("Added plugin {} ({})", info.name, full)
        return record

    def enable(self, plugin_id: int) -> PluginRecord:
        """Run ``info`` and ``enable``, then ``init`` when declared.

        ``init`` runs after the state change; its failure is reported
        but leaves the plugin enabled, as at startup.
        """
        record = self.get(plugin_id)
        if record.enabled:
            return record

        info = self.info(record.path)
        self.check_compatible(info)
        self.context.store.update_plugin_info(
            plugin_id, info.name, info.description, info.api_version,
            info.calls,
        )
        record = replace(
            record,
            name=info.name,
            description=info.description,
            api_version=info.api_version,
            calls=info.calls,
        )

        self._transition(record, "enable")
        self.context.store.set_plugin_enabled(plugin_id, True)
        record = replace(record, enabled=True)
        logger.info("Enabled plugin {}", record.name or record.path)

        if record.declares("init"):
            self._initialize(record)
        return record

    def disable(self, plugin_id: int) -> PluginRecord:
        """Run ``disable``, then drop the plugin's commands and help.

        Replaced built-ins come back; ``init`` registers the commands
        again on the next enable.
        """
        record = self.get(plugin_id)
        if not record.enabled:
            return record

        self._transition(record, "disable")
        self.context.store.set_plugin_enabled(plugin_id, False)
        self._drop_commands(record)
        self.context.store.delete_plugin_help(record.path)
        logger.info("Disabled plugin {}", record.name or record.path)
        return replace(record, enabled=False)

    def remove(self, plugin_id: int) -> None:
        """Run ``disable`` (when enabled) and ``uninstall``, then forget it.

        A plugin whose file is gone is removed without any call.
        """
        record = self.get(plugin_id)
        if os.path.isfile(record.path):
            if record.enabled:
                self._transition(record, "disable")
            self._transition(record, "uninstall")
        else:
            logger.warning(
                "Plugin file {} is missing, removing record only",
                record.path,
            )
        self._purge(record)
        logger.info("Removed plugin {}", record.name or record.path)

    def init_all(self) -> None:
        """Re-check every enabled plugin and run its ``init`` call.

        Incompatible or broken plugins are disabled and reported.
        """
        for record in self.list():
            try:
                info = self.info(record.path)
                self.check_compatible(info)
            except PluginUnavailable as e:
                self.context.store.set_plugin_enabled(record.id, False)
                self._error(f"Plugin '{record.path}' disabled: {e}")
                logger.warning("Disabled plugin {}: {}", record.path, e)
                continue

            self.context.store.update_plugin_info(
                record.id, info.name, info.description, info.api_version,
                info.calls,
            )
            if "init" not in (c.lower() for c in info.calls):
                continue
            current = replace(
                record, name=info.name, api_version=info.api_version,
                calls=info.calls,
            )
            self._initialize(current)

    def _transition(self, record: PluginRecord, call: str) -> PluginResponse:
        response = self.exec_plugin(record.path, call, owner=record)
        if response.ok or response.unsupported:
            return response
        label = record.name or record.path
        if response.timed_out:
            raise ShellError(f"Plugin '{label}' timed out on the {call} call")
        raise ShellError(
            f"Plugin '{label}' failed the {call} call "
            f"(exit code {response.code})"
        )

    def _initialize(self, record: PluginRecord) -> None:
        try:
            self._transition(record, "init")
        except ShellError as e:
            logger.warning("Init of plugin {} failed: {}", record.path, e)
            self._error(str(e))

    def _drop_commands(self, record: PluginRecord) -> None:
        removed = self.context.registry.unregister_plugin(record.id)
        if removed:
            logger.debug("Dropped commands {} of plugin {}", removed, record.id)

    def _purge(self, record: PluginRecord) -> None:
        self._drop_commands(record)
        self.context.store.delete_plugin_help(record.path)
        self.context.store.delete_plugin(record.id)

    # ------------------------------------------------------------
    # Commands and hooks
    # ------------------------------------------------------------

    def call_command(
        self, plugin_id: int, name: str, arguments: list[str]
    ) -> int:
        """Execute a plugin-provided command. Returns the exit code."""
        record = self.get(plugin_id)
        if not record.enabled:
            raise PluginUnavailable(
                f"Plugin '{record.name or record.path}' is disabled"
            )
        response = self.exec_plugin(record.path, name, arguments, record)
        if response.timed_out:
            self._error(f"Plugin '{record.name}' timed out on '{name}'")
            return 1
        if response.answer:
            self._output(response.answer)
        return response.code

    def pre_command(self, text: str) -> None:
        self._fire_hook("preCommand", text)

    def post_command(self, text: str) -> None:
        self._fire_hook("postCommand", text)

    def _fire_hook(self, call: str, text: str) -> None:
        for record in self.list():
            if not record.declares(call):
                continue
            try:
                response = self.exec_plugin(record.path, call, [text], record)
            except ShellError as e:
                logger.warning("Hook {} of {} failed: {}", call, record.path, e)
                continue
            if not (response.ok or response.unsupported):
                logger.warning(
                    "Hook {} of {} exited with {}",
                    call, record.path, response.code,
                )

    # ------------------------------------------------------------
    # Output
    # ------------------------------------------------------------

    def _output(self, text: str) -> None:
        if self.context.output_fn is not None:
            self.context.output_fn(text + "\n")

    def _error(self, text: str) -> None:
        if self.context.error_fn is not None:
            self.context.error_fn(colorize(text, "red") + "\n")


def _close_pipes(proc: subprocess.Popen) -> None:
    for pipe in (proc.stdin, proc.stdout):
        if pipe is None:
            continue
        try:
            pipe.close()
        except OSError:
            pass
