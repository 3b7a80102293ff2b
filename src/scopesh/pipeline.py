# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Turns one input line into executed effects.

Per line:
1. split on ``&&`` / ``||`` outside quotes (a lone ``.`` segment stands
   for the previous line)
2. resolve each segment: alias in scope, then registry handler, then an
   external program through the system shell
3. fire plugin preCommand/postCommand hooks around every built-in,
   plugin command and external program
4. skip segments whose gate does not match the status of the last
   executed segment
"""

from __future__ import annotations

import shlex
from collections.abc import Callable
from typing import TYPE_CHECKING

from loguru import logger

from .config import colorize
from .errors import NotFound, ParseError, ShellError
from .models import OUTPUT_INHERIT, OUTPUT_STDERR, AliasDefinition, Segment
from .utils import split_commands, split_first_word, substitute_arguments

if TYPE_CHECKING:
    from .kernel import ShellContext  # pragma: no cover

REPEAT_TOKEN = "."


class ExecutionPipeline:
    """Executes input lines against a ShellContext."""

    def __init__(self, context: ShellContext) -> None:
        self.context = context
        # Alias execution recursion tracking
        self._alias_expansion_stack: list[str] = []

    @property
    def max_alias_depth(self) -> int:
        return int(self.context.config.get_path("aliases.max_depth", 10))

    # -----------------------
    # Entry point
    # -----------------------

    def run(self, line: str) -> int:
        """Execute one line typed by the user and return its exit status.

        Every ShellError is reported through the error callback and
        becomes status 1.
        """
        try:
            status = self.run_line(line, top_level=True)
        except ShellError as e:
            self.report(e)
            status = 1
        self.context.exit_status = status
        return status

    def run_line(self, line: str, top_level: bool = False) -> int:
        segments = split_commands(line)
        if not segments:
            return 0

        if top_level:
            segments = self._repeat_previous(segments)
            self.context.last_line = _join(segments)

        status = 0
        executed = False
        for segment in segments:
            if executed and segment.gate == "&&" and status != 0:
                logger.debug("Skipping '{}' (previous failed)", segment.text)
                continue
            if executed and segment.gate == "||" and status == 0:
                logger.debug("Skipping '{}' (previous succeeded)", segment.text)
                continue
            status = self.run_segment(segment.text)
            executed = True
        return status

    def _repeat_previous(self, segments: list[Segment]) -> list[Segment]:
        if all(s.text != REPEAT_TOKEN for s in segments):
            return segments
        previous = self.context.last_line
        if not previous:
            raise NotFound("No previous command to repeat")

        expanded: list[Segment] = []
        for segment in segments:
            if segment.text != REPEAT_TOKEN:
                expanded.append(segment)
                continue
            repeated = split_commands(previous)
            expanded.append(Segment(repeated[0].text, segment.gate))
            expanded.extend(repeated[1:])
        return expanded

    # -----------------------
    # Segment resolution
    # -----------------------

    def run_segment(self, text: str) -> int:
        """Resolve and execute one segment; errors become status 1."""
        ctx = self.context
        try:
            name, rest = split_first_word(text)

            if name not in self._alias_expansion_stack:
                alias = ctx.aliases.lookup(name)
                if alias is not None:
                    return self.run_alias(alias, rest)

            handler = ctx.registry.resolve(name, ctx)
            if handler is not None:
                try:
                    arguments = shlex.split(rest)
                except ValueError as e:
                    raise ParseError(f"Invalid arguments: {e}") from e
                return self._with_hooks(
                    text, lambda: handler.execute(arguments, ctx)
                )

            return self._with_hooks(
                text,
                lambda: ctx.executor.run(
                    text, cwd=ctx.cwd, output=ctx.redirect
                ),
            )
        except ShellError as e:
            self.report(e)
            return 1

    def run_alias(self, alias: AliasDefinition, rest: str) -> int:
        """Run an alias body line by line, stopping at the first failure.

        A ``cd`` inside the body only lasts until the alias finishes.
        With an output other than stdout, programs, built-ins and plugin
        commands all write there instead, and stdin is not connected.
        An alias that is already expanding is not expanded again, so a
        body like ``ls --color`` for alias ``ls`` runs the real program.
        """
        if len(self._alias_expansion_stack) >= self.max_alias_depth:
            stack_str = " -> ".join(self._alias_expansion_stack)
            raise ShellError(
                f"Max alias expansion depth ({self.max_alias_depth}) "
                f"exceeded. Stack: {stack_str}"
            )

        # Substitute everything first so a missing argument runs nothing
        commands = [substitute_arguments(ln, rest) for ln in alias.lines]

        ctx = self.context
        saved_cwd, saved_prev = ctx.cwd, ctx.prev_cwd
        saved_redirect, saved_output = ctx.redirect, ctx.output_fn
        if alias.output != OUTPUT_INHERIT:
            ctx.redirect = alias.output
            ctx.output_fn = self._redirected_writer(alias.output)

        self._alias_expansion_stack.append(alias.name)
        logger.info("Alias {} ({}): {}", alias.name, alias.id, commands)
        try:
            status = 0
            for command in commands:
                status = self.run_line(command)
                if status != 0:
                    break
            return status
        finally:
            self._alias_expansion_stack.pop()
            ctx.redirect, ctx.output_fn = saved_redirect, saved_output
            if ctx.cwd != saved_cwd:
                ctx.change_directory(saved_cwd)
                ctx.prev_cwd = saved_prev

    def _redirected_writer(self, output: str) -> Callable[[str], None] | None:
        if output == OUTPUT_STDERR:
            return self.context.error_fn

        def append(text: str) -> None:
            try:
                with open(output, "a", encoding="utf-8") as sink:
                    sink.write(text)
            except OSError as e:
                raise ShellError(
                    f"Cannot open output file '{output}': {e}"
                ) from e

        return append

    def _with_hooks(self, text: str, action) -> int:
        plugins = self.context.plugins
        plugins.pre_command(text)
        try:
            status = action()
        finally:
            plugins.post_command(text)
        logger.debug("'{}' exited with {}", text, status)
        return status

    # -----------------------
    # Output
    # -----------------------

    def report(self, error: ShellError) -> None:
        logger.info("{}: {}", type(error).__name__, error)
        if self.context.error_fn is not None:
            self.context.error_fn(colorize(str(error), "red") + "\n")


def _join(segments: list[Segment]) -> str:
    parts: list[str] = []
    for segment in segments:
        if segment.gate:
            parts.append(segment.gate)
        parts.append(segment.text)
    return " ".join(parts)
