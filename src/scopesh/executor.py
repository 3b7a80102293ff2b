# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Subprocess-backed executor implementation for ScopeSh.

External programs run attached to the real terminal: no output capture,
so pagers and interactive tools work. Two entry points:
- run(): through the system shell (quoting, globbing, pipes)
- run_argv(): directly, bypassing the shell (the ``exec`` built-in)

Output modes (alias ``output`` field):
- "stdout": inherit stdin/stdout/stderr
- "stderr": stdout goes to the shell's stderr, stdin is not connected
- <path>: stdout is appended to the file, stdin is not connected
"""

from __future__ import annotations

import os
import subprocess
import time
from typing import IO

from loguru import logger

from .errors import NotFound, ShellError
from .models import OUTPUT_INHERIT, OUTPUT_STDERR

EXIT_INTERRUPTED = 130

STDERR_FD = 2


class SubprocessExecutor:
    """Subprocess implementation of Executor protocol."""

    def __init__(self, force_color: bool = False, timeout: int = 0):
        """Initialize executor with configuration.

        Args:
            force_color: If True, set color-forcing env variables
            timeout: Seconds before a program is terminated (0 = never)
        """
        self.force_color = force_color
        self.timeout = timeout

    def _build_env(self) -> dict:
        env = os.environ.copy()
        if self.force_color:
            env["PY_COLORS"] = "1"
            env["FORCE_COLOR"] = "1"
            env["CLICOLOR_FORCE"] = "1"
        return env

    def run(
        self, command: str, cwd: str | None = None, output: str = "stdout"
    ) -> int:
        """Run a command line through the system shell.

        Args:
            command: shell command to execute
            cwd: working directory for the command
            output: output mode ("stdout", "stderr" or a file path)

        Returns:
            exit code (127 is normalized to 1, Ctrl-C gives 130)
        """
        logger.debug("run (shell): {} [cwd={}, output={}]", command, cwd, output)
        return self._spawn(command, shell=True, cwd=cwd, output=output)

    def run_argv(
        self, argv: list[str], cwd: str | None = None,
        output: str = "stdout"
    ) -> int:
        """Run a program directly with the given argument vector."""
        if not argv:
            raise ShellError("exec: no program given")
        logger.debug("run (direct): {} [cwd={}, output={}]", argv, cwd, output)
        return self._spawn(argv, shell=False, cwd=cwd, output=output)

    def _spawn(
        self,
        args: str | list[str],
        shell: bool,
        cwd: str | None,
        output: str,
    ) -> int:
        stdin: int | None = None
        stdout: int | IO[bytes] | None = None
        sink: IO[bytes] | None = None

        if output == OUTPUT_STDERR:
            stdin = subprocess.DEVNULL
            stdout = STDERR_FD
        elif output and output != OUTPUT_INHERIT:
            stdin = subprocess.DEVNULL
            try:
                sink = open(output, "ab")
            except OSError as e:
                raise ShellError(
                    f"Cannot open output file '{output}': {e}"
                ) from e
            stdout = sink

        try:
            try:
                proc = subprocess.Popen(
                    args,
                    shell=shell,
                    stdin=stdin,
                    stdout=stdout,
                    stderr=None,
                    env=self._build_env(),
                    cwd=cwd,
                )
            except FileNotFoundError as e:
                name = args if isinstance(args, str) else args[0]
                raise NotFound(f"Command '{name}' not found") from e
            except OSError as e:
                raise ShellError(f"Error executing command: {e}") from e

            exit_code = self._wait(proc)
        finally:
            if sink is not None:
                sink.close()

        # Normalize exit code 127 (command not found) to 1 for consistency
        if exit_code == 127:
            exit_code = 1
        return exit_code

    def _wait(self, proc: subprocess.Popen) -> int:
        deadline = (
            time.time() + self.timeout if self.timeout and self.timeout > 0
            else None
        )
        try:
            while True:
                rc = proc.poll()
                if rc is not None:
                    return rc
                if deadline is not None and time.time() >= deadline:
                    logger.warning(
                        "Command timed out after {} seconds", self.timeout
                    )
                    stop_process(proc)
                    return 1
                time.sleep(0.02)
        except KeyboardInterrupt:
            # Abort the child only, the shell keeps running
            stop_process(proc)
            return EXIT_INTERRUPTED


def stop_process(proc: subprocess.Popen) -> None:
    try:
        proc.terminate()
    except OSError:
        pass
    try:
        proc.wait(timeout=1.0)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.wait()
