# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

"""
Error kinds raised by the ScopeSh core.

Every error derives from ShellError. The execution pipeline catches
ShellError, reports the message through the error callback and turns it
into a failure exit status; none of these reach the REPL loop.
"""

from __future__ import annotations


class ShellError(Exception):
    """Base class for all recoverable shell errors."""


class NotFound(ShellError):
    """Alias, variable, command or plugin does not exist."""


class AlreadyExists(ShellError):
    """Name is already present."""


class Forbidden(ShellError):
    """Attempt to mutate a built-in command name."""


class MissingArgument(ShellError):
    """Alias referenced a positional argument that was not supplied."""


class PluginUnavailable(ShellError):
    """Plugin could not be spawned or was rejected by its info answer."""


class ProtocolViolation(ShellError):
    """Plugin wrote a line the shell could not interpret."""


class ParseError(ShellError):
    """Input line could not be split into segments."""


class ValidationError(ShellError):
    """Definition field has an invalid value."""
