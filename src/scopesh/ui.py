# ScopeSh — Directory-Scoped Interactive Command Shell
# Copyright (c) 2025
# TriFactoria (Andrew Blankfield)
#
# Licensed under the Business Source License 1.1 (BSL 1.1).
# You may use, modify, and redistribute this file under the terms of the BSL.
# On the Change Date (2029-01-01), this file will be licensed under
# the Apache License, Version 2.0.

from __future__ import annotations

import os
import time
from collections.abc import Iterable
from typing import TYPE_CHECKING

from prompt_toolkit import PromptSession
from prompt_toolkit.completion import Completer, Completion
from prompt_toolkit.formatted_text import ANSI
from prompt_toolkit.history import History
from prompt_toolkit.key_binding import KeyBindings
from prompt_toolkit.patch_stdout import patch_stdout
from prompt_toolkit.shortcuts import clear as pt_clear
from prompt_toolkit.shortcuts import print_formatted_text
from prompt_toolkit.styles import Style

if TYPE_CHECKING:
    from .kernel import Kernel  # pragma: no cover


# ----------------------------
# Config helpers (values come from kernel.config.get_path)
# ----------------------------


def _cfg_get_path(kernel: Kernel | None, path: str, default):
    if kernel is None:
        return default
    cfg = getattr(kernel, "config", None)
    if cfg is None or not hasattr(cfg, "get_path"):
        return default
    return cfg.get_path(path, default)


def _cfg_bool(kernel: Kernel | None, path: str, default: bool) -> bool:
    return bool(_cfg_get_path(kernel, path, default))


def _cfg_dict(kernel: Kernel | None, path: str, default: dict) -> dict:
    val = _cfg_get_path(kernel, path, default)
    return val if isinstance(val, dict) else default


# ----------------------------
# Theme / Style
# ----------------------------


def _default_style_dict() -> dict[str, str]:
    return {
        "completion-menu": "bg:#111111 #d0d0d0",
        "completion-menu.completion": "bg:#111111 #d0d0d0",
        "completion-menu.completion.current": "bg:#303030 #ffffff bold",
        "completion-menu.meta.completion": "bg:#111111 #808080",
        "completion-menu.meta.completion.current": "bg:#303030 #a0a0a0",
        "scrollbar.background": "bg:#202020",
        "scrollbar.button": "bg:#505050",
        "bottom-toolbar": "bg:#0b0b0b #d0d0d0",
        "scopesh.aliasbar.label": "bg:#0b0b0b #a0a0a0",
        "scopesh.aliasbar.value": "bg:#0b0b0b #d0d0d0",
    }


def _build_style(kernel: Kernel | None) -> Style:
    base = _default_style_dict()
    overrides = _cfg_dict(kernel, "ui.theme.style", {})
    for k, v in list(overrides.items()):
        if isinstance(k, str) and isinstance(v, str):
            base[k] = v
    return Style.from_dict(base)


# ----------------------------
# Completers
# ----------------------------


class ExecutableCompleter(Completer):
    """Completes executable names available on PATH."""

    def __init__(self) -> None:
        self._cache: set[str] | None = None
        self._cache_path: str | None = None

    def load(self) -> set[str]:
        path_val = os.environ.get("PATH", "")
        if self._cache is not None and self._cache_path == path_val:
            return self._cache

        exes: set[str] = set()
        for p in path_val.split(os.pathsep):
            if not p:
                continue
            try:
                names = os.listdir(p)
            except OSError:
                continue
            for name in names:
                full = os.path.join(p, name)
                if os.path.isfile(full) and os.access(full, os.X_OK):
                    exes.add(name)

        self._cache = exes
        self._cache_path = path_val
        return exes

    def get_completions(
        self, document, complete_event
    ) -> Iterable[Completion]:
        token = (document.text_before_cursor or "").lstrip()
        if not token or " " in token:
            return
        for exe in sorted(self.load()):
            if exe.startswith(token):
                yield Completion(
                    exe, start_position=-len(token), display_meta="exe"
                )


class PathCompleter(Completer):
    """Filesystem path completion for arguments, relative to the shell cwd."""

    def __init__(self, kernel: Kernel | None = None) -> None:
        self.kernel = kernel

    def _base(self) -> str:
        if self.kernel is None:
            return os.getcwd()
        return self.kernel.context.cwd

    def _current_arg_token(self, text: str) -> tuple[str | None, int]:
        stripped = text.lstrip()
        if " " not in stripped:
            return (None, 0)
        if stripped.endswith(" "):
            return ("", 0)
        token = stripped.split()[-1]
        return (token, len(token))

    def _list_dir(self, directory: str) -> list[str]:
        try:
            return sorted(os.listdir(directory))
        except OSError:
            return []

    def get_completions(
        self, document, complete_event
    ) -> Iterable[Completion]:
        token, replace_len = self._current_arg_token(
            document.text_before_cursor or ""
        )
        if token is None:
            return

        expanded = os.path.expanduser(token)
        if token == "":
            rel_dir, prefix, insert_prefix = "", "", ""
        elif expanded.endswith(os.sep):
            rel_dir, prefix, insert_prefix = expanded, "", token
        else:
            rel_dir = os.path.dirname(expanded)
            prefix = os.path.basename(expanded)
            insert_prefix = os.path.dirname(token)
            if insert_prefix and not insert_prefix.endswith("/"):
                insert_prefix += "/"

        base_dir = os.path.join(self._base(), rel_dir)
        for name in self._list_dir(base_dir):
            if not name.startswith(prefix):
                continue
            if name.startswith(".") and not prefix.startswith("."):
                continue
            is_dir = os.path.isdir(os.path.join(base_dir, name))
            ins = f"{insert_prefix}{name}" + ("/" if is_dir else "")
            yield Completion(
                ins,
                start_position=-replace_len,
                display_meta="dir" if is_dir else "file",
            )


class ShellCompleter(Completer):
    """First token: commands, aliases in scope, executables.

    Later tokens: paths.
    """

    def __init__(self, kernel: Kernel | None) -> None:
        self.kernel = kernel
        self._exe = ExecutableCompleter()
        self._path = PathCompleter(kernel)

    def get_completions(
        self, document, complete_event
    ) -> Iterable[Completion]:
        before = (document.text_before_cursor or "").lstrip()
        if " " in before:
            yield from self._path.get_completions(document, complete_event)
            return
        if not before:
            return

        seen: set[str] = set()
        if self.kernel is not None:
            aliases = {
                item["key"]: item["expanded"]
                for item in self.kernel.list_alias_completions()
            }
            for name in self.kernel.command_names():
                if not name.startswith(before):
                    continue
                seen.add(name)
                meta = aliases.get(name)
                yield Completion(
                    name,
                    start_position=-len(before),
                    display_meta=meta if meta is not None else "command",
                )

        for exe in sorted(self._exe.load()):
            if exe.startswith(before) and exe not in seen:
                yield Completion(
                    exe, start_position=-len(before), display_meta="exe"
                )


# ----------------------------
# History
# ----------------------------


class StoreHistory(History):
    """Up-arrow history read from the shell's history table.

    The kernel records lines after running them, so nothing is stored here.
    """

    def __init__(self, kernel: Kernel | None) -> None:
        super().__init__()
        self.kernel = kernel

    def load_history_strings(self) -> Iterable[str]:
        store = getattr(self.kernel, "store", None)
        if store is None:
            return []
        # prompt_toolkit wants the most recent entry first
        return [e["command"] for e in reversed(store.list_history())]

    def store_string(self, string: str) -> None:
        pass


# ----------------------------
# PromptSession UI
# ----------------------------


class PromptToolkitUI:
    """
    This is the *terminal-friendly* UI:
      - Keeps normal terminal scrollback + drag-select copy.
      - Uses PromptSession so completion menus remain exactly as expected.
      - Bottom toolbar shows the expansion of the alias being typed.
      - Double Tab on an empty line lists the aliases in scope.
      - Also serves as the Interviewer for alias/variable forms.
    """

    def __init__(self, kernel: Kernel | None = None) -> None:
        self.kernel = kernel
        self.session: PromptSession[str] | None = None
        self._completer: ShellCompleter | None = None
        self._style = _build_style(kernel)

        # Track whether we ended on a newline (to prevent prompt mangling)
        self._needs_newline_before_prompt = False

        self._last_tab_time = 0.0
        self._last_tab_text = ""

    # ---------- toolbar rendering ----------

    def _build_aliasbar_tokens(self) -> list[tuple[str, str]]:
        if not _cfg_bool(self.kernel, "ui.toolbar.enabled", True):
            return []
        if self.session is None or self.kernel is None:
            return []

        s = (self.session.default_buffer.text or "").lstrip()
        if not s:
            return []

        # Preview the FIRST token, even after spaces (persist while typing args)
        first = s.split(maxsplit=1)[0].strip()
        expanded = self.kernel.expand_alias(first)
        if not expanded:
            return []

        return [
            ("class:scopesh.aliasbar.label", "  "),
            ("class:scopesh.aliasbar.value", f"{first} → {expanded}"),
            ("class:scopesh.aliasbar.label", "  "),
        ]

    def _bottom_toolbar(self):
        return self._build_aliasbar_tokens() or ""

    # ---------- session ----------

    def _ensure_session(self) -> None:
        if self.session is not None:
            return

        self._completer = ShellCompleter(self.kernel)
        self.session = PromptSession(
            key_bindings=self.build_key_bindings(),
            completer=self._completer,
            history=StoreHistory(self.kernel),
            complete_while_typing=False,
            style=self._style,
            bottom_toolbar=self._bottom_toolbar,
        )

    # ---------- public API ----------

    def read(self, prompt: str) -> str:
        self._ensure_session()
        assert self.session is not None

        if self._needs_newline_before_prompt:
            print_formatted_text(ANSI("\n"), style=self._style, end="")
            self._needs_newline_before_prompt = False

        with patch_stdout():
            # prompt contains ANSI from kernel.prompt(), so preserve it
            return self.session.prompt(ANSI(prompt + " "))

    def write(self, text: str) -> None:
        """Write EXACTLY what we receive (no extra newline).

        Track prompt safety.
        """
        if not text:
            return
        print_formatted_text(ANSI(text), style=self._style, end="")
        self._needs_newline_before_prompt = not text.endswith("\n")

    def ask(self, prompt: str) -> str:
        """Interviewer: ask one question without completion or toolbar."""
        self._ensure_session()
        assert self.session is not None
        self.prepare_handoff()
        return self.session.prompt(
            prompt, completer=None, bottom_toolbar=None
        )

    def clear(self) -> None:
        pt_clear()

    def prepare_handoff(self) -> None:
        """Make sure the next program output starts on a fresh line."""
        if self._needs_newline_before_prompt:
            print_formatted_text(ANSI("\n"), style=self._style, end="")
            self._needs_newline_before_prompt = False

    # ---------- keybindings ----------

    def build_key_bindings(self) -> KeyBindings:
        kb = KeyBindings()

        @kb.add("c-l")
        def _(event):
            event.app.renderer.clear()
            event.app.invalidate()

        # double tab on an empty line shows the aliases in scope
        @kb.add("tab")
        def _(event):
            buf = event.current_buffer
            now = time.time()
            text = buf.text

            if (now - self._last_tab_time < 0.5 and
                    text == self._last_tab_text and not text.strip()):
                buf.text = "alias list"
                buf.cursor_position = len(buf.text)
                event.app.exit(result=buf.text)
                return

            self._last_tab_time = now
            self._last_tab_text = text
            buf.complete_next()

        return kb
