# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Per-entry build logs capturing tool output verbatim."""

from __future__ import annotations

import shlex
from collections import deque
from collections.abc import Sequence
from pathlib import Path


class BuildLog:
    """Append-only log of every command run for one entry."""

    def __init__(self, path: Path) -> None:
        self.path = path
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text("", encoding="utf-8")

    def note(self, message: str) -> None:
        """Append an orchestrator message to the log."""

        self._append(f"# {message}\n")

    def record(self, command: Sequence[str], output: str, returncode: int | None) -> None:
        """Append ``command`` and its captured ``output``.

        Args:
            command: Executed command.
            output: Combined stdout and stderr, written unmodified.
            returncode: Exit status, or ``None`` when the command was killed.
        """

        status = "killed" if returncode is None else f"exit {returncode}"
        text = output if output.endswith("\n") or not output else f"{output}\n"
        self._append(f"$ {shlex.join(command)}  # {status}\n{text}")

    def tail(self, lines: int) -> list[str]:
        """Return the last ``lines`` lines of the log."""

        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8", errors="replace") as stream:
            return [line.rstrip("\n") for line in deque(stream, maxlen=lines)]

    def _append(self, text: str) -> None:
        with self.path.open("a", encoding="utf-8", errors="replace") as stream:
            stream.write(text)


__all__ = ["BuildLog"]
