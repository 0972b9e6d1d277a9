# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Adapters reading the name sets declared by external descriptor files.

The preload descriptor lists shared libraries the server loads at start, the
bootstrap descriptor lists extensions created on first boot. Both are owned by
collaborators outside this project and only ever read here.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Final, Protocol

from ..config import DEFAULT_PRELOAD_VARIABLE, DescriptorKindLiteral
from ..errors import ConfigError

SHELL_SUFFIXES: Final[frozenset[str]] = frozenset({".sh", ".bash", ".env"})

_SQL_LINE_COMMENT = re.compile(r"--[^\n]*")
_SQL_BLOCK_COMMENT = re.compile(r"/\*.*?\*/", re.DOTALL)
_CREATE_EXTENSION = re.compile(
    r"\bCREATE\s+EXTENSION\s+(?:IF\s+NOT\s+EXISTS\s+)?(?:\"(?P<quoted>[^\"]+)\"|(?P<bare>[\w.-]+))",
    re.IGNORECASE,
)


class DeclaredNames(Protocol):
    """Source of a set of declared names."""

    path: Path

    def names(self) -> frozenset[str]:
        """Return every name the descriptor declares."""


def split_names(raw: str) -> frozenset[str]:
    """Split a comma or whitespace separated list into non-empty names."""

    return frozenset(part.strip() for part in re.split(r"[,\s]+", raw) if part.strip())


@dataclass(frozen=True, slots=True)
class PlainListDescriptor:
    """Names separated by newlines or commas; ``#`` starts a comment."""

    path: Path

    def names(self) -> frozenset[str]:
        declared: set[str] = set()
        for line in self.path.read_text(encoding="utf-8").splitlines():
            content = line.split("#", 1)[0]
            declared.update(split_names(content))
        return frozenset(declared)


@dataclass(frozen=True, slots=True)
class ShellVariableDescriptor:
    """Comma separated value of one shell variable assignment."""

    path: Path
    variable: str = DEFAULT_PRELOAD_VARIABLE

    def names(self) -> frozenset[str]:
        """Return the names assigned to :attr:`variable`.

        Accepts ``VAR="a,b"``, ``VAR='a,b'`` and ``VAR=a,b`` optionally prefixed
        by ``export`` or ``readonly``. The last assignment wins.

        Raises:
            ConfigError: If the variable is never assigned.
        """

        pattern = re.compile(
            rf"^\s*(?:export\s+|readonly\s+|declare\s+(?:-\w+\s+)*)?{re.escape(self.variable)}="
            r"(?:\"(?P<double>[^\"]*)\"|'(?P<single>[^']*)'|(?P<bare>[^\s#;]*))",
            re.MULTILINE,
        )
        matches = list(pattern.finditer(self.path.read_text(encoding="utf-8")))
        if not matches:
            raise ConfigError(f"{self.path}: variable {self.variable} is not assigned")
        last = matches[-1]
        value = last.group("double") or last.group("single") or last.group("bare") or ""
        return split_names(value)


@dataclass(frozen=True, slots=True)
class SqlActivationDescriptor:
    """``CREATE EXTENSION`` statements of a bootstrap SQL script."""

    path: Path

    def names(self) -> frozenset[str]:
        text = self.path.read_text(encoding="utf-8")
        text = _SQL_LINE_COMMENT.sub("", _SQL_BLOCK_COMMENT.sub("", text))
        return frozenset(match.group("quoted") or match.group("bare") for match in _CREATE_EXTENSION.finditer(text))


@dataclass(frozen=True, slots=True)
class JsonListDescriptor:
    """JSON array of names, or an object holding one under ``names``."""

    path: Path

    def names(self) -> frozenset[str]:
        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as exc:
            raise ConfigError(f"{self.path}: invalid JSON: {exc.msg} (line {exc.lineno})") from exc
        if isinstance(document, dict):
            document = document.get("names")
        if not isinstance(document, list) or not all(isinstance(item, str) for item in document):
            raise ConfigError(f"{self.path}: expected a JSON array of strings")
        return frozenset(item.strip() for item in document if item.strip())


def open_descriptor(
    path: Path,
    kind: DescriptorKindLiteral = "auto",
    *,
    variable: str | None = None,
) -> DeclaredNames:
    """Return the adapter for ``path``.

    Args:
        path: Descriptor file.
        kind: Explicit format, or ``auto`` to choose by file suffix.
        variable: Shell variable holding the names for shell descriptors.

    Returns:
        DeclaredNames: Adapter reading the descriptor.

    Raises:
        ConfigError: If the descriptor file does not exist.
    """

    if not path.is_file():
        raise ConfigError(f"descriptor not found: {path}")
    resolved = kind
    if resolved == "auto":
        suffix = path.suffix.lower()
        if suffix in SHELL_SUFFIXES:
            resolved = "shell"
        elif suffix == ".sql":
            resolved = "sql"
        elif suffix == ".json":
            resolved = "json"
        else:
            resolved = "plain"
    if resolved == "shell":
        return ShellVariableDescriptor(path, variable or DEFAULT_PRELOAD_VARIABLE)
    if resolved == "sql":
        return SqlActivationDescriptor(path)
    if resolved == "json":
        return JsonListDescriptor(path)
    return PlainListDescriptor(path)


__all__ = [
    "DeclaredNames",
    "JsonListDescriptor",
    "PlainListDescriptor",
    "ShellVariableDescriptor",
    "SqlActivationDescriptor",
    "open_descriptor",
    "split_names",
]
