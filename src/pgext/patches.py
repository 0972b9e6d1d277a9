# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Typed ``sed``-style substitution rules applied to fetched source trees.

Rules use the ``s<delim>pattern<delim>replacement<delim>flags`` syntax with POSIX
basic regular expressions. They are parsed once into :class:`SedPatch` objects
that translate the expression into Python :mod:`re` syntax and report how many
substitutions they made, so a rule that stops matching upstream code can be
detected instead of silently doing nothing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Final, TypeAlias

_POSIX_CLASSES: Final[dict[str, str]] = {
    "alnum": "A-Za-z0-9",
    "alpha": "A-Za-z",
    "blank": " \\t",
    "digit": "0-9",
    "lower": "a-z",
    "punct": "!-/:-@\\[-`{-~",
    "space": "\\s",
    "upper": "A-Z",
    "xdigit": "0-9A-Fa-f",
}

# BRE escapes that become operators, and bare characters that stay literals.
_BRE_OPERATORS: Final[dict[str, str]] = {"(": "(", ")": ")", "{": "{", "}": "}", "+": "+", "?": "?", "|": "|"}
_BRE_LITERALS: Final[frozenset[str]] = frozenset("(){}+?|")
# GNU word and buffer anchors.
_GNU_ANCHORS: Final[dict[str, str]] = {"<": r"\b(?=\w)", ">": r"\b(?<=\w)", "`": r"\A", "'": r"\Z"}
_SUPPORTED_FLAGS: Final[frozenset[str]] = frozenset("gIi")

ReplacementPart: TypeAlias = str | int


class PatchSyntaxError(ValueError):
    """Raised when a substitution rule cannot be parsed."""


@dataclass(frozen=True, slots=True)
class SedPatch:
    """A parsed substitution rule."""

    source: str
    pattern: str
    replacement: tuple[ReplacementPart, ...]
    global_replace: bool = False
    ignore_case: bool = False
    _compiled: re.Pattern[str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        flags = re.IGNORECASE if self.ignore_case else 0
        try:
            compiled = re.compile(self.pattern, flags)
        except re.error as exc:
            raise PatchSyntaxError(f"invalid pattern in '{self.source}': {exc}") from exc
        object.__setattr__(self, "_compiled", compiled)

    @classmethod
    def parse(cls, rule: str) -> SedPatch:
        """Parse ``rule`` into a :class:`SedPatch`.

        Args:
            rule: Substitution rule such as ``s/old/new/g``.

        Returns:
            SedPatch: Parsed rule with a compiled Python expression.

        Raises:
            PatchSyntaxError: If the rule is not a well-formed substitution.
        """

        if len(rule) < 4 or rule[0] != "s":
            raise PatchSyntaxError(f"expected 's<delim>pattern<delim>replacement<delim>flags', got '{rule}'")
        delimiter = rule[1]
        if delimiter.isalnum() or delimiter in {"\\", "\n"}:
            raise PatchSyntaxError(f"invalid delimiter {delimiter!r} in '{rule}'")
        parts = _split_rule(rule[2:], delimiter)
        if len(parts) != 3:
            raise PatchSyntaxError(f"expected three '{delimiter}'-separated sections in '{rule}'")
        raw_pattern, raw_replacement, flags = parts
        if not raw_pattern:
            raise PatchSyntaxError(f"empty pattern in '{rule}'")
        unknown = set(flags) - _SUPPORTED_FLAGS
        if unknown:
            raise PatchSyntaxError(f"unsupported flag(s) {''.join(sorted(unknown))!r} in '{rule}'")
        return cls(
            source=rule,
            pattern=translate_bre(raw_pattern, delimiter),
            replacement=_parse_replacement(raw_replacement, delimiter),
            global_replace="g" in flags,
            ignore_case="I" in flags or "i" in flags,
        )

    def apply(self, text: str) -> tuple[str, int]:
        """Apply the rule line by line to ``text``.

        Without the ``g`` flag only the first match on each line is replaced.

        Args:
            text: File contents to transform.

        Returns:
            tuple[str, int]: Transformed text and the number of substitutions made.
        """

        count = 0 if self.global_replace else 1
        total = 0
        lines: list[str] = []
        for line in text.splitlines(keepends=True):
            body = line.rstrip("\r\n")
            ending = line[len(body) :]
            replaced, matches = self._compiled.subn(self._expand, body, count=count)
            total += matches
            lines.append(replaced + ending)
        return "".join(lines), total

    def _expand(self, match: re.Match[str]) -> str:
        return "".join(part if isinstance(part, str) else (match.group(part) or "") for part in self.replacement)


def translate_bre(pattern: str, delimiter: str = "/") -> str:
    """Translate a POSIX basic regular expression into Python syntax.

    Args:
        pattern: Expression in sed (BRE) syntax.
        delimiter: Rule delimiter, which may appear escaped inside ``pattern``.

    Returns:
        str: Equivalent Python regular expression.

    Raises:
        PatchSyntaxError: If a bracket expression is not terminated.
    """

    output: list[str] = []
    index = 0
    length = len(pattern)
    while index < length:
        char = pattern[index]
        if char == "\\" and index + 1 < length:
            following = pattern[index + 1]
            if following == delimiter:
                output.append(re.escape(following))
            elif following in _BRE_OPERATORS:
                output.append(_BRE_OPERATORS[following])
            elif following in _GNU_ANCHORS:
                output.append(_GNU_ANCHORS[following])
            elif following.isdigit() or following.isalpha():
                output.append(f"\\{following}")
            else:
                output.append(re.escape(following))
            index += 2
            continue
        if char == "[":
            bracket, index = _translate_bracket(pattern, index)
            output.append(bracket)
            continue
        if char in _BRE_LITERALS:
            output.append(f"\\{char}")
        elif char == "*" and (not output or output[-1] in {"^", "("}):
            output.append("\\*")
        else:
            output.append(char)
        index += 1
    return "".join(output)


def _translate_bracket(pattern: str, start: int) -> tuple[str, int]:
    """Translate the bracket expression beginning at ``start``."""

    index = start + 1
    parts = ["["]
    if index < len(pattern) and pattern[index] == "^":
        parts.append("^")
        index += 1
    if index < len(pattern) and pattern[index] == "]":
        parts.append("\\]")
        index += 1
    while index < len(pattern):
        char = pattern[index]
        if char == "]":
            parts.append("]")
            return "".join(parts), index + 1
        if pattern.startswith("[:", index):
            end = pattern.find(":]", index + 2)
            if end == -1:
                raise PatchSyntaxError(f"unterminated character class in '{pattern}'")
            name = pattern[index + 2 : end]
            if name not in _POSIX_CLASSES:
                raise PatchSyntaxError(f"unknown character class '[:{name}:]' in '{pattern}'")
            parts.append(_POSIX_CLASSES[name])
            index = end + 2
            continue
        if char in {"\\", "[", "&", "~", "|"}:
            parts.append(f"\\{char}")
        else:
            parts.append(char)
        index += 1
    raise PatchSyntaxError(f"unterminated bracket expression in '{pattern}'")


def _split_rule(body: str, delimiter: str) -> list[str]:
    """Split ``body`` on unescaped ``delimiter`` characters.

    A delimiter inside a bracket expression of the pattern is a literal.
    """

    sections: list[str] = []
    current: list[str] = []
    index = 0
    while index < len(body):
        char = body[index]
        if char == "\\" and index + 1 < len(body):
            current.append(body[index : index + 2])
            index += 2
            continue
        if char == "[" and not sections:
            end = _bracket_end(body, index)
            if end is not None:
                current.append(body[index:end])
                index = end
                continue
        if char == delimiter:
            sections.append("".join(current))
            current = []
        else:
            current.append(char)
        index += 1
    sections.append("".join(current))
    return sections


def _bracket_end(text: str, start: int) -> int | None:
    """Return the index just past the bracket expression opened at ``start``."""

    index = start + 1
    if index < len(text) and text[index] == "^":
        index += 1
    # A leading "]" is a member, not the terminator.
    if index < len(text) and text[index] == "]":
        index += 1
    while index < len(text):
        if text.startswith("[:", index):
            end = text.find(":]", index + 2)
            if end == -1:
                return None
            index = end + 2
            continue
        if text[index] == "]":
            return index + 1
        index += 1
    return None


def _parse_replacement(raw: str, delimiter: str) -> tuple[ReplacementPart, ...]:
    """Parse a sed replacement into literal text and group references."""

    parts: list[ReplacementPart] = []
    literal: list[str] = []

    def flush() -> None:
        if literal:
            parts.append("".join(literal))
            literal.clear()

    index = 0
    while index < len(raw):
        char = raw[index]
        if char == "&":
            flush()
            parts.append(0)
        elif char == "\\" and index + 1 < len(raw):
            following = raw[index + 1]
            index += 1
            if following.isdigit():
                flush()
                parts.append(int(following))
            elif following == "n":
                literal.append("\n")
            elif following == "t":
                literal.append("\t")
            else:
                literal.append(following)
        else:
            literal.append(char)
        index += 1
    flush()
    return tuple(parts)


__all__ = ["PatchSyntaxError", "SedPatch", "translate_bre"]
