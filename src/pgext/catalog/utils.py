# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Utility helpers for validating catalog JSON structures."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass

from ..errors import SchemaError
from .types import JSONObject, JSONValue


@dataclass(frozen=True, slots=True)
class FieldContext:
    """Locate a value inside a catalog entry for error reporting."""

    entry: str
    path: str = ""

    def field(self, key: str) -> str:
        """Return the dotted path of ``key`` beneath this context.

        Args:
            key: Attribute name relative to the current path.

        Returns:
            str: Dotted field path such as ``source.tag``.
        """
        return f"{self.path}.{key}" if self.path else key

    def child(self, key: str) -> FieldContext:
        """Return a context nested one level below ``key``."""
        return FieldContext(entry=self.entry, path=self.field(key))

    def error(self, key: str, message: str) -> SchemaError:
        """Return a :class:`SchemaError` attributed to ``key``."""
        return SchemaError(message, entry=self.entry, field=self.field(key))


def expect_string(value: JSONValue | None, *, key: str, context: FieldContext) -> str:
    """Return ``value`` as a non-empty string or raise a schema error.

    Args:
        value: Raw JSON value extracted from the catalog payload.
        key: Attribute name used in error messages.
        context: Location of the enclosing object.

    Returns:
        str: Validated string value.

    Raises:
        SchemaError: If ``value`` is missing, not a string, or blank.
    """
    if value is None:
        raise context.error(key, "required field is missing")
    if not isinstance(value, str):
        raise context.error(key, "expected a string")
    if not value.strip():
        raise context.error(key, "expected a non-empty string")
    return value


def optional_string(value: JSONValue | None, *, key: str, context: FieldContext) -> str | None:
    """Return ``value`` as an optional string with validation.

    Args:
        value: Raw JSON value extracted from the catalog payload.
        key: Attribute name used in error messages.
        context: Location of the enclosing object.

    Returns:
        str | None: ``value`` when present, otherwise ``None``.

    Raises:
        SchemaError: If ``value`` is present but not a string.
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise context.error(key, "expected a string if present")
    return value


def optional_bool(
    value: JSONValue | None,
    *,
    key: str,
    context: FieldContext,
    default: bool,
) -> bool:
    """Return ``value`` coerced to ``bool`` falling back to ``default``.

    Raises:
        SchemaError: If ``value`` is present but not a boolean.
    """
    if value is None:
        return default
    if isinstance(value, bool):
        return value
    raise context.error(key, "expected a boolean")


def string_array(value: JSONValue | None, *, key: str, context: FieldContext) -> tuple[str, ...]:
    """Return ``value`` as a tuple of strings with validation.

    Args:
        value: Raw JSON value extracted from the catalog payload.
        key: Attribute name used in error messages.
        context: Location of the enclosing object.

    Returns:
        tuple[str, ...]: Tuple containing all string entries from ``value``.

    Raises:
        SchemaError: If ``value`` is not a sequence of strings.
    """
    if value is None:
        return ()
    if not isinstance(value, Sequence) or isinstance(value, (str, bytes, bytearray)):
        raise context.error(key, "expected an array of strings")
    result: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            raise context.error(f"{key}[{index}]", "expected a string")
        result.append(item)
    return tuple(result)


def unique_string_array(value: JSONValue | None, *, key: str, context: FieldContext) -> tuple[str, ...]:
    """Return ``value`` as a tuple of strings rejecting duplicates."""
    items = string_array(value, key=key, context=context)
    seen: set[str] = set()
    for index, item in enumerate(items):
        if item in seen:
            raise context.error(f"{key}[{index}]", f"duplicate value '{item}'")
        seen.add(item)
    return items


def expect_mapping(value: JSONValue | None, *, key: str, context: FieldContext) -> JSONObject:
    """Return ``value`` as a mapping of JSON values or raise an error.

    Raises:
        SchemaError: If ``value`` is missing or not a mapping.
    """
    if value is None:
        raise context.error(key, "required field is missing")
    if not isinstance(value, Mapping):
        raise context.error(key, "expected an object")
    return value


def optional_mapping(
    value: JSONValue | None,
    *,
    key: str,
    context: FieldContext,
) -> JSONObject | None:
    """Return ``value`` as an optional mapping."""
    if value is None:
        return None
    return expect_mapping(value, key=key, context=context)


__all__ = [
    "FieldContext",
    "expect_mapping",
    "expect_string",
    "optional_bool",
    "optional_mapping",
    "optional_string",
    "string_array",
    "unique_string_array",
]
