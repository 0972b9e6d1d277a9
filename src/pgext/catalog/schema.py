# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Schema loading utilities for validating catalog documents."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Final

from jsonschema import Draft202012Validator
from jsonschema.exceptions import ValidationError as JsonSchemaValidationError
from jsonschema.exceptions import best_match

from ..errors import SchemaError
from .io import load_schema
from .types import JSONValue

SCHEMA_ROOT: Final[Path] = Path(__file__).with_name("schema")
ENTRY_SCHEMA_FILENAME: Final[str] = "catalog_entry.schema.json"

_REQUIRED_PROPERTY = re.compile(r"^'(?P<name>[^']+)' is a required property$")
_UNEXPECTED_PROPERTY = re.compile(r"\('(?P<name>[^']+)'")


@dataclass(slots=True)
class EntrySchema:
    """JSON schema validator for individual catalog entries."""

    schema_path: Path
    validator: Draft202012Validator

    @classmethod
    def load(cls, schema_root: Path | None = None) -> EntrySchema:
        """Load the entry schema from ``schema_root``.

        Args:
            schema_root: Optional override for the bundled schema directory.

        Returns:
            EntrySchema: Schema bound to a Draft 2020-12 validator.
        """
        schema_path = (schema_root or SCHEMA_ROOT) / ENTRY_SCHEMA_FILENAME
        schema = load_schema(schema_path)
        Draft202012Validator.check_schema(schema)
        return cls(schema_path=schema_path, validator=Draft202012Validator(schema))

    def validate_entry(self, data: JSONValue, *, index: int) -> None:
        """Validate one entry, raising the most relevant violation.

        Args:
            data: Raw entry payload.
            index: Position of the entry in the catalog document.

        Raises:
            SchemaError: If ``data`` violates the schema.
        """
        error = best_match(self.validator.iter_errors(data))
        if error is None:
            return
        raise SchemaError(error.message, entry=_entry_label(data, index), field=_field_path(error))


@lru_cache(maxsize=1)
def default_entry_schema() -> EntrySchema:
    """Return the bundled entry schema, loaded once per process."""
    return EntrySchema.load()


def _entry_label(data: JSONValue, index: int) -> str:
    if isinstance(data, Mapping):
        name = data.get("name")
        if isinstance(name, str) and name:
            return name
    return f"entries[{index}]"


def _field_path(error: JsonSchemaValidationError) -> str | None:
    parts = [str(part) for part in error.absolute_path]
    if error.validator == "required":
        match = _REQUIRED_PROPERTY.match(error.message)
        if match:
            parts.append(match.group("name"))
    elif error.validator == "additionalProperties":
        match = _UNEXPECTED_PROPERTY.search(error.message)
        if match:
            parts.append(match.group("name"))
    return ".".join(parts) or None


__all__ = ["ENTRY_SCHEMA_FILENAME", "EntrySchema", "SCHEMA_ROOT", "default_entry_schema"]
