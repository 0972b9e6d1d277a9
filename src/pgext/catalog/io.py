# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""I/O helpers for reading catalog JSON documents and schemas."""

from __future__ import annotations

import json
import os
import tempfile
from collections.abc import Mapping
from pathlib import Path
from typing import cast

from ..errors import SchemaError
from .types import JSONObject, JSONValue


def load_schema(path: Path) -> JSONObject:
    """Load a JSON schema from disk and ensure it is a JSON object.

    Args:
        path: Filesystem path to the schema file.

    Returns:
        JSONObject: Parsed JSON schema mapping.

    Raises:
        FileNotFoundError: If the schema file does not exist.
        SchemaError: If the schema cannot be parsed or is not a JSON object.
    """
    payload = _read_json(path, what="JSON schema")
    if not isinstance(payload, Mapping):
        raise SchemaError(f"{path}: expected a JSON object")
    return payload


def load_document(path: Path) -> JSONValue:
    """Load a JSON document from disk.

    Args:
        path: Filesystem path to the JSON document.

    Returns:
        JSONValue: Parsed JSON value extracted from the document.

    Raises:
        FileNotFoundError: If the JSON document is missing.
        SchemaError: If the document contains invalid JSON.
    """
    return _read_json(path, what="catalog JSON")


def write_json_atomic(path: Path, payload: JSONValue) -> None:
    """Write ``payload`` to ``path`` as indented JSON without partial files.

    The document is written to a sibling temporary file and renamed into place.

    Args:
        path: Destination file.
        payload: JSON-compatible value to serialise.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    text = json.dumps(payload, indent=2, ensure_ascii=False) + "\n"
    handle, temp_name = tempfile.mkstemp(prefix=f".{path.name}.", dir=path.parent)
    try:
        with os.fdopen(handle, "w", encoding="utf-8") as stream:
            stream.write(text)
        os.replace(temp_name, path)
    except BaseException:
        Path(temp_name).unlink(missing_ok=True)
        raise


def _read_json(path: Path, *, what: str) -> JSONValue:
    if not path.exists():
        raise FileNotFoundError(path)
    with path.open("r", encoding="utf-8") as stream:
        try:
            return cast(JSONValue, json.load(stream))
        except json.JSONDecodeError as exc:
            raise SchemaError(f"{path}: failed to parse {what}: {exc.msg} (line {exc.lineno})") from exc


__all__ = ["load_document", "load_schema", "write_json_atomic"]
