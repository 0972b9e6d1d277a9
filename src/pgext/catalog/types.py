# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""JSON shapes shared by catalog and manifest documents."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import TypeAlias

JSONPrimitive: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONPrimitive | Sequence["JSONValue"] | Mapping[str, "JSONValue"]
# Entry payloads, sub-objects such as ``source`` and ``build``, and schemas.
JSONObject: TypeAlias = Mapping[str, JSONValue]

__all__ = ["JSONObject", "JSONPrimitive", "JSONValue"]
