# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Content checksum recorded in manifests to tie them to a catalog."""

from __future__ import annotations

import hashlib
import json
from collections.abc import Iterable

from .models import CatalogEntry


def entries_checksum(entries: Iterable[CatalogEntry]) -> str:
    """Return the SHA-256 of the canonical form of ``entries``.

    Entries are serialised through :meth:`CatalogEntry.to_mapping` in name order
    with sorted keys, so file layout, key order and whitespace of the source
    documents do not affect the result.

    Args:
        entries: Validated catalog entries.

    Returns:
        str: Hex-encoded digest.
    """

    canonical = [entry.to_mapping() for entry in sorted(entries, key=lambda entry: entry.name)]
    encoded = json.dumps(canonical, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return hashlib.sha256(encoded.encode("utf-8")).hexdigest()


__all__ = ["entries_checksum"]
