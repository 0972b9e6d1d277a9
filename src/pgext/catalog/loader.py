# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Load catalog documents from disk into typed :class:`Catalog` objects."""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from ..errors import SchemaError
from .checksum import entries_checksum
from .io import load_document
from .models import Catalog, CatalogEntry
from .schema import EntrySchema, default_entry_schema
from .types import JSONValue

LOGGER = logging.getLogger(__name__)

CATALOG_DOCUMENT_SUFFIX: Final[str] = ".json"
ENTRIES_KEY: Final[str] = "entries"


@dataclass(slots=True)
class CatalogLoader:
    """Validate and materialise catalog documents.

    A catalog is either one JSON document holding an ``entries`` array, or a
    directory with one entry per ``*.json`` file. Files whose name starts with
    an underscore are ignored so directories can hold shared fragments.
    """

    schema: EntrySchema = field(default_factory=default_entry_schema)

    def load(self, path: Path) -> Catalog:
        """Load the catalog stored at ``path``.

        Args:
            path: Catalog file or directory.

        Returns:
            Catalog: Validated catalog with a checksum of its entries.

        Raises:
            FileNotFoundError: If ``path`` does not exist.
            SchemaError: If any document or entry is malformed.
        """
        if not path.exists():
            raise FileNotFoundError(path)
        if path.is_dir():
            files = sorted(
                candidate
                for candidate in path.glob(f"*{CATALOG_DOCUMENT_SUFFIX}")
                if candidate.is_file() and not candidate.name.startswith("_")
            )
            if not files:
                raise SchemaError(f"{path}: no catalog documents found")
            raw_entries: list[JSONValue] = [load_document(candidate) for candidate in files]
        else:
            raw_entries = list(extract_entries(load_document(path), source=str(path)))
        loaded = self.load_entries(raw_entries)
        catalog = loaded.with_checksum(entries_checksum(loaded))
        LOGGER.debug("loaded %d catalog entries from %s", len(catalog), path)
        return catalog

    def load_entries(self, raw_entries: Sequence[JSONValue], *, checksum: str | None = None) -> Catalog:
        """Validate ``raw_entries`` and return them as a catalog.

        Args:
            raw_entries: Entry payloads in document order.
            checksum: Optional checksum recorded on the catalog.

        Returns:
            Catalog: Validated catalog.

        Raises:
            SchemaError: If an entry is malformed or names are duplicated.
        """
        entries: list[CatalogEntry] = []
        for index, data in enumerate(raw_entries):
            self.schema.validate_entry(data, index=index)
            if not isinstance(data, Mapping):
                raise SchemaError("expected an object", entry=f"entries[{index}]")
            entries.append(CatalogEntry.from_mapping(data, index=index))
        return Catalog.from_entries(entries, checksum=checksum)


def extract_entries(document: JSONValue, *, source: str) -> Sequence[JSONValue]:
    """Return the entry payloads held by a catalog or manifest document.

    Args:
        document: Parsed JSON document.
        source: Description of the document used in error messages.

    Returns:
        Sequence[JSONValue]: Raw entry payloads.

    Raises:
        SchemaError: If the document has no ``entries`` array.
    """
    if isinstance(document, list):
        return document
    if isinstance(document, Mapping):
        entries = document.get(ENTRIES_KEY)
        if isinstance(entries, list):
            return entries
    raise SchemaError(f"{source}: expected an '{ENTRIES_KEY}' array", field=ENTRIES_KEY)


def load_catalog(path: Path) -> Catalog:
    """Load the catalog at ``path`` with the bundled schema."""
    return CatalogLoader().load(path)


__all__ = ["CATALOG_DOCUMENT_SUFFIX", "CatalogLoader", "extract_entries", "load_catalog"]
