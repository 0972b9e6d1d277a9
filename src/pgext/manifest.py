# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Resolved manifest documents and the runtime lists derived from them."""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Final

from .catalog.io import load_document, write_json_atomic
from .catalog.loader import CatalogLoader, extract_entries
from .catalog.models import BuildProfile, Catalog
from .catalog.stats import build_packages
from .catalog.types import JSONValue
from .errors import SchemaError
from .validation.gates import expected_preload_libraries, requires_bootstrap

LOGGER = logging.getLogger(__name__)

PRELOAD_LIST_NAME: Final[str] = "preload-libraries.txt"
DEFAULT_EXTENSIONS_NAME: Final[str] = "default-extensions.txt"
GENERATED_HEADER: Final[str] = "# Generated by pgext; do not edit."
MANIFEST_SCHEMA_VERSION: Final[str] = "1.0.0"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc).replace(microsecond=0)


@dataclass(frozen=True, slots=True)
class Manifest:
    """Frozen catalog snapshot handed to the image packaging step."""

    catalog: Catalog
    generated_at: datetime = field(default_factory=_utc_now)

    @property
    def catalog_checksum(self) -> str | None:
        return self.catalog.checksum

    def to_document(self) -> dict[str, JSONValue]:
        """Return the manifest as a JSON-compatible mapping with name-sorted entries."""

        return {
            "schemaVersion": MANIFEST_SCHEMA_VERSION,
            "generatedAt": self.generated_at.isoformat().replace("+00:00", "Z"),
            "catalogChecksum": self.catalog_checksum,
            "entries": self.catalog.to_mappings(),
        }


def write_manifest(manifest: Manifest, path: Path) -> Path:
    """Atomically write ``manifest`` to ``path``.

    Args:
        manifest: Manifest to serialise.
        path: Destination JSON file.

    Returns:
        Path: The written path.
    """

    write_json_atomic(path, manifest.to_document())
    LOGGER.info("wrote manifest with %d entries to %s", len(manifest.catalog), path)
    return path


def load_manifest(path: Path, *, require_frozen: bool = True) -> Manifest:
    """Read a manifest written by :func:`write_manifest`.

    Args:
        path: Manifest JSON file.
        require_frozen: Reject entries whose source is not pinned to a commit.

    Returns:
        Manifest: Validated manifest.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        SchemaError: If the document or an entry is malformed or unresolved.
    """

    document = load_document(path)
    raw_entries = extract_entries(document, source=str(path))
    checksum: str | None = None
    generated_at = _utc_now()
    if isinstance(document, Mapping):
        raw_checksum = document.get("catalogChecksum")
        checksum = raw_checksum if isinstance(raw_checksum, str) else None
        raw_generated = document.get("generatedAt")
        if isinstance(raw_generated, str):
            try:
                generated_at = datetime.fromisoformat(raw_generated.replace("Z", "+00:00"))
            except ValueError as exc:
                raise SchemaError(f"{path}: invalid generatedAt '{raw_generated}'", field="generatedAt") from exc
    catalog = CatalogLoader().load_entries(raw_entries, checksum=checksum)
    if require_frozen:
        for entry in catalog:
            if not entry.is_frozen:
                raise SchemaError(
                    "manifest entries must be pinned to a commit; run 'pgext resolve'",
                    entry=entry.name,
                    field="source.commit",
                )
    return Manifest(catalog=catalog, generated_at=generated_at)


def write_runtime_defaults(catalog: Catalog, directory: Path) -> tuple[Path, Path]:
    """Write the default preload library and bootstrap extension lists.

    Args:
        catalog: Catalog whose enabled defaults are listed.
        directory: Output directory.

    Returns:
        tuple[Path, Path]: Paths of the preload list and the extension list.
    """

    directory.mkdir(parents=True, exist_ok=True)
    preload = sorted(expected_preload_libraries(catalog))
    extensions = sorted(entry.name for entry in catalog if requires_bootstrap(entry))
    preload_path = directory / PRELOAD_LIST_NAME
    extensions_path = directory / DEFAULT_EXTENSIONS_NAME
    _write_list(preload_path, preload)
    _write_list(extensions_path, extensions)
    return preload_path, extensions_path


def write_build_packages(catalog: Catalog, path: Path, profile: BuildProfile = BuildProfile.PRODUCTION) -> Path:
    """Write the OS packages needed to compile the entries active under ``profile``, one per line."""

    _write_list(path, list(build_packages(catalog, profile)))
    return path


def _write_list(path: Path, names: list[str]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    body = "".join(f"{name}\n" for name in names)
    path.write_text(f"{GENERATED_HEADER}\n{body}", encoding="utf-8")


__all__ = [
    "DEFAULT_EXTENSIONS_NAME",
    "Manifest",
    "PRELOAD_LIST_NAME",
    "load_manifest",
    "write_build_packages",
    "write_manifest",
    "write_runtime_defaults",
]
