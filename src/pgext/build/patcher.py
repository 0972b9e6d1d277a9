# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Apply an entry's substitution rules to its fetched source tree."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from ..catalog.models import BuildBackend, CatalogEntry
from ..errors import PatchNotMatchedError
from ..patches import SedPatch
from .log import BuildLog

LOGGER = logging.getLogger(__name__)

SOURCE_SUFFIXES: Final[frozenset[str]] = frozenset(
    {".c", ".h", ".cc", ".cpp", ".hpp", ".control", ".sql", ".in", ".mk", ".rs", ".toml", ".pl", ".pm"},
)
BUILD_FILENAMES: Final[frozenset[str]] = frozenset({"Makefile", "GNUmakefile", "CMakeLists.txt", "meson.build"})
CARGO_MANIFEST: Final[str] = "Cargo.toml"
_SKIPPED_DIRS: Final[frozenset[str]] = frozenset({".git", "target", "node_modules"})


@dataclass(frozen=True, slots=True)
class PatchResult:
    """Outcome of one substitution rule."""

    patch: str
    matches: int
    files: tuple[Path, ...]


def patch_targets(source_root: Path, backend: BuildBackend) -> list[Path]:
    """Return the files rules may touch, in sorted order.

    Rust extension builds patch only ``Cargo.toml`` manifests; other backends
    patch C sources, SQL and control files, and build descriptions.

    Args:
        source_root: Root of the fetched tree.
        backend: Backend of the entry being patched.

    Returns:
        list[Path]: Candidate files.
    """

    if backend is BuildBackend.CARGO_PGRX:
        return sorted(path for path in _walk(source_root) if path.name == CARGO_MANIFEST)
    return sorted(
        path for path in _walk(source_root) if path.suffix in SOURCE_SUFFIXES or path.name in BUILD_FILENAMES
    )


def apply_patch(patch: SedPatch, targets: list[Path]) -> PatchResult:
    """Apply ``patch`` to every target and return its match count."""

    total = 0
    touched: list[Path] = []
    for path in targets:
        original = path.read_text(encoding="utf-8", errors="surrogateescape")
        updated, matches = patch.apply(original)
        if matches:
            path.write_text(updated, encoding="utf-8", errors="surrogateescape")
            total += matches
            touched.append(path)
    return PatchResult(patch=patch.source, matches=total, files=tuple(touched))


def apply_patches(entry: CatalogEntry, source_root: Path, log: BuildLog | None = None) -> tuple[PatchResult, ...]:
    """Apply ``entry``'s rules in declaration order.

    Args:
        entry: Entry whose ``build.patches`` are applied.
        source_root: Root of the fetched tree.
        log: Optional build log receiving a line per rule.

    Returns:
        tuple[PatchResult, ...]: One result per rule.

    Raises:
        PatchNotMatchedError: If a rule matched nothing.
    """

    if entry.build is None or not entry.build.patches:
        return ()
    targets = patch_targets(source_root, entry.build.backend)
    results: list[PatchResult] = []
    for patch in entry.build.patches:
        result = apply_patch(patch, targets)
        if log is not None:
            log.note(f"patch {patch.source!r}: {result.matches} match(es) in {len(result.files)} file(s)")
        if result.matches == 0:
            raise PatchNotMatchedError(entry.name, patch.source)
        LOGGER.info("patched %s: %s (%d matches)", entry.name, patch.source, result.matches)
        results.append(result)
    return tuple(results)


def _walk(root: Path) -> Iterator[Path]:
    for path in root.iterdir():
        if path.is_symlink():
            continue
        if path.is_dir():
            if path.name not in _SKIPPED_DIRS:
                yield from _walk(path)
        elif path.is_file():
            yield path


__all__ = ["PatchResult", "apply_patch", "apply_patches", "patch_targets"]
