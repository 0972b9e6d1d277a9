# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Copy installed build outputs into a per-entry staging directory."""

from __future__ import annotations

import os
import shutil
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Final

from ..errors import ArtifactCollectionError

LIB_DIR: Final[str] = "lib"
EXTENSION_DIR: Final[str] = "extension"
BIN_DIR: Final[str] = "bin"
INCLUDE_DIR: Final[str] = "include"
ARTIFACT_GROUPS: Final[tuple[str, ...]] = (LIB_DIR, EXTENSION_DIR, BIN_DIR, INCLUDE_DIR)

_LIBRARY_SUFFIXES: Final[frozenset[str]] = frozenset({".so", ".dylib"})
_EXTENSION_SUFFIXES: Final[frozenset[str]] = frozenset({".control", ".sql"})
_HEADER_SUFFIXES: Final[frozenset[str]] = frozenset({".h"})
_SERVER_INCLUDE_DIR: Final[str] = "server"


@dataclass(frozen=True, slots=True)
class CollectedArtifacts:
    """Files staged for one entry, relative to its staging directory."""

    staging_dir: Path
    files: tuple[Path, ...]

    def group(self, name: str) -> tuple[Path, ...]:
        """Return the staged files within artifact group ``name``."""

        return tuple(path for path in self.files if path.parts and path.parts[0] == name)

    @property
    def libraries(self) -> tuple[Path, ...]:
        return self.group(LIB_DIR)

    @property
    def extension_files(self) -> tuple[Path, ...]:
        return self.group(EXTENSION_DIR)


def classify_artifact(path: Path) -> str | None:
    """Return the artifact group for ``path`` or ``None`` for files that are not staged.

    Args:
        path: Installed file, relative to the artifact directory.

    Returns:
        str | None: One of :data:`ARTIFACT_GROUPS`.
    """

    name = path.name
    if path.suffix in _LIBRARY_SUFFIXES or ".so." in name:
        return LIB_DIR
    if path.suffix in _EXTENSION_SUFFIXES:
        return EXTENSION_DIR
    if path.suffix in _HEADER_SUFFIXES:
        return INCLUDE_DIR
    if BIN_DIR in path.parts[:-1]:
        return BIN_DIR
    return None


def staged_path(path: Path, group: str) -> Path:
    """Return where ``path`` lands inside an entry's staging directory.

    The part of ``path`` below its group root is kept, so
    ``usr/include/postgresql/18/server/extension/a/util.h`` stages as
    ``include/extension/a/util.h``. Files outside any group root keep only
    their basename.
    """

    directories = path.parts[:-1]
    anchor = _group_root(directories, group)
    if anchor is None:
        return Path(group, path.name)
    return Path(group, *path.parts[anchor + 1 :])


def _group_root(directories: tuple[str, ...], group: str) -> int | None:
    if group not in directories:
        return None
    if group == INCLUDE_DIR:
        start = directories.index(INCLUDE_DIR)
        below = directories[start:]
        if _SERVER_INCLUDE_DIR in below:
            return start + _last_index(below, _SERVER_INCLUDE_DIR)
        return start
    return _last_index(directories, group)


def _last_index(parts: tuple[str, ...], name: str) -> int:
    return len(parts) - 1 - parts[::-1].index(name)


def entry_staging_dir(staging_root: Path, entry_name: str) -> Path:
    """Return the staging directory owned by ``entry_name``."""

    return staging_root / entry_name


class ArtifactCollector:
    """Stage artifacts so every file is attributable to exactly one entry."""

    def collect(self, entry_name: str, artifact_dir: Path, staging_root: Path) -> CollectedArtifacts:
        """Copy the classified contents of ``artifact_dir`` into ``staging_root/<entry>``.

        Any previous staging directory for the entry is removed first so stale
        files never survive a rebuild.

        Args:
            entry_name: Entry that produced the artifacts.
            artifact_dir: Directory returned by the build backend.
            staging_root: Root of the shared staging area.

        Returns:
            CollectedArtifacts: Staged files.

        Raises:
            ArtifactCollectionError: If the directory is missing, contains nothing
                collectable, or two installed files map to the same staged path.
        """

        if not artifact_dir.is_dir():
            raise ArtifactCollectionError(entry_name, artifact_dir=artifact_dir, reason="artifact directory missing")
        target = entry_staging_dir(staging_root, entry_name)
        if target.exists():
            shutil.rmtree(target)

        staged: list[Path] = []
        sources: dict[Path, Path] = {}
        for path in sorted(_walk_files(artifact_dir)):
            installed = path.relative_to(artifact_dir)
            group = classify_artifact(installed)
            if group is None:
                continue
            relative = staged_path(installed, group)
            if relative in sources:
                raise ArtifactCollectionError(
                    entry_name,
                    artifact_dir=artifact_dir,
                    reason=f"{sources[relative]} and {installed} both stage as {relative}",
                )
            sources[relative] = installed
            destination = target / relative
            destination.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(path, destination)
            staged.append(relative)

        if not staged:
            raise ArtifactCollectionError(entry_name, artifact_dir=artifact_dir, reason="no artifacts produced")
        return CollectedArtifacts(staging_dir=target, files=tuple(staged))


def staged_files(staging_dir: Path) -> tuple[Path, ...]:
    """Return the files under an entry's staging directory, relative to it."""

    if not staging_dir.is_dir():
        return ()
    return tuple(sorted(path.relative_to(staging_dir) for path in _walk_files(staging_dir)))


def _walk_files(root: Path) -> Iterator[Path]:
    for directory, _dirnames, filenames in os.walk(root):
        for filename in filenames:
            path = Path(directory) / filename
            if path.is_file():
                yield path


__all__ = [
    "ARTIFACT_GROUPS",
    "ArtifactCollector",
    "BIN_DIR",
    "CollectedArtifacts",
    "EXTENSION_DIR",
    "INCLUDE_DIR",
    "LIB_DIR",
    "classify_artifact",
    "entry_staging_dir",
    "staged_files",
    "staged_path",
]
