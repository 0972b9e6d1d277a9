# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Version strings found in git tags and vendor package versions."""

from __future__ import annotations

import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Final

from packaging.version import InvalidVersion, Version


@dataclass(frozen=True, slots=True)
class VendorFormat:
    """Debian version layout used by one package vendor."""

    pattern: re.Pattern[str]
    example: str


VENDOR_FORMATS: Final[Mapping[str, VendorFormat]] = {
    "pgdg": VendorFormat(re.compile(r"^\d[\d.]*(\+\w+)?-\d+\.pgdg\d+\+\d+$"), "1.6.7-2.pgdg13+1"),
    "percona": VendorFormat(re.compile(r"^(\d+:)?\d[\d.]*-\d+\.\w+$"), "1:2.3.1-1.trixie"),
    "timescale": VendorFormat(re.compile(r"^(\d+:)?\d[\d.]*~\w+(-\d+)?$"), "2.24.0~debian13-1801"),
}

_PLAIN = re.compile(r"v?(?P<version>\d+(?:\.\d+)*)")
_UNDERSCORED = re.compile(r"(?:^REL_?|_)(?P<version>\d+(?:_\d+)+)$")
_SCOPED = re.compile(r"@v?(?P<version>\d+(?:\.\d+)*)$")
_EMBEDDED = re.compile(r"\d+(?:\.\d+)+")
_EPOCH = re.compile(r"^\d+:")
_LEADING_VERSION = re.compile(r"^\d+(?:\.\d+)*")
_PRERELEASE = re.compile(r"alpha|beta|rc|preview", re.IGNORECASE)


def tag_version(tag: str) -> str:
    """Return the dotted version a release tag names.

    ``v2.8.4``, ``REL4_2_0``, ``ver_1.5.3``, ``release/2.57.0``,
    ``wal2json_2_6`` and ``pgflow@0.7.2`` all reduce to their numeric part.
    Tags without a recognisable version are returned unchanged.
    """

    for prefix in ("ver_", "release/"):
        if tag.startswith(prefix):
            return tag_version(tag[len(prefix) :])
    plain = _PLAIN.fullmatch(tag)
    if plain:
        return plain.group("version")
    underscored = _UNDERSCORED.search(tag)
    if underscored:
        return underscored.group("version").replace("_", ".")
    scoped = _SCOPED.search(tag)
    if scoped:
        return scoped.group("version")
    embedded = _EMBEDDED.search(tag)
    return embedded.group(0) if embedded else tag


def package_upstream_version(version: str) -> str:
    """Return the upstream part of a Debian package version.

    Examples:
        ``2.23.1+dfsg-1.pgdg13+1`` gives ``2.23.1``; ``1:2.6-2.trixie`` gives
        ``2.6``; ``2.24.0~debian13-1801`` gives ``2.24.0``.
    """

    match = _LEADING_VERSION.match(_EPOCH.sub("", version))
    return match.group(0) if match else version


def tag_prefix(tag: str) -> str:
    """Return the non-numeric lead of ``tag`` (``v``, ``REL``, ``wal2json_``...)."""

    index = next((position for position, char in enumerate(tag) if char.isdigit()), len(tag))
    prefix = tag[:index]
    # wal2json_2_6 leads with a name that itself holds digits.
    underscored = _UNDERSCORED.search(tag)
    if underscored and underscored.start("version") > index:
        return tag[: underscored.start("version")]
    return prefix


def is_prerelease(tag: str) -> bool:
    return bool(_PRERELEASE.search(tag[len(tag_prefix(tag)) :]))


def release_version(tag: str) -> Version | None:
    """Return the release ``tag`` names, or ``None`` when it names none."""

    try:
        return Version(tag_version(tag))
    except InvalidVersion:
        return None


def same_version(left: str, right: str) -> bool:
    """Compare two dotted versions numerically, so ``2.6`` equals ``2.6.0``."""

    try:
        return Version(left) == Version(right)
    except InvalidVersion:
        return left == right


__all__ = [
    "VENDOR_FORMATS",
    "VendorFormat",
    "is_prerelease",
    "package_upstream_version",
    "release_version",
    "same_version",
    "tag_prefix",
    "tag_version",
]
