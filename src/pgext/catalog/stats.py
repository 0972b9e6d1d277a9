# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Derived catalog counts and aggregate views."""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from typing import Final

from .models import BuildProfile, Catalog, EntryKind

STAT_FIELDS: Final[tuple[str, ...]] = (
    "total",
    "enabled",
    "disabled",
    "builtin",
    "package_installed",
    "source_built",
)


@dataclass(frozen=True, slots=True)
class CatalogStats:
    """Counts derived from a catalog.

    ``builtin``, ``package_installed`` and ``source_built`` are counted with
    independent predicates, so :attr:`is_partitioned` exposes entries that fall
    into several categories or none.
    """

    total: int
    enabled: int
    disabled: int
    builtin: int
    package_installed: int
    source_built: int
    by_kind: tuple[tuple[str, int], ...]

    @classmethod
    def from_catalog(cls, catalog: Catalog) -> CatalogStats:
        """Derive counts for every entry in ``catalog``.

        Args:
            catalog: Catalog to summarise.

        Returns:
            CatalogStats: Aggregated counts.
        """
        kinds = Counter(entry.kind.value for entry in catalog)
        return cls(
            total=len(catalog),
            enabled=sum(1 for entry in catalog if entry.enabled),
            disabled=sum(1 for entry in catalog if not entry.enabled),
            builtin=sum(1 for entry in catalog if entry.is_builtin),
            package_installed=sum(1 for entry in catalog if entry.is_package_installed),
            source_built=sum(1 for entry in catalog if entry.is_source_built),
            by_kind=tuple((kind.value, kinds.get(kind.value, 0)) for kind in EntryKind),
        )

    @property
    def is_partitioned(self) -> bool:
        """Return ``True`` when the three categories sum to :attr:`total`."""
        return self.builtin + self.package_installed + self.source_built == self.total

    def as_dict(self) -> dict[str, int]:
        """Return the scalar counts keyed by field name."""
        counts = {name: int(getattr(self, name)) for name in STAT_FIELDS}
        counts.update({f"kind_{kind}": count for kind, count in self.by_kind})
        return counts


def build_packages(catalog: Catalog, profile: BuildProfile = BuildProfile.PRODUCTION) -> tuple[str, ...]:
    """Return the sorted OS packages needed to compile the active source-built entries."""
    packages = {package for entry in catalog.build_candidates(profile) for package in entry.build_packages}
    return tuple(sorted(packages))


__all__ = ["CatalogStats", "STAT_FIELDS", "build_packages"]
