# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Catalog model, schema validation and loading."""

from __future__ import annotations

from .loader import CatalogLoader, extract_entries, load_catalog
from .models import (
    BuildBackend,
    BuildProfile,
    BuildSpec,
    BuiltinSource,
    Catalog,
    CatalogEntry,
    EntryKind,
    GitRefSource,
    GitTagSource,
    RuntimeSpec,
    SourceSpec,
)
from .stats import CatalogStats, build_packages

__all__ = [
    "BuildBackend",
    "BuildProfile",
    "BuildSpec",
    "BuiltinSource",
    "Catalog",
    "CatalogEntry",
    "CatalogLoader",
    "CatalogStats",
    "EntryKind",
    "GitRefSource",
    "GitTagSource",
    "RuntimeSpec",
    "SourceSpec",
    "build_packages",
    "extract_entries",
    "load_catalog",
]
