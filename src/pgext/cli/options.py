# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Reusable Typer option declarations for pgext commands."""

from __future__ import annotations

from pathlib import Path
from typing import Annotated

import typer

from ..catalog.models import BuildProfile

CONFIG_OPTION = Annotated[
    Path | None,
    typer.Option("--config", help="Explicit pgext TOML configuration file.", show_default=False),
]
ROOT_OPTION = Annotated[
    Path,
    typer.Option("--root", "-r", help="Project root used to discover pgext.toml and pyproject.toml."),
]
VERBOSE_OPTION = Annotated[bool, typer.Option("--verbose", "-v", help="Stream diagnostic logging to stderr.")]
NO_COLOR_OPTION = Annotated[bool, typer.Option("--no-color", help="Disable ANSI colour output.")]
NO_EMOJI_OPTION = Annotated[bool, typer.Option("--no-emoji", help="Disable emoji output.")]

CATALOG_OPTION = Annotated[
    Path | None,
    typer.Option("--catalog", help="Catalog JSON file or directory of entry files.", show_default=False),
]
REQUIRED_CATALOG_OPTION = Annotated[
    Path,
    typer.Option("--catalog", help="Catalog JSON file or directory of entry files.", show_default=False),
]
MANIFEST_OPTION = Annotated[
    Path | None,
    typer.Option("--manifest", help="Resolved manifest written by 'pgext resolve'.", show_default=False),
]
OUTPUT_OPTION = Annotated[
    Path,
    typer.Option("--output", "-o", help="Destination of the generated file."),
]
STAGING_OPTION = Annotated[
    Path | None,
    typer.Option("--staging", help="Staging root holding one directory per entry.", show_default=False),
]
WORK_DIR_OPTION = Annotated[
    Path | None,
    typer.Option("--work-dir", help="Scratch directory for sources and build logs.", show_default=False),
]
CONCURRENCY_OPTION = Annotated[
    int | None,
    typer.Option("--concurrency", "-j", min=1, help="Maximum concurrent workers.", show_default=False),
]
FAIL_FAST_OPTION = Annotated[
    bool | None,
    typer.Option(
        "--fail-fast/--best-effort",
        help="Stop at the first failing entry, or keep building independent entries.",
        show_default=False,
    ),
]
PROFILE_OPTION = Annotated[
    BuildProfile | None,
    typer.Option("--profile", help="Enablement profile selecting active entries.", show_default=False),
]
PRELOAD_OPTION = Annotated[
    Path | None,
    typer.Option("--preload", help="Runtime preload descriptor to cross-check.", show_default=False),
]
BOOTSTRAP_OPTION = Annotated[
    Path | None,
    typer.Option("--bootstrap", help="Bootstrap activation descriptor to cross-check.", show_default=False),
]
ONLY_OPTION = Annotated[
    list[str] | None,
    typer.Option("--only", help="Build only these entries and their dependencies.", show_default=False),
]
JSON_OPTION = Annotated[bool, typer.Option("--json", help="Emit JSON instead of a table.")]
OUTPUT_DIR_OPTION = Annotated[
    Path,
    typer.Option("--output-dir", "-o", help="Directory receiving the generated lists."),
]
OPTIONAL_OUTPUT_OPTION = Annotated[
    Path | None,
    typer.Option("--output", "-o", help="Write to this file instead of stdout.", show_default=False),
]

__all__ = [
    "BOOTSTRAP_OPTION",
    "CATALOG_OPTION",
    "CONCURRENCY_OPTION",
    "CONFIG_OPTION",
    "FAIL_FAST_OPTION",
    "JSON_OPTION",
    "MANIFEST_OPTION",
    "NO_COLOR_OPTION",
    "NO_EMOJI_OPTION",
    "ONLY_OPTION",
    "OPTIONAL_OUTPUT_OPTION",
    "OUTPUT_DIR_OPTION",
    "OUTPUT_OPTION",
    "PRELOAD_OPTION",
    "PROFILE_OPTION",
    "REQUIRED_CATALOG_OPTION",
    "ROOT_OPTION",
    "STAGING_OPTION",
    "VERBOSE_OPTION",
    "WORK_DIR_OPTION",
]
