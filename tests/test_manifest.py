# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for manifest emission and the runtime lists derived from it."""

from __future__ import annotations

import json
from datetime import datetime, timezone
from pathlib import Path

import pytest

from helpers.catalog import COMMIT, catalog_of, make_builtin, make_entry
from pgext.catalog.loader import load_catalog
from pgext.catalog.models import BuildProfile
from pgext.errors import SchemaError
from pgext.manifest import (
    GENERATED_HEADER,
    Manifest,
    load_manifest,
    write_build_packages,
    write_manifest,
    write_runtime_defaults,
)


def test_manifest_document_shape(write_catalog) -> None:
    catalog = load_catalog(write_catalog(make_entry("vector"), make_builtin("hstore")))
    generated = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)

    document = Manifest(catalog=catalog, generated_at=generated).to_document()

    assert document["schemaVersion"] == "1.0.0"
    assert document["generatedAt"] == "2025-03-01T12:00:00Z"
    assert document["catalogChecksum"] == catalog.checksum
    assert [entry["name"] for entry in document["entries"]] == ["hstore", "vector"]
    assert document["entries"][1]["source"]["commit"] == COMMIT


def test_manifest_round_trips(tmp_path: Path, write_catalog) -> None:
    catalog = load_catalog(write_catalog(make_entry("vector"), make_builtin("hstore")))
    path = tmp_path / "out" / "manifest.json"

    write_manifest(Manifest(catalog=catalog), path)
    loaded = load_manifest(path)

    assert loaded.catalog.entries == catalog.entries
    assert loaded.catalog_checksum == catalog.checksum
    assert not list(path.parent.glob(".manifest.json.*"))


def test_load_manifest_rejects_unpinned_entries(tmp_path: Path) -> None:
    entry = make_entry("vector", source={"type": "git-tag", "repository": "https://github.com/x/y", "tag": "v1"})
    path = tmp_path / "manifest.json"
    path.write_text(json.dumps({"entries": [entry]}), encoding="utf-8")

    with pytest.raises(SchemaError) as excinfo:
        load_manifest(path)

    assert excinfo.value.entry == "vector"
    assert excinfo.value.field == "source.commit"
    assert len(load_manifest(path, require_frozen=False).catalog) == 1


def test_runtime_defaults_lists(tmp_path: Path) -> None:
    catalog = catalog_of(
        make_entry("pg_cron", runtime={"requiresPreload": True, "enabledByDefault": True}),
        make_entry("vector", runtime={"enabledByDefault": True}),
        make_entry("pgaudit", runtime={"requiresPreload": True, "enabledByDefault": False}),
        make_builtin("plpgsql", runtime={"enabledByDefault": True, "implicitlyActive": True}),
    )

    preload, extensions = write_runtime_defaults(catalog, tmp_path / "defaults")

    assert preload.read_text(encoding="utf-8") == f"{GENERATED_HEADER}\npg_cron\n"
    assert extensions.read_text(encoding="utf-8") == f"{GENERATED_HEADER}\npg_cron\nvector\n"


def test_build_packages_file(tmp_path: Path) -> None:
    catalog = catalog_of(
        make_entry("postgis", buildPackages=["libgeos-dev", "libproj-dev"]),
        make_entry("vector", buildPackages=["libgeos-dev"]),
    )

    path = write_build_packages(catalog, tmp_path / "packages.txt")

    assert path.read_text(encoding="utf-8").splitlines()[1:] == ["libgeos-dev", "libproj-dev"]


def test_build_packages_file_follows_profile(tmp_path: Path) -> None:
    catalog = catalog_of(
        make_entry("postgis", buildPackages=["libgeos-dev"]),
        make_entry(
            "pg_jsonschema",
            enabled=False,
            disabledReason="pgrx toolchain too slow for production images",
            enabledInComprehensiveTest=True,
            buildPackages=["libclang-dev"],
        ),
    )

    production = write_build_packages(catalog, tmp_path / "production.txt")
    comprehensive = write_build_packages(catalog, tmp_path / "comprehensive.txt", BuildProfile.COMPREHENSIVE)

    assert production.read_text(encoding="utf-8").splitlines()[1:] == ["libgeos-dev"]
    assert comprehensive.read_text(encoding="utf-8").splitlines()[1:] == ["libclang-dev", "libgeos-dev"]
