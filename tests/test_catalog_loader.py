# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for catalog schema validation and typed entry loading."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from helpers.catalog import COMMIT, catalog_of, make_builtin, make_entry
from pgext.catalog import BuildBackend, BuildProfile, CatalogStats, EntryKind, GitTagSource, load_catalog
from pgext.catalog.checksum import entries_checksum
from pgext.catalog.stats import build_packages
from pgext.errors import SchemaError


def test_load_catalog_returns_entries_sorted_by_name(write_catalog) -> None:
    path = write_catalog(make_entry("pgvector"), make_builtin("hstore"), make_entry("age"))

    catalog = load_catalog(path)

    assert [entry.name for entry in catalog] == ["age", "hstore", "pgvector"]
    assert catalog.checksum is not None and len(catalog.checksum) == 64
    hstore = catalog.get("hstore")
    assert hstore is not None and hstore.kind is EntryKind.BUILTIN and hstore.is_builtin


def test_load_catalog_from_directory_ignores_underscore_files(tmp_path: Path) -> None:
    root = tmp_path / "catalog"
    root.mkdir()
    (root / "pg_cron.json").write_text(json.dumps(make_entry("pg_cron")), encoding="utf-8")
    (root / "hstore.json").write_text(json.dumps(make_builtin("hstore")), encoding="utf-8")
    (root / "_shared.json").write_text("not json", encoding="utf-8")

    catalog = load_catalog(root)

    assert catalog.names == frozenset({"pg_cron", "hstore"})


def test_checksum_tracks_document_contents(write_catalog) -> None:
    first = load_catalog(write_catalog(make_entry("pgvector")))
    second = load_catalog(write_catalog(make_entry("pgvector", category="search")))

    assert first.checksum != second.checksum


def test_checksum_ignores_document_formatting(tmp_path: Path) -> None:
    payloads = [make_entry("pgvector"), make_builtin("hstore")]
    compact = tmp_path / "compact.json"
    compact.write_text(json.dumps({"entries": payloads}, separators=(",", ":")), encoding="utf-8")
    pretty = tmp_path / "pretty.json"
    pretty.write_text(json.dumps({"entries": payloads[::-1]}, indent=4, sort_keys=True), encoding="utf-8")
    split = tmp_path / "split"
    split.mkdir()
    for payload in payloads:
        (split / f"{payload['name']}.json").write_text(json.dumps(payload), encoding="utf-8")

    checksums = {load_catalog(path).checksum for path in (compact, pretty, split)}

    assert len(checksums) == 1
    assert checksums == {entries_checksum(load_catalog(compact))}


def test_missing_tag_names_entry_and_field(write_catalog) -> None:
    payload = make_entry("pgvector")
    del payload["source"]["tag"]

    with pytest.raises(SchemaError) as excinfo:
        load_catalog(write_catalog(payload))

    assert excinfo.value.entry == "pgvector"
    assert excinfo.value.field == "source.tag"
    assert "pgvector: SchemaError: field 'source.tag'" in excinfo.value.describe()


def test_unknown_backend_is_rejected_by_schema(write_catalog) -> None:
    payload = make_entry("pgvector", build={"backend": "bazel"})

    with pytest.raises(SchemaError) as excinfo:
        load_catalog(write_catalog(payload))

    assert excinfo.value.entry == "pgvector"
    assert excinfo.value.field == "build.backend"


def test_unexpected_property_is_reported(write_catalog) -> None:
    payload = make_entry("pgvector", maintainer="someone")

    with pytest.raises(SchemaError) as excinfo:
        load_catalog(write_catalog(payload))

    assert excinfo.value.field == "maintainer"


def test_disabled_entry_requires_reason() -> None:
    with pytest.raises(SchemaError) as excinfo:
        catalog_of(make_entry("pg_jobmon", enabled=False, disabledReason="  "))

    assert excinfo.value.field == "disabledReason"


def test_builtin_must_not_declare_build() -> None:
    with pytest.raises(SchemaError, match="builtin"):
        catalog_of(make_builtin("hstore", build={"backend": "pgxs"}))


def test_git_source_requires_build() -> None:
    payload = make_entry("pgvector")
    del payload["build"]

    with pytest.raises(SchemaError) as excinfo:
        catalog_of(payload)

    assert excinfo.value.field == "build"


def test_script_backend_requires_script() -> None:
    with pytest.raises(SchemaError) as excinfo:
        catalog_of(make_entry("pljava", build={"backend": "script"}))

    assert excinfo.value.field == "build.script"


def test_subdir_must_stay_inside_source_tree() -> None:
    with pytest.raises(SchemaError) as excinfo:
        catalog_of(make_entry("pgvector", build={"backend": "pgxs", "subdir": "../elsewhere"}))

    assert excinfo.value.field == "build.subdir"


def test_malformed_patch_is_reported_with_index() -> None:
    build = {"backend": "pgxs", "patches": ["s/ok/fine/", "s/missing-end"]}

    with pytest.raises(SchemaError) as excinfo:
        catalog_of(make_entry("pgvector", build=build))

    assert excinfo.value.field == "build.patches[1]"


def test_duplicate_names_are_rejected() -> None:
    with pytest.raises(SchemaError, match="duplicate entry name"):
        catalog_of(make_entry("pgvector"), make_entry("pgvector"))


def test_self_dependency_is_rejected() -> None:
    with pytest.raises(SchemaError) as excinfo:
        catalog_of(make_entry("pgvector", dependencies=["pgvector"]))

    assert excinfo.value.field == "dependencies"


def test_entry_round_trips_through_mapping() -> None:
    payload = make_entry(
        "plrust",
        build={"backend": "cargo-pgrx", "features": ["pg18"], "disableDefaultFeatures": True},
        runtime={"requiresPreload": True, "enabledByDefault": False, "preloadLibraryName": "plrust"},
        dependencies=["pgvector"],
        buildPackages=["clang"],
    )

    entry = catalog_of(payload, make_entry("pgvector")).get("plrust")

    assert entry is not None
    assert entry.build is not None and entry.build.backend is BuildBackend.CARGO_PGRX
    assert entry.to_mapping()["build"] == payload["build"]
    assert entry.to_mapping()["source"] == payload["source"]
    assert isinstance(entry.source, GitTagSource) and entry.commit == COMMIT


def test_comprehensive_profile_activates_opted_in_entries() -> None:
    catalog = catalog_of(
        make_entry("pgvector"),
        make_entry("pg_jobmon", enabled=False, disabledReason="upstream broken", enabledInComprehensiveTest=True),
        make_entry("pg_hint_plan", enabled=False, disabledReason="conflicts"),
    )

    production = [entry.name for entry in catalog.build_candidates(BuildProfile.PRODUCTION)]
    comprehensive = [entry.name for entry in catalog.build_candidates(BuildProfile.COMPREHENSIVE)]

    assert production == ["pgvector"]
    assert comprehensive == ["pg_jobmon", "pgvector"]


def test_stats_partition_categories() -> None:
    catalog = catalog_of(
        make_entry("pgvector", buildPackages=["libc6-dev"]),
        make_entry("postgis", installVia="apt:postgresql-18-postgis-3"),
        make_builtin("hstore"),
        make_entry("pg_jobmon", enabled=False, disabledReason="broken", buildPackages=["libssl-dev"]),
    )

    stats = CatalogStats.from_catalog(catalog)

    assert (stats.total, stats.enabled, stats.disabled) == (4, 3, 1)
    assert (stats.builtin, stats.package_installed, stats.source_built) == (1, 1, 2)
    assert stats.is_partitioned
    assert stats.as_dict()["kind_builtin"] == 1
    assert build_packages(catalog) == ("libc6-dev",)


def test_package_version_requires_install_via() -> None:
    with pytest.raises(SchemaError) as excinfo:
        catalog_of(make_entry("pg_cron", packageVersion="1.6.7-2.pgdg13+1"))

    assert excinfo.value.field == "packageVersion"


def test_package_vendor_is_read_from_install_via() -> None:
    catalog = catalog_of(
        make_entry("pg_cron", installVia="pgdg:postgresql-18-cron", packageVersion="1.6.7-2.pgdg13+1"),
        make_entry("hll", installVia="pgdg"),
    )
    pg_cron = catalog.get("pg_cron")
    hll = catalog.get("hll")

    assert pg_cron is not None and pg_cron.package_vendor == "pgdg"
    assert pg_cron.to_mapping()["packageVersion"] == "1.6.7-2.pgdg13+1"
    assert hll is not None and hll.package_vendor == "pgdg" and hll.package_version is None
