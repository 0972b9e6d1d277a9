# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for the pre-build and post-build validation gates."""

from __future__ import annotations

from dataclasses import replace
from pathlib import Path

import pytest

from helpers.catalog import catalog_of, make_builtin, make_entry
from pgext.catalog.models import BuildProfile, Catalog
from pgext.errors import ValidationError
from pgext.validation.descriptors import PlainListDescriptor, ShellVariableDescriptor, SqlActivationDescriptor
from pgext.validation.gates import (
    BOOTSTRAP_MISMATCH,
    COUNT_MISMATCH,
    DISABLED_DEPENDENCY,
    DISABLED_REASON_MISSING,
    MISSING_ARTIFACTS,
    MISSING_COMPREHENSIVE_FLAG,
    MISSING_PRELOAD_LIBRARY,
    MISSING_RUNTIME,
    PACKAGE_VERSION_FORMAT,
    PACKAGE_VERSION_MISMATCH,
    PACKAGE_VERSION_MISSING,
    PRELOAD_MISMATCH,
    UNEXPECTED_ARTIFACTS,
    expected_preload_libraries,
    requires_bootstrap,
    run_postbuild_gate,
    run_prebuild_gate,
)
from pgext.validation.report import Severity


def _runtime_catalog() -> Catalog:
    return catalog_of(
        make_entry("pg_cron", runtime={"requiresPreload": True, "enabledByDefault": True}),
        make_builtin(
            "pg_stat_statements",
            runtime={"requiresPreload": True, "enabledByDefault": True},
        ),
        make_entry(
            "timescaledb",
            runtime={"requiresPreload": True, "enabledByDefault": False},
            build={"backend": "timescaledb"},
        ),
        make_entry("vector", runtime={"enabledByDefault": True}),
        make_builtin("plpgsql", runtime={"enabledByDefault": True, "implicitlyActive": True}),
        make_entry(
            "auto_explain_ext",
            runtime={"requiresPreload": True, "enabledByDefault": True, "preloadOnly": True},
        ),
    )


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_unknown_dependency_is_reported() -> None:
    catalog = catalog_of(make_entry("pgrouting", dependencies=["postgis"]))

    report = run_prebuild_gate(catalog)

    assert not report.ok
    assert [issue.describe() for issue in report.failures] == [
        "pgrouting: UnknownDependencyError: depends on unknown entry 'postgis'",
    ]


def test_cycles_are_reported_once_per_component() -> None:
    catalog = catalog_of(
        make_entry("a", dependencies=["b"]),
        make_entry("b", dependencies=["a"]),
    )

    report = run_prebuild_gate(catalog)

    assert [issue.kind for issue in report.failures] == ["CycleError"]
    assert "a -> b -> a" in report.failures[0].message


def test_preload_descriptor_missing_library(tmp_path: Path) -> None:
    descriptor = PlainListDescriptor(_write(tmp_path / "preload.txt", "pg_stat_statements, auto_explain_ext\n"))

    report = run_prebuild_gate(_runtime_catalog(), preload=descriptor)

    mismatches = [issue for issue in report.failures if issue.kind == PRELOAD_MISMATCH]
    assert len(mismatches) == 1
    assert mismatches[0].entry == "pg_cron"
    assert "pg_cron" in mismatches[0].message


def test_preload_descriptor_extra_library_is_attributed(tmp_path: Path) -> None:
    descriptor = PlainListDescriptor(
        _write(tmp_path / "preload.txt", "pg_cron\npg_stat_statements\nauto_explain_ext\ntimescaledb\nmystery\n"),
    )

    report = run_prebuild_gate(_runtime_catalog(), preload=descriptor)

    mismatches = {issue.entry: issue.message for issue in report.failures if issue.kind == PRELOAD_MISMATCH}
    assert set(mismatches) == {"timescaledb", None}
    assert "no catalog entry declares" in mismatches[None]


def test_preload_library_name_overrides_entry_name() -> None:
    catalog = catalog_of(
        make_entry(
            "postgis",
            runtime={"requiresPreload": True, "enabledByDefault": True, "preloadLibraryName": "postgis-3"},
        ),
    )

    assert expected_preload_libraries(catalog) == {"postgis-3": "postgis"}


def test_bootstrap_rules() -> None:
    catalog = _runtime_catalog()
    required = {entry.name for entry in catalog if requires_bootstrap(entry)}

    assert required == {"pg_cron", "pg_stat_statements", "vector"}


def test_bootstrap_descriptor_mismatches(tmp_path: Path) -> None:
    sql = _write(
        tmp_path / "bootstrap.sql",
        "-- defaults\n"
        "CREATE EXTENSION IF NOT EXISTS pg_cron;\n"
        'CREATE EXTENSION "pg_stat_statements";\n'
        "/* CREATE EXTENSION vector; */\n"
        "CREATE EXTENSION unknown_thing;\n",
    )

    report = run_prebuild_gate(_runtime_catalog(), bootstrap=SqlActivationDescriptor(sql))

    mismatches = sorted(
        (issue.entry or "", issue.message) for issue in report.failures if issue.kind == BOOTSTRAP_MISMATCH
    )
    assert [entry for entry, _ in mismatches] == ["", "vector"]
    assert "unknown_thing" in mismatches[0][1]


def test_unreadable_preload_descriptor_does_not_stop_other_checks(tmp_path: Path) -> None:
    shell = _write(tmp_path / "preload.sh", "# nothing assigned here\nOTHER=1\n")
    sql = _write(tmp_path / "bootstrap.sql", "CREATE EXTENSION pg_cron;\n")
    catalog = catalog_of(
        make_entry("pg_cron", runtime={"requiresPreload": True, "enabledByDefault": True}),
        make_entry("vector", runtime={"enabledByDefault": True}),
        make_entry("vectorscale", dependencies=["vector_missing"]),
    )

    report = run_prebuild_gate(
        catalog,
        preload=ShellVariableDescriptor(shell),
        bootstrap=SqlActivationDescriptor(sql),
        expected_counts={"total": 99},
    )

    kinds = {issue.kind for issue in report.failures}
    assert {"ConfigError", "UnknownDependencyError", BOOTSTRAP_MISMATCH, COUNT_MISMATCH} <= kinds
    config_issue = next(issue for issue in report.failures if issue.kind == "ConfigError")
    assert "is not assigned" in config_issue.message


def test_disabled_entries_need_reasons_and_block_dependents() -> None:
    catalog = catalog_of(
        make_entry("pg_partman", dependencies=["pg_jobmon"]),
        make_entry("pg_jobmon", enabled=False, disabledReason="fails on PostgreSQL 18"),
    )
    jobmon = catalog.get("pg_jobmon")
    assert jobmon is not None
    partman = catalog.get("pg_partman")
    assert partman is not None
    broken = catalog.with_entries([partman, replace(jobmon, disabled_reason=None)])

    report = run_prebuild_gate(broken)

    assert {issue.kind for issue in report.failures} == {DISABLED_DEPENDENCY, DISABLED_REASON_MISSING}
    dependency = next(issue for issue in report.failures if issue.kind == DISABLED_DEPENDENCY)
    assert dependency.entry == "pg_partman"


def test_comprehensive_profile_accepts_opted_in_dependency() -> None:
    catalog = catalog_of(
        make_entry("pg_partman", dependencies=["pg_jobmon"]),
        make_entry(
            "pg_jobmon",
            enabled=False,
            disabledReason="flaky",
            enabledInComprehensiveTest=True,
        ),
    )

    assert not run_prebuild_gate(catalog).ok
    assert run_prebuild_gate(catalog, profile=BuildProfile.COMPREHENSIVE).ok


def test_expected_counts_mismatch() -> None:
    catalog = catalog_of(make_entry("pgvector"), make_builtin("hstore"))

    report = run_prebuild_gate(catalog, expected_counts={"total": 2, "builtin": 2})

    counts = [issue for issue in report.failures if issue.kind == COUNT_MISMATCH]
    assert len(counts) == 1
    assert counts[0].message == "expected 2 builtin entries, found 1"


def test_advisories_are_warnings_only() -> None:
    catalog = catalog_of(
        make_entry("pgbackrest", kind="tool"),
        make_entry("pg_hint_plan", enabled=False, disabledReason="conflicts"),
    )

    report = run_prebuild_gate(catalog)

    assert report.ok
    assert {issue.kind for issue in report.warnings} == {MISSING_RUNTIME, MISSING_COMPREHENSIVE_FLAG}
    assert all(issue.severity is Severity.WARNING for issue in report.warnings)


def _stage(root: Path, entry: str, relative: str) -> None:
    path = root / entry / relative
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text("x", encoding="utf-8")


def test_postbuild_flags_artifacts_of_disabled_entries(tmp_path: Path) -> None:
    catalog = catalog_of(
        make_entry("pgvector"),
        make_entry("pg_jobmon", enabled=False, disabledReason="broken"),
        make_builtin("hstore"),
    )
    _stage(tmp_path, "pgvector", "lib/vector.so")
    _stage(tmp_path, "pg_jobmon", "lib/pg_jobmon.so")

    report = run_postbuild_gate(catalog, tmp_path)

    assert [(issue.entry, issue.kind) for issue in report.failures] == [("pg_jobmon", UNEXPECTED_ARTIFACTS)]


def test_postbuild_requires_artifacts_and_preload_library(tmp_path: Path) -> None:
    catalog = catalog_of(
        make_entry("pgvector"),
        make_entry(
            "pg_cron",
            runtime={"requiresPreload": True, "enabledByDefault": True, "preloadLibraryName": "pg_cron"},
        ),
        make_entry("postgis", installVia="apt:postgresql-18-postgis-3"),
    )
    _stage(tmp_path, "pg_cron", "extension/pg_cron.control")

    report = run_postbuild_gate(catalog, tmp_path)

    assert sorted((issue.entry, issue.kind) for issue in report.failures) == [
        ("pg_cron", MISSING_PRELOAD_LIBRARY),
        ("pgvector", MISSING_ARTIFACTS),
    ]

    _stage(tmp_path, "pg_cron", "lib/pg_cron.so")
    _stage(tmp_path, "pgvector", "lib/vector.so")
    assert run_postbuild_gate(catalog, tmp_path).ok


def test_raise_for_failures_wraps_every_failing_issue() -> None:
    catalog = catalog_of(
        make_entry("pgrouting", dependencies=["postgis"]),
        make_entry("pg_partman", dependencies=["pg_jobmon"]),
    )
    report = run_prebuild_gate(catalog)

    with pytest.raises(ValidationError) as excinfo:
        report.raise_for_failures()

    assert excinfo.value.describe().splitlines() == [
        "pg_partman: UnknownDependencyError: depends on unknown entry 'pg_jobmon'",
        "pgrouting: UnknownDependencyError: depends on unknown entry 'postgis'",
    ]
    run_prebuild_gate(catalog_of(make_entry("pgvector"))).raise_for_failures()


def test_package_installed_entries_need_consistent_versions() -> None:
    catalog = catalog_of(
        make_entry("pg_cron", installVia="pgdg:postgresql-18-cron", packageVersion="1.0.0-2.pgdg13+1"),
        make_entry("hll", installVia="pgdg", packageVersion="1.0.0-1.trixie"),
        make_entry("pg_tde", installVia="percona", packageVersion="1:1.1.0-1.trixie"),
        make_entry("postgis", installVia="apt:postgresql-18-postgis-3"),
        make_entry("timescaledb", installVia="timescale", packageVersion="1.0.0~debian13-1801"),
        make_entry("vendored", installVia="internal", packageVersion="1.0.0+build7"),
    )

    report = run_prebuild_gate(catalog)

    assert [(issue.entry, issue.kind) for issue in report.failures] == [
        ("hll", PACKAGE_VERSION_FORMAT),
        ("pg_tde", PACKAGE_VERSION_MISMATCH),
        ("postgis", PACKAGE_VERSION_MISSING),
    ]
    mismatch = report.failures[1].message
    assert "'v1.0.0' (1.0.0)" in mismatch and "(1.1.0)" in mismatch
