# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Pre-build structural checks and post-build artifact checks.

Gates never stop at the first problem: every check runs and contributes its
issues to one :class:`ValidationReport`.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Final

from ..build.collect import LIB_DIR, staged_files
from ..catalog.models import BuildProfile, Catalog, CatalogEntry, EntryKind, GitTagSource
from ..catalog.stats import CatalogStats
from ..catalog.versions import VENDOR_FORMATS, package_upstream_version, same_version, tag_version
from ..errors import ConfigError, CycleError
from ..sequencer import build_graph, find_cycles, find_unknown_dependencies
from .descriptors import DeclaredNames
from .report import Severity, ValidationIssue, ValidationReport

LOGGER = logging.getLogger(__name__)

DISABLED_REASON_MISSING: Final[str] = "DisabledReasonMissing"
DISABLED_DEPENDENCY: Final[str] = "DisabledDependency"
PRELOAD_MISMATCH: Final[str] = "PreloadMismatch"
BOOTSTRAP_MISMATCH: Final[str] = "BootstrapMismatch"
COUNT_MISMATCH: Final[str] = "CountMismatch"
MISSING_RUNTIME: Final[str] = "MissingRuntime"
MISSING_COMPREHENSIVE_FLAG: Final[str] = "MissingComprehensiveFlag"
MISSING_ARTIFACTS: Final[str] = "MissingArtifacts"
UNEXPECTED_ARTIFACTS: Final[str] = "UnexpectedArtifacts"
MISSING_PRELOAD_LIBRARY: Final[str] = "MissingPreloadLibrary"
PACKAGE_VERSION_MISSING: Final[str] = "PackageVersionMissing"
PACKAGE_VERSION_FORMAT: Final[str] = "PackageVersionFormat"
PACKAGE_VERSION_MISMATCH: Final[str] = "PackageVersionMismatch"

LIBRARY_SUFFIXES: Final[tuple[str, ...]] = ("", ".so", ".dylib")


def check_references(catalog: Catalog, report: ValidationReport) -> None:
    """Report one issue per dependency naming an entry outside the catalog."""

    for error in find_unknown_dependencies(catalog, catalog.names):
        report.extend([ValidationIssue.from_error(error)])


def check_cycles(catalog: Catalog, report: ValidationReport, profile: BuildProfile) -> None:
    """Report every dependency cycle among entries active under ``profile``."""

    graph = build_graph(catalog.active_entries(profile))
    for cycle in find_cycles(graph):
        report.extend([ValidationIssue.from_error(CycleError(cycle))])


def check_disabled_reasons(catalog: Catalog, report: ValidationReport) -> None:
    for entry in catalog:
        if not entry.enabled and not (entry.disabled_reason and entry.disabled_reason.strip()):
            report.add(entry.name, DISABLED_REASON_MISSING, "disabled entries must state a disabledReason")


def check_disabled_dependencies(catalog: Catalog, report: ValidationReport, profile: BuildProfile) -> None:
    """Report active entries that depend on an inactive entry."""

    for entry in catalog.active_entries(profile):
        for dependency in entry.dependencies:
            target = catalog.get(dependency)
            if target is not None and not target.is_active(profile):
                report.add(
                    entry.name,
                    DISABLED_DEPENDENCY,
                    f"depends on disabled entry '{dependency}' ({target.disabled_reason or 'no reason given'})",
                )


def expected_preload_libraries(catalog: Catalog) -> dict[str, str]:
    """Return library name -> entry name for every enabled default preload.

    Args:
        catalog: Catalog to inspect.

    Returns:
        dict[str, str]: Libraries that must appear in the preload descriptor.
    """

    return {
        entry.runtime.library_name(entry.name): entry.name
        for entry in catalog
        if entry.enabled
        and entry.runtime is not None
        and entry.runtime.requires_preload
        and entry.runtime.enabled_by_default
    }


def _declared_names(descriptor: DeclaredNames, report: ValidationReport) -> frozenset[str] | None:
    """Return the descriptor's names, recording an issue instead when it cannot be read."""

    try:
        return descriptor.names()
    except ConfigError as exc:
        report.extend([ValidationIssue.from_error(exc)])
    except (OSError, UnicodeDecodeError) as exc:
        report.extend([ValidationIssue.from_error(ConfigError(f"{descriptor.path}: cannot read descriptor: {exc}"))])
    return None


def check_preload(catalog: Catalog, report: ValidationReport, descriptor: DeclaredNames) -> None:
    """Report both directions of the preload set-equality check."""

    expected = expected_preload_libraries(catalog)
    declared = _declared_names(descriptor, report)
    if declared is None:
        return
    libraries = {entry.runtime.library_name(entry.name): entry.name for entry in catalog if entry.runtime is not None}
    for library in sorted(set(expected) - declared):
        report.add(
            expected[library],
            PRELOAD_MISMATCH,
            f"requires preload library '{library}' by default but {descriptor.path.name} does not list it",
        )
    for library in sorted(declared - set(expected)):
        owner = libraries.get(library) or (library if library in catalog else None)
        if owner is None:
            message = f"{descriptor.path.name} preloads '{library}', which no catalog entry declares"
        else:
            message = (
                f"{descriptor.path.name} preloads '{library}' but the entry is not enabled with "
                "requiresPreload and enabledByDefault"
            )
        report.add(owner, PRELOAD_MISMATCH, message)


def requires_bootstrap(entry: CatalogEntry) -> bool:
    """Return ``True`` when ``entry`` must be activated by the bootstrap descriptor."""

    runtime = entry.runtime
    if not entry.enabled or runtime is None or not runtime.enabled_by_default:
        return False
    if runtime.preload_only or entry.kind is EntryKind.TOOL:
        return False
    return not (entry.is_builtin and runtime.implicitly_active)


def check_bootstrap(catalog: Catalog, report: ValidationReport, descriptor: DeclaredNames) -> None:
    """Report default entries the bootstrap misses and names it activates wrongly."""

    declared = _declared_names(descriptor, report)
    if declared is None:
        return
    for entry in catalog:
        if requires_bootstrap(entry) and entry.name not in declared:
            report.add(
                entry.name,
                BOOTSTRAP_MISMATCH,
                f"is enabled by default but {descriptor.path.name} does not activate it",
            )
    provided = {name: entry for entry in catalog for name in (entry.name, *entry.provides)}
    for name in sorted(declared):
        owner = provided.get(name)
        if owner is None:
            report.add(None, BOOTSTRAP_MISMATCH, f"{descriptor.path.name} activates unknown extension '{name}'")
        elif not owner.enabled:
            report.add(
                owner.name,
                BOOTSTRAP_MISMATCH,
                f"{descriptor.path.name} activates '{name}' but the entry is disabled",
            )


def check_counts(
    catalog: Catalog,
    report: ValidationReport,
    expected_counts: Mapping[str, int] | None = None,
) -> None:
    """Check the category arithmetic and any configured expected counts."""

    stats = CatalogStats.from_catalog(catalog)
    if not stats.is_partitioned:
        report.add(
            None,
            COUNT_MISMATCH,
            f"{stats.total} total != {stats.builtin} builtin + {stats.package_installed} package-installed"
            f" + {stats.source_built} source-built",
        )
    if stats.enabled + stats.disabled != stats.total:
        report.add(None, COUNT_MISMATCH, f"{stats.total} total != {stats.enabled} enabled + {stats.disabled} disabled")
    actual = stats.as_dict()
    for key, value in sorted((expected_counts or {}).items()):
        if actual.get(key) != value:
            report.add(None, COUNT_MISMATCH, f"expected {value} {key.replace('_', '-')} entries, found {actual.get(key)}")


def check_package_versions(catalog: Catalog, report: ValidationReport) -> None:
    """Check the ``packageVersion`` of every package-installed entry.

    Known vendors must use their Debian version layout, and the upstream part
    of the package version must match the version named by the source tag.
    """

    for entry in catalog:
        if entry.install_via is None:
            continue
        version = entry.package_version
        if version is None:
            report.add(
                entry.name,
                PACKAGE_VERSION_MISSING,
                f"installed via {entry.install_via} but declares no packageVersion",
            )
            continue
        vendor = VENDOR_FORMATS.get(entry.package_vendor or "")
        if vendor is not None and not vendor.pattern.match(version):
            report.add(
                entry.name,
                PACKAGE_VERSION_FORMAT,
                f"{entry.package_vendor} version '{version}' does not look like '{vendor.example}'",
            )
            continue
        source = entry.source
        if isinstance(source, GitTagSource):
            expected = tag_version(source.tag)
            upstream = package_upstream_version(version)
            if not same_version(expected, upstream):
                report.add(
                    entry.name,
                    PACKAGE_VERSION_MISMATCH,
                    f"packageVersion '{version}' ({upstream}) does not match tag '{source.tag}' ({expected})",
                )


def check_advisories(catalog: Catalog, report: ValidationReport) -> None:
    """Record non-failing warnings about incomplete metadata."""

    for entry in catalog:
        if entry.kind is EntryKind.TOOL and entry.runtime is None:
            report.add(
                entry.name,
                MISSING_RUNTIME,
                "tool entries should declare a runtime block",
                severity=Severity.WARNING,
            )
        if entry.kind is EntryKind.EXTENSION and not entry.enabled and entry.enabled_in_comprehensive_test is None:
            report.add(
                entry.name,
                MISSING_COMPREHENSIVE_FLAG,
                "disabled extension does not state enabledInComprehensiveTest",
                severity=Severity.WARNING,
            )


def run_prebuild_gate(
    catalog: Catalog,
    *,
    preload: DeclaredNames | None = None,
    bootstrap: DeclaredNames | None = None,
    expected_counts: Mapping[str, int] | None = None,
    profile: BuildProfile = BuildProfile.PRODUCTION,
) -> ValidationReport:
    """Run every structural check; needs no filesystem access beyond descriptors.

    Args:
        catalog: Catalog or manifest entries to check.
        preload: Runtime preload descriptor; the preload check is skipped when absent.
        bootstrap: Bootstrap descriptor; the bootstrap check is skipped when absent.
        expected_counts: Optional expected values for the derived counts.
        profile: Enablement profile used for the cycle and dependency checks.

    Returns:
        ValidationReport: Every issue found.
    """

    report = ValidationReport()
    check_references(catalog, report)
    check_cycles(catalog, report, profile)
    check_disabled_reasons(catalog, report)
    check_disabled_dependencies(catalog, report, profile)
    if preload is not None:
        check_preload(catalog, report, preload)
    if bootstrap is not None:
        check_bootstrap(catalog, report, bootstrap)
    check_counts(catalog, report, expected_counts)
    check_package_versions(catalog, report)
    check_advisories(catalog, report)
    LOGGER.info("pre-build gate: %d failure(s), %d warning(s)", len(report.failures), len(report.warnings))
    return report


def run_postbuild_gate(
    catalog: Catalog,
    staging_root: Path,
    *,
    profile: BuildProfile = BuildProfile.PRODUCTION,
) -> ValidationReport:
    """Check the staging tree against the catalog.

    Args:
        catalog: Catalog or manifest entries that were built.
        staging_root: Root holding one ``<name>/`` directory per entry.
        profile: Enablement profile the build ran with.

    Returns:
        ValidationReport: Every artifact presence issue found.
    """

    report = ValidationReport()
    for entry in catalog:
        staging_dir = staging_root / entry.name
        files = staged_files(staging_dir)
        if not entry.is_active(profile):
            if files:
                report.add(
                    entry.name,
                    UNEXPECTED_ARTIFACTS,
                    f"entry is disabled but {staging_dir} holds {len(files)} file(s)",
                )
            continue
        if not entry.is_source_built:
            continue
        if not files:
            report.add(entry.name, MISSING_ARTIFACTS, f"no artifacts in {staging_dir}")
            continue
        runtime = entry.runtime
        if runtime is not None and runtime.preload_library_name:
            library = runtime.preload_library_name
            candidates = {f"{library}{suffix}" for suffix in LIBRARY_SUFFIXES}
            if not any(path.name in candidates for path in files if path.parts[0] == LIB_DIR):
                report.add(
                    entry.name,
                    MISSING_PRELOAD_LIBRARY,
                    f"preload library '{library}' not found under {staging_dir / LIB_DIR}",
                )
    LOGGER.info("post-build gate: %d failure(s)", len(report.failures))
    return report


__all__ = [
    "check_bootstrap",
    "check_counts",
    "check_cycles",
    "check_package_versions",
    "check_preload",
    "check_references",
    "expected_preload_libraries",
    "requires_bootstrap",
    "run_postbuild_gate",
    "run_prebuild_gate",
]
