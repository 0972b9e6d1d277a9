# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""End-to-end orchestration of resolve, sequence, build and validate, plus upstream update checks."""

from __future__ import annotations

import logging
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path

from .build.dispatcher import BuildDispatcher, DispatcherSettings
from .build.scheduler import BuildMode, BuildReport, BuildScheduler
from .catalog.loader import load_catalog
from .catalog.models import BuildProfile, Catalog
from .config import Config, DescriptorConfig
from .errors import PgextError, SequencingError
from .manifest import Manifest, write_manifest
from .process import CancellationToken, CommandRunner, run_command
from .resolver.git import GitRemote
from .resolver.resolver import ResolutionReport, SourceResolver
from .resolver.updates import UpdateChecker, UpdateReport
from .sequencer import BuildPlan, sequence
from .validation.descriptors import DeclaredNames, open_descriptor
from .validation.gates import run_postbuild_gate, run_prebuild_gate
from .validation.report import ValidationIssue, ValidationReport

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class BuildOutcome:
    """Everything a ``build`` run produced, stage by stage."""

    prebuild: ValidationReport
    plan: BuildPlan | None = None
    build: BuildReport | None = None
    postbuild: ValidationReport | None = None

    @property
    def ok(self) -> bool:
        if not self.prebuild.ok or self.build is None or not self.build.ok:
            return False
        return self.postbuild is None or self.postbuild.ok


class Pipeline:
    """Run pgext stages with one configuration and one cancellation token."""

    def __init__(
        self,
        config: Config,
        *,
        runner: CommandRunner = run_command,
        cancel: CancellationToken | None = None,
    ) -> None:
        self.config = config
        self.cancel = cancel or CancellationToken()
        self._runner = runner

    @property
    def profile(self) -> BuildProfile:
        return BuildProfile(self.config.build.profile)

    def resolve(self, catalog_path: Path, output: Path) -> ResolutionReport:
        """Pin every git tag of the catalog and write the manifest when all succeed.

        Args:
            catalog_path: Catalog file or directory.
            output: Manifest destination.

        Returns:
            ResolutionReport: Resolved catalog plus accumulated failures.
        """

        catalog = load_catalog(catalog_path)
        remote = GitRemote(self._runner, timeout=self.config.resolver.timeout)
        resolver = SourceResolver(remote, concurrency=self.config.resolver.concurrency, cancel=self.cancel)
        report = resolver.resolve_all(catalog)
        if report.ok:
            write_manifest(Manifest(catalog=report.catalog), output)
        else:
            LOGGER.warning("not writing %s: %d entries failed to resolve", output, len(report.failures))
        return report

    def check_updates(self, catalog: Catalog) -> UpdateReport:
        """Compare every pinned git tag of ``catalog`` with the newest upstream release."""

        remote = GitRemote(self._runner, timeout=self.config.resolver.timeout)
        checker = UpdateChecker(remote, concurrency=self.config.resolver.concurrency, cancel=self.cancel)
        return checker.check_all(catalog)

    def descriptors(
        self,
        *,
        preload: Path | None = None,
        bootstrap: Path | None = None,
    ) -> tuple[DeclaredNames | None, DeclaredNames | None]:
        """Open the preload and bootstrap descriptors, CLI paths overriding config.

        Raises:
            ConfigError: If a configured descriptor file is missing.
        """

        validation = self.config.validation
        return (
            _open(validation.preload, preload),
            _open(validation.bootstrap, bootstrap),
        )

    def validate(
        self,
        catalog: Catalog,
        *,
        staging_root: Path | None = None,
        preload: Path | None = None,
        bootstrap: Path | None = None,
    ) -> ValidationReport:
        """Run the pre-build gate and, given a staging tree, the post-build gate."""

        preload_names, bootstrap_names = self.descriptors(preload=preload, bootstrap=bootstrap)
        report = run_prebuild_gate(
            catalog,
            preload=preload_names,
            bootstrap=bootstrap_names,
            expected_counts=self.config.validation.expected_counts,
            profile=self.profile,
        )
        if staging_root is not None:
            report = report.merge(run_postbuild_gate(catalog, staging_root, profile=self.profile))
        return report

    def plan(self, catalog: Catalog, *, only: Sequence[str] = ()) -> BuildPlan:
        """Sequence the build candidates, optionally narrowed to ``only`` and its dependencies.

        Raises:
            SequencingError: If dependencies are unknown or cyclic.
            PgextError: If a name in ``only`` is not a build candidate.
        """

        plan = sequence(catalog, known_names=catalog.names, profile=self.profile)
        if not only:
            return plan
        try:
            return plan.subset(only)
        except KeyError as exc:
            raise PgextError(f"'{exc.args[0]}' is not an active source-built entry", entry=exc.args[0]) from exc

    def build(
        self,
        catalog: Catalog,
        staging_root: Path,
        *,
        only: Sequence[str] = (),
        preload: Path | None = None,
        bootstrap: Path | None = None,
    ) -> BuildOutcome:
        """Validate, build and re-validate ``catalog``.

        Pre-build gate failures stop the run before anything is fetched. The
        post-build gate runs after every build, including a partial one, and
        checks the disabled entries plus the entries that built.

        Args:
            catalog: Resolved catalog (usually loaded from a manifest).
            staging_root: Root of the staging tree.
            only: Optional entry names to build together with their dependencies.
            preload: Preload descriptor overriding the configured one.
            bootstrap: Bootstrap descriptor overriding the configured one.

        Returns:
            BuildOutcome: Reports of every stage that ran.
        """

        preload_names, bootstrap_names = self.descriptors(preload=preload, bootstrap=bootstrap)
        prebuild = run_prebuild_gate(
            catalog,
            preload=preload_names,
            bootstrap=bootstrap_names,
            expected_counts=self.config.validation.expected_counts,
            profile=self.profile,
        )
        if not prebuild.ok:
            return BuildOutcome(prebuild=prebuild)
        try:
            plan = self.plan(catalog, only=only)
        except SequencingError as exc:
            prebuild.extend([ValidationIssue.from_error(exc)])
            return BuildOutcome(prebuild=prebuild)

        build_config = self.config.build
        dispatcher = BuildDispatcher(
            DispatcherSettings.from_config(build_config),
            runner=self._runner,
            cancel=self.cancel,
        )
        scheduler = BuildScheduler(
            dispatcher,
            mode=BuildMode(build_config.mode),
            concurrency=build_config.concurrency,
            cancel=self.cancel,
        )
        LOGGER.info("building %d entries in %d level(s)", len(plan), len(plan.levels))
        report = scheduler.run(plan, staging_root)

        built = {result.entry for result in report.succeeded}
        checked = catalog.with_entries(
            entry for entry in catalog if not entry.is_active(self.profile) or entry.name in built
        )
        postbuild = run_postbuild_gate(checked, staging_root, profile=self.profile)
        return BuildOutcome(prebuild=prebuild, plan=plan, build=report, postbuild=postbuild)


def _open(settings: DescriptorConfig, override: Path | None) -> DeclaredNames | None:
    path = override or settings.path
    if path is None:
        return None
    return open_descriptor(path, settings.kind, variable=settings.variable)


__all__ = ["BuildOutcome", "Pipeline"]
