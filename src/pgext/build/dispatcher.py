# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Fetch, patch, build and stage a single catalog entry."""

from __future__ import annotations

import logging
import os
import shutil
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from subprocess import CompletedProcess

from ..catalog.models import CatalogEntry
from ..config import BuildConfig
from ..errors import (
    BackendInvocationError,
    BuildCancelledError,
    BuildTimeoutError,
    EntryBuildError,
    WorkspaceError,
)
from ..process import (
    CancellationToken,
    CommandCancelledError,
    CommandOptions,
    CommandRunner,
    CommandTimeoutError,
    run_command,
)
from .backends import BACKEND_STRATEGIES, BackendStrategy, BuildContext, StepRunner
from .collect import INCLUDE_DIR, LIB_DIR, ArtifactCollector, entry_staging_dir
from .fetch import SourceFetcher
from .log import BuildLog
from .patcher import PatchResult, apply_patches

LOGGER = logging.getLogger(__name__)

BUILD_STAGE = "build"
COLLECT_STAGE = "collect"
BUILD_LOG_NAME = "build.log"


class BuildStatus(str, Enum):
    """Terminal state of one entry build."""

    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"


@dataclass(frozen=True, slots=True)
class BuildResult:
    """Outcome of building one entry."""

    entry: str
    status: BuildStatus
    staging_dir: Path | None = None
    artifacts: tuple[Path, ...] = ()
    log_path: Path | None = None
    duration: float = 0.0
    patches: tuple[PatchResult, ...] = ()
    error: EntryBuildError | None = None

    @property
    def ok(self) -> bool:
        return self.status is BuildStatus.SUCCEEDED


@dataclass(frozen=True, slots=True)
class DispatcherSettings:
    """Execution parameters shared by every entry build."""

    work_dir: Path
    pg_config: Path
    pg_major: str
    jobs: int
    allowed_hosts: tuple[str, ...]
    fetch_timeout: float | None = None
    backend_timeout: float | None = None
    log_tail_lines: int = 40
    keep_sources: bool = False
    env: Mapping[str, str] = field(default_factory=dict)

    @classmethod
    def from_config(cls, config: BuildConfig) -> DispatcherSettings:
        return cls(
            work_dir=config.work_dir,
            pg_config=config.resolved_pg_config(),
            pg_major=config.pg_major,
            jobs=config.jobs,
            allowed_hosts=tuple(config.allowed_hosts),
            fetch_timeout=config.fetch_timeout,
            backend_timeout=config.backend_timeout,
            log_tail_lines=config.log_tail_lines,
            keep_sources=config.keep_sources,
            env=dict(config.env),
        )


class BuildDispatcher:
    """Run one entry through fetch, patch, backend and collection.

    Each entry works in ``<work_dir>/<name>`` and stages into
    ``<staging_root>/<name>``; concurrent builds of different entries never
    share a directory.
    """

    def __init__(
        self,
        settings: DispatcherSettings,
        *,
        runner: CommandRunner = run_command,
        cancel: CancellationToken | None = None,
        fetcher: SourceFetcher | None = None,
        collector: ArtifactCollector | None = None,
        strategies: Mapping[object, BackendStrategy] | None = None,
    ) -> None:
        self.settings = settings
        self.cancel = cancel or CancellationToken()
        self._runner = runner
        self._fetcher = fetcher or SourceFetcher(
            runner,
            allowed_hosts=settings.allowed_hosts,
            timeout=settings.fetch_timeout,
            cancel=self.cancel,
        )
        self._collector = collector or ArtifactCollector()
        self._strategies = strategies or BACKEND_STRATEGIES

    def entry_work_dir(self, entry: CatalogEntry) -> Path:
        return self.settings.work_dir / entry.name

    def build(
        self,
        entry: CatalogEntry,
        staging_root: Path,
        *,
        dependencies: Sequence[str] = (),
    ) -> BuildResult:
        """Build ``entry`` and stage its artifacts.

        Per-entry failures are returned in the result rather than raised, so a
        scheduler can keep going in best-effort mode.

        Args:
            entry: Resolved build candidate.
            staging_root: Root of the shared staging area.
            dependencies: Already staged dependencies whose headers and libraries
                are exposed to the build.

        Returns:
            BuildResult: Success with staged artifacts, or failure with its error.
        """

        started = time.monotonic()
        work_dir = self.entry_work_dir(entry)
        log = BuildLog(work_dir / BUILD_LOG_NAME)
        source_dir = work_dir / "src"
        patches: tuple[PatchResult, ...] = ()
        stage = "start"
        try:
            if self.cancel.cancelled:
                raise BuildCancelledError(entry.name, stage=stage)
            stage = "prepare"
            stale = entry_staging_dir(staging_root, entry.name)
            if stale.exists():
                shutil.rmtree(stale)
            stage = "fetch"
            self._fetcher.fetch(entry, source_dir, log)
            stage = "patch"
            patches = apply_patches(entry, source_dir, log)
            stage = BUILD_STAGE
            artifact_dir = self._compile(entry, source_dir, work_dir, staging_root, log, dependencies)
            stage = COLLECT_STAGE
            collected = self._collector.collect(entry.name, artifact_dir, staging_root)
        except EntryBuildError as exc:
            return self._failed(entry, exc, log, started, patches)
        except OSError as exc:
            return self._failed(entry, WorkspaceError(entry.name, stage=stage, error=exc), log, started, patches)
        finally:
            if not self.settings.keep_sources and source_dir.exists():
                shutil.rmtree(source_dir, ignore_errors=True)

        LOGGER.info("built %s (%d artifacts)", entry.name, len(collected.files))
        return BuildResult(
            entry=entry.name,
            status=BuildStatus.SUCCEEDED,
            staging_dir=collected.staging_dir,
            artifacts=collected.files,
            log_path=log.path,
            duration=time.monotonic() - started,
            patches=patches,
        )

    def _failed(
        self,
        entry: CatalogEntry,
        error: EntryBuildError,
        log: BuildLog,
        started: float,
        patches: tuple[PatchResult, ...],
    ) -> BuildResult:
        LOGGER.info("build of %s failed: %s", entry.name, error.describe())
        log.note(f"FAILED: {error.describe()}")
        return BuildResult(
            entry=entry.name,
            status=BuildStatus.FAILED,
            log_path=log.path,
            duration=time.monotonic() - started,
            patches=patches,
            error=error,
        )

    def _compile(
        self,
        entry: CatalogEntry,
        source_dir: Path,
        work_dir: Path,
        staging_root: Path,
        log: BuildLog,
        dependencies: Sequence[str],
    ) -> Path:
        assert entry.build is not None  # build candidates always declare a build
        backend = entry.build.backend
        install_dir = work_dir / "install"
        if install_dir.exists():
            shutil.rmtree(install_dir)
        install_dir.mkdir(parents=True)
        context = BuildContext(
            entry=entry,
            source_dir=source_dir,
            install_dir=install_dir,
            pg_config=self.settings.pg_config,
            pg_major=self.settings.pg_major,
            jobs=self.settings.jobs,
            env=self._environment(staging_root, dependencies),
        )
        log.note(f"building {entry.name} with {backend.value}")
        if entry.build.features and not backend.accepts_features:
            log.note(f"{backend.value} ignores features: {', '.join(entry.build.features)}")
        strategy = self._strategies[backend]
        return strategy.invoke(context, self._step_runner(entry, context, log))

    def _environment(self, staging_root: Path, dependencies: Sequence[str]) -> dict[str, str]:
        env = dict(os.environ)
        env.update(self.settings.env)
        env["PG_CONFIG"] = str(self.settings.pg_config)
        # Backends run from their own build directories, so search paths must be absolute.
        root = staging_root.resolve()
        for variable, group in (("CPATH", INCLUDE_DIR), ("LIBRARY_PATH", LIB_DIR)):
            paths = [
                str(entry_staging_dir(root, name) / group)
                for name in dependencies
                if (entry_staging_dir(root, name) / group).is_dir()
            ]
            if paths:
                existing = env.get(variable)
                env[variable] = os.pathsep.join([*paths, existing] if existing else paths)
        return env

    def _step_runner(self, entry: CatalogEntry, context: BuildContext, log: BuildLog) -> StepRunner:
        assert entry.build is not None
        backend = entry.build.backend.value

        def run(
            command: Sequence[str],
            *,
            cwd: Path,
            env: Mapping[str, str] | None = None,
        ) -> CompletedProcess[str]:
            merged = dict(context.env)
            if env:
                merged.update(env)
            options = CommandOptions(
                cwd=cwd,
                env=merged,
                timeout=self.settings.backend_timeout,
                cancel=self.cancel,
            )
            try:
                completed = self._runner(command, options=options)
            except CommandTimeoutError as exc:
                log.record(command, exc.output, None)
                raise BuildTimeoutError(entry.name, stage=BUILD_STAGE, timeout=exc.timeout) from exc
            except CommandCancelledError as exc:
                log.record(command, exc.output, None)
                raise BuildCancelledError(entry.name, stage=BUILD_STAGE) from exc
            except FileNotFoundError as exc:
                log.note(str(exc))
                raise BackendInvocationError(
                    entry.name,
                    backend=backend,
                    exit_code=127,
                    log_tail=log.tail(self.settings.log_tail_lines),
                    log_path=log.path,
                ) from exc
            log.record(command, completed.stdout or "", completed.returncode)
            if completed.returncode != 0:
                raise BackendInvocationError(
                    entry.name,
                    backend=backend,
                    exit_code=completed.returncode,
                    log_tail=log.tail(self.settings.log_tail_lines),
                    log_path=log.path,
                )
            return completed

        return run


__all__ = [
    "BUILD_LOG_NAME",
    "BuildDispatcher",
    "BuildResult",
    "BuildStatus",
    "DispatcherSettings",
]
