# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Level-parallel execution of a build plan."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum
from pathlib import Path

from ..catalog.models import CatalogEntry
from ..errors import BuildCancelledError, DependencyFailedError, EntryBuildError
from ..process import CancellationToken
from ..sequencer import BuildPlan
from .dispatcher import BuildDispatcher, BuildResult, BuildStatus

LOGGER = logging.getLogger(__name__)


class BuildMode(str, Enum):
    """Failure handling policy for a build run."""

    FAIL_FAST = "fail-fast"
    BEST_EFFORT = "best-effort"


@dataclass(frozen=True, slots=True)
class BuildReport:
    """Results of every planned entry, in plan order."""

    results: tuple[BuildResult, ...]
    mode: BuildMode

    @property
    def failures(self) -> tuple[EntryBuildError, ...]:
        """Return the error of every failed entry."""

        return tuple(
            result.error for result in self.results if result.status is BuildStatus.FAILED and result.error
        )

    @property
    def succeeded(self) -> tuple[BuildResult, ...]:
        return tuple(result for result in self.results if result.ok)

    @property
    def skipped(self) -> tuple[BuildResult, ...]:
        return tuple(result for result in self.results if result.status is BuildStatus.SKIPPED)

    @property
    def ok(self) -> bool:
        return all(result.ok for result in self.results)

    def get(self, name: str) -> BuildResult | None:
        return next((result for result in self.results if result.entry == name), None)


class BuildScheduler:
    """Build plan levels concurrently while serialising dependency edges.

    Entries within one topological level share no dependency edge and run in a
    bounded thread pool; a level starts only after the previous one finished.
    """

    def __init__(
        self,
        dispatcher: BuildDispatcher,
        *,
        mode: BuildMode = BuildMode.FAIL_FAST,
        concurrency: int = 2,
        cancel: CancellationToken | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._dispatcher = dispatcher
        self._mode = mode
        self._concurrency = concurrency
        self._cancel = cancel or dispatcher.cancel

    def run(self, plan: BuildPlan, staging_root: Path) -> BuildReport:
        """Build every entry of ``plan`` into ``staging_root``.

        In fail-fast mode the first failure cancels in-flight builds and the
        remaining entries are reported as skipped. In best-effort mode only
        dependents of failed entries are skipped. A :class:`KeyboardInterrupt`
        cancels all outstanding work in either mode before it propagates.

        Args:
            plan: Dependency-ordered plan.
            staging_root: Root of the shared staging area.

        Returns:
            BuildReport: One result per planned entry.
        """

        staging_root.mkdir(parents=True, exist_ok=True)
        results: dict[str, BuildResult] = {}
        failed: set[str] = set()
        for level in plan.levels:
            runnable: list[CatalogEntry] = []
            for name in level:
                entry = plan.get(name)
                if entry is None:
                    continue
                blocker = next((dependency for dependency in plan.dependencies_of(name) if dependency in failed), None)
                if self._cancel.cancelled:
                    results[name] = self._skipped(name)
                elif blocker is not None:
                    failed.add(name)
                    results[name] = BuildResult(
                        entry=name,
                        status=BuildStatus.FAILED,
                        error=DependencyFailedError(name, blocker),
                    )
                else:
                    runnable.append(entry)
            for result in self._run_level(plan, runnable, staging_root):
                results[result.entry] = result
                if not result.ok:
                    failed.add(result.entry)

        ordered = tuple(results[name] for name in plan.names if name in results)
        return BuildReport(results=ordered, mode=self._mode)

    def _run_level(self, plan: BuildPlan, entries: list[CatalogEntry], staging_root: Path) -> list[BuildResult]:
        if not entries:
            return []
        executor = ThreadPoolExecutor(max_workers=min(self._concurrency, len(entries)))
        results: list[BuildResult] = []
        try:
            future_map: dict[Future[BuildResult], str] = {
                executor.submit(self._build_one, plan, entry, staging_root): entry.name for entry in entries
            }
            for future in as_completed(future_map):
                result = future.result()
                results.append(result)
                if result.status is BuildStatus.FAILED and self._mode is BuildMode.FAIL_FAST:
                    detail = result.error.describe() if result.error else result.entry
                    self._cancel.cancel(f"fail-fast: {detail}")
        except KeyboardInterrupt:
            self._cancel.cancel("interrupted")
            executor.shutdown(wait=True, cancel_futures=True)
            raise
        finally:
            executor.shutdown(wait=True)
        return results

    def _build_one(self, plan: BuildPlan, entry: CatalogEntry, staging_root: Path) -> BuildResult:
        if self._cancel.cancelled:
            return self._skipped(entry.name)
        result = self._dispatcher.build(entry, staging_root, dependencies=plan.dependencies_of(entry.name))
        if (
            self._mode is BuildMode.FAIL_FAST
            and isinstance(result.error, BuildCancelledError)
            and self._cancel.reason not in (None, "interrupted")
        ):
            # Casualties of another entry's failure are not failures themselves.
            return BuildResult(
                entry=result.entry,
                status=BuildStatus.SKIPPED,
                log_path=result.log_path,
                duration=result.duration,
                error=result.error,
            )
        return result

    def _skipped(self, name: str) -> BuildResult:
        LOGGER.info("skipping %s: %s", name, self._cancel.reason)
        return BuildResult(
            entry=name,
            status=BuildStatus.SKIPPED,
            error=BuildCancelledError(name, stage="queue"),
        )


__all__ = ["BuildMode", "BuildReport", "BuildScheduler"]
