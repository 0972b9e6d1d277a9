# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Console rendering for command results."""

from __future__ import annotations

from collections.abc import Iterable, Sequence

from rich import box
from rich.table import Table

from ..build.scheduler import BuildReport
from ..catalog.stats import CatalogStats
from ..console import get_console_manager
from ..errors import BackendInvocationError, PgextError
from ..resolver.resolver import ResolutionReport, pinned_commits
from ..resolver.updates import UpdateReport, UpdateStatus
from ..sequencer import BuildPlan
from ..validation.report import ValidationReport
from .shared import CLILogger


def report_failures(lines: Iterable[str], logger: CLILogger) -> int:
    """Print each failure line and return how many were printed."""

    count = 0
    for line in lines:
        logger.fail(line)
        count += 1
    return count


def report_error(error: PgextError, logger: CLILogger) -> None:
    report_failures(error.describe().splitlines(), logger)


def report_validation(report: ValidationReport, logger: CLILogger, *, title: str) -> None:
    """Print warnings then failures of ``report`` under ``title``."""

    logger.section(title)
    for issue in report.warnings:
        logger.warn(issue.describe())
    failures = report_failures((issue.describe() for issue in report.failures), logger)
    if failures == 0:
        logger.ok(f"{title}: no failures")


def report_resolution(report: ResolutionReport, logger: CLILogger) -> None:
    logger.section("Resolve")
    for name, commit in sorted(pinned_commits(report.catalog).items()):
        logger.info(f"{name}: {commit}")
    report_failures((error.describe() for error in report.failures), logger)


def report_updates(report: UpdateReport, logger: CLILogger) -> None:
    """Print pending upgrades, then entries needing manual review or whose lookup failed."""

    logger.section("Upstream updates")
    for check in report.with_status(UpdateStatus.AVAILABLE):
        line = f"{check.entry}: {check.current} -> {check.latest}"
        if check.enabled:
            logger.warn(line)
        else:
            logger.info(f"{line} (disabled)")
    for check in report.with_status(UpdateStatus.MANUAL):
        logger.info(f"{check.entry}: {check.current} ({check.note})")
    for check in report.with_status(UpdateStatus.UNKNOWN):
        logger.warn(f"{check.entry}: {check.current} ({check.note})")
    current = len(report.with_status(UpdateStatus.CURRENT))
    if report.ok:
        logger.ok(f"{current} pinned tag(s) up to date")
    else:
        logger.info(f"{len(report.available)} update(s) available, {current} pinned tag(s) up to date")


def report_build(report: BuildReport, logger: CLILogger, *, log_tail_lines: int) -> None:
    """Print per-entry results, every failure, and the log tail of failed backends."""

    logger.section(f"Build ({report.mode.value})")
    for result in report.succeeded:
        logger.ok(f"{result.entry}: {len(result.artifacts)} artifact(s) in {result.duration:.1f}s")
    for result in report.skipped:
        logger.warn(f"{result.entry}: skipped ({result.error.detail if result.error else 'cancelled'})")
    report_failures((error.describe() for error in report.failures), logger)
    for error in report.failures:
        if isinstance(error, BackendInvocationError) and error.log_tail:
            logger.section(f"{error.entry} build log (last {min(log_tail_lines, len(error.log_tail))} lines)")
            for line in error.log_tail[-log_tail_lines:]:
                logger.echo(line)


def render_plan(plan: BuildPlan, logger: CLILogger) -> None:
    logger.section("Build plan")
    for index, level in enumerate(plan.levels):
        logger.echo(f"level {index}: {', '.join(level)}")
    logger.info(f"{len(plan)} entries in {len(plan.levels)} level(s)")


def render_stats(stats: CatalogStats, *, color: bool, emoji: bool) -> None:
    console = get_console_manager().get(color=color, emoji=emoji)
    table = Table(box=box.SIMPLE_HEAVY if color else box.SIMPLE)
    table.add_column("Metric")
    table.add_column("Count", justify="right")
    for name, value in stats.as_dict().items():
        table.add_row(name.replace("_", "-"), str(value))
    console.print(table)


def render_lines(lines: Sequence[str], logger: CLILogger) -> None:
    for line in lines:
        logger.echo(line)


__all__ = [
    "render_lines",
    "render_plan",
    "render_stats",
    "report_build",
    "report_error",
    "report_failures",
    "report_resolution",
    "report_updates",
    "report_validation",
]
