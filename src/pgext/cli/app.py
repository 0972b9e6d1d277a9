# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""CLI application entry point wiring pgext commands."""

from __future__ import annotations

import json
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import typer

from ..catalog.loader import load_catalog
from ..catalog.models import BuildProfile, Catalog
from ..catalog.stats import CatalogStats, build_packages
from ..config import Config
from ..errors import ConfigError, PgextError
from ..logging import configure_verbose_logging
from ..manifest import load_manifest, write_build_packages, write_runtime_defaults
from ..pipeline import Pipeline
from .options import (
    BOOTSTRAP_OPTION,
    CATALOG_OPTION,
    CONCURRENCY_OPTION,
    CONFIG_OPTION,
    FAIL_FAST_OPTION,
    JSON_OPTION,
    MANIFEST_OPTION,
    NO_COLOR_OPTION,
    NO_EMOJI_OPTION,
    ONLY_OPTION,
    OPTIONAL_OUTPUT_OPTION,
    OUTPUT_DIR_OPTION,
    OUTPUT_OPTION,
    PRELOAD_OPTION,
    PROFILE_OPTION,
    REQUIRED_CATALOG_OPTION,
    ROOT_OPTION,
    STAGING_OPTION,
    VERBOSE_OPTION,
    WORK_DIR_OPTION,
)
from .reporting import (
    render_lines,
    render_plan,
    render_stats,
    report_build,
    report_error,
    report_resolution,
    report_updates,
    report_validation,
)
from .shared import (
    EXIT_CONFIG_ERROR,
    EXIT_FAILURES,
    CLIError,
    CLILogger,
    CLIState,
    exit_with,
    get_state,
)
from .typer_ext import create_typer

EXIT_INTERRUPTED = 130

app = create_typer(
    name="pgext",
    help="Manifest-driven PostgreSQL extension build orchestrator.",
    no_args_is_help=True,
    add_completion=False,
)


@app.callback()
def main(
    ctx: typer.Context,
    config: CONFIG_OPTION = None,
    root: ROOT_OPTION = Path("."),
    verbose: VERBOSE_OPTION = False,
    no_color: NO_COLOR_OPTION = False,
    no_emoji: NO_EMOJI_OPTION = False,
) -> None:
    """Resolve, build and validate PostgreSQL extensions from a catalog."""

    configure_verbose_logging(verbose)
    ctx.obj = CLIState(
        root=root.resolve(),
        config_path=config.resolve() if config is not None else None,
        verbose=verbose,
        color=not no_color,
        emoji=not no_emoji,
    )


@contextmanager
def command_errors(logger: CLILogger) -> Iterator[None]:
    """Translate pgext errors into exit codes: 1 for failures, 2 for configuration."""

    try:
        yield
    except CLIError as exc:
        raise exit_with(exc, logger) from exc
    except ConfigError as exc:
        report_error(exc, logger)
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc
    except PgextError as exc:
        report_error(exc, logger)
        raise typer.Exit(code=EXIT_FAILURES) from exc
    except FileNotFoundError as exc:
        logger.fail(f"file not found: {exc.filename or exc}")
        raise typer.Exit(code=EXIT_CONFIG_ERROR) from exc
    except KeyboardInterrupt as exc:
        logger.fail("interrupted; outstanding work was cancelled")
        raise typer.Exit(code=EXIT_INTERRUPTED) from exc


def _apply_profile(config: Config, profile: BuildProfile | None) -> None:
    if profile is not None:
        config.build.profile = profile.value


def _load_entries(manifest: Path | None, catalog: Path | None) -> Catalog:
    if (manifest is None) == (catalog is None):
        raise CLIError("pass exactly one of --manifest or --catalog", exit_code=EXIT_CONFIG_ERROR)
    if manifest is not None:
        return load_manifest(manifest, require_frozen=False).catalog
    assert catalog is not None
    return load_catalog(catalog)


@app.command()
def resolve(
    ctx: typer.Context,
    catalog: REQUIRED_CATALOG_OPTION,
    output: OUTPUT_OPTION = Path("manifest.json"),
    concurrency: CONCURRENCY_OPTION = None,
) -> None:
    """Pin every git tag in the catalog to a commit and write the manifest."""

    state = get_state(ctx)
    logger = state.logger
    with command_errors(logger):
        config = state.config()
        if concurrency is not None:
            config.resolver.concurrency = concurrency
        report = Pipeline(config).resolve(catalog, output)
        report_resolution(report, logger)
        if not report.ok:
            raise typer.Exit(code=EXIT_FAILURES)
        logger.ok(f"wrote {output} ({len(report.catalog)} entries)")


@app.command()
def build(
    ctx: typer.Context,
    manifest: MANIFEST_OPTION = None,
    staging: STAGING_OPTION = None,
    work_dir: WORK_DIR_OPTION = None,
    fail_fast: FAIL_FAST_OPTION = None,
    concurrency: CONCURRENCY_OPTION = None,
    profile: PROFILE_OPTION = None,
    preload: PRELOAD_OPTION = None,
    bootstrap: BOOTSTRAP_OPTION = None,
    only: ONLY_OPTION = None,
) -> None:
    """Build every active source-built entry of a resolved manifest."""

    state = get_state(ctx)
    logger = state.logger
    with command_errors(logger):
        if manifest is None or staging is None:
            raise CLIError("--manifest and --staging are required", exit_code=EXIT_CONFIG_ERROR)
        config = state.config()
        _apply_profile(config, profile)
        if fail_fast is not None:
            config.build.mode = "fail-fast" if fail_fast else "best-effort"
        if concurrency is not None:
            config.build.concurrency = concurrency
        if work_dir is not None:
            config.build.work_dir = work_dir.resolve()

        catalog = load_manifest(manifest).catalog
        staging = staging.resolve()
        outcome = Pipeline(config).build(catalog, staging, only=only or (), preload=preload, bootstrap=bootstrap)

        report_validation(outcome.prebuild, logger, title="Pre-build gate")
        if outcome.plan is not None:
            render_plan(outcome.plan, logger)
        if outcome.build is not None:
            report_build(outcome.build, logger, log_tail_lines=config.build.log_tail_lines)
        if outcome.postbuild is not None:
            report_validation(outcome.postbuild, logger, title="Post-build gate")
        if not outcome.ok:
            raise typer.Exit(code=EXIT_FAILURES)
        logger.ok(f"staged {len(outcome.build.succeeded) if outcome.build else 0} entries under {staging}")


@app.command()
def validate(
    ctx: typer.Context,
    manifest: MANIFEST_OPTION = None,
    catalog: CATALOG_OPTION = None,
    staging: STAGING_OPTION = None,
    preload: PRELOAD_OPTION = None,
    bootstrap: BOOTSTRAP_OPTION = None,
    profile: PROFILE_OPTION = None,
) -> None:
    """Run the validation gates against a manifest or catalog without building."""

    state = get_state(ctx)
    logger = state.logger
    with command_errors(logger):
        config = state.config()
        _apply_profile(config, profile)
        entries = _load_entries(manifest, catalog)
        report = Pipeline(config).validate(entries, staging_root=staging, preload=preload, bootstrap=bootstrap)
        report_validation(report, logger, title="Validation")
        if not report.ok:
            raise typer.Exit(code=EXIT_FAILURES)


@app.command()
def plan(
    ctx: typer.Context,
    manifest: MANIFEST_OPTION = None,
    catalog: CATALOG_OPTION = None,
    profile: PROFILE_OPTION = None,
    only: ONLY_OPTION = None,
) -> None:
    """Print the dependency-ordered build levels."""

    state = get_state(ctx)
    logger = state.logger
    with command_errors(logger):
        config = state.config()
        _apply_profile(config, profile)
        entries = _load_entries(manifest, catalog)
        render_plan(Pipeline(config).plan(entries, only=only or ()), logger)


@app.command()
def stats(
    ctx: typer.Context,
    catalog: REQUIRED_CATALOG_OPTION,
    json_output: JSON_OPTION = False,
) -> None:
    """Print counts derived from the catalog."""

    state = get_state(ctx)
    logger = state.logger
    with command_errors(logger):
        derived = CatalogStats.from_catalog(load_catalog(catalog))
        if json_output:
            logger.echo(json.dumps(derived.as_dict(), indent=2, sort_keys=True))
        else:
            render_stats(derived, color=state.color, emoji=state.emoji)


@app.command()
def packages(
    ctx: typer.Context,
    catalog: REQUIRED_CATALOG_OPTION,
    output: OPTIONAL_OUTPUT_OPTION = None,
    profile: PROFILE_OPTION = None,
) -> None:
    """List the OS packages needed to compile the active entries."""

    state = get_state(ctx)
    logger = state.logger
    with command_errors(logger):
        config = state.config()
        _apply_profile(config, profile)
        selected = BuildProfile(config.build.profile)
        entries = load_catalog(catalog)
        if output is not None:
            write_build_packages(entries, output, selected)
            logger.ok(f"wrote {output}")
        else:
            render_lines(build_packages(entries, selected), logger)


@app.command()
def defaults(
    ctx: typer.Context,
    output_dir: OUTPUT_DIR_OPTION,
    manifest: MANIFEST_OPTION = None,
    catalog: CATALOG_OPTION = None,
) -> None:
    """Write the default preload library and bootstrap extension lists."""

    state = get_state(ctx)
    logger = state.logger
    with command_errors(logger):
        entries = _load_entries(manifest, catalog)
        for path in write_runtime_defaults(entries, output_dir):
            logger.ok(f"wrote {path}")


@app.command()
def updates(
    ctx: typer.Context,
    catalog: REQUIRED_CATALOG_OPTION,
    json_output: JSON_OPTION = False,
    concurrency: CONCURRENCY_OPTION = None,
) -> None:
    """Compare pinned git tags with the newest stable upstream tags; exit 1 when any enabled entry trails."""

    state = get_state(ctx)
    logger = state.logger
    with command_errors(logger):
        config = state.config()
        if concurrency is not None:
            config.resolver.concurrency = concurrency
        report = Pipeline(config).check_updates(load_catalog(catalog))
        if json_output:
            logger.echo(json.dumps([check.as_dict() for check in report.checks], indent=2))
        else:
            report_updates(report, logger)
        if not report.ok:
            raise typer.Exit(code=EXIT_FAILURES)


__all__ = ["app", "main"]
