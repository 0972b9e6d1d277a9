# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Stub fetcher and backend used to drive the dispatcher without real tools."""

from __future__ import annotations

from pathlib import Path

from pgext.build.backends import BuildContext, StepRunner
from pgext.build.collect import ArtifactCollector
from pgext.build.dispatcher import BuildDispatcher, DispatcherSettings
from pgext.build.log import BuildLog
from pgext.catalog.models import BuildBackend, CatalogEntry
from pgext.process import CancellationToken

from .catalog import FakeRunner

PG_CONFIG = Path("/usr/lib/postgresql/18/bin/pg_config")


class LocalFetcher:
    """Create an empty source tree instead of cloning."""

    def __init__(self) -> None:
        self.fetched: list[str] = []

    def fetch(self, entry: CatalogEntry, destination: Path, log: BuildLog) -> Path:
        destination.mkdir(parents=True, exist_ok=True)
        (destination / "Makefile").write_text("all:\n", encoding="utf-8")
        log.note(f"local checkout of {entry.name}")
        self.fetched.append(entry.name)
        return destination


class StubBackend:
    """Run ``make <entry>`` and install one library named after the entry."""

    backend = BuildBackend.PGXS

    def invoke(self, context: BuildContext, run: StepRunner) -> Path:
        run(["make", context.entry.name], cwd=context.build_dir)
        library = context.install_dir / "usr" / "lib" / f"{context.entry.name}.so"
        library.parent.mkdir(parents=True, exist_ok=True)
        library.write_text("elf", encoding="utf-8")
        return context.install_dir


def make_dispatcher(
    work_dir: Path,
    runner: FakeRunner,
    *,
    cancel: CancellationToken | None = None,
    fetcher: LocalFetcher | None = None,
    keep_sources: bool = False,
    collector: ArtifactCollector | None = None,
) -> BuildDispatcher:
    settings = DispatcherSettings(
        work_dir=work_dir,
        pg_config=PG_CONFIG,
        pg_major="18",
        jobs=2,
        allowed_hosts=("github.com",),
        log_tail_lines=5,
        keep_sources=keep_sources,
        env={"CFLAGS": "-O2"},
    )
    return BuildDispatcher(
        settings,
        runner=runner,
        cancel=cancel,
        fetcher=fetcher or LocalFetcher(),
        collector=collector,
        strategies={BuildBackend.PGXS: StubBackend()},
    )


__all__ = ["LocalFetcher", "PG_CONFIG", "StubBackend", "make_dispatcher"]
