# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for level-parallel scheduling in fail-fast and best-effort modes."""

from __future__ import annotations

import threading
import time
from pathlib import Path

import pytest

from helpers.build import make_dispatcher
from helpers.catalog import FakeRunner, catalog_of, make_entry
from pgext.build.dispatcher import BuildStatus
from pgext.build.scheduler import BuildMode, BuildScheduler
from pgext.errors import BackendInvocationError, BuildCancelledError, DependencyFailedError
from pgext.process import CommandCancelledError
from pgext.sequencer import sequence


def test_best_effort_builds_independent_entries(tmp_path: Path, fake_runner: FakeRunner) -> None:
    fake_runner.respond(["make", "beta"], returncode=2, stdout="beta.c:3: error: nope\n")
    plan = sequence(catalog_of(make_entry("alpha"), make_entry("beta"), make_entry("gamma")))
    staging = tmp_path / "staging"
    dispatcher = make_dispatcher(tmp_path / "work", fake_runner)
    scheduler = BuildScheduler(dispatcher, mode=BuildMode.BEST_EFFORT, concurrency=3)

    report = scheduler.run(plan, staging)

    assert not report.ok
    assert len(report.failures) == 1
    failure = report.failures[0]
    assert isinstance(failure, BackendInvocationError)
    assert failure.entry == "beta"
    assert sorted(result.entry for result in report.succeeded) == ["alpha", "gamma"]
    assert (staging / "alpha" / "lib" / "alpha.so").is_file()
    assert (staging / "gamma" / "lib" / "gamma.so").is_file()
    assert not (staging / "beta").exists()
    assert [result.entry for result in report.results] == ["alpha", "beta", "gamma"]


def test_best_effort_fails_dependents_of_failed_entries(tmp_path: Path, fake_runner: FakeRunner) -> None:
    fake_runner.respond(["make", "postgis"], returncode=1, stdout="error\n")
    plan = sequence(
        catalog_of(
            make_entry("postgis"),
            make_entry("pgrouting", dependencies=["postgis"]),
            make_entry("pgvector"),
        ),
    )
    scheduler = BuildScheduler(make_dispatcher(tmp_path / "work", fake_runner), mode=BuildMode.BEST_EFFORT)

    report = scheduler.run(plan, tmp_path / "staging")

    pgrouting = report.get("pgrouting")
    assert pgrouting is not None and pgrouting.status is BuildStatus.FAILED
    assert isinstance(pgrouting.error, DependencyFailedError)
    assert pgrouting.error.dependency == "postgis"
    assert ("make", "pgrouting") not in fake_runner.commands
    pgvector = report.get("pgvector")
    assert pgvector is not None and pgvector.ok


def test_fail_fast_skips_remaining_levels(tmp_path: Path, fake_runner: FakeRunner) -> None:
    fake_runner.respond(["make", "postgis"], returncode=1, stdout="error\n")
    plan = sequence(catalog_of(make_entry("postgis"), make_entry("pgrouting", dependencies=["postgis"])))
    dispatcher = make_dispatcher(tmp_path / "work", fake_runner)
    scheduler = BuildScheduler(dispatcher, mode=BuildMode.FAIL_FAST)

    report = scheduler.run(plan, tmp_path / "staging")

    assert [error.entry for error in report.failures] == ["postgis"]
    pgrouting = report.get("pgrouting")
    assert pgrouting is not None and pgrouting.status is BuildStatus.SKIPPED
    assert isinstance(pgrouting.error, BuildCancelledError)
    assert dispatcher.cancel.cancelled
    assert dispatcher.cancel.reason is not None and dispatcher.cancel.reason.startswith("fail-fast")


def test_fail_fast_cancels_sibling_in_flight(tmp_path: Path, fake_runner: FakeRunner) -> None:
    observed: list[bool] = []
    slow_started = threading.Event()

    def block_until_cancelled(command, options) -> None:
        slow_started.set()
        deadline = time.monotonic() + 5
        while not options.cancel.cancelled and time.monotonic() < deadline:
            time.sleep(0.01)
        observed.append(options.cancel.cancelled)
        raise CommandCancelledError(command, "killed\n")

    def fail_once_slow_runs(command, options) -> None:
        assert slow_started.wait(5)

    fake_runner.respond(["make", "slow"], effect=block_until_cancelled)
    fake_runner.respond(["make", "broken"], returncode=2, stdout="broken.c:1: error\n", effect=fail_once_slow_runs)
    plan = sequence(
        catalog_of(make_entry("broken"), make_entry("slow"), make_entry("after", dependencies=["slow"])),
    )
    scheduler = BuildScheduler(make_dispatcher(tmp_path / "work", fake_runner), mode=BuildMode.FAIL_FAST, concurrency=2)

    report = scheduler.run(plan, tmp_path / "staging")

    assert observed == [True]
    assert [error.entry for error in report.failures] == ["broken"]
    for name in ("slow", "after"):
        result = report.get(name)
        assert result is not None and result.status is BuildStatus.SKIPPED
    assert ("make", "after") not in fake_runner.commands


def test_levels_run_in_dependency_order(tmp_path: Path, fake_runner: FakeRunner) -> None:
    plan = sequence(
        catalog_of(
            make_entry("c", dependencies=["b"]),
            make_entry("b", dependencies=["a"]),
            make_entry("a"),
        ),
    )

    report = BuildScheduler(make_dispatcher(tmp_path / "work", fake_runner), concurrency=4).run(
        plan,
        tmp_path / "staging",
    )

    assert report.ok
    assert fake_runner.commands == [("make", "a"), ("make", "b"), ("make", "c")]


def test_interrupt_cancels_outstanding_work(tmp_path: Path, fake_runner: FakeRunner) -> None:
    def interrupt(command, options) -> None:
        raise KeyboardInterrupt

    fake_runner.respond(["make", "alpha"], effect=interrupt)
    plan = sequence(catalog_of(make_entry("alpha")))
    dispatcher = make_dispatcher(tmp_path / "work", fake_runner)

    with pytest.raises(KeyboardInterrupt):
        BuildScheduler(dispatcher, mode=BuildMode.BEST_EFFORT).run(plan, tmp_path / "staging")

    assert dispatcher.cancel.cancelled
    assert dispatcher.cancel.reason == "interrupted"


def test_concurrency_must_be_positive(tmp_path: Path, fake_runner: FakeRunner) -> None:
    with pytest.raises(ValueError):
        BuildScheduler(make_dispatcher(tmp_path / "work", fake_runner), concurrency=0)
