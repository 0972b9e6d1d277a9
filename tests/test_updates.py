# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for comparing pinned tags with upstream releases."""

from __future__ import annotations

from helpers.catalog import FakeRunner, catalog_of, make_builtin, make_entry
from pgext.resolver.git import GitRemote, RemoteRef, tag_names
from pgext.resolver.updates import UpdateChecker, UpdateStatus, latest_tag

SHA = "5555555555555555555555555555555555555555"


def _tags(*names: str) -> str:
    return "".join(f"{SHA}\trefs/tags/{name}\n" for name in names)


def _listing(runner: FakeRunner, name: str, *tags: str) -> None:
    runner.respond(["git", "ls-remote", "--tags", f"https://github.com/example/{name}.git"], stdout=_tags(*tags))


def test_tag_names_fold_peeled_references() -> None:
    refs = (
        RemoteRef(SHA, "refs/tags/v1.0.0"),
        RemoteRef(SHA, "refs/tags/v1.0.0^{}"),
        RemoteRef(SHA, "refs/heads/main"),
        RemoteRef(SHA, "refs/tags/v1.1.0^{}"),
    )

    assert tag_names(refs) == ("v1.0.0", "v1.1.0")


def test_latest_tag_compares_only_stable_tags_of_the_same_scheme() -> None:
    tags = ["v1.0.0", "v1.2.0", "v2.0.0-rc1", "debian/3.0.0-1", "REL9_9_9", "v1.10.0-beta"]

    assert latest_tag(tags, "v1.0.0") == "v1.2.0"
    assert latest_tag(tags, "REL1_0_0") == "REL9_9_9"
    assert latest_tag(tags, "ver_1.0") is None
    assert latest_tag(["release/2.57.0", "release/2.60.1", "v9.0.0"], "release/2.57.0") == "release/2.60.1"


def test_check_all_reports_each_kind_of_entry(fake_runner: FakeRunner) -> None:
    _listing(fake_runner, "pgvector", "v0.9.0", "v1.0.0", "v1.2.0", "v1.2.0^{}", "v2.0.0-rc1")
    _listing(fake_runner, "pg_cron", "v1.0.0")
    fake_runner.respond(["git", "ls-remote", "--tags", "https://github.com/example/gone.git"], returncode=128)
    catalog = catalog_of(
        make_entry("pgvector"),
        make_entry("pg_cron"),
        make_entry("gone"),
        make_entry(
            "timescaledb",
            source={"type": "git-ref", "repository": "https://github.com/timescale/timescaledb.git", "ref": SHA},
        ),
        make_builtin("hstore"),
    )

    report = UpdateChecker(GitRemote(fake_runner), concurrency=2).check_all(catalog)

    assert [(check.entry, check.status) for check in report.checks] == [
        ("gone", UpdateStatus.UNKNOWN),
        ("pg_cron", UpdateStatus.CURRENT),
        ("pgvector", UpdateStatus.AVAILABLE),
        ("timescaledb", UpdateStatus.MANUAL),
    ]
    [available] = report.available
    assert (available.current, available.latest) == ("v1.0.0", "v1.2.0")
    assert not report.ok
    assert all(command[:3] == ("git", "ls-remote", "--tags") for command in fake_runner.commands)
    assert len(fake_runner.commands) == 3


def test_disabled_entries_do_not_count_as_pending_updates(fake_runner: FakeRunner) -> None:
    _listing(fake_runner, "pg_jobmon", "v1.0.0", "v1.4.1")
    catalog = catalog_of(make_entry("pg_jobmon", enabled=False, disabledReason="upstream archived"))

    report = UpdateChecker(GitRemote(fake_runner)).check_all(catalog)

    [check] = report.checks
    assert check.status is UpdateStatus.AVAILABLE and not check.enabled
    assert report.ok
    assert check.as_dict()["updateAvailable"] is True


def test_pinned_tag_ahead_of_listing_is_current(fake_runner: FakeRunner) -> None:
    _listing(fake_runner, "pgvector", "v0.8.0")
    entry = catalog_of(make_entry("pgvector")).get("pgvector")
    assert entry is not None

    check = UpdateChecker(GitRemote(fake_runner)).check(entry)

    assert check is not None
    assert check.status is UpdateStatus.CURRENT
    assert check.latest == "v1.0.0"
