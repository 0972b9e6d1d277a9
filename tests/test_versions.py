# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for tag and vendor package version parsing."""

from __future__ import annotations

import pytest

from pgext.catalog.versions import (
    VENDOR_FORMATS,
    is_prerelease,
    package_upstream_version,
    release_version,
    same_version,
    tag_prefix,
    tag_version,
)


@pytest.mark.parametrize(
    ("tag", "expected"),
    [
        ("v2.8.4", "2.8.4"),
        ("18.0", "18.0"),
        ("REL4_2_0", "4.2.0"),
        ("REL_16_1", "16.1"),
        ("ver_1.5.3", "1.5.3"),
        ("release/2.57.0", "2.57.0"),
        ("wal2json_2_6", "2.6"),
        ("pgflow@0.7.2", "0.7.2"),
        ("pg_hint_plan17-1.7.0", "1.7.0"),
        ("nightly", "nightly"),
    ],
)
def test_tag_version_extracts_dotted_version(tag: str, expected: str) -> None:
    assert tag_version(tag) == expected


@pytest.mark.parametrize(
    ("version", "expected"),
    [
        ("2.8.4-1.pgdg13+1", "2.8.4"),
        ("2.23.1+dfsg-1.pgdg13+1", "2.23.1"),
        ("1:2.6-2.trixie", "2.6"),
        ("2.24.0~debian13-1801", "2.24.0"),
        ("1:1.22.0~debian13", "1.22.0"),
    ],
)
def test_package_upstream_version_strips_epoch_and_revision(version: str, expected: str) -> None:
    assert package_upstream_version(version) == expected


def test_vendor_formats_accept_their_own_examples_only() -> None:
    for name, vendor in VENDOR_FORMATS.items():
        assert vendor.pattern.match(vendor.example), name

    assert not VENDOR_FORMATS["pgdg"].pattern.match("1:2.3.1-1.trixie")
    assert not VENDOR_FORMATS["percona"].pattern.match("2.24.0~debian13-1801")
    assert not VENDOR_FORMATS["timescale"].pattern.match("1.6.7-2.pgdg13+1")


def test_tag_prefix_keeps_names_holding_digits() -> None:
    assert tag_prefix("v1.2.3") == "v"
    assert tag_prefix("REL_16_1") == "REL_"
    assert tag_prefix("wal2json_2_6") == "wal2json_"
    assert tag_prefix("1.2.3") == ""


def test_release_versions_order_numerically() -> None:
    tags = ["v1.10.0", "v1.9.2", "v1.9", "v2.0.0", "v1.10.0.1"]

    assert sorted(tags, key=release_version) == ["v1.9", "v1.9.2", "v1.10.0", "v1.10.0.1", "v2.0.0"]
    assert release_version("REL4_2_0") > release_version("REL4_1_9")
    assert release_version("nightly") is None


def test_same_version_ignores_trailing_zeros() -> None:
    assert same_version("2.6", "2.6.0")
    assert not same_version("2.6", "2.6.1")
    assert same_version("nightly", "nightly")


def test_prerelease_detection_ignores_the_tag_prefix() -> None:
    assert is_prerelease("v2.0.0-rc1")
    assert is_prerelease("REL_17_BETA2")
    assert is_prerelease("v1.0.0-preview")
    assert not is_prerelease("v1.0.0")
