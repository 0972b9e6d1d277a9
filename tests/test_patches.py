# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Tests for sed-style substitution rules and their application to source trees."""

from __future__ import annotations

from pathlib import Path

import pytest

from helpers.catalog import catalog_of, make_entry
from pgext.build.log import BuildLog
from pgext.build.patcher import apply_patches, patch_targets
from pgext.catalog.models import BuildBackend
from pgext.errors import PatchNotMatchedError
from pgext.patches import PatchSyntaxError, SedPatch, translate_bre


def test_first_match_per_line_without_global_flag() -> None:
    patch = SedPatch.parse("s/foo/bar/")

    text, count = patch.apply("foo foo\nfoo\n")

    assert text == "bar foo\nbar\n"
    assert count == 2


def test_global_flag_replaces_every_match() -> None:
    text, count = SedPatch.parse("s/foo/bar/g").apply("foo foo\n")

    assert text == "bar bar\n"
    assert count == 2


def test_basic_regex_groups_and_backreferences() -> None:
    patch = SedPatch.parse(r"s/version = \([0-9]*\)/version = \1-patched/")

    text, count = patch.apply("version = 42\n")

    assert text == "version = 42-patched\n"
    assert count == 1


def test_bare_parentheses_are_literals() -> None:
    text, count = SedPatch.parse("s/f(x)/g(x)/").apply("y = f(x);\n")

    assert text == "y = g(x);\n"
    assert count == 1


def test_alternate_delimiter_and_ampersand() -> None:
    text, _ = SedPatch.parse("s|/usr/lib|[&]|").apply("path=/usr/lib\n")

    assert text == "path=[/usr/lib]\n"


def test_posix_character_class() -> None:
    assert translate_bre("[[:digit:]]*") == "[0-9]*"


def test_case_insensitive_flag() -> None:
    _, count = SedPatch.parse("s/werror//I").apply("CFLAGS += -WError\n")

    assert count == 1


@pytest.mark.parametrize(
    ("rule", "text", "expected"),
    [
        ("s/[]x]/y/g", "a]x\n", "ayy\n"),
        ("s/[]/]/_/g", "a/]b\n", "a__b\n"),
        ("s/[^]/]/_/g", "a/]b\n", "_/]_\n"),
        ("s/x[[:space:]/]y/z/g", "x/y x y\n", "z z\n"),
    ],
)
def test_bracket_members_are_not_rule_terminators(rule: str, text: str, expected: str) -> None:
    assert SedPatch.parse(rule).apply(text)[0] == expected


def test_word_anchors_match_whole_words() -> None:
    text, count = SedPatch.parse(r"s/\<id\>/ident/g").apply("id idx pid id\n")

    assert text == "ident idx pid ident\n"
    assert count == 2


def test_escaped_delimiter_is_literal_even_when_it_is_an_operator() -> None:
    text, count = SedPatch.parse(r"s|a\|b|c|").apply("a|b ab\n")

    assert text == "c ab\n"
    assert count == 1


@pytest.mark.parametrize("rule", ["x/a/b/", "s/a/b", "s//b/", "s/a/b/q", "sa/b/c/"])
def test_malformed_rules_are_rejected(rule: str) -> None:
    with pytest.raises(PatchSyntaxError):
        SedPatch.parse(rule)


def _tree(root: Path) -> Path:
    (root / "src").mkdir(parents=True)
    (root / "src" / "ext.c").write_text("#include <foo.h>\nint x = OLD;\n", encoding="utf-8")
    (root / "Makefile").write_text("PG_CPPFLAGS = -Werror\n", encoding="utf-8")
    (root / "README.md").write_text("OLD readme\n", encoding="utf-8")
    (root / ".git").mkdir()
    (root / ".git" / "config.c").write_text("OLD\n", encoding="utf-8")
    (root / "Cargo.toml").write_text('pgrx = "=0.11.0"\n', encoding="utf-8")
    return root


def test_patch_targets_follow_backend(tmp_path: Path) -> None:
    root = _tree(tmp_path / "src-tree")

    c_targets = {path.relative_to(root).as_posix() for path in patch_targets(root, BuildBackend.PGXS)}
    rust_targets = {path.relative_to(root).as_posix() for path in patch_targets(root, BuildBackend.CARGO_PGRX)}

    assert c_targets == {"src/ext.c", "Makefile", "Cargo.toml"}
    assert rust_targets == {"Cargo.toml"}


def test_apply_patches_rewrites_files_in_order(tmp_path: Path) -> None:
    root = _tree(tmp_path / "src-tree")
    entry = catalog_of(
        make_entry("pgvector", build={"backend": "pgxs", "patches": ["s/OLD/NEW/", "s/NEW/NEWER/"]}),
    ).get("pgvector")
    assert entry is not None
    log = BuildLog(tmp_path / "build.log")

    results = apply_patches(entry, root, log)

    assert [result.matches for result in results] == [1, 1]
    assert "int x = NEWER;" in (root / "src" / "ext.c").read_text(encoding="utf-8")
    assert (root / "README.md").read_text(encoding="utf-8") == "OLD readme\n"
    assert (root / ".git" / "config.c").read_text(encoding="utf-8") == "OLD\n"
    assert "patch 's/OLD/NEW/'" in log.path.read_text(encoding="utf-8")


def test_unmatched_patch_fails_the_entry(tmp_path: Path) -> None:
    root = _tree(tmp_path / "src-tree")
    entry = catalog_of(
        make_entry("pgvector", build={"backend": "pgxs", "patches": ["s/NOT_THERE/x/"]}),
    ).get("pgvector")
    assert entry is not None

    with pytest.raises(PatchNotMatchedError) as excinfo:
        apply_patches(entry, root)

    assert excinfo.value.entry == "pgvector"
    assert excinfo.value.patch == "s/NOT_THERE/x/"
