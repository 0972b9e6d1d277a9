# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Source resolution: pin git tags to commits and compare them with upstream."""

from __future__ import annotations

from .git import GitCommandError, GitRemote, RemoteRef, parse_ls_remote, select_tag_commit, tag_names
from .resolver import ResolutionReport, SourceResolver, pinned_commits
from .updates import UpdateCheck, UpdateChecker, UpdateReport, UpdateStatus, latest_tag

__all__ = [
    "GitCommandError",
    "GitRemote",
    "RemoteRef",
    "ResolutionReport",
    "SourceResolver",
    "UpdateCheck",
    "UpdateChecker",
    "UpdateReport",
    "UpdateStatus",
    "latest_tag",
    "parse_ls_remote",
    "pinned_commits",
    "select_tag_commit",
    "tag_names",
]
