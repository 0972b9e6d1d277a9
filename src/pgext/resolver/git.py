# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Remote git reference lookups."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Final

from ..process import CancellationToken, CommandOptions, CommandRunner, run_command

LOGGER = logging.getLogger(__name__)

PEELED_SUFFIX: Final[str] = "^{}"
TAG_PREFIX: Final[str] = "refs/tags/"

# Never block on credential prompts from inside a worker thread.
NON_INTERACTIVE_ENV: Final[Mapping[str, str]] = {"GIT_TERMINAL_PROMPT": "0", "GIT_ASKPASS": "true"}


class GitCommandError(RuntimeError):
    """Raised when a git invocation exits with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, output: str) -> None:
        last_line = next((line for line in reversed(output.splitlines()) if line.strip()), "")
        super().__init__(f"git {command[1] if len(command) > 1 else ''} exited with status {returncode}: {last_line}")
        self.command = tuple(command)
        self.returncode = returncode
        self.output = output


@dataclass(frozen=True, slots=True)
class RemoteRef:
    """One line of ``git ls-remote`` output."""

    commit: str
    ref: str


def parse_ls_remote(output: str) -> tuple[RemoteRef, ...]:
    """Parse ``git ls-remote`` output into :class:`RemoteRef` records.

    Args:
        output: Raw command output with ``<sha>\\t<ref>`` lines.

    Returns:
        tuple[RemoteRef, ...]: Parsed references in output order.
    """

    refs: list[RemoteRef] = []
    for line in output.splitlines():
        parts = line.strip().split()
        if len(parts) == 2:
            refs.append(RemoteRef(commit=parts[0], ref=parts[1]))
    return tuple(refs)


def select_tag_commit(refs: Sequence[RemoteRef], tag: str) -> str | None:
    """Return the commit a tag points at.

    Annotated tags list both the tag object and its peeled ``^{}`` form; the
    peeled form names the commit and wins when present.

    Args:
        refs: References returned by ``git ls-remote``.
        tag: Tag name without the ``refs/tags/`` prefix.

    Returns:
        str | None: Commit id, or ``None`` when the tag is absent.
    """

    tag_ref = f"{TAG_PREFIX}{tag}"
    by_ref = {ref.ref: ref.commit for ref in refs}
    return by_ref.get(f"{tag_ref}{PEELED_SUFFIX}") or by_ref.get(tag_ref)


def tag_names(refs: Sequence[RemoteRef]) -> tuple[str, ...]:
    """Return the distinct tag names in ``refs``, peeled duplicates folded."""

    names: dict[str, None] = {}
    for ref in refs:
        if ref.ref.startswith(TAG_PREFIX):
            names[ref.ref[len(TAG_PREFIX) :].removesuffix(PEELED_SUFFIX)] = None
    return tuple(names)


def git_environment(extra: Mapping[str, str] | None = None) -> dict[str, str]:
    """Return the process environment with non-interactive git settings applied."""

    env = dict(os.environ)
    env.update(NON_INTERACTIVE_ENV)
    if extra:
        env.update(extra)
    return env


class GitRemote:
    """Query remote repositories through the ``git`` executable."""

    def __init__(self, runner: CommandRunner = run_command, *, timeout: float | None = 60.0) -> None:
        self._runner = runner
        self._timeout = timeout

    def ls_remote_tag(
        self,
        repository: str,
        tag: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> tuple[RemoteRef, ...]:
        """List the refs matching ``tag`` and its peeled form on ``repository``.

        Args:
            repository: Remote repository URL.
            tag: Tag name without the ``refs/tags/`` prefix.
            cancel: Optional cancellation token.

        Returns:
            tuple[RemoteRef, ...]: Matching references; empty when the tag is absent.

        Raises:
            GitCommandError: If git exits with a non-zero status.
            CommandTimeoutError: If the lookup exceeds the timeout.
            CommandCancelledError: If ``cancel`` is triggered.
        """

        command = [
            "git",
            "ls-remote",
            repository,
            f"{TAG_PREFIX}{tag}{PEELED_SUFFIX}",
            f"{TAG_PREFIX}{tag}",
        ]
        completed = self._runner(
            command,
            options=CommandOptions(env=git_environment(), timeout=self._timeout, cancel=cancel),
        )
        if completed.returncode != 0:
            raise GitCommandError(command, completed.returncode, completed.stdout or "")
        refs = parse_ls_remote(completed.stdout or "")
        LOGGER.debug("ls-remote %s %s -> %d ref(s)", repository, tag, len(refs))
        return refs

    def ls_remote_tags(
        self,
        repository: str,
        *,
        cancel: CancellationToken | None = None,
    ) -> tuple[RemoteRef, ...]:
        """List every tag published by ``repository``.

        Raises:
            GitCommandError: If git exits with a non-zero status.
            CommandTimeoutError: If the lookup exceeds the timeout.
            CommandCancelledError: If ``cancel`` is triggered.
        """

        command = ["git", "ls-remote", "--tags", repository]
        completed = self._runner(
            command,
            options=CommandOptions(env=git_environment(), timeout=self._timeout, cancel=cancel),
        )
        if completed.returncode != 0:
            raise GitCommandError(command, completed.returncode, completed.stdout or "")
        refs = parse_ls_remote(completed.stdout or "")
        LOGGER.debug("ls-remote --tags %s -> %d ref(s)", repository, len(refs))
        return refs


__all__ = [
    "GitCommandError",
    "GitRemote",
    "NON_INTERACTIVE_ENV",
    "RemoteRef",
    "git_environment",
    "parse_ls_remote",
    "select_tag_commit",
    "tag_names",
]
