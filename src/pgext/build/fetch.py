# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Fetch pinned sources from trusted git hosts."""

from __future__ import annotations

import logging
import re
import shutil
from collections.abc import Iterable, Sequence
from pathlib import Path
from typing import Final

from ..catalog.models import CatalogEntry, GitRefSource, GitTagSource
from ..errors import BuildCancelledError, BuildTimeoutError, FetchError, UntrustedSourceError
from ..process import (
    CancellationToken,
    CommandCancelledError,
    CommandOptions,
    CommandRunner,
    CommandTimeoutError,
    run_command,
)
from ..resolver.git import git_environment
from .log import BuildLog

LOGGER = logging.getLogger(__name__)

FETCH_STAGE: Final[str] = "fetch"

_URL_HOST = re.compile(r"^(?:https?|git|ssh)://(?:[^@/]+@)?(?P<host>[^/:]+)", re.IGNORECASE)
_SCP_HOST = re.compile(r"^[\w.-]+@(?P<host>[^:/]+):")


def repository_host(repository: str) -> str | None:
    """Return the lower-cased host of ``repository`` or ``None`` when unparseable.

    Args:
        repository: ``https://``, ``ssh://``, ``git://`` or ``user@host:path`` URL.

    Returns:
        str | None: Host name without port or credentials.
    """

    match = _URL_HOST.match(repository) or _SCP_HOST.match(repository)
    if match is None:
        return None
    return match.group("host").lower()


def ensure_trusted(entry: str, repository: str, allowed_hosts: Iterable[str]) -> str:
    """Return the repository host, failing closed when it is not allow-listed.

    Args:
        entry: Entry name used for attribution.
        repository: Repository URL about to be fetched.
        allowed_hosts: Exact host names that may be fetched from.

    Returns:
        str: Trusted host name.

    Raises:
        UntrustedSourceError: If the host is unknown or not allow-listed.
    """

    allowed = tuple(host.lower() for host in allowed_hosts)
    host = repository_host(repository)
    if host is None or host not in allowed:
        raise UntrustedSourceError(entry, repository=repository, host=host, allowed=allowed)
    return host


class SourceFetcher:
    """Clone a repository at a pinned commit into an isolated directory."""

    def __init__(
        self,
        runner: CommandRunner = run_command,
        *,
        allowed_hosts: Sequence[str],
        timeout: float | None = None,
        cancel: CancellationToken | None = None,
    ) -> None:
        self._runner = runner
        self._allowed_hosts = tuple(allowed_hosts)
        self._timeout = timeout
        self._cancel = cancel

    def fetch(self, entry: CatalogEntry, destination: Path, log: BuildLog) -> Path:
        """Fetch ``entry``'s pinned commit into ``destination``.

        The host allow-list is checked before any command runs.

        Args:
            entry: Resolved catalog entry with a git source.
            destination: Directory to (re)create for the checkout.
            log: Build log receiving git output.

        Returns:
            Path: Root of the checked out tree.

        Raises:
            UntrustedSourceError: If the repository host is not allow-listed.
            FetchError: If the source is unresolved or a git command fails.
            BuildTimeoutError: If a git command exceeds the fetch timeout.
            BuildCancelledError: If cancellation is requested mid-fetch.
        """

        source = entry.source
        if not isinstance(source, (GitTagSource, GitRefSource)):
            raise FetchError(entry.name, repository="<builtin>", reason="builtin sources are never fetched")
        ensure_trusted(entry.name, source.repository, self._allowed_hosts)
        commit = source.commit
        if commit is None:
            raise FetchError(
                entry.name,
                repository=source.repository,
                reason="source is not pinned to a commit; run 'pgext resolve' first",
            )

        if destination.exists():
            shutil.rmtree(destination)
        destination.mkdir(parents=True)
        log.note(f"fetching {source.repository} at {commit}")

        self._git(entry, source.repository, ["git", "init", "--quiet"], destination, log)
        self._git(entry, source.repository, ["git", "remote", "add", "origin", source.repository], destination, log)
        try:
            self._git(
                entry,
                source.repository,
                ["git", "fetch", "--quiet", "--depth", "1", "origin", commit],
                destination,
                log,
            )
        except FetchError:
            log.note("shallow fetch of the commit failed; fetching full history")
            self._git(entry, source.repository, ["git", "fetch", "--quiet", "--tags", "origin"], destination, log)
        self._git(entry, source.repository, ["git", "checkout", "--quiet", "--detach", commit], destination, log)
        if (destination / ".gitmodules").exists():
            self._git(
                entry,
                source.repository,
                ["git", "submodule", "update", "--init", "--recursive", "--depth", "1"],
                destination,
                log,
            )
        LOGGER.info("fetched %s at %s", entry.name, commit)
        return destination

    def _git(self, entry: CatalogEntry, repository: str, command: list[str], cwd: Path, log: BuildLog) -> None:
        options = CommandOptions(cwd=cwd, env=git_environment(), timeout=self._timeout, cancel=self._cancel)
        try:
            completed = self._runner(command, options=options)
        except CommandTimeoutError as exc:
            log.record(command, exc.output, None)
            raise BuildTimeoutError(entry.name, stage=FETCH_STAGE, timeout=exc.timeout) from exc
        except CommandCancelledError as exc:
            log.record(command, exc.output, None)
            raise BuildCancelledError(entry.name, stage=FETCH_STAGE) from exc
        except FileNotFoundError as exc:
            raise FetchError(entry.name, repository=repository, reason=str(exc)) from exc
        log.record(command, completed.stdout or "", completed.returncode)
        if completed.returncode != 0:
            lines = [line for line in (completed.stdout or "").splitlines() if line.strip()]
            detail = lines[-1] if lines else f"exit status {completed.returncode}"
            raise FetchError(entry.name, repository=repository, reason=f"'{' '.join(command[:2])}' failed: {detail}")


__all__ = ["FETCH_STAGE", "SourceFetcher", "ensure_trusted", "repository_host"]
