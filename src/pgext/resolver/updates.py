# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Compare pinned git tags with the newest stable upstream release."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from enum import Enum

from ..catalog.models import Catalog, CatalogEntry, GitRefSource, GitTagSource
from ..catalog.types import JSONValue
from ..catalog.versions import is_prerelease, release_version, tag_prefix
from ..process import CancellationToken, CommandCancelledError, CommandTimeoutError
from .git import GitCommandError, GitRemote, tag_names
from .resolver import DEFAULT_RESOLVE_CONCURRENCY

LOGGER = logging.getLogger(__name__)


class UpdateStatus(str, Enum):
    """Result of comparing one entry with its upstream tags."""

    CURRENT = "current"
    AVAILABLE = "available"
    MANUAL = "manual"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class UpdateCheck:
    """Upstream comparison for one git-sourced entry."""

    entry: str
    current: str
    status: UpdateStatus
    latest: str | None = None
    enabled: bool = True
    note: str | None = None

    def as_dict(self) -> dict[str, JSONValue]:
        return {
            "name": self.entry,
            "current": self.current,
            "latest": self.latest,
            "status": self.status.value,
            "updateAvailable": self.status is UpdateStatus.AVAILABLE,
            "enabled": self.enabled,
            "note": self.note,
        }


@dataclass(frozen=True, slots=True)
class UpdateReport:
    """Every update check of a catalog, sorted by entry name."""

    checks: tuple[UpdateCheck, ...]

    def with_status(self, status: UpdateStatus) -> tuple[UpdateCheck, ...]:
        return tuple(check for check in self.checks if check.status is status)

    @property
    def available(self) -> tuple[UpdateCheck, ...]:
        """Return enabled entries whose pinned tag trails upstream."""

        return tuple(check for check in self.with_status(UpdateStatus.AVAILABLE) if check.enabled)

    @property
    def ok(self) -> bool:
        return not self.available


def stable_tags(tags: Iterable[str]) -> tuple[str, ...]:
    """Drop alpha, beta, release-candidate and preview tags."""

    return tuple(tag for tag in tags if not is_prerelease(tag))


def latest_tag(tags: Iterable[str], current: str) -> str | None:
    """Return the newest stable tag sharing ``current``'s naming scheme.

    Only tags with the same non-numeric prefix are compared, ordered by the
    release they name (``packaging`` version semantics). A repository that
    moved from ``REL4_2_0`` to ``v4.3.0`` style tags is therefore reported
    against the scheme the catalog pins, and namespaced tags such as
    ``debian/1.0-1`` only compete with a pinned tag from the same namespace.

    Args:
        tags: Tag names published upstream.
        current: Tag the catalog pins.

    Returns:
        str | None: Newest comparable tag, or ``None`` when none share the scheme.
    """

    prefix = tag_prefix(current)
    ranked = [
        (release, tag)
        for tag in stable_tags(tags)
        if tag_prefix(tag) == prefix and (release := release_version(tag)) is not None
    ]
    if not ranked:
        return None
    return max(ranked)[1]


class UpdateChecker:
    """Query upstream tags for every git-sourced entry of a catalog."""

    def __init__(
        self,
        remote: GitRemote | None = None,
        *,
        concurrency: int = DEFAULT_RESOLVE_CONCURRENCY,
        cancel: CancellationToken | None = None,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self._remote = remote or GitRemote()
        self._concurrency = concurrency
        self._cancel = cancel or CancellationToken()

    def check(self, entry: CatalogEntry) -> UpdateCheck | None:
        """Compare ``entry`` with upstream; builtin entries return ``None``.

        Lookup failures are reported as :attr:`UpdateStatus.UNKNOWN` rather
        than raised, so one unreachable repository does not hide the rest.
        """

        source = entry.source
        if isinstance(source, GitRefSource):
            return UpdateCheck(
                entry.name,
                current=source.ref[:12],
                status=UpdateStatus.MANUAL,
                enabled=entry.enabled,
                note="pinned to a commit; check upstream manually",
            )
        if not isinstance(source, GitTagSource):
            return None

        pinned = source.tag

        def unknown(note: str) -> UpdateCheck:
            return UpdateCheck(entry.name, pinned, UpdateStatus.UNKNOWN, enabled=entry.enabled, note=note)

        pinned_release = release_version(pinned)
        if pinned_release is None:
            return unknown("pinned tag names no release version")

        try:
            refs = self._remote.ls_remote_tags(source.repository, cancel=self._cancel)
        except (GitCommandError, FileNotFoundError, CommandTimeoutError) as exc:
            LOGGER.warning("%s: cannot list tags of %s: %s", entry.name, source.repository, exc)
            return unknown(str(exc))
        except CommandCancelledError:
            return unknown("cancelled")

        latest = latest_tag([*tag_names(refs), pinned], pinned)
        if latest is None:
            return unknown("no stable upstream tag shares the pinned tag's naming scheme")
        latest_release = release_version(latest)
        newer = latest_release is not None and latest_release > pinned_release
        status = UpdateStatus.AVAILABLE if newer else UpdateStatus.CURRENT
        LOGGER.info("%s: pinned %s, upstream %s", entry.name, pinned, latest)
        return UpdateCheck(entry.name, pinned, status, latest=latest, enabled=entry.enabled)

    def check_all(self, catalog: Catalog) -> UpdateReport:
        """Check every entry concurrently.

        Args:
            catalog: Catalog to compare with upstream.

        Returns:
            UpdateReport: One check per git-sourced entry, sorted by name.
        """

        checks: list[UpdateCheck] = []
        pending: list[CatalogEntry] = []
        for entry in catalog:
            if isinstance(entry.source, GitTagSource):
                pending.append(entry)
            elif (check := self.check(entry)) is not None:
                checks.append(check)

        if pending:
            executor = ThreadPoolExecutor(max_workers=min(self._concurrency, len(pending)))
            try:
                futures: list[Future[UpdateCheck | None]] = [executor.submit(self.check, entry) for entry in pending]
                for future in as_completed(futures):
                    result = future.result()
                    if result is not None:
                        checks.append(result)
            except KeyboardInterrupt:
                self._cancel.cancel("interrupted")
                executor.shutdown(wait=True, cancel_futures=True)
                raise
            finally:
                executor.shutdown(wait=True)

        return UpdateReport(checks=tuple(sorted(checks, key=lambda check: check.entry)))


__all__ = [
    "UpdateCheck",
    "UpdateChecker",
    "UpdateReport",
    "UpdateStatus",
    "latest_tag",
    "stable_tags",
]
