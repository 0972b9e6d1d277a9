# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Pin mutable git tags to immutable commits."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from concurrent.futures import Future, ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import Final

from ..catalog.models import Catalog, CatalogEntry, GitRefSource, GitTagSource
from ..errors import ResolutionError, ResolutionTimeoutError
from ..process import CancellationToken, CommandCancelledError, CommandTimeoutError
from .git import GitCommandError, GitRemote, select_tag_commit

LOGGER = logging.getLogger(__name__)

DEFAULT_RESOLVE_CONCURRENCY: Final[int] = 4


@dataclass(frozen=True, slots=True)
class ResolutionReport:
    """Outcome of resolving a whole catalog."""

    catalog: Catalog
    failures: tuple[ResolutionError, ...]

    @property
    def ok(self) -> bool:
        return not self.failures


class SourceResolver:
    """Convert catalog entries into frozen, reproducible entries."""

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

    def resolve(self, entry: CatalogEntry) -> CatalogEntry:
        """Return ``entry`` with its source frozen.

        Builtin sources, git refs and already pinned tags are returned unchanged,
        which makes resolution idempotent.

        Args:
            entry: Catalog entry to freeze.

        Returns:
            CatalogEntry: Entry whose source names an immutable commit.

        Raises:
            ResolutionError: If the tag is missing upstream or the lookup fails.
            ResolutionTimeoutError: If the lookup exceeds the remote timeout.
        """

        source = entry.source
        if not isinstance(source, GitTagSource) or source.is_frozen:
            return entry
        try:
            refs = self._remote.ls_remote_tag(source.repository, source.tag, cancel=self._cancel)
        except GitCommandError as exc:
            raise ResolutionError(entry.name, repository=source.repository, tag=source.tag, reason=str(exc)) from exc
        except CommandTimeoutError as exc:
            raise ResolutionTimeoutError(
                entry.name,
                repository=source.repository,
                tag=source.tag,
                timeout=exc.timeout,
            ) from exc
        except CommandCancelledError as exc:
            raise ResolutionError(
                entry.name,
                repository=source.repository,
                tag=source.tag,
                reason="cancelled",
            ) from exc
        except FileNotFoundError as exc:
            raise ResolutionError(entry.name, repository=source.repository, tag=source.tag, reason=str(exc)) from exc
        commit = select_tag_commit(refs, source.tag)
        if commit is None:
            raise ResolutionError(
                entry.name,
                repository=source.repository,
                tag=source.tag,
                reason="tag does not exist upstream",
            )
        LOGGER.info("resolved %s %s -> %s", entry.name, source.tag, commit)
        return entry.with_source(source.pinned(commit))

    def resolve_all(self, catalog: Catalog) -> ResolutionReport:
        """Resolve every entry concurrently and aggregate all failures.

        Entries that fail keep their unresolved source in the returned catalog.
        A :class:`KeyboardInterrupt` cancels outstanding lookups before it
        propagates.

        Args:
            catalog: Catalog to resolve.

        Returns:
            ResolutionReport: Resolved catalog plus every failure, sorted by entry.
        """

        resolved: dict[str, CatalogEntry] = {}
        failures: list[ResolutionError] = []
        pending = [entry for entry in catalog if self._needs_lookup(entry)]
        for entry in catalog:
            if not self._needs_lookup(entry):
                resolved[entry.name] = self.resolve(entry)

        if pending:
            executor = ThreadPoolExecutor(max_workers=min(self._concurrency, len(pending)))
            try:
                future_map: dict[Future[CatalogEntry], CatalogEntry] = {
                    executor.submit(self.resolve, entry): entry for entry in pending
                }
                for future in as_completed(future_map):
                    entry = future_map[future]
                    try:
                        resolved[entry.name] = future.result()
                    except ResolutionError as exc:
                        LOGGER.warning("%s", exc.describe())
                        failures.append(exc)
                        resolved[entry.name] = entry
            except KeyboardInterrupt:
                self._cancel.cancel("interrupted")
                executor.shutdown(wait=True, cancel_futures=True)
                raise
            finally:
                executor.shutdown(wait=True)

        ordered = sorted(failures, key=lambda error: error.entry or "")
        return ResolutionReport(catalog=catalog.with_entries(resolved.values()), failures=tuple(ordered))

    @staticmethod
    def _needs_lookup(entry: CatalogEntry) -> bool:
        source = entry.source
        return isinstance(source, GitTagSource) and not source.is_frozen


def pinned_commits(entries: Iterable[CatalogEntry]) -> dict[str, str]:
    """Return the pinned commit of each git-sourced entry keyed by name."""

    return {
        entry.name: entry.commit
        for entry in entries
        if isinstance(entry.source, (GitTagSource, GitRefSource)) and entry.commit is not None
    }


__all__ = ["DEFAULT_RESOLVE_CONCURRENCY", "ResolutionReport", "SourceResolver", "pinned_commits"]
