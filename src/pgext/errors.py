# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Error taxonomy shared by every pgext stage.

Each error carries the catalog entry it concerns (when one applies) and renders
itself as a single ``<entry>: <Kind>: <detail>`` line so the CLI can print
accumulated failures one per line.
"""

from __future__ import annotations

from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Final

if TYPE_CHECKING:  # pragma: no cover - type checking only
    from .validation.report import ValidationReport

CATALOG_SUBJECT: Final[str] = "<catalog>"


class PgextError(RuntimeError):
    """Base class for failures raised by the orchestrator."""

    def __init__(self, detail: str, *, entry: str | None = None) -> None:
        """Initialise the error with a ``detail`` message and optional ``entry``.

        Args:
            detail: Human-readable explanation of the failure.
            entry: Catalog entry name the failure is attributed to.
        """

        super().__init__(f"{entry}: {detail}" if entry else detail)
        self.detail = detail
        self.entry = entry

    @property
    def kind(self) -> str:
        """Return the failure kind reported to operators.

        Returns:
            str: Class name of the concrete error.
        """

        return type(self).__name__

    def describe(self) -> str:
        """Return the one-line operator-facing rendering of the failure.

        Returns:
            str: ``<entry>: <Kind>: <detail>`` summary line.
        """

        return f"{self.entry or CATALOG_SUBJECT}: {self.kind}: {self.detail}"


class ConfigError(PgextError):
    """Raised when configuration input is invalid."""


class SchemaError(PgextError):
    """Raised when the catalog document is malformed."""

    def __init__(self, message: str, *, entry: str | None = None, field: str | None = None) -> None:
        """Create the error for ``entry`` and the offending ``field``.

        Args:
            message: Description of the shape violation.
            entry: Entry name, or ``entries[i]`` when the name is unavailable.
            field: Dotted path of the offending field.
        """

        detail = f"field '{field}': {message}" if field else message
        super().__init__(detail, entry=entry)
        self.field = field
        self.message = message


class ResolutionError(PgextError):
    """Raised when a git tag cannot be pinned to a commit."""

    def __init__(self, entry: str, *, repository: str, tag: str, reason: str) -> None:
        super().__init__(f"cannot resolve tag '{tag}' in {repository}: {reason}", entry=entry)
        self.repository = repository
        self.tag = tag
        self.reason = reason


class ResolutionTimeoutError(ResolutionError):
    """Raised when querying the remote for a tag exceeds the resolver timeout."""

    def __init__(self, entry: str, *, repository: str, tag: str, timeout: float) -> None:
        super().__init__(entry, repository=repository, tag=tag, reason=f"timed out after {timeout:.1f}s")
        self.timeout = timeout


class SequencingError(PgextError):
    """Base class for errors preventing a valid build order."""


class UnknownDependencyError(SequencingError):
    """Raised when an entry depends on a name absent from the catalog."""

    def __init__(self, entry: str, missing: str) -> None:
        super().__init__(f"depends on unknown entry '{missing}'", entry=entry)
        self.missing = missing


class CycleError(SequencingError):
    """Raised when the dependency graph contains a cycle."""

    def __init__(self, cycle: Sequence[str]) -> None:
        """Create the error naming every node in ``cycle`` in dependency order.

        Args:
            cycle: Entry names forming the cycle; the first name is not repeated.
        """

        path = " -> ".join((*cycle, cycle[0])) if cycle else ""
        super().__init__(f"dependency cycle {path}", entry=cycle[0] if cycle else None)
        self.cycle: tuple[str, ...] = tuple(cycle)


class EntryBuildError(PgextError):
    """Base class for per-entry build failures."""

    def __init__(self, detail: str, *, entry: str) -> None:
        super().__init__(detail, entry=entry)
        self.entry: str = entry


class FetchError(EntryBuildError):
    """Raised when the source tree cannot be fetched at the pinned commit."""

    def __init__(self, entry: str, *, repository: str, reason: str) -> None:
        super().__init__(f"failed to fetch {repository}: {reason}", entry=entry)
        self.repository = repository
        self.reason = reason


class UntrustedSourceError(EntryBuildError):
    """Raised when a repository host is outside the trusted allow-list."""

    def __init__(self, entry: str, *, repository: str, host: str | None, allowed: Sequence[str]) -> None:
        allowed_hosts = ", ".join(sorted(allowed)) or "<none>"
        subject = f"host '{host}'" if host else "unrecognised repository URL"
        super().__init__(
            f"{subject} of {repository} is not trusted (allowed: {allowed_hosts})",
            entry=entry,
        )
        self.repository = repository
        self.host = host
        self.allowed = tuple(allowed)


class PatchNotMatchedError(EntryBuildError):
    """Raised when a source patch matches nothing in the fetched tree."""

    def __init__(self, entry: str, patch: str) -> None:
        super().__init__(f"patch matched no locations: {patch}", entry=entry)
        self.patch = patch


class BackendInvocationError(EntryBuildError):
    """Raised when a native build backend exits with a non-zero status."""

    def __init__(
        self,
        entry: str,
        *,
        backend: str,
        exit_code: int,
        log_tail: Sequence[str],
        log_path: Path | None = None,
    ) -> None:
        """Create the error with the backend exit code and captured log tail.

        Args:
            entry: Entry whose build failed.
            backend: Backend identifier that was invoked.
            exit_code: Exit status reported by the failing command.
            log_tail: Last lines of the captured build log.
            log_path: Location of the full build log when persisted.
        """

        location = f" (log: {log_path})" if log_path is not None else ""
        last_line = log_tail[-1].strip() if log_tail else "<no output>"
        super().__init__(
            f"{backend} build exited with code {exit_code}: {last_line}{location}",
            entry=entry,
        )
        self.backend = backend
        self.exit_code = exit_code
        self.log_tail = tuple(log_tail)
        self.log_path = log_path


class ArtifactCollectionError(EntryBuildError):
    """Raised when a build's installed files cannot be staged."""

    def __init__(self, entry: str, *, artifact_dir: Path, reason: str) -> None:
        super().__init__(f"{reason} in {artifact_dir}", entry=entry)
        self.artifact_dir = artifact_dir
        self.reason = reason


class BuildTimeoutError(EntryBuildError):
    """Raised when a fetch or backend step exceeds its timeout."""

    def __init__(self, entry: str, *, stage: str, timeout: float) -> None:
        super().__init__(f"{stage} timed out after {timeout:.1f}s", entry=entry)
        self.stage = stage
        self.timeout = timeout


class BuildCancelledError(EntryBuildError):
    """Raised when an entry build was cancelled before completion."""

    def __init__(self, entry: str, *, stage: str) -> None:
        super().__init__(f"cancelled during {stage}", entry=entry)
        self.stage = stage


class WorkspaceError(EntryBuildError):
    """Raised when a filesystem step of an entry build fails."""

    def __init__(self, entry: str, *, stage: str, error: OSError) -> None:
        target = f" ({error.filename})" if error.filename else ""
        super().__init__(f"{stage} failed: {error.strerror or error}{target}", entry=entry)
        self.stage = stage
        self.error = error


class DependencyFailedError(EntryBuildError):
    """Raised for entries skipped because a dependency failed to build."""

    def __init__(self, entry: str, dependency: str) -> None:
        super().__init__(f"skipped because dependency '{dependency}' failed", entry=entry)
        self.dependency = dependency


class ValidationError(PgextError):
    """Raised when a validation gate reports failing issues."""

    def __init__(self, report: ValidationReport) -> None:
        failures = report.failures
        super().__init__(f"{len(failures)} validation issue(s)")
        self.report = report

    def describe(self) -> str:
        return "\n".join(issue.describe() for issue in self.report.failures)


__all__ = [
    "ArtifactCollectionError",
    "BackendInvocationError",
    "BuildCancelledError",
    "BuildTimeoutError",
    "CATALOG_SUBJECT",
    "ConfigError",
    "CycleError",
    "DependencyFailedError",
    "EntryBuildError",
    "FetchError",
    "PatchNotMatchedError",
    "PgextError",
    "ResolutionError",
    "ResolutionTimeoutError",
    "SchemaError",
    "SequencingError",
    "UnknownDependencyError",
    "UntrustedSourceError",
    "ValidationError",
    "WorkspaceError",
]
