# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Accumulated findings of the validation gates."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from ..errors import CATALOG_SUBJECT, PgextError, ValidationError


class Severity(str, Enum):
    """Impact of a validation issue on the exit status."""

    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True, slots=True)
class ValidationIssue:
    """One problem found by a gate, attributed to an entry where possible."""

    entry: str | None
    kind: str
    message: str
    severity: Severity = Severity.ERROR

    @classmethod
    def from_error(cls, error: PgextError) -> ValidationIssue:
        """Convert a raised-style error into an accumulated issue."""

        return cls(entry=error.entry, kind=error.kind, message=error.detail)

    def describe(self) -> str:
        return f"{self.entry or CATALOG_SUBJECT}: {self.kind}: {self.message}"


@dataclass(slots=True)
class ValidationReport:
    """Ordered collection of validation issues."""

    issues: list[ValidationIssue] = field(default_factory=list)

    def add(
        self,
        entry: str | None,
        kind: str,
        message: str,
        *,
        severity: Severity = Severity.ERROR,
    ) -> None:
        self.issues.append(ValidationIssue(entry=entry, kind=kind, message=message, severity=severity))

    def extend(self, issues: Iterable[ValidationIssue]) -> None:
        self.issues.extend(issues)

    def merge(self, other: ValidationReport) -> ValidationReport:
        """Return a new report holding the issues of both reports."""

        return ValidationReport(issues=[*self.issues, *other.issues])

    @property
    def failures(self) -> tuple[ValidationIssue, ...]:
        return tuple(issue for issue in self.issues if issue.severity is Severity.ERROR)

    @property
    def warnings(self) -> tuple[ValidationIssue, ...]:
        return tuple(issue for issue in self.issues if issue.severity is Severity.WARNING)

    @property
    def ok(self) -> bool:
        return not self.failures

    def raise_for_failures(self) -> None:
        """Raise :class:`ValidationError` when any failing issue was recorded."""

        if self.failures:
            raise ValidationError(self)


__all__ = ["Severity", "ValidationIssue", "ValidationReport"]
