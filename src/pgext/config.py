# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Configuration models for the pgext build orchestrator."""

from __future__ import annotations

import math
import os
from pathlib import Path
from typing import Final, Literal

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .errors import ConfigError

BuildModeLiteral = Literal["fail-fast", "best-effort"]
BuildProfileLiteral = Literal["production", "comprehensive"]
DescriptorKindLiteral = Literal["auto", "plain", "shell", "sql", "json"]

DEFAULT_ALLOWED_HOSTS: Final[tuple[str, ...]] = ("github.com", "gitlab.com")
DEFAULT_PG_MAJOR: Final[str] = "18"
DEFAULT_PRELOAD_VARIABLE: Final[str] = "DEFAULT_SHARED_PRELOAD_LIBRARIES"
COUNT_KEYS: Final[frozenset[str]] = frozenset(
    {"total", "enabled", "disabled", "builtin", "package_installed", "source_built"},
)


def default_parallel_jobs() -> int:
    """Return 75% of available CPU cores (minimum of 1)."""
    cores = os.cpu_count() or 1
    return max(1, math.floor(cores * 0.75))


class ResolverConfig(BaseModel):
    """Settings for pinning git tags to commits."""

    model_config = ConfigDict(validate_assignment=True)

    concurrency: int = Field(default=4, ge=1)
    timeout: float = Field(default=60.0, gt=0)


class BuildConfig(BaseModel):
    """Settings controlling fetch, patch and backend execution."""

    model_config = ConfigDict(validate_assignment=True)

    concurrency: int = Field(default=2, ge=1)
    mode: BuildModeLiteral = "fail-fast"
    profile: BuildProfileLiteral = "production"
    fetch_timeout: float = Field(default=600.0, gt=0)
    backend_timeout: float = Field(default=3600.0, gt=0)
    jobs: int = Field(default_factory=default_parallel_jobs, ge=1)
    pg_major: str = DEFAULT_PG_MAJOR
    pg_config: Path | None = None
    allowed_hosts: list[str] = Field(default_factory=lambda: list(DEFAULT_ALLOWED_HOSTS))
    log_tail_lines: int = Field(default=40, ge=1)
    work_dir: Path = Field(default_factory=lambda: Path(".pgext-work"))
    keep_sources: bool = False
    env: dict[str, str] = Field(default_factory=dict)

    def resolved_pg_config(self) -> Path:
        """Return the ``pg_config`` binary used by backends.

        Returns:
            Path: Explicit ``pg_config`` path, or the Debian layout for ``pg_major``.
        """

        if self.pg_config is not None:
            return self.pg_config
        return Path(f"/usr/lib/postgresql/{self.pg_major}/bin/pg_config")


class DescriptorConfig(BaseModel):
    """Location and format of an external descriptor file."""

    model_config = ConfigDict(validate_assignment=True)

    path: Path | None = None
    kind: DescriptorKindLiteral = "auto"
    variable: str | None = None


class ValidationConfig(BaseModel):
    """Settings for the pre-build and post-build gates."""

    model_config = ConfigDict(validate_assignment=True)

    preload: DescriptorConfig = Field(
        default_factory=lambda: DescriptorConfig(variable=DEFAULT_PRELOAD_VARIABLE),
    )
    bootstrap: DescriptorConfig = Field(default_factory=DescriptorConfig)
    expected_counts: dict[str, int] = Field(default_factory=dict)

    @field_validator("expected_counts")
    @classmethod
    def _known_count_keys(cls, value: dict[str, int]) -> dict[str, int]:
        unknown = sorted(set(value) - COUNT_KEYS)
        if unknown:
            raise ValueError(f"unknown expected count key(s): {', '.join(unknown)}")
        return value


class Config(BaseModel):
    """Top-level pgext configuration."""

    model_config = ConfigDict(validate_assignment=True)

    resolver: ResolverConfig = Field(default_factory=ResolverConfig)
    build: BuildConfig = Field(default_factory=BuildConfig)
    validation: ValidationConfig = Field(default_factory=ValidationConfig)


__all__ = [
    "BuildConfig",
    "BuildModeLiteral",
    "BuildProfileLiteral",
    "COUNT_KEYS",
    "Config",
    "ConfigError",
    "DEFAULT_ALLOWED_HOSTS",
    "DEFAULT_PG_MAJOR",
    "DEFAULT_PRELOAD_VARIABLE",
    "DescriptorConfig",
    "DescriptorKindLiteral",
    "ResolverConfig",
    "ValidationConfig",
    "default_parallel_jobs",
]
