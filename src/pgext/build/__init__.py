# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Build dispatching: fetch, patch, compile and stage catalog entries."""

from __future__ import annotations

from .backends import BACKEND_STRATEGIES, BackendStrategy, BuildContext
from .collect import ArtifactCollector, CollectedArtifacts
from .dispatcher import BuildDispatcher, BuildResult, BuildStatus, DispatcherSettings
from .fetch import SourceFetcher, ensure_trusted, repository_host
from .patcher import PatchResult, apply_patches
from .scheduler import BuildMode, BuildReport, BuildScheduler

__all__ = [
    "ArtifactCollector",
    "BACKEND_STRATEGIES",
    "BackendStrategy",
    "BuildContext",
    "BuildDispatcher",
    "BuildMode",
    "BuildReport",
    "BuildResult",
    "BuildScheduler",
    "BuildStatus",
    "CollectedArtifacts",
    "DispatcherSettings",
    "PatchResult",
    "SourceFetcher",
    "apply_patches",
    "ensure_trusted",
    "repository_host",
]
