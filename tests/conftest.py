# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Shared pytest fixtures."""

from __future__ import annotations

import json
from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from helpers.catalog import FakeRunner


@pytest.fixture
def write_catalog(tmp_path: Path) -> Callable[..., Path]:
    """Return a helper writing entry payloads to a catalog document."""

    def _write(*payloads: dict[str, Any], name: str = "catalog.json") -> Path:
        path = tmp_path / name
        path.write_text(json.dumps({"entries": list(payloads)}, indent=2), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def fake_runner() -> FakeRunner:
    return FakeRunner()


@pytest.fixture(autouse=True)
def _isolate_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    """Keep host overrides such as ``PG_MAJOR`` out of configuration tests."""

    for variable in ("PG_MAJOR", "PG_CONFIG", "PGEXT_CONCURRENCY", "PGEXT_RESOLVE_CONCURRENCY", "PGEXT_WORK_DIR"):
        monkeypatch.delenv(variable, raising=False)
