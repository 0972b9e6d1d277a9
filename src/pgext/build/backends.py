# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Native build backend strategies.

Every strategy builds ``context.build_dir`` and installs into the entry-private
``context.install_dir``, which it returns as the artifact directory. Adding a
backend means adding a :class:`BuildBackend` member and one strategy here.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path
from subprocess import CompletedProcess
from types import MappingProxyType
from typing import Final, Protocol

from ..catalog.models import BuildBackend, CatalogEntry

LOGGER = logging.getLogger(__name__)

DEFAULT_PGRX_VERSION: Final[str] = "0.16.1"
CMAKE_BUILD_DIR: Final[str] = ".cmake-build"
MESON_BUILD_DIR: Final[str] = ".meson-build"
INSTALL_PREFIX: Final[str] = "/usr/local"

_PGRX_INLINE = re.compile(r'^\s*pgrx\s*=\s*"=?(?P<version>[0-9][^"]*)"', re.MULTILINE)
_PGRX_TABLE = re.compile(r'^\s*pgrx\s*=\s*\{[^}]*version\s*=\s*"=?(?P<version>[0-9][^"]*)"', re.MULTILINE)


class StepRunner(Protocol):
    """Run one backend command, capturing its output in the entry's build log."""

    def __call__(
        self,
        command: Sequence[str],
        *,
        cwd: Path,
        env: Mapping[str, str] | None = None,
    ) -> CompletedProcess[str]:
        """Execute ``command`` in ``cwd`` with optional extra environment variables.

        Raises:
            BackendInvocationError: If the command exits with a non-zero status.
        """


@dataclass(frozen=True, slots=True)
class BuildContext:
    """Inputs shared by every backend invocation."""

    entry: CatalogEntry
    source_dir: Path
    install_dir: Path
    pg_config: Path
    pg_major: str
    jobs: int
    env: Mapping[str, str] = field(default_factory=dict)

    @property
    def build_dir(self) -> Path:
        """Return the directory to build: the declared ``subdir`` or the tree root."""

        build = self.entry.build
        if build is not None and build.subdir:
            return self.source_dir / build.subdir
        return self.source_dir

    @property
    def features(self) -> tuple[str, ...]:
        return self.entry.build.features if self.entry.build is not None else ()

    @property
    def disable_default_features(self) -> bool:
        return self.entry.build.disable_default_features if self.entry.build is not None else False

    @property
    def destdir_env(self) -> dict[str, str]:
        return {"DESTDIR": str(self.install_dir)}


class BackendStrategy(Protocol):
    """Uniform contract implemented by every build backend."""

    backend: BuildBackend

    def invoke(self, context: BuildContext, run: StepRunner) -> Path:
        """Build ``context`` and return the directory holding its installed artifacts."""


@dataclass(frozen=True, slots=True)
class PgxsBackend:
    """PostgreSQL extension makefiles driven by ``pg_config`` (PGXS)."""

    backend: BuildBackend = BuildBackend.PGXS

    def invoke(self, context: BuildContext, run: StepRunner) -> Path:
        common = ["USE_PGXS=1", f"PG_CONFIG={context.pg_config}"]
        run(["make", "-C", str(context.build_dir), *common, f"-j{context.jobs}"], cwd=context.build_dir)
        run(
            ["make", "-C", str(context.build_dir), *common, f"DESTDIR={context.install_dir}", "install"],
            cwd=context.build_dir,
        )
        return context.install_dir


@dataclass(frozen=True, slots=True)
class MakeBackend:
    """Plain makefiles, including Perl ``Makefile.PL`` projects."""

    backend: BuildBackend = BuildBackend.MAKE

    def invoke(self, context: BuildContext, run: StepRunner) -> Path:
        build_dir = context.build_dir
        if (build_dir / "Makefile.PL").exists() and not (build_dir / "Makefile").exists():
            run(["perl", "Makefile.PL", f"INSTALL_BASE={INSTALL_PREFIX}"], cwd=build_dir)
        run(["make", f"-j{context.jobs}", f"PG_CONFIG={context.pg_config}"], cwd=build_dir)
        run(
            ["make", f"PG_CONFIG={context.pg_config}", f"DESTDIR={context.install_dir}", "install"],
            cwd=build_dir,
        )
        return context.install_dir


@dataclass(frozen=True, slots=True)
class AutotoolsBackend:
    """``configure`` scripts, generated by ``autogen.sh`` when absent."""

    backend: BuildBackend = BuildBackend.AUTOTOOLS

    def invoke(self, context: BuildContext, run: StepRunner) -> Path:
        build_dir = context.build_dir
        if not (build_dir / "configure").exists() and (build_dir / "autogen.sh").exists():
            run(["sh", "./autogen.sh"], cwd=build_dir)
        run(["sh", "./configure", f"--with-pgconfig={context.pg_config}"], cwd=build_dir)
        run(["make", f"-j{context.jobs}"], cwd=build_dir)
        run(["make", f"DESTDIR={context.install_dir}", "install"], cwd=build_dir)
        return context.install_dir


@dataclass(frozen=True, slots=True)
class CMakeBackend:
    """CMake projects built out of tree."""

    backend: BuildBackend = BuildBackend.CMAKE

    def invoke(self, context: BuildContext, run: StepRunner) -> Path:
        build_dir = context.build_dir
        binary_dir = build_dir / CMAKE_BUILD_DIR
        run(
            [
                "cmake",
                "-S",
                str(build_dir),
                "-B",
                str(binary_dir),
                "-DCMAKE_BUILD_TYPE=Release",
                f"-DPG_CONFIG={context.pg_config}",
                f"-DPOSTGRESQL_PG_CONFIG={context.pg_config}",
            ],
            cwd=build_dir,
        )
        run(["cmake", "--build", str(binary_dir), "--parallel", str(context.jobs)], cwd=build_dir)
        run(["cmake", "--install", str(binary_dir)], cwd=build_dir, env=context.destdir_env)
        return context.install_dir


@dataclass(frozen=True, slots=True)
class MesonBackend:
    """Meson projects compiled with ninja."""

    backend: BuildBackend = BuildBackend.MESON

    def invoke(self, context: BuildContext, run: StepRunner) -> Path:
        build_dir = context.build_dir
        binary_dir = build_dir / MESON_BUILD_DIR
        run(
            ["meson", "setup", str(binary_dir), str(build_dir), f"--prefix={INSTALL_PREFIX}", "--buildtype=release"],
            cwd=build_dir,
        )
        run(["meson", "compile", "-C", str(binary_dir), "-j", str(context.jobs)], cwd=build_dir)
        run(["meson", "install", "-C", str(binary_dir), "--destdir", str(context.install_dir)], cwd=build_dir)
        return context.install_dir


@dataclass(frozen=True, slots=True)
class TimescaledbBackend:
    """TimescaleDB's ``bootstrap`` wrapper around CMake."""

    backend: BuildBackend = BuildBackend.TIMESCALEDB

    def invoke(self, context: BuildContext, run: StepRunner) -> Path:
        build_dir = context.build_dir
        run(
            [
                "sh",
                "./bootstrap",
                "-DAPACHE_ONLY=OFF",
                "-DREGRESS_CHECKS=OFF",
                f"-DPG_CONFIG={context.pg_config}",
            ],
            cwd=build_dir,
        )
        binary_dir = build_dir / "build"
        run(["cmake", "--build", str(binary_dir), "--parallel", str(context.jobs)], cwd=build_dir)
        run(["cmake", "--install", str(binary_dir)], cwd=build_dir, env=context.destdir_env)
        return context.install_dir


@dataclass(frozen=True, slots=True)
class CargoPgrxBackend:
    """Rust extensions built with ``cargo pgrx``; the only feature-aware backend."""

    backend: BuildBackend = BuildBackend.CARGO_PGRX

    def invoke(self, context: BuildContext, run: StepRunner) -> Path:
        build_dir = context.build_dir
        version = detect_pgrx_version(build_dir / "Cargo.toml") or detect_pgrx_version(
            context.source_dir / "Cargo.toml",
        )
        pgrx_version = version or DEFAULT_PGRX_VERSION
        LOGGER.info("%s uses pgrx %s", context.entry.name, pgrx_version)
        run(["cargo", "install", "--locked", "cargo-pgrx", "--version", pgrx_version], cwd=build_dir)
        run(["cargo", "pgrx", "init", f"--pg{context.pg_major}={context.pg_config}"], cwd=build_dir)
        command = [
            "cargo",
            "pgrx",
            "package",
            "--pg-config",
            str(context.pg_config),
            "--out-dir",
            str(context.install_dir),
        ]
        if context.features:
            command.extend(["--features", ",".join(context.features)])
        if context.disable_default_features:
            command.append("--no-default-features")
        run(command, cwd=build_dir)
        return context.install_dir


@dataclass(frozen=True, slots=True)
class ScriptBackend:
    """Opaque build script shipped with the source tree."""

    backend: BuildBackend = BuildBackend.SCRIPT

    def invoke(self, context: BuildContext, run: StepRunner) -> Path:
        build = context.entry.build
        script = build.script if build is not None else None
        if not script:
            raise ValueError(f"{context.entry.name}: script backend requires 'build.script'")
        env = {
            "PGEXT_SOURCE_DIR": str(context.source_dir),
            "PGEXT_BUILD_DIR": str(context.build_dir),
            "PGEXT_INSTALL_DIR": str(context.install_dir),
            "PGEXT_JOBS": str(context.jobs),
            **context.destdir_env,
        }
        run(["bash", str(context.build_dir / script)], cwd=context.build_dir, env=env)
        return context.install_dir


def detect_pgrx_version(manifest: Path) -> str | None:
    """Return the ``pgrx`` dependency version pinned in a ``Cargo.toml``.

    Args:
        manifest: Path to the Cargo manifest.

    Returns:
        str | None: Version without a leading ``=``, or ``None`` when absent.
    """

    if not manifest.is_file():
        return None
    text = manifest.read_text(encoding="utf-8", errors="replace")
    match = _PGRX_INLINE.search(text) or _PGRX_TABLE.search(text)
    return match.group("version") if match else None


BACKEND_STRATEGIES: Final[Mapping[BuildBackend, BackendStrategy]] = MappingProxyType(
    {
        strategy.backend: strategy
        for strategy in (
            PgxsBackend(),
            MakeBackend(),
            AutotoolsBackend(),
            CMakeBackend(),
            MesonBackend(),
            TimescaledbBackend(),
            CargoPgrxBackend(),
            ScriptBackend(),
        )
    },
)

_MISSING_BACKENDS = set(BuildBackend) - set(BACKEND_STRATEGIES)
if _MISSING_BACKENDS:  # pragma: no cover - guards enum/registry drift
    missing = ", ".join(sorted(backend.value for backend in _MISSING_BACKENDS))
    raise RuntimeError(f"BuildBackend members without a strategy: {missing}")


__all__ = [
    "AutotoolsBackend",
    "BACKEND_STRATEGIES",
    "BackendStrategy",
    "BuildContext",
    "CMakeBackend",
    "CargoPgrxBackend",
    "DEFAULT_PGRX_VERSION",
    "MakeBackend",
    "MesonBackend",
    "PgxsBackend",
    "ScriptBackend",
    "StepRunner",
    "TimescaledbBackend",
    "detect_pgrx_version",
]
