# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.
"""Layered configuration loading from TOML documents and the environment."""

from __future__ import annotations

import logging
import os
import re
import tomllib
from collections.abc import Iterable, Mapping, MutableMapping, Sequence
from pathlib import Path
from typing import Any, Final, Protocol

from pydantic import ValidationError as PydanticValidationError

from .config import Config, ConfigError

LOGGER = logging.getLogger(__name__)

CONFIG_FILENAME: Final[str] = "pgext.toml"
PYPROJECT_FILENAME: Final[str] = "pyproject.toml"
DEFAULT_INCLUDE_KEY: Final[str] = "include"
PYPROJECT_TOOL_KEY: Final[str] = "tool"
PYPROJECT_SECTION_KEY: Final[str] = "pgext"

# Environment variable -> (section, field) overrides applied after file sources.
ENV_OVERRIDES: Final[Mapping[str, tuple[str, str]]] = {
    "PG_MAJOR": ("build", "pg_major"),
    "PG_CONFIG": ("build", "pg_config"),
    "PGEXT_CONCURRENCY": ("build", "concurrency"),
    "PGEXT_RESOLVE_CONCURRENCY": ("resolver", "concurrency"),
    "PGEXT_WORK_DIR": ("build", "work_dir"),
}

_ENV_VAR_PATTERN = re.compile(r"\$(\w+)|\$\{([^}]+)\}")


class ConfigSource(Protocol):
    """Source of a raw configuration fragment."""

    name: str

    def load(self) -> Mapping[str, Any]:
        """Return the configuration fragment supplied by the source."""

    def describe(self) -> str:
        """Return a human-readable description of the source."""


class TomlConfigSource:
    """Load configuration data from a TOML document with include support."""

    def __init__(
        self,
        path: Path,
        *,
        name: str | None = None,
        include_key: str = DEFAULT_INCLUDE_KEY,
        env: Mapping[str, str] | None = None,
        required: bool = False,
    ) -> None:
        self._root_path = path
        self.name = name or str(path)
        self._include_key = include_key
        self._env = env if env is not None else os.environ
        self._required = required

    def load(self) -> Mapping[str, Any]:
        if self._required and not self._root_path.is_file():
            raise ConfigError(f"Configuration file {self._root_path} does not exist")
        return self._load(self._root_path, ())

    def _load(self, path: Path, stack: tuple[Path, ...]) -> Mapping[str, Any]:
        if not path.exists():
            return {}
        if path in stack:
            include_chain = " -> ".join(str(entry) for entry in (*stack, path))
            raise ConfigError(f"Circular include detected: {include_chain}")
        try:
            with path.open("rb") as handle:
                data = tomllib.load(handle)
        except tomllib.TOMLDecodeError as exc:
            raise ConfigError(f"Configuration at {path} is not valid TOML: {exc}") from exc
        if not isinstance(data, MutableMapping):
            raise ConfigError(f"Configuration at {path} must be a table")
        document: dict[str, Any] = dict(data)
        includes = document.pop(self._include_key, None)
        merged: dict[str, Any] = {}
        for include_path in self._coerce_includes(includes, path.parent):
            fragment = self._load(include_path, stack + (path,))
            merged = _deep_merge(merged, fragment)
        merged = _deep_merge(merged, document)
        return _expand_env(merged, self._env)

    def _coerce_includes(self, raw: Any, base_dir: Path) -> Iterable[Path]:
        if raw is None:
            return []
        if isinstance(raw, str):
            return [self._resolve_path(Path(raw), base_dir)]
        if isinstance(raw, list):
            return [self._resolve_path(Path(item), base_dir) for item in raw]
        raise ConfigError(f"Unsupported include declaration: {raw!r}")

    @staticmethod
    def _resolve_path(path: Path, base_dir: Path) -> Path:
        return path if path.is_absolute() else (base_dir / path)

    def describe(self) -> str:
        return f"TOML configuration at {self.name}"


class PyProjectConfigSource(TomlConfigSource):
    """Read configuration from ``[tool.pgext]`` within ``pyproject.toml``."""

    def load(self) -> Mapping[str, Any]:
        data = super().load()
        tool_section = data.get(PYPROJECT_TOOL_KEY)
        if not isinstance(tool_section, Mapping):
            return {}
        pgext_section = tool_section.get(PYPROJECT_SECTION_KEY)
        if not isinstance(pgext_section, Mapping):
            return {}
        return dict(pgext_section)

    def describe(self) -> str:
        return f"pyproject.toml ({self.name})"


class ConfigLoader:
    """Merge configuration sources in precedence order into a :class:`Config`."""

    def __init__(
        self,
        root: Path,
        sources: Sequence[ConfigSource],
        *,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self._root = root
        self._sources = tuple(sources)
        self._env = env if env is not None else os.environ

    @classmethod
    def for_root(
        cls,
        root: Path,
        *,
        config_path: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> ConfigLoader:
        """Return a loader reading the standard configuration locations of ``root``.

        Args:
            root: Project root holding ``pyproject.toml`` and ``pgext.toml``.
            config_path: Explicit configuration file given on the command line.
            env: Environment used for ``$VAR`` expansion and overrides.

        Returns:
            ConfigLoader: Loader with pyproject, project and explicit sources.
        """

        resolved_root = root.resolve()
        sources: list[ConfigSource] = [
            PyProjectConfigSource(resolved_root / PYPROJECT_FILENAME, env=env),
            TomlConfigSource(resolved_root / CONFIG_FILENAME, env=env),
        ]
        if config_path is not None:
            sources.append(TomlConfigSource(config_path, env=env, required=True))
        return cls(resolved_root, sources, env=env)

    def load(self) -> Config:
        """Return the merged configuration.

        Returns:
            Config: Validated configuration.

        Raises:
            ConfigError: If a source is malformed or a value fails validation.
        """

        merged: dict[str, Any] = {}
        for source in self._sources:
            fragment = source.load()
            if fragment:
                LOGGER.debug("applying %s", source.describe())
                merged = _deep_merge(merged, fragment)
        merged = _deep_merge(merged, self._environment_fragment())
        try:
            config = Config.model_validate(merged)
        except PydanticValidationError as exc:
            raise ConfigError(f"Invalid configuration: {_summarise_validation(exc)}") from exc
        return _resolve_paths(config, self._root)

    def _environment_fragment(self) -> dict[str, Any]:
        fragment: dict[str, Any] = {}
        for variable, (section, field_name) in ENV_OVERRIDES.items():
            value = self._env.get(variable)
            if value:
                fragment.setdefault(section, {})[field_name] = value
        return fragment


def load_config(
    root: Path,
    *,
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
) -> Config:
    """Load configuration for ``root`` using the default source layering."""

    return ConfigLoader.for_root(root, config_path=config_path, env=env).load()


def _resolve_paths(config: Config, root: Path) -> Config:
    """Anchor relative configuration paths at ``root``."""

    build = config.build
    if not build.work_dir.is_absolute():
        build.work_dir = root / build.work_dir
    for descriptor in (config.validation.preload, config.validation.bootstrap):
        if descriptor.path is not None and not descriptor.path.is_absolute():
            descriptor.path = root / descriptor.path
    return config


def _summarise_validation(exc: PydanticValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(part) for part in error.get("loc", ()))
        parts.append(f"{location}: {error.get('msg', 'invalid value')}")
    return "; ".join(parts)


def _deep_merge(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    result: dict[str, Any] = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], Mapping) and isinstance(value, Mapping):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def _expand_env(data: Mapping[str, Any], env: Mapping[str, str]) -> dict[str, Any]:
    return {key: _expand_env_value(value, env) for key, value in data.items()}


def _expand_env_value(value: Any, env: Mapping[str, str]) -> Any:
    if isinstance(value, str):
        return _expand_env_string(value, env)
    if isinstance(value, Mapping):
        return {k: _expand_env_value(v, env) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env_value(v, env) for v in value]
    return value


def _expand_env_string(value: str, env: Mapping[str, str]) -> str:
    def _replace(match: re.Match[str]) -> str:
        key = match.group(1) or match.group(2)
        if key is None:
            return match.group(0)
        return env.get(key, match.group(0))

    return _ENV_VAR_PATTERN.sub(_replace, value)


__all__ = [
    "CONFIG_FILENAME",
    "ConfigLoader",
    "ConfigSource",
    "ENV_OVERRIDES",
    "PyProjectConfigSource",
    "TomlConfigSource",
    "load_config",
]
