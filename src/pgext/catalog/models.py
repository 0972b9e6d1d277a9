# SPDX-License-Identifier: MIT
# Copyright (c) 2025 Blackcat Informatics® Inc.

"""Typed models describing catalog entries and their frozen sources."""

from __future__ import annotations

import re
from collections.abc import Iterable, Iterator, Mapping
from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Final, TypeAlias

from ..errors import SchemaError
from ..patches import PatchSyntaxError, SedPatch
from .types import JSONValue
from .utils import (
    FieldContext,
    expect_mapping,
    expect_string,
    optional_bool,
    optional_mapping,
    optional_string,
    string_array,
    unique_string_array,
)

ENTRY_NAME_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9][a-z0-9_.-]*$")
COMMIT_PATTERN: Final[re.Pattern[str]] = re.compile(r"^[0-9a-f]{7,64}$")


class EntryKind(str, Enum):
    """Classification of catalog entries."""

    EXTENSION = "extension"
    TOOL = "tool"
    BUILTIN = "builtin"


class BuildBackend(str, Enum):
    """Native build systems supported by the dispatcher."""

    PGXS = "pgxs"
    CARGO_PGRX = "cargo-pgrx"
    CMAKE = "cmake"
    MESON = "meson"
    AUTOTOOLS = "autotools"
    MAKE = "make"
    SCRIPT = "script"
    TIMESCALEDB = "timescaledb"

    @property
    def accepts_features(self) -> bool:
        """Return ``True`` for backends that understand feature flags."""

        return self is BuildBackend.CARGO_PGRX


class BuildProfile(str, Enum):
    """Enablement axis selecting which entries are active."""

    PRODUCTION = "production"
    COMPREHENSIVE = "comprehensive"


def _normalize_enum(enum_type: type[Enum], value: JSONValue | None, *, key: str, context: FieldContext) -> Any:
    raw = expect_string(value, key=key, context=context)
    try:
        return enum_type(raw)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_type)
        raise context.error(key, f"unsupported value '{raw}' (expected one of: {allowed})") from None


@dataclass(frozen=True, slots=True)
class BuiltinSource:
    """Source shipped with the PostgreSQL server; nothing to fetch."""

    type: ClassVar[str] = "builtin"

    @property
    def repository(self) -> None:
        return None

    @property
    def commit(self) -> None:
        return None

    @property
    def is_frozen(self) -> bool:
        return True

    def to_mapping(self) -> dict[str, JSONValue]:
        return {"type": self.type}


@dataclass(frozen=True, slots=True)
class GitTagSource:
    """Mutable git tag, pinned to ``commit`` once resolved."""

    type: ClassVar[str] = "git-tag"

    repository: str
    tag: str
    commit: str | None = None

    @property
    def is_frozen(self) -> bool:
        return self.commit is not None

    def pinned(self, commit: str) -> GitTagSource:
        """Return a copy of the source frozen at ``commit``."""

        return replace(self, commit=commit)

    def to_mapping(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"type": self.type, "repository": self.repository, "tag": self.tag}
        if self.commit is not None:
            payload["commit"] = self.commit
        return payload


@dataclass(frozen=True, slots=True)
class GitRefSource:
    """Immutable git ref; already pinned."""

    type: ClassVar[str] = "git-ref"

    repository: str
    ref: str

    @property
    def commit(self) -> str:
        return self.ref

    @property
    def is_frozen(self) -> bool:
        return True

    def to_mapping(self) -> dict[str, JSONValue]:
        return {"type": self.type, "repository": self.repository, "ref": self.ref}


SourceSpec: TypeAlias = BuiltinSource | GitTagSource | GitRefSource
SOURCE_TYPES: Final[tuple[str, ...]] = (BuiltinSource.type, GitTagSource.type, GitRefSource.type)


def source_from_mapping(data: Mapping[str, JSONValue], *, context: FieldContext) -> SourceSpec:
    """Create the source variant described by ``data``.

    Args:
        data: Mapping holding the ``source`` object.
        context: Location of the ``source`` object.

    Returns:
        SourceSpec: Builtin, git tag or git ref source.

    Raises:
        SchemaError: If the variant is unknown or a required field is absent.
    """

    source_type = expect_string(data.get("type"), key="type", context=context)
    if source_type == BuiltinSource.type:
        return BuiltinSource()
    if source_type == GitTagSource.type:
        commit = optional_string(data.get("commit"), key="commit", context=context)
        if commit is not None and not COMMIT_PATTERN.match(commit):
            raise context.error("commit", f"'{commit}' is not a hexadecimal commit id")
        return GitTagSource(
            repository=expect_string(data.get("repository"), key="repository", context=context),
            tag=expect_string(data.get("tag"), key="tag", context=context),
            commit=commit,
        )
    if source_type == GitRefSource.type:
        return GitRefSource(
            repository=expect_string(data.get("repository"), key="repository", context=context),
            ref=expect_string(data.get("ref"), key="ref", context=context),
        )
    allowed = ", ".join(SOURCE_TYPES)
    raise context.error("type", f"unsupported source type '{source_type}' (expected one of: {allowed})")


@dataclass(frozen=True, slots=True)
class BuildSpec:
    """How an entry is compiled."""

    backend: BuildBackend
    subdir: str | None = None
    features: tuple[str, ...] = ()
    disable_default_features: bool = False
    patches: tuple[SedPatch, ...] = ()
    script: str | None = None

    @staticmethod
    def from_mapping(data: Mapping[str, JSONValue], *, context: FieldContext) -> BuildSpec:
        """Create a build specification from JSON data.

        Raises:
            SchemaError: If the backend is unknown, a patch is malformed, the
                ``script`` backend lacks a script, or ``subdir`` escapes the tree.
        """

        backend = _normalize_enum(BuildBackend, data.get("backend"), key="backend", context=context)
        subdir = optional_string(data.get("subdir"), key="subdir", context=context)
        if subdir is not None and (subdir.startswith("/") or ".." in subdir.split("/")):
            raise context.error("subdir", f"'{subdir}' must be a relative path inside the source tree")
        script = optional_string(data.get("script"), key="script", context=context)
        if backend is BuildBackend.SCRIPT and not script:
            raise context.error("script", "required when backend is 'script'")
        rules = string_array(data.get("patches"), key="patches", context=context)
        patches: list[SedPatch] = []
        for index, rule in enumerate(rules):
            try:
                patches.append(SedPatch.parse(rule))
            except PatchSyntaxError as exc:
                raise context.error(f"patches[{index}]", str(exc)) from exc
        return BuildSpec(
            backend=backend,
            subdir=subdir,
            features=unique_string_array(data.get("features"), key="features", context=context),
            disable_default_features=optional_bool(
                data.get("disableDefaultFeatures"),
                key="disableDefaultFeatures",
                context=context,
                default=False,
            ),
            patches=tuple(patches),
            script=script,
        )

    def to_mapping(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {"backend": self.backend.value}
        if self.subdir is not None:
            payload["subdir"] = self.subdir
        if self.features:
            payload["features"] = list(self.features)
        if self.disable_default_features:
            payload["disableDefaultFeatures"] = True
        if self.patches:
            payload["patches"] = [patch.source for patch in self.patches]
        if self.script is not None:
            payload["script"] = self.script
        return payload


@dataclass(frozen=True, slots=True)
class RuntimeSpec:
    """Runtime classification consumed by preload and bootstrap collaborators."""

    requires_preload: bool = False
    enabled_by_default: bool = False
    preload_only: bool = False
    preload_library_name: str | None = None
    implicitly_active: bool = False
    notes: tuple[str, ...] = ()

    @staticmethod
    def from_mapping(data: Mapping[str, JSONValue], *, context: FieldContext) -> RuntimeSpec:
        def flag(key: str) -> bool:
            return optional_bool(data.get(key), key=key, context=context, default=False)

        return RuntimeSpec(
            requires_preload=flag("requiresPreload"),
            enabled_by_default=flag("enabledByDefault"),
            preload_only=flag("preloadOnly"),
            preload_library_name=optional_string(
                data.get("preloadLibraryName"),
                key="preloadLibraryName",
                context=context,
            ),
            implicitly_active=flag("implicitlyActive"),
            notes=string_array(data.get("notes"), key="notes", context=context),
        )

    def library_name(self, entry_name: str) -> str:
        """Return the shared library loaded at server start for ``entry_name``."""

        return self.preload_library_name or entry_name

    def to_mapping(self) -> dict[str, JSONValue]:
        payload: dict[str, JSONValue] = {
            "requiresPreload": self.requires_preload,
            "enabledByDefault": self.enabled_by_default,
        }
        if self.preload_only:
            payload["preloadOnly"] = True
        if self.preload_library_name is not None:
            payload["preloadLibraryName"] = self.preload_library_name
        if self.implicitly_active:
            payload["implicitlyActive"] = True
        if self.notes:
            payload["notes"] = list(self.notes)
        return payload


@dataclass(frozen=True, slots=True)
class CatalogEntry:
    """One extension, tool or builtin module in the catalog."""

    name: str
    kind: EntryKind
    category: str
    source: SourceSpec
    build: BuildSpec | None = None
    runtime: RuntimeSpec | None = None
    dependencies: tuple[str, ...] = ()
    install_via: str | None = None
    package_version: str | None = None
    enabled: bool = True
    disabled_reason: str | None = None
    display_name: str | None = None
    description: str | None = None
    enabled_in_comprehensive_test: bool | None = None
    build_packages: tuple[str, ...] = ()
    provides: tuple[str, ...] = ()
    notes: tuple[str, ...] = ()

    @property
    def is_builtin(self) -> bool:
        return self.kind is EntryKind.BUILTIN

    @property
    def is_package_installed(self) -> bool:
        return self.install_via is not None

    @property
    def package_vendor(self) -> str | None:
        """Return the repository ``installVia`` names, e.g. ``pgdg`` for ``pgdg:postgresql-18-cron``."""

        if self.install_via is None:
            return None
        return self.install_via.partition(":")[0]

    @property
    def is_source_built(self) -> bool:
        """Return ``True`` when the entry is compiled from fetched sources."""

        return not self.is_builtin and self.install_via is None and self.build is not None

    @property
    def commit(self) -> str | None:
        return self.source.commit

    @property
    def is_frozen(self) -> bool:
        return self.source.is_frozen

    def is_active(self, profile: BuildProfile = BuildProfile.PRODUCTION) -> bool:
        """Return ``True`` when the entry is enabled under ``profile``.

        Args:
            profile: Enablement profile; ``comprehensive`` also activates disabled
                entries that opt in through ``enabledInComprehensiveTest``.

        Returns:
            bool: Whether the entry participates in builds and artifact checks.
        """

        if self.enabled:
            return True
        return profile is BuildProfile.COMPREHENSIVE and bool(self.enabled_in_comprehensive_test)

    def is_build_candidate(self, profile: BuildProfile = BuildProfile.PRODUCTION) -> bool:
        """Return ``True`` when the entry needs a build step under ``profile``."""

        return self.is_active(profile) and not self.is_builtin and self.install_via is None

    def with_source(self, source: SourceSpec) -> CatalogEntry:
        return replace(self, source=source)

    @staticmethod
    def from_mapping(data: Mapping[str, JSONValue], *, index: int) -> CatalogEntry:
        """Create a catalog entry from its JSON representation.

        Args:
            data: Mapping describing one entry.
            index: Position of the entry in the document, used until the name is known.

        Returns:
            CatalogEntry: Validated entry.

        Raises:
            SchemaError: If a field is missing, mistyped, or inconsistent with the
                entry's variant.
        """

        context = FieldContext(entry=f"entries[{index}]")
        name = expect_string(data.get("name"), key="name", context=context)
        if not ENTRY_NAME_PATTERN.match(name):
            raise context.error("name", f"'{name}' must match {ENTRY_NAME_PATTERN.pattern}")
        context = FieldContext(entry=name)

        kind = _normalize_enum(EntryKind, data.get("kind"), key="kind", context=context)
        source_context = context.child("source")
        source = source_from_mapping(
            expect_mapping(data.get("source"), key="source", context=context),
            context=source_context,
        )
        if (kind is EntryKind.BUILTIN) != isinstance(source, BuiltinSource):
            raise source_context.error("type", "builtin entries must use a builtin source and vice versa")

        build_data = optional_mapping(data.get("build"), key="build", context=context)
        build: BuildSpec | None = None
        if isinstance(source, BuiltinSource):
            if build_data is not None:
                raise context.error("build", "must be absent for builtin sources")
        elif build_data is None:
            raise context.error("build", f"required for '{source.type}' sources")
        else:
            build = BuildSpec.from_mapping(build_data, context=context.child("build"))

        runtime_data = optional_mapping(data.get("runtime"), key="runtime", context=context)
        runtime = (
            RuntimeSpec.from_mapping(runtime_data, context=context.child("runtime"))
            if runtime_data is not None
            else None
        )

        dependencies = unique_string_array(data.get("dependencies"), key="dependencies", context=context)
        if name in dependencies:
            raise context.error("dependencies", "an entry cannot depend on itself")

        install_via = optional_string(data.get("installVia"), key="installVia", context=context)
        if install_via is not None and not install_via.strip():
            raise context.error("installVia", "expected a non-empty string if present")
        package_version = optional_string(data.get("packageVersion"), key="packageVersion", context=context)
        if package_version is not None and install_via is None:
            raise context.error("packageVersion", "only allowed together with installVia")

        enabled = optional_bool(data.get("enabled"), key="enabled", context=context, default=True)
        disabled_reason = optional_string(data.get("disabledReason"), key="disabledReason", context=context)
        if not enabled and not (disabled_reason and disabled_reason.strip()):
            raise context.error("disabledReason", "required when 'enabled' is false")

        comprehensive = data.get("enabledInComprehensiveTest")
        return CatalogEntry(
            name=name,
            kind=kind,
            category=expect_string(data.get("category"), key="category", context=context),
            source=source,
            build=build,
            runtime=runtime,
            dependencies=dependencies,
            install_via=install_via,
            package_version=package_version,
            enabled=enabled,
            disabled_reason=disabled_reason,
            display_name=optional_string(data.get("displayName"), key="displayName", context=context),
            description=optional_string(data.get("description"), key="description", context=context),
            enabled_in_comprehensive_test=(
                None
                if comprehensive is None
                else optional_bool(
                    comprehensive,
                    key="enabledInComprehensiveTest",
                    context=context,
                    default=False,
                )
            ),
            build_packages=unique_string_array(data.get("buildPackages"), key="buildPackages", context=context),
            provides=unique_string_array(data.get("provides"), key="provides", context=context),
            notes=string_array(data.get("notes"), key="notes", context=context),
        )

    def to_mapping(self) -> dict[str, JSONValue]:
        """Return the camelCase document representation of the entry."""

        payload: dict[str, JSONValue] = {"name": self.name}
        if self.display_name is not None:
            payload["displayName"] = self.display_name
        payload["kind"] = self.kind.value
        payload["category"] = self.category
        if self.description is not None:
            payload["description"] = self.description
        payload["source"] = self.source.to_mapping()
        if self.build is not None:
            payload["build"] = self.build.to_mapping()
        if self.runtime is not None:
            payload["runtime"] = self.runtime.to_mapping()
        if self.dependencies:
            payload["dependencies"] = list(self.dependencies)
        if self.provides:
            payload["provides"] = list(self.provides)
        if self.install_via is not None:
            payload["installVia"] = self.install_via
        if self.package_version is not None:
            payload["packageVersion"] = self.package_version
        payload["enabled"] = self.enabled
        if self.disabled_reason is not None:
            payload["disabledReason"] = self.disabled_reason
        if self.enabled_in_comprehensive_test is not None:
            payload["enabledInComprehensiveTest"] = self.enabled_in_comprehensive_test
        if self.build_packages:
            payload["buildPackages"] = list(self.build_packages)
        if self.notes:
            payload["notes"] = list(self.notes)
        return payload


@dataclass(frozen=True, slots=True)
class Catalog:
    """Immutable, name-indexed collection of catalog entries."""

    entries: tuple[CatalogEntry, ...]
    checksum: str | None = None
    _index: Mapping[str, CatalogEntry] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: dict[str, CatalogEntry] = {}
        for entry in self.entries:
            if entry.name in index:
                raise SchemaError("duplicate entry name", entry=entry.name, field="name")
            index[entry.name] = entry
        ordered = tuple(sorted(self.entries, key=lambda item: item.name))
        object.__setattr__(self, "entries", ordered)
        object.__setattr__(self, "_index", MappingProxyType(index))

    @classmethod
    def from_entries(cls, entries: Iterable[CatalogEntry], *, checksum: str | None = None) -> Catalog:
        return cls(entries=tuple(entries), checksum=checksum)

    def __iter__(self) -> Iterator[CatalogEntry]:
        return iter(self.entries)

    def __len__(self) -> int:
        return len(self.entries)

    def __contains__(self, name: object) -> bool:
        return name in self._index

    def get(self, name: str) -> CatalogEntry | None:
        return self._index.get(name)

    @property
    def names(self) -> frozenset[str]:
        return frozenset(self._index)

    def active_entries(self, profile: BuildProfile = BuildProfile.PRODUCTION) -> tuple[CatalogEntry, ...]:
        return tuple(entry for entry in self.entries if entry.is_active(profile))

    def build_candidates(self, profile: BuildProfile = BuildProfile.PRODUCTION) -> tuple[CatalogEntry, ...]:
        """Return entries that require a build step under ``profile``, in name order."""

        return tuple(entry for entry in self.entries if entry.is_build_candidate(profile))

    def with_entries(self, entries: Iterable[CatalogEntry]) -> Catalog:
        """Return a catalog holding ``entries`` and the same checksum."""

        return Catalog(entries=tuple(entries), checksum=self.checksum)

    def with_checksum(self, checksum: str | None) -> Catalog:
        return Catalog(entries=self.entries, checksum=checksum)

    def to_mappings(self) -> list[dict[str, JSONValue]]:
        return [entry.to_mapping() for entry in self.entries]


__all__ = [
    "BuildBackend",
    "BuildProfile",
    "BuildSpec",
    "BuiltinSource",
    "Catalog",
    "CatalogEntry",
    "EntryKind",
    "GitRefSource",
    "GitTagSource",
    "RuntimeSpec",
    "SOURCE_TYPES",
    "SourceSpec",
    "source_from_mapping",
]
