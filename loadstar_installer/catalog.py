"""Catalog of installable tools.

The catalog is declarative data (manifests/catalog.yaml + manifests/presets.yaml),
loaded once per process and never mutated afterwards. Every structure handed
out is immutable, so the wizard and the install worker share one instance.
"""

from __future__ import annotations

import functools
import logging
import shlex
from dataclasses import dataclass
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from .errors import CatalogError, UnknownEntryError, UnsupportedPlatformError
from .lib.manifests import load_catalog_manifest, load_presets_manifest
from .lib.system import SUPPORTED_OS, Platform

logger = logging.getLogger(__name__)


class Category(str, Enum):
    SHELL = "shell"
    EDITOR = "editor"
    GIT = "git"
    TERMINAL = "terminal"
    FILE_MANAGER = "file_manager"
    SEARCH = "search"
    SYSTEM = "system"
    NETWORK = "network"
    CONTAINER = "container"
    LANGUAGE = "language"
    DATABASE = "database"
    SECURITY = "security"
    PRODUCTIVITY = "productivity"
    MEDIA = "media"
    CLOUD = "cloud"
    AI = "ai"

    @property
    def display_name(self) -> str:
        return _CATEGORY_NAMES[self]

    @property
    def order(self) -> int:
        return list(Category).index(self)


_CATEGORY_NAMES = {
    Category.SHELL: "Shell & Prompt",
    Category.EDITOR: "Editors",
    Category.GIT: "Git & Version Control",
    Category.TERMINAL: "Terminal Tools",
    Category.FILE_MANAGER: "File Management",
    Category.SEARCH: "Search & Navigation",
    Category.SYSTEM: "System Utilities",
    Category.NETWORK: "Network Tools",
    Category.CONTAINER: "Containers & VMs",
    Category.LANGUAGE: "Languages & Runtimes",
    Category.DATABASE: "Databases",
    Category.SECURITY: "Security",
    Category.PRODUCTIVITY: "Productivity",
    Category.MEDIA: "Media",
    Category.CLOUD: "Cloud & DevOps",
    Category.AI: "AI & ML Tools",
}


# Package manager -> (install argv prefix, probe argv prefix or None)
_MANAGER_COMMANDS: Dict[str, Tuple[List[str], Optional[List[str]]]] = {
    "brew": (["brew", "install"], ["brew", "list", "--formula"]),
    "cask": (["brew", "install", "--cask"], ["brew", "list", "--cask"]),
    "apt": (["sudo", "apt-get", "install", "-y"], ["dpkg", "-s"]),
    "cargo": (["cargo", "install", "--locked"], None),
    "npm": (["npm", "install", "-g"], ["npm", "ls", "-g", "--depth=0"]),
    "pip": (["pip3", "install", "--user"], ["pip3", "show"]),
    "go": (["go", "install"], None),
}

# Managers the executor can install on its own when missing.
BOOTSTRAPPABLE = frozenset({"brew", "cargo"})


@dataclass(frozen=True)
class PackageManagerMethod:
    manager: str
    package: str

    @property
    def requires(self) -> Optional[str]:
        return "brew" if self.manager == "cask" else self.manager

    def install_argv(self) -> List[str]:
        return [*_MANAGER_COMMANDS[self.manager][0], self.package]

    def probe_argv(self) -> Optional[List[str]]:
        probe = _MANAGER_COMMANDS[self.manager][1]
        return [*probe, self.package] if probe else None

    def describe(self) -> str:
        return " ".join(self.install_argv())


@dataclass(frozen=True)
class ScriptMethod:
    url: str
    args: str = ""

    @property
    def requires(self) -> Optional[str]:
        return None

    def install_argv(self) -> List[str]:
        return ["/bin/bash", "-c", self.describe()]

    def probe_argv(self) -> Optional[List[str]]:
        return None

    def describe(self) -> str:
        pipe = f"sh -s -- {self.args}" if self.args else "sh"
        return f"curl -fsSL {shlex.quote(self.url)} | {pipe}"


@dataclass(frozen=True)
class ManualMethod:
    instructions: str

    @property
    def requires(self) -> Optional[str]:
        return None

    def install_argv(self) -> List[str]:
        return []

    def probe_argv(self) -> Optional[List[str]]:
        return None

    def describe(self) -> str:
        return f"manual: {self.instructions}"


InstallMethod = Union[PackageManagerMethod, ScriptMethod, ManualMethod]


def parse_method(raw: Any) -> InstallMethod:
    """Parse one manifest method, e.g. {brew: ripgrep} or {script: https://...}."""

    if not isinstance(raw, dict) or not raw:
        raise CatalogError(f"Install method must be a mapping, got {raw!r}")
    raw = dict(raw)
    args = str(raw.pop("args", "") or "").strip()
    if len(raw) != 1:
        raise CatalogError(f"Install method must name exactly one kind, got {sorted(raw)}")
    (kind, value), = raw.items()
    value = str(value or "").strip()
    if not value:
        raise CatalogError(f"Install method {kind!r} needs a value")
    if args and kind != "script":
        raise CatalogError(f"Only script methods take args, got {kind!r}")
    if kind in _MANAGER_COMMANDS:
        return PackageManagerMethod(manager=kind, package=value)
    if kind == "script":
        return ScriptMethod(url=value, args=args)
    if kind == "manual":
        return ManualMethod(instructions=value)
    raise CatalogError(f"Unknown install method kind: {kind}")


@dataclass(frozen=True)
class CatalogEntry:
    id: str
    name: str
    category: Category
    description: str
    methods: Mapping[str, Tuple[InstallMethod, ...]]
    # Empty when the tool has no binary to look for on PATH.
    command: str = ""
    tags: Tuple[str, ...] = ()
    url: str = ""
    dependencies: Tuple[str, ...] = ()

    def methods_for(self, os_name: str) -> Tuple[InstallMethod, ...]:
        return self.methods.get(os_name, ())

    @property
    def essential(self) -> bool:
        return "essential" in self.tags

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "CatalogEntry":
        entry_id = str(raw.get("id") or "").strip()
        if not entry_id:
            raise CatalogError(f"Catalog entry without id: {raw!r}")
        try:
            category = Category(raw.get("category"))
        except ValueError as e:
            raise CatalogError(f"Entry {entry_id}: unknown category {raw.get('category')!r}") from e

        install = raw.get("install") or {}
        if not isinstance(install, dict):
            raise CatalogError(f"Entry {entry_id}: install must be a mapping of os -> methods")
        methods: Dict[str, Tuple[InstallMethod, ...]] = {}
        for os_name, items in install.items():
            if os_name not in SUPPORTED_OS:
                raise CatalogError(f"Entry {entry_id}: unsupported os {os_name!r}")
            if isinstance(items, dict):
                items = [items]
            methods[os_name] = tuple(parse_method(m) for m in (items or []))

        return cls(
            id=entry_id,
            name=str(raw.get("name") or entry_id),
            category=category,
            description=str(raw.get("description") or ""),
            methods=MappingProxyType(methods),
            command=str(raw.get("command", entry_id) or ""),
            tags=tuple(str(t) for t in raw.get("tags") or ()),
            url=str(raw.get("url") or ""),
            dependencies=tuple(str(d) for d in raw.get("dependencies") or ()),
        )


class Catalog:
    """Immutable, ordered table of catalog entries plus named presets."""

    def __init__(
        self,
        entries: Sequence[CatalogEntry],
        presets: Optional[Mapping[str, Sequence[str]]] = None,
    ) -> None:
        by_id: Dict[str, CatalogEntry] = {}
        for e in entries:
            if e.id in by_id:
                raise CatalogError(f"Duplicate catalog id: {e.id}")
            if not any(e.methods_for(os_name) for os_name in SUPPORTED_OS):
                raise CatalogError(f"Entry {e.id} has no install method for any supported platform")
            by_id[e.id] = e

        self._entries: Tuple[CatalogEntry, ...] = tuple(
            sorted(entries, key=lambda e: e.category.order)
        )
        self._by_id: Mapping[str, CatalogEntry] = MappingProxyType(by_id)
        self._position = MappingProxyType({e.id: i for i, e in enumerate(self._entries)})
        for e in self._entries:
            missing = [d for d in e.dependencies if d not in by_id]
            if missing:
                raise CatalogError(f"Entry {e.id} depends on unknown ids: {', '.join(missing)}")
        # Raises CatalogError on a dependency cycle.
        self.with_dependencies(by_id)

        resolved: Dict[str, Tuple[str, ...]] = {}
        for name, ids in (presets or {}).items():
            unknown = [i for i in ids if i not in by_id]
            if unknown:
                raise CatalogError(f"Preset {name} references unknown ids: {', '.join(unknown)}")
            resolved[name] = tuple(ids)
        self._presets: Mapping[str, Tuple[str, ...]] = MappingProxyType(resolved)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, entry_id: object) -> bool:
        return entry_id in self._by_id

    def entries(self) -> Tuple[CatalogEntry, ...]:
        return self._entries

    def entry(self, entry_id: str) -> CatalogEntry:
        try:
            return self._by_id[entry_id]
        except KeyError:
            raise UnknownEntryError(entry_id) from None

    def by_category(self, category: Union[Category, str]) -> List[CatalogEntry]:
        cat = Category(category)
        return [e for e in self._entries if e.category == cat]

    def categories(self) -> List[Category]:
        return [c for c in Category if any(e.category == c for e in self._entries)]

    def by_tag(self, tag: str) -> List[CatalogEntry]:
        return [e for e in self._entries if tag in e.tags]

    def essential(self) -> List[CatalogEntry]:
        return self.by_tag("essential")

    def sort_ids(self, ids: Iterable[str]) -> List[str]:
        """Order ids the way the catalog lists them (category, then manifest order)."""
        return sorted(set(ids), key=lambda i: self._position[self.entry(i).id])

    def _dependency_order(self, entry_id: str, chain: List[str], seen: Set[str], out: List[str]) -> None:
        if entry_id in chain:
            cycle = " -> ".join([*chain[chain.index(entry_id):], entry_id])
            raise CatalogError(f"Dependency cycle: {cycle}")
        if entry_id in seen:
            return
        chain.append(entry_id)
        for dep in self.sort_ids(self._by_id[entry_id].dependencies):
            self._dependency_order(dep, chain, seen, out)
        chain.pop()
        seen.add(entry_id)
        out.append(entry_id)

    def with_dependencies(self, ids: Iterable[str]) -> List[str]:
        """ids plus everything they depend on, dependencies before dependents.

        Apart from that constraint the catalog order is kept.
        """

        out: List[str] = []
        seen: Set[str] = set()
        for entry_id in self.sort_ids(ids):
            self._dependency_order(entry_id, [], seen, out)
        return out

    def install_method(self, entry_id: str, platform: Platform) -> InstallMethod:
        """Resolve how entry_id installs on platform.

        Preference: first method whose package manager is already present,
        then the first one whose manager can be bootstrapped.
        """

        entry = self.entry(entry_id)
        candidates = entry.methods_for(platform.os)
        for m in candidates:
            if m.requires is None or platform.has_manager(m.requires):
                return m
        for m in candidates:
            if m.requires in BOOTSTRAPPABLE:
                return m
        raise UnsupportedPlatformError(f"{entry.name} has no install method for {platform.os}")

    def preset_names(self) -> List[str]:
        return list(self._presets)

    def preset(self, name: str) -> Tuple[str, ...]:
        try:
            return self._presets[name]
        except KeyError:
            raise CatalogError(f"Unknown preset: {name}") from None

    @classmethod
    def from_manifests(cls, catalog_raw: Dict[str, Any], presets_raw: Optional[Dict[str, Any]] = None) -> "Catalog":
        items = catalog_raw.get("entries") or []
        if not isinstance(items, list):
            raise CatalogError("catalog.yaml: entries must be a list")
        entries = [CatalogEntry.from_dict(raw) for raw in items]
        all_ids = [e.id for e in entries]
        presets = _resolve_presets((presets_raw or {}).get("presets") or {}, all_ids)
        return cls(entries, presets)


def _resolve_presets(raw: Dict[str, Any], all_ids: Sequence[str]) -> Dict[str, List[str]]:
    """Expand `extends`/`add` chains and the `"*"` wildcard into flat id lists."""

    resolved: Dict[str, List[str]] = {}

    def resolve(name: str, seen: Tuple[str, ...]) -> List[str]:
        if name in resolved:
            return resolved[name]
        if name in seen:
            raise CatalogError(f"Preset cycle: {' -> '.join(seen + (name,))}")
        if name not in raw:
            raise CatalogError(f"Unknown preset: {name}")
        definition = raw[name]
        if definition == "*":
            ids = list(all_ids)
        elif isinstance(definition, list):
            ids = [str(i) for i in definition]
        elif isinstance(definition, dict):
            base = resolve(str(definition["extends"]), seen + (name,)) if definition.get("extends") else []
            ids = list(base) + [str(i) for i in definition.get("add") or [] if str(i) not in base]
        else:
            raise CatalogError(f"Preset {name} must be a list, a mapping or '*'")
        resolved[name] = ids
        return ids

    for preset_name in raw:
        resolve(preset_name, ())
    return resolved


def load_catalog(path: Optional[str] = None, presets_path: Optional[str] = None) -> Catalog:
    catalog = Catalog.from_manifests(load_catalog_manifest(path), load_presets_manifest(presets_path))
    logger.info("Catalog loaded: %d entries, presets=%s", len(catalog), ",".join(catalog.preset_names()))
    return catalog


@functools.lru_cache(maxsize=1)
def default_catalog() -> Catalog:
    return load_catalog()
