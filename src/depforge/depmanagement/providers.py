"""Version pins and exclusion tables applied during resolution."""
from __future__ import annotations

from types import MappingProxyType
from typing import Dict, FrozenSet, Iterable, Iterator, Mapping, Optional, Union

from depforge.versioning.models import ModuleId, Version, VersionedModule

ModuleRef = Union[str, ModuleId]
VersionRef = Union[str, Version]


def _module_id(ref: ModuleRef) -> ModuleId:
    return ref if isinstance(ref, ModuleId) else ModuleId.of(ref)


def _version(ref: VersionRef) -> Version:
    return ref if isinstance(ref, Version) else Version(ref)


class VersionProvider(Mapping):
    """Immutable association between module ids and pinned versions.

    A pin overrides every requested version or range for its module.
    """

    __slots__ = ("_map",)

    def __init__(self, pins: Optional[Mapping[ModuleRef, VersionRef]] = None):
        self._map: Mapping[ModuleId, Version] = MappingProxyType(
            {_module_id(k): _version(v) for k, v in (pins or {}).items()}
        )

    @classmethod
    def empty(cls) -> "VersionProvider":
        return cls()

    @classmethod
    def of(cls, module: ModuleRef, version: VersionRef) -> "VersionProvider":
        return cls({module: version})

    @classmethod
    def from_modules(cls, modules: Iterable[VersionedModule]) -> "VersionProvider":
        return cls({m.module_id: m.version for m in modules})

    @classmethod
    def merge_of(cls, providers: Iterable["VersionProvider"]) -> "VersionProvider":
        merged: Dict[ModuleId, Version] = {}
        for provider in providers:
            merged.update(provider._map)
        return cls(merged)

    def version_of(self, module: ModuleRef) -> Optional[Version]:
        return self._map.get(_module_id(module))

    def and_(self, other: "VersionProvider") -> "VersionProvider":
        """Union with ``other``; pins of ``other`` win."""
        return VersionProvider.merge_of((self, other))

    def with_pin(self, module: ModuleRef, version: VersionRef) -> "VersionProvider":
        merged = dict(self._map)
        merged[_module_id(module)] = _version(version)
        return VersionProvider(merged)

    def module_ids(self) -> FrozenSet[ModuleId]:
        return frozenset(self._map)

    def __getitem__(self, key: ModuleId) -> Version:
        return self._map[key]

    def __iter__(self) -> Iterator[ModuleId]:
        return iter(self._map)

    def __len__(self) -> int:
        return len(self._map)

    def __repr__(self) -> str:
        pins = ", ".join(f"{k}={v}" for k, v in sorted(self._map.items()))
        return f"VersionProvider({pins})"


class ExclusionSet(Mapping):
    """Immutable map from a module to the transitive modules it must not pull in."""

    __slots__ = ("_map",)

    def __init__(self, exclusions: Optional[Mapping[ModuleRef, Iterable[ModuleRef]]] = None):
        built: Dict[ModuleId, FrozenSet[ModuleId]] = {}
        for module, excluded in (exclusions or {}).items():
            key = _module_id(module)
            built[key] = built.get(key, frozenset()) | frozenset(_module_id(e) for e in excluded)
        self._map: Mapping[ModuleId, FrozenSet[ModuleId]] = MappingProxyType(built)

    @classmethod
    def empty(cls) -> "ExclusionSet":
        return cls()

    def excludes_for(self, module: ModuleRef) -> FrozenSet[ModuleId]:
        return self._map.get(_module_id(module), frozenset())

    def with_exclusion(self, module: ModuleRef, *excluded: ModuleRef) -> "ExclusionSet":
        merged: Dict[ModuleId, Iterable[ModuleId]] = dict(self._map)
        key = _module_id(module)
        merged[key] = self.excludes_for(key) | frozenset(_module_id(e) for e in excluded)
        return ExclusionSet(merged)

    def and_(self, other: "ExclusionSet") -> "ExclusionSet":
        """Union of both tables; excluded sets of a shared key are merged."""
        merged = {k: set(v) for k, v in self._map.items()}
        for key, excluded in other.items():
            merged.setdefault(key, set()).update(excluded)
        return ExclusionSet(merged)

    def __getitem__(self, key: ModuleId) -> FrozenSet[ModuleId]:
        return self._map[key]

    def __iter__(self) -> Iterator[ModuleId]:
        return iter(self._map)

    def __len__(self) -> int:
        return len(self._map)

    def __repr__(self) -> str:
        return f"ExclusionSet({dict(self._map)!r})"
