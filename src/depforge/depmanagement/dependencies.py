"""Declared dependencies: the root of every resolution and publication.

A DependencySet is an ordered collection of ScopedDependency. Entries are
deduplicated by (dependency key, effective scope set); a later declaration
replaces an earlier one with the same key but keeps its original position.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import (Dict, FrozenSet, Hashable, Iterable, Iterator, Optional, Tuple, Union)

from depforge.exceptions import ConfigurationError
from depforge.versioning.models import ModuleId, VersionRange
from depforge.versioning.parser import parse_coordinate
from .providers import ExclusionSet
from .scopes import ScopeGraph, ScopeMapping, ScopeRef, validate_scope_name

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModuleDependency:
    """Dependency on an external module, optionally with a version range.

    A missing version means "whatever the version provider pins, else the
    latest available".
    """

    module_id: ModuleId
    version: Optional[VersionRange] = None
    classifier: Optional[str] = None
    ext: Optional[str] = None
    exclusions: Tuple[ModuleId, ...] = ()
    transitive: bool = True

    def __post_init__(self) -> None:
        if self.version is not None and not isinstance(self.version, VersionRange):
            object.__setattr__(self, "version", VersionRange.of(self.version))
        object.__setattr__(self, "exclusions", tuple(sorted(set(self.exclusions))))

    @classmethod
    def of(cls, coordinate: Union[str, ModuleId], version: Optional[str] = None,
           classifier: Optional[str] = None, ext: Optional[str] = None) -> "ModuleDependency":
        """Create from a coordinate string (``group:name[:version...]``) or a ModuleId."""
        if isinstance(coordinate, ModuleId):
            return cls(coordinate, VersionRange.of(version) if version else None, classifier, ext)
        parsed = parse_coordinate(coordinate)
        return cls(
            parsed.module_id,
            VersionRange.of(version) if version else parsed.version,
            classifier or parsed.classifier,
            ext or parsed.ext,
        )

    @property
    def key(self) -> Hashable:
        return self.module_id

    def with_version(self, version: Union[str, VersionRange, None]) -> "ModuleDependency":
        return replace(self, version=VersionRange.of(version) if version else None)

    def with_classifier(self, classifier: Optional[str]) -> "ModuleDependency":
        return replace(self, classifier=classifier)

    def with_ext(self, ext: Optional[str]) -> "ModuleDependency":
        return replace(self, ext=ext)

    def with_transitive(self, transitive: bool) -> "ModuleDependency":
        return replace(self, transitive=transitive)

    def and_exclude(self, *modules: Union[str, ModuleId]) -> "ModuleDependency":
        extra = tuple(m if isinstance(m, ModuleId) else ModuleId.of(m) for m in modules)
        return replace(self, exclusions=self.exclusions + extra)

    def __str__(self) -> str:
        text = str(self.module_id)
        if self.version is not None:
            text += f":{self.version}"
        if self.classifier:
            text += f":{self.classifier}"
        if self.ext:
            text += f"@{self.ext}"
        return text


@dataclass(frozen=True)
class ProjectDependency:
    """Dependency on a sibling project; resolved by the caller, never here."""

    reference: Hashable

    @property
    def key(self) -> Hashable:
        return ("project", self.reference)

    def __str__(self) -> str:
        return f"project({self.reference})"


Dependency = Union[ModuleDependency, ProjectDependency]


@dataclass(frozen=True)
class ScopedDependency:
    """A dependency bound to scope names, or to a ScopeMapping.

    An empty scope set means the dependency applies to every scope.
    """

    dependency: Dependency
    scopes: FrozenSet[str] = frozenset()
    mapping: Optional[ScopeMapping] = field(default=None)

    def __post_init__(self) -> None:
        names = frozenset(s if isinstance(s, str) else s.name for s in self.scopes)
        for name in names:
            validate_scope_name(name)
        if names and self.mapping:
            raise ConfigurationError(
                f"{self.dependency} declares both scopes and a scope mapping",
                ConfigurationError.INVALID_CONFIG,
            )
        object.__setattr__(self, "scopes", names)

    @classmethod
    def of(cls, dependency: Union[Dependency, str], *scopes: ScopeRef) -> "ScopedDependency":
        if isinstance(dependency, str):
            dependency = ModuleDependency.of(dependency)
        return cls(dependency, frozenset(s if isinstance(s, str) else s.name for s in scopes))

    @classmethod
    def mapped(cls, dependency: Union[Dependency, str], mapping: ScopeMapping) -> "ScopedDependency":
        if isinstance(dependency, str):
            dependency = ModuleDependency.of(dependency)
        return cls(dependency, frozenset(), mapping)

    @property
    def effective_scopes(self) -> FrozenSet[str]:
        if self.mapping:
            return self.mapping.source_scopes
        return self.scopes

    @property
    def key(self) -> Tuple[Hashable, FrozenSet[str]]:
        return (self.dependency.key, self.effective_scopes)

    @property
    def is_module(self) -> bool:
        return isinstance(self.dependency, ModuleDependency)

    def applies_to(self, scope_names: Iterable[str]) -> bool:
        """True when unscoped or when one of its scopes is in ``scope_names``."""
        effective = self.effective_scopes
        return not effective or bool(effective & set(scope_names))

    def __str__(self) -> str:
        if self.mapping:
            return f"{self.dependency} [{self.mapping}]"
        if self.scopes:
            return f"{self.dependency} [{','.join(sorted(self.scopes))}]"
        return str(self.dependency)


class DependencySet:
    """Ordered, deduplicated collection of scoped dependencies."""

    def __init__(self, entries: Iterable[ScopedDependency] = ()):
        self._entries: Dict[Hashable, ScopedDependency] = {}
        for entry in entries:
            # Assigning an existing key keeps its original position.
            self._entries[entry.key] = entry

    @classmethod
    def of(cls, *items: Union[ScopedDependency, Dependency, str]) -> "DependencySet":
        """Build from scoped dependencies, bare dependencies or coordinate strings (unscoped)."""
        entries = []
        for item in items:
            if isinstance(item, ScopedDependency):
                entries.append(item)
            else:
                entries.append(ScopedDependency.of(item))
        return cls(entries)

    @classmethod
    def from_flat_listing(cls, lines: Iterable[str]) -> "DependencySet":
        """Parse the flat output of ``mvn dependency:list``.

        Accepted line formats: ``group:name:type:version:scope`` (type ``jar``
        means no classifier, anything else is taken as the classifier),
        ``group:name:version:scope`` and ``group:name:version``. Other lines
        are ignored.
        """
        entries = []
        for raw in lines:
            items = raw.strip().split(":")
            if len(items) == 5:
                dep = ModuleDependency(ModuleId(items[0], items[1]), VersionRange(items[3]))
                if items[2] != "jar":
                    dep = dep.with_classifier(items[2])
                entries.append(ScopedDependency.of(dep, items[4]))
            elif len(items) == 4:
                dep = ModuleDependency(ModuleId(items[0], items[1]), VersionRange(items[2]))
                entries.append(ScopedDependency.of(dep, items[3]))
            elif len(items) == 3:
                dep = ModuleDependency(ModuleId(items[0], items[1]), VersionRange(items[2]))
                entries.append(ScopedDependency.of(dep))
            elif raw.strip():
                logger.debug("Skipping unrecognised dependency line: %s", raw.strip())
        return cls(entries)

    def on(self, dependency: Union[Dependency, str], *scopes: ScopeRef) -> "DependencySet":
        """Return a copy with one more dependency declared for ``scopes``."""
        return DependencySet(list(self) + [ScopedDependency.of(dependency, *scopes)])

    def merge(self, other: "DependencySet") -> "DependencySet":
        """Concatenate; entries of ``other`` replace same-key entries of this set."""
        return DependencySet(list(self) + list(other))

    __add__ = merge

    def declared_with(self, scope: ScopeRef, graph: ScopeGraph) -> Tuple[ScopedDependency, ...]:
        """Entries applying to ``scope``: declared for it or for one of its ancestors."""
        ancestry = set(graph.ancestor_names(scope))
        return tuple(entry for entry in self if entry.applies_to(ancestry))

    def module_dependencies(self) -> Tuple[ScopedDependency, ...]:
        return tuple(entry for entry in self if entry.is_module)

    def module_ids(self) -> FrozenSet[ModuleId]:
        return frozenset(e.dependency.module_id for e in self.module_dependencies())

    def effective_exclusions(self, module_id: ModuleId,
                             exclusion_set: Optional[ExclusionSet] = None) -> FrozenSet[ModuleId]:
        """Own exclusions of every declaration of ``module_id`` plus the table entry."""
        result = set(exclusion_set.excludes_for(module_id)) if exclusion_set else set()
        for entry in self.module_dependencies():
            if entry.dependency.module_id == module_id:
                result.update(entry.dependency.exclusions)
        return frozenset(result)

    def __iter__(self) -> Iterator[ScopedDependency]:
        return iter(self._entries.values())

    def __len__(self) -> int:
        return len(self._entries)

    def __bool__(self) -> bool:
        return bool(self._entries)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, DependencySet):
            return NotImplemented
        return list(self) == list(other)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"DependencySet({[str(e) for e in self]})"


def parse_flat_dependency_list(lines: Iterable[str]) -> DependencySet:
    """Build a DependencySet from ``mvn dependency:list`` output lines."""
    return DependencySet.from_flat_listing(lines)
