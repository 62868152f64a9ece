"""Scopes, declared dependencies, version pins and exclusions."""

from .dependencies import (Dependency, DependencySet, ModuleDependency, ProjectDependency,
                           ScopedDependency, parse_flat_dependency_list)
from .providers import ExclusionSet, VersionProvider
from .scopes import (COMPILE, MAVEN_SCOPES, PROVIDED, RUNTIME, TEST, Scope, ScopeGraph,
                     ScopeMapping)

__all__ = [
    "COMPILE",
    "MAVEN_SCOPES",
    "PROVIDED",
    "RUNTIME",
    "TEST",
    "Dependency",
    "DependencySet",
    "ExclusionSet",
    "ModuleDependency",
    "ProjectDependency",
    "Scope",
    "ScopeGraph",
    "ScopeMapping",
    "ScopedDependency",
    "VersionProvider",
    "parse_flat_dependency_list",
]
