"""Result types of a resolution."""
from __future__ import annotations

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import FrozenSet, Mapping, Optional, Tuple

from depforge.depmanagement.providers import VersionProvider
from depforge.repository.locator import LocatedArtifact, RepositoryAttempt
from depforge.versioning.models import ModuleId, Version, VersionedModule


@dataclass(frozen=True)
class UnresolvedModule:
    """A module that could not be resolved, with the per-repository trace."""

    module_id: ModuleId
    requested: Optional[str]
    reason: str
    attempts: Tuple[RepositoryAttempt, ...] = ()

    def __str__(self) -> str:
        requested = f":{self.requested}" if self.requested else ""
        text = f"{self.module_id}{requested}: {self.reason}"
        if self.attempts:
            text += " [" + "; ".join(str(a) for a in self.attempts) + "]"
        return text


@dataclass(frozen=True)
class ResolutionResult:
    """Outcome of resolving a dependency set for one scope.

    Attributes:
        resolved_modules: Every module at its selected version.
        per_module_scopes: Root scope names through which each module was reached.
        unresolved: Modules that could not be located, in discovery order.
        locations: Repository and URL each resolved artifact was found at.
        displaced: Versions requested somewhere in the graph but not selected.
    """

    resolved_modules: FrozenSet[VersionedModule] = frozenset()
    per_module_scopes: Mapping[ModuleId, FrozenSet[str]] = field(default_factory=dict)
    unresolved: Tuple[UnresolvedModule, ...] = ()
    locations: Mapping[ModuleId, LocatedArtifact] = field(default_factory=dict)
    displaced: Mapping[ModuleId, Tuple[Version, ...]] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for name in ("per_module_scopes", "locations", "displaced"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))

    @property
    def is_complete(self) -> bool:
        return not self.unresolved

    def version_of(self, module_id: ModuleId) -> Optional[Version]:
        for module in self.resolved_modules:
            if module.module_id == module_id:
                return module.version
        return None

    def module_ids(self) -> FrozenSet[ModuleId]:
        return frozenset(m.module_id for m in self.resolved_modules)

    def as_version_provider(self) -> VersionProvider:
        """Pins reproducing this resolution, e.g. for a lock file or dependencyManagement."""
        return VersionProvider.from_modules(self.resolved_modules)

    def __contains__(self, item: object) -> bool:
        if isinstance(item, VersionedModule):
            return item in self.resolved_modules
        if isinstance(item, ModuleId):
            return item in self.module_ids()
        return False
