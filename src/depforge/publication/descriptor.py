"""What gets published: artifacts, coordinates, dependencies and project info."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, Optional, Tuple, Union

from depforge.constants import Constants
from depforge.depmanagement.dependencies import DependencySet
from depforge.depmanagement.providers import VersionProvider
from depforge.depmanagement.scopes import ScopeGraph, ScopeMapping
from depforge.exceptions import ConfigurationError
from depforge.repository.models import RepositorySet
from depforge.versioning.models import VersionedModule

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PublishedArtifact:
    """A build output file, optionally classified (``sources``, ``javadoc`` ...)."""

    path: Path
    classifier: Optional[str] = None
    ext: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "path", Path(self.path))

    @property
    def extension(self) -> str:
        return self.ext or self.path.suffix.lstrip(".") or Constants.DEFAULT_ARTIFACT_EXT

    def read_bytes(self) -> bytes:
        return self.path.read_bytes()

    def __str__(self) -> str:
        label = f"{self.classifier}." if self.classifier else ""
        return f"{label}{self.extension} ({self.path.name})"


@dataclass(frozen=True)
class License:
    name: str
    url: Optional[str] = None


@dataclass(frozen=True)
class Developer:
    name: str
    email: Optional[str] = None
    organisation: Optional[str] = None
    organisation_url: Optional[str] = None


@dataclass(frozen=True)
class Scm:
    connection: Optional[str] = None
    developer_connection: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class PublicationInfo:
    """Human-facing project information rendered into the POM."""

    name: Optional[str] = None
    description: Optional[str] = None
    url: Optional[str] = None
    scm: Optional[Scm] = None
    licenses: Tuple[License, ...] = ()
    developers: Tuple[Developer, ...] = ()

    @classmethod
    def of(cls, name: str, description: Optional[str] = None, url: Optional[str] = None) -> "PublicationInfo":
        return cls(name, description, url)

    def with_scm(self, connection: Optional[str] = None, developer_connection: Optional[str] = None,
                 url: Optional[str] = None) -> "PublicationInfo":
        return replace(self, scm=Scm(connection, developer_connection, url))

    def with_license(self, name: str, url: Optional[str] = None) -> "PublicationInfo":
        return replace(self, licenses=self.licenses + (License(name, url),))

    def with_apache2_license(self) -> "PublicationInfo":
        return self.with_license("Apache License V2.0", "http://www.apache.org/licenses/LICENSE-2.0.html")

    def with_gpl3_license(self) -> "PublicationInfo":
        return self.with_license("GNU General public license V3", "https://www.gnu.org/copyleft/gpl.html")

    def with_developer(self, name: str, email: Optional[str] = None, organisation: Optional[str] = None,
                       organisation_url: Optional[str] = None) -> "PublicationInfo":
        developer = Developer(name, email, organisation, organisation_url)
        return replace(self, developers=self.developers + (developer,))


ArtifactSpec = Union[PublishedArtifact, str, Path, Tuple[Union[str, Path], Optional[str]]]


def _artifact(spec: ArtifactSpec) -> PublishedArtifact:
    if isinstance(spec, PublishedArtifact):
        return spec
    if isinstance(spec, tuple):
        return PublishedArtifact(Path(spec[0]), spec[1])
    return PublishedArtifact(Path(spec))


@dataclass(frozen=True)
class PublicationDescriptor:
    """Everything needed to publish one module version.

    Attributes:
        module: Coordinates being published.
        artifacts: Files to upload; at most one per (classifier, extension).
        dependency_set: Declared dependencies written to the descriptor.
        scope_mapping: Translation of build scopes into Maven scopes / Ivy confs.
        info: Optional project information for the POM.
        scope_graph: Scopes enumerated as Ivy configurations.
        version_provider: Optional pins written as ``<dependencyManagement>``.
        repositories: Optional read-through repositories written to the POM.
        packaging: POM packaging; defaults to the main artifact extension.
    """

    module: VersionedModule
    artifacts: Tuple[PublishedArtifact, ...] = ()
    dependency_set: DependencySet = field(default_factory=DependencySet)
    scope_mapping: Optional[ScopeMapping] = None
    info: Optional[PublicationInfo] = None
    scope_graph: ScopeGraph = field(default_factory=ScopeGraph.standard, compare=False)
    version_provider: Optional[VersionProvider] = None
    repositories: Optional[RepositorySet] = None
    packaging: Optional[str] = None

    def __post_init__(self) -> None:
        seen = set()
        for artifact in self.artifacts:
            key = (artifact.classifier, artifact.extension)
            if key in seen:
                raise ConfigurationError(
                    f"Duplicate artifact {artifact} for {self.module}", ConfigurationError.INVALID_CONFIG
                )
            seen.add(key)
        if self.packaging is None:
            main = self.main_artifact
            object.__setattr__(self, "packaging", main.extension if main else "pom")

    @property
    def main_artifact(self) -> Optional[PublishedArtifact]:
        for artifact in self.artifacts:
            if not artifact.classifier:
                return artifact
        return None

    def with_module(self, module: VersionedModule) -> "PublicationDescriptor":
        return replace(self, module=module)

    def with_dependency_set(self, dependency_set: DependencySet) -> "PublicationDescriptor":
        return replace(self, dependency_set=dependency_set)


def build_descriptor(
    versioned_module: VersionedModule,
    artifacts: Iterable[ArtifactSpec],
    dependency_set: Optional[DependencySet] = None,
    scope_mapping: Optional[ScopeMapping] = None,
    info: Optional[PublicationInfo] = None,
    *,
    scope_graph: Optional[ScopeGraph] = None,
    version_provider: Optional[VersionProvider] = None,
    repositories: Optional[RepositorySet] = None,
    packaging: Optional[str] = None,
) -> PublicationDescriptor:
    """Assemble a PublicationDescriptor.

    ``artifacts`` accepts PublishedArtifact values, plain paths, or
    ``(path, classifier)`` pairs.
    """
    descriptor = PublicationDescriptor(
        module=versioned_module,
        artifacts=tuple(_artifact(a) for a in artifacts),
        dependency_set=dependency_set if dependency_set is not None else DependencySet(),
        scope_mapping=scope_mapping,
        info=info,
        scope_graph=scope_graph or ScopeGraph.standard(),
        version_provider=version_provider,
        repositories=repositories,
        packaging=packaging,
    )
    logger.debug("Built publication descriptor for %s with %d artifact(s)",
                 versioned_module, len(descriptor.artifacts))
    return descriptor
