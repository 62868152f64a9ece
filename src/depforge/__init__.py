"""depforge: dependency resolution and artifact publishing for Maven and Ivy repositories."""

from depforge.depmanagement import (DependencySet, ExclusionSet, ModuleDependency, ProjectDependency,
                                    Scope, ScopedDependency, ScopeGraph, ScopeMapping, VersionProvider)
from depforge.exceptions import (ArtifactAlreadyExistsError, ArtifactNotFoundError, ConfigurationError,
                                 DependencyResolutionError, DepforgeError, PublishError,
                                 PublishTransportError, RepositoryUnreachableError,
                                 ResolutionCancelledError)
from depforge.publication import (PublicationDescriptor, PublicationInfo, PublishReceipt, Publisher,
                                  build_descriptor, publish)
from depforge.repository import PublishRepository, Repository, RepositorySet
from depforge.resolution import CancellationToken, ResolutionResult, Resolver, resolve
from depforge.versioning import ModuleId, Version, VersionedModule, VersionRange

__version__ = "0.1.0"

__all__ = [
    "ArtifactAlreadyExistsError",
    "ArtifactNotFoundError",
    "CancellationToken",
    "ConfigurationError",
    "DependencyResolutionError",
    "DependencySet",
    "DepforgeError",
    "ExclusionSet",
    "ModuleDependency",
    "ModuleId",
    "ProjectDependency",
    "PublicationDescriptor",
    "PublicationInfo",
    "PublishError",
    "PublishReceipt",
    "PublishRepository",
    "PublishTransportError",
    "Publisher",
    "Repository",
    "RepositorySet",
    "RepositoryUnreachableError",
    "ResolutionCancelledError",
    "ResolutionResult",
    "Resolver",
    "Scope",
    "ScopeGraph",
    "ScopeMapping",
    "ScopedDependency",
    "Version",
    "VersionProvider",
    "VersionRange",
    "VersionedModule",
    "build_descriptor",
    "publish",
    "resolve",
]
