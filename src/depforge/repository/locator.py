"""Locate artifacts, versions and descriptors across an ordered RepositorySet.

Repositories are tried left to right. A repository that is unreachable or
lacks the artifact is skipped and recorded as a RepositoryAttempt; only when
every repository failed does the locator raise ArtifactNotFoundError.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Set, Tuple

from depforge.common.http_client import Transport
from depforge.common.logging_utils import extra_context, is_debug_enabled
from depforge.constants import Constants
from depforge.depmanagement.dependencies import ModuleDependency
from depforge.exceptions import (ArtifactNotFoundError, ConfigurationError,
                                 RepositoryUnreachableError)
from depforge.publication.ivy import read_ivy_dependencies, read_snapshot_stamp
from depforge.publication.metadata import MavenMetadata, is_timestamped
from depforge.publication.pom import PomDocument
from depforge.versioning.models import ModuleId, Version, VersionedModule
from .layout import (artifact_url, descriptor_url, ivy_metadata_listing_dir, ivy_revision_regex,
                     join_url, maven_module_dir, maven_module_metadata_path,
                     maven_version_metadata_path)
from .models import IvyLayout, Repository, RepositorySet

logger = logging.getLogger(__name__)

NOT_FOUND = "not found"
UNREACHABLE = "unreachable"
MALFORMED = "malformed"


@dataclass(frozen=True)
class RepositoryAttempt:
    """One repository tried for one lookup, and why it did not answer."""

    repository: Repository
    url: str
    outcome: str
    reason: str = ""

    def __str__(self) -> str:
        detail = f": {self.reason}" if self.reason else ""
        return f"{self.repository} {self.outcome}{detail}"


@dataclass(frozen=True)
class LocatedArtifact:
    """Where an artifact was found."""

    module: VersionedModule
    repository: Repository
    url: str
    classifier: Optional[str] = None
    ext: Optional[str] = None
    attempts: Tuple[RepositoryAttempt, ...] = field(default=(), compare=False)


class ArtifactLocator:
    """Read side of a RepositorySet."""

    def __init__(self, repositories: RepositorySet, transport: Optional[Transport] = None):
        self.repositories = repositories
        self.transport = transport or Transport()

    def _snapshot_file_version(self, repo: Repository, module: VersionedModule,
                               classifier: Optional[str], ext: str) -> Optional[str]:
        """Timestamped file version of a Maven snapshot, from version-level metadata."""
        url = join_url(repo.url, maven_version_metadata_path(module))
        data = self.transport.get(url, repo.credentials)
        if data is None:
            return None
        try:
            metadata = MavenMetadata.parse(data)
        except ValueError as exc:
            logger.warning("Ignoring malformed snapshot metadata %s: %s", url, exc)
            return None
        for item in metadata.snapshot_versions:
            if item.classifier == classifier and item.extension == ext:
                return item.value
        if metadata.snapshot is not None:
            return metadata.snapshot.file_version(module.version.base)
        return None

    def _ivy_snapshot_file_version(self, repo: Repository, module: VersionedModule) -> Optional[str]:
        """Timestamped revision of an Ivy snapshot, from the stamp on its plain ivy.xml."""
        url = descriptor_url(repo, module)
        data = self.transport.get(url, repo.credentials)
        if data is None:
            return None
        try:
            stamp = read_snapshot_stamp(data)
        except ValueError as exc:
            logger.warning("Ignoring malformed snapshot descriptor %s: %s", url, exc)
            return None
        return stamp.file_version(module.version.base) if stamp else None

    def _candidate_urls(self, repo: Repository, module: VersionedModule,
                        classifier: Optional[str], ext: str) -> List[str]:
        if isinstance(repo.layout, IvyLayout):
            patterns = repo.layout.effective_artifact_patterns
            urls = []
            if module.version.is_snapshot:
                file_version = self._ivy_snapshot_file_version(repo, module)
                if file_version:
                    urls.extend(artifact_url(repo.with_artifact_patterns(p), module, classifier, ext, file_version)
                                for p in patterns)
            urls.extend(artifact_url(repo.with_artifact_patterns(p), module, classifier, ext) for p in patterns)
            return urls
        urls = []
        if module.version.is_snapshot:
            file_version = self._snapshot_file_version(repo, module, classifier, ext)
            if file_version:
                urls.append(artifact_url(repo, module, classifier, ext, file_version))
        urls.append(artifact_url(repo, module, classifier, ext))
        return urls

    def locate(self, module: VersionedModule, classifier: Optional[str] = None,
               ext: Optional[str] = None) -> LocatedArtifact:
        """Find the first repository holding the artifact.

        Raises:
            ArtifactNotFoundError: no repository of the set holds it; carries
                one RepositoryAttempt per repository tried.
        """
        ext = ext or Constants.DEFAULT_ARTIFACT_EXT
        attempts: List[RepositoryAttempt] = []
        for repo in self.repositories:
            url = artifact_url(repo, module, classifier, ext)
            try:
                for candidate in self._candidate_urls(repo, module, classifier, ext):
                    url = candidate
                    if self.transport.exists(candidate, repo.credentials):
                        if is_debug_enabled(logger):
                            logger.debug("Artifact located", extra=extra_context(
                                event="locate", component="locator", outcome="found",
                                target=str(repo), module=str(module)))
                        return LocatedArtifact(module, repo, candidate, classifier, ext, tuple(attempts))
            except RepositoryUnreachableError as exc:
                logger.warning("Repository %s unreachable for %s: %s", repo, module, exc.reason)
                attempts.append(RepositoryAttempt(repo, url, UNREACHABLE, exc.reason))
                continue
            logger.debug("%s not found in %s, trying next repository", module, repo)
            attempts.append(RepositoryAttempt(repo, url, NOT_FOUND))
        raise ArtifactNotFoundError(module, attempts)

    def _maven_versions(self, repo: Repository, module_id: ModuleId) -> Set[Version]:
        url = join_url(repo.url, maven_module_metadata_path(module_id))
        data = self.transport.get(url, repo.credentials)
        if data is not None:
            try:
                return {Version(v) for v in MavenMetadata.parse(data).versions}
            except ValueError as exc:
                raise _MalformedDocument(url, str(exc)) from exc
        # Local repositories often lack module metadata; fall back to the directory names.
        entries = self.transport.list(join_url(repo.url, maven_module_dir(module_id)), repo.credentials)
        return {v for v in (_version_or_none(e) for e in entries or ()) if v is not None}

    def _ivy_versions(self, repo: Repository, layout: IvyLayout, module_id: ModuleId) -> Set[Version]:
        versions: Set[Version] = set()
        for pattern in layout.effective_metadata_patterns:
            directory = ivy_metadata_listing_dir(pattern, module_id)
            if directory is None:
                continue
            entries = self.transport.list(join_url(repo.url, directory), repo.credentials)
            if entries is None:
                logger.debug("Version listing unsupported for %s", repo)
                continue
            regex = ivy_revision_regex(pattern, module_id)
            for entry in entries:
                match = regex.match(entry)
                # Timestamped snapshot descriptors belong to their -SNAPSHOT revision.
                if not match or is_timestamped(match.group("revision")):
                    continue
                version = _version_or_none(match.group("revision"))
                if version is not None:
                    versions.add(version)
        return versions

    def available_versions(self, module_id: ModuleId,
                           attempts: Optional[List[RepositoryAttempt]] = None) -> Tuple[Version, ...]:
        """Union of the versions every reachable repository knows, ascending.

        Failing repositories are skipped and, when ``attempts`` is given,
        recorded there.
        """
        found: Set[Version] = set()
        for repo in self.repositories:
            try:
                if isinstance(repo.layout, IvyLayout):
                    found |= self._ivy_versions(repo, repo.layout, module_id)
                else:
                    found |= self._maven_versions(repo, module_id)
            except RepositoryUnreachableError as exc:
                logger.warning("Repository %s unreachable listing %s: %s", repo, module_id, exc.reason)
                if attempts is not None:
                    attempts.append(RepositoryAttempt(repo, exc.url, UNREACHABLE, exc.reason))
            except _MalformedDocument as exc:
                logger.warning("Ignoring malformed metadata %s: %s", exc.url, exc.reason)
                if attempts is not None:
                    attempts.append(RepositoryAttempt(repo, exc.url, MALFORMED, exc.reason))
        return tuple(sorted(found))

    def fetch_dependencies(self, module: VersionedModule, repository: Repository
                           ) -> Tuple[ModuleDependency, ...]:
        """Dependencies declared by the module's POM or ivy.xml in ``repository``.

        A missing or malformed descriptor yields no dependencies.

        Raises:
            RepositoryUnreachableError: the repository stopped answering.
        """
        file_version = None
        if repository.is_maven and module.version.is_snapshot:
            file_version = self._snapshot_file_version(repository, module, None, "pom")
        url = descriptor_url(repository, module, file_version)
        data = self.transport.get(url, repository.credentials)
        if data is None and file_version:
            url = descriptor_url(repository, module)
            data = self.transport.get(url, repository.credentials)
        if data is None:
            logger.debug("No descriptor for %s in %s", module, repository)
            return ()
        try:
            if repository.is_ivy:
                return read_ivy_dependencies(data)
            return PomDocument.parse(data).transitive_dependencies()
        except (ValueError, ConfigurationError) as exc:
            logger.warning("Ignoring malformed descriptor %s: %s", url, exc)
            return ()


class _MalformedDocument(Exception):
    def __init__(self, url: str, reason: str):
        super().__init__(reason)
        self.url = url
        self.reason = reason


def _version_or_none(value: str) -> Optional[Version]:
    try:
        return Version(value)
    except ConfigurationError:
        return None
