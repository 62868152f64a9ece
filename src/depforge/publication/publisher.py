"""Upload artifacts and descriptors to Maven and Ivy repositories.

Uploads of one publication are sequential and ordered: artifacts, then the
descriptor (POM or ivy.xml), then checksums, then maven-metadata.xml (or, for
Ivy snapshots, the plain-revision ivy.xml naming the current stamp). Nothing
is rolled back when an upload fails; PublishTransportError reports what was
and was not uploaded.
"""
from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional, Tuple, Union

from depforge.common.http_client import Transport
from depforge.common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from depforge.constants import Constants
from depforge.depmanagement.dependencies import DependencySet
from depforge.exceptions import (ArtifactAlreadyExistsError, PublishError, PublishTransportError,
                                 RepositoryUnreachableError)
from depforge.repository.layout import (artifact_url, descriptor_url, join_url,
                                        maven_module_metadata_path, maven_version_metadata_path)
from depforge.repository.models import PublishRepository, Repository, RepositorySet
from depforge.versioning.models import VersionedModule
from .descriptor import PublicationDescriptor
from .ivy import read_snapshot_stamp, write_ivy
from .metadata import MavenMetadata, SnapshotStamp, next_snapshot_stamp
from .pom import write_pom

logger = logging.getLogger(__name__)

Targets = Union[RepositorySet, Iterable[Union[PublishRepository, Repository]]]


@dataclass(frozen=True)
class PublishReceipt:
    """What a publication left in one repository."""

    repository: Repository
    module: VersionedModule
    file_version: str
    uploaded: Tuple[str, ...]
    snapshot: Optional[SnapshotStamp] = None


def _checksum(data: bytes, algorithm: str) -> bytes:
    return hashlib.new(algorithm, data).hexdigest().encode("ascii")


class _UploadPlan:
    """Ordered (url, payload) uploads to one repository."""

    def __init__(self, repository: Repository):
        self.repository = repository
        self.steps: List[Tuple[str, bytes]] = []

    def add(self, url: str, data: bytes) -> None:
        self.steps.append((url, data))

    def add_checksums(self, files: Iterable[Tuple[str, bytes]]) -> None:
        for url, data in list(files):
            for algorithm in Constants.CHECKSUM_ALGORITHMS:
                self.add(f"{url}.{algorithm}", _checksum(data, algorithm))

    def execute(self, transport: Transport) -> Tuple[str, ...]:
        completed: List[str] = []
        for url, data in self.steps:
            if is_debug_enabled(logger):
                logger.debug("Uploading", extra=extra_context(
                    event="upload", component="publisher", target=safe_url(url), size=len(data)))
            try:
                transport.put(url, data, self.repository.credentials)
            except RepositoryUnreachableError as exc:
                incomplete = [u for u, _ in self.steps[len(completed):]]
                raise PublishTransportError(
                    f"Upload of {safe_url(url)} failed: {exc.reason}", completed, incomplete
                ) from exc
            completed.append(url)
        return tuple(completed)


class Publisher:
    """Publishes PublicationDescriptors to one or more repositories."""

    def __init__(self, transport: Optional[Transport] = None,
                 clock: Optional[Callable[[], datetime]] = None):
        self.transport = transport or Transport()
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    # -- helpers ----------------------------------------------------------

    @staticmethod
    def _targets(repositories: Targets) -> List[PublishRepository]:
        targets = []
        for repo in repositories:
            targets.append(repo if isinstance(repo, PublishRepository) else PublishRepository(repo))
        return targets

    @staticmethod
    def _artifact_payloads(descriptor: PublicationDescriptor) -> List[Tuple[Optional[str], str, bytes]]:
        payloads = []
        for artifact in descriptor.artifacts:
            try:
                payloads.append((artifact.classifier, artifact.extension, artifact.read_bytes()))
            except OSError as exc:
                raise PublishError(f"Can't read artifact {artifact.path}: {exc}") from exc
        return payloads

    def _read_metadata(self, repo: Repository, url: str) -> Optional[MavenMetadata]:
        data = self.transport.get(url, repo.credentials)
        if data is None:
            return None
        try:
            return MavenMetadata.parse(data)
        except ValueError as exc:
            logger.warning("Replacing malformed metadata %s: %s", safe_url(url), exc)
            return None

    def _check_release_absent(self, descriptor: PublicationDescriptor,
                              targets: List[PublishRepository]) -> None:
        module = descriptor.module
        for target in targets:
            repo = target.repository
            url = descriptor_url(repo, module)
            try:
                exists = self.transport.exists(url, repo.credentials)
            except RepositoryUnreachableError as exc:
                raise PublishTransportError(f"Can't check {safe_url(url)}: {exc.reason}") from exc
            if exists:
                raise ArtifactAlreadyExistsError(module, str(repo))

    # -- layouts ----------------------------------------------------------

    def _maven_plan(self, descriptor: PublicationDescriptor, repo: Repository,
                    payloads: List[Tuple[Optional[str], str, bytes]],
                    moment: datetime) -> Tuple[_UploadPlan, str, Optional[SnapshotStamp]]:
        module = descriptor.module
        stamp = None
        file_version = module.version.value
        version_metadata = None
        if module.version.is_snapshot:
            version_url = join_url(repo.url, maven_version_metadata_path(module))
            version_metadata = (self._read_metadata(repo, version_url)
                                or MavenMetadata.for_module(module.module_id, module.version))
            stamp = next_snapshot_stamp(version_metadata.snapshot, moment)
            file_version = stamp.file_version(module.version.base)

        plan = _UploadPlan(repo)
        files = []
        for classifier, ext, data in payloads:
            url = artifact_url(repo, module, classifier, ext, file_version)
            plan.add(url, data)
            files.append((url, data))
        pom = write_pom(descriptor)
        pom_url = descriptor_url(repo, module, file_version)
        plan.add(pom_url, pom)
        files.append((pom_url, pom))
        plan.add_checksums(files)

        module_url = join_url(repo.url, maven_module_metadata_path(module.module_id))
        module_metadata = self._read_metadata(repo, module_url) or MavenMetadata.for_module(module.module_id)
        module_metadata.add_version(module.version, moment)
        data = module_metadata.to_xml()
        plan.add(module_url, data)
        plan.add_checksums([(module_url, data)])
        if stamp is not None and version_metadata is not None:
            uploaded_kinds = [(c, e) for c, e, _ in payloads] + [(None, "pom")]
            version_metadata.set_snapshot(stamp, module.version.base, uploaded_kinds, moment)
            version_url = join_url(repo.url, maven_version_metadata_path(module))
            data = version_metadata.to_xml()
            plan.add(version_url, data)
            plan.add_checksums([(version_url, data)])
        return plan, file_version, stamp

    def _ivy_plan(self, descriptor: PublicationDescriptor, repo: Repository,
                  payloads: List[Tuple[Optional[str], str, bytes]],
                  moment: datetime) -> Tuple[_UploadPlan, str, Optional[SnapshotStamp]]:
        module = descriptor.module
        # For snapshots this is the pointer to the current stamp, written last.
        ivy_url = descriptor_url(repo, module)
        stamp = None
        file_version = module.version.value
        if module.version.is_snapshot:
            previous = None
            existing = self.transport.get(ivy_url, repo.credentials)
            if existing is not None:
                try:
                    previous = read_snapshot_stamp(existing)
                except ValueError as exc:
                    logger.warning("Replacing malformed descriptor %s: %s", safe_url(ivy_url), exc)
            stamp = next_snapshot_stamp(previous, moment)
            file_version = stamp.file_version(module.version.base)

        plan = _UploadPlan(repo)
        files = []
        for classifier, ext, data in payloads:
            url = artifact_url(repo, module, classifier, ext, file_version)
            plan.add(url, data)
            files.append((url, data))
        ivy = write_ivy(descriptor, stamp, moment)
        stamped_url = descriptor_url(repo, module, file_version)
        plan.add(stamped_url, ivy)
        files.append((stamped_url, ivy))
        plan.add_checksums(files)
        if stamped_url != ivy_url:
            plan.add(ivy_url, ivy)
            plan.add_checksums([(ivy_url, ivy)])
        return plan, file_version, stamp

    # -- entry point ------------------------------------------------------

    def publish(self, descriptor: PublicationDescriptor, repositories: Targets,
                timestamp: Optional[datetime] = None) -> Tuple[PublishReceipt, ...]:
        """Publish to every repository accepting the version.

        Raises:
            ArtifactAlreadyExistsError: a release version already exists in a
                target; raised before anything is uploaded anywhere.
            PublishTransportError: an upload failed; carries completed and
                incomplete uploads and the receipts of repositories already done.
            PublishError: an artifact file can't be read.
        """
        module = descriptor.module
        targets = [t for t in self._targets(repositories) if t.accepts_version(module.version)]
        if not targets:
            logger.warning("No repository accepts %s; nothing published", module)
            return ()
        if not module.version.is_snapshot:
            self._check_release_absent(descriptor, targets)
        payloads = self._artifact_payloads(descriptor)
        moment = timestamp or self.clock()

        receipts: List[PublishReceipt] = []
        for target in targets:
            repo = target.repository
            logger.info("Publishing %s to %s", module, repo)
            with Timer() as timer:
                try:
                    if repo.is_ivy:
                        plan, file_version, stamp = self._ivy_plan(descriptor, repo, payloads, moment)
                    else:
                        plan, file_version, stamp = self._maven_plan(descriptor, repo, payloads, moment)
                    uploaded = plan.execute(self.transport)
                except PublishTransportError as exc:
                    raise PublishTransportError(
                        f"Publishing {module} to {repo} failed: {exc}",
                        exc.completed, exc.incomplete, receipts,
                    ) from exc
                except RepositoryUnreachableError as exc:
                    # Reading existing metadata failed; nothing was uploaded to this repository.
                    raise PublishTransportError(
                        f"Publishing {module} to {repo} failed: {exc.reason}", (), (), receipts
                    ) from exc
            if is_debug_enabled(logger):
                logger.debug("Published", extra=extra_context(
                    event="publish", component="publisher", target=str(repo), module=str(module),
                    files=len(uploaded), duration_ms=timer.duration_ms()))
            receipts.append(PublishReceipt(repo, module, file_version, uploaded, stamp))
        return tuple(receipts)


def publish(
    versioned_module: VersionedModule,
    descriptor: PublicationDescriptor,
    dependency_set: Optional[DependencySet],
    repository_set: Targets,
    timestamp: Optional[datetime] = None,
    *,
    transport: Optional[Transport] = None,
) -> Tuple[PublishReceipt, ...]:
    """Publish ``descriptor`` as ``versioned_module`` with ``dependency_set``."""
    descriptor = descriptor.with_module(versioned_module)
    if dependency_set is not None:
        descriptor = descriptor.with_dependency_set(dependency_set)
    return Publisher(transport).publish(descriptor, repository_set, timestamp)
