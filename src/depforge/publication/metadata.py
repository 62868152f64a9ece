"""Reading and writing ``maven-metadata.xml``.

Module-level metadata lists the published versions of a module. Version-level
metadata (snapshots only) records the current timestamp/build-number pair and
the file version of every artifact uploaded with it.
"""
from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Tuple

from depforge.exceptions import ConfigurationError
from depforge.versioning.models import ModuleId, Version
from .xmlutil import parse_xml, sub_text, text_of, to_bytes

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = "%Y%m%d.%H%M%S"
LAST_UPDATED_FORMAT = "%Y%m%d%H%M%S"
_TIMESTAMPED_RE = re.compile(r"-\d{8}\.\d{6}-\d+$")


def _utc(moment: datetime) -> datetime:
    return moment.astimezone(timezone.utc) if moment.tzinfo is not None else moment


def format_timestamp(moment: datetime) -> str:
    """``yyyyMMdd.HHmmss`` in UTC."""
    return _utc(moment).strftime(TIMESTAMP_FORMAT)


def format_last_updated(moment: datetime) -> str:
    """``yyyyMMddHHmmss`` in UTC, as used by ``lastUpdated`` and Ivy's ``publication``."""
    return _utc(moment).strftime(LAST_UPDATED_FORMAT)


def is_timestamped(file_version: str) -> bool:
    """True for snapshot file versions such as ``1.0-20240102.030405-7``."""
    return bool(_TIMESTAMPED_RE.search(file_version))


@dataclass(frozen=True, order=True)
class SnapshotStamp:
    """Timestamp and build number replacing ``SNAPSHOT`` in published file names."""

    timestamp: str
    build_number: int

    def file_version(self, base_version: str) -> str:
        return f"{base_version}-{self.timestamp}-{self.build_number}"


@dataclass(frozen=True)
class SnapshotVersion:
    classifier: Optional[str]
    extension: str
    value: str
    updated: str


@dataclass
class MavenMetadata:
    """In-memory form of a maven-metadata.xml document."""

    group_id: str
    artifact_id: str
    version: Optional[str] = None
    versions: List[str] = field(default_factory=list)
    latest: Optional[str] = None
    release: Optional[str] = None
    last_updated: Optional[str] = None
    snapshot: Optional[SnapshotStamp] = None
    snapshot_versions: List[SnapshotVersion] = field(default_factory=list)

    @classmethod
    def for_module(cls, module_id: ModuleId, version: Optional[Version] = None) -> "MavenMetadata":
        return cls(module_id.group, module_id.name, version.value if version else None)

    @classmethod
    def parse(cls, data: bytes) -> "MavenMetadata":
        """Parse a document.

        Raises:
            ValueError: malformed XML or missing coordinates.
        """
        root = parse_xml(data)
        group_id = text_of(root, "groupId")
        artifact_id = text_of(root, "artifactId")
        if not group_id or not artifact_id:
            raise ValueError("maven-metadata.xml without groupId/artifactId")
        versioning = root.find("versioning")
        metadata = cls(group_id, artifact_id, text_of(root, "version"))
        if versioning is None:
            return metadata
        metadata.latest = text_of(versioning, "latest")
        metadata.release = text_of(versioning, "release")
        metadata.last_updated = text_of(versioning, "lastUpdated")
        versions_elem = versioning.find("versions")
        if versions_elem is not None:
            for item in versions_elem.findall("version"):
                value = (item.text or "").strip()
                try:
                    Version(value)
                except ConfigurationError:
                    logger.debug("Skipping malformed version %r in metadata of %s:%s",
                                 value, group_id, artifact_id)
                    continue
                metadata.versions.append(value)
        timestamp = text_of(versioning, "snapshot/timestamp")
        build = text_of(versioning, "snapshot/buildNumber")
        if timestamp and build:
            try:
                metadata.snapshot = SnapshotStamp(timestamp, int(build))
            except ValueError:
                logger.warning("Ignoring non-numeric snapshot build number %r for %s:%s",
                               build, group_id, artifact_id)
        snapshot_versions = versioning.find("snapshotVersions")
        if snapshot_versions is not None:
            for item in snapshot_versions.findall("snapshotVersion"):
                value = text_of(item, "value")
                if value:
                    metadata.snapshot_versions.append(SnapshotVersion(
                        text_of(item, "classifier"),
                        text_of(item, "extension") or "jar",
                        value,
                        text_of(item, "updated") or "",
                    ))
        return metadata

    def add_version(self, version: Version, moment: datetime) -> None:
        """Register a published version; versions stay sorted ascending."""
        known = {Version(v) for v in self.versions}
        if version not in known:
            self.versions.append(version.value)
            self.versions.sort(key=Version)
        self.latest = str(max(Version(v) for v in self.versions))
        if not version.is_snapshot:
            releases = [Version(v) for v in self.versions if not Version(v).is_snapshot]
            self.release = str(max(releases))
        self.last_updated = format_last_updated(moment)

    def set_snapshot(self, stamp: SnapshotStamp, base_version: str,
                     artifacts: List[Tuple[Optional[str], str]], moment: datetime) -> None:
        """Record the current snapshot stamp and the files uploaded with it."""
        self.snapshot = stamp
        updated = format_last_updated(moment)
        value = stamp.file_version(base_version)
        self.snapshot_versions = [SnapshotVersion(c, e, value, updated) for c, e in artifacts]
        self.last_updated = updated

    def to_xml(self) -> bytes:
        root = ET.Element("metadata", {"modelVersion": "1.1.0"})
        sub_text(root, "groupId", self.group_id)
        sub_text(root, "artifactId", self.artifact_id)
        sub_text(root, "version", self.version)
        versioning = ET.SubElement(root, "versioning")
        sub_text(versioning, "latest", self.latest)
        sub_text(versioning, "release", self.release)
        if self.snapshot is not None:
            snapshot = ET.SubElement(versioning, "snapshot")
            sub_text(snapshot, "timestamp", self.snapshot.timestamp)
            sub_text(snapshot, "buildNumber", self.snapshot.build_number)
        if self.versions:
            versions = ET.SubElement(versioning, "versions")
            for value in self.versions:
                sub_text(versions, "version", value)
        sub_text(versioning, "lastUpdated", self.last_updated)
        if self.snapshot_versions:
            container = ET.SubElement(versioning, "snapshotVersions")
            for item in self.snapshot_versions:
                elem = ET.SubElement(container, "snapshotVersion")
                sub_text(elem, "classifier", item.classifier)
                sub_text(elem, "extension", item.extension)
                sub_text(elem, "value", item.value)
                sub_text(elem, "updated", item.updated)
        return to_bytes(root)


def next_snapshot_stamp(previous: Optional[SnapshotStamp], moment: datetime) -> SnapshotStamp:
    """Stamp for a new snapshot upload.

    The build number increments from ``previous`` (1 when there is none) and
    the timestamp never moves backwards, so stamps are strictly increasing
    even when the clock is behind the last upload.
    """
    timestamp = format_timestamp(moment)
    if previous is None:
        return SnapshotStamp(timestamp, 1)
    if timestamp < previous.timestamp:
        logger.debug("Clock behind last snapshot %s, keeping its timestamp", previous.timestamp)
        timestamp = previous.timestamp
    return SnapshotStamp(timestamp, previous.build_number + 1)
