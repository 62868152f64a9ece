"""Publication descriptors, descriptor codecs and the publisher."""

from .descriptor import (Developer, License, PublicationDescriptor, PublicationInfo,
                         PublishedArtifact, Scm, build_descriptor)
from .ivy import read_ivy_dependencies, write_ivy
from .metadata import MavenMetadata, SnapshotStamp
from .pom import PomDocument, write_pom
from .publisher import PublishReceipt, Publisher, publish

__all__ = [
    "Developer",
    "License",
    "MavenMetadata",
    "PomDocument",
    "PublicationDescriptor",
    "PublicationInfo",
    "PublishReceipt",
    "PublishedArtifact",
    "Publisher",
    "Scm",
    "SnapshotStamp",
    "build_descriptor",
    "publish",
    "read_ivy_dependencies",
    "write_ivy",
    "write_pom",
]
