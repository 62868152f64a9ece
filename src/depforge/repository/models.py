"""Repository value types.

A Repository is a URL plus a layout (Maven or Ivy) and optional credentials.
Layouts form a closed union; every ``with_*`` helper returns a new value.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Iterable, Iterator, Optional, Tuple, Union
from urllib.parse import urlsplit

from depforge.common.logging_utils import safe_url
from depforge.constants import Constants
from depforge.exceptions import ConfigurationError
from depforge.versioning.models import Version

logger = logging.getLogger(__name__)

IVY_PREFIX = "ivy:"
_SCHEMES = ("http", "https", "file")


@dataclass(frozen=True)
class Credentials:
    """HTTP Basic credentials, optionally bound to an authentication realm."""

    username: str
    password: Optional[str] = None
    realm: Optional[str] = None

    def __repr__(self) -> str:
        return f"Credentials(username={self.username!r}, password=***, realm={self.realm!r})"


@dataclass(frozen=True)
class MavenLayout:
    """Fixed ``group/path/name/version/name-version[-classifier].ext`` layout."""

    name = "maven"


@dataclass(frozen=True)
class IvyLayout:
    """Pattern-templated layout; empty pattern lists fall back to the defaults."""

    artifact_patterns: Tuple[str, ...] = ()
    metadata_patterns: Tuple[str, ...] = ()

    name = "ivy"

    @property
    def effective_artifact_patterns(self) -> Tuple[str, ...]:
        return self.artifact_patterns or (Constants.DEFAULT_IVY_ARTIFACT_PATTERN,)

    @property
    def effective_metadata_patterns(self) -> Tuple[str, ...]:
        return self.metadata_patterns or (Constants.DEFAULT_IVY_METADATA_PATTERN,)


Layout = Union[MavenLayout, IvyLayout]


def _normalize_url(location: str) -> str:
    location = location.strip() if isinstance(location, str) else ""
    if not location:
        raise ConfigurationError("Repository URL can't be empty", ConfigurationError.INVALID_REPOSITORY)
    if "://" not in location:
        # A plain directory path.
        return Path(location).expanduser().absolute().as_uri()
    scheme = urlsplit(location).scheme.lower()
    if scheme not in _SCHEMES:
        raise ConfigurationError(
            f"Unsupported repository scheme {scheme!r} in {safe_url(location)}",
            ConfigurationError.INVALID_REPOSITORY,
        )
    return location.rstrip("/")


@dataclass(frozen=True)
class Repository:
    """A single repository: where to read artifacts from or publish them to."""

    url: str
    layout: Layout = field(default_factory=MavenLayout)
    credentials: Optional[Credentials] = field(default=None, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "url", _normalize_url(self.url))

    # -- factories --------------------------------------------------------

    @classmethod
    def maven(cls, url: Union[str, Path]) -> "Repository":
        return cls(str(url))

    @classmethod
    def ivy(cls, url: Union[str, Path], artifact_patterns: Iterable[str] = (),
            metadata_patterns: Iterable[str] = ()) -> "Repository":
        return cls(str(url), IvyLayout(tuple(artifact_patterns), tuple(metadata_patterns)))

    @classmethod
    def of(cls, location: Union[str, Path]) -> "Repository":
        """Create from a URL or directory; an ``ivy:`` prefix selects the Ivy layout."""
        location = str(location)
        if location.startswith(IVY_PREFIX):
            return cls.ivy(location[len(IVY_PREFIX):])
        return cls.maven(location)

    @classmethod
    def maven_central(cls) -> "Repository":
        return cls.maven(Constants.MAVEN_CENTRAL_URL)

    @classmethod
    def jcenter(cls) -> "Repository":
        return cls.maven(Constants.JCENTER_URL)

    @classmethod
    def maven_ossrh_public(cls) -> "Repository":
        return cls.maven(Constants.MAVEN_OSSRH_PUBLIC_DOWNLOAD_RELEASE_AND_SNAPSHOT)

    @classmethod
    def maven_ossrh_snapshot(cls, username: str, password: str) -> "Repository":
        """OSSRH snapshot repository, used both to download and to deploy."""
        return cls.maven(Constants.MAVEN_OSSRH_DOWNLOAD_AND_DEPLOY_SNAPSHOT).with_credentials(
            username, password, Constants.OSSRH_REALM)

    @classmethod
    def maven_ossrh_release(cls, username: str, password: str) -> "Repository":
        return cls.maven(Constants.MAVEN_OSSRH_DOWNLOAD_RELEASE).with_credentials(
            username, password, Constants.OSSRH_REALM)

    @classmethod
    def maven_ossrh_deploy_release(cls, username: str, password: str) -> "Repository":
        return cls.maven(Constants.MAVEN_OSSRH_DEPLOY_RELEASE).with_credentials(
            username, password, Constants.OSSRH_REALM)

    @classmethod
    def local_publish_dir(cls) -> "Repository":
        return cls.maven(Constants.LOCAL_PUBLISH_DIR)

    # -- copy-on-write updates -------------------------------------------

    def with_credentials(self, username: str, password: Optional[str] = None,
                         realm: Optional[str] = None) -> "Repository":
        return replace(self, credentials=Credentials(username, password, realm))

    def with_optional_credentials(self, username: Optional[str],
                                  password: Optional[str] = None) -> "Repository":
        """Attach credentials only when a username is given."""
        if not username:
            return self
        return self.with_credentials(username, password)

    def with_realm(self, realm: Optional[str]) -> "Repository":
        if self.credentials is None:
            raise ConfigurationError(
                f"Can't set a realm on {self}: it has no credentials",
                ConfigurationError.INVALID_REPOSITORY,
            )
        return replace(self, credentials=replace(self.credentials, realm=realm))

    def with_artifact_patterns(self, *patterns: str) -> "Repository":
        return replace(self, layout=replace(self._ivy_layout(), artifact_patterns=tuple(patterns)))

    def with_metadata_patterns(self, *patterns: str) -> "Repository":
        return replace(self, layout=replace(self._ivy_layout(), metadata_patterns=tuple(patterns)))

    def _ivy_layout(self) -> IvyLayout:
        if not isinstance(self.layout, IvyLayout):
            raise ConfigurationError(
                f"Patterns only apply to Ivy repositories, {self} uses the Maven layout",
                ConfigurationError.INVALID_REPOSITORY,
            )
        return self.layout

    # -- queries ----------------------------------------------------------

    @property
    def is_maven(self) -> bool:
        return isinstance(self.layout, MavenLayout)

    @property
    def is_ivy(self) -> bool:
        return isinstance(self.layout, IvyLayout)

    @property
    def is_local(self) -> bool:
        return self.url.startswith("file:")

    def __str__(self) -> str:
        prefix = IVY_PREFIX if self.is_ivy else ""
        return prefix + safe_url(self.url)


class RepositorySet:
    """Ordered sequence of repositories, tried left to right."""

    def __init__(self, repositories: Iterable[Union[Repository, str]] = ()):
        items = []
        for repo in repositories:
            items.append(repo if isinstance(repo, Repository) else Repository.of(repo))
        self._repositories: Tuple[Repository, ...] = tuple(items)

    @classmethod
    def of(cls, *repositories: Union[Repository, str]) -> "RepositorySet":
        return cls(repositories)

    @classmethod
    def maven_central_only(cls) -> "RepositorySet":
        return cls((Repository.maven_central(),))

    def and_(self, other: Union["RepositorySet", Repository, str]) -> "RepositorySet":
        if isinstance(other, RepositorySet):
            return RepositorySet(self._repositories + other._repositories)
        return RepositorySet(self._repositories + (other,))

    @property
    def repositories(self) -> Tuple[Repository, ...]:
        return self._repositories

    def __iter__(self) -> Iterator[Repository]:
        return iter(self._repositories)

    def __len__(self) -> int:
        return len(self._repositories)

    def __bool__(self) -> bool:
        return bool(self._repositories)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, RepositorySet):
            return NotImplemented
        return self._repositories == other._repositories

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"RepositorySet({[str(r) for r in self._repositories]})"


@dataclass(frozen=True)
class PublishRepository:
    """A repository to publish to, with a filter on the versions it receives."""

    ALL = "all"
    RELEASE = "release"
    SNAPSHOT = "snapshot"

    repository: Repository
    accepts: str = ALL

    def __post_init__(self) -> None:
        if self.accepts not in (self.ALL, self.RELEASE, self.SNAPSHOT):
            raise ConfigurationError(
                f"Unknown publish filter {self.accepts!r}; expected all, release or snapshot",
                ConfigurationError.INVALID_CONFIG,
            )

    @classmethod
    def of(cls, repository: Union[Repository, str], accepts: str = ALL) -> "PublishRepository":
        if not isinstance(repository, Repository):
            repository = Repository.of(repository)
        return cls(repository, accepts)

    def accepts_version(self, version: Version) -> bool:
        if self.accepts == self.RELEASE:
            return not version.is_snapshot
        if self.accepts == self.SNAPSHOT:
            return version.is_snapshot
        return True

    def __str__(self) -> str:
        return f"{self.repository} ({self.accepts})"
