"""Exception hierarchy for dependency resolution and publication.

Every public exception inherits from DepforgeError so callers can catch the
whole family without swallowing unrelated errors. Errors that describe many
failures at once (strict resolution, partial uploads) carry the details as
attributes rather than only in the message.
"""
from __future__ import annotations

from typing import Any, Iterable, Optional, Sequence, Tuple


class DepforgeError(Exception):
    """Base exception for all depforge errors."""


class ConfigurationError(DepforgeError):
    """Raised for invalid static configuration, before any network activity.

    Attributes:
        kind: Short machine-readable category (see the class constants).
        path: Optional sequence of names describing where the problem is,
            e.g. the scope cycle ``("a", "b", "a")``.
    """

    CYCLIC_SCOPE = "CyclicScope"
    ILLEGAL_SCOPE_NAME = "IllegalScopeName"
    UNKNOWN_SCOPE = "UnknownScope"
    MALFORMED_COORDINATE = "MalformedCoordinate"
    MALFORMED_VERSION = "MalformedVersion"
    INVALID_REPOSITORY = "InvalidRepository"
    INVALID_CONFIG = "InvalidConfig"

    def __init__(self, message: str, kind: str = INVALID_CONFIG,
                 path: Optional[Sequence[str]] = None):
        super().__init__(message)
        self.kind = kind
        self.path: Tuple[str, ...] = tuple(path or ())


class RepositoryUnreachableError(DepforgeError):
    """A single repository could not be contacted, timed out or refused auth."""

    def __init__(self, url: str, reason: str):
        super().__init__(f"Repository unreachable ({url}): {reason}")
        self.url = url
        self.reason = reason


class ArtifactNotFoundError(DepforgeError):
    """No repository of the set holds the requested artifact."""

    def __init__(self, module: Any, attempts: Iterable[Any] = ()):
        self.module = module
        self.attempts = tuple(attempts)
        tried = ", ".join(str(a) for a in self.attempts) or "no repository"
        super().__init__(f"Artifact {module} not found (tried: {tried})")


class DependencyResolutionError(DepforgeError):
    """Aggregate error raised in strict mode once the traversal completed.

    Attributes:
        unresolved: Every UnresolvedModule with its per-repository trace.
        result: The ResolutionResult computed before failing, for diagnostics.
    """

    def __init__(self, unresolved: Sequence[Any], result: Any = None):
        self.unresolved = tuple(unresolved)
        self.result = result
        lines = [f"{len(self.unresolved)} module(s) could not be resolved:"]
        for item in self.unresolved:
            lines.append(f"  - {item}")
        super().__init__("\n".join(lines))


class ResolutionCancelledError(DepforgeError):
    """Resolution was cancelled cooperatively; no partial result exists."""


class PublishError(DepforgeError):
    """Base class for publication failures."""


class ArtifactAlreadyExistsError(PublishError):
    """Attempt to overwrite an immutable release in a repository."""

    def __init__(self, module: Any, repository_url: str):
        super().__init__(f"{module} already exists in {repository_url}; releases are write-once")
        self.module = module
        self.repository_url = repository_url


class PublishTransportError(PublishError):
    """An upload failed partway through a publication.

    Uploads already performed are left in place.
    """

    def __init__(self, message: str, completed: Iterable[str] = (),
                 incomplete: Iterable[str] = (), receipts: Iterable[Any] = ()):
        self.completed = tuple(completed)
        self.incomplete = tuple(incomplete)
        self.receipts = tuple(receipts)
        super().__init__(
            f"{message} (completed: {len(self.completed)}, incomplete: {len(self.incomplete)})"
        )
