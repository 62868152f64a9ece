"""Token parsing utilities for dependency coordinates."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

from depforge.exceptions import ConfigurationError
from .models import ModuleId, VersionRange


@dataclass(frozen=True)
class Coordinate:
    """A parsed ``group:name[:version[:classifier]][@ext]`` token."""
    module_id: ModuleId
    version: Optional[VersionRange]
    classifier: Optional[str]
    ext: Optional[str]


def tokenize_rightmost_colon(s: str) -> Tuple[str, Optional[str]]:
    """Return (identifier, spec or None) using the rightmost-colon rule."""
    s = s.strip()
    if ':' not in s:
        return s, None
    identifier, spec_part = s.rsplit(':', 1)
    spec = spec_part.strip() or None
    return identifier.strip(), spec


def _split_ext(token: str) -> Tuple[str, Optional[str]]:
    if '@' not in token:
        return token, None
    body, ext = token.rsplit('@', 1)
    if not ext.strip():
        raise ConfigurationError(
            f"Empty extension in {token!r}", ConfigurationError.MALFORMED_COORDINATE
        )
    return body, ext.strip()


def parse_coordinate(token: str) -> Coordinate:
    """Parse a dependency coordinate.

    Accepted forms: ``group:name``, ``group:name:version``,
    ``group:name:version:classifier``, each optionally suffixed by ``@ext``.
    Versions may be ranges (``[1.0,2.0)``) or wildcards (``1.+``); the
    classifier is split off with the rightmost colon only when four parts
    remain once the range brackets are accounted for.

    Raises:
        ConfigurationError: malformed coordinate or version syntax.
    """
    body, ext = _split_ext(token.strip())
    head = body
    classifier = None
    # Interval ranges contain commas but never colons, so colon counting is safe.
    if head.count(':') == 3:
        head, classifier = tokenize_rightmost_colon(head)
        if classifier is None:
            raise ConfigurationError(
                f"Empty classifier in {token!r}", ConfigurationError.MALFORMED_COORDINATE
            )
    parts = head.split(':')
    if len(parts) == 2:
        return Coordinate(ModuleId(parts[0].strip(), parts[1].strip()), None, classifier, ext)
    if len(parts) == 3:
        version = VersionRange(parts[2]) if parts[2].strip() else None
        return Coordinate(ModuleId(parts[0].strip(), parts[1].strip()), version, classifier, ext)
    raise ConfigurationError(
        f"Invalid coordinate {token!r}; expected 'group:name[:version[:classifier]][@ext]'",
        ConfigurationError.MALFORMED_COORDINATE,
    )
