"""Coordinate and version value types.

ModuleId, Version, VersionRange and VersionedModule are immutable and safe to
share across threads and resolutions.
"""
from __future__ import annotations

import functools
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List, Optional, Tuple, Union

from depforge.constants import Constants
from depforge.exceptions import ConfigurationError

_TOKEN_RE = re.compile(r"\d+|[A-Za-z]+")
_COORD_PART_RE = re.compile(r"^[^\s:/\\]+$")
_RANGE_CHARS = set("[](),")

# Qualifier ordering: pre-releases < unknown (lexical) < release < service pack.
_QUALIFIER_RANK = {
    "alpha": 0, "a": 0,
    "beta": 1, "b": 1,
    "milestone": 2, "m": 2,
    "rc": 3, "cr": 3,
    "snapshot": 4,
    "ga": 6, "final": 6, "release": 6,
    "sp": 7,
}
_UNKNOWN_QUALIFIER_RANK = 5
_RELEASE_QUALIFIERS = ("ga", "final", "release")

Token = Tuple[str, Union[int, str]]


@dataclass(frozen=True, order=True)
class ModuleId:
    """A (group, name) pair identifying a module, ordered by group then name."""

    group: str
    name: str

    def __post_init__(self) -> None:
        for part in (self.group, self.name):
            if not isinstance(part, str) or not _COORD_PART_RE.match(part):
                raise ConfigurationError(
                    f"Illegal module coordinate part {part!r} in {self.group}:{self.name}",
                    ConfigurationError.MALFORMED_COORDINATE,
                )

    @classmethod
    def of(cls, group_or_coordinate: str, name: Optional[str] = None) -> "ModuleId":
        """Create from ``group, name`` or from a ``"group:name"`` string."""
        if name is not None:
            return cls(group_or_coordinate, name)
        parts = group_or_coordinate.strip().split(":")
        if len(parts) != 2:
            raise ConfigurationError(
                f"Expected 'group:name', got {group_or_coordinate!r}",
                ConfigurationError.MALFORMED_COORDINATE,
            )
        return cls(parts[0], parts[1])

    @property
    def group_path(self) -> str:
        """Group with dots replaced by slashes, as used by the Maven layout."""
        return self.group.replace(".", "/")

    def __str__(self) -> str:
        return f"{self.group}:{self.name}"


def _tokenize(value: str) -> Tuple[Token, ...]:
    """Split into (separator, item) pairs.

    Numbers keep the separator before them ("." or "-"; a letter/digit
    transition counts as "-"). Qualifiers compare the same either way.
    """
    tokens = []
    end = 0
    for match in _TOKEN_RE.finditer(value):
        between = value[end:match.start()]
        end = match.end()
        item = match.group()
        if not item.isdigit():
            tokens.append(("", item.lower()))
            continue
        sep = "." if between == "." or not tokens else "-"
        tokens.append((sep, int(item)))
    return _normalized(tuple(tokens))


def _normalized(tokens: Tuple[Token, ...]) -> Tuple[Token, ...]:
    """Drop trailing zeros and release qualifiers: 1.0.0 == 1 == 1.0-final."""
    end = len(tokens)
    while end > 0 and (tokens[end - 1][1] == 0 or tokens[end - 1][1] in _RELEASE_QUALIFIERS):
        end -= 1
    return tokens[:end]


def _compare_items(x: Union[int, str], y: Union[int, str]) -> int:
    if isinstance(x, int) and isinstance(y, int):
        return (x > y) - (x < y)
    if isinstance(x, int):
        return 1  # a number outranks any qualifier at the same position
    if isinstance(y, int):
        return -1
    kx = (_QUALIFIER_RANK.get(x, _UNKNOWN_QUALIFIER_RANK), x)
    ky = (_QUALIFIER_RANK.get(y, _UNKNOWN_QUALIFIER_RANK), y)
    return (kx > ky) - (kx < ky)


def _compare_tokens(left: Tuple[Token, ...], right: Tuple[Token, ...]) -> int:
    for i in range(max(len(left), len(right))):
        if i >= len(left):
            c = _compare_items(0, right[i][1])
        elif i >= len(right):
            c = _compare_items(left[i][1], 0)
        else:
            (sx, x), (sy, y) = left[i], right[i]
            if sx != sy and isinstance(x, int) and isinstance(y, int):
                # 1.1 > 1-1: a dotted number outranks a hyphenated one.
                c = 1 if sx == "." else -1
            else:
                c = _compare_items(x, y)
        if c:
            return c
    return 0


@functools.total_ordering
@dataclass(frozen=True, eq=False)
class Version:
    """A literal version such as ``1.2.0`` or ``2.0-RC1``.

    Segments compare numerically when both are numbers and lexically
    otherwise; qualifiers sort below numbers at the same position, so
    ``1.0 > 1.0-RC1``. A dotted number outranks a hyphenated one
    (``1.1 > 1-1``). Trailing zeros and ``ga``/``final``/``release``
    qualifiers are insignificant.
    """

    value: str
    _tokens: Tuple[Token, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        value = self.value.strip() if isinstance(self.value, str) else ""
        if (not value or any(c.isspace() for c in value) or _RANGE_CHARS & set(value)
                or value.endswith("+") or not _TOKEN_RE.search(value)):
            raise ConfigurationError(
                f"Malformed version literal {self.value!r}", ConfigurationError.MALFORMED_VERSION
            )
        object.__setattr__(self, "value", value)
        object.__setattr__(self, "_tokens", _tokenize(value))

    @staticmethod
    def compare(a: "Version", b: "Version") -> int:
        """Return -1, 0 or 1 as ``a`` sorts before, equal to or after ``b``."""
        return _compare_tokens(a._tokens, b._tokens)

    @property
    def is_snapshot(self) -> bool:
        return self.value.upper().endswith("-" + Constants.SNAPSHOT_QUALIFIER)

    @property
    def base(self) -> str:
        """The version without its ``-SNAPSHOT`` qualifier."""
        if self.is_snapshot:
            return self.value[: -(len(Constants.SNAPSHOT_QUALIFIER) + 1)]
        return self.value

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._tokens == other._tokens

    def __lt__(self, other: "Version") -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return _compare_tokens(self._tokens, other._tokens) < 0

    def __hash__(self) -> int:
        return hash(self._tokens)

    def __str__(self) -> str:
        return self.value


class RangeKind(Enum):
    """Shape of a requested-version expression."""
    LITERAL = "literal"
    INTERVAL = "interval"
    WILDCARD = "wildcard"
    LATEST = "latest"


@dataclass(frozen=True)
class _Interval:
    lower: Optional[Version]
    lower_inclusive: bool
    upper: Optional[Version]
    upper_inclusive: bool

    def accepts(self, version: Version) -> bool:
        if self.lower is not None:
            c = Version.compare(version, self.lower)
            if c < 0 or (c == 0 and not self.lower_inclusive):
                return False
        if self.upper is not None:
            c = Version.compare(version, self.upper)
            if c > 0 or (c == 0 and not self.upper_inclusive):
                return False
        return True


def _malformed(definition: str, why: str) -> ConfigurationError:
    return ConfigurationError(
        f"Malformed version range {definition!r}: {why}", ConfigurationError.MALFORMED_VERSION
    )


def _split_groups(definition: str) -> List[str]:
    """Split ``[1.0,2.0),[3.0,)`` into bracket groups."""
    groups: List[str] = []
    current = ""
    depth = 0
    for char in definition:
        if char in "[(":
            if depth:
                raise _malformed(definition, "nested brackets")
            depth = 1
            current = char
        elif char in "])":
            if not depth:
                raise _malformed(definition, "unbalanced brackets")
            depth = 0
            groups.append(current + char)
            current = ""
        elif depth:
            current += char
        elif char != "," and not char.isspace():
            raise _malformed(definition, f"unexpected {char!r} outside brackets")
    if depth:
        raise _malformed(definition, "unbalanced brackets")
    if not groups:
        raise _malformed(definition, "no interval")
    return groups


def _parse_interval(definition: str, group: str) -> _Interval:
    inner = group[1:-1]
    parts = [p.strip() for p in inner.split(",")]
    lower_inclusive = group.startswith("[")
    upper_inclusive = group.endswith("]")
    if len(parts) == 1:
        if not parts[0] or not (lower_inclusive and upper_inclusive):
            raise _malformed(definition, "single version must be written [x]")
        exact = Version(parts[0])
        return _Interval(exact, True, exact, True)
    if len(parts) != 2:
        raise _malformed(definition, "an interval has at most two bounds")
    lower = Version(parts[0]) if parts[0] else None
    upper = Version(parts[1]) if parts[1] else None
    if lower is not None and upper is not None and lower > upper:
        raise _malformed(definition, "lower bound above upper bound")
    return _Interval(lower, lower_inclusive, upper, upper_inclusive)


@dataclass(frozen=True)
class VersionRange:
    """A requested version: literal, interval, ``X.+`` wildcard or latest keyword."""

    definition: str
    kind: RangeKind = field(init=False, compare=False)
    _intervals: Tuple[_Interval, ...] = field(init=False, repr=False, compare=False)

    LATEST_RELEASE = "latest.release"
    LATEST_INTEGRATION = "latest.integration"

    def __post_init__(self) -> None:
        definition = self.definition.strip() if isinstance(self.definition, str) else ""
        if not definition:
            raise _malformed(str(self.definition), "empty")
        object.__setattr__(self, "definition", definition)
        intervals: Tuple[_Interval, ...] = ()
        if definition in (self.LATEST_RELEASE, self.LATEST_INTEGRATION):
            kind = RangeKind.LATEST
        elif definition.endswith("+"):
            kind = RangeKind.WILDCARD
            if _RANGE_CHARS & set(definition) or "+" in definition[:-1]:
                raise _malformed(definition, "wildcard must be a plain prefix followed by '+'")
        elif definition[0] in "[(":
            kind = RangeKind.INTERVAL
            intervals = tuple(_parse_interval(definition, g) for g in _split_groups(definition))
        else:
            kind = RangeKind.LITERAL
            Version(definition)
        object.__setattr__(self, "kind", kind)
        object.__setattr__(self, "_intervals", intervals)

    @classmethod
    def of(cls, definition: Union[str, Version, "VersionRange"]) -> "VersionRange":
        if isinstance(definition, VersionRange):
            return definition
        return cls(str(definition))

    @property
    def is_dynamic(self) -> bool:
        """True unless this range names exactly one literal version."""
        return self.kind is not RangeKind.LITERAL

    def literal(self) -> Version:
        """The literal version of a non-dynamic range."""
        if self.is_dynamic:
            raise ValueError(f"{self.definition} is not a literal version")
        return Version(self.definition)

    def accepts(self, version: Version) -> bool:
        if self.kind is RangeKind.LITERAL:
            return version == self.literal()
        if self.kind is RangeKind.LATEST:
            return self.definition == self.LATEST_INTEGRATION or not version.is_snapshot
        if self.kind is RangeKind.WILDCARD:
            return version.value.startswith(self.definition[:-1])
        return any(interval.accepts(version) for interval in self._intervals)

    def pick_highest(self, candidates: Iterable[Version]) -> Optional[Version]:
        """Return the highest candidate this range accepts, or None."""
        matching = [v for v in candidates if self.accepts(v)]
        return max(matching) if matching else None

    def __str__(self) -> str:
        return self.definition


@dataclass(frozen=True, order=True)
class VersionedModule:
    """A module at a concrete version: the identity used for artifact addressing."""

    module_id: ModuleId
    version: Version

    @classmethod
    def of(cls, module: Union[str, ModuleId], version: Union[str, Version, None] = None) -> "VersionedModule":
        """Create from ``"group:name:version"`` or from a module id and a version."""
        if version is None:
            if not isinstance(module, str) or module.count(":") != 2:
                raise ConfigurationError(
                    f"Expected 'group:name:version', got {module!r}",
                    ConfigurationError.MALFORMED_COORDINATE,
                )
            group, name, raw = module.strip().split(":")
            return cls(ModuleId(group, name), Version(raw))
        module_id = module if isinstance(module, ModuleId) else ModuleId.of(module)
        return cls(module_id, version if isinstance(version, Version) else Version(version))

    def with_version(self, version: Union[str, Version]) -> "VersionedModule":
        return VersionedModule(self.module_id, version if isinstance(version, Version) else Version(version))

    def __str__(self) -> str:
        return f"{self.module_id}:{self.version}"
