"""Scopes: named, inheritable dependency contexts (compile, test, ...).

A scope extends other scopes; dependencies declared for a scope also apply to
every scope extending it. Scopes live in a ScopeGraph, which rejects cycles
when a scope is defined instead of tolerating them during traversal.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Tuple, Union

from depforge.exceptions import ConfigurationError

logger = logging.getLogger(__name__)

_ILLEGAL_NAME_PARTS = (",", "->")

COMPILE = "compile"
PROVIDED = "provided"
RUNTIME = "runtime"
TEST = "test"

MAVEN_SCOPES = (COMPILE, RUNTIME, PROVIDED, TEST)


@dataclass(frozen=True)
class Scope:
    """A named dependency context.

    Attributes:
        name: Identifier, unique within a ScopeGraph.
        extends: Names of the scopes this one inherits from.
        transitive: Whether dependencies in this scope are resolved recursively.
        description: Human description of the purpose of the scope.
    """

    name: str
    extends: Tuple[str, ...] = ()
    transitive: bool = True
    description: str = ""

    def __post_init__(self) -> None:
        validate_scope_name(self.name)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Scope):
            return NotImplemented
        return self.name == other.name

    def __hash__(self) -> int:
        return hash(self.name)

    def __str__(self) -> str:
        return self.name


def validate_scope_name(name: str) -> None:
    """Raise ConfigurationError when ``name`` is not a legal scope name."""
    if not isinstance(name, str) or not name.strip():
        raise ConfigurationError("Scope name can't be empty", ConfigurationError.ILLEGAL_SCOPE_NAME)
    for illegal in _ILLEGAL_NAME_PARTS:
        if illegal in name:
            raise ConfigurationError(
                f"Scope name can't contain '{illegal}': {name!r}",
                ConfigurationError.ILLEGAL_SCOPE_NAME,
            )


ScopeRef = Union[str, Scope]


def _name(scope: ScopeRef) -> str:
    return scope.name if isinstance(scope, Scope) else scope


class ScopeGraph:
    """Registry of scopes by name with ancestry queries.

    The graph is built once by the caller and then only read; every query
    returns names in declaration order (self first, then parents depth-first).
    """

    def __init__(self, scopes: Iterable[Scope] = ()):
        self._scopes: Dict[str, Scope] = {}
        for scope in scopes:
            self.add(scope)

    @classmethod
    def standard(cls) -> "ScopeGraph":
        """The usual Java build scopes: compile, provided, runtime, test."""
        graph = cls()
        graph.define(COMPILE, description="Dependencies needed to compile and run the sources.")
        graph.define(PROVIDED, transitive=False,
                     description="Needed to compile, provided by the runtime environment.")
        graph.define(RUNTIME, extends=[COMPILE], description="Needed at runtime only.")
        graph.define(TEST, extends=[RUNTIME, PROVIDED],
                     description="Needed to compile and run the tests.")
        return graph

    def define(self, name: str, extends: Sequence[ScopeRef] = (), transitive: bool = True,
               description: str = "") -> Scope:
        """Define (or redefine) a scope and return it.

        Raises:
            ConfigurationError: illegal name, unknown parent, or a cycle.
        """
        return self.add(Scope(name, tuple(_name(s) for s in extends), transitive, description))

    def add(self, scope: Scope) -> Scope:
        """Register a scope value, validating its parents and acyclicity."""
        for parent in scope.extends:
            if parent != scope.name and parent not in self._scopes:
                raise ConfigurationError(
                    f"Scope {scope.name!r} extends undefined scope {parent!r}",
                    ConfigurationError.UNKNOWN_SCOPE,
                )
        cycle = self._find_path(scope.extends, scope.name)
        if cycle is not None:
            path = [scope.name] + cycle
            raise ConfigurationError(
                f"Cyclic scope definition: {' -> '.join(path)}",
                ConfigurationError.CYCLIC_SCOPE,
                path,
            )
        if scope.name in self._scopes:
            logger.debug("Redefining scope %s", scope.name)
        self._scopes[scope.name] = scope
        return scope

    def _find_path(self, starts: Sequence[str], target: str) -> Optional[List[str]]:
        """Return a path of names from one of ``starts`` to ``target``, if any."""
        stack: List[Tuple[str, List[str]]] = [(s, [s]) for s in reversed(starts)]
        seen = set()
        while stack:
            current, path = stack.pop()
            if current == target:
                return path
            if current in seen:
                continue
            seen.add(current)
            scope = self._scopes.get(current)
            if scope is None:
                continue
            for parent in reversed(scope.extends):
                stack.append((parent, path + [parent]))
        return None

    def get(self, scope: ScopeRef) -> Scope:
        name = _name(scope)
        try:
            return self._scopes[name]
        except KeyError:
            raise ConfigurationError(f"Unknown scope {name!r}", ConfigurationError.UNKNOWN_SCOPE) from None

    def __contains__(self, scope: object) -> bool:
        if isinstance(scope, (str, Scope)):
            return _name(scope) in self._scopes
        return False

    def __iter__(self) -> Iterator[Scope]:
        return iter(self._scopes.values())

    def __len__(self) -> int:
        return len(self._scopes)

    def names(self) -> Tuple[str, ...]:
        return tuple(self._scopes)

    def ancestors(self, scope: ScopeRef) -> Tuple[Scope, ...]:
        """Return the scope itself followed by every scope it extends, recursively."""
        result: Dict[str, Scope] = {}
        pending = [self.get(scope)]
        while pending:
            current = pending.pop(0)
            if current.name in result:
                continue
            result[current.name] = current
            pending.extend(self.get(parent) for parent in current.extends)
        return tuple(result.values())

    def ancestor_names(self, scope: ScopeRef) -> Tuple[str, ...]:
        return tuple(s.name for s in self.ancestors(scope))

    def is_extending(self, scope: ScopeRef, other: ScopeRef) -> bool:
        """Return True if ``scope`` extends ``other`` directly or indirectly."""
        name = _name(scope)
        return _name(other) != name and _name(other) in self.ancestor_names(name)

    def is_in_or_extending_any_of(self, scope: ScopeRef, others: Iterable[ScopeRef]) -> bool:
        ancestry = set(self.ancestor_names(scope))
        return any(_name(o) in ancestry for o in others)

    def involved_scopes(self, scopes: Iterable[ScopeRef]) -> Tuple[Scope, ...]:
        """Union of the ancestors of every given scope."""
        result: Dict[str, Scope] = {}
        for scope in scopes:
            for ancestor in self.ancestors(scope):
                result.setdefault(ancestor.name, ancestor)
        return tuple(result.values())


@dataclass(frozen=True)
class ScopeMapping:
    """Ordered (source scopes -> target configuration) pairs.

    Used to translate build scopes into a publish-time vocabulary such as
    Maven scopes or Ivy configurations.
    """

    entries: Tuple[Tuple[frozenset, str], ...] = ()

    @classmethod
    def of(cls, pairs: Union[Mapping[ScopeRef, str], Iterable[Tuple[Union[ScopeRef, Iterable[ScopeRef]], str]]]
           ) -> "ScopeMapping":
        """Build from ``{source: target}`` or ``[(sources, target), ...]``."""
        items = pairs.items() if isinstance(pairs, Mapping) else pairs
        mapping = cls()
        for sources, target in items:
            mapping = mapping.and_(sources, target)
        return mapping

    @classmethod
    def maven_default(cls) -> "ScopeMapping":
        """Map each standard scope to the Maven scope of the same name."""
        return cls.of((name, name) for name in MAVEN_SCOPES)

    def and_(self, sources: Union[ScopeRef, Iterable[ScopeRef]], target: str) -> "ScopeMapping":
        """Return a copy with one more (sources -> target) entry."""
        if isinstance(sources, (str, Scope)):
            sources = [sources]
        names = frozenset(_name(s) for s in sources)
        if not names:
            raise ConfigurationError("A scope mapping entry needs at least one source scope",
                                     ConfigurationError.INVALID_CONFIG)
        for name in names:
            validate_scope_name(name)
        validate_scope_name(target)
        return ScopeMapping(self.entries + ((names, target),))

    @property
    def source_scopes(self) -> frozenset:
        result: set = set()
        for sources, _ in self.entries:
            result |= sources
        return frozenset(result)

    def targets_for(self, scopes: Iterable[ScopeRef]) -> Tuple[str, ...]:
        """Targets of every entry whose sources intersect ``scopes``, in entry order."""
        wanted = {_name(s) for s in scopes}
        targets: Dict[str, None] = {}
        for sources, target in self.entries:
            if sources & wanted:
                targets.setdefault(target, None)
        return tuple(targets)

    def __bool__(self) -> bool:
        return bool(self.entries)

    def __str__(self) -> str:
        return "; ".join(f"{','.join(sorted(s))}->{t}" for s, t in self.entries)
