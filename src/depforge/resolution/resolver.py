"""Transitive resolution of a dependency set against a repository set.

Version conflicts are settled by "highest wins": every module ends up at the
highest version requested anywhere in the graph, unless a VersionProvider pins
it. To make the outcome independent of traversal order, resolution runs in
passes. Each pass walks the whole graph expanding every module at the version
selected by the previous pass (or, for modules not yet selected, at each
version requested for it), and collects every request. The new selection is
computed from those requests only after the walk, so a version asked for only
by a displaced module stops counting once that module is displaced. Passes
repeat until the selection is stable. Should selections start to cycle, later
passes never lower a version. A last walk with the stable selection produces
the result, so modules reachable only through displaced versions are dropped.

Within a walk the graph is explored breadth first. Network work for a level
(version listings, artifact lookups, descriptor downloads) runs on a bounded
thread pool; the coordinating thread alone mutates the walk state.
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import Executor, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import (Dict, FrozenSet, Iterable, List, Optional, Sequence, Set, Tuple)

from depforge.common.http_client import Transport
from depforge.common.logging_utils import Timer, extra_context, is_debug_enabled
from depforge.constants import Constants
from depforge.depmanagement.dependencies import DependencySet, ModuleDependency
from depforge.depmanagement.providers import ExclusionSet, VersionProvider
from depforge.depmanagement.scopes import ScopeGraph, ScopeRef
from depforge.exceptions import (ArtifactNotFoundError, DependencyResolutionError,
                                 RepositoryUnreachableError, ResolutionCancelledError)
from depforge.repository.locator import (UNREACHABLE, ArtifactLocator, LocatedArtifact,
                                         RepositoryAttempt)
from depforge.repository.models import RepositorySet
from depforge.versioning.models import ModuleId, Version, VersionedModule, VersionRange
from .models import ResolutionResult, UnresolvedModule

logger = logging.getLogger(__name__)

MAX_PASSES = 25
_ANY_VERSION = VersionRange("+")

ArtifactKey = Tuple[VersionedModule, Optional[str], str]


class CancellationToken:
    """Cooperative cancellation flag, safe to set from any thread."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class _Node:
    """One edge of the graph: a module requested from a parent (or the root)."""

    module_id: ModuleId
    request: Optional[VersionRange]
    classifier: Optional[str]
    ext: str
    exclusions: FrozenSet[ModuleId]
    scopes: FrozenSet[str]
    transitive: bool
    root: bool


@dataclass(frozen=True)
class _Visit:
    exclusions: FrozenSet[ModuleId]
    scopes: FrozenSet[str]
    transitive: bool

    def covers(self, node: _Node) -> bool:
        """True when expanding ``node`` can reach nothing this visit did not."""
        return (self.exclusions <= node.exclusions
                and node.scopes <= self.scopes
                and (self.transitive or not node.transitive))


@dataclass(frozen=True)
class _Fetched:
    located: Optional[LocatedArtifact]
    dependencies: Tuple[ModuleDependency, ...] = ()
    attempts: Tuple[RepositoryAttempt, ...] = ()
    error: Optional[str] = None


@dataclass
class _Walk:
    """Everything one traversal observed."""

    requested: Dict[ModuleId, Set[Version]] = field(default_factory=dict)
    scopes: Dict[ModuleId, Set[str]] = field(default_factory=dict)
    found: Dict[ModuleId, Dict[Tuple[Optional[str], str], Tuple[VersionedModule, LocatedArtifact]]] = \
        field(default_factory=dict)
    failures: Dict[Tuple[ModuleId, Optional[str]], UnresolvedModule] = field(default_factory=dict)

    def fail(self, failure: UnresolvedModule) -> None:
        self.failures.setdefault((failure.module_id, failure.requested), failure)


def _is_excluded(module_id: ModuleId, exclusions: Iterable[ModuleId]) -> bool:
    for excluded in exclusions:
        if excluded.group in ("*", module_id.group) and excluded.name in ("*", module_id.name):
            return True
    return False


def _artifact_sort_key(key: Tuple[Optional[str], str]) -> Tuple[bool, str, str]:
    # The main artifact (no classifier) first, then by classifier and extension.
    classifier, ext = key
    return (classifier is not None, classifier or "", ext)


class _Resolution:
    """State of one resolve call; owned by the coordinating thread."""

    def __init__(self, locator: ArtifactLocator, provider: VersionProvider,
                 exclusion_set: ExclusionSet, executor: Executor,
                 cancel: Optional[CancellationToken]):
        self.locator = locator
        self.provider = provider
        self.exclusion_set = exclusion_set
        self.executor = executor
        self.cancel = cancel
        self.versions: Dict[ModuleId, Tuple[Tuple[Version, ...], Tuple[RepositoryAttempt, ...]]] = {}
        self.fetched: Dict[ArtifactKey, _Fetched] = {}

    def check_cancelled(self) -> None:
        if self.cancel is not None and self.cancel.cancelled:
            raise ResolutionCancelledError("Resolution cancelled")

    # -- worker tasks -----------------------------------------------------

    def _list_versions(self, module_id: ModuleId) -> Tuple[Tuple[Version, ...], Tuple[RepositoryAttempt, ...]]:
        attempts: List[RepositoryAttempt] = []
        versions = self.locator.available_versions(module_id, attempts)
        return versions, tuple(attempts)

    def _fetch(self, key: ArtifactKey) -> _Fetched:
        module, classifier, ext = key
        try:
            located = self.locator.locate(module, classifier, ext)
        except ArtifactNotFoundError as exc:
            return _Fetched(None, (), exc.attempts, "not found in any repository")
        try:
            dependencies = self.locator.fetch_dependencies(module, located.repository)
        except RepositoryUnreachableError as exc:
            attempt = RepositoryAttempt(located.repository, exc.url, UNREACHABLE, exc.reason)
            return _Fetched(None, (), located.attempts + (attempt,),
                            f"descriptor unavailable: {exc.reason}")
        return _Fetched(located, dependencies, located.attempts)

    def _prefetch_versions(self, module_ids: Iterable[ModuleId]) -> None:
        missing = sorted({m for m in module_ids if m not in self.versions})
        futures = [self.executor.submit(self._list_versions, m) for m in missing]
        for module_id, future in zip(missing, futures):
            self.versions[module_id] = future.result()

    def _prefetch_artifacts(self, keys: Iterable[ArtifactKey]) -> None:
        missing = sorted({k for k in keys if k not in self.fetched},
                         key=lambda k: (k[0], _artifact_sort_key((k[1], k[2]))))
        futures = [self.executor.submit(self._fetch, k) for k in missing]
        for key, future in zip(missing, futures):
            self.fetched[key] = future.result()

    # -- traversal --------------------------------------------------------

    def _needs_listing(self, node: _Node) -> bool:
        if self.provider.version_of(node.module_id) is not None:
            return False
        if node.request is None:
            return node.root
        return node.request.is_dynamic

    def _requested_version(self, node: _Node) -> Tuple[Optional[Version], Optional[UnresolvedModule]]:
        pinned = self.provider.version_of(node.module_id)
        if pinned is not None:
            return pinned, None
        request = node.request
        if request is None:
            if not node.root:
                logger.debug("Skipping %s: no version declared or pinned", node.module_id)
                return None, None
            request = _ANY_VERSION
        if not request.is_dynamic:
            return request.literal(), None
        versions, attempts = self.versions[node.module_id]
        chosen = request.pick_highest(versions)
        if chosen is None:
            return None, UnresolvedModule(node.module_id, str(request),
                                          f"no available version matches {request}", attempts)
        return chosen, None

    def walk(self, roots: Sequence[_Node], selected: Dict[ModuleId, Version]) -> _Walk:
        walk = _Walk()
        visits: Dict[VersionedModule, List[_Visit]] = {}
        level: List[_Node] = list(roots)
        while level:
            self.check_cancelled()
            self._prefetch_versions(n.module_id for n in level if self._needs_listing(n))

            todo: List[Tuple[_Node, VersionedModule]] = []
            for node in level:
                requested, failure = self._requested_version(node)
                if failure is not None:
                    walk.fail(failure)
                    continue
                if requested is None:
                    continue
                walk.requested.setdefault(node.module_id, set()).add(requested)
                module = VersionedModule(node.module_id, selected.get(node.module_id, requested))
                previous = visits.setdefault(module, [])
                if any(v.covers(node) for v in previous):
                    continue
                previous.append(_Visit(node.exclusions, node.scopes, node.transitive))
                todo.append((node, module))

            self._prefetch_artifacts((module, node.classifier, node.ext) for node, module in todo)

            next_level: List[_Node] = []
            for node, module in todo:
                self.check_cancelled()
                fetched = self.fetched[(module, node.classifier, node.ext)]
                if fetched.located is None:
                    walk.fail(UnresolvedModule(module.module_id, module.version.value,
                                               fetched.error or "not found", fetched.attempts))
                    continue
                walk.scopes.setdefault(module.module_id, set()).update(node.scopes)
                walk.found.setdefault(module.module_id, {})[(node.classifier, node.ext)] = \
                    (module, fetched.located)
                if not node.transitive:
                    continue
                for dep in fetched.dependencies:
                    if _is_excluded(dep.module_id, node.exclusions):
                        logger.debug("Excluding %s below %s", dep.module_id, module)
                        continue
                    exclusions = (node.exclusions | frozenset(dep.exclusions)
                                  | self.exclusion_set.excludes_for(dep.module_id))
                    next_level.append(_Node(
                        dep.module_id, dep.version, dep.classifier,
                        dep.ext or Constants.DEFAULT_ARTIFACT_EXT, exclusions, node.scopes,
                        dep.transitive, False,
                    ))
            level = next_level
        return walk

    def select(self, walk: _Walk, floor: Optional[Dict[ModuleId, Version]] = None
               ) -> Dict[ModuleId, Version]:
        """Highest requested version per module; never below ``floor`` when given."""
        selected: Dict[ModuleId, Version] = {}
        for module_id, versions in walk.requested.items():
            pinned = self.provider.version_of(module_id)
            if pinned is not None:
                selected[module_id] = pinned
                continue
            best = max(versions)
            earlier = floor.get(module_id) if floor else None
            if earlier is not None and earlier > best:
                best = earlier
            if len(versions) > 1 and is_debug_enabled(logger):
                logger.debug("Version conflict", extra=extra_context(
                    event="conflict", component="resolver", module=str(module_id),
                    requested=sorted(str(v) for v in versions), selected=str(best)))
            selected[module_id] = best
        return selected


class Resolver:
    """Resolves dependency sets against one repository set."""

    def __init__(
        self,
        repositories: RepositorySet,
        scope_graph: Optional[ScopeGraph] = None,
        transport: Optional[Transport] = None,
        max_workers: Optional[int] = None,
    ):
        """Initialize the resolver.

        Args:
            repositories: Repositories to read from, in priority order.
            scope_graph: Scopes known to the build (defaults to the standard ones).
            transport: Transport shared by every lookup.
            max_workers: Size of the download pool (Constants.RESOLVE_MAX_WORKERS).
        """
        self.repositories = repositories
        self.scope_graph = scope_graph or ScopeGraph.standard()
        self.locator = ArtifactLocator(repositories, transport)
        self.max_workers = max(1, max_workers or Constants.RESOLVE_MAX_WORKERS)

    def _scopes_transitive(self, names: Iterable[str]) -> bool:
        return any(self.scope_graph.get(n).transitive if n in self.scope_graph else True for n in names)

    def _roots(self, dependency_set: DependencySet, scope: ScopeRef,
               exclusion_set: ExclusionSet) -> List[_Node]:
        requested = self.scope_graph.get(scope)
        ancestry = set(self.scope_graph.ancestor_names(requested))
        roots = []
        entries = dependency_set.declared_with(requested, self.scope_graph)
        for entry in entries:
            if not entry.is_module:
                continue
            dep = entry.dependency
            names = frozenset(entry.effective_scopes & ancestry) or frozenset((requested.name,))
            roots.append(_Node(
                dep.module_id,
                dep.version,
                dep.classifier,
                dep.ext or Constants.DEFAULT_ARTIFACT_EXT,
                dependency_set.effective_exclusions(dep.module_id, exclusion_set),
                names,
                dep.transitive and self._scopes_transitive(names),
                True,
            ))
        skipped = len(entries) - len(roots)
        if skipped:
            logger.debug("Skipping %d project dependency(ies)", skipped)
        return roots

    def resolve(
        self,
        dependency_set: DependencySet,
        scope: ScopeRef,
        version_provider: Optional[VersionProvider] = None,
        exclusion_set: Optional[ExclusionSet] = None,
        strict: bool = False,
        cancel: Optional[CancellationToken] = None,
    ) -> ResolutionResult:
        """Resolve ``dependency_set`` for ``scope``.

        Raises:
            ConfigurationError: unknown scope, before any network activity.
            DependencyResolutionError: strict mode and at least one module is
                unresolved; raised after the whole graph was traversed.
            ResolutionCancelledError: ``cancel`` was triggered.
        """
        provider = version_provider or VersionProvider.empty()
        exclusions = exclusion_set or ExclusionSet.empty()
        roots = self._roots(dependency_set, scope, exclusions)
        logger.info("Resolving %d dependency(ies) for scope %s", len(roots), scope)

        with Timer() as timer, ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            state = _Resolution(self.locator, provider, exclusions, executor, cancel)
            selected: Dict[ModuleId, Version] = {}
            history: List[Dict[ModuleId, Version]] = []
            monotone = False
            for passes in range(1, MAX_PASSES + 1):
                walk = state.walk(roots, selected)
                proposal = state.select(walk, selected if monotone else None)
                if proposal == selected:
                    break
                if not monotone and proposal in history:
                    # Selections cycle; from here on versions may only go up.
                    logger.debug("Version selection oscillates after %d passes", passes)
                    monotone = True
                    proposal = state.select(walk, selected)
                    if proposal == selected:
                        break
                history.append(selected)
                selected = proposal
            else:
                logger.warning("Version selection did not settle after %d passes", MAX_PASSES)
            walk = state.walk(roots, selected)
            result = self._result(walk, selected)

        if is_debug_enabled(logger):
            logger.debug("Resolution finished", extra=extra_context(
                event="resolve", component="resolver", passes=passes, resolved=len(result.resolved_modules),
                unresolved=len(result.unresolved), duration_ms=timer.duration_ms()))
        for item in result.unresolved:
            logger.warning("Unresolved dependency %s", item)
        if strict and result.unresolved:
            raise DependencyResolutionError(result.unresolved, result)
        return result

    @staticmethod
    def _result(walk: _Walk, selected: Dict[ModuleId, Version]) -> ResolutionResult:
        resolved = set()
        locations = {}
        for module_id, artifacts in walk.found.items():
            module, located = artifacts[min(artifacts, key=_artifact_sort_key)]
            resolved.add(module)
            locations[module_id] = located
        displaced = {}
        for module_id, versions in walk.requested.items():
            chosen = selected.get(module_id)
            losers = tuple(sorted(v for v in versions if chosen is not None and v != chosen))
            if losers:
                displaced[module_id] = losers
        unresolved = tuple(walk.failures[k] for k in sorted(walk.failures, key=lambda k: (k[0], k[1] or "")))
        return ResolutionResult(
            resolved_modules=frozenset(resolved),
            per_module_scopes={m: frozenset(s) for m, s in walk.scopes.items()},
            unresolved=unresolved,
            locations=locations,
            displaced=displaced,
        )


def resolve(
    scope: ScopeRef,
    dependency_set: DependencySet,
    version_provider: Optional[VersionProvider] = None,
    exclusion_set: Optional[ExclusionSet] = None,
    repository_set: Optional[RepositorySet] = None,
    strict: bool = False,
    *,
    scope_graph: Optional[ScopeGraph] = None,
    cancel: Optional[CancellationToken] = None,
    transport: Optional[Transport] = None,
) -> ResolutionResult:
    """Resolve ``dependency_set`` for ``scope``; Maven Central when no repositories are given."""
    repositories = repository_set if repository_set is not None else RepositorySet.maven_central_only()
    resolver = Resolver(repositories, scope_graph, transport)
    return resolver.resolve(dependency_set, scope, version_provider, exclusion_set, strict, cancel)
