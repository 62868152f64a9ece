"""Tests for transitive resolution against file-backed Maven repositories."""

from unittest.mock import patch

import pytest
import requests

from depforge.common.http_client import Transport
from depforge.depmanagement import (DependencySet, ExclusionSet, ModuleDependency, ScopeGraph,
                                    VersionProvider)
from depforge.exceptions import (ConfigurationError, DependencyResolutionError,
                                 ResolutionCancelledError)
from depforge.publication.ivy import read_ivy_dependencies
from depforge.repository import Repository, RepositorySet
from depforge.repository.locator import NOT_FOUND, UNREACHABLE, ArtifactLocator
from depforge.resolution import CancellationToken, Resolver, resolve
from depforge.versioning import ModuleId, Version, VersionedModule


def _versions(result):
    return {str(m.module_id): str(m.version) for m in result.resolved_modules}


class TestConflictResolution:
    """Highest version wins, pins override."""

    def test_highest_requested_version_wins(self, maven_repo):
        """M 1.0 declared directly, M 2.0 pulled by A: 2.0 is selected."""
        maven_repo.add("org.m:m:1.0", ["org.x:x:1.0"])
        maven_repo.add("org.m:m:2.0")
        maven_repo.add("org.x:x:1.0")
        maven_repo.add("org.a:a:1.0", ["org.m:m:2.0"])
        deps = DependencySet().on("org.m:m:1.0", "compile").on("org.a:a:1.0", "compile")

        result = resolve("compile", deps, repository_set=RepositorySet.of(maven_repo.repository))

        assert _versions(result) == {"org.m:m": "2.0", "org.a:a": "1.0"}
        assert result.displaced[ModuleId("org.m", "m")] == (Version("1.0"),)
        assert result.is_complete

    def test_order_of_declaration_does_not_matter(self, maven_repo):
        """Declaring A first gives the same selection."""
        maven_repo.add("org.m:m:1.0")
        maven_repo.add("org.m:m:2.0")
        maven_repo.add("org.a:a:1.0", ["org.m:m:2.0"])
        first = DependencySet().on("org.a:a:1.0").on("org.m:m:1.0")
        second = DependencySet().on("org.m:m:1.0").on("org.a:a:1.0")
        repos = RepositorySet.of(maven_repo.repository)

        assert _versions(resolve("compile", first, repository_set=repos)) == \
            _versions(resolve("compile", second, repository_set=repos))

    def test_requests_from_displaced_versions_do_not_count(self, maven_repo):
        """Only B 2.0's request for C matters once B 1.0 loses to it."""
        maven_repo.add("org.c:c:1.0")
        maven_repo.add("org.c:c:3.0")
        maven_repo.add("org.b:b:1.0", ["org.c:c:3.0"])
        maven_repo.add("org.b:b:2.0", ["org.c:c:1.0"])
        maven_repo.add("org.a:a:1.0", ["org.b:b:2.0"])
        deps = DependencySet().on("org.a:a:1.0").on("org.b:b:1.0")

        result = resolve("compile", deps, repository_set=RepositorySet.of(maven_repo.repository))

        assert _versions(result) == {"org.a:a": "1.0", "org.b:b": "2.0", "org.c:c": "1.0"}
        assert dict(result.displaced) == {ModuleId("org.b", "b"): (Version("1.0"),)}

    def test_pin_overrides_every_request(self, maven_repo):
        """A pinned version is used even when higher ones are requested."""
        maven_repo.add("org.m:m:1.5")
        maven_repo.add("org.m:m:2.0")
        maven_repo.add("org.a:a:1.0", ["org.m:m:2.0"])
        deps = DependencySet().on("org.a:a:1.0")

        result = resolve("compile", deps, VersionProvider.of("org.m:m", "1.5"),
                         repository_set=RepositorySet.of(maven_repo.repository))

        assert result.version_of(ModuleId("org.m", "m")) == Version("1.5")

    def test_range_picks_highest_available(self, maven_repo):
        """Intervals are matched against the repository's version list."""
        for version in ("1.0", "1.5", "2.0"):
            maven_repo.add(f"org.m:m:{version}")
        deps = DependencySet().on("org.m:m:[1.0,2.0)")

        result = resolve("compile", deps, repository_set=RepositorySet.of(maven_repo.repository))

        assert _versions(result) == {"org.m:m": "1.5"}

    def test_versionless_root_takes_latest(self, maven_repo):
        """A root dependency without version resolves to the highest one."""
        maven_repo.add("org.m:m:1.0")
        maven_repo.add("org.m:m:3.0")

        result = resolve("compile", DependencySet().on("org.m:m"),
                         repository_set=RepositorySet.of(maven_repo.repository))

        assert _versions(result) == {"org.m:m": "3.0"}


class TestScopesAndExclusions:
    """Scope filtering and exclusions."""

    def test_compile_excludes_test_dependencies(self, maven_repo):
        """Only dependencies declared for the scope's ancestry are roots."""
        maven_repo.add("org.lib:main:1.0")
        maven_repo.add("junit:junit:4.13", ["org.hamcrest:hamcrest:1.3"])
        maven_repo.add("org.hamcrest:hamcrest:1.3")
        deps = DependencySet().on("org.lib:main:1.0", "compile").on("junit:junit:4.13", "test")
        repos = RepositorySet.of(maven_repo.repository)

        compile_result = resolve("compile", deps, repository_set=repos)
        test_result = resolve("test", deps, repository_set=repos)

        assert set(_versions(compile_result)) == {"org.lib:main"}
        assert set(_versions(test_result)) == {"org.lib:main", "junit:junit", "org.hamcrest:hamcrest"}
        assert test_result.per_module_scopes[ModuleId("org.hamcrest", "hamcrest")] == frozenset({"test"})
        assert test_result.per_module_scopes[ModuleId("org.lib", "main")] == frozenset({"compile"})

    def test_non_transitive_scope(self, maven_repo):
        """provided dependencies are not expanded."""
        maven_repo.add("javax.servlet:servlet-api:3.1", ["org.x:x:1.0"])
        maven_repo.add("org.x:x:1.0")
        deps = DependencySet().on("javax.servlet:servlet-api:3.1", "provided")

        result = resolve("test", deps, repository_set=RepositorySet.of(maven_repo.repository))

        assert set(_versions(result)) == {"javax.servlet:servlet-api"}

    def test_exclusion_applies_to_its_path_only(self, maven_repo):
        """X excluded below B is still reached through C."""
        maven_repo.add("org.x:x:1.0")
        maven_repo.add("org.b:b:1.0", ["org.x:x:1.0"])
        maven_repo.add("org.c:c:1.0", ["org.x:x:1.0"])
        maven_repo.add("org.a:a:1.0", [("org.b:b:1.0", None, ["org.x:x"]), "org.c:c:1.0"])
        repos = RepositorySet.of(maven_repo.repository)

        through_both = resolve("compile", DependencySet().on("org.a:a:1.0"), repository_set=repos)
        only_b = resolve("compile", DependencySet().on(
            ModuleDependency.of("org.b:b:1.0").and_exclude("org.x:x")), repository_set=repos)

        assert "org.x:x" in _versions(through_both)
        assert set(_versions(only_b)) == {"org.b:b"}

    def test_excluded_module_declared_directly_is_kept(self, maven_repo):
        """Excluding X below A doesn't drop an independent direct dependency on X."""
        maven_repo.add("org.x:x:1.0")
        maven_repo.add("org.a:a:1.0", ["org.x:x:1.0"])
        deps = (DependencySet()
                .on(ModuleDependency.of("org.a:a:1.0").and_exclude("org.x:x"))
                .on("org.x:x:1.0"))

        result = resolve("compile", deps, repository_set=RepositorySet.of(maven_repo.repository))

        assert set(_versions(result)) == {"org.a:a", "org.x:x"}

    def test_exclusion_set_and_wildcard(self, maven_repo):
        """Table exclusions and org:* wildcards cut the graph."""
        maven_repo.add("org.noise:one:1.0")
        maven_repo.add("org.noise:two:1.0")
        maven_repo.add("org.a:a:1.0", ["org.noise:one:1.0", "org.noise:two:1.0"])
        repos = RepositorySet.of(maven_repo.repository)

        result = resolve("compile", DependencySet().on("org.a:a:1.0"),
                         exclusion_set=ExclusionSet({"org.a:a": ["org.noise:*"]}), repository_set=repos)

        assert set(_versions(result)) == {"org.a:a"}

    def test_non_transitive_dependency(self, maven_repo):
        """with_transitive(False) keeps the module but not its dependencies."""
        maven_repo.add("org.x:x:1.0")
        maven_repo.add("org.a:a:1.0", ["org.x:x:1.0"])

        result = resolve("compile", DependencySet().on(ModuleDependency.of("org.a:a:1.0").with_transitive(False)),
                         repository_set=RepositorySet.of(maven_repo.repository))

        assert set(_versions(result)) == {"org.a:a"}

    def test_unknown_scope(self, maven_repo):
        """Unknown scopes fail before any lookup."""
        with pytest.raises(ConfigurationError) as exc:
            resolve("nightly", DependencySet().on("org.a:a:1.0"),
                    repository_set=RepositorySet.of(maven_repo.repository))
        assert exc.value.kind == ConfigurationError.UNKNOWN_SCOPE


class TestFailures:
    """Missing modules, unreachable repositories, strictness and cancellation."""

    def test_missing_module_is_reported(self, maven_repo):
        """Lenient mode returns the rest and lists what failed."""
        maven_repo.add("org.a:a:1.0", ["org.gone:gone:1.0"])

        result = resolve("compile", DependencySet().on("org.a:a:1.0"),
                         repository_set=RepositorySet.of(maven_repo.repository))

        assert set(_versions(result)) == {"org.a:a"}
        assert not result.is_complete
        missing = result.unresolved[0]
        assert missing.module_id == ModuleId("org.gone", "gone")
        assert missing.attempts[0].outcome == NOT_FOUND

    def test_unusable_coordinates_in_a_descriptor_are_skipped(self, maven_repo):
        """A bad exclusion or dependency in a fetched POM doesn't stop resolution."""
        maven_repo.add("org.c:c:1.0")
        maven_repo.add("org.b:b:1.0", [
            ("org.c:c:1.0", None, ["org.bad:bad name"]),
            "org.bad:bad name:1.0",
        ])
        maven_repo.add("org.a:a:1.0", ["org.b:b:1.0"])

        result = resolve("compile", DependencySet().on("org.a:a:1.0"),
                         repository_set=RepositorySet.of(maven_repo.repository))

        assert _versions(result) == {"org.a:a": "1.0", "org.b:b": "1.0", "org.c:c": "1.0"}
        assert result.is_complete

    def test_strict_mode_raises_after_traversal(self, maven_repo):
        """Strict mode raises with every unresolved module and the result."""
        maven_repo.add("org.a:a:1.0", ["org.gone:one:1.0", "org.gone:two:1.0"])

        with pytest.raises(DependencyResolutionError) as exc:
            resolve("compile", DependencySet().on("org.a:a:1.0"),
                    repository_set=RepositorySet.of(maven_repo.repository), strict=True)

        assert [str(u.module_id) for u in exc.value.unresolved] == ["org.gone:one", "org.gone:two"]
        assert VersionedModule.of("org.a:a:1.0") in exc.value.result

    def test_unreachable_repository_falls_through(self, maven_repo):
        """An unreachable repository is skipped and recorded in the trace."""
        maven_repo.add("org.a:a:1.0")
        remote = Repository.maven("https://down.example.com/maven2")
        transport = Transport(retries=1)

        with patch.object(requests.Session, "request",
                          side_effect=requests.ConnectionError("connection refused")):
            result = resolve("compile", DependencySet().on("org.a:a:1.0"),
                             repository_set=RepositorySet.of(remote, maven_repo.repository),
                             transport=transport)

        location = result.locations[ModuleId("org.a", "a")]
        assert location.repository == maven_repo.repository
        assert location.attempts[0].repository == remote
        assert location.attempts[0].outcome == UNREACHABLE

    def test_first_repository_wins(self, maven_repo, second_maven_repo):
        """When both repositories hold the artifact, the first is used."""
        maven_repo.add("org.a:a:1.0")
        second_maven_repo.add("org.a:a:1.0")

        result = resolve("compile", DependencySet().on("org.a:a:1.0"),
                         repository_set=RepositorySet.of(maven_repo.repository, second_maven_repo.repository))

        assert result.locations[ModuleId("org.a", "a")].repository == maven_repo.repository

    def test_cancelled_resolution(self, maven_repo):
        """A cancelled token stops the resolution."""
        maven_repo.add("org.a:a:1.0")
        token = CancellationToken()
        token.cancel()
        resolver = Resolver(RepositorySet.of(maven_repo.repository), ScopeGraph.standard())

        with pytest.raises(ResolutionCancelledError):
            resolver.resolve(DependencySet().on("org.a:a:1.0"), "compile", cancel=token)

    def test_result_as_version_provider(self, maven_repo):
        """A result can pin a later resolution."""
        maven_repo.add("org.a:a:1.0")

        result = resolve("compile", DependencySet().on("org.a:a:1.0"),
                         repository_set=RepositorySet.of(maven_repo.repository))

        assert result.as_version_provider().version_of("org.a:a") == Version("1.0")


class TestLocator:
    """Version listing and descriptor reading."""

    def test_versions_from_directory_without_metadata(self, maven_repo):
        """Local repositories without maven-metadata.xml are listed by directory."""
        maven_repo.add("org.a:a:1.0")
        maven_repo.add("org.a:a:1.2")
        (maven_repo.root / "org" / "a" / "a" / "maven-metadata.xml").unlink()

        locator = ArtifactLocator(RepositorySet.of(maven_repo.repository))

        assert locator.available_versions(ModuleId("org.a", "a")) == (Version("1.0"), Version("1.2"))

    def test_malformed_metadata_is_recorded(self, maven_repo):
        """A broken metadata file is skipped and traced."""
        maven_repo.add("org.a:a:1.0")
        (maven_repo.root / "org" / "a" / "a" / "maven-metadata.xml").write_text("<metadata>")
        attempts = []

        versions = ArtifactLocator(RepositorySet.of(maven_repo.repository)).available_versions(
            ModuleId("org.a", "a"), attempts)

        assert versions == ()
        assert attempts[0].outcome == "malformed"

    def test_unusable_ivy_exclusion_is_skipped(self):
        """Only the bad exclusion is dropped; the dependency stays."""
        ivy = (b'<ivy-module version="2.0"><info organisation="org.a" module="a" revision="1.0"/>'
               b'<dependencies><dependency org="org.c" name="c" rev="1.0">'
               b'<exclude org="org.bad" module="bad name"/><exclude org="org.x" module="x"/>'
               b'</dependency><dependency org="org.bad" name="bad name" rev="1.0"/>'
               b'</dependencies></ivy-module>')

        deps = read_ivy_dependencies(ivy)

        assert [str(d.module_id) for d in deps] == ["org.c:c"]
        assert deps[0].exclusions == (ModuleId("org.x", "x"),)

    def test_fetch_dependencies_of_missing_descriptor(self, maven_repo):
        """A module without descriptor has no dependencies."""
        version_dir = maven_repo.add("org.a:a:1.0")
        (version_dir / "a-1.0.pom").unlink()

        locator = ArtifactLocator(RepositorySet.of(maven_repo.repository))

        assert locator.fetch_dependencies(VersionedModule.of("org.a:a:1.0"), maven_repo.repository) == ()
