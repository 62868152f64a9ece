"""Tests for repository values and Maven/Ivy path layouts."""

import pytest

from depforge.exceptions import ConfigurationError
from depforge.repository import (PublishRepository, Repository, RepositorySet, artifact_url,
                                 descriptor_url, render_ivy_pattern)
from depforge.repository.layout import (ivy_metadata_listing_dir, ivy_revision_regex,
                                        maven_artifact_path, maven_version_metadata_path)
from depforge.versioning import ModuleId, Version, VersionedModule

CORE = VersionedModule.of("org.example:core:1.0")
PATTERN = "[organisation]/[module]/[revision]/[artifact]-[revision](-[classifier]).[ext]"


class TestRepository:
    """Repository construction and copy-on-write updates."""

    def test_directory_becomes_file_uri(self, tmp_path):
        """A plain path is normalised into a file URL."""
        repo = Repository.of(tmp_path)

        assert repo.url == tmp_path.absolute().as_uri()
        assert repo.is_local
        assert repo.is_maven

    def test_ivy_prefix_selects_ivy_layout(self):
        """ivy: prefix gives an Ivy repository."""
        repo = Repository.of("ivy:https://repo.example.com/ivy/")

        assert repo.is_ivy
        assert repo.url == "https://repo.example.com/ivy"
        assert str(repo) == "ivy:https://repo.example.com/ivy"

    def test_unsupported_scheme(self):
        """Only http, https and file are accepted."""
        with pytest.raises(ConfigurationError) as exc:
            Repository.of("ftp://repo.example.com")
        assert exc.value.kind == ConfigurationError.INVALID_REPOSITORY

    def test_credentials_and_realm(self):
        """Credentials don't affect equality and are masked in repr."""
        repo = Repository.maven("https://repo.example.com").with_credentials("bob", "secret")

        with_realm = repo.with_realm("Nexus")

        assert with_realm.credentials.realm == "Nexus"
        assert with_realm == Repository.maven("https://repo.example.com")
        assert "secret" not in repr(with_realm.credentials)

    def test_realm_without_credentials(self):
        """A realm needs credentials."""
        with pytest.raises(ConfigurationError):
            Repository.maven_central().with_realm("Nexus")

    def test_optional_credentials(self):
        """Credentials are attached only when a username is given."""
        repo = Repository.maven_central()

        assert repo.with_optional_credentials(None, "pw").credentials is None
        assert repo.with_optional_credentials("alice", "pw").credentials.username == "alice"

    def test_patterns_only_on_ivy(self):
        """Patterns can't be set on a Maven repository."""
        with pytest.raises(ConfigurationError):
            Repository.maven_central().with_artifact_patterns(PATTERN)

    def test_ossrh_snapshot_realm(self):
        """OSSRH factories bind the Nexus realm."""
        repo = Repository.maven_ossrh_snapshot("user", "pw")

        assert repo.credentials.realm == "Sonatype Nexus Repository Manager"

    def test_repository_set_order(self):
        """Repositories are kept in declaration order."""
        repos = RepositorySet.of("https://a.example.com").and_(Repository.maven_central())

        assert [r.url for r in repos] == ["https://a.example.com", "https://repo1.maven.org/maven2"]
        assert len(RepositorySet.maven_central_only()) == 1

    def test_publish_filter(self):
        """Release and snapshot filters."""
        releases = PublishRepository.of("https://a.example.com", PublishRepository.RELEASE)

        assert releases.accepts_version(Version("1.0"))
        assert not releases.accepts_version(Version("1.0-SNAPSHOT"))
        with pytest.raises(ConfigurationError):
            PublishRepository.of("https://a.example.com", "nightly")


class TestMavenLayout:
    """Maven paths."""

    def test_artifact_path(self):
        """Group dots become directories."""
        assert maven_artifact_path(CORE) == "org/example/core/1.0/core-1.0.jar"
        assert maven_artifact_path(CORE, "sources", "jar") == "org/example/core/1.0/core-1.0-sources.jar"

    def test_timestamped_snapshot_file(self):
        """Snapshot files keep the -SNAPSHOT directory but a timestamped name."""
        module = VersionedModule.of("org.example:core:1.0-SNAPSHOT")

        path = maven_artifact_path(module, file_version="1.0-20240102.030405-7")

        assert path == "org/example/core/1.0-SNAPSHOT/core-1.0-20240102.030405-7.jar"
        assert maven_version_metadata_path(module) == "org/example/core/1.0-SNAPSHOT/maven-metadata.xml"

    def test_urls(self):
        """Artifact and POM URLs join onto the repository URL."""
        repo = Repository.maven("https://repo.example.com/maven2/")

        assert artifact_url(repo, CORE) == "https://repo.example.com/maven2/org/example/core/1.0/core-1.0.jar"
        assert descriptor_url(repo, CORE) == "https://repo.example.com/maven2/org/example/core/1.0/core-1.0.pom"


class TestIvyLayout:
    """Ivy pattern rendering."""

    def test_optional_segment_dropped_without_value(self):
        """(-[classifier]) disappears when there is no classifier."""
        tokens = {"organisation": "org.example", "module": "core", "revision": "1.0",
                  "artifact": "core", "ext": "jar", "classifier": None}

        assert render_ivy_pattern(PATTERN, tokens) == "org.example/core/1.0/core-1.0.jar"

    def test_optional_segment_kept_with_value(self):
        """The segment is kept without its parentheses."""
        tokens = {"organisation": "org.example", "module": "core", "revision": "1.0",
                  "artifact": "core", "ext": "jar", "classifier": "sources"}

        assert render_ivy_pattern(PATTERN, tokens) == "org.example/core/1.0/core-1.0-sources.jar"

    def test_unknown_tokens_untouched(self):
        """Tokens without a value stay as written."""
        assert render_ivy_pattern("[module]/[branch]", {"module": "core"}) == "core/[branch]"

    def test_custom_patterns_drive_urls(self):
        """The first artifact and metadata patterns are used."""
        repo = Repository.ivy("https://ivy.example.com", [PATTERN],
                              ["[organisation]/[module]/[revision]/ivy.xml"])

        assert artifact_url(repo, CORE) == "https://ivy.example.com/org.example/core/1.0/core-1.0.jar"
        assert descriptor_url(repo, CORE) == "https://ivy.example.com/org.example/core/1.0/ivy.xml"

    def test_default_patterns(self):
        """Default patterns use [type]s directories and ivy-[revision].xml."""
        repo = Repository.ivy("https://ivy.example.com")

        assert descriptor_url(repo, CORE) == "https://ivy.example.com/org.example/core/ivy-1.0.xml"
        assert artifact_url(repo, CORE, "sources").startswith("https://ivy.example.com/org.example/core/sourcess/")

    def test_revision_listing(self):
        """Revisions are listed from the directory of the metadata pattern."""
        pattern = "[organisation]/[module]/ivy-[revision].xml"
        module_id = ModuleId("org.example", "core")

        assert ivy_metadata_listing_dir(pattern, module_id) == "org.example/core"
        assert ivy_revision_regex(pattern, module_id).match("ivy-1.2.xml").group("revision") == "1.2"
        assert ivy_metadata_listing_dir("[organisation]/[module]/[revision]/ivy.xml", module_id) is None
