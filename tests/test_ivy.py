"""Tests for the ivy.xml codec."""

from datetime import datetime, timedelta, timezone

from depforge.depmanagement import (DependencySet, ModuleDependency, ScopedDependency, ScopeGraph,
                                    ScopeMapping)
from depforge.publication import build_descriptor, read_ivy_dependencies, write_ivy
from depforge.publication.ivy import ivy_conf, read_snapshot_stamp
from depforge.publication.metadata import SnapshotStamp
from depforge.publication.xmlutil import parse_xml
from depforge.versioning import ModuleId, VersionedModule, VersionRange


class TestIvyConf:
    """conf attribute rendering."""

    def test_unscoped(self):
        assert ivy_conf(ScopedDependency.of("a:b:1.0"), None) == "*->default"

    def test_scopes_with_mapping(self):
        """Each scope maps through the descriptor mapping, else to default."""
        mapping = ScopeMapping.of({"compile": "master"})
        entry = ScopedDependency.of("a:b:1.0", "compile", "test")

        assert ivy_conf(entry, mapping) == "compile->master;test->default"

    def test_own_mapping(self):
        """An entry carrying its mapping renders it directly."""
        entry = ScopedDependency.mapped("a:b:1.0", ScopeMapping.of([(["compile", "runtime"], "default")]))

        assert ivy_conf(entry, None) == "compile,runtime->default"


class TestWriteIvy:
    """Rendering ivy.xml."""

    def _descriptor(self, tmp_path, version="1.0"):
        jar = tmp_path / "core.jar"
        jar.write_bytes(b"jar")
        sources = tmp_path / "core-sources.jar"
        sources.write_bytes(b"src")
        graph = ScopeGraph.standard()
        graph.define("integration", extends=["test"])
        deps = (DependencySet()
                .on(ModuleDependency.of("org.lib:api:1.2").and_exclude("org.noise:logging"), "compile")
                .on(ModuleDependency.of("org.lib:tool:2.0").with_transitive(False), "runtime")
                .on("junit:junit:4.13", "test")
                .on("org.lib:models:1.0:fixtures", "integration"))
        return build_descriptor(VersionedModule.of(f"org.example:core:{version}"),
                                [jar, (sources, "sources")], deps, scope_graph=graph)

    def test_structure(self, tmp_path):
        """Info, configurations, publications and dependencies are written."""
        ivy = parse_xml(write_ivy(self._descriptor(tmp_path)))

        info = ivy.find("info")
        assert info.get("organisation") == "org.example"
        assert info.get("status") == "release"
        confs = [c.get("name") for c in ivy.findall("configurations/conf")]
        assert confs == ["compile", "provided", "runtime", "test", "integration", "default"]
        artifacts = [(a.get("type"), a.get("ext")) for a in ivy.findall("publications/artifact")]
        assert artifacts == [("jar", "jar"), ("sources", "jar")]
        deps = {d.get("name"): d for d in ivy.findall("dependencies/dependency")}
        assert deps["api"].find("exclude").get("module") == "logging"
        assert deps["tool"].get("transitive") == "false"
        assert deps["junit"].get("conf") == "test->default"
        assert deps["models"].find("artifact").get("type") == "fixtures"

    def test_snapshot_stamp_recorded(self, tmp_path):
        """Snapshot publications carry their stamp on <info>."""
        descriptor = self._descriptor(tmp_path, "1.0-SNAPSHOT")
        stamp = SnapshotStamp("20240102.030405", 4)

        data = write_ivy(descriptor, stamp, datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc))

        assert read_snapshot_stamp(data) == stamp
        assert parse_xml(data).find("info").get("status") == "integration"

    def test_publication_date_is_utc(self, tmp_path):
        """A zone-aware publication moment is written in UTC."""
        moment = datetime(2024, 1, 2, 5, 4, 5, tzinfo=timezone(timedelta(hours=2)))

        data = write_ivy(self._descriptor(tmp_path), published=moment)

        assert parse_xml(data).find("info").get("publication") == "20240102030405"

    def test_release_has_no_stamp(self, tmp_path):
        assert read_snapshot_stamp(write_ivy(self._descriptor(tmp_path))) is None

    def test_read_back_as_consumer(self, tmp_path):
        """Consumers see every dependency except test-only ones."""
        deps = {str(d.module_id): d for d in read_ivy_dependencies(write_ivy(self._descriptor(tmp_path)))}

        assert sorted(deps) == ["org.lib:api", "org.lib:models", "org.lib:tool"]
        assert deps["org.lib:api"].version == VersionRange("1.2")
        assert deps["org.lib:api"].exclusions == (ModuleId("org.noise", "logging"),)
        assert not deps["org.lib:tool"].transitive
