"""Shared fixtures: throw-away file repositories in the Maven layout."""

from pathlib import Path
from typing import Iterable, Optional, Sequence, Tuple, Union

import pytest

from depforge.repository.models import Repository

DepSpec = Union[str, Tuple[str, Optional[str], Sequence[str]]]


def _dependency_xml(spec: DepSpec) -> str:
    if isinstance(spec, str):
        coordinate, scope, exclusions = spec, None, ()
    else:
        coordinate, scope, exclusions = spec
    group, name, version = coordinate.split(":")
    parts = [f"<groupId>{group}</groupId>", f"<artifactId>{name}</artifactId>",
             f"<version>{version}</version>"]
    if scope:
        parts.append(f"<scope>{scope}</scope>")
    if exclusions:
        excl = "".join(
            "<exclusion><groupId>{}</groupId><artifactId>{}</artifactId></exclusion>".format(*e.split(":"))
            for e in exclusions
        )
        parts.append(f"<exclusions>{excl}</exclusions>")
    return "<dependency>" + "".join(parts) + "</dependency>"


class MavenRepoBuilder:
    """Writes modules (jar + POM + maven-metadata.xml) under a directory."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)
        self.repository = Repository.maven(root)

    def add(self, coordinate: str, dependencies: Iterable[DepSpec] = (), jar: bool = True) -> Path:
        group, name, version = coordinate.split(":")
        module_dir = self.root.joinpath(*group.split("."), name)
        version_dir = module_dir / version
        version_dir.mkdir(parents=True, exist_ok=True)
        if jar:
            (version_dir / f"{name}-{version}.jar").write_bytes(f"jar {coordinate}".encode())
        deps = "".join(_dependency_xml(d) for d in dependencies)
        pom = (
            '<?xml version="1.0" encoding="UTF-8"?>'
            '<project xmlns="http://maven.apache.org/POM/4.0.0">'
            "<modelVersion>4.0.0</modelVersion>"
            f"<groupId>{group}</groupId><artifactId>{name}</artifactId><version>{version}</version>"
            f"<dependencies>{deps}</dependencies>"
            "</project>"
        )
        (version_dir / f"{name}-{version}.pom").write_text(pom, encoding="utf-8")
        versions = sorted(p.name for p in module_dir.iterdir() if p.is_dir())
        listed = "".join(f"<version>{v}</version>" for v in versions)
        metadata = (
            f"<metadata><groupId>{group}</groupId><artifactId>{name}</artifactId>"
            f"<versioning><versions>{listed}</versions></versioning></metadata>"
        )
        (module_dir / "maven-metadata.xml").write_text(metadata, encoding="utf-8")
        return version_dir


@pytest.fixture
def maven_repo(tmp_path):
    """A MavenRepoBuilder rooted in a fresh temporary directory."""
    return MavenRepoBuilder(tmp_path / "repo")


@pytest.fixture
def second_maven_repo(tmp_path):
    return MavenRepoBuilder(tmp_path / "repo2")
