"""Maven POM codec: import foreign POM files and write POMs for publication."""
from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, Union

from depforge.depmanagement.dependencies import DependencySet, ModuleDependency, ScopedDependency
from depforge.depmanagement.providers import ExclusionSet, VersionProvider
from depforge.depmanagement.scopes import (COMPILE, MAVEN_SCOPES, PROVIDED, RUNTIME, TEST, ScopeGraph,
                                           ScopeMapping)
from depforge.exceptions import ConfigurationError
from depforge.repository.models import Repository, RepositorySet
from depforge.versioning.models import ModuleId, Version, VersionedModule, VersionRange
from .descriptor import PublicationDescriptor
from .xmlutil import parse_xml, sub_text, text_of, to_bytes

logger = logging.getLogger(__name__)

POM_NS = "http://maven.apache.org/POM/4.0.0"
XSI_NS = "http://www.w3.org/2001/XMLSchema-instance"
POM_SCHEMA = "http://maven.apache.org/maven-v4_0_0.xsd"

_PROPERTY_RE = re.compile(r"\$\{([^}]+)\}")
_TRANSITIVE_SCOPES = (None, COMPILE, RUNTIME)
# Widest scope first; used to pick one Maven scope among several targets.
_SCOPE_PRIORITY = (COMPILE, RUNTIME, PROVIDED, TEST)


@dataclass
class PomDependency:
    """A ``<dependency>`` element with properties already interpolated."""

    group_id: str
    artifact_id: str
    version: Optional[str] = None
    scope: Optional[str] = None
    classifier: Optional[str] = None
    type: Optional[str] = None
    optional: bool = False
    exclusions: List[ModuleId] = field(default_factory=list)

    @property
    def module_id(self) -> ModuleId:
        return ModuleId(self.group_id, self.artifact_id)


class PomDocument:
    """Read-only view over a parsed POM."""

    def __init__(self, root: ET.Element):
        self.root = root
        self._properties: Optional[Dict[str, str]] = None

    @classmethod
    def parse(cls, data: Union[bytes, str]) -> "PomDocument":
        """Parse POM content.

        Raises:
            ValueError: when the content is not well-formed XML.
        """
        return cls(parse_xml(data))

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PomDocument":
        return cls.parse(Path(path).read_bytes())

    # -- coordinates ------------------------------------------------------

    @property
    def group_id(self) -> Optional[str]:
        return text_of(self.root, "groupId") or text_of(self.root, "parent/groupId")

    @property
    def artifact_id(self) -> Optional[str]:
        return text_of(self.root, "artifactId")

    @property
    def version(self) -> Optional[str]:
        raw = text_of(self.root, "version") or text_of(self.root, "parent/version")
        return self.interpolate(raw) if raw else None

    @property
    def packaging(self) -> str:
        return text_of(self.root, "packaging") or "jar"

    @property
    def module_id(self) -> ModuleId:
        if not self.group_id or not self.artifact_id:
            raise ConfigurationError("POM without groupId/artifactId",
                                     ConfigurationError.MALFORMED_COORDINATE)
        return ModuleId(self.group_id, self.artifact_id)

    @property
    def versioned_module(self) -> VersionedModule:
        if not self.version:
            raise ConfigurationError(f"POM of {self.module_id} has no version",
                                     ConfigurationError.MALFORMED_VERSION)
        return VersionedModule(self.module_id, Version(self.version))

    @property
    def parent(self) -> Optional[VersionedModule]:
        group = text_of(self.root, "parent/groupId")
        artifact = text_of(self.root, "parent/artifactId")
        version = text_of(self.root, "parent/version")
        if not (group and artifact and version):
            return None
        return VersionedModule(ModuleId(group, artifact), Version(version))

    # -- properties -------------------------------------------------------

    @property
    def properties(self) -> Dict[str, str]:
        if self._properties is None:
            props: Dict[str, str] = {}
            container = self.root.find("properties")
            if container is not None:
                for elem in container:
                    if isinstance(elem.tag, str):
                        props[elem.tag] = (elem.text or "").strip()
            for key, path in (("groupId", "groupId"), ("artifactId", "artifactId"),
                              ("version", "version"), ("parent.groupId", "parent/groupId"),
                              ("parent.version", "parent/version")):
                value = text_of(self.root, path)
                if value:
                    props.setdefault(f"project.{key}", value)
                    props.setdefault(f"pom.{key}", value)
            if "project.version" not in props and "project.parent.version" in props:
                props["project.version"] = props["project.parent.version"]
            if "project.groupId" not in props and "project.parent.groupId" in props:
                props["project.groupId"] = props["project.parent.groupId"]
            self._properties = props
        return self._properties

    def interpolate(self, value: Optional[str]) -> Optional[str]:
        """Replace ``${name}`` references; unknown references are left as is."""
        if not value or "${" not in value:
            return value
        props = self.properties
        for _ in range(10):
            replaced = _PROPERTY_RE.sub(lambda m: props.get(m.group(1), m.group(0)), value)
            if replaced == value:
                break
            value = replaced
        return value

    # -- dependencies -----------------------------------------------------

    def _parse_dependency(self, elem: ET.Element) -> Optional[PomDependency]:
        group = self.interpolate(text_of(elem, "groupId"))
        artifact = self.interpolate(text_of(elem, "artifactId"))
        if not group or not artifact:
            logger.debug("Skipping dependency without groupId/artifactId")
            return None
        try:
            ModuleId(group, artifact)
        except ConfigurationError as exc:
            logger.debug("Skipping dependency %s:%s: %s", group, artifact, exc)
            return None
        exclusions = []
        for exclusion in elem.findall("exclusions/exclusion"):
            ex_group = self.interpolate(text_of(exclusion, "groupId"))
            ex_artifact = self.interpolate(text_of(exclusion, "artifactId"))
            if not ex_group or not ex_artifact:
                continue
            try:
                exclusions.append(ModuleId(ex_group, ex_artifact))
            except ConfigurationError as exc:
                logger.debug("Skipping exclusion %s:%s of %s:%s: %s", ex_group, ex_artifact, group, artifact, exc)
        return PomDependency(
            group_id=group,
            artifact_id=artifact,
            version=self.interpolate(text_of(elem, "version")),
            scope=text_of(elem, "scope"),
            classifier=self.interpolate(text_of(elem, "classifier")),
            type=text_of(elem, "type"),
            optional=(text_of(elem, "optional") or "").lower() == "true",
            exclusions=exclusions,
        )

    def raw_dependencies(self) -> List[PomDependency]:
        result = []
        for elem in self.root.findall("dependencies/dependency"):
            dep = self._parse_dependency(elem)
            if dep is not None:
                result.append(dep)
        return result

    def managed_dependencies(self) -> List[PomDependency]:
        result = []
        for elem in self.root.findall("dependencyManagement/dependencies/dependency"):
            dep = self._parse_dependency(elem)
            if dep is not None:
                result.append(dep)
        return result

    def dependencies(self) -> DependencySet:
        """Declared dependencies, scoped with their Maven scope names."""
        entries = []
        for dep in self.raw_dependencies():
            entries.append(ScopedDependency.of(_to_module_dependency(dep), dep.scope or COMPILE))
        return DependencySet(entries)

    def version_provider(self) -> VersionProvider:
        """Pins from ``<dependencyManagement>``; BOM imports are not followed."""
        pins = {}
        for dep in self.managed_dependencies():
            if dep.scope == "import" or not dep.version or "${" in dep.version:
                continue
            try:
                pins[dep.module_id] = Version(dep.version)
            except ConfigurationError as exc:
                logger.debug("Skipping managed version of %s: %s", dep.module_id, exc)
        return VersionProvider(pins)

    def exclusion_set(self) -> ExclusionSet:
        return ExclusionSet({d.module_id: d.exclusions for d in self.managed_dependencies() if d.exclusions})

    def repositories(self) -> RepositorySet:
        repos = []
        for elem in self.root.findall("repositories/repository"):
            url = self.interpolate(text_of(elem, "url"))
            if url:
                repos.append(Repository.maven(url))
        return RepositorySet(repos)

    def transitive_dependencies(self) -> Tuple[ModuleDependency, ...]:
        """Dependencies a consumer inherits: compile/runtime, non-optional.

        Missing versions are completed from this POM's dependencyManagement;
        a dependency still without a version is returned versionless.
        """
        managed = {d.module_id: d for d in self.managed_dependencies()}
        result = []
        for dep in self.raw_dependencies():
            if dep.optional or dep.scope not in _TRANSITIVE_SCOPES:
                continue
            if not dep.version and dep.module_id in managed:
                dep.version = managed[dep.module_id].version
                if not dep.exclusions:
                    dep.exclusions = list(managed[dep.module_id].exclusions)
            if dep.version and "${" in dep.version:
                logger.debug("Unresolved property in version of %s: %s", dep.module_id, dep.version)
                dep.version = None
            try:
                result.append(_to_module_dependency(dep))
            except ConfigurationError as exc:
                logger.debug("Skipping unusable dependency %s: %s", dep.module_id, exc)
        return tuple(result)


def _to_module_dependency(dep: PomDependency) -> ModuleDependency:
    ext = dep.type if dep.type and dep.type != "jar" else None
    return ModuleDependency(
        dep.module_id,
        VersionRange(dep.version) if dep.version else None,
        dep.classifier,
        ext,
        tuple(dep.exclusions),
    )


# -- writing -----------------------------------------------------------------

def maven_scope(entry: ScopedDependency, mapping: Optional[ScopeMapping],
                graph: Optional[ScopeGraph] = None) -> str:
    """Translate the scopes of ``entry`` into a single Maven scope.

    Targets come from the entry's own mapping, else from ``mapping`` applied to
    its scopes, else its scope names. A target that is not a Maven scope is
    replaced by its nearest Maven ancestor in ``graph``. Among several targets
    the widest scope wins; unscoped entries are ``compile``.
    """
    if entry.mapping:
        targets: Iterable[str] = [t for _, t in entry.mapping.entries]
    elif entry.scopes:
        targets = (mapping.targets_for(entry.scopes) if mapping else ()) or sorted(entry.scopes)
    else:
        return COMPILE
    candidates = set()
    for target in targets:
        if target in MAVEN_SCOPES:
            candidates.add(target)
        elif graph is not None and target in graph:
            for ancestor in graph.ancestor_names(target):
                if ancestor in MAVEN_SCOPES:
                    candidates.add(ancestor)
                    break
    for scope in _SCOPE_PRIORITY:
        if scope in candidates:
            return scope
    return COMPILE


def _pom_version(dep: ModuleDependency, provider: Optional[VersionProvider]) -> Optional[str]:
    if dep.version is None:
        pinned = provider.version_of(dep.module_id) if provider else None
        return pinned.value if pinned else None
    if dep.version.definition == VersionRange.LATEST_RELEASE:
        return "RELEASE"
    if dep.version.definition == VersionRange.LATEST_INTEGRATION:
        return "LATEST"
    return dep.version.definition


def _q(tag: str) -> str:
    return f"{{{POM_NS}}}{tag}"


def _el(parent: ET.Element, tag: str) -> ET.Element:
    return ET.SubElement(parent, _q(tag))


def _sub(parent: ET.Element, tag: str, value: Optional[object]) -> Optional[ET.Element]:
    return sub_text(parent, _q(tag), value)


def _write_dependency(parent: ET.Element, dep: ModuleDependency, version: Optional[str],
                      scope: Optional[str]) -> None:
    elem = _el(parent, "dependency")
    _sub(elem, "groupId", dep.module_id.group)
    _sub(elem, "artifactId", dep.module_id.name)
    _sub(elem, "version", version)
    if dep.ext and dep.ext != "jar":
        _sub(elem, "type", dep.ext)
    _sub(elem, "classifier", dep.classifier)
    if scope and scope != COMPILE:
        _sub(elem, "scope", scope)
    if dep.exclusions:
        exclusions = _el(elem, "exclusions")
        for excluded in dep.exclusions:
            ex = _el(exclusions, "exclusion")
            _sub(ex, "groupId", excluded.group)
            _sub(ex, "artifactId", excluded.name)


def _write_info(project: ET.Element, descriptor: PublicationDescriptor) -> None:
    info = descriptor.info
    if info is None:
        return
    _sub(project, "name", info.name)
    _sub(project, "description", info.description)
    _sub(project, "url", info.url)
    if info.licenses:
        licenses = _el(project, "licenses")
        for lic in info.licenses:
            elem = _el(licenses, "license")
            _sub(elem, "name", lic.name)
            _sub(elem, "url", lic.url)
    if info.developers:
        developers = _el(project, "developers")
        for dev in info.developers:
            elem = _el(developers, "developer")
            _sub(elem, "name", dev.name)
            _sub(elem, "email", dev.email)
            _sub(elem, "organization", dev.organisation)
            _sub(elem, "organizationUrl", dev.organisation_url)
    if info.scm:
        scm = _el(project, "scm")
        _sub(scm, "connection", info.scm.connection)
        _sub(scm, "developerConnection", info.scm.developer_connection)
        _sub(scm, "url", info.scm.url)


def write_pom(descriptor: PublicationDescriptor) -> bytes:
    """Render the POM of a publication.

    Project dependencies are not written; they must be published separately
    and declared as module dependencies.
    """
    ET.register_namespace("", POM_NS)
    ET.register_namespace("xsi", XSI_NS)
    module = descriptor.module
    project = ET.Element(_q("project"), {f"{{{XSI_NS}}}schemaLocation": f"{POM_NS} {POM_SCHEMA}"})
    _sub(project, "modelVersion", "4.0.0")
    _sub(project, "groupId", module.module_id.group)
    _sub(project, "artifactId", module.module_id.name)
    _sub(project, "version", module.version.value)
    _sub(project, "packaging", descriptor.packaging)
    _write_info(project, descriptor)

    provider = descriptor.version_provider
    if provider:
        management = _el(_el(project, "dependencyManagement"), "dependencies")
        for module_id in sorted(provider.module_ids()):
            _write_dependency(management, ModuleDependency(module_id), provider[module_id].value, None)

    entries = descriptor.dependency_set.module_dependencies()
    if entries:
        dependencies = _el(project, "dependencies")
        for entry in entries:
            dep = entry.dependency
            scope = maven_scope(entry, descriptor.scope_mapping, descriptor.scope_graph)
            _write_dependency(dependencies, dep, _pom_version(dep, provider), scope)
    skipped = len(descriptor.dependency_set) - len(entries)
    if skipped:
        logger.debug("%d project dependency(ies) not written to the POM of %s", skipped, module)

    if descriptor.repositories:
        repositories = _el(project, "repositories")
        for index, repo in enumerate(descriptor.repositories):
            if not repo.is_maven:
                continue
            elem = _el(repositories, "repository")
            _sub(elem, "id", f"repo{index}")
            _sub(elem, "url", repo.url)
    return to_bytes(project)
