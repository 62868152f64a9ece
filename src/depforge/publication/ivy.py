"""Ivy descriptor codec: write ivy.xml for publication, read dependencies back."""
from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import List, Optional, Set, Tuple

from depforge.depmanagement.dependencies import ModuleDependency, ScopedDependency
from depforge.depmanagement.scopes import TEST, ScopeMapping
from depforge.exceptions import ConfigurationError
from depforge.versioning.models import ModuleId, VersionRange
from .descriptor import PublicationDescriptor
from .metadata import SnapshotStamp, format_last_updated
from .xmlutil import parse_xml, to_bytes

logger = logging.getLogger(__name__)

IVY_EXTRA_NS = "http://ant.apache.org/ivy/extra"
DEFAULT_TARGET_CONF = "default"
_STAMP_TIMESTAMP = f"{{{IVY_EXTRA_NS}}}snapshotTimestamp"
_STAMP_BUILD = f"{{{IVY_EXTRA_NS}}}snapshotBuildNumber"
_CLASSIFIER = f"{{{IVY_EXTRA_NS}}}classifier"


def ivy_conf(entry: ScopedDependency, mapping: Optional[ScopeMapping]) -> str:
    """The ``conf`` attribute of a dependency, e.g. ``compile->default;test->default``.

    Unscoped entries map every configuration: ``*->default``.
    """
    if entry.mapping:
        pairs = [(",".join(sorted(sources)), target) for sources, target in entry.mapping.entries]
    elif entry.scopes:
        pairs = []
        for scope in sorted(entry.scopes):
            targets = mapping.targets_for([scope]) if mapping else ()
            pairs.append((scope, ",".join(targets) or DEFAULT_TARGET_CONF))
    else:
        return f"*->{DEFAULT_TARGET_CONF}"
    return ";".join(f"{source}->{target}" for source, target in pairs)


def _write_configurations(ivy: ET.Element, descriptor: PublicationDescriptor) -> None:
    configurations = ET.SubElement(ivy, "configurations")
    declared: Set[str] = set()
    for scope in descriptor.scope_graph:
        attrs = {"name": scope.name}
        if scope.extends:
            attrs["extends"] = ",".join(scope.extends)
        if not scope.transitive:
            attrs["transitive"] = "false"
        if scope.description:
            attrs["description"] = scope.description
        ET.SubElement(configurations, "conf", attrs)
        declared.add(scope.name)
    # Scopes used by dependencies but unknown to the graph still need a conf.
    for entry in descriptor.dependency_set:
        for name in sorted(entry.effective_scopes - declared):
            ET.SubElement(configurations, "conf", {"name": name})
            declared.add(name)
    if DEFAULT_TARGET_CONF not in declared:
        ET.SubElement(configurations, "conf", {"name": DEFAULT_TARGET_CONF})


def write_ivy(descriptor: PublicationDescriptor, stamp: Optional[SnapshotStamp] = None,
              published: Optional[datetime] = None) -> bytes:
    """Render ivy.xml for a publication.

    For snapshots, ``stamp`` is recorded as extra attributes on ``<info>``;
    the revision attribute keeps its ``-SNAPSHOT`` qualifier while the files
    are published under the timestamped revision.
    """
    ET.register_namespace("e", IVY_EXTRA_NS)
    module = descriptor.module
    ivy = ET.Element("ivy-module", {"version": "2.0"})
    info_attrs = {
        "organisation": module.module_id.group,
        "module": module.module_id.name,
        "revision": module.version.value,
        "status": "integration" if module.version.is_snapshot else "release",
    }
    if published is not None:
        info_attrs["publication"] = format_last_updated(published)
    if stamp is not None:
        info_attrs[_STAMP_TIMESTAMP] = stamp.timestamp
        info_attrs[_STAMP_BUILD] = str(stamp.build_number)
    info = ET.SubElement(ivy, "info", info_attrs)
    if descriptor.info is not None and descriptor.info.description:
        desc = ET.SubElement(info, "description", {"homepage": descriptor.info.url or ""})
        desc.text = descriptor.info.description

    _write_configurations(ivy, descriptor)

    publications = ET.SubElement(ivy, "publications")
    for artifact in descriptor.artifacts:
        attrs = {
            "name": module.module_id.name,
            "type": artifact.classifier or artifact.extension,
            "ext": artifact.extension,
        }
        if artifact.classifier:
            attrs[_CLASSIFIER] = artifact.classifier
        ET.SubElement(publications, "artifact", attrs)

    dependencies = ET.SubElement(ivy, "dependencies")
    for entry in descriptor.dependency_set.module_dependencies():
        dep = entry.dependency
        attrs = {"org": dep.module_id.group, "name": dep.module_id.name}
        rev = _ivy_revision(dep, descriptor)
        if rev:
            attrs["rev"] = rev
        attrs["conf"] = ivy_conf(entry, descriptor.scope_mapping)
        if not dep.transitive:
            attrs["transitive"] = "false"
        elem = ET.SubElement(dependencies, "dependency", attrs)
        if dep.classifier:
            ET.SubElement(elem, "artifact", {
                "name": dep.module_id.name,
                "type": dep.classifier,
                "ext": dep.ext or "jar",
                _CLASSIFIER: dep.classifier,
            })
        for excluded in dep.exclusions:
            ET.SubElement(elem, "exclude", {"org": excluded.group, "module": excluded.name})
    return to_bytes(ivy)


def _ivy_revision(dep: ModuleDependency, descriptor: PublicationDescriptor) -> Optional[str]:
    if dep.version is not None:
        return dep.version.definition
    provider = descriptor.version_provider
    pinned = provider.version_of(dep.module_id) if provider else None
    return pinned.value if pinned else None


def read_snapshot_stamp(data: bytes) -> Optional[SnapshotStamp]:
    """The snapshot stamp recorded on ``<info>`` of an existing ivy.xml, if any."""
    info = parse_xml(data).find("info")
    if info is None:
        return None
    timestamp = info.get(_STAMP_TIMESTAMP)
    build = info.get(_STAMP_BUILD)
    if not timestamp or not build or not build.isdigit():
        return None
    return SnapshotStamp(timestamp, int(build))


def _is_test_only(conf: Optional[str]) -> bool:
    if not conf:
        return False
    sources: List[str] = []
    for part in conf.split(";"):
        left = part.split("->", 1)[0]
        sources.extend(s.strip() for s in left.split(",") if s.strip())
    return bool(sources) and all(s == TEST for s in sources)


def _read_exclusions(elem: ET.Element) -> Tuple[ModuleId, ...]:
    exclusions = []
    for ex in elem.findall("exclude"):
        org, module = ex.get("org") or "*", ex.get("module") or "*"
        try:
            exclusions.append(ModuleId(org, module))
        except ConfigurationError as exc:
            logger.debug("Skipping exclusion %s:%s: %s", org, module, exc)
    return tuple(exclusions)


def read_ivy_dependencies(data: bytes) -> Tuple[ModuleDependency, ...]:
    """Dependencies of an ivy.xml as seen by a consumer; test-only ones are skipped.

    Raises:
        ValueError: when the document is not well-formed XML.
    """
    root = parse_xml(data)
    result = []
    for elem in root.findall("dependencies/dependency"):
        org = elem.get("org")
        name = elem.get("name")
        if not org or not name or _is_test_only(elem.get("conf")):
            continue
        rev = elem.get("rev")
        try:
            result.append(ModuleDependency(
                ModuleId(org, name),
                VersionRange(rev) if rev else None,
                exclusions=_read_exclusions(elem),
                transitive=elem.get("transitive", "true").lower() != "false",
            ))
        except ConfigurationError as exc:
            logger.debug("Skipping unusable ivy dependency %s:%s: %s", org, name, exc)
    return tuple(result)
