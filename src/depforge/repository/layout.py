"""Path templates of the Maven and Ivy repository layouts."""
from __future__ import annotations

import re
from typing import Dict, Mapping, Optional

from depforge.constants import Constants
from depforge.versioning.models import ModuleId, VersionedModule
from .models import IvyLayout, Repository

_TOKEN_RE = re.compile(r"\[([A-Za-z]+)\]")
_OPTIONAL_RE = re.compile(r"\(([^()]*)\)")

POM_EXT = "pom"
IVY_DESCRIPTOR_EXT = "xml"


def join_url(base: str, path: str) -> str:
    return base.rstrip("/") + "/" + path.lstrip("/")


# -- Maven -----------------------------------------------------------------

def maven_module_dir(module_id: ModuleId) -> str:
    return f"{module_id.group_path}/{module_id.name}"


def maven_file_name(module_id: ModuleId, file_version: str, classifier: Optional[str] = None,
                    ext: Optional[str] = None) -> str:
    suffix = f"-{classifier}" if classifier else ""
    return f"{module_id.name}-{file_version}{suffix}.{ext or Constants.DEFAULT_ARTIFACT_EXT}"


def maven_artifact_path(module: VersionedModule, classifier: Optional[str] = None,
                        ext: Optional[str] = None, file_version: Optional[str] = None) -> str:
    """``group/path/name/version/name-fileVersion[-classifier].ext``.

    ``file_version`` differs from the version only for timestamped snapshots.
    """
    name = maven_file_name(module.module_id, file_version or module.version.value, classifier, ext)
    return f"{maven_module_dir(module.module_id)}/{module.version}/{name}"


def maven_module_metadata_path(module_id: ModuleId) -> str:
    return f"{maven_module_dir(module_id)}/{Constants.MAVEN_METADATA_FILE}"


def maven_version_metadata_path(module: VersionedModule) -> str:
    return f"{maven_module_dir(module.module_id)}/{module.version}/{Constants.MAVEN_METADATA_FILE}"


# -- Ivy -------------------------------------------------------------------

def render_ivy_pattern(pattern: str, tokens: Mapping[str, Optional[str]]) -> str:
    """Substitute ``[token]`` placeholders.

    A parenthesized segment is kept (without its parentheses) only when every
    token inside it has a non-empty value. Unknown tokens are left untouched.
    """
    def substitute(text: str) -> str:
        return _TOKEN_RE.sub(
            lambda m: (tokens.get(m.group(1)) or "") if m.group(1) in tokens else m.group(0), text)

    def optional(match: "re.Match[str]") -> str:
        segment = match.group(1)
        if any(not tokens.get(name) for name in _TOKEN_RE.findall(segment)):
            return ""
        return substitute(segment)

    return substitute(_OPTIONAL_RE.sub(optional, pattern))


def ivy_tokens(module: VersionedModule, classifier: Optional[str] = None,
               ext: Optional[str] = None, artifact: Optional[str] = None,
               file_version: Optional[str] = None) -> Dict[str, Optional[str]]:
    """Token values for an artifact; ``type`` is the classifier, else the extension.

    ``file_version`` replaces the revision for timestamped snapshots.
    """
    ext = ext or Constants.DEFAULT_ARTIFACT_EXT
    return {
        "organisation": module.module_id.group,
        "organization": module.module_id.group,
        "orgPath": module.module_id.group_path,
        "module": module.module_id.name,
        "revision": file_version or module.version.value,
        "artifact": artifact or module.module_id.name,
        "type": classifier or ext,
        "ext": ext,
        "classifier": classifier,
    }


def ivy_artifact_path(pattern: str, module: VersionedModule, classifier: Optional[str] = None,
                      ext: Optional[str] = None, file_version: Optional[str] = None) -> str:
    return render_ivy_pattern(pattern, ivy_tokens(module, classifier, ext, file_version=file_version))


def ivy_metadata_path(pattern: str, module: VersionedModule, file_version: Optional[str] = None) -> str:
    tokens = ivy_tokens(module, None, IVY_DESCRIPTOR_EXT, artifact="ivy", file_version=file_version)
    tokens["type"] = "ivy"
    return render_ivy_pattern(pattern, tokens)


def ivy_metadata_listing_dir(pattern: str, module_id: ModuleId) -> Optional[str]:
    """Directory holding one descriptor per revision, or None when the revision
    appears before the last path segment of the pattern."""
    directory, _, file_pattern = pattern.rpartition("/")
    if "[revision]" in directory or "[revision]" not in file_pattern:
        return None
    tokens = {
        "organisation": module_id.group,
        "organization": module_id.group,
        "orgPath": module_id.group_path,
        "module": module_id.name,
    }
    return render_ivy_pattern(directory, tokens)


def ivy_revision_regex(pattern: str, module_id: ModuleId) -> "re.Pattern[str]":
    """Regex extracting the revision from file names matching the pattern's last segment."""
    file_pattern = pattern.rpartition("/")[2]
    tokens = {
        "organisation": module_id.group,
        "organization": module_id.group,
        "orgPath": module_id.group_path,
        "module": module_id.name,
        "artifact": "ivy",
        "type": "ivy",
        "ext": IVY_DESCRIPTOR_EXT,
    }
    parts = re.split(r"(\[revision\])", render_ivy_pattern(file_pattern, tokens))
    regex = "".join("(?P<revision>.+)" if p == "[revision]" else re.escape(p) for p in parts)
    return re.compile(f"^{regex}$")


# -- Repository-level URLs --------------------------------------------------

def artifact_url(repository: Repository, module: VersionedModule, classifier: Optional[str] = None,
                 ext: Optional[str] = None, file_version: Optional[str] = None) -> str:
    """URL of an artifact; Ivy repositories use their first artifact pattern."""
    if isinstance(repository.layout, IvyLayout):
        pattern = repository.layout.effective_artifact_patterns[0]
        return join_url(repository.url, ivy_artifact_path(pattern, module, classifier, ext, file_version))
    return join_url(repository.url, maven_artifact_path(module, classifier, ext, file_version))


def descriptor_url(repository: Repository, module: VersionedModule,
                   file_version: Optional[str] = None) -> str:
    """URL of the POM (Maven) or ivy.xml (Ivy) describing ``module``."""
    if isinstance(repository.layout, IvyLayout):
        pattern = repository.layout.effective_metadata_patterns[0]
        return join_url(repository.url, ivy_metadata_path(pattern, module, file_version))
    return join_url(repository.url, maven_artifact_path(module, None, POM_EXT, file_version))
