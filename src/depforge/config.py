"""YAML configuration: tunables and repository declarations.

Example ``depforge.yml``::

    http:
      timeout: 20
      retries: 2
    resolution:
      max_workers: 4
    repositories:
      - https://repo1.maven.org/maven2
      - url: https://nexus.example.com/repository/internal
        username: deployer
        password_env: NEXUS_PASSWORD
        realm: Sonatype Nexus Repository Manager
      - url: /srv/ivy-repo
        layout: ivy
        artifact_patterns: ["[organisation]/[module]/[revision]/[artifact](-[classifier]).[ext]"]
    publish:
      - url: https://nexus.example.com/repository/snapshots
        accepts: snapshot
"""
from __future__ import annotations

import logging
import os
from typing import Any, Callable, Dict, Mapping, Optional, Sequence, Tuple

from depforge.constants import Constants, _load_yaml_config
from depforge.exceptions import ConfigurationError
from depforge.repository.models import PublishRepository, Repository, RepositorySet

logger = logging.getLogger(__name__)

ENV_REQUEST_TIMEOUT = "DEPFORGE_REQUEST_TIMEOUT"
ENV_MAX_WORKERS = "DEPFORGE_MAX_WORKERS"

_LAYOUTS = ("maven", "ivy")


def _invalid(message: str, path: Sequence[str]) -> ConfigurationError:
    return ConfigurationError(f"{'.'.join(path)}: {message}", ConfigurationError.INVALID_CONFIG, path)


def _section(cfg: Mapping[str, Any], name: str) -> Dict[str, Any]:
    value = cfg.get(name)
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise _invalid("expected a mapping", (name,))
    return value


def _positive(value: Any, cast: Callable[[Any], Any], path: Sequence[str]) -> Any:
    try:
        number = cast(value)
    except (TypeError, ValueError):
        raise _invalid(f"expected a number, got {value!r}", path) from None
    if number <= 0:
        raise _invalid(f"must be positive, got {value!r}", path)
    return number


def _env_override(name: str, cast: Callable[[Any], Any]) -> Optional[Any]:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return None
    try:
        return _positive(raw, cast, (name,))
    except ConfigurationError as exc:
        logger.warning("Ignoring environment override %s", exc)
        return None


def apply_config(cfg: Optional[Mapping[str, Any]] = None) -> None:
    """Apply tunables to Constants; environment overrides win over the file.

    Args:
        cfg: Parsed configuration; loaded from the default locations when omitted.

    Raises:
        ConfigurationError: a tunable has an invalid value.
    """
    if cfg is None:
        cfg = _load_yaml_config()
    http = _section(cfg, "http")
    if "timeout" in http:
        Constants.REQUEST_TIMEOUT = _positive(http["timeout"], float, ("http", "timeout"))
    if "retries" in http:
        Constants.HTTP_RETRY_MAX = _positive(http["retries"], int, ("http", "retries"))
    if "user_agent" in http:
        Constants.USER_AGENT = str(http["user_agent"])
    resolution = _section(cfg, "resolution")
    if "max_workers" in resolution:
        Constants.RESOLVE_MAX_WORKERS = _positive(resolution["max_workers"], int,
                                                  ("resolution", "max_workers"))

    timeout = _env_override(ENV_REQUEST_TIMEOUT, float)
    if timeout is not None:
        Constants.REQUEST_TIMEOUT = timeout
    workers = _env_override(ENV_MAX_WORKERS, int)
    if workers is not None:
        Constants.RESOLVE_MAX_WORKERS = workers
    logger.debug("Effective settings: timeout=%s retries=%s max_workers=%s",
                 Constants.REQUEST_TIMEOUT, Constants.HTTP_RETRY_MAX, Constants.RESOLVE_MAX_WORKERS)


def _patterns(entry: Mapping[str, Any], key: str, path: Sequence[str]) -> Tuple[str, ...]:
    value = entry.get(key) or ()
    if isinstance(value, str):
        value = (value,)
    if not isinstance(value, (list, tuple)) or not all(isinstance(p, str) for p in value):
        raise _invalid("expected a list of patterns", tuple(path) + (key,))
    return tuple(value)


def repository_from_config(entry: Any, path: Sequence[str] = ("repositories",)) -> Repository:
    """Build a Repository from a URL string or a mapping entry."""
    try:
        if isinstance(entry, str):
            return Repository.of(entry)
        if not isinstance(entry, dict):
            raise _invalid("expected a URL or a mapping", path)
        url = entry.get("url")
        if not isinstance(url, str) or not url.strip():
            raise _invalid("missing url", path)
        layout = str(entry.get("layout", "maven")).lower()
        if layout not in _LAYOUTS:
            raise _invalid(f"unknown layout {layout!r}", tuple(path) + ("layout",))
        repo = Repository.of(url)
        if layout == "ivy" and not repo.is_ivy:
            repo = Repository.ivy(url)
        artifact_patterns = _patterns(entry, "artifact_patterns", path)
        metadata_patterns = _patterns(entry, "metadata_patterns", path)
        if artifact_patterns:
            repo = repo.with_artifact_patterns(*artifact_patterns)
        if metadata_patterns:
            repo = repo.with_metadata_patterns(*metadata_patterns)
        password = entry.get("password")
        password_env = entry.get("password_env")
        if password is None and password_env:
            password = os.environ.get(str(password_env))
            if password is None:
                logger.warning("Environment variable %s for %s is not set", password_env, url)
        username = entry.get("username")
        if username:
            repo = repo.with_credentials(str(username), password, entry.get("realm"))
        return repo
    except ConfigurationError as exc:
        if exc.kind == ConfigurationError.INVALID_CONFIG:
            raise
        raise _invalid(str(exc), path) from exc


def _entries(cfg: Mapping[str, Any], key: str) -> Sequence[Any]:
    value = cfg.get(key)
    if value is None:
        return ()
    if not isinstance(value, list):
        raise _invalid("expected a list", (key,))
    return value


def repositories_from_config(cfg: Optional[Mapping[str, Any]] = None) -> RepositorySet:
    """Repositories to resolve from; Maven Central when none are configured."""
    if cfg is None:
        cfg = _load_yaml_config()
    entries = _entries(cfg, "repositories")
    if not entries:
        return RepositorySet.maven_central_only()
    return RepositorySet(
        repository_from_config(entry, ("repositories", str(i))) for i, entry in enumerate(entries)
    )


def publish_repositories_from_config(cfg: Optional[Mapping[str, Any]] = None
                                     ) -> Tuple[PublishRepository, ...]:
    """Repositories to publish to, with their release/snapshot filters."""
    if cfg is None:
        cfg = _load_yaml_config()
    result = []
    for i, entry in enumerate(_entries(cfg, "publish")):
        path = ("publish", str(i))
        repo = repository_from_config(entry, path)
        accepts = entry.get("accepts", PublishRepository.ALL) if isinstance(entry, dict) else PublishRepository.ALL
        try:
            result.append(PublishRepository(repo, str(accepts).lower()))
        except ConfigurationError as exc:
            raise _invalid(str(exc), tuple(path) + ("accepts",)) from exc
    return tuple(result)
