"""Constants used in the project."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import yaml

logger = logging.getLogger(__name__)


class Constants:  # pylint: disable=too-few-public-methods
    """General constants used in the project.
    Data holder for configuration constants; not intended to provide behavior.
    Tunables may be overridden once at startup by depforge.config.apply_config.
    """

    # Well-known repositories
    MAVEN_CENTRAL_URL = "https://repo1.maven.org/maven2"
    MAVEN_OSSRH_DOWNLOAD_AND_DEPLOY_SNAPSHOT = "https://oss.sonatype.org/content/repositories/snapshots"
    MAVEN_OSSRH_DOWNLOAD_RELEASE = "https://oss.sonatype.org/content/repositories/releases"
    MAVEN_OSSRH_DEPLOY_RELEASE = "https://oss.sonatype.org/service/local/staging/deploy/maven2"
    MAVEN_OSSRH_PUBLIC_DOWNLOAD_RELEASE_AND_SNAPSHOT = "https://oss.sonatype.org/content/groups/public"
    JCENTER_URL = "https://jcenter.bintray.com"
    OSSRH_REALM = "Sonatype Nexus Repository Manager"
    LOCAL_PUBLISH_DIR = os.path.join(os.path.expanduser("~"), ".depforge", "maven-publish-dir")

    # Repository layouts
    DEFAULT_IVY_ARTIFACT_PATTERN = "[organisation]/[module]/[type]s/[artifact]-[revision](-[type]).[ext]"
    DEFAULT_IVY_METADATA_PATTERN = "[organisation]/[module]/ivy-[revision].xml"
    MAVEN_METADATA_FILE = "maven-metadata.xml"
    DEFAULT_ARTIFACT_EXT = "jar"
    SNAPSHOT_QUALIFIER = "SNAPSHOT"
    CHECKSUM_ALGORITHMS = ("md5", "sha1")

    # Network
    REQUEST_TIMEOUT = 30  # Timeout in seconds for all network operations
    HTTP_RETRY_MAX = 3
    HTTP_RETRY_BASE_DELAY_SEC = 0.3
    USER_AGENT = "depforge/0.1"

    # Resolution
    RESOLVE_MAX_WORKERS = 8

    # Configuration & logging
    CONFIG_ENV = "DEPFORGE_CONFIG"
    CONFIG_FILE = "depforge.yml"
    LOG_FORMAT = "[%(levelname)s] %(message)s"


def _config_candidates() -> list:
    """Return config file locations in priority order."""
    candidates = []
    env_path = os.environ.get(Constants.CONFIG_ENV)
    if env_path:
        candidates.append(env_path)
    candidates.append(os.path.join(os.getcwd(), Constants.CONFIG_FILE))
    xdg = os.environ.get("XDG_CONFIG_HOME") or os.path.join(os.path.expanduser("~"), ".config")
    candidates.append(os.path.join(xdg, "depforge", Constants.CONFIG_FILE))
    return candidates


def _load_yaml_config(path: Optional[str] = None) -> Dict[str, Any]:
    """Load the YAML configuration file.

    Args:
        path: Explicit file path; when omitted the default locations are tried.

    Returns:
        Parsed mapping, or an empty dict when no usable file exists.
    """
    candidates = [path] if path else _config_candidates()
    for candidate in candidates:
        if not candidate or not os.path.isfile(candidate):
            continue
        try:
            with open(candidate, "r", encoding="utf-8") as fh:
                data = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as exc:
            logger.warning("Ignoring unreadable config file %s: %s", candidate, exc)
            continue
        if not isinstance(data, dict):
            logger.warning("Ignoring config file %s: top level must be a mapping", candidate)
            continue
        logger.debug("Loaded configuration from %s", candidate)
        return data
    return {}
