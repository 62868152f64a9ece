"""Tests for YAML configuration loading and repository declarations."""

import pytest
import yaml

from depforge.config import (ENV_MAX_WORKERS, ENV_REQUEST_TIMEOUT, apply_config,
                             publish_repositories_from_config, repositories_from_config)
from depforge.constants import Constants, _load_yaml_config
from depforge.exceptions import ConfigurationError
from depforge.repository import PublishRepository

CONFIG = """
http:
  timeout: 12
  retries: 5
resolution:
  max_workers: 2
repositories:
  - https://repo1.maven.org/maven2
  - url: https://nexus.example.com/repository/internal
    username: deployer
    password_env: NEXUS_PASSWORD
    realm: Sonatype Nexus Repository Manager
  - url: /srv/ivy-repo
    layout: ivy
    artifact_patterns: ["[organisation]/[module]/[revision]/[artifact].[ext]"]
publish:
  - url: https://nexus.example.com/repository/snapshots
    accepts: snapshot
  - https://nexus.example.com/repository/releases
"""


@pytest.fixture
def constants(monkeypatch):
    """Restore tunables touched by apply_config after each test."""
    for name in ("REQUEST_TIMEOUT", "HTTP_RETRY_MAX", "USER_AGENT", "RESOLVE_MAX_WORKERS"):
        monkeypatch.setattr(Constants, name, getattr(Constants, name))
    monkeypatch.delenv(ENV_REQUEST_TIMEOUT, raising=False)
    monkeypatch.delenv(ENV_MAX_WORKERS, raising=False)
    return Constants


class TestLoading:
    """Reading the configuration file."""

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "depforge.yml"
        path.write_text(CONFIG, encoding="utf-8")

        cfg = _load_yaml_config(str(path))

        assert cfg["http"]["timeout"] == 12

    def test_env_location(self, tmp_path, monkeypatch):
        """DEPFORGE_CONFIG points at the file."""
        path = tmp_path / "custom.yml"
        path.write_text("resolution: {max_workers: 3}\n", encoding="utf-8")
        monkeypatch.setenv(Constants.CONFIG_ENV, str(path))

        assert _load_yaml_config() == {"resolution": {"max_workers": 3}}

    def test_unreadable_or_wrong_shape_is_ignored(self, tmp_path):
        """Broken YAML and non-mapping documents give an empty config."""
        broken = tmp_path / "broken.yml"
        broken.write_text("http: [unclosed\n", encoding="utf-8")
        listing = tmp_path / "list.yml"
        listing.write_text("- a\n- b\n", encoding="utf-8")

        assert _load_yaml_config(str(broken)) == {}
        assert _load_yaml_config(str(listing)) == {}
        assert _load_yaml_config(str(tmp_path / "absent.yml")) == {}


class TestApplyConfig:
    """Tunables and environment overrides."""

    def test_file_values(self, constants):
        apply_config(yaml.safe_load(CONFIG))

        assert constants.REQUEST_TIMEOUT == 12.0
        assert constants.HTTP_RETRY_MAX == 5
        assert constants.RESOLVE_MAX_WORKERS == 2

    def test_environment_wins(self, constants, monkeypatch):
        """Environment variables override the file."""
        monkeypatch.setenv(ENV_REQUEST_TIMEOUT, "7.5")
        monkeypatch.setenv(ENV_MAX_WORKERS, "16")

        apply_config(yaml.safe_load(CONFIG))

        assert constants.REQUEST_TIMEOUT == 7.5
        assert constants.RESOLVE_MAX_WORKERS == 16

    def test_invalid_environment_is_ignored(self, constants, monkeypatch):
        """A bad override logs a warning and keeps the file value."""
        monkeypatch.setenv(ENV_MAX_WORKERS, "many")

        apply_config(yaml.safe_load(CONFIG))

        assert constants.RESOLVE_MAX_WORKERS == 2

    @pytest.mark.parametrize("cfg,path", [
        ({"http": {"timeout": -1}}, ("http", "timeout")),
        ({"http": {"retries": "often"}}, ("http", "retries")),
        ({"resolution": []}, ("resolution",)),
    ])
    def test_invalid_values(self, constants, cfg, path):
        """Invalid tunables raise with their location."""
        with pytest.raises(ConfigurationError) as exc:
            apply_config(cfg)

        assert exc.value.kind == ConfigurationError.INVALID_CONFIG
        assert exc.value.path == path


class TestRepositories:
    """Repository declarations."""

    def test_repositories(self, monkeypatch):
        """Strings, credentials from the environment and Ivy layouts."""
        monkeypatch.setenv("NEXUS_PASSWORD", "s3cret")

        repos = list(repositories_from_config(yaml.safe_load(CONFIG)))

        assert repos[0].url == "https://repo1.maven.org/maven2"
        assert repos[1].credentials.username == "deployer"
        assert repos[1].credentials.password == "s3cret"
        assert repos[1].credentials.realm == "Sonatype Nexus Repository Manager"
        assert repos[2].is_ivy
        assert repos[2].url.startswith("file:")
        assert repos[2].layout.artifact_patterns == ("[organisation]/[module]/[revision]/[artifact].[ext]",)

    def test_defaults_to_central(self):
        repos = repositories_from_config({})

        assert [r.url for r in repos] == [Constants.MAVEN_CENTRAL_URL]

    def test_publish_repositories(self):
        targets = publish_repositories_from_config(yaml.safe_load(CONFIG))

        assert [t.accepts for t in targets] == [PublishRepository.SNAPSHOT, PublishRepository.ALL]

    @pytest.mark.parametrize("cfg,path", [
        ({"repositories": "https://repo.example.com"}, ("repositories",)),
        ({"repositories": [{"username": "x"}]}, ("repositories", "0")),
        ({"repositories": [{"url": "https://a.example.com", "layout": "p2"}]}, ("repositories", "0", "layout")),
        ({"repositories": ["ftp://a.example.com"]}, ("repositories", "0")),
        ({"publish": [{"url": "https://a.example.com", "accepts": "nightly"}]}, ("publish", "0", "accepts")),
    ])
    def test_invalid_entries(self, cfg, path):
        """Invalid declarations raise InvalidConfig with their location."""
        with pytest.raises(ConfigurationError) as exc:
            repositories_from_config(cfg)
            publish_repositories_from_config(cfg)

        assert exc.value.kind == ConfigurationError.INVALID_CONFIG
        assert exc.value.path == path
