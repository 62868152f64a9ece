"""Tests for the repository transport."""

from concurrent.futures import ThreadPoolExecutor
from unittest.mock import MagicMock, patch

import pytest
import requests

from depforge.common.http_client import RealmBasicAuth, Transport, local_path, realm_from_challenge
from depforge.exceptions import RepositoryUnreachableError
from depforge.repository.models import Credentials


def _response(status, content=b""):
    res = MagicMock()
    res.status_code = status
    res.content = content
    return res


class TestRealm:
    """WWW-Authenticate parsing."""

    def test_realm_from_challenge(self):
        """The realm of a Basic challenge is extracted."""
        header = 'Basic realm="Sonatype Nexus Repository Manager"'

        assert realm_from_challenge(header) == "Sonatype Nexus Repository Manager"
        assert realm_from_challenge("Bearer") is None
        assert realm_from_challenge(None) is None

    def test_without_realm_credentials_are_preemptive(self):
        """No realm: the Authorization header is set up front."""
        request = requests.Request("GET", "https://repo.example.com/a").prepare()

        RealmBasicAuth("bob", "secret")(request)

        assert request.headers["Authorization"].startswith("Basic ")

    def test_with_realm_credentials_wait_for_challenge(self):
        """With a realm nothing is sent until a matching 401 arrives."""
        request = requests.Request("GET", "https://repo.example.com/a").prepare()

        RealmBasicAuth("bob", "secret", "Nexus")(request)

        assert "Authorization" not in request.headers


class TestHttpTransport:
    """HTTP behaviour, with the session mocked."""

    def test_get_returns_content(self):
        """200 gives the body."""
        transport = Transport(retries=1)
        with patch.object(transport.session, "request", return_value=_response(200, b"data")) as req:
            assert transport.get("https://repo.example.com/a.pom") == b"data"
        assert req.call_args[0][:2] == ("GET", "https://repo.example.com/a.pom")

    def test_not_found_is_none(self):
        """404 is an absent resource, not an error."""
        transport = Transport(retries=1)
        with patch.object(transport.session, "request", return_value=_response(404)):
            assert transport.get("https://repo.example.com/missing.pom") is None
            assert transport.exists("https://repo.example.com/missing.pom") is False

    def test_connection_error_is_unreachable(self):
        """Network failures become RepositoryUnreachableError."""
        transport = Transport(retries=1)
        with patch.object(transport.session, "request",
                          side_effect=requests.ConnectionError("connection refused")):
            with pytest.raises(RepositoryUnreachableError) as exc:
                transport.get("https://user:pw@repo.example.com/a.pom")

        assert "connection refused" in exc.value.reason
        assert "pw" not in exc.value.url

    def test_timeout_is_unreachable(self):
        """Timeouts are reported with the configured delay."""
        transport = Transport(timeout=2, retries=1)
        with patch.object(transport.session, "request", side_effect=requests.Timeout()):
            with pytest.raises(RepositoryUnreachableError) as exc:
                transport.get("https://repo.example.com/a.pom")

        assert "2 seconds" in exc.value.reason

    @patch("depforge.common.http_client.time.sleep")
    def test_server_errors_are_retried(self, mock_sleep):
        """5xx is retried, then succeeds."""
        transport = Transport(retries=3)
        responses = [_response(503), _response(200, b"ok")]
        with patch.object(transport.session, "request", side_effect=responses) as req:
            assert transport.get("https://repo.example.com/a.pom") == b"ok"

        assert req.call_count == 2
        mock_sleep.assert_called_once()

    def test_auth_refusal_is_unreachable(self):
        """401 after credentials is an authentication failure."""
        transport = Transport(retries=1)
        with patch.object(transport.session, "request", return_value=_response(401)):
            with pytest.raises(RepositoryUnreachableError) as exc:
                transport.get("https://repo.example.com/a.pom", Credentials("bob", "wrong"))

        assert "authentication failed" in exc.value.reason

    def test_put_is_not_retried(self):
        """Uploads happen once."""
        transport = Transport(retries=3)
        with patch.object(transport.session, "request", return_value=_response(500)) as req:
            with pytest.raises(RepositoryUnreachableError):
                transport.put("https://repo.example.com/a.jar", b"x")

        assert req.call_count == 1

    def test_head_not_allowed_falls_back_to_get(self):
        """Servers refusing HEAD are checked with GET."""
        transport = Transport(retries=1)
        with patch.object(transport.session, "request",
                          side_effect=[_response(405), _response(200, b"x")]):
            assert transport.exists("https://repo.example.com/a.pom") is True

    def test_each_thread_gets_its_own_session(self):
        """Sessions are per thread unless one is passed in."""
        transport = Transport()
        with ThreadPoolExecutor(max_workers=1) as pool:
            other = pool.submit(lambda: transport.session).result()

        assert transport.session is transport.session
        assert other is not transport.session
        assert other.headers["User-Agent"] == transport.session.headers["User-Agent"]

    def test_given_session_is_shared(self):
        """An explicit session is used by every thread."""
        session = requests.Session()
        transport = Transport(session=session)
        with ThreadPoolExecutor(max_workers=1) as pool:
            other = pool.submit(lambda: transport.session).result()

        assert other is session is transport.session


class TestFileTransport:
    """file:// repositories."""

    def test_put_get_exists_list(self, tmp_path):
        """Files are written atomically and listed by name."""
        transport = Transport()
        base = tmp_path.as_uri()

        transport.put(f"{base}/org/core/1.0/core-1.0.jar", b"jar")

        assert transport.get(f"{base}/org/core/1.0/core-1.0.jar") == b"jar"
        assert transport.exists(f"{base}/org/core/1.0/core-1.0.jar")
        assert transport.get(f"{base}/org/core/1.0/absent.jar") is None
        assert transport.list(f"{base}/org/core") == ["1.0"]
        assert transport.list(f"{base}/org/none") == []
        assert transport.list("https://repo.example.com/org") is None

    def test_local_path(self, tmp_path):
        """Only file URLs map to paths."""
        assert local_path(tmp_path.as_uri()) == tmp_path
        assert local_path("https://repo.example.com") is None
