"""Repository transport over HTTP(S) and the local filesystem.

Encapsulates request/timeout error handling so repository code never deals
with requests exceptions directly: every failure to talk to a repository is
turned into RepositoryUnreachableError, and a missing resource is reported as
None/False rather than an error.
"""
from __future__ import annotations

import logging
import os
import re
import tempfile
import threading
import time
from pathlib import Path
from typing import TYPE_CHECKING, Any, List, Optional
from urllib.parse import unquote, urlsplit
from urllib.request import url2pathname

import requests
from requests.auth import AuthBase, HTTPBasicAuth

from depforge.common.logging_utils import Timer, extra_context, is_debug_enabled, safe_url
from depforge.constants import Constants
from depforge.exceptions import RepositoryUnreachableError

if TYPE_CHECKING:
    from depforge.repository.models import Credentials

logger = logging.getLogger(__name__)

_REALM_RE = re.compile(r'basic\s+realm="([^"]*)"', re.IGNORECASE)
_NOT_FOUND = (404, 410)


def realm_from_challenge(header: Optional[str]) -> Optional[str]:
    """Extract the realm of a Basic ``WWW-Authenticate`` challenge."""
    if not header:
        return None
    match = _REALM_RE.search(header)
    return match.group(1) if match else None


class RealmBasicAuth(AuthBase):
    """HTTP Basic auth bound to an optional realm.

    Without a realm the credentials are sent pre-emptively. With a realm they
    are only sent in answer to a 401 challenge naming that realm, so a
    credential is never leaked to a server that asks for a different one.
    """

    def __init__(self, username: str, password: str, realm: Optional[str] = None):
        self.username = username
        self.password = password or ""
        self.realm = realm

    def __call__(self, r: requests.PreparedRequest) -> requests.PreparedRequest:
        if not self.realm:
            return HTTPBasicAuth(self.username, self.password)(r)
        r.register_hook("response", self.handle_401)
        return r

    def handle_401(self, r: requests.Response, **kwargs: Any) -> requests.Response:
        """Replay the request with credentials when the challenge realm matches."""
        if r.status_code != 401 or "Authorization" in r.request.headers:
            return r
        challenged = realm_from_challenge(r.headers.get("WWW-Authenticate"))
        if challenged != self.realm:
            logger.debug("Realm %r challenged, credentials are bound to %r", challenged, self.realm)
            return r
        # Drain the body so the connection can be reused.
        _ = r.content
        r.close()
        prep = r.request.copy()
        HTTPBasicAuth(self.username, self.password)(prep)
        replay = r.connection.send(prep, **kwargs)
        replay.history.append(r)
        replay.request = prep
        return replay


def _auth_for(credentials: Optional["Credentials"]) -> Optional[AuthBase]:
    if credentials is None or not credentials.username:
        return None
    return RealmBasicAuth(credentials.username, credentials.password or "", credentials.realm)


def local_path(url: str) -> Optional[Path]:
    """Return the filesystem path of a ``file://`` URL, else None."""
    parts = urlsplit(url)
    if parts.scheme != "file":
        return None
    return Path(url2pathname(unquote(parts.path)))


class Transport:
    """GET/HEAD/PUT/list against repository URLs with timeouts and credentials."""

    def __init__(
        self,
        timeout: Optional[float] = None,
        retries: Optional[int] = None,
        session: Optional[requests.Session] = None,
    ):
        """Initialize the transport.

        Args:
            timeout: Per-request timeout in seconds (defaults to Constants.REQUEST_TIMEOUT).
            retries: Attempts for read requests (defaults to Constants.HTTP_RETRY_MAX).
            session: Optional preconfigured requests session, shared by every
                thread using this transport.
        """
        self.timeout = timeout if timeout is not None else Constants.REQUEST_TIMEOUT
        self.retries = max(1, retries if retries is not None else Constants.HTTP_RETRY_MAX)
        self._shared_session = session
        self._local = threading.local()
        if session is not None:
            session.headers.setdefault("User-Agent", Constants.USER_AGENT)

    @property
    def session(self) -> requests.Session:
        """Session of the calling thread; requests sessions are not thread-safe."""
        if self._shared_session is not None:
            return self._shared_session
        session = getattr(self._local, "session", None)
        if session is None:
            session = requests.Session()
            session.headers.setdefault("User-Agent", Constants.USER_AGENT)
            self._local.session = session
        return session

    # -- public API -------------------------------------------------------

    def get(self, url: str, credentials: Optional["Credentials"] = None) -> Optional[bytes]:
        """Fetch a resource; None when it does not exist.

        Raises:
            RepositoryUnreachableError: network failure, timeout, auth refusal or server error.
        """
        path = local_path(url)
        if path is not None:
            try:
                return path.read_bytes() if path.is_file() else None
            except OSError as exc:
                raise RepositoryUnreachableError(safe_url(url), str(exc)) from exc
        res = self._request("GET", url, credentials)
        if res.status_code in _NOT_FOUND:
            return None
        self._raise_for_status(url, res)
        return res.content

    def exists(self, url: str, credentials: Optional["Credentials"] = None) -> bool:
        """Return True when the resource exists."""
        path = local_path(url)
        if path is not None:
            return path.is_file()
        res = self._request("HEAD", url, credentials)
        if res.status_code == 405:
            return self.get(url, credentials) is not None
        if res.status_code in _NOT_FOUND:
            return False
        self._raise_for_status(url, res)
        return True

    def put(self, url: str, data: bytes, credentials: Optional["Credentials"] = None) -> None:
        """Upload bytes to ``url``. Uploads are never retried."""
        path = local_path(url)
        if path is not None:
            try:
                path.parent.mkdir(parents=True, exist_ok=True)
                fd, tmp = tempfile.mkstemp(dir=str(path.parent), prefix=".upload-")
                with os.fdopen(fd, "wb") as fh:
                    fh.write(data)
                os.replace(tmp, path)
            except OSError as exc:
                raise RepositoryUnreachableError(safe_url(url), str(exc)) from exc
            return
        res = self._request("PUT", url, credentials, data=data, retry=False)
        self._raise_for_status(url, res)

    def list(self, url: str, credentials: Optional["Credentials"] = None) -> Optional[List[str]]:
        """List entry names under a directory URL; None when listing is unsupported.

        Only file-backed repositories support listing.
        """
        path = local_path(url)
        if path is None:
            return None
        if not path.is_dir():
            return []
        try:
            return sorted(entry.name for entry in path.iterdir())
        except OSError as exc:
            raise RepositoryUnreachableError(safe_url(url), str(exc)) from exc

    # -- internals --------------------------------------------------------

    def _request(self, method: str, url: str, credentials: Optional["Credentials"],
                 data: Optional[bytes] = None, retry: bool = True) -> requests.Response:
        safe_target = safe_url(url)
        attempts = self.retries if retry else 1
        last_error = "no attempt made"
        for attempt in range(attempts):
            with Timer() as t:
                if is_debug_enabled(logger):
                    logger.debug(
                        "HTTP request",
                        extra=extra_context(
                            event="http_request",
                            component="transport",
                            action=method,
                            target=safe_target,
                            attempt=attempt + 1,
                        ),
                    )
                try:
                    res = self.session.request(
                        method, url, data=data, timeout=self.timeout, auth=_auth_for(credentials)
                    )
                except requests.Timeout:
                    last_error = f"timed out after {self.timeout} seconds"
                except requests.RequestException as exc:  # includes ConnectionError
                    last_error = str(exc) or exc.__class__.__name__
                else:
                    if res.status_code < 500 or attempt + 1 >= attempts:
                        if is_debug_enabled(logger):
                            logger.debug(
                                "HTTP response",
                                extra=extra_context(
                                    event="http_response",
                                    component="transport",
                                    action=method,
                                    status_code=res.status_code,
                                    duration_ms=t.duration_ms(),
                                    target=safe_target,
                                ),
                            )
                        return res
                    last_error = f"HTTP {res.status_code}"
            if attempt + 1 < attempts:
                logger.debug("%s %s failed (%s), retrying", method, safe_target, last_error)
                time.sleep(Constants.HTTP_RETRY_BASE_DELAY_SEC * (attempt + 1))
        raise RepositoryUnreachableError(safe_target, last_error)

    @staticmethod
    def _raise_for_status(url: str, res: requests.Response) -> None:
        if 200 <= res.status_code < 300:
            return
        if res.status_code in (401, 403):
            reason = f"authentication failed (HTTP {res.status_code})"
        else:
            reason = f"unexpected HTTP {res.status_code}"
        raise RepositoryUnreachableError(safe_url(url), reason)
