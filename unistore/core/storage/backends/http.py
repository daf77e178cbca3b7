"""Shared HTTP transport for the ``webdav`` and ``dropbox`` backends.

``requests.Session`` is not documented as thread-safe, so the transport hands
out one session per thread and tracks all of them for ``close()``. Sessions
never retry and follow at most ``MAX_REDIRECTS`` redirects.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Container
from typing import Any

import requests
from requests.adapters import HTTPAdapter

from ..errors import (
    ClosedError,
    NotFoundError,
    OperationError,
    OperationTimeoutError,
    PermissionDeniedError,
    TooManyRedirects,
    UnavailableError,
)

logger = logging.getLogger(__name__)

MAX_REDIRECTS = 5

SessionFactory = Callable[[], requests.Session]


def _session_without_retries(factory: SessionFactory) -> requests.Session:
    sess = factory()
    sess.max_redirects = MAX_REDIRECTS
    adapter = HTTPAdapter(max_retries=0)
    sess.mount("http://", adapter)
    sess.mount("https://", adapter)
    return sess


def _detail(response: requests.Response) -> str:
    text = (response.text or "").strip()
    if len(text) > 200:
        text = text[:200] + "..."
    return f"HTTP {response.status_code}" + (f": {text}" if text else "")


class HttpTransport:
    """Per-thread ``requests`` sessions with error translation.

    Args:
        timeout: Seconds applied to every request (connect and read)
        scheme: Scheme name reported in connection errors
        auth: Optional ``requests`` auth object attached to each request
        session_factory: Callable returning a fresh ``requests.Session``;
            injected by tests to observe traffic
    """

    def __init__(
        self,
        timeout: float,
        scheme: str,
        auth: Any = None,
        session_factory: SessionFactory | None = None,
    ):
        self.timeout = timeout
        self.scheme = scheme
        self.auth = auth
        self._factory = session_factory or requests.Session
        self._local = threading.local()
        self._lock = threading.Lock()
        self._sessions: list[requests.Session] = []
        self._closed = False

    def session(self, operation: str = "request") -> requests.Session:
        """Return the calling thread's session, creating it on first use.

        Raises:
            ClosedError: If the transport has been closed
        """
        if self._closed:
            raise ClosedError(operation)
        sess = getattr(self._local, "session", None)
        if sess is None:
            with self._lock:
                if self._closed:
                    raise ClosedError(operation)
                sess = _session_without_retries(self._factory)
                self._sessions.append(sess)
            self._local.session = sess
        return sess

    def request(
        self,
        method: str,
        url: str,
        operation: str,
        key: str | None,
        allowed: Container[int] = (),
        timeout: float | None = None,
        **kwargs: Any,
    ) -> requests.Response:
        """Send one request and translate failures.

        Args:
            method: HTTP method, including WebDAV verbs such as ``PROPFIND``
            url: Absolute request URL
            operation: Operator operation name used in errors
            key: Key the request concerns, for error messages
            allowed: Error statuses returned to the caller instead of raised
            timeout: Seconds for this request; defaults to the transport timeout
            **kwargs: Passed through to ``requests.Session.request``

        Returns:
            The response; its status is below 400 or in ``allowed``

        Raises:
            TooManyRedirects: The redirect chain is longer than ``MAX_REDIRECTS``
            ClosedError: If the transport has been closed
            OperationError: For transport failures and error statuses
        """
        kwargs["timeout"] = self.timeout if timeout is None else timeout
        if self.auth is not None:
            kwargs.setdefault("auth", self.auth)

        try:
            response = self.session(operation).request(method, url, **kwargs)
        except requests.exceptions.TooManyRedirects as e:
            raise TooManyRedirects(
                f"{method} {url} exceeded {MAX_REDIRECTS} redirects", self.scheme
            ) from e
        except requests.exceptions.Timeout as e:
            raise OperationTimeoutError(key, operation, str(e)) from e
        except requests.exceptions.ConnectionError as e:
            raise UnavailableError(key, operation, str(e)) from e
        except requests.exceptions.RequestException as e:
            raise OperationError(key, operation, str(e)) from e

        logger.debug(f"{method} {url} -> {response.status_code}")
        status = response.status_code
        if status < 400 or status in allowed:
            return response
        if status in (401, 403):
            raise PermissionDeniedError(key, operation, _detail(response))
        if status in (404, 410):
            raise NotFoundError(key, operation, _detail(response))
        if status in (408, 504):
            raise OperationTimeoutError(key, operation, _detail(response))
        if status in (429, 502, 503):
            raise UnavailableError(key, operation, _detail(response))
        raise OperationError(key, operation, _detail(response))

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            sessions, self._sessions = self._sessions, []
        for sess in sessions:
            sess.close()
        logger.debug(f"Closed {len(sessions)} HTTP session(s) for {self.scheme}")
