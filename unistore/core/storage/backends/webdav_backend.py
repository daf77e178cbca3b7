"""WebDAV backend: an HTTP remote filesystem.

Keys map to resource paths under the endpoint URL. Writes create missing
parent collections with ``MKCOL`` first; ``stat`` and ``list`` use
``PROPFIND`` at depth 0 and 1 and parse the ``multistatus`` response.
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from collections.abc import Iterator
from datetime import datetime
from email.utils import parsedate_to_datetime
from urllib.parse import quote, unquote, urlsplit

from requests.auth import HTTPBasicAuth

from ..errors import NotFoundError, OperationError
from ..params import WebdavParams
from ..session import EntryMetadata, Session
from .http import HttpTransport, SessionFactory

logger = logging.getLogger(__name__)

DAV = "{DAV:}"

PROPFIND_BODY = (
    '<?xml version="1.0" encoding="utf-8"?>'
    '<D:propfind xmlns:D="DAV:"><D:prop>'
    "<D:getcontentlength/><D:getlastmodified/><D:getetag/>"
    "<D:getcontenttype/><D:resourcetype/>"
    "</D:prop></D:propfind>"
)

# MKCOL answers 405 when the collection already exists
_MKCOL_EXISTS = (405,)


def _parse_http_date(value: str | None) -> datetime | None:
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def parse_multistatus(body: bytes, base_path: str) -> list[EntryMetadata]:
    """Parse a PROPFIND ``multistatus`` document.

    Args:
        body: Raw XML response body
        base_path: URL path of the endpoint, stripped from every href

    Returns:
        One entry per ``response`` element, keyed by absolute backend path.
        Collections have ``is_dir`` set and a key ending in ``/``.
    """
    try:
        root = ET.fromstring(body)
    except ET.ParseError as e:
        raise OperationError(None, "list", f"malformed PROPFIND response: {e}") from e

    prefix = base_path.rstrip("/")
    entries = []
    for response in root.iter(f"{DAV}response"):
        href = response.findtext(f"{DAV}href", default="").strip()
        path = unquote(urlsplit(href).path)
        if prefix and path.startswith(prefix):
            path = path[len(prefix) :]
        if not path.startswith("/"):
            path = "/" + path

        prop = response.find(f"{DAV}propstat/{DAV}prop")
        if prop is None:
            continue
        is_dir = prop.find(f"{DAV}resourcetype/{DAV}collection") is not None
        if is_dir and not path.endswith("/"):
            path += "/"

        length = prop.findtext(f"{DAV}getcontentlength")
        entries.append(
            EntryMetadata(
                key=path,
                size=int(length) if length and length.strip().isdigit() else (0 if is_dir else None),
                last_modified=_parse_http_date(prop.findtext(f"{DAV}getlastmodified")),
                etag=(prop.findtext(f"{DAV}getetag") or "").strip('"') or None,
                content_type=prop.findtext(f"{DAV}getcontenttype"),
                is_dir=is_dir,
            )
        )
    return entries


class WebdavSession(Session):
    """Session speaking WebDAV through an ``HttpTransport``.

    A per-call timeout applies to each request of the call; a write may
    send several ``MKCOL`` requests before its ``PUT``.
    """

    scheme = "webdav"

    def __init__(self, transport: HttpTransport, base_url: str):
        self._transport = transport
        self._base_url = base_url.rstrip("/")
        self._base_path = urlsplit(self._base_url).path

    def _url(self, path: str) -> str:
        return self._base_url + quote(path)

    def _ensure_parents(self, path: str, timeout: float | None) -> None:
        parts = path.strip("/").split("/")[:-1]
        current = "/"
        for part in parts:
            current += part + "/"
            self._transport.request(
                "MKCOL", self._url(current), "write", path, allowed=_MKCOL_EXISTS, timeout=timeout
            )

    def read(self, path: str, timeout: float | None = None) -> bytes:
        response = self._transport.request("GET", self._url(path), "read", path, timeout=timeout)
        return response.content

    def write(self, path: str, data: bytes, timeout: float | None = None) -> None:
        self._ensure_parents(path, timeout)
        self._transport.request("PUT", self._url(path), "write", path, timeout=timeout, data=data)
        logger.debug(f"Uploaded resource: {path} ({len(data)} bytes)")

    def delete(self, path: str, timeout: float | None = None) -> None:
        self._transport.request("DELETE", self._url(path), "delete", path, timeout=timeout)

    def copy(self, source: str, dest: str, timeout: float | None = None) -> None:
        self._ensure_parents(dest, timeout)
        self._transport.request(
            "COPY",
            self._url(source),
            "copy",
            source,
            timeout=timeout,
            headers={"Destination": self._url(dest), "Overwrite": "T"},
        )
        logger.debug(f"Copied resource: {source} -> {dest}")

    def _propfind(self, path: str, depth: str, operation: str, timeout: float | None) -> list[EntryMetadata]:
        response = self._transport.request(
            "PROPFIND",
            self._url(path),
            operation,
            path,
            timeout=timeout,
            data=PROPFIND_BODY,
            headers={"Depth": depth, "Content-Type": "application/xml"},
        )
        return parse_multistatus(response.content, self._base_path)

    def stat(self, path: str, timeout: float | None = None) -> EntryMetadata:
        entries = self._propfind(path, "0", "stat", timeout)
        if not entries:
            raise NotFoundError(path, "stat")
        entry = entries[0]
        entry.key = path
        return entry

    def list(self, prefix: str, timeout: float | None = None) -> Iterator[str]:
        # PROPFIND lists collections; a partial name lists its parent
        directory = prefix if prefix.endswith("/") else prefix.rsplit("/", 1)[0] + "/"
        try:
            entries = self._propfind(directory, "1", "list", timeout)
        except NotFoundError:
            return
        for entry in entries:
            if entry.key == directory or not entry.key.startswith(prefix):
                continue
            yield entry.key

    def close(self) -> None:
        self._transport.close()


def build_webdav_session(params: WebdavParams, client: SessionFactory | None = None) -> WebdavSession:
    """Create a WebDAV session from validated parameters.

    Anonymous when neither username nor password is configured; otherwise
    basic auth, with an absent half sent as the empty string.

    Args:
        params: Validated ``webdav`` parameters
        client: Factory for ``requests.Session`` objects
    """
    auth = None
    if not params.anonymous:
        auth = HTTPBasicAuth(params.username or "", params.password or "")

    transport = HttpTransport(params.timeout, str(params.scheme), auth=auth, session_factory=client)
    mode = "anonymous" if auth is None else f"basic auth as '{params.username or ''}'"
    logger.info(f"Created webdav session for {params.endpoint.base_url} ({mode})")
    return WebdavSession(transport, params.endpoint.base_url)
