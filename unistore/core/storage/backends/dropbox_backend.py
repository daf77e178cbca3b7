"""Dropbox backend over the Dropbox HTTP API v2."""

from __future__ import annotations

import json
import logging
import threading
import time
from datetime import datetime
from typing import Any

import requests

from ..errors import (
    AlreadyExistsError,
    NotFoundError,
    OperationError,
    PermissionDeniedError,
)
from ..params import DropboxParams
from ..session import EntryMetadata, Session
from .http import HttpTransport, SessionFactory

logger = logging.getLogger(__name__)

API_URL = "https://api.dropboxapi.com"
CONTENT_URL = "https://content.dropboxapi.com"
TOKEN_URL = f"{API_URL}/oauth2/token"

# Refresh this many seconds before the token actually expires
EXPIRY_MARGIN = 120


class DropboxSigner:
    """Supplies the bearer token, refreshing it when a refresh token is configured.

    A static access token is used as-is. With a refresh token the signer
    exchanges it for a short-lived access token on first use and again
    shortly before expiry; the exchange is serialized by a lock so
    concurrent callers share one refresh.
    """

    def __init__(self, transport: HttpTransport, params: DropboxParams):
        self._transport = transport
        self._refresh_token = params.refresh_token
        self._client_id = params.client_id
        self._client_secret = params.client_secret
        self._access_token = params.access_token
        self._expires_at: float | None = None
        self._lock = threading.Lock()

    def _expired(self) -> bool:
        if self._refresh_token is None:
            return False
        return self._access_token is None or (
            self._expires_at is not None and time.monotonic() >= self._expires_at
        )

    def _refresh(self) -> None:
        response = self._transport.request(
            "POST",
            TOKEN_URL,
            "authorize",
            None,
            allowed=(400,),
            data={
                "grant_type": "refresh_token",
                "refresh_token": self._refresh_token,
                "client_id": self._client_id,
                "client_secret": self._client_secret,
            },
        )
        if response.status_code == 400:
            raise PermissionDeniedError(None, "authorize", f"token refresh rejected: {response.text}")
        payload = response.json()
        self._access_token = payload["access_token"]
        expires_in = int(payload.get("expires_in", 14400))
        self._expires_at = time.monotonic() + max(expires_in - EXPIRY_MARGIN, 0)
        logger.info(f"Refreshed dropbox access token (expires in {expires_in}s)")

    def headers(self) -> dict[str, str]:
        with self._lock:
            if self._expired():
                self._refresh()
            return {"Authorization": f"Bearer {self._access_token}"}


def _api_arg(payload: dict[str, Any]) -> str:
    # header values must be ASCII; json escapes everything else
    return json.dumps(payload, ensure_ascii=True).replace("\x7f", "\\u007f")


def _raise_conflict(response: requests.Response, key: str, operation: str) -> None:
    """Translate a 409 endpoint-specific error into the error taxonomy."""
    try:
        summary = response.json().get("error_summary", "")
    except ValueError:
        summary = response.text
    if "not_found" in summary:
        raise NotFoundError(key, operation, summary)
    if "conflict" in summary:
        raise AlreadyExistsError(key, operation, summary)
    if "no_write_permission" in summary or "restricted_content" in summary:
        raise PermissionDeniedError(key, operation, summary)
    raise OperationError(key, operation, summary)


class DropboxSession(Session):
    """Session for the ``dropbox`` scheme."""

    scheme = "dropbox"

    def __init__(self, transport: HttpTransport, signer: DropboxSigner):
        self._transport = transport
        self._signer = signer

    def _rpc(
        self, endpoint: str, operation: str, key: str, payload: dict[str, Any], timeout: float | None
    ) -> dict[str, Any]:
        response = self._transport.request(
            "POST",
            f"{API_URL}/2/files/{endpoint}",
            operation,
            key,
            allowed=(409,),
            timeout=timeout,
            headers=self._signer.headers(),
            json=payload,
        )
        if response.status_code == 409:
            _raise_conflict(response, key, operation)
        return response.json()

    def _content(
        self,
        endpoint: str,
        operation: str,
        key: str,
        arg: dict[str, Any],
        timeout: float | None,
        data: bytes | None = None,
    ):
        headers = self._signer.headers()
        headers["Dropbox-API-Arg"] = _api_arg(arg)
        if data is not None:
            headers["Content-Type"] = "application/octet-stream"
        response = self._transport.request(
            "POST",
            f"{CONTENT_URL}/2/files/{endpoint}",
            operation,
            key,
            allowed=(409,),
            timeout=timeout,
            headers=headers,
            data=data,
        )
        if response.status_code == 409:
            _raise_conflict(response, key, operation)
        return response

    def read(self, path: str, timeout: float | None = None) -> bytes:
        return self._content("download", "read", path, {"path": path}, timeout).content

    def write(self, path: str, data: bytes, timeout: float | None = None) -> None:
        arg = {"path": path, "mode": "overwrite", "mute": True}
        self._content("upload", "write", path, arg, timeout, data)
        logger.debug(f"Uploaded file: {path} ({len(data)} bytes)")

    def delete(self, path: str, timeout: float | None = None) -> None:
        self._rpc("delete_v2", "delete", path, {"path": path}, timeout)

    def stat(self, path: str, timeout: float | None = None) -> EntryMetadata:
        metadata = self._rpc("get_metadata", "stat", path, {"path": path}, timeout)
        is_dir = metadata.get(".tag") == "folder"
        modified = metadata.get("server_modified")
        return EntryMetadata(
            key=path,
            size=metadata.get("size", 0 if is_dir else None),
            last_modified=datetime.fromisoformat(modified.replace("Z", "+00:00")) if modified else None,
            etag=metadata.get("rev"),
            is_dir=is_dir,
            extra={"content_hash": metadata["content_hash"]} if "content_hash" in metadata else {},
        )

    def close(self) -> None:
        self._transport.close()


def build_dropbox_session(params: DropboxParams, client: SessionFactory | None = None) -> DropboxSession:
    """Create a Dropbox session from validated parameters.

    No request is sent until the first operation; a refresh token is
    exchanged for an access token then.

    Args:
        params: Validated ``dropbox`` parameters
        client: Factory for ``requests.Session`` objects
    """
    transport = HttpTransport(params.timeout, str(params.scheme), session_factory=client)
    signer = DropboxSigner(transport, params)
    mode = "refresh token" if params.refresh_token is not None else "access token"
    logger.info(f"Created dropbox session ({mode})")
    return DropboxSession(transport, signer)
