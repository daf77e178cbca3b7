"""Validated parameter records, one per scheme.

Validators produce these; connection builders consume them. Every field is
already well-formed, so builders never look at raw configuration strings.
Secrets are excluded from ``repr`` so parameters can be logged safely.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

from .config_map import Endpoint
from .scheme import Scheme

DEFAULT_TIMEOUT = 30


@dataclass(frozen=True)
class RedisParams:
    """Parameters for the ``kv-plain`` and ``kv-tls`` schemes."""

    scheme: Scheme
    endpoint: Endpoint
    root: str = "/"
    db: int = 0
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    timeout: int = DEFAULT_TIMEOUT

    @property
    def tls(self) -> bool:
        return self.scheme is Scheme.KV_TLS


@dataclass(frozen=True)
class RelationalParams:
    """Parameters for the ``relational-kv`` scheme."""

    connection_string: str = field(repr=False)
    table: str
    key_field: str
    value_field: str
    dialect: str
    root: str = "/"
    timeout: int = DEFAULT_TIMEOUT
    scheme: Scheme = Scheme.RELATIONAL_KV


@dataclass(frozen=True)
class WebdavParams:
    """Parameters for the ``webdav`` scheme.

    ``username`` and ``password`` keep the absent/empty distinction: both
    None means anonymous, a username with a None password is basic auth with
    an empty password.
    """

    endpoint: Endpoint
    root: str = "/"
    username: str | None = None
    password: str | None = field(default=None, repr=False)
    timeout: int = DEFAULT_TIMEOUT
    scheme: Scheme = Scheme.WEBDAV

    @property
    def anonymous(self) -> bool:
        return self.username is None and self.password is None


@dataclass(frozen=True)
class DropboxParams:
    """Parameters for the ``dropbox`` scheme.

    Exactly one of ``access_token`` and ``refresh_token`` is set; a refresh
    token always comes with client credentials.
    """

    root: str = "/"
    access_token: str | None = field(default=None, repr=False)
    refresh_token: str | None = field(default=None, repr=False)
    client_id: str | None = None
    client_secret: str | None = field(default=None, repr=False)
    timeout: int = DEFAULT_TIMEOUT
    scheme: Scheme = Scheme.DROPBOX


@dataclass(frozen=True)
class S3Params:
    """Parameters for the ``s3`` scheme."""

    endpoint: Endpoint
    bucket: str
    root: str = "/"
    region: str | None = None
    access_key_id: str | None = None
    secret_access_key: str | None = field(default=None, repr=False)
    timeout: int = DEFAULT_TIMEOUT
    scheme: Scheme = Scheme.S3

    @property
    def secure(self) -> bool:
        return self.endpoint.scheme == "https"


@dataclass(frozen=True)
class FsParams:
    """Parameters for the ``fs`` scheme."""

    base_path: Path
    root: str = "/"
    scheme: Scheme = Scheme.FS


Params = RedisParams | RelationalParams | WebdavParams | DropboxParams | S3Params | FsParams
