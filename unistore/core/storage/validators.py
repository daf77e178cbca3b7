"""Per-scheme configuration validators.

A validator is a pure function of its ``ConfigMap``: it checks required and
optional keys, parses and range-checks values, applies defaults for absent
keys and returns a typed parameter record. Checks run in a fixed order so the
same input always yields the same first error:

1. unrecognized keys (strict mode only)
2. required keys, in declared order
3. value parsing, in declared order
4. cross-field consistency
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from pathlib import Path, PurePosixPath
from urllib.parse import urlsplit

from sqlalchemy.engine import make_url
from sqlalchemy.exc import ArgumentError

from .config_map import Endpoint, parse_bool, parse_endpoint, parse_int
from .errors import Inconsistent, InvalidValue, MissingField
from .params import (
    DEFAULT_TIMEOUT,
    DropboxParams,
    FsParams,
    RedisParams,
    RelationalParams,
    S3Params,
    WebdavParams,
)
from .path import normalize_root
from .scheme import Scheme

DEFAULT_REDIS_ENDPOINT = "tcp://127.0.0.1:6379"
MAX_REDIS_DB = 2**31 - 1
MAX_TIMEOUT = 24 * 60 * 60

_SQL_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]{0,62}$")
_BUCKET_NAME = re.compile(r"^[a-z0-9][a-z0-9.\-]{1,61}[a-z0-9]$")

REDIS_KEYS = ("endpoint", "root", "db", "username", "password", "tls", "timeout")
RELATIONAL_KEYS = ("connection-string", "table", "key-field", "value-field", "root", "timeout")
WEBDAV_KEYS = ("endpoint", "root", "username", "password", "timeout")
DROPBOX_KEYS = (
    "root",
    "access-token",
    "refresh-token",
    "client-id",
    "client-secret",
    "timeout",
)
S3_KEYS = ("endpoint", "bucket", "region", "access-key-id", "secret-access-key", "root", "timeout")
FS_KEYS = ("root",)

RECOGNIZED_KEYS: dict[Scheme, tuple[str, ...]] = {
    Scheme.KV_PLAIN: REDIS_KEYS,
    Scheme.KV_TLS: REDIS_KEYS,
    Scheme.RELATIONAL_KV: RELATIONAL_KEYS,
    Scheme.WEBDAV: WEBDAV_KEYS,
    Scheme.DROPBOX: DROPBOX_KEYS,
    Scheme.S3: S3_KEYS,
    Scheme.FS: FS_KEYS,
}


def _check_unknown(scheme: Scheme, config: Mapping[str, str], strict: bool) -> None:
    if not strict:
        return
    known = set(RECOGNIZED_KEYS[scheme])
    for key in sorted(config):
        if key not in known:
            raise InvalidValue(key, f"unrecognized option for scheme '{scheme}'")


def _require(scheme: Scheme, config: Mapping[str, str], *names: str) -> None:
    """Fail on the first required key that is absent or empty."""
    for name in names:
        if name not in config:
            raise MissingField(name, str(scheme))
    for name in names:
        if not config[name].strip():
            raise InvalidValue(name, "must not be empty")


def _root(config: Mapping[str, str]) -> str:
    return normalize_root(config.get("root", "/"))


def _timeout(config: Mapping[str, str]) -> int:
    if "timeout" not in config:
        return DEFAULT_TIMEOUT
    return parse_int("timeout", config["timeout"], minimum=1, maximum=MAX_TIMEOUT)


def _bare_redis_endpoint(endpoint: Endpoint) -> Endpoint:
    """Reject endpoint parts that have their own options.

    Redis URLs can carry credentials and a database number, but those are
    configured through ``username``, ``password`` and ``db`` here.
    """
    parts = urlsplit(endpoint.raw.strip())
    if parts.username is not None or parts.password is not None:
        raise InvalidValue("endpoint", "credentials go in the username and password options, not the URI")
    if endpoint.path not in ("", "/"):
        raise InvalidValue("endpoint", f"path '{endpoint.path}' is not allowed; use the db option")
    if parts.query or parts.fragment:
        raise InvalidValue("endpoint", "query and fragment are not allowed")
    return endpoint


def validate_redis(config: Mapping[str, str], scheme: Scheme, strict: bool = False) -> RedisParams:
    """Validate a ``kv-plain`` or ``kv-tls`` configuration.

    ``kv-tls`` requires an explicit ``rediss://`` endpoint; ``kv-plain``
    defaults to ``tcp://127.0.0.1:6379`` and rejects ``rediss://``. An
    explicit ``tls`` flag must agree with the scheme.
    """
    _check_unknown(scheme, config, strict)
    if scheme is Scheme.KV_TLS:
        _require(scheme, config, "endpoint")

    endpoint = _bare_redis_endpoint(
        parse_endpoint(
            "endpoint",
            config.get("endpoint", DEFAULT_REDIS_ENDPOINT),
            allowed_schemes=frozenset({"tcp", "redis", "rediss"}),
        )
    )
    root = _root(config)
    db = parse_int("db", config["db"], maximum=MAX_REDIS_DB) if "db" in config else 0
    tls = parse_bool("tls", config["tls"]) if "tls" in config else None
    timeout = _timeout(config)

    wants_tls = scheme is Scheme.KV_TLS
    if (endpoint.scheme == "rediss") != wants_tls:
        expected = "a rediss:// endpoint" if wants_tls else "a tcp:// or redis:// endpoint"
        raise Inconsistent(["endpoint"], f"scheme '{scheme}' requires {expected}")
    if tls is not None and tls != wants_tls:
        raise Inconsistent(["tls", "endpoint"], f"tls={str(tls).lower()} contradicts scheme '{scheme}'")

    return RedisParams(
        scheme=scheme,
        endpoint=endpoint,
        root=root,
        db=db,
        username=config.get("username"),
        password=config.get("password"),
        timeout=timeout,
    )


def _sql_identifier(field: str, value: str) -> str:
    if not _SQL_IDENTIFIER.match(value):
        raise InvalidValue(field, f"'{value}' is not a plain SQL identifier")
    return value


def validate_relational(config: Mapping[str, str], strict: bool = False) -> RelationalParams:
    """Validate a ``relational-kv`` configuration.

    The connection string is parsed as an SQLAlchemy URL. Table and column
    names must be plain identifiers, and the key and value columns differ.
    """
    scheme = Scheme.RELATIONAL_KV
    _check_unknown(scheme, config, strict)
    _require(scheme, config, "connection-string", "table", "key-field", "value-field")

    raw_url = config["connection-string"].strip()
    try:
        url = make_url(raw_url)
    except (ArgumentError, ValueError) as e:
        raise InvalidValue("connection-string", f"unparseable connection string: {e}") from e
    dialect = url.get_backend_name()
    if dialect != "sqlite" and not url.host:
        raise InvalidValue("connection-string", f"'{dialect}' connection string has no host")

    table = _sql_identifier("table", config["table"].strip())
    key_field = _sql_identifier("key-field", config["key-field"].strip())
    value_field = _sql_identifier("value-field", config["value-field"].strip())
    root = _root(config)
    timeout = _timeout(config)

    if key_field == value_field:
        raise Inconsistent(["key-field", "value-field"], "key and value columns must differ")

    return RelationalParams(
        connection_string=raw_url,
        table=table,
        key_field=key_field,
        value_field=value_field,
        dialect=dialect,
        root=root,
        timeout=timeout,
    )


def validate_webdav(config: Mapping[str, str], strict: bool = False) -> WebdavParams:
    """Validate a ``webdav`` configuration.

    Credentials keep the absent/empty distinction: a username without a
    password is basic auth with an empty password, not anonymous access.
    """
    scheme = Scheme.WEBDAV
    _check_unknown(scheme, config, strict)
    _require(scheme, config, "endpoint")

    endpoint = parse_endpoint(
        "endpoint", config["endpoint"], allowed_schemes=frozenset({"http", "https"})
    )
    return WebdavParams(
        endpoint=endpoint,
        root=_root(config),
        username=config.get("username"),
        password=config.get("password"),
        timeout=_timeout(config),
    )


def validate_dropbox(config: Mapping[str, str], strict: bool = False) -> DropboxParams:
    """Validate a ``dropbox`` configuration.

    Either a long-lived ``refresh-token`` with ``client-id`` and
    ``client-secret``, or a temporary ``access-token``, but not both.
    """
    scheme = Scheme.DROPBOX
    _check_unknown(scheme, config, strict)

    has_access = "access-token" in config
    has_refresh = "refresh-token" in config
    if has_access and has_refresh:
        raise Inconsistent(
            ["access-token", "refresh-token"],
            "access-token and refresh-token can not be set at the same time",
        )
    if has_refresh:
        _require(scheme, config, "refresh-token", "client-id", "client-secret")
    elif has_access:
        _require(scheme, config, "access-token")
    else:
        raise MissingField("access-token", str(scheme))

    return DropboxParams(
        root=_root(config),
        access_token=config.get("access-token"),
        refresh_token=config.get("refresh-token"),
        client_id=config.get("client-id"),
        client_secret=config.get("client-secret"),
        timeout=_timeout(config),
    )


def validate_s3(config: Mapping[str, str], strict: bool = False) -> S3Params:
    """Validate an ``s3`` configuration."""
    scheme = Scheme.S3
    _check_unknown(scheme, config, strict)
    _require(scheme, config, "endpoint", "bucket")

    endpoint = parse_endpoint(
        "endpoint", config["endpoint"], allowed_schemes=frozenset({"http", "https"})
    )
    bucket = config["bucket"].strip()
    if not _BUCKET_NAME.match(bucket):
        raise InvalidValue("bucket", f"'{bucket}' is not a valid bucket name")
    region = config.get("region")
    if region is not None and not region.strip():
        raise InvalidValue("region", "must not be empty")
    root = _root(config)
    timeout = _timeout(config)

    if ("access-key-id" in config) != ("secret-access-key" in config):
        raise Inconsistent(
            ["access-key-id", "secret-access-key"],
            "access-key-id and secret-access-key must be set together",
        )

    return S3Params(
        endpoint=endpoint,
        bucket=bucket,
        root=root,
        region=region,
        access_key_id=config.get("access-key-id"),
        secret_access_key=config.get("secret-access-key"),
        timeout=timeout,
    )


def validate_fs(config: Mapping[str, str], strict: bool = False) -> FsParams:
    """Validate an ``fs`` configuration; ``root`` is an absolute local directory."""
    scheme = Scheme.FS
    _check_unknown(scheme, config, strict)
    _require(scheme, config, "root")

    root = config["root"].strip()
    if not PurePosixPath(root).is_absolute():
        raise InvalidValue("root", f"'{root}' is not an absolute path")

    return FsParams(base_path=Path(normalize_root(root)))

