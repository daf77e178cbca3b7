"""Redis backend for the ``kv-plain`` and ``kv-tls`` schemes."""

from __future__ import annotations

import logging
import re
import ssl
import threading
from collections.abc import Iterable, Iterator
from contextlib import contextmanager

import redis
from redis.backoff import NoBackoff
from redis.exceptions import (
    AuthenticationError,
    NoPermissionError,
    RedisError,
)
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
)
from redis.exceptions import (
    TimeoutError as RedisTimeoutError,
)
from redis.retry import Retry

from ..errors import (
    Handshake,
    NotFoundError,
    OperationError,
    OperationTimeoutError,
    PermissionDeniedError,
    Refused,
    Timeout,
    UnavailableError,
)
from ..params import RedisParams
from ..session import EntryMetadata, Session

logger = logging.getLogger(__name__)

# SCAN count hint per round trip
SCAN_COUNT = 1000

_GLOB_SPECIAL = re.compile(r"([*?\[\]\\])")


def escape_glob(text: str) -> str:
    """Escape Redis MATCH pattern metacharacters."""
    return _GLOB_SPECIAL.sub(r"\\\1", text)


def _error_chain(error: BaseException) -> Iterator[BaseException]:
    seen: set[int] = set()
    current: BaseException | None = error
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        yield current
        current = current.__cause__ or current.__context__


def _is_tls_failure(error: BaseException) -> bool:
    return any(isinstance(e, ssl.SSLError) for e in _error_chain(error)) or "SSL" in str(error)


class RedisSession(Session):
    """Session over a pooled ``redis.Redis`` client.

    The client's connection pool is thread-safe, so one session can serve
    concurrent callers. Redis has no per-command deadline, so a per-call
    timeout runs on a second pool whose sockets carry that timeout; such
    pools are kept per distinct value and closed with the session.
    """

    def __init__(self, client: redis.Redis, scheme: str = "kv-plain"):
        self._client = client
        self.scheme = scheme
        self._closed = False
        self._lock = threading.Lock()
        self._scoped: dict[float, redis.Redis] = {}

    def _client_for(self, timeout: float | None) -> redis.Redis:
        if timeout is None:
            return self._client
        with self._lock:
            client = self._scoped.get(timeout)
            if client is None:
                pool = self._client.connection_pool
                kwargs = dict(pool.connection_kwargs)
                kwargs.update(socket_timeout=timeout, socket_connect_timeout=timeout)
                client = redis.Redis(
                    connection_pool=redis.ConnectionPool(
                        connection_class=pool.connection_class,
                        max_connections=pool.max_connections,
                        **kwargs,
                    )
                )
                self._scoped[timeout] = client
                logger.debug(f"Opened redis pool with {timeout}s socket timeout")
        return client

    @contextmanager
    def _translate(self, operation: str, path: str | None):
        try:
            yield
        except RedisTimeoutError as e:
            raise OperationTimeoutError(path, operation, str(e)) from e
        except AuthenticationError as e:
            raise PermissionDeniedError(path, operation, str(e)) from e
        except NoPermissionError as e:
            raise PermissionDeniedError(path, operation, str(e)) from e
        except RedisConnectionError as e:
            raise UnavailableError(path, operation, str(e)) from e
        except RedisError as e:
            raise OperationError(path, operation, str(e)) from e

    def read(self, path: str, timeout: float | None = None) -> bytes:
        with self._translate("read", path):
            value = self._client_for(timeout).get(path)
        if value is None:
            raise NotFoundError(path, "read")
        return value

    def write(self, path: str, data: bytes, timeout: float | None = None) -> None:
        with self._translate("write", path):
            self._client_for(timeout).set(path, data)
        logger.debug(f"Stored key: {path} ({len(data)} bytes)")

    def delete(self, path: str, timeout: float | None = None) -> None:
        with self._translate("delete", path):
            self._client_for(timeout).delete(path)

    def delete_many(self, paths: Iterable[str], timeout: float | None = None) -> None:
        keys = list(paths)
        if not keys:
            return
        with self._translate("delete", None):
            self._client_for(timeout).delete(*keys)

    def stat(self, path: str, timeout: float | None = None) -> EntryMetadata:
        with self._translate("stat", path):
            client = self._client_for(timeout)
            if not client.exists(path):
                raise NotFoundError(path, "stat")
            size = client.strlen(path)
        return EntryMetadata(key=path, size=size)

    def list(self, prefix: str, timeout: float | None = None) -> Iterator[str]:
        # SCAN may return a key more than once
        seen: set[bytes] = set()
        with self._translate("list", prefix):
            keys = self._client_for(timeout).scan_iter(match=escape_glob(prefix) + "*", count=SCAN_COUNT)
            for key in keys:
                if key in seen:
                    continue
                seen.add(key)
                yield key.decode("utf-8") if isinstance(key, bytes) else key

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            scoped, self._scoped = list(self._scoped.values()), {}
        for client in [self._client, *scoped]:
            client.close()
            client.connection_pool.disconnect()
        logger.debug(f"Closed {1 + len(scoped)} redis connection pool(s)")


def build_redis_session(params: RedisParams, client: redis.Redis | None = None) -> RedisSession:
    """Create a Redis session from validated parameters.

    Plain TCP sessions connect lazily. TLS sessions ping the server so that
    a handshake failure is reported now rather than on the first operation.

    Args:
        params: Validated ``kv-plain``/``kv-tls`` parameters
        client: Pre-built client to use instead of creating one

    Raises:
        Handshake: The server rejected the TLS negotiation or the first command
        Refused: The server refused the connection
        Timeout: The handshake exceeded the configured timeout
    """
    scheme = str(params.scheme)
    if client is None:
        client = redis.Redis(
            host=params.endpoint.host,
            port=params.endpoint.port,
            db=params.db,
            username=params.username,
            password=params.password,
            ssl=params.tls,
            socket_timeout=params.timeout,
            socket_connect_timeout=params.timeout,
            retry=Retry(NoBackoff(), 0),
            retry_on_timeout=False,
        )

    if params.tls:
        try:
            client.ping()
        except RedisTimeoutError as e:
            client.close()
            raise Timeout(f"TLS handshake with {params.endpoint.raw} timed out: {e}", scheme) from e
        except AuthenticationError as e:
            client.close()
            raise Handshake(f"Authentication with {params.endpoint.raw} failed: {e}", scheme) from e
        except RedisConnectionError as e:
            client.close()
            if _is_tls_failure(e):
                raise Handshake(f"TLS handshake with {params.endpoint.raw} failed: {e}", scheme) from e
            raise Refused(f"Connection to {params.endpoint.raw} failed: {e}", scheme) from e
        except RedisError as e:
            client.close()
            raise Handshake(f"Handshake with {params.endpoint.raw} was rejected: {e}", scheme) from e

    logger.info(
        f"Created {scheme} session for {params.endpoint.host}:{params.endpoint.port} (db {params.db})"
    )
    return RedisSession(client, scheme)
