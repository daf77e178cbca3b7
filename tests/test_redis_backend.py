"""Tests for the Redis session and connection builder."""

from __future__ import annotations

import ssl
from unittest.mock import Mock, patch

import pytest
import redis
from redis.exceptions import (
    AuthenticationError,
    NoPermissionError,
    ResponseError,
)
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
)
from redis.exceptions import (
    TimeoutError as RedisTimeoutError,
)

from unistore.core.storage.backends.redis_backend import (
    RedisSession,
    build_redis_session,
    escape_glob,
)
from unistore.core.storage.errors import (
    Handshake,
    NotFoundError,
    OperationError,
    OperationTimeoutError,
    PermissionDeniedError,
    Refused,
    Timeout,
    UnavailableError,
)
from unistore.core.storage.registry import validate


class TestRedisSession:
    """Test suite for RedisSession operations."""

    @pytest.fixture
    def session(self, fake_redis):
        return RedisSession(fake_redis)

    def test_write_read(self, session, fake_redis):
        session.write("/k", b"value")
        assert fake_redis.data["/k"] == b"value"
        assert session.read("/k") == b"value"

    def test_read_missing(self, session):
        with pytest.raises(NotFoundError) as exc_info:
            session.read("/missing")
        assert exc_info.value.key == "/missing"

    def test_delete_missing_is_silent(self, session):
        session.delete("/missing")

    def test_delete_many_single_call(self, session, fake_redis):
        fake_redis.data.update({"/a": b"1", "/b": b"2"})
        session.delete_many(["/a", "/b", "/c"])
        assert fake_redis.data == {}
        assert fake_redis.calls.count("delete") == 1

    def test_stat(self, session, fake_redis):
        fake_redis.data["/k"] = b"abc"
        meta = session.stat("/k")
        assert meta.size == 3
        with pytest.raises(NotFoundError):
            session.stat("/other")

    def test_list_decodes_and_filters(self, session, fake_redis):
        fake_redis.data.update({"/a/1": b"", "/a/2": b"", "/b/1": b""})
        assert list(session.list("/a/")) == ["/a/1", "/a/2"]

    def test_list_deduplicates(self):
        client = Mock()
        client.scan_iter.return_value = iter([b"/a", b"/b", b"/a"])
        assert list(RedisSession(client).list("/")) == ["/a", "/b"]

    def test_list_escapes_glob(self):
        client = Mock()
        client.scan_iter.return_value = iter(())
        list(RedisSession(client).list("/a*[b]/"))
        client.scan_iter.assert_called_once_with(match="/a\\*\\[b\\]/*", count=1000)

    def test_close_idempotent(self, session, fake_redis):
        session.close()
        session.close()
        assert fake_redis.calls.count("close") == 1
        fake_redis.connection_pool.disconnect.assert_called_once()

    def test_per_call_timeout_uses_scoped_pool(self):
        client = Mock()
        client.connection_pool.connection_kwargs = {"host": "cache", "port": 6379, "socket_timeout": 5}
        client.connection_pool.connection_class = redis.Connection
        client.connection_pool.max_connections = 50
        scoped = Mock()
        scoped.get.return_value = b"v"
        session = RedisSession(client)

        with patch("redis.ConnectionPool") as pool_class:
            with patch("redis.Redis", return_value=scoped) as redis_class:
                assert session.read("/k", timeout=0.5) == b"v"
                session.write("/k", b"w", timeout=0.5)

        client.get.assert_not_called()
        redis_class.assert_called_once_with(connection_pool=pool_class.return_value)
        pool_kwargs = pool_class.call_args.kwargs
        assert pool_kwargs["host"] == "cache"
        assert pool_kwargs["socket_timeout"] == 0.5
        assert pool_kwargs["socket_connect_timeout"] == 0.5
        assert pool_kwargs["connection_class"] is redis.Connection
        scoped.set.assert_called_once_with("/k", b"w")

        session.close()
        scoped.close.assert_called_once()
        scoped.connection_pool.disconnect.assert_called_once()
        client.close.assert_called_once()

    def test_default_timeout_uses_configured_client(self, session, fake_redis):
        fake_redis.data["/k"] = b"v"
        with patch("redis.ConnectionPool") as pool_class:
            assert session.read("/k") == b"v"
        pool_class.assert_not_called()

    @pytest.mark.parametrize(
        "error, expected",
        [
            (RedisTimeoutError("slow"), OperationTimeoutError),
            (AuthenticationError("bad password"), PermissionDeniedError),
            (RedisConnectionError("refused"), UnavailableError),
            (ResponseError("WRONGTYPE"), OperationError),
        ],
    )
    def test_error_translation(self, error, expected):
        client = Mock()
        client.get.side_effect = error
        with pytest.raises(expected) as exc_info:
            RedisSession(client).read("/k")
        assert exc_info.value.__cause__ is error

    def test_transient_kinds(self):
        client = Mock()
        client.get.side_effect = RedisConnectionError("down")
        with pytest.raises(UnavailableError) as exc_info:
            RedisSession(client).read("/k")
        assert exc_info.value.transient


class TestEscapeGlob:
    def test_plain_text_unchanged(self):
        assert escape_glob("/logs/2024/") == "/logs/2024/"

    def test_specials_escaped(self):
        assert escape_glob("a?b*c\\") == "a\\?b\\*c\\\\"


class TestBuildRedisSession:
    """Test suite for the kv-plain/kv-tls connection builder."""

    @patch("unistore.core.storage.backends.redis_backend.redis.Redis")
    def test_plain_connects_lazily(self, mock_redis_class):
        params = validate("kv-plain", {"endpoint": "tcp://cache:6380", "db": "2", "timeout": "5"})
        session = build_redis_session(params)

        kwargs = mock_redis_class.call_args.kwargs
        assert kwargs["host"] == "cache"
        assert kwargs["port"] == 6380
        assert kwargs["db"] == 2
        assert kwargs["ssl"] is False
        assert kwargs["socket_timeout"] == 5
        assert kwargs["retry_on_timeout"] is False
        mock_redis_class.return_value.ping.assert_not_called()
        assert session.scheme == "kv-plain"

    @patch("unistore.core.storage.backends.redis_backend.redis.Redis")
    def test_credentials_passed_through(self, mock_redis_class):
        params = validate("kv-plain", {"username": "", "password": "pw"})
        build_redis_session(params)
        kwargs = mock_redis_class.call_args.kwargs
        assert kwargs["username"] == ""
        assert kwargs["password"] == "pw"

    def test_tls_pings(self, fake_redis):
        params = validate("kv-tls", {"endpoint": "rediss://localhost:6380"})
        session = build_redis_session(params, client=fake_redis)
        assert fake_redis.calls == ["ping"]
        assert session.scheme == "kv-tls"

    @patch("unistore.core.storage.backends.redis_backend.redis.Redis")
    def test_tls_client_uses_ssl(self, mock_redis_class):
        params = validate("kv-tls", {"endpoint": "rediss://localhost:6380"})
        build_redis_session(params)
        assert mock_redis_class.call_args.kwargs["ssl"] is True

    @pytest.mark.parametrize(
        "error, expected, transient",
        [
            (RedisConnectionError("SSL: CERTIFICATE_VERIFY_FAILED"), Handshake, False),
            (AuthenticationError("invalid password"), Handshake, False),
            (RedisConnectionError("Connection refused"), Refused, True),
            (RedisTimeoutError("Timeout connecting"), Timeout, True),
            (NoPermissionError("NOPERM no permissions to run the 'ping' command"), Handshake, False),
            (ResponseError("LOADING Redis is loading the dataset in memory"), Handshake, False),
        ],
    )
    def test_tls_handshake_failures(self, fake_redis, error, expected, transient):
        fake_redis.ping_error = error
        params = validate("kv-tls", {"endpoint": "rediss://localhost:6380"})
        with pytest.raises(expected) as exc_info:
            build_redis_session(params, client=fake_redis)
        assert exc_info.value.transient is transient
        assert exc_info.value.scheme == "kv-tls"
        assert fake_redis.closed

    def test_ssl_error_in_chain_is_handshake(self, fake_redis):
        error = RedisConnectionError("Error while connecting")
        error.__cause__ = ssl.SSLError("wrong version number")
        fake_redis.ping_error = error
        params = validate("kv-tls", {"endpoint": "rediss://localhost:6380"})
        with pytest.raises(Handshake):
            build_redis_session(params, client=fake_redis)
