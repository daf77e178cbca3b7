from __future__ import annotations

import json
import re
from unittest.mock import Mock

import pytest
import requests


class FakeRedis:
    """In-memory stand-in for ``redis.Redis`` covering the calls sessions make.

    Every method call is recorded in ``calls`` so tests can assert that no
    transport traffic happened.
    """

    def __init__(self):
        self.data: dict[str, bytes] = {}
        self.calls: list[str] = []
        self.closed = False
        self.connection_pool = Mock()
        self.ping_error: Exception | None = None

    def ping(self):
        self.calls.append("ping")
        if self.ping_error is not None:
            raise self.ping_error
        return True

    def get(self, key):
        self.calls.append("get")
        return self.data.get(key)

    def set(self, key, value):
        self.calls.append("set")
        self.data[key] = bytes(value)
        return True

    def delete(self, *keys):
        self.calls.append("delete")
        removed = 0
        for key in keys:
            if self.data.pop(key, None) is not None:
                removed += 1
        return removed

    def exists(self, key):
        self.calls.append("exists")
        return int(key in self.data)

    def strlen(self, key):
        self.calls.append("strlen")
        return len(self.data.get(key, b""))

    def scan_iter(self, match=None, count=None):
        self.calls.append("scan_iter")
        prefix = re.sub(r"\\(.)", r"\1", match[:-1]) if match else ""
        for key in sorted(self.data):
            if key.startswith(prefix):
                yield key.encode("utf-8")

    def close(self):
        self.calls.append("close")
        self.closed = True


@pytest.fixture
def fake_redis():
    """Fresh in-memory Redis double."""
    return FakeRedis()


@pytest.fixture
def sqlite_url(tmp_path):
    """URL of an empty sqlite database file."""
    return f"sqlite:///{tmp_path / 'kv.db'}"


def build_response(status_code: int = 200, content: bytes | str | dict = b"", headers=None):
    """Build a real ``requests.Response`` without any network traffic."""
    response = requests.Response()
    response.status_code = status_code
    if isinstance(content, dict):
        content = json.dumps(content)
        response.headers["Content-Type"] = "application/json"
    if isinstance(content, str):
        content = content.encode("utf-8")
    response._content = content
    response.encoding = "utf-8"
    response.headers.update(headers or {})
    return response


@pytest.fixture
def make_response():
    """Factory for canned HTTP responses."""
    return build_response


@pytest.fixture
def http_session():
    """Mock ``requests.Session`` plus a factory returning it."""
    session = Mock(spec=requests.Session)
    session.request.return_value = build_response(200)
    return session


@pytest.fixture
def session_factory(http_session):
    return lambda: http_session
