"""Behavior tests against live backends.

Each scheme runs only when ``UNISTORE_<SCHEME>_TEST=on`` is set; its options
come from the other ``UNISTORE_<SCHEME>_*`` variables, e.g.

    UNISTORE_KV_PLAIN_TEST=on
    UNISTORE_KV_PLAIN_ENDPOINT=tcp://127.0.0.1:6379
"""

from __future__ import annotations

import uuid

import pytest

from unistore.core.storage import Capability, NotFoundError, Scheme, new_operator
from unistore.core.utils.env import config_map_from_env, integration_enabled, load_env_file_if_present

load_env_file_if_present()

pytestmark = pytest.mark.integration


@pytest.fixture(params=[s.value for s in Scheme])
def op(request):
    scheme = request.param
    if not integration_enabled(scheme):
        pytest.skip(f"UNISTORE_{Scheme.parse(scheme).env_name}_TEST is not on")

    config = dict(config_map_from_env(scheme))
    # isolate each run under a fresh directory
    base_root = config.get("root", "/")
    if scheme != "fs":
        config["root"] = f"{base_root.rstrip('/')}/unistore-test-{uuid.uuid4().hex[:8]}/"

    operator = new_operator(scheme, config)
    yield operator
    operator.close()


class TestLiveBackend:
    """Contract every live backend must satisfy."""

    def test_write_read_delete(self, op):
        op.write("greeting.txt", b"hello")
        assert op.read("greeting.txt") == b"hello"
        op.delete("greeting.txt")
        with pytest.raises(NotFoundError):
            op.read("greeting.txt")

    def test_delete_never_written(self, op):
        op.delete(f"never-{uuid.uuid4().hex}")

    def test_stat(self, op):
        if not op.capabilities.supports(Capability.STAT):
            pytest.skip("stat not supported")
        op.write("sized.bin", b"12345")
        try:
            assert op.stat("sized.bin").size == 5
        finally:
            op.delete("sized.bin")

    def test_list(self, op):
        if not op.capabilities.supports(Capability.LIST):
            pytest.skip("list not supported")
        op.write("dir/a", b"1")
        op.write("dir/b", b"2")
        try:
            assert sorted(op.list("dir/")) == ["dir/a", "dir/b"]
        finally:
            op.delete_many(["dir/a", "dir/b"])

    def test_copy(self, op):
        if not op.capabilities.supports(Capability.COPY):
            pytest.skip("copy not supported")
        op.write("src", b"data")
        op.copy("src", "dst")
        try:
            assert op.read("dst") == b"data"
        finally:
            op.delete_many(["src", "dst"])
