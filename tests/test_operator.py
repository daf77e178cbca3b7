"""Tests for the Operator gate: closed handle, capabilities, keys, roots."""

from __future__ import annotations

from datetime import timedelta
from unittest.mock import Mock

import pytest

from unistore.core.storage import (
    Capability,
    CapabilityDescriptor,
    ClosedError,
    EntryMetadata,
    NotFoundError,
    OperationError,
    Operator,
    Session,
    Unsupported,
    new_operator,
)
from unistore.core.storage.errors import ErrorKind, PermissionDeniedError


@pytest.fixture
def session():
    mock = Mock(spec=Session)
    mock.list.return_value = iter(())
    return mock


def make_operator(session, operations=Capability.basic(), root="/", **limits):
    return Operator("test", session, CapabilityDescriptor(operations, **limits), root)


class TestKeyHandling:
    """Test suite for root joining and key checks."""

    def test_root_join(self, session):
        op = make_operator(session, root="/a//b/")
        session.read.return_value = b"value"

        assert op.read("c") == b"value"
        session.read.assert_called_once_with("/a/b/c", timeout=None)

    def test_leading_slash_stays_under_root(self, session):
        op = make_operator(session, root="/data/")
        op.write("/x//y", b"1")
        session.write.assert_called_once_with("/data/x/y", b"1", timeout=None)

    def test_empty_key_rejected(self, session):
        op = make_operator(session)
        with pytest.raises(OperationError) as exc_info:
            op.read("")
        assert exc_info.value.kind is ErrorKind.OTHER
        session.read.assert_not_called()

    def test_max_key_length(self, session):
        op = make_operator(session, root="/r/", max_key_length=10)
        op.write("12345678", b"")  # "r/12345678" is exactly 10 bytes
        with pytest.raises(OperationError, match="exceeds 10 bytes"):
            op.write("123456789", b"")
        assert session.write.call_count == 1

    def test_list_returns_relative_keys(self, session):
        op = make_operator(session, root="/a/b/")
        session.list.return_value = iter(["/a/b/c", "/a/b/d/e"])

        assert list(op.list()) == ["c", "d/e"]
        session.list.assert_called_once_with("/a/b/", timeout=None)

    def test_list_prefix_joined(self, session):
        op = make_operator(session, root="/r/")
        list(op.list("logs/2024"))
        session.list.assert_called_once_with("/r/logs/2024", timeout=None)

    def test_stat_key_relative(self, session):
        op = make_operator(session, root="/r/")
        session.stat.return_value = EntryMetadata(key="/r/x", size=3)
        meta = op.stat("/x")
        assert meta.key == "x"
        assert meta.size == 3

    def test_write_accepts_bytes_like(self, session):
        op = make_operator(session)
        op.write("k", bytearray(b"ab"))
        session.write.assert_called_once_with("/k", b"ab", timeout=None)


class TestCapabilityGate:
    """Unsupported operations never reach the session."""

    @pytest.mark.parametrize(
        "call",
        [
            lambda op: op.copy("a", "b"),
            lambda op: op.rename("a", "b"),
            lambda op: op.presign("a"),
            lambda op: op.write_multipart("a", [b"x"]),
        ],
    )
    def test_unsupported_makes_no_session_calls(self, session, call):
        op = make_operator(session)
        with pytest.raises(Unsupported):
            call(op)
        assert session.method_calls == []

    def test_list_unsupported_raises_eagerly(self, session):
        op = make_operator(session, Capability.READ | Capability.WRITE)
        with pytest.raises(Unsupported) as exc_info:
            op.list()
        assert exc_info.value.operation == "list"
        assert exc_info.value.scheme == "test"
        assert session.method_calls == []

    def test_capability_checked_before_key(self, session):
        op = make_operator(session, Capability.READ)
        with pytest.raises(Unsupported):
            op.write("", b"")

    def test_supported_optional_operations(self, session):
        op = make_operator(
            session,
            Capability.basic() | Capability.COPY | Capability.RENAME | Capability.PRESIGN | Capability.MULTIPART,
            root="/r/",
        )
        op.copy("a", "b")
        op.rename("b", "c")
        op.presign("c", timedelta(minutes=5), method="put")
        op.write_multipart("d", [b"1", b"2"])

        session.copy.assert_called_once_with("/r/a", "/r/b", timeout=None)
        session.rename.assert_called_once_with("/r/b", "/r/c", timeout=None)
        session.presign.assert_called_once_with("/r/c", timedelta(minutes=5), "PUT")
        session.write_multipart.assert_called_once_with("/r/d", [b"1", b"2"], timeout=None)


class TestDelete:
    """Test suite for idempotent delete."""

    def test_delete_absent_key_succeeds(self, session):
        session.delete.side_effect = NotFoundError("/k", "delete")
        op = make_operator(session)
        op.delete("k")
        session.delete.assert_called_once_with("/k", timeout=None)

    def test_other_errors_propagate(self, session):
        session.delete.side_effect = PermissionDeniedError("/k", "delete")
        op = make_operator(session)
        with pytest.raises(PermissionDeniedError):
            op.delete("k")

    def test_delete_many_batches(self, session):
        op = make_operator(session, max_batch_size=2)
        op.delete_many(["a", "b", "c", "d", "e"])
        batches = [c.args[0] for c in session.delete_many.call_args_list]
        assert batches == [["/a", "/b"], ["/c", "/d"], ["/e"]]

    def test_delete_many_unbounded(self, session):
        op = make_operator(session)
        op.delete_many(["a", "b"])
        session.delete_many.assert_called_once_with(["/a", "/b"], timeout=None)

    def test_delete_many_empty(self, session):
        make_operator(session).delete_many([])
        session.delete_many.assert_not_called()


class TestLifecycle:
    """Test suite for close and the context manager."""

    def test_closed_operator_rejects_calls(self, session):
        op = make_operator(session)
        op.close()
        for call in (lambda: op.read("k"), lambda: op.write("k", b""), lambda: op.list()):
            with pytest.raises(ClosedError):
                call()
        session.read.assert_not_called()

    def test_closed_check_precedes_capability_check(self, session):
        op = make_operator(session, Capability.READ)
        op.close()
        with pytest.raises(ClosedError):
            op.copy("a", "b")

    def test_double_close(self, session):
        op = make_operator(session)
        op.close()
        op.close()
        session.close.assert_called_once()
        assert op.closed

    def test_context_manager(self, session):
        with make_operator(session) as op:
            op.write("k", b"v")
        session.close.assert_called_once()
        assert "closed" in repr(op)

    def test_listing_not_started_before_close(self, session):
        op = make_operator(session)
        keys = op.list()
        op.close()
        with pytest.raises(ClosedError) as exc_info:
            list(keys)
        assert exc_info.value.operation == "list"
        session.list.assert_not_called()

    def test_listing_in_progress_stops_at_close(self, session):
        finished = []

        def backend_keys(prefix, timeout=None):
            try:
                yield "/a"
                yield "/b"
            finally:
                finished.append(prefix)

        session.list.side_effect = backend_keys
        op = make_operator(session)
        keys = op.list()
        assert next(keys) == "a"

        op.close()
        # the backend listing is released by close, not by the caller
        assert finished == ["/"]
        with pytest.raises(ClosedError):
            next(keys)

    def test_exhausted_listing_is_released(self, session):
        session.list.return_value = iter(["/a"])
        op = make_operator(session)
        assert list(op.list()) == ["a"]
        assert op._listings == set()

    def test_exists(self, session):
        op = make_operator(session)
        session.stat.return_value = EntryMetadata(key="/k", size=1)
        assert op.exists("k")
        session.stat.side_effect = NotFoundError("/k", "stat")
        assert not op.exists("k")


class TestPerCallTimeout:
    """Test suite for deadlines passed with individual calls."""

    def test_passed_to_session(self, session):
        op = make_operator(session, Capability.basic() | Capability.COPY, root="/r/")
        session.stat.return_value = EntryMetadata(key="/r/k", size=1)

        op.read("k", timeout=2.5)
        op.write("k", b"v", timeout=2.5)
        op.stat("k", timeout=2.5)
        op.copy("k", "j", timeout=2.5)
        op.delete("k", timeout=2.5)
        list(op.list("k", timeout=2.5))

        session.read.assert_called_once_with("/r/k", timeout=2.5)
        session.write.assert_called_once_with("/r/k", b"v", timeout=2.5)
        session.stat.assert_called_once_with("/r/k", timeout=2.5)
        session.copy.assert_called_once_with("/r/k", "/r/j", timeout=2.5)
        session.delete.assert_called_once_with("/r/k", timeout=2.5)
        session.list.assert_called_once_with("/r/k", timeout=2.5)

    def test_delete_many_applies_per_batch(self, session):
        op = make_operator(session, max_batch_size=1)
        op.delete_many(["a", "b"], timeout=4)
        assert [c.kwargs["timeout"] for c in session.delete_many.call_args_list] == [4, 4]

    @pytest.mark.parametrize("timeout", [0, -1, float("nan")])
    def test_non_positive_rejected(self, session, timeout):
        op = make_operator(session)
        with pytest.raises(OperationError, match="timeout must be positive"):
            op.read("k", timeout=timeout)
        with pytest.raises(OperationError, match="timeout must be positive"):
            op.list(timeout=timeout)
        assert session.method_calls == []

    def test_key_checked_before_timeout(self, session):
        op = make_operator(session)
        with pytest.raises(OperationError, match="key must not be empty"):
            op.read("", timeout=0)


class TestBackendProperties:
    """Properties every read/write capable backend must share."""

    @pytest.fixture(params=["kv-plain", "relational-kv", "fs"])
    def op(self, request, fake_redis, tmp_path):
        if request.param == "kv-plain":
            operator = new_operator("kv-plain", {"root": "/app/"}, client=fake_redis)
        elif request.param == "relational-kv":
            url = f"sqlite:///{tmp_path / 'kv.db'}"
            operator = new_operator(
                "relational-kv",
                {"connection-string": url, "table": "data", "key-field": "key", "value-field": "value"},
            )
            table = operator._session.table
            table.metadata.create_all(operator._session._engine)
        else:
            operator = new_operator("fs", {"root": str(tmp_path / "fs")})
        yield operator
        operator.close()

    def test_round_trip(self, op):
        op.write("greeting", b"hello")
        assert op.read("greeting") == b"hello"

    def test_overwrite(self, op):
        op.write("k", b"one")
        op.write("k", b"two")
        assert op.read("k") == b"two"

    def test_delete_never_written(self, op):
        op.delete("never-written")

    def test_read_missing(self, op):
        with pytest.raises(NotFoundError) as exc_info:
            op.read("missing")
        assert exc_info.value.kind is ErrorKind.NOT_FOUND
        assert not exc_info.value.transient

    def test_list_and_stat(self, op):
        op.write("logs/a", b"1")
        op.write("logs/b", b"22")
        op.write("other", b"3")

        assert sorted(op.list("logs/")) == ["logs/a", "logs/b"]
        assert op.stat("logs/b").size == 2

    def test_delete_then_read(self, op):
        op.write("k", b"v")
        op.delete("k")
        assert not op.exists("k")

    def test_listing_after_close(self, op):
        op.write("logs/a", b"1")
        op.write("logs/b", b"2")
        keys = op.list("logs/")
        assert next(keys) in ("logs/a", "logs/b")
        op.close()
        with pytest.raises(ClosedError):
            next(keys)


class TestRelationalListingAfterClose:
    """Closing a relational operator leaves no pooled connection behind."""

    @pytest.fixture
    def op(self, tmp_path):
        operator = new_operator(
            "relational-kv",
            {
                "connection-string": f"sqlite:///{tmp_path / 'kv.db'}",
                "table": "data",
                "key-field": "key",
                "value-field": "value",
            },
        )
        operator._session.table.metadata.create_all(operator._session._engine)
        operator.write("a", b"1")
        operator.write("b", b"2")
        return operator

    def test_unstarted_listing(self, op):
        keys = op.list("")
        op.close()
        with pytest.raises(ClosedError):
            list(keys)
        pool = op._session._engine.pool
        assert pool.checkedin() == 0
        assert pool.checkedout() == 0

    def test_listing_in_progress(self, op):
        keys = op.list("")
        assert next(keys) == "a"
        op.close()
        with pytest.raises(ClosedError):
            next(keys)
        pool = op._session._engine.pool
        assert pool.checkedin() == 0
        assert pool.checkedout() == 0
