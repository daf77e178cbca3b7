"""The uniform access object.

An ``Operator`` couples a session with its scheme's capability descriptor and
a normalized root. Every call runs the same gate before the session sees it:

1. a closed operator raises ``ClosedError``
2. an operation outside the descriptor raises ``Unsupported``
3. the key is joined to the root and checked against the scheme's limits,
   and a per-call timeout must be positive
4. the session performs the call

Steps 1-3 never touch the transport.
"""

from __future__ import annotations

import builtins
import dataclasses
import logging
import threading
from collections.abc import Iterable, Iterator
from datetime import timedelta

from .capability import Capability, CapabilityDescriptor
from .errors import ClosedError, NotFoundError, OperationError, Unsupported
from .path import build_abs_path, build_rel_path, normalize_path, normalize_root
from .session import EntryMetadata, Session

logger = logging.getLogger(__name__)


class Operator:
    """Backend-independent read/write/list/stat/delete surface.

    Operators are built by ``new_operator`` or ``OperatorRegistry`` and own
    their session exclusively. They are safe to share between threads and
    usable as context managers.

    Examples:
        >>> with new_operator("fs", {"root": "/tmp/data"}) as op:
        ...     op.write("reports/q1.csv", b"a,b\\n")
        ...     op.read("reports/q1.csv")
        b'a,b\\n'
    """

    def __init__(
        self,
        scheme: str,
        session: Session,
        capabilities: CapabilityDescriptor,
        root: str = "/",
    ):
        self._scheme = str(scheme)
        self._session = session
        self._capabilities = capabilities
        self._root = normalize_root(root)
        self._closed = False
        # reentrant: an abandoned listing can be finalized while the lock is held
        self._lock = threading.RLock()
        # backend listings started but not yet finished
        self._listings: set[Iterator[str]] = set()

    @property
    def scheme(self) -> str:
        return self._scheme

    @property
    def capabilities(self) -> CapabilityDescriptor:
        return self._capabilities

    @property
    def root(self) -> str:
        return self._root

    @property
    def closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"Operator(scheme={self._scheme!r}, root={self._root!r}, {state})"

    def __enter__(self) -> Operator:
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _check(self, operation: str, capability: Capability) -> None:
        if self._closed:
            raise ClosedError(operation)
        if not self._capabilities.supports(capability):
            raise Unsupported(operation, self._scheme)

    def _abs_key(self, key: str, operation: str) -> str:
        if not normalize_path(key):
            raise OperationError(key, operation, "key must not be empty")
        abs_key = build_abs_path(self._root, key)
        limit = self._capabilities.max_key_length
        if limit is not None and len(abs_key.lstrip("/").encode("utf-8")) > limit:
            raise OperationError(key, operation, f"key exceeds {limit} bytes")
        return abs_key

    @staticmethod
    def _deadline(timeout: float | None, key: str | None, operation: str) -> float | None:
        if timeout is not None and not timeout > 0:
            raise OperationError(key, operation, f"timeout must be positive, got {timeout}")
        return timeout

    def read(self, key: str, timeout: float | None = None) -> bytes:
        """Return the value stored at ``key``.

        Args:
            key: Key relative to the operator root
            timeout: Seconds allowed for this call; defaults to the
                configured timeout

        Raises:
            NotFoundError: If nothing is stored at ``key``
        """
        self._check("read", Capability.READ)
        path = self._abs_key(key, "read")
        return self._session.read(path, timeout=self._deadline(timeout, key, "read"))

    def write(self, key: str, data: bytes, timeout: float | None = None) -> None:
        """Store ``data`` at ``key``, replacing any existing value."""
        self._check("write", Capability.WRITE)
        path = self._abs_key(key, "write")
        self._session.write(path, bytes(data), timeout=self._deadline(timeout, key, "write"))

    def delete(self, key: str, timeout: float | None = None) -> None:
        """Remove ``key``. Deleting an absent key succeeds."""
        self._check("delete", Capability.DELETE)
        path = self._abs_key(key, "delete")
        timeout = self._deadline(timeout, key, "delete")
        try:
            self._session.delete(path, timeout=timeout)
        except NotFoundError:
            logger.warning(f"Delete of absent key ignored: {key}")

    def delete_many(self, keys: Iterable[str], timeout: float | None = None) -> None:
        """Remove several keys, in batches no larger than the scheme allows.

        ``timeout`` bounds each batch separately.
        """
        self._check("delete", Capability.DELETE)
        paths = [self._abs_key(key, "delete") for key in keys]
        timeout = self._deadline(timeout, None, "delete")
        batch = self._capabilities.max_batch_size or len(paths) or 1
        for start in range(0, len(paths), batch):
            self._session.delete_many(paths[start : start + batch], timeout=timeout)

    def list(self, prefix: str = "", timeout: float | None = None) -> Iterator[str]:
        """Iterate over keys beginning with ``prefix``.

        Keys come back relative to the root, in the order the backend
        produces them. The iterator is lazy and can be consumed once; once
        the operator is closed, advancing it raises ``ClosedError``.
        """
        self._check("list", Capability.LIST)
        abs_prefix = build_abs_path(self._root, prefix)
        return self._iter_keys(abs_prefix, self._deadline(timeout, prefix, "list"))

    def _iter_keys(self, abs_prefix: str, timeout: float | None) -> Iterator[str]:
        with self._lock:
            if self._closed:
                raise ClosedError("list")
            paths = iter(self._session.list(abs_prefix, timeout=timeout))
            self._listings.add(paths)
        try:
            while True:
                path = next(paths, None)
                if path is None:
                    return
                yield build_rel_path(self._root, path)
                if self._closed:
                    raise ClosedError("list")
        finally:
            with self._lock:
                self._listings.discard(paths)
            _close_listing(paths)

    def stat(self, key: str, timeout: float | None = None) -> EntryMetadata:
        """Return metadata for ``key``; the entry's key is relative to the root."""
        self._check("stat", Capability.STAT)
        path = self._abs_key(key, "stat")
        metadata = self._session.stat(path, timeout=self._deadline(timeout, key, "stat"))
        return dataclasses.replace(metadata, key=normalize_path(key))

    def exists(self, key: str, timeout: float | None = None) -> bool:
        self._check("stat", Capability.STAT)
        path = self._abs_key(key, "stat")
        try:
            self._session.stat(path, timeout=self._deadline(timeout, key, "stat"))
        except NotFoundError:
            return False
        return True

    def copy(self, source: str, dest: str, timeout: float | None = None) -> None:
        self._check("copy", Capability.COPY)
        paths = self._abs_key(source, "copy"), self._abs_key(dest, "copy")
        self._session.copy(*paths, timeout=self._deadline(timeout, source, "copy"))

    def rename(self, source: str, dest: str, timeout: float | None = None) -> None:
        self._check("rename", Capability.RENAME)
        paths = self._abs_key(source, "rename"), self._abs_key(dest, "rename")
        self._session.rename(*paths, timeout=self._deadline(timeout, source, "rename"))

    def presign(
        self, key: str, expiration: timedelta = timedelta(hours=1), method: str = "GET"
    ) -> str:
        """Return a URL granting temporary ``method`` access to ``key``.

        Signing happens locally, so no timeout applies.
        """
        self._check("presign", Capability.PRESIGN)
        return self._session.presign(self._abs_key(key, "presign"), expiration, method.upper())

    def write_multipart(self, key: str, parts: Iterable[bytes], timeout: float | None = None) -> None:
        """Store the concatenation of ``parts`` without buffering it whole.

        ``timeout`` bounds each part upload, not the whole transfer.
        """
        self._check("multipart", Capability.MULTIPART)
        path = self._abs_key(key, "multipart")
        self._session.write_multipart(path, parts, timeout=self._deadline(timeout, key, "multipart"))

    def close(self) -> None:
        """Release the session and any listing still in progress. Closing twice is a no-op."""
        with self._lock:
            if self._closed:
                return
            self._closed = True
            listings, self._listings = self._listings, set()
        for paths in listings:
            _close_listing(paths)
        self._session.close()
        logger.info(f"Closed {self._scheme} operator (root {self._root})")

    def capability_names(self) -> builtins.list[str]:
        return self._capabilities.names()


def _close_listing(paths: Iterator[str]) -> None:
    """Finish a backend listing so it gives back its connection."""
    # a listing being advanced by another thread stops at its next closed check
    if getattr(paths, "gi_running", False):
        return
    close = getattr(paths, "close", None)
    if close is not None:
        close()
