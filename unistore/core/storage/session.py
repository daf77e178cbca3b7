"""Session state contract.

A session is the live connection state behind one operator: a pooled Redis
client, an SQLAlchemy engine, an HTTP session, and so on. Sessions work in
absolute backend keys (root already joined) and report failures with the
``OperationError`` family. Optional operations default to raising
``Unsupported``; the operator checks the capability descriptor before it
ever calls them.

Every operation takes a ``timeout`` in seconds bounding the network work of
that one call. ``None`` falls back to the timeout the session was configured
with.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from .errors import NotFoundError, Unsupported


@dataclass
class EntryMetadata:
    """Metadata for a stored entry."""

    key: str
    size: int | None
    last_modified: datetime | None = None
    etag: str | None = None
    content_type: str | None = None
    is_dir: bool = False
    extra: dict[str, str] = field(default_factory=dict)


class Session(ABC):
    """Abstract base class for backend session state."""

    scheme = "unknown"

    @abstractmethod
    def read(self, path: str, timeout: float | None = None) -> bytes:
        """Retrieve the value stored at ``path``.

        Raises:
            NotFoundError: If nothing is stored at ``path``
        """
        pass

    @abstractmethod
    def write(self, path: str, data: bytes, timeout: float | None = None) -> None:
        """Store ``data`` at ``path``, replacing any existing value."""
        pass

    @abstractmethod
    def delete(self, path: str, timeout: float | None = None) -> None:
        """Remove ``path``.

        May raise ``NotFoundError`` for an absent path; the operator turns
        that into a silent success.
        """
        pass

    @abstractmethod
    def stat(self, path: str, timeout: float | None = None) -> EntryMetadata:
        """Return metadata for ``path``.

        Raises:
            NotFoundError: If nothing is stored at ``path``
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release every pooled resource. Must be safe to call twice."""
        pass

    def list(self, prefix: str, timeout: float | None = None) -> Iterator[str]:
        """Yield absolute keys under ``prefix`` in backend order."""
        raise Unsupported("list", self.scheme)

    def delete_many(self, paths: Iterable[str], timeout: float | None = None) -> None:
        """Remove several paths; absent ones are ignored."""
        for path in paths:
            try:
                self.delete(path, timeout=timeout)
            except NotFoundError:
                continue

    def copy(self, source: str, dest: str, timeout: float | None = None) -> None:
        raise Unsupported("copy", self.scheme)

    def rename(self, source: str, dest: str, timeout: float | None = None) -> None:
        raise Unsupported("rename", self.scheme)

    def presign(self, path: str, expiration: timedelta, method: str) -> str:
        raise Unsupported("presign", self.scheme)

    def write_multipart(self, path: str, parts: Iterable[bytes], timeout: float | None = None) -> None:
        raise Unsupported("multipart", self.scheme)
