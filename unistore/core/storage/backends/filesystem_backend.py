"""Local filesystem backend.

Each key is a file under the configured base directory. Parent directories
are created on write and pruned again when the last file in them is deleted.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from pathlib import Path

from ..errors import (
    AlreadyExistsError,
    NotFoundError,
    OperationError,
    PermissionDeniedError,
)
from ..params import FsParams
from ..session import EntryMetadata, Session

logger = logging.getLogger(__name__)


class FilesystemSession(Session):
    """Session storing values as files below ``base_path``.

    Local file calls do not take a deadline; ``timeout`` is accepted and
    ignored.
    """

    scheme = "fs"

    def __init__(self, base_path: str | Path):
        self._base_path = Path(base_path)

    def _get_file_path(self, path: str, operation: str) -> Path:
        """Map a backend key to a file, refusing keys that escape the base directory."""
        parts = [p for p in path.split("/") if p]
        if any(p in (".", "..") for p in parts):
            raise OperationError(path, operation, "relative path segments are not allowed")
        return self._base_path.joinpath(*parts)

    @contextmanager
    def _translate(self, operation: str, path: str | None):
        try:
            yield
        except FileNotFoundError as e:
            raise NotFoundError(path, operation, str(e)) from e
        except FileExistsError as e:
            raise AlreadyExistsError(path, operation, str(e)) from e
        except PermissionError as e:
            raise PermissionDeniedError(path, operation, str(e)) from e
        except OSError as e:
            raise OperationError(path, operation, str(e)) from e

    def _cleanup_empty_dirs(self, path: Path) -> None:
        """Remove empty parent directories up to base_path."""
        try:
            while path != self._base_path and path.exists():
                if any(path.iterdir()):
                    break
                path.rmdir()
                path = path.parent
        except OSError as e:
            logger.debug(f"Stopped pruning directories at {path}: {e}")

    def read(self, path: str, timeout: float | None = None) -> bytes:
        file_path = self._get_file_path(path, "read")
        with self._translate("read", path):
            return file_path.read_bytes()

    def write(self, path: str, data: bytes, timeout: float | None = None) -> None:
        file_path = self._get_file_path(path, "write")
        with self._translate("write", path):
            file_path.parent.mkdir(parents=True, exist_ok=True)
            file_path.write_bytes(data)
        logger.debug(f"Stored file: {path} ({len(data)} bytes)")

    def delete(self, path: str, timeout: float | None = None) -> None:
        file_path = self._get_file_path(path, "delete")
        with self._translate("delete", path):
            file_path.unlink()
        self._cleanup_empty_dirs(file_path.parent)

    def stat(self, path: str, timeout: float | None = None) -> EntryMetadata:
        file_path = self._get_file_path(path, "stat")
        with self._translate("stat", path):
            stat = file_path.stat()
        is_dir = file_path.is_dir()
        return EntryMetadata(
            key=path,
            size=0 if is_dir else stat.st_size,
            last_modified=datetime.fromtimestamp(stat.st_mtime, UTC),
            is_dir=is_dir,
        )

    def list(self, prefix: str, timeout: float | None = None) -> Iterator[str]:
        # walk the deepest directory the prefix names, then filter by name
        directory = prefix.rsplit("/", 1)[0]
        search_path = self._get_file_path(directory, "list")
        if not search_path.is_dir():
            return
        with self._translate("list", prefix):
            for file_path in sorted(search_path.rglob("*")):
                if file_path.is_dir():
                    continue
                key = "/" + file_path.relative_to(self._base_path).as_posix()
                if key.startswith(prefix):
                    yield key

    def copy(self, source: str, dest: str, timeout: float | None = None) -> None:
        source_path = self._get_file_path(source, "copy")
        dest_path = self._get_file_path(dest, "copy")
        with self._translate("copy", source):
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(source_path, dest_path)
        logger.debug(f"Copied file: {source} -> {dest}")

    def rename(self, source: str, dest: str, timeout: float | None = None) -> None:
        source_path = self._get_file_path(source, "rename")
        dest_path = self._get_file_path(dest, "rename")
        with self._translate("rename", source):
            dest_path.parent.mkdir(parents=True, exist_ok=True)
            os.replace(source_path, dest_path)
        self._cleanup_empty_dirs(source_path.parent)
        logger.debug(f"Renamed file: {source} -> {dest}")

    def close(self) -> None:
        pass


def build_filesystem_session(params: FsParams, client: None = None) -> FilesystemSession:
    """Create a filesystem session; the base directory is created on first write."""
    logger.info(f"Created fs session at: {params.base_path}")
    return FilesystemSession(params.base_path)
