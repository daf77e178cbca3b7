"""S3-compatible object storage through the MinIO client."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from datetime import timedelta
from io import BytesIO
from urllib.parse import urlsplit

import urllib3
from minio import Minio
from minio.commonconfig import CopySource
from minio.deleteobjects import DeleteObject
from minio.error import S3Error
from urllib3.exceptions import HTTPError as Urllib3HTTPError
from urllib3.exceptions import NewConnectionError
from urllib3.exceptions import TimeoutError as Urllib3TimeoutError

from ..errors import (
    NotFoundError,
    OperationError,
    OperationTimeoutError,
    PermissionDeniedError,
    UnavailableError,
)
from ..params import S3Params
from ..session import EntryMetadata, Session

logger = logging.getLogger(__name__)

# S3 rejects multipart parts below 5 MiB
PART_SIZE = 5 * 1024 * 1024
MAX_PRESIGN_EXPIRATION = timedelta(days=7)

NOT_FOUND_CODES = frozenset({"NoSuchKey", "NoSuchBucket", "NoSuchObject"})
PERMISSION_CODES = frozenset(
    {"AccessDenied", "InvalidAccessKeyId", "SignatureDoesNotMatch", "ExpiredToken"}
)
UNAVAILABLE_CODES = frozenset({"SlowDown", "ServiceUnavailable", "InternalError"})


def _object_name(path: str) -> str:
    """Object names carry no leading slash."""
    return path.lstrip("/")


class _ChunkReader:
    """File-like view over an iterable of byte chunks, for ``put_object``."""

    def __init__(self, parts: Iterable[bytes]):
        self._parts = iter(parts)
        self._pending = b""

    def read(self, size: int = -1) -> bytes:
        chunks = [self._pending]
        have = len(self._pending)
        while size < 0 or have < size:
            part = next(self._parts, None)
            if part is None:
                break
            chunks.append(part)
            have += len(part)
        data = b"".join(chunks)
        if size < 0:
            self._pending = b""
            return data
        self._pending = data[size:]
        return data[:size]


def _pool_manager(timeout: float) -> urllib3.PoolManager:
    return urllib3.PoolManager(
        timeout=urllib3.Timeout(connect=timeout, read=timeout),
        retries=False,
    )


class MinIOSession(Session):
    """Session over a ``minio.Minio`` client bound to one bucket.

    The MinIO client takes its timeout from its pool manager, so a per-call
    timeout runs on a second client built by ``client_factory`` over a pool
    with that timeout. Those clients are kept per distinct value and their
    pools cleared on close. Without a factory the configured client serves
    every call.
    """

    scheme = "s3"

    def __init__(
        self,
        client: Minio,
        bucket: str,
        http_client: urllib3.PoolManager | None = None,
        client_factory: Callable[[urllib3.PoolManager], Minio] | None = None,
    ):
        self._client = client
        self._bucket = bucket
        self._http_client = http_client
        self._client_factory = client_factory
        self._lock = threading.Lock()
        self._scoped: dict[float, tuple[Minio, urllib3.PoolManager]] = {}

    def _client_for(self, timeout: float | None) -> Minio:
        if timeout is None or self._client_factory is None:
            return self._client
        with self._lock:
            if timeout not in self._scoped:
                http_client = _pool_manager(timeout)
                self._scoped[timeout] = (self._client_factory(http_client), http_client)
                logger.debug(f"Opened connection pool with {timeout}s timeout for bucket {self._bucket}")
            return self._scoped[timeout][0]

    @contextmanager
    def _translate(self, operation: str, path: str | None):
        try:
            yield
        except S3Error as e:
            if e.code in NOT_FOUND_CODES:
                raise NotFoundError(path, operation, str(e)) from e
            if e.code in PERMISSION_CODES:
                raise PermissionDeniedError(path, operation, str(e)) from e
            if e.code in UNAVAILABLE_CODES:
                raise UnavailableError(path, operation, str(e)) from e
            raise OperationError(path, operation, str(e)) from e
        except NewConnectionError as e:
            raise UnavailableError(path, operation, str(e)) from e
        except Urllib3TimeoutError as e:
            raise OperationTimeoutError(path, operation, str(e)) from e
        except Urllib3HTTPError as e:
            raise UnavailableError(path, operation, str(e)) from e

    def read(self, path: str, timeout: float | None = None) -> bytes:
        with self._translate("read", path):
            response = self._client_for(timeout).get_object(self._bucket, _object_name(path))
            try:
                return response.read()
            finally:
                response.close()
                response.release_conn()

    def write(self, path: str, data: bytes, timeout: float | None = None) -> None:
        with self._translate("write", path):
            result = self._client_for(timeout).put_object(
                bucket_name=self._bucket,
                object_name=_object_name(path),
                data=BytesIO(data),
                length=len(data),
                content_type="application/octet-stream",
            )
        logger.debug(f"Stored object: {path} (etag: {result.etag})")

    def write_multipart(self, path: str, parts: Iterable[bytes], timeout: float | None = None) -> None:
        with self._translate("multipart", path):
            result = self._client_for(timeout).put_object(
                bucket_name=self._bucket,
                object_name=_object_name(path),
                data=_ChunkReader(parts),
                length=-1,
                part_size=PART_SIZE,
                content_type="application/octet-stream",
            )
        logger.debug(f"Stored object in parts: {path} (etag: {result.etag})")

    def delete(self, path: str, timeout: float | None = None) -> None:
        with self._translate("delete", path):
            self._client_for(timeout).remove_object(self._bucket, _object_name(path))

    def delete_many(self, paths: Iterable[str], timeout: float | None = None) -> None:
        objects = [DeleteObject(_object_name(p)) for p in paths]
        if not objects:
            return
        with self._translate("delete", None):
            # remove_objects is lazy; errors only arrive while iterating
            for error in self._client_for(timeout).remove_objects(self._bucket, objects):
                if error.code in NOT_FOUND_CODES:
                    continue
                raise OperationError("/" + error.name, "delete", f"{error.code}: {error.message}")
        logger.debug(f"Deleted {len(objects)} objects")

    def stat(self, path: str, timeout: float | None = None) -> EntryMetadata:
        with self._translate("stat", path):
            stat = self._client_for(timeout).stat_object(self._bucket, _object_name(path))
        return EntryMetadata(
            key=path,
            size=stat.size,
            last_modified=stat.last_modified,
            etag=stat.etag,
            content_type=stat.content_type,
        )

    def list(self, prefix: str, timeout: float | None = None) -> Iterator[str]:
        with self._translate("list", prefix):
            objects = self._client_for(timeout).list_objects(
                bucket_name=self._bucket,
                prefix=_object_name(prefix),
                recursive=True,
            )
            for obj in objects:
                if obj.is_dir:
                    continue
                yield "/" + obj.object_name

    def copy(self, source: str, dest: str, timeout: float | None = None) -> None:
        with self._translate("copy", source):
            self._client_for(timeout).copy_object(
                bucket_name=self._bucket,
                object_name=_object_name(dest),
                source=CopySource(self._bucket, _object_name(source)),
            )
        logger.debug(f"Copied object: {source} -> {dest}")

    def presign(self, path: str, expiration: timedelta, method: str) -> str:
        if not timedelta(seconds=1) <= expiration <= MAX_PRESIGN_EXPIRATION:
            raise OperationError(path, "presign", "expiration must be between 1 second and 7 days")
        with self._translate("presign", path):
            if method == "GET":
                return self._client.presigned_get_object(self._bucket, _object_name(path), expires=expiration)
            if method == "PUT":
                return self._client.presigned_put_object(self._bucket, _object_name(path), expires=expiration)
        raise OperationError(path, "presign", f"unsupported method '{method}'")

    def close(self) -> None:
        with self._lock:
            pools = [pool for _, pool in self._scoped.values()]
            self._scoped = {}
            if self._http_client is not None:
                pools.append(self._http_client)
                self._http_client = None
        for pool in pools:
            pool.clear()
        if pools:
            logger.debug(f"Closed {len(pools)} connection pool(s) for bucket {self._bucket}")


def build_minio_session(params: S3Params, client: Minio | None = None) -> MinIOSession:
    """Create an S3 session from validated parameters.

    The bucket must already exist; nothing is sent until the first operation.

    Args:
        params: Validated ``s3`` parameters
        client: Pre-built MinIO client to use instead of creating one
    """

    def new_client(http_client: urllib3.PoolManager) -> Minio:
        return Minio(
            endpoint=urlsplit(params.endpoint.base_url).netloc,
            access_key=params.access_key_id,
            secret_key=params.secret_access_key,
            secure=params.secure,
            region=params.region,
            http_client=http_client,
        )

    http_client = None
    client_factory = None
    if client is None:
        http_client = _pool_manager(params.timeout)
        client_factory = new_client
        client = new_client(http_client)

    logger.info(f"Created s3 session for bucket {params.bucket} at {params.endpoint.base_url}")
    return MinIOSession(client, params.bucket, http_client, client_factory)
