"""Connection builders and session state, one module per backend family."""

from unistore.core.storage.backends.dropbox_backend import DropboxSession, build_dropbox_session
from unistore.core.storage.backends.filesystem_backend import (
    FilesystemSession,
    build_filesystem_session,
)
from unistore.core.storage.backends.http import MAX_REDIRECTS, HttpTransport
from unistore.core.storage.backends.minio_backend import MinIOSession, build_minio_session
from unistore.core.storage.backends.redis_backend import RedisSession, build_redis_session
from unistore.core.storage.backends.sql_backend import RelationalSession, build_relational_session
from unistore.core.storage.backends.webdav_backend import WebdavSession, build_webdav_session

__all__ = [
    "MAX_REDIRECTS",
    "HttpTransport",
    "RedisSession",
    "RelationalSession",
    "WebdavSession",
    "DropboxSession",
    "MinIOSession",
    "FilesystemSession",
    "build_redis_session",
    "build_relational_session",
    "build_webdav_session",
    "build_dropbox_session",
    "build_minio_session",
    "build_filesystem_session",
]
