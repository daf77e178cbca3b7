"""Named operator profiles.

This module defines the CONFIGURATION dict which maps profile names to a
scheme plus that scheme's options. Every value is a string, exactly as it
would appear in a ConfigMap.

Configuration location: configs/operators.py

Example usage:
    from unistore import OperatorRegistry

    registry = OperatorRegistry()
    with registry.get_operator("cache") as op:
        op.write("greeting", b"hello")

    # Dotted names extend the root: "local.reports" is rooted at /reports/
    with registry.get_operator("local.reports") as op:
        op.list()

Configuration inheritance:
    "cache": {"scheme": "kv-plain", "endpoint": "tcp://127.0.0.1:6379"},
    "sessions": {
        "__inherits__": "cache",  # Inherits all settings from cache
        "db": "1",                # Override only the database
    }

Environment overrides:
    Endpoints and credentials are read from the environment (and a .env
    file, if present) when this module is imported.
"""

from __future__ import annotations

import os
from pathlib import Path

from unistore.core.utils.env import load_env_file_if_present

load_env_file_if_present()  # Load .env file if present
PROJECT_ROOT = Path(__file__).resolve().parents[1]

DEFAULT_DATA_PATH = Path(os.environ.get("UNISTORE_DATA_PATH", PROJECT_ROOT / "var" / "data")).expanduser()


def _build_s3_config() -> dict[str, str]:
    """Return an S3 profile pointing at a local MinIO by default."""
    config = {
        "scheme": "s3",
        "endpoint": os.getenv("MINIO_ENDPOINT", "http://localhost:9000"),
        "bucket": os.getenv("MINIO_BUCKET", "unistore"),
    }
    access_key = os.getenv("MINIO_ACCESS_KEY")
    secret_key = os.getenv("MINIO_SECRET_KEY")
    if access_key is not None and secret_key is not None:
        config["access-key-id"] = access_key
        config["secret-access-key"] = secret_key
    return config


CONFIGURATION = {
    # Local filesystem storage (handy for adhoc experiments)
    "local": {
        "scheme": "fs",
        "root": str(DEFAULT_DATA_PATH),
    },
    # Redis on the default port
    "cache": {
        "scheme": "kv-plain",
        "endpoint": os.getenv("REDIS_ENDPOINT", "tcp://127.0.0.1:6379"),
        "root": "/cache/",
    },
    # Same server, separate database
    "sessions": {
        "__inherits__": "cache",
        "db": "1",
        "root": "/",
    },
    # A table used as a key-value store
    "catalog": {
        "scheme": "relational-kv",
        "connection-string": os.getenv(
            "CATALOG_DATABASE_URL", f"sqlite:///{DEFAULT_DATA_PATH / 'catalog.db'}"
        ),
        "table": "data",
        "key-field": "key",
        "value-field": "value",
    },
    # Object storage
    "objects": _build_s3_config(),
    # Nextcloud/ownCloud style WebDAV share
    "share": {
        "scheme": "webdav",
        "endpoint": os.getenv("WEBDAV_ENDPOINT", "http://127.0.0.1:8080/remote.php/webdav/"),
        "username": os.getenv("WEBDAV_USERNAME", "admin"),
        "password": os.getenv("WEBDAV_PASSWORD", "admin"),
    },
}
