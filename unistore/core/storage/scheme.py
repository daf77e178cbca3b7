"""Supported backend schemes."""

from __future__ import annotations

from enum import Enum

from .errors import UnknownSchemeError


class Scheme(str, Enum):
    """Closed set of backend kinds an operator can be built for."""

    KV_PLAIN = "kv-plain"
    KV_TLS = "kv-tls"
    RELATIONAL_KV = "relational-kv"
    WEBDAV = "webdav"
    DROPBOX = "dropbox"
    S3 = "s3"
    FS = "fs"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, value: str | Scheme) -> Scheme:
        """Resolve a scheme identifier.

        Raises:
            UnknownSchemeError: If ``value`` is not a supported identifier
        """
        if isinstance(value, Scheme):
            return value
        try:
            return cls(value)
        except ValueError:
            raise UnknownSchemeError(str(value), [s.value for s in cls]) from None

    @property
    def env_name(self) -> str:
        """Upper-case form used in environment variable names (``KV_TLS``)."""
        return self.value.replace("-", "_").upper()
