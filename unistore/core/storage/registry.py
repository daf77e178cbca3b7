"""Scheme registry and named operator profiles.

``SCHEMES`` maps every scheme to its validator, connection builder and
capability descriptor; ``new_operator`` runs the three in order. The table is
built once at import and never mutated.

``OperatorRegistry`` resolves profile names from a configuration module to
operators, with dotted names extending the profile's root.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from unistore.core.storage.backends import (
    build_dropbox_session,
    build_filesystem_session,
    build_minio_session,
    build_redis_session,
    build_relational_session,
    build_webdav_session,
)
from unistore.core.storage.capability import Capability, CapabilityDescriptor
from unistore.core.storage.config_map import ConfigMap
from unistore.core.storage.errors import ConfigError, MissingField
from unistore.core.storage.operator import Operator
from unistore.core.storage.params import Params
from unistore.core.storage.path import normalize_root
from unistore.core.storage.scheme import Scheme
from unistore.core.storage.session import Session
from unistore.core.storage.validators import (
    validate_dropbox,
    validate_fs,
    validate_redis,
    validate_relational,
    validate_s3,
    validate_webdav,
)
from unistore.core.utils.config import load_and_resolve_config

logger = logging.getLogger(__name__)

Validator = Callable[[Mapping[str, str], bool], Params]
Builder = Callable[[Any, Any], Session]


@dataclass(frozen=True)
class SchemeEntry:
    """Everything needed to turn a config map into an operator for one scheme."""

    validator: Validator
    builder: Builder
    capabilities: CapabilityDescriptor


def _validate_kv_plain(config: Mapping[str, str], strict: bool = False) -> Params:
    return validate_redis(config, Scheme.KV_PLAIN, strict)


def _validate_kv_tls(config: Mapping[str, str], strict: bool = False) -> Params:
    return validate_redis(config, Scheme.KV_TLS, strict)


_KV = CapabilityDescriptor(Capability.basic())

SCHEMES: dict[Scheme, SchemeEntry] = {
    Scheme.KV_PLAIN: SchemeEntry(_validate_kv_plain, build_redis_session, _KV),
    Scheme.KV_TLS: SchemeEntry(_validate_kv_tls, build_redis_session, _KV),
    Scheme.RELATIONAL_KV: SchemeEntry(
        validate_relational,
        build_relational_session,
        CapabilityDescriptor(Capability.basic()),
    ),
    Scheme.WEBDAV: SchemeEntry(
        validate_webdav,
        build_webdav_session,
        CapabilityDescriptor(Capability.basic() | Capability.COPY),
    ),
    Scheme.DROPBOX: SchemeEntry(
        validate_dropbox,
        build_dropbox_session,
        CapabilityDescriptor(Capability.READ | Capability.WRITE | Capability.DELETE | Capability.STAT),
    ),
    Scheme.S3: SchemeEntry(
        validate_s3,
        build_minio_session,
        CapabilityDescriptor(
            Capability.basic() | Capability.COPY | Capability.PRESIGN | Capability.MULTIPART,
            max_key_length=1024,
            max_batch_size=1000,
        ),
    ),
    Scheme.FS: SchemeEntry(
        validate_fs,
        build_filesystem_session,
        CapabilityDescriptor(Capability.basic() | Capability.COPY | Capability.RENAME),
    ),
}


def available_schemes() -> list[str]:
    """Identifiers of every supported scheme, in declaration order."""
    return [scheme.value for scheme in SCHEMES]


def capabilities(scheme: str | Scheme) -> CapabilityDescriptor:
    """Return the static capability descriptor of ``scheme``."""
    return SCHEMES[Scheme.parse(scheme)].capabilities


def validate(scheme: str | Scheme, config: Mapping[str, str], strict: bool = False) -> Params:
    """Validate ``config`` for ``scheme`` without performing any I/O.

    Raises:
        UnknownSchemeError: If ``scheme`` is not supported
        ConfigError: If the configuration is invalid
    """
    entry = SCHEMES[Scheme.parse(scheme)]
    if not isinstance(config, ConfigMap):
        config = ConfigMap(config)
    return entry.validator(config, strict)


def build(params: Params, client: Any = None) -> Session:
    """Build session state from validated parameters.

    Raises:
        ConnectError: If session state cannot be established
    """
    return SCHEMES[params.scheme].builder(params, client)


def new_operator(
    scheme: str | Scheme,
    config: Mapping[str, str],
    strict: bool = False,
    client: Any = None,
) -> Operator:
    """Create an operator for ``scheme`` from a flat string configuration.

    Args:
        scheme: Scheme identifier, e.g. ``"kv-plain"``
        config: Option name to string value
        strict: Reject options the scheme does not recognize
        client: Transport collaborator handed to the connection builder
            (redis client, SQLAlchemy engine, ``requests.Session`` factory
            or MinIO client)

    Returns:
        An open operator

    Raises:
        ConfigError: If the scheme or configuration is invalid
        ConnectError: If the connection cannot be established

    Examples:
        >>> op = new_operator("kv-plain", {"endpoint": "tcp://127.0.0.1:6379"})
        >>> op.capability_names()
        ['read', 'write', 'delete', 'list', 'stat']
    """
    resolved = Scheme.parse(scheme)
    params = validate(resolved, config, strict)
    session = build(params, client)
    operator = Operator(resolved, session, SCHEMES[resolved].capabilities, params.root)
    logger.info(f"Created {resolved} operator (root {operator.root})")
    return operator


class ProfileNotFoundError(ConfigError):
    """Raised when a named profile is not found in configuration."""

    pass


class OperatorRegistry:
    """Registry of named operator profiles.

    A profile is a flat string mapping with a ``scheme`` entry; every other
    entry is passed to the scheme's validator. Dotted names extend the
    profile's root, so ``"cache.sessions"`` is the ``cache`` profile rooted
    one level deeper at ``sessions/``.

    Each call to ``get_operator`` builds a fresh operator that the caller owns
    and must close.

    Examples:
        >>> registry = OperatorRegistry()
        >>> with registry.get_operator("local.reports") as op:
        ...     op.write("q1.csv", b"...")
    """

    def __init__(
        self,
        configuration: dict[str, dict[str, str]] | None = None,
        config_module: str = "configs.operators",
    ):
        """Initialize the registry.

        Args:
            configuration: Profile configuration dict. If None, loads and
                resolves ``CONFIGURATION`` from ``config_module``
            config_module: Dotted module path of the profile configuration
        """
        if configuration is None:
            configuration = load_and_resolve_config(
                config_module,
                config_name="CONFIGURATION",
                default={},
            )
        self._config = dict(configuration)

    def parse_name(self, name: str) -> tuple[str, str]:
        """Parse a profile name into base name and sub-root.

        Examples:
            >>> registry.parse_name("cache")
            ('cache', '')
            >>> registry.parse_name("cache.sessions.web")
            ('cache', 'sessions/web')
        """
        parts = name.split(".")
        return parts[0], "/".join(parts[1:])

    def create_operator(
        self, config: Mapping[str, str], strict: bool = False, client: Any = None
    ) -> Operator:
        """Create an operator from a single profile mapping.

        Raises:
            MissingField: If the profile has no ``scheme``
        """
        options = dict(config)
        scheme = options.pop("scheme", None)
        if not scheme:
            raise MissingField("scheme")
        return new_operator(scheme, options, strict=strict, client=client)

    def get_operator(self, name: str, strict: bool = False, client: Any = None) -> Operator:
        """Build a new operator for a named profile.

        Raises:
            ProfileNotFoundError: If the base name is not configured
            ConfigError: If the profile configuration is invalid
        """
        base_name, sub_root = self.parse_name(name)
        if base_name not in self._config:
            available = ", ".join(self._config)
            raise ProfileNotFoundError(
                f"Profile '{base_name}' not found in configuration. "
                f"Available profiles: {available or 'none'}"
            )

        config = dict(self._config[base_name])
        if sub_root:
            config["root"] = normalize_root(f"{config.get('root', '/')}/{sub_root}")

        operator = self.create_operator(config, strict=strict, client=client)
        logger.info(f"Created operator for '{name}' (profile: {base_name}, root: {operator.root})")
        return operator

    def list_profiles(self) -> list[str]:
        return list(self._config)

    def register(self, name: str, config: dict[str, str]) -> None:
        """Add or replace a profile."""
        if "." in name:
            raise ConfigError(f"Profile name '{name}' must not contain '.'")
        self._config[name] = config
