"""Storage abstraction: one operator surface over many backends."""

from unistore.core.storage.capability import Capability, CapabilityDescriptor
from unistore.core.storage.config_map import ConfigMap
from unistore.core.storage.errors import (
    AlreadyExistsError,
    CapabilityError,
    ClosedError,
    ConfigError,
    ConnectError,
    ErrorKind,
    Handshake,
    Inconsistent,
    InvalidValue,
    MissingField,
    NotFoundError,
    OperationError,
    OperationTimeoutError,
    PermissionDeniedError,
    Refused,
    StorageError,
    Timeout,
    TooManyRedirects,
    UnavailableError,
    UnknownSchemeError,
    Unsupported,
)
from unistore.core.storage.operator import Operator
from unistore.core.storage.registry import (
    SCHEMES,
    OperatorRegistry,
    ProfileNotFoundError,
    available_schemes,
    build,
    capabilities,
    new_operator,
    validate,
)
from unistore.core.storage.scheme import Scheme
from unistore.core.storage.session import EntryMetadata, Session

__all__ = [
    # Core types
    "ConfigMap",
    "Scheme",
    "Capability",
    "CapabilityDescriptor",
    "EntryMetadata",
    "Session",
    "Operator",
    # Registry
    "SCHEMES",
    "available_schemes",
    "capabilities",
    "validate",
    "build",
    "new_operator",
    "OperatorRegistry",
    "ProfileNotFoundError",
    # Errors
    "StorageError",
    "ConfigError",
    "UnknownSchemeError",
    "MissingField",
    "InvalidValue",
    "Inconsistent",
    "ConnectError",
    "Handshake",
    "TooManyRedirects",
    "Timeout",
    "Refused",
    "CapabilityError",
    "Unsupported",
    "ErrorKind",
    "OperationError",
    "NotFoundError",
    "PermissionDeniedError",
    "AlreadyExistsError",
    "OperationTimeoutError",
    "UnavailableError",
    "ClosedError",
]
