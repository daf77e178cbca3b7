"""Error taxonomy for operator construction and operations.

Four families, all rooted at ``StorageError``:

- ``ConfigError``: raised by validators before any I/O. Never retried.
- ``ConnectError``: raised by connection builders. ``transient`` tells a
  retry layer above the operator whether trying again can help.
- ``CapabilityError``: the scheme does not support the requested operation.
- ``OperationError``: backend failures translated into a small closed set of
  kinds so callers can branch without knowing backend specifics.
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum


class StorageError(Exception):
    """Base exception for all unistore errors."""

    pass


# Configuration errors


class ConfigError(StorageError):
    """Raised when a configuration map is invalid for a scheme."""

    pass


class UnknownSchemeError(ConfigError):
    """Raised when a scheme identifier is not in the supported set."""

    def __init__(self, scheme: str, available: Iterable[str] = ()):
        self.scheme = scheme
        names = ", ".join(available)
        super().__init__(f"Unknown scheme '{scheme}'. Available schemes: {names or 'none'}")


class MissingField(ConfigError):
    """Raised when a required configuration key is absent."""

    def __init__(self, field: str, scheme: str | None = None):
        self.field = field
        self.scheme = scheme
        where = f" for scheme '{scheme}'" if scheme else ""
        super().__init__(f"Missing required field '{field}'{where}")


class InvalidValue(ConfigError):
    """Raised when a configuration value cannot be parsed or is out of range."""

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid value for '{field}': {reason}")


class Inconsistent(ConfigError):
    """Raised when individually valid fields contradict each other."""

    def __init__(self, fields: Iterable[str], reason: str):
        self.fields = tuple(fields)
        self.reason = reason
        super().__init__(f"Inconsistent fields {', '.join(self.fields)}: {reason}")


# Connection errors


class ConnectError(StorageError):
    """Raised when session state cannot be established."""

    transient = False

    def __init__(self, message: str, scheme: str | None = None):
        self.scheme = scheme
        super().__init__(message)


class Handshake(ConnectError):
    """Raised when a protocol handshake (e.g. TLS) fails at build time."""

    transient = False


class TooManyRedirects(ConnectError):
    """Raised when an HTTP backend exceeds the redirect cap."""

    transient = False


class Timeout(ConnectError):
    """Raised when establishing a connection exceeds its deadline."""

    transient = True


class Refused(ConnectError):
    """Raised when the remote end refuses the connection."""

    transient = True


# Capability errors


class CapabilityError(StorageError):
    """Base exception for capability violations."""

    pass


class Unsupported(CapabilityError):
    """Raised when an operator is asked for an operation its scheme lacks."""

    def __init__(self, operation: str, scheme: str | None = None):
        self.operation = operation
        self.scheme = scheme
        where = f" by scheme '{scheme}'" if scheme else ""
        super().__init__(f"Operation '{operation}' is not supported{where}")


# Operation errors


class ErrorKind(Enum):
    """Closed set of operation failure kinds."""

    NOT_FOUND = "not_found"
    PERMISSION_DENIED = "permission_denied"
    ALREADY_EXISTS = "already_exists"
    TIMEOUT = "timeout"
    UNAVAILABLE = "unavailable"
    OTHER = "other"


_TRANSIENT_KINDS = frozenset({ErrorKind.TIMEOUT, ErrorKind.UNAVAILABLE})


class OperationError(StorageError):
    """Raised when a backend reports a failure during an operation."""

    kind = ErrorKind.OTHER

    def __init__(
        self,
        key: str | None,
        operation: str,
        detail: str = "",
        kind: ErrorKind | None = None,
    ):
        if kind is not None:
            self.kind = kind
        self.key = key
        self.operation = operation
        self.detail = detail
        message = f"{operation} failed ({self.kind.value})"
        if key is not None:
            message += f" for key '{key}'"
        if detail:
            message += f": {detail}"
        super().__init__(message)

    @property
    def transient(self) -> bool:
        """Whether a retry layer may reasonably try again."""
        return self.kind in _TRANSIENT_KINDS


class NotFoundError(OperationError):
    """Raised when the key does not exist."""

    kind = ErrorKind.NOT_FOUND


class PermissionDeniedError(OperationError):
    """Raised when the backend rejects the credentials or access."""

    kind = ErrorKind.PERMISSION_DENIED


class AlreadyExistsError(OperationError):
    """Raised when the target of a create-only operation exists."""

    kind = ErrorKind.ALREADY_EXISTS


class OperationTimeoutError(OperationError):
    """Raised when an operation exceeds the operator deadline."""

    kind = ErrorKind.TIMEOUT


class UnavailableError(OperationError):
    """Raised when the backend cannot be reached."""

    kind = ErrorKind.UNAVAILABLE


class ClosedError(StorageError):
    """Raised when an operation is attempted on a closed operator."""

    def __init__(self, operation: str):
        self.operation = operation
        super().__init__(f"Cannot {operation}: operator is closed")


_KIND_CLASSES: dict[ErrorKind, type[OperationError]] = {
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.PERMISSION_DENIED: PermissionDeniedError,
    ErrorKind.ALREADY_EXISTS: AlreadyExistsError,
    ErrorKind.TIMEOUT: OperationTimeoutError,
    ErrorKind.UNAVAILABLE: UnavailableError,
    ErrorKind.OTHER: OperationError,
}


def operation_error(kind: ErrorKind, key: str | None, operation: str, detail: str = "") -> OperationError:
    """Build the ``OperationError`` subclass matching ``kind``."""
    return _KIND_CLASSES[kind](key, operation, detail)
