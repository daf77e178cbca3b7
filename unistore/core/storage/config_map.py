"""Config map and the value parsers validators share.

A ``ConfigMap`` is the only input format operators are built from: a flat,
immutable mapping of option name to string value. The parsers here turn
individual values into typed ones and report failures as ``InvalidValue``
naming the offending field.
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping
from dataclasses import dataclass
from urllib.parse import urlsplit

from .errors import InvalidValue

TRUE_LITERALS = frozenset({"true", "on"})
FALSE_LITERALS = frozenset({"false", "off"})

DEFAULT_PORTS = {
    "tcp": 6379,
    "redis": 6379,
    "rediss": 6379,
    "http": 80,
    "https": 443,
}


class ConfigMap(Mapping[str, str]):
    """Immutable string-to-string configuration map.

    Keys are case-sensitive. Both keys and values must be strings.

    Examples:
        >>> config = ConfigMap({"endpoint": "tcp://127.0.0.1:6379", "db": "0"})
        >>> config["db"]
        '0'
    """

    __slots__ = ("_data",)

    def __init__(self, data: Mapping[str, str] | None = None, **kwargs: str):
        merged = dict(data or {})
        merged.update(kwargs)
        for key, value in merged.items():
            if not isinstance(key, str):
                raise InvalidValue(repr(key), "configuration keys must be strings")
            if not isinstance(value, str):
                raise InvalidValue(key, f"expected a string, got {type(value).__name__}")
        self._data = merged

    def __getitem__(self, key: str) -> str:
        return self._data[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._data)

    def __len__(self) -> int:
        return len(self._data)

    def __repr__(self) -> str:
        return f"ConfigMap({sorted(self._data)})"

    def __hash__(self) -> int:
        return hash(frozenset(self._data.items()))


@dataclass(frozen=True)
class Endpoint:
    """A parsed endpoint URI."""

    scheme: str
    host: str
    port: int
    path: str = ""
    raw: str = ""

    @property
    def base_url(self) -> str:
        """``scheme://host:port`` plus any path, without a trailing slash."""
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"{self.scheme}://{host}:{self.port}{self.path.rstrip('/')}"


def parse_bool(field: str, value: str) -> bool:
    """Parse a boolean literal (true/false/on/off, case-insensitive)."""
    lowered = value.strip().lower()
    if lowered in TRUE_LITERALS:
        return True
    if lowered in FALSE_LITERALS:
        return False
    raise InvalidValue(field, f"expected one of true/false/on/off, got '{value}'")


def parse_int(field: str, value: str, minimum: int = 0, maximum: int | None = None) -> int:
    """Parse a non-negative decimal integer and check its range."""
    text = value.strip()
    if not text.isascii() or not text.isdigit():
        raise InvalidValue(field, f"expected a non-negative integer, got '{value}'")
    number = int(text)
    if number < minimum:
        raise InvalidValue(field, f"must be >= {minimum}, got {number}")
    if maximum is not None and number > maximum:
        raise InvalidValue(field, f"must be <= {maximum}, got {number}")
    return number


def parse_endpoint(field: str, value: str, allowed_schemes: frozenset[str] | None = None) -> Endpoint:
    """Parse a URI into scheme, host and port.

    Args:
        field: Config key the value came from (used in diagnostics)
        value: Raw URI string
        allowed_schemes: If given, the URI scheme must be one of these

    Returns:
        Parsed endpoint with the protocol default port filled in

    Raises:
        InvalidValue: If the URI is malformed, lacks a host, or has a bad port
    """
    try:
        parts = urlsplit(value.strip())
        port = parts.port
    except ValueError as e:
        raise InvalidValue(field, f"unparseable URI '{value}': {e}") from e

    scheme = parts.scheme.lower()
    if not scheme:
        raise InvalidValue(field, f"URI '{value}' has no scheme")
    if not parts.hostname:
        raise InvalidValue(field, f"URI '{value}' has no host")
    if allowed_schemes is not None and scheme not in allowed_schemes:
        allowed = ", ".join(sorted(allowed_schemes))
        raise InvalidValue(field, f"URI scheme '{scheme}' is not one of: {allowed}")

    if port is None:
        port = DEFAULT_PORTS.get(scheme)
        if port is None:
            raise InvalidValue(field, f"URI '{value}' has no port and '{scheme}' has no default")
    elif port == 0:
        raise InvalidValue(field, "port must be between 1 and 65535")

    return Endpoint(scheme=scheme, host=parts.hostname, port=port, path=parts.path, raw=value)
