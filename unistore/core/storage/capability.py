"""Static capability descriptors.

Each scheme declares once, up front, which operations its operators support
and any numeric limits. Descriptors are immutable and shared by every
operator of the same scheme.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Flag, auto


class Capability(Flag):
    """Operations an operator may support."""

    NONE = 0
    READ = auto()
    WRITE = auto()
    DELETE = auto()
    LIST = auto()
    STAT = auto()
    RENAME = auto()
    COPY = auto()
    PRESIGN = auto()
    MULTIPART = auto()

    @classmethod
    def basic(cls) -> Capability:
        """The set every key-value style backend offers."""
        return cls.READ | cls.WRITE | cls.DELETE | cls.LIST | cls.STAT


@dataclass(frozen=True)
class CapabilityDescriptor:
    """Which operations a scheme supports, plus its limits.

    Attributes:
        operations: Supported operations
        max_key_length: Longest accepted backend key (after root joining), or None
        max_batch_size: Largest batch a single backend call accepts, or None
    """

    operations: Capability
    max_key_length: int | None = None
    max_batch_size: int | None = None

    def supports(self, capability: Capability) -> bool:
        """Return True if every flag in ``capability`` is supported."""
        return (self.operations & capability) == capability

    def names(self) -> list[str]:
        """Lower-case names of the supported operations, in declaration order."""
        return [c.name.lower() for c in Capability if c.value and c in self.operations]
