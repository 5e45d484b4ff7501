"""
Failure taxonomy for the property registry.

Every guard in the registry service fails with a RegistryError carrying
exactly one FailureKind. The transaction that raised it is rolled back,
so a failed operation never leaves partial state behind.
"""

from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    """Tagged failure kinds surfaced to callers."""
    ADMIN_RESTRICTED = "ADMIN_RESTRICTED"
    NOT_FOUND = "NOT_FOUND"
    ALREADY_EXISTS = "ALREADY_EXISTS"  # reserved for future uniqueness checks
    INVALID_NAME = "INVALID_NAME"
    INVALID_VOLUME = "INVALID_VOLUME"
    FORBIDDEN = "FORBIDDEN"
    UNAUTHORIZED = "UNAUTHORIZED"
    READ_FORBIDDEN = "READ_FORBIDDEN"
    INVALID_CATEGORY_FORMAT = "INVALID_CATEGORY_FORMAT"


class RegistryError(Exception):
    """Raised when a registry operation is rejected by a guard."""

    def __init__(self, kind: FailureKind, message: str = "", record_id: Optional[int] = None):
        self.kind = kind
        self.record_id = record_id
        self.message = message or kind.value
        super().__init__(f"{kind.value}: {self.message}")


class ConfigurationError(Exception):
    """Raised when the registry is started with inconsistent configuration."""
