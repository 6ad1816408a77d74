"""
Failure description — structured error information for the failure track.

An ErrorCode enum plus a frozen dataclass carrying the message, the optional
underlying exception, and the moment the failure was observed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum, unique
from typing import Optional


@unique
class ErrorCode(Enum):
    """
    Structured error codes for the failure track.

    The Kubernetes adapter maps HTTP statuses onto these codes:
    404 → NOT_FOUND, 409 → CONFLICT_ERROR, 401/403 → AUTHORIZATION_ERROR,
    anything else → EXTERNAL_SERVICE_ERROR.
    """

    VALIDATION_ERROR = "VALIDATION_ERROR"
    """Malformed input: unparseable PEM, bad object shape."""

    AUTHORIZATION_ERROR = "AUTHORIZATION_ERROR"
    """Permission denied (file mode, RBAC)."""

    NOT_FOUND = "NOT_FOUND"
    """Object or file does not exist."""

    CONFLICT_ERROR = "CONFLICT_ERROR"
    """Optimistic concurrency failure — the object changed under us."""

    TECHNICAL_ERROR = "TECHNICAL_ERROR"
    """Unexpected infrastructure issue."""

    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"
    """Deployment misconfiguration, e.g. an unusable system trust bundle."""

    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    """API server call failed."""

    TIMEOUT_ERROR = "TIMEOUT_ERROR"
    """Operation exceeded its time limit."""

    UNKNOWN_ERROR = "UNKNOWN_ERROR"
    """Unclassified failure."""


@dataclass(frozen=True, slots=True)
class FailureDescription:
    """
    Immutable failure descriptor carrying error code, message, optional exception, and timestamp.

    >>> desc = FailureDescription(ErrorCode.NOT_FOUND, "configmap not found")
    >>> desc.code
    <ErrorCode.NOT_FOUND: 'NOT_FOUND'>
    """

    code: ErrorCode
    message: str
    exception: Optional[BaseException] = field(default=None, repr=False)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))

    def __str__(self) -> str:
        return f"{self.code.value}: {self.message}"
