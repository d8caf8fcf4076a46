"""
Error taxonomy for the Loggly sink.

All library errors derive from ``LogglySinkError`` and carry an
``ErrorCategory`` plus an optional ``ErrorContext`` so diagnostics can report
them in a structured way.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    CONFIGURATION = "configuration"
    SERIALIZATION = "serialization"
    NETWORK = "network"
    BUFFERING = "buffering"
    LIFECYCLE = "lifecycle"


class ErrorSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass(frozen=True)
class ErrorContext:
    """Structured context attached to a ``LogglySinkError``."""

    category: ErrorCategory
    severity: ErrorSeverity
    timestamp: float = field(default_factory=time.time)
    details: dict[str, Any] = field(default_factory=dict)


def create_error_context(
    category: ErrorCategory,
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    **details: Any,
) -> ErrorContext:
    return ErrorContext(category=category, severity=severity, details=dict(details))


class LogglySinkError(Exception):
    """Base class for errors raised by the sink."""

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory = ErrorCategory.LIFECYCLE,
        error_context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.category = category
        self.error_context = error_context or create_error_context(category)
        self.cause = cause

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "error": type(self).__name__,
            "message": self.message,
            "category": self.category.value,
            "severity": self.error_context.severity.value,
        }
        if self.error_context.details:
            data["details"] = dict(self.error_context.details)
        if self.cause is not None:
            data["cause"] = repr(self.cause)
        return data


class ConfigurationError(LogglySinkError):
    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("category", ErrorCategory.CONFIGURATION)
        super().__init__(message, **kwargs)


class SerializationError(LogglySinkError):
    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("category", ErrorCategory.SERIALIZATION)
        super().__init__(message, **kwargs)


class FlushFailedError(LogglySinkError):
    """A requested flush could not publish the buffered entries.

    The underlying publish failure has already been reported through
    diagnostics by the time this error surfaces, so terminal signals
    suppress it.
    """

    def __init__(self, message: str, **kwargs: Any) -> None:
        kwargs.setdefault("category", ErrorCategory.BUFFERING)
        super().__init__(message, **kwargs)
