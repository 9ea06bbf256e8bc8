"""
Exceptions for the feed synchronization layer.

Exception hierarchy:
- FeedError (base)
  - ParseError: Malformed or unexpected message shape (message dropped)
  - TransportError: Connect failure, abrupt close, transport-level error
    - ConnectTimeout: Connection not open before the connect timeout
  - ExhaustedRetries: Reconnect budget spent (surfaces as "unavailable")
  - PollFailure: Fallback REST fetch failed
  - ConfigurationError: Invalid configuration

Only ConfigurationError ever reaches a caller. Everything else is caught by the
supervisor/controllers and degraded into a ConnectivityStatus.
"""

from __future__ import annotations

from typing import Any, Optional


class FeedError(Exception):
    """Base exception for all feed errors."""

    def __init__(
        self,
        message: str,
        *,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.component = component
        self.details = details or {}
        super().__init__(message)

    def __str__(self) -> str:
        parts = [super().__str__()]
        if self.component:
            parts.append(f"[component={self.component}]")
        if self.details:
            parts.append(f"[details={self.details}]")
        return " ".join(parts)


class ParseError(FeedError):
    """Raised by a provider parser when a message has an unexpected shape."""

    def __init__(
        self,
        message: str,
        *,
        raw: Any = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.raw = raw
        super().__init__(message, component=component, details=details)


class TransportError(FeedError):
    """Raised when a connection cannot be opened or is lost."""

    def __init__(
        self,
        message: str,
        *,
        url: Optional[str] = None,
        component: Optional[str] = None,
        details: Optional[dict[str, Any]] = None,
    ) -> None:
        self.url = url
        details = details or {}
        if url:
            details["url"] = url
        super().__init__(message, component=component, details=details)


class ConnectTimeout(TransportError):
    """Raised when a connection is not open before the connect timeout expires."""


class ExhaustedRetries(FeedError):
    """Recorded when a supervisor reaches its reconnect limit."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        component: Optional[str] = None,
    ) -> None:
        self.attempts = attempts
        super().__init__(message, component=component, details={"attempts": attempts})


class PollFailure(FeedError):
    """Raised when the fallback REST summary cannot be fetched or parsed."""


class ConfigurationError(FeedError):
    """Raised when configuration is invalid."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
    ) -> None:
        self.field = field
        self.value = value
        details: dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = value
        super().__init__(message, component="config", details=details)
