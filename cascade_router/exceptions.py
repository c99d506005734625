# cascade_router/exceptions.py
"""
Custom exceptions for cascade-router.

All public exceptions inherit from CascadeRouterError so callers can catch
the whole family with a single except clause if preferred. Every exception
carries structured attributes so a diagnostic message can be built without
parsing strings.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from .models import RoutingAttempt


class CascadeRouterError(Exception):
    """Base exception for all router errors."""

    code: str = "ROUTER_ERROR"


class NotInitialized(CascadeRouterError):
    """Raised when route() or route_stream() is called before initialize()."""

    code = "NOT_INITIALIZED"


class NoProvidersAvailable(CascadeRouterError):
    """Raised when no enabled endpoint is registered at selection time."""

    code = "NO_PROVIDERS"


class BudgetExceeded(CascadeRouterError):
    """
    Raised before any endpoint is called when the projected usage of a
    request would exceed a daily or monthly budget ceiling.

    Attributes
    ----------
    scope:
        "daily" or "monthly".
    usage:
        Projected usage (tokens or dollars) that tripped the ceiling.
    limit:
        The configured ceiling.
    """

    code = "BUDGET_EXCEEDED"

    def __init__(self, message: str, scope: str, usage: float, limit: float) -> None:
        self.scope = scope
        self.usage = usage
        self.limit = limit
        super().__init__(message)


class RateLimited(CascadeRouterError):
    """
    Raised before any endpoint is called when the rolling one-minute
    request or token ceiling has been reached.
    """

    code = "RATE_LIMIT"

    def __init__(self, message: str, retry_after_seconds: int | None = None) -> None:
        self.retry_after_seconds = retry_after_seconds
        super().__init__(message)


class EndpointFailure(CascadeRouterError):
    """
    Wraps an error raised by a single endpoint adapter.

    Only surfaced to the caller when fallback is disabled; otherwise the
    router records it as a failed attempt and moves on.
    """

    code = "ENDPOINT_FAILURE"

    def __init__(self, endpoint: str, context: str, cause: BaseException) -> None:
        self.endpoint = endpoint
        self.context = context
        self.cause = cause
        super().__init__(f"Endpoint '{endpoint}' failed during {context}: {describe_error(cause)}")


class AllProvidersFailed(CascadeRouterError):
    """
    Raised when every candidate (sequential or raced) has been tried and failed.

    Attributes
    ----------
    attempts:
        Every RoutingAttempt made during the call, in attempt order.
    """

    code = "ALL_PROVIDERS_FAILED"

    def __init__(self, message: str, attempts: list[RoutingAttempt]) -> None:
        self.attempts = attempts
        super().__init__(message)

    def __str__(self) -> str:  # pragma: no cover
        base = super().__str__()
        details = "; ".join(
            f"[{i+1}] {a.endpoint}: {a.error or 'unknown error'}" for i, a in enumerate(self.attempts)
        )
        return f"{base} | Attempts: {details}" if details else base


class UnknownEndpointType(CascadeRouterError, ValueError):
    """Raised by the factory for endpoint types it cannot build."""

    code = "UNKNOWN_ENDPOINT_TYPE"


def describe_error(error: BaseException | Any) -> str:
    """Return a short human-readable description of *error*."""
    if isinstance(error, TimeoutError):
        return "request timed out"
    text = str(error)
    return text or type(error).__name__
