"""Exception taxonomy for the call processing pipeline.

Two families matter to the pipeline:

- Retryable: ``TransportError`` and ``ValidationError``. The resilient invoker
  retries these up to its configured budget.
- Fail-fast: ``ConfigurationError`` and ``BusinessRuleError``. These terminate
  the current stage immediately and are never retried.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence


class CallQAError(Exception):
    """Base exception for all call pipeline errors."""


class TransportError(CallQAError):
    """Raised when an external service call fails at the network/HTTP level."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(CallQAError):
    """Raised when a response parsed but does not have the required shape."""

    def __init__(
        self,
        message: str,
        *,
        raw_response: str | None = None,
        issues: Sequence[str] = (),
    ) -> None:
        super().__init__(message)
        self.raw_response = raw_response
        self.issues: tuple[str, ...] = tuple(issues)


class ConfigurationError(CallQAError):
    """Raised when credentials or configuration are missing or invalid"""  # noqa: D415


class BusinessRuleError(CallQAError):
    """Raised when an item cannot be processed for a domain reason."""


class RetryExhaustedError(CallQAError):
    """Raised when every attempt of a resilient call has failed.

    Carries the last raw response (when one was received) for diagnostics.
    """

    def __init__(
        self,
        message: str,
        *,
        attempts: int,
        last_error: Exception | None = None,
        last_raw_response: str | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error
        self.last_raw_response = last_raw_response


class InvalidTransitionError(CallQAError):
    """Raised when a work item is moved along an illegal lifecycle edge."""

    def __init__(self, from_state: object, to_state: object) -> None:
        super().__init__(f"Illegal transition: {from_state} -> {to_state}")
        self.from_state = from_state
        self.to_state = to_state
