"""Resilient invocation of fallible external calls.

``ResilientInvoker.call`` wraps one external request with retry, linear
backoff and response validation:

- Attempts run ``0..max_retries`` inclusive and stop at the first success.
- Transport failures are retried with the same conversation.
- Responses that fail to parse or validate are retried with the rejected
  reply and a corrective instruction appended to the conversation.
- Configuration and business-rule errors propagate immediately.
- Exhaustion raises ``RetryExhaustedError`` carrying the last raw response.

Conversation growth is explicit: every attempt receives an immutable
``RetryContext`` whose ``messages`` grow by appending, never by mutation.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
from typing import TYPE_CHECKING, Any, Protocol, cast

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from callqa_batch.core.exceptions import (
    BusinessRuleError,
    CallQAError,
    ConfigurationError,
    RetryExhaustedError,
    TransportError,
    ValidationError,
)
from callqa_batch.core.types import ChatMessage
from callqa_batch.pipeline.prompts import corrective_instruction
from callqa_batch.response.extraction import excerpt, extract_json
from callqa_batch.telemetry import TelemetryContext

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterable, Sequence

    from callqa_batch.telemetry import TelemetryContextProtocol

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 1.0

# --- Telemetry keys ---
T_INVOKER_ATTEMPT = "invoker.attempt"
T_INVOKER_RETRY = "invoker.retry"
T_INVOKER_EXHAUSTED = "invoker.exhausted"


@dataclasses.dataclass(frozen=True, slots=True)
class AttemptRecord:
    """Diagnostics for one failed attempt."""

    attempt: int
    error: str
    raw_response: str | None = None


@dataclasses.dataclass(frozen=True, slots=True)
class RetryContext:
    """Request state threaded through the attempts of one resilient call."""

    messages: tuple[ChatMessage, ...] = ()
    attempt: int = 0
    failures: tuple[AttemptRecord, ...] = ()

    @property
    def last_raw_response(self) -> str | None:
        """Most recent reply received, skipping attempts that got none."""
        return next(
            (f.raw_response for f in reversed(self.failures) if f.raw_response is not None),
            None,
        )

    @property
    def last_error(self) -> str | None:
        return self.failures[-1].error if self.failures else None

    def advance(
        self,
        *,
        error: Exception,
        raw_response: str | None = None,
        correction: str | None = None,
    ) -> RetryContext:
        """Return the context for the next attempt.

        When ``correction`` is given, the rejected reply (if any) and the
        corrective instruction are appended to the conversation.
        """
        messages = self.messages
        if correction is not None:
            if raw_response is not None:
                messages = (*messages, ChatMessage("assistant", raw_response))
            messages = (*messages, ChatMessage("user", correction))
        record = AttemptRecord(
            attempt=self.attempt,
            error=str(error),
            raw_response=raw_response,
        )
        return RetryContext(
            messages=messages,
            attempt=self.attempt + 1,
            failures=(*self.failures, record),
        )


class Request(Protocol):
    """One external request. Returns raw text or a structured result."""

    def __call__(self, context: RetryContext) -> Awaitable[Any]: ...


type Validator = Callable[[Any], bool | ValidationError]


def model_validator(
    model: type[BaseModel],
    *,
    check: Callable[[Any], Sequence[str]] | None = None,
) -> Validator:
    """Adapt a pydantic model (plus an optional semantic check) into a validator.

    ``check`` receives the validated model instance and returns a list of
    issues; any issue rejects the response.
    """

    def _validate(parsed: Any) -> bool | ValidationError:
        try:
            instance = model.model_validate(parsed)
        except PydanticValidationError as e:
            issues = [
                f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}"
                for err in e.errors()
            ]
            return ValidationError(
                f"Response does not match {model.__name__}", issues=issues
            )
        if check is not None:
            issues = list(check(instance))
            if issues:
                return ValidationError(
                    f"Response content rejected for {model.__name__}", issues=issues
                )
        return True

    return _validate


class ResilientInvoker:
    """Retries one external call until it yields a valid response."""

    def __init__(
        self,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = DEFAULT_BASE_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        telemetry: TelemetryContextProtocol | None = None,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must be >= 0")
        if base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep
        self._telemetry: TelemetryContextProtocol = telemetry or TelemetryContext()

    async def call(
        self,
        request: Request,
        validate: Validator | None = None,
        *,
        max_retries: int | None = None,
        base_delay: float | None = None,
        messages: Iterable[ChatMessage] = (),
        expect_json: bool = True,
        shape_hint: str | None = None,
        label: str = "call",
    ) -> Any:
        """Run ``request`` until it returns a valid response.

        Args:
            request: Callable receiving the current ``RetryContext``.
            validate: Returns True, False or a ``ValidationError`` for the
                parsed response. Omitted means any parsed response is valid.
            max_retries: Retries after the first attempt (default: instance).
            base_delay: Seconds multiplied by the attempt number between
                attempts (default: instance).
            messages: Initial conversation for completion requests.
            expect_json: Parse raw text with ``extract_json`` before validating.
            shape_hint: Expected shape quoted in corrective instructions.
            label: Name used in logs, telemetry and error messages.

        Returns:
            The parsed (and validated) response.

        Raises:
            ValueError: If the request is empty or malformed. Never retried.
            ConfigurationError: Propagated from the request without retry.
            BusinessRuleError: Propagated from the request without retry.
            RetryExhaustedError: When every attempt failed.
        """
        if not callable(request):
            raise ValueError(f"{label}: request must be callable")
        initial = tuple(messages)
        if expect_json and not initial:
            raise ValueError(f"{label}: completion request needs at least one message")
        retries = self.max_retries if max_retries is None else max_retries
        delay = self.base_delay if base_delay is None else base_delay
        if retries < 0:
            raise ValueError(f"{label}: max_retries must be >= 0")
        total_attempts = retries + 1

        context = RetryContext(messages=initial)
        while True:
            raw_text: str | None = None
            self._telemetry.count(T_INVOKER_ATTEMPT, label=label)
            try:
                raw = await self._send(request, context, label)
                if isinstance(raw, str):
                    raw_text = raw
                parsed = extract_json(raw) if expect_json else raw
                self._check(parsed, validate, raw_text, label)
            except (ConfigurationError, BusinessRuleError):
                raise
            except (TransportError, ValidationError) as e:
                error: CallQAError = e
            else:
                if context.attempt:
                    logger.info(
                        "%s succeeded on attempt %d/%d",
                        label,
                        context.attempt + 1,
                        total_attempts,
                    )
                return parsed

            attempt_number = context.attempt + 1
            logger.warning(
                "%s attempt %d/%d failed: %s",
                label,
                attempt_number,
                total_attempts,
                error,
            )
            if attempt_number >= total_attempts:
                self._telemetry.count(T_INVOKER_EXHAUSTED, label=label)
                raise RetryExhaustedError(
                    f"{label} failed after {total_attempts} attempts. "
                    f"Last error: {error}",
                    attempts=total_attempts,
                    last_error=error,
                    last_raw_response=(
                        raw_text if raw_text is not None else context.last_raw_response
                    ),
                ) from error

            correction = (
                corrective_instruction(error, shape_hint)
                if isinstance(error, ValidationError)
                else None
            )
            context = context.advance(
                error=error, raw_response=raw_text, correction=correction
            )
            self._telemetry.count(T_INVOKER_RETRY, label=label)
            await self._sleep(delay * attempt_number)

    async def call_model[M: BaseModel](
        self,
        request: Request,
        model: type[M],
        *,
        check: Callable[[M], Sequence[str]] | None = None,
        **kwargs: Any,
    ) -> M:
        """Like ``call`` but validates against ``model`` and returns an instance."""
        kwargs.setdefault("expect_json", True)
        parsed = await self.call(
            request,
            model_validator(model, check=cast("Callable[[Any], Sequence[str]] | None", check)),
            **kwargs,
        )
        return model.model_validate(parsed)

    # --- Internal helpers ---

    async def _send(self, request: Request, context: RetryContext, label: str) -> Any:
        try:
            return await request(context)
        except CallQAError:
            raise
        except Exception as e:
            raise TransportError(f"{label} request failed: {e}") from e

    def _check(
        self,
        parsed: Any,
        validate: Validator | None,
        raw_text: str | None,
        label: str,
    ) -> None:
        if validate is None:
            return
        verdict = validate(parsed)
        if isinstance(verdict, ValidationError):
            if verdict.raw_response is None and raw_text is not None:
                verdict.raw_response = excerpt(raw_text)
            raise verdict
        if not verdict:
            raise ValidationError(
                f"{label} response failed validation",
                raw_response=excerpt(raw_text) if raw_text is not None else None,
            )
