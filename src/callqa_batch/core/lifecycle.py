"""Lifecycle state machine for a single call work item.

A call moves through::

    pending -> transcribing -> transcribed -> analyzing_sentiment -> evaluating -> evaluated
                          \\-> failed

Sentiment is best-effort: ``analyzing_sentiment`` may fall back to
``transcribed``. Evaluation failures also fall back to ``transcribed`` so an
item keeps its best completed stage instead of being marked failed.
"""

from __future__ import annotations

from enum import Enum
import logging
from types import MappingProxyType
from typing import TYPE_CHECKING, Protocol

from callqa_batch.core.exceptions import InvalidTransitionError

if TYPE_CHECKING:
    from collections.abc import Iterable

    from callqa_batch.core.types import WorkItem

logger = logging.getLogger(__name__)


class CallState(str, Enum):
    """States a work item passes through during a batch run."""

    PENDING = "pending"
    TRANSCRIBING = "transcribing"
    TRANSCRIBED = "transcribed"
    ANALYZING_SENTIMENT = "analyzing_sentiment"
    EVALUATING = "evaluating"
    EVALUATED = "evaluated"
    FAILED = "failed"

    def __str__(self) -> str:
        return self.value


TRANSITIONS: MappingProxyType[CallState, frozenset[CallState]] = MappingProxyType(
    {
        CallState.PENDING: frozenset({CallState.TRANSCRIBING}),
        CallState.TRANSCRIBING: frozenset({CallState.TRANSCRIBED, CallState.FAILED}),
        CallState.TRANSCRIBED: frozenset(
            {CallState.ANALYZING_SENTIMENT, CallState.EVALUATING}
        ),
        CallState.ANALYZING_SENTIMENT: frozenset(
            {CallState.EVALUATING, CallState.TRANSCRIBED}
        ),
        CallState.EVALUATING: frozenset({CallState.EVALUATED, CallState.TRANSCRIBED}),
        CallState.EVALUATED: frozenset(),
        CallState.FAILED: frozenset(),
    }
)

# States an item may finish in. ``transcribed`` is terminal only once the
# executor stops advancing the item.
TERMINAL_STATES = frozenset(
    {CallState.EVALUATED, CallState.TRANSCRIBED, CallState.FAILED}
)


def can_transition(from_state: CallState, to_state: CallState) -> bool:
    """Return True when ``from_state -> to_state`` is a legal edge."""
    return to_state in TRANSITIONS[from_state]


def is_terminal(state: CallState) -> bool:
    """Return True for states an item is allowed to finish in."""
    return state in TERMINAL_STATES


class TransitionListener(Protocol):
    """Callback notified after every successful transition."""

    def __call__(self, item: WorkItem, state: CallState) -> None: ...


class CallLifecycle:
    """Drives a ``WorkItem`` through legal state transitions.

    The lifecycle is the only writer of ``item.state`` during a run. Listeners
    are invoked synchronously after each transition; a failing listener is
    logged and never interrupts the pipeline.
    """

    __slots__ = ("_history", "_item", "_listeners")

    def __init__(
        self, item: WorkItem, listeners: Iterable[TransitionListener] = ()
    ) -> None:
        self._item = item
        self._listeners = tuple(listeners)
        self._history: list[CallState] = [item.state]

    @property
    def state(self) -> CallState:
        return self._item.state

    @property
    def history(self) -> tuple[CallState, ...]:
        """States visited so far, starting with the state at construction."""
        return tuple(self._history)

    def transition(self, to_state: CallState) -> None:
        """Move the item to ``to_state``.

        Raises:
            InvalidTransitionError: If the edge is not in the transition table.
        """
        current = self._item.state
        if not can_transition(current, to_state):
            raise InvalidTransitionError(current, to_state)
        self._item.state = to_state
        self._history.append(to_state)
        logger.debug("Call %s: %s -> %s", self._item.id, current, to_state)
        for listener in self._listeners:
            try:
                listener(self._item, to_state)
            except Exception as e:
                logger.error(
                    "Transition listener '%s' failed: %s",
                    type(listener).__name__,
                    e,
                    exc_info=True,
                )
