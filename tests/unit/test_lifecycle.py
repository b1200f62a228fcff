import pytest

from callqa_batch.core.exceptions import InvalidTransitionError
from callqa_batch.core.lifecycle import (
    TRANSITIONS,
    CallLifecycle,
    CallState,
    can_transition,
    is_terminal,
)
from callqa_batch.core.types import WorkItem

pytestmark = pytest.mark.unit


@pytest.mark.parametrize(
    "path",
    [
        ["transcribing", "transcribed", "analyzing_sentiment", "evaluating", "evaluated"],
        ["transcribing", "failed"],
        ["transcribing", "transcribed", "evaluating", "transcribed"],
        ["transcribing", "transcribed", "analyzing_sentiment", "transcribed"],
    ],
)
def test_legal_paths_are_accepted(path):
    item = WorkItem(id="c1")
    lifecycle = CallLifecycle(item)
    for state in path:
        lifecycle.transition(CallState(state))
    assert item.state is CallState(path[-1])
    assert lifecycle.history == (CallState.PENDING, *map(CallState, path))


@pytest.mark.parametrize(
    ("start", "target"),
    [
        (CallState.PENDING, CallState.EVALUATED),
        (CallState.PENDING, CallState.FAILED),
        (CallState.TRANSCRIBED, CallState.FAILED),
        (CallState.EVALUATING, CallState.FAILED),
        (CallState.EVALUATED, CallState.TRANSCRIBING),
        (CallState.FAILED, CallState.TRANSCRIBING),
    ],
)
def test_illegal_edges_raise_and_leave_state_untouched(start, target):
    item = WorkItem(id="c1", state=start)
    with pytest.raises(InvalidTransitionError) as exc_info:
        CallLifecycle(item).transition(target)
    assert item.state is start
    assert exc_info.value.from_state is start
    assert exc_info.value.to_state is target


def test_terminal_states_have_no_outgoing_edges_except_transcribed():
    assert TRANSITIONS[CallState.EVALUATED] == frozenset()
    assert TRANSITIONS[CallState.FAILED] == frozenset()
    assert is_terminal(CallState.TRANSCRIBED)
    assert not is_terminal(CallState.EVALUATING)
    assert can_transition(CallState.TRANSCRIBED, CallState.EVALUATING)


def test_listeners_observe_each_transition_and_failures_are_contained(caplog):
    seen = []

    def broken(_item, _state):
        raise RuntimeError("listener bug")

    lifecycle = CallLifecycle(
        WorkItem(id="c1"), (broken, lambda item, state: seen.append((item.id, state)))
    )
    lifecycle.transition(CallState.TRANSCRIBING)
    lifecycle.transition(CallState.FAILED)

    assert seen == [("c1", CallState.TRANSCRIBING), ("c1", CallState.FAILED)]
    assert "listener bug" in caplog.text


def test_state_values_are_wire_strings():
    assert str(CallState.ANALYZING_SENTIMENT) == "analyzing_sentiment"
    assert CallState("evaluated") is CallState.EVALUATED
