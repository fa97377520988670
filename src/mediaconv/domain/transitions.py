"""Conversion lifecycle transition table — pure data, no I/O."""

from types import MappingProxyType

from mediaconv.domain.enums import ConversionState, OutcomeKind
from mediaconv.domain.errors import MediaConvError

# (current_state, event) -> next_state
# Events: spawned, launch_failed, exited, exit_failed, canceled
CONVERSION_TRANSITIONS: MappingProxyType[tuple[ConversionState, str], ConversionState] = MappingProxyType(
    {
        (ConversionState.ADMITTED, "spawned"): ConversionState.RUNNING,
        (ConversionState.ADMITTED, "launch_failed"): ConversionState.FAILED,
        (ConversionState.ADMITTED, "canceled"): ConversionState.CANCELED,
        (ConversionState.RUNNING, "exited"): ConversionState.SUCCEEDED,
        (ConversionState.RUNNING, "exit_failed"): ConversionState.FAILED,
        (ConversionState.RUNNING, "canceled"): ConversionState.CANCELED,
    }
)

TERMINAL_STATES: frozenset[ConversionState] = frozenset(
    {ConversionState.SUCCEEDED, ConversionState.FAILED, ConversionState.CANCELED}
)

_OUTCOME_STATES: MappingProxyType[OutcomeKind, ConversionState] = MappingProxyType(
    {
        OutcomeKind.SUCCESS: ConversionState.SUCCEEDED,
        OutcomeKind.FAILED: ConversionState.FAILED,
        OutcomeKind.CANCELED: ConversionState.CANCELED,
    }
)

_OUTCOME_EVENTS: MappingProxyType[OutcomeKind, str] = MappingProxyType(
    {
        OutcomeKind.SUCCESS: "exited",
        OutcomeKind.FAILED: "exit_failed",
        OutcomeKind.CANCELED: "canceled",
    }
)


def is_terminal(state: ConversionState) -> bool:
    """Return True if no further transitions are possible from this state."""
    return state in TERMINAL_STATES


def is_valid_transition(state: ConversionState, event: str) -> bool:
    return (state, event) in CONVERSION_TRANSITIONS


def advance(state: ConversionState, event: str) -> ConversionState:
    """Return the state reached by applying ``event``.

    Raises MediaConvError for transitions not in the table, including any
    transition out of a terminal state.
    """
    if not is_valid_transition(state, event):
        raise MediaConvError(f"Invalid conversion transition: ({state.value}, {event})")
    return CONVERSION_TRANSITIONS[(state, event)]


def state_for_outcome(kind: OutcomeKind) -> ConversionState:
    """Map a terminal outcome to its lifecycle state."""
    return _OUTCOME_STATES[kind]


def event_for_outcome(kind: OutcomeKind) -> str:
    """Map a terminal outcome to the event that moves Running into it."""
    return _OUTCOME_EVENTS[kind]
