"""Tests for the conversion lifecycle table — completeness and guard logic."""

import pytest

from mediaconv.domain.enums import ConversionState, OutcomeKind
from mediaconv.domain.errors import MediaConvError
from mediaconv.domain.transitions import (
    CONVERSION_TRANSITIONS,
    TERMINAL_STATES,
    advance,
    event_for_outcome,
    is_terminal,
    is_valid_transition,
    state_for_outcome,
)


class TestTransitionTable:
    def test_admitted_can_reach_running_failed_and_canceled(self) -> None:
        targets = {v for (s, _), v in CONVERSION_TRANSITIONS.items() if s is ConversionState.ADMITTED}
        assert targets == {ConversionState.RUNNING, ConversionState.FAILED, ConversionState.CANCELED}

    def test_running_reaches_every_terminal_state(self) -> None:
        targets = {v for (s, _), v in CONVERSION_TRANSITIONS.items() if s is ConversionState.RUNNING}
        assert targets == TERMINAL_STATES

    def test_no_transition_leaves_a_terminal_state(self) -> None:
        for state, _ in CONVERSION_TRANSITIONS:
            assert state not in TERMINAL_STATES

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            CONVERSION_TRANSITIONS[(ConversionState.RUNNING, "x")] = ConversionState.FAILED  # type: ignore[index]


class TestAdvance:
    def test_happy_path(self) -> None:
        state = advance(ConversionState.ADMITTED, "spawned")
        assert advance(state, "exited") is ConversionState.SUCCEEDED

    def test_launch_failure(self) -> None:
        assert advance(ConversionState.ADMITTED, "launch_failed") is ConversionState.FAILED

    def test_cancel_before_launch(self) -> None:
        assert advance(ConversionState.ADMITTED, "canceled") is ConversionState.CANCELED

    @pytest.mark.parametrize("state", sorted(TERMINAL_STATES, key=lambda s: s.value))
    def test_terminal_states_reject_every_event(self, state: ConversionState) -> None:
        for event in ("spawned", "exited", "exit_failed", "canceled", "launch_failed"):
            with pytest.raises(MediaConvError, match="Invalid conversion transition"):
                advance(state, event)

    def test_admitted_cannot_exit(self) -> None:
        assert not is_valid_transition(ConversionState.ADMITTED, "exited")


class TestHelpers:
    def test_is_terminal(self) -> None:
        assert is_terminal(ConversionState.CANCELED)
        assert not is_terminal(ConversionState.RUNNING)

    @pytest.mark.parametrize(
        ("kind", "state"),
        [
            (OutcomeKind.SUCCESS, ConversionState.SUCCEEDED),
            (OutcomeKind.FAILED, ConversionState.FAILED),
            (OutcomeKind.CANCELED, ConversionState.CANCELED),
        ],
    )
    def test_outcome_event_leads_to_outcome_state(self, kind: OutcomeKind, state: ConversionState) -> None:
        assert state_for_outcome(kind) is state
        assert advance(ConversionState.RUNNING, event_for_outcome(kind)) is state
