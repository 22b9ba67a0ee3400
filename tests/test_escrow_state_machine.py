"""Unit tests for the EscrowStateMachine."""

import pytest

from findermeister.domain.enums import EscrowStatus
from findermeister.services.escrow_state_machine import (
    TERMINAL_STATES,
    TRANSITION_MAP,
    EscrowActor,
    EscrowStateMachine,
    InvalidTransitionError,
)
from findermeister.services.errors import MarketplaceError

S = EscrowStatus
A = EscrowActor


@pytest.fixture
def sm():
    return EscrowStateMachine()


class TestValidTransitions:
    """Every transition defined in TRANSITION_MAP should succeed for allowed actors."""

    @pytest.mark.parametrize(
        "from_status,to_status,actor",
        [
            (from_s, to_s, actor)
            for from_s, targets in TRANSITION_MAP.items()
            for to_s, actors in targets.items()
            for actor in actors
        ],
    )
    def test_all_valid_transitions(self, sm, from_status, to_status, actor):
        assert sm.validate_transition(from_status, to_status, actor) is True

    def test_client_release_path(self, sm):
        assert sm.validate_transition(S.HELD, S.COMPLETED, A.CLIENT)
        assert sm.validate_transition(S.COMPLETED, S.RELEASED, A.CLIENT)


class TestInvalidTransitions:
    def test_finder_cannot_release(self, sm):
        with pytest.raises(InvalidTransitionError, match="Actor finder is not permitted"):
            sm.validate_transition(S.COMPLETED, S.RELEASED, A.FINDER)

    def test_cannot_move_backwards(self, sm):
        with pytest.raises(InvalidTransitionError, match="not allowed"):
            sm.validate_transition(S.COMPLETED, S.HELD, A.SYSTEM)

    @pytest.mark.parametrize("target", list(EscrowStatus))
    def test_released_is_terminal(self, sm, target):
        with pytest.raises(InvalidTransitionError, match="already been released"):
            sm.validate_transition(S.RELEASED, target, A.CLIENT)

    def test_error_is_a_marketplace_error(self, sm):
        with pytest.raises(MarketplaceError) as exc_info:
            sm.validate_transition(S.RELEASED, S.RELEASED, A.SYSTEM)
        assert exc_info.value.status_code == 400
        assert exc_info.value.current_status == S.RELEASED


class TestAllowedTransitions:
    def test_terminal_states_have_no_exits(self, sm):
        for state in TERMINAL_STATES:
            for actor in EscrowActor:
                assert sm.get_allowed_transitions(state, actor) == []

    def test_finder_from_held(self, sm):
        assert set(sm.get_allowed_transitions(S.HELD, A.FINDER)) == {S.IN_PROGRESS, S.COMPLETED}

    def test_system_from_completed(self, sm):
        assert sm.get_allowed_transitions(S.COMPLETED, A.SYSTEM) == [S.RELEASED]
