"""Escrow state machine: validates contract escrow transitions.

A contract's funds start ``held`` when the proposal is accepted and end
``released`` to the finder. ``completed`` means the work is done and the
money is waiting to be released.
"""

from enum import Enum

from findermeister.domain.enums import EscrowStatus
from findermeister.services.errors import MarketplaceError


class EscrowActor(str, Enum):
    """Who is driving an escrow transition."""

    CLIENT = "client"
    FINDER = "finder"
    SYSTEM = "system"


class InvalidTransitionError(MarketplaceError):
    """Raised when an escrow state transition is not allowed."""

    def __init__(
        self,
        current_status: EscrowStatus,
        target_status: EscrowStatus,
        reason: str,
    ):
        self.current_status = current_status
        self.target_status = target_status
        self.reason = reason
        super().__init__(
            f"Invalid escrow transition from {current_status.value} to {target_status.value}: {reason}"
        )


# ---------------------------------------------------------------------------
# Transition map: from_status -> {to_status: set_of_allowed_actors}
# ---------------------------------------------------------------------------

S = EscrowStatus
A = EscrowActor

TRANSITION_MAP: dict[EscrowStatus, dict[EscrowStatus, set[EscrowActor]]] = {
    S.HELD: {
        S.IN_PROGRESS: {A.FINDER},
        S.COMPLETED: {A.FINDER, A.CLIENT, A.SYSTEM},
        S.RELEASED: {A.CLIENT, A.SYSTEM},
    },
    S.IN_PROGRESS: {
        S.COMPLETED: {A.FINDER, A.CLIENT, A.SYSTEM},
        S.RELEASED: {A.CLIENT, A.SYSTEM},
    },
    S.COMPLETED: {
        S.RELEASED: {A.CLIENT, A.SYSTEM},
    },
}

TERMINAL_STATES: set[EscrowStatus] = {S.RELEASED}


class EscrowStateMachine:
    """Validates escrow transitions for the contract lifecycle."""

    def validate_transition(
        self,
        current_status: EscrowStatus,
        target_status: EscrowStatus,
        actor: EscrowActor,
    ) -> bool:
        """Return True if the transition is valid. Raise InvalidTransitionError if not."""
        if current_status in TERMINAL_STATES:
            raise InvalidTransitionError(
                current_status,
                target_status,
                "Payment has already been released",
            )

        allowed_targets = TRANSITION_MAP.get(current_status, {})
        if target_status not in allowed_targets:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"Transition from {current_status.value} to {target_status.value} is not allowed",
            )

        allowed_actors = allowed_targets[target_status]
        if actor not in allowed_actors:
            raise InvalidTransitionError(
                current_status,
                target_status,
                f"Actor {actor.value} is not permitted for this transition "
                f"(allowed: {', '.join(sorted(a.value for a in allowed_actors))})",
            )
        return True

    def get_allowed_transitions(
        self,
        current_status: EscrowStatus,
        actor: EscrowActor,
    ) -> list[EscrowStatus]:
        """Return valid next states for the given actor from the current status."""
        allowed_targets = TRANSITION_MAP.get(current_status, {})
        return [target for target, actors in allowed_targets.items() if actor in actors]
