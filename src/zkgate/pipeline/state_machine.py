"""Invocation state machine — enforces the pipeline's transition rules.

Invocation lifecycle:
    IDLE → PRE_CHECKING → EXECUTING → POST_CHECKING → COMMITTED
    PRE_CHECKING | EXECUTING | POST_CHECKING → ABORTED

Fail-closed: any transition not listed here raises TransitionError.
COMMITTED and ABORTED are terminal.
"""

from __future__ import annotations

from zkgate.errors import TransitionError
from zkgate.models.invocation import Invocation, PipelineState


# state -> states it may move to
_TRANSITIONS: dict[PipelineState, set[PipelineState]] = {
    PipelineState.IDLE: {PipelineState.PRE_CHECKING},
    PipelineState.PRE_CHECKING: {
        PipelineState.EXECUTING,
        PipelineState.ABORTED,
    },
    PipelineState.EXECUTING: {
        PipelineState.POST_CHECKING,
        PipelineState.ABORTED,
    },
    PipelineState.POST_CHECKING: {
        PipelineState.COMMITTED,
        PipelineState.ABORTED,
    },
    # Terminal states have no outgoing transitions
    PipelineState.COMMITTED: set(),
    PipelineState.ABORTED: set(),
}


class InvocationStateMachine:
    """Validates and applies invocation state transitions."""

    @staticmethod
    def validate_transition(
        invocation: Invocation,
        target: PipelineState,
    ) -> list[str]:
        """List the reasons a transition is refused; empty means allowed."""
        current = invocation.state
        allowed = _TRANSITIONS.get(current, set())

        if target not in allowed:
            allowed_str = ", ".join(sorted(s.value for s in allowed))
            return [
                f"Invalid invocation transition: {current.value} → {target.value}. "
                f"Allowed from {current.value}: [{allowed_str}]"
            ]
        return []

    @staticmethod
    def apply_transition(
        invocation: Invocation,
        target: PipelineState,
    ) -> None:
        """Validate and apply a transition, recording it in the history.

        Raises:
            TransitionError: If the transition is not allowed.
        """
        errors = InvocationStateMachine.validate_transition(invocation, target)
        if errors:
            raise TransitionError("; ".join(errors))
        invocation.history.append(invocation.state)
        invocation.state = target

    @staticmethod
    def is_terminal(state: PipelineState) -> bool:
        return state in (PipelineState.COMMITTED, PipelineState.ABORTED)

    @staticmethod
    def valid_transitions(state: PipelineState) -> set[PipelineState]:
        return set(_TRANSITIONS.get(state, set()))
