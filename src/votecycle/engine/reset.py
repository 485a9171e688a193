"""Reset controller — closes a tallied cycle and opens the next one.

A result must stay on display for Configuration.result_grace_period
before a new cycle may begin. Resetting erases the voter registry and
voter order unconditionally, erases proposals when the policy says so
(otherwise only their vote counts are zeroed, since every ballot that
produced them is gone), zeroes the result and returns the workflow to
REGISTERING_VOTERS.
Configuration is left as it is.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

from votecycle.errors import GracePeriodNotElapsedError
from votecycle.models.ballot import Result
from votecycle.models.workflow import Phase, PhaseChange

if TYPE_CHECKING:
    from votecycle.state import VotingState


class ResetController:
    """Stateless cycle-reset logic over a VotingState."""

    def __init__(self, clear_proposals: bool = True) -> None:
        self._clear_proposals = clear_proposals

    @staticmethod
    def grace_period_ends(state: VotingState) -> datetime | None:
        if state.result.computed_at is None:
            return None
        return state.result.computed_at + state.configuration.result_grace_period

    def start_new_cycle(self, state: VotingState, now: datetime) -> PhaseChange:
        """Reset the aggregate for a new cycle.

        Raises GracePeriodNotElapsedError if now < computed_at + grace period,
        and IllegalPhaseTransitionError if not in VOTES_TALLIED.
        """
        ends = self.grace_period_ends(state)
        if ends is not None and now < ends:
            remaining = int((ends - now).total_seconds())
            raise GracePeriodNotElapsedError(
                f"Result must stay visible until {ends.isoformat()} "
                f"({remaining}s remaining)"
            )
        change = state.workflow.advance(Phase.REGISTERING_VOTERS, now)
        state.voters.clear()
        if self._clear_proposals:
            state.proposals.clear()
        else:
            state.proposals.reset_counts()
        state.result = Result()
        state.cycle += 1
        return change
