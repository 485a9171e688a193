"""Tally engine — picks the winning proposal once voting has ended."""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING, Sequence

from votecycle.models.ballot import Proposal, Result
from votecycle.models.workflow import Phase, PhaseChange

if TYPE_CHECKING:
    from votecycle.state import VotingState


def winning_index(proposals: Sequence[Proposal]) -> tuple[int, int]:
    """Return (proposal_id, vote_count) of the winner.

    Scans in ascending id order and only replaces the incumbent on a
    strictly greater count, so the lowest id wins a tie. An empty
    sequence yields (0, 0).
    """
    winner_id = 0
    winner_count = 0
    for proposal_id, proposal in enumerate(proposals):
        if proposal.vote_count > winner_count:
            winner_id = proposal_id
            winner_count = proposal.vote_count
    return winner_id, winner_count


class TallyEngine:
    """Computes the cycle result and closes the voting phase."""

    @staticmethod
    def compute_result(
        state: VotingState, now: datetime,
    ) -> tuple[Result, int, PhaseChange]:
        """Record the result and advance to VOTES_TALLIED.

        Returns (result, winning vote count, phase change). The workflow
        controller validates the transition before anything is written.
        """
        winner_id, winner_count = winning_index(state.proposals.list_proposals())
        change = state.workflow.advance(Phase.VOTES_TALLIED, now)
        state.result = Result(computed_at=now, winning_proposal_id=winner_id)
        return state.result, winner_count, change
