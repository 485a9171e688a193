"""Ballot engine — casting and revising votes.

A voter holds at most one active vote. Behaviour depends on whether the
voter has already voted and on Configuration.allow_vote_update:

- first vote: record the choice and increment that proposal;
- repeat vote, updates disallowed: AlreadyVotedError, nothing changes;
- repeat vote, updates allowed: move the vote from the previous choice
  to the new one.

All checks run before the first write. Afterwards the invariant
sum(vote_count) == voters with has_voted still holds.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from votecycle.errors import AlreadyVotedError, NotWhitelistedError

if TYPE_CHECKING:
    from votecycle.state import VotingState


@dataclass(frozen=True)
class VoteOutcome:
    """What a successful cast_vote did."""
    principal: str
    proposal_id: int
    previous_proposal_id: Optional[int] = None

    @property
    def changed(self) -> bool:
        """True when an earlier vote was replaced."""
        return self.previous_proposal_id is not None


class Ballot:
    """Stateless vote-casting logic over a VotingState."""

    @staticmethod
    def cast_vote(state: VotingState, principal: str, proposal_id: int) -> VoteOutcome:
        voter = state.voters.get(principal)
        if voter is None or not voter.registered:
            raise NotWhitelistedError(f"{principal} is not a registered voter")
        state.proposals.validate_id(proposal_id)

        if voter.has_voted and not state.configuration.allow_vote_update:
            raise AlreadyVotedError(
                f"{principal} already voted for proposal {voter.voted_proposal_id}"
            )

        if not voter.has_voted:
            state.proposals.add_vote(proposal_id)
            state.voters.record_vote(principal, proposal_id)
            return VoteOutcome(principal=principal, proposal_id=proposal_id)

        previous = voter.voted_proposal_id
        if previous != proposal_id:
            state.proposals.move_vote(previous, proposal_id)
        state.voters.record_vote(principal, proposal_id)
        return VoteOutcome(
            principal=principal,
            proposal_id=proposal_id,
            previous_proposal_id=previous,
        )
