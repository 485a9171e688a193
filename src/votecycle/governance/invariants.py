"""Aggregate invariant checks.

Run after loading persisted state and on demand (``votecycle
check-invariants``, ``VotingService.status()``). Returns a list of
violation messages; an empty list means the aggregate is consistent.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from votecycle.models.workflow import Phase

if TYPE_CHECKING:
    from votecycle.state import VotingState


def check_invariants(state: VotingState) -> list[str]:
    errors: list[str] = []

    voter_rows = state.voters.all_info()
    proposal_count = state.proposals.count

    # --- Voter record invariants ---
    principals = [pid for pid, _ in voter_rows]
    if len(principals) != len(set(principals)):
        errors.append("Voter order contains duplicate principals")
    for pid, voter in voter_rows:
        if not voter.registered:
            errors.append(f"Voter {pid} is listed but not registered")
        if voter.has_voted != (voter.voted_proposal_id is not None):
            errors.append(
                f"Voter {pid}: has_voted={voter.has_voted} but "
                f"voted_proposal_id={voter.voted_proposal_id}"
            )
        if voter.voted_proposal_id is not None and not (
            0 <= voter.voted_proposal_id < proposal_count
        ):
            errors.append(
                f"Voter {pid} points at unknown proposal {voter.voted_proposal_id}"
            )

    # --- Vote conservation ---
    voted = sum(1 for _, v in voter_rows if v.has_voted)
    total = state.proposals.total_votes
    if total != voted:
        errors.append(
            f"Sum of vote counts ({total}) != voters who voted ({voted})"
        )
    for proposal_id, proposal in enumerate(state.proposals.list_proposals()):
        if proposal.vote_count < 0:
            errors.append(f"Proposal {proposal_id} has negative vote count")
        pointed = sum(1 for _, v in voter_rows if v.voted_proposal_id == proposal_id)
        if pointed != proposal.vote_count:
            errors.append(
                f"Proposal {proposal_id}: vote_count={proposal.vote_count} "
                f"but {pointed} voters chose it"
            )

    # --- Result/phase agreement ---
    phase = state.workflow.current_phase
    if phase == Phase.VOTES_TALLIED and not state.result.is_computed:
        errors.append("Phase is votes_tallied but no result was computed")
    if phase != Phase.VOTES_TALLIED and state.result.is_computed:
        errors.append(f"Result present while in {phase.value}")

    if state.cycle < 1:
        errors.append(f"Cycle counter must be >= 1, got {state.cycle}")

    return errors
