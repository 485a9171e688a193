"""Tests for ballot, tally and reset engines — proves vote conservation and tie-breaks."""

import pytest
from datetime import datetime, timedelta, timezone

from votecycle.engine.ballot import Ballot
from votecycle.engine.reset import ResetController
from votecycle.engine.tally import TallyEngine, winning_index
from votecycle.engine.workflow import WorkflowController
from votecycle.errors import (
    AlreadyVotedError,
    GracePeriodNotElapsedError,
    IllegalPhaseTransitionError,
    InvalidProposalIdError,
    NotWhitelistedError,
)
from votecycle.governance.invariants import check_invariants
from votecycle.models.ballot import Configuration, Proposal
from votecycle.models.workflow import Phase
from votecycle.state import VotingState


def _now() -> datetime:
    return datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _voting_state(allow_update: bool = False, proposals: int = 3) -> VotingState:
    state = VotingState(
        admin_id="admin",
        workflow=WorkflowController(phase=Phase.VOTING_SESSION_STARTED),
        configuration=Configuration(allow_vote_update=allow_update),
    )
    state.voters.register_many(["alice", "bob", "carol"])
    for i in range(proposals):
        state.proposals.add(f"P{i}")
    return state


def _counts(state: VotingState) -> list[int]:
    return [p.vote_count for p in state.proposals.list_proposals()]


class TestFirstVote:
    def test_records_and_increments(self) -> None:
        state = _voting_state()
        outcome = Ballot.cast_vote(state, "alice", 1)
        assert outcome.changed is False
        assert _counts(state) == [0, 1, 0]
        voter = state.voters.info("alice")
        assert voter.has_voted is True
        assert voter.voted_proposal_id == 1
        assert check_invariants(state) == []

    def test_unregistered_voter_rejected(self) -> None:
        state = _voting_state()
        with pytest.raises(NotWhitelistedError):
            Ballot.cast_vote(state, "mallory", 0)
        assert _counts(state) == [0, 0, 0]

    @pytest.mark.parametrize("bad_id", [-1, 3, 99])
    def test_invalid_proposal_rejected(self, bad_id: int) -> None:
        state = _voting_state()
        with pytest.raises(InvalidProposalIdError):
            Ballot.cast_vote(state, "alice", bad_id)
        assert state.voters.info("alice").has_voted is False


class TestVoteUpdatePolicy:
    def test_second_vote_rejected_when_updates_disallowed(self) -> None:
        state = _voting_state(allow_update=False)
        Ballot.cast_vote(state, "alice", 0)
        with pytest.raises(AlreadyVotedError):
            Ballot.cast_vote(state, "alice", 2)
        assert _counts(state) == [1, 0, 0]
        assert state.voters.info("alice").voted_proposal_id == 0

    def test_second_vote_moves_when_updates_allowed(self) -> None:
        state = _voting_state(allow_update=True)
        Ballot.cast_vote(state, "alice", 0)
        Ballot.cast_vote(state, "bob", 0)
        outcome = Ballot.cast_vote(state, "alice", 2)
        assert outcome.changed is True
        assert outcome.previous_proposal_id == 0
        assert _counts(state) == [1, 0, 1]
        assert state.proposals.total_votes == state.voters.voted_count == 2
        assert check_invariants(state) == []

    def test_revote_same_proposal_keeps_counts(self) -> None:
        state = _voting_state(allow_update=True)
        Ballot.cast_vote(state, "alice", 1)
        outcome = Ballot.cast_vote(state, "alice", 1)
        assert outcome.changed is True
        assert _counts(state) == [0, 1, 0]

    def test_invalid_update_target_leaves_vote(self) -> None:
        state = _voting_state(allow_update=True)
        Ballot.cast_vote(state, "alice", 1)
        with pytest.raises(InvalidProposalIdError):
            Ballot.cast_vote(state, "alice", 7)
        assert _counts(state) == [0, 1, 0]
        assert state.voters.info("alice").voted_proposal_id == 1


class TestWinningIndex:
    def test_lowest_id_wins_tie(self) -> None:
        proposals = [Proposal("A", 2), Proposal("B", 2), Proposal("C", 1)]
        assert winning_index(proposals) == (0, 2)

    def test_strictly_greater_replaces(self) -> None:
        proposals = [Proposal("A", 1), Proposal("B", 3), Proposal("C", 3)]
        assert winning_index(proposals) == (1, 3)

    def test_no_votes_defaults_to_first(self) -> None:
        assert winning_index([Proposal("A"), Proposal("B")]) == (0, 0)

    def test_no_proposals(self) -> None:
        assert winning_index([]) == (0, 0)


class TestTallyEngine:
    def test_compute_records_result_and_advances(self) -> None:
        state = _voting_state()
        Ballot.cast_vote(state, "alice", 2)
        state.workflow.advance(Phase.VOTING_SESSION_ENDED)
        result, count, change = TallyEngine.compute_result(state, _now())
        assert result.winning_proposal_id == 2
        assert result.computed_at == _now()
        assert count == 1
        assert change.new == Phase.VOTES_TALLIED
        assert state.result == result

    def test_compute_in_wrong_phase_writes_nothing(self) -> None:
        state = _voting_state()
        with pytest.raises(IllegalPhaseTransitionError):
            TallyEngine.compute_result(state, _now())
        assert state.result.is_computed is False
        assert state.workflow.current_phase == Phase.VOTING_SESSION_STARTED


def _tallied_state(grace: timedelta = timedelta(minutes=10)) -> VotingState:
    state = _voting_state()
    state.configuration.result_grace_period = grace
    Ballot.cast_vote(state, "alice", 0)
    state.workflow.advance(Phase.VOTING_SESSION_ENDED)
    TallyEngine.compute_result(state, _now())
    return state


class TestResetController:
    def test_before_grace_period_fails(self) -> None:
        state = _tallied_state()
        controller = ResetController()
        with pytest.raises(GracePeriodNotElapsedError):
            controller.start_new_cycle(state, _now() + timedelta(minutes=9, seconds=59))
        assert state.voters.count == 3
        assert state.workflow.current_phase == Phase.VOTES_TALLIED

    def test_at_grace_boundary_succeeds(self) -> None:
        state = _tallied_state()
        change = ResetController().start_new_cycle(state, _now() + timedelta(minutes=10))
        assert change.new == Phase.REGISTERING_VOTERS
        assert state.voters.count == 0
        assert state.proposals.count == 0
        assert state.result.is_computed is False
        assert state.cycle == 2

    def test_configuration_survives_reset(self) -> None:
        state = _tallied_state()
        state.configuration.allow_vote_update = True
        ResetController().start_new_cycle(state, _now() + timedelta(hours=1))
        assert state.configuration.allow_vote_update is True

    def test_keep_proposals_policy_zeroes_counts(self) -> None:
        state = _tallied_state()
        ResetController(clear_proposals=False).start_new_cycle(
            state, _now() + timedelta(hours=1),
        )
        assert state.proposals.count == 3
        assert state.proposals.total_votes == 0
        assert check_invariants(state) == []
