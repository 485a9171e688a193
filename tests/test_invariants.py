"""Tests for aggregate invariant checks."""

from datetime import datetime, timezone

from votecycle.engine.workflow import WorkflowController
from votecycle.governance.invariants import check_invariants
from votecycle.models.ballot import Result
from votecycle.models.workflow import Phase
from votecycle.state import VotingState


def _state() -> VotingState:
    state = VotingState(
        admin_id="admin",
        workflow=WorkflowController(phase=Phase.VOTING_SESSION_STARTED),
    )
    state.voters.register_many(["alice", "bob"])
    state.proposals.add("A")
    state.proposals.add("B")
    return state


class TestConsistentState:
    def test_fresh_state(self) -> None:
        assert check_invariants(VotingState(admin_id="admin")) == []

    def test_state_with_votes(self) -> None:
        state = _state()
        state.proposals.add_vote(1)
        state.voters.record_vote("alice", 1)
        assert check_invariants(state) == []


class TestViolations:
    def test_count_without_voter(self) -> None:
        state = _state()
        state.proposals.add_vote(0)
        errors = check_invariants(state)
        assert any("Sum of vote counts" in e for e in errors)
        assert any("Proposal 0" in e for e in errors)

    def test_voter_without_count(self) -> None:
        state = _state()
        state.voters.record_vote("bob", 0)
        assert any("Sum of vote counts (0)" in e for e in check_invariants(state))

    def test_voter_points_at_unknown_proposal(self) -> None:
        state = _state()
        state.voters.record_vote("bob", 5)
        assert any("unknown proposal 5" in e for e in check_invariants(state))

    def test_has_voted_mismatch(self) -> None:
        state = _state()
        state.voters.get("alice").has_voted = True
        assert any("has_voted=True" in e for e in check_invariants(state))

    def test_tallied_without_result(self) -> None:
        state = VotingState(
            admin_id="admin",
            workflow=WorkflowController(phase=Phase.VOTES_TALLIED),
        )
        assert any("no result" in e for e in check_invariants(state))

    def test_result_outside_tallied(self) -> None:
        state = _state()
        state.result = Result(computed_at=datetime(2026, 1, 1, tzinfo=timezone.utc))
        assert any("Result present" in e for e in check_invariants(state))

    def test_cycle_counter(self) -> None:
        state = VotingState(admin_id="admin", cycle=0)
        assert any("Cycle counter" in e for e in check_invariants(state))
