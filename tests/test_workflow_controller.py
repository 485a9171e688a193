"""Tests for the workflow controller — proves phases only move forward, one step, cyclically."""

import pytest
from datetime import datetime, timezone

from votecycle.engine.workflow import WorkflowController
from votecycle.errors import IllegalPhaseTransitionError, InvalidPhaseError
from votecycle.models.workflow import INITIAL_PHASE, PHASE_ORDER, Phase


def _now() -> datetime:
    return datetime(2026, 3, 1, tzinfo=timezone.utc)


def _controller_at(phase: Phase) -> WorkflowController:
    return WorkflowController(phase=phase, phase_started_utc=_now())


class TestCyclicProgression:
    def test_starts_registering_voters(self) -> None:
        assert WorkflowController().current_phase == Phase.REGISTERING_VOTERS
        assert INITIAL_PHASE == Phase.REGISTERING_VOTERS

    @pytest.mark.parametrize("index", range(len(PHASE_ORDER)))
    def test_only_successor_is_legal(self, index: int) -> None:
        current = PHASE_ORDER[index]
        successor = PHASE_ORDER[(index + 1) % len(PHASE_ORDER)]
        for target in Phase:
            controller = _controller_at(current)
            if target == successor:
                change = controller.advance(target, _now())
                assert change.previous == current
                assert change.new == successor
                assert controller.current_phase == successor
            else:
                with pytest.raises(IllegalPhaseTransitionError):
                    controller.advance(target, _now())
                assert controller.current_phase == current

    def test_votes_tallied_wraps_to_registering(self) -> None:
        controller = _controller_at(Phase.VOTES_TALLIED)
        assert controller.next_phase() == Phase.REGISTERING_VOTERS

    def test_full_cycle_returns_to_start(self) -> None:
        controller = WorkflowController()
        for _ in range(len(PHASE_ORDER)):
            controller.advance(controller.next_phase(), _now())
        assert controller.current_phase == INITIAL_PHASE


class TestRejectedTransitions:
    def test_skip_reason(self) -> None:
        controller = _controller_at(Phase.REGISTERING_VOTERS)
        allowed, reason = controller.can_advance(Phase.VOTING_SESSION_STARTED)
        assert allowed is False
        assert "Illegal transition" in reason

    def test_backwards_blocked(self) -> None:
        controller = _controller_at(Phase.VOTING_SESSION_STARTED)
        with pytest.raises(IllegalPhaseTransitionError):
            controller.advance(Phase.PROPOSALS_REGISTRATION_STARTED)

    def test_self_transition_blocked(self) -> None:
        controller = _controller_at(Phase.VOTING_SESSION_STARTED)
        allowed, reason = controller.can_advance(Phase.VOTING_SESSION_STARTED)
        assert allowed is False
        assert "Already" in reason

    def test_failed_advance_keeps_start_time(self) -> None:
        controller = _controller_at(Phase.REGISTERING_VOTERS)
        with pytest.raises(IllegalPhaseTransitionError):
            controller.advance(Phase.VOTES_TALLIED)
        assert controller.phase_started_utc == _now()


class TestPhaseGuard:
    def test_require_passes_in_legal_phase(self) -> None:
        controller = _controller_at(Phase.VOTING_SESSION_STARTED)
        controller.require(Phase.VOTING_SESSION_STARTED)

    def test_require_raises_outside_legal_phase(self) -> None:
        controller = _controller_at(Phase.REGISTERING_VOTERS)
        with pytest.raises(InvalidPhaseError) as exc:
            controller.require(Phase.VOTING_SESSION_STARTED, Phase.VOTING_SESSION_ENDED)
        assert "registering_voters" in str(exc.value)


class TestSerialisation:
    def test_round_trip(self) -> None:
        controller = _controller_at(Phase.PROPOSALS_REGISTRATION_ENDED)
        restored = WorkflowController.from_dict(controller.to_dict())
        assert restored.current_phase == Phase.PROPOSALS_REGISTRATION_ENDED
        assert restored.phase_started_utc == _now()
