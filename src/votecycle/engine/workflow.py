"""Workflow controller — the six-phase cyclic state machine.

Rules:
- The only legal transition from a phase is to its successor in
  PHASE_ORDER; VOTES_TALLIED wraps back to REGISTERING_VOTERS.
- Skipping phases, moving backwards and self-transitions are rejected.
- Every mutating operation elsewhere is gated on the current phase
  through require().

The controller validates and applies transitions only. Event publication
and persistence are handled by the service layer.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Optional

from votecycle.errors import IllegalPhaseTransitionError, InvalidPhaseError
from votecycle.models.workflow import INITIAL_PHASE, PHASE_ORDER, Phase, PhaseChange


# Legal transitions: {from_phase: to_phase}
_TRANSITIONS: dict[Phase, Phase] = {
    phase: PHASE_ORDER[(index + 1) % len(PHASE_ORDER)]
    for index, phase in enumerate(PHASE_ORDER)
}


class WorkflowController:
    """Holds the current phase and enforces forward-only, cyclic progression."""

    def __init__(
        self,
        phase: Phase = INITIAL_PHASE,
        phase_started_utc: Optional[datetime] = None,
    ) -> None:
        self._phase = phase
        self._phase_started_utc = phase_started_utc

    @property
    def current_phase(self) -> Phase:
        return self._phase

    @property
    def phase_started_utc(self) -> Optional[datetime]:
        return self._phase_started_utc

    def next_phase(self) -> Phase:
        """Return the only phase reachable from the current one."""
        return _TRANSITIONS[self._phase]

    def can_advance(self, target: Phase) -> tuple[bool, str]:
        """Check whether ``target`` is a legal transition. Returns (allowed, reason)."""
        expected = self.next_phase()
        if target == expected:
            return True, f"{self._phase.value} → {target.value} allowed"
        if target == self._phase:
            return False, f"Already in {target.value}"
        return (
            False,
            f"Illegal transition: {self._phase.value} → {target.value} "
            f"(next phase is {expected.value})",
        )

    def advance(self, target: Phase, now: Optional[datetime] = None) -> PhaseChange:
        """Move to ``target``. Raises IllegalPhaseTransitionError if not the successor."""
        allowed, reason = self.can_advance(target)
        if not allowed:
            raise IllegalPhaseTransitionError(reason)
        change = PhaseChange(previous=self._phase, new=target)
        self._phase = target
        self._phase_started_utc = now or datetime.now(timezone.utc)
        return change

    def require(self, *phases: Phase) -> None:
        """Raise InvalidPhaseError unless the current phase is one of ``phases``."""
        if self._phase not in phases:
            legal = ", ".join(p.value for p in phases)
            raise InvalidPhaseError(
                f"Operation not allowed in {self._phase.value} (legal: {legal})"
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "phase": self._phase.value,
            "phase_started_utc": (
                self._phase_started_utc.isoformat() if self._phase_started_utc else None
            ),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> WorkflowController:
        started = data.get("phase_started_utc")
        return WorkflowController(
            phase=Phase(data.get("phase", INITIAL_PHASE.value)),
            phase_started_utc=datetime.fromisoformat(started) if started else None,
        )
