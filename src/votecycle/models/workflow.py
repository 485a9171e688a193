"""Workflow phase model.

A voting cycle walks six phases in a fixed order and wraps around:

    REGISTERING_VOTERS → PROPOSALS_REGISTRATION_STARTED →
    PROPOSALS_REGISTRATION_ENDED → VOTING_SESSION_STARTED →
    VOTING_SESSION_ENDED → VOTES_TALLIED → REGISTERING_VOTERS

Exactly one phase is current at any time.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Phase(str, enum.Enum):
    """Stages of a voting cycle, in cycle order."""
    REGISTERING_VOTERS = "registering_voters"
    PROPOSALS_REGISTRATION_STARTED = "proposals_registration_started"
    PROPOSALS_REGISTRATION_ENDED = "proposals_registration_ended"
    VOTING_SESSION_STARTED = "voting_session_started"
    VOTING_SESSION_ENDED = "voting_session_ended"
    VOTES_TALLIED = "votes_tallied"


# Fixed cycle order. Enum iteration order is definition order, but the
# transition table is built from this tuple only.
PHASE_ORDER: tuple[Phase, ...] = (
    Phase.REGISTERING_VOTERS,
    Phase.PROPOSALS_REGISTRATION_STARTED,
    Phase.PROPOSALS_REGISTRATION_ENDED,
    Phase.VOTING_SESSION_STARTED,
    Phase.VOTING_SESSION_ENDED,
    Phase.VOTES_TALLIED,
)

INITIAL_PHASE = PHASE_ORDER[0]


@dataclass(frozen=True)
class PhaseChange:
    """A committed phase transition."""
    previous: Phase
    new: Phase
