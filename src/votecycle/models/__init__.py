"""Core data models for votecycle."""

from votecycle.models.workflow import (
    INITIAL_PHASE,
    PHASE_ORDER,
    Phase,
    PhaseChange,
)
from votecycle.models.ballot import (
    Configuration,
    Proposal,
    Result,
    Voter,
)

__all__ = [
    "INITIAL_PHASE",
    "PHASE_ORDER",
    "Phase",
    "PhaseChange",
    "Configuration",
    "Proposal",
    "Result",
    "Voter",
]
