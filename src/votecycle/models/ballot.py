"""Voter, proposal, result and configuration records.

Invariants enforced by the registries and the ballot engine:
- voter.has_voted is True iff voter.voted_proposal_id is not None.
- proposal.vote_count is never negative.
- sum(vote_count) == number of voters with has_voted.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Optional


DEFAULT_RESULT_GRACE_PERIOD = timedelta(minutes=10)


@dataclass
class Voter:
    """Registration and voting status of one principal.

    A principal that was never registered reads as the zero value
    (registered=False, has_voted=False, voted_proposal_id=None).
    """
    registered: bool = False
    has_voted: bool = False
    voted_proposal_id: Optional[int] = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "registered": self.registered,
            "has_voted": self.has_voted,
            "voted_proposal_id": self.voted_proposal_id,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Voter:
        return Voter(
            registered=bool(data.get("registered", False)),
            has_voted=bool(data.get("has_voted", False)),
            voted_proposal_id=data.get("voted_proposal_id"),
        )


@dataclass
class Proposal:
    """A voting option. Its id is its index in the proposal registry."""
    description: str
    vote_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {"description": self.description, "vote_count": self.vote_count}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Proposal:
        return Proposal(
            description=data["description"],
            vote_count=int(data.get("vote_count", 0)),
        )


@dataclass(frozen=True)
class Result:
    """Outcome of a tally.

    The zero value (computed_at=None, winning_proposal_id=0) means no
    tally has run in the current cycle.
    """
    computed_at: Optional[datetime] = None
    winning_proposal_id: int = 0

    @property
    def is_computed(self) -> bool:
        return self.computed_at is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "computed_at": self.computed_at.isoformat() if self.computed_at else None,
            "winning_proposal_id": self.winning_proposal_id,
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Result:
        raw = data.get("computed_at")
        return Result(
            computed_at=datetime.fromisoformat(raw) if raw else None,
            winning_proposal_id=int(data.get("winning_proposal_id", 0)),
        )


@dataclass
class Configuration:
    """Process-wide settings. Survives cycle resets."""
    allow_vote_update: bool = False
    result_grace_period: timedelta = field(
        default_factory=lambda: DEFAULT_RESULT_GRACE_PERIOD,
    )

    def to_dict(self) -> dict[str, Any]:
        return {
            "allow_vote_update": self.allow_vote_update,
            "result_grace_period_seconds": self.result_grace_period.total_seconds(),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> Configuration:
        return Configuration(
            allow_vote_update=bool(data.get("allow_vote_update", False)),
            result_grace_period=timedelta(
                seconds=float(data.get(
                    "result_grace_period_seconds",
                    DEFAULT_RESULT_GRACE_PERIOD.total_seconds(),
                )),
            ),
        )
