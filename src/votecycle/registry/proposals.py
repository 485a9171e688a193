"""Proposal registry — insertion-ordered voting options with running counts.

A proposal's id is its index at insertion time and never changes until
the registry is cleared by a cycle reset. Descriptions are compared
byte-for-byte; two proposals may not share one.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any

from votecycle.errors import (
    DuplicateProposalError,
    EmptyProposalError,
    InvalidProposalIdError,
)
from votecycle.models.ballot import Proposal


class ProposalRegistry:
    """Dense, append-only list of proposals for the current cycle."""

    def __init__(self) -> None:
        self._proposals: list[Proposal] = []
        self._descriptions: set[str] = set()

    def add(self, description: str) -> int:
        """Append a proposal and return its id.

        Raises EmptyProposalError for an empty description and
        DuplicateProposalError if an identical description exists.
        """
        if not description:
            raise EmptyProposalError("Proposal description must not be empty")
        if description in self._descriptions:
            raise DuplicateProposalError(
                f"Proposal already registered: {description!r}"
            )
        proposal_id = len(self._proposals)
        self._proposals.append(Proposal(description=description))
        self._descriptions.add(description)
        return proposal_id

    def validate_id(self, proposal_id: int) -> None:
        if not (0 <= proposal_id < len(self._proposals)):
            raise InvalidProposalIdError(
                f"Invalid proposal id: {proposal_id} "
                f"({len(self._proposals)} proposals registered)"
            )

    def get(self, proposal_id: int) -> Proposal:
        """Snapshot of one proposal. Raises InvalidProposalIdError if out of range."""
        self.validate_id(proposal_id)
        return replace(self._proposals[proposal_id])

    def list_proposals(self) -> list[Proposal]:
        """Snapshots of every proposal, in id order."""
        return [replace(p) for p in self._proposals]

    def add_vote(self, proposal_id: int) -> None:
        self.validate_id(proposal_id)
        self._proposals[proposal_id].vote_count += 1

    def move_vote(self, from_id: int, to_id: int) -> None:
        """Shift one vote between proposals. Both ids are checked first."""
        self.validate_id(from_id)
        self.validate_id(to_id)
        if self._proposals[from_id].vote_count <= 0:
            raise ValueError(f"Proposal {from_id} has no vote to move")
        self._proposals[from_id].vote_count -= 1
        self._proposals[to_id].vote_count += 1

    def clear(self) -> None:
        self._proposals.clear()
        self._descriptions.clear()

    def reset_counts(self) -> None:
        """Zero every vote count, keeping proposals and their ids."""
        for proposal in self._proposals:
            proposal.vote_count = 0

    @property
    def count(self) -> int:
        return len(self._proposals)

    @property
    def total_votes(self) -> int:
        return sum(p.vote_count for p in self._proposals)

    def to_dict(self) -> dict[str, Any]:
        return {"proposals": [p.to_dict() for p in self._proposals]}

    @staticmethod
    def from_dict(data: dict[str, Any]) -> ProposalRegistry:
        registry = ProposalRegistry()
        for raw in data.get("proposals", []):
            proposal = Proposal.from_dict(raw)
            registry._proposals.append(proposal)
            registry._descriptions.add(proposal.description)
        return registry
