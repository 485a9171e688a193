"""Voter registry — the whitelist of principals allowed to take part.

The registry keeps two structures:
- a mapping principal → Voter, the source of truth for membership;
- an insertion-ordered list of principals, used for enumeration and
  bulk erasure only.

Phase gating and access control are applied by the caller before any
method here runs. Methods validate everything they need before the first
write, so a raised error leaves the registry unchanged.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Iterable, Optional

from votecycle.errors import DuplicateRegistrationError, InvalidPrincipalError
from votecycle.models.ballot import Voter


def canonical_principal(principal: str) -> str:
    """Strip surrounding whitespace. Raises InvalidPrincipalError if blank."""
    canonical = (principal or "").strip()
    if not canonical:
        raise InvalidPrincipalError("Principal identifier must not be blank")
    return canonical


class VoterRegistry:
    """Registry of voters for the current cycle.

    Thread-safety: this class is not thread-safe. The service layer
    serialises access.
    """

    def __init__(self) -> None:
        self._voters: dict[str, Voter] = {}
        self._order: list[str] = []

    def register_one(self, principal: str) -> str:
        """Whitelist a principal. Returns the canonical id.

        Raises DuplicateRegistrationError if already registered.
        """
        pid = canonical_principal(principal)
        if self.is_registered(pid):
            raise DuplicateRegistrationError(f"Voter already registered: {pid}")
        self._voters[pid] = Voter(registered=True)
        self._order.append(pid)
        return pid

    def register_many(self, principals: Iterable[str]) -> list[str]:
        """Whitelist a batch atomically. Returns the canonical ids in order.

        Every entry is checked (against the registry and against earlier
        entries of the same batch) before anything is written.
        """
        batch: list[str] = []
        seen: set[str] = set()
        for principal in principals:
            pid = canonical_principal(principal)
            if self.is_registered(pid) or pid in seen:
                raise DuplicateRegistrationError(
                    f"Voter already registered: {pid} (batch rejected)"
                )
            seen.add(pid)
            batch.append(pid)

        for pid in batch:
            self._voters[pid] = Voter(registered=True)
            self._order.append(pid)
        return batch

    def is_registered(self, principal: str) -> bool:
        voter = self._voters.get(principal.strip())
        return voter is not None and voter.registered

    def get(self, principal: str) -> Optional[Voter]:
        """Live record for internal use by the ballot engine."""
        return self._voters.get(principal.strip())

    def info(self, principal: str) -> Voter:
        """Snapshot of a voter. Unknown principals read as the zero voter."""
        voter = self._voters.get(principal.strip())
        return replace(voter) if voter is not None else Voter()

    def all_info(self) -> list[tuple[str, Voter]]:
        """Snapshots of every voter, in registration order."""
        return [(pid, replace(self._voters[pid])) for pid in self._order]

    def list_voters(self) -> list[str]:
        return list(self._order)

    def record_vote(self, principal: str, proposal_id: int) -> Optional[int]:
        """Point a registered voter at ``proposal_id``. Returns the previous choice."""
        voter = self._voters[principal.strip()]
        previous = voter.voted_proposal_id
        voter.has_voted = True
        voter.voted_proposal_id = proposal_id
        return previous

    def clear(self) -> None:
        """Erase every voter and the voter order."""
        self._voters.clear()
        self._order.clear()

    @property
    def count(self) -> int:
        return len(self._order)

    @property
    def voted_count(self) -> int:
        return sum(1 for v in self._voters.values() if v.has_voted)

    def to_dict(self) -> dict[str, Any]:
        return {
            "order": list(self._order),
            "voters": {pid: self._voters[pid].to_dict() for pid in self._order},
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> VoterRegistry:
        registry = VoterRegistry()
        voters = data.get("voters", {})
        for pid in data.get("order", []):
            registry._voters[pid] = Voter.from_dict(voters.get(pid, {"registered": True}))
            registry._order.append(pid)
        return registry
