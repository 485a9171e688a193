"""Access control — capabilities and composable guards.

Two capabilities exist:
- ADMIN: held by exactly one principal, fixed when the aggregate is created.
- REGISTERED_VOTER: held by any principal the voter registry marks registered.

Every service operation declares a tuple of guards. Guards run in order
before the operation's handler and raise on the first failure, so a
rejected call never reaches a mutation. Capability guards come first,
phase guards second.
"""

from __future__ import annotations

import enum
from typing import TYPE_CHECKING, Callable, Iterable

from votecycle.errors import NotWhitelistedError, UnauthorizedError
from votecycle.models.workflow import Phase

if TYPE_CHECKING:
    from votecycle.state import VotingState


Guard = Callable[["VotingState", str], None]


class Capability(str, enum.Enum):
    ADMIN = "admin"
    REGISTERED_VOTER = "registered_voter"


class AccessControl:
    """Resolves a caller's capabilities against the current aggregate."""

    @staticmethod
    def capabilities(state: VotingState, principal: str) -> frozenset[Capability]:
        caps: set[Capability] = set()
        if principal == state.admin_id:
            caps.add(Capability.ADMIN)
        if state.voters.is_registered(principal):
            caps.add(Capability.REGISTERED_VOTER)
        return frozenset(caps)

    @staticmethod
    def require(
        state: VotingState, principal: str, *accepted: Capability,
    ) -> None:
        """Pass if the caller holds any of ``accepted``.

        Raises NotWhitelistedError when a voter capability would have
        sufficed, UnauthorizedError when only admin would.
        """
        held = AccessControl.capabilities(state, principal)
        if held.intersection(accepted):
            return
        if Capability.REGISTERED_VOTER in accepted:
            raise NotWhitelistedError(f"{principal} is not a registered voter")
        raise UnauthorizedError(f"{principal} is not the administrator")


def admin_only() -> Guard:
    def guard(state: VotingState, principal: str) -> None:
        AccessControl.require(state, principal, Capability.ADMIN)
    return guard


def registered_voter() -> Guard:
    def guard(state: VotingState, principal: str) -> None:
        AccessControl.require(state, principal, Capability.REGISTERED_VOTER)
    return guard


def admin_or_voter() -> Guard:
    def guard(state: VotingState, principal: str) -> None:
        AccessControl.require(
            state, principal, Capability.ADMIN, Capability.REGISTERED_VOTER,
        )
    return guard


def in_phase(*phases: Phase) -> Guard:
    def guard(state: VotingState, principal: str) -> None:
        state.workflow.require(*phases)
    return guard


def run_guards(state: VotingState, principal: str, guards: Iterable[Guard]) -> None:
    for guard in guards:
        guard(state, principal)
