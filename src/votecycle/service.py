"""Voting service — unified facade for the voting workflow.

This is the primary interface for programmatic access to votecycle.
It owns the single VotingState aggregate and orchestrates:
- Voter registration (single and atomic batch)
- Phase progression (generic advance and named wrappers)
- Proposal registration
- Vote casting and, when allowed, vote changes
- Tallying and cycle reset
- Configuration changes
- Persistence (state store) and notifications (event sink)

Every command runs the same pipeline under one lock:
1. capability guard, then phase guard;
2. component validation and mutation;
3. snapshot persistence (rolled back on failure);
4. notification publication.

Failures at steps 1-3 leave the aggregate exactly as it was and publish
nothing. All operations produce typed results.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, Iterator, Optional, Sequence

from votecycle import __version__
from votecycle.engine.ballot import Ballot
from votecycle.engine.reset import ResetController
from votecycle.engine.tally import TallyEngine
from votecycle.errors import (
    EmptyRegistrySetError,
    IllegalPhaseTransitionError,
    InvalidPhaseError,
    VotingError,
)
from votecycle.governance.access_control import (
    Guard,
    admin_only,
    admin_or_voter,
    in_phase,
    registered_voter,
    run_guards,
)
from votecycle.governance.invariants import check_invariants
from votecycle.models.ballot import Configuration, Proposal, Voter
from votecycle.models.workflow import Phase, PhaseChange
from votecycle.persistence.event_log import EventKind, EventLog, EventRecord, EventSink
from votecycle.persistence.state_store import StateStore
from votecycle.policy.resolver import PolicyResolver
from votecycle.registry.voters import canonical_principal
from votecycle.state import VotingState


logger = logging.getLogger(__name__)

Notification = tuple[EventKind, dict[str, Any]]

# Transitions that have their own command and cannot go through advance_phase.
_DEDICATED_TRANSITIONS: dict[Phase, str] = {
    Phase.VOTES_TALLIED: "compute_result",
    Phase.REGISTERING_VOTERS: "start_new_cycle",
}


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ServiceResult:
    """Result of a service operation."""
    success: bool
    errors: list[str] = field(default_factory=list)
    data: dict[str, Any] = field(default_factory=dict)
    error_code: Optional[str] = None
    warnings: list[str] = field(default_factory=list)


class VotingService:
    """Voting workflow facade.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        service = VotingService(resolver, admin_id="admin")

        service.register_voters("admin", ["alice", "bob"])
        service.start_proposals_registration("admin")
        service.add_proposal("alice", "Plant more trees")
        service.end_proposals_registration("admin")
        service.start_voting_session("admin")
        service.cast_vote("bob", 0)
        service.end_voting_session("admin")
        result = service.compute_result("admin")

    Persistence (optional):
        service = VotingService(resolver, "admin", event_sink=log, state_store=store)
        # State is persisted on each command and loaded on construction.
    """

    def __init__(
        self,
        resolver: PolicyResolver,
        admin_id: str,
        event_sink: Optional[EventSink] = None,
        state_store: Optional[StateStore] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._resolver = resolver
        self._event_sink: EventSink = event_sink if event_sink is not None else EventLog()
        self._state_store = state_store
        self._clock = clock or _utc_now
        self._lock = threading.RLock()
        self._reset_controller = ResetController(
            clear_proposals=resolver.reset_clears_proposals(),
        )

        stored = None
        if state_store is not None:
            with state_store.lock():
                stored = state_store.load()
        if stored is not None:
            violations = check_invariants(stored)
            if violations:
                raise ValueError(
                    f"Stored state violates invariants: {'; '.join(violations)}"
                )
            if stored.admin_id != admin_id.strip():
                logger.warning(
                    "Stored administrator %s overrides requested %s",
                    stored.admin_id, admin_id,
                )
            self._state = stored
        else:
            self._state = VotingState(
                admin_id=canonical_principal(admin_id),
                configuration=resolver.initial_configuration(),
            )

        # Continue numbering after whatever the sink already holds
        self._event_counter: int = getattr(self._event_sink, "count", 0)
        self._audit_degraded = False

    # ------------------------------------------------------------------
    # Voter registration
    # ------------------------------------------------------------------

    def register_voter(self, caller: str, voter_id: str) -> ServiceResult:
        """Whitelist one principal."""
        def handler(principal: str, now: datetime):
            pid = self._state.voters.register_one(voter_id)
            return {"voter_id": pid}, [(EventKind.VOTER_REGISTERED, {"voter_id": pid})]

        return self._command(
            "register_voter", caller,
            (admin_only(), in_phase(Phase.REGISTERING_VOTERS)),
            handler,
        )

    def register_voters(self, caller: str, voter_ids: Iterable[str]) -> ServiceResult:
        """Whitelist a batch. All-or-nothing: one duplicate rejects the batch."""
        ids = list(voter_ids)

        def handler(principal: str, now: datetime):
            registered = self._state.voters.register_many(ids)
            notifications = [
                (EventKind.VOTER_REGISTERED, {"voter_id": pid}) for pid in registered
            ]
            return {"voter_ids": registered}, notifications

        return self._command(
            "register_voters", caller,
            (admin_only(), in_phase(Phase.REGISTERING_VOTERS)),
            handler,
        )

    # ------------------------------------------------------------------
    # Phase progression
    # ------------------------------------------------------------------

    def advance_phase(
        self, caller: str, target: Optional[Phase | str] = None,
    ) -> ServiceResult:
        """Move to the next phase (or to ``target``, which must be the next phase).

        Entering VOTES_TALLIED and REGISTERING_VOTERS is reserved for
        compute_result and start_new_cycle, so here those successors fail
        with InvalidPhase. "Advancing succeeds iff the target is the
        successor" holds for WorkflowController.advance, not for this
        method. ``target`` may be a Phase or its string value; an unknown
        value fails with IllegalPhaseTransition.
        """
        def handler(principal: str, now: datetime):
            workflow = self._state.workflow
            to = _coerce_phase(target) if target is not None else workflow.next_phase()
            if to == workflow.next_phase():
                if to in _DEDICATED_TRANSITIONS:
                    raise InvalidPhaseError(
                        f"Entering {to.value} requires {_DEDICATED_TRANSITIONS[to]}"
                    )
                self._check_registry_not_empty()
            change = workflow.advance(to, now)
            return _phase_data(change), [_phase_notification(change)]

        return self._command("advance_phase", caller, (admin_only(),), handler)

    def start_proposals_registration(self, caller: str) -> ServiceResult:
        return self._advance_from(
            caller, Phase.REGISTERING_VOTERS, Phase.PROPOSALS_REGISTRATION_STARTED,
        )

    def end_proposals_registration(self, caller: str) -> ServiceResult:
        return self._advance_from(
            caller, Phase.PROPOSALS_REGISTRATION_STARTED, Phase.PROPOSALS_REGISTRATION_ENDED,
        )

    def start_voting_session(self, caller: str) -> ServiceResult:
        return self._advance_from(
            caller, Phase.PROPOSALS_REGISTRATION_ENDED, Phase.VOTING_SESSION_STARTED,
        )

    def end_voting_session(self, caller: str) -> ServiceResult:
        return self._advance_from(
            caller, Phase.VOTING_SESSION_STARTED, Phase.VOTING_SESSION_ENDED,
        )

    # ------------------------------------------------------------------
    # Proposals and votes
    # ------------------------------------------------------------------

    def add_proposal(self, caller: str, description: str) -> ServiceResult:
        def handler(principal: str, now: datetime):
            proposal_id = self._state.proposals.add(description)
            return (
                {"proposal_id": proposal_id},
                [(EventKind.PROPOSAL_REGISTERED, {"proposal_id": proposal_id})],
            )

        return self._command(
            "add_proposal", caller,
            (registered_voter(), in_phase(Phase.PROPOSALS_REGISTRATION_STARTED)),
            handler,
        )

    def cast_vote(self, caller: str, proposal_id: int) -> ServiceResult:
        """Cast, or under allow_vote_update change, the caller's vote."""
        def handler(principal: str, now: datetime):
            outcome = Ballot.cast_vote(self._state, principal, proposal_id)
            data = {
                "voter_id": principal,
                "proposal_id": outcome.proposal_id,
                "previous_proposal_id": outcome.previous_proposal_id,
            }
            if outcome.changed:
                notification = (EventKind.VOTE_CHANGED, {
                    "voter_id": principal,
                    "previous_proposal_id": outcome.previous_proposal_id,
                    "proposal_id": outcome.proposal_id,
                })
            else:
                notification = (EventKind.VOTE_CAST, {
                    "voter_id": principal,
                    "proposal_id": outcome.proposal_id,
                })
            return data, [notification]

        return self._command(
            "cast_vote", caller,
            (registered_voter(), in_phase(Phase.VOTING_SESSION_STARTED)),
            handler,
        )

    # ------------------------------------------------------------------
    # Tally and reset
    # ------------------------------------------------------------------

    def compute_result(self, caller: str) -> ServiceResult:
        def handler(principal: str, now: datetime):
            result, vote_count, change = TallyEngine.compute_result(self._state, now)
            data = {
                "winning_proposal_id": result.winning_proposal_id,
                "vote_count": vote_count,
                "computed_at": result.computed_at.isoformat(),
            }
            return data, [
                _phase_notification(change),
                (EventKind.RESULT_COMPUTED, {
                    "winning_proposal_id": result.winning_proposal_id,
                    "vote_count": vote_count,
                }),
            ]

        return self._command(
            "compute_result", caller,
            (admin_only(), in_phase(Phase.VOTING_SESSION_ENDED)),
            handler,
        )

    def start_new_cycle(self, caller: str) -> ServiceResult:
        def handler(principal: str, now: datetime):
            change = self._reset_controller.start_new_cycle(self._state, now)
            cycle = self._state.cycle
            return {"cycle": cycle, "phase": change.new.value}, [
                _phase_notification(change),
                (EventKind.CYCLE_RESET, {"cycle": cycle}),
            ]

        return self._command(
            "start_new_cycle", caller,
            (admin_only(), in_phase(Phase.VOTES_TALLIED)),
            handler,
        )

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_allow_vote_update(self, caller: str, allow: bool) -> ServiceResult:
        """Enable or disable vote changes.

        Under the frozen_after_registration policy this is only legal
        while registering voters.
        """
        guards: list[Guard] = [admin_only()]
        if self._resolver.vote_update_frozen_after_registration():
            guards.append(in_phase(Phase.REGISTERING_VOTERS))

        def handler(principal: str, now: datetime):
            self._state.configuration.allow_vote_update = bool(allow)
            return (
                {"allow_vote_update": bool(allow)},
                [(EventKind.CONFIGURATION_CHANGED, {"allow_vote_update": bool(allow)})],
            )

        return self._command("set_allow_vote_update", caller, guards, handler)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def current_phase(self) -> Phase:
        with self._exclusive():
            return self._state.workflow.current_phase

    def configuration(self) -> Configuration:
        with self._exclusive():
            return replace(self._state.configuration)

    def list_voters(self, caller: str) -> ServiceResult:
        guard = admin_only() if self._resolver.voter_list_admin_only() else admin_or_voter()
        return self._query(
            caller, (guard,),
            lambda: {"voters": self._state.voters.list_voters()},
        )

    def voter_info(self, caller: str, voter_id: str) -> ServiceResult:
        return self._query(
            caller, (registered_voter(),),
            lambda: _voter_dict(voter_id.strip(), self._state.voters.info(voter_id)),
        )

    def all_voters_info(self, caller: str) -> ServiceResult:
        return self._query(
            caller, (registered_voter(),),
            lambda: {"voters": [
                _voter_dict(pid, voter) for pid, voter in self._state.voters.all_info()
            ]},
        )

    def list_proposals(self, caller: str) -> ServiceResult:
        return self._query(
            caller, (self._proposal_read_guard(),),
            lambda: {"proposals": [
                _proposal_dict(pid, p)
                for pid, p in enumerate(self._state.proposals.list_proposals())
            ]},
        )

    def proposal_info(self, caller: str, proposal_id: int) -> ServiceResult:
        return self._query(
            caller, (self._proposal_read_guard(),),
            lambda: _proposal_dict(proposal_id, self._state.proposals.get(proposal_id)),
        )

    def winning_proposal_id(self) -> ServiceResult:
        return self._query(
            None, (in_phase(Phase.VOTES_TALLIED),),
            lambda: {"winning_proposal_id": self._state.result.winning_proposal_id},
        )

    def winning_proposal_details(self) -> ServiceResult:
        def read() -> dict[str, Any]:
            result = self._state.result
            details: dict[str, Any] = {
                "proposal_id": result.winning_proposal_id,
                "description": None,
                "vote_count": 0,
                "computed_at": result.computed_at.isoformat() if result.computed_at else None,
            }
            if self._state.proposals.count > 0:
                proposal = self._state.proposals.get(result.winning_proposal_id)
                details["description"] = proposal.description
                details["vote_count"] = proposal.vote_count
            return details

        return self._query(None, (in_phase(Phase.VOTES_TALLIED),), read)

    def status(self) -> dict[str, Any]:
        """Return a summary of the aggregate and service health."""
        with self._exclusive():
            state = self._state
            policy = self._resolver.policy
            return {
                "version": __version__,
                "cycle": state.cycle,
                "phase": state.workflow.current_phase.value,
                "phase_started_utc": state.workflow.to_dict()["phase_started_utc"],
                "voters": {
                    "registered": state.voters.count,
                    "voted": state.voters.voted_count,
                },
                "proposals": {
                    "total": state.proposals.count,
                    "total_votes": state.proposals.total_votes,
                },
                "result": state.result.to_dict(),
                "configuration": state.configuration.to_dict(),
                "policy": {
                    "vote_update_policy": policy.vote_update_policy.value,
                    "voter_list_access": policy.voter_list_access.value,
                    "proposal_list_access": policy.proposal_list_access.value,
                    "reset_clears_proposals": policy.reset_clears_proposals,
                },
                "invariant_violations": check_invariants(state),
                "audit_degraded": self._audit_degraded,
            }

    def check_invariants(self) -> list[str]:
        with self._exclusive():
            return check_invariants(self._state)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @contextmanager
    def _exclusive(self) -> Iterator[None]:
        """Serialise against other threads and, with a store, other processes."""
        with self._lock:
            if self._state_store is None:
                yield
                return
            with self._state_store.lock():
                self._sync()
                yield

    def _sync(self) -> None:
        """Pick up commits made by other handles on the same files."""
        stored = self._state_store.load()
        if stored is not None:
            self._state = stored
        refresh = getattr(self._event_sink, "refresh", None)
        if refresh is not None:
            refresh()
        self._event_counter = max(
            self._event_counter, getattr(self._event_sink, "count", 0),
        )

    def _advance_from(self, caller: str, source: Phase, target: Phase) -> ServiceResult:
        def handler(principal: str, now: datetime):
            self._check_registry_not_empty()
            change = self._state.workflow.advance(target, now)
            return _phase_data(change), [_phase_notification(change)]

        return self._command(
            f"advance_to_{target.value}", caller,
            (admin_only(), in_phase(source)),
            handler,
        )

    def _check_registry_not_empty(self) -> None:
        phase = self._state.workflow.current_phase
        if phase == Phase.REGISTERING_VOTERS and self._state.voters.count == 0:
            raise EmptyRegistrySetError("Cannot close voter registration with no voters")
        if phase == Phase.PROPOSALS_REGISTRATION_STARTED and self._state.proposals.count == 0:
            raise EmptyRegistrySetError("Cannot close proposal registration with no proposals")

    def _proposal_read_guard(self) -> Guard:
        if self._resolver.proposal_list_open_to_admin():
            return admin_or_voter()
        return registered_voter()

    def _command(
        self,
        action: str,
        caller: str,
        guards: Sequence[Guard],
        handler: Callable[[str, datetime], tuple[dict[str, Any], list[Notification]]],
    ) -> ServiceResult:
        """Run one command through guard → mutate → persist → publish."""
        with self._exclusive():
            now = self._clock()
            snapshot = self._state.to_dict()
            try:
                principal = canonical_principal(caller)
                run_guards(self._state, principal, guards)
                data, notifications = handler(principal, now)
            except VotingError as e:
                self._state = VotingState.from_dict(snapshot)
                logger.info("%s rejected for %r: [%s] %s", action, caller, e.code, e)
                return ServiceResult(success=False, errors=[str(e)], error_code=e.code)

            err = self._safe_persist(snapshot)
            if err:
                return ServiceResult(
                    success=False, errors=[err], error_code="PersistenceFailure",
                )

            warnings = self._publish(principal, notifications, now)
            logger.info("%s committed by %s", action, principal)
            return ServiceResult(success=True, data=data, warnings=warnings)

    def _query(
        self,
        caller: Optional[str],
        guards: Sequence[Guard],
        reader: Callable[[], dict[str, Any]],
    ) -> ServiceResult:
        with self._exclusive():
            try:
                principal = canonical_principal(caller) if caller is not None else ""
                run_guards(self._state, principal, guards)
                return ServiceResult(success=True, data=reader())
            except VotingError as e:
                return ServiceResult(success=False, errors=[str(e)], error_code=e.code)

    def _safe_persist(self, snapshot: dict[str, Any]) -> Optional[str]:
        """Persist the aggregate, restoring ``snapshot`` on failure.

        Runs before any notification is published, so a rollback here
        never contradicts the event trail. Returns an error string or None.
        """
        if self._state_store is None:
            return None
        try:
            self._state_store.save(self._state)
            return None
        except OSError as e:
            self._state = VotingState.from_dict(snapshot)
            logger.error("State persistence failed, command rolled back: %s", e)
            return f"Persistence failure: {e}"

    def _publish(
        self, actor_id: str, notifications: list[Notification], now: datetime,
    ) -> list[str]:
        """Hand notifications to the sink. Returns warnings for failed appends.

        The mutation is already committed, so a sink failure marks the
        service audit-degraded instead of undoing it.
        """
        warnings: list[str] = []
        for kind, payload in notifications:
            event = EventRecord.create(
                event_id=self._next_event_id(),
                event_kind=kind,
                actor_id=actor_id,
                payload=payload,
                timestamp_utc=now,
            )
            try:
                self._event_sink.append(event)
            except Exception as e:
                self._audit_degraded = True
                logger.exception("Event sink rejected %s", event.event_id)
                warnings.append(f"Event sink failure ({kind.value}): {e}")
        return warnings

    def _next_event_id(self) -> str:
        """Generate a monotonically increasing unique event ID."""
        self._event_counter += 1
        return f"EVT-{self._event_counter:08d}"


def _phase_notification(change: PhaseChange) -> Notification:
    return (EventKind.PHASE_CHANGED, {
        "previous": change.previous.value,
        "new": change.new.value,
    })


def _phase_data(change: PhaseChange) -> dict[str, Any]:
    return {"previous_phase": change.previous.value, "phase": change.new.value}


def _voter_dict(voter_id: str, voter: Voter) -> dict[str, Any]:
    return {"voter_id": voter_id, **voter.to_dict()}


def _proposal_dict(proposal_id: int, proposal: Proposal) -> dict[str, Any]:
    return {"proposal_id": proposal_id, **proposal.to_dict()}


def _coerce_phase(value: Phase | str) -> Phase:
    try:
        return Phase(value)
    except ValueError:
        raise IllegalPhaseTransitionError(f"Unknown phase: {value!r}") from None
