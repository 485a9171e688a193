"""Tests for command serialisation — proves concurrent callers, in one service
or in several services sharing the same files, see one total order of
commands and never a half-applied mutation.
"""

import threading
import pytest
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

from votecycle.persistence.event_log import EventKind, EventLog
from votecycle.persistence.state_store import StateStore
from votecycle.policy.resolver import PolicyResolver
from votecycle.service import VotingService


CONFIG_DIR = Path(__file__).resolve().parents[1] / "config"

VOTERS = [f"v{i:02d}" for i in range(24)]


@pytest.fixture
def resolver() -> PolicyResolver:
    return PolicyResolver.from_config_dir(CONFIG_DIR)


def _open_voting(service: VotingService, allow_update: bool = False) -> None:
    if allow_update:
        assert service.set_allow_vote_update("admin", True).success
    assert service.register_voters("admin", VOTERS).success
    assert service.start_proposals_registration("admin").success
    for description in ("P0", "P1", "P2"):
        assert service.add_proposal(VOTERS[0], description).success
    assert service.end_proposals_registration("admin").success
    assert service.start_voting_session("admin").success


def _assert_consistent(service: VotingService) -> None:
    status = service.status()
    assert status["invariant_violations"] == []
    assert status["proposals"]["total_votes"] == status["voters"]["voted"]


class TestSingleService:
    def test_concurrent_first_votes(self, resolver: PolicyResolver) -> None:
        service = VotingService(resolver, "admin")
        _open_voting(service)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(
                lambda i: service.cast_vote(VOTERS[i], i % 3), range(len(VOTERS)),
            ))

        assert all(r.success for r in results)
        _assert_consistent(service)
        assert service.status()["voters"]["voted"] == len(VOTERS)

    def test_concurrent_vote_changes(self, resolver: PolicyResolver) -> None:
        service = VotingService(resolver, "admin")
        _open_voting(service, allow_update=True)

        def churn(i: int) -> None:
            for step in range(6):
                assert service.cast_vote(VOTERS[i], (i + step) % 3).success

        with ThreadPoolExecutor(max_workers=8) as pool:
            list(pool.map(churn, range(len(VOTERS))))

        _assert_consistent(service)
        assert service.status()["proposals"]["total_votes"] == len(VOTERS)

    def test_queries_never_see_partial_commands(self, resolver: PolicyResolver) -> None:
        service = VotingService(resolver, "admin")
        _open_voting(service, allow_update=True)
        done = threading.Event()
        snapshots: list[dict] = []

        def read() -> None:
            while not done.is_set():
                snapshots.append(service.status())

        reader = threading.Thread(target=read)
        reader.start()
        with ThreadPoolExecutor(max_workers=6) as pool:
            list(pool.map(
                lambda i: [service.cast_vote(VOTERS[i], s % 3) for s in range(4)],
                range(len(VOTERS)),
            ))
        done.set()
        reader.join(timeout=10)

        assert snapshots
        for status in snapshots:
            assert status["invariant_violations"] == []
            assert status["proposals"]["total_votes"] == status["voters"]["voted"]


class TestSharedFiles:
    def _fresh(self, resolver: PolicyResolver, data_dir: Path) -> VotingService:
        return VotingService(
            resolver, "admin",
            event_sink=EventLog(storage_path=data_dir / "events.jsonl"),
            state_store=StateStore(data_dir / "state.json"),
        )

    def test_interleaved_handles_keep_both_votes(
        self, resolver: PolicyResolver, tmp_path: Path,
    ) -> None:
        _open_voting(self._fresh(resolver, tmp_path))

        first = self._fresh(resolver, tmp_path)
        second = self._fresh(resolver, tmp_path)
        assert first.cast_vote(VOTERS[0], 0).success
        assert second.cast_vote(VOTERS[1], 0).success

        stored = StateStore(tmp_path / "state.json").load()
        assert stored.voters.info(VOTERS[0]).has_voted is True
        assert stored.voters.info(VOTERS[1]).has_voted is True
        assert stored.proposals.total_votes == 2

        log = EventLog(storage_path=tmp_path / "events.jsonl")
        assert len(log.events(EventKind.VOTE_CAST)) == 2

    def test_stale_handle_sees_other_commits(
        self, resolver: PolicyResolver, tmp_path: Path,
    ) -> None:
        _open_voting(self._fresh(resolver, tmp_path))
        first = self._fresh(resolver, tmp_path)
        second = self._fresh(resolver, tmp_path)

        assert first.cast_vote(VOTERS[0], 2).success
        result = second.cast_vote(VOTERS[0], 1)
        assert result.error_code == "AlreadyVoted"
        assert second.proposal_info(VOTERS[0], 2).data["vote_count"] == 1

    def test_concurrent_handles_over_shared_files(
        self, resolver: PolicyResolver, tmp_path: Path,
    ) -> None:
        _open_voting(self._fresh(resolver, tmp_path))

        def vote(i: int) -> bool:
            return self._fresh(resolver, tmp_path).cast_vote(VOTERS[i], i % 3).success

        with ThreadPoolExecutor(max_workers=8) as pool:
            assert all(pool.map(vote, range(len(VOTERS))))

        final = self._fresh(resolver, tmp_path)
        _assert_consistent(final)
        assert final.status()["voters"]["voted"] == len(VOTERS)

        log = EventLog(storage_path=tmp_path / "events.jsonl")
        ids = [e.event_id for e in log.events()]
        assert len(ids) == len(set(ids))
        assert len(log.events(EventKind.VOTE_CAST)) == len(VOTERS)
