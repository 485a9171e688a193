"""Policy resolver — loads and validates the voting policy file.

All tunable behaviour lives in ``config/voting_policy.json``:

- allow_vote_update: initial value of the vote-update switch.
- result_grace_period_seconds: minimum time a tally stays on display.
- vote_update_policy: "frozen_after_registration" (switch may only be
  flipped while registering voters) or "always".
- voter_list_access: "voter" (admin or registered voter) or "admin".
- proposal_list_access: "voter" (registered voters) or "any" (admin too).
- reset_clears_proposals: whether a new cycle also erases proposals.

Invalid files fail closed with ValueError at load time.
"""

from __future__ import annotations

import enum
import json
from dataclasses import dataclass
from datetime import timedelta
from pathlib import Path
from typing import Any

from votecycle.models.ballot import Configuration


POLICY_FILENAME = "voting_policy.json"


class VoteUpdatePolicy(str, enum.Enum):
    FROZEN_AFTER_REGISTRATION = "frozen_after_registration"
    ALWAYS = "always"


class VoterListAccess(str, enum.Enum):
    VOTER = "voter"
    ADMIN = "admin"


class ProposalListAccess(str, enum.Enum):
    VOTER = "voter"
    ANY = "any"


@dataclass(frozen=True)
class VotingPolicy:
    """Validated policy values. Immutable once loaded."""
    allow_vote_update: bool = False
    result_grace_period_seconds: float = 600.0
    vote_update_policy: VoteUpdatePolicy = VoteUpdatePolicy.FROZEN_AFTER_REGISTRATION
    voter_list_access: VoterListAccess = VoterListAccess.VOTER
    proposal_list_access: ProposalListAccess = ProposalListAccess.VOTER
    reset_clears_proposals: bool = True

    def __post_init__(self) -> None:
        if self.result_grace_period_seconds < 0:
            raise ValueError("result_grace_period_seconds must be >= 0")


class PolicyResolver:
    """Single access point for voting policy.

    Usage:
        resolver = PolicyResolver.from_config_dir(config_dir)
        config = resolver.initial_configuration()
    """

    def __init__(self, policy: VotingPolicy) -> None:
        self._policy = policy

    @classmethod
    def from_config_dir(cls, config_dir: Path) -> PolicyResolver:
        """Load ``voting_policy.json`` from a config directory."""
        path = Path(config_dir) / POLICY_FILENAME
        if not path.exists():
            raise ValueError(f"Policy file not found: {path}")
        with path.open("r", encoding="utf-8") as handle:
            try:
                data = json.load(handle)
            except json.JSONDecodeError as e:
                raise ValueError(f"Malformed policy file {path}: {e}") from e
        return cls.from_dict(data)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PolicyResolver:
        if not isinstance(data, dict):
            raise ValueError("Policy must be a JSON object")
        known = set(VotingPolicy.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown policy keys: {sorted(unknown)}")

        defaults = VotingPolicy()
        try:
            policy = VotingPolicy(
                allow_vote_update=_as_bool(
                    data, "allow_vote_update", defaults.allow_vote_update,
                ),
                result_grace_period_seconds=float(data.get(
                    "result_grace_period_seconds",
                    defaults.result_grace_period_seconds,
                )),
                vote_update_policy=VoteUpdatePolicy(data.get(
                    "vote_update_policy", defaults.vote_update_policy.value,
                )),
                voter_list_access=VoterListAccess(data.get(
                    "voter_list_access", defaults.voter_list_access.value,
                )),
                proposal_list_access=ProposalListAccess(data.get(
                    "proposal_list_access", defaults.proposal_list_access.value,
                )),
                reset_clears_proposals=_as_bool(
                    data, "reset_clears_proposals", defaults.reset_clears_proposals,
                ),
            )
        except (TypeError, ValueError) as e:
            raise ValueError(f"Invalid voting policy: {e}") from e
        return cls(policy)

    @classmethod
    def default(cls) -> PolicyResolver:
        return cls(VotingPolicy())

    @property
    def policy(self) -> VotingPolicy:
        return self._policy

    def initial_configuration(self) -> Configuration:
        """Configuration a fresh aggregate starts from."""
        return Configuration(
            allow_vote_update=self._policy.allow_vote_update,
            result_grace_period=timedelta(
                seconds=self._policy.result_grace_period_seconds,
            ),
        )

    def vote_update_frozen_after_registration(self) -> bool:
        return self._policy.vote_update_policy == VoteUpdatePolicy.FROZEN_AFTER_REGISTRATION

    def voter_list_admin_only(self) -> bool:
        return self._policy.voter_list_access == VoterListAccess.ADMIN

    def proposal_list_open_to_admin(self) -> bool:
        return self._policy.proposal_list_access == ProposalListAccess.ANY

    def reset_clears_proposals(self) -> bool:
        return self._policy.reset_clears_proposals


def _as_bool(data: dict[str, Any], key: str, default: bool) -> bool:
    value = data.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"{key} must be a boolean, got {value!r}")
    return value
