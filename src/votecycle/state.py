"""The voting aggregate — everything one cycle mutates, in one object.

The service layer owns exactly one VotingState and serialises all access
to it. Engines receive the state as an argument and hold none of their
own. ``to_dict``/``from_dict`` produce a JSON-compatible snapshot used
both by the state store and for rollback of a failed command.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

from votecycle.engine.workflow import WorkflowController
from votecycle.models.ballot import Configuration, Result
from votecycle.registry.proposals import ProposalRegistry
from votecycle.registry.voters import VoterRegistry


STATE_FORMAT_VERSION = 1


@dataclass
class VotingState:
    admin_id: str
    workflow: WorkflowController = field(default_factory=WorkflowController)
    voters: VoterRegistry = field(default_factory=VoterRegistry)
    proposals: ProposalRegistry = field(default_factory=ProposalRegistry)
    result: Result = field(default_factory=Result)
    configuration: Configuration = field(default_factory=Configuration)
    cycle: int = 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "format_version": STATE_FORMAT_VERSION,
            "admin_id": self.admin_id,
            "cycle": self.cycle,
            "workflow": self.workflow.to_dict(),
            "voters": self.voters.to_dict(),
            "proposals": self.proposals.to_dict(),
            "result": self.result.to_dict(),
            "configuration": self.configuration.to_dict(),
        }

    @staticmethod
    def from_dict(data: dict[str, Any]) -> VotingState:
        version = data.get("format_version", STATE_FORMAT_VERSION)
        if version != STATE_FORMAT_VERSION:
            raise ValueError(f"Unsupported state format version: {version}")
        return VotingState(
            admin_id=data["admin_id"],
            workflow=WorkflowController.from_dict(data.get("workflow", {})),
            voters=VoterRegistry.from_dict(data.get("voters", {})),
            proposals=ProposalRegistry.from_dict(data.get("proposals", {})),
            result=Result.from_dict(data.get("result", {})),
            configuration=Configuration.from_dict(data.get("configuration", {})),
            cycle=int(data.get("cycle", 1)),
        )
