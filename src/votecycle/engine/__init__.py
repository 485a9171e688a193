"""Voting workflow engine — phase machine, ballot, tally and reset."""

from votecycle.engine.workflow import WorkflowController
from votecycle.engine.ballot import Ballot, VoteOutcome
from votecycle.engine.tally import TallyEngine
from votecycle.engine.reset import ResetController

__all__ = ["WorkflowController", "Ballot", "VoteOutcome", "TallyEngine", "ResetController"]
