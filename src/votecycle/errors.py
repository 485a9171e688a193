"""Error taxonomy for the voting workflow.

Every failed precondition raises a subclass of VotingError. Checks run
before any mutation, so a raised error always means the aggregate was
left untouched. The ``code`` attribute is stable and is what the service
facade reports back to callers.
"""

from __future__ import annotations


class VotingError(Exception):
    """Base class for all workflow precondition failures."""
    code = "VotingError"


class UnauthorizedError(VotingError):
    """Caller lacks the administrator capability."""
    code = "Unauthorized"


class NotWhitelistedError(VotingError):
    """Caller is not a registered voter."""
    code = "NotWhitelisted"


class InvalidPrincipalError(VotingError):
    """Principal identifier is blank."""
    code = "InvalidPrincipal"


class IllegalPhaseTransitionError(VotingError):
    """Target phase is not the cyclic successor of the current phase."""
    code = "IllegalPhaseTransition"


class InvalidPhaseError(VotingError):
    """Operation attempted outside its legal phase set."""
    code = "InvalidPhase"


class DuplicateRegistrationError(VotingError):
    code = "DuplicateRegistration"


class DuplicateProposalError(VotingError):
    code = "DuplicateProposal"


class EmptyProposalError(VotingError):
    code = "EmptyProposal"


class InvalidProposalIdError(VotingError):
    code = "InvalidProposalId"


class AlreadyVotedError(VotingError):
    code = "AlreadyVoted"


class EmptyRegistrySetError(VotingError):
    """Leaving a registration phase with nothing registered."""
    code = "EmptyRegistrySet"


class GracePeriodNotElapsedError(VotingError):
    """Result display period has not run out yet."""
    code = "GracePeriodNotElapsed"
