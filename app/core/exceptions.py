"""
Invitation lifecycle errors.

Routes translate these into HTTP responses; services raise them and never
swallow store or upstream failures.
"""

from typing import List, Optional, Sequence


class InvitationError(Exception):
    """Base class for invitation lifecycle failures."""

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class QueryFailure(InvitationError):
    """Store unreachable or caller lacks tenant scope. State is unknown, not empty."""


class MutationFailure(InvitationError):
    """A cancel or resend was rejected."""


class ResendFailure(MutationFailure):
    """The invite-issuing function could not be reached or refused the request."""


class PartialInviteFailure(MutationFailure):
    """
    At least one email failed to (re)send. Carries every email's outcome so
    callers never have to collapse it to a single boolean.
    """

    def __init__(self, message: str, results: Sequence, errors: Sequence):
        super().__init__(message)
        self.results: List = list(results)
        self.errors: List = list(errors)


class StaleAcceptance(InvitationError):
    """A stashed ticket is too old, unparsable, or already on the acceptance page."""


class SweepFailure(InvitationError):
    """The expiry sweep could not complete; the whole run failed."""
