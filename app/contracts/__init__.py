"""
This module contains the contracts for the application.
"""

from .base import BaseContract
from .invitation import (
    AcceptanceDecision,
    CancelResponse,
    InvitationStatusInfo,
    InviteError,
    InviteItem,
    InviteRequest,
    InviteResponse,
    InviteResult,
    PendingInvitation,
    ResendRequest,
    SweepResponse,
    SweepSummary,
    TicketStashRequest,
)
