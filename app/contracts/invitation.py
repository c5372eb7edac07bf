"""
Contracts for team invitations.
"""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import ConfigDict, Field

from app.models.enums import InvitationRole

from .base import BaseContract


class PendingInvitation(BaseContract):
    """A pending invitation enriched with its expiration countdown."""

    id: UUID
    organization_id: str
    email: str
    role: InvitationRole
    invited_by: str
    created_at: datetime
    expires_at: datetime
    is_expiring_soon: bool
    hours_until_expiration: float


class InvitationStatusInfo(BaseContract):
    is_pending: bool = True
    is_expiring_soon: bool
    hours_until_expiration: float
    expires_at: datetime


class InviteItem(BaseContract):
    email: str
    role: InvitationRole


class InviteRequest(BaseContract):
    """
    Body sent to the invite-issuing function. Serialized with camelCase
    aliases to match its wire contract.
    """

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    organization_id: str = Field(alias="organizationId")
    organization_name: Optional[str] = Field(default=None, alias="organizationName")
    invitations: List[InviteItem]
    is_resend: bool = Field(default=False, alias="isResend")


class InviteResult(BaseContract):
    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    email: str
    status: str
    invitation_id: Optional[str] = Field(default=None, alias="invitationId")


class InviteError(BaseContract):
    email: str
    error: str


class InviteResponse(BaseContract):
    success: bool = True
    results: List[InviteResult] = []
    errors: List[InviteError] = []
    message: str = ""


class ResendRequest(BaseContract):
    email: str
    role: InvitationRole


class CancelResponse(BaseContract):
    cancelled: bool


class SweepSummary(BaseContract):
    expired_count: int = 0
    expiring_soon_count: int = 0


class SweepResponse(BaseContract):
    """Wire shape returned by the scheduled cleanup trigger."""

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)

    success: bool = True
    expired: int
    expiring_soon: int = Field(alias="expiringSoon")
    message: str


class TicketStashRequest(BaseContract):
    ticket: str
    status: Optional[str] = None


class AcceptanceDecision(BaseContract):
    state: str
    redirect_to: Optional[str] = None
