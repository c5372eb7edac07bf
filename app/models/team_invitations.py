"""
TeamInvitation model — maps to the team_invitations table.
"""

import uuid
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import CheckConstraint, Column, DateTime, Index, Text, Uuid
from sqlalchemy.orm import Mapped

from .base import Base

DEFAULT_INVITATION_TTL = timedelta(days=7)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _default_expires_at(context) -> datetime:
    created_at = context.get_current_parameters().get("created_at") or _utcnow()
    return created_at + DEFAULT_INVITATION_TTL


class TeamInvitation(Base):
    __tablename__ = "team_invitations"
    __table_args__ = (
        CheckConstraint("role IN ('admin', 'editor', 'viewer')", name="team_invitations_role_check"),
        CheckConstraint(
            "status IN ('pending', 'accepted', 'cancelled', 'expired')",
            name="team_invitations_status_check",
        ),
        CheckConstraint("expires_at > created_at", name="team_invitations_expiry_check"),
        Index("idx_team_invitations_organization_id", "organization_id"),
        Index("idx_team_invitations_email", "email"),
        Index("idx_team_invitations_status", "status"),
    )

    id: Mapped[uuid.UUID] = Column(Uuid, primary_key=True, default=uuid.uuid4)
    organization_id: Mapped[str] = Column(Text, nullable=False)
    email: Mapped[str] = Column(Text, nullable=False)
    role: Mapped[str] = Column(Text, nullable=False)
    invited_by: Mapped[str] = Column(Text, nullable=False)
    provider_invitation_id: Mapped[Optional[str]] = Column(Text, nullable=True)
    status: Mapped[str] = Column(Text, nullable=False, default="pending")
    accepted_at: Mapped[Optional[datetime]] = Column(DateTime(timezone=True), nullable=True)
    accepted_by: Mapped[Optional[str]] = Column(Text, nullable=True)
    created_at: Mapped[datetime] = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    updated_at: Mapped[datetime] = Column(
        DateTime(timezone=True), nullable=False, default=_utcnow
    )
    expires_at: Mapped[datetime] = Column(
        DateTime(timezone=True), nullable=False, default=_default_expires_at
    )
