"""
Enum definitions matching the CHECK constraints on team_invitations.
Uses (str, Enum) pattern so values serialize correctly in Pydantic.
"""

from enum import Enum


class InvitationRole(str, Enum):
    admin = "admin"
    editor = "editor"
    viewer = "viewer"


class InvitationStatus(str, Enum):
    pending = "pending"
    accepted = "accepted"
    cancelled = "cancelled"
    expired = "expired"
