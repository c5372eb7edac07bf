from .base import Base

# Enums
from .enums import InvitationRole, InvitationStatus

from .team_invitations import TeamInvitation
