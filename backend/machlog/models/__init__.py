from machlog.core.database import Base
from machlog.models.profile import Profile, ProfileRole
from machlog.models.machine import Machine
from machlog.models.checkin import Checkin
from machlog.models.checklist import (
    Checklist,
    ChecklistItem,
    ChecklistQuestion,
    ChecklistStatus,
    ItemStatus,
)
from machlog.models.revoked_token import RevokedToken

__all__ = [
    "Base",
    "Checkin",
    "Checklist",
    "ChecklistItem",
    "ChecklistQuestion",
    "ChecklistStatus",
    "ItemStatus",
    "Machine",
    "Profile",
    "ProfileRole",
    "RevokedToken",
]
