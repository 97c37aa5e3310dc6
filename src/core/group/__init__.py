"""그룹(파티/길드) Core 패키지"""

from src.core.group.deltas import (
    AddGuildInvitation,
    ClaimParty,
    ClearInvitation,
    ClearQuestMirror,
    ConsumeQuestScroll,
    MemberDelta,
    ReleaseParty,
    SetPartyInvitation,
    SetQuestMirror,
    apply_delta,
    apply_deltas,
)
from src.core.group.enums import GroupType
from src.core.group.models import (
    Group,
    Invitation,
    Member,
    MemberInvitations,
    PartyQuestMirror,
)

__all__ = [
    "GroupType",
    # models
    "Group",
    "Invitation",
    "Member",
    "MemberInvitations",
    "PartyQuestMirror",
    # deltas
    "AddGuildInvitation",
    "ClaimParty",
    "ClearInvitation",
    "ClearQuestMirror",
    "ConsumeQuestScroll",
    "MemberDelta",
    "ReleaseParty",
    "SetPartyInvitation",
    "SetQuestMirror",
    "apply_delta",
    "apply_deltas",
]
