"""멤버 레코드 델타 - 순수 Python

그룹 전이가 멤버에게 요구하는 변경을 타입으로 열거한다.
ConsumeQuestScroll을 제외한 모든 델타는 "값으로 설정" 형태라 재적용해도 결과가 같다.
ConsumeQuestScroll은 dedup_key를 member.applied_events에 기록해 한 번만 반영된다.

미러 델타는 그룹 커밋 버전을 가진다. 멤버는 그룹별로 마지막에 적용한 버전을
mirror_versions에 남기고, 그보다 오래된 설정/제거는 도착 순서와 무관하게 버린다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import Optional, Union

from src.core.errors import (
    AlreadyInPartyError,
    AlreadyInvitedError,
    AlreadyMemberError,
)
from src.core.group.models import Invitation, Member, PartyQuestMirror
from src.core.quest.models import QuestProgress

logger = logging.getLogger(__name__)

# 멤버 레코드에 보관할 최근 dedup 키 수
MAX_APPLIED_EVENTS = 50


@dataclass(frozen=True)
class SetQuestMirror:
    group_id: str
    key: str
    progress: Optional[QuestProgress] = None
    event_id: str = ""
    version: int = 0


@dataclass(frozen=True)
class ClearQuestMirror:
    """미러가 group_id를 가리킬 때만 지운다. 제거 버전은 기록으로 남는다."""

    group_id: str
    version: int = 0


@dataclass(frozen=True)
class ConsumeQuestScroll:
    quest_key: str
    dedup_key: str


@dataclass(frozen=True)
class SetPartyInvitation:
    """다른 파티 초대가 있으면 AlreadyInvitedError.

    이미 그 파티 소속이면 AlreadyMemberError, 다른 파티 소속이면 AlreadyInPartyError.
    """

    invitation: Invitation


@dataclass(frozen=True)
class AddGuildInvitation:
    invitation: Invitation


@dataclass(frozen=True)
class ClearInvitation:
    """group_id를 가리키는 파티/길드 초대를 제거한다."""

    group_id: str


@dataclass(frozen=True)
class ClaimParty:
    """party_id 선점. 다른 파티를 가리키면 AlreadyInPartyError."""

    group_id: str


@dataclass(frozen=True)
class ReleaseParty:
    group_id: str


MemberDelta = Union[
    SetQuestMirror,
    ClearQuestMirror,
    ConsumeQuestScroll,
    SetPartyInvitation,
    AddGuildInvitation,
    ClearInvitation,
    ClaimParty,
    ReleaseParty,
]


def apply_delta(member: Member, delta: MemberDelta) -> Member:
    """델타 1개 적용 → 새 Member. 입력은 변경하지 않는다."""
    if isinstance(delta, (SetQuestMirror, ClearQuestMirror)):
        seen = member.mirror_versions.get(delta.group_id)
        if seen is not None and delta.version < seen:
            logger.debug(
                "Stale mirror delta dropped: member=%s, group=%s, version=%d < %d",
                member.member_id,
                delta.group_id,
                delta.version,
                seen,
            )
            return member
        versions = dict(member.mirror_versions)
        versions[delta.group_id] = delta.version

        if isinstance(delta, SetQuestMirror):
            mirror = PartyQuestMirror(
                group_id=delta.group_id,
                key=delta.key,
                progress=delta.progress,
                event_id=delta.event_id,
                version=delta.version,
            )
            return replace(member, party_quest=mirror, mirror_versions=versions)

        mirror = member.party_quest
        if mirror is not None and mirror.group_id == delta.group_id:
            mirror = None
        return replace(member, party_quest=mirror, mirror_versions=versions)

    if isinstance(delta, ConsumeQuestScroll):
        if delta.dedup_key in member.applied_events:
            logger.debug(
                "Scroll already consumed: member=%s, key=%s",
                member.member_id,
                delta.dedup_key,
            )
            return member
        scrolls = dict(member.quest_scrolls)
        scrolls[delta.quest_key] = max(scrolls.get(delta.quest_key, 0) - 1, 0)
        events = (member.applied_events + (delta.dedup_key,))[-MAX_APPLIED_EVENTS:]
        return replace(member, quest_scrolls=scrolls, applied_events=events)

    if isinstance(delta, SetPartyInvitation):
        if member.party_id == delta.invitation.group_id:
            raise AlreadyMemberError("User already in that group")
        if member.party_id is not None:
            raise AlreadyInPartyError("User already in a party.")
        current = member.invitations.party
        if current == delta.invitation:
            return member
        if current is not None:
            raise AlreadyInvitedError("User already pending invitation.")
        invitations = replace(member.invitations, party=delta.invitation)
        return replace(member, invitations=invitations)

    if isinstance(delta, AddGuildInvitation):
        guilds = member.invitations.guilds
        if any(g.group_id == delta.invitation.group_id for g in guilds):
            return member
        invitations = replace(member.invitations, guilds=guilds + (delta.invitation,))
        return replace(member, invitations=invitations)

    if isinstance(delta, ClearInvitation):
        if not member.invitations.references(delta.group_id):
            return member
        party = member.invitations.party
        if party is not None and party.group_id == delta.group_id:
            party = None
        guilds = tuple(
            g for g in member.invitations.guilds if g.group_id != delta.group_id
        )
        invitations = replace(member.invitations, party=party, guilds=guilds)
        return replace(member, invitations=invitations)

    if isinstance(delta, ClaimParty):
        if member.party_id == delta.group_id:
            return member
        if member.party_id is not None:
            raise AlreadyInPartyError(
                f"Member {member.member_id} is already in party {member.party_id}"
            )
        return replace(member, party_id=delta.group_id)

    if isinstance(delta, ReleaseParty):
        if member.party_id != delta.group_id:
            return member
        return replace(member, party_id=None)

    raise TypeError(f"Unknown member delta: {delta!r}")


def apply_deltas(member: Member, deltas: list[MemberDelta]) -> Member:
    for delta in deltas:
        member = apply_delta(member, delta)
    return member
