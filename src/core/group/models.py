"""그룹/멤버 도메인 모델 (DB 무관)

version은 저장소가 관리하는 낙관적 동시성 카운터. 도메인 로직은 읽기만 한다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from src.core.group.enums import GroupType
from src.core.quest.models import (
    QuestProgress,
    QuestState,
    progress_from_dict,
    progress_to_dict,
)


@dataclass(frozen=True)
class Invitation:
    """그룹 가입 초대 포인터"""

    group_id: str
    group_name: str = ""


@dataclass(frozen=True)
class MemberInvitations:
    party: Optional[Invitation] = None
    guilds: tuple[Invitation, ...] = ()

    def references(self, group_id: str) -> bool:
        if self.party is not None and self.party.group_id == group_id:
            return True
        return any(g.group_id == group_id for g in self.guilds)


@dataclass(frozen=True)
class PartyQuestMirror:
    """그룹 퀘스트 상태의 멤버별 캐시. 권위 있는 값은 항상 그룹 쪽.

    event_id: 퀘스트 인스턴스, version: 이 값을 만든 그룹 커밋 버전
    """

    group_id: str
    key: str
    progress: Optional[QuestProgress] = None
    event_id: str = ""
    version: int = 0


@dataclass(frozen=True)
class Member:
    member_id: str
    name: str = ""
    invitations: MemberInvitations = field(default_factory=MemberInvitations)
    party_id: Optional[str] = None  # 소속 파티 (최대 1개)
    party_quest: Optional[PartyQuestMirror] = None
    quest_scrolls: dict[str, int] = field(default_factory=dict)
    applied_events: tuple[str, ...] = ()  # 비멱등 델타의 중복 방지 키
    mirror_versions: dict[str, int] = field(default_factory=dict)  # 그룹별 마지막 미러 버전
    version: int = 0


@dataclass(frozen=True)
class Group:
    group_id: str
    group_type: GroupType
    name: str = ""
    leader: str = ""
    members: tuple[str, ...] = ()
    invites: tuple[str, ...] = ()
    quest: QuestState = field(default_factory=QuestState)
    version: int = 0

    @property
    def is_party(self) -> bool:
        return self.group_type is GroupType.PARTY

    def has_member(self, member_id: str) -> bool:
        return member_id in self.members

    def has_invite(self, member_id: str) -> bool:
        return member_id in self.invites

    def invitation(self) -> Invitation:
        return Invitation(group_id=self.group_id, group_name=self.name)


# === 직렬화 (DB JSON 컬럼용) ===


def invitations_to_dict(invitations: MemberInvitations) -> dict[str, Any]:
    party = invitations.party
    return {
        "party": (
            {"group_id": party.group_id, "group_name": party.group_name}
            if party is not None
            else None
        ),
        "guilds": [
            {"group_id": g.group_id, "group_name": g.group_name}
            for g in invitations.guilds
        ],
    }


def invitations_from_dict(data: Optional[dict[str, Any]]) -> MemberInvitations:
    if not data:
        return MemberInvitations()
    party = data.get("party")
    return MemberInvitations(
        party=Invitation(**party) if party else None,
        guilds=tuple(Invitation(**g) for g in data.get("guilds", [])),
    )


def mirror_to_dict(mirror: Optional[PartyQuestMirror]) -> Optional[dict[str, Any]]:
    if mirror is None:
        return None
    return {
        "group_id": mirror.group_id,
        "key": mirror.key,
        "progress": progress_to_dict(mirror.progress),
        "event_id": mirror.event_id,
        "version": mirror.version,
    }


def mirror_from_dict(data: Optional[dict[str, Any]]) -> Optional[PartyQuestMirror]:
    if not data or not data.get("key"):
        return None
    return PartyQuestMirror(
        group_id=data["group_id"],
        key=data["key"],
        progress=progress_from_dict(data.get("progress")),
        event_id=data.get("event_id", ""),
        version=int(data.get("version", 0)),
    )
