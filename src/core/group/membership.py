"""멤버십 규칙 - 순수 Python

초대/가입/탈퇴/추방 시 그룹 레코드의 변경과 멤버 레코드 델타를 계산한다.
저장은 MembershipService 담당.
"""

import logging
from dataclasses import replace

from src.core.errors import (
    AlreadyInPartyError,
    AlreadyInvitedError,
    AlreadyMemberError,
    NotFoundError,
    UnauthorizedError,
)
from src.core.group.deltas import (
    AddGuildInvitation,
    ClaimParty,
    ClearInvitation,
    ClearQuestMirror,
    MemberDelta,
    ReleaseParty,
    SetPartyInvitation,
)
from src.core.group.models import Group, Member

logger = logging.getLogger(__name__)


# === 검증 ===


def ensure_leader(group: Group, requester_id: str, action: str) -> None:
    if group.leader != requester_id:
        raise UnauthorizedError(f"Only the group leader can {action}!")


def ensure_member(group: Group, member_id: str) -> None:
    if not group.has_member(member_id):
        raise UnauthorizedError(
            f"Member {member_id} does not belong to group {group.group_id}"
        )


def validate_invite(group: Group, target: Member, target_in_party: bool) -> None:
    """초대 가능 여부. 실패 시 쓰기 전에 예외.

    target_in_party: 대상이 이미 어떤 파티에 속해 있는지 (GroupStore.find 결과)
    """
    if group.has_member(target.member_id):
        raise AlreadyMemberError("User already in that group")

    if group.is_party:
        if target.invitations.party is not None:
            raise AlreadyInvitedError("User already pending invitation.")
        if target_in_party or target.party_id is not None:
            raise AlreadyInPartyError("User already in a party.")
    elif any(g.group_id == group.group_id for g in target.invitations.guilds):
        raise AlreadyInvitedError("User already invited to that group")


# === 그룹 변경 ===


def add_invite(group: Group, member_id: str) -> Group:
    """초대 목록에 추가. CAS 직전 스냅샷 기준으로 멤버 여부를 다시 확인한다."""
    if group.has_member(member_id):
        raise AlreadyMemberError("User already in that group")
    if group.has_invite(member_id):
        return group
    return replace(group, invites=group.invites + (member_id,))


def withdraw_invite(group: Group, member_id: str) -> Group:
    if not group.has_invite(member_id):
        return group
    return replace(group, invites=tuple(i for i in group.invites if i != member_id))


def add_member(group: Group, member_id: str) -> Group:
    """멤버 추가 + 초대 목록에서 제거. 이미 멤버면 초대만 정리."""
    members = group.members
    if member_id not in members:
        members = members + (member_id,)
    invites = tuple(i for i in group.invites if i != member_id)
    return replace(group, members=members, invites=invites)


def drop_member(group: Group, member_id: str) -> Group:
    """무조건 제거. 멤버가 아니어도 에러 없음."""
    return replace(group, members=tuple(m for m in group.members if m != member_id))


def classify_removal(group: Group, target_id: str) -> str:
    """추방 대상 분류: "member" | "invite". 둘 다 아니면 NotFoundError."""
    if group.has_member(target_id):
        return "member"
    if group.has_invite(target_id):
        return "invite"
    raise NotFoundError("User not found among group's members!")


# === 멤버 델타 ===


def invite_deltas(group: Group) -> list[MemberDelta]:
    if group.is_party:
        return [SetPartyInvitation(group.invitation())]
    return [AddGuildInvitation(group.invitation())]


def join_deltas(group: Group) -> list[MemberDelta]:
    deltas: list[MemberDelta] = [ClearInvitation(group.group_id)]
    if group.is_party:
        deltas.append(ClaimParty(group.group_id))
    return deltas


def departure_deltas(group: Group) -> list[MemberDelta]:
    """탈퇴/추방된 멤버: 파티 포인터 해제 + 이 그룹 퀘스트 미러 제거

    group은 탈퇴가 커밋된 스냅샷. 제거 버전이 이보다 오래된 미러 설정을 막는다.
    """
    deltas: list[MemberDelta] = [ClearQuestMirror(group.group_id, version=group.version)]
    if group.is_party:
        deltas.append(ReleaseParty(group.group_id))
    return deltas
