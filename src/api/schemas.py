"""API request/response schemas."""

from typing import Optional

from pydantic import BaseModel, Field

from src.core.errors import PartialFailure
from src.core.group.models import Group
from src.core.quest.models import BossProgress, QuestProgress
from src.services.consistency_driver import GroupOutcome


# === Request Schemas ===


class InviteMemberRequest(BaseModel):
    """멤버 초대 요청"""

    inviter_id: str = Field(..., min_length=1, description="초대하는 멤버 ID")
    target_id: str = Field(..., min_length=1, description="초대 대상 멤버 ID")


class MemberRequest(BaseModel):
    """가입/탈퇴 요청"""

    member_id: str = Field(..., min_length=1)


class RemoveMemberRequest(BaseModel):
    """추방 요청 (리더 전용)"""

    requester_id: str = Field(..., min_length=1)
    target_id: str = Field(..., min_length=1)


class QuestInviteRequest(BaseModel):
    """퀘스트 초대 요청"""

    inviter_id: str = Field(..., min_length=1)
    quest_key: str = Field(..., min_length=1, description="카탈로그 퀘스트 키")


class QuestVoteRequest(BaseModel):
    member_id: str = Field(..., min_length=1)
    accept: bool


class QuestStartRequest(BaseModel):
    requester_id: str = Field(..., min_length=1)
    force: bool = False


class QuestProgressRequest(BaseModel):
    """진행도 변화량. hp는 음수가 피해량."""

    hp: int = 0
    collect: dict[str, int] = Field(default_factory=dict)
    event_id: Optional[str] = Field(None, description="중복 반영 방지용 이벤트 ID")


class QuestAbortRequest(BaseModel):
    requester_id: str = Field(..., min_length=1)


class PropagateRequest(BaseModel):
    """미러 재동기화 대상"""

    member_ids: list[str] = Field(..., min_length=1)


# === Response Schemas ===


class QuestStateInfo(BaseModel):
    """그룹 퀘스트 상태"""

    key: Optional[str] = None
    active: bool = False
    members: dict[str, str] = {}
    hp: Optional[int] = None
    collect: Optional[dict[str, int]] = None
    leader: Optional[str] = None


class GroupResponse(BaseModel):
    """그룹 스냅샷 + fan-out 부분 실패"""

    group_id: str
    group_type: str
    name: str
    leader: str
    members: list[str]
    invites: list[str]
    quest: QuestStateInfo
    version: int
    failed_member_ids: list[str] = []


class ErrorResponse(BaseModel):
    """에러 응답"""

    kind: str
    detail: str


# === 변환 ===


def _progress_fields(progress: Optional[QuestProgress]) -> dict:
    if progress is None:
        return {}
    if isinstance(progress, BossProgress):
        return {"hp": progress.hp}
    return {"collect": dict(progress.collect)}


def build_group_response(
    group: Group, partial_failure: Optional[PartialFailure] = None
) -> GroupResponse:
    quest = group.quest
    return GroupResponse(
        group_id=group.group_id,
        group_type=group.group_type.value,
        name=group.name,
        leader=group.leader,
        members=list(group.members),
        invites=list(group.invites),
        quest=QuestStateInfo(
            key=quest.key,
            active=quest.active,
            members={m: v.value for m, v in quest.members.items()},
            leader=quest.leader,
            **_progress_fields(quest.progress),
        ),
        version=group.version,
        failed_member_ids=(
            partial_failure.failed_member_ids if partial_failure is not None else []
        ),
    )


def build_outcome_response(outcome: GroupOutcome) -> GroupResponse:
    return build_group_response(outcome.group, outcome.partial_failure)
