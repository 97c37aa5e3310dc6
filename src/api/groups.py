"""Group (party/guild) API endpoints."""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from src.api.schemas import (
    ErrorResponse,
    GroupResponse,
    InviteMemberRequest,
    MemberRequest,
    PropagateRequest,
    QuestAbortRequest,
    QuestInviteRequest,
    QuestProgressRequest,
    QuestStartRequest,
    QuestVoteRequest,
    RemoveMemberRequest,
    build_group_response,
    build_outcome_response,
)
from src.core.errors import QuestCoordinationError
from src.core.logging import get_logger
from src.core.quest.models import ProgressDelta
from src.services.membership_service import MembershipService
from src.services.quest_service import QuestService
from src.services.store import GroupStore

logger = get_logger(__name__)

router = APIRouter(prefix="/groups", tags=["groups"])

# 에러 kind → HTTP status
ERROR_STATUS: dict[str, int] = {
    "NotFound": 404,
    "QuestNotFound": 404,
    "Unauthorized": 401,
    "AlreadyMember": 400,
    "AlreadyInvited": 400,
    "AlreadyInParty": 400,
    "NotInParty": 400,
    "QuestAlreadyInProgress": 400,
    "NoPendingInvitation": 400,
    "NoActiveQuest": 400,
    "NoQuestScroll": 400,
    "Conflict": 409,
    "StoreUnavailable": 503,
}

_ERROR_RESPONSES = {
    status: {"model": ErrorResponse} for status in sorted(set(ERROR_STATUS.values()))
}


async def domain_error_handler(
    request: Request, exc: QuestCoordinationError
) -> JSONResponse:
    """도메인 에러 → {"kind", "detail"} JSON"""
    status_code = ERROR_STATUS.get(exc.kind, 500)
    if status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.kind} {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.kind}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def get_group_store(request: Request) -> GroupStore:
    """GroupStore 인스턴스 반환 (의존성 주입)"""
    store: GroupStore = request.app.state.group_store
    return store


def get_membership_service(request: Request) -> MembershipService:
    """MembershipService 인스턴스 반환 (의존성 주입)"""
    service: MembershipService = request.app.state.membership_service
    return service


def get_quest_service(request: Request) -> QuestService:
    """QuestService 인스턴스 반환 (의존성 주입)"""
    service: QuestService = request.app.state.quest_service
    return service


# === 조회 ===


@router.get("/{group_id}", response_model=GroupResponse, responses=_ERROR_RESPONSES)
def get_group(
    group_id: str, store: GroupStore = Depends(get_group_store)
) -> GroupResponse:
    return build_group_response(store.get(group_id))


# === 멤버십 ===


@router.post(
    "/{group_id}/invite", response_model=GroupResponse, responses=_ERROR_RESPONSES
)
def invite_member(
    group_id: str,
    body: InviteMemberRequest,
    service: MembershipService = Depends(get_membership_service),
) -> GroupResponse:
    group = service.invite_member(group_id, body.inviter_id, body.target_id)
    return build_group_response(group)


@router.post(
    "/{group_id}/join", response_model=GroupResponse, responses=_ERROR_RESPONSES
)
def join_group(
    group_id: str,
    body: MemberRequest,
    service: MembershipService = Depends(get_membership_service),
) -> GroupResponse:
    return build_group_response(service.join_group(group_id, body.member_id))


@router.post(
    "/{group_id}/leave", response_model=GroupResponse, responses=_ERROR_RESPONSES
)
def leave_group(
    group_id: str,
    body: MemberRequest,
    service: MembershipService = Depends(get_membership_service),
) -> GroupResponse:
    return build_outcome_response(service.leave_group(group_id, body.member_id))


@router.post(
    "/{group_id}/remove", response_model=GroupResponse, responses=_ERROR_RESPONSES
)
def remove_member(
    group_id: str,
    body: RemoveMemberRequest,
    service: MembershipService = Depends(get_membership_service),
) -> GroupResponse:
    outcome = service.remove_member(group_id, body.requester_id, body.target_id)
    return build_outcome_response(outcome)


# === 퀘스트 ===


@router.post(
    "/{group_id}/quest/invite", response_model=GroupResponse, responses=_ERROR_RESPONSES
)
def invite_to_quest(
    group_id: str,
    body: QuestInviteRequest,
    service: QuestService = Depends(get_quest_service),
) -> GroupResponse:
    outcome = service.invite_to_quest(group_id, body.inviter_id, body.quest_key)
    return build_outcome_response(outcome)


@router.post(
    "/{group_id}/quest/vote", response_model=GroupResponse, responses=_ERROR_RESPONSES
)
def vote_quest(
    group_id: str,
    body: QuestVoteRequest,
    service: QuestService = Depends(get_quest_service),
) -> GroupResponse:
    outcome = service.vote_quest(group_id, body.member_id, body.accept)
    return build_outcome_response(outcome)


@router.post(
    "/{group_id}/quest/start", response_model=GroupResponse, responses=_ERROR_RESPONSES
)
def start_quest(
    group_id: str,
    body: QuestStartRequest,
    service: QuestService = Depends(get_quest_service),
) -> GroupResponse:
    outcome = service.try_start_quest(group_id, body.requester_id, force=body.force)
    return build_outcome_response(outcome)


@router.post(
    "/{group_id}/quest/progress",
    response_model=GroupResponse,
    responses=_ERROR_RESPONSES,
)
def apply_quest_progress(
    group_id: str,
    body: QuestProgressRequest,
    service: QuestService = Depends(get_quest_service),
) -> GroupResponse:
    delta = ProgressDelta(hp=body.hp, collect=dict(body.collect))
    outcome = service.apply_quest_progress(group_id, delta, event_id=body.event_id)
    return build_outcome_response(outcome)


@router.post(
    "/{group_id}/quest/complete",
    response_model=GroupResponse,
    responses=_ERROR_RESPONSES,
)
def complete_quest(
    group_id: str, service: QuestService = Depends(get_quest_service)
) -> GroupResponse:
    return build_outcome_response(service.complete_quest(group_id))


@router.post(
    "/{group_id}/quest/abort", response_model=GroupResponse, responses=_ERROR_RESPONSES
)
def abort_quest(
    group_id: str,
    body: QuestAbortRequest,
    service: QuestService = Depends(get_quest_service),
) -> GroupResponse:
    return build_outcome_response(service.abort_quest(group_id, body.requester_id))


@router.post(
    "/{group_id}/quest/propagate",
    response_model=GroupResponse,
    responses=_ERROR_RESPONSES,
)
def propagate_quest(
    group_id: str,
    body: PropagateRequest,
    service: QuestService = Depends(get_quest_service),
) -> GroupResponse:
    """fan-out 실패 멤버의 미러를 그룹 상태 기준으로 재동기화"""
    outcome = service.resync_mirrors(group_id, body.member_ids)
    return build_outcome_response(outcome)
