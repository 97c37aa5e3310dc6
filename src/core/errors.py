"""그룹/퀘스트 도메인 에러

모든 에러는 안정적인 kind 문자열과 사람이 읽을 수 있는 메시지를 가진다.
검증 에러는 첫 쓰기 이전에 발생한다.
"""

from __future__ import annotations

from typing import Any


class QuestCoordinationError(Exception):
    """도메인 에러 기반 클래스"""

    kind: str = "Error"

    def __init__(self, message: str = "") -> None:
        super().__init__(message or self.kind)
        self.message = message or self.kind

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, "detail": self.message}


# === 조회 ===


class NotFoundError(QuestCoordinationError):
    kind = "NotFound"


class QuestNotFoundError(QuestCoordinationError):
    kind = "QuestNotFound"


# === 권한 ===


class UnauthorizedError(QuestCoordinationError):
    kind = "Unauthorized"


# === 멤버십 검증 ===


class AlreadyMemberError(QuestCoordinationError):
    kind = "AlreadyMember"


class AlreadyInvitedError(QuestCoordinationError):
    kind = "AlreadyInvited"


class AlreadyInPartyError(QuestCoordinationError):
    kind = "AlreadyInParty"


class NotInPartyError(QuestCoordinationError):
    kind = "NotInParty"


# === 퀘스트 상태 검증 ===


class QuestAlreadyInProgressError(QuestCoordinationError):
    kind = "QuestAlreadyInProgress"


class NoPendingInvitationError(QuestCoordinationError):
    kind = "NoPendingInvitation"


class NoActiveQuestError(QuestCoordinationError):
    kind = "NoActiveQuest"


class NoQuestScrollError(QuestCoordinationError):
    kind = "NoQuestScroll"


# === 저장소 ===


class ConflictError(QuestCoordinationError):
    """낙관적 동시성 실패. 저장소는 1회 실패마다, 재시도 헬퍼는 소진 시 발생."""

    kind = "Conflict"


class StoreUnavailableError(QuestCoordinationError):
    kind = "StoreUnavailable"


# === Fan-out ===


class PartialFailure(QuestCoordinationError):
    """Fan-out 일부 실패. 그룹 전이는 이미 커밋된 상태.

    raise하지 않고 결과와 함께 반환한다. pending_deltas로 실패한 멤버만
    다시 propagate 할 수 있다.
    """

    kind = "PartialFailure"

    def __init__(
        self,
        group_id: str,
        failures: dict[str, QuestCoordinationError],
        pending_deltas: dict[str, list] | None = None,
    ) -> None:
        self.group_id = group_id
        self.failures = dict(failures)
        self.pending_deltas = dict(pending_deltas or {})
        super().__init__(
            f"Fan-out for group {group_id} failed for "
            f"{len(self.failures)} member(s): {', '.join(sorted(self.failures))}"
        )

    @property
    def failed_member_ids(self) -> list[str]:
        return sorted(self.failures)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["failed"] = {
            member_id: err.kind for member_id, err in sorted(self.failures.items())
        }
        return data
