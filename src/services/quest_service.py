"""Quest Service - 파티 퀘스트 조정

모든 연산은 같은 흐름을 따른다:
    그룹 읽기 → 검증 → 전이 계산(state_machine) → 그룹 CAS 1회 → 멤버 fan-out

CAS 충돌 시 읽기부터 통째로 다시 실행한다. fan-out 실패는 raise하지 않고
GroupOutcome.partial_failure로 돌려준다.
"""

import logging
import uuid
from dataclasses import replace
from typing import Callable, Iterable, Optional

from src.core.errors import (
    NoActiveQuestError,
    NoPendingInvitationError,
    NotFoundError,
    NotInPartyError,
    PartialFailure,
    UnauthorizedError,
)
from src.core.event_bus import EventBus, GameEvent
from src.core.event_types import EventTypes
from src.core.group.deltas import ClearQuestMirror, MemberDelta, SetQuestMirror
from src.core.group.membership import ensure_leader, ensure_member
from src.core.group.models import Group
from src.core.quest import state_machine
from src.core.quest.catalog import QuestCatalog
from src.core.quest.models import ProgressDelta, QuestDefinition
from src.core.quest.state_machine import Transition
from src.services.consistency_driver import ConsistencyDriver, GroupOutcome
from src.services.retry import run_with_retry
from src.services.store import GroupStore, MemberStore

logger = logging.getLogger(__name__)


class QuestService:
    """파티 퀘스트 상태 머신의 저장/전파 담당"""

    def __init__(
        self,
        groups: GroupStore,
        members: MemberStore,
        catalog: QuestCatalog,
        driver: ConsistencyDriver,
        event_bus: EventBus,
    ):
        self._groups = groups
        self._members = members
        self._catalog = catalog
        self._driver = driver
        self._bus = event_bus

    # === 초대/투표/시작 ===

    def invite_to_quest(
        self, group_id: str, inviter_id: str, quest_key: str
    ) -> GroupOutcome:
        """퀘스트 초대. 초대자의 스크롤 1개 소모, 가능하면 바로 시작."""
        definition = self._catalog.lookup(quest_key)
        # 재시도 사이에 같은 인스턴스 ID를 유지해야 스크롤 dedup 키가 안정적
        event_id = uuid.uuid4().hex[:12]

        def _compute(group: Group) -> Transition:
            inviter = self._members.get(inviter_id)
            return state_machine.invite_to_quest(group, inviter, definition, event_id)

        transition = self._commit(group_id, _compute, "quest invite", missing=_no_party)

        logger.info(
            "Quest invited: group=%s, quest=%s, leader=%s",
            group_id,
            quest_key,
            inviter_id,
        )
        self._emit(
            EventTypes.QUEST_INVITED,
            {"group_id": group_id, "quest_key": quest_key, "member_id": inviter_id},
        )
        return self._finish(transition)

    def vote_quest(self, group_id: str, member_id: str, accept: bool) -> GroupOutcome:
        """수락/거절 투표. 마지막 대기자가 응답하면 같은 쓰기에서 시작된다."""

        def _compute(group: Group) -> Transition:
            return state_machine.vote_and_try_start(
                group, member_id, accept, self._definition_for(group)
            )

        transition = self._commit(group_id, _compute, "quest vote")

        logger.info(
            "Quest vote: group=%s, member=%s, accept=%s", group_id, member_id, accept
        )
        self._emit(
            EventTypes.QUEST_VOTED,
            {"group_id": group_id, "member_id": member_id, "accept": accept},
        )
        return self._finish(transition)

    def try_start_quest(
        self, group_id: str, requester_id: str, force: bool = False
    ) -> GroupOutcome:
        """시작 시도. force는 리더 전용이며 대기 중인 멤버를 거절로 확정한다."""

        def _compute(group: Group) -> Transition:
            if force:
                ensure_leader(group, requester_id, "force-start a quest")
            else:
                ensure_member(group, requester_id)
            return state_machine.try_start(group, self._definition_for(group), force)

        transition = self._commit(group_id, _compute, "quest start")
        if not transition.changed:
            logger.debug("Quest not started yet: group=%s", group_id)
        return self._finish(transition)

    # === 진행/완료/중단 ===

    def apply_quest_progress(
        self,
        group_id: str,
        delta: ProgressDelta,
        event_id: Optional[str] = None,
    ) -> GroupOutcome:
        """진행도 반영. 목표 달성 시 같은 쓰기에서 완료된다."""

        def _compute(group: Group) -> Transition:
            if not group.quest.active:
                raise NoActiveQuestError("No active quest for this party")
            definition = self._definition_for(group)
            return state_machine.apply_progress(group, definition, delta, event_id)

        transition = self._commit(group_id, _compute, "quest progress")

        if transition.changed and not transition.completed:
            self._emit(
                EventTypes.QUEST_PROGRESSED,
                {"group_id": group_id, "event_id": event_id},
            )
        return self._finish(transition)

    def complete_quest(self, group_id: str) -> GroupOutcome:
        transition = self._commit(
            group_id, lambda group: state_machine.complete(group), "quest complete"
        )
        return self._finish(transition)

    def abort_quest(self, group_id: str, requester_id: str) -> GroupOutcome:
        """중단. 리더 또는 퀘스트 리더만 가능.

        현재 멤버와 투표 항목의 멤버 모두에게 조건부 미러 제거를 보낸다.
        """
        aborted_key: Optional[str] = None

        def _compute(group: Group) -> Transition:
            nonlocal aborted_key
            quest = group.quest
            if quest.is_empty:
                raise NoPendingInvitationError("No quest to abort")
            if requester_id not in (group.leader, quest.leader):
                raise UnauthorizedError(
                    "Only the group leader or quest leader can abort a quest!"
                )
            aborted_key = quest.key
            holders = list(dict.fromkeys([*group.members, *quest.members]))
            return state_machine.abort(group, holders)

        transition = self._commit(group_id, _compute, "quest abort")

        logger.info("Quest aborted: group=%s, by=%s", group_id, requester_id)
        self._emit(
            EventTypes.QUEST_ABORTED,
            {"group_id": group_id, "quest_key": aborted_key, "member_id": requester_id},
        )
        return self._finish(transition)

    # === 복구 ===

    def retry_fanout(self, failure: PartialFailure) -> GroupOutcome:
        """실패한 멤버에게만 보류된 델타를 다시 전파.

        미러 델타는 보류 당시 값이 아니라 현재 그룹 레코드에서 다시 계산한다.
        스크롤 소모/초대 같은 나머지 델타는 그대로 재실행한다.
        """
        group = self._groups.get(failure.group_id)
        deltas: dict[str, list[MemberDelta]] = {}
        for member_id, pending in failure.pending_deltas.items():
            rebuilt: list[MemberDelta] = []
            for delta in pending:
                if isinstance(delta, (SetQuestMirror, ClearQuestMirror)):
                    delta = state_machine.mirror_delta(group, member_id, group.version)
                    if delta in rebuilt:
                        continue
                rebuilt.append(delta)
            deltas[member_id] = rebuilt

        report = self._driver.propagate(failure.group_id, deltas)
        return self._outcome(group, report.to_partial_failure())

    def resync_mirrors(self, group_id: str, member_ids: Iterable[str]) -> GroupOutcome:
        """권위 있는 그룹 상태로부터 지정 멤버의 미러를 다시 계산해 전파.

        fan-out 도중 실패했거나 델타가 유실된 멤버에게 사용한다.
        """
        group = self._groups.get(group_id)
        deltas: dict[str, list[MemberDelta]] = {
            member_id: [state_machine.mirror_delta(group, member_id, group.version)]
            for member_id in dict.fromkeys(member_ids)
        }

        report = self._driver.propagate(group_id, deltas)
        logger.info(
            "Resynced mirrors: group=%s, members=%d", group_id, len(report.applied)
        )
        return self._outcome(group, report.to_partial_failure())

    # === 내부 ===

    def _definition_for(self, group: Group) -> QuestDefinition:
        if group.quest.is_empty:
            raise NoPendingInvitationError("No quest invitation has been sent out yet.")
        return self._catalog.lookup(group.quest.key)

    def _commit(
        self,
        group_id: str,
        compute: Callable[[Group], Transition],
        label: str,
        missing: Optional[Callable[[NotFoundError], Exception]] = None,
    ) -> Transition:
        """읽기 → 계산 → CAS를 충돌 시 재시도. changed=False면 쓰지 않는다."""

        def _attempt() -> Transition:
            try:
                group = self._groups.get(group_id)
            except NotFoundError as e:
                if missing is None:
                    raise
                raise missing(e) from e
            transition = compute(group)
            if not transition.changed:
                return transition
            saved = self._groups.put_if_version(
                group_id, transition.group, group.version
            )
            return replace(transition, group=saved)

        return run_with_retry(_attempt, label=f"{label} {group_id}")

    def _finish(self, transition: Transition) -> GroupOutcome:
        """커밋 이후 처리: 시작/완료 이벤트 + 멤버 fan-out"""
        group = transition.group
        if transition.started:
            logger.info(
                "Quest started: group=%s, quest=%s, accepted=%d",
                group.group_id,
                group.quest.key,
                len(group.quest.accepted_ids()),
            )
            self._emit(
                EventTypes.QUEST_STARTED,
                {
                    "group_id": group.group_id,
                    "quest_key": group.quest.key,
                    "member_ids": group.quest.accepted_ids(),
                },
            )
        if transition.completed:
            logger.info(
                "Quest completed: group=%s, participants=%d",
                group.group_id,
                len(transition.participants),
            )
            self._emit(
                EventTypes.QUEST_COMPLETED,
                {"group_id": group.group_id, "member_ids": list(transition.participants)},
            )

        report = self._driver.propagate(group.group_id, transition.deltas)
        return self._outcome(group, report.to_partial_failure())

    def _outcome(
        self, group: Group, partial_failure: Optional[PartialFailure]
    ) -> GroupOutcome:
        if partial_failure is not None:
            self._emit(
                EventTypes.FANOUT_PARTIAL_FAILURE,
                {
                    "group_id": group.group_id,
                    "member_ids": partial_failure.failed_member_ids,
                },
            )
        return GroupOutcome(group=group, partial_failure=partial_failure)

    def _emit(self, event_type: str, data: dict) -> None:
        self._bus.emit(
            GameEvent(event_type=event_type, data=data, source="quest_service")
        )


def _no_party(error: NotFoundError) -> NotInPartyError:
    return NotInPartyError(
        "Must be in a party to start quests (this will change in the future)."
    )

