"""멤버십 Service - 초대/가입/탈퇴/추방

그룹 레코드와 멤버 레코드는 각각 CAS로 쓴다. 두 레코드에 걸친 변경은
한쪽을 먼저 쓰고 다른 쪽이 재시도 소진으로 실패하면 먼저 쓴 쪽을 되돌린다.
"""

import logging
from typing import Callable

from src.core.errors import AlreadyInPartyError, QuestCoordinationError
from src.core.event_bus import EventBus, GameEvent
from src.core.event_types import EventTypes
from src.core.group.deltas import ClearInvitation, ReleaseParty
from src.core.group.membership import (
    add_invite,
    add_member,
    classify_removal,
    departure_deltas,
    drop_member,
    ensure_leader,
    ensure_member,
    invite_deltas,
    join_deltas,
    validate_invite,
    withdraw_invite,
)
from src.core.group.models import Group
from src.services.consistency_driver import ConsistencyDriver, GroupOutcome
from src.services.retry import run_with_retry
from src.services.store import GroupStore, MemberStore

logger = logging.getLogger(__name__)


class MembershipService:
    """파티/길드 멤버십 관리. 파티는 멤버당 최대 1개."""

    def __init__(
        self,
        groups: GroupStore,
        members: MemberStore,
        driver: ConsistencyDriver,
        event_bus: EventBus,
    ):
        self._groups = groups
        self._members = members
        self._driver = driver
        self._bus = event_bus

    # === 초대 ===

    def invite_member(self, group_id: str, inviter_id: str, target_id: str) -> Group:
        """멤버 초대. 멤버 레코드 → 그룹 레코드 순으로 쓴다."""
        group = self._groups.get(group_id)
        ensure_member(group, inviter_id)
        target = self._members.get(target_id)
        in_party = group.is_party and bool(self._groups.parties_with_member(target_id))
        validate_invite(group, target, in_party)

        self._driver.apply(target_id, invite_deltas(group))
        try:
            saved = self._update_group(
                group_id, lambda g: add_invite(g, target_id), "invite"
            )
        except QuestCoordinationError:
            logger.warning(
                "Invite to %s failed after member write, withdrawing: %s",
                group_id,
                target_id,
            )
            self._driver.apply(target_id, [ClearInvitation(group_id)])
            raise

        logger.info("Member invited: group=%s, target=%s", group_id, target_id)
        self._emit(
            EventTypes.MEMBER_INVITED,
            {"group_id": group_id, "member_id": target_id, "inviter_id": inviter_id},
        )
        return saved

    # === 가입 ===

    def join_group(self, group_id: str, member_id: str) -> Group:
        """가입. 이미 멤버여도 남은 초대는 정리한다.

        파티는 member.party_id를 먼저 선점하므로 동시에 두 파티에 가입할 수 없다.
        """
        group = self._groups.get(group_id)
        member = self._members.get(member_id)
        if group.is_party and not group.has_member(member_id):
            others = [
                g.group_id
                for g in self._groups.parties_with_member(member_id)
                if g.group_id != group_id
            ]
            if others:
                raise AlreadyInPartyError(
                    f"Member {member_id} is already in party {others[0]}"
                )
        had_invitation = member.invitations.references(group_id)

        self._driver.apply(member_id, join_deltas(group))
        try:
            saved = self._update_group(
                group_id, lambda g: add_member(g, member_id), "join"
            )
        except QuestCoordinationError:
            logger.warning(
                "Join %s failed after member write, releasing: %s", group_id, member_id
            )
            rollback = [ReleaseParty(group_id)] if group.is_party else []
            if had_invitation:
                rollback.extend(invite_deltas(group))
            if rollback:
                self._driver.apply(member_id, rollback)
            raise

        logger.info("Member joined: group=%s, member=%s", group_id, member_id)
        self._emit(
            EventTypes.MEMBER_JOINED, {"group_id": group_id, "member_id": member_id}
        )
        return saved

    # === 탈퇴/추방 ===

    def leave_group(self, group_id: str, member_id: str) -> GroupOutcome:
        """탈퇴. 멤버 여부를 검증하지 않는다. 이 그룹의 퀘스트 미러도 지운다."""
        saved = self._update_group(
            group_id, lambda g: drop_member(g, member_id), "leave"
        )
        report = self._driver.propagate(
            group_id, {member_id: departure_deltas(saved)}
        )

        logger.info("Member left: group=%s, member=%s", group_id, member_id)
        self._emit(
            EventTypes.MEMBER_LEFT, {"group_id": group_id, "member_id": member_id}
        )
        return self._outcome(saved, report.to_partial_failure())

    def remove_member(
        self, group_id: str, requester_id: str, target_id: str
    ) -> GroupOutcome:
        """리더 전용. 멤버면 추방, 초대 대기 중이면 초대 철회."""
        group = self._groups.get(group_id)
        ensure_leader(group, requester_id, "remove a member")
        kind = classify_removal(group, target_id)

        if kind == "member":
            saved = self._update_group(
                group_id, lambda g: drop_member(g, target_id), "remove"
            )
            deltas = departure_deltas(saved)
            event_type = EventTypes.MEMBER_REMOVED
        else:
            saved = self._update_group(
                group_id, lambda g: withdraw_invite(g, target_id), "withdraw invite"
            )
            deltas = [ClearInvitation(group_id)]
            event_type = EventTypes.INVITE_WITHDRAWN

        report = self._driver.propagate(group_id, {target_id: deltas})

        logger.info(
            "Member removed (%s): group=%s, target=%s", kind, group_id, target_id
        )
        self._emit(event_type, {"group_id": group_id, "member_id": target_id})
        return self._outcome(saved, report.to_partial_failure())

    # === 내부 ===

    def _update_group(
        self, group_id: str, mutate: Callable[[Group], Group], label: str
    ) -> Group:
        """읽기 → 변경 → CAS. 변경이 없으면 쓰지 않는다."""

        def _attempt() -> Group:
            current = self._groups.get(group_id)
            updated = mutate(current)
            if updated == current:
                return current
            return self._groups.put_if_version(group_id, updated, current.version)

        return run_with_retry(_attempt, label=f"{label} group {group_id}")

    def _outcome(self, group: Group, partial_failure) -> GroupOutcome:
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
            GameEvent(event_type=event_type, data=data, source="membership_service")
        )
