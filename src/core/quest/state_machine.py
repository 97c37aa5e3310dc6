"""파티 퀘스트 상태 머신 - 순수 Python

NoQuest → Invited → Active → (Completed | Aborted) → NoQuest

각 함수는 현재 그룹 스냅샷을 받아 다음 그룹 스냅샷과 멤버별 델타를
메모리에서 모두 계산해 Transition으로 돌려준다. 그룹 쓰기는 한 번,
멤버 fan-out은 그 뒤에 QuestService가 수행한다.
미러 델타에는 전이가 커밋될 그룹 버전이 찍혀, 늦게 도착한 fan-out이
더 최신 미러를 덮어쓰지 못한다.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Iterable, Optional

from src.core.errors import (
    NoActiveQuestError,
    NoPendingInvitationError,
    NoQuestScrollError,
    NotInPartyError,
    QuestAlreadyInProgressError,
)
from src.core.group.deltas import (
    ClearQuestMirror,
    ConsumeQuestScroll,
    MemberDelta,
    SetQuestMirror,
)
from src.core.group.models import Group, Member
from src.core.quest.enums import Vote
from src.core.quest.models import (
    BossProgress,
    CollectProgress,
    ProgressDelta,
    QuestDefinition,
    QuestProgress,
    QuestState,
)

logger = logging.getLogger(__name__)

# 그룹 레코드에 보관할 최근 진행 이벤트 ID 수
MAX_APPLIED_PROGRESS = 100


@dataclass(frozen=True)
class Transition:
    """그룹 전이 결과. changed=False면 쓰기 불필요."""

    group: Group
    deltas: dict[str, list[MemberDelta]] = field(default_factory=dict)
    changed: bool = True
    started: bool = False
    completed: bool = False
    participants: tuple[str, ...] = ()  # 완료 시점의 수락 멤버 (보상 훅 대상)


def merge_deltas(
    base: dict[str, list[MemberDelta]], extra: dict[str, list[MemberDelta]]
) -> dict[str, list[MemberDelta]]:
    merged = {member_id: list(deltas) for member_id, deltas in base.items()}
    for member_id, deltas in extra.items():
        merged.setdefault(member_id, []).extend(deltas)
    return merged


def scroll_dedup_key(group_id: str, event_id: str) -> str:
    return f"{group_id}:{event_id}:scroll"


def committed_version(group: Group) -> int:
    """이 스냅샷에서 계산한 전이가 커밋될 그룹 버전 (CAS는 version + 1로 쓴다)"""
    return group.version + 1


def mirror_delta(group: Group, member_id: str, version: int) -> MemberDelta:
    """그룹 상태 기준 멤버 1명의 미러 델타. 진행 중 퀘스트의 수락 멤버만 설정."""
    quest = group.quest
    if (
        quest.active
        and group.has_member(member_id)
        and quest.members.get(member_id) is Vote.ACCEPTED
    ):
        return SetQuestMirror(
            group.group_id,
            quest.key,
            quest.progress,
            event_id=quest.event_id,
            version=version,
        )
    return ClearQuestMirror(group.group_id, version=version)


# === 조회 ===


def pending_present_members(group: Group) -> list[str]:
    """현재 그룹에 있으면서 아직 응답하지 않은 멤버.

    초대 이후 탈퇴한 멤버의 pending 항목은 정족수를 막지 않는다.
    """
    return [
        member_id
        for member_id, choice in group.quest.members.items()
        if choice is Vote.PENDING and group.has_member(member_id)
    ]


def initial_progress(definition: QuestDefinition) -> QuestProgress:
    if definition.boss is not None:
        return BossProgress(hp=definition.boss.hp)
    return CollectProgress(collect={item: 0 for item in definition.collect})


def is_finished(definition: QuestDefinition, progress: QuestProgress) -> bool:
    if isinstance(progress, BossProgress):
        return progress.hp <= 0
    return all(
        progress.collect.get(item, 0) >= goal
        for item, goal in definition.collect.items()
    )


# === 전이 ===


def invite_to_quest(
    group: Group,
    inviter: Member,
    definition: QuestDefinition,
    event_id: str,
) -> Transition:
    """퀘스트 초대. 초대자는 accepted, 나머지 현재 멤버는 pending.

    초대 비용으로 초대자의 스크롤 1개를 소모한다 (dedup 델타).
    혼자인 파티처럼 pending이 없으면 같은 쓰기에서 바로 시작된다.
    """
    if not group.is_party or not group.has_member(inviter.member_id):
        raise NotInPartyError(
            "Must be in a party to start quests (this will change in the future)."
        )
    if not group.quest.is_empty:
        raise QuestAlreadyInProgressError(
            "Party already on a quest (and only have one quest at a time)"
        )
    if inviter.quest_scrolls.get(definition.key, 0) <= 0:
        raise NoQuestScrollError(f"You don't own a scroll for quest {definition.key}")

    votes = {
        member_id: Vote.ACCEPTED if member_id == inviter.member_id else Vote.PENDING
        for member_id in group.members
    }
    quest = QuestState(
        key=definition.key,
        members=votes,
        leader=inviter.member_id,
        event_id=event_id,
    )
    invited = replace(group, quest=quest)
    deltas: dict[str, list[MemberDelta]] = {
        inviter.member_id: [
            ConsumeQuestScroll(
                quest_key=definition.key,
                dedup_key=scroll_dedup_key(group.group_id, event_id),
            )
        ]
    }

    start = try_start(invited, definition, force=False)
    return replace(start, deltas=merge_deltas(deltas, start.deltas), changed=True)


def vote(group: Group, member_id: str, accept: bool) -> Group:
    """투표 기록. 거절도 항목을 유지해 정족수 판정이 명시적 결정을 본다."""
    quest = group.quest
    if quest.is_empty:
        raise NoPendingInvitationError("No quest invitation has been sent out yet.")
    if quest.active:
        raise QuestAlreadyInProgressError("Quest already started")
    if not group.has_member(member_id):
        raise NotInPartyError(f"Member {member_id} is not in this party")
    if member_id not in quest.members:
        raise NoPendingInvitationError(
            f"Member {member_id} was not invited to this quest"
        )

    members = dict(quest.members)
    members[member_id] = Vote.ACCEPTED if accept else Vote.REJECTED
    return replace(group, quest=replace(quest, members=members))


def vote_and_try_start(
    group: Group, member_id: str, accept: bool, definition: QuestDefinition
) -> Transition:
    voted = vote(group, member_id, accept)
    start = try_start(voted, definition, force=False)
    return replace(start, changed=True)


def try_start(group: Group, definition: QuestDefinition, force: bool) -> Transition:
    """퀘스트 시작 시도. active가 true가 되는 유일한 경로.

    force가 아니고 현재 멤버 중 pending이 있으면 전이 없음.
    시작 시 pending/이탈 멤버는 rejected로 확정된다.
    """
    quest = group.quest
    if quest.is_empty:
        raise NoPendingInvitationError("No quest invitation has been sent out yet.")
    if quest.active:
        return Transition(group=group, changed=False)

    if not force and pending_present_members(group):
        return Transition(group=group, changed=False)

    members = {
        member_id: (
            Vote.ACCEPTED
            if choice is Vote.ACCEPTED and group.has_member(member_id)
            else Vote.REJECTED
        )
        for member_id, choice in quest.members.items()
    }
    progress = initial_progress(definition)
    started = replace(
        group,
        quest=replace(quest, active=True, members=members, progress=progress),
    )

    version = committed_version(group)
    deltas: dict[str, list[MemberDelta]] = {
        member_id: [mirror_delta(started, member_id, version)]
        for member_id in group.members
    }

    logger.debug(
        "Quest %s starting for group %s (force=%s, accepted=%d)",
        definition.key,
        group.group_id,
        force,
        len(started.quest.accepted_ids()),
    )
    return Transition(group=started, deltas=deltas, started=True)


def apply_progress(
    group: Group,
    definition: QuestDefinition,
    delta: ProgressDelta,
    event_id: Optional[str] = None,
) -> Transition:
    """진행도 반영. 보스 hp는 0 미만, 수집 수량은 목표 초과 불가.

    목표 도달 시 같은 전이에서 완료까지 처리한다.
    같은 event_id는 한 번만 반영된다.
    """
    quest = group.quest
    if quest.is_empty or not quest.active or quest.progress is None:
        raise NoActiveQuestError("No active quest for this party")
    if event_id is not None and event_id in quest.applied_progress:
        logger.debug("Progress event already applied: %s", event_id)
        return Transition(group=group, changed=False)

    progress = quest.progress
    if isinstance(progress, BossProgress):
        max_hp = definition.boss.hp if definition.boss is not None else progress.hp
        progress = BossProgress(hp=min(max(progress.hp + delta.hp, 0), max_hp))
    else:
        collect = dict(progress.collect)
        for item, count in delta.collect.items():
            goal = definition.collect.get(item)
            if goal is None:
                logger.debug("Ignoring unknown collect item: %s", item)
                continue
            collect[item] = min(max(collect.get(item, 0) + count, 0), goal)
        progress = CollectProgress(collect=collect)

    applied = quest.applied_progress
    if event_id is not None:
        applied = (applied + (event_id,))[-MAX_APPLIED_PROGRESS:]
    progressed = replace(
        group, quest=replace(quest, progress=progress, applied_progress=applied)
    )

    if is_finished(definition, progress):
        return complete(progressed)

    version = committed_version(group)
    deltas: dict[str, list[MemberDelta]] = {
        member_id: [mirror_delta(progressed, member_id, version)]
        for member_id in progressed.quest.accepted_ids()
        if group.has_member(member_id)
    }
    return Transition(group=progressed, deltas=deltas)


def complete(group: Group) -> Transition:
    """완료: 퀘스트 비우기 + 수락 멤버 미러 제거. 보상은 participants로 전달."""
    quest = group.quest
    if quest.is_empty or not quest.active:
        raise NoActiveQuestError("No active quest for this party")

    version = committed_version(group)
    deltas: dict[str, list[MemberDelta]] = {
        member_id: [ClearQuestMirror(group.group_id, version=version)]
        for member_id in quest.accepted_ids()
    }
    # 보상 대상은 완료 시점에 그룹에 남아 있는 수락 멤버
    participants = tuple(m for m in quest.accepted_ids() if group.has_member(m))
    return Transition(
        group=replace(group, quest=QuestState()),
        deltas=deltas,
        completed=True,
        participants=participants,
    )


def abort(group: Group, mirror_holders: Iterable[str]) -> Transition:
    """중단: 초대/진행 중 어느 상태에서든 가능.

    mirror_holders: 이 그룹을 가리키는 미러를 가진 멤버 ID.
    """
    if group.quest.is_empty:
        raise NoPendingInvitationError("No quest to abort")

    version = committed_version(group)
    deltas: dict[str, list[MemberDelta]] = {
        member_id: [ClearQuestMirror(group.group_id, version=version)]
        for member_id in mirror_holders
    }
    return Transition(group=replace(group, quest=QuestState()), deltas=deltas)
