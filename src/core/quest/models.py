"""퀘스트 도메인 모델 (DB 무관)

모든 엔티티는 불변 스냅샷. 변경은 dataclasses.replace로 새 값을 만든다.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional, Union

from src.core.quest.enums import ProgressKind, QuestPhase, Vote


@dataclass(frozen=True)
class BossDefinition:
    """보스 퀘스트 정의"""

    hp: int
    name: str = ""


@dataclass(frozen=True)
class QuestDefinition:
    """카탈로그의 퀘스트 정의 - 불변. quests.json에서 로드."""

    key: str
    text: str = ""
    boss: Optional[BossDefinition] = None
    collect: dict[str, int] = field(default_factory=dict)  # {item_key: 목표 수량}

    @property
    def progress_kind(self) -> ProgressKind:
        return ProgressKind.BOSS if self.boss is not None else ProgressKind.COLLECT


@dataclass(frozen=True)
class BossProgress:
    hp: int

    kind = ProgressKind.BOSS


@dataclass(frozen=True)
class CollectProgress:
    collect: dict[str, int] = field(default_factory=dict)

    kind = ProgressKind.COLLECT


QuestProgress = Union[BossProgress, CollectProgress]


@dataclass(frozen=True)
class ProgressDelta:
    """진행도 변화량. hp는 음수가 피해량, collect는 수집 증가량."""

    hp: int = 0
    collect: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class QuestState:
    """그룹에 내장되는 퀘스트 조정 상태. key가 없으면 빈 상태."""

    key: Optional[str] = None
    active: bool = False
    members: dict[str, Vote] = field(default_factory=dict)
    progress: Optional[QuestProgress] = None

    leader: Optional[str] = None  # 초대를 보낸 멤버
    event_id: Optional[str] = None  # 이 퀘스트 인스턴스의 고유 ID
    applied_progress: tuple[str, ...] = ()  # 이미 반영된 진행 이벤트 ID

    @property
    def is_empty(self) -> bool:
        return self.key is None

    @property
    def phase(self) -> QuestPhase:
        if self.key is None:
            return QuestPhase.NO_QUEST
        return QuestPhase.ACTIVE if self.active else QuestPhase.INVITED

    def accepted_ids(self) -> list[str]:
        return [m for m, v in self.members.items() if v is Vote.ACCEPTED]


# === 직렬화 (DB JSON 컬럼용) ===


def progress_to_dict(progress: Optional[QuestProgress]) -> Optional[dict[str, Any]]:
    if progress is None:
        return None
    if isinstance(progress, BossProgress):
        return {"hp": progress.hp}
    return {"collect": dict(progress.collect)}


def progress_from_dict(data: Optional[dict[str, Any]]) -> Optional[QuestProgress]:
    if not data:
        return None
    if "hp" in data:
        return BossProgress(hp=int(data["hp"]))
    return CollectProgress(collect={k: int(v) for k, v in data["collect"].items()})


def quest_state_to_dict(state: QuestState) -> dict[str, Any]:
    if state.is_empty:
        return {}
    return {
        "key": state.key,
        "active": state.active,
        "members": {m: v.value for m, v in state.members.items()},
        "progress": progress_to_dict(state.progress),
        "leader": state.leader,
        "event_id": state.event_id,
        "applied_progress": list(state.applied_progress),
    }


def quest_state_from_dict(data: Optional[dict[str, Any]]) -> QuestState:
    if not data or not data.get("key"):
        return QuestState()
    return QuestState(
        key=data["key"],
        active=bool(data.get("active", False)),
        members={m: Vote(v) for m, v in data.get("members", {}).items()},
        progress=progress_from_dict(data.get("progress")),
        leader=data.get("leader"),
        event_id=data.get("event_id"),
        applied_progress=tuple(data.get("applied_progress", [])),
    )
