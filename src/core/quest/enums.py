"""퀘스트 관련 열거형"""

from enum import Enum


class Vote(str, Enum):
    """퀘스트 초대 응답. 미응답과 거절을 구분한다."""

    ACCEPTED = "accepted"
    REJECTED = "rejected"
    PENDING = "pending"


class QuestPhase(str, Enum):
    NO_QUEST = "no_quest"
    INVITED = "invited"
    ACTIVE = "active"


class ProgressKind(str, Enum):
    BOSS = "boss"
    COLLECT = "collect"
