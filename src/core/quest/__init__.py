"""파티 퀘스트 Core 패키지"""

from src.core.quest.catalog import QuestCatalog
from src.core.quest.enums import ProgressKind, QuestPhase, Vote
from src.core.quest.models import (
    BossDefinition,
    BossProgress,
    CollectProgress,
    ProgressDelta,
    QuestDefinition,
    QuestProgress,
    QuestState,
)

__all__ = [
    # enums
    "ProgressKind",
    "QuestPhase",
    "Vote",
    # models
    "BossDefinition",
    "BossProgress",
    "CollectProgress",
    "ProgressDelta",
    "QuestDefinition",
    "QuestProgress",
    "QuestState",
    # catalog
    "QuestCatalog",
]
