"""퀘스트 카탈로그 - JSON 로드, 읽기 전용 조회"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

from src.core.errors import QuestNotFoundError
from src.core.quest.models import BossDefinition, QuestDefinition

logger = logging.getLogger(__name__)


class QuestCatalog:
    """
    퀘스트 정의 저장소.
    quest key → QuestDefinition. 로드 이후에는 변경하지 않는다.
    """

    def __init__(self, definitions: list[QuestDefinition] | None = None) -> None:
        self._quests: dict[str, QuestDefinition] = {}
        for definition in definitions or []:
            self._quests[definition.key] = definition

    def load_from_json(self, path: str | Path) -> int:
        """quests.json 로드. 반환: 로드된 수량.

        각 객체는 boss{hp} 또는 collect{item: 목표} 중 하나 이상을 가져야 한다.
        둘 다 있으면 boss가 진행도 형식을 결정한다.
        """
        path = Path(path)
        with path.open("r", encoding="utf-8") as f:
            raw_list: list[dict] = json.load(f)

        count = 0
        for raw in raw_list:
            try:
                definition = self._parse(raw)
            except (KeyError, TypeError, ValueError) as e:
                logger.warning("Failed to load quest: %s - %s", raw.get("key", "?"), e)
                continue
            self._quests[definition.key] = definition
            count += 1

        logger.info("Loaded %d quests from %s", count, path)
        return count

    @staticmethod
    def _parse(raw: dict) -> QuestDefinition:
        boss_raw = raw.get("boss")
        boss = None
        if boss_raw:
            boss = BossDefinition(hp=int(boss_raw["hp"]), name=boss_raw.get("name", ""))
            if boss.hp <= 0:
                raise ValueError("boss hp must be positive")

        collect = {k: int(v) for k, v in (raw.get("collect") or {}).items()}
        if boss is None and not collect:
            raise ValueError("quest needs a boss or collect goals")
        if any(v <= 0 for v in collect.values()):
            raise ValueError("collect goals must be positive")

        return QuestDefinition(
            key=raw["key"],
            text=raw.get("text", ""),
            boss=boss,
            collect=collect,
        )

    def get(self, key: str) -> Optional[QuestDefinition]:
        """O(1) 조회. 없으면 None."""
        return self._quests.get(key)

    def lookup(self, key: str) -> QuestDefinition:
        """조회. 없으면 QuestNotFoundError."""
        definition = self._quests.get(key)
        if definition is None:
            raise QuestNotFoundError(f"Quest {key} not found")
        return definition

    def __contains__(self, key: object) -> bool:
        return key in self._quests

    def count(self) -> int:
        return len(self._quests)
