"""Tests for application settings."""

from pathlib import Path

from src.config import Settings
from src.core.quest.catalog import QuestCatalog


def test_default_catalog_path_independent_of_cwd(monkeypatch, tmp_path) -> None:
    """기본 카탈로그 경로는 작업 디렉터리와 무관하게 패키지 데이터를 가리킨다"""
    monkeypatch.delenv("QUEST_CATALOG_PATH", raising=False)
    monkeypatch.chdir(tmp_path)

    path = Path(Settings().QUEST_CATALOG_PATH)

    assert path.is_absolute()
    assert QuestCatalog().load_from_json(path) == 4


def test_catalog_path_env_override(monkeypatch, tmp_path) -> None:
    custom = tmp_path / "quests.json"
    monkeypatch.setenv("QUEST_CATALOG_PATH", str(custom))
    assert Settings().QUEST_CATALOG_PATH == str(custom)
