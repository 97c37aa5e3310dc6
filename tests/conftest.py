"""Shared test fixtures."""

from dataclasses import replace
from typing import Callable, Iterable, Optional

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from src.core.errors import NotFoundError
from src.core.event_bus import EventBus
from src.core.group.enums import GroupType
from src.core.group.models import Group, Member
from src.core.quest.catalog import QuestCatalog
from src.core.quest.models import BossDefinition, QuestDefinition
from src.db.database import get_db
from src.db.models import Base
from src.main import app
from src.services.consistency_driver import ConsistencyDriver
from src.services.membership_service import MembershipService
from src.services.quest_service import QuestService
from src.services.store import GroupStore, MemberStore


@pytest.fixture()
def session_factory(tmp_path) -> sessionmaker:
    """테스트별 파일 SQLite. fan-out 워커 스레드가 같은 DB를 본다."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(engine)
    yield sessionmaker(bind=engine, autocommit=False, autoflush=False)
    engine.dispose()


@pytest.fixture()
def db_session(session_factory) -> Session:
    """Raw database session for direct DB assertions."""
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def group_store(session_factory) -> GroupStore:
    return GroupStore(session_factory)


@pytest.fixture()
def member_store(session_factory) -> MemberStore:
    return MemberStore(session_factory)


@pytest.fixture()
def catalog() -> QuestCatalog:
    return QuestCatalog(
        [
            QuestDefinition(key="vice2", boss=BossDefinition(hp=45, name="Vice")),
            QuestDefinition(key="evilsanta2", collect={"tracks": 20, "branches": 10}),
        ]
    )


@pytest.fixture()
def event_bus() -> EventBus:
    return EventBus()


@pytest.fixture()
def driver(member_store) -> ConsistencyDriver:
    return ConsistencyDriver(member_store, max_workers=4)


@pytest.fixture()
def membership_service(group_store, member_store, driver, event_bus):
    return MembershipService(
        groups=group_store,
        members=member_store,
        driver=driver,
        event_bus=event_bus,
    )


@pytest.fixture()
def quest_service(group_store, member_store, catalog, driver, event_bus):
    return QuestService(
        groups=group_store,
        members=member_store,
        catalog=catalog,
        driver=driver,
        event_bus=event_bus,
    )


@pytest.fixture()
def make_member(member_store) -> Callable[..., Member]:
    """멤버 레코드 생성 헬퍼. 이미 있으면 party_id/스크롤만 갱신."""

    def _make(
        member_id: str,
        scrolls: Optional[dict[str, int]] = None,
        party_id: Optional[str] = None,
    ) -> Member:
        try:
            existing = member_store.get(member_id)
        except NotFoundError:
            return member_store.create(
                Member(
                    member_id=member_id,
                    name=member_id,
                    party_id=party_id,
                    quest_scrolls=dict(scrolls or {}),
                )
            )
        updated = replace(
            existing,
            party_id=party_id or existing.party_id,
            quest_scrolls=dict(scrolls) if scrolls is not None else existing.quest_scrolls,
        )
        return member_store.put_if_version(member_id, updated, existing.version)

    return _make


@pytest.fixture()
def make_group(group_store, make_member) -> Callable[..., Group]:
    """그룹 + 멤버 레코드 시딩. 파티면 멤버의 party_id도 설정."""

    def _make(
        group_id: str,
        members: Iterable[str],
        group_type: GroupType = GroupType.PARTY,
        leader: Optional[str] = None,
    ) -> Group:
        members = tuple(members)
        for member_id in members:
            make_member(
                member_id,
                party_id=group_id if group_type is GroupType.PARTY else None,
            )
        return group_store.create(
            Group(
                group_id=group_id,
                group_type=group_type,
                name=f"{group_id} name",
                leader=leader or (members[0] if members else ""),
                members=members,
            )
        )

    return _make


@pytest.fixture()
def client(
    session_factory,
    catalog,
    group_store,
    member_store,
    event_bus,
    membership_service,
    quest_service,
):
    """FastAPI TestClient. 서비스는 테스트 DB 기준으로 app.state에 연결."""

    def _override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = _override_get_db
    app.state.quest_catalog = catalog
    app.state.event_bus = event_bus
    app.state.group_store = group_store
    app.state.member_store = member_store
    app.state.membership_service = membership_service
    app.state.quest_service = quest_service
    yield TestClient(app)
    app.dependency_overrides.clear()
