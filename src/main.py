"""FastAPI application entrypoint."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI

from src.api.groups import domain_error_handler, router as groups_router
from src.api.health import router as health_router
from src.config import settings
from src.core.errors import QuestCoordinationError
from src.core.event_bus import EventBus
from src.core.logging import get_logger, setup_logging
from src.core.quest.catalog import QuestCatalog
from src.db.database import SessionLocal, engine as db_engine
from src.db.models import Base
from src.services.consistency_driver import ConsistencyDriver
from src.services.membership_service import MembershipService
from src.services.quest_service import QuestService
from src.services.store import GroupStore, MemberStore

setup_logging(settings.LOG_LEVEL)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup and shutdown events."""
    # DB 테이블 생성
    logger.info("Creating database tables...")
    Base.metadata.create_all(bind=db_engine)
    logger.info("Database tables created.")

    # 퀘스트 카탈로그 로드
    catalog = QuestCatalog()
    loaded = catalog.load_from_json(settings.QUEST_CATALOG_PATH)
    logger.info(f"Quest catalog loaded ({loaded} quests).")

    # 저장소 + 서비스 초기화
    logger.info("Initializing services...")
    event_bus = EventBus()
    group_store = GroupStore(SessionLocal)
    member_store = MemberStore(SessionLocal)
    driver = ConsistencyDriver(member_store)

    app.state.quest_catalog = catalog
    app.state.event_bus = event_bus
    app.state.group_store = group_store
    app.state.member_store = member_store
    app.state.membership_service = MembershipService(
        groups=group_store,
        members=member_store,
        driver=driver,
        event_bus=event_bus,
    )
    app.state.quest_service = QuestService(
        groups=group_store,
        members=member_store,
        catalog=catalog,
        driver=driver,
        event_bus=event_bus,
    )
    logger.info("Services initialized.")

    yield

    # 종료 시 정리
    logger.info("Shutting down...")
    event_bus.clear()
    db_engine.dispose()


app = FastAPI(title="Party Quest Coordination", lifespan=lifespan)

app.add_exception_handler(QuestCoordinationError, domain_error_handler)
app.include_router(health_router)
app.include_router(groups_router)
