"""Health check endpoint."""

from typing import Any

from fastapi import APIRouter, Depends, Request
from sqlalchemy import func, select, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from src.core.logging import get_logger
from src.db.database import get_db
from src.db.models import GroupModel

logger = get_logger(__name__)

router = APIRouter()


@router.get("/health")
def health_check(request: Request, db: Session = Depends(get_db)) -> dict[str, Any]:
    """Return database connectivity, stored group count and loaded quest count."""
    catalog = getattr(request.app.state, "quest_catalog", None)
    quests = catalog.count() if catalog is not None else 0
    try:
        db.execute(text("SELECT 1"))
        groups = db.scalar(select(func.count()).select_from(GroupModel)) or 0
    except SQLAlchemyError as e:
        logger.warning(f"Health check failed: {e}")
        return {"status": "error", "database": "disconnected", "quests": quests}
    return {"status": "ok", "database": "connected", "groups": groups, "quests": quests}
