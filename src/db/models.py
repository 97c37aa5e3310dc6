"""SQLAlchemy declarative base and ORM models for groups and members."""

from sqlalchemy import Integer, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import JSON


class Base(DeclarativeBase):
    """Base class for all database models."""


class GroupModel(Base):
    """ORM model for parties and guilds.

    version is bumped by every compare-and-set write (see GroupStore).
    """

    __tablename__ = "groups"

    group_id: Mapped[str] = mapped_column(String, primary_key=True)
    group_type: Mapped[str] = mapped_column(String, nullable=False, index=True)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    leader: Mapped[str] = mapped_column(String, nullable=False, default="")
    members: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    invites: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    quest: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)


class MemberModel(Base):
    """ORM model for members (users)."""

    __tablename__ = "members"

    member_id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    invitations: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    party_id: Mapped[str | None] = mapped_column(String, nullable=True, index=True)
    party_quest: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    quest_scrolls: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    applied_events: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    mirror_versions: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
