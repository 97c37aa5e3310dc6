"""그룹/멤버 저장소 - 버전 기반 compare-and-set

모든 쓰기는 put_if_version: 읽은 version이 그대로일 때만 커밋하고 version을 1 올린다.
호출마다 짧은 세션을 새로 열어 동시 호출자끼리 세션/트랜잭션을 공유하지 않는다.
"""

import logging
from contextlib import contextmanager
from dataclasses import replace
from typing import Callable, Iterator, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.orm import Session, sessionmaker

from src.core.errors import ConflictError, NotFoundError, StoreUnavailableError
from src.core.group.enums import GroupType
from src.core.group.models import (
    Group,
    Member,
    invitations_from_dict,
    invitations_to_dict,
    mirror_from_dict,
    mirror_to_dict,
)
from src.core.quest.models import quest_state_from_dict, quest_state_to_dict
from src.db.models import GroupModel, MemberModel

logger = logging.getLogger(__name__)


@contextmanager
def _store_session(factory: sessionmaker) -> Iterator[Session]:
    """세션 열기 + DB 장애를 StoreUnavailableError로 변환"""
    db = factory()
    try:
        yield db
    except IntegrityError as e:
        db.rollback()
        raise ConflictError(f"Record already exists: {e.orig}") from e
    except DBAPIError as e:
        db.rollback()
        logger.warning("Store error: %s", e)
        raise StoreUnavailableError(str(e.orig)) from e
    finally:
        db.close()


class GroupStore:
    """그룹 레코드 저장소"""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, group: Group) -> Group:
        """레코드 생성 (시딩/테스트용). 이미 있으면 ConflictError."""
        with _store_session(self._session_factory) as db:
            db.add(
                GroupModel(group_id=group.group_id, **self._to_row(group), version=0)
            )
            db.commit()
        return self.get(group.group_id)

    def get(self, group_id: str) -> Group:
        with _store_session(self._session_factory) as db:
            orm = db.get(GroupModel, group_id)
            if orm is None:
                raise NotFoundError("Group not found")
            return self._to_core(orm)

    def find(
        self,
        predicate: Callable[[Group], bool],
        group_type: Optional[GroupType] = None,
    ) -> list[Group]:
        """predicate를 만족하는 그룹 목록. group_type으로 DB 단에서 1차 필터."""
        with _store_session(self._session_factory) as db:
            stmt = select(GroupModel)
            if group_type is not None:
                stmt = stmt.where(GroupModel.group_type == group_type.value)
            groups = [self._to_core(orm) for orm in db.scalars(stmt)]
        return [g for g in groups if predicate(g)]

    def parties_with_member(self, member_id: str) -> list[Group]:
        return self.find(lambda g: g.has_member(member_id), GroupType.PARTY)

    def put_if_version(
        self, group_id: str, group: Group, expected_version: int
    ) -> Group:
        """version이 expected_version일 때만 저장. 반환: 새 version이 반영된 스냅샷."""
        with _store_session(self._session_factory) as db:
            result = db.execute(
                update(GroupModel)
                .where(
                    GroupModel.group_id == group_id,
                    GroupModel.version == expected_version,
                )
                .values(**self._to_row(group), version=expected_version + 1)
                .execution_options(synchronize_session=False)
            )
            matched = result.rowcount
            db.commit()
            if matched != 1:
                logger.debug(
                    "Group version mismatch: %s (expected=%d)",
                    group_id,
                    expected_version,
                )
                raise ConflictError(f"Group {group_id} was modified concurrently")
        return replace(group, version=expected_version + 1)

    # === ORM ↔ Core 변환 ===

    @staticmethod
    def _to_row(group: Group) -> dict:
        return {
            "group_type": group.group_type.value,
            "name": group.name,
            "leader": group.leader,
            "members": list(group.members),
            "invites": list(group.invites),
            "quest": quest_state_to_dict(group.quest),
        }

    @staticmethod
    def _to_core(orm: GroupModel) -> Group:
        return Group(
            group_id=orm.group_id,
            group_type=GroupType(orm.group_type),
            name=orm.name,
            leader=orm.leader,
            members=tuple(orm.members or []),
            invites=tuple(orm.invites or []),
            quest=quest_state_from_dict(orm.quest),
            version=orm.version,
        )


class MemberStore:
    """멤버 레코드 저장소"""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def create(self, member: Member) -> Member:
        """레코드 생성 (시딩/테스트용). 이미 있으면 ConflictError."""
        with _store_session(self._session_factory) as db:
            db.add(
                MemberModel(
                    member_id=member.member_id, **self._to_row(member), version=0
                )
            )
            db.commit()
        return self.get(member.member_id)

    def get(self, member_id: str) -> Member:
        with _store_session(self._session_factory) as db:
            orm = db.get(MemberModel, member_id)
            if orm is None:
                raise NotFoundError(f'User with id "{member_id}" not found')
            return self._to_core(orm)

    def put_if_version(
        self, member_id: str, member: Member, expected_version: int
    ) -> Member:
        with _store_session(self._session_factory) as db:
            result = db.execute(
                update(MemberModel)
                .where(
                    MemberModel.member_id == member_id,
                    MemberModel.version == expected_version,
                )
                .values(**self._to_row(member), version=expected_version + 1)
                .execution_options(synchronize_session=False)
            )
            matched = result.rowcount
            db.commit()
            if matched != 1:
                logger.debug(
                    "Member version mismatch: %s (expected=%d)",
                    member_id,
                    expected_version,
                )
                raise ConflictError(f"Member {member_id} was modified concurrently")
        return replace(member, version=expected_version + 1)

    # === ORM ↔ Core 변환 ===

    @staticmethod
    def _to_row(member: Member) -> dict:
        return {
            "name": member.name,
            "invitations": invitations_to_dict(member.invitations),
            "party_id": member.party_id,
            "party_quest": mirror_to_dict(member.party_quest),
            "quest_scrolls": dict(member.quest_scrolls),
            "applied_events": list(member.applied_events),
            "mirror_versions": dict(member.mirror_versions),
        }

    @staticmethod
    def _to_core(orm: MemberModel) -> Member:
        return Member(
            member_id=orm.member_id,
            name=orm.name,
            invitations=invitations_from_dict(orm.invitations),
            party_id=orm.party_id,
            party_quest=mirror_from_dict(orm.party_quest),
            quest_scrolls={k: int(v) for k, v in (orm.quest_scrolls or {}).items()},
            applied_events=tuple(orm.applied_events or []),
            mirror_versions={k: int(v) for k, v in (orm.mirror_versions or {}).items()},
            version=orm.version,
        )
