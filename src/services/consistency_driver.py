"""Consistency Driver - 그룹 전이의 멤버 fan-out

그룹 쓰기(권위)가 먼저 커밋되고, 멤버 미러/초대 델타는 그 뒤에 best-effort로 전파된다.
한 멤버의 실패가 나머지 멤버 적용을 막지 않으며, 실패 목록은 PartialFailure로 보고된다.
델타는 값으로 설정하는 형태이거나 dedup 키를 가지므로 그대로 재실행해도 안전하다.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Optional

from src.config import settings
from src.core.errors import PartialFailure, QuestCoordinationError, StoreUnavailableError
from src.core.group.deltas import MemberDelta, apply_deltas
from src.core.group.models import Group, Member
from src.services.retry import run_with_retry
from src.services.store import MemberStore

logger = logging.getLogger(__name__)


@dataclass
class PropagationReport:
    """propagate 결과"""

    group_id: str
    applied: list[str] = field(default_factory=list)
    failed: dict[str, QuestCoordinationError] = field(default_factory=dict)
    pending: dict[str, list[MemberDelta]] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.failed

    def to_partial_failure(self) -> Optional[PartialFailure]:
        if self.ok:
            return None
        return PartialFailure(self.group_id, self.failed, self.pending)


@dataclass(frozen=True)
class GroupOutcome:
    """서비스 연산 결과: 커밋된 그룹 스냅샷 + (있다면) fan-out 부분 실패"""

    group: Group
    partial_failure: Optional[PartialFailure] = None


class ConsistencyDriver:
    """멤버 레코드 델타 적용기"""

    def __init__(self, members: MemberStore, max_workers: Optional[int] = None):
        self._members = members
        self._max_workers = max_workers or settings.FANOUT_MAX_WORKERS

    def apply(self, member_id: str, deltas: list[MemberDelta]) -> Member:
        """멤버 1명에게 델타 적용. 읽기 → 적용 → CAS를 충돌 시 재시도.

        결과가 현재 값과 같으면 쓰지 않는다. 검증 에러는 즉시 전파.
        """

        def _attempt() -> Member:
            member = self._members.get(member_id)
            updated = apply_deltas(member, deltas)
            if updated == member:
                return member
            return self._members.put_if_version(member_id, updated, member.version)

        return run_with_retry(_attempt, label=f"member {member_id}")

    def propagate(
        self, group_id: str, deltas: dict[str, list[MemberDelta]]
    ) -> PropagationReport:
        """멤버별 델타를 모두 시도. 멤버 간 순서는 보장하지 않는다."""
        report = PropagationReport(group_id=group_id)
        targets = {m: d for m, d in deltas.items() if d}
        if not targets:
            return report

        workers = min(self._max_workers, len(targets))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = {
                member_id: pool.submit(self.apply, member_id, member_deltas)
                for member_id, member_deltas in targets.items()
            }
            for member_id, future in futures.items():
                try:
                    future.result()
                    report.applied.append(member_id)
                except QuestCoordinationError as e:
                    report.failed[member_id] = e
                    report.pending[member_id] = targets[member_id]
                except Exception as e:
                    logger.exception(
                        "Unexpected fan-out error: group=%s, member=%s",
                        group_id,
                        member_id,
                    )
                    report.failed[member_id] = StoreUnavailableError(str(e))
                    report.pending[member_id] = targets[member_id]

        if report.failed:
            logger.warning(
                "Fan-out for group %s: %d applied, %d failed (%s)",
                group_id,
                len(report.applied),
                len(report.failed),
                ", ".join(f"{m}={e.kind}" for m, e in sorted(report.failed.items())),
            )
        else:
            logger.info(
                "Fan-out for group %s applied to %d member(s)",
                group_id,
                len(report.applied),
            )
        return report
