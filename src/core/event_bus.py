"""EventBus - 서비스 간 이벤트 통신 인프라

규칙:
- 서비스는 다른 서비스를 직접 호출하지 않는다
- 이벤트는 식별자(ID)만 전달한다
- 이벤트는 레코드 커밋 이후에만 발행한다
- 전파 깊이 최대 MAX_DEPTH 단계
- 한 전파 체인 안에서 같은 키의 이벤트 중복 발행 금지
"""

import threading
from collections import defaultdict
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Set

from src.core.logging import get_logger

logger = get_logger(__name__)

MAX_DEPTH = 5  # 한 체인 내 이벤트 전파 최대 깊이


@dataclass
class GameEvent:
    """이벤트 데이터 컨테이너

    Args:
        event_type: 이벤트 유형 (예: "quest_started")
        data: 이벤트 데이터 (ID 위주, 무거운 객체 금지)
        source: 발행한 서비스 이름
        key: 중복 판정 키. 없으면 "source:event_type:group_id"
    """

    event_type: str
    data: Dict[str, Any]
    source: str
    key: Optional[str] = None

    # 내부 추적용 (외부에서 설정하지 않음)
    _depth: int = field(default=0, repr=False)

    @property
    def chain_key(self) -> str:
        if self.key is not None:
            return self.key
        return f"{self.source}:{self.event_type}:{self.data.get('group_id', '')}"


# 핸들러 타입: GameEvent를 받는 callable
EventHandler = Callable[[GameEvent], None]


class EventBus:
    """동기식 이벤트 버스

    전파 체인 상태(깊이, 중복 키)는 스레드별로 관리되고,
    최상위 emit이 끝나면 자동으로 초기화된다.

    사용 패턴:
        bus = EventBus()
        bus.subscribe("quest_completed", rewards.handle_quest_completed)
        bus.emit(GameEvent(event_type="quest_completed", data={"group_id": "g1"}, source="quest_service"))
    """

    def __init__(self) -> None:
        self._handlers: Dict[str, List[EventHandler]] = defaultdict(list)
        self._lock = threading.Lock()
        self._local = threading.local()

    def _chain(self) -> Set[str]:
        if not hasattr(self._local, "emitted"):
            self._local.emitted = set()
            self._local.depth = 0
        return self._local.emitted

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """이벤트 구독 등록"""
        with self._lock:
            self._handlers[event_type].append(handler)
        logger.debug(f"EventBus 구독: {event_type} → {handler.__qualname__}")

    def unsubscribe(self, event_type: str, handler: EventHandler) -> None:
        """이벤트 구독 해제"""
        with self._lock:
            try:
                self._handlers[event_type].remove(handler)
            except ValueError:
                logger.warning(f"핸들러 미등록: {event_type} → {handler.__qualname__}")
                return
        logger.debug(f"EventBus 구독 해제: {event_type} → {handler.__qualname__}")

    def emit(self, event: GameEvent) -> None:
        """이벤트 발행. 등록된 핸들러를 동기 호출.

        안전장치:
        1. 전파 깊이 MAX_DEPTH 초과 시 무시
        2. 같은 체인에서 같은 chain_key 중복 발행 시 무시
        3. 핸들러 예외는 로그만 남기고 다음 핸들러로 진행
        """
        emitted = self._chain()
        depth: int = self._local.depth

        if depth >= MAX_DEPTH:
            logger.warning(
                f"EventBus 전파 깊이 초과 ({MAX_DEPTH}): "
                f"{event.source}:{event.event_type} 무시됨"
            )
            return

        if event.chain_key in emitted:
            logger.warning(f"EventBus 중복 이벤트 차단: {event.chain_key}")
            return

        with self._lock:
            handlers = list(self._handlers.get(event.event_type, []))
        if not handlers:
            logger.debug(f"EventBus: {event.event_type} 구독자 없음")
            return

        emitted.add(event.chain_key)
        event._depth = depth
        logger.info(
            f"EventBus 전파: {event.event_type} (source={event.source}, "
            f"depth={depth}, handlers={len(handlers)})"
        )

        self._local.depth = depth + 1
        try:
            for handler in handlers:
                try:
                    handler(event)
                except Exception:
                    logger.exception(
                        f"EventBus 핸들러 에러: {handler.__qualname__} "
                        f"(event={event.event_type})"
                    )
        finally:
            self._local.depth = depth
            if depth == 0:
                emitted.clear()

    def clear(self) -> None:
        """모든 구독 해제 (테스트용)"""
        with self._lock:
            self._handlers.clear()
        self._chain().clear()
        self._local.depth = 0

    @property
    def handler_count(self) -> int:
        """등록된 총 핸들러 수"""
        with self._lock:
            return sum(len(h) for h in self._handlers.values())
