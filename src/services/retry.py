"""낙관적 동시성 재시도 - 읽기 → 검증 → 계산 → CAS를 통째로 다시 실행"""

import logging
import time
from typing import Callable, Optional, TypeVar

from src.config import settings
from src.core.errors import ConflictError, StoreUnavailableError

logger = logging.getLogger(__name__)

T = TypeVar("T")


def run_with_retry(
    operation: Callable[[], T],
    label: str,
    max_attempts: Optional[int] = None,
    backoff_ms: Optional[int] = None,
) -> T:
    """operation을 최대 max_attempts번 실행.

    ConflictError/StoreUnavailableError만 재시도한다. 검증 에러는 즉시 전파.
    소진 시 마지막 에러 종류로 실패 (Conflict 또는 StoreUnavailable).
    백오프: backoff_ms, 2x, 4x ...
    """
    attempts = max_attempts if max_attempts is not None else settings.WRITE_MAX_RETRIES
    delay_ms = backoff_ms if backoff_ms is not None else settings.WRITE_RETRY_BACKOFF_MS
    attempts = max(attempts, 1)

    last_error: ConflictError | StoreUnavailableError | None = None
    for attempt in range(1, attempts + 1):
        try:
            return operation()
        except (ConflictError, StoreUnavailableError) as e:
            last_error = e
            if attempt == attempts:
                break
            wait = delay_ms * (2 ** (attempt - 1)) / 1000
            logger.warning(
                "%s: %s on attempt %d/%d, retrying in %.3fs",
                label,
                e.kind,
                attempt,
                attempts,
                wait,
            )
            time.sleep(wait)

    logger.error("%s: giving up after %d attempts (%s)", label, attempts, last_error)
    if isinstance(last_error, StoreUnavailableError):
        raise StoreUnavailableError(
            f"{label}: store unavailable after {attempts} attempts"
        ) from last_error
    raise ConflictError(
        f"{label}: concurrent modification, gave up after {attempts} attempts"
    ) from last_error
