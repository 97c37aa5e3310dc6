"""낙관적 동시성 재시도 헬퍼 테스트"""

import pytest

from src.core.errors import (
    AlreadyMemberError,
    ConflictError,
    StoreUnavailableError,
)
from src.services.retry import run_with_retry


def _flaky(failures: list[Exception], result="ok"):
    calls = []

    def _op():
        calls.append(1)
        if failures:
            raise failures.pop(0)
        return result

    return _op, calls


class TestRunWithRetry:
    def test_success_first_try(self):
        op, calls = _flaky([])
        assert run_with_retry(op, "t", max_attempts=3, backoff_ms=0) == "ok"
        assert len(calls) == 1

    def test_conflict_retried(self):
        op, calls = _flaky([ConflictError("c1"), ConflictError("c2")])
        assert run_with_retry(op, "t", max_attempts=3, backoff_ms=0) == "ok"
        assert len(calls) == 3

    def test_exhausted_conflict(self):
        op, calls = _flaky([ConflictError("c")] * 5)
        with pytest.raises(ConflictError) as exc:
            run_with_retry(op, "t", max_attempts=3, backoff_ms=0)
        assert len(calls) == 3
        assert "3 attempts" in str(exc.value)

    def test_exhausted_unavailable(self):
        op, _ = _flaky([ConflictError("c"), StoreUnavailableError("down")] * 3)
        with pytest.raises(StoreUnavailableError):
            run_with_retry(op, "t", max_attempts=2, backoff_ms=0)

    def test_validation_error_not_retried(self):
        op, calls = _flaky([AlreadyMemberError("nope")])
        with pytest.raises(AlreadyMemberError):
            run_with_retry(op, "t", max_attempts=5, backoff_ms=0)
        assert len(calls) == 1
