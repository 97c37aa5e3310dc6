"""Consistency Driver 테스트 - fan-out, 부분 실패, 재실행"""

from unittest.mock import patch

from src.core.errors import AlreadyInPartyError, PartialFailure, StoreUnavailableError
from src.core.group.deltas import ClaimParty, ConsumeQuestScroll, SetQuestMirror
from src.core.group.models import PartyQuestMirror
from src.core.quest.models import BossProgress
from src.services.store import MemberStore


def _mirror(key="vice2", hp=45):
    return [SetQuestMirror("p1", key, BossProgress(hp=hp))]


class TestApply:
    def test_apply_writes_once(self, driver, make_member, member_store):
        make_member("A")
        updated = driver.apply("A", _mirror())
        assert updated.party_quest == PartyQuestMirror("p1", "vice2", BossProgress(45))
        assert member_store.get("A").version == 1

    def test_unchanged_skips_write(self, driver, make_member, member_store):
        make_member("A")
        driver.apply("A", _mirror())
        driver.apply("A", _mirror())
        assert member_store.get("A").version == 1

    def test_conflict_is_retried(self, driver, make_member, member_store):
        """첫 CAS 직전에 다른 쓰기가 끼어들어도 재시도로 반영"""
        make_member("A")
        original = MemberStore.put_if_version
        interfered = []

        def _racing_put(self, member_id, member, expected_version):
            if not interfered:
                interfered.append(1)
                current = self.get(member_id)
                original(self, member_id, current, current.version)
            return original(self, member_id, member, expected_version)

        with patch.object(MemberStore, "put_if_version", _racing_put):
            driver.apply("A", _mirror())

        stored = member_store.get("A")
        assert stored.party_quest is not None
        assert stored.version == 2


class TestPropagate:
    def test_all_members_applied(self, driver, make_member, member_store):
        for m in ("A", "B", "C"):
            make_member(m)
        report = driver.propagate("p1", {m: _mirror() for m in ("A", "B", "C")})
        assert report.ok
        assert sorted(report.applied) == ["A", "B", "C"]
        assert report.to_partial_failure() is None
        for m in ("A", "B", "C"):
            assert member_store.get(m).party_quest.key == "vice2"

    def test_empty_delta_lists_skipped(self, driver):
        report = driver.propagate("p1", {"A": []})
        assert report.ok
        assert report.applied == []

    def test_one_failure_does_not_block_others(self, driver, make_member, member_store):
        make_member("A")
        make_member("C")
        report = driver.propagate("p1", {m: _mirror() for m in ("A", "B", "C")})
        assert not report.ok
        assert sorted(report.applied) == ["A", "C"]
        assert report.failed["B"].kind == "NotFound"

        failure = report.to_partial_failure()
        assert isinstance(failure, PartialFailure)
        assert failure.failed_member_ids == ["B"]
        assert failure.pending_deltas == {"B": _mirror()}
        assert failure.to_dict()["failed"] == {"B": "NotFound"}
        assert member_store.get("C").party_quest is not None

    def test_validation_failure_reported(self, driver, make_member):
        make_member("A", party_id="p2")
        report = driver.propagate("p1", {"A": [ClaimParty("p1")]})
        assert isinstance(report.failed["A"], AlreadyInPartyError)

    def test_store_outage_reported(self, driver, make_member):
        make_member("A")
        make_member("B")
        original = MemberStore.put_if_version

        def _down_for_b(self, member_id, member, expected_version):
            if member_id == "B":
                raise StoreUnavailableError("db down")
            return original(self, member_id, member, expected_version)

        with patch("src.services.retry.time.sleep"):
            with patch.object(MemberStore, "put_if_version", _down_for_b):
                report = driver.propagate("p1", {m: _mirror() for m in ("A", "B")})

        assert report.applied == ["A"]
        assert report.failed["B"].kind == "StoreUnavailable"

    def test_unexpected_error_reported(self, driver, make_member):
        make_member("A")
        with patch.object(MemberStore, "put_if_version", side_effect=RuntimeError("boom")):
            report = driver.propagate("p1", {"A": _mirror()})
        assert report.failed["A"].kind == "StoreUnavailable"

    def test_replayed_scroll_fanout_consumes_once(self, driver, make_member, member_store):
        """스크롤 소모 fan-out을 재실행해도 1번만 차감"""
        make_member("A", scrolls={"vice2": 2})
        deltas = {"A": [ConsumeQuestScroll("vice2", "p1:e1:scroll")]}
        driver.propagate("p1", deltas)
        driver.propagate("p1", deltas)
        assert member_store.get("A").quest_scrolls["vice2"] == 1

    def test_rerun_pending_after_partial_failure(self, driver, make_member, member_store):
        make_member("A")
        report = driver.propagate("p1", {m: _mirror() for m in ("A", "B")})
        failure = report.to_partial_failure()

        make_member("B")
        retry = driver.propagate("p1", failure.pending_deltas)
        assert retry.ok
        assert retry.applied == ["B"]
        assert member_store.get("B").party_quest.key == "vice2"
