"""그룹/멤버 저장소 테스트 (CAS, 직렬화)"""

from dataclasses import replace
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from src.core.errors import ConflictError, NotFoundError, StoreUnavailableError
from src.core.group.enums import GroupType
from src.core.group.models import (
    Group,
    Invitation,
    Member,
    MemberInvitations,
    PartyQuestMirror,
)
from src.core.quest.enums import Vote
from src.core.quest.models import BossProgress, CollectProgress, QuestState


class TestGroupStore:
    def test_create_and_get(self, group_store):
        created = group_store.create(
            Group("p1", GroupType.PARTY, name="P", leader="A", members=("A", "B"))
        )
        assert created.version == 0
        assert group_store.get("p1").members == ("A", "B")

    def test_get_missing(self, group_store):
        with pytest.raises(NotFoundError):
            group_store.get("nope")

    def test_duplicate_create_conflicts(self, group_store):
        group_store.create(Group("p1", GroupType.PARTY))
        with pytest.raises(ConflictError):
            group_store.create(Group("p1", GroupType.PARTY))

    def test_quest_state_survives_storage(self, group_store):
        quest = QuestState(
            key="vice2",
            active=True,
            members={"A": Vote.ACCEPTED, "B": Vote.REJECTED},
            progress=BossProgress(hp=15),
            leader="A",
            event_id="e1",
            applied_progress=("h1",),
        )
        g = group_store.create(Group("p1", GroupType.PARTY, members=("A", "B")))
        group_store.put_if_version("p1", replace(g, quest=quest), g.version)
        assert group_store.get("p1").quest == quest

    def test_put_if_version_bumps(self, group_store):
        g = group_store.create(Group("p1", GroupType.PARTY))
        saved = group_store.put_if_version("p1", replace(g, name="new"), 0)
        assert saved.version == 1
        stored = group_store.get("p1")
        assert stored.version == 1
        assert stored.name == "new"

    def test_stale_version_conflicts(self, group_store):
        g = group_store.create(Group("p1", GroupType.PARTY))
        group_store.put_if_version("p1", replace(g, name="first"), 0)
        with pytest.raises(ConflictError):
            group_store.put_if_version("p1", replace(g, name="second"), 0)
        assert group_store.get("p1").name == "first"

    def test_find_by_type_and_predicate(self, group_store):
        group_store.create(Group("p1", GroupType.PARTY, members=("A",)))
        group_store.create(Group("p2", GroupType.PARTY, members=("B",)))
        group_store.create(Group("g1", GroupType.GUILD, members=("A",)))
        assert [g.group_id for g in group_store.parties_with_member("A")] == ["p1"]
        found = group_store.find(lambda g: g.has_member("A"))
        assert {g.group_id for g in found} == {"p1", "g1"}

    def test_db_error_becomes_store_unavailable(self, group_store):
        with patch(
            "sqlalchemy.orm.Session.get",
            side_effect=OperationalError("SELECT", {}, Exception("db down")),
        ):
            with pytest.raises(StoreUnavailableError):
                group_store.get("p1")


class TestMemberStore:
    def test_roundtrip_all_fields(self, member_store):
        member = Member(
            member_id="A",
            name="Alice",
            invitations=MemberInvitations(
                party=Invitation("p1", "Party"), guilds=(Invitation("g1", "Guild"),)
            ),
            party_id="p2",
            party_quest=PartyQuestMirror(
                "p2", "evilsanta2", CollectProgress({"tracks": 3}), event_id="e1", version=4
            ),
            quest_scrolls={"vice2": 2},
            applied_events=("p2:e1:scroll",),
            mirror_versions={"p1": 9, "p2": 4},
        )
        stored = member_store.create(member)
        assert stored == replace(member, version=0)

    def test_get_missing(self, member_store):
        with pytest.raises(NotFoundError) as exc:
            member_store.get("ghost")
        assert "ghost" in str(exc.value)

    def test_stale_version_conflicts(self, member_store):
        m = member_store.create(Member("A"))
        member_store.put_if_version("A", replace(m, party_id="p1"), m.version)
        with pytest.raises(ConflictError):
            member_store.put_if_version("A", replace(m, party_id="p2"), m.version)
        assert member_store.get("A").party_id == "p1"
