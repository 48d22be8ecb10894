"""Tests for the DuckDB message store."""
import os
import tempfile
from datetime import timezone

import pytest

from chatcore.errors import PersistenceError
from chatcore.store.schemas import MemberRole, MessageStatus, MessageType
from chatcore.store.service import MessageStore


@pytest.fixture
def temp_db():
    """Create a temporary database path for testing."""
    # DuckDB creates the file itself; only reserve a unique name.
    db_path = tempfile.mktemp(suffix=".duckdb")

    yield db_path

    if os.path.exists(db_path):
        os.remove(db_path)
    wal_path = db_path + ".wal"
    if os.path.exists(wal_path):
        os.remove(wal_path)


class TestMessages:

    def test_insert_direct_message(self, store):
        record = store.insert_message(sender_id="a", receiver_id="b", content="hi")

        assert record.is_direct
        assert record.status == MessageStatus.SENT
        assert record.message_type == MessageType.TEXT
        assert store.get_message(record.id) == record

    def test_insert_stores_mentions(self, store):
        record = store.insert_message(
            sender_id="a", room_id="r1", content="hey @b @c", mention_ids=["b", "c", "b"]
        )

        assert record.mention_ids == ["b", "c"]
        assert sorted(store.get_message(record.id).mention_ids) == ["b", "c"]

    def test_exactly_one_target_enforced(self, store):
        with pytest.raises(PersistenceError):
            store.insert_message(sender_id="a", receiver_id="b", room_id="r1", content="x")
        with pytest.raises(PersistenceError):
            store.insert_message(sender_id="a", content="x")

    def test_failed_insert_leaves_nothing_behind(self, store):
        with pytest.raises(PersistenceError):
            store.insert_message(sender_id="a", content="orphan", mention_ids=["b"])

        rows = store._query("SELECT count(*) FROM message_mentions")
        assert rows[0][0] == 0

    def test_seq_is_monotonic(self, store):
        first = store.insert_message(sender_id="a", receiver_id="b", content="1")
        second = store.insert_message(sender_id="a", receiver_id="b", content="2")
        assert second.seq > first.seq

    def test_direct_history_is_chronological_both_ways(self, store):
        store.insert_message(sender_id="a", receiver_id="b", content="1")
        store.insert_message(sender_id="b", receiver_id="a", content="2")
        store.insert_message(sender_id="a", receiver_id="c", content="other peer")
        store.insert_message(sender_id="a", receiver_id="b", content="3")

        history = store.direct_history("a", "b")

        assert [m.content for m in history] == ["1", "2", "3"]
        assert [m.content for m in store.direct_history("b", "a")] == ["1", "2", "3"]

    def test_room_messages_newest_first_with_paging(self, store):
        for i in range(5):
            store.insert_message(sender_id="a", room_id="r1", content=str(i))

        assert [m.content for m in store.room_messages("r1", offset=0, limit=2)] == ["4", "3"]
        assert [m.content for m in store.room_messages("r1", offset=2, limit=2)] == ["2", "1"]
        assert [m.content for m in store.room_messages("r1", offset=4, limit=2)] == ["0"]

    def test_update_status(self, store):
        record = store.insert_message(sender_id="a", receiver_id="b", content="hi")

        updated = store.update_message_status(record.id, MessageStatus.SEEN)

        assert updated.status == MessageStatus.SEEN
        assert updated.updated_at >= record.updated_at

    def test_timestamps_are_utc_aware(self, store):
        record = store.insert_message(sender_id="a", receiver_id="b", content="hi")
        stored = store.get_message(record.id)

        assert record.created_at.tzinfo == timezone.utc
        assert stored.created_at.tzinfo == timezone.utc
        assert stored.created_at == record.created_at

        room = store.create_room("Team", creator_id="a")
        assert room.updated_at.tzinfo == timezone.utc
        assert room.members[0].joined_at.tzinfo == timezone.utc

    def test_get_messages_batch(self, store):
        m1 = store.insert_message(sender_id="a", receiver_id="b", content="1")
        m2 = store.insert_message(sender_id="a", receiver_id="b", content="2")

        found = store.get_messages([m1.id, m2.id, "missing", None])

        assert set(found) == {m1.id, m2.id}
        assert store.get_messages([]) == {}

    def test_latest_direct_per_peer(self, store):
        store.insert_message(sender_id="a", receiver_id="b", content="old b")
        store.insert_message(sender_id="c", receiver_id="a", content="only c")
        store.insert_message(sender_id="b", receiver_id="a", content="new b")
        store.insert_message(sender_id="b", receiver_id="c", content="not mine")

        latest = store.latest_direct_per_peer("a")

        assert [(peer, m.content) for peer, m in latest] == [("b", "new b"), ("c", "only c")]


class TestRooms:

    def test_create_room_creator_is_admin(self, store):
        room = store.create_room("General", creator_id="a", member_ids=["b", "a", "b"])

        assert room.is_admin("a")
        assert room.member("b").role == MemberRole.MEMBER
        assert sorted(room.member_ids()) == ["a", "b"]
        assert room.last_message_id is None

    def test_membership_changes(self, store):
        room = store.create_room("General", creator_id="a")

        room = store.add_member(room.id, "b")
        assert room.is_member("b")

        room = store.set_member_role(room.id, "b", MemberRole.ADMIN)
        assert sorted(room.admin_ids()) == ["a", "b"]

        room = store.remove_member(room.id, "b")
        assert not room.is_member("b")

    def test_duplicate_membership_rejected(self, store):
        room = store.create_room("General", creator_id="a", member_ids=["b"])
        with pytest.raises(PersistenceError):
            store.add_member(room.id, "b")

    def test_rooms_for_member_sorted_by_activity(self, store):
        quiet = store.create_room("Quiet", creator_id="a")
        busy = store.create_room("Busy", creator_id="a")
        store.create_room("Elsewhere", creator_id="z")

        message = store.insert_message(sender_id="a", room_id=quiet.id, content="wake up")
        store.set_last_message(quiet.id, message.id, message.created_at)

        rooms = store.rooms_for_member("a")
        assert [r.name for r in rooms] == ["Quiet", "Busy"]
        assert rooms[0].last_message_id == message.id
        assert busy.id in {r.id for r in rooms}

    def test_get_unknown_room(self, store):
        assert store.get_room("nope") is None


class TestPersistence:

    def test_data_survives_reopen(self, temp_db):
        store = MessageStore(db_path=temp_db)
        record = store.insert_message(sender_id="a", receiver_id="b", content="durable")
        store.close()

        reopened = MessageStore(db_path=temp_db)
        assert reopened.get_message(record.id).content == "durable"
        reopened.close()

    def test_singleton(self):
        assert MessageStore.get_instance() is MessageStore.get_instance()
