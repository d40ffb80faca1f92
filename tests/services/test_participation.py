import time

from utils.constants import StorageKeys


def test_join_then_has_joined(participation):
    participation.join_chat("c1", "Coffee")
    assert participation.has_joined_chat("c1")
    assert not participation.has_joined_chat("c2")


def test_leave_keeps_record_but_deactivates(participation):
    participation.join_chat("c1", "Coffee")
    assert participation.leave_chat("c1")
    assert not participation.has_joined_chat("c1")
    records = participation.get_joined_chats()
    assert len(records) == 1
    assert records[0].active is False


def test_leave_unknown_chat_returns_false(participation):
    assert participation.leave_chat("nope") is False


def test_rejoin_resurrects_same_record(participation):
    first = participation.join_chat("c1", "Coffee")
    participation.leave_chat("c1")
    again = participation.join_chat("c1", "Renamed")
    assert again.joined_at == first.joined_at
    assert again.name == "Coffee"
    assert len(participation.get_joined_chats()) == 1
    assert participation.has_joined_chat("c1")


def test_active_chats_sorted_newest_activity_first(participation):
    participation.join_chat("c1", "One")
    time.sleep(0.01)
    participation.join_chat("c2", "Two")
    time.sleep(0.01)
    participation.touch_chat("c1")
    participation.join_chat("c3", "Three")
    participation.leave_chat("c3")
    assert [r.chat_id for r in participation.get_active_joined_chats()] == ["c1", "c2"]


def test_track_visit_counts(participation):
    participation.track_chat_visit("c1", "Coffee")
    visit = participation.track_chat_visit("c1", "Coffee")
    assert visit.visit_count == 2
    assert participation.get_chat_visits()["c1"].visit_count == 2


def test_malformed_records_are_skipped(participation, storage):
    storage.set(
        StorageKeys.JOINED_CHATS.value,
        [{"chat_id": "c1", "name": "ok"}, {"name": "missing id"}, "junk"],
    )
    assert [r.chat_id for r in participation.get_joined_chats()] == ["c1"]


def test_clear_removes_everything(participation):
    participation.join_chat("c1", "Coffee")
    participation.track_chat_visit("c1", "Coffee")
    participation.clear()
    assert participation.get_joined_chats() == []
    assert participation.get_chat_visits() == {}
