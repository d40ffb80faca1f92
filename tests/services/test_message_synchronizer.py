from unittest.mock import MagicMock

import pytest

from models.models import ChatSyncState, Message, MessageDraft, SendErrorKind, SendResult
from services.message_synchronizer import MessageSynchronizer, is_temp_id, make_temp_id
from test_data import MALFORMED_MESSAGE_ROWS, message_row
from utils.constants import ErrorMessages, Tables
from utils.errors import RemoteServiceError


CHAT_ID = "chat-1"


def draft(content="hi there"):
    return MessageDraft(
        content=content,
        sender_kind="anonymous",
        anonymous_user_id="anon-1",
        display_name="CrimsonFox",
    )


@pytest.fixture
def joined(participation):
    participation.join_chat(CHAT_ID, "Coffee")
    return participation


@pytest.fixture
def sync(backend, joined):
    return MessageSynchronizer(backend, joined, CHAT_ID)


def ids(sync):
    return [m.id for m in sync.messages]


def test_temp_ids():
    temp_id = make_temp_id()
    assert is_temp_id(temp_id)
    assert not is_temp_id("srv_1")
    assert temp_id != make_temp_id()


def test_requires_chat_id(backend, participation):
    with pytest.raises(ValueError):
        MessageSynchronizer(backend, participation, "")


def test_open_without_joining_is_unauthorized(backend, participation):
    sync = MessageSynchronizer(backend, participation, CHAT_ID)
    assert sync.open() == ChatSyncState.UNAUTHORIZED
    assert sync.error == ErrorMessages.NOT_JOINED_VIEW.value
    assert backend.calls == []


def test_open_loads_history_oldest_first_and_subscribes(backend, sync):
    backend.tables[Tables.CURRENT_MESSAGES.value] = [
        message_row("m2", minutes=2),
        message_row("m1", minutes=1),
        message_row("other", chat_id="chat-2", minutes=3),
    ]
    assert sync.open() == ChatSyncState.READY
    assert ids(sync) == ["m1", "m2"]
    assert backend.active_subscriptions() == 1


def test_history_limit_keeps_newest(backend, joined):
    backend.tables[Tables.CURRENT_MESSAGES.value] = [
        message_row(f"m{i}", minutes=i) for i in range(5)
    ]
    sync = MessageSynchronizer(backend, joined, CHAT_ID, history_limit=3)
    sync.open()
    assert ids(sync) == ["m2", "m3", "m4"]


def test_malformed_history_rows_are_dropped(backend, sync):
    backend.tables[Tables.CURRENT_MESSAGES.value] = [
        message_row("m1", minutes=1)
    ] + [r for r in MALFORMED_MESSAGE_ROWS if isinstance(r, dict)]
    sync.open()
    assert ids(sync) == ["m1"]


def test_history_failure_sets_error(backend, sync):
    backend.fail_next("select", RemoteServiceError("boom"))
    assert sync.open() == ChatSyncState.ERROR
    assert sync.error == ErrorMessages.LOAD_FAILED.value
    assert sync.messages == []
    assert backend.active_subscriptions() == 0


def test_subscription_failure_keeps_history(backend, sync):
    backend.tables[Tables.CURRENT_MESSAGES.value] = [message_row("m1")]
    backend.fail_next("subscribe_inserts", RemoteServiceError("socket closed"))
    assert sync.open() == ChatSyncState.ERROR
    assert ids(sync) == ["m1"]


def test_replaying_an_insert_is_idempotent(backend, sync):
    sync.open()
    row = message_row("m1")
    backend.push(Tables.MESSAGES.value, row)
    backend.push(Tables.MESSAGES.value, row)
    assert ids(sync) == ["m1"]


def test_insert_with_existing_id_replaces_in_place(backend, sync):
    backend.tables[Tables.CURRENT_MESSAGES.value] = [
        message_row("m1", minutes=1),
        message_row("m2", minutes=2),
    ]
    sync.open()
    backend.push(Tables.MESSAGES.value, message_row("m1", content="edited"))
    assert ids(sync) == ["m1", "m2"]
    assert sync.messages[0].content == "edited"


def test_invalid_or_foreign_inserts_are_ignored(sync):
    sync.open()
    for row in MALFORMED_MESSAGE_ROWS:
        assert sync.apply_insert(row) is False
    assert sync.apply_insert(message_row("x", chat_id="chat-2")) is False
    assert sync.messages == []


def test_optimistic_then_server_echo_leaves_one_copy(backend, sync):
    sync.open()
    backend.push_inserts = False
    temp_id = sync.add_optimistic(draft())
    assert sync.pending_optimistic_ids() == [temp_id]

    confirmed = Message.from_row(message_row("srv_9", content="hi there"))
    sync.resolve_optimistic(temp_id, confirmed)
    backend.push(Tables.MESSAGES.value, message_row("srv_9", content="hi there"))

    assert ids(sync) == ["srv_9"]
    assert sync.pending_optimistic_ids() == []


def test_echo_arriving_before_resolve_leaves_one_copy(backend, sync):
    sync.open()
    temp_id = sync.add_optimistic(draft())
    backend.push(Tables.MESSAGES.value, message_row("srv_9", content="hi there"))
    assert len(sync.messages) == 2

    sync.resolve_optimistic(temp_id, Message.from_row(message_row("srv_9")))
    assert ids(sync) == ["srv_9"]


def test_failed_send_removes_optimistic_entry(sync):
    sync.open()
    send_fn = MagicMock(
        return_value=SendResult.failure(SendErrorKind.RATE_LIMITED, "slow down")
    )
    result = sync.send(draft(), send_fn)
    assert result.error_kind == SendErrorKind.RATE_LIMITED
    assert sync.messages == []
    send_fn.assert_called_once()


def test_raising_send_still_resolves(sync):
    sync.open()
    result = sync.send(draft(), MagicMock(side_effect=RuntimeError("socket gone")))
    assert not result.success
    assert result.error == ErrorMessages.SEND_FAILED.value
    assert sync.pending_optimistic_ids() == []


def test_successful_send_keeps_confirmed_message(backend, sync):
    sync.open()
    backend.push_inserts = False
    confirmed = Message.from_row(message_row("srv_3", content="hi there"))
    result = sync.send(draft(), lambda d: SendResult(success=True, message=confirmed))
    assert result.success
    assert ids(sync) == ["srv_3"]
    assert sync.messages[0].is_optimistic is False


def test_optimistic_entries_survive_history_reload(backend, sync):
    backend.tables[Tables.CURRENT_MESSAGES.value] = [message_row("m1")]
    sync.open()
    temp_id = sync.add_optimistic(draft())
    sync.load_history()
    assert ids(sync) == ["m1", temp_id]


def test_channel_error_and_recovery(backend, sync):
    sync.open()
    backend.push_status("CHANNEL_ERROR")
    assert sync.state == ChatSyncState.ERROR
    assert sync.error == ErrorMessages.REALTIME_LOST.value
    backend.push_status("SUBSCRIBED")
    assert sync.state == ChatSyncState.READY


def test_close_releases_subscription_and_ignores_late_events(backend, sync):
    sync.open()
    sync.close()
    sync.close()
    assert backend.active_subscriptions() == 0
    assert sync.apply_insert(message_row("late")) is False
    assert sync.messages == []


def test_cannot_reopen_after_close(sync):
    sync.close()
    with pytest.raises(RuntimeError):
        sync.open()


def test_history_completing_after_close_is_ignored(backend, sync):
    backend.tables[Tables.CURRENT_MESSAGES.value] = [message_row("m1")]
    real_select = backend.select

    def select_then_close(*args, **kwargs):
        rows = real_select(*args, **kwargs)
        sync.close()
        return rows

    backend.select = select_then_close
    assert sync.load_history() is False
    assert sync.messages == []
