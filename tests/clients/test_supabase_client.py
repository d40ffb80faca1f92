import concurrent.futures
from unittest.mock import MagicMock

import httpx
import pytest
from postgrest.exceptions import APIError
from websockets.exceptions import WebSocketException

from clients.supabase_client import InsertSubscription, SupabaseClient, _extract_record
from utils.errors import (
    RemoteConnectionError,
    RemoteServiceError,
    RemoteTimeoutError,
    RemoteUnavailableError,
)


def make_client(side_effect=None, return_value=None):
    loop = MagicMock()
    loop.run.side_effect = side_effect
    loop.run.return_value = return_value
    client = SupabaseClient("https://example.supabase.co", "anon-key", loop=loop)
    client._client = MagicMock()
    return client, loop


def test_extract_record_from_payload_shapes():
    row = {"id": "m1"}
    assert _extract_record({"data": {"record": row}}) == row
    assert _extract_record({"new": row}) == row
    assert _extract_record({"record": row}) == row
    assert _extract_record({"data": {}}) is None
    assert _extract_record("nope") is None


def test_unconfigured_client_is_unavailable():
    client = SupabaseClient("", "", loop=MagicMock())
    assert not client.is_configured
    with pytest.raises(RemoteUnavailableError):
        client.select("chat_groups")


def test_api_error_keeps_code():
    client, _ = make_client(
        side_effect=APIError({"message": "duplicate key", "code": "23505"})
    )
    with pytest.raises(RemoteServiceError) as exc_info:
        client.insert("messages", {"content": "hi"})
    assert exc_info.value.code == "23505"
    assert not exc_info.value.retryable


@pytest.mark.parametrize(
    "error",
    [concurrent.futures.TimeoutError(), httpx.ReadTimeout("slow")],
)
def test_timeouts_are_mapped(error):
    client, _ = make_client(side_effect=error)
    with pytest.raises(RemoteTimeoutError):
        client.select("chat_groups", timeout=1)


def test_network_error_is_retryable():
    client, _ = make_client(side_effect=httpx.ConnectError("connection refused"))
    with pytest.raises(RemoteServiceError) as exc_info:
        client.rpc("check_message_rate_limit", {})
    assert exc_info.value.retryable


def test_subscription_close_is_idempotent():
    client = MagicMock()
    subscription = InsertSubscription(client, channel="chan", topic="messages:chat_group_id:c1")
    subscription.close()
    subscription.close()
    assert subscription.closed
    client.remove_channel.assert_called_once_with("chan", "messages:chat_group_id:c1")


def test_remove_channel_failure_is_logged_not_raised():
    client, _ = make_client(side_effect=RemoteServiceError("gone"))
    client.remove_channel(MagicMock(), "topic")


def test_refused_connection_is_retryable():
    client, _ = make_client(side_effect=ConnectionRefusedError("Connection refused"))
    with pytest.raises(RemoteConnectionError) as exc_info:
        client.select("chat_groups")
    assert exc_info.value.retryable


@pytest.mark.parametrize(
    "error",
    [OSError("Network is unreachable"), WebSocketException("handshake rejected")],
)
def test_socket_errors_are_mapped(error):
    client, _ = make_client(side_effect=error)
    with pytest.raises(RemoteServiceError):
        client.rpc("get_poll_results", {})


def test_realtime_subscribe_errors_are_mapped():
    client, _ = make_client(side_effect=RuntimeError("not connected"))
    with pytest.raises(RemoteServiceError):
        client.subscribe_inserts("messages", "chat_group_id", "c1", on_insert=MagicMock())
