import concurrent.futures
import logging
import threading
from typing import Any, Callable, Dict, List, Optional

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, acreate_client
from websockets.exceptions import WebSocketException

from utils.errors import (
    AuthError,
    RemoteConnectionError,
    RemoteServiceError,
    RemoteTimeoutError,
    RemoteUnavailableError,
)
from utils.event_loop import BackgroundLoop

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 15.0
CHANNEL_ERROR_STATES = {"CHANNEL_ERROR", "TIMED_OUT"}

InsertCallback = Callable[[Dict[str, Any]], None]
StatusCallback = Callable[[str, Optional[Exception]], None]


def _extract_record(payload: Any) -> Optional[Dict[str, Any]]:
    """Pull the inserted row out of a realtime postgres_changes payload."""
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if isinstance(data, dict) and isinstance(data.get("record"), dict):
        return data["record"]
    for key in ("new", "record"):
        if isinstance(payload.get(key), dict):
            return payload[key]
    return None


class InsertSubscription:
    """Handle for one realtime channel; `close()` releases it server side."""

    def __init__(self, client: "SupabaseClient", channel: Any, topic: str):
        self._client = client
        self._channel = channel
        self.topic = topic
        self._closed = False
        self._lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._client.remove_channel(self._channel, self.topic)


class SupabaseClient:
    """Synchronous facade over the async Supabase client.

    All I/O runs on a private background loop so realtime channels keep
    delivering events between Streamlit reruns.
    """

    def __init__(
        self,
        url: str,
        anon_key: str,
        default_timeout: float = DEFAULT_TIMEOUT_SECONDS,
        loop: BackgroundLoop | None = None,
    ):
        self.url = (url or "").strip()
        self.anon_key = (anon_key or "").strip()
        self.default_timeout = default_timeout
        self._loop = loop or BackgroundLoop(name="supabase-loop")
        self._client: AsyncClient | None = None
        self._client_lock = threading.Lock()

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)

    def _run(self, coro_factory: Callable[[AsyncClient], Any], timeout: float | None):
        client = self._get_client()
        timeout = self.default_timeout if timeout is None else timeout
        try:
            return self._loop.run(coro_factory(client), timeout=timeout)
        except concurrent.futures.TimeoutError as e:
            raise RemoteTimeoutError(f"Request timed out after {timeout}s") from e
        except APIError as e:
            raise RemoteServiceError(e.message or str(e), code=e.code) from e
        except httpx.TimeoutException as e:
            raise RemoteTimeoutError(str(e) or "Request timed out") from e
        except httpx.HTTPError as e:
            raise RemoteServiceError(str(e) or "Network error") from e
        except ConnectionError as e:
            raise RemoteConnectionError(str(e) or type(e).__name__) from e
        except (OSError, WebSocketException) as e:
            raise RemoteServiceError(str(e) or type(e).__name__) from e

    def _get_client(self) -> AsyncClient:
        if not self.is_configured:
            raise RemoteUnavailableError("Supabase URL or anon key is not configured")
        with self._client_lock:
            if self._client is None:
                try:
                    self._client = self._loop.run(
                        acreate_client(self.url, self.anon_key),
                        timeout=self.default_timeout,
                    )
                except concurrent.futures.TimeoutError as e:
                    raise RemoteUnavailableError("Timed out creating Supabase client") from e
                except Exception as e:
                    raise RemoteUnavailableError(f"Could not create Supabase client: {e}") from e
                logger.info("Supabase client created for %s", self.url)
            return self._client

    # Tables

    def select(
        self,
        table: str,
        columns: str = "*",
        filters: Dict[str, Any] | None = None,
        in_filters: Dict[str, List[Any]] | None = None,
        order_by: str | None = None,
        descending: bool = False,
        limit: int | None = None,
        timeout: float | None = None,
    ) -> List[Dict[str, Any]]:
        async def _query(client: AsyncClient):
            query = client.table(table).select(columns)
            for column, value in (filters or {}).items():
                query = query.eq(column, value)
            for column, values in (in_filters or {}).items():
                query = query.in_(column, values)
            if order_by:
                query = query.order(order_by, desc=descending)
            if limit is not None:
                query = query.limit(limit)
            response = await query.execute()
            return response.data or []

        return self._run(_query, timeout)

    def insert(
        self, table: str, row: Dict[str, Any], timeout: float | None = None
    ) -> Dict[str, Any]:
        async def _insert(client: AsyncClient):
            response = await client.table(table).insert(row).execute()
            return response.data[0] if response.data else {}

        return self._run(_insert, timeout)

    def upsert(
        self,
        table: str,
        row: Dict[str, Any],
        on_conflict: str,
        timeout: float | None = None,
    ) -> Dict[str, Any]:
        async def _upsert(client: AsyncClient):
            response = (
                await client.table(table).upsert(row, on_conflict=on_conflict).execute()
            )
            return response.data[0] if response.data else {}

        return self._run(_upsert, timeout)

    def rpc(
        self, function: str, params: Dict[str, Any], timeout: float | None = None
    ) -> Any:
        async def _rpc(client: AsyncClient):
            response = await client.rpc(function, params).execute()
            return response.data

        return self._run(_rpc, timeout)

    # Realtime

    def subscribe_inserts(
        self,
        table: str,
        column: str,
        value: str,
        on_insert: InsertCallback,
        on_status: StatusCallback | None = None,
        timeout: float | None = None,
    ) -> InsertSubscription:
        topic = f"{table}:{column}:{value}"

        def _handle_change(payload: Any):
            record = _extract_record(payload)
            if record is None:
                logger.warning("Realtime payload without a record on %s", topic)
                return
            on_insert(record)

        def _handle_status(status: Any, err: Optional[Exception] = None):
            name = str(getattr(status, "value", status))
            if name in CHANNEL_ERROR_STATES:
                logger.error("Realtime channel %s reported %s: %s", topic, name, err)
            else:
                logger.info("Realtime channel %s status %s", topic, name)
            if on_status is not None:
                on_status(name, err)

        async def _subscribe(client: AsyncClient):
            channel = client.channel(topic)
            channel.on_postgres_changes(
                "INSERT",
                callback=_handle_change,
                table=table,
                schema="public",
                filter=f"{column}=eq.{value}",
            )
            await channel.subscribe(_handle_status)
            return channel

        try:
            channel = self._run(_subscribe, timeout)
        except RemoteServiceError:
            raise
        except Exception as e:
            # realtime client errors (not connected, rejected join)
            raise RemoteServiceError(f"Realtime subscribe failed on {topic}: {e}") from e
        return InsertSubscription(self, channel, topic)

    def remove_channel(self, channel: Any, topic: str = ""):
        async def _remove(client: AsyncClient):
            await client.remove_channel(channel)

        try:
            self._run(_remove, None)
            logger.info("Realtime channel %s removed", topic)
        except RemoteServiceError as e:
            logger.warning("Failed to remove realtime channel %s: %s", topic, e)

    # Auth

    def _run_auth(self, coro_factory: Callable[[AsyncClient], Any]):
        try:
            return self._run(coro_factory, None)
        except RemoteServiceError:
            raise
        except Exception as e:
            raise AuthError(str(e)) from e

    def sign_up(self, email: str, password: str) -> str:
        async def _sign_up(client: AsyncClient):
            return await client.auth.sign_up({"email": email, "password": password})

        response = self._run_auth(_sign_up)
        if not response or not response.user:
            raise AuthError("Failed to create user")
        return response.user.id

    def sign_in(self, email: str, password: str) -> str:
        async def _sign_in(client: AsyncClient):
            return await client.auth.sign_in_with_password(
                {"email": email, "password": password}
            )

        response = self._run_auth(_sign_in)
        if not response or not response.user:
            raise AuthError("Failed to sign in")
        return response.user.id

    def sign_out(self):
        async def _sign_out(client: AsyncClient):
            await client.auth.sign_out()

        self._run_auth(_sign_out)

    def current_user_id(self) -> str | None:
        async def _session(client: AsyncClient):
            return await client.auth.get_session()

        session = self._run_auth(_session)
        if not session or not session.user:
            return None
        return session.user.id
