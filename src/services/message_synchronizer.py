import logging
import secrets
import string
import threading
import time
from typing import Any, Callable, Dict, List, Optional

from clients.supabase_client import InsertSubscription, SupabaseClient
from models.models import (
    ChatSyncState,
    Message,
    MessageDraft,
    SendErrorKind,
    SendResult,
    utc_now,
)
from services.participation import ParticipationStore
from utils.constants import ErrorMessages, Tables, TEMP_MESSAGE_ID_PREFIX
from utils.errors import RemoteServiceError

logger = logging.getLogger(__name__)

_BASE36 = string.digits + string.ascii_lowercase
CHANNEL_ERROR_STATES = {"CHANNEL_ERROR", "TIMED_OUT"}


def make_temp_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{TEMP_MESSAGE_ID_PREFIX}{int(time.time() * 1000)}_{suffix}"


def is_temp_id(message_id: str) -> bool:
    return message_id.startswith(TEMP_MESSAGE_ID_PREFIX)


class MessageSynchronizer:
    """Live, de-duplicated message list for one open chat.

    History is loaded oldest-first, new rows arrive over a realtime INSERT
    channel and are applied append-or-replace by id, and locally sent
    messages show up immediately as optimistic entries until the send call
    settles. Every list mutation happens under one lock because realtime
    events are delivered on the backend loop thread while the UI thread adds
    and resolves optimistic entries.
    """

    def __init__(
        self,
        backend: SupabaseClient,
        participation: ParticipationStore,
        chat_group_id: str,
        history_limit: int = 100,
        realtime_enabled: bool = True,
    ):
        if not chat_group_id:
            raise ValueError("chat_group_id is required")
        self.backend = backend
        self.participation = participation
        self.chat_group_id = chat_group_id
        self.history_limit = history_limit
        self.realtime_enabled = realtime_enabled
        self.state = ChatSyncState.LOADING
        self.error: Optional[str] = None
        self._messages: List[Message] = []
        self._subscription: Optional[InsertSubscription] = None
        self._closed = False
        self._lock = threading.RLock()

    @property
    def messages(self) -> List[Message]:
        with self._lock:
            return list(self._messages)

    @property
    def closed(self) -> bool:
        return self._closed

    def pending_optimistic_ids(self) -> List[str]:
        with self._lock:
            return [m.id for m in self._messages if m.is_optimistic]

    def open(self) -> ChatSyncState:
        if self._closed:
            raise RuntimeError("Synchronizer has been closed")
        if not self.participation.has_joined_chat(self.chat_group_id):
            logger.error("Not authorized for chat %s", self.chat_group_id)
            self._set_state(ChatSyncState.UNAUTHORIZED, ErrorMessages.NOT_JOINED_VIEW.value)
            return self.state

        self._set_state(ChatSyncState.LOADING, None)
        if not self.load_history():
            return self.state
        if self.realtime_enabled and not self.subscribe_to_inserts():
            return self.state
        if not self._closed and self.state != ChatSyncState.ERROR:
            self._set_state(ChatSyncState.READY, None)
        return self.state

    def _set_state(self, state: ChatSyncState, error: Optional[str]):
        with self._lock:
            if self.state == ChatSyncState.UNAUTHORIZED:
                return
            self.state = state
            self.error = error

    def load_history(self) -> bool:
        """Fetch the newest `history_limit` messages and store them oldest-first."""
        logger.info("Loading history for chat %s", self.chat_group_id)
        try:
            rows = self.backend.select(
                Tables.CURRENT_MESSAGES.value,
                filters={"chat_group_id": self.chat_group_id},
                order_by="sent_at",
                descending=True,
                limit=self.history_limit,
            )
        except RemoteServiceError as e:
            logger.error("Failed to load history for %s: %s", self.chat_group_id, e)
            if not self._closed:
                self._set_state(ChatSyncState.ERROR, ErrorMessages.LOAD_FAILED.value)
            return False

        history = [m for m in (Message.from_row(r) for r in reversed(rows)) if m is not None]
        with self._lock:
            if self._closed:
                logger.info("Ignoring history for closed chat %s", self.chat_group_id)
                return False
            seen = set()
            merged: List[Message] = []
            for message in history:
                if message.id in seen:
                    continue
                seen.add(message.id)
                merged.append(message)
            for message in self._messages:
                if message.is_optimistic and message.id not in seen:
                    merged.append(message)
            self._messages = merged
        logger.info(
            "Loaded %d messages for chat %s (%d rows dropped)",
            len(history),
            self.chat_group_id,
            len(rows) - len(history),
        )
        return True

    def subscribe_to_inserts(self) -> bool:
        if self._subscription is not None and not self._subscription.closed:
            return True
        try:
            subscription = self.backend.subscribe_inserts(
                Tables.MESSAGES.value,
                "chat_group_id",
                self.chat_group_id,
                on_insert=self.apply_insert,
                on_status=self._on_channel_status,
            )
        except RemoteServiceError as e:
            logger.error("Realtime subscription failed for %s: %s", self.chat_group_id, e)
            if not self._closed:
                self._set_state(ChatSyncState.ERROR, ErrorMessages.REALTIME_LOST.value)
            return False
        with self._lock:
            if self._closed:
                subscription.close()
                return False
            self._subscription = subscription
        return True

    def _on_channel_status(self, status: str, err: Optional[Exception] = None):
        if self._closed:
            return
        if status in CHANNEL_ERROR_STATES:
            self._set_state(ChatSyncState.ERROR, ErrorMessages.REALTIME_LOST.value)
        elif status == "SUBSCRIBED" and self.state == ChatSyncState.ERROR:
            self._set_state(ChatSyncState.READY, None)

    def apply_insert(self, row: Dict[str, Any]) -> bool:
        """Apply one pushed row; replaying the same row leaves the list unchanged."""
        if self._closed:
            return False
        message = Message.from_row(row)
        if message is None:
            logger.warning("Ignoring invalid realtime message for %s", self.chat_group_id)
            return False
        if message.chat_group_id != self.chat_group_id:
            logger.warning("Ignoring realtime message for another chat: %s", message.chat_group_id)
            return False
        with self._lock:
            if self._closed:
                return False
            self._upsert(message.confirmed())
        return True

    def _upsert(self, message: Message):
        for idx, existing in enumerate(self._messages):
            if existing.id == message.id:
                self._messages[idx] = message
                return
        self._messages.append(message)

    def add_optimistic(self, draft: MessageDraft) -> str:
        temp_id = make_temp_id()
        optimistic = Message(
            id=temp_id,
            chat_group_id=self.chat_group_id,
            content=draft.content,
            sent_at=utc_now(),
            sender_kind=draft.sender_kind,
            user_id=draft.user_id,
            anonymous_user_id=draft.anonymous_user_id,
            display_name=draft.display_name,
            avatar_color=draft.avatar_color or "#666",
            is_optimistic=True,
        )
        with self._lock:
            self._messages.append(optimistic)
        logger.debug("Added optimistic message %s", temp_id)
        return temp_id

    def resolve_optimistic(self, temp_id: str, confirmed: Optional[Message]) -> bool:
        """Settle an optimistic entry: replace it on success, drop it on failure."""
        with self._lock:
            idx = next(
                (i for i, m in enumerate(self._messages) if m.id == temp_id), None
            )
            if idx is None:
                return False
            if confirmed is None:
                del self._messages[idx]
                logger.info("Removed failed optimistic message %s", temp_id)
                return True
            confirmed = confirmed.confirmed()
            if any(m.id == confirmed.id for m in self._messages):
                # the realtime echo got here first
                del self._messages[idx]
                self._upsert(confirmed)
            else:
                self._messages[idx] = confirmed
            logger.info("Confirmed optimistic message %s as %s", temp_id, confirmed.id)
            return True

    def send(
        self, draft: MessageDraft, send_fn: Callable[[MessageDraft], SendResult]
    ) -> SendResult:
        temp_id = self.add_optimistic(draft)
        result: SendResult | None = None
        try:
            result = send_fn(draft)
            return result
        except Exception as e:
            logger.error("Send failed for optimistic message %s: %s", temp_id, e)
            result = SendResult.failure(SendErrorKind.FAILED, ErrorMessages.SEND_FAILED.value)
            return result
        finally:
            confirmed = result.message if result is not None and result.success else None
            self.resolve_optimistic(temp_id, confirmed)

    def close(self):
        with self._lock:
            if self._closed:
                return
            self._closed = True
            subscription = self._subscription
            self._subscription = None
        if subscription is not None:
            subscription.close()
        logger.info("Closed message synchronizer for chat %s", self.chat_group_id)
