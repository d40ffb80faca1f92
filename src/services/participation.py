import logging
from typing import Dict, List

from pydantic import ValidationError

from clients.device_storage import DeviceStorage
from models.models import ChatVisit, JoinedChatRecord, utc_now
from utils.constants import StorageKeys

logger = logging.getLogger(__name__)


class ParticipationStore:
    """Joined chats and visit history kept on the device.

    Records are never deleted: leaving a chat flips `active` off and joining
    again resurrects the same record.
    """

    def __init__(self, storage: DeviceStorage):
        self.storage = storage

    def get_joined_chats(self) -> List[JoinedChatRecord]:
        raw = self.storage.get(StorageKeys.JOINED_CHATS.value, default=[])
        records: List[JoinedChatRecord] = []
        for item in raw if isinstance(raw, list) else []:
            try:
                records.append(JoinedChatRecord.model_validate(item))
            except ValidationError as e:
                logger.warning("Skipping malformed joined chat record: %s", e)
        return records

    def _save_joined_chats(self, records: List[JoinedChatRecord]):
        self.storage.set(
            StorageKeys.JOINED_CHATS.value,
            [r.model_dump(mode="json") for r in records],
        )

    def join_chat(self, chat_id: str, name: str) -> JoinedChatRecord:
        with self.storage.lock:
            records = self.get_joined_chats()
            now = utc_now()
            existing = next((r for r in records if r.chat_id == chat_id), None)
            if existing is not None:
                existing.last_activity_at = now
                existing.active = True
                record = existing
                logger.info("Rejoined chat %s (%s)", chat_id, existing.name)
            else:
                record = JoinedChatRecord(
                    chat_id=chat_id, name=name, joined_at=now, last_activity_at=now
                )
                records.append(record)
                logger.info("Joined chat %s (%s)", chat_id, name)
            self._save_joined_chats(records)
            return record

    def leave_chat(self, chat_id: str) -> bool:
        with self.storage.lock:
            records = self.get_joined_chats()
            record = next((r for r in records if r.chat_id == chat_id), None)
            if record is None:
                return False
            record.active = False
            record.last_activity_at = utc_now()
            self._save_joined_chats(records)
            logger.info("Left chat %s (%s)", chat_id, record.name)
            return True

    def has_joined_chat(self, chat_id: str) -> bool:
        return any(r.chat_id == chat_id and r.active for r in self.get_joined_chats())

    def get_active_joined_chats(self) -> List[JoinedChatRecord]:
        active = [r for r in self.get_joined_chats() if r.active]
        return sorted(active, key=lambda r: r.last_activity_at, reverse=True)

    def touch_chat(self, chat_id: str):
        with self.storage.lock:
            records = self.get_joined_chats()
            for record in records:
                if record.chat_id == chat_id:
                    record.last_activity_at = utc_now()
                    self._save_joined_chats(records)
                    return

    def get_chat_visits(self) -> Dict[str, ChatVisit]:
        raw = self.storage.get(StorageKeys.VISITED_CHATS.value, default={})
        visits: Dict[str, ChatVisit] = {}
        for chat_id, item in (raw if isinstance(raw, dict) else {}).items():
            try:
                visits[chat_id] = ChatVisit.model_validate(item)
            except ValidationError as e:
                logger.warning("Skipping malformed visit record for %s: %s", chat_id, e)
        return visits

    def track_chat_visit(self, chat_id: str, name: str) -> ChatVisit:
        with self.storage.lock:
            visits = self.get_chat_visits()
            previous = visits.get(chat_id)
            visit = ChatVisit(
                chat_id=chat_id,
                name=name,
                last_visited_at=utc_now(),
                visit_count=(previous.visit_count if previous else 0) + 1,
            )
            visits[chat_id] = visit
            self.storage.set(
                StorageKeys.VISITED_CHATS.value,
                {k: v.model_dump(mode="json") for k, v in visits.items()},
            )
            return visit

    def clear(self):
        self.storage.remove(
            StorageKeys.JOINED_CHATS.value, StorageKeys.VISITED_CHATS.value
        )
        logger.info("Cleared participation data")
