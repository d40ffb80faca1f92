import logging
import secrets
import string
import time

from clients.device_storage import DeviceStorage
from clients.supabase_client import SupabaseClient
from models.models import AnonymousIdentity, utc_now
from utils.constants import StorageKeys, Tables

logger = logging.getLogger(__name__)

COLORS = [
    "Crimson", "Azure", "Emerald", "Golden", "Violet", "Scarlet", "Turquoise",
    "Silver", "Amber", "Coral", "Navy", "Rose", "Jade", "Copper", "Pearl",
]
ANIMALS = [
    "Fox", "Wolf", "Bear", "Eagle", "Tiger", "Lion", "Deer", "Hawk",
    "Raven", "Owl", "Swan", "Falcon", "Lynx", "Otter", "Panda",
]
_BASE36 = string.digits + string.ascii_lowercase


def string_hash(value: str) -> int:
    """32-bit signed `hash * 31 + char` rolling hash."""
    h = 0
    for ch in value:
        h = ((h << 5) - h + ord(ch)) & 0xFFFFFFFF
    return h - 0x100000000 if h >= 0x80000000 else h


def generate_device_id() -> str:
    suffix = "".join(secrets.choice(_BASE36) for _ in range(9))
    return f"{int(time.time() * 1000)}_{suffix}"


def generate_anonymous_name(device_id: str) -> str:
    h = string_hash(device_id)
    color = COLORS[abs(h) % len(COLORS)]
    animal = ANIMALS[abs(h >> 8) % len(ANIMALS)]
    return f"{color}{animal}"


def generate_avatar_color(seed: str) -> str:
    hue = abs(string_hash(seed)) % 360
    return f"hsl({hue}, 70%, 50%)"


class AnonymousIdentityService:
    def __init__(self, backend: SupabaseClient, storage: DeviceStorage):
        self.backend = backend
        self.storage = storage
        self._identity: AnonymousIdentity | None = None

    def device_id(self) -> str:
        with self.storage.lock:
            device_id = self.storage.get(StorageKeys.DEVICE_ID.value)
            if not device_id:
                device_id = generate_device_id()
                self.storage.set(StorageKeys.DEVICE_ID.value, device_id, private=True)
                logger.info("Generated new device id")
            return device_id

    def local_identity(self) -> AnonymousIdentity:
        device_id = self.device_id()
        return AnonymousIdentity(
            device_id=device_id, generated_name=generate_anonymous_name(device_id)
        )

    def get_or_create(self) -> AnonymousIdentity:
        """Return this device's identity, upserting the remote mirror row.

        The row is created on first use and its `last_seen` refreshed on every
        later call. Backend errors propagate to the caller.
        """
        local = self.local_identity()
        row = self.backend.upsert(
            Tables.ANONYMOUS_USERS.value,
            {
                "device_id": local.device_id,
                "generated_name": local.generated_name,
                "last_seen": utc_now().isoformat(),
            },
            on_conflict="device_id",
        )
        identity = AnonymousIdentity(
            id=str(row["id"]) if row.get("id") else None,
            device_id=local.device_id,
            generated_name=row.get("generated_name") or local.generated_name,
            last_seen_at=row.get("last_seen"),
        )
        logger.info("Anonymous identity ready: %s", identity.generated_name)
        self._identity = identity
        return identity

    def cached_identity(self) -> AnonymousIdentity | None:
        """Last identity returned by `get_or_create`, without a network call."""
        return self._identity
