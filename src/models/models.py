import logging
import math
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Literal, Optional

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000
SenderKind = Literal["user", "anonymous"]
MessageKind = Literal["text", "poll"]
MESSAGE_REQUIRED_FIELDS = (
    "id",
    "chat_group_id",
    "content",
    "sent_at",
    "sender_type",
    "display_name",
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def _check_sender_reference(
    sender_kind: str, user_id: Optional[str], anonymous_user_id: Optional[str]
):
    if sender_kind == "user":
        ok = bool(user_id) and not anonymous_user_id
    else:
        ok = bool(anonymous_user_id) and not user_id
    if not ok:
        raise ValueError(f"sender reference does not match sender kind {sender_kind!r}")


class Coordinate(BaseModel):
    model_config = ConfigDict(frozen=True)
    latitude: float
    longitude: float
    accuracy: Optional[float] = None

    @field_validator("latitude", "longitude")
    @classmethod
    def _finite(cls, value: float) -> float:
        if not math.isfinite(value):
            raise ValueError("coordinate must be finite")
        return value

    @model_validator(mode="after")
    def _in_range(self) -> "Coordinate":
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError("latitude must be between -90 and 90")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError("longitude must be between -180 and 180")
        return self


class ChatGroupSummary(BaseModel):
    id: str
    name: str
    description: str = ""
    owner_ref: Optional[str] = None
    coordinate: Coordinate
    created_at: Optional[datetime] = None
    last_activity_at: Optional[datetime] = None
    active: bool = True
    member_count_estimate: Optional[int] = None
    distance_km: Optional[float] = None
    is_sample: bool = False

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> Optional["ChatGroupSummary"]:
        if not isinstance(row, dict) or not row.get("id") or not row.get("name"):
            logger.warning("Dropping chat group row without id/name: %s", row)
            return None
        try:
            return cls(
                id=str(row["id"]),
                name=row["name"],
                description=row.get("description") or "",
                owner_ref=row.get("creator_id"),
                coordinate=Coordinate(latitude=row.get("lat"), longitude=row.get("lng")),
                created_at=row.get("created_at"),
                last_activity_at=row.get("last_activity"),
                active=row.get("is_active", True),
                member_count_estimate=row.get("member_count"),
            )
        except (ValidationError, TypeError, ValueError) as e:
            logger.warning("Dropping malformed chat group row %s: %s", row.get("id"), e)
            return None


class PollOption(BaseModel):
    id: str
    text: str


class PollData(BaseModel):
    model_config = ConfigDict(populate_by_name=True)
    question: str
    options: List[PollOption]
    allow_multiple: bool = Field(default=False, alias="allowMultiple")


class PollResult(BaseModel):
    option_id: str
    vote_count: int


class Message(BaseModel):
    id: str
    chat_group_id: str
    content: str = Field(max_length=MAX_MESSAGE_LENGTH)
    sent_at: datetime
    sender_kind: SenderKind
    user_id: Optional[str] = None
    anonymous_user_id: Optional[str] = None
    display_name: str
    avatar_color: Optional[str] = None
    kind: MessageKind = "text"
    poll: Optional[PollData] = None
    is_optimistic: bool = False

    @model_validator(mode="after")
    def _one_sender_reference(self) -> "Message":
        _check_sender_reference(self.sender_kind, self.user_id, self.anonymous_user_id)
        return self

    @classmethod
    def from_row(cls, row: Any) -> Optional["Message"]:
        """Validate a backend row into a Message, or None when malformed."""
        if not isinstance(row, dict):
            logger.warning("Dropping non-object message row: %r", row)
            return None
        missing = [f for f in MESSAGE_REQUIRED_FIELDS if row.get(f) is None]
        if missing:
            logger.warning("Dropping message row missing %s: %s", missing, row.get("id"))
            return None
        if row["sender_type"] not in ("user", "anonymous"):
            logger.warning("Dropping message row with sender_type %r", row["sender_type"])
            return None
        try:
            return cls(
                id=str(row["id"]),
                chat_group_id=str(row["chat_group_id"]),
                content=row["content"],
                sent_at=row["sent_at"],
                sender_kind=row["sender_type"],
                user_id=row.get("user_id"),
                anonymous_user_id=row.get("anonymous_user_id"),
                display_name=row["display_name"],
                avatar_color=row.get("avatar_color"),
                kind=row.get("message_type") or "text",
                poll=row.get("poll_data"),
            )
        except ValidationError as e:
            logger.warning("Dropping invalid message row %s: %s", row.get("id"), e)
            return None

    def confirmed(self) -> "Message":
        return self.model_copy(update={"is_optimistic": False})


class MessageDraft(BaseModel):
    content: str
    sender_kind: SenderKind = "anonymous"
    user_id: Optional[str] = None
    anonymous_user_id: Optional[str] = None
    display_name: str = "Unknown"
    avatar_color: Optional[str] = None

    @model_validator(mode="after")
    def _one_sender_reference(self) -> "MessageDraft":
        _check_sender_reference(self.sender_kind, self.user_id, self.anonymous_user_id)
        return self


class JoinedChatRecord(BaseModel):
    chat_id: str
    name: str
    joined_at: datetime = Field(default_factory=utc_now)
    last_activity_at: datetime = Field(default_factory=utc_now)
    active: bool = True


class ChatVisit(BaseModel):
    chat_id: str
    name: str
    last_visited_at: datetime = Field(default_factory=utc_now)
    visit_count: int = 0


class AnonymousIdentity(BaseModel):
    id: Optional[str] = None
    device_id: str
    generated_name: str
    last_seen_at: Optional[datetime] = None


class AppUser(BaseModel):
    id: str
    email: str
    display_name: str


class SendErrorKind(str, Enum):
    VALIDATION = "validation"
    UNAUTHORIZED = "unauthorized"
    RATE_LIMITED = "rate_limited"
    FAILED = "failed"


class SendResult(BaseModel):
    success: bool
    message: Optional[Message] = None
    error: Optional[str] = None
    error_kind: Optional[SendErrorKind] = None

    @classmethod
    def failure(cls, kind: SendErrorKind, error: str) -> "SendResult":
        return cls(success=False, error=error, error_kind=kind)


class ChatSyncState(str, Enum):
    UNAUTHORIZED = "unauthorized"
    LOADING = "loading"
    READY = "ready"
    ERROR = "error"


class DiscoveryInput(BaseModel):
    origin: Coordinate
    radius_km: float = Field(default=5.0, gt=0)


class NearbyCacheEntry(BaseModel):
    origin: Coordinate
    groups: List[ChatGroupSummary]
    cached_at: datetime
    expires_at: datetime
