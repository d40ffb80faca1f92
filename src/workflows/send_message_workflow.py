import logging
from typing import Any, Dict, Optional

from clients.supabase_client import SupabaseClient
from models.models import AppUser, Message, MessageDraft, SendErrorKind, SendResult
from services.anonymous_identity import AnonymousIdentityService, generate_avatar_color
from services.participation import ParticipationStore
from utils.constants import ErrorMessages, Rpc, Tables
from utils.errors import RemoteServiceError
from workflows.workflow import Workflow

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"
FOREIGN_KEY_VIOLATION = "23503"


class SendMessageWorkflow(Workflow):
    """Validate, authorize, rate-limit and insert one chat message."""

    def __init__(
        self,
        backend: SupabaseClient,
        participation: ParticipationStore,
        identity_service: AnonymousIdentityService,
        max_length: int = 1000,
    ):
        self.backend = backend
        self.participation = participation
        self.identity_service = identity_service
        self.max_length = max_length

    def validate_content(self, content: str | None) -> Optional[SendResult]:
        text = (content or "").strip()
        if not text:
            return SendResult.failure(
                SendErrorKind.VALIDATION, ErrorMessages.EMPTY_MESSAGE.value
            )
        if len(text) > self.max_length:
            return SendResult.failure(
                SendErrorKind.VALIDATION,
                ErrorMessages.MESSAGE_TOO_LONG.value.format(max_length=self.max_length),
            )
        return None

    def build_draft(self, content: str, user: AppUser | None = None) -> MessageDraft:
        """Resolve the sender exactly as `run` will, for the optimistic entry."""
        if user is not None:
            return MessageDraft(
                content=content.strip(),
                sender_kind="user",
                user_id=user.id,
                display_name=user.display_name or user.email,
                avatar_color=generate_avatar_color(user.id),
            )
        identity = self.identity_service.get_or_create()
        if not identity.id:
            raise RemoteServiceError("Anonymous identity has no remote id")
        return MessageDraft(
            content=content.strip(),
            sender_kind="anonymous",
            anonymous_user_id=identity.id,
            display_name=identity.generated_name,
            avatar_color=generate_avatar_color(identity.id),
        )

    def run(self, input: Dict[str, Any]) -> SendResult:
        if not isinstance(input, dict):
            raise ValueError("Input must be a dict")
        chat_group_id = input.get("chat_group_id")
        if not chat_group_id:
            raise ValueError("chat_group_id is required")
        content = input.get("content")
        user: AppUser | None = input.get("user")

        invalid = self.validate_content(content)
        if invalid is not None:
            logger.info("Rejected message before sending: %s", invalid.error)
            return invalid

        if not self.participation.has_joined_chat(chat_group_id):
            logger.error("Not authorized to send in chat %s", chat_group_id)
            return SendResult.failure(
                SendErrorKind.UNAUTHORIZED, ErrorMessages.NOT_JOINED_SEND.value
            )

        try:
            draft = input.get("draft") or self.build_draft(content, user)
        except RemoteServiceError as e:
            logger.error("Could not resolve sender: %s", e)
            return SendResult.failure(SendErrorKind.FAILED, ErrorMessages.SEND_FAILED.value)

        sender_id = draft.user_id or draft.anonymous_user_id
        try:
            can_send = self.backend.rpc(
                Rpc.CHECK_MESSAGE_RATE_LIMIT.value,
                {"sender_id": sender_id, "sender_type_param": draft.sender_kind},
            )
        except RemoteServiceError as e:
            logger.error("Rate limit check failed: %s", e)
            return SendResult.failure(
                SendErrorKind.FAILED, ErrorMessages.RATE_LIMIT_CHECK_FAILED.value
            )
        if not can_send:
            logger.warning("Rate limit exceeded for sender %s", sender_id)
            return SendResult.failure(
                SendErrorKind.RATE_LIMITED, ErrorMessages.RATE_LIMITED.value
            )

        row = {
            "chat_group_id": chat_group_id,
            "content": draft.content,
            "sender_type": draft.sender_kind,
            "user_id": draft.user_id if draft.sender_kind == "user" else None,
            "anonymous_user_id": (
                draft.anonymous_user_id if draft.sender_kind == "anonymous" else None
            ),
            "display_name": draft.display_name,
            "avatar_color": draft.avatar_color,
            "message_type": "text",
            "poll_data": None,
        }
        try:
            inserted = self.backend.insert(Tables.MESSAGES.value, row)
        except RemoteServiceError as e:
            logger.error("Failed to insert message: %s (code=%s)", e, e.code)
            return self._insert_failure(e)

        message = Message.from_row(inserted)
        if message is None:
            return SendResult.failure(SendErrorKind.FAILED, ErrorMessages.SEND_FAILED.value)
        logger.info("Message %s sent to chat %s", message.id, chat_group_id)
        self.participation.touch_chat(chat_group_id)
        return SendResult(success=True, message=message)

    def _insert_failure(self, error: RemoteServiceError) -> SendResult:
        if error.code == UNIQUE_VIOLATION:
            return SendResult.failure(
                SendErrorKind.FAILED, ErrorMessages.DUPLICATE_MESSAGE.value
            )
        if error.code == FOREIGN_KEY_VIOLATION:
            return SendResult.failure(
                SendErrorKind.FAILED, ErrorMessages.INVALID_REFERENCE.value
            )
        if "rate limit" in (error.message or "").lower():
            return SendResult.failure(
                SendErrorKind.RATE_LIMITED, ErrorMessages.RATE_LIMITED.value
            )
        return SendResult.failure(SendErrorKind.FAILED, ErrorMessages.SEND_FAILED.value)
