import logging
from typing import Callable

import streamlit as st

from config.config import SETTINGS
from models.models import ChatSyncState, Message, SendErrorKind
from services.message_synchronizer import MessageSynchronizer
from services.participation import ParticipationStore
from services.poll_service import PollService
from ui.net_action import net_action
from ui.Page import Page
from ui.state import close_active_chat
from utils.errors import RemoteServiceError
from workflows.send_message_workflow import SendMessageWorkflow

logger = logging.getLogger(__name__)

REFRESH_SECONDS = 2


class ChatPage(Page):
    """Live message view for the active chat."""

    def __init__(
        self,
        synchronizer_factory: Callable[..., MessageSynchronizer],
        send_message_workflow: SendMessageWorkflow,
        participation: ParticipationStore,
        poll_service: PollService,
    ):
        self.synchronizer_factory = synchronizer_factory
        self.send_message_workflow = send_message_workflow
        self.participation = participation
        self.poll_service = poll_service

    def _synchronizer(self, chat_id: str) -> MessageSynchronizer:
        syncs = st.session_state.synchronizers
        for other_id in [k for k in syncs if k != chat_id]:
            syncs.pop(other_id).close()

        sync = syncs.get(chat_id)
        if sync is None or sync.closed:
            sync = self.synchronizer_factory(chat_group_id=chat_id)
            syncs[chat_id] = sync
            with net_action("Loading messages..."):
                sync.open()
        return sync

    def _retry(self, chat_id: str):
        sync = st.session_state.synchronizers.pop(chat_id, None)
        if sync is not None:
            sync.close()

    def _voter(self) -> tuple[str, str]:
        user = st.session_state.current_user
        if user is not None:
            return "user", user.id
        identity_service = self.send_message_workflow.identity_service
        identity = identity_service.cached_identity() or identity_service.get_or_create()
        return "anonymous", identity.id or ""

    def _vote(self, message_id: str, option_id: str):
        try:
            kind, voter_id = self._voter()
            if not self.poll_service.vote(message_id, option_id, kind, voter_id):
                st.toast("Your vote could not be recorded.")
        except RemoteServiceError as e:
            logger.error("Vote failed: %s", e)
            st.toast("Your vote could not be recorded.")

    def _render_poll(self, message: Message):
        poll = message.poll
        if poll is None:
            return
        st.markdown(f"**{poll.question}**")
        tallies = {}
        if not message.is_optimistic:
            try:
                tallies = {r.option_id: r.vote_count for r in self.poll_service.results(message.id)}
            except RemoteServiceError as e:
                logger.warning("Poll results unavailable for %s: %s", message.id, e)
        for option in poll.options:
            st.button(
                f"{option.text} ({tallies.get(option.id, 0)})",
                key=f"vote_{message.id}_{option.id}",
                disabled=message.is_optimistic,
                on_click=self._vote,
                args=(message.id, option.id),
            )

    def _render_message(self, message: Message):
        with st.chat_message(name=message.display_name):
            st.caption(
                f"{message.display_name} · {message.sent_at.astimezone():%H:%M}"
                + (" · sending..." if message.is_optimistic else "")
            )
            if message.kind == "poll":
                self._render_poll(message)
            else:
                st.markdown(message.content)

    def _render_messages(self, sync: MessageSynchronizer):
        if sync.state == ChatSyncState.ERROR and sync.error:
            st.warning(sync.error)
        messages = sync.messages
        if not messages:
            st.caption("No messages in the last 24 hours. Say hello!")
        for message in messages:
            self._render_message(message)

    def _send(self, sync: MessageSynchronizer, chat_id: str, content: str):
        invalid = self.send_message_workflow.validate_content(content)
        if invalid is not None:
            st.session_state.send_error = invalid.error
            return
        user = st.session_state.current_user
        try:
            draft = self.send_message_workflow.build_draft(content, user)
        except RemoteServiceError as e:
            logger.error("Could not prepare message: %s", e)
            st.session_state.send_error = "Could not reach the chat service."
            return

        result = sync.send(
            draft,
            lambda d: self.send_message_workflow.run(
                {"chat_group_id": chat_id, "content": d.content, "user": user, "draft": d}
            ),
        )
        if result.success:
            st.session_state.send_error = None
        elif result.error_kind == SendErrorKind.RATE_LIMITED:
            st.session_state.send_error = (
                f":material/timer: {result.error} "
                f"(up to {SETTINGS.rate_limit_messages_per_minute} messages per minute)"
            )
        else:
            st.session_state.send_error = result.error

    def on_leave(self):
        close_active_chat()

    def render(self):
        chat_id = st.session_state.active_chat_id
        if not chat_id:
            return
        col_title, col_back = st.columns([5, 1])
        col_title.title(st.session_state.active_chat_name or "Chat")
        col_back.button("Back", icon=":material/arrow_back:", on_click=close_active_chat)

        try:
            sync = self._synchronizer(chat_id)
            if sync.state == ChatSyncState.UNAUTHORIZED:
                st.error(sync.error)
                return
            if sync.state == ChatSyncState.ERROR and not sync.messages:
                st.error(sync.error)
                st.button("Retry", on_click=self._retry, args=(chat_id,))
                return

            @st.fragment(run_every=REFRESH_SECONDS)
            def _live_messages():
                self._render_messages(sync)

            _live_messages()

            if st.session_state.send_error:
                st.error(st.session_state.send_error)
            prompt = st.chat_input(
                "Message",
                max_chars=self.send_message_workflow.max_length,
            )
            if prompt:
                self._send(sync, chat_id, prompt)
                st.rerun()
        except RemoteServiceError as e:
            logger.exception("Chat page failed")
            st.error(str(e))
