import streamlit as st
from services.participation import ParticipationStore
from ui.Page import Page
from ui.state import open_chat
from utils.constants import Label


class ChatListPage(Page):
    """Chats this device has joined."""

    def __init__(self, participation: ParticipationStore):
        self.participation = participation

    def _leave(self, chat_id: str):
        self.participation.leave_chat(chat_id)

    def render(self):
        st.title("Your Chats")
        chats = self.participation.get_active_joined_chats()
        if not chats:
            st.info("You haven't joined any chats yet. Find one on the Discover map.")
            return

        visits = self.participation.get_chat_visits()
        for chat in chats:
            with st.container(border=True):
                col_text, col_open, col_leave = st.columns([4, 1, 1])
                col_text.markdown(f"**{chat.name}**")
                visit = visits.get(chat.chat_id)
                col_text.caption(
                    f"Last active {chat.last_activity_at:%d %b %H:%M}"
                    + (f" · {visit.visit_count} visits" if visit else "")
                )
                col_open.button(
                    Label.OPEN_BUTTON.value,
                    key=f"open_{chat.chat_id}",
                    on_click=open_chat,
                    args=(chat.chat_id, chat.name),
                )
                col_leave.button(
                    Label.LEAVE_BUTTON.value,
                    key=f"leave_{chat.chat_id}",
                    on_click=self._leave,
                    args=(chat.chat_id,),
                )
