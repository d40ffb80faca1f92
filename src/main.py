import logging
import streamlit as st
from ui.state import ensure_state
from utils.constants import Pages
from utils.logging import setup_logging
from utils.errors import AuthError, RemoteServiceError
from di.container import Container, session_container
from config.config import SETTINGS

logger = logging.getLogger(__name__)


@st.cache_resource
def check_settings() -> bool:
    problems = SETTINGS.validate()
    for problem in problems:
        logger.warning("Configuration problem: %s", problem)
    return not problems


def restore_session(container: Container):
    if st.session_state.current_user is not None:
        return
    if st.session_state.get("session_checked"):
        return
    st.session_state.session_checked = True
    try:
        st.session_state.current_user = container.auth_service().current_user()
    except (AuthError, RemoteServiceError) as e:
        logger.info("No restored session: %s", e)


def main():
    setup_logging(SETTINGS.log_level)
    st.set_page_config(page_title=SETTINGS.app_name, page_icon=":material/location_on:")
    ensure_state()
    check_settings()
    container = session_container(st.session_state)

    onboarding = container.onboarding_page()
    if not onboarding.is_complete():
        onboarding.render()
        return
    restore_session(container)

    st.sidebar.title(SETTINGS.app_name)
    st.sidebar.caption(f"v{SETTINGS.app_version}")
    selection = st.sidebar.radio(
        "Navigation",
        (
            Pages.DISCOVER.value["key"],
            Pages.CHATS.value["key"],
            Pages.ACCOUNT.value["key"],
        ),
        format_func=lambda x: {
            Pages.DISCOVER.value["key"]: Pages.DISCOVER.value["title"],
            Pages.CHATS.value["key"]: Pages.CHATS.value["title"],
            Pages.ACCOUNT.value["key"]: Pages.ACCOUNT.value["title"],
        }[x],
        key="navigation",
        label_visibility="hidden",
    )

    previous = st.session_state.get("last_page")
    if previous == Pages.CHATS.value["key"] and selection != previous:
        container.chat_page().on_leave()
    st.session_state.last_page = selection

    if selection == Pages.DISCOVER.value["key"]:
        container.discover_page().render()
    elif selection == Pages.CHATS.value["key"]:
        if st.session_state.active_chat_id:
            container.chat_page().render()
        else:
            container.chat_list_page().render()
    elif selection == Pages.ACCOUNT.value["key"]:
        container.account_page().render()


if __name__ == "__main__":
    main()
