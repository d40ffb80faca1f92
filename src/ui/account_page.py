import logging
import streamlit as st
from services.anonymous_identity import AnonymousIdentityService
from services.auth_service import AuthService
from ui.net_action import net_action
from ui.Page import Page
from utils.constants import Label
from utils.errors import AuthError, RemoteServiceError

logger = logging.getLogger(__name__)


class AccountPage(Page):
    """Sign up, sign in and sign out; anonymous use needs none of it."""

    def __init__(
        self, auth_service: AuthService, identity_service: AnonymousIdentityService
    ):
        self.auth_service = auth_service
        self.identity_service = identity_service

    def _auth_form(self, mode: str):
        with st.form(f"{mode}_form", clear_on_submit=False):
            email = st.text_input(Label.EMAIL.value, key=f"{mode}_email")
            password = st.text_input(
                Label.PASSWORD.value, type="password", key=f"{mode}_password"
            )
            submitted = st.form_submit_button(
                "Sign up" if mode == "sign_up" else "Sign in"
            )
        if not submitted:
            return
        if not email or not password:
            st.error("Email and password are required.")
            return
        try:
            with net_action("Contacting server..."):
                if mode == "sign_up":
                    user = self.auth_service.sign_up(email, password)
                else:
                    user = self.auth_service.sign_in(email, password)
            st.session_state.current_user = user
            st.rerun()
        except (AuthError, RemoteServiceError) as e:
            logger.warning("Auth %s failed: %s", mode, e)
            st.error(str(e))

    def render(self):
        st.title("Account")
        user = st.session_state.current_user
        if user is not None:
            st.success(f"Signed in as **{user.display_name or user.email}**")
            if st.button("Sign out"):
                try:
                    self.auth_service.sign_out()
                except (AuthError, RemoteServiceError) as e:
                    st.error(str(e))
                    return
                st.session_state.current_user = None
                st.rerun()
            return

        identity = self.identity_service.local_identity()
        st.info(f"Chatting anonymously as **{identity.generated_name}**")
        sign_in_tab, sign_up_tab = st.tabs(["Sign in", "Sign up"])
        with sign_in_tab:
            self._auth_form("sign_in")
        with sign_up_tab:
            self._auth_form("sign_up")
