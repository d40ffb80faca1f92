import streamlit as st
from clients.device_storage import DeviceStorage
from services.anonymous_identity import AnonymousIdentityService
from ui.Page import Page
from utils.constants import StorageKeys


class OnboardingPage(Page):
    """First-run introduction; completing it sets the on-device flag."""

    def __init__(
        self, storage: DeviceStorage, identity_service: AnonymousIdentityService
    ):
        self.storage = storage
        self.identity_service = identity_service

    def is_complete(self) -> bool:
        return bool(self.storage.get(StorageKeys.ONBOARDING_COMPLETE.value, False))

    def _complete(self):
        self.storage.set(StorageKeys.ONBOARDING_COMPLETE.value, True)

    def render(self):
        st.title("Welcome to NearChat")
        st.markdown(
            "- Discover group chats happening around you.\n"
            "- Join anonymously, no account required.\n"
            "- Messages disappear after 24 hours."
        )
        identity = self.identity_service.local_identity()
        st.info(f"You'll chat as **{identity.generated_name}**")
        st.button("Get started", type="primary", on_click=self._complete)
