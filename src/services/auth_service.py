import logging

from clients.supabase_client import SupabaseClient
from models.models import AppUser
from utils.constants import Tables
from utils.errors import AuthError

logger = logging.getLogger(__name__)


class AuthService:
    """Email/password auth; session storage and refresh stay with the SDK."""

    def __init__(self, backend: SupabaseClient):
        self.backend = backend

    def _load_profile(self, user_id: str) -> AppUser | None:
        rows = self.backend.select(
            Tables.USERS.value, filters={"id": user_id}, limit=1
        )
        if not rows:
            return None
        profile = rows[0]
        return AppUser(
            id=str(profile["id"]),
            email=profile.get("email") or "",
            display_name=profile.get("display_name") or "",
        )

    def sign_up(self, email: str, password: str) -> AppUser:
        user_id = self.backend.sign_up(email, password)
        profile = self._load_profile(user_id)
        if profile is None:
            raise AuthError("Failed to create user profile")
        logger.info("Signed up user %s", user_id)
        return profile

    def sign_in(self, email: str, password: str) -> AppUser:
        user_id = self.backend.sign_in(email, password)
        profile = self._load_profile(user_id)
        if profile is None:
            raise AuthError("User profile not found")
        logger.info("Signed in user %s", user_id)
        return profile

    def sign_out(self):
        self.backend.sign_out()
        logger.info("Signed out")

    def current_user(self) -> AppUser | None:
        user_id = self.backend.current_user_id()
        if not user_id:
            return None
        return self._load_profile(user_id)
