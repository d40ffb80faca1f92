from unittest.mock import MagicMock

import pytest

from services.auth_service import AuthService
from utils.errors import AuthError


def make_backend(profile_rows):
    backend = MagicMock()
    backend.sign_in.return_value = "user-1"
    backend.sign_up.return_value = "user-1"
    backend.select.return_value = profile_rows
    return backend


def test_sign_in_loads_profile():
    backend = make_backend([{"id": "user-1", "email": "a@b.c", "display_name": "Ana"}])
    user = AuthService(backend).sign_in("a@b.c", "secret")
    assert user.id == "user-1"
    assert user.display_name == "Ana"
    backend.sign_in.assert_called_once_with("a@b.c", "secret")


def test_sign_in_without_profile_fails():
    with pytest.raises(AuthError):
        AuthService(make_backend([])).sign_in("a@b.c", "secret")


def test_sign_up_without_profile_fails():
    with pytest.raises(AuthError):
        AuthService(make_backend([])).sign_up("a@b.c", "secret")


def test_current_user_without_session():
    backend = make_backend([])
    backend.current_user_id.return_value = None
    assert AuthService(backend).current_user() is None
    backend.select.assert_not_called()


def test_sign_out_delegates():
    backend = make_backend([])
    AuthService(backend).sign_out()
    backend.sign_out.assert_called_once()
