"""
Tests for authentication system.

Tests cover:
- Password strength validation
- User creation and duplicate handling
- Login, logout and /me
- Session timeouts and revocation
"""

from datetime import timedelta

import pytest

from pharmacy.models import SessionToken
from pharmacy.services.auth_service import (
    PasswordValidationError,
    authenticate,
    create_user,
    hash_password,
    validate_password_strength,
    verify_password,
)
from pharmacy.services.session_service import create_session, validate_session
from pharmacy.time_utils import utcnow
from pharmacy.validation import ConflictError
from conftest import TEST_PASSWORD, auth_headers, get_auth_token


class TestPasswordStrength:

    @pytest.mark.parametrize("password", [
        "Sh0rt!",
        "alllowercase1!",
        "ALLUPPERCASE1!",
        "NoDigitsHere!",
        "NoSpecials123",
    ])
    def test_weak_passwords_rejected(self, password):
        with pytest.raises(PasswordValidationError):
            validate_password_strength(password)

    def test_strong_password_accepted(self):
        validate_password_strength("Str0ng!Pass")

    def test_hash_and_verify(self, app):
        hashed = hash_password(TEST_PASSWORD)
        assert hashed != TEST_PASSWORD
        assert verify_password(TEST_PASSWORD, hashed)
        assert not verify_password("Wrong123!", hashed)

    def test_malformed_hash_is_mismatch(self):
        assert verify_password(TEST_PASSWORD, "not-a-bcrypt-hash") is False


class TestUsers:

    def test_duplicate_username_or_email(self, user):
        with pytest.raises(ConflictError):
            create_user("pharmacist", "other@pharmacy.local", TEST_PASSWORD)
        with pytest.raises(ConflictError):
            create_user("other", "pharmacist@pharmacy.local", TEST_PASSWORD)

    def test_authenticate_by_username_or_email(self, user):
        assert authenticate("pharmacist", TEST_PASSWORD).id == user.id
        assert authenticate("pharmacist@pharmacy.local", TEST_PASSWORD).id == user.id
        assert authenticate("pharmacist", "Wrong123!") is None

    def test_inactive_user_cannot_authenticate(self, user, db_session):
        user.is_active = False
        db_session.commit()
        assert authenticate("pharmacist", TEST_PASSWORD) is None


class TestLoginApi:

    def test_login_me_logout(self, client, user):
        token = get_auth_token(client, "pharmacist", TEST_PASSWORD)
        assert token

        response = client.get("/api/auth/me", headers=auth_headers(token))
        assert response.status_code == 200
        assert response.json["user"]["username"] == "pharmacist"
        assert response.json["user"]["last_login_at"] is not None

        response = client.post("/api/auth/logout", headers=auth_headers(token))
        assert response.status_code == 200

        response = client.get("/api/auth/me", headers=auth_headers(token))
        assert response.status_code == 401

    def test_invalid_credentials(self, client, user):
        response = client.post("/api/auth/login", json={"username": "pharmacist", "password": "Wrong123!"})
        assert response.status_code == 401
        assert response.json["error"] == "Invalid credentials"

    def test_missing_fields(self, client, db_session):
        response = client.post("/api/auth/login", json={"username": "pharmacist"})
        assert response.status_code == 400

    def test_logout_without_token(self, client, db_session):
        assert client.post("/api/auth/logout").status_code == 401


class TestSessions:

    def test_idle_session_revoked(self, user, db_session):
        session, token = create_session(user.id)
        session.last_used_at = utcnow() - timedelta(hours=3)
        db_session.commit()

        assert validate_session(token) is None
        assert db_session.get(SessionToken, session.id).revoked_reason == "Idle timeout"

    def test_expired_session_rejected(self, user, db_session):
        session, token = create_session(user.id)
        session.expires_at = utcnow() - timedelta(minutes=1)
        db_session.commit()

        assert validate_session(token) is None

    def test_deactivated_user_session_revoked(self, user, db_session):
        _, token = create_session(user.id)
        user.is_active = False
        db_session.commit()

        assert validate_session(token) is None

    def test_valid_session_touches_last_used(self, user, db_session):
        session, token = create_session(user.id)
        before = session.last_used_at

        context = validate_session(token)
        assert context.user.id == user.id
        assert context.session.last_used_at >= before


class TestSystemEndpoints:

    def test_banner(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json["service"] == "pharmacy-api"

    def test_health(self, client, db_session):
        response = client.get("/health")
        assert response.status_code == 200
        assert response.json["checks"]["database"]["status"] == "healthy"
