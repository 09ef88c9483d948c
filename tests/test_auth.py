"""
Authentication Tests

Tests for bearer JWT validation, user sync and the auth dependencies.
"""

import time

import pytest
from uuid import uuid4
from unittest.mock import patch

import jwt
from fastapi import HTTPException
from fastapi.security import HTTPAuthorizationCredentials

from seo_dashboard.auth.config import AuthConfig
from seo_dashboard.auth.dependencies import get_current_user, require_admin, sync_user
from seo_dashboard.auth.jwt import JWTError, extract_user_info, verify_token
from seo_dashboard.auth.models import User, UserRole


SECRET = "super-secret-jwt-key-for-testing-0123456789"


# =============================================================================
# FIXTURES
# =============================================================================

@pytest.fixture
def auth_config():
    """Create test auth config."""
    return AuthConfig(
        jwt_secret=SECRET,
        jwt_algorithm="HS256",
        jwt_audience="authenticated",
        auth_enabled=True,
    )


@pytest.fixture
def valid_jwt_payload():
    """Create valid JWT payload."""
    return {
        "sub": str(uuid4()),
        "email": "user@test.com",
        "aud": "authenticated",
        "user_metadata": {"full_name": "Test User"},
        "exp": int(time.time()) + 3600,
        "iat": int(time.time()),
    }


@pytest.fixture
def create_test_token():
    """Factory to create test JWT tokens."""
    def _create(payload: dict, secret: str = SECRET) -> str:
        return jwt.encode(payload, secret, algorithm="HS256")
    return _create


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


# =============================================================================
# JWT VALIDATION TESTS
# =============================================================================

class TestJWTValidation:
    """Tests for JWT token validation."""

    def test_valid_token(self, auth_config, valid_jwt_payload, create_test_token):
        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=auth_config):
            payload = verify_token(create_test_token(valid_jwt_payload))

        assert payload["sub"] == valid_jwt_payload["sub"]
        assert payload["email"] == "user@test.com"

    def test_expired_token(self, auth_config, valid_jwt_payload, create_test_token):
        valid_jwt_payload["exp"] = int(time.time()) - 3600

        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=auth_config):
            with pytest.raises(JWTError, match="expired"):
                verify_token(create_test_token(valid_jwt_payload))

    def test_invalid_signature(self, auth_config, valid_jwt_payload, create_test_token):
        token = create_test_token(valid_jwt_payload, secret="wrong-secret-wrong-secret-wrong-secret")

        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=auth_config):
            with pytest.raises(JWTError, match="signature"):
                verify_token(token)

    def test_missing_sub_claim(self, auth_config, valid_jwt_payload, create_test_token):
        del valid_jwt_payload["sub"]

        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=auth_config):
            with pytest.raises(JWTError, match="sub"):
                verify_token(create_test_token(valid_jwt_payload))

    def test_invalid_audience(self, auth_config, valid_jwt_payload, create_test_token):
        valid_jwt_payload["aud"] = "wrong-audience"

        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=auth_config):
            with pytest.raises(JWTError, match="audience"):
                verify_token(create_test_token(valid_jwt_payload))

    def test_malformed_token(self, auth_config):
        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=auth_config):
            with pytest.raises(JWTError, match="decode"):
                verify_token("not-a-token")

    def test_no_jwt_secret_configured(self):
        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=AuthConfig(jwt_secret="")):
            with pytest.raises(JWTError, match="not configured"):
                verify_token("any-token")

    def test_unsupported_algorithm_rejected(self, valid_jwt_payload, create_test_token):
        config = AuthConfig(jwt_secret=SECRET, jwt_algorithm="RS256")

        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=config):
            with pytest.raises(JWTError, match="Unsupported JWT_ALGORITHM"):
                verify_token(create_test_token(valid_jwt_payload))

    def test_not_yet_valid_token(self, auth_config, valid_jwt_payload, create_test_token):
        valid_jwt_payload["nbf"] = int(time.time()) + 3600

        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=auth_config):
            with pytest.raises(JWTError, match="not valid yet"):
                verify_token(create_test_token(valid_jwt_payload))

    def test_leeway_accepts_recently_expired_token(self, valid_jwt_payload, create_test_token):
        """Clock skew inside JWT_LEEWAY is tolerated, beyond it the token is expired."""
        valid_jwt_payload["exp"] = int(time.time()) - 30
        token = create_test_token(valid_jwt_payload)

        lenient = AuthConfig(jwt_secret=SECRET, jwt_leeway=120)
        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=lenient):
            assert verify_token(token)["sub"] == valid_jwt_payload["sub"]

        strict = AuthConfig(jwt_secret=SECRET, jwt_leeway=0)
        with patch("seo_dashboard.auth.jwt.get_auth_config", return_value=strict):
            with pytest.raises(JWTError, match="expired"):
                verify_token(token)


class TestExtractUserInfo:
    """Tests for extracting user info from JWT payload."""

    def test_full_payload(self, valid_jwt_payload):
        info = extract_user_info(valid_jwt_payload)

        assert info["id"] == valid_jwt_payload["sub"]
        assert info["email"] == "user@test.com"
        assert info["name"] == "Test User"

    def test_minimal_payload(self):
        info = extract_user_info({"sub": "user-123"})

        assert info["email"] == "user-123@users.local"
        assert info["name"] is None

    def test_name_claim_preferred(self):
        info = extract_user_info({"sub": "user-123", "name": "Top Level", "user_metadata": {"name": "Meta"}})

        assert info["name"] == "Top Level"


# =============================================================================
# USER SYNC TESTS
# =============================================================================

class TestUserSync:
    """Tests for user synchronization."""

    def test_creates_user_on_first_access(self, db, valid_jwt_payload):
        user = sync_user(db, valid_jwt_payload)

        assert user.id == valid_jwt_payload["sub"]
        assert user.role == UserRole.USER
        assert user.last_login_at is not None
        assert db.query(User).count() == 1

    def test_updates_existing_user(self, db, valid_jwt_payload):
        first = sync_user(db, valid_jwt_payload)
        valid_jwt_payload["user_metadata"] = {"full_name": "Renamed"}

        second = sync_user(db, valid_jwt_payload)

        assert second.id == first.id
        assert second.name == "Renamed"
        assert db.query(User).count() == 1


# =============================================================================
# DEPENDENCY TESTS
# =============================================================================

class TestGetCurrentUser:
    """Tests for the get_current_user dependency."""

    @pytest.mark.asyncio
    async def test_missing_credentials(self, db, auth_config):
        with patch("seo_dashboard.auth.dependencies.get_auth_config", return_value=auth_config):
            with pytest.raises(HTTPException) as exc_info:
                await get_current_user(credentials=None, db=db)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_invalid_token(self, db, auth_config):
        with patch("seo_dashboard.auth.dependencies.get_auth_config", return_value=auth_config), \
                patch("seo_dashboard.auth.jwt.get_auth_config", return_value=auth_config):
            with pytest.raises(HTTPException) as exc_info:
                await get_current_user(credentials=_bearer("garbage"), db=db)

        assert exc_info.value.status_code == 401

    @pytest.mark.asyncio
    async def test_valid_token_syncs_user(self, db, auth_config, valid_jwt_payload, create_test_token):
        token = create_test_token(valid_jwt_payload)

        with patch("seo_dashboard.auth.dependencies.get_auth_config", return_value=auth_config), \
                patch("seo_dashboard.auth.jwt.get_auth_config", return_value=auth_config):
            user = await get_current_user(credentials=_bearer(token), db=db)

        assert user.email == "user@test.com"

    @pytest.mark.asyncio
    async def test_disabled_user_forbidden(self, db, auth_config, valid_jwt_payload, create_test_token):
        db.add(User(id=valid_jwt_payload["sub"], email="user@test.com", role=UserRole.USER, is_active=False))
        db.commit()
        token = create_test_token(valid_jwt_payload)

        with patch("seo_dashboard.auth.dependencies.get_auth_config", return_value=auth_config), \
                patch("seo_dashboard.auth.jwt.get_auth_config", return_value=auth_config):
            with pytest.raises(HTTPException) as exc_info:
                await get_current_user(credentials=_bearer(token), db=db)

        assert exc_info.value.status_code == 403

    @pytest.mark.asyncio
    async def test_auth_disabled_uses_dev_user(self, db):
        config = AuthConfig(auth_enabled=False, dev_user_email="dev@test.local")

        with patch("seo_dashboard.auth.dependencies.get_auth_config", return_value=config):
            first = await get_current_user(credentials=None, db=db)
            second = await get_current_user(credentials=None, db=db)

        assert first.email == "dev@test.local"
        assert first.is_admin is True
        assert second.id == first.id

    @pytest.mark.asyncio
    async def test_require_admin(self):
        admin = User(id=str(uuid4()), email="admin@test.com", role=UserRole.ADMIN, is_active=True)
        regular = User(id=str(uuid4()), email="user@test.com", role=UserRole.USER, is_active=True)

        assert await require_admin(current_user=admin) is admin
        with pytest.raises(HTTPException) as exc_info:
            await require_admin(current_user=regular)
        assert exc_info.value.status_code == 403


# =============================================================================
# MODEL AND CONFIG TESTS
# =============================================================================

class TestUserModel:
    """Tests for User model."""

    def test_is_admin(self):
        assert User(email="a@test.com", role=UserRole.ADMIN).is_admin is True
        assert User(email="u@test.com", role=UserRole.USER).is_admin is False

    def test_user_repr(self):
        user = User(email="user@test.com", role=UserRole.USER)

        assert repr(user) == "<User user@test.com (user)>"


class TestAuthConfig:
    """Tests for auth configuration."""

    def test_is_configured(self, auth_config):
        assert auth_config.is_configured is True
        assert AuthConfig(jwt_secret="").is_configured is False

    def test_asymmetric_algorithm_not_configured(self):
        assert AuthConfig(jwt_secret=SECRET, jwt_algorithm="ES256").is_configured is False

    def test_env_loading(self, monkeypatch):
        from seo_dashboard.auth.config import get_auth_config

        monkeypatch.setenv("JWT_SECRET", SECRET)
        monkeypatch.setenv("JWT_ALGORITHM", "hs512")
        monkeypatch.setenv("JWT_LEEWAY", "30")
        monkeypatch.setenv("AUTH_ENABLED", "false")
        get_auth_config.cache_clear()
        try:
            config = get_auth_config()
        finally:
            get_auth_config.cache_clear()

        assert config.jwt_algorithm == "HS512"
        assert config.jwt_leeway == 30
        assert config.auth_enabled is False
        assert config.is_configured is True
