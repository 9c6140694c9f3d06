"""
Tests for Authentication and Authorization

Tests cover:
- Password hashing and session token handling
- Login with credentials, cookie and bearer sessions
- Session checks and logout
- Admin-only user management
- Inactive user access denial
"""
import pytest
from datetime import datetime, timedelta
from httpx import AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession
from jose import jwt

from app.core.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    decode_access_token
)
from app.core.config import settings
from app.models.user import User, UserRole
from tests.conftest import UserFactory


# -----------------------------------------------------------------------------
# Password Hashing Tests
# -----------------------------------------------------------------------------

class TestPasswordHashing:
    """Tests for password hashing and verification."""

    def test_password_hash_creates_different_hash(self):
        """Hashing the same password twice gives different (salted) hashes."""
        password = "testpassword123"
        assert get_password_hash(password) != get_password_hash(password)

    def test_verify_password_correct(self):
        hashed = get_password_hash("testpassword123")
        assert verify_password("testpassword123", hashed) is True

    def test_verify_password_incorrect(self):
        hashed = get_password_hash("testpassword123")
        assert verify_password("wrongpassword", hashed) is False

    def test_verify_password_empty(self):
        hashed = get_password_hash("testpassword123")
        assert verify_password("", hashed) is False

    def test_verify_password_malformed_hash(self):
        assert verify_password("testpassword123", "not-a-bcrypt-hash") is False


# -----------------------------------------------------------------------------
# JWT Token Tests
# -----------------------------------------------------------------------------

class TestJWTTokens:
    """Tests for session token creation and validation."""

    def test_create_access_token_default_expiry(self):
        token = create_access_token({"sub": "user123", "email": "test@example.com"})

        payload = decode_access_token(token)
        assert payload is not None
        assert payload["sub"] == "user123"
        assert payload["email"] == "test@example.com"

        expires = datetime.utcfromtimestamp(payload["exp"])
        expected = datetime.utcnow() + timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
        assert abs((expires - expected).total_seconds()) < 60

    def test_decode_expired_token(self):
        token = create_access_token({"sub": "user123"}, expires_delta=timedelta(seconds=-10))
        assert decode_access_token(token) is None

    def test_decode_invalid_token(self):
        assert decode_access_token("invalid.token.here") is None

    def test_decode_tampered_token(self):
        token = create_access_token({"sub": "user123"})
        assert decode_access_token(token[:-5] + "XXXXX") is None


# -----------------------------------------------------------------------------
# Login Endpoint Tests
# -----------------------------------------------------------------------------

class TestLoginEndpoint:
    """Tests for the login endpoint."""

    @pytest.mark.asyncio
    async def test_login_success(self, client: AsyncClient, db_session: AsyncSession):
        user = await UserFactory.create(
            db_session,
            email="logintest@test.com",
            password="correctpassword",
            role=UserRole.PRACTICE_MANAGER,
            practices=["Cloud"]
        )

        response = await client.post(
            "/api/auth/login",
            json={"email": "logintest@test.com", "password": "correctpassword"}
        )

        assert response.status_code == 200
        data = response.json()
        assert data["success"] is True
        assert data["tokenType"] == "bearer"
        assert data["user"]["id"] == user.id
        assert data["user"]["practices"] == ["Cloud"]
        assert data["user"]["role"] == "practice_manager"
        assert settings.SESSION_COOKIE_NAME in response.cookies or \
            settings.SESSION_COOKIE_NAME in response.headers.get("set-cookie", "")

        payload = decode_access_token(data["accessToken"])
        assert payload["sub"] == user.id

    @pytest.mark.asyncio
    async def test_login_email_is_case_insensitive(self, client: AsyncClient, db_session: AsyncSession):
        await UserFactory.create(db_session, email="mixed@test.com", password="correctpassword")

        response = await client.post(
            "/api/auth/login",
            json={"email": "MIXED@test.com", "password": "correctpassword"}
        )

        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_login_wrong_password(self, client: AsyncClient, db_session: AsyncSession):
        await UserFactory.create(db_session, email="wrongpass@test.com", password="correctpassword")

        response = await client.post(
            "/api/auth/login",
            json={"email": "wrongpass@test.com", "password": "wrongpassword"}
        )

        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "Invalid email or password"}

    @pytest.mark.asyncio
    async def test_login_user_not_found(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/login",
            json={"email": "nonexistent@test.com", "password": "somepassword"}
        )

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_login_inactive_user(self, client: AsyncClient, db_session: AsyncSession):
        await UserFactory.create(
            db_session,
            email="inactive@test.com",
            password="correctpassword",
            is_active=False
        )

        response = await client.post(
            "/api/auth/login",
            json={"email": "inactive@test.com", "password": "correctpassword"}
        )

        assert response.status_code == 403
        assert "disabled" in response.json()["error"].lower()

    @pytest.mark.asyncio
    async def test_login_invalid_email_fails_validation(self, client: AsyncClient):
        response = await client.post(
            "/api/auth/login",
            json={"email": "not-an-email", "password": "x"}
        )

        assert response.status_code == 422
        data = response.json()
        assert data["success"] is False
        assert data["error"] == "Validation failed"
        assert data["errors"]


# -----------------------------------------------------------------------------
# Session Tests
# -----------------------------------------------------------------------------

class TestSession:
    """Tests for check-session and the cookie/bearer session carriers."""

    @pytest.mark.asyncio
    async def test_check_session_with_bearer(
        self,
        client: AsyncClient,
        auth_headers_manager: dict,
        manager_user: User
    ):
        response = await client.get("/api/auth/check-session", headers=auth_headers_manager)

        assert response.status_code == 200
        data = response.json()
        assert data["authenticated"] is True
        assert data["user"]["email"] == manager_user.email
        assert data["user"]["isAdmin"] is False

    @pytest.mark.asyncio
    async def test_check_session_with_cookie(self, client: AsyncClient, member_user: User):
        token = create_access_token({"sub": member_user.id})

        response = await client.get(
            "/api/auth/check-session",
            headers={"Cookie": f"{settings.SESSION_COOKIE_NAME}={token}"}
        )

        assert response.json()["authenticated"] is True

    @pytest.mark.asyncio
    async def test_check_session_anonymous(self, client: AsyncClient):
        response = await client.get("/api/auth/check-session")

        assert response.status_code == 200
        assert response.json() == {"success": True, "authenticated": False, "user": None}

    @pytest.mark.asyncio
    async def test_expired_token_is_rejected(self, client: AsyncClient, admin_user: User):
        expired_token = create_access_token(
            data={"sub": admin_user.id},
            expires_delta=timedelta(seconds=-10)
        )

        response = await client.get(
            "/api/users",
            headers={"Authorization": f"Bearer {expired_token}"}
        )

        assert response.status_code == 401
        assert response.json()["error"] == "Not authenticated"

    @pytest.mark.asyncio
    async def test_token_with_missing_sub(self, client: AsyncClient):
        token = jwt.encode(
            {"email": "test@example.com", "exp": datetime.utcnow() + timedelta(hours=1)},
            settings.SECRET_KEY,
            algorithm=settings.ALGORITHM
        )

        response = await client.get("/api/users", headers={"Authorization": f"Bearer {token}"})

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_deactivated_user_loses_access(
        self,
        client: AsyncClient,
        db_session: AsyncSession,
        member_user: User,
        auth_headers_member: dict
    ):
        member_user.is_active = False
        await db_session.commit()

        response = await client.get("/api/users", headers=auth_headers_member)

        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_logout_clears_cookie(self, client: AsyncClient):
        response = await client.post("/api/auth/logout")

        assert response.status_code == 200
        assert settings.SESSION_COOKIE_NAME in response.headers.get("set-cookie", "")


# -----------------------------------------------------------------------------
# User Management Tests
# -----------------------------------------------------------------------------

class TestUserManagement:
    """Tests for the user directory and admin user management."""

    @pytest.mark.asyncio
    async def test_list_users_filters_by_practice(
        self,
        client: AsyncClient,
        auth_headers_member: dict,
        manager_user: User,
        principal_user: User
    ):
        response = await client.get(
            "/api/users",
            params={"practice": "Network"},
            headers=auth_headers_member
        )

        assert response.status_code == 200
        emails = [u["email"] for u in response.json()["users"]]
        assert emails == [principal_user.email]

    @pytest.mark.asyncio
    async def test_list_users_filters_by_role(
        self,
        client: AsyncClient,
        auth_headers_member: dict,
        manager_user: User,
        member_user: User
    ):
        response = await client.get(
            "/api/users",
            params={"role": "practice_manager"},
            headers=auth_headers_member
        )

        emails = [u["email"] for u in response.json()["users"]]
        assert manager_user.email in emails
        assert member_user.email not in emails

    @pytest.mark.asyncio
    async def test_admin_creates_user(self, client: AsyncClient, auth_headers_admin: dict):
        response = await client.post(
            "/api/users",
            json={
                "email": "new.principal@test.com",
                "password": "longenough1",
                "name": "New Principal",
                "role": "practice_principal",
                "practices": ["Security"]
            },
            headers=auth_headers_admin
        )

        assert response.status_code == 201
        user = response.json()["user"]
        assert user["role"] == "practice_principal"
        assert user["practices"] == ["Security"]

        login = await client.post(
            "/api/auth/login",
            json={"email": "new.principal@test.com", "password": "longenough1"}
        )
        assert login.status_code == 200

    @pytest.mark.asyncio
    async def test_create_duplicate_user(
        self,
        client: AsyncClient,
        auth_headers_admin: dict,
        member_user: User
    ):
        response = await client.post(
            "/api/users",
            json={"email": member_user.email, "password": "longenough1", "name": "Dup"},
            headers=auth_headers_admin
        )

        assert response.status_code == 409

    @pytest.mark.asyncio
    async def test_non_admin_cannot_manage_users(self, client: AsyncClient, auth_headers_manager: dict):
        response = await client.post(
            "/api/users",
            json={"email": "x@test.com", "password": "longenough1", "name": "X"},
            headers=auth_headers_manager
        )

        assert response.status_code == 403
        assert response.json()["error"] == "Admin access required"

    @pytest.mark.asyncio
    async def test_admin_updates_practices(
        self,
        client: AsyncClient,
        auth_headers_admin: dict,
        member_user: User
    ):
        response = await client.put(
            f"/api/users/{member_user.email}",
            json={"role": "practice_manager", "practices": ["Cloud", "Network"]},
            headers=auth_headers_admin
        )

        assert response.status_code == 200
        user = response.json()["user"]
        assert user["role"] == "practice_manager"
        assert user["practices"] == ["Cloud", "Network"]
        assert user["name"] == member_user.name

    @pytest.mark.asyncio
    async def test_get_unknown_user(self, client: AsyncClient, auth_headers_member: dict):
        response = await client.get("/api/users/nobody@test.com", headers=auth_headers_member)

        assert response.status_code == 404
