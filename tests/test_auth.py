"""
Tests for authentication endpoints.
"""
import pytest
from fastapi import status


@pytest.mark.unit
class TestRegister:
    """Test account registration."""

    def test_register_contractor_by_default(self, client):
        response = client.post(
            "/auth/register",
            json={"name": "Casey Contractor", "email": "casey@test.com", "password": "contractor123"}
        )
        assert response.status_code == status.HTTP_201_CREATED
        data = response.json()
        assert data["role"] == "CONTRACTOR"
        assert data["is_active"] is True
        assert "password_hash" not in data

    def test_register_project_manager(self, client):
        response = client.post(
            "/auth/register",
            json={"name": "Pat Manager", "email": "pat@test.com", "password": "manager123", "role": "PROJECT_MANAGER"}
        )
        assert response.status_code == status.HTTP_201_CREATED
        assert response.json()["role"] == "PROJECT_MANAGER"

    def test_register_admin_rejected(self, client):
        response = client.post(
            "/auth/register",
            json={"name": "Root", "email": "root@test.com", "password": "password123", "role": "ADMIN"}
        )
        assert response.status_code == 422

    def test_register_duplicate_email(self, client, pm_user):
        response = client.post(
            "/auth/register",
            json={"name": "Someone Else", "email": "pm@test.com", "password": "password123"}
        )
        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert response.json()["message"] == "Email already registered"

    def test_register_short_password(self, client):
        response = client.post(
            "/auth/register",
            json={"name": "Casey", "email": "casey@test.com", "password": "short"}
        )
        assert response.status_code == 422


@pytest.mark.unit
class TestLogin:
    """Test login functionality."""

    def test_login_success(self, client, pm_user):
        """Test successful login."""
        response = client.post(
            "/auth/login",
            json={"email": "pm@test.com", "password": "manager123"}
        )
        assert response.status_code == status.HTTP_200_OK
        data = response.json()
        assert "access_token" in data
        assert data["token_type"] == "bearer"
        assert "access_token" in response.cookies

    def test_login_signs_in_chat_auth_state(self, client, pm_user, services):
        client.post("/auth/login", json={"email": "pm@test.com", "password": "manager123"})

        assert services.chat_sessions.auth_state(str(pm_user.id)).current_user is not None

    def test_login_invalid_email(self, client):
        """Test login with invalid email."""
        response = client.post(
            "/auth/login",
            json={"email": "nonexistent@test.com", "password": "password"}
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_login_invalid_password(self, client, pm_user):
        """Test login with invalid password."""
        response = client.post(
            "/auth/login",
            json={"email": "pm@test.com", "password": "wrongpassword"}
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_login_inactive_user(self, client, db_session):
        """Test login with inactive user."""
        from status_tracker.models import User, Role
        from status_tracker.auth import get_password_hash

        inactive_user = User(
            email="inactive@test.com",
            name="Inactive User",
            password_hash=get_password_hash("password"),
            role=Role.CONTRACTOR,
            is_active=False
        )
        db_session.add(inactive_user)
        db_session.commit()

        response = client.post(
            "/auth/login",
            json={"email": "inactive@test.com", "password": "password"}
        )
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.unit
class TestCurrentUser:
    def test_me(self, client, contractor_auth_headers):
        response = client.get("/auth/me", headers=contractor_auth_headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["email"] == "crew@test.com"

    def test_me_without_token(self, client):
        client.cookies.clear()
        response = client.get("/auth/me")
        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.json()["error_code"] == "NOT_AUTHENTICATED"

    def test_me_with_bad_token(self, client):
        client.cookies.clear()
        response = client.get("/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert response.status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.unit
class TestLogout:
    """Test logout functionality."""

    def test_logout_success(self, client, pm_auth_headers, pm_user, services):
        """Test successful logout."""
        response = client.post("/auth/logout", headers=pm_auth_headers)
        assert response.status_code == status.HTTP_200_OK
        assert response.json()["message"] == "Logged out successfully"
        assert services.chat_sessions.auth_state(str(pm_user.id)).current_user is None
