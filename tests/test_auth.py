import uuid

import pytest
from httpx import AsyncClient
from jose import jwt
from sqlalchemy.ext.asyncio import AsyncSession

from taskmind.config import settings
from taskmind.models.user import User
from taskmind.services.auth_service import (
    authenticate_user,
    hash_password,
    issue_tokens,
    register_user,
    verify_password,
)


def test_password_hashing():
    hashed = hash_password("SecurePass123!")
    assert hashed != "SecurePass123!"
    assert verify_password("SecurePass123!", hashed)
    assert not verify_password("WrongPass", hashed)


def test_issue_tokens():
    user_id = uuid.uuid4()
    tokens = issue_tokens(user_id)
    assert "access_token" in tokens
    assert "refresh_token" in tokens
    assert tokens["token_type"] == "bearer"
    assert tokens["expires_in"] == 3600


def test_token_structure():
    """Verify token payload contains expected fields."""
    test_id = uuid.uuid4()
    tokens = issue_tokens(test_id)
    access = jwt.decode(tokens["access_token"], settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    refresh = jwt.decode(tokens["refresh_token"], settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert access["sub"] == str(test_id)
    assert access["type"] == "access"
    assert refresh["type"] == "refresh"
    assert "jti" in refresh
    assert tokens["access_token"] != tokens["refresh_token"]


@pytest.mark.asyncio
async def test_register_user_service(db_session: AsyncSession):
    user = await register_user(db_session, "New User", "new@example.com", "SecurePass123!")
    assert user.name == "New User"
    assert user.email == "new@example.com"
    assert user.password_hash != "SecurePass123!"


@pytest.mark.asyncio
async def test_register_user_duplicate_email(db_session: AsyncSession, test_user: User):
    with pytest.raises(ValueError, match="Email already in use"):
        await register_user(db_session, "Again", test_user.email, "SecurePass123!")


@pytest.mark.asyncio
async def test_authenticate_user(db_session: AsyncSession, test_user: User):
    user = await authenticate_user(db_session, "test@example.com", "TestPass123!")
    assert user.id == test_user.id

    with pytest.raises(ValueError, match="Invalid credentials"):
        await authenticate_user(db_session, "test@example.com", "WrongPassword!")

    with pytest.raises(ValueError, match="Invalid credentials"):
        await authenticate_user(db_session, "nobody@example.com", "TestPass123!")


@pytest.mark.asyncio
async def test_register_endpoint(anon_client: AsyncClient):
    response = await anon_client.post(
        "/auth/register",
        json={"name": "New User", "email": "newuser@example.com", "password": "SecurePass123!"},
    )
    assert response.status_code == 201
    data = response.json()
    assert data["user"]["name"] == "New User"
    assert data["user"]["email"] == "newuser@example.com"
    assert "password_hash" not in data["user"]
    assert data["access_token"]
    assert data["token_type"] == "bearer"


@pytest.mark.asyncio
async def test_register_duplicate_email(anon_client: AsyncClient):
    payload = {"name": "Dup", "email": "dup@example.com", "password": "SecurePass123!"}
    await anon_client.post("/auth/register", json=payload)

    response = await anon_client.post("/auth/register", json=payload)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_register_validation(anon_client: AsyncClient):
    # Short password
    response = await anon_client.post(
        "/auth/register",
        json={"name": "Weak", "email": "weak@example.com", "password": "short"},
    )
    assert response.status_code == 422

    # Missing name
    response = await anon_client.post(
        "/auth/register",
        json={"email": "noname@example.com", "password": "SecurePass123!"},
    )
    assert response.status_code == 422

    # Bad email
    response = await anon_client.post(
        "/auth/register",
        json={"name": "Bad", "email": "not-an-email", "password": "SecurePass123!"},
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_login_endpoint(anon_client: AsyncClient, test_user: User):
    response = await anon_client.post(
        "/auth/login",
        json={"email": "test@example.com", "password": "TestPass123!"},
    )
    assert response.status_code == 200
    data = response.json()
    assert data["user"]["id"] == str(test_user.id)
    assert data["access_token"]


@pytest.mark.asyncio
async def test_login_wrong_password(anon_client: AsyncClient, test_user: User):
    response = await anon_client.post(
        "/auth/login",
        json={"email": "test@example.com", "password": "WrongPassword!"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_login_unknown_email(anon_client: AsyncClient):
    response = await anon_client.post(
        "/auth/login",
        json={"email": "nobody@example.com", "password": "AnyPassword123!"},
    )
    assert response.status_code == 401
    assert response.json()["detail"] == "Invalid credentials"


@pytest.mark.asyncio
async def test_register_then_use_token(anon_client: AsyncClient):
    """Full flow: register, then call protected endpoints with the bearer token."""
    reg = await anon_client.post(
        "/auth/register",
        json={"name": "Flow", "email": "flow@example.com", "password": "FlowPass123!"},
    )
    headers = {"Authorization": f"Bearer {reg.json()['access_token']}"}

    me = await anon_client.get("/auth/me", headers=headers)
    assert me.status_code == 200
    assert me.json()["email"] == "flow@example.com"

    created = await anon_client.post("/tasks", json={"title": "First"}, headers=headers)
    assert created.status_code == 201
    assert created.json()["created_by"] == me.json()["id"]


@pytest.mark.asyncio
async def test_invalid_bearer_token(anon_client: AsyncClient):
    response = await anon_client.get("/auth/me", headers={"Authorization": "Bearer not.a.token"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_token_rejected_as_access_token(anon_client: AsyncClient, test_user: User):
    tokens = issue_tokens(test_user.id)
    response = await anon_client.get(
        "/auth/me", headers={"Authorization": f"Bearer {tokens['refresh_token']}"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_token_for_deleted_user(anon_client: AsyncClient):
    tokens = issue_tokens(uuid.uuid4())
    response = await anon_client.get(
        "/auth/me", headers={"Authorization": f"Bearer {tokens['access_token']}"}
    )
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_rotates_and_revokes(anon_client: AsyncClient, test_user: User):
    tokens = issue_tokens(test_user.id)

    response = await anon_client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 200
    assert response.json()["refresh_token"] != tokens["refresh_token"]

    # The old refresh token is now revoked
    response = await anon_client.post("/auth/refresh", json={"refresh_token": tokens["refresh_token"]})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_with_access_token(anon_client: AsyncClient, test_user: User):
    tokens = issue_tokens(test_user.id)
    response = await anon_client.post("/auth/refresh", json={"refresh_token": tokens["access_token"]})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_get_me_authenticated(client):
    response = await client.get("/auth/me")
    assert response.status_code == 200
    data = response.json()
    assert data["email"] == "test@example.com"
    assert data["name"] == "Test User"
