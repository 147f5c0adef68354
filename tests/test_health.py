import pytest

from taskmind.config import settings


@pytest.mark.asyncio
async def test_health(anon_client):
    response = await anon_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_rate_limit_exceeded(anon_client, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_PER_MINUTE", 2)

    for _ in range(2):
        response = await anon_client.post("/auth/login", json={"email": "a@example.com", "password": "x"})
        assert response.status_code == 401

    response = await anon_client.post("/auth/login", json={"email": "a@example.com", "password": "x"})
    assert response.status_code == 429


@pytest.mark.asyncio
async def test_health_is_not_rate_limited(anon_client, monkeypatch):
    monkeypatch.setattr(settings, "RATE_LIMIT_PER_MINUTE", 1)

    for _ in range(3):
        response = await anon_client.get("/health")
        assert response.status_code == 200
