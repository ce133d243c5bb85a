import time

import pytest

from config import settings
from main import app
from routers import rate_limit


@pytest.mark.asyncio
async def test_login_is_rate_limited_with_local_fallback(client, monkeypatch):
    monkeypatch.setattr(settings, "REDIS_URL", "redis://127.0.0.1:1/0")
    app.state.disable_rate_limits = False

    body = {"username": "anon-nobody", "password": "wrong-horse"}
    statuses = [
        (await client.post("/auth/anonymous/login", json=body, headers={"X-Forwarded-For": "10.0.0.7"})).status_code
        for _ in range(31)
    ]

    assert statuses[:30] == [401] * 30
    assert statuses[30] == 429

    response = await client.post("/auth/anonymous/login", json=body, headers={"X-Forwarded-For": "10.0.0.7"})
    assert 0 < int(response.headers["Retry-After"]) <= 900
    assert response.json()["error"].startswith("Rate limit exceeded")

    response = await client.post("/auth/anonymous/login", json=body, headers={"X-Forwarded-For": "10.0.0.8"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_local_windows_are_dropped_once_expired():
    now = time.time()
    rate_limit._local_counters["confessions:rate:anon_login:10.0.0.1"] = (3, now - 1)
    rate_limit._local_counters["confessions:rate:anon_login:10.0.0.2"] = (1, now + 60)

    hits, retry_after = await rate_limit._hit_local_window("confessions:rate:anon_login:10.0.0.3", 60)

    assert hits == 1
    assert 0 < retry_after <= 60
    assert set(rate_limit._local_counters) == {
        "confessions:rate:anon_login:10.0.0.2",
        "confessions:rate:anon_login:10.0.0.3",
    }


@pytest.mark.asyncio
async def test_expired_local_window_restarts_count():
    key = "confessions:rate:anon_login:10.0.0.9"
    rate_limit._local_counters[key] = (30, time.time() - 1)

    hits, _ = await rate_limit._hit_local_window(key, 900)

    assert hits == 1
