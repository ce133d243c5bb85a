import pytest

from services.session_token import create_session_token


@pytest.mark.asyncio
async def test_missing_or_invalid_token_is_unauthorized(client):
    response = await client.get("/tokens")
    assert response.status_code == 401
    assert response.json() == {"error": "Authentication required"}

    response = await client.get("/tokens", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401
    assert "error" in response.json()


@pytest.mark.asyncio
async def test_register_login_and_me(client):
    response = await client.post(
        "/auth/anonymous/register",
        json={"username": "anon-whisper", "password": "correct-horse"},
    )
    assert response.status_code == 200
    registered = response.json()
    assert registered["subject_type"] == "anonymous"
    assert registered["username"] == "anon-whisper"

    response = await client.post(
        "/auth/anonymous/login",
        json={"username": "anon-whisper", "password": "correct-horse"},
    )
    assert response.status_code == 200
    session = response.json()
    assert session["subject_id"] == registered["subject_id"]

    response = await client.get("/auth/me", headers={"Authorization": f"Bearer {session['session_token']}"})
    assert response.status_code == 200
    assert response.json() == {
        "subject_id": registered["subject_id"],
        "subject_type": "anonymous",
        "email": None,
        "username": "anon-whisper",
        "is_admin": False,
    }


@pytest.mark.asyncio
async def test_login_with_wrong_password_is_unauthorized(client):
    await client.post("/auth/anonymous/register", json={"username": "anon-whisper", "password": "correct-horse"})
    response = await client.post("/auth/anonymous/login", json={"username": "anon-whisper", "password": "nope-nope"})
    assert response.status_code == 401
    assert response.json() == {"error": "Invalid username or password"}


@pytest.mark.asyncio
async def test_register_with_invalid_username_is_bad_request(client):
    response = await client.post("/auth/anonymous/register", json={"username": "whisper", "password": "correct-horse"})
    assert response.status_code == 400
    assert response.json()["error"] == "Username must start with 'anon-'"


@pytest.mark.asyncio
async def test_provider_identity_resolves_to_third_party_subject(client, provider_headers, admin_headers):
    response = await client.get("/auth/me", headers=provider_headers("tp-42", "member@example.com"))
    assert response.status_code == 200
    payload = response.json()
    assert payload["subject_id"] == "tp-42"
    assert payload["subject_type"] == "third_party"
    assert payload["is_admin"] is False

    response = await client.get("/auth/me", headers=admin_headers)
    assert response.json()["is_admin"] is True


@pytest.mark.asyncio
async def test_supplied_subject_must_match_session(client, make_anon_account):
    _, headers = await make_anon_account()

    response = await client.get("/tokens", params={"subjectId": "somebody-else"}, headers=headers)
    assert response.status_code == 403
    assert response.json() == {"error": "subjectId does not match authenticated session."}

    response = await client.get("/tokens", params={"subjectType": "third_party"}, headers=headers)
    assert response.status_code == 403

    response = await client.post(
        "/users/username-color",
        json={"subjectId": "somebody-else", "colorType": "remove"},
        headers=headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_session_token_for_deleted_account_cannot_buy(client):
    token = create_session_token("ghost-account", "anon-ghost")["token"]
    response = await client.post(
        "/users/username-color",
        json={"colorType": "solid", "color": "#FF5733"},
        headers={"Authorization": f"Bearer {token}"},
    )
    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}
