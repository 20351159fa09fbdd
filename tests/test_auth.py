from conftest import register


async def test_first_registered_user_is_admin(client):
    first = await register(client, "owner")
    second = await register(client, "customer")
    assert first["is_admin"] is True
    assert second["is_admin"] is False


async def test_duplicate_username_rejected(client, admin):
    resp = await client.post("/api/register", json={"username": "admin", "password": "x"})
    assert resp.status_code == 400


async def test_login_and_current_user(client, alice):
    resp = await client.post("/api/login", data={"username": "alice", "password": "secret"})
    assert resp.status_code == 200
    token = resp.json()["access_token"]

    resp = await client.get("/api/user", headers={"Authorization": f"Bearer {token}"})
    assert resp.status_code == 200
    assert resp.json()["username"] == "alice"


async def test_wrong_password(client, alice):
    resp = await client.post("/api/login", data={"username": "alice", "password": "nope"})
    assert resp.status_code == 401


async def test_bad_token_and_anonymous(client):
    resp = await client.get("/api/user", headers={"Authorization": "Bearer garbage"})
    assert resp.status_code == 401
    resp = await client.get("/api/user")
    assert resp.status_code == 401


async def test_logout(client):
    resp = await client.post("/api/logout")
    assert resp.status_code == 200
