import base64

import httpx
import pytest

from messaging_core.main import create_app


@pytest.fixture
async def app(config):
    app = await create_app(config)
    yield app
    await app.state.dishka_container.close()


@pytest.fixture
async def client(app):
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client


async def _register(client, email, name) -> dict:
    response = await client.post("/users", json={"email": email, "display_name": name})
    assert response.status_code == 201
    body = response.json()
    return {"Authorization": f"Bearer {body['access_token']}"}


async def test_requests_without_token_are_rejected(client):
    response = await client.get("/conversations")
    assert response.status_code == 401


async def test_invalid_token_is_rejected(client):
    response = await client.get("/conversations", headers={"Authorization": "Bearer nonsense"})
    assert response.status_code == 401


async def test_register_conflict(client):
    await _register(client, "a@x.com", "Alice")
    response = await client.post("/users", json={"email": "a@x.com", "display_name": "Alice"})
    assert response.status_code == 409


async def test_conversation_flow(client):
    alice = await _register(client, "a@x.com", "Alice")
    bob = await _register(client, "b@x.com", "Bob")

    response = await client.post("/conversations", headers=alice, json={
        "counterparty_email": "b@x.com",
        "counterparty_name": "Bob",
        "content": {"kind": "text", "text": "hi"},
    })
    assert response.status_code == 201
    started = response.json()
    assert started["created"] is True
    conversation_id = started["conversation_id"]

    response = await client.post("/conversations", headers=bob, json={
        "counterparty_email": "a@x.com",
        "counterparty_name": "Alice",
        "content": {"kind": "location", "longitude": 2.35, "latitude": 48.85},
    })
    assert response.json()["created"] is False
    assert response.json()["conversation_id"] == conversation_id

    response = await client.get(f"/conversations/{conversation_id}/messages", headers=bob)
    messages = response.json()
    assert [m["content"]["kind"] for m in messages] == ["text", "location"]
    assert [m["seq"] for m in messages] == [1, 2]
    assert messages[0]["sender_key"] == "a-x-com"

    response = await client.get("/conversations", headers=alice)
    summary, = response.json()
    assert summary["latest_message"]["text"] == "Location"
    assert summary["name"] == "Bob"

    response = await client.get("/conversations/find", params={"email": "a@x.com"}, headers=bob)
    assert response.json() == {"conversation_id": conversation_id}


async def test_send_retry_and_incremental_history(client):
    alice = await _register(client, "a@x.com", "Alice")
    await _register(client, "b@x.com", "Bob")
    response = await client.post("/conversations", headers=alice, json={
        "counterparty_email": "b@x.com",
        "counterparty_name": "Bob",
        "content": {"kind": "text", "text": "hi"},
    })
    conversation_id = response.json()["conversation_id"]

    payload = {
        "counterparty_email": "b@x.com",
        "counterparty_name": "Bob",
        "content": {"kind": "text", "text": "again"},
        "message_id": "retry-1",
    }
    first = await client.post(f"/conversations/{conversation_id}/messages", headers=alice, json=payload)
    second = await client.post(f"/conversations/{conversation_id}/messages", headers=alice, json=payload)
    assert first.status_code == second.status_code == 201
    assert first.json() == second.json() == {"message_id": "retry-1", "seq": 2}

    response = await client.get(
        f"/conversations/{conversation_id}/messages", params={"after_seq": 1}, headers=alice
    )
    assert [m["id"] for m in response.json()] == ["retry-1"]


async def test_delete_and_mark_read(client):
    alice = await _register(client, "a@x.com", "Alice")
    bob = await _register(client, "b@x.com", "Bob")
    response = await client.post("/conversations", headers=alice, json={
        "counterparty_email": "b@x.com",
        "counterparty_name": "Bob",
        "content": {"kind": "text", "text": "hi"},
    })
    conversation_id = response.json()["conversation_id"]

    assert (await client.post(f"/conversations/{conversation_id}/read", headers=bob)).status_code == 204
    summary, = (await client.get("/conversations", headers=bob)).json()
    assert summary["latest_message"]["is_read"] is True

    assert (await client.delete(f"/conversations/{conversation_id}", headers=alice)).status_code == 204
    assert (await client.get("/conversations", headers=alice)).json() == []
    assert len((await client.get("/conversations", headers=bob)).json()) == 1


async def test_find_unknown_conversation_is_404(client):
    alice = await _register(client, "a@x.com", "Alice")
    await _register(client, "b@x.com", "Bob")

    response = await client.get("/conversations/find", params={"email": "b@x.com"}, headers=alice)
    assert response.status_code == 404


async def test_users_and_rename(client):
    alice = await _register(client, "a@x.com", "Alice")
    await _register(client, "b@x.com", "Bob")

    users = (await client.get("/users", headers=alice)).json()
    assert [u["identity_key"] for u in users] == ["a-x-com", "b-x-com"]

    response = await client.patch("/users/me", headers=alice, json={"display_name": "Alicia"})
    assert response.status_code == 200
    renamed = {"Authorization": f"Bearer {response.json()['access_token']}"}

    me = (await client.get("/users/me", headers=renamed)).json()
    assert me["display_name"] == "Alicia"


async def test_photo_upload_then_send(client):
    alice = await _register(client, "a@x.com", "Alice")
    await _register(client, "b@x.com", "Bob")

    response = await client.post("/media/photos", headers=alice, json={
        "file_name": "p1.png",
        "data": base64.b64encode(b"\x89PNG").decode(),
    })
    assert response.status_code == 201
    url = response.json()["url"]
    assert url == "http://testserver/objects/message_images/p1.png"

    response = await client.post("/conversations", headers=alice, json={
        "counterparty_email": "b@x.com",
        "counterparty_name": "Bob",
        "content": {"kind": "photo", "url": url},
    })
    conversation_id = response.json()["conversation_id"]
    message, = (await client.get(f"/conversations/{conversation_id}/messages", headers=alice)).json()
    assert message["content"] == {"kind": "photo", "url": url}


async def test_upload_rejects_bad_base64(client):
    alice = await _register(client, "a@x.com", "Alice")

    response = await client.post("/media/photos", headers=alice, json={"file_name": "p.png", "data": "***"})
    assert response.status_code == 400


async def test_outsider_cannot_read_or_post(client):
    alice = await _register(client, "a@x.com", "Alice")
    await _register(client, "b@x.com", "Bob")
    carol = await _register(client, "c@x.com", "Carol")
    response = await client.post("/conversations", headers=alice, json={
        "counterparty_email": "b@x.com",
        "counterparty_name": "Bob",
        "content": {"kind": "text", "text": "secret"},
    })
    conversation_id = response.json()["conversation_id"]

    response = await client.get(f"/conversations/{conversation_id}/messages", headers=carol)
    assert response.status_code == 403

    for counterparty in ("a@x.com", "b@x.com"):
        response = await client.post(f"/conversations/{conversation_id}/messages", headers=carol, json={
            "counterparty_email": counterparty,
            "counterparty_name": "Someone",
            "content": {"kind": "text", "text": "let me in"},
        })
        assert response.status_code == 403

    messages = (await client.get(f"/conversations/{conversation_id}/messages", headers=alice)).json()
    assert [m["content"]["text"] for m in messages] == ["secret"]
    assert (await client.get("/conversations", headers=carol)).json() == []


async def test_uploaded_photo_is_downloadable(client):
    alice = await _register(client, "a@x.com", "Alice")

    response = await client.post("/media/photos", headers=alice, json={
        "file_name": "p1.png",
        "data": base64.b64encode(b"\x89PNG").decode(),
    })
    url = response.json()["url"]

    response = await client.get(url)
    assert response.status_code == 200
    assert response.content == b"\x89PNG"

    assert (await client.get("/objects/message_images/none.png")).status_code == 404
