"""End-to-end tests over the real websocket endpoint and HTTP routes."""
import pytest
from fastapi.testclient import TestClient

import constants
from app import create_app
from conftest import FakeClock
from state import ChatState


@pytest.fixture
def client():
    app = create_app(ChatState(clock=FakeClock()))
    with TestClient(app) as test_client:
        yield test_client


def register(ws, name, user_id):
    ws.send_json({"type": "register", "displayName": name, "userId": user_id})
    registered = ws.receive_json()
    assert registered["type"] == "registered"
    chats = ws.receive_json()
    assert chats["type"] == "chatsLoaded"
    return registered


def test_two_parties_pair_and_chat(client):
    with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
        a = register(alice, "Alice", "alice")
        register(bob, "Bob", "bob")

        bob.send_json({"type": "connectWithCode", "inviteCode": a["inviteCode"].lower(), "myIdentityId": "bob"})
        to_bob = bob.receive_json()
        to_alice = alice.receive_json()
        assert to_bob["type"] == to_alice["type"] == "chatConnected"
        assert to_bob["roomId"] == to_alice["roomId"]
        assert to_bob["partnerName"] == "Alice"
        assert to_alice["partnerName"] == "Bob"

        alice.send_json({"type": "sendMessage", "roomId": to_alice["roomId"], "message": "hi", "timestamp": 5})
        echoed = alice.receive_json()
        delivered = bob.receive_json()
        assert echoed == delivered
        assert delivered["type"] == "newMessage"
        assert delivered["text"] == "hi"
        assert delivered["senderId"] == "alice"

        bob.send_json({"type": "typing", "roomId": to_bob["roomId"], "isTyping": True})
        assert alice.receive_json() == {"type": "userTyping", "roomId": to_bob["roomId"],
                                        "userId": "bob", "isTyping": True}

        room = client.get(f"/rooms/{to_bob['roomId']}").json()
        assert room["live_message_count"] == 1
        assert room["online_connections"] == 2
        assert {p["identity_id"] for p in room["participants"]} == {"alice", "bob"}


def test_errors_go_to_the_originating_connection(client):
    with client.websocket_connect("/ws") as ws:
        ws.send_json({"type": "connectWithCode", "inviteCode": "ABCDEF"})
        error = ws.receive_json()
        assert error == {"type": "error", "code": "UnregisteredSender", "message": "Connection is not registered"}

        register(ws, "Alice", "alice")
        ws.send_json({"type": "connectWithCode", "inviteCode": "ABCDEF"})
        assert ws.receive_json()["code"] == "InvalidCode"

        ws.send_text("{broken")
        assert ws.receive_json()["code"] == "InvalidPayload"

        ws.send_json({"type": {"x": 1}})
        assert ws.receive_json()["code"] == "InvalidPayload"
        ws.send_json({"type": "ping"})
        assert ws.receive_json()["type"] == "pong"


def test_status_and_health(client):
    assert client.get("/health").json()["status"] == "OK"
    with client.websocket_connect("/ws") as ws:
        register(ws, "Alice", "alice")
        status = client.get("/").json()
        assert status["active_users"] == 1
        assert status["connections"] == 1


def test_invite_lookup_and_unknown_room(client):
    with client.websocket_connect("/ws") as ws:
        a = register(ws, "Alice", "alice")
        found = client.get(f"/invites/{a['inviteCode']}")
        assert found.status_code == 200
        assert found.json() == {"identity_id": "alice", "display_name": "Alice"}
    assert client.get("/invites/NOPE00").status_code == 404
    assert client.get("/rooms/a:b").status_code == 404


def test_admin_deactivation(client, monkeypatch):
    assert client.post("/identities/alice/deactivate").status_code == 403

    monkeypatch.setattr(constants, "ADMIN_TOKEN", "s3cret")
    assert client.post("/identities/alice/deactivate", headers={"X-Admin-Token": "wrong"}).status_code == 401
    assert client.post("/identities/alice/deactivate", headers={"X-Admin-Token": "s3cret"}).status_code == 404

    with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
        a = register(alice, "Alice", "alice")
        register(bob, "Bob", "bob")

        response = client.post("/identities/alice/deactivate", headers={"X-Admin-Token": "s3cret"})
        assert response.json() == {"identity_id": "alice", "display_name": "Alice", "active": False}

        bob.send_json({"type": "connectWithCode", "inviteCode": a["inviteCode"]})
        assert bob.receive_json()["code"] == "PartyUnavailable"

        client.post("/identities/alice/activate", headers={"X-Admin-Token": "s3cret"})
        bob.send_json({"type": "connectWithCode", "inviteCode": a["inviteCode"]})
        assert bob.receive_json()["type"] == "chatConnected"
