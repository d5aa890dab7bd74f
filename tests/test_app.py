import pytest
from fastapi.testclient import TestClient

import backend
from app import app
from backend import SignalingBackend


@pytest.fixture
def client(monkeypatch):
    fresh = SignalingBackend(max_members=0)
    for attr in ("registry", "connections", "relay", "presence"):
        monkeypatch.setattr(backend.signaling_backend, attr, getattr(fresh, attr))
    with TestClient(app) as test_client:
        yield test_client


def test_ice_servers(client):
    response = client.get("/api/ice")
    assert response.status_code == 200
    servers = response.json()["iceServers"]
    assert servers and "urls" in servers[0]
    assert "username" not in servers[0]


def test_client_log(client):
    response = client.post("/api/client-log", json={"msg": "orientationchange"})
    assert response.status_code == 204


def test_room_details_not_found(client):
    assert client.get("/rooms/NOPE00").status_code == 404


def test_malformed_frame_gets_error(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_text("not json")
        assert ws.receive_json() == {"type": "error", "message": "Malformed message"}
        ws.send_text("[1, 2]")
        assert ws.receive_json()["type"] == "error"


def test_join_unknown_room(client):
    with client.websocket_connect("/ws") as ws:
        ws.receive_json()
        ws.send_json({"type": "join-room", "roomId": "NOPE00", "userName": "Alice"})
        assert ws.receive_json() == {"type": "error", "message": "Invalid room"}


def test_offer_answer_flow_and_room_details(client):
    with client.websocket_connect("/ws") as host, client.websocket_connect("/ws") as alice:
        host_id = host.receive_json()["id"]
        alice_id = alice.receive_json()["id"]

        host.send_json({"type": "create-room", "roomId": "AB12CD"})
        assert host.receive_json() == {"type": "room-created", "roomId": "AB12CD"}

        alice.send_json({"type": "join-room", "roomId": "AB12CD", "userName": "Alice"})
        assert alice.receive_json() == {"type": "room-joined", "roomId": "AB12CD", "hostId": host_id}
        assert host.receive_json() == {"type": "client-joined", "memberId": alice_id, "name": "Alice"}

        details = client.get("/rooms/AB12CD").json()
        assert details["host_id"] == host_id
        assert details["member_count"] == 1
        assert details["members"][0]["name"] == "Alice"

        offer = {"sdp": "v=0 offer", "type": "offer"}
        host.send_json({"type": "offer", "offer": offer, "roomId": "AB12CD", "target": alice_id})
        assert alice.receive_json() == {"type": "offer", "offer": offer, "sender": host_id}

        answer = {"sdp": "v=0 answer", "type": "answer"}
        alice.send_json({"type": "answer", "answer": answer, "roomId": "AB12CD", "target": host_id})
        assert host.receive_json() == {"type": "answer", "answer": answer, "sender": alice_id}

        candidate = {"candidate": "candidate:1 1 udp 2122260223 192.168.1.2 54321 typ host", "sdpMid": "0", "sdpMLineIndex": 0}
        alice.send_json({"type": "ice-candidate", "candidate": candidate, "roomId": "AB12CD", "target": host_id})
        assert host.receive_json() == {"type": "ice-candidate", "candidate": candidate, "sender": alice_id}


def test_chat_kick_and_host_disconnect(client):
    with client.websocket_connect("/ws") as host:
        host.receive_json()
        host.send_json({"type": "create-room"})
        room_id = host.receive_json()["roomId"]
        assert len(room_id) == 6

        with client.websocket_connect("/ws") as alice, client.websocket_connect("/ws") as bob:
            alice.receive_json()
            bob_id = bob.receive_json()["id"]
            alice.send_json({"type": "join-room", "roomId": room_id, "userName": "Alice"})
            alice.receive_json()
            host.receive_json()
            bob.send_json({"type": "join-room", "roomId": room_id, "userName": "Bob"})
            bob.receive_json()
            host.receive_json()

            alice.send_json({"type": "chat-message", "roomId": room_id, "text": "gg", "senderName": "Alice"})
            for ws in (host, alice, bob):
                message = ws.receive_json()
                assert message["type"] == "chat-message"
                assert message["text"] == "gg"
                assert message["isHost"] is False

            host.send_json({"type": "kick-client", "memberId": bob_id, "roomId": room_id})
            assert bob.receive_json() == {"type": "kicked", "roomId": room_id}
            assert host.receive_json() == {"type": "client-left", "memberId": bob_id}
            assert client.get(f"/rooms/{room_id}").json()["member_count"] == 1

            host.close()
            notice = alice.receive_json()
            assert notice["type"] == "error"
            assert notice["reason"] == "host-disconnected"

    assert client.get(f"/rooms/{room_id}").status_code == 404


def test_member_disconnect_notifies_host(client):
    with client.websocket_connect("/ws") as host:
        host.receive_json()
        host.send_json({"type": "create-room", "roomId": "ZZ99ZZ"})
        host.receive_json()

        with client.websocket_connect("/ws") as alice:
            alice_id = alice.receive_json()["id"]
            alice.send_json({"type": "join-room", "roomId": "ZZ99ZZ", "userName": "Alice"})
            alice.receive_json()
            host.receive_json()

        assert host.receive_json() == {"type": "client-left", "memberId": alice_id}


def test_binary_frame_does_not_end_the_room(client):
    with client.websocket_connect("/ws") as host:
        host.receive_json()
        host.send_json({"type": "create-room", "roomId": "BIN001"})
        host.receive_json()

        host.send_bytes(b"\x00\x01")
        assert host.receive_json() == {"type": "error", "message": "Malformed message"}
        assert client.get("/rooms/BIN001").status_code == 200
