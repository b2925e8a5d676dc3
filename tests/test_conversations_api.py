"""Conversations over REST and the realtime socket, end to end."""

import pytest
from bson import ObjectId
from starlette.websockets import WebSocketDisconnect

from mythrift.routers.chat import CLOSE_UNAUTHORIZED
from mythrift.utils.websocket_manager import CLOSE_REPLACED


def token_of(headers):
    return headers["Authorization"].split(" ", 1)[1]


@pytest.fixture
def alice(register):
    return register("Alice")


@pytest.fixture
def bob(register):
    return register("Bob")


@pytest.fixture
def conversation_id(client, alice, bob):
    bob_id, _ = bob
    _, headers = alice
    resp = client.post("/conversations", json={"other_user_id": bob_id}, headers=headers)
    assert resp.status_code == 201
    return resp.json()["id"]


def join(ws, user_id):
    ws.send_json({"event": "join", "data": user_id})
    reply = ws.receive_json()
    assert reply == {"event": "joined", "data": {"user_id": user_id}}


class TestRest:

    def test_start_is_idempotent(self, client, alice, bob, conversation_id):
        alice_id, alice_headers = alice
        bob_id, bob_headers = bob

        again = client.post("/conversations", json={"other_user_id": bob_id}, headers=alice_headers)
        reverse = client.post("/conversations", json={"other_user_id": alice_id}, headers=bob_headers)

        assert again.status_code == reverse.status_code == 200
        assert again.json()["id"] == reverse.json()["id"] == conversation_id
        assert sorted(again.json()["participants"]) == sorted([alice_id, bob_id])

    def test_start_rejections(self, client, alice):
        alice_id, headers = alice
        resp = client.post("/conversations", json={"other_user_id": alice_id}, headers=headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Cannot chat with yourself"}

        resp = client.post("/conversations", json={"other_user_id": str(ObjectId())}, headers=headers)
        assert resp.status_code == 404

    def test_send_list_read_flow(self, client, alice, bob, conversation_id):
        alice_id, alice_headers = alice
        _, bob_headers = bob

        sent = client.post(
            f"/conversations/{conversation_id}/messages", json={"content": "  is it still for sale? "}, headers=alice_headers
        )
        assert sent.status_code == 201
        assert sent.json()["content"] == "is it still for sale?"
        assert sent.json()["sender_id"] == alice_id
        assert sent.json()["is_read"] is False

        assert client.get("/conversations/unread-count", headers=bob_headers).json() == {"unread_count": 1}

        [summary] = client.get("/conversations", headers=bob_headers).json()
        assert summary["id"] == conversation_id
        assert summary["other_user"]["id"] == alice_id
        assert summary["other_user"]["name"] == "Alice"
        assert summary["last_message"]["content"] == "is it still for sale?"
        assert summary["unread_count"] == 1

        opened = client.get(f"/conversations/{conversation_id}", headers=bob_headers).json()
        assert [m["is_read"] for m in opened["messages"]] == [True]
        assert client.get("/conversations/unread-count", headers=bob_headers).json() == {"unread_count": 0}

    def test_empty_message_is_rejected(self, client, alice, conversation_id):
        _, headers = alice
        resp = client.post(f"/conversations/{conversation_id}/messages", json={"content": "   "}, headers=headers)
        assert resp.status_code == 400
        assert resp.json() == {"error": "Message content is required"}

    def test_outsider_and_unknown(self, client, register, conversation_id):
        _, carol_headers = register("Carol")

        assert client.get(f"/conversations/{conversation_id}", headers=carol_headers).status_code == 403
        resp = client.post(f"/conversations/{conversation_id}/messages", json={"content": "hi"}, headers=carol_headers)
        assert resp.status_code == 403
        assert client.delete(f"/conversations/{conversation_id}", headers=carol_headers).status_code == 403

        assert client.get(f"/conversations/{ObjectId()}", headers=carol_headers).status_code == 404
        assert client.get("/conversations/not-an-id", headers=carol_headers).status_code == 404

    def test_delete(self, client, alice, bob, conversation_id):
        _, alice_headers = alice
        _, bob_headers = bob

        resp = client.delete(f"/conversations/{conversation_id}", headers=bob_headers)
        assert resp.json() == {"message": "Conversation deleted successfully"}
        assert client.get(f"/conversations/{conversation_id}", headers=alice_headers).status_code == 404
        assert client.get("/conversations", headers=alice_headers).json() == []


class TestRealtime:

    def test_socket_requires_token(self, client):
        with pytest.raises(WebSocketDisconnect) as info:
            with client.websocket_connect("/ws"):
                pass
        assert info.value.code == CLOSE_UNAUTHORIZED

        with pytest.raises(WebSocketDisconnect) as info:
            with client.websocket_connect("/ws?token=garbage"):
                pass
        assert info.value.code == CLOSE_UNAUTHORIZED

    def test_join_must_match_token(self, client, alice, bob):
        _, alice_headers = alice
        bob_id, _ = bob
        with client.websocket_connect(f"/ws?token={token_of(alice_headers)}") as ws:
            ws.send_json({"event": "join", "data": bob_id})
            reply = ws.receive_json()
            assert reply["event"] == "error"

    def test_join_chat_requires_participation(self, client, register, alice, conversation_id):
        carol_id, carol_headers = register("Carol")
        with client.websocket_connect(f"/ws?token={token_of(carol_headers)}") as ws:
            ws.send_json({"event": "join_chat", "data": conversation_id})
            assert ws.receive_json()["event"] == "error"

            join(ws, carol_id)
            ws.send_json({"event": "join_chat", "data": conversation_id})
            reply = ws.receive_json()
            assert reply["event"] == "error"
            assert reply["data"]["conversation_id"] == conversation_id

    def test_message_reaches_open_chat_and_lists(self, client, alice, bob, conversation_id):
        alice_id, alice_headers = alice
        bob_id, bob_headers = bob

        with client.websocket_connect(f"/ws?token={token_of(alice_headers)}") as ws:
            join(ws, alice_id)
            ws.send_json({"event": "join_chat", "data": conversation_id})
            assert ws.receive_json() == {"event": "joined_chat", "data": {"conversation_id": conversation_id}}

            sent = client.post(f"/conversations/{conversation_id}/messages", json={"content": "yes!"}, headers=bob_headers)
            assert sent.status_code == 201

            new_message = ws.receive_json()
            assert new_message["event"] == "new_message"
            assert new_message["data"]["conversation_id"] == conversation_id
            assert new_message["data"]["message"]["id"] == sent.json()["id"]
            assert new_message["data"]["last_message"]["content"] == "yes!"

            update = ws.receive_json()
            assert update["event"] == "conversation_list_update"
            assert update["data"]["user_id"] == alice_id
            assert update["data"]["conversation_id"] == conversation_id

            ws.send_json({"event": "leave_chat", "data": conversation_id})
            assert ws.receive_json() == {"event": "left_chat", "data": {"conversation_id": conversation_id}}

            # outside the room only the list update arrives
            client.post(f"/conversations/{conversation_id}/messages", json={"content": "still there?"}, headers=bob_headers)
            update = ws.receive_json()
            assert update["event"] == "conversation_list_update"
            assert update["data"]["last_message"]["content"] == "still there?"

    def test_second_connection_replaces_first(self, client, alice):
        alice_id, headers = alice
        token = token_of(headers)

        with client.websocket_connect(f"/ws?token={token}") as first:
            join(first, alice_id)
            with client.websocket_connect(f"/ws?token={token}") as second:
                join(second, alice_id)

                with pytest.raises(WebSocketDisconnect) as info:
                    first.receive_json()
                assert info.value.code == CLOSE_REPLACED

                second.send_json({"event": "pong"})
                second.send_json({"event": "nonsense"})
                assert second.receive_json()["event"] == "error"

    def test_invalid_payload(self, client, alice):
        _, headers = alice
        with client.websocket_connect(f"/ws?token={token_of(headers)}") as ws:
            ws.send_text("{not json")
            assert ws.receive_json() == {"event": "error", "data": {"detail": "Invalid message payload"}}
