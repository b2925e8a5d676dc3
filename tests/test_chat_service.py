"""Conversation service: writes land before broadcasts, failures broadcast nothing."""

import pytest

from mythrift.repositories.conversation_repository import ConversationRepository
from mythrift.schemas.realtime import CONVERSATION_LIST_UPDATE, NEW_MESSAGE
from mythrift.services.chat_service import ChatService
from mythrift.utils.errors import AccessDenied, EmptyContent


@pytest.fixture
def service(conversation_repo, gateway):
    return ChatService(conversation_repo, gateway)


@pytest.fixture
async def pair(make_user):
    return await make_user("Alice"), await make_user("Bob")


async def test_send_broadcasts_to_room_and_participants(service, gateway, pair, fake_socket):
    alice, bob = pair
    conversation, _ = await service.start_conversation(alice, bob.id)

    alice_ws, bob_ws = fake_socket(), fake_socket()
    alice_conn = await gateway.connect(alice_ws)
    bob_conn = await gateway.connect(bob_ws)
    await gateway.identify(alice_conn, alice.id)
    await gateway.identify(bob_conn, bob.id)
    # only alice has the conversation open
    await gateway.join_room(alice_conn, conversation.id)

    message = await service.send_message(alice, conversation.id, "  hi bob ")
    await gateway.wait_idle()

    assert message.content == "hi bob"
    [event] = alice_ws.events(NEW_MESSAGE)
    assert event["conversation_id"] == conversation.id
    assert event["message"]["id"] == message.id
    assert event["last_message"]["content"] == "hi bob"
    assert event["last_activity"] == event["last_message"]["timestamp"]
    assert bob_ws.events(NEW_MESSAGE) == []

    for ws, user in ((alice_ws, alice), (bob_ws, bob)):
        [update] = ws.events(CONVERSATION_LIST_UPDATE)
        assert update["user_id"] == user.id
        assert update["conversation_id"] == conversation.id
        assert update["last_message"]["content"] == "hi bob"


async def test_failed_write_broadcasts_nothing(service, gateway, pair, fake_socket, make_user):
    alice, bob = pair
    outsider = await make_user("Mallory")
    conversation, _ = await service.start_conversation(alice, bob.id)

    ws = fake_socket()
    conn = await gateway.connect(ws)
    await gateway.identify(conn, alice.id)
    await gateway.join_room(conn, conversation.id)

    with pytest.raises(EmptyContent):
        await service.send_message(alice, conversation.id, "   ")
    with pytest.raises(AccessDenied):
        await service.send_message(outsider, conversation.id, "hello")
    await gateway.wait_idle()

    assert ws.sent == []


async def test_storage_error_broadcasts_nothing(db, gateway, pair, fake_socket):
    class BrokenStore(ConversationRepository):
        async def append_message(self, conversation_id, sender_id, content):
            raise ConnectionError("mongo went away")

    alice, bob = pair
    service = ChatService(BrokenStore(db), gateway)
    conversation, _ = await service.start_conversation(alice, bob.id)
    ws = fake_socket()
    conn = await gateway.connect(ws)
    await gateway.join_room(conn, conversation.id)

    with pytest.raises(ConnectionError):
        await service.send_message(alice, conversation.id, "hello")
    await gateway.wait_idle()

    assert ws.sent == []


async def test_store_outage_after_write_does_not_fail_send(db, conversation_repo, gateway, pair, fake_socket):
    class FlakyStore(ConversationRepository):
        async def append_message(self, conversation_id, sender_id, content):
            result = await super().append_message(conversation_id, sender_id, content)
            # every later read or write against the store now fails
            self._db = None
            return result

    alice, bob = pair
    conversation, _ = await conversation_repo.find_or_create(alice.id, bob.id)
    ws = fake_socket()
    conn = await gateway.connect(ws)
    await gateway.identify(conn, bob.id)

    message = await ChatService(FlakyStore(db), gateway).send_message(alice, conversation.id, "stored once")
    await gateway.wait_idle()

    stored = await conversation_repo.get_with_messages(conversation.id, bob.id)
    assert [m.id for m in stored.messages] == [message.id]
    [update] = ws.events(CONVERSATION_LIST_UPDATE)
    assert update["conversation_id"] == conversation.id


async def test_broadcast_failure_does_not_fail_send(service, gateway, pair, fake_socket):
    alice, bob = pair
    conversation, _ = await service.start_conversation(alice, bob.id)
    conn = await gateway.connect(fake_socket(fail_on_send=True))
    await gateway.identify(conn, bob.id)
    await gateway.join_room(conn, conversation.id)

    message = await service.send_message(alice, conversation.id, "still stored")
    await gateway.wait_idle()

    stored = await service.get_conversation(bob, conversation.id)
    assert [m.id for m in stored.messages] == [message.id]


async def test_unread_count_drops_after_reading(service, pair):
    alice, bob = pair
    conversation, _ = await service.start_conversation(alice, bob.id)
    await service.send_message(alice, conversation.id, "one")
    await service.send_message(alice, conversation.id, "two")

    assert await service.unread_count(bob) == 2
    assert await service.unread_count(alice) == 0

    await service.get_conversation(bob, conversation.id)
    assert await service.unread_count(bob) == 0
