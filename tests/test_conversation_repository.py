"""Conversation store: lookup symmetry, append invariants, read tracking."""

import asyncio

import pytest
from bson import ObjectId

from mythrift.utils.errors import AccessDenied, EmptyContent, NotFound, SelfConversation


@pytest.fixture
async def trio(make_user):
    return await make_user("Alice"), await make_user("Bob"), await make_user("Carol")


@pytest.fixture
async def convo(conversation_repo, trio):
    alice, bob, _ = trio
    conversation, _ = await conversation_repo.find_or_create(alice.id, bob.id)
    return conversation


class TestFindOrCreate:

    async def test_start_is_idempotent_regardless_of_order(self, conversation_repo, trio):
        alice, bob, _ = trio
        first, created_first = await conversation_repo.find_or_create(alice.id, bob.id)
        second, created_second = await conversation_repo.find_or_create(alice.id, bob.id)
        reversed_, created_reversed = await conversation_repo.find_or_create(bob.id, alice.id)

        assert created_first is True
        assert created_second is False
        assert created_reversed is False
        assert first.id == second.id == reversed_.id

    async def test_new_conversation_is_empty(self, conversation_repo, trio):
        alice, bob, _ = trio
        conversation, _ = await conversation_repo.find_or_create(alice.id, bob.id)

        assert conversation.participants == [alice.id, bob.id]
        assert conversation.messages == []
        assert conversation.last_message is None
        assert conversation.last_activity is not None

    async def test_self_conversation_rejected(self, conversation_repo, trio):
        alice, _, _ = trio
        with pytest.raises(SelfConversation):
            await conversation_repo.find_or_create(alice.id, alice.id)

    async def test_self_check_ignores_id_spelling(self, conversation_repo, trio):
        alice, _, _ = trio
        with pytest.raises(SelfConversation):
            await conversation_repo.find_or_create(alice.id, alice.id.upper())

    async def test_other_id_spelling_finds_same_conversation(self, conversation_repo, trio):
        alice, bob, _ = trio
        lower, created = await conversation_repo.find_or_create(alice.id, bob.id)
        upper, created_again = await conversation_repo.find_or_create(alice.id, bob.id.upper())

        assert created is True
        assert created_again is False
        assert upper.id == lower.id
        assert upper.participants == [alice.id, bob.id]

    async def test_unknown_other_user(self, conversation_repo, trio):
        alice, _, _ = trio
        with pytest.raises(NotFound):
            await conversation_repo.find_or_create(alice.id, str(ObjectId()))
        with pytest.raises(NotFound):
            await conversation_repo.find_or_create(alice.id, "not-an-id")


class TestAppendMessage:

    async def test_content_is_trimmed(self, conversation_repo, convo, trio):
        alice, bob, _ = trio
        message, activity, participants = await conversation_repo.append_message(convo.id, alice.id, "  hello  ")

        assert message.content == "hello"
        assert participants == [alice.id, bob.id]
        assert message.is_read is False
        assert activity.last_message.content == "hello"

        stored = await conversation_repo.get_with_messages(convo.id, alice.id)
        assert [m.content for m in stored.messages] == ["hello"]
        assert stored.last_message.content == "hello"
        assert stored.last_message.sender_id == alice.id
        assert stored.last_message.timestamp == stored.messages[-1].timestamp
        assert stored.last_activity >= stored.last_message.timestamp

    async def test_blank_content_changes_nothing(self, conversation_repo, convo, trio):
        alice, _, _ = trio
        with pytest.raises(EmptyContent):
            await conversation_repo.append_message(convo.id, alice.id, "   ")

        stored = await conversation_repo.get_with_messages(convo.id, alice.id)
        assert stored.messages == []
        assert stored.last_activity == convo.last_activity

    async def test_non_participant_is_denied(self, conversation_repo, convo, trio):
        _, _, carol = trio
        with pytest.raises(AccessDenied):
            await conversation_repo.append_message(convo.id, carol.id, "hi")

    async def test_unknown_conversation(self, conversation_repo, trio):
        alice, _, _ = trio
        with pytest.raises(NotFound):
            await conversation_repo.append_message(str(ObjectId()), alice.id, "hi")
        with pytest.raises(NotFound):
            await conversation_repo.append_message("garbage", alice.id, "hi")

    async def test_concurrent_appends_keep_every_message(self, conversation_repo, convo, trio):
        alice, bob, _ = trio
        sends = [
            conversation_repo.append_message(convo.id, alice.id if i % 2 else bob.id, f"msg {i}")
            for i in range(20)
        ]
        await asyncio.gather(*sends)

        stored = await conversation_repo.get_with_messages(convo.id, alice.id)
        assert sorted(m.content for m in stored.messages) == sorted(f"msg {i}" for i in range(20))

        latest = max(stored.messages, key=lambda m: m.timestamp)
        assert stored.last_message.timestamp == latest.timestamp
        assert stored.last_message.timestamp == stored.messages[-1].timestamp
        assert stored.last_activity >= stored.last_message.timestamp

        timestamps = [m.timestamp for m in stored.messages]
        assert timestamps == sorted(timestamps)


class TestReadTracking:

    async def test_fetch_marks_other_side_read(self, conversation_repo, convo, trio):
        alice, bob, _ = trio
        await conversation_repo.append_message(convo.id, alice.id, "from alice")
        await conversation_repo.append_message(convo.id, bob.id, "from bob")

        seen_by_bob = await conversation_repo.get_with_messages(convo.id, bob.id)
        by_content = {m.content: m for m in seen_by_bob.messages}
        assert by_content["from alice"].is_read is True
        # bob's own message is untouched
        assert by_content["from bob"].is_read is False

        again = await conversation_repo.get_with_messages(convo.id, bob.id)
        assert [m.is_read for m in again.messages] == [m.is_read for m in seen_by_bob.messages]

    async def test_unread_total_and_summaries(self, conversation_repo, trio):
        alice, bob, carol = trio
        with_bob, _ = await conversation_repo.find_or_create(alice.id, bob.id)
        with_carol, _ = await conversation_repo.find_or_create(carol.id, alice.id)

        await conversation_repo.append_message(with_bob.id, bob.id, "one")
        await conversation_repo.append_message(with_bob.id, bob.id, "two")
        await conversation_repo.append_message(with_bob.id, alice.id, "mine")
        # distinct last_activity so the listing order is deterministic
        await asyncio.sleep(0.01)
        await conversation_repo.append_message(with_carol.id, carol.id, "three")

        assert await conversation_repo.unread_total(alice.id) == 3
        assert await conversation_repo.unread_total(bob.id) == 1

        summaries = await conversation_repo.list_for(alice.id)
        assert [s.id for s in summaries] == [with_carol.id, with_bob.id]
        assert {s.id: s.unread_count for s in summaries} == {with_bob.id: 2, with_carol.id: 1}
        assert summaries[0].other_user.id == carol.id
        assert summaries[0].other_user.name == "Carol"
        assert summaries[0].last_message.content == "three"

        await conversation_repo.get_with_messages(with_bob.id, alice.id)
        assert await conversation_repo.unread_total(alice.id) == 1

    async def test_unread_total_without_conversations(self, conversation_repo, trio):
        alice, _, _ = trio
        assert await conversation_repo.unread_total(alice.id) == 0


class TestAccess:

    async def test_non_participant_gets_access_denied(self, conversation_repo, convo, trio):
        _, _, carol = trio
        with pytest.raises(AccessDenied):
            await conversation_repo.get_with_messages(convo.id, carol.id)
        with pytest.raises(AccessDenied):
            await conversation_repo.delete(convo.id, carol.id)

    async def test_unknown_id_gets_not_found(self, conversation_repo, trio):
        _, _, carol = trio
        with pytest.raises(NotFound):
            await conversation_repo.get_with_messages(str(ObjectId()), carol.id)
        with pytest.raises(NotFound):
            await conversation_repo.delete(str(ObjectId()), carol.id)

    async def test_delete_is_terminal(self, conversation_repo, convo, trio):
        alice, bob, _ = trio
        await conversation_repo.delete(convo.id, bob.id)

        with pytest.raises(NotFound):
            await conversation_repo.get_with_messages(convo.id, alice.id)
        assert await conversation_repo.list_for(alice.id) == []
