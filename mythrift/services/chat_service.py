import logging
from typing import List, Tuple

from mythrift.repositories.conversation_repository import ConversationRepository
from mythrift.schemas.conversation import ActivitySummary, Conversation, ConversationSummary, Message
from mythrift.schemas.realtime import CONVERSATION_LIST_UPDATE, NEW_MESSAGE
from mythrift.schemas.user import UserPublic
from mythrift.utils.websocket_manager import ConnectionManager


logger = logging.getLogger(__name__)


class ChatService:
    """Conversation use cases: store first, then realtime fan-out."""

    def __init__(self, conversation_repo: ConversationRepository, gateway: ConnectionManager) -> None:
        self._conversation_repo = conversation_repo
        self._gateway = gateway

    async def start_conversation(self, user: UserPublic, other_user_id: str) -> Tuple[Conversation, bool]:
        return await self._conversation_repo.find_or_create(user.id, other_user_id)

    async def list_conversations(self, user: UserPublic) -> List[ConversationSummary]:
        return await self._conversation_repo.list_for(user.id)

    async def get_conversation(self, user: UserPublic, conversation_id: str) -> Conversation:
        return await self._conversation_repo.get_with_messages(conversation_id, user.id)

    async def send_message(self, user: UserPublic, conversation_id: str, content: str) -> Message:
        # raises before anything is broadcast if the write fails
        message, activity, participants = await self._conversation_repo.append_message(
            conversation_id, user.id, content
        )
        # nothing below may raise: the message is already stored
        self._gateway.dispatch(self._broadcast(conversation_id, participants, message, activity))
        return message

    async def delete_conversation(self, user: UserPublic, conversation_id: str) -> None:
        await self._conversation_repo.delete(conversation_id, user.id)

    async def unread_count(self, user: UserPublic) -> int:
        return await self._conversation_repo.unread_total(user.id)

    async def _broadcast(
        self, conversation_id: str, participants: List[str], message: Message, activity: ActivitySummary
    ) -> None:
        summary = activity.model_dump(mode="json")
        await self._gateway.publish_to_room(
            conversation_id,
            NEW_MESSAGE,
            {"conversation_id": conversation_id, "message": message.model_dump(mode="json"), **summary},
        )
        for participant in participants:
            await self._gateway.publish_to_user(
                participant,
                CONVERSATION_LIST_UPDATE,
                {"user_id": participant, "conversation_id": conversation_id, **summary},
            )
        logger.debug("Broadcast message %s in conversation %s", message.id, conversation_id)
