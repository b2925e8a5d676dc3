from typing import List

from fastapi import APIRouter, Depends, Response, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from mythrift.config import get_settings
from mythrift.database.connection import mongo_db_dependency
from mythrift.repositories.conversation_repository import ConversationRepository
from mythrift.schemas.conversation import (
    Conversation,
    ConversationSummary,
    Message,
    SendMessage,
    StartConversation,
    UnreadCount,
)
from mythrift.schemas.user import UserPublic
from mythrift.services.chat_service import ChatService
from mythrift.utils.dependencies import get_current_user, get_gateway
from mythrift.utils.websocket_manager import ConnectionManager


router = APIRouter(prefix="/conversations", tags=["chat"])


def get_chat_service(
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
    gateway: ConnectionManager = Depends(get_gateway),
) -> ChatService:
    convo_repo = ConversationRepository(db, append_max_retries=get_settings().append_max_retries)
    return ChatService(convo_repo, gateway)


@router.get("", response_model=List[ConversationSummary])
async def list_conversations(current_user: UserPublic = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    return await service.list_conversations(current_user)


@router.post("", response_model=Conversation)
async def start_conversation(
    body: StartConversation,
    response: Response,
    current_user: UserPublic = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    conversation, created = await service.start_conversation(current_user, body.other_user_id)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return conversation


@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(current_user: UserPublic = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    return UnreadCount(unread_count=await service.unread_count(current_user))


@router.get("/{conversation_id}", response_model=Conversation)
async def get_conversation(conversation_id: str, current_user: UserPublic = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    return await service.get_conversation(current_user, conversation_id)


@router.post("/{conversation_id}/messages", response_model=Message, status_code=status.HTTP_201_CREATED)
async def send_message(
    conversation_id: str,
    body: SendMessage,
    current_user: UserPublic = Depends(get_current_user),
    service: ChatService = Depends(get_chat_service),
):
    return await service.send_message(current_user, conversation_id, body.content)


@router.delete("/{conversation_id}")
async def delete_conversation(conversation_id: str, current_user: UserPublic = Depends(get_current_user), service: ChatService = Depends(get_chat_service)):
    await service.delete_conversation(current_user, conversation_id)
    return {"message": "Conversation deleted successfully"}
