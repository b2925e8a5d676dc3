from datetime import datetime
from typing import TypedDict

from bson import ObjectId


class MessageDocument(TypedDict):
    """Embedded in ``ConversationDocument.messages``; no collection of its own."""

    _id: ObjectId
    sender_id: str
    content: str
    timestamp: datetime
    is_read: bool


class LastMessageDocument(TypedDict):

    content: str
    sender_id: str
    timestamp: datetime
