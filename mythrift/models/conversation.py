from datetime import datetime
from typing import List, Optional, TypedDict

from bson import ObjectId

from mythrift.models.message import LastMessageDocument, MessageDocument


class ConversationDocument(TypedDict, total=False):
    _id: ObjectId
    # [starter, other]; display order
    participants: List[str]
    # sorted ids joined by ":"; unique, used for symmetric lookup
    participant_key: str
    messages: List[MessageDocument]
    last_message: Optional[LastMessageDocument]
    last_activity: datetime
    # bumped by every append
    version: int
    created_at: datetime
