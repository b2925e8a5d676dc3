from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from mythrift.schemas.user import UserSummary
from mythrift.utils.time_utils import as_utc


class _Timestamped(BaseModel):

    @field_validator("timestamp", "last_activity", "created_at", mode="after", check_fields=False)
    @classmethod
    def _utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return as_utc(value) if value is not None else None


class Message(_Timestamped):

    id: str
    sender_id: str
    content: str
    timestamp: datetime
    is_read: bool = False

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Message":
        return cls(
            id=str(doc["_id"]),
            sender_id=doc["sender_id"],
            content=doc["content"],
            timestamp=doc["timestamp"],
            is_read=bool(doc.get("is_read", False)),
        )


class LastMessage(_Timestamped):

    content: str
    sender_id: str
    timestamp: datetime

    @classmethod
    def from_document(cls, doc: Optional[Dict[str, Any]]) -> Optional["LastMessage"]:
        if not doc:
            return None
        return cls(content=doc["content"], sender_id=doc["sender_id"], timestamp=doc["timestamp"])


class Conversation(_Timestamped):

    id: str
    participants: List[str]
    messages: List[Message] = Field(default_factory=list)
    last_message: Optional[LastMessage] = None
    last_activity: datetime
    created_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "Conversation":
        return cls(
            id=str(doc["_id"]),
            participants=list(doc["participants"]),
            messages=[Message.from_document(m) for m in doc.get("messages") or []],
            last_message=LastMessage.from_document(doc.get("last_message")),
            last_activity=doc["last_activity"],
            created_at=doc.get("created_at"),
        )

    def other_participant(self, user_id: str) -> Optional[str]:
        for participant in self.participants:
            if participant != user_id:
                return participant
        return None


class ConversationSummary(_Timestamped):

    id: str
    other_user: Optional[UserSummary] = None
    last_message: Optional[LastMessage] = None
    last_activity: datetime
    unread_count: int = 0


class ActivitySummary(_Timestamped):
    """What a realtime event carries about the conversation after an append."""

    last_message: LastMessage
    last_activity: datetime


class StartConversation(BaseModel):

    other_user_id: str = Field(min_length=1)


class SendMessage(BaseModel):

    content: str


class UnreadCount(BaseModel):

    unread_count: int
