"""WebSocket envelopes for the realtime channel."""
from typing import Any, Literal, Optional

from pydantic import BaseModel


# client -> server
JOIN = "join"
JOIN_CHAT = "join_chat"
LEAVE_CHAT = "leave_chat"
PONG = "pong"

# server -> client
JOINED = "joined"
JOINED_CHAT = "joined_chat"
LEFT_CHAT = "left_chat"
PING = "ping"
ERROR = "error"
NEW_MESSAGE = "new_message"
CONVERSATION_LIST_UPDATE = "conversation_list_update"


class WsInbound(BaseModel):

    event: str
    data: Any = None


class WsOutbound(BaseModel):

    event: str
    data: Any = None


class BusEnvelope(BaseModel):
    """An event travelling between processes over the realtime bus."""

    scope: Literal["room", "user"]
    target: str
    event: str
    data: Optional[Any] = None
