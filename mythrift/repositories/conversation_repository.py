import logging
from typing import Any, Dict, List, Optional, Tuple

from bson import ObjectId
from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from mythrift.models.conversation import ConversationDocument
from mythrift.models.message import MessageDocument
from mythrift.schemas.conversation import ActivitySummary, Conversation, ConversationSummary, LastMessage, Message
from mythrift.schemas.user import UserSummary
from mythrift.utils.errors import AccessDenied, EmptyContent, NotFound, SelfConversation, StoreConflict
from mythrift.utils.object_ids import parse_object_id
from mythrift.utils.time_utils import as_utc, utcnow


logger = logging.getLogger(__name__)

DEFAULT_APPEND_RETRIES = 16


def participant_key(user_a: str, user_b: str) -> str:
    return ":".join(sorted([user_a, user_b]))


class ConversationRepository:
    """
    Conversations with their messages embedded in one document.

    Every mutation of a conversation is a single-document update, so
    ``messages``, ``last_message`` and ``last_activity`` are never observed
    out of step with each other.
    """

    def __init__(self, db: AsyncIOMotorDatabase, append_max_retries: int = DEFAULT_APPEND_RETRIES) -> None:
        self._db = db
        self._append_max_retries = append_max_retries

    @property
    def collection(self):
        return self._db["conversations"]

    @property
    def users(self):
        return self._db["users"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("participants", ASCENDING)])
        await self.collection.create_index([("last_activity", DESCENDING)])
        await self.collection.create_index([("participant_key", ASCENDING)], unique=True)

    async def find_or_create(self, user_a: str, user_b: str) -> Tuple[Conversation, bool]:
        other = parse_object_id(user_b)
        if other is not None:
            # canonical lowercase hex, so key and self-check see one spelling per user
            user_b = str(other)
        if user_a == user_b:
            raise SelfConversation()
        if other is None or await self.users.find_one({"_id": other}, {"_id": 1}) is None:
            raise NotFound("User not found")

        key = participant_key(user_a, user_b)
        now = utcnow()
        created = False
        try:
            result = await self.collection.update_one(
                {"participant_key": key},
                {
                    "$setOnInsert": {
                        "participants": [user_a, user_b],
                        "messages": [],
                        "last_message": None,
                        "last_activity": now,
                        "version": 0,
                        "created_at": now,
                    }
                },
                upsert=True,
            )
            created = result.upserted_id is not None
        except DuplicateKeyError:
            # lost the upsert race; the other writer's document is the conversation
            pass

        doc = await self.collection.find_one({"participant_key": key})
        if doc is None:
            raise NotFound("Conversation not found")
        if created:
            logger.info("Conversation %s created between %s and %s", doc["_id"], user_a, user_b)
        return Conversation.from_document(doc), created

    async def list_for(self, user_id: str) -> List[ConversationSummary]:
        cursor = self.collection.find({"participants": user_id}).sort("last_activity", DESCENDING)
        docs = await cursor.to_list(length=None)

        other_ids = {p for doc in docs for p in doc["participants"] if p != user_id}
        others = await self._user_summaries(other_ids)

        summaries: List[ConversationSummary] = []
        for doc in docs:
            other_id = next((p for p in doc["participants"] if p != user_id), None)
            summaries.append(
                ConversationSummary(
                    id=str(doc["_id"]),
                    other_user=others.get(other_id) if other_id else None,
                    last_message=LastMessage.from_document(doc.get("last_message")),
                    last_activity=doc["last_activity"],
                    unread_count=self._unread_in(doc, user_id),
                )
            )
        return summaries

    async def get_with_messages(self, conversation_id: str, requester_id: str) -> Conversation:
        oid, doc = await self._load_for(conversation_id, requester_id)

        unread = [
            i
            for i, m in enumerate(doc.get("messages") or [])
            if m["sender_id"] != requester_id and not m.get("is_read", False)
        ]
        if unread:
            # indices are stable: messages are only ever appended
            await self.collection.update_one(
                {"_id": oid},
                {"$set": {f"messages.{i}.is_read": True for i in unread}},
            )
            for i in unread:
                doc["messages"][i]["is_read"] = True
        return Conversation.from_document(doc)

    async def append_message(
        self, conversation_id: str, sender_id: str, content: str
    ) -> Tuple[Message, ActivitySummary, List[str]]:
        """Returns the stored message, the new activity summary and the participants."""
        text = (content or "").strip()
        if not text:
            raise EmptyContent()

        for _ in range(self._append_max_retries):
            oid, doc = await self._load_for(conversation_id, sender_id, projection={"messages": 0})
            version = doc.get("version", 0)

            timestamp = utcnow()
            last_activity = doc.get("last_activity")
            if last_activity is not None and as_utc(last_activity) > timestamp:
                timestamp = as_utc(last_activity)

            message: MessageDocument = {
                "_id": ObjectId(),
                "sender_id": sender_id,
                "content": text,
                "timestamp": timestamp,
                "is_read": False,
            }
            last_message = {"content": text, "sender_id": sender_id, "timestamp": timestamp}

            result = await self.collection.update_one(
                {"_id": oid, "participants": sender_id, "version": version},
                {
                    "$push": {"messages": message},
                    "$set": {"last_message": last_message, "last_activity": timestamp},
                    "$inc": {"version": 1},
                },
            )
            if result.modified_count == 1:
                return (
                    Message.from_document(message),
                    ActivitySummary(last_message=LastMessage.from_document(last_message), last_activity=timestamp),
                    list(doc["participants"]),
                )
            logger.debug("Append to conversation %s raced at version %s, retrying", conversation_id, version)

        raise StoreConflict()

    async def delete(self, conversation_id: str, requester_id: str) -> None:
        oid, _ = await self._load_for(conversation_id, requester_id, projection={"participants": 1})
        await self.collection.delete_one({"_id": oid})
        logger.info("Conversation %s deleted by %s", conversation_id, requester_id)

    async def unread_total(self, user_id: str) -> int:
        pipeline = [
            {"$match": {"participants": user_id}},
            {"$unwind": "$messages"},
            {"$match": {"messages.is_read": False, "messages.sender_id": {"$ne": user_id}}},
            {"$group": {"_id": None, "total": {"$sum": 1}}},
        ]
        rows = await self.collection.aggregate(pipeline).to_list(length=1)
        return int(rows[0]["total"]) if rows else 0

    async def is_participant(self, conversation_id: str, user_id: str) -> bool:
        oid = parse_object_id(conversation_id)
        if oid is None:
            return False
        return await self.collection.find_one({"_id": oid, "participants": user_id}, {"_id": 1}) is not None

    async def _load_for(
        self, conversation_id: str, user_id: str, projection: Optional[Dict[str, Any]] = None
    ) -> Tuple[ObjectId, ConversationDocument]:
        oid = parse_object_id(conversation_id)
        if oid is None:
            raise NotFound("Conversation not found")
        doc = await self.collection.find_one({"_id": oid}, projection)
        if doc is None:
            raise NotFound("Conversation not found")
        if user_id not in doc.get("participants", []):
            raise AccessDenied()
        return oid, doc

    async def _user_summaries(self, user_ids) -> Dict[str, UserSummary]:
        oids = [oid for oid in (parse_object_id(u) for u in user_ids) if oid is not None]
        if not oids:
            return {}
        cursor = self.users.find({"_id": {"$in": oids}}, {"name": 1, "profile_image": 1})
        summaries: Dict[str, UserSummary] = {}
        async for doc in cursor:
            summaries[str(doc["_id"])] = UserSummary.from_document(doc)
        return summaries

    @staticmethod
    def _unread_in(doc: Dict[str, Any], user_id: str) -> int:
        return sum(
            1
            for m in doc.get("messages") or []
            if not m.get("is_read", False) and m["sender_id"] != user_id
        )
