from typing import List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from mythrift.models.comment import CommentDocument
from mythrift.utils.object_ids import parse_object_id
from mythrift.utils.time_utils import utcnow


class CommentRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["comments"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("product_id", ASCENDING), ("created_at", DESCENDING)])
        await self.collection.create_index([("user_id", ASCENDING)])

    async def create(self, user_id: str, product_id: str, text: str) -> CommentDocument:
        now = utcnow()
        doc: CommentDocument = {
            "text": text,
            "user_id": user_id,
            "product_id": product_id,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def get(self, comment_id: str) -> Optional[CommentDocument]:
        oid = parse_object_id(comment_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def list_by(self, field: str, value: str) -> List[CommentDocument]:
        cursor = self.collection.find({field: value}).sort("created_at", DESCENDING)
        items = await cursor.to_list(length=None)
        for it in items:
            it["_id"] = str(it["_id"])
        return items

    async def update_text(self, comment_id: str, text: str) -> Optional[CommentDocument]:
        oid = parse_object_id(comment_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": {"text": text, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def delete(self, comment_id: str) -> bool:
        oid = parse_object_id(comment_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def delete_for_product(self, product_id: str) -> int:
        result = await self.collection.delete_many({"product_id": product_id})
        return result.deleted_count
