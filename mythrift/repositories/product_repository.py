import re
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING, ReturnDocument

from mythrift.models.product import ProductDocument
from mythrift.schemas.product import ProductFilters
from mythrift.utils.object_ids import parse_object_id
from mythrift.utils.time_utils import utcnow


SORTS = {
    "newest": [("created_at", DESCENDING)],
    "oldest": [("created_at", ASCENDING)],
    "price_low": [("price", ASCENDING)],
    "price_high": [("price", DESCENDING)],
    "popular": [("views", DESCENDING)],
}


def build_query(filters: ProductFilters) -> Dict[str, Any]:
    query: Dict[str, Any] = {}
    if filters.search:
        pattern = re.escape(filters.search)
        query["$or"] = [
            {"name": {"$regex": pattern, "$options": "i"}},
            {"description": {"$regex": pattern, "$options": "i"}},
        ]
    # "All" is what the listing UI sends for "no filter"
    if filters.category and filters.category != "All":
        query["category"] = filters.category
    if filters.location and filters.location != "All":
        query["location"] = filters.location
    price: Dict[str, float] = {}
    if filters.min_price is not None:
        price["$gte"] = filters.min_price
    if filters.max_price is not None:
        price["$lte"] = filters.max_price
    if price:
        query["price"] = price
    return query


class ProductRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._db = db

    @property
    def collection(self):
        return self._db["products"]

    async def ensure_indexes(self) -> None:
        await self.collection.create_index([("user_id", ASCENDING)])
        await self.collection.create_index([("created_at", DESCENDING)])
        await self.collection.create_index([("category", ASCENDING)])

    async def create(self, user_id: str, data: Dict[str, Any]) -> ProductDocument:
        now = utcnow()
        doc: ProductDocument = {
            **data,
            "user_id": user_id,
            "views": 0,
            "comment_count": 0,
            "created_at": now,
            "updated_at": now,
        }
        result = await self.collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        return doc

    async def get(self, product_id: str) -> Optional[ProductDocument]:
        oid = parse_object_id(product_id)
        if oid is None:
            return None
        doc = await self.collection.find_one({"_id": oid})
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def get_many(self, product_ids: List[str]) -> List[ProductDocument]:
        oids = [oid for oid in (parse_object_id(p) for p in product_ids) if oid is not None]
        if not oids:
            return []
        items = await self.collection.find({"_id": {"$in": oids}}).to_list(length=None)
        for it in items:
            it["_id"] = str(it["_id"])
        return items

    async def find(
        self,
        query: Dict[str, Any],
        sort_by: str = "newest",
        page: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> Tuple[List[ProductDocument], int]:
        """Return (items, total). Without page and limit, everything matching."""
        cursor = self.collection.find(query).sort(SORTS.get(sort_by, SORTS["newest"]))
        if page and limit:
            cursor = cursor.skip((page - 1) * limit).limit(limit)
            total = await self.collection.count_documents(query)
            items = await cursor.to_list(length=limit)
        else:
            items = await cursor.to_list(length=None)
            total = len(items)
        for it in items:
            it["_id"] = str(it["_id"])
        return items, total

    async def increment_views(self, product_id: str) -> Optional[ProductDocument]:
        oid = parse_object_id(product_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid},
            {"$inc": {"views": 1}},
            return_document=ReturnDocument.AFTER,
        )
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def update(self, product_id: str, changes: Dict[str, Any]) -> Optional[ProductDocument]:
        oid = parse_object_id(product_id)
        if oid is None:
            return None
        doc = await self.collection.find_one_and_update(
            {"_id": oid},
            {"$set": {**changes, "updated_at": utcnow()}},
            return_document=ReturnDocument.AFTER,
        )
        if doc:
            doc["_id"] = str(doc["_id"])
        return doc

    async def delete(self, product_id: str) -> bool:
        oid = parse_object_id(product_id)
        if oid is None:
            return False
        result = await self.collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def adjust_comment_count(self, product_id: str, delta: int) -> None:
        oid = parse_object_id(product_id)
        if oid is None:
            return
        await self.collection.update_one({"_id": oid}, {"$inc": {"comment_count": delta}})

    async def count_by(self, field: str) -> List[Dict[str, Any]]:
        pipeline = [
            {"$group": {"_id": f"${field}", "count": {"$sum": 1}}},
            {"$sort": {"count": -1}},
        ]
        return await self.collection.aggregate(pipeline).to_list(length=None)
