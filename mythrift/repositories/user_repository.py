from typing import Any, Dict, Iterable, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, ReturnDocument

from mythrift.models.user import UserDocument
from mythrift.utils.object_ids import parse_object_id
from mythrift.utils.time_utils import utcnow


# never leaves the repository
_PUBLIC_PROJECTION = {"hashed_password": 0}


class UserRepository:

    def __init__(self, db: AsyncIOMotorDatabase) -> None:
        self._collection = db.get_collection("users")

    async def ensure_indexes(self) -> None:
        await self._collection.create_index([("email", ASCENDING)], unique=True)

    async def create_user(
        self,
        name: str,
        email: str,
        hashed_password: str,
        profile_image: Optional[str] = None,
        location: Optional[str] = None,
    ) -> UserDocument:
        now = utcnow()
        doc: UserDocument = {
            "name": name,
            "email": email,
            "hashed_password": hashed_password,
            "profile_image": profile_image,
            "location": location,
            "phone": None,
            "bio": None,
            "favorites": [],
            "created_at": now,
            "updated_at": now,
        }
        result = await self._collection.insert_one(doc)
        doc["_id"] = str(result.inserted_id)
        doc.pop("hashed_password")
        return doc

    async def get_user_by_email(self, email: str) -> Optional[UserDocument]:
        # includes hashed_password, for login only
        user = await self._collection.find_one({"email": email})
        if user:
            user["_id"] = str(user["_id"])
        return user

    async def get_user_by_id(self, user_id: str) -> Optional[UserDocument]:
        oid = parse_object_id(user_id)
        if oid is None:
            return None
        user = await self._collection.find_one({"_id": oid}, _PUBLIC_PROJECTION)
        if user:
            user["_id"] = str(user["_id"])
        return user

    async def exists(self, user_id: str) -> bool:
        oid = parse_object_id(user_id)
        if oid is None:
            return False
        return await self._collection.find_one({"_id": oid}, {"_id": 1}) is not None

    async def get_users_by_ids(self, user_ids: Iterable[str]) -> Dict[str, UserDocument]:
        oids = [oid for oid in (parse_object_id(u) for u in set(user_ids)) if oid is not None]
        if not oids:
            return {}
        cursor = self._collection.find({"_id": {"$in": oids}}, _PUBLIC_PROJECTION)
        users: Dict[str, UserDocument] = {}
        async for doc in cursor:
            doc["_id"] = str(doc["_id"])
            users[doc["_id"]] = doc
        return users

    async def list_users(self) -> List[UserDocument]:
        items = await self._collection.find({}, _PUBLIC_PROJECTION).sort("created_at", -1).to_list(length=None)
        for it in items:
            it["_id"] = str(it["_id"])
        return items

    async def update_profile(self, user_id: str, changes: Dict[str, Any]) -> Optional[UserDocument]:
        oid = parse_object_id(user_id)
        if oid is None:
            return None
        updated = await self._collection.find_one_and_update(
            {"_id": oid},
            {"$set": {**changes, "updated_at": utcnow()}},
            projection=_PUBLIC_PROJECTION,
            return_document=ReturnDocument.AFTER,
        )
        if updated:
            updated["_id"] = str(updated["_id"])
        return updated

    async def delete_user(self, user_id: str) -> bool:
        oid = parse_object_id(user_id)
        if oid is None:
            return False
        result = await self._collection.delete_one({"_id": oid})
        return result.deleted_count > 0

    async def add_favorite(self, user_id: str, product_id: str) -> List[str]:
        return await self._update_favorites(user_id, {"$addToSet": {"favorites": product_id}})

    async def remove_favorite(self, user_id: str, product_id: str) -> List[str]:
        return await self._update_favorites(user_id, {"$pull": {"favorites": product_id}})

    async def pull_favorite_everywhere(self, product_id: str) -> None:
        await self._collection.update_many({"favorites": product_id}, {"$pull": {"favorites": product_id}})

    async def _update_favorites(self, user_id: str, update: Dict[str, Any]) -> List[str]:
        oid = parse_object_id(user_id)
        if oid is None:
            return []
        updated = await self._collection.find_one_and_update(
            {"_id": oid},
            update,
            projection={"favorites": 1},
            return_document=ReturnDocument.AFTER,
        )
        return list((updated or {}).get("favorites") or [])
