import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote

from pymongo.errors import DuplicateKeyError

from mythrift.repositories.product_repository import ProductRepository
from mythrift.repositories.user_repository import UserRepository
from mythrift.schemas.product import Product
from mythrift.schemas.user import AuthResult, UserCreate, UserPublic, UserSummary, UserUpdate
from mythrift.utils.dependencies import authorize_ownership
from mythrift.utils.errors import Conflict, InvalidLogin, NotFound
from mythrift.utils.security import create_access_token, hash_password, verify_password


logger = logging.getLogger(__name__)


def default_avatar(name: str) -> str:
    return f"https://ui-avatars.com/api/?name={quote(name)}&background=834d1a&color=ffffff&size=200"


class UserService:
    """Accounts, profiles and favorites."""

    def __init__(self, user_repository: UserRepository, product_repository: ProductRepository):
        self.user_repository = user_repository
        self.product_repository = product_repository

    async def register_user(self, data: UserCreate) -> AuthResult:
        """
        Register a new user
        - reject an email that is already registered
        - hash the password
        - generate an avatar when none was given
        - return a token so the client is logged in straight away
        """
        existing = await self.user_repository.get_user_by_email(data.email)
        if existing:
            raise Conflict("User already exists with this email")

        try:
            doc = await self.user_repository.create_user(
                name=data.name,
                email=data.email,
                hashed_password=hash_password(data.password),
                profile_image=data.profile_image or default_avatar(data.name),
                location=data.location,
            )
        except DuplicateKeyError:
            raise Conflict("User already exists with this email")

        user = UserPublic.from_document(doc)
        logger.info("Registered user %s", user.id)
        return AuthResult(
            message="User registered successfully",
            token=create_access_token(user.id, email=user.email),
            user=user,
        )

    async def authenticate_user(self, email: str, password: str) -> AuthResult:
        """
        Log a user in
        - look the user up by email
        - verify the password
        Both failures look the same to the caller.
        """
        user = await self.user_repository.get_user_by_email(email)
        if not user or not verify_password(password, user.get("hashed_password", "")):
            raise InvalidLogin()

        public = UserPublic.from_document(user)
        return AuthResult(
            message="Login successful",
            token=create_access_token(public.id, email=public.email),
            user=public,
        )

    async def list_users(self) -> List[UserPublic]:
        return [UserPublic.from_document(doc) for doc in await self.user_repository.list_users()]

    async def get_profile(self, user_id: str) -> Dict[str, Any]:
        doc = await self.user_repository.get_user_by_id(user_id)
        if not doc:
            raise NotFound("User not found")
        user = UserPublic.from_document(doc)
        products, _ = await self.product_repository.find({"user_id": user.id})
        owner = UserSummary.from_document(doc)
        return {"user": user, "products": [Product.from_document(p, owner) for p in products]}

    async def update_profile(self, current_user: UserPublic, user_id: str, changes: UserUpdate) -> UserPublic:
        authorize_ownership(current_user, user_id, "Access denied. You can only access your own data")
        values = changes.model_dump(exclude_unset=True)
        if values.get("name") is None:
            # name is required; optional fields may be cleared with null
            values.pop("name", None)
        if not values:
            return current_user
        doc = await self.user_repository.update_profile(user_id, values)
        if not doc:
            raise NotFound("User not found")
        return UserPublic.from_document(doc)

    async def delete_account(self, current_user: UserPublic, user_id: str) -> None:
        authorize_ownership(current_user, user_id, "Access denied. You can only access your own data")
        if not await self.user_repository.delete_user(user_id):
            raise NotFound("User not found")
        logger.info("Deleted user %s", user_id)

    async def add_favorite(self, current_user: UserPublic, product_id: str) -> List[str]:
        if not await self.product_repository.get(product_id):
            raise NotFound("Product not found")
        return await self.user_repository.add_favorite(current_user.id, product_id)

    async def remove_favorite(self, current_user: UserPublic, product_id: str) -> List[str]:
        return await self.user_repository.remove_favorite(current_user.id, product_id)

    async def list_favorites(self, current_user: UserPublic) -> List[Product]:
        doc = await self.user_repository.get_user_by_id(current_user.id)
        favorite_ids: Optional[List[str]] = (doc or {}).get("favorites")
        if not favorite_ids:
            return []
        products = await self.product_repository.get_many(favorite_ids)
        owners = await self.user_repository.get_users_by_ids(p["user_id"] for p in products)
        by_id = {p["_id"]: p for p in products}
        # keep the order the user favorited them in; deleted products drop out
        return [
            Product.from_document(by_id[pid], _summary(owners.get(by_id[pid]["user_id"])))
            for pid in favorite_ids
            if pid in by_id
        ]


def _summary(doc: Optional[Dict[str, Any]]) -> Optional[UserSummary]:
    return UserSummary.from_document(doc) if doc else None
