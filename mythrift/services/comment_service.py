from typing import Any, Dict, List

from mythrift.repositories.comment_repository import CommentRepository
from mythrift.repositories.product_repository import ProductRepository
from mythrift.repositories.user_repository import UserRepository
from mythrift.schemas.comment import Comment
from mythrift.schemas.user import UserPublic, UserSummary
from mythrift.utils.dependencies import authorize_ownership
from mythrift.utils.errors import NotFound, ValidationFailed


class CommentService:

    def __init__(self, comment_repo: CommentRepository, product_repo: ProductRepository, user_repo: UserRepository) -> None:
        self._comment_repo = comment_repo
        self._product_repo = product_repo
        self._user_repo = user_repo

    async def list_for_product(self, product_id: str) -> List[Comment]:
        if not await self._product_repo.get(product_id):
            raise NotFound("Product not found")
        return await self._populate(await self._comment_repo.list_by("product_id", product_id))

    async def my_comments(self, current_user: UserPublic) -> List[Comment]:
        return await self._populate(await self._comment_repo.list_by("user_id", current_user.id))

    async def get(self, comment_id: str) -> Comment:
        return (await self._populate([await self._require(comment_id)]))[0]

    async def create(self, current_user: UserPublic, product_id: str, text: str) -> Comment:
        text = _clean(text)
        if not await self._product_repo.get(product_id):
            raise NotFound("Product not found")
        doc = await self._comment_repo.create(current_user.id, product_id, text)
        await self._product_repo.adjust_comment_count(product_id, 1)
        return (await self._populate([doc]))[0]

    async def update(self, current_user: UserPublic, comment_id: str, text: str) -> Comment:
        text = _clean(text)
        existing = await self._require(comment_id)
        authorize_ownership(current_user, existing["user_id"], "Access denied. You can only update your own comments.")
        doc = await self._comment_repo.update_text(comment_id, text)
        if not doc:
            raise NotFound("Comment not found")
        return (await self._populate([doc]))[0]

    async def delete(self, current_user: UserPublic, comment_id: str) -> None:
        existing = await self._require(comment_id)
        authorize_ownership(current_user, existing["user_id"], "Access denied. You can only delete your own comments.")
        if await self._comment_repo.delete(comment_id):
            await self._product_repo.adjust_comment_count(existing["product_id"], -1)

    async def _require(self, comment_id: str) -> Dict[str, Any]:
        doc = await self._comment_repo.get(comment_id)
        if not doc:
            raise NotFound("Comment not found")
        return doc

    async def _populate(self, docs: List[Dict[str, Any]]) -> List[Comment]:
        authors = await self._user_repo.get_users_by_ids(d["user_id"] for d in docs)
        products = {p["_id"]: p for p in await self._product_repo.get_many(list({d["product_id"] for d in docs}))}
        comments: List[Comment] = []
        for d in docs:
            author = authors.get(d["user_id"])
            product = products.get(d["product_id"])
            comments.append(
                Comment.from_document(
                    d,
                    author=UserSummary.from_document(author) if author else None,
                    product_name=product["name"] if product else None,
                )
            )
        return comments


def _clean(text: str) -> str:
    text = (text or "").strip()
    if not text:
        raise ValidationFailed("Text is required")
    return text
