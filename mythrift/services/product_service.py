import logging
import math
from typing import Any, Dict, List, Optional, Union

from mythrift.repositories.comment_repository import CommentRepository
from mythrift.repositories.product_repository import ProductRepository, build_query
from mythrift.repositories.user_repository import UserRepository
from mythrift.schemas.product import FacetCount, Pagination, Product, ProductCreate, ProductFilters, ProductPage, ProductUpdate
from mythrift.schemas.user import UserPublic, UserSummary
from mythrift.utils.dependencies import authorize_ownership
from mythrift.utils.errors import NotFound


logger = logging.getLogger(__name__)


class ProductService:

    def __init__(
        self,
        product_repo: ProductRepository,
        user_repo: UserRepository,
        comment_repo: CommentRepository,
    ) -> None:
        self._product_repo = product_repo
        self._user_repo = user_repo
        self._comment_repo = comment_repo

    async def list_products(
        self, filters: ProductFilters, page: Optional[int] = None, limit: Optional[int] = None
    ) -> Union[List[Product], ProductPage]:
        return await self._query(build_query(filters), filters.sort_by, page, limit, filters)

    async def my_products(
        self, current_user: UserPublic, page: Optional[int] = None, limit: Optional[int] = None
    ) -> Union[List[Product], ProductPage]:
        return await self._query({"user_id": current_user.id}, "newest", page, limit, None)

    async def get_product(self, product_id: str) -> Product:
        # opening a product counts as a view
        doc = await self._product_repo.increment_views(product_id)
        if not doc:
            raise NotFound("Product not found")
        return (await self._with_owners([doc]))[0]

    async def record_view(self, product_id: str) -> int:
        doc = await self._product_repo.increment_views(product_id)
        if not doc:
            raise NotFound("Product not found")
        return doc["views"]

    async def create_product(self, current_user: UserPublic, data: ProductCreate) -> Product:
        doc = await self._product_repo.create(current_user.id, data.model_dump())
        logger.info("Product %s created by %s", doc["_id"], current_user.id)
        return Product.from_document(doc, _owner(current_user))

    async def update_product(self, current_user: UserPublic, product_id: str, changes: ProductUpdate) -> Product:
        existing = await self._require(product_id)
        authorize_ownership(current_user, existing["user_id"], "Access denied. You can only update your own products.")
        values = changes.model_dump(exclude_unset=True, exclude_none=True)
        doc = await self._product_repo.update(product_id, values) if values else existing
        if not doc:
            raise NotFound("Product not found")
        return Product.from_document(doc, _owner(current_user))

    async def delete_product(self, current_user: UserPublic, product_id: str) -> None:
        existing = await self._require(product_id)
        authorize_ownership(current_user, existing["user_id"], "Access denied. You can only delete your own products.")
        await self._product_repo.delete(product_id)
        removed = await self._comment_repo.delete_for_product(product_id)
        await self._user_repo.pull_favorite_everywhere(product_id)
        logger.info("Product %s deleted by %s (%d comments removed)", product_id, current_user.id, removed)

    async def categories(self) -> List[FacetCount]:
        return [FacetCount(value=row["_id"], count=row["count"]) for row in await self._product_repo.count_by("category")]

    async def locations(self) -> List[FacetCount]:
        return [FacetCount(value=row["_id"], count=row["count"]) for row in await self._product_repo.count_by("location")]

    async def _require(self, product_id: str) -> Dict[str, Any]:
        doc = await self._product_repo.get(product_id)
        if not doc:
            raise NotFound("Product not found")
        return doc

    async def _query(
        self,
        query: Dict[str, Any],
        sort_by: str,
        page: Optional[int],
        limit: Optional[int],
        filters: Optional[ProductFilters],
    ) -> Union[List[Product], ProductPage]:
        docs, total = await self._product_repo.find(query, sort_by, page, limit)
        products = await self._with_owners(docs)
        if not (page and limit):
            return products
        total_pages = math.ceil(total / limit) if total else 0
        return ProductPage(
            data=products,
            pagination=Pagination(
                current_page=page,
                total_pages=total_pages,
                total_count=total,
                has_next=page < total_pages,
                has_prev=page > 1,
                limit=limit,
            ),
            filters=filters,
        )

    async def _with_owners(self, docs: List[Dict[str, Any]]) -> List[Product]:
        owners = await self._user_repo.get_users_by_ids(d["user_id"] for d in docs)
        return [
            Product.from_document(d, UserSummary.from_document(owners[d["user_id"]]) if d["user_id"] in owners else None)
            for d in docs
        ]


def _owner(user: UserPublic) -> UserSummary:
    return UserSummary(id=user.id, name=user.name, profile_image=user.profile_image)
