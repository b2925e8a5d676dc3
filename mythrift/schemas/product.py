from datetime import datetime
from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from mythrift.schemas.user import UserSummary


MAX_PRODUCT_IMAGES = 5

ProductCondition = Literal["New", "Used", "Vintage", "Heritage"]
SortOption = Literal["newest", "oldest", "price_low", "price_high", "popular"]


class ProductCreate(BaseModel):

    name: str = Field(min_length=1)
    description: Optional[str] = None
    images: List[str] = Field(min_length=1, max_length=MAX_PRODUCT_IMAGES)
    price: float = Field(ge=0)
    condition: ProductCondition
    category: str = Field(min_length=1)
    location: str = Field(min_length=1)
    phone_number: str = Field(min_length=1)


class ProductUpdate(BaseModel):

    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    images: Optional[List[str]] = None
    price: Optional[float] = Field(default=None, ge=0)
    condition: Optional[ProductCondition] = None
    category: Optional[str] = Field(default=None, min_length=1)
    location: Optional[str] = Field(default=None, min_length=1)
    phone_number: Optional[str] = Field(default=None, min_length=1)

    @field_validator("images")
    @classmethod
    def _cap_images(cls, value: Optional[List[str]]) -> Optional[List[str]]:
        if value is None:
            return None
        if not value:
            raise ValueError("At least one image is required")
        return value[:MAX_PRODUCT_IMAGES]


class ProductFilters(BaseModel):

    search: Optional[str] = None
    category: Optional[str] = None
    location: Optional[str] = None
    min_price: Optional[float] = None
    max_price: Optional[float] = None
    sort_by: SortOption = "newest"


class Product(BaseModel):

    id: str
    name: str
    description: Optional[str] = None
    images: List[str]
    price: float
    condition: ProductCondition
    category: str
    location: str
    phone_number: Optional[str] = None
    user_id: str
    user: Optional[UserSummary] = None
    views: int = 0
    comment_count: int = 0
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any], owner: Optional[UserSummary] = None) -> "Product":
        return cls(
            id=str(doc["_id"]),
            name=doc["name"],
            description=doc.get("description"),
            images=list(doc.get("images") or []),
            price=doc["price"],
            condition=doc["condition"],
            category=doc["category"],
            location=doc["location"],
            phone_number=doc.get("phone_number"),
            user_id=doc["user_id"],
            user=owner,
            views=doc.get("views", 0),
            comment_count=doc.get("comment_count", 0),
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )


class Pagination(BaseModel):

    current_page: int
    total_pages: int
    total_count: int
    has_next: bool
    has_prev: bool
    limit: int


class ProductPage(BaseModel):

    data: List[Product]
    pagination: Pagination
    filters: Optional[ProductFilters] = None


class FacetCount(BaseModel):

    value: Optional[str]
    count: int
