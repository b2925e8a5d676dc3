from datetime import datetime
from typing import List, Literal, Optional, TypedDict


ProductCondition = Literal["New", "Used", "Vintage", "Heritage"]


class ProductDocument(TypedDict, total=False):
    _id: str
    name: str
    description: Optional[str]
    images: List[str]
    price: float
    condition: ProductCondition
    category: str
    location: str
    phone_number: str
    user_id: str
    views: int
    comment_count: int
    created_at: datetime
    updated_at: datetime
