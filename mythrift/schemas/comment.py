from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from mythrift.schemas.user import UserSummary


class CommentCreate(BaseModel):

    text: str = Field(min_length=1)
    product_id: str = Field(min_length=1)


class CommentUpdate(BaseModel):

    text: str = Field(min_length=1)


class Comment(BaseModel):

    id: str
    text: str
    user_id: str
    product_id: str
    user: Optional[UserSummary] = None
    product_name: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    @classmethod
    def from_document(
        cls,
        doc: Dict[str, Any],
        author: Optional[UserSummary] = None,
        product_name: Optional[str] = None,
    ) -> "Comment":
        return cls(
            id=str(doc["_id"]),
            text=doc["text"],
            user_id=doc["user_id"],
            product_id=doc["product_id"],
            user=author,
            product_name=product_name,
            created_at=doc.get("created_at"),
            updated_at=doc.get("updated_at"),
        )
