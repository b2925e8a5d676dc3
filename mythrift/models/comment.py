from datetime import datetime
from typing import TypedDict


class CommentDocument(TypedDict, total=False):
    _id: str
    text: str
    user_id: str
    product_id: str
    created_at: datetime
    updated_at: datetime
