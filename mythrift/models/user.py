from datetime import datetime
from typing import List, Optional, TypedDict


class UserDocument(TypedDict, total=False):

    _id: str
    name: str
    email: str
    hashed_password: str
    profile_image: Optional[str]
    phone: Optional[str]
    location: Optional[str]
    bio: Optional[str]
    # product ids
    favorites: List[str]
    created_at: datetime
    updated_at: datetime
