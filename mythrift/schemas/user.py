from typing import Any, Dict, List, Optional

from pydantic import BaseModel, EmailStr, Field


class UserBase(BaseModel):

    email: EmailStr


class UserCreate(UserBase):

    name: str = Field(min_length=1)
    password: str = Field(min_length=6)
    profile_image: Optional[str] = None
    location: Optional[str] = None


class UserLogin(UserBase):

    password: str = Field(min_length=1)


class UserUpdate(BaseModel):

    name: Optional[str] = Field(default=None, min_length=1)
    phone: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    profile_image: Optional[str] = None


class UserPublic(UserBase):

    id: str
    name: str
    profile_image: Optional[str] = None
    phone: Optional[str] = None
    location: Optional[str] = None
    bio: Optional[str] = None
    favorites: List[str] = Field(default_factory=list)

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserPublic":
        return cls(
            id=str(doc["_id"]),
            email=doc["email"],
            name=doc.get("name") or "",
            profile_image=doc.get("profile_image"),
            phone=doc.get("phone"),
            location=doc.get("location"),
            bio=doc.get("bio"),
            favorites=list(doc.get("favorites") or []),
        )


class UserSummary(BaseModel):
    """The slice of a user shown next to products, comments and conversations."""

    id: str
    name: str
    profile_image: Optional[str] = None

    @classmethod
    def from_document(cls, doc: Dict[str, Any]) -> "UserSummary":
        return cls(id=str(doc["_id"]), name=doc.get("name") or "", profile_image=doc.get("profile_image"))


class Token(BaseModel):

    access_token: str
    token_type: str = "bearer"


class AuthResult(BaseModel):

    message: str
    token: str
    user: UserPublic


class TokenPayload(BaseModel):

    sub: str
    exp: int
