from typing import Optional

from fastapi import Depends
from fastapi.requests import HTTPConnection
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from motor.motor_asyncio import AsyncIOMotorDatabase

from mythrift.database.connection import mongo_db_dependency
from mythrift.repositories.user_repository import UserRepository
from mythrift.schemas.user import UserPublic
from mythrift.utils.errors import AccessDenied, InvalidCredential, MissingCredential
from mythrift.utils.security import decode_access_token
from mythrift.utils.websocket_manager import ConnectionManager


bearer_scheme = HTTPBearer(auto_error=False)


async def authenticate(token: Optional[str], user_repo: UserRepository) -> UserPublic:
    """Resolve a bearer token to the user it names."""
    if not token:
        raise MissingCredential()
    payload = decode_access_token(token)
    user = await user_repo.get_user_by_id(payload["sub"])
    if not user:
        raise InvalidCredential("Invalid token", status_code=401)
    return UserPublic.from_document(user)


async def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    db: AsyncIOMotorDatabase = Depends(mongo_db_dependency),
) -> UserPublic:
    token = credentials.credentials if credentials else None
    return await authenticate(token, UserRepository(db))


def authorize_ownership(user: UserPublic, owner_id: str, detail: Optional[str] = None) -> None:
    if user.id != str(owner_id):
        raise AccessDenied(detail)


def get_gateway(connection: HTTPConnection) -> ConnectionManager:
    return connection.app.state.gateway
