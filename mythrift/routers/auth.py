from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from mythrift.database.connection import mongo_db_dependency
from mythrift.repositories.product_repository import ProductRepository
from mythrift.repositories.user_repository import UserRepository
from mythrift.schemas.user import AuthResult, UserCreate, UserLogin
from mythrift.services.user_service import UserService


router = APIRouter(prefix="/auth", tags=["auth"])


def get_user_service(db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)) -> UserService:
    return UserService(UserRepository(db), ProductRepository(db))


@router.post("/register", response_model=AuthResult, status_code=status.HTTP_201_CREATED)
async def register(body: UserCreate, service: UserService = Depends(get_user_service)):
    return await service.register_user(body)


@router.post("/login", response_model=AuthResult)
async def login(body: UserLogin, service: UserService = Depends(get_user_service)):
    return await service.authenticate_user(body.email, body.password)


@router.post("/logout")
async def logout():
    # tokens are stateless; the client just drops it
    return {"message": "Logout successful"}
