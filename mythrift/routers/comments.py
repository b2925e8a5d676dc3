from typing import List

from fastapi import APIRouter, Depends, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from mythrift.database.connection import mongo_db_dependency
from mythrift.repositories.comment_repository import CommentRepository
from mythrift.repositories.product_repository import ProductRepository
from mythrift.repositories.user_repository import UserRepository
from mythrift.schemas.comment import Comment, CommentCreate, CommentUpdate
from mythrift.schemas.user import UserPublic
from mythrift.services.comment_service import CommentService
from mythrift.utils.dependencies import get_current_user


router = APIRouter(prefix="/comments", tags=["comments"])


def get_comment_service(db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)) -> CommentService:
    return CommentService(CommentRepository(db), ProductRepository(db), UserRepository(db))


@router.get("/product/{product_id}", response_model=List[Comment])
async def product_comments(product_id: str, service: CommentService = Depends(get_comment_service)):
    return await service.list_for_product(product_id)


@router.get("/user/my-comments", response_model=List[Comment])
async def my_comments(current_user: UserPublic = Depends(get_current_user), service: CommentService = Depends(get_comment_service)):
    return await service.my_comments(current_user)


@router.get("/{comment_id}", response_model=Comment)
async def get_comment(comment_id: str, service: CommentService = Depends(get_comment_service)):
    return await service.get(comment_id)


@router.post("", response_model=Comment, status_code=status.HTTP_201_CREATED)
async def create_comment(body: CommentCreate, current_user: UserPublic = Depends(get_current_user), service: CommentService = Depends(get_comment_service)):
    return await service.create(current_user, body.product_id, body.text)


@router.put("/{comment_id}", response_model=Comment)
async def update_comment(
    comment_id: str,
    body: CommentUpdate,
    current_user: UserPublic = Depends(get_current_user),
    service: CommentService = Depends(get_comment_service),
):
    return await service.update(current_user, comment_id, body.text)


@router.delete("/{comment_id}")
async def delete_comment(comment_id: str, current_user: UserPublic = Depends(get_current_user), service: CommentService = Depends(get_comment_service)):
    await service.delete(current_user, comment_id)
    return {"message": "Comment deleted successfully"}
