from typing import List

from fastapi import APIRouter, Depends

from mythrift.routers.auth import get_user_service
from mythrift.schemas.product import Product
from mythrift.schemas.user import UserPublic, UserUpdate
from mythrift.services.user_service import UserService
from mythrift.utils.dependencies import get_current_user


router = APIRouter(prefix="/users", tags=["users"])


@router.get("", response_model=List[UserPublic])
async def list_users(service: UserService = Depends(get_user_service)):
    return await service.list_users()


@router.get("/me/favorites", response_model=List[Product])
async def list_favorites(current_user: UserPublic = Depends(get_current_user), service: UserService = Depends(get_user_service)):
    return await service.list_favorites(current_user)


@router.post("/me/favorites/{product_id}")
async def add_favorite(product_id: str, current_user: UserPublic = Depends(get_current_user), service: UserService = Depends(get_user_service)):
    return {"favorites": await service.add_favorite(current_user, product_id)}


@router.delete("/me/favorites/{product_id}")
async def remove_favorite(product_id: str, current_user: UserPublic = Depends(get_current_user), service: UserService = Depends(get_user_service)):
    return {"favorites": await service.remove_favorite(current_user, product_id)}


@router.get("/{user_id}")
async def get_profile(user_id: str, service: UserService = Depends(get_user_service)):
    return await service.get_profile(user_id)


@router.put("/{user_id}", response_model=UserPublic)
async def update_profile(
    user_id: str,
    body: UserUpdate,
    current_user: UserPublic = Depends(get_current_user),
    service: UserService = Depends(get_user_service),
):
    return await service.update_profile(current_user, user_id, body)


@router.delete("/{user_id}")
async def delete_account(user_id: str, current_user: UserPublic = Depends(get_current_user), service: UserService = Depends(get_user_service)):
    await service.delete_account(current_user, user_id)
    return {"message": "User deleted successfully"}
