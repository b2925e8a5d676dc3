from typing import List, Optional, Union

from fastapi import APIRouter, Depends, Query, status
from motor.motor_asyncio import AsyncIOMotorDatabase

from mythrift.database.connection import mongo_db_dependency
from mythrift.repositories.comment_repository import CommentRepository
from mythrift.repositories.product_repository import ProductRepository
from mythrift.repositories.user_repository import UserRepository
from mythrift.schemas.product import FacetCount, Product, ProductCreate, ProductFilters, ProductPage, ProductUpdate, SortOption
from mythrift.schemas.user import UserPublic
from mythrift.services.product_service import ProductService
from mythrift.utils.dependencies import get_current_user


router = APIRouter(prefix="/products", tags=["products"])


def get_product_service(db: AsyncIOMotorDatabase = Depends(mongo_db_dependency)) -> ProductService:
    return ProductService(ProductRepository(db), UserRepository(db), CommentRepository(db))


@router.get("", response_model=Union[ProductPage, List[Product]])
async def list_products(
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    search: Optional[str] = None,
    category: Optional[str] = None,
    location: Optional[str] = None,
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort_by: SortOption = "newest",
    service: ProductService = Depends(get_product_service),
):
    filters = ProductFilters(
        search=search,
        category=category,
        location=location,
        min_price=min_price,
        max_price=max_price,
        sort_by=sort_by,
    )
    return await service.list_products(filters, page=page, limit=limit)


@router.get("/meta/categories", response_model=List[FacetCount])
async def categories(service: ProductService = Depends(get_product_service)):
    return await service.categories()


@router.get("/meta/locations", response_model=List[FacetCount])
async def locations(service: ProductService = Depends(get_product_service)):
    return await service.locations()


@router.get("/user/my-products", response_model=Union[ProductPage, List[Product]])
async def my_products(
    page: Optional[int] = Query(None, ge=1),
    limit: Optional[int] = Query(None, ge=1, le=100),
    current_user: UserPublic = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    return await service.my_products(current_user, page=page, limit=limit)


@router.get("/{product_id}", response_model=Product)
async def get_product(product_id: str, service: ProductService = Depends(get_product_service)):
    return await service.get_product(product_id)


@router.put("/{product_id}/view")
async def record_view(product_id: str, service: ProductService = Depends(get_product_service)):
    return {"views": await service.record_view(product_id)}


@router.post("", response_model=Product, status_code=status.HTTP_201_CREATED)
async def create_product(body: ProductCreate, current_user: UserPublic = Depends(get_current_user), service: ProductService = Depends(get_product_service)):
    return await service.create_product(current_user, body)


@router.put("/{product_id}", response_model=Product)
async def update_product(
    product_id: str,
    body: ProductUpdate,
    current_user: UserPublic = Depends(get_current_user),
    service: ProductService = Depends(get_product_service),
):
    return await service.update_product(current_user, product_id, body)


@router.delete("/{product_id}")
async def delete_product(product_id: str, current_user: UserPublic = Depends(get_current_user), service: ProductService = Depends(get_product_service)):
    await service.delete_product(current_user, product_id)
    return {"message": "Product deleted successfully"}
