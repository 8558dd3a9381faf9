"""
Catalog API Routes

Authenticated CRUD for the current user's categories and products:
- Categories CRUD (deleting one detaches its products)
- Products CRUD, gated by the free plan's active product limit
- Product image upload
"""

from typing import Annotated

from fastapi import APIRouter, Depends, File, UploadFile
from sqlmodel import Session

from . import catalog_service, uploads
from .db import get_session
from .models import (
    CategoryCreate,
    CategoryRead,
    CategoryUpdate,
    ProductCreate,
    ProductRead,
    ProductUpdate,
)
from .security import CurrentUser

router = APIRouter()


# ============ CATEGORIES ============

@router.get("/categories")
def list_categories(
    current_user: CurrentUser,
    session: Session = Depends(get_session),
) -> list[CategoryRead]:
    restaurant = catalog_service.get_restaurant_for(session, current_user)
    return [
        CategoryRead.model_validate(category)
        for category in catalog_service.list_categories(session, restaurant.id)
    ]


@router.post("/categories")
def create_category(
    category: CategoryCreate,
    current_user: CurrentUser,
    session: Session = Depends(get_session),
) -> CategoryRead:
    created = catalog_service.create_category(session, current_user, category)
    return CategoryRead.model_validate(created)


@router.put("/categories/{category_id}")
def update_category(
    category_id: int,
    category_update: CategoryUpdate,
    current_user: CurrentUser,
    session: Session = Depends(get_session),
) -> CategoryRead:
    category = catalog_service.update_category(session, current_user, category_id, category_update)
    return CategoryRead.model_validate(category)


@router.delete("/categories/{category_id}")
def delete_category(
    category_id: int,
    current_user: CurrentUser,
    session: Session = Depends(get_session),
) -> dict:
    catalog_service.delete_category(session, current_user, category_id)
    return {"status": "deleted", "id": category_id}


# ============ PRODUCTS ============

@router.get("/products")
def list_products(
    current_user: CurrentUser,
    session: Session = Depends(get_session),
) -> list[ProductRead]:
    """All products of the restaurant, inactive ones included."""
    restaurant = catalog_service.get_restaurant_for(session, current_user)
    return [
        ProductRead.model_validate(product)
        for product in catalog_service.list_products(session, restaurant.id)
    ]


@router.post("/products")
def create_product(
    product: ProductCreate,
    current_user: CurrentUser,
    session: Session = Depends(get_session),
) -> ProductRead:
    created = catalog_service.create_product(session, current_user, product)
    return ProductRead.model_validate(created)


@router.put("/products/{product_id}")
def update_product(
    product_id: int,
    product_update: ProductUpdate,
    current_user: CurrentUser,
    session: Session = Depends(get_session),
) -> ProductRead:
    product = catalog_service.update_product(session, current_user, product_id, product_update)
    return ProductRead.model_validate(product)


@router.delete("/products/{product_id}")
def delete_product(
    product_id: int,
    current_user: CurrentUser,
    session: Session = Depends(get_session),
) -> dict:
    catalog_service.delete_product(session, current_user, product_id)
    return {"status": "deleted", "id": product_id}


@router.post("/products/{product_id}/image")
async def upload_product_image(
    product_id: int,
    file: Annotated[UploadFile, File()],
    current_user: CurrentUser,
    session: Session = Depends(get_session),
) -> ProductRead:
    """Upload an image for a product. Validates file type and size."""
    # Ownership is checked before anything is written to disk
    product = catalog_service.get_owned_product(session, current_user, product_id)
    image_url = await uploads.store_image(file, product.restaurant_id, "products")
    product = catalog_service.set_product_image(session, current_user, product_id, image_url)
    return ProductRead.model_validate(product)
