"""
Catalog Service

Tenant-scoped business logic for the restaurant profile, categories and
products. Every operation takes the current user explicitly and goes through
`TenantGate` before touching a row.
"""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from . import locks, uploads
from .errors import NotFound, ValidationFailed
from .models import (
    Category,
    CategoryCreate,
    CategoryUpdate,
    Product,
    ProductCreate,
    ProductUpdate,
    Restaurant,
    RestaurantUpdate,
    User,
)
from .permissions import TenantGate
from .slugs import unique_slug

logger = logging.getLogger(__name__)

# Columns that cannot be nulled through a partial update
_REQUIRED_RESTAURANT_FIELDS = {"name", "primary_color", "menu_style"}
_REQUIRED_PRODUCT_FIELDS = {"name", "price", "is_active", "sort_order"}
_REQUIRED_CATEGORY_FIELDS = {"name", "sort_order"}


def _clean(value):
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


def _partial(data, required: set[str]) -> dict:
    """Fields explicitly sent by the client, minus nulls for NOT NULL columns."""
    changes = {}
    for key, value in data.model_dump(exclude_unset=True).items():
        value = _clean(value)
        if value is None and key in required:
            continue
        changes[key] = value
    return changes


@contextmanager
def _serialized_write(session: Session, restaurant_id: int) -> Iterator[None]:
    """
    Serialize check-then-write sequences for one restaurant.

    Holds the in-process lock and the restaurant row lock until the block
    commits; any error rolls the transaction back before the locks go.
    """
    with locks.serialized("restaurant", restaurant_id):
        try:
            locks.lock_row(session, Restaurant, restaurant_id)
            yield
        except Exception:
            session.rollback()
            raise


# ============ RESTAURANT ============

def get_restaurant_for(session: Session, user: User) -> Restaurant:
    restaurant = TenantGate.owned_restaurant(session, user)
    if restaurant is None:
        logger.error(f"User {user.id} has no restaurant")
        raise NotFound("Restaurant not found")
    return restaurant


def update_restaurant(session: Session, user: User, data: RestaurantUpdate) -> Restaurant:
    restaurant = get_restaurant_for(session, user)
    changes = _partial(data, _REQUIRED_RESTAURANT_FIELDS)

    if "name" in changes:
        # Slug follows the name; it is never edited on its own
        restaurant.slug = unique_slug(session, changes["name"], exclude_restaurant_id=restaurant.id)

    for key, value in changes.items():
        setattr(restaurant, key, value)
    restaurant.updated_at = datetime.now(timezone.utc)

    session.add(restaurant)
    try:
        session.commit()
    except IntegrityError as e:
        session.rollback()
        raise ValidationFailed("Restaurant name is already in use, try another one") from e
    session.refresh(restaurant)
    return restaurant


def set_restaurant_logo(session: Session, user: User, logo_url: str) -> Restaurant:
    restaurant = get_restaurant_for(session, user)
    previous = restaurant.logo_url

    restaurant.logo_url = logo_url
    restaurant.updated_at = datetime.now(timezone.utc)
    session.add(restaurant)
    session.commit()
    session.refresh(restaurant)

    if previous and previous != logo_url:
        uploads.remove_image(previous)
    return restaurant


# ============ CATEGORIES ============

def list_categories(session: Session, restaurant_id: int) -> list[Category]:
    statement = (
        select(Category)
        .where(Category.restaurant_id == restaurant_id)
        .order_by(Category.sort_order, Category.id)
    )
    return list(session.exec(statement).all())


def get_owned_category(session: Session, user: User, category_id: int) -> Category:
    category = session.get(Category, category_id)
    if category is None:
        raise NotFound("Category not found")
    TenantGate.require(TenantGate.authorize_tenant_access(session, user, category.restaurant_id))
    return category


def create_category(session: Session, user: User, data: CategoryCreate) -> Category:
    restaurant = get_restaurant_for(session, user)
    name = _clean(data.name)
    if not name:
        raise ValidationFailed("Category name is required")

    category = Category(restaurant_id=restaurant.id, name=name, sort_order=data.sort_order)
    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def update_category(
    session: Session, user: User, category_id: int, data: CategoryUpdate
) -> Category:
    category = get_owned_category(session, user, category_id)
    for key, value in _partial(data, _REQUIRED_CATEGORY_FIELDS).items():
        setattr(category, key, value)

    session.add(category)
    session.commit()
    session.refresh(category)
    return category


def delete_category(session: Session, user: User, category_id: int) -> None:
    """Delete a category; its products stay, detached from it."""
    category = get_owned_category(session, user, category_id)
    restaurant_id = category.restaurant_id

    session.exec(
        update(Product)
        .where(Product.category_id == category.id)
        .values(category_id=None)
    )
    session.delete(category)
    session.commit()
    logger.info(f"Category {category_id} deleted for restaurant {restaurant_id}")


# ============ PRODUCTS ============

def list_products(session: Session, restaurant_id: int, active_only: bool = False) -> list[Product]:
    statement = select(Product).where(Product.restaurant_id == restaurant_id)
    if active_only:
        statement = statement.where(Product.is_active == True)  # noqa: E712
    statement = statement.order_by(Product.sort_order, Product.created_at.desc(), Product.id.desc())
    return list(session.exec(statement).all())


def get_owned_product(session: Session, user: User, product_id: int) -> Product:
    product = session.get(Product, product_id)
    if product is None:
        raise NotFound("Product not found")
    TenantGate.require(TenantGate.authorize_tenant_access(session, user, product.restaurant_id))
    return product


def _check_category(session: Session, restaurant_id: int, category_id: int | None) -> None:
    """A product may only reference a category of its own restaurant."""
    if category_id is None:
        return
    category = session.get(Category, category_id)
    if category is None or category.restaurant_id != restaurant_id:
        raise ValidationFailed("Invalid category")


def create_product(session: Session, user: User, data: ProductCreate) -> Product:
    restaurant = get_restaurant_for(session, user)
    name = _clean(data.name)
    if not name:
        raise ValidationFailed("Product name is required")

    with _serialized_write(session, restaurant.id):
        TenantGate.require(TenantGate.authorize_product_creation(session, user, restaurant.id))
        _check_category(session, restaurant.id, data.category_id)

        product = Product(
            restaurant_id=restaurant.id,
            category_id=data.category_id,
            name=name,
            description=_clean(data.description),
            price=data.price,
            is_active=data.is_active,
            sort_order=data.sort_order,
        )
        session.add(product)
        session.commit()

    session.refresh(product)
    logger.info(f"Product {product.id} created for restaurant {restaurant.id}")
    return product


def update_product(
    session: Session, user: User, product_id: int, data: ProductUpdate
) -> Product:
    product = get_owned_product(session, user, product_id)
    changes = _partial(data, _REQUIRED_PRODUCT_FIELDS)

    with _serialized_write(session, product.restaurant_id):
        # Decide on the current row, not the copy loaded before the lock
        locks.lock_row(session, Product, product_id)
        if changes.get("is_active") and not product.is_active:
            # Reactivation adds an active product, same limit as creation
            TenantGate.require(
                TenantGate.authorize_product_creation(session, user, product.restaurant_id)
            )
        if "category_id" in changes:
            _check_category(session, product.restaurant_id, changes["category_id"])

        for key, value in changes.items():
            setattr(product, key, value)
        product.updated_at = datetime.now(timezone.utc)
        session.add(product)
        session.commit()

    session.refresh(product)
    return product


def set_product_image(session: Session, user: User, product_id: int, image_url: str) -> Product:
    product = get_owned_product(session, user, product_id)
    previous = product.image_url

    product.image_url = image_url
    product.updated_at = datetime.now(timezone.utc)
    session.add(product)
    session.commit()
    session.refresh(product)

    if previous and previous != image_url:
        uploads.remove_image(previous)
    return product


def delete_product(session: Session, user: User, product_id: int) -> None:
    product = get_owned_product(session, user, product_id)
    image_url = product.image_url

    session.delete(product)
    session.commit()
    uploads.remove_image(image_url)
