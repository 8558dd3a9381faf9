from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from sqlmodel import Field, Relationship, SQLModel


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Plan(str, Enum):
    free = "free"
    premium = "premium"


class MenuStyle(str, Enum):
    cards = "cards"
    list = "list"


class User(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    email: str = Field(unique=True, index=True)
    hashed_password: str
    plan: Plan = Field(default=Plan.free)  # Only changed by billing reconciliation

    # Stripe billing state
    stripe_customer_id: str | None = Field(default=None, index=True)
    stripe_subscription_id: str | None = Field(default=None, index=True)
    subscription_status: str | None = None  # Stripe status: incomplete, active, past_due, canceled...
    subscription_ends_at: datetime | None = None

    created_at: datetime = Field(default_factory=_utcnow)

    restaurant: Optional["Restaurant"] = Relationship(
        back_populates="user", cascade_delete=True, sa_relationship_kwargs={"uselist": False}
    )


class Restaurant(SQLModel, table=True):
    id: int | None = Field(default=None, primary_key=True)
    user_id: int = Field(foreign_key="user.id", unique=True, ondelete="CASCADE")
    name: str
    description: str | None = None
    address: str | None = None
    phone: str | None = None
    hours: str | None = None
    logo_url: str | None = None  # e.g. /uploads/{restaurant_id}/logo/{uuid}.png

    # Public menu customization
    primary_color: str = Field(default="#059669")
    menu_style: MenuStyle = Field(default=MenuStyle.cards)

    slug: str = Field(unique=True, index=True)  # Derived from name, never edited directly
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    user: User = Relationship(back_populates="restaurant")
    categories: list["Category"] = Relationship(back_populates="restaurant", cascade_delete=True)
    products: list["Product"] = Relationship(back_populates="restaurant", cascade_delete=True)
    views: list["MenuView"] = Relationship(cascade_delete=True)


class RestaurantMixin(SQLModel):
    restaurant_id: int = Field(foreign_key="restaurant.id", index=True, ondelete="CASCADE")


class Category(RestaurantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    name: str
    sort_order: int = Field(default=0)  # Ties allowed

    restaurant: Restaurant = Relationship(back_populates="categories")


class Product(RestaurantMixin, table=True):
    id: int | None = Field(default=None, primary_key=True)
    # Must point at a category of the same restaurant; checked in catalog_service
    category_id: int | None = Field(
        default=None, foreign_key="category.id", index=True, ondelete="SET NULL"
    )
    name: str
    description: str | None = None
    price: Decimal = Field(max_digits=10, decimal_places=2)
    image_url: str | None = None
    is_active: bool = Field(default=True, index=True)
    sort_order: int = Field(default=0)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    restaurant: Restaurant = Relationship(back_populates="products")


class MenuView(RestaurantMixin, table=True):
    """Append-only: one row per public menu fetch."""
    id: int | None = Field(default=None, primary_key=True)
    viewed_at: datetime = Field(default_factory=_utcnow)
    user_agent: str | None = None
    ip_address: str | None = None


# Request/Response Models
class UserRegister(SQLModel):
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6)
    restaurant_name: str = Field(min_length=1, max_length=120)


class UserRead(SQLModel):
    id: int
    email: str
    plan: Plan
    subscription_status: str | None = None
    subscription_ends_at: datetime | None = None
    created_at: datetime


class RestaurantRead(SQLModel):
    id: int
    name: str
    description: str | None = None
    address: str | None = None
    phone: str | None = None
    hours: str | None = None
    logo_url: str | None = None
    primary_color: str
    menu_style: MenuStyle
    slug: str


class RestaurantUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    description: str | None = None
    address: str | None = None
    phone: str | None = None
    hours: str | None = None
    primary_color: str | None = Field(default=None, schema_extra={"pattern": r"^#[0-9a-fA-F]{6}$"})
    menu_style: MenuStyle | None = None


class RegisterResponse(SQLModel):
    user: UserRead
    restaurant: RestaurantRead


class CategoryCreate(SQLModel):
    name: str = Field(min_length=1, max_length=120)
    sort_order: int = 0


class CategoryUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=120)
    sort_order: int | None = None


class ProductCreate(SQLModel):
    name: str = Field(min_length=1, max_length=200)
    description: str | None = None
    price: Decimal = Field(ge=0, max_digits=10, decimal_places=2)
    category_id: int | None = None
    is_active: bool = True
    sort_order: int = 0


class ProductUpdate(SQLModel):
    name: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    price: Decimal | None = Field(default=None, ge=0, max_digits=10, decimal_places=2)
    category_id: int | None = None
    is_active: bool | None = None
    sort_order: int | None = None


class CategoryRead(SQLModel):
    id: int
    name: str
    sort_order: int


class ProductRead(SQLModel):
    id: int
    category_id: int | None = None
    name: str
    description: str | None = None
    price: Decimal
    image_url: str | None = None
    is_active: bool
    sort_order: int
    created_at: datetime
    updated_at: datetime


class PublicMenu(SQLModel):
    restaurant: RestaurantRead
    products: list[ProductRead]
    categories: list[CategoryRead]


class DashboardStats(SQLModel):
    products: int
    views: int
    scans: int
    plan: Plan


class SubscriptionStart(SQLModel):
    subscription_id: str
    client_secret: str | None = None


class SubscriptionState(SQLModel):
    plan: Plan
    subscription_status: str | None = None
    subscription_ends_at: datetime | None = None


class QRCodeResponse(SQLModel):
    qr_code: str  # data:image/png;base64,...
    menu_url: str


class UploadResponse(SQLModel):
    url: str
