"""
Public menu projection and view counting.
"""

import logging

from sqlmodel import Session, func, select

from . import catalog_service
from .errors import NotFound
from .models import (
    CategoryRead,
    DashboardStats,
    MenuView,
    ProductRead,
    PublicMenu,
    Restaurant,
    RestaurantRead,
    User,
)
from .permissions import TenantGate

logger = logging.getLogger(__name__)

MAX_USER_AGENT_LENGTH = 512
SCAN_RATIO = 0.8  # Share of views assumed to come from QR scans


def record_menu_view(
    session: Session,
    restaurant_id: int,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> MenuView:
    view = MenuView(
        restaurant_id=restaurant_id,
        user_agent=user_agent[:MAX_USER_AGENT_LENGTH] if user_agent else None,
        ip_address=ip_address,
    )
    session.add(view)
    session.commit()
    return view


def count_menu_views(session: Session, restaurant_id: int) -> int:
    statement = (
        select(func.count())
        .select_from(MenuView)
        .where(MenuView.restaurant_id == restaurant_id)
    )
    return session.exec(statement).one()


def get_public_menu(
    session: Session,
    slug: str,
    user_agent: str | None = None,
    ip_address: str | None = None,
) -> PublicMenu:
    """
    Assemble the anonymous view of a restaurant's menu and count the visit.

    Only active products are listed; every category is, empty ones included.
    The view is recorded after the projection is built and a failure to record
    it never fails the request.
    """
    restaurant = session.exec(select(Restaurant).where(Restaurant.slug == slug)).first()
    if restaurant is None:
        raise NotFound("Menu not found")

    menu = PublicMenu(
        restaurant=RestaurantRead.model_validate(restaurant),
        products=[
            ProductRead.model_validate(product)
            for product in catalog_service.list_products(session, restaurant.id, active_only=True)
        ],
        categories=[
            CategoryRead.model_validate(category)
            for category in catalog_service.list_categories(session, restaurant.id)
        ],
    )

    restaurant_id = restaurant.id
    try:
        record_menu_view(session, restaurant_id, user_agent, ip_address)
    except Exception as e:
        session.rollback()
        logger.warning(f"Could not record menu view for restaurant {restaurant_id}: {e}")

    return menu


def dashboard_stats(session: Session, user: User) -> DashboardStats:
    restaurant = catalog_service.get_restaurant_for(session, user)
    views = count_menu_views(session, restaurant.id)
    return DashboardStats(
        products=TenantGate.count_active_products(session, restaurant.id),
        views=views,
        scans=int(views * SCAN_RATIO),
        plan=user.plan,
    )
