"""
Seed a demo account with a restaurant, categories and a few products.

Goes through the catalog service, so the free plan limit applies like it
does for the API.

Usage:
    python -m menuqr.seeds.demo
    python -m menuqr.seeds.demo --email owner@example.com --password secret123
"""

import argparse
from decimal import Decimal

from sqlmodel import Session, select

from menuqr import catalog_service
from menuqr.db import create_db_and_tables, engine
from menuqr.models import CategoryCreate, ProductCreate, Restaurant, User
from menuqr.security import get_password_hash
from menuqr.slugs import unique_slug


DEMO_MENU = {
    "Entradas": [
        ("Pão de queijo", "Porção com 6 unidades", "14.90"),
        ("Bruschetta", "Tomate, manjericão e azeite", "22.00"),
    ],
    "Pratos principais": [
        ("Moqueca de peixe", "Serve duas pessoas", "89.90"),
        ("Feijoada", "Acompanha arroz, couve e farofa", "59.90"),
    ],
    "Bebidas": [
        ("Suco de caju", None, "9.50"),
    ],
}


def seed_demo(email: str, password: str, restaurant_name: str) -> dict[str, int]:
    create_db_and_tables()

    with Session(engine) as session:
        user = session.exec(select(User).where(User.email == email)).first()
        if user:
            print(f"User {email} already exists, skipping")
            return {"categories_created": 0, "products_created": 0}

        user = User(email=email, hashed_password=get_password_hash(password))
        session.add(user)
        session.flush()
        session.add(Restaurant(
            user_id=user.id,
            name=restaurant_name,
            slug=unique_slug(session, restaurant_name),
        ))
        session.commit()
        session.refresh(user)

        categories_created = 0
        products_created = 0
        for sort_order, (category_name, products) in enumerate(DEMO_MENU.items()):
            category = catalog_service.create_category(
                session, user, CategoryCreate(name=category_name, sort_order=sort_order)
            )
            categories_created += 1
            print(f"Created category: {category.name}")

            for name, description, price in products:
                product = catalog_service.create_product(
                    session,
                    user,
                    ProductCreate(
                        name=name,
                        description=description,
                        price=Decimal(price),
                        category_id=category.id,
                    ),
                )
                products_created += 1
                print(f"  Created product: {product.name} ({product.price})")

        restaurant = catalog_service.get_restaurant_for(session, user)
        print(f"Public menu slug: {restaurant.slug}")

        return {
            "categories_created": categories_created,
            "products_created": products_created,
        }


def main() -> None:
    parser = argparse.ArgumentParser(description="Seed a demo MenuQR account")
    parser.add_argument("--email", default="demo@menuqr.local")
    parser.add_argument("--password", default="demo123")
    parser.add_argument("--restaurant", default="Restaurante Demonstração")
    args = parser.parse_args()

    print("Seeding demo account...")
    result = seed_demo(args.email.strip().lower(), args.password, args.restaurant)
    print("\nComplete!")
    print(f"  Categories created: {result['categories_created']}")
    print(f"  Products created: {result['products_created']}")


if __name__ == "__main__":
    main()
