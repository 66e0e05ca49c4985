"""
Seed the database with an admin user and a few published products.

Run:
  python -m order_service.app.seed
"""

import logging

from sqlalchemy import select

from .database import Base, SessionLocal, engine
from .models import AdminUser, Product

logger = logging.getLogger(__name__)

ADMIN_USERNAME = "admin"

PRODUCTS = [
    {"name": "White T-shirt", "slug": "white-t-shirt", "price": 150000, "inventory": 10},
    {"name": "Blue shirt", "slug": "blue-shirt", "price": 250000, "inventory": 8},
    {"name": "Black polo", "slug": "black-polo", "price": 180000, "inventory": 15},
]


def seed(db) -> AdminUser:
    """Create the admin and products that are missing; existing rows are left alone."""
    admin = db.execute(select(AdminUser).where(AdminUser.username == ADMIN_USERNAME)).scalar_one_or_none()
    if admin is None:
        admin = AdminUser(username=ADMIN_USERNAME)
        db.add(admin)

    existing = set(db.execute(select(Product.slug)).scalars())
    for data in PRODUCTS:
        if data["slug"] not in existing:
            db.add(Product(published=True, **data))

    db.commit()
    db.refresh(admin)
    return admin


def main():
    logging.basicConfig(level=logging.INFO)
    Base.metadata.create_all(bind=engine)
    db = SessionLocal()
    try:
        admin = seed(db)
        logger.info("Admin '%s' has id %s (send it as X-Admin-Id)", admin.username, admin.id)
    finally:
        db.close()


if __name__ == "__main__":
    main()
