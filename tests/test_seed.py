from sqlalchemy import func, select

from order_service.app.models import AdminUser, Product
from order_service.app.seed import PRODUCTS, seed


def test_seed_is_repeatable(db):
    first = seed(db)
    second = seed(db)

    assert first.id == second.id
    assert db.execute(select(func.count(AdminUser.id))).scalar_one() == 1
    assert db.execute(select(func.count(Product.id))).scalar_one() == len(PRODUCTS)
