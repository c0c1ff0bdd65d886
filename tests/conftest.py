import os
from decimal import Decimal

# baza testowa zamiast postgresa, ustawione przed importem app.*
os.environ.setdefault("DATABASE_URL", "sqlite://")

import fakeredis
import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from app.data.database import Base
from app.data import models  # noqa: F401
from app.domain.cart import AnonymousOwner, UserOwner
from app.domain.errors import ItemUnavailable, MerchantUnavailable
from app.domain.schemas import CatalogItem, MerchantInfo
from app.services.cart_service import CartService
from app.services.lock_service import LockService


class FakeCatalog:
    """Katalog w pamieci z tym samym kontraktem co CatalogClient."""

    def __init__(self):
        self.merchants = {
            1: MerchantInfo(id=1, name="Chicken Palace", delivery_fee=Decimal("1500.00"),
                            min_order_amount=Decimal("5000.00")),
            2: MerchantInfo(id=2, name="Pizza Corner", delivery_fee=Decimal("1000.00"),
                            min_order_amount=Decimal("3000.00")),
            3: MerchantInfo(id=3, name="Closed Grill", active=False),
        }
        self.items = {
            (1, 7): CatalogItem(id=7, merchant_id=1, name="Fried Chicken", description="Two pieces",
                                price=Decimal("1000.00")),
            (1, 8): CatalogItem(id=8, merchant_id=1, name="Jollof Rice", price=Decimal("2500.00"),
                                discounted_price=Decimal("2200.00"), image_url="jollof.jpg"),
            (1, 9): CatalogItem(id=9, merchant_id=1, name="Chapman", price=Decimal("900.00"),
                                in_stock=False),
            (1, 10): CatalogItem(id=10, merchant_id=1, name="Old Special", price=Decimal("500.00"),
                                 active=False),
            (2, 11): CatalogItem(id=11, merchant_id=2, name="Margherita", price=Decimal("4500.00")),
            (3, 21): CatalogItem(id=21, merchant_id=3, name="Suya", price=Decimal("700.00")),
        }

    def get_merchant(self, merchant_id: int) -> MerchantInfo:
        if merchant_id not in self.merchants:
            raise MerchantUnavailable(merchant_id, "nie istnieje")
        return self.merchants[merchant_id]

    def get_item(self, merchant_id: int, menu_item_id: int) -> CatalogItem:
        if (merchant_id, menu_item_id) not in self.items:
            raise ItemUnavailable(merchant_id, menu_item_id)
        return self.items[(merchant_id, menu_item_id)]


@pytest.fixture
def db_engine():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=db_engine)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def catalog() -> FakeCatalog:
    return FakeCatalog()


@pytest.fixture
def redis_client():
    return fakeredis.FakeRedis(decode_responses=True)


@pytest.fixture
def lock_service(redis_client) -> LockService:
    return LockService(client=redis_client)


@pytest.fixture
def service(db, catalog, lock_service) -> CartService:
    return CartService(db=db, catalog=catalog, lock_service=lock_service)


@pytest.fixture
def anon() -> AnonymousOwner:
    return AnonymousOwner("anon_abc")


@pytest.fixture
def user() -> UserOwner:
    return UserOwner("u42")
