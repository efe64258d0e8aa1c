import os

# must be set before anything from storefront is imported
os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENVIRONMENT"] = "test"
os.environ["PAYMENT_GATEWAY"] = "fake"
os.environ["CELERY_TASK_ALWAYS_EAGER"] = "true"
os.environ["SEED_DATA"] = "false"

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from storefront.api.deps import get_lock_service
from storefront.data.database import Base, SessionLocal, engine
from storefront.data.models import CartItemModel, ProductModel
from storefront.gateway import FakeGateway, reset_gateway, set_gateway
from storefront.main import create_app


class InMemoryLockService:
    """Same contract as LockService, without redis."""

    def __init__(self):
        self.locks = {}

    def acquire_payment_lock(self, transaction_id, owner, ttl):
        if transaction_id in self.locks:
            return False
        self.locks[transaction_id] = owner
        return True

    def release_payment_lock(self, transaction_id, owner):
        if self.locks.get(transaction_id) == owner:
            del self.locks[transaction_id]
            return True
        return False


@pytest.fixture(autouse=True)
def _tables():
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db():
    session = SessionLocal()
    yield session
    session.close()


@pytest.fixture()
def gateway():
    fake = FakeGateway()
    set_gateway(fake)
    yield fake
    reset_gateway()


@pytest.fixture()
def locks():
    return InMemoryLockService()


@pytest.fixture()
def client(gateway, locks):
    app = create_app()
    app.dependency_overrides[get_lock_service] = lambda: locks
    with TestClient(app) as c:
        yield c


@pytest.fixture()
def make_product(db):
    def _make(name="Keyboard", price="10.00", stock=5):
        product = ProductModel(name=name, price=Decimal(price), stock=stock)
        db.add(product)
        db.commit()
        return product.id

    return _make


@pytest.fixture()
def fill_cart(db):
    """Puts lines straight into the cart, bypassing the add-to-cart stock check."""

    def _fill(user_id, product_id, quantity):
        db.add(CartItemModel(user_id=user_id, product_id=product_id, quantity=quantity))
        db.commit()

    return _fill


@pytest.fixture()
def stock_of(db):
    def _stock(product_id):
        db.expire_all()
        return db.get(ProductModel, product_id).stock

    return _stock


def user_headers(user_id, role="user"):
    return {"X-User-Id": str(user_id), "X-User-Role": role}


@pytest.fixture()
def as_user():
    return user_headers


@pytest.fixture()
def admin_headers():
    return user_headers(999, role="admin")
