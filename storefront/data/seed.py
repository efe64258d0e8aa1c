# storefront/data/seed.py
from decimal import Decimal

from storefront.data.database import SessionLocal
from storefront.data.models import ProductModel
from storefront.utils.logging import get_logger

logger = get_logger(__name__)

PRODUCTS = [
    {"name": "Modern Office Chair", "price": Decimal("199.99"), "stock": 25},
    {"name": "Wireless Keyboard", "price": Decimal("49.50"), "stock": 40},
    {"name": "27\" Monitor", "price": Decimal("299.00"), "stock": 10},
    {"name": "Desk Lamp", "price": Decimal("24.90"), "stock": 60},
]


def seed():
    db = SessionLocal()
    try:
        # only seed if empty
        if db.query(ProductModel).first():
            return
        for data in PRODUCTS:
            db.add(ProductModel(**data))
        db.commit()
        logger.info(f"Seeded {len(PRODUCTS)} products")
    finally:
        db.close()
