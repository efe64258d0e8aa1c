# storefront/api/__init__.py
from fastapi import FastAPI

from storefront.api.routers import carts, checkout, health, orders, payments


def include_routers(app: FastAPI) -> FastAPI:
    app.include_router(health.router)
    app.include_router(carts.router)
    app.include_router(orders.router)
    app.include_router(checkout.router)
    app.include_router(payments.router)
    return app
