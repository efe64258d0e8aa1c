# storefront/main.py
from fastapi import FastAPI
import uvicorn

from storefront.api import include_routers
from storefront.data.database import init_db
from storefront.data.seed import seed
from storefront.utils.logging import configure_logging, get_logger
from storefront.utils.settings import SEED_DATA

configure_logging()
logger = get_logger(__name__)


def create_app() -> FastAPI:
    # tables first, every model is registered by init_db
    init_db()
    logger.info("Database tables ready")

    if SEED_DATA:
        seed()

    app = FastAPI(
        title="Storefront Checkout Service",
        version="1.0.0",
    )

    include_routers(app)

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(app, host="0.0.0.0", port=8000)
