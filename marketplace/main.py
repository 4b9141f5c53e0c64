from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace.auth.routes import router as auth_router
from marketplace.auth.store import MemoryUserStore, MongoUserStore
from marketplace.catalog.routes import router as catalog_router
from marketplace.catalog.store import MemoryCatalogStore, MongoCatalogStore
from marketplace.deps import Services, build_services
from marketplace.gateway.routes import router as gateway_router
from marketplace.orders.routes import router as orders_router
from marketplace.orders.store import MemoryOrderStore, MongoOrderStore
from marketplace.shared.logging_config import setup_logging, RequestLoggingMiddleware
from marketplace.shared.security_config import setup_rate_limiting, SecurityHeadersMiddleware
from marketplace.shared.utils import Settings, settings, get_db_client

SERVICE_NAME = "marketplace"


async def init_services(config: Settings) -> Services:
    if config.STORE_BACKEND == "memory":
        catalog = MemoryCatalogStore()
        return build_services(config, MemoryUserStore(), catalog, MemoryOrderStore(catalog))

    if config.STORE_BACKEND != "mongo":
        raise ValueError(f"Unknown STORE_BACKEND: {config.STORE_BACKEND}")

    client = get_db_client(config.MONGO_URL)
    db = client[config.DATABASE_NAME]
    users, catalog, orders = MongoUserStore(db), MongoCatalogStore(db), MongoOrderStore(db)
    for store in (users, catalog, orders):
        await store.create_indexes()
    return build_services(config, users, catalog, orders, mongodb_client=client)


def create_app(config: Optional[Settings] = None, rate_limit: bool = True) -> FastAPI:
    config = config or settings
    logger = setup_logging(SERVICE_NAME)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        app.state.services = await init_services(config)
        logger.info(f"Stores ready ({config.STORE_BACKEND})")
        yield
        if app.state.services.mongodb_client is not None:
            app.state.services.mongodb_client.close()

    app = FastAPI(title="Event Marketplace", lifespan=lifespan)

    # Security Setup
    setup_rate_limiting(app, enabled=rate_limit)
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestLoggingMiddleware, service_name=SERVICE_NAME)

    # CORS Configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(auth_router)
    app.include_router(catalog_router)
    app.include_router(orders_router)
    app.include_router(gateway_router)
    return app


app = create_app()
