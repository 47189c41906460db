from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from storefront.adapters.catalog_oracle import SqlCatalogOracle
from storefront.adapters.mock_courier import MockCourierAdapter
from storefront.adapters.rates import SettingsRateProvider
from storefront.api.health import router as health_router
from storefront.api.routes_admin import router as admin_router
from storefront.api.routes_cart import router as cart_router
from storefront.api.routes_inventory import router as inventory_router
from storefront.api.routes_order import router as order_router
from storefront.api.routes_sync import router as sync_router
from storefront.config import settings
from storefront.db import SessionLocal, init_db
from storefront.services.cart_sync import CartSyncEngine
from storefront.services.local_cart_cache import (
    LocalCartCache,
    load_or_create_device_id,
    utcnow,
)
from storefront.services.sync_scheduler import CartSyncScheduler
from storefront.utils.logging import get_logger

log = get_logger("app")


def create_app(
    session_factory=None,
    cart_cache: LocalCartCache = None,
    clock=utcnow,
    start_scheduler: bool = True,
) -> FastAPI:
    """
    Build the application. Tests pass their own session factory and cache;
    when session_factory is omitted the default engine is used and its schema
    is created on startup.
    """
    use_default_db = session_factory is None
    session_factory = session_factory or SessionLocal
    cart_cache = cart_cache or LocalCartCache(settings.LOCAL_CART_DIR)
    device_id = settings.DEVICE_ID or load_or_create_device_id(cart_cache.directory)

    sync_engine = CartSyncEngine(
        cart_cache,
        session_factory,
        device_id,
        tolerance_seconds=settings.CART_SYNC_TOLERANCE_SECONDS,
        clock=clock,
    )
    scheduler = CartSyncScheduler(
        sync_engine, interval_seconds=settings.CART_SYNC_INTERVAL_SECONDS
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # startup
        if use_default_db:
            init_db()
        if start_scheduler:
            scheduler.start()
        log.info("storefront started device=%s", device_id)
        try:
            yield
        finally:
            scheduler.shutdown()

    app = FastAPI(title="Storefront - Backend", version="0.1.0", lifespan=lifespan)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.FRONTEND_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.state.session_factory = session_factory
    app.state.cart_cache = cart_cache
    app.state.clock = clock
    app.state.sync_engine = sync_engine
    app.state.sync_scheduler = scheduler
    app.state.oracle = SqlCatalogOracle(session_factory)
    app.state.rates = SettingsRateProvider(settings)
    app.state.courier = MockCourierAdapter(delay_ms=settings.COURIER_MOCK_DELAY_MS)

    app.include_router(health_router, prefix="/api", tags=["health"])

    app.include_router(sync_router, tags=["cart-sync"])

    app.include_router(cart_router, tags=["cart"])

    app.include_router(inventory_router, tags=["inventory"])

    app.include_router(order_router, prefix="/api/orders", tags=["orders"])

    app.include_router(admin_router, tags=["admin"])

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host=settings.APP_HOST, port=settings.APP_PORT)
