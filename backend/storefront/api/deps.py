from fastapi import Request
from sqlalchemy.orm import Session

from storefront.adapters.catalog_oracle import SqlCatalogOracle
from storefront.services.cart_service import CartService
from storefront.services.cart_sync import CartSyncEngine
from storefront.services.cart_validator import CartValidator
from storefront.services.local_cart_cache import LocalCartCache
from storefront.services.order_commit import OrderCommitService
from storefront.services.order_lifecycle import OrderStatusService
from storefront.services.sync_scheduler import CartSyncScheduler


def get_db(request: Request):
    db: Session = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_cache(request: Request) -> LocalCartCache:
    return request.app.state.cart_cache


def get_cart_service(request: Request) -> CartService:
    return CartService(request.app.state.cart_cache, request.app.state.clock)


def get_sync_engine(request: Request) -> CartSyncEngine:
    return request.app.state.sync_engine


def get_scheduler(request: Request) -> CartSyncScheduler:
    return request.app.state.sync_scheduler


def get_oracle(request: Request) -> SqlCatalogOracle:
    return request.app.state.oracle


def get_validator(request: Request) -> CartValidator:
    return CartValidator(request.app.state.oracle)


def commit_service(request: Request, db: Session) -> OrderCommitService:
    state = request.app.state
    return OrderCommitService(
        db,
        state.cart_cache,
        rates=state.rates,
        sync_engine=state.sync_engine,
        clock=state.clock,
    )


def status_service(request: Request, db: Session) -> OrderStatusService:
    state = request.app.state
    return OrderStatusService(db, courier=state.courier, clock=state.clock)
