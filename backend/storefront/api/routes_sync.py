from fastapi import APIRouter, Depends

from storefront.api.deps import get_scheduler, get_sync_engine
from storefront.services.cart_sync import CartSyncEngine
from storefront.services.sync_scheduler import CartSyncScheduler

router = APIRouter(prefix="/api/cart/sync", tags=["cart-sync"])


@router.post("/{user_id}", summary="Force a sync pass now")
def force_sync(user_id: str, engine: CartSyncEngine = Depends(get_sync_engine)):
    result = engine.sync_now(user_id)
    return {
        "outcome": result.outcome,
        "ok": result.ok,
        "error": result.error,
        "cart": result.cart.model_dump(mode="json") if result.cart else None,
    }


@router.post("/{user_id}/start", summary="Start periodic sync for a user")
def start_sync(user_id: str, scheduler: CartSyncScheduler = Depends(get_scheduler)):
    created = scheduler.activate(user_id)
    return {"user_id": user_id, "active": True, "created": created}


@router.post("/{user_id}/stop", summary="Stop periodic sync for a user")
def stop_sync(user_id: str, scheduler: CartSyncScheduler = Depends(get_scheduler)):
    removed = scheduler.deactivate(user_id)
    return {"user_id": user_id, "active": False, "removed": removed}


@router.get("/{user_id}/status", summary="Sync status")
def sync_status(
    user_id: str,
    engine: CartSyncEngine = Depends(get_sync_engine),
    scheduler: CartSyncScheduler = Depends(get_scheduler),
):
    st = engine.status(user_id)
    st["auto_sync"] = scheduler.is_active(user_id)
    return st


@router.delete("/{user_id}", summary="Delete the remote cart record")
def clear_remote(user_id: str, engine: CartSyncEngine = Depends(get_sync_engine)):
    return {"user_id": user_id, "removed": engine.clear_remote(user_id)}
