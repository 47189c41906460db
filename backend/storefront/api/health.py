from fastapi import APIRouter, Request
from sqlalchemy import text

from storefront.utils.logging import get_logger

log = get_logger("health")

router = APIRouter()


@router.get("/health", tags=["health"])
def health(request: Request):
    db_ok = False
    cache_ok = False
    state = request.app.state
    try:
        with state.session_factory() as db:
            db.execute(text("SELECT 1"))
            db_ok = True
    except Exception:
        log.warning("health: database check failed", exc_info=True)
    try:
        cache_ok = state.cart_cache.writable()
    except OSError:
        log.warning("health: cart cache check failed", exc_info=True)

    scheduler = state.sync_scheduler
    return {
        "status": "ok" if db_ok and cache_ok else "degraded",
        "db": db_ok,
        "cart_cache": cache_ok,
        "sync_scheduler": scheduler.scheduler.running,
        "active_syncs": len(scheduler.active_users()),
    }
