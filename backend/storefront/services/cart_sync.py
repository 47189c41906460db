import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from sqlalchemy.orm import Session

from storefront.repositories.cart_sync_repo import CartSyncRepository, record_to_cart
from storefront.schemas.cart import Cart, CartItem
from storefront.services.local_cart_cache import LocalCartCache, utcnow
from storefront.utils.logging import get_logger
from storefront.utils.transactions import smart_transaction

log = get_logger("cart-sync")

UPLOADED_INITIAL = "uploaded_initial"
IN_SYNC = "in_sync"
PUSHED_LOCAL = "pushed_local"
PULLED_REMOTE = "pulled_remote"
MERGED = "merged"
SKIPPED = "skipped"
FAILED = "failed"

# detect_conflict results
LOCAL_NEWER = "local_newer"
REMOTE_NEWER = "remote_newer"
MERGE_REQUIRED = "merge_required"


@dataclass
class SyncResult:
    outcome: str
    cart: Optional[Cart] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome not in (FAILED, SKIPPED)


def detect_conflict(local: Cart, remote: Cart, tolerance: timedelta) -> Optional[str]:
    """
    Classify a local/remote pair. None means nothing to do.

    Timestamps closer than `tolerance` are indistinguishable: identical content
    is in sync, anything else needs a merge. Outside the window the newer side
    wins.

    A merge keeps the larger quantity of every line, so a removal or decrease
    made within `tolerance` of the last sync comes back on the next pass. That
    is accepted; edits that land later than the window are pushed as-is.
    """
    delta = local.updated_at - remote.updated_at
    if abs(delta) < tolerance:
        if local.same_content(remote):
            return None
        return MERGE_REQUIRED
    return LOCAL_NEWER if delta > timedelta(0) else REMOTE_NEWER


def merge_carts(local: Cart, remote: Cart, now: datetime) -> Cart:
    """
    Union of both item sets. A key present on both sides keeps the line with
    the larger quantity; on a tie the local line is kept.
    """
    merged: Dict = {}
    for it in local.items:
        merged[it.key] = it
    for it in remote.items:
        mine: Optional[CartItem] = merged.get(it.key)
        if mine is None or it.quantity > mine.quantity:
            merged[it.key] = it
    return local.rebuild(merged.values(), updated_at=now)


class CartSyncEngine:
    """
    Reconciles a user's local cart with the shared sync record.

    A pass never raises: storage errors are logged and reported as a failed
    SyncResult, and the next scheduled pass tries again.
    """

    def __init__(
        self,
        cache: LocalCartCache,
        session_factory: Callable[[], Session],
        device_id: Optional[str],
        tolerance_seconds: float = 5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.cache = cache
        self.session_factory = session_factory
        self.device_id = device_id
        self.tolerance = timedelta(seconds=tolerance_seconds)
        self.clock = clock
        self._in_flight = set()
        self._guard = threading.Lock()

    def sync_cart(self, user_id: str) -> SyncResult:
        with self._guard:
            if user_id in self._in_flight:
                log.info("sync already running for user=%s, skipping", user_id)
                return SyncResult(SKIPPED)
            self._in_flight.add(user_id)
        try:
            result = self._sync(user_id)
            log.info("sync user=%s outcome=%s", user_id, result.outcome)
            return result
        except Exception as e:
            log.warning("sync failed for user=%s", user_id, exc_info=True)
            return SyncResult(FAILED, error=str(e))
        finally:
            with self._guard:
                self._in_flight.discard(user_id)

    def sync_now(self, user_id: str) -> SyncResult:
        return self.sync_cart(user_id)

    def _sync(self, user_id: str) -> SyncResult:
        local = self.cache.get(user_id)
        with self.session_factory() as db:
            with smart_transaction(db):
                repo = CartSyncRepository(db)
                record = repo.get(user_id)
                if record is None:
                    repo.upsert(user_id, local, self.device_id)
                    return SyncResult(UPLOADED_INITIAL, local)

                remote = record_to_cart(record, created_at=local.created_at)
                conflict = detect_conflict(local, remote, self.tolerance)
                if conflict is None:
                    return SyncResult(IN_SYNC, local)
                if conflict == LOCAL_NEWER:
                    repo.upsert(user_id, local, self.device_id)
                    return SyncResult(PUSHED_LOCAL, local)
                if conflict == REMOTE_NEWER:
                    resolved, outcome = remote, PULLED_REMOTE
                else:
                    resolved = merge_carts(local, remote, self.clock())
                    repo.upsert(user_id, resolved, self.device_id)
                    outcome = MERGED
        # remote side is committed; now bring the device up to date
        if not self.cache.put_if_unchanged(user_id, resolved, local.updated_at):
            log.info(
                "local cart for user=%s changed during sync, leaving it for the next pass",
                user_id,
            )
            return SyncResult(SKIPPED, self.cache.get(user_id))
        return SyncResult(outcome, resolved)

    def push_local(self, user_id: str) -> SyncResult:
        """Upload the local cart as-is, without reconciliation."""
        try:
            local = self.cache.get(user_id)
            with self.session_factory() as db:
                with smart_transaction(db):
                    CartSyncRepository(db).upsert(user_id, local, self.device_id)
            return SyncResult(PUSHED_LOCAL, local)
        except Exception as e:
            log.warning("push failed for user=%s", user_id, exc_info=True)
            return SyncResult(FAILED, error=str(e))

    def clear_remote(self, user_id: str) -> bool:
        with self.session_factory() as db:
            with smart_transaction(db):
                removed = CartSyncRepository(db).delete(user_id)
        log.info("cleared remote cart for user=%s removed=%s", user_id, removed)
        return removed

    def status(self, user_id: str) -> dict:
        local = self.cache.get(user_id)
        with self.session_factory() as db:
            record = CartSyncRepository(db).get(user_id)
            remote_modified = None
            version = None
            if record is not None:
                remote_modified = record_to_cart(record).updated_at
                version = record.sync_version
        in_sync = (
            remote_modified is not None
            and abs(local.updated_at - remote_modified) < self.tolerance
        )
        return {
            "user_id": user_id,
            "local_last_modified": local.updated_at,
            "remote_last_modified": remote_modified,
            "is_in_sync": in_sync,
            "device_id": self.device_id,
            "sync_version": version,
        }
