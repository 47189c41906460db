import json
import os
import random
import string
from datetime import datetime, timezone
from typing import Callable

from filelock import FileLock, Timeout
from pydantic import ValidationError

from storefront.schemas.cart import Cart
from storefront.utils.logging import get_logger

log = get_logger("cart-cache")

DEVICE_ID_FILE = "device_id"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _safe_name(user_id: str) -> str:
    return "".join(c if c.isalnum() or c in "-_." else "_" for c in user_id)


def load_or_create_device_id(directory: str, now: Callable[[], datetime] = utcnow) -> str:
    """
    Return the device id stored in `directory`, creating one on first use.
    Format: device_<epoch millis>_<9 random chars>.
    """
    os.makedirs(directory, exist_ok=True)
    path = os.path.join(directory, DEVICE_ID_FILE)
    with FileLock(path + ".lock", timeout=10):
        if os.path.exists(path):
            with open(path, "r", encoding="utf-8") as fh:
                existing = fh.read().strip()
            if existing:
                return existing
        millis = int(now().timestamp() * 1000)
        suffix = "".join(
            random.choices(string.ascii_lowercase + string.digits, k=9)
        )
        device_id = f"device_{millis}_{suffix}"
        with open(path, "w", encoding="utf-8") as fh:
            fh.write(device_id)
        return device_id


class LocalCartCache:
    """
    Per-device cart store: one JSON document per user under `directory`.
    Readers never see a partial document; writes go to a temp file that is
    moved over the old one while holding the per-user file lock.
    """

    def __init__(self, directory: str, lock_timeout: float = 10):
        self.directory = directory
        self.lock_timeout = lock_timeout
        os.makedirs(directory, exist_ok=True)

    def _path(self, user_id: str) -> str:
        return os.path.join(self.directory, f"cart_{_safe_name(user_id)}.json")

    def _lock(self, user_id: str) -> FileLock:
        return FileLock(self._path(user_id) + ".lock", timeout=self.lock_timeout)

    def _read(self, user_id: str) -> Cart:
        # caller holds the per-user lock
        path = self._path(user_id)
        if not os.path.exists(path):
            return Cart.empty(user_id)
        with open(path, "r", encoding="utf-8") as fh:
            raw = json.load(fh)
        cart = Cart.model_validate(raw)
        if cart.user_id != user_id:
            raise ValueError(f"cart file for user={user_id} names user={cart.user_id}")
        return cart

    def get(self, user_id: str, strict: bool = False) -> Cart:
        """
        Unreadable documents come back as an empty cart. A lock that cannot be
        taken does too, unless `strict` is set: callers that are about to write
        the cart back must not build on a cart they never read.
        """
        try:
            with self._lock(user_id):
                return self._read(user_id)
        except Timeout:
            if strict:
                raise
            log.warning("cart for user=%s is locked, starting empty", user_id)
            return Cart.empty(user_id)
        except (OSError, ValueError, ValidationError):
            log.warning("unreadable cart for user=%s, starting empty", user_id, exc_info=True)
            return Cart.empty(user_id)

    def _write(self, user_id: str, cart: Cart) -> None:
        path = self._path(user_id)
        tmp = path + ".tmp"
        with open(tmp, "w", encoding="utf-8") as fh:
            fh.write(cart.model_dump_json())
        os.replace(tmp, path)

    def put(self, user_id: str, cart: Cart) -> None:
        with self._lock(user_id):
            self._write(user_id, cart)

    def put_if_unchanged(self, user_id: str, cart: Cart, expected_updated_at: datetime) -> bool:
        """
        Write `cart` only if the stored cart still carries `expected_updated_at`.
        Returns False, writing nothing, when someone edited the cart meanwhile.
        """
        with self._lock(user_id):
            try:
                current = self._read(user_id)
            except (ValueError, ValidationError):
                current = Cart.empty(user_id)
            if current.updated_at != expected_updated_at:
                return False
            self._write(user_id, cart)
            return True

    def writable(self) -> bool:
        return os.path.isdir(self.directory) and os.access(self.directory, os.W_OK)
