from typing import Optional

from sqlalchemy.orm import Session

from storefront.models.cart_sync import CartSyncRecord
from storefront.schemas.cart import Cart, as_utc


def cart_document(cart: Cart) -> dict:
    return {
        "items": [it.model_dump(mode="json") for it in cart.items],
        "total_items": cart.total_items,
        "total_price": cart.total_price,
    }


def record_to_cart(record: CartSyncRecord, created_at=None) -> Cart:
    """
    Rebuild a Cart from a sync record. Totals stored in the document are
    ignored; the Cart recomputes them from the items.
    """
    data = record.cart_data or {}
    kwargs = {
        "user_id": record.user_id,
        "items": data.get("items", []),
        "updated_at": as_utc(record.last_modified),
    }
    if created_at is not None:
        kwargs["created_at"] = created_at
    return Cart(**kwargs)


class CartSyncRepository:
    def __init__(self, db: Session):
        self.db = db

    def get(self, user_id: str) -> Optional[CartSyncRecord]:
        return self.db.get(CartSyncRecord, user_id)

    def upsert(self, user_id: str, cart: Cart, device_id: Optional[str]) -> CartSyncRecord:
        rec = self.get(user_id)
        if rec is None:
            rec = CartSyncRecord(
                user_id=user_id,
                cart_data=cart_document(cart),
                last_modified=cart.updated_at,
                device_id=device_id,
                sync_version=1,
            )
            self.db.add(rec)
        else:
            rec.cart_data = cart_document(cart)
            rec.last_modified = cart.updated_at
            rec.device_id = device_id
            rec.sync_version = (rec.sync_version or 0) + 1
        self.db.flush()
        return rec

    def delete(self, user_id: str) -> bool:
        rec = self.get(user_id)
        if rec is None:
            return False
        self.db.delete(rec)
        self.db.flush()
        return True
