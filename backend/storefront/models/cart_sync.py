from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Integer, String

from storefront.db import Base


class CartSyncRecord(Base):
    """Remote shadow of a user's cart, shared by all of the user's devices."""

    __tablename__ = "cart_sync_records"
    user_id = Column(String(128), primary_key=True)
    cart_data = Column(JSON, nullable=False)  # {items, total_items, total_price}
    last_modified = Column(DateTime(timezone=True), nullable=False)
    device_id = Column(String(128), nullable=True)
    sync_version = Column(Integer, nullable=False, default=0)
    created_at = Column(
        DateTime(timezone=True), default=lambda: datetime.now(timezone.utc)
    )
