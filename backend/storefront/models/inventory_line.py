from datetime import datetime, timezone

from sqlalchemy import (
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from storefront.db import Base


class InventoryLine(Base):
    __tablename__ = "inventory_lines"
    __table_args__ = (
        UniqueConstraint("product_id", "size", "color", name="uq_inventory_variant"),
        CheckConstraint("quantity >= 0", name="ck_inventory_non_negative"),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_id = Column(
        String(64), ForeignKey("products.id"), nullable=False, index=True
    )
    size = Column(String(32), nullable=False)
    color = Column(String(64), nullable=False)
    quantity = Column(Integer, nullable=False, default=0)  # available for sale
    updated_at = Column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    product = relationship("Product", back_populates="inventory_lines")

    def __repr__(self):
        return (
            f"<InventoryLine {self.product_id}/{self.size}/{self.color} "
            f"qty={self.quantity}>"
        )
