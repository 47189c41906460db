from sqlalchemy import Boolean, Column, Integer, String, Text
from sqlalchemy.orm import relationship

from storefront.db import Base


class Product(Base):
    """Catalog record. Owned by the catalog service; the core only reads it."""

    __tablename__ = "products"

    id = Column(String(64), primary_key=True)
    name = Column(String(256), nullable=False)
    description = Column(Text, nullable=True)
    price_cents = Column(Integer, nullable=False, default=0)
    image = Column(String(512), nullable=True)
    active = Column(Boolean, default=True, nullable=False)

    inventory_lines = relationship("InventoryLine", back_populates="product")

    def __repr__(self):
        return f"<Product id={self.id} name={self.name}>"
