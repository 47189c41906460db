from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from sqlalchemy.orm import Session

from storefront.models.inventory_line import InventoryLine
from storefront.models.product import Product


class VariantNotFound(Exception):
    """No catalog record for the variant. `product_missing` tells whether the
    product itself is gone or only the (size, color) inventory record."""

    def __init__(self, product_id: str, size: str, color: str, product_missing: bool):
        self.product_id = product_id
        self.size = size
        self.color = color
        self.product_missing = product_missing
        what = "product" if product_missing else "variant"
        super().__init__(f"{what} not found: {product_id} ({size}/{color})")


@dataclass(frozen=True)
class VariantInfo:
    product_id: str
    size: str
    color: str
    name: Optional[str]
    image: Optional[str]
    price: int
    available_quantity: int
    is_active: bool


class CatalogOracle(Protocol):
    def get_variant(self, product_id: str, size: str, color: str) -> VariantInfo:
        ...


class SqlCatalogOracle:
    """
    Read-only view of current price and stock, backed by the catalog tables.
    Opens a short-lived session per lookup so it never joins a caller's
    transaction.
    """

    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get_variant(self, product_id: str, size: str, color: str) -> VariantInfo:
        with self.session_factory() as db:
            product = db.get(Product, product_id)
            if not product:
                raise VariantNotFound(product_id, size, color, product_missing=True)
            line = (
                db.query(InventoryLine)
                .filter(
                    InventoryLine.product_id == product_id,
                    InventoryLine.size == size,
                    InventoryLine.color == color,
                )
                .first()
            )
            if not line:
                raise VariantNotFound(product_id, size, color, product_missing=False)
            return VariantInfo(
                product_id=product.id,
                size=line.size,
                color=line.color,
                name=product.name,
                image=product.image,
                price=product.price_cents,
                available_quantity=line.quantity,
                is_active=bool(product.active),
            )
