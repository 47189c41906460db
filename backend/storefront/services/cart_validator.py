from dataclasses import dataclass, field
from typing import List

from storefront.adapters.catalog_oracle import CatalogOracle, VariantNotFound
from storefront.schemas.cart import Cart


def format_money(minor: int) -> str:
    return f"${minor // 100}.{minor % 100:02d}"


@dataclass
class CartValidationResult:
    is_valid: bool
    issues: List[str] = field(default_factory=list)


class CartValidator:
    """Re-checks a cart against current catalog data. Read-only."""

    def __init__(self, oracle: CatalogOracle):
        self.oracle = oracle

    def validate(self, cart: Cart) -> CartValidationResult:
        issues: List[str] = []
        for item in cart.items:
            label = item.name or item.product_id
            try:
                info = self.oracle.get_variant(item.product_id, item.size, item.color)
            except VariantNotFound as e:
                if e.product_missing:
                    issues.append(f"Product {label} is no longer available")
                else:
                    issues.append(
                        f"{label} in {item.size}/{item.color} is no longer available"
                    )
                continue

            if not info.is_active:
                issues.append(f"Product {label} is no longer available")
                continue
            if info.available_quantity < item.quantity:
                issues.append(
                    f"Only {info.available_quantity} units of {label} "
                    f"({item.size}/{item.color}) are available"
                )
            if info.price != item.unit_price:
                issues.append(
                    f"Price of {label} has changed from "
                    f"{format_money(item.unit_price)} to {format_money(info.price)}"
                )
        return CartValidationResult(is_valid=not issues, issues=issues)
