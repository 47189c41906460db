from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal

from storefront.adapters.rates import ShippingTaxRates


@dataclass(frozen=True)
class OrderTotals:
    subtotal: int
    tax: int
    shipping: int
    discount: int
    total: int


def compute_order_totals(
    subtotal: int, rates: ShippingTaxRates, discount: int = 0
) -> OrderTotals:
    """
    All amounts in minor units. Tax is rounded half-up to a whole unit;
    shipping is free only when the subtotal is strictly above the threshold.
    """
    if subtotal < 0:
        raise ValueError("subtotal must not be negative")
    if discount < 0 or discount > subtotal:
        raise ValueError("discount must be between 0 and the subtotal")
    tax = int(
        (Decimal(subtotal) * rates.tax_rate).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    )
    shipping = 0 if subtotal > rates.free_shipping_threshold else rates.flat_shipping_fee
    return OrderTotals(
        subtotal=subtotal,
        tax=tax,
        shipping=shipping,
        discount=discount,
        total=subtotal + tax + shipping - discount,
    )
