from datetime import datetime, timezone
from typing import Dict, Iterable, List, NamedTuple, Optional, Tuple

from pydantic import BaseModel, Field, field_validator, model_validator

# A cart nobody has edited yet sorts before any real edit.
EMPTY_CART_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class CartItemKey(NamedTuple):
    product_id: str
    size: str
    color: str


class ProductRef(BaseModel):
    """The bits of a catalog product the cart captures when an item is added."""

    product_id: str
    name: Optional[str] = None
    price: int = Field(..., ge=0)
    image: Optional[str] = None


class CartItem(BaseModel):
    product_id: str
    size: str
    color: str
    quantity: int = Field(..., gt=0)
    unit_price: int = Field(..., ge=0)  # minor units, captured at add time
    name: Optional[str] = None
    image: Optional[str] = None
    updated_at: datetime

    @field_validator("updated_at")
    @classmethod
    def normalize_timestamp(cls, value: datetime) -> datetime:
        return as_utc(value)

    @property
    def key(self) -> CartItemKey:
        return CartItemKey(self.product_id, self.size, self.color)

    @property
    def line_total(self) -> int:
        return self.quantity * self.unit_price


def calculate_totals(items: Iterable[CartItem]) -> Tuple[int, int]:
    """Return (total_items, total_price) folded over `items`."""
    total_items = 0
    total_price = 0
    for it in items:
        total_items += it.quantity
        total_price += it.quantity * it.unit_price
    return total_items, total_price


class Cart(BaseModel):
    """
    A user's cart. `total_items` and `total_price` are a cache of the fold
    over `items` and are recomputed every time a Cart is validated, so values
    passed in (or read from storage) are never trusted.
    """

    user_id: str
    items: List[CartItem] = Field(default_factory=list)
    total_items: int = 0
    total_price: int = 0
    created_at: datetime = EMPTY_CART_EPOCH
    updated_at: datetime = EMPTY_CART_EPOCH

    @field_validator("created_at", "updated_at")
    @classmethod
    def normalize_timestamps(cls, value: datetime) -> datetime:
        return as_utc(value)

    @model_validator(mode="after")
    def recompute_totals(self):
        self.total_items, self.total_price = calculate_totals(self.items)
        return self

    @classmethod
    def empty(cls, user_id: str) -> "Cart":
        return cls(user_id=user_id)

    def rebuild(self, items: Iterable[CartItem], updated_at: datetime) -> "Cart":
        """New cart with the same identity, the given items and timestamp."""
        return Cart(
            user_id=self.user_id,
            items=list(items),
            created_at=self.created_at,
            updated_at=updated_at,
        )

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find(self, key: CartItemKey) -> Optional[CartItem]:
        return next((it for it in self.items if it.key == key), None)

    def content(self) -> Dict[CartItemKey, Tuple[int, int]]:
        """Order-independent view of what is in the cart: key -> (qty, price)."""
        return {it.key: (it.quantity, it.unit_price) for it in self.items}

    def same_content(self, other: "Cart") -> bool:
        return self.content() == other.content()
