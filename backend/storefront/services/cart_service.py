from datetime import datetime
from typing import Callable, Iterable, List

from storefront.schemas.cart import (
    EMPTY_CART_EPOCH,
    Cart,
    CartItem,
    CartItemKey,
    ProductRef,
)
from storefront.services.local_cart_cache import LocalCartCache, utcnow


class CartItemNotFound(ValueError):
    def __init__(self, key: CartItemKey):
        self.key = key
        super().__init__(
            f"item not in cart: {key.product_id} ({key.size}/{key.color})"
        )


def _add_line(
    items: List[CartItem],
    product: ProductRef,
    quantity: int,
    size: str,
    color: str,
    now: datetime,
) -> List[CartItem]:
    key = CartItemKey(product.product_id, size, color)
    out = []
    found = False
    for it in items:
        if it.key == key:
            # re-adding refreshes the captured price
            it = it.model_copy(
                update={
                    "quantity": it.quantity + quantity,
                    "unit_price": product.price,
                    "updated_at": now,
                }
            )
            found = True
        out.append(it)
    if not found:
        out.append(
            CartItem(
                product_id=product.product_id,
                size=size,
                color=color,
                quantity=quantity,
                unit_price=product.price,
                name=product.name,
                image=product.image,
                updated_at=now,
            )
        )
    return out


class CartService:
    """
    Mutations on the local cart. Every mutation rebuilds the totals, stamps
    updated_at and writes through to the cache before returning; the remote
    record is left to the sync engine.
    """

    def __init__(self, cache: LocalCartCache, clock: Callable[[], datetime] = utcnow):
        self.cache = cache
        self.clock = clock

    def get_cart(self, user_id: str) -> Cart:
        return self.cache.get(user_id)

    def _load(self, user_id: str) -> Cart:
        return self.cache.get(user_id, strict=True)

    def _save(self, cart: Cart, items) -> Cart:
        now = self.clock()
        new = cart.rebuild(items, updated_at=now)
        if new.created_at == EMPTY_CART_EPOCH:
            new.created_at = now
        self.cache.put(new.user_id, new)
        return new

    def add_item(
        self, user_id: str, product: ProductRef, quantity: int, size: str, color: str
    ) -> Cart:
        if quantity <= 0:
            raise ValueError("Quantity must be positive")
        cart = self._load(user_id)
        items = _add_line(list(cart.items), product, quantity, size, color, self.clock())
        return self._save(cart, items)

    def merge_guest_cart(self, user_id: str, guest_items: Iterable[CartItem]) -> Cart:
        """
        Fold a guest cart into the user's cart on login. Each guest line is
        added as if by add_item, in one write.
        """
        guest_items = list(guest_items)
        cart = self._load(user_id)
        if not guest_items:
            return cart
        now = self.clock()
        items = list(cart.items)
        for g in guest_items:
            product = ProductRef(
                product_id=g.product_id, name=g.name, price=g.unit_price, image=g.image
            )
            items = _add_line(items, product, g.quantity, g.size, g.color, now)
        return self._save(cart, items)

    def set_quantity(self, user_id: str, key: CartItemKey, quantity: int) -> Cart:
        """quantity <= 0 removes the item."""
        cart = self._load(user_id)
        if cart.find(key) is None:
            raise CartItemNotFound(key)
        if quantity <= 0:
            return self._save(cart, [it for it in cart.items if it.key != key])
        now = self.clock()
        items = [
            it.model_copy(update={"quantity": quantity, "updated_at": now})
            if it.key == key
            else it
            for it in cart.items
        ]
        return self._save(cart, items)

    def remove_item(self, user_id: str, key: CartItemKey) -> Cart:
        cart = self._load(user_id)
        if cart.find(key) is None:
            return cart
        return self._save(cart, [it for it in cart.items if it.key != key])

    def clear(self, user_id: str) -> Cart:
        cart = self._load(user_id)
        return self._save(cart, [])

    def item_count(self, user_id: str) -> int:
        return self.cache.get(user_id).total_items

    def has_item(self, user_id: str, key: CartItemKey) -> bool:
        return self.cache.get(user_id).find(key) is not None
