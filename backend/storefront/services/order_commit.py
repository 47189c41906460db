import random
import string
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlalchemy import update
from sqlalchemy.orm import Session, selectinload

from storefront.adapters.rates import RateProvider, SettingsRateProvider
from storefront.models.inventory_line import InventoryLine
from storefront.models.order import Order, OrderLine
from storefront.models.product import Product
from storefront.models.stock_movement import StockMovement
from storefront.schemas.cart import Cart, CartItem
from storefront.services.cart_service import CartService
from storefront.services.cart_sync import FAILED, CartSyncEngine
from storefront.services.local_cart_cache import LocalCartCache, utcnow
from storefront.services.pricing import OrderTotals, compute_order_totals
from storefront.utils.logging import get_logger
from storefront.utils.transactions import smart_transaction

log = get_logger("order-commit")


class OrderCommitException(Exception):
    code = "UNKNOWN"


class EmptyCart(OrderCommitException):
    code = "EMPTY_CART"

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"cart is empty for user {user_id}")


class InsufficientInventory(OrderCommitException):
    code = "INSUFFICIENT_INVENTORY"

    def __init__(self, product_id: str, available: int, requested: int):
        self.product_id = product_id
        self.available = available
        self.requested = requested
        super().__init__(
            f"Not enough stock for {product_id}: available={available} requested={requested}"
        )


class ProductUnavailable(OrderCommitException):
    code = "PRODUCT_UNAVAILABLE"

    def __init__(self, product_id: str):
        self.product_id = product_id
        super().__init__(f"Product {product_id} is no longer available")


class InvalidDiscount(OrderCommitException, ValueError):
    code = "INVALID_DISCOUNT"

    def __init__(self, discount: int, subtotal: int):
        self.discount = discount
        self.subtotal = subtotal
        super().__init__(
            f"discount {discount} must be between 0 and the cart subtotal {subtotal}"
        )


class UnknownCommitError(OrderCommitException):
    code = "UNKNOWN"


@dataclass
class CheckedLine:
    item: CartItem
    inventory_line: InventoryLine


def generate_order_number(now: datetime) -> str:
    stamp = str(int(now.timestamp() * 1000))[-6:]
    suffix = "".join(random.choices(string.ascii_uppercase + string.digits, k=3))
    return f"OV{stamp}{suffix}"


class OrderCommitService:
    """
    Turns a user's cart into an Order in a single database transaction:
    stock check, order + line snapshots, inventory decrement and stock
    movements either all happen or none do.

    Clearing the local cart and publishing the cleared cart happen after the
    commit and never undo it.
    """

    def __init__(
        self,
        db: Session,
        cache: LocalCartCache,
        rates: RateProvider = None,
        sync_engine: Optional[CartSyncEngine] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.cache = cache
        self.rates = rates or SettingsRateProvider()
        self.sync_engine = sync_engine
        self.clock = clock

    def commit_order(
        self,
        user_id: str,
        shipping_address: Dict,
        billing_address: Dict,
        payment_reference: str,
        idempotency_key: Optional[str] = None,
        discount_cents: int = 0,
        notes: Optional[str] = None,
    ) -> Order:
        cart = self.cache.get(user_id)
        if discount_cents < 0 or (not cart.is_empty and discount_cents > cart.total_price):
            raise InvalidDiscount(discount_cents, cart.total_price)

        replayed = False
        try:
            with smart_transaction(self.db, outermost=True):
                order = self._find_replay(user_id, idempotency_key)
                if order is not None:
                    replayed = True
                else:
                    if cart.is_empty:
                        raise EmptyCart(user_id)
                    checked = self._check_inventory(cart)
                    totals = compute_order_totals(
                        cart.total_price, self.rates.get_rates(), discount=discount_cents
                    )
                    order = self._write_order(
                        user_id,
                        cart,
                        totals,
                        shipping_address,
                        billing_address,
                        payment_reference,
                        idempotency_key,
                        notes,
                    )
                    self._decrement_inventory(checked)
                    self._record_movements(order, checked)
        except OrderCommitException as e:
            log.warning("commit failed for user=%s code=%s: %s", user_id, e.code, e)
            raise
        except Exception as e:
            log.error("unexpected commit failure for user=%s", user_id, exc_info=True)
            raise UnknownCommitError(str(e)) from e

        if replayed:
            log.info(
                "idempotent replay for user=%s key=%s order=%s",
                user_id,
                idempotency_key,
                order.order_number,
            )
            return order

        log.info(
            "order %s committed for user=%s total=%s",
            order.order_number,
            user_id,
            order.total_cents,
        )
        self._clear_cart(user_id)
        return order

    def _find_replay(self, user_id: str, idempotency_key: Optional[str]) -> Optional[Order]:
        if not idempotency_key:
            return None
        existing = (
            self.db.query(Order)
            .options(selectinload(Order.lines))
            .filter(Order.idempotency_key == idempotency_key)
            .first()
        )
        if existing is None:
            return None
        if existing.user_id != user_id:
            raise UnknownCommitError("idempotency key already used by another user")
        return existing

    def _check_inventory(self, cart: Cart) -> List[CheckedLine]:
        checked = []
        for item in cart.items:
            product = (
                self.db.query(Product)
                .filter(Product.id == item.product_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not product or not product.active:
                raise ProductUnavailable(item.product_id)
            line = (
                self.db.query(InventoryLine)
                .filter(
                    InventoryLine.product_id == item.product_id,
                    InventoryLine.size == item.size,
                    InventoryLine.color == item.color,
                )
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not line:
                raise ProductUnavailable(item.product_id)
            if line.quantity < item.quantity:
                raise InsufficientInventory(item.product_id, line.quantity, item.quantity)
            checked.append(CheckedLine(item=item, inventory_line=line))
        return checked

    def _write_order(
        self,
        user_id: str,
        cart: Cart,
        totals: OrderTotals,
        shipping_address: Dict,
        billing_address: Dict,
        payment_reference: str,
        idempotency_key: Optional[str],
        notes: Optional[str],
    ) -> Order:
        now = self.clock()
        order = Order(
            order_number=generate_order_number(now),
            user_id=user_id,
            status="pending",
            subtotal_cents=totals.subtotal,
            tax_cents=totals.tax,
            shipping_cents=totals.shipping,
            discount_cents=totals.discount,
            total_cents=totals.total,
            shipping_address=shipping_address,
            billing_address=billing_address,
            payment_reference=payment_reference,
            idempotency_key=idempotency_key,
            notes=notes,
            created_at=now,
            updated_at=now,
        )
        for item in cart.items:
            order.lines.append(
                OrderLine(
                    product_id=item.product_id,
                    name=item.name,
                    size=item.size,
                    color=item.color,
                    image=item.image,
                    unit_price_cents=item.unit_price,
                    quantity=item.quantity,
                    line_total_cents=item.line_total,
                )
            )
        self.db.add(order)
        self.db.flush()
        return order

    def _decrement_inventory(self, checked: List[CheckedLine]):
        for c in checked:
            qty = c.item.quantity
            res = self.db.execute(
                update(InventoryLine)
                .where(InventoryLine.id == c.inventory_line.id)
                .where(InventoryLine.quantity >= qty)
                .values(quantity=InventoryLine.quantity - qty)
                .execution_options(synchronize_session=False)
            )
            if res.rowcount == 0:
                self.db.refresh(c.inventory_line)
                raise InsufficientInventory(
                    c.item.product_id, c.inventory_line.quantity, qty
                )
            self.db.expire(c.inventory_line, ["quantity"])

    def _record_movements(self, order: Order, checked: List[CheckedLine]):
        for c in checked:
            self.db.add(
                StockMovement(
                    inventory_line_id=c.inventory_line.id,
                    movement_type="out",
                    quantity=c.item.quantity,
                    order_id=order.id,
                    reason=f"order {order.order_number}",
                )
            )
        self.db.flush()

    def _clear_cart(self, user_id: str):
        try:
            CartService(self.cache, self.clock).clear(user_id)
        except Exception:
            log.warning("could not clear local cart for user=%s", user_id, exc_info=True)
            return
        if self.sync_engine is not None:
            result = self.sync_engine.push_local(user_id)
            if result.outcome == FAILED:
                log.warning(
                    "cleared cart not published for user=%s: %s", user_id, result.error
                )
