from datetime import datetime
from typing import Callable, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.orm import Session

from storefront.adapters.mock_courier import MockCourierAdapter
from storefront.models.inventory_line import InventoryLine
from storefront.models.order import Order
from storefront.models.stock_movement import StockMovement
from storefront.services.local_cart_cache import utcnow
from storefront.utils.logging import get_logger
from storefront.utils.transactions import smart_transaction

log = get_logger("order-status")

PENDING = "pending"
PROCESSING = "processing"
SHIPPED = "shipped"
DELIVERED = "delivered"
CANCELLED = "cancelled"

ALLOWED_TRANSITIONS = {
    PENDING: {PROCESSING, CANCELLED},
    PROCESSING: {SHIPPED, CANCELLED},
    SHIPPED: {DELIVERED},
    DELIVERED: set(),
    CANCELLED: set(),
}

STATUS_DISPLAY = {
    PENDING: "Order Placed",
    PROCESSING: "Processing",
    SHIPPED: "Shipped",
    DELIVERED: "Delivered",
    CANCELLED: "Cancelled",
}


class OrderNotFound(Exception):
    pass


class InvalidStatusTransition(Exception):
    def __init__(self, current: str, requested: str):
        self.current = current
        self.requested = requested
        super().__init__(f"cannot move order from {current} to {requested}")


def status_display(status: str) -> str:
    return STATUS_DISPLAY.get(status, status)


class OrderStatusService:
    def __init__(
        self,
        db: Session,
        courier: MockCourierAdapter = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.db = db
        self.courier = courier or MockCourierAdapter()
        self.clock = clock

    def get_order(self, order_id: int) -> Order:
        order = self.db.get(Order, order_id)
        if not order:
            raise OrderNotFound(f"order {order_id} not found")
        return order

    def get_user_orders(
        self, user_id: str, status: Optional[str] = None, page: int = 1, size: int = 20
    ) -> Tuple[List[Order], int]:
        """Newest first. Returns (orders, total)."""
        query = self.db.query(Order).filter(Order.user_id == user_id)
        if status:
            query = query.filter(Order.status == status)
        total = query.with_entities(func.count()).scalar() or 0
        items = (
            query.order_by(Order.created_at.desc(), Order.id.desc())
            .offset((page - 1) * size)
            .limit(size)
            .all()
        )
        return items, total

    def update_order_status(
        self,
        order_id: int,
        new_status: str,
        tracking_number: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Order:
        if new_status not in ALLOWED_TRANSITIONS:
            raise ValueError(f"unknown order status: {new_status}")
        with smart_transaction(self.db, outermost=True):
            order = (
                self.db.query(Order)
                .filter(Order.id == order_id)
                .with_for_update()
                .populate_existing()
                .first()
            )
            if not order:
                raise OrderNotFound(f"order {order_id} not found")
            current = order.status
            if new_status not in ALLOWED_TRANSITIONS.get(current, set()):
                raise InvalidStatusTransition(current, new_status)

            now = self.clock()
            if new_status == SHIPPED:
                if not tracking_number:
                    booking = self.courier.book_shipment(order.order_number)
                    tracking_number = booking["tracking_number"]
                order.tracking_number = tracking_number
                order.shipped_at = now
            elif new_status == DELIVERED:
                order.delivered_at = now
            elif new_status == CANCELLED:
                order.cancelled_at = now
                if reason:
                    note = f"Cancelled: {reason}"
                    order.notes = f"{order.notes}\n{note}" if order.notes else note
                self._restore_inventory(order, reason)
            if tracking_number and new_status != SHIPPED:
                order.tracking_number = tracking_number

            order.status = new_status
            order.updated_at = now
            self.db.flush()
        log.info("order %s: %s -> %s", order.order_number, current, new_status)
        return order

    def cancel_order(self, order_id: int, reason: Optional[str] = None) -> Order:
        return self.update_order_status(order_id, CANCELLED, reason=reason)

    def _restore_inventory(self, order: Order, reason: Optional[str]):
        for line in order.lines:
            inv = (
                self.db.query(InventoryLine)
                .filter(
                    InventoryLine.product_id == line.product_id,
                    InventoryLine.size == line.size,
                    InventoryLine.color == line.color,
                )
                .with_for_update()
                .populate_existing()
                .first()
            )
            if inv is None:
                # line was removed since the order; bring it back
                inv = InventoryLine(
                    product_id=line.product_id,
                    size=line.size,
                    color=line.color,
                    quantity=0,
                )
                self.db.add(inv)
                self.db.flush()
            inv.quantity = inv.quantity + line.quantity
            self.db.add(
                StockMovement(
                    inventory_line_id=inv.id,
                    movement_type="in",
                    quantity=line.quantity,
                    order_id=order.id,
                    reason=reason or f"order {order.order_number} cancelled",
                )
            )
        self.db.flush()
