from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from storefront.api.deps import commit_service, get_db, status_service
from storefront.models.order import Order
from storefront.schemas.order import CommitOrderIn, OrderOut
from storefront.services.order_commit import (
    EmptyCart,
    InsufficientInventory,
    InvalidDiscount,
    OrderCommitException,
    ProductUnavailable,
)
from storefront.services.order_lifecycle import OrderNotFound, status_display
from storefront.utils.logging import get_logger

log = get_logger("api.orders")

router = APIRouter(tags=["orders"])


def order_out(order: Order) -> dict:
    body = OrderOut.model_validate(order).model_dump(mode="json")
    body["status_display"] = status_display(order.status)
    return body


def _commit_error_status(e: OrderCommitException) -> int:
    if isinstance(e, (EmptyCart, InvalidDiscount)):
        return 400
    if isinstance(e, (InsufficientInventory, ProductUnavailable)):
        return 409
    return 500


@router.post("", summary="Commit the user's cart as an order", status_code=201)
def create_order(
    payload: CommitOrderIn,
    request: Request,
    db: Session = Depends(get_db),
    idempotency_key: Optional[str] = Header(None, alias="Idempotency-Key"),
):
    svc = commit_service(request, db)
    try:
        order = svc.commit_order(
            payload.user_id,
            payload.shipping_address.model_dump(),
            payload.billing_address.model_dump(),
            payload.payment_reference,
            idempotency_key=idempotency_key,
            discount_cents=payload.discount_cents,
            notes=payload.notes,
        )
    except OrderCommitException as e:
        detail = {"code": e.code, "message": str(e)}
        if isinstance(e, InsufficientInventory):
            detail.update(available=e.available, requested=e.requested)
        if isinstance(e, (InsufficientInventory, ProductUnavailable)):
            detail["product_id"] = e.product_id
        raise HTTPException(status_code=_commit_error_status(e), detail=detail)
    return order_out(order)


@router.get("/user/{user_id}", summary="List a user's orders")
def list_user_orders(
    user_id: str,
    request: Request,
    status: Optional[str] = None,
    page: int = 1,
    size: int = 20,
    db: Session = Depends(get_db),
):
    if page < 1 or size < 1:
        raise HTTPException(status_code=400, detail="page and size must be positive")
    orders, total = status_service(request, db).get_user_orders(
        user_id, status=status, page=page, size=size
    )
    return {
        "items": [order_out(o) for o in orders],
        "total": total,
        "page": page,
        "size": size,
    }


@router.get("/{order_id}", summary="Get order")
def get_order(order_id: int, request: Request, db: Session = Depends(get_db)):
    try:
        return order_out(status_service(request, db).get_order(order_id))
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
