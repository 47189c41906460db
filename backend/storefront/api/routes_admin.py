from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session

from storefront.adapters.mock_courier import CourierError
from storefront.api.deps import get_db, status_service
from storefront.api.routes_order import order_out
from storefront.schemas.order import UpdateOrderStatusIn
from storefront.services.order_lifecycle import InvalidStatusTransition, OrderNotFound

router = APIRouter(prefix="/api/admin", tags=["admin"])


@router.post("/orders/{order_id}/status", summary="Move an order through its lifecycle")
def update_status(
    order_id: int,
    payload: UpdateOrderStatusIn,
    request: Request,
    db: Session = Depends(get_db),
):
    svc = status_service(request, db)
    try:
        order = svc.update_order_status(
            order_id,
            payload.status,
            tracking_number=payload.tracking_number,
            reason=payload.reason,
        )
    except OrderNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except InvalidStatusTransition as e:
        raise HTTPException(status_code=409, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except CourierError as e:
        raise HTTPException(status_code=502, detail=str(e))
    return order_out(order)
