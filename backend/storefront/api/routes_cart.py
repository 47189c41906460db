from typing import List

from fastapi import APIRouter, Depends, HTTPException
from filelock import Timeout
from pydantic import BaseModel, Field

from storefront.adapters.catalog_oracle import SqlCatalogOracle, VariantNotFound
from storefront.api.deps import get_cart_service, get_oracle, get_validator
from storefront.schemas.cart import Cart, CartItem, CartItemKey, ProductRef
from storefront.services.cart_service import CartItemNotFound, CartService
from storefront.services.cart_validator import CartValidator
from storefront.utils.logging import get_logger

log = get_logger("api.cart")

router = APIRouter(prefix="/api/cart", tags=["cart"])

CART_BUSY = "Cart is busy, try again"


class AddItemIn(BaseModel):
    product_id: str
    size: str
    color: str
    quantity: int = Field(1, gt=0)


class SetQuantityIn(BaseModel):
    product_id: str
    size: str
    color: str
    quantity: int


class MergeGuestIn(BaseModel):
    items: List[AddItemIn] = Field(default_factory=list)


@router.get("/{user_id}", summary="Get cart", response_model=Cart)
def get_cart(user_id: str, svc: CartService = Depends(get_cart_service)):
    return svc.get_cart(user_id)


@router.post("/{user_id}/items", summary="Add item to cart", response_model=Cart)
def add_item(
    user_id: str,
    payload: AddItemIn,
    svc: CartService = Depends(get_cart_service),
    oracle: SqlCatalogOracle = Depends(get_oracle),
):
    try:
        info = oracle.get_variant(payload.product_id, payload.size, payload.color)
    except VariantNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    if not info.is_active:
        raise HTTPException(status_code=400, detail="Product is no longer available")
    product = ProductRef(
        product_id=info.product_id, name=info.name, price=info.price, image=info.image
    )
    try:
        return svc.add_item(user_id, product, payload.quantity, payload.size, payload.color)
    except Timeout:
        raise HTTPException(status_code=503, detail=CART_BUSY)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


@router.post("/{user_id}/merge", summary="Merge a guest cart on login", response_model=Cart)
def merge_guest_cart(
    user_id: str,
    payload: MergeGuestIn,
    svc: CartService = Depends(get_cart_service),
    oracle: SqlCatalogOracle = Depends(get_oracle),
):
    now = svc.clock()
    guest_items = []
    for line in payload.items:
        try:
            info = oracle.get_variant(line.product_id, line.size, line.color)
        except VariantNotFound:
            log.info(
                "guest line %s (%s/%s) not in catalog, dropped",
                line.product_id,
                line.size,
                line.color,
            )
            continue
        if not info.is_active:
            log.info("guest line %s is no longer available, dropped", line.product_id)
            continue
        guest_items.append(
            CartItem(
                product_id=info.product_id,
                size=line.size,
                color=line.color,
                quantity=line.quantity,
                unit_price=info.price,
                name=info.name,
                image=info.image,
                updated_at=now,
            )
        )
    try:
        return svc.merge_guest_cart(user_id, guest_items)
    except Timeout:
        raise HTTPException(status_code=503, detail=CART_BUSY)


@router.put("/{user_id}/items", summary="Set item quantity", response_model=Cart)
def set_quantity(
    user_id: str, payload: SetQuantityIn, svc: CartService = Depends(get_cart_service)
):
    key = CartItemKey(payload.product_id, payload.size, payload.color)
    try:
        return svc.set_quantity(user_id, key, payload.quantity)
    except CartItemNotFound as e:
        raise HTTPException(status_code=404, detail=str(e))
    except Timeout:
        raise HTTPException(status_code=503, detail=CART_BUSY)


@router.delete("/{user_id}/items", summary="Remove item", response_model=Cart)
def remove_item(
    user_id: str,
    product_id: str,
    size: str,
    color: str,
    svc: CartService = Depends(get_cart_service),
):
    try:
        return svc.remove_item(user_id, CartItemKey(product_id, size, color))
    except Timeout:
        raise HTTPException(status_code=503, detail=CART_BUSY)


@router.delete("/{user_id}", summary="Clear cart", response_model=Cart)
def clear_cart(user_id: str, svc: CartService = Depends(get_cart_service)):
    try:
        return svc.clear(user_id)
    except Timeout:
        raise HTTPException(status_code=503, detail=CART_BUSY)


@router.get("/{user_id}/validate", summary="Re-check cart against catalog")
def validate_cart(
    user_id: str,
    svc: CartService = Depends(get_cart_service),
    validator: CartValidator = Depends(get_validator),
):
    result = validator.validate(svc.get_cart(user_id))
    return {"is_valid": result.is_valid, "issues": result.issues}
