from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from storefront.api.deps import get_db
from storefront.models.inventory_line import InventoryLine
from storefront.models.product import Product

router = APIRouter(prefix="/api/inventory", tags=["inventory"])


@router.get("/{product_id}")
def product_inventory(product_id: str, db: Session = Depends(get_db)):
    """
    returns { product_id, active, variants: [{size, color, quantity}] }
    """
    product = db.get(Product, product_id)
    if not product:
        raise HTTPException(status_code=404, detail="Product not found")
    lines = (
        db.query(InventoryLine)
        .filter(InventoryLine.product_id == product_id)
        .order_by(InventoryLine.size, InventoryLine.color)
        .all()
    )
    return {
        "product_id": product.id,
        "active": product.active,
        "variants": [
            {"size": l.size, "color": l.color, "quantity": l.quantity} for l in lines
        ],
        "total": sum(l.quantity for l in lines),
    }
