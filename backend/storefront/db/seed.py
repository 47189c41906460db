from typing import Dict, Iterable

from sqlalchemy.orm import Session

from storefront.models.inventory_line import InventoryLine
from storefront.models.product import Product


def seed_catalog(db: Session, entries: Iterable[Dict]) -> int:
    """
    Upsert products and their inventory lines.

    entries: [{id, name, price_cents, description?, image?, active?,
               variants: [{size, color, quantity}]}]
    Returns the number of products written. The caller commits.
    """
    count = 0
    for entry in entries:
        pid = entry.get("id")
        if not pid:
            continue
        p = db.get(Product, pid)
        if p is None:
            p = Product(id=pid)
            db.add(p)
        p.name = entry.get("name") or pid
        p.price_cents = int(entry.get("price_cents") or 0)
        p.description = entry.get("description")
        p.image = entry.get("image")
        p.active = bool(entry.get("active", True))
        db.flush()

        for v in entry.get("variants") or []:
            line = (
                db.query(InventoryLine)
                .filter(
                    InventoryLine.product_id == pid,
                    InventoryLine.size == v["size"],
                    InventoryLine.color == v["color"],
                )
                .first()
            )
            if line is None:
                line = InventoryLine(product_id=pid, size=v["size"], color=v["color"])
                db.add(line)
            line.quantity = int(v.get("quantity", 0))
        db.flush()
        count += 1
    return count
