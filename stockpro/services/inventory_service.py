from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockpro.models import Inventory, InventoryItem, Product
from stockpro.schemas import InventoryCreate
from stockpro.services import stock_service


def create_inventory(db: Session, payload: InventoryCreate, *, created_by: int | None) -> Inventory:
    inventory = Inventory(
        agent=payload.agent,
        counted_at=payload.counted_at,
        notes=payload.notes,
        created_by=created_by,
    )
    db.add(inventory)
    db.flush()

    for line in payload.items:
        # The theoretical quantity is read under the row lock so a concurrent
        # receipt cannot slip in between the snapshot and the correction.
        product = stock_service.lock_product(db, line.product_id)
        theoretical_qty = product.quantity
        db.add(
            InventoryItem(
                inventory_id=inventory.id,
                product_id=product.id,
                theoretical_qty=theoretical_qty,
                counted_qty=line.counted_qty,
                variance=line.counted_qty - theoretical_qty,
            )
        )
        stock_service.apply_inventory_variance(
            db,
            product.id,
            line.counted_qty,
            theoretical_qty,
            movement_date=payload.counted_at,
            inventory_id=inventory.id,
        )

    db.flush()
    return inventory


def list_inventories(db: Session) -> list[dict]:
    inventories = db.execute(
        select(Inventory).order_by(Inventory.created_at.desc(), Inventory.id.desc())
    ).scalars().all()
    ids = [inventory.id for inventory in inventories]

    lines_by_inventory: dict[int, list[dict]] = {inventory_id: [] for inventory_id in ids}
    if ids:
        line_rows = db.execute(
            select(InventoryItem, Product.name)
            .join(Product, Product.id == InventoryItem.product_id)
            .where(InventoryItem.inventory_id.in_(ids))
            .order_by(InventoryItem.id.asc())
        ).all()
        for line, product_name in line_rows:
            lines_by_inventory[line.inventory_id].append(
                {
                    'id': line.id,
                    'product_id': line.product_id,
                    'product': {'id': line.product_id, 'name': product_name},
                    'theoretical_qty': line.theoretical_qty,
                    'counted_qty': line.counted_qty,
                    'variance': line.variance,
                }
            )

    return [
        {
            'id': inventory.id,
            'agent': inventory.agent,
            'counted_at': inventory.counted_at,
            'notes': inventory.notes,
            'created_at': inventory.created_at,
            'items': lines_by_inventory.get(inventory.id, []),
        }
        for inventory in inventories
    ]
