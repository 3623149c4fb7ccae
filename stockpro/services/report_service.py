from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockpro.models import (
    MovementType,
    Need,
    OperationStatus,
    PendingOperation,
    Product,
    Receipt,
    StockMovement,
    Vehicle,
    VehicleStatus,
)


def _count(db: Session, query) -> int:
    return db.execute(query).scalar_one() or 0


def dashboard_stats(db: Session) -> dict:
    stock_value = db.execute(select(func.sum(Product.quantity * Product.price))).scalar_one()
    vehicles_by_status = dict(
        db.execute(select(Vehicle.status, func.count(Vehicle.id)).group_by(Vehicle.status)).all()
    )

    return {
        'products': _count(db, select(func.count(Product.id))),
        'critical_products': _count(
            db, select(func.count(Product.id)).where(Product.quantity <= Product.critical_level)
        ),
        'total_quantity': _count(db, select(func.coalesce(func.sum(Product.quantity), 0))),
        'stock_value': float(stock_value or 0),
        'receipts': _count(db, select(func.count(Receipt.id))),
        'stock_outs': _count(
            db, select(func.count(StockMovement.id)).where(StockMovement.type == MovementType.STOCKOUT)
        ),
        'pending_operations': _count(
            db,
            select(func.count(PendingOperation.id)).where(PendingOperation.status == OperationStatus.PENDING),
        ),
        'pending_needs': _count(db, select(func.count(Need.id)).where(Need.status == OperationStatus.PENDING)),
        'vehicles': {status.value: vehicles_by_status.get(status, 0) for status in VehicleStatus},
    }
