"""Product quantity mutations.

Every change to ``Product.quantity`` after creation goes through this module,
inside the caller's transaction, next to the row that justifies it (receipt
line, stock movement, inventory line). Increments and decrements are issued as
a single ``UPDATE ... SET quantity = quantity +/- :qty`` so concurrent requests
cannot lose updates; the affected-row count doubles as the existence check.
"""

from __future__ import annotations

import logging
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from stockpro.errors import NotFoundError, ValidationError
from stockpro.models import MovementStatus, MovementType, Product, StockMovement

logger = logging.getLogger(__name__)


def _require_positive(qty: int) -> None:
    if qty <= 0:
        raise ValidationError('Quantity must be greater than zero', details={'quantity': qty})


def _reload(db: Session, product_id: int) -> Product:
    return db.execute(
        select(Product).where(Product.id == product_id).execution_options(populate_existing=True)
    ).scalar_one()


def _shift_quantity(db: Session, product_id: int, delta: int) -> Product:
    result = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(quantity=Product.quantity + delta)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError(f'Produit {product_id} introuvable', details={'product_id': product_id})
    return _reload(db, product_id)


def lock_product(db: Session, product_id: int) -> Product:
    product = db.execute(
        select(Product)
        .where(Product.id == product_id)
        .with_for_update()
        .execution_options(populate_existing=True)
    ).scalar_one_or_none()
    if not product:
        raise NotFoundError(f'Produit {product_id} introuvable', details={'product_id': product_id})
    return product


def apply_receipt(db: Session, product_id: int, qty: int) -> Product:
    _require_positive(qty)
    return _shift_quantity(db, product_id, qty)


def apply_stock_out(db: Session, product_id: int, qty: int) -> Product:
    # No floor: provisional exits may legitimately overdraw the stock.
    _require_positive(qty)
    product = _shift_quantity(db, product_id, -qty)
    if product.quantity < 0:
        logger.info('Product %s overdrawn to %s', product_id, product.quantity)
    return product


def apply_stock_return(db: Session, product_id: int, qty: int) -> Product:
    _require_positive(qty)
    return _shift_quantity(db, product_id, qty)


def revert_receipt(db: Session, product_id: int, qty: int) -> Product:
    _require_positive(qty)
    return _shift_quantity(db, product_id, -qty)


def apply_inventory_variance(
    db: Session,
    product_id: int,
    counted_qty: int,
    theoretical_qty: int,
    *,
    movement_date: date,
    inventory_id: int | None = None,
) -> StockMovement | None:
    if counted_qty == theoretical_qty:
        return None

    variance = counted_qty - theoretical_qty
    result = db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(quantity=counted_qty)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise NotFoundError(f'Produit {product_id} introuvable', details={'product_id': product_id})
    _reload(db, product_id)

    movement = StockMovement(
        product_id=product_id,
        type=MovementType.ADJUSTMENT,
        quantity=abs(variance),
        movement_date=movement_date,
        status=MovementStatus.COMPLETED,
        inventory_id=inventory_id,
    )
    db.add(movement)
    db.flush()
    return movement
