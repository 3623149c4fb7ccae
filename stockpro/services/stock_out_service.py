from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockpro.errors import InvalidStateError, NotFoundError
from stockpro.models import (
    ExitType,
    MovementStatus,
    MovementType,
    OperationType,
    Product,
    StockMovement,
)
from stockpro.schemas import StockOutCreate
from stockpro.services import stock_service
from stockpro.services.pending_queries import PENDING_ID_PREFIX, list_unresolved_requests
from stockpro.services.product_service import get_product


def default_status(exit_type: ExitType | None) -> MovementStatus | None:
    # Provisional exits stay open until validated or returned.
    if exit_type == ExitType.PROVISIONAL:
        return None
    return MovementStatus.COMPLETED


def create_stock_out(db: Session, payload: StockOutCreate) -> StockMovement:
    get_product(db, payload.product_id)
    movement = StockMovement(
        type=MovementType.STOCKOUT,
        product_id=payload.product_id,
        quantity=payload.quantity,
        movement_date=payload.movement_date,
        beneficiary=payload.beneficiary,
        agent=payload.agent,
        notes=payload.notes,
        exit_type=payload.exit_type,
        status=payload.status or default_status(payload.exit_type),
    )
    db.add(movement)
    db.flush()
    stock_service.apply_stock_out(db, payload.product_id, payload.quantity)
    return movement


def _get_stock_out(db: Session, movement_id: int) -> StockMovement:
    movement = db.execute(
        select(StockMovement)
        .where(StockMovement.id == movement_id, StockMovement.type == MovementType.STOCKOUT)
        .with_for_update()
    ).scalar_one_or_none()
    if not movement:
        raise NotFoundError(f'Sortie {movement_id} introuvable', details={'movement_id': movement_id})
    return movement


def _open_provisional_guard(movement: StockMovement, *, not_provisional_message: str) -> None:
    if movement.exit_type != ExitType.PROVISIONAL:
        raise InvalidStateError(not_provisional_message)
    if movement.status == MovementStatus.RETURNED:
        raise InvalidStateError('Cette sortie a déjà été retournée')


def validate_provisional(db: Session, *, movement_id: int) -> StockMovement:
    movement = _get_stock_out(db, movement_id)
    _open_provisional_guard(movement, not_provisional_message="Cette sortie n'est pas provisoire")
    movement.exit_type = ExitType.DEFINITIVE
    movement.status = MovementStatus.COMPLETED
    db.flush()
    return movement


def return_provisional(db: Session, *, movement_id: int) -> StockMovement:
    movement = _get_stock_out(db, movement_id)
    _open_provisional_guard(
        movement,
        not_provisional_message='Seules les sorties provisoires peuvent être retournées',
    )
    stock_service.apply_stock_return(db, movement.product_id, movement.quantity)
    movement.status = MovementStatus.RETURNED
    db.flush()
    return movement


def list_stock_outs(db: Session) -> list[dict]:
    rows: list[dict] = []
    movements = db.execute(
        select(StockMovement, Product.name)
        .outerjoin(Product, Product.id == StockMovement.product_id)
        .where(StockMovement.type == MovementType.STOCKOUT)
        .order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    ).all()
    for movement, product_name in movements:
        rows.append(
            {
                'id': movement.id,
                'product_id': movement.product_id,
                'product': {'name': product_name} if product_name else None,
                'quantity': movement.quantity,
                'beneficiary': movement.beneficiary,
                'agent': movement.agent,
                'notes': movement.notes,
                'movement_date': movement.movement_date,
                'exit_type': movement.exit_type.value if movement.exit_type else None,
                'status': movement.status.value if movement.status else None,
                'pending_operation_id': None,
                'created_at': movement.created_at,
            }
        )

    for operation in list_unresolved_requests(db, OperationType.STOCKOUT):
        data = operation.data
        rows.append(
            {
                'id': f'{PENDING_ID_PREFIX}{operation.id}',
                'product_id': data.get('product_id'),
                'product': None,
                'quantity': data.get('quantity', 0),
                'beneficiary': data.get('beneficiary'),
                'agent': data.get('agent'),
                'notes': data.get('notes'),
                'movement_date': data.get('movement_date'),
                'exit_type': data.get('exit_type'),
                'status': operation.status.value,
                'rejection_reason': operation.rejection_reason,
                'pending_operation_id': operation.id,
                'created_at': operation.created_at,
            }
        )

    rows.sort(key=lambda row: row['created_at'], reverse=True)
    return rows
