from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockpro.errors import ConflictError, NotFoundError
from stockpro.models import OperationStatus, OperationType, Receipt, ReceiptItem, User
from stockpro.schemas import ReceiptCreate, ReceiptUpdate
from stockpro.services import stock_service
from stockpro.services.pending_queries import PENDING_ID_PREFIX, list_unresolved_requests
from stockpro.services.product_service import ensure_ref_available, find_or_create_by_name, get_product


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _ensure_receipt_ref_available(db: Session, ref: str) -> None:
    if db.execute(select(Receipt.id).where(Receipt.ref == ref)).first():
        raise ConflictError(f"La référence de réception '{ref}' existe déjà", details={'ref': ref})


def create_receipt(
    db: Session,
    payload: ReceiptCreate,
    *,
    approved_by: int,
    created_by: int | None = None,
) -> Receipt:
    if payload.ref:
        _ensure_receipt_ref_available(db, payload.ref)

    receipt = Receipt(
        **payload.model_dump(exclude={'items'}),
        status=OperationStatus.APPROVED,
        approved_by=approved_by,
        approved_at=_now(),
        created_by=created_by if created_by is not None else approved_by,
    )
    db.add(receipt)
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConflictError('La référence de réception existe déjà', details={'ref': payload.ref}) from exc

    for item in payload.items:
        if item.product_id is not None:
            product = get_product(db, item.product_id)
        else:
            product = find_or_create_by_name(
                db,
                name=item.product_name,
                ref=item.product_ref,
                category_id=item.product_category_id,
                category_name=item.product_category,
                unit_price=item.unit_price,
            )

        if item.product_ref and not product.ref:
            ensure_ref_available(db, item.product_ref, exclude_product_id=product.id)
            product.ref = item.product_ref

        db.add(
            ReceiptItem(
                receipt_id=receipt.id,
                product_id=product.id,
                quantity=item.quantity,
                unit_price=item.unit_price or 0,
            )
        )
        db.flush()
        stock_service.apply_receipt(db, product.id, item.quantity)

    return receipt


def get_receipt(db: Session, receipt_id: int) -> Receipt:
    receipt = db.get(Receipt, receipt_id)
    if not receipt:
        raise NotFoundError(f'Réception {receipt_id} introuvable', details={'receipt_id': receipt_id})
    return receipt


def receipt_items(db: Session, receipt_id: int) -> list[ReceiptItem]:
    return db.execute(
        select(ReceiptItem).where(ReceiptItem.receipt_id == receipt_id).order_by(ReceiptItem.id.asc())
    ).scalars().all()


def update_receipt(db: Session, *, receipt_id: int, payload: ReceiptUpdate) -> Receipt:
    receipt = get_receipt(db, receipt_id)
    for key, value in payload.model_dump(exclude_unset=True).items():
        setattr(receipt, key, value)
    db.flush()
    return receipt


def delete_receipt(db: Session, *, receipt_id: int) -> None:
    receipt = get_receipt(db, receipt_id)
    for item in receipt_items(db, receipt.id):
        stock_service.revert_receipt(db, item.product_id, item.quantity)
    db.execute(delete(ReceiptItem).where(ReceiptItem.receipt_id == receipt.id))
    db.delete(receipt)
    db.flush()


def list_receipts(db: Session) -> list[dict]:
    receipts = db.execute(select(Receipt).order_by(Receipt.created_at.desc(), Receipt.id.desc())).scalars().all()
    approver_names = dict(db.execute(select(User.id, User.name)).all())

    rows: list[dict] = []
    for receipt in receipts:
        items = receipt_items(db, receipt.id)
        rows.append(
            {
                'id': receipt.id,
                'ref': receipt.ref,
                'supplier': receipt.supplier,
                'agent': receipt.agent,
                'acquirer': receipt.acquirer,
                'persons_present': receipt.persons_present,
                'received_at': receipt.received_at,
                'notes': receipt.notes,
                'status': receipt.status.value,
                'approved_by': approver_names.get(receipt.approved_by),
                'approved_at': receipt.approved_at,
                'items_count': len(items),
                'items': [
                    {
                        'id': item.id,
                        'product_id': item.product_id,
                        'quantity': item.quantity,
                        'unit_price': float(item.unit_price),
                    }
                    for item in items
                ],
                'pending_operation_id': None,
                'created_at': receipt.created_at,
            }
        )

    for operation in list_unresolved_requests(db, OperationType.RECEIPT):
        data = operation.data
        items = data.get('items', [])
        rows.append(
            {
                'id': f'{PENDING_ID_PREFIX}{operation.id}',
                'ref': data.get('ref'),
                'supplier': data.get('supplier'),
                'agent': data.get('agent', ''),
                'acquirer': data.get('acquirer'),
                'persons_present': data.get('persons_present'),
                'received_at': data.get('received_at'),
                'notes': data.get('notes'),
                'status': operation.status.value,
                'approved_by': approver_names.get(operation.approved_by),
                'approved_at': operation.approved_at,
                'rejection_reason': operation.rejection_reason,
                'items_count': len(items),
                'items': items,
                'pending_operation_id': operation.id,
                'created_at': operation.created_at,
            }
        )

    rows.sort(key=lambda row: row['created_at'], reverse=True)
    return rows
