from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from stockpro.auth import Capability, Permission, Principal, assert_capability, require_permission
from stockpro.db import get_db
from stockpro.dependencies import get_client_ip
from stockpro.errors import InvalidStateError, NotFoundError
from stockpro.models import OperationType
from stockpro.routers.common import creation_response
from stockpro.schemas import ReceiptCreate, ReceiptUpdate
from stockpro.services import approval_service
from stockpro.services.audit_service import log_audit
from stockpro.services.pending_queries import parse_pending_id
from stockpro.services.receipt_service import delete_receipt, list_receipts, update_receipt

router = APIRouter(prefix='/api/receipts', tags=['receipts'])
receipt_access = require_permission(Permission.RECEIPTS)


def _receipt_id(raw_id: str) -> int:
    if not raw_id.isdigit():
        raise NotFoundError(f'Réception {raw_id} introuvable')
    return int(raw_id)


@router.get('')
def receipts(_: Principal = Depends(receipt_access), db: Session = Depends(get_db)):
    return list_receipts(db)


@router.post('')
def receipt_create(
    payload: ReceiptCreate,
    request: Request,
    principal: Principal = Depends(receipt_access),
    db: Session = Depends(get_db),
):
    entity_id, operation = approval_service.execute_or_submit(
        db,
        op_type=OperationType.RECEIPT.value,
        payload=payload,
        actor=principal,
        ip=get_client_ip(request),
    )
    db.commit()
    return creation_response(entity_id, operation)


@router.put('/{raw_id}')
def receipt_update(
    raw_id: str,
    payload: ReceiptUpdate,
    principal: Principal = Depends(receipt_access),
    db: Session = Depends(get_db),
):
    if parse_pending_id(raw_id) is not None:
        raise InvalidStateError('Une demande en attente ne peut pas être modifiée')
    assert_capability(principal, Capability.BYPASS_APPROVAL)
    receipt = update_receipt(db, receipt_id=_receipt_id(raw_id), payload=payload)
    db.commit()
    return {'id': receipt.id, 'updated': True}


@router.delete('/{raw_id}')
def receipt_delete(
    raw_id: str,
    request: Request,
    principal: Principal = Depends(receipt_access),
    db: Session = Depends(get_db),
):
    operation_id = parse_pending_id(raw_id)
    if operation_id is not None:
        approval_service.withdraw(db, operation_id=operation_id, principal=principal)
        db.commit()
        return {'deleted': True}

    assert_capability(principal, Capability.BYPASS_APPROVAL)
    receipt_id = _receipt_id(raw_id)
    delete_receipt(db, receipt_id=receipt_id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='RECEIPT_DELETED',
        ip=get_client_ip(request),
        metadata={'receipt_id': receipt_id},
    )
    db.commit()
    return {'deleted': True}
