from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockpro.auth import Capability, Principal, get_current_principal, has_capability, require_capability
from stockpro.db import get_db
from stockpro.dependencies import get_client_ip
from stockpro.errors import UnauthorizedError
from stockpro.models import OperationStatus, User
from stockpro.schemas import OperationRequest, RejectRequest
from stockpro.services import approval_service

router = APIRouter(prefix='/api/approvals', tags=['approvals'])
approver_access = require_capability(Capability.APPROVE_OPERATIONS)


@router.get('')
def approvals(
    status_filter: OperationStatus | None = Query(default=OperationStatus.PENDING, alias='status'),
    _: Principal = Depends(approver_access),
    db: Session = Depends(get_db),
):
    return approval_service.list_pending(db, status=status_filter)


@router.post('', status_code=status.HTTP_202_ACCEPTED)
def approval_submit(
    operation: OperationRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    pending = approval_service.submit(
        db,
        op_type=operation.type,
        payload=operation.data,
        requester=principal,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'operation_id': pending.id, 'status': pending.status.value}


@router.get('/{operation_id}')
def approval_detail(
    operation_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    operation = approval_service.get_operation(db, operation_id)
    if operation.user_id != principal.id and not has_capability(principal, Capability.APPROVE_OPERATIONS):
        raise UnauthorizedError('Accès non autorisé', details={'operation_id': operation_id})
    user_names = dict(
        db.execute(select(User.id, User.name).where(User.id.in_([operation.user_id, operation.approved_by or 0]))).all()
    )
    return approval_service.operation_to_dict(operation, user_names=user_names)


@router.post('/{operation_id}/approve')
def approval_approve(
    operation_id: int,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    operation = approval_service.approve(
        db,
        operation_id=operation_id,
        approver=principal,
        ip=get_client_ip(request),
    )
    db.commit()
    return {'operation_id': operation.id, 'status': operation.status.value, 'message': 'Opération approuvée'}


@router.post('/{operation_id}/reject')
def approval_reject(
    operation_id: int,
    request: Request,
    payload: RejectRequest | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    operation = approval_service.reject(
        db,
        operation_id=operation_id,
        approver=principal,
        reason=payload.reason if payload else None,
        ip=get_client_ip(request),
    )
    db.commit()
    return {
        'operation_id': operation.id,
        'status': operation.status.value,
        'rejection_reason': operation.rejection_reason,
    }


@router.delete('/{operation_id}')
def approval_withdraw(
    operation_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    approval_service.withdraw(db, operation_id=operation_id, principal=principal)
    db.commit()
    return {'deleted': True}
