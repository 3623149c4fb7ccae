"""Approval workflow for receipts, stock-outs and vehicle registrations.

Requests from users without the bypass capability are captured as
``PendingOperation`` rows holding the validated payload. An administrator
later approves them, which runs the matching executor inside the same
transaction as the status change, or rejects them, which has no effect on
stock.
"""

from __future__ import annotations

import logging
from collections.abc import Callable

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockpro.auth import Capability, Principal, assert_capability, has_capability
from stockpro.errors import (
    InvalidStateError,
    NotFoundError,
    UnauthorizedError,
    UnsupportedOperationError,
    ValidationError,
)
from stockpro.models import OperationStatus, OperationType, PendingOperation, User
from stockpro.schemas import ReceiptCreate, StockOutCreate, VehicleCreate
from stockpro.services import receipt_service, stock_out_service, vehicle_service
from stockpro.services.audit_service import log_audit
from stockpro.services.pending_queries import ALREADY_PROCESSED_MESSAGE, claim_transition

logger = logging.getLogger(__name__)

Executor = Callable[..., int]


def _execute_receipt(db: Session, payload: ReceiptCreate, *, approver_id: int, requester_id: int) -> int:
    receipt = receipt_service.create_receipt(db, payload, approved_by=approver_id, created_by=requester_id)
    return receipt.id


def _execute_stock_out(db: Session, payload: StockOutCreate, *, approver_id: int, requester_id: int) -> int:
    return stock_out_service.create_stock_out(db, payload).id


def _execute_vehicle(db: Session, payload: VehicleCreate, *, approver_id: int, requester_id: int) -> int:
    return vehicle_service.create_vehicle(db, payload).id


EXECUTORS: dict[str, Executor] = {
    OperationType.RECEIPT.value: _execute_receipt,
    OperationType.STOCKOUT.value: _execute_stock_out,
    OperationType.VEHICLE.value: _execute_vehicle,
}

OPERATION_PAYLOADS: dict[str, type[BaseModel]] = {
    OperationType.RECEIPT.value: ReceiptCreate,
    OperationType.STOCKOUT.value: StockOutCreate,
    OperationType.VEHICLE.value: VehicleCreate,
}


def _executor_for(op_type: str) -> Executor:
    executor = EXECUTORS.get(op_type)
    if executor is None:
        raise UnsupportedOperationError(f"Type d'opération non supporté: {op_type}", details={'type': op_type})
    return executor


def execute_direct(db: Session, op_type: str, payload: BaseModel, *, actor: Principal) -> int:
    """Run an executor immediately for callers allowed to skip approval."""
    assert_capability(actor, Capability.BYPASS_APPROVAL)
    executor = _executor_for(op_type)
    entity_id = executor(db, payload, approver_id=actor.id, requester_id=actor.id)
    log_audit(
        db,
        actor_user_id=actor.id,
        action='OPERATION_EXECUTED_DIRECTLY',
        metadata={'type': op_type, 'entity_id': entity_id},
    )
    return entity_id


def submit(
    db: Session,
    *,
    op_type: str,
    payload: BaseModel,
    requester: Principal,
    ip: str | None = None,
) -> PendingOperation:
    _executor_for(op_type)
    operation = PendingOperation(
        type=op_type,
        data=payload.model_dump(mode='json'),
        user_id=requester.id,
        status=OperationStatus.PENDING,
    )
    db.add(operation)
    db.flush()

    log_audit(
        db,
        actor_user_id=requester.id,
        action='OPERATION_SUBMITTED',
        ip=ip,
        metadata={'operation_id': operation.id, 'type': op_type},
    )
    logger.info('Operation %s (%s) submitted by user %s', operation.id, op_type, requester.id)
    return operation


def execute_or_submit(
    db: Session,
    *,
    op_type: str,
    payload: BaseModel,
    actor: Principal,
    ip: str | None = None,
) -> tuple[int | None, PendingOperation | None]:
    """Create the entity now for administrators, queue it for approval otherwise."""
    if has_capability(actor, Capability.BYPASS_APPROVAL):
        return execute_direct(db, op_type, payload, actor=actor), None
    return None, submit(db, op_type=op_type, payload=payload, requester=actor, ip=ip)


def get_operation(db: Session, operation_id: int) -> PendingOperation:
    operation = db.get(PendingOperation, operation_id)
    if not operation:
        raise NotFoundError(f'Opération {operation_id} introuvable', details={'operation_id': operation_id})
    return operation


def _reload(db: Session, operation_id: int) -> PendingOperation:
    return db.execute(
        select(PendingOperation)
        .where(PendingOperation.id == operation_id)
        .execution_options(populate_existing=True)
    ).scalar_one()


def _parse_payload(operation: PendingOperation) -> BaseModel:
    schema = OPERATION_PAYLOADS[operation.type]
    try:
        return schema.model_validate(operation.data)
    except PydanticValidationError as exc:
        raise ValidationError(
            'Les données de la demande sont invalides',
            details={'operation_id': operation.id, 'errors': exc.errors(include_url=False)},
        ) from exc


def approve(db: Session, *, operation_id: int, approver: Principal, ip: str | None = None) -> PendingOperation:
    assert_capability(approver, Capability.APPROVE_OPERATIONS)

    operation = get_operation(db, operation_id)
    if operation.status != OperationStatus.PENDING:
        raise InvalidStateError(ALREADY_PROCESSED_MESSAGE, details={'id': operation_id})

    executor = _executor_for(operation.type)
    payload = _parse_payload(operation)
    requester_id = operation.user_id

    claim_transition(
        db,
        PendingOperation,
        operation_id,
        target=OperationStatus.APPROVED,
        approver_id=approver.id,
    )
    entity_id = executor(db, payload, approver_id=approver.id, requester_id=requester_id)

    log_audit(
        db,
        actor_user_id=approver.id,
        action='OPERATION_APPROVED',
        ip=ip,
        metadata={'operation_id': operation_id, 'type': operation.type, 'entity_id': entity_id},
    )
    logger.info('Operation %s (%s) approved by user %s', operation_id, operation.type, approver.id)
    return _reload(db, operation_id)


def reject(
    db: Session,
    *,
    operation_id: int,
    approver: Principal,
    reason: str | None = None,
    ip: str | None = None,
) -> PendingOperation:
    assert_capability(approver, Capability.APPROVE_OPERATIONS)

    operation = get_operation(db, operation_id)
    if operation.status != OperationStatus.PENDING:
        raise InvalidStateError(ALREADY_PROCESSED_MESSAGE, details={'id': operation_id})

    claim_transition(
        db,
        PendingOperation,
        operation_id,
        target=OperationStatus.REJECTED,
        approver_id=approver.id,
        rejection_reason=reason,
    )
    operation = _reload(db, operation_id)

    log_audit(
        db,
        actor_user_id=approver.id,
        action='OPERATION_REJECTED',
        ip=ip,
        metadata={'operation_id': operation_id, 'type': operation.type, 'reason': operation.rejection_reason},
    )
    logger.info('Operation %s (%s) rejected by user %s', operation_id, operation.type, approver.id)
    return operation


def withdraw(db: Session, *, operation_id: int, principal: Principal) -> None:
    operation = get_operation(db, operation_id)
    if operation.user_id != principal.id and not has_capability(principal, Capability.EDIT_ANY_PENDING):
        raise UnauthorizedError('Accès non autorisé', details={'operation_id': operation_id})
    if operation.status != OperationStatus.PENDING:
        raise InvalidStateError(ALREADY_PROCESSED_MESSAGE, details={'id': operation_id})

    db.delete(operation)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='OPERATION_WITHDRAWN',
        metadata={'operation_id': operation_id, 'type': operation.type},
    )
    db.flush()


def list_pending(db: Session, *, status: OperationStatus | None = OperationStatus.PENDING) -> list[dict]:
    query = select(PendingOperation).order_by(PendingOperation.created_at.desc(), PendingOperation.id.desc())
    if status is not None:
        query = query.where(PendingOperation.status == status)
    operations = db.execute(query).scalars().all()
    user_names = dict(db.execute(select(User.id, User.name)).all())
    return [operation_to_dict(operation, user_names=user_names) for operation in operations]


def operation_to_dict(operation: PendingOperation, *, user_names: dict[int, str] | None = None) -> dict:
    user_names = user_names or {}
    return {
        'id': operation.id,
        'type': operation.type,
        'data': operation.data,
        'user_id': operation.user_id,
        'user': user_names.get(operation.user_id),
        'status': operation.status.value,
        'approved_by': operation.approved_by,
        'approver': user_names.get(operation.approved_by),
        'approved_at': operation.approved_at,
        'rejection_reason': operation.rejection_reason,
        'created_at': operation.created_at,
    }
