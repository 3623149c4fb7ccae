from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from stockpro.auth import Permission, Principal, require_permission
from stockpro.db import get_db
from stockpro.dependencies import get_client_ip
from stockpro.models import OperationType
from stockpro.routers.common import creation_response
from stockpro.schemas import StockOutCreate
from stockpro.services import approval_service
from stockpro.services.audit_service import log_audit
from stockpro.services.stock_out_service import list_stock_outs, return_provisional, validate_provisional

router = APIRouter(prefix='/api/stockouts', tags=['stockouts'])
stock_out_access = require_permission(Permission.STOCK_OUTS)


def _movement_response(movement) -> dict:
    return {
        'id': movement.id,
        'exit_type': movement.exit_type.value if movement.exit_type else None,
        'status': movement.status.value if movement.status else None,
    }


@router.get('')
def stock_outs(_: Principal = Depends(stock_out_access), db: Session = Depends(get_db)):
    return list_stock_outs(db)


@router.post('')
def stock_out_create(
    payload: StockOutCreate,
    request: Request,
    principal: Principal = Depends(stock_out_access),
    db: Session = Depends(get_db),
):
    entity_id, operation = approval_service.execute_or_submit(
        db,
        op_type=OperationType.STOCKOUT.value,
        payload=payload,
        actor=principal,
        ip=get_client_ip(request),
    )
    db.commit()
    return creation_response(entity_id, operation)


@router.post('/{movement_id}/validate')
def stock_out_validate(
    movement_id: int,
    request: Request,
    principal: Principal = Depends(stock_out_access),
    db: Session = Depends(get_db),
):
    movement = validate_provisional(db, movement_id=movement_id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='STOCK_OUT_VALIDATED',
        ip=get_client_ip(request),
        metadata={'movement_id': movement_id},
    )
    db.commit()
    return _movement_response(movement)


@router.post('/{movement_id}/return')
def stock_out_return(
    movement_id: int,
    request: Request,
    principal: Principal = Depends(stock_out_access),
    db: Session = Depends(get_db),
):
    movement = return_provisional(db, movement_id=movement_id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='STOCK_OUT_RETURNED',
        ip=get_client_ip(request),
        metadata={'movement_id': movement_id, 'quantity': movement.quantity},
    )
    db.commit()
    return _movement_response(movement)
