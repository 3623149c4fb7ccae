from __future__ import annotations

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from stockpro.auth import Principal, get_current_principal
from stockpro.db import get_db
from stockpro.schemas import NeedCreate, RejectRequest
from stockpro.services.need_service import approve_need, create_need, list_needs, reject_need

router = APIRouter(prefix='/api/needs', tags=['needs'])


@router.get('')
def needs(principal: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return list_needs(db, principal=principal)


@router.post('', status_code=status.HTTP_201_CREATED)
def need_create(
    payload: NeedCreate,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    need = create_need(db, payload, requester=principal)
    db.commit()
    return {'id': need.id, 'status': need.status.value}


@router.post('/{need_id}/approve')
def need_approve(
    need_id: int,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    need = approve_need(db, need_id=need_id, approver=principal)
    db.commit()
    return {'id': need.id, 'status': need.status.value}


@router.post('/{need_id}/reject')
def need_reject(
    need_id: int,
    payload: RejectRequest | None = None,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    need = reject_need(db, need_id=need_id, approver=principal, reason=payload.reason if payload else None)
    db.commit()
    return {'id': need.id, 'status': need.status.value, 'rejection_reason': need.rejection_reason}
