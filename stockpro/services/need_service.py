from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, aliased

from stockpro.auth import Capability, Principal, assert_capability, has_capability
from stockpro.errors import InvalidStateError, NotFoundError
from stockpro.models import Need, OperationStatus, Product, User
from stockpro.schemas import NeedCreate
from stockpro.services.audit_service import log_audit
from stockpro.services.pending_queries import ALREADY_PROCESSED_MESSAGE, claim_transition
from stockpro.services.product_service import get_product

logger = logging.getLogger(__name__)


def create_need(db: Session, payload: NeedCreate, *, requester: Principal) -> Need:
    get_product(db, payload.product_id)
    need = Need(
        product_id=payload.product_id,
        quantity=payload.quantity,
        reason=payload.reason,
        user_id=requester.id,
        status=OperationStatus.PENDING,
    )
    db.add(need)
    db.flush()
    return need


def get_need(db: Session, need_id: int) -> Need:
    need = db.get(Need, need_id)
    if not need:
        raise NotFoundError(f'Besoin {need_id} introuvable', details={'need_id': need_id})
    return need


def list_needs(db: Session, *, principal: Principal) -> list[dict]:
    approver = aliased(User)
    query = (
        select(Need, Product.name, User.name, approver.name)
        .join(Product, Product.id == Need.product_id)
        .join(User, User.id == Need.user_id)
        .outerjoin(approver, approver.id == Need.approved_by)
        .order_by(Need.created_at.desc(), Need.id.desc())
    )
    if not has_capability(principal, Capability.VIEW_ALL_NEEDS):
        query = query.where(Need.user_id == principal.id)

    return [
        {
            'id': need.id,
            'product_id': need.product_id,
            'product': {'id': need.product_id, 'name': product_name},
            'quantity': need.quantity,
            'reason': need.reason,
            'user_id': need.user_id,
            'user': {'id': need.user_id, 'name': requester_name},
            'status': need.status.value,
            'approved_by': approver_name,
            'approved_at': need.approved_at,
            'rejection_reason': need.rejection_reason,
            'created_at': need.created_at,
        }
        for need, product_name, requester_name, approver_name in db.execute(query).all()
    ]


def _decide(
    db: Session,
    *,
    need_id: int,
    approver: Principal,
    target: OperationStatus,
    reason: str | None = None,
) -> Need:
    assert_capability(approver, Capability.APPROVE_OPERATIONS)
    need = get_need(db, need_id)
    if need.status != OperationStatus.PENDING:
        raise InvalidStateError(ALREADY_PROCESSED_MESSAGE, details={'id': need_id})

    claim_transition(db, Need, need_id, target=target, approver_id=approver.id, rejection_reason=reason)
    need = db.execute(
        select(Need).where(Need.id == need_id).execution_options(populate_existing=True)
    ).scalar_one()

    log_audit(
        db,
        actor_user_id=approver.id,
        action='NEED_APPROVED' if target == OperationStatus.APPROVED else 'NEED_REJECTED',
        metadata={'need_id': need_id},
    )
    logger.info('Need %s %s by user %s', need_id, target.value, approver.id)
    return need


def approve_need(db: Session, *, need_id: int, approver: Principal) -> Need:
    return _decide(db, need_id=need_id, approver=approver, target=OperationStatus.APPROVED)


def reject_need(db: Session, *, need_id: int, approver: Principal, reason: str | None = None) -> Need:
    return _decide(db, need_id=need_id, approver=approver, target=OperationStatus.REJECTED, reason=reason)
