"""Queries and state transitions shared by pending operations and needs."""

from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from stockpro.errors import InvalidStateError
from stockpro.models import Need, OperationStatus, OperationType, PendingOperation

PENDING_ID_PREFIX = 'pending_'
DEFAULT_REJECTION_REASON = "Demande rejetée par l'administrateur"
ALREADY_PROCESSED_MESSAGE = 'Cette demande a déjà été traitée'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def list_unresolved_requests(db: Session, op_type: OperationType) -> list[PendingOperation]:
    """Pending and rejected requests of one type, newest first.

    Resource listings show these next to committed rows so requesters can
    follow what happened to their submissions.
    """
    return db.execute(
        select(PendingOperation)
        .where(
            PendingOperation.type == op_type.value,
            PendingOperation.status.in_([OperationStatus.PENDING, OperationStatus.REJECTED]),
        )
        .order_by(PendingOperation.created_at.desc(), PendingOperation.id.desc())
    ).scalars().all()


def parse_pending_id(raw_id: str) -> int | None:
    if not raw_id.startswith(PENDING_ID_PREFIX):
        return None
    tail = raw_id[len(PENDING_ID_PREFIX) :]
    return int(tail) if tail.isdigit() else None


def claim_transition(
    db: Session,
    model: type[PendingOperation] | type[Need],
    row_id: int,
    *,
    target: OperationStatus,
    approver_id: int,
    rejection_reason: str | None = None,
) -> None:
    """Move a row out of ``pending`` exactly once.

    The status check lives in the UPDATE itself; when two deciders race, the
    second one matches no row and gets InvalidStateError.
    """
    values = {'status': target, 'approved_by': approver_id, 'approved_at': _now()}
    if target == OperationStatus.REJECTED:
        values['rejection_reason'] = rejection_reason or DEFAULT_REJECTION_REASON

    result = db.execute(
        update(model)
        .where(model.id == row_id, model.status == OperationStatus.PENDING)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise InvalidStateError(ALREADY_PROCESSED_MESSAGE, details={'id': row_id})
