from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from stockpro.models import AuditLog, AuthEvent

logger = logging.getLogger(__name__)

LOGIN_FAILURE_REASONS = frozenset({'UNKNOWN_EMAIL', 'INACTIVE_USER', 'BAD_PASSWORD'})
USER_AGENT_MAX_LENGTH = 512


def log_auth_event(
    db: Session,
    *,
    attempted_email: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    user_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    """Append one login attempt; a failed attempt must carry a known reason."""
    if not success and failure_reason not in LOGIN_FAILURE_REASONS:
        raise ValueError(f'Unknown login failure reason: {failure_reason!r}')
    db.add(
        AuthEvent(
            attempted_email=attempted_email.strip().lower(),
            success=success,
            failure_reason=None if success else failure_reason,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent[:USER_AGENT_MAX_LENGTH] if user_agent else None,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_user_id: int | None,
    action: str,
    ip: str | None = None,
    metadata: dict | None = None,
) -> None:
    entry = AuditLog(actor_user_id=actor_user_id, action=action, ip=ip, meta=dict(metadata or {}))
    db.add(entry)
    logger.debug('audit %s by user %s %s', action, actor_user_id, entry.meta)
