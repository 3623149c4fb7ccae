from __future__ import annotations

import logging
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy import delete, or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stockpro.auth import effective_permissions
from stockpro.config import settings
from stockpro.errors import ConflictError, NotFoundError, UnauthorizedError
from stockpro.models import User, UserInvitation, UserStatus
from stockpro.schemas import ActivateRequest, UserCreate, UserInvite, UserUpdate
from stockpro.security.passwords import hash_password, verify_password
from stockpro.security.tokens import create_api_token
from stockpro.services.audit_service import log_audit, log_auth_event

logger = logging.getLogger(__name__)

INVALID_INVITATION_MESSAGE = 'Token invalide ou expiré'


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _permission_values(permissions: list | None) -> list[str] | None:
    if permissions is None:
        return None
    return [getattr(permission, 'value', permission) for permission in permissions]


def _ensure_email_available(db: Session, email: str, *, exclude_user_id: int | None = None) -> None:
    query = select(User.id).where(User.email == email)
    if exclude_user_id is not None:
        query = query.where(User.id != exclude_user_id)
    if db.execute(query).first():
        raise ConflictError('Un compte existe déjà avec cet email', details={'email': email})


def get_user(db: Session, user_id: int) -> User:
    user = db.get(User, user_id)
    if not user:
        raise NotFoundError(f'Utilisateur {user_id} introuvable', details={'user_id': user_id})
    return user


def user_to_dict(user: User) -> dict:
    return {
        'id': user.id,
        'name': user.name,
        'email': user.email,
        'role': user.role.value,
        'status': user.status.value,
        'last_login': user.last_login,
        'permissions': effective_permissions(user.role, user.permissions),
    }


def list_users(db: Session) -> list[dict]:
    users = db.execute(select(User).order_by(User.id.desc())).scalars().all()
    return [user_to_dict(user) for user in users]


def create_user(db: Session, payload: UserCreate) -> User:
    _ensure_email_available(db, payload.email)
    user = User(
        name=payload.name,
        email=payload.email,
        password_hash=hash_password(payload.password),
        role=payload.role,
        status=payload.status,
        permissions=_permission_values(payload.permissions),
    )
    db.add(user)
    try:
        db.flush()
    except IntegrityError as exc:
        raise ConflictError('Un compte existe déjà avec cet email', details={'email': payload.email}) from exc
    return user


def update_user(db: Session, *, user_id: int, payload: UserUpdate) -> User:
    user = get_user(db, user_id)
    changes = payload.model_dump(exclude_unset=True)

    if changes.get('email'):
        _ensure_email_available(db, changes['email'], exclude_user_id=user.id)
        user.email = changes['email']
    if changes.get('name'):
        user.name = changes['name']
    if changes.get('password'):
        user.password_hash = hash_password(changes['password'])
    if changes.get('status'):
        user.status = changes['status']

    if 'permissions' in changes:
        user.permissions = _permission_values(changes['permissions'])
    elif changes.get('role') and changes['role'] != user.role:
        # A role change without explicit permissions falls back to the role defaults.
        user.permissions = None
    if changes.get('role'):
        user.role = changes['role']

    user.updated_at = _now()
    db.flush()
    return user


def delete_user(db: Session, *, user_id: int, actor_user_id: int) -> None:
    user = get_user(db, user_id)
    if user.id == actor_user_id:
        raise UnauthorizedError('Vous ne pouvez pas supprimer votre propre compte')
    db.delete(user)
    db.flush()


def invite_user(db: Session, payload: UserInvite, *, invited_by: int) -> UserInvitation:
    _ensure_email_available(db, payload.email)
    now = _now()

    live = db.execute(
        select(UserInvitation.id).where(
            UserInvitation.email == payload.email,
            UserInvitation.used.is_(False),
            UserInvitation.expires_at > now,
        )
    ).first()
    if live:
        raise ConflictError('Une invitation est déjà en cours pour cet email', details={'email': payload.email})

    db.execute(
        delete(UserInvitation).where(
            UserInvitation.email == payload.email,
            or_(UserInvitation.used.is_(True), UserInvitation.expires_at <= now),
        ).execution_options(synchronize_session=False)
    )

    invitation = UserInvitation(
        name=payload.name,
        email=payload.email,
        role=payload.role,
        permissions=_permission_values(payload.permissions),
        token=secrets.token_urlsafe(48),
        expires_at=now + timedelta(hours=settings.invitation_ttl_hours),
        used=False,
        invited_by_user_id=invited_by,
    )
    db.add(invitation)
    db.flush()
    logger.info('Invitation %s created for %s', invitation.id, invitation.email)
    return invitation


def find_live_invitation(db: Session, token: str) -> UserInvitation:
    invitation = db.execute(
        select(UserInvitation).where(
            UserInvitation.token == token,
            UserInvitation.used.is_(False),
            UserInvitation.expires_at > _now(),
        )
    ).scalar_one_or_none()
    if not invitation:
        raise NotFoundError(INVALID_INVITATION_MESSAGE)
    return invitation


def activate_account(
    db: Session,
    payload: ActivateRequest,
    *,
    ip: str | None,
    user_agent: str | None,
) -> tuple[User, str]:
    invitation = find_live_invitation(db, payload.token)
    _ensure_email_available(db, invitation.email)

    # Activated accounts always start from the role defaults.
    user = User(
        name=invitation.name,
        email=invitation.email,
        password_hash=hash_password(payload.password),
        role=invitation.role,
        status=UserStatus.ACTIVE,
        permissions=None,
        last_login=_now(),
    )
    db.add(user)
    db.flush()
    invitation.used = True

    token = create_api_token(db, user.id, ip=ip, user_agent=user_agent)
    log_audit(db, actor_user_id=user.id, action='ACCOUNT_ACTIVATED', ip=ip, metadata={'invitation_id': invitation.id})
    return user, token


def authenticate(
    db: Session,
    *,
    email: str,
    password: str,
    ip: str | None,
    user_agent: str | None,
) -> User | None:
    """Check credentials and record the attempt; returns None on failure."""
    user = db.execute(select(User).where(User.email == email)).scalar_one_or_none()

    failure_reason = None
    if not user:
        failure_reason = 'UNKNOWN_EMAIL'
    elif user.status != UserStatus.ACTIVE:
        failure_reason = 'INACTIVE_USER'
    else:
        valid, updated_hash = verify_password(password, user.password_hash)
        if not valid:
            failure_reason = 'BAD_PASSWORD'
        elif updated_hash:
            user.password_hash = updated_hash

    log_auth_event(
        db,
        attempted_email=email,
        success=failure_reason is None,
        failure_reason=failure_reason,
        user_id=user.id if user else None,
        ip=ip,
        user_agent=user_agent,
    )
    if failure_reason:
        logger.info('Login failed for %s: %s', email, failure_reason)
        return None

    user.last_login = _now()
    log_audit(db, actor_user_id=user.id, action='AUTH_LOGIN', ip=ip)
    return user
