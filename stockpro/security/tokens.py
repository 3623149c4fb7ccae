from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy import select
from sqlalchemy.orm import Session

from stockpro.auth import Principal, effective_permissions
from stockpro.config import settings
from stockpro.db import SessionLocal
from stockpro.models import ApiToken, User, UserStatus

AUTH_EXEMPT_PATHS = {
    '/api/health',
    '/api/auth/login',
    '/api/auth/validate-token',
    '/api/auth/activate',
    '/api/categories',
    '/docs',
    '/openapi.json',
}


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _token_expiry() -> datetime:
    return _now() + timedelta(minutes=settings.api_token_ttl_minutes)


def bearer_token(request: Request) -> str | None:
    header = request.headers.get('authorization', '')
    scheme, _, credentials = header.partition(' ')
    if scheme.lower() != 'bearer' or not credentials.strip():
        return None
    return credentials.strip()


def create_api_token(db: Session, user_id: int, ip: str | None, user_agent: str | None) -> str:
    token = secrets.token_urlsafe(48)
    db.add(
        ApiToken(
            token=token,
            user_id=user_id,
            ip=ip,
            user_agent=user_agent,
            expires_at=_token_expiry(),
        )
    )
    db.flush()
    return token


def revoke_api_token(db: Session, token: str) -> None:
    api_token = db.execute(select(ApiToken).where(ApiToken.token == token)).scalar_one_or_none()
    if not api_token or api_token.revoked_at is not None:
        return
    api_token.revoked_at = _now()


def principal_from_user(user: User) -> Principal:
    return Principal(
        id=user.id,
        name=user.name,
        email=user.email,
        role=user.role,
        active=user.status == UserStatus.ACTIVE,
        permissions=effective_permissions(user.role, user.permissions),
    )


def load_principal_from_token(db: Session, token: str | None) -> Principal | None:
    if not token:
        return None

    row = db.execute(
        select(ApiToken, User)
        .join(User, User.id == ApiToken.user_id)
        .where(ApiToken.token == token)
    ).one_or_none()
    if not row:
        return None

    api_token, user = row
    now = _now()
    if api_token.revoked_at is not None or _as_utc(api_token.expires_at) <= now:
        return None

    api_token.last_seen_at = now
    api_token.expires_at = _token_expiry()
    return principal_from_user(user)


def install_auth_token_middleware(app: FastAPI) -> None:
    @app.middleware('http')
    async def auth_token_middleware(request: Request, call_next):
        token = bearer_token(request)
        with SessionLocal() as db:
            request.state.principal = load_principal_from_token(db, token)
            db.commit()

        if (
            request.method != 'OPTIONS'
            and request.url.path not in AUTH_EXEMPT_PATHS
            and request.state.principal is None
        ):
            return JSONResponse(
                status_code=401,
                content={'error': 'UNAUTHENTICATED', 'message': 'Utilisateur non authentifié'},
            )

        return await call_next(request)
