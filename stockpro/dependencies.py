from fastapi import Request

from stockpro.config import settings


def get_client_ip(request: Request) -> str | None:
    """Best-effort client address for audit rows; honours the first X-Forwarded-For hop behind a proxy."""
    if settings.trust_forwarded_for:
        forwarded_for = request.headers.get('x-forwarded-for')
        if forwarded_for:
            return forwarded_for.split(',')[0].strip() or None
    return request.client.host if request.client else None


def get_user_agent(request: Request) -> str | None:
    return request.headers.get('user-agent') or None
