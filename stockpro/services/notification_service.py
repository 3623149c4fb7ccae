from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage

from sqlalchemy.orm import Session

from stockpro.config import settings
from stockpro.models import UserInvitation
from stockpro.services.audit_service import log_audit

logger = logging.getLogger(__name__)

INVITATION_SUBJECT = 'Invitation à rejoindre StockPro'


def activation_url(token: str) -> str:
    return f"{settings.frontend_url.rstrip('/')}/auth/activate?token={token}"


def _invitation_message(invitation: UserInvitation) -> EmailMessage:
    message = EmailMessage()
    message['Subject'] = INVITATION_SUBJECT
    message['From'] = settings.mail_from
    message['To'] = invitation.email
    message.set_content(
        f'Bonjour {invitation.name},\n\n'
        f'Vous avez été invité(e) à rejoindre StockPro en tant que {invitation.role.value}.\n'
        f'Activez votre compte en suivant ce lien : {activation_url(invitation.token)}\n\n'
        f"Ce lien expire le {invitation.expires_at.strftime('%d/%m/%Y à %H:%M')}.\n"
    )
    return message


def _deliver(message: EmailMessage) -> None:
    with smtplib.SMTP(settings.smtp_host, settings.smtp_port, timeout=settings.smtp_timeout_seconds) as smtp:
        if settings.smtp_use_tls:
            smtp.starttls()
        if settings.smtp_username:
            smtp.login(settings.smtp_username, settings.smtp_password or '')
        smtp.send_message(message)


def send_invitation_email(
    db: Session,
    *,
    actor_user_id: int,
    invitation: UserInvitation,
    ip: str | None,
) -> bool:
    """Best-effort delivery; the invitation stays valid when mail fails."""
    payload = {'invitation_id': invitation.id, 'email': invitation.email}

    if not settings.smtp_host:
        logger.info('SMTP not configured, invitation link for %s: %s', invitation.email, activation_url(invitation.token))
        log_audit(
            db,
            actor_user_id=actor_user_id,
            action='INVITATION_EMAIL_STUB_SENT',
            ip=ip,
            metadata={**payload, 'status': 'STUB_SENT'},
        )
        return False

    try:
        _deliver(_invitation_message(invitation))
    except (smtplib.SMTPException, OSError) as exc:
        logger.error('Failed to send invitation email to %s: %s', invitation.email, exc)
        log_audit(
            db,
            actor_user_id=actor_user_id,
            action='INVITATION_EMAIL_FAILED',
            ip=ip,
            metadata={**payload, 'error': str(exc)},
        )
        return False

    logger.info('Invitation email sent to %s', invitation.email)
    log_audit(db, actor_user_id=actor_user_id, action='INVITATION_EMAIL_SENT', ip=ip, metadata=payload)
    return True
