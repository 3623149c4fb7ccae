from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from stockpro.auth import Capability, Principal, require_capability
from stockpro.db import get_db
from stockpro.dependencies import get_client_ip
from stockpro.schemas import UserCreate, UserInvite, UserUpdate
from stockpro.services.audit_service import log_audit
from stockpro.services.notification_service import send_invitation_email
from stockpro.services.user_service import create_user, delete_user, invite_user, list_users, update_user

router = APIRouter(prefix='/api/users', tags=['users'])
user_admin_access = require_capability(Capability.MANAGE_USERS)


@router.get('')
def users(_: Principal = Depends(user_admin_access), db: Session = Depends(get_db)):
    return list_users(db)


@router.post('', status_code=status.HTTP_201_CREATED)
def user_create(
    payload: UserCreate,
    request: Request,
    principal: Principal = Depends(user_admin_access),
    db: Session = Depends(get_db),
):
    user = create_user(db, payload)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_CREATED',
        ip=get_client_ip(request),
        metadata={'user_id': user.id, 'email': user.email, 'role': user.role.value},
    )
    db.commit()
    return {'id': user.id}


@router.put('/{user_id}')
def user_update(
    user_id: int,
    payload: UserUpdate,
    request: Request,
    principal: Principal = Depends(user_admin_access),
    db: Session = Depends(get_db),
):
    user = update_user(db, user_id=user_id, payload=payload)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_UPDATED',
        ip=get_client_ip(request),
        metadata={'user_id': user.id, 'fields': sorted(payload.model_dump(exclude_unset=True, exclude={'password'}))},
    )
    db.commit()
    return {'updated': True}


@router.delete('/{user_id}')
def user_delete(
    user_id: int,
    request: Request,
    principal: Principal = Depends(user_admin_access),
    db: Session = Depends(get_db),
):
    delete_user(db, user_id=user_id, actor_user_id=principal.id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_DELETED',
        ip=get_client_ip(request),
        metadata={'user_id': user_id},
    )
    db.commit()
    return {'deleted': True}


@router.post('/invite', status_code=status.HTTP_201_CREATED)
def user_invite(
    payload: UserInvite,
    request: Request,
    principal: Principal = Depends(user_admin_access),
    db: Session = Depends(get_db),
):
    ip = get_client_ip(request)
    invitation = invite_user(db, payload, invited_by=principal.id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='USER_INVITED',
        ip=ip,
        metadata={'invitation_id': invitation.id, 'email': invitation.email},
    )
    db.commit()

    # Mail only once the token is stored.
    email_sent = send_invitation_email(db, actor_user_id=principal.id, invitation=invitation, ip=ip)
    db.commit()
    return {
        'message': 'Invitation envoyée avec succès',
        'invitation_id': invitation.id,
        'email_sent': email_sent,
    }
