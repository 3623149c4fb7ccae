from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from stockpro.auth import Principal, get_current_principal
from stockpro.db import get_db
from stockpro.dependencies import get_client_ip, get_user_agent
from stockpro.errors import AuthenticationError
from stockpro.schemas import ActivateRequest, LoginRequest, TokenValidateRequest
from stockpro.security.tokens import bearer_token, create_api_token, revoke_api_token
from stockpro.services.audit_service import log_audit
from stockpro.services.user_service import activate_account, authenticate, find_live_invitation, user_to_dict

router = APIRouter(prefix='/api/auth', tags=['auth'])


@router.post('/login')
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    ip = get_client_ip(request)
    user_agent = get_user_agent(request)
    user = authenticate(db, email=payload.email, password=payload.password, ip=ip, user_agent=user_agent)
    if not user:
        # Persist the failed attempt before answering.
        db.commit()
        raise AuthenticationError('Email ou mot de passe incorrect')

    token = create_api_token(db, user.id, ip=ip, user_agent=user_agent)
    db.commit()
    return {'token': token, 'user': user_to_dict(user)}


@router.post('/logout')
def logout(
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    token = bearer_token(request)
    if token:
        revoke_api_token(db, token)
    log_audit(db, actor_user_id=principal.id, action='AUTH_LOGOUT', ip=get_client_ip(request))
    db.commit()
    return {'message': 'Déconnexion réussie'}


@router.get('/user')
def current_user(principal: Principal = Depends(get_current_principal)):
    return {
        'id': principal.id,
        'name': principal.name,
        'email': principal.email,
        'role': principal.role.value,
        'permissions': principal.permissions,
    }


@router.post('/validate-token')
def validate_token(payload: TokenValidateRequest, db: Session = Depends(get_db)):
    invitation = find_live_invitation(db, payload.token)
    return {
        'valid': True,
        'invitation': {'name': invitation.name, 'email': invitation.email, 'role': invitation.role.value},
    }


@router.post('/activate', status_code=status.HTTP_201_CREATED)
def activate(payload: ActivateRequest, request: Request, db: Session = Depends(get_db)):
    user, token = activate_account(
        db,
        payload,
        ip=get_client_ip(request),
        user_agent=get_user_agent(request),
    )
    db.commit()
    return {'message': 'Compte activé avec succès', 'token': token, 'user': user_to_dict(user)}
