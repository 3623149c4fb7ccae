from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from fastapi import Depends, HTTPException, Request, status

from stockpro.errors import UnauthorizedError
from stockpro.models import UserRole as Role


class Permission(str, Enum):
    FULL_MANAGEMENT = 'Gestion complète'
    REPORTS = 'Rapports'
    STOCK = 'Gestion stock'
    RECEIPTS = 'Réceptions'
    STOCK_OUTS = 'Sorties'
    INVENTORY = 'Inventaire'
    ALERTS = 'Alertes'
    ADMINISTRATION = 'Administration'


class Capability(str, Enum):
    APPROVE_OPERATIONS = 'approve_operations'
    BYPASS_APPROVAL = 'bypass_approval'
    MANAGE_USERS = 'manage_users'
    VIEW_ALL_NEEDS = 'view_all_needs'
    EDIT_ANY_PENDING = 'edit_any_pending'


ROLE_PERMISSIONS: dict[Role, tuple[Permission, ...]] = {
    Role.ADMIN: (
        Permission.FULL_MANAGEMENT,
        Permission.REPORTS,
        Permission.STOCK,
        Permission.RECEIPTS,
        Permission.STOCK_OUTS,
        Permission.INVENTORY,
        Permission.ALERTS,
        Permission.ADMINISTRATION,
    ),
    Role.MANAGER: (
        Permission.STOCK,
        Permission.RECEIPTS,
        Permission.STOCK_OUTS,
        Permission.INVENTORY,
        Permission.REPORTS,
    ),
    Role.USER: (
        Permission.STOCK,
        Permission.RECEIPTS,
        Permission.STOCK_OUTS,
        Permission.INVENTORY,
    ),
}

ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.ADMIN: frozenset(Capability),
    Role.MANAGER: frozenset(),
    Role.USER: frozenset(),
}


def default_permissions(role: Role) -> list[str]:
    return [permission.value for permission in ROLE_PERMISSIONS[role]]


def effective_permissions(role: Role, override: list[str] | None) -> list[str]:
    if override is None:
        return default_permissions(role)
    if is_admin_role(role):
        return list(override)
    # Full management is reserved to administrators whatever the stored override says.
    return [permission for permission in override if permission != Permission.FULL_MANAGEMENT.value]


@dataclass
class Principal:
    id: int
    name: str
    email: str
    role: Role
    active: bool
    permissions: list[str] = field(default_factory=list)


def has_capability(principal: Principal, capability: Capability) -> bool:
    return capability in ROLE_CAPABILITIES.get(principal.role, frozenset())


def is_admin_role(role: Role) -> bool:
    return role == Role.ADMIN


def assert_capability(principal: Principal, capability: Capability) -> None:
    if not has_capability(principal, capability):
        raise UnauthorizedError('Accès non autorisé', details={'required': capability.value})


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, 'principal', None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail='Utilisateur non authentifié')
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail='Compte inactif')
    return principal


def require_capability(*required: Capability):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        for capability in required:
            assert_capability(principal, capability)
        return principal

    return _dep


def require_permission(permission: Permission):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if is_admin_role(principal.role):
            return principal
        if permission.value not in principal.permissions:
            raise UnauthorizedError('Accès non autorisé', details={'required': permission.value})
        return principal

    return _dep
