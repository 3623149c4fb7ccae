from __future__ import annotations

from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from stockpro.auth import Permission, Principal, require_permission
from stockpro.db import get_db
from stockpro.dependencies import get_client_ip
from stockpro.schemas import InventoryCreate
from stockpro.services.audit_service import log_audit
from stockpro.services.inventory_service import create_inventory, list_inventories

router = APIRouter(prefix='/api/inventories', tags=['inventories'])
inventory_access = require_permission(Permission.INVENTORY)


@router.get('')
def inventories(_: Principal = Depends(inventory_access), db: Session = Depends(get_db)):
    return list_inventories(db)


@router.post('', status_code=status.HTTP_201_CREATED)
def inventory_create(
    payload: InventoryCreate,
    request: Request,
    principal: Principal = Depends(inventory_access),
    db: Session = Depends(get_db),
):
    inventory = create_inventory(db, payload, created_by=principal.id)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='INVENTORY_RECORDED',
        ip=get_client_ip(request),
        metadata={'inventory_id': inventory.id, 'lines': len(payload.items)},
    )
    db.commit()
    return {'id': inventory.id}
