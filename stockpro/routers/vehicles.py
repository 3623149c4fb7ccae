from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from stockpro.auth import Principal, get_current_principal
from stockpro.db import get_db
from stockpro.dependencies import get_client_ip
from stockpro.models import OperationType
from stockpro.routers.common import creation_response
from stockpro.schemas import MaintenanceCreate, VehicleAssign, VehicleCreate, VehicleReform, VehicleUnassign
from stockpro.services import approval_service
from stockpro.services.audit_service import log_audit
from stockpro.services.maintenance_service import create_maintenance, list_maintenances
from stockpro.services.vehicle_service import assign_vehicle, list_vehicles, reform_vehicle, unassign_vehicle

router = APIRouter(prefix='/api', tags=['fleet'])


@router.get('/vehicles')
def vehicles(_: Principal = Depends(get_current_principal), db: Session = Depends(get_db)):
    return list_vehicles(db)


@router.post('/vehicles')
def vehicle_create(
    payload: VehicleCreate,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    entity_id, operation = approval_service.execute_or_submit(
        db,
        op_type=OperationType.VEHICLE.value,
        payload=payload,
        actor=principal,
        ip=get_client_ip(request),
    )
    db.commit()
    return creation_response(entity_id, operation)


@router.post('/vehicles/assign', status_code=status.HTTP_201_CREATED)
def vehicle_assign(
    payload: VehicleAssign,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    assignment = assign_vehicle(db, payload)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='VEHICLE_ASSIGNED',
        ip=get_client_ip(request),
        metadata={'vehicle_id': payload.vehicle_id, 'region': payload.region},
    )
    db.commit()
    return {'id': assignment.id}


@router.post('/vehicles/{vehicle_id}/unassign')
def vehicle_unassign(
    vehicle_id: int,
    payload: VehicleUnassign,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    vehicle = unassign_vehicle(db, vehicle_id=vehicle_id, payload=payload)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='VEHICLE_UNASSIGNED',
        ip=get_client_ip(request),
        metadata={'vehicle_id': vehicle_id},
    )
    db.commit()
    return {'id': vehicle.id, 'status': vehicle.status.value}


@router.post('/vehicles/{vehicle_id}/reform')
def vehicle_reform(
    vehicle_id: int,
    payload: VehicleReform,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    vehicle = reform_vehicle(db, vehicle_id=vehicle_id, payload=payload)
    log_audit(
        db,
        actor_user_id=principal.id,
        action='VEHICLE_REFORMED',
        ip=get_client_ip(request),
        metadata={'vehicle_id': vehicle_id, 'reason': payload.reform_reason},
    )
    db.commit()
    return {'id': vehicle.id, 'status': vehicle.status.value}


@router.get('/maintenances')
def maintenances(
    vehicle_id: int | None = Query(default=None, ge=1),
    page: int = Query(default=1, ge=1),
    per_page: int | None = Query(default=None, ge=1, le=500),
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    return list_maintenances(db, vehicle_id=vehicle_id, page=page, per_page=per_page)


@router.post('/maintenances', status_code=status.HTTP_201_CREATED)
def maintenance_create(
    payload: MaintenanceCreate,
    _: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    maintenance = create_maintenance(db, payload)
    db.commit()
    return {'id': maintenance.id}
