from __future__ import annotations

from datetime import date

from sqlalchemy import select
from sqlalchemy.orm import Session

from stockpro.errors import InvalidStateError, NotFoundError
from stockpro.models import OperationType, Vehicle, VehicleAssignment, VehicleStatus
from stockpro.schemas import VehicleAssign, VehicleCreate, VehicleReform, VehicleUnassign
from stockpro.services.pending_queries import PENDING_ID_PREFIX, list_unresolved_requests


def _today() -> date:
    return date.today()


def create_vehicle(db: Session, payload: VehicleCreate) -> Vehicle:
    vehicle = Vehicle(**payload.model_dump(), status=VehicleStatus.PENDING)
    db.add(vehicle)
    db.flush()
    return vehicle


def _lock_vehicle(db: Session, vehicle_id: int) -> Vehicle:
    vehicle = db.execute(
        select(Vehicle).where(Vehicle.id == vehicle_id).with_for_update()
    ).scalar_one_or_none()
    if not vehicle:
        raise NotFoundError(f'Véhicule {vehicle_id} introuvable', details={'vehicle_id': vehicle_id})
    return vehicle


def get_active_assignment(db: Session, vehicle_id: int) -> VehicleAssignment | None:
    return db.execute(
        select(VehicleAssignment)
        .where(VehicleAssignment.vehicle_id == vehicle_id, VehicleAssignment.unassigned_at.is_(None))
        .order_by(VehicleAssignment.id.desc())
    ).scalars().first()


def _close_assignment(db: Session, vehicle_id: int, *, agent: str | None, reason: str | None) -> None:
    assignment = get_active_assignment(db, vehicle_id)
    if assignment:
        assignment.unassigned_at = _today()
        assignment.unassign_agent = agent
        assignment.unassign_reason = reason


def assign_vehicle(db: Session, payload: VehicleAssign) -> VehicleAssignment:
    vehicle = _lock_vehicle(db, payload.vehicle_id)
    if vehicle.status == VehicleStatus.ASSIGNED:
        raise InvalidStateError('Ce véhicule est déjà affecté')
    if vehicle.status == VehicleStatus.REFORMED:
        raise InvalidStateError('Ce véhicule est réformé')

    assignment = VehicleAssignment(
        vehicle_id=vehicle.id,
        region=payload.region,
        recipient=payload.recipient,
        structure=payload.structure,
        district=payload.district,
        assigned_at=_today(),
    )
    db.add(assignment)
    vehicle.status = VehicleStatus.ASSIGNED
    db.flush()
    return assignment


def unassign_vehicle(db: Session, *, vehicle_id: int, payload: VehicleUnassign) -> Vehicle:
    vehicle = _lock_vehicle(db, vehicle_id)
    if vehicle.status != VehicleStatus.ASSIGNED:
        raise InvalidStateError("Ce véhicule n'est pas affecté")

    _close_assignment(db, vehicle.id, agent=payload.agent, reason=payload.reason)
    vehicle.status = VehicleStatus.PENDING
    db.flush()
    return vehicle


def reform_vehicle(db: Session, *, vehicle_id: int, payload: VehicleReform) -> Vehicle:
    vehicle = _lock_vehicle(db, vehicle_id)
    if vehicle.status == VehicleStatus.REFORMED:
        raise InvalidStateError('Ce véhicule est déjà réformé')

    if vehicle.status == VehicleStatus.ASSIGNED:
        _close_assignment(db, vehicle.id, agent=payload.reform_agent, reason='Réforme')

    vehicle.status = VehicleStatus.REFORMED
    vehicle.reformed_at = _today()
    vehicle.reform_reason = payload.reform_reason
    vehicle.reform_agent = payload.reform_agent
    vehicle.reform_destination = payload.reform_destination
    vehicle.reform_notes = payload.reform_notes
    db.flush()
    return vehicle


def list_vehicles(db: Session) -> list[dict]:
    vehicles = db.execute(select(Vehicle).order_by(Vehicle.created_at.desc(), Vehicle.id.desc())).scalars().all()
    active_assignments = {
        assignment.vehicle_id: assignment
        for assignment in db.execute(
            select(VehicleAssignment).where(VehicleAssignment.unassigned_at.is_(None))
        ).scalars()
    }

    rows: list[dict] = []
    for vehicle in vehicles:
        assignment = active_assignments.get(vehicle.id)
        rows.append(
            {
                'id': vehicle.id,
                'type': vehicle.type.value,
                'designation': vehicle.designation,
                'chassis_number': vehicle.chassis_number,
                'plate_number': vehicle.plate_number,
                'acquisition_date': vehicle.acquisition_date,
                'acquirer': vehicle.acquirer,
                'reception_commission': vehicle.reception_commission,
                'observations': vehicle.observations,
                'status': vehicle.status.value,
                'reformed_at': vehicle.reformed_at,
                'reform_reason': vehicle.reform_reason,
                'reform_agent': vehicle.reform_agent,
                'reform_destination': vehicle.reform_destination,
                'reform_notes': vehicle.reform_notes,
                'assignment': (
                    {
                        'id': assignment.id,
                        'region': assignment.region,
                        'recipient': assignment.recipient,
                        'structure': assignment.structure,
                        'district': assignment.district,
                        'assigned_at': assignment.assigned_at,
                    }
                    if assignment
                    else None
                ),
                'pending_operation_id': None,
                'created_at': vehicle.created_at,
            }
        )

    for operation in list_unresolved_requests(db, OperationType.VEHICLE):
        data = operation.data
        rows.append(
            {
                'id': f'{PENDING_ID_PREFIX}{operation.id}',
                'type': data.get('type'),
                'designation': data.get('designation', ''),
                'chassis_number': data.get('chassis_number'),
                'plate_number': data.get('plate_number'),
                'acquisition_date': data.get('acquisition_date'),
                'acquirer': data.get('acquirer'),
                'reception_commission': data.get('reception_commission'),
                'observations': data.get('observations'),
                'status': operation.status.value,
                'rejection_reason': operation.rejection_reason,
                'assignment': None,
                'pending_operation_id': operation.id,
                'created_at': operation.created_at,
            }
        )

    rows.sort(key=lambda row: row['created_at'], reverse=True)
    return rows
