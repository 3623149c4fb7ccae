from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stockpro.config import settings
from stockpro.errors import NotFoundError
from stockpro.models import Maintenance, Vehicle
from stockpro.schemas import MaintenanceCreate


def create_maintenance(db: Session, payload: MaintenanceCreate) -> Maintenance:
    if not db.get(Vehicle, payload.vehicle_id):
        raise NotFoundError(
            f'Véhicule {payload.vehicle_id} introuvable', details={'vehicle_id': payload.vehicle_id}
        )
    maintenance = Maintenance(**payload.model_dump())
    db.add(maintenance)
    db.flush()
    return maintenance


def list_maintenances(
    db: Session,
    *,
    vehicle_id: int | None = None,
    page: int = 1,
    per_page: int | None = None,
) -> dict:
    per_page = per_page or settings.default_page_size
    page = max(page, 1)

    filters = []
    if vehicle_id is not None:
        filters.append(Maintenance.vehicle_id == vehicle_id)

    total = db.execute(select(func.count(Maintenance.id)).where(*filters)).scalar_one()
    rows = db.execute(
        select(Maintenance, Vehicle.designation, Vehicle.plate_number)
        .join(Vehicle, Vehicle.id == Maintenance.vehicle_id)
        .where(*filters)
        .order_by(Maintenance.maintenance_date.desc(), Maintenance.id.desc())
        .offset((page - 1) * per_page)
        .limit(per_page)
    ).all()

    return {
        'items': [
            {
                'id': maintenance.id,
                'vehicle_id': maintenance.vehicle_id,
                'vehicle': {'id': maintenance.vehicle_id, 'designation': designation, 'plate_number': plate_number},
                'type': maintenance.type,
                'maintenance_date': maintenance.maintenance_date,
                'mileage': maintenance.mileage,
                'cost': float(maintenance.cost),
                'agent': maintenance.agent,
                'next_maintenance_date': maintenance.next_maintenance_date,
                'next_maintenance_mileage': maintenance.next_maintenance_mileage,
                'observations': maintenance.observations,
            }
            for maintenance, designation, plate_number in rows
        ],
        'total': total,
        'per_page': per_page,
        'current_page': page,
        'last_page': max(1, -(-total // per_page)),
    }
