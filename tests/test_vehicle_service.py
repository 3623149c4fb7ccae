from __future__ import annotations

import unittest
from datetime import timedelta

from sqlalchemy import select

from stockpro.errors import InvalidStateError, NotFoundError
from stockpro.models import VehicleAssignment, VehicleStatus
from stockpro.schemas import MaintenanceCreate, VehicleAssign, VehicleCreate, VehicleReform, VehicleUnassign
from stockpro.services import approval_service, maintenance_service, vehicle_service

from support import TODAY, DatabaseTestCase


def _vehicle(**overrides) -> VehicleCreate:
    data = {
        'type': 'moto',
        'designation': 'Yamaha AG 100',
        'chassis_number': 'YAM-77',
        'plate_number': 'TH-0099-B',
        'acquisition_date': TODAY,
        'acquirer': 'District sanitaire',
    }
    data.update(overrides)
    return VehicleCreate(**data)


def _reform() -> VehicleReform:
    return VehicleReform(reform_reason='Vétusté', reform_agent='Ibrahima', reform_destination='Vente')


class VehicleServiceTests(DatabaseTestCase, unittest.TestCase):
    def test_assign_then_unassign_cycle(self) -> None:
        vehicle = vehicle_service.create_vehicle(self.db, _vehicle())

        assignment = vehicle_service.assign_vehicle(
            self.db, VehicleAssign(vehicle_id=vehicle.id, region='Thiès', recipient='Poste de santé Keur Mor')
        )
        self.assertEqual(vehicle.status, VehicleStatus.ASSIGNED)
        self.assertIsNone(assignment.unassigned_at)

        with self.assertRaises(InvalidStateError):
            vehicle_service.assign_vehicle(self.db, VehicleAssign(vehicle_id=vehicle.id, region='Dakar', recipient='X'))

        vehicle_service.unassign_vehicle(
            self.db, vehicle_id=vehicle.id, payload=VehicleUnassign(agent='Ibrahima', reason='Fin de mission')
        )
        self.assertEqual(vehicle.status, VehicleStatus.PENDING)
        self.assertIsNotNone(assignment.unassigned_at)
        self.assertEqual(assignment.unassign_reason, 'Fin de mission')
        self.assertIsNone(vehicle_service.get_active_assignment(self.db, vehicle.id))

    def test_unassign_requires_an_assignment(self) -> None:
        vehicle = vehicle_service.create_vehicle(self.db, _vehicle())

        with self.assertRaises(InvalidStateError):
            vehicle_service.unassign_vehicle(
                self.db, vehicle_id=vehicle.id, payload=VehicleUnassign(agent='A', reason='B')
            )

    def test_reform_closes_active_assignment(self) -> None:
        vehicle = vehicle_service.create_vehicle(self.db, _vehicle())
        vehicle_service.assign_vehicle(self.db, VehicleAssign(vehicle_id=vehicle.id, region='Louga', recipient='CS'))

        vehicle_service.reform_vehicle(self.db, vehicle_id=vehicle.id, payload=_reform())

        self.assertEqual(vehicle.status, VehicleStatus.REFORMED)
        self.assertEqual(vehicle.reform_destination, 'Vente')
        self.assertIsNotNone(vehicle.reformed_at)
        self.assertIsNone(vehicle_service.get_active_assignment(self.db, vehicle.id))
        self.assertEqual(len(self.db.execute(select(VehicleAssignment)).scalars().all()), 1)

    def test_reformed_vehicle_is_final(self) -> None:
        vehicle = vehicle_service.create_vehicle(self.db, _vehicle())
        vehicle_service.reform_vehicle(self.db, vehicle_id=vehicle.id, payload=_reform())

        with self.assertRaises(InvalidStateError):
            vehicle_service.reform_vehicle(self.db, vehicle_id=vehicle.id, payload=_reform())
        with self.assertRaises(InvalidStateError):
            vehicle_service.assign_vehicle(self.db, VehicleAssign(vehicle_id=vehicle.id, region='Dakar', recipient='X'))

    def test_unknown_vehicle_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            vehicle_service.assign_vehicle(self.db, VehicleAssign(vehicle_id=55, region='Dakar', recipient='X'))

    def test_listing_shows_active_assignment_and_requests(self) -> None:
        vehicle = vehicle_service.create_vehicle(self.db, _vehicle())
        vehicle_service.assign_vehicle(
            self.db, VehicleAssign(vehicle_id=vehicle.id, region='Kaolack', recipient='Hôpital régional')
        )
        operation = approval_service.submit(
            self.db, op_type='vehicle', payload=_vehicle(plate_number='DK-2'), requester=self.user_principal
        )
        self.db.commit()

        rows = vehicle_service.list_vehicles(self.db)

        by_id = {row['id']: row for row in rows}
        self.assertEqual(by_id[vehicle.id]['assignment']['region'], 'Kaolack')
        self.assertEqual(by_id[vehicle.id]['status'], 'assigned')
        self.assertEqual(by_id[f'pending_{operation.id}']['plate_number'], 'DK-2')
        self.assertIsNone(by_id[f'pending_{operation.id}']['assignment'])


class MaintenanceServiceTests(DatabaseTestCase, unittest.TestCase):
    def _maintenance(self, vehicle_id: int, days_ago: int = 0) -> MaintenanceCreate:
        return MaintenanceCreate(
            vehicle_id=vehicle_id,
            type='Vidange',
            maintenance_date=TODAY - timedelta(days=days_ago),
            mileage=12000,
            cost='25000',
            agent='Garage central',
        )

    def test_unknown_vehicle_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            maintenance_service.create_maintenance(self.db, self._maintenance(404))

    def test_listing_paginates_and_filters(self) -> None:
        first = vehicle_service.create_vehicle(self.db, _vehicle())
        second = vehicle_service.create_vehicle(self.db, _vehicle(plate_number='DK-9'))
        for days_ago in range(3):
            maintenance_service.create_maintenance(self.db, self._maintenance(first.id, days_ago))
        maintenance_service.create_maintenance(self.db, self._maintenance(second.id))

        page = maintenance_service.list_maintenances(self.db, page=1, per_page=2)
        filtered = maintenance_service.list_maintenances(self.db, vehicle_id=first.id, page=2, per_page=2)

        self.assertEqual(page['total'], 4)
        self.assertEqual(page['last_page'], 2)
        self.assertEqual(len(page['items']), 2)
        self.assertEqual(filtered['total'], 3)
        self.assertEqual(len(filtered['items']), 1)
        self.assertEqual(filtered['items'][0]['maintenance_date'], TODAY - timedelta(days=2))
        self.assertEqual(filtered['items'][0]['cost'], 25000.0)


if __name__ == '__main__':
    unittest.main()
