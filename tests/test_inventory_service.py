from __future__ import annotations

import unittest

from pydantic import ValidationError as PydanticValidationError
from sqlalchemy import select

from stockpro.errors import NotFoundError
from stockpro.models import InventoryItem, MovementType, StockMovement
from stockpro.schemas import InventoryCreate
from stockpro.services import inventory_service

from support import TODAY, DatabaseTestCase, add_product, reload_product


def _count(items: list[dict]) -> InventoryCreate:
    return InventoryCreate(agent='Fatou', counted_at=TODAY, items=items)


class InventoryServiceTests(DatabaseTestCase, unittest.TestCase):
    def test_lines_record_snapshot_and_variance(self) -> None:
        exact = add_product(self.db, name='Exact', quantity=12)
        short = add_product(self.db, name='Short', quantity=12)
        over = add_product(self.db, name='Over', quantity=4)

        inventory = inventory_service.create_inventory(
            self.db,
            _count(
                [
                    {'product_id': exact.id, 'counted_qty': 12},
                    {'product_id': short.id, 'counted_qty': 9},
                    {'product_id': over.id, 'counted_qty': 10},
                ]
            ),
            created_by=self.user.id,
        )

        lines = {
            line.product_id: line
            for line in self.db.execute(select(InventoryItem).where(InventoryItem.inventory_id == inventory.id)).scalars()
        }
        self.assertEqual((lines[exact.id].theoretical_qty, lines[exact.id].variance), (12, 0))
        self.assertEqual((lines[short.id].theoretical_qty, lines[short.id].variance), (12, -3))
        self.assertEqual((lines[over.id].theoretical_qty, lines[over.id].variance), (4, 6))

        self.assertEqual(reload_product(self.db, exact.id).quantity, 12)
        self.assertEqual(reload_product(self.db, short.id).quantity, 9)
        self.assertEqual(reload_product(self.db, over.id).quantity, 10)

        movements = self.db.execute(select(StockMovement).order_by(StockMovement.product_id)).scalars().all()
        self.assertEqual([(m.product_id, m.quantity) for m in movements], [(short.id, 3), (over.id, 6)])
        self.assertTrue(all(m.type == MovementType.ADJUSTMENT for m in movements))
        self.assertTrue(all(m.inventory_id == inventory.id for m in movements))

    def test_unknown_product_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            inventory_service.create_inventory(
                self.db, _count([{'product_id': 999, 'counted_qty': 1}]), created_by=self.user.id
            )

    def test_same_product_twice_is_rejected(self) -> None:
        with self.assertRaises(PydanticValidationError):
            _count([{'product_id': 1, 'counted_qty': 1}, {'product_id': 1, 'counted_qty': 2}])

    def test_listing_returns_lines_with_product_names(self) -> None:
        product = add_product(self.db, name='Vaccin RRO', quantity=75)
        inventory_service.create_inventory(
            self.db, _count([{'product_id': product.id, 'counted_qty': 70}]), created_by=self.user.id
        )
        self.db.commit()

        rows = inventory_service.list_inventories(self.db)

        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]['agent'], 'Fatou')
        self.assertEqual(rows[0]['items'][0]['product']['name'], 'Vaccin RRO')
        self.assertEqual(rows[0]['items'][0]['variance'], -5)


if __name__ == '__main__':
    unittest.main()
