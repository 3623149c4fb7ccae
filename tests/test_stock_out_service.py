from __future__ import annotations

import unittest

from stockpro.errors import InvalidStateError, NotFoundError
from stockpro.models import ExitType, MovementStatus
from stockpro.schemas import StockOutCreate
from stockpro.services import approval_service, stock_out_service

from support import TODAY, DatabaseTestCase, add_product, reload_product


def _stock_out(product_id: int, quantity: int, **extra) -> StockOutCreate:
    return StockOutCreate(product_id=product_id, quantity=quantity, movement_date=TODAY, **extra)


class StockOutServiceTests(DatabaseTestCase, unittest.TestCase):
    def test_definitive_exit_is_completed(self) -> None:
        product = add_product(self.db, quantity=20)

        movement = stock_out_service.create_stock_out(
            self.db, _stock_out(product.id, 5, exit_type='Définitive', beneficiary='CS Médina')
        )

        self.assertEqual(movement.status, MovementStatus.COMPLETED)
        self.assertEqual(reload_product(self.db, product.id).quantity, 15)

    def test_provisional_exit_stays_open(self) -> None:
        product = add_product(self.db, quantity=20)

        movement = stock_out_service.create_stock_out(self.db, _stock_out(product.id, 5, exit_type='Provisoire'))

        self.assertIsNone(movement.status)
        self.assertEqual(movement.exit_type, ExitType.PROVISIONAL)

    def test_explicit_status_wins(self) -> None:
        product = add_product(self.db, quantity=20)

        movement = stock_out_service.create_stock_out(
            self.db, _stock_out(product.id, 5, exit_type='Provisoire', status='Complétée')
        )

        self.assertEqual(movement.status, MovementStatus.COMPLETED)

    def test_overdraft_is_allowed(self) -> None:
        product = add_product(self.db, quantity=2)

        stock_out_service.create_stock_out(self.db, _stock_out(product.id, 5))

        self.assertEqual(reload_product(self.db, product.id).quantity, -3)

    def test_unknown_product_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            stock_out_service.create_stock_out(self.db, _stock_out(404, 1))

    def test_validate_turns_provisional_into_definitive(self) -> None:
        product = add_product(self.db, quantity=20)
        movement = stock_out_service.create_stock_out(self.db, _stock_out(product.id, 5, exit_type='Provisoire'))

        validated = stock_out_service.validate_provisional(self.db, movement_id=movement.id)

        self.assertEqual(validated.exit_type, ExitType.DEFINITIVE)
        self.assertEqual(validated.status, MovementStatus.COMPLETED)
        self.assertEqual(reload_product(self.db, product.id).quantity, 15)

    def test_return_credits_stock_once(self) -> None:
        product = add_product(self.db, quantity=20)
        movement = stock_out_service.create_stock_out(self.db, _stock_out(product.id, 5, exit_type='Provisoire'))

        returned = stock_out_service.return_provisional(self.db, movement_id=movement.id)

        self.assertEqual(returned.status, MovementStatus.RETURNED)
        self.assertEqual(reload_product(self.db, product.id).quantity, 20)
        with self.assertRaises(InvalidStateError):
            stock_out_service.return_provisional(self.db, movement_id=movement.id)
        with self.assertRaises(InvalidStateError):
            stock_out_service.validate_provisional(self.db, movement_id=movement.id)
        self.assertEqual(reload_product(self.db, product.id).quantity, 20)

    def test_non_provisional_exits_cannot_be_returned_or_validated(self) -> None:
        product = add_product(self.db, quantity=20)
        movement = stock_out_service.create_stock_out(self.db, _stock_out(product.id, 5, exit_type='Affectation'))

        with self.assertRaises(InvalidStateError):
            stock_out_service.return_provisional(self.db, movement_id=movement.id)
        with self.assertRaises(InvalidStateError):
            stock_out_service.validate_provisional(self.db, movement_id=movement.id)

    def test_unknown_movement_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            stock_out_service.return_provisional(self.db, movement_id=31337)

    def test_listing_includes_product_names_and_requests(self) -> None:
        product = add_product(self.db, name='Ibuprofène 200mg', quantity=20)
        stock_out_service.create_stock_out(self.db, _stock_out(product.id, 5))
        operation = approval_service.submit(
            self.db, op_type='stockout', payload=_stock_out(product.id, 2), requester=self.user_principal
        )
        approval_service.reject(self.db, operation_id=operation.id, approver=self.admin_principal, reason='Non')
        self.db.commit()

        rows = stock_out_service.list_stock_outs(self.db)

        self.assertEqual(len(rows), 2)
        committed = next(row for row in rows if row['pending_operation_id'] is None)
        rejected = next(row for row in rows if row['pending_operation_id'] == operation.id)
        self.assertEqual(committed['product'], {'name': 'Ibuprofène 200mg'})
        self.assertEqual(rejected['status'], 'rejected')
        self.assertEqual(rejected['rejection_reason'], 'Non')


if __name__ == '__main__':
    unittest.main()
