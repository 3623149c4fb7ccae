from __future__ import annotations

import unittest

from stockpro.errors import InvalidStateError, NotFoundError, UnauthorizedError
from stockpro.models import OperationStatus, UserRole
from stockpro.schemas import NeedCreate
from stockpro.services import need_service

from support import DatabaseTestCase, add_product, add_user, principal_for, reload_product


class NeedServiceTests(DatabaseTestCase, unittest.TestCase):
    def setUp(self) -> None:
        super().setUp()
        self.product = add_product(self.db, quantity=5)

    def _need(self, principal, quantity: int = 10):
        return need_service.create_need(
            self.db,
            NeedCreate(product_id=self.product.id, quantity=quantity, reason='Rupture prévue'),
            requester=principal,
        )

    def test_unknown_product_is_not_found(self) -> None:
        with self.assertRaises(NotFoundError):
            need_service.create_need(
                self.db, NeedCreate(product_id=999, quantity=1, reason='x'), requester=self.user_principal
            )

    def test_users_see_their_own_needs_and_admins_see_all(self) -> None:
        other = principal_for(add_user(self.db, role=UserRole.MANAGER))
        mine = self._need(self.user_principal)
        self._need(other)

        own_rows = need_service.list_needs(self.db, principal=self.user_principal)
        all_rows = need_service.list_needs(self.db, principal=self.admin_principal)

        self.assertEqual([row['id'] for row in own_rows], [mine.id])
        self.assertEqual(len(all_rows), 2)

    def test_approval_is_single_and_does_not_touch_stock(self) -> None:
        need = self._need(self.user_principal)

        approved = need_service.approve_need(self.db, need_id=need.id, approver=self.admin_principal)

        self.assertEqual(approved.status, OperationStatus.APPROVED)
        self.assertEqual(approved.approved_by, self.admin.id)
        self.assertEqual(reload_product(self.db, self.product.id).quantity, 5)
        with self.assertRaises(InvalidStateError):
            need_service.reject_need(self.db, need_id=need.id, approver=self.admin_principal)

    def test_rejection_defaults_reason(self) -> None:
        need = self._need(self.user_principal)

        rejected = need_service.reject_need(self.db, need_id=need.id, approver=self.admin_principal, reason='')

        self.assertEqual(rejected.status, OperationStatus.REJECTED)
        self.assertEqual(rejected.rejection_reason, "Demande rejetée par l'administrateur")

    def test_only_admins_decide(self) -> None:
        need = self._need(self.user_principal)

        with self.assertRaises(UnauthorizedError):
            need_service.approve_need(self.db, need_id=need.id, approver=self.user_principal)


if __name__ == '__main__':
    unittest.main()
