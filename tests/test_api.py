from __future__ import annotations

import unittest
from unittest.mock import patch

from fastapi.testclient import TestClient
from sqlalchemy import select

from stockpro.db import get_db
from stockpro.main import app
from stockpro.models import AuthEvent, Category, OperationStatus, PendingOperation, Product, UserInvitation, UserRole
from stockpro.security.passwords import hash_password

from support import TODAY, add_product, add_user, make_engine, make_session_factory

PASSWORD = 'secret123'


class ApiTestCase(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = make_engine()
        self.session_factory = make_session_factory(self.engine)

        def _get_db():
            db = self.session_factory()
            try:
                yield db
            except Exception:
                db.rollback()
                raise
            finally:
                db.close()

        app.dependency_overrides[get_db] = _get_db
        self.addCleanup(app.dependency_overrides.clear)
        session_patch = patch('stockpro.security.tokens.SessionLocal', self.session_factory)
        session_patch.start()
        self.addCleanup(session_patch.stop)
        self.addCleanup(self.engine.dispose)

        with self.session_factory() as db:
            add_user(db, role=UserRole.ADMIN, name='Admin', email='admin@stockpro.com', password_hash=hash_password(PASSWORD))
            add_user(db, role=UserRole.USER, name='Agent', email='agent@stockpro.com', password_hash=hash_password(PASSWORD))
            self.product_id = add_product(db, name='Paracétamol 500mg', quantity=20).id
            db.add(Category(name='Médicaments'))
            db.commit()

        self.client = TestClient(app)
        self.admin_headers = self._login('admin@stockpro.com')
        self.user_headers = self._login('agent@stockpro.com')

    def _login(self, email: str) -> dict:
        response = self.client.post('/api/auth/login', json={'email': email, 'password': PASSWORD})
        self.assertEqual(response.status_code, 200, response.text)
        return {'Authorization': f"Bearer {response.json()['token']}"}

    def _quantity(self) -> int:
        with self.session_factory() as db:
            return db.get(Product, self.product_id).quantity

    def _stock_out_body(self, quantity: int = 5) -> dict:
        return {
            'product_id': self.product_id,
            'quantity': quantity,
            'movement_date': TODAY.isoformat(),
            'beneficiary': 'Centre de santé',
        }


class PublicEndpointTests(ApiTestCase):
    def test_health_and_categories_need_no_token(self) -> None:
        self.assertEqual(self.client.get('/api/health').json(), {'status': 'ok'})
        response = self.client.get('/api/categories')
        self.assertEqual(response.status_code, 200)
        self.assertEqual([row['name'] for row in response.json()], ['Médicaments'])

    def test_protected_endpoint_requires_token(self) -> None:
        self.assertEqual(self.client.get('/api/products').status_code, 401)
        response = self.client.get('/api/products', headers={'Authorization': 'Bearer bogus'})
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()['error'], 'UNAUTHENTICATED')

    def test_security_headers_are_set(self) -> None:
        response = self.client.get('/api/health')
        self.assertEqual(response.headers['x-content-type-options'], 'nosniff')


class AuthEndpointTests(ApiTestCase):
    def test_bad_password_is_401_and_recorded(self) -> None:
        response = self.client.post('/api/auth/login', json={'email': 'agent@stockpro.com', 'password': 'nope-nope'})

        self.assertEqual(response.status_code, 401)
        with self.session_factory() as db:
            reasons = db.execute(select(AuthEvent.failure_reason).where(AuthEvent.success.is_(False))).scalars().all()
        self.assertEqual(reasons, ['BAD_PASSWORD'])

    def test_current_user_exposes_role_permissions(self) -> None:
        response = self.client.get('/api/auth/user', headers=self.user_headers)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['role'], 'Utilisateur')
        self.assertIn('Sorties', response.json()['permissions'])

    def test_logout_revokes_token(self) -> None:
        self.assertEqual(self.client.post('/api/auth/logout', headers=self.user_headers).status_code, 200)
        self.assertEqual(self.client.get('/api/auth/user', headers=self.user_headers).status_code, 401)


class ApprovalEndpointTests(ApiTestCase):
    def test_user_stock_out_is_queued_then_approved(self) -> None:
        response = self.client.post('/api/stockouts', json=self._stock_out_body(), headers=self.user_headers)
        self.assertEqual(response.status_code, 202, response.text)
        operation_id = response.json()['pending_operation_id']
        self.assertEqual(response.json()['status'], 'pending')
        self.assertEqual(self._quantity(), 20)

        response = self.client.post(f'/api/approvals/{operation_id}/approve', headers=self.admin_headers)
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()['status'], 'approved')
        self.assertEqual(self._quantity(), 15)

        response = self.client.post(f'/api/approvals/{operation_id}/approve', headers=self.admin_headers)
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'INVALID_STATE')
        self.assertEqual(self._quantity(), 15)

    def test_rejection_keeps_stock(self) -> None:
        response = self.client.post('/api/stockouts', json=self._stock_out_body(), headers=self.user_headers)
        operation_id = response.json()['pending_operation_id']

        response = self.client.post(f'/api/approvals/{operation_id}/reject', headers=self.admin_headers)

        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(response.json()['status'], 'rejected')
        self.assertEqual(response.json()['rejection_reason'], "Demande rejetée par l'administrateur")
        self.assertEqual(self._quantity(), 20)

    def test_non_admin_cannot_approve(self) -> None:
        response = self.client.post('/api/stockouts', json=self._stock_out_body(), headers=self.user_headers)
        operation_id = response.json()['pending_operation_id']

        response = self.client.post(f'/api/approvals/{operation_id}/approve', headers=self.user_headers)

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()['error'], 'UNAUTHORIZED')
        with self.session_factory() as db:
            self.assertEqual(db.get(PendingOperation, operation_id).status, OperationStatus.PENDING)

    def test_admin_creates_directly(self) -> None:
        response = self.client.post('/api/stockouts', json=self._stock_out_body(3), headers=self.admin_headers)

        self.assertEqual(response.status_code, 201, response.text)
        self.assertIn('id', response.json())
        self.assertEqual(self._quantity(), 17)

    def test_generic_submission_uses_tagged_payload(self) -> None:
        response = self.client.post(
            '/api/approvals',
            json={'type': 'stockout', 'data': self._stock_out_body()},
            headers=self.user_headers,
        )
        self.assertEqual(response.status_code, 202, response.text)
        self.assertEqual(response.json()['status'], 'pending')

        response = self.client.post(
            '/api/approvals',
            json={'type': 'transfer', 'data': {}},
            headers=self.user_headers,
        )
        self.assertEqual(response.status_code, 422)

    def test_unknown_operation_is_404(self) -> None:
        response = self.client.post('/api/approvals/9999/approve', headers=self.admin_headers)

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'NOT_FOUND')

    def test_pending_list_is_admin_only(self) -> None:
        self.client.post('/api/stockouts', json=self._stock_out_body(), headers=self.user_headers)

        self.assertEqual(self.client.get('/api/approvals', headers=self.user_headers).status_code, 403)
        response = self.client.get('/api/approvals', headers=self.admin_headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 1)

    def test_requester_withdraws_pending_receipt(self) -> None:
        body = {
            'agent': 'Moussa',
            'received_at': TODAY.isoformat(),
            'items': [{'product_id': self.product_id, 'quantity': 4}],
        }
        response = self.client.post('/api/receipts', json=body, headers=self.user_headers)
        operation_id = response.json()['pending_operation_id']

        listed = self.client.get('/api/receipts', headers=self.user_headers).json()
        self.assertEqual(listed[0]['id'], f'pending_{operation_id}')

        response = self.client.delete(f'/api/receipts/pending_{operation_id}', headers=self.user_headers)
        self.assertEqual(response.status_code, 200, response.text)
        self.assertEqual(self.client.get('/api/receipts', headers=self.user_headers).json(), [])


class ResourceEndpointTests(ApiTestCase):
    def test_invalid_payload_is_422(self) -> None:
        response = self.client.post(
            '/api/stockouts', json=self._stock_out_body(quantity=0), headers=self.admin_headers
        )

        self.assertEqual(response.status_code, 422)
        self.assertEqual(self._quantity(), 20)

    def test_inventory_sets_counted_quantity(self) -> None:
        response = self.client.post(
            '/api/inventories',
            json={
                'agent': 'Fatou',
                'counted_at': TODAY.isoformat(),
                'items': [{'product_id': self.product_id, 'counted_qty': 18}],
            },
            headers=self.user_headers,
        )

        self.assertEqual(response.status_code, 201, response.text)
        self.assertEqual(self._quantity(), 18)

    def test_user_admin_is_restricted(self) -> None:
        self.assertEqual(self.client.get('/api/users', headers=self.user_headers).status_code, 403)
        response = self.client.get('/api/users', headers=self.admin_headers)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(len(response.json()), 2)

    def test_product_update_rejects_null_name(self) -> None:
        response = self.client.put(
            f'/api/products/{self.product_id}', json={'name': None}, headers=self.admin_headers
        )

        self.assertEqual(response.status_code, 422)
        with self.session_factory() as db:
            self.assertEqual(db.get(Product, self.product_id).name, 'Paracétamol 500mg')

    def test_invitation_is_stored_before_mail_goes_out(self) -> None:
        def fake_send(db, *, actor_user_id, invitation, ip):
            self.assertFalse(db.in_transaction())
            return True

        with patch('stockpro.routers.users.send_invitation_email', side_effect=fake_send) as send:
            response = self.client.post(
                '/api/users/invite',
                json={'name': 'Nouvel agent', 'email': 'nouveau@stockpro.com', 'role': 'Utilisateur'},
                headers=self.admin_headers,
            )

        self.assertEqual(response.status_code, 201, response.text)
        self.assertTrue(response.json()['email_sent'])
        send.assert_called_once()
        with self.session_factory() as db:
            invitation = db.execute(select(UserInvitation)).scalar_one()
        self.assertEqual(invitation.email, 'nouveau@stockpro.com')

    def test_created_user_can_log_in(self) -> None:
        response = self.client.post(
            '/api/users',
            json={'name': 'Awa', 'email': 'awa@stockpro.com', 'password': PASSWORD, 'role': 'Gestionnaire'},
            headers=self.admin_headers,
        )

        self.assertEqual(response.status_code, 201, response.text)
        self._login('awa@stockpro.com')

    def test_product_alerts_and_stats(self) -> None:
        with self.session_factory() as db:
            add_product(db, name='Tensiomètre', quantity=2, critical_level=5)
            db.commit()

        alerts = self.client.get('/api/products/alerts', headers=self.user_headers).json()
        stats = self.client.get('/api/stats', headers=self.admin_headers).json()

        self.assertEqual([row['name'] for row in alerts], ['Tensiomètre'])
        self.assertEqual(stats['products'], 2)
        self.assertEqual(stats['critical_products'], 1)
        self.assertEqual(stats['total_quantity'], 22)

    def test_need_lifecycle(self) -> None:
        response = self.client.post(
            '/api/needs',
            json={'product_id': self.product_id, 'quantity': 50, 'reason': 'Campagne de vaccination'},
            headers=self.user_headers,
        )
        self.assertEqual(response.status_code, 201, response.text)
        need_id = response.json()['id']

        self.assertEqual(self.client.post(f'/api/needs/{need_id}/approve', headers=self.user_headers).status_code, 403)
        response = self.client.post(
            f'/api/needs/{need_id}/reject', json={'reason': 'Budget épuisé'}, headers=self.admin_headers
        )
        self.assertEqual(response.json()['rejection_reason'], 'Budget épuisé')
        self.assertEqual(self.client.post(f'/api/needs/{need_id}/approve', headers=self.admin_headers).status_code, 400)


if __name__ == '__main__':
    unittest.main()
