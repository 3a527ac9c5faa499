from __future__ import annotations

import unittest
from decimal import Decimal

from support import add_employee, make_session

from quotedesk.errors import DependencyError, NotFoundError, ValidationError
from quotedesk.models import Quote, QuoteStatus
from quotedesk.security.passwords import verify_password
from quotedesk.services.employee_service import (
    create_employee,
    delete_employee,
    employee_to_dict,
    update_employee,
)
from quotedesk.services.quote_repository import QuoteRepository


class EmployeeServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.repo = QuoteRepository(self.db)
        self.admin = add_employee(self.db, 'Ada Admin', is_admin=True)

    def tearDown(self) -> None:
        self.db.close()

    def test_create_hashes_password_and_hides_it(self) -> None:
        employee = create_employee(
            self.repo,
            actor_id=self.admin.id,
            data={
                'name': 'Sam Associate',
                'email': 'Sam@Example.com',
                'password': 'hunter22',
                'address': '2 Main St',
                'is_sales_associate': True,
            },
        )
        self.assertEqual(employee.email, 'sam@example.com')
        self.assertNotEqual(employee.password_hash, 'hunter22')
        self.assertTrue(verify_password('hunter22', employee.password_hash))
        payload = employee_to_dict(employee)
        self.assertNotIn('password', payload)
        self.assertNotIn('password_hash', payload)
        self.assertEqual(payload['accumulated_commission'], '0.00')

    def test_create_rejects_duplicate_email_and_missing_fields(self) -> None:
        with self.assertRaises(ValidationError):
            create_employee(
                self.repo,
                actor_id=self.admin.id,
                data={'name': 'Dup', 'email': self.admin.email, 'password': 'pw', 'address': 'x'},
            )
        with self.assertRaises(ValidationError):
            create_employee(self.repo, actor_id=self.admin.id, data={'name': 'No Email', 'password': 'pw', 'address': 'x'})

    def test_update_changes_only_given_fields(self) -> None:
        employee = add_employee(self.db, 'Quinn Manager', is_quote_manager=True)
        updated = update_employee(
            self.repo,
            actor_id=self.admin.id,
            employee_id=employee.id,
            patch={'accumulated_commission': '12.50', 'is_purchase_manager': True},
        )
        self.assertEqual(updated.accumulated_commission, Decimal('12.50'))
        self.assertTrue(updated.is_purchase_manager)
        self.assertTrue(updated.is_quote_manager)
        with self.assertRaises(ValidationError):
            update_employee(self.repo, actor_id=self.admin.id, employee_id=employee.id, patch={})

    def test_delete_refused_while_quotes_reference_employee(self) -> None:
        associate = add_employee(self.db, 'Sam Associate', is_sales_associate=True)
        self.repo.add_quote(email='c@example.com', customer_id=1, status=QuoteStatus.DRAFT, sales_associate_id=associate.id)

        with self.assertRaises(DependencyError):
            delete_employee(self.repo, actor_id=self.admin.id, employee_id=associate.id)
        self.assertIsNotNone(self.repo.find_employee(associate.id))

    def test_delete_unreferenced_employee(self) -> None:
        associate = add_employee(self.db, 'Sam Associate', is_sales_associate=True)
        delete_employee(self.repo, actor_id=self.admin.id, employee_id=associate.id)
        self.db.expire_all()
        self.assertIsNone(self.repo.find_employee(associate.id))
        with self.assertRaises(NotFoundError):
            delete_employee(self.repo, actor_id=self.admin.id, employee_id=associate.id)

    def test_cannot_delete_self(self) -> None:
        with self.assertRaises(ValidationError):
            delete_employee(self.repo, actor_id=self.admin.id, employee_id=self.admin.id)


if __name__ == '__main__':
    unittest.main()
