from __future__ import annotations

import unittest

from sqlalchemy.orm import sessionmaker

from support import memory_engine

from quotedesk.errors import NotFoundError
from quotedesk.models import LegacyBase, LegacyCustomer
from quotedesk.services.customer_directory import get_customer, list_customers


class CustomerDirectoryTests(unittest.TestCase):
    def setUp(self) -> None:
        engine = memory_engine()
        LegacyBase.metadata.create_all(engine)
        self.db = sessionmaker(bind=engine)()
        self.db.add_all(
            [
                LegacyCustomer(id=2, name='Zenith Supply', city='DeKalb', street='1 Lincoln Hwy', contact='815-555-0100'),
                LegacyCustomer(id=1, name='Acme Corp', city='Sycamore', street='9 State St', contact='815-555-0199'),
            ]
        )
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def test_lists_customers_by_name(self) -> None:
        self.assertEqual([c['name'] for c in list_customers(self.db)], ['Acme Corp', 'Zenith Supply'])

    def test_get_customer(self) -> None:
        self.assertEqual(get_customer(self.db, 2)['city'], 'DeKalb')
        with self.assertRaises(NotFoundError):
            get_customer(self.db, 99)


if __name__ == '__main__':
    unittest.main()
