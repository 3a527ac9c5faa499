from decimal import Decimal

from sqlalchemy import select

from quotedesk.db import SessionLocal
from quotedesk.models import Employee, LineItem, Quote, QuoteStatus
from quotedesk.security.passwords import hash_password


DEMO_EMPLOYEES = [
    ('Ada Admin', 'admin@example.com', 'adminpass', {'is_admin': True}),
    ('Sam Associate', 'sales@example.com', 'salespass', {'is_sales_associate': True}),
    ('Quinn Manager', 'quotes@example.com', 'quotespass', {'is_quote_manager': True}),
    ('Pat Purchasing', 'purchasing@example.com', 'purchasepass', {'is_purchase_manager': True}),
]


def seed() -> None:
    with SessionLocal() as db:
        by_email = {}
        for name, email, password, flags in DEMO_EMPLOYEES:
            employee = db.execute(select(Employee).where(Employee.email == email)).scalar_one_or_none()
            if not employee:
                employee = Employee(
                    name=name,
                    email=email,
                    password_hash=hash_password(password),
                    address='1 Demo Way',
                    active=True,
                    **flags,
                )
                db.add(employee)
                db.flush()
            by_email[email] = employee

        associate = by_email['sales@example.com']
        existing_quote = db.execute(
            select(Quote.id).where(Quote.sales_associate_id == associate.id).limit(1)
        ).first()
        if not existing_quote:
            quote = Quote(
                email='customer@example.com',
                customer_id=1,
                status=QuoteStatus.DRAFT,
                sales_associate_id=associate.id,
            )
            db.add(quote)
            db.flush()
            db.add_all(
                [
                    LineItem(quote_id=quote.id, description='Site survey', price=Decimal('40.00')),
                    LineItem(quote_id=quote.id, description='Installation', price=Decimal('60.00')),
                ]
            )

        db.commit()


if __name__ == '__main__':
    seed()
    print('Seed data inserted/verified.')
