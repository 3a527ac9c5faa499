from __future__ import annotations

from sqlalchemy import select
from sqlalchemy.orm import Session

from quotedesk.errors import NotFoundError
from quotedesk.models import LegacyCustomer


def customer_to_dict(customer: LegacyCustomer) -> dict:
    return {
        'id': customer.id,
        'name': customer.name,
        'city': customer.city,
        'street': customer.street,
        'contact': customer.contact,
    }


def list_customers(legacy_db: Session) -> list[dict]:
    rows = legacy_db.execute(select(LegacyCustomer).order_by(LegacyCustomer.name.asc())).scalars().all()
    return [customer_to_dict(row) for row in rows]


def get_customer(legacy_db: Session, customer_id: int) -> dict:
    customer = legacy_db.execute(
        select(LegacyCustomer).where(LegacyCustomer.id == customer_id)
    ).scalar_one_or_none()
    if customer is None:
        raise NotFoundError(f'Customer {customer_id} not found')
    return customer_to_dict(customer)
