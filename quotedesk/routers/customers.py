from __future__ import annotations

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from quotedesk.auth import Principal, get_current_principal
from quotedesk.db import get_legacy_db
from quotedesk.services.customer_directory import get_customer, list_customers

router = APIRouter(prefix='/customers', tags=['customers'])


@router.get('')
def customers_index(
    _: Principal = Depends(get_current_principal),
    legacy_db: Session = Depends(get_legacy_db),
):
    return list_customers(legacy_db)


@router.get('/{customer_id}')
def customers_show(
    customer_id: int,
    _: Principal = Depends(get_current_principal),
    legacy_db: Session = Depends(get_legacy_db),
):
    return get_customer(legacy_db, customer_id)
