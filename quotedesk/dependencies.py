from fastapi import Depends, Request
from sqlalchemy.orm import Session

from quotedesk.db import get_db
from quotedesk.services.notification_service import Notifier, get_notifier
from quotedesk.services.order_system_client import OrderSystemClient, get_order_client
from quotedesk.services.quote_repository import QuoteRepository


def get_client_ip(request: Request) -> str | None:
    forwarded_for = request.headers.get('x-forwarded-for')
    if forwarded_for:
        return forwarded_for.split(',')[0].strip()
    if request.client:
        return request.client.host
    return None


def get_repository(db: Session = Depends(get_db)) -> QuoteRepository:
    return QuoteRepository(db)


def get_notifier_dependency() -> Notifier:
    return get_notifier()


def get_order_client_dependency() -> OrderSystemClient:
    return get_order_client()
