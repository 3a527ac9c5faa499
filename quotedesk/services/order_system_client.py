from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from decimal import Decimal
from functools import lru_cache
from http.client import HTTPException
from urllib.error import HTTPError, URLError
from urllib.request import Request, urlopen

from quotedesk.config import settings
from quotedesk.errors import ExternalServiceError


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OrderRequest:
    order_ref: str
    sales_associate_id: int | None
    customer_id: int
    final_amount: Decimal

    def as_payload(self) -> dict:
        return {
            'order': self.order_ref,
            'associate': str(self.sales_associate_id) if self.sales_associate_id is not None else '',
            'custid': str(self.customer_id),
            'amount': f'{self.final_amount:.2f}',
        }


@dataclass(frozen=True)
class OrderConfirmation:
    process_date: str
    commission_rate: str


def parse_confirmation(parsed) -> OrderConfirmation:
    if not isinstance(parsed, dict):
        raise ExternalServiceError('Order system returned a malformed response')
    errors = parsed.get('errors')
    if errors:
        if isinstance(errors, list):
            detail = ', '.join(str(error) for error in errors)
        else:
            detail = str(errors)
        raise ExternalServiceError(f'Order system rejected the order: {detail}')

    process_date = parsed.get('processDate', parsed.get('processDay'))
    commission_rate = parsed.get('commissionRate', parsed.get('commission'))
    if process_date is None or commission_rate is None:
        raise ExternalServiceError('Order system response is missing the process date or commission rate')
    return OrderConfirmation(process_date=str(process_date), commission_rate=str(commission_rate))


class OrderSystemClient:
    def __init__(self, base_url: str, *, timeout_seconds: int) -> None:
        self.base_url = base_url
        self.timeout_seconds = timeout_seconds

    def submit(self, order: OrderRequest) -> OrderConfirmation:
        req = Request(
            url=self.base_url,
            data=json.dumps(order.as_payload()).encode('utf-8'),
            headers={'Content-Type': 'application/json', 'Accept': 'application/json'},
            method='POST',
        )
        try:
            with urlopen(req, timeout=self.timeout_seconds) as response:
                raw = response.read()
        except HTTPError as exc:
            body = exc.read().decode('utf-8', errors='ignore') if exc.fp else ''
            logger.warning('Order system HTTP %s for %s: %s', exc.code, order.order_ref, body)
            raise ExternalServiceError(f'Order system error {exc.code}') from exc
        except URLError as exc:
            logger.warning('Order system unreachable for %s: %s', order.order_ref, exc.reason)
            raise ExternalServiceError(f'Order system network error: {exc.reason}') from exc
        except TimeoutError as exc:
            logger.warning('Order system timed out for %s', order.order_ref)
            raise ExternalServiceError('Order system timed out') from exc
        except (OSError, HTTPException) as exc:
            logger.warning('Order system connection failed for %s: %s', order.order_ref, exc)
            raise ExternalServiceError(f'Order system connection failed: {exc.__class__.__name__}') from exc

        try:
            parsed = json.loads(raw.decode('utf-8'))
        except ValueError as exc:
            raise ExternalServiceError('Order system returned a malformed response') from exc
        return parse_confirmation(parsed)


@lru_cache(maxsize=1)
def get_order_client() -> OrderSystemClient:
    return OrderSystemClient(settings.order_system_url, timeout_seconds=settings.order_system_timeout_seconds)
