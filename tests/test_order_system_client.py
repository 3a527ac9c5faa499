from __future__ import annotations

import io
import json
import unittest
from decimal import Decimal
from http.client import IncompleteRead
from unittest.mock import MagicMock, patch
from urllib.error import HTTPError, URLError

from quotedesk.errors import ExternalServiceError
from quotedesk.services.order_system_client import OrderRequest, OrderSystemClient, parse_confirmation


ORDER = OrderRequest(order_ref='quote-7-abc', sales_associate_id=3, customer_id=17, final_amount=Decimal('90'))


def _response(body: bytes) -> MagicMock:
    opened = MagicMock()
    opened.__enter__.return_value.read.return_value = body
    return opened


class OrderSystemClientTests(unittest.TestCase):
    def setUp(self) -> None:
        self.client = OrderSystemClient('http://orders.test/PurchaseOrder/', timeout_seconds=5)

    def test_payload_shape(self) -> None:
        self.assertEqual(
            ORDER.as_payload(),
            {'order': 'quote-7-abc', 'associate': '3', 'custid': '17', 'amount': '90.00'},
        )

    def test_submit_posts_json_and_parses_confirmation(self) -> None:
        body = json.dumps({'processDay': '2026-10-19', 'commission': '6%'}).encode('utf-8')
        with patch('quotedesk.services.order_system_client.urlopen', return_value=_response(body)) as urlopen:
            confirmation = self.client.submit(ORDER)

        self.assertEqual(confirmation.process_date, '2026-10-19')
        self.assertEqual(confirmation.commission_rate, '6%')
        request = urlopen.call_args.args[0]
        self.assertEqual(request.get_method(), 'POST')
        self.assertEqual(json.loads(request.data)['custid'], '17')
        self.assertEqual(urlopen.call_args.kwargs['timeout'], 5)

    def test_error_payload_is_rejected(self) -> None:
        body = json.dumps({'errors': ['unknown customer']}).encode('utf-8')
        with patch('quotedesk.services.order_system_client.urlopen', return_value=_response(body)):
            with self.assertRaisesRegex(ExternalServiceError, 'unknown customer'):
                self.client.submit(ORDER)

    def test_malformed_json_is_rejected(self) -> None:
        with patch('quotedesk.services.order_system_client.urlopen', return_value=_response(b'<html>oops')):
            with self.assertRaises(ExternalServiceError):
                self.client.submit(ORDER)

    def test_undecodable_body_is_rejected(self) -> None:
        with patch('quotedesk.services.order_system_client.urlopen', return_value=_response(b'\xff\xfe{')):
            with self.assertRaisesRegex(ExternalServiceError, 'malformed'):
                self.client.submit(ORDER)

    def test_connection_dropped_while_reading_body(self) -> None:
        for failure in (IncompleteRead(b'{"proc'), ConnectionResetError('reset by peer')):
            with self.subTest(failure=type(failure).__name__):
                opened = MagicMock()
                opened.__enter__.return_value.read.side_effect = failure
                with patch('quotedesk.services.order_system_client.urlopen', return_value=opened):
                    with self.assertRaises(ExternalServiceError):
                        self.client.submit(ORDER)

    def test_http_error(self) -> None:
        error = HTTPError('http://orders.test/', 500, 'Server Error', {}, io.BytesIO(b'boom'))
        with patch('quotedesk.services.order_system_client.urlopen', side_effect=error):
            with self.assertRaisesRegex(ExternalServiceError, '500'):
                self.client.submit(ORDER)

    def test_network_error_and_timeout(self) -> None:
        for failure in (URLError('connection refused'), TimeoutError()):
            with self.subTest(failure=type(failure).__name__):
                with patch('quotedesk.services.order_system_client.urlopen', side_effect=failure):
                    with self.assertRaises(ExternalServiceError):
                        self.client.submit(ORDER)

    def test_parse_confirmation_requires_fields(self) -> None:
        with self.assertRaises(ExternalServiceError):
            parse_confirmation({'processDate': '2026-10-19'})
        with self.assertRaises(ExternalServiceError):
            parse_confirmation(['not', 'a', 'dict'])
        confirmation = parse_confirmation({'processDate': '2026-10-19', 'commissionRate': 4})
        self.assertEqual(confirmation.commission_rate, '4')


if __name__ == '__main__':
    unittest.main()
