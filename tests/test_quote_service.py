from __future__ import annotations

import unittest
from decimal import Decimal

from sqlalchemy import select

from support import RecordingNotifier, add_employee, as_principal, make_session

from quotedesk.errors import AuthorizationError, IllegalTransitionError, NotFoundError, ValidationError
from quotedesk.models import AuditLog, QuoteStatus
from quotedesk.services.quote_repository import QuoteRepository
from quotedesk.services.quote_service import (
    add_line_item,
    add_note,
    create_quote,
    delete_line_item,
    delete_note,
    edit_line_item,
    edit_note,
    get_quote_view,
    list_quote_views,
    quote_to_dict,
    update_quote,
)


class QuoteServiceTests(unittest.TestCase):
    def setUp(self) -> None:
        self.db = make_session()
        self.repo = QuoteRepository(self.db)
        self.associate = as_principal(add_employee(self.db, 'Sam Associate', is_sales_associate=True))
        self.other_associate = as_principal(add_employee(self.db, 'Olive Associate', is_sales_associate=True))
        self.manager = as_principal(add_employee(self.db, 'Quinn Manager', is_quote_manager=True))
        self.admin = as_principal(add_employee(self.db, 'Ada Admin', is_admin=True))
        self.notifier = RecordingNotifier()

    def tearDown(self) -> None:
        self.db.close()

    def _draft(self, **kwargs):
        return create_quote(
            self.repo,
            principal=self.associate,
            email='customer@example.com',
            customer_id=42,
            **kwargs,
        )

    def _audit_actions(self) -> list[str]:
        self.db.flush()
        return list(self.db.execute(select(AuditLog.action).order_by(AuditLog.id)).scalars())

    def test_create_assigns_calling_associate(self) -> None:
        aggregate = self._draft()
        self.assertEqual(aggregate.quote.sales_associate_id, self.associate.id)
        self.assertEqual(aggregate.quote.status, QuoteStatus.DRAFT)
        self.assertEqual(aggregate.line_items, [])
        self.assertIn('QUOTE_CREATED', self._audit_actions())

    def test_admin_create_without_associate_leaves_it_empty(self) -> None:
        aggregate = create_quote(self.repo, principal=self.admin, email='c@example.com', customer_id=1)
        self.assertIsNone(aggregate.quote.sales_associate_id)

    def test_explicit_zero_associate_is_not_treated_as_missing(self) -> None:
        with self.assertRaises(NotFoundError):
            create_quote(self.repo, principal=self.admin, email='c@example.com', customer_id=1, sales_associate_id=0)
        with self.assertRaises(AuthorizationError):
            self._draft(sales_associate_id=0)

    def test_associate_cannot_assign_quote_to_someone_else(self) -> None:
        with self.assertRaises(AuthorizationError):
            self._draft(sales_associate_id=self.other_associate.id)

    def test_quote_manager_cannot_create(self) -> None:
        with self.assertRaises(AuthorizationError):
            create_quote(self.repo, principal=self.manager, email='c@example.com', customer_id=1)

    def test_create_rejects_unknown_associate_and_bad_input(self) -> None:
        with self.assertRaises(NotFoundError):
            create_quote(self.repo, principal=self.admin, email='c@example.com', customer_id=1, sales_associate_id=9999)
        with self.assertRaises(ValidationError):
            self._draft(initial_discount={'value': '5', 'type': 'coupon'})
        with self.assertRaises(ValidationError):
            create_quote(self.repo, principal=self.associate, email='not-an-email', customer_id=1)

    def test_sanction_sends_exactly_one_notification_with_final_total(self) -> None:
        quote_id = self._draft(initial_discount={'value': '10', 'type': 'percentage'}).quote.id
        add_line_item(self.repo, principal=self.associate, quote_id=quote_id, description='Survey', price='40.00')
        add_line_item(self.repo, principal=self.associate, quote_id=quote_id, description='Install', price='60.00')
        add_note(self.repo, principal=self.associate, quote_id=quote_id, content='Customer is price sensitive')

        update_quote(
            self.repo,
            principal=self.associate,
            quote_id=quote_id,
            patch={'status': 'FinalizedUnresolvedQuote'},
            notifier=self.notifier,
        )
        self.assertEqual(self.notifier.sent, [])

        aggregate = update_quote(
            self.repo,
            principal=self.manager,
            quote_id=quote_id,
            patch={'status': 'SanctionedQuote'},
            notifier=self.notifier,
        )
        self.assertEqual(aggregate.quote.status, QuoteStatus.SANCTIONED)
        self.assertEqual(quote_to_dict(aggregate)['totals']['total'], '90.00')

        self.assertEqual(len(self.notifier.sent), 1)
        message = self.notifier.sent[0]
        self.assertEqual(message.to, 'customer@example.com')
        self.assertIn(str(quote_id), message.subject)
        self.assertIn('$90.00', message.text_body)
        self.assertIn('Survey', message.html_body)
        self.assertNotIn('price sensitive', message.text_body)
        self.assertNotIn('price sensitive', message.html_body)
        self.assertIn('QUOTE_SANCTION_NOTIFICATION_SENT', self._audit_actions())

    def test_resetting_sanctioned_status_does_not_notify_again(self) -> None:
        quote_id = self._draft().quote.id
        update_quote(self.repo, principal=self.associate, quote_id=quote_id, patch={'status': 'FinalizedUnresolvedQuote'}, notifier=self.notifier)
        update_quote(self.repo, principal=self.manager, quote_id=quote_id, patch={'status': 'SanctionedQuote'}, notifier=self.notifier)
        update_quote(self.repo, principal=self.manager, quote_id=quote_id, patch={'status': 'SanctionedQuote'}, notifier=self.notifier)
        self.assertEqual(len(self.notifier.sent), 1)

    def test_sanctioning_a_draft_is_rejected_and_leaves_it_untouched(self) -> None:
        quote_id = self._draft().quote.id
        with self.assertRaises(IllegalTransitionError):
            update_quote(self.repo, principal=self.admin, quote_id=quote_id, patch={'status': 'SanctionedQuote'}, notifier=self.notifier)
        self.assertEqual(self.repo.require_quote(quote_id).status, QuoteStatus.DRAFT)
        self.assertEqual(self.notifier.sent, [])

    def test_notification_failure_does_not_undo_sanction(self) -> None:
        failing = RecordingNotifier(fail=True)
        quote_id = self._draft().quote.id
        update_quote(self.repo, principal=self.associate, quote_id=quote_id, patch={'status': 'FinalizedUnresolvedQuote'}, notifier=failing)
        with self.assertLogs('quotedesk.services.notification_service', level='ERROR'):
            aggregate = update_quote(
                self.repo,
                principal=self.manager,
                quote_id=quote_id,
                patch={'status': 'SanctionedQuote'},
                notifier=failing,
            )
        self.assertEqual(aggregate.quote.status, QuoteStatus.SANCTIONED)
        self.assertIn('QUOTE_SANCTION_NOTIFICATION_FAILED', self._audit_actions())

    def test_associate_cannot_touch_another_associates_quote(self) -> None:
        quote_id = self._draft().quote.id
        with self.assertRaises(AuthorizationError):
            update_quote(self.repo, principal=self.other_associate, quote_id=quote_id, patch={'email': 'x@example.com'}, notifier=self.notifier)
        with self.assertRaises(AuthorizationError):
            get_quote_view(self.repo, principal=self.other_associate, quote_id=quote_id)
        with self.assertRaises(AuthorizationError):
            add_note(self.repo, principal=self.other_associate, quote_id=quote_id, content='peek')

    def test_associate_listing_only_shows_own_quotes(self) -> None:
        self._draft()
        create_quote(self.repo, principal=self.other_associate, email='o@example.com', customer_id=2)
        own = list_quote_views(self.repo, principal=self.associate)
        self.assertEqual([a.quote.sales_associate_id for a in own], [self.associate.id])
        self.assertEqual(len(list_quote_views(self.repo, principal=self.manager)), 2)
        self.assertEqual(len(list_quote_views(self.repo, principal=self.manager, status='SanctionedQuote')), 0)

    def test_associate_loses_edit_rights_after_finalizing(self) -> None:
        quote_id = self._draft().quote.id
        update_quote(self.repo, principal=self.associate, quote_id=quote_id, patch={'status': 'FinalizedUnresolvedQuote'}, notifier=self.notifier)
        with self.assertRaises(AuthorizationError):
            add_line_item(self.repo, principal=self.associate, quote_id=quote_id, description='Extra', price='5')
        items = add_line_item(self.repo, principal=self.manager, quote_id=quote_id, description='Extra', price='5')
        self.assertEqual(len(items), 1)

    def test_update_rejects_unknown_and_empty_patches(self) -> None:
        quote_id = self._draft().quote.id
        with self.assertRaises(ValidationError):
            update_quote(self.repo, principal=self.admin, quote_id=quote_id, patch={'colour': 'red'}, notifier=self.notifier)
        with self.assertRaises(ValidationError):
            update_quote(self.repo, principal=self.admin, quote_id=quote_id, patch={}, notifier=self.notifier)
        with self.assertRaises(NotFoundError):
            update_quote(self.repo, principal=self.admin, quote_id=9999, patch={'email': 'a@b.c'}, notifier=self.notifier)

    def test_final_discount_needs_manager(self) -> None:
        quote_id = self._draft().quote.id
        with self.assertRaises(AuthorizationError):
            update_quote(
                self.repo,
                principal=self.associate,
                quote_id=quote_id,
                patch={'final_discount': {'value': '5', 'type': 'amount'}},
                notifier=self.notifier,
            )

    def test_discount_can_be_cleared(self) -> None:
        quote_id = self._draft(initial_discount={'value': '10', 'type': 'percentage'}).quote.id
        aggregate = update_quote(
            self.repo,
            principal=self.associate,
            quote_id=quote_id,
            patch={'initial_discount': None},
            notifier=self.notifier,
        )
        self.assertIsNone(aggregate.quote.initial_discount_value)
        self.assertIsNone(aggregate.quote.initial_discount_type)

    def test_line_item_validation_and_lifecycle(self) -> None:
        quote_id = self._draft().quote.id
        with self.assertRaises(ValidationError):
            add_line_item(self.repo, principal=self.associate, quote_id=quote_id, description='', price='10')
        with self.assertRaises(ValidationError):
            add_line_item(self.repo, principal=self.associate, quote_id=quote_id, description='Thing', price='-1')
        with self.assertRaises(ValidationError):
            add_line_item(self.repo, principal=self.associate, quote_id=quote_id, description='Thing', price='ten')
        with self.assertRaises(NotFoundError):
            add_line_item(self.repo, principal=self.associate, quote_id=9999, description='Thing', price='10')

        items = add_line_item(self.repo, principal=self.associate, quote_id=quote_id, description='Thing', price='10')
        item_id = items[0].id
        with self.assertRaises(ValidationError):
            edit_line_item(self.repo, principal=self.associate, line_item_id=item_id, patch={})
        items = edit_line_item(self.repo, principal=self.associate, line_item_id=item_id, patch={'price': '12.50'})
        self.assertEqual(items[0].price, Decimal('12.50'))
        self.assertEqual(items[0].description, 'Thing')

        self.assertEqual(delete_line_item(self.repo, principal=self.associate, line_item_id=item_id), [])
        with self.assertRaises(NotFoundError):
            delete_line_item(self.repo, principal=self.associate, line_item_id=item_id)

    def test_notes_are_listed_newest_first(self) -> None:
        quote_id = self._draft().quote.id
        add_note(self.repo, principal=self.associate, quote_id=quote_id, content='first')
        notes = add_note(self.repo, principal=self.associate, quote_id=quote_id, content='second')
        self.assertEqual([note.content for note in notes], ['second', 'first'])

        with self.assertRaises(ValidationError):
            add_note(self.repo, principal=self.associate, quote_id=quote_id, content='   ')
        notes = edit_note(self.repo, principal=self.associate, note_id=notes[1].id, content='first, revised')
        self.assertIn('first, revised', [note.content for note in notes])

        remaining = delete_note(self.repo, principal=self.associate, note_id=notes[0].id)
        self.assertEqual(len(remaining), 1)
        with self.assertRaises(NotFoundError):
            edit_note(self.repo, principal=self.associate, note_id=9999, content='x')


if __name__ == '__main__':
    unittest.main()
