from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from quotedesk.auth import Capability, Principal
from quotedesk.errors import AuthorizationError, ExternalServiceError, IllegalTransitionError, ValidationError
from quotedesk.models import ConfidentialNote, DiscountType, LineItem, QuoteStatus
from quotedesk.services.audit_service import log_audit
from quotedesk.services.notification_service import Notifier, notify_quote_sanctioned
from quotedesk.services.order_system_client import OrderConfirmation, OrderRequest, OrderSystemClient
from quotedesk.services.pricing_service import (
    CENT,
    Discount,
    QuoteTotals,
    compute_quote_total,
    compute_total,
    discount_from_fields,
    to_decimal,
)
from quotedesk.services.quote_repository import QuoteAggregate, QuoteRepository
from quotedesk.services.transition_service import (
    authorize_field_edit,
    authorize_quote_access,
    authorize_reassignment,
    decide_transition,
    parse_status,
)


logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = ('status', 'email', 'customer_id', 'sales_associate_id', 'initial_discount', 'final_discount')


@dataclass(frozen=True)
class PurchaseOrderOutcome:
    aggregate: QuoteAggregate
    confirmation: OrderConfirmation
    totals: QuoteTotals
    commission: Decimal


# Field parsing


def _parse_email(value) -> str:
    email = str(value or '').strip()
    if not email or '@' not in email or email.startswith('@') or email.endswith('@'):
        raise ValidationError('A valid `email` is required')
    return email


def _parse_int(value, *, field: str) -> int:
    if value is None or isinstance(value, bool):
        raise ValidationError(f'`{field}` must be an integer')
    try:
        return int(str(value).strip())
    except ValueError as exc:
        raise ValidationError(f'`{field}` must be an integer') from exc


def _parse_money(value, *, field: str) -> Decimal:
    if value is None:
        raise ValidationError(f'Missing `{field}`')
    amount = to_decimal(value, field=f'`{field}`')
    if amount < 0:
        raise ValidationError(f'`{field}` must not be negative')
    return amount


def _parse_text(value, *, field: str) -> str:
    if value is None or not isinstance(value, str) or not value.strip():
        raise ValidationError(f'Missing `{field}`')
    return value.strip()


def parse_discount(raw, *, field: str) -> Discount | None:
    """A discount is either cleared (None) or a complete value/type pair."""
    if raw is None:
        return None
    if isinstance(raw, Discount):
        candidate = {'value': raw.value, 'type': raw.type}
    elif isinstance(raw, dict):
        candidate = raw
    else:
        raise ValidationError(f'`{field}` must be an object with `value` and `type`')

    value = candidate.get('value')
    discount_type = candidate.get('type')
    if value is None and discount_type is None:
        return None
    if value is None or discount_type is None:
        raise ValidationError(f'`{field}` needs both `value` and `type`')
    try:
        parsed_type = DiscountType(discount_type)
    except ValueError as exc:
        raise ValidationError(f'`{field}.type` must be either "percentage" or "amount"') from exc
    parsed_value = to_decimal(value, field=f'`{field}.value`')
    if parsed_value < 0:
        raise ValidationError(f'`{field}.value` must not be negative')
    return Discount(value=parsed_value, type=parsed_type)


def _discount_columns(prefix: str, discount: Discount | None) -> dict:
    return {
        f'{prefix}_value': discount.value if discount else None,
        f'{prefix}_type': discount.type if discount else None,
    }


# Serialization


def line_item_to_dict(item: LineItem) -> dict:
    return {
        'id': item.id,
        'quote_id': item.quote_id,
        'description': item.description,
        'price': str(Decimal(item.price).quantize(CENT)),
        'created_at': item.created_at,
    }


def note_to_dict(note: ConfidentialNote) -> dict:
    return {
        'id': note.id,
        'quote_id': note.quote_id,
        'content': note.content,
        'created_at': note.created_at,
        'updated_at': note.updated_at,
    }


def _discount_to_dict(value, discount_type) -> dict | None:
    discount = discount_from_fields(value, discount_type)
    if discount is None:
        return None
    return {'value': str(discount.value), 'type': discount.type.value}


def quote_to_dict(aggregate: QuoteAggregate) -> dict:
    quote = aggregate.quote
    totals = compute_quote_total(quote, aggregate.line_items)
    return {
        'id': quote.id,
        'email': quote.email,
        'customer_id': quote.customer_id,
        'status': QuoteStatus(quote.status).value,
        'sales_associate_id': quote.sales_associate_id,
        'initial_discount': _discount_to_dict(quote.initial_discount_value, quote.initial_discount_type),
        'final_discount': _discount_to_dict(quote.final_discount_value, quote.final_discount_type),
        'process_date': quote.process_date,
        'commission_rate': quote.commission_rate,
        'date_created': quote.date_created,
        'updated_at': quote.updated_at,
        'line_items': [line_item_to_dict(item) for item in aggregate.line_items],
        'notes': [note_to_dict(note) for note in aggregate.notes],
        'totals': totals.as_dict(),
    }


# Quotes


def create_quote(
    repo: QuoteRepository,
    *,
    principal: Principal,
    email,
    customer_id,
    sales_associate_id=None,
    initial_discount=None,
    final_discount=None,
    ip: str | None = None,
) -> QuoteAggregate:
    if not principal.can(Capability.CREATE_QUOTE):
        raise AuthorizationError('Only sales associates can create quotes')

    parsed_email = _parse_email(email)
    parsed_customer_id = _parse_int(customer_id, field='customer_id')
    initial = parse_discount(initial_discount, field='initial_discount')
    final = parse_discount(final_discount, field='final_discount')

    associate_id = _parse_int(sales_associate_id, field='sales_associate_id') if sales_associate_id is not None else None
    if associate_id is None and principal.is_sales_associate:
        associate_id = principal.id
    if associate_id is not None:
        authorize_reassignment(principal, associate_id)
        repo.require_employee(associate_id)
    if final is not None and not principal.can(Capability.APPLY_FINAL_DISCOUNT):
        raise AuthorizationError('Only quote managers can set the final discount')

    # Customer ids belong to the legacy directory and are not checked here.
    quote = repo.add_quote(
        email=parsed_email,
        customer_id=parsed_customer_id,
        status=QuoteStatus.DRAFT,
        sales_associate_id=associate_id,
        **_discount_columns('initial_discount', initial),
        **_discount_columns('final_discount', final),
    )
    log_audit(
        repo.db,
        actor_employee_id=principal.id,
        action='QUOTE_CREATED',
        quote_id=quote.id,
        ip=ip,
        metadata={'customer_id': parsed_customer_id, 'sales_associate_id': associate_id},
    )
    logger.info('Quote %s created by employee %s', quote.id, principal.id)
    return repo.get_quote(quote.id)


def get_quote_view(repo: QuoteRepository, *, principal: Principal, quote_id: int) -> QuoteAggregate:
    aggregate = repo.get_quote(quote_id)
    authorize_quote_access(aggregate.quote, principal)
    return aggregate


def list_quote_views(repo: QuoteRepository, *, principal: Principal, status=None) -> list[QuoteAggregate]:
    parsed_status = parse_status(status) if status else None
    if principal.can(Capability.VIEW_ALL_QUOTES):
        return repo.list_quotes(status=parsed_status)
    return repo.list_quotes(status=parsed_status, sales_associate_id=principal.id)


def update_quote(
    repo: QuoteRepository,
    *,
    principal: Principal,
    quote_id: int,
    patch: dict,
    notifier: Notifier,
    ip: str | None = None,
) -> QuoteAggregate:
    unknown = set(patch) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f'Unknown quote fields: {", ".join(sorted(unknown))}')
    if not patch:
        raise ValidationError(f'At least one of {", ".join(UPDATABLE_FIELDS)} must be provided')

    quote = repo.require_quote(quote_id)

    changes: dict = {}
    if 'email' in patch:
        changes['email'] = _parse_email(patch['email'])
    if 'customer_id' in patch:
        changes['customer_id'] = _parse_int(patch['customer_id'], field='customer_id')
    if 'sales_associate_id' in patch:
        raw_associate = patch['sales_associate_id']
        associate_id = _parse_int(raw_associate, field='sales_associate_id') if raw_associate is not None else None
        if associate_id is not None:
            repo.require_employee(associate_id)
        changes['sales_associate_id'] = associate_id
    if 'initial_discount' in patch:
        changes.update(_discount_columns('initial_discount', parse_discount(patch['initial_discount'], field='initial_discount')))
    if 'final_discount' in patch:
        changes.update(_discount_columns('final_discount', parse_discount(patch['final_discount'], field='final_discount')))
    target = parse_status(patch['status']) if 'status' in patch else None

    fields = {key for key in patch if key != 'status'}
    if fields:
        authorize_field_edit(quote, principal, fields)
    else:
        authorize_quote_access(quote, principal)
    if 'sales_associate_id' in changes and changes['sales_associate_id'] != quote.sales_associate_id:
        authorize_reassignment(principal, changes['sales_associate_id'])

    decision = decide_transition(quote, target, principal) if target is not None else None
    if decision is not None and decision.changed:
        changes['status'] = decision.target

    if changes:
        repo.update_quote_fields(quote, changes)
        log_audit(
            repo.db,
            actor_employee_id=principal.id,
            action='QUOTE_UPDATED',
            quote_id=quote.id,
            ip=ip,
            metadata={'fields': sorted(key for key in changes if key != 'status')},
        )
    if decision is not None and decision.changed:
        log_audit(
            repo.db,
            actor_employee_id=principal.id,
            action='QUOTE_STATUS_CHANGED',
            quote_id=quote.id,
            ip=ip,
            metadata={'from': decision.previous.value, 'to': decision.target.value},
        )
        logger.info(
            'Quote %s moved %s -> %s by employee %s',
            quote.id,
            decision.previous.value,
            decision.target.value,
            principal.id,
        )

    # The transition is durable before anyone is told about it.
    repo.commit()

    if decision is not None and decision.notify:
        notify_quote_sanctioned(
            repo.db,
            notifier,
            quote=quote,
            line_items=repo.list_line_items(quote.id),
            actor_employee_id=principal.id,
            ip=ip,
        )

    return repo.get_quote(quote.id)


def _commission_fraction(rate: str) -> Decimal | None:
    raw = rate.strip()
    is_percent = raw.endswith('%')
    try:
        value = Decimal(raw.rstrip('%').strip())
    except InvalidOperation:
        return None
    if not value.is_finite() or value < 0:
        return None
    if is_percent or value > 1:
        value = value / Decimal('100')
    return value


def submit_purchase_order(
    repo: QuoteRepository,
    *,
    principal: Principal,
    quote_id: int,
    order_client: OrderSystemClient,
    final_discount=None,
    apply_final_discount: bool = False,
    ip: str | None = None,
) -> PurchaseOrderOutcome:
    if not principal.can(Capability.CONVERT_TO_PURCHASE_ORDER):
        raise AuthorizationError('Only purchase managers can submit purchase orders')

    aggregate = repo.get_quote(quote_id)
    quote = aggregate.quote
    if QuoteStatus(quote.status) != QuoteStatus.SANCTIONED:
        raise IllegalTransitionError(
            f'Quote {quote.id} is {QuoteStatus(quote.status).value}; only SanctionedQuote quotes can be ordered'
        )

    changes: dict = {}
    final = discount_from_fields(quote.final_discount_value, quote.final_discount_type)
    if apply_final_discount:
        final = parse_discount(final_discount, field='final_discount')
        authorize_field_edit(quote, principal, {'final_discount'})
        changes.update(_discount_columns('final_discount', final))

    decision = decide_transition(quote, QuoteStatus.PURCHASE_ORDER, principal, via_order_submission=True)
    totals = compute_total(
        aggregate.line_items,
        discount_from_fields(quote.initial_discount_value, quote.initial_discount_type),
        final,
    )
    order = OrderRequest(
        order_ref=f'quote-{quote.id}-{uuid.uuid4().hex[:12]}',
        sales_associate_id=quote.sales_associate_id,
        customer_id=quote.customer_id,
        final_amount=totals.total,
    )

    try:
        confirmation = order_client.submit(order)
    except ExternalServiceError as exc:
        log_audit(
            repo.db,
            actor_employee_id=principal.id,
            action='PURCHASE_ORDER_SUBMIT_FAILED',
            quote_id=quote.id,
            ip=ip,
            metadata={'order_ref': order.order_ref, 'error': exc.message},
        )
        repo.commit()
        raise

    commission = Decimal('0.00')
    fraction = _commission_fraction(confirmation.commission_rate)
    if fraction is None:
        logger.warning('Unparseable commission rate %r for quote %s', confirmation.commission_rate, quote.id)
    elif quote.sales_associate_id is not None:
        associate = repo.find_employee(quote.sales_associate_id)
        if associate is not None:
            commission = (totals.total * fraction).quantize(CENT, rounding=ROUND_HALF_UP)
            repo.update_employee_fields(
                associate,
                {'accumulated_commission': Decimal(associate.accumulated_commission or 0) + commission},
            )

    changes.update(
        {
            'status': decision.target,
            'process_date': confirmation.process_date,
            'commission_rate': confirmation.commission_rate,
        }
    )
    repo.update_quote_fields(quote, changes)
    log_audit(
        repo.db,
        actor_employee_id=principal.id,
        action='PURCHASE_ORDER_SUBMITTED',
        quote_id=quote.id,
        ip=ip,
        metadata={
            'order_ref': order.order_ref,
            'amount': str(totals.total),
            'process_date': confirmation.process_date,
            'commission_rate': confirmation.commission_rate,
            'commission': str(commission),
        },
    )
    repo.commit()
    return PurchaseOrderOutcome(
        aggregate=repo.get_quote(quote.id),
        confirmation=confirmation,
        totals=totals,
        commission=commission,
    )


# Line items


def list_line_items(repo: QuoteRepository, *, principal: Principal, quote_id: int) -> list[LineItem]:
    authorize_quote_access(repo.require_quote(quote_id), principal)
    return repo.list_line_items(quote_id)


def add_line_item(
    repo: QuoteRepository,
    *,
    principal: Principal,
    quote_id: int,
    description,
    price,
) -> list[LineItem]:
    quote = repo.require_quote(quote_id)
    parsed_description = _parse_text(description, field='description')
    parsed_price = _parse_money(price, field='price')
    authorize_field_edit(quote, principal, {'line_items'})
    repo.add_line_item(quote.id, description=parsed_description, price=parsed_price)
    return repo.list_line_items(quote.id)


def edit_line_item(
    repo: QuoteRepository,
    *,
    principal: Principal,
    line_item_id: int,
    patch: dict,
) -> list[LineItem]:
    item = repo.require_line_item(line_item_id)
    changes: dict = {}
    if patch.get('description') is not None:
        changes['description'] = _parse_text(patch['description'], field='description')
    if patch.get('price') is not None:
        changes['price'] = _parse_money(patch['price'], field='price')
    if not changes:
        raise ValidationError('At least one of `price` or `description` must be provided')

    authorize_field_edit(repo.require_quote(item.quote_id), principal, {'line_items'})
    repo.update_line_item(item, changes)
    return repo.list_line_items(item.quote_id)


def delete_line_item(repo: QuoteRepository, *, principal: Principal, line_item_id: int) -> list[LineItem]:
    item = repo.require_line_item(line_item_id)
    quote_id = item.quote_id
    authorize_field_edit(repo.require_quote(quote_id), principal, {'line_items'})
    repo.delete_line_item(item)
    return repo.list_line_items(quote_id)


# Confidential notes


def list_notes(repo: QuoteRepository, *, principal: Principal, quote_id: int) -> list[ConfidentialNote]:
    authorize_quote_access(repo.require_quote(quote_id), principal)
    return repo.list_notes(quote_id)


def add_note(repo: QuoteRepository, *, principal: Principal, quote_id: int, content) -> list[ConfidentialNote]:
    quote = repo.require_quote(quote_id)
    parsed_content = _parse_text(content, field='content')
    authorize_field_edit(quote, principal, {'notes'})
    repo.add_note(quote.id, content=parsed_content)
    return repo.list_notes(quote.id)


def edit_note(repo: QuoteRepository, *, principal: Principal, note_id: int, content) -> list[ConfidentialNote]:
    note = repo.require_note(note_id)
    parsed_content = _parse_text(content, field='content')
    authorize_field_edit(repo.require_quote(note.quote_id), principal, {'notes'})
    repo.update_note(note, content=parsed_content)
    return repo.list_notes(note.quote_id)


def delete_note(repo: QuoteRepository, *, principal: Principal, note_id: int) -> list[ConfidentialNote]:
    note = repo.require_note(note_id)
    quote_id = note.quote_id
    authorize_field_edit(repo.require_quote(quote_id), principal, {'notes'})
    repo.delete_note(note)
    return repo.list_notes(quote_id)
