from __future__ import annotations

from dataclasses import dataclass

from quotedesk.auth import Capability, Principal
from quotedesk.errors import AuthorizationError, IllegalTransitionError, ValidationError
from quotedesk.models import QuoteStatus


NEXT_STATUS: dict[QuoteStatus, QuoteStatus] = {
    QuoteStatus.DRAFT: QuoteStatus.FINALIZED,
    QuoteStatus.FINALIZED: QuoteStatus.SANCTIONED,
    QuoteStatus.SANCTIONED: QuoteStatus.PURCHASE_ORDER,
    QuoteStatus.PURCHASE_ORDER: QuoteStatus.PROCESSED,
}

QUOTE_FIELDS = frozenset(
    {'email', 'customer_id', 'sales_associate_id', 'initial_discount', 'final_discount', 'line_items', 'notes'}
)
ASSOCIATE_FIELDS = QUOTE_FIELDS - {'final_discount'}
REVIEW_FIELDS = frozenset({'line_items', 'notes', 'final_discount'})
FINAL_DISCOUNT_STATUSES = frozenset({QuoteStatus.FINALIZED, QuoteStatus.SANCTIONED})


@dataclass(frozen=True)
class TransitionDecision:
    previous: QuoteStatus
    target: QuoteStatus
    changed: bool
    notify: bool


def parse_status(value) -> QuoteStatus:
    try:
        return QuoteStatus(value)
    except ValueError as exc:
        allowed = ', '.join(status.value for status in QuoteStatus)
        raise ValidationError(f'Unknown quote status {value!r}; expected one of {allowed}') from exc


def is_owner(quote, principal: Principal) -> bool:
    return quote.sales_associate_id is not None and quote.sales_associate_id == principal.id


def authorize_quote_access(quote, principal: Principal) -> None:
    if principal.can(Capability.VIEW_ALL_QUOTES) or principal.can(Capability.EDIT_ANY_QUOTE):
        return
    if is_owner(quote, principal):
        return
    raise AuthorizationError(f'Quote {quote.id} belongs to another sales associate')


def authorize_reassignment(principal: Principal, sales_associate_id: int | None) -> None:
    if sales_associate_id == principal.id:
        return
    if not principal.can(Capability.ASSIGN_ANY_ASSOCIATE):
        raise AuthorizationError('You can only assign quotes to yourself')


def authorize_field_edit(quote, principal: Principal, fields) -> None:
    fields = frozenset(fields)
    unknown = fields - QUOTE_FIELDS
    if unknown:
        raise ValidationError(f'Unknown quote fields: {", ".join(sorted(unknown))}')
    if principal.can(Capability.EDIT_ANY_QUOTE):
        return

    status = QuoteStatus(quote.status)
    owner = is_owner(quote, principal)
    remaining = fields
    if principal.can(Capability.EDIT_OWN_DRAFT) and owner and status == QuoteStatus.DRAFT:
        remaining = remaining - ASSOCIATE_FIELDS
    if principal.can(Capability.REVISE_FINALIZED_QUOTE) and status == QuoteStatus.FINALIZED:
        remaining = remaining - REVIEW_FIELDS
    if principal.can(Capability.APPLY_FINAL_DISCOUNT) and status in FINAL_DISCOUNT_STATUSES:
        remaining = remaining - {'final_discount'}
    if not remaining:
        return

    if principal.can(Capability.EDIT_OWN_DRAFT) and not principal.can(Capability.VIEW_ALL_QUOTES):
        if not owner:
            raise AuthorizationError(f'Quote {quote.id} belongs to another sales associate')
        if status != QuoteStatus.DRAFT:
            raise AuthorizationError(f'Quote {quote.id} is {status.value} and can no longer be edited by its sales associate')
    raise AuthorizationError(
        f'Not permitted to change {", ".join(sorted(remaining))} on a {status.value} quote'
    )


def _authorize_transition(quote, target: QuoteStatus, principal: Principal) -> None:
    if principal.can(Capability.EDIT_ANY_QUOTE):
        return

    if target == QuoteStatus.FINALIZED:
        if principal.can(Capability.FINALIZE_OWN_QUOTE):
            if is_owner(quote, principal):
                return
            raise AuthorizationError(f'Quote {quote.id} belongs to another sales associate')
        raise AuthorizationError('Only the owning sales associate can finalize a quote')
    if target == QuoteStatus.SANCTIONED:
        if principal.can(Capability.SANCTION_QUOTE):
            return
        raise AuthorizationError('Only quote managers can sanction quotes')
    if target == QuoteStatus.PURCHASE_ORDER:
        if principal.can(Capability.CONVERT_TO_PURCHASE_ORDER):
            return
        raise AuthorizationError('Only purchase managers can convert quotes to purchase orders')
    raise AuthorizationError(f'Only administrators can mark quotes {target.value}')


def decide_transition(quote, target, principal: Principal, *, via_order_submission: bool = False) -> TransitionDecision:
    """Allow or reject a status change for this principal.

    Re-setting the current status is a no-op. Otherwise only the next status in
    the pipeline is reachable, for every role including admin. Role checks run
    after the adjacency check, so an illegal jump is always reported as such.
    """
    target = parse_status(target)
    current = QuoteStatus(quote.status)
    if target == current:
        return TransitionDecision(previous=current, target=target, changed=False, notify=False)

    if NEXT_STATUS.get(current) != target:
        raise IllegalTransitionError(f'Quote {quote.id} cannot move from {current.value} to {target.value}')

    _authorize_transition(quote, target, principal)

    if target == QuoteStatus.PURCHASE_ORDER and not via_order_submission:
        raise IllegalTransitionError(
            f'Quote {quote.id} becomes a purchase order only through submission to the order system'
        )

    return TransitionDecision(
        previous=current,
        target=target,
        changed=True,
        notify=target == QuoteStatus.SANCTIONED,
    )
