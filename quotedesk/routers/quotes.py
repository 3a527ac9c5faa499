from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel

from quotedesk.auth import Principal, get_current_principal
from quotedesk.dependencies import (
    get_client_ip,
    get_notifier_dependency,
    get_order_client_dependency,
    get_repository,
)
from quotedesk.services.notification_service import Notifier
from quotedesk.services.order_system_client import OrderSystemClient
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
    line_item_to_dict,
    list_line_items,
    list_notes,
    list_quote_views,
    note_to_dict,
    quote_to_dict,
    submit_purchase_order,
    update_quote,
)

router = APIRouter(tags=['quotes'])


# Loose field types: the service layer owns validation and its error shape.
class QuoteCreateRequest(BaseModel):
    email: Any = None
    customer_id: Any = None
    sales_associate_id: Any = None
    initial_discount: Any = None
    final_discount: Any = None


class QuoteUpdateRequest(BaseModel):
    status: Any = None
    email: Any = None
    customer_id: Any = None
    sales_associate_id: Any = None
    initial_discount: Any = None
    final_discount: Any = None


class PurchaseOrderRequest(BaseModel):
    final_discount: Any = None


class LineItemRequest(BaseModel):
    description: Any = None
    price: Any = None


class NoteRequest(BaseModel):
    content: Any = None


@router.get('/quotes')
def quotes_index(
    status_filter: str | None = Query(default=None, alias='status'),
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    return [quote_to_dict(aggregate) for aggregate in list_quote_views(repo, principal=principal, status=status_filter)]


@router.post('/quotes', status_code=status.HTTP_201_CREATED)
def quotes_create(
    payload: QuoteCreateRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    aggregate = create_quote(
        repo,
        principal=principal,
        email=payload.email,
        customer_id=payload.customer_id,
        sales_associate_id=payload.sales_associate_id,
        initial_discount=payload.initial_discount,
        final_discount=payload.final_discount,
        ip=get_client_ip(request),
    )
    repo.commit()
    return quote_to_dict(aggregate)


@router.get('/quotes/{quote_id}')
def quotes_show(
    quote_id: int,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    return quote_to_dict(get_quote_view(repo, principal=principal, quote_id=quote_id))


@router.patch('/quotes/{quote_id}')
def quotes_update(
    quote_id: int,
    payload: QuoteUpdateRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
    notifier: Notifier = Depends(get_notifier_dependency),
):
    aggregate = update_quote(
        repo,
        principal=principal,
        quote_id=quote_id,
        patch=payload.model_dump(exclude_unset=True),
        notifier=notifier,
        ip=get_client_ip(request),
    )
    repo.commit()
    return quote_to_dict(aggregate)


@router.post('/quotes/{quote_id}/purchase-order')
def quotes_purchase_order(
    quote_id: int,
    payload: PurchaseOrderRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
    order_client: OrderSystemClient = Depends(get_order_client_dependency),
):
    outcome = submit_purchase_order(
        repo,
        principal=principal,
        quote_id=quote_id,
        order_client=order_client,
        final_discount=payload.final_discount,
        apply_final_discount='final_discount' in payload.model_fields_set,
        ip=get_client_ip(request),
    )
    return {
        'quote': quote_to_dict(outcome.aggregate),
        'process_date': outcome.confirmation.process_date,
        'commission_rate': outcome.confirmation.commission_rate,
        'commission': str(outcome.commission),
        'total': str(outcome.totals.total),
    }


@router.get('/quotes/{quote_id}/line-items')
def line_items_index(
    quote_id: int,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    return [line_item_to_dict(item) for item in list_line_items(repo, principal=principal, quote_id=quote_id)]


@router.post('/quotes/{quote_id}/line-items', status_code=status.HTTP_201_CREATED)
def line_items_create(
    quote_id: int,
    payload: LineItemRequest,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    items = add_line_item(
        repo,
        principal=principal,
        quote_id=quote_id,
        description=payload.description,
        price=payload.price,
    )
    repo.commit()
    return [line_item_to_dict(item) for item in items]


@router.patch('/line-items/{line_item_id}')
def line_items_update(
    line_item_id: int,
    payload: LineItemRequest,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    items = edit_line_item(
        repo,
        principal=principal,
        line_item_id=line_item_id,
        patch=payload.model_dump(exclude_unset=True),
    )
    repo.commit()
    return [line_item_to_dict(item) for item in items]


@router.delete('/line-items/{line_item_id}')
def line_items_delete(
    line_item_id: int,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    items = delete_line_item(repo, principal=principal, line_item_id=line_item_id)
    repo.commit()
    return [line_item_to_dict(item) for item in items]


@router.get('/quotes/{quote_id}/notes')
def notes_index(
    quote_id: int,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    return [note_to_dict(note) for note in list_notes(repo, principal=principal, quote_id=quote_id)]


@router.post('/quotes/{quote_id}/notes', status_code=status.HTTP_201_CREATED)
def notes_create(
    quote_id: int,
    payload: NoteRequest,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    notes = add_note(repo, principal=principal, quote_id=quote_id, content=payload.content)
    repo.commit()
    return [note_to_dict(note) for note in notes]


@router.patch('/notes/{note_id}')
def notes_update(
    note_id: int,
    payload: NoteRequest,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    notes = edit_note(repo, principal=principal, note_id=note_id, content=payload.content)
    repo.commit()
    return [note_to_dict(note) for note in notes]


@router.delete('/notes/{note_id}')
def notes_delete(
    note_id: int,
    principal: Principal = Depends(get_current_principal),
    repo: QuoteRepository = Depends(get_repository),
):
    notes = delete_note(repo, principal=principal, note_id=note_id)
    repo.commit()
    return [note_to_dict(note) for note in notes]
