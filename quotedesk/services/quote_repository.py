from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal

from sqlalchemy import delete, func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from quotedesk.errors import DependencyError, NotFoundError, PersistenceError
from quotedesk.models import ConfidentialNote, Employee, LineItem, Quote, QuoteStatus


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


@dataclass
class QuoteAggregate:
    quote: Quote
    line_items: list[LineItem]
    notes: list[ConfidentialNote]


class QuoteRepository:
    """Persistence boundary for quotes, their owned collections and employees.

    Nothing is cached between calls; every read goes back to the session.
    """

    def __init__(self, db: Session) -> None:
        self.db = db

    def _flush(self) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f'Storage failure: {exc.__class__.__name__}') from exc

    def commit(self) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as exc:
            self.db.rollback()
            raise PersistenceError(f'Storage failure: {exc.__class__.__name__}') from exc

    # Quotes

    def find_quote(self, quote_id: int) -> Quote | None:
        return self.db.execute(select(Quote).where(Quote.id == quote_id)).scalar_one_or_none()

    def require_quote(self, quote_id: int) -> Quote:
        quote = self.find_quote(quote_id)
        if quote is None:
            raise NotFoundError(f'Quote {quote_id} not found')
        return quote

    def get_quote(self, quote_id: int) -> QuoteAggregate:
        quote = self.require_quote(quote_id)
        return QuoteAggregate(
            quote=quote,
            line_items=self.list_line_items(quote_id),
            notes=self.list_notes(quote_id),
        )

    def list_quotes(
        self,
        *,
        status: QuoteStatus | None = None,
        sales_associate_id: int | None = None,
    ) -> list[QuoteAggregate]:
        stmt = select(Quote).order_by(Quote.date_created.desc(), Quote.id.desc())
        if status is not None:
            stmt = stmt.where(Quote.status == status)
        if sales_associate_id is not None:
            stmt = stmt.where(Quote.sales_associate_id == sales_associate_id)
        quotes = self.db.execute(stmt).scalars().all()
        if not quotes:
            return []

        ids = [quote.id for quote in quotes]
        items_by_quote: dict[int, list[LineItem]] = {quote_id: [] for quote_id in ids}
        for item in self.db.execute(
            select(LineItem).where(LineItem.quote_id.in_(ids)).order_by(LineItem.id.asc())
        ).scalars():
            items_by_quote[item.quote_id].append(item)
        notes_by_quote: dict[int, list[ConfidentialNote]] = {quote_id: [] for quote_id in ids}
        for note in self.db.execute(
            select(ConfidentialNote)
            .where(ConfidentialNote.quote_id.in_(ids))
            .order_by(ConfidentialNote.created_at.desc(), ConfidentialNote.id.desc())
        ).scalars():
            notes_by_quote[note.quote_id].append(note)

        return [QuoteAggregate(quote, items_by_quote[quote.id], notes_by_quote[quote.id]) for quote in quotes]

    def add_quote(self, **fields) -> Quote:
        quote = Quote(**fields)
        self.db.add(quote)
        self._flush()
        return quote

    def update_quote_fields(self, quote: Quote, changes: dict) -> Quote:
        for key, value in changes.items():
            setattr(quote, key, value)
        quote.updated_at = _now()
        self._flush()
        return quote

    # Line items

    def list_line_items(self, quote_id: int) -> list[LineItem]:
        return list(
            self.db.execute(
                select(LineItem).where(LineItem.quote_id == quote_id).order_by(LineItem.id.asc())
            ).scalars()
        )

    def require_line_item(self, line_item_id: int) -> LineItem:
        item = self.db.execute(select(LineItem).where(LineItem.id == line_item_id)).scalar_one_or_none()
        if item is None:
            raise NotFoundError(f'Line item {line_item_id} not found')
        return item

    def add_line_item(self, quote_id: int, *, description: str, price: Decimal) -> LineItem:
        self.require_quote(quote_id)
        item = LineItem(quote_id=quote_id, description=description, price=price)
        self.db.add(item)
        self._flush()
        return item

    def update_line_item(self, item: LineItem, changes: dict) -> LineItem:
        for key, value in changes.items():
            setattr(item, key, value)
        self._flush()
        return item

    def delete_line_item(self, item: LineItem) -> None:
        self.db.delete(item)
        self._flush()

    # Confidential notes

    def list_notes(self, quote_id: int) -> list[ConfidentialNote]:
        return list(
            self.db.execute(
                select(ConfidentialNote)
                .where(ConfidentialNote.quote_id == quote_id)
                .order_by(ConfidentialNote.created_at.desc(), ConfidentialNote.id.desc())
            ).scalars()
        )

    def require_note(self, note_id: int) -> ConfidentialNote:
        note = self.db.execute(select(ConfidentialNote).where(ConfidentialNote.id == note_id)).scalar_one_or_none()
        if note is None:
            raise NotFoundError(f'Confidential note {note_id} not found')
        return note

    def add_note(self, quote_id: int, *, content: str) -> ConfidentialNote:
        self.require_quote(quote_id)
        note = ConfidentialNote(quote_id=quote_id, content=content)
        self.db.add(note)
        self._flush()
        return note

    def update_note(self, note: ConfidentialNote, *, content: str) -> ConfidentialNote:
        note.content = content
        note.updated_at = _now()
        self._flush()
        return note

    def delete_note(self, note: ConfidentialNote) -> None:
        self.db.delete(note)
        self._flush()

    # Employees

    def find_employee(self, employee_id: int) -> Employee | None:
        return self.db.execute(select(Employee).where(Employee.id == employee_id)).scalar_one_or_none()

    def require_employee(self, employee_id: int) -> Employee:
        employee = self.find_employee(employee_id)
        if employee is None:
            raise NotFoundError(f'Employee {employee_id} not found')
        return employee

    def find_employee_by_email(self, email: str) -> Employee | None:
        return self.db.execute(
            select(Employee).where(func.lower(Employee.email) == email.strip().lower())
        ).scalar_one_or_none()

    def list_employees(self) -> list[Employee]:
        return list(self.db.execute(select(Employee).order_by(Employee.name.asc(), Employee.id.asc())).scalars())

    def add_employee(self, **fields) -> Employee:
        employee = Employee(**fields)
        self.db.add(employee)
        self._flush()
        return employee

    def update_employee_fields(self, employee: Employee, changes: dict) -> Employee:
        for key, value in changes.items():
            setattr(employee, key, value)
        self._flush()
        return employee

    def count_quotes_for_associate(self, employee_id: int) -> int:
        return self.db.execute(
            select(func.count(Quote.id)).where(Quote.sales_associate_id == employee_id)
        ).scalar_one()

    def delete_employee(self, employee_id: int) -> None:
        self.require_employee(employee_id)
        # Checked here rather than by the foreign key so the caller gets a clear reason.
        referencing = self.count_quotes_for_associate(employee_id)
        if referencing:
            raise DependencyError(
                f'Cannot delete employee {employee_id}: referenced by {referencing} quote(s). Reassign those quotes first.'
            )
        self.db.execute(delete(Employee).where(Employee.id == employee_id))
        self._flush()
