from __future__ import annotations

from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    CheckConstraint,
    DateTime,
    Enum as SQLEnum,
    ForeignKey,
    Integer,
    Numeric,
    String,
    Text,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# SQLite only autoincrements INTEGER primary keys.
IdType = BigInteger().with_variant(Integer, 'sqlite')


def _now() -> datetime:
    return datetime.now(tz=timezone.utc)


def _enum_values(enum_cls) -> list[str]:
    return [member.value for member in enum_cls]


class Base(DeclarativeBase):
    pass


class LegacyBase(DeclarativeBase):
    pass


class QuoteStatus(str, Enum):
    DRAFT = 'DraftQuote'
    FINALIZED = 'FinalizedUnresolvedQuote'
    SANCTIONED = 'SanctionedQuote'
    PURCHASE_ORDER = 'UnprocessedPurchaseOrder'
    PROCESSED = 'Processed'


class DiscountType(str, Enum):
    PERCENTAGE = 'percentage'
    AMOUNT = 'amount'


class Employee(Base):
    __tablename__ = 'employees'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    email: Mapped[str] = mapped_column(String(320), nullable=False, unique=True)
    password_hash: Mapped[str] = mapped_column(Text, nullable=False)
    address: Mapped[str] = mapped_column(Text, nullable=False, default='', server_default='')
    accumulated_commission: Mapped[Decimal] = mapped_column(
        Numeric(12, 2), nullable=False, default=Decimal('0'), server_default='0'
    )
    is_sales_associate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    is_quote_manager: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    is_purchase_manager: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    is_admin: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, server_default='false')
    active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, server_default='true')
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )


class Quote(Base):
    __tablename__ = 'quotes'
    __table_args__ = (
        CheckConstraint('initial_discount_value IS NULL OR initial_discount_value >= 0', name='quotes_initial_discount_nonneg'),
        CheckConstraint('final_discount_value IS NULL OR final_discount_value >= 0', name='quotes_final_discount_nonneg'),
    )

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    email: Mapped[str] = mapped_column(String(320), nullable=False)
    customer_id: Mapped[int] = mapped_column(Integer, nullable=False)
    status: Mapped[QuoteStatus] = mapped_column(
        SQLEnum(QuoteStatus, name='quote_status', values_callable=_enum_values),
        nullable=False,
        default=QuoteStatus.DRAFT,
        server_default=QuoteStatus.DRAFT.value,
    )
    sales_associate_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('employees.id'))
    initial_discount_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    initial_discount_type: Mapped[DiscountType | None] = mapped_column(
        SQLEnum(DiscountType, name='discount_type', values_callable=_enum_values)
    )
    final_discount_value: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    final_discount_type: Mapped[DiscountType | None] = mapped_column(
        SQLEnum(DiscountType, name='discount_type', values_callable=_enum_values)
    )
    process_date: Mapped[str | None] = mapped_column(Text)
    commission_rate: Mapped[str | None] = mapped_column(Text)
    date_created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )


class LineItem(Base):
    __tablename__ = 'line_items'
    __table_args__ = (CheckConstraint('price >= 0', name='line_items_price_nonneg'),)

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    quote_id: Mapped[int] = mapped_column(IdType, ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )


class ConfidentialNote(Base):
    __tablename__ = 'confidential_notes'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    quote_id: Mapped[int] = mapped_column(IdType, ForeignKey('quotes.id', ondelete='CASCADE'), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )


class AuthEvent(Base):
    __tablename__ = 'auth_events'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    attempted_email: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text)
    employee_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('employees.id', ondelete='SET NULL'))
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )


class AuditLog(Base):
    __tablename__ = 'audit_log'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    actor_employee_id: Mapped[int | None] = mapped_column(IdType, ForeignKey('employees.id', ondelete='SET NULL'))
    action: Mapped[str] = mapped_column(Text, nullable=False)
    # Plain column: audit rows outlive the quotes they mention.
    quote_id: Mapped[int | None] = mapped_column(IdType)
    ip: Mapped[str | None] = mapped_column(String(64))
    meta: Mapped[dict] = mapped_column('metadata', JSON, nullable=False, default=dict)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )


class WebSession(Base):
    __tablename__ = 'web_sessions'

    id: Mapped[int] = mapped_column(IdType, primary_key=True)
    session_token: Mapped[str] = mapped_column(String(128), nullable=False, unique=True)
    employee_id: Mapped[int] = mapped_column(IdType, ForeignKey('employees.id', ondelete='CASCADE'), nullable=False)
    ip: Mapped[str | None] = mapped_column(String(64))
    user_agent: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    last_seen_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_now, server_default=func.now()
    )
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    revoked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))


class LegacyCustomer(LegacyBase):
    __tablename__ = 'customers'

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    city: Mapped[str] = mapped_column(Text, nullable=False)
    street: Mapped[str] = mapped_column(Text, nullable=False)
    contact: Mapped[str] = mapped_column(Text, nullable=False)
