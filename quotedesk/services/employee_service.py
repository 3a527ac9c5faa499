from __future__ import annotations

from decimal import Decimal

from quotedesk.errors import ValidationError
from quotedesk.models import Employee
from quotedesk.security.passwords import hash_password
from quotedesk.services.audit_service import log_audit
from quotedesk.services.pricing_service import to_decimal
from quotedesk.services.quote_repository import QuoteRepository


ROLE_FLAGS = ('is_sales_associate', 'is_quote_manager', 'is_purchase_manager', 'is_admin')
EDITABLE_FIELDS = ('name', 'email', 'password', 'address', 'accumulated_commission', 'active', *ROLE_FLAGS)


def employee_to_dict(employee: Employee) -> dict:
    return {
        'id': employee.id,
        'name': employee.name,
        'email': employee.email,
        'address': employee.address,
        'accumulated_commission': str(Decimal(employee.accumulated_commission or 0).quantize(Decimal('0.01'))),
        'is_sales_associate': employee.is_sales_associate,
        'is_quote_manager': employee.is_quote_manager,
        'is_purchase_manager': employee.is_purchase_manager,
        'is_admin': employee.is_admin,
        'active': employee.active,
    }


def _required_text(value, field: str) -> str:
    text = str(value or '').strip()
    if not text:
        raise ValidationError(f'Missing `{field}` in request')
    return text


def _normalized_email(repo: QuoteRepository, value, *, exclude_id: int | None = None) -> str:
    email = _required_text(value, 'email').lower()
    if '@' not in email:
        raise ValidationError('A valid `email` is required')
    existing = repo.find_employee_by_email(email)
    if existing is not None and existing.id != exclude_id:
        raise ValidationError(f'Email {email} is already in use by another employee')
    return email


def _commission(value) -> Decimal:
    amount = to_decimal(value, field='`accumulated_commission`')
    if amount < 0:
        raise ValidationError('`accumulated_commission` must not be negative')
    return amount


def create_employee(repo: QuoteRepository, *, actor_id: int, data: dict, ip: str | None = None) -> Employee:
    name = _required_text(data.get('name'), 'name')
    email = _normalized_email(repo, data.get('email'))
    password = _required_text(data.get('password'), 'password')
    address = _required_text(data.get('address'), 'address')

    employee = repo.add_employee(
        name=name,
        email=email,
        password_hash=hash_password(password),
        address=address,
        accumulated_commission=_commission(data.get('accumulated_commission') or 0),
        active=True,
        **{flag: bool(data.get(flag, False)) for flag in ROLE_FLAGS},
    )
    log_audit(
        repo.db,
        actor_employee_id=actor_id,
        action='EMPLOYEE_CREATED',
        ip=ip,
        metadata={'employee_id': employee.id, 'roles': [flag for flag in ROLE_FLAGS if getattr(employee, flag)]},
    )
    return employee


def update_employee(
    repo: QuoteRepository,
    *,
    actor_id: int,
    employee_id: int,
    patch: dict,
    ip: str | None = None,
) -> Employee:
    employee = repo.require_employee(employee_id)
    provided = [key for key in EDITABLE_FIELDS if patch.get(key) is not None]
    if not provided:
        raise ValidationError('At least one valid field must be provided for update')

    changes: dict = {}
    for key in provided:
        value = patch[key]
        if key == 'email':
            changes['email'] = _normalized_email(repo, value, exclude_id=employee.id)
        elif key == 'password':
            changes['password_hash'] = hash_password(_required_text(value, 'password'))
        elif key == 'accumulated_commission':
            changes['accumulated_commission'] = _commission(value)
        elif key in ('name', 'address'):
            changes[key] = _required_text(value, key)
        else:
            changes[key] = bool(value)

    repo.update_employee_fields(employee, changes)
    log_audit(
        repo.db,
        actor_employee_id=actor_id,
        action='EMPLOYEE_UPDATED',
        ip=ip,
        metadata={'employee_id': employee.id, 'fields': sorted(key for key in changes if key != 'password_hash')},
    )
    return employee


def delete_employee(repo: QuoteRepository, *, actor_id: int, employee_id: int, ip: str | None = None) -> None:
    if employee_id == actor_id:
        raise ValidationError('You cannot delete your own account')
    repo.delete_employee(employee_id)
    log_audit(
        repo.db,
        actor_employee_id=actor_id,
        action='EMPLOYEE_DELETED',
        ip=ip,
        metadata={'employee_id': employee_id},
    )
