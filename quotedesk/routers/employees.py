from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Request, status
from pydantic import BaseModel

from quotedesk.auth import Capability, Principal, require_capability
from quotedesk.dependencies import get_client_ip, get_repository
from quotedesk.services.employee_service import (
    create_employee,
    delete_employee,
    employee_to_dict,
    update_employee,
)
from quotedesk.services.quote_repository import QuoteRepository

router = APIRouter(prefix='/employees', tags=['employees'])
admin_access = require_capability(Capability.MANAGE_EMPLOYEES)


class EmployeeRequest(BaseModel):
    name: Any = None
    email: Any = None
    password: Any = None
    address: Any = None
    accumulated_commission: Any = None
    is_sales_associate: Any = None
    is_quote_manager: Any = None
    is_purchase_manager: Any = None
    is_admin: Any = None
    active: Any = None


@router.get('')
def employees_index(
    _: Principal = Depends(admin_access),
    repo: QuoteRepository = Depends(get_repository),
):
    return [employee_to_dict(employee) for employee in repo.list_employees()]


@router.post('', status_code=status.HTTP_201_CREATED)
def employees_create(
    payload: EmployeeRequest,
    request: Request,
    principal: Principal = Depends(admin_access),
    repo: QuoteRepository = Depends(get_repository),
):
    employee = create_employee(
        repo,
        actor_id=principal.id,
        data=payload.model_dump(exclude_unset=True),
        ip=get_client_ip(request),
    )
    repo.commit()
    return employee_to_dict(employee)


@router.get('/{employee_id}')
def employees_show(
    employee_id: int,
    _: Principal = Depends(admin_access),
    repo: QuoteRepository = Depends(get_repository),
):
    return employee_to_dict(repo.require_employee(employee_id))


@router.patch('/{employee_id}')
def employees_update(
    employee_id: int,
    payload: EmployeeRequest,
    request: Request,
    principal: Principal = Depends(admin_access),
    repo: QuoteRepository = Depends(get_repository),
):
    employee = update_employee(
        repo,
        actor_id=principal.id,
        employee_id=employee_id,
        patch=payload.model_dump(exclude_unset=True),
        ip=get_client_ip(request),
    )
    repo.commit()
    return employee_to_dict(employee)


@router.delete('/{employee_id}')
def employees_delete(
    employee_id: int,
    request: Request,
    principal: Principal = Depends(admin_access),
    repo: QuoteRepository = Depends(get_repository),
):
    delete_employee(repo, actor_id=principal.id, employee_id=employee_id, ip=get_client_ip(request))
    repo.commit()
    return {'message': f'Employee {employee_id} deleted'}
