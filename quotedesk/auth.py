from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from fastapi import Depends, HTTPException, Request, status


class Role(str, Enum):
    SALES_ASSOCIATE = 'SALES_ASSOCIATE'
    QUOTE_MANAGER = 'QUOTE_MANAGER'
    PURCHASE_MANAGER = 'PURCHASE_MANAGER'
    ADMIN = 'ADMIN'


class Capability(str, Enum):
    CREATE_QUOTE = 'CREATE_QUOTE'
    EDIT_OWN_DRAFT = 'EDIT_OWN_DRAFT'
    FINALIZE_OWN_QUOTE = 'FINALIZE_OWN_QUOTE'
    REVISE_FINALIZED_QUOTE = 'REVISE_FINALIZED_QUOTE'
    SANCTION_QUOTE = 'SANCTION_QUOTE'
    APPLY_FINAL_DISCOUNT = 'APPLY_FINAL_DISCOUNT'
    CONVERT_TO_PURCHASE_ORDER = 'CONVERT_TO_PURCHASE_ORDER'
    EDIT_ANY_QUOTE = 'EDIT_ANY_QUOTE'
    ASSIGN_ANY_ASSOCIATE = 'ASSIGN_ANY_ASSOCIATE'
    VIEW_ALL_QUOTES = 'VIEW_ALL_QUOTES'
    MANAGE_EMPLOYEES = 'MANAGE_EMPLOYEES'


ROLE_CAPABILITIES: dict[Role, frozenset[Capability]] = {
    Role.SALES_ASSOCIATE: frozenset(
        {Capability.CREATE_QUOTE, Capability.EDIT_OWN_DRAFT, Capability.FINALIZE_OWN_QUOTE}
    ),
    Role.QUOTE_MANAGER: frozenset(
        {
            Capability.REVISE_FINALIZED_QUOTE,
            Capability.SANCTION_QUOTE,
            Capability.APPLY_FINAL_DISCOUNT,
            Capability.VIEW_ALL_QUOTES,
        }
    ),
    Role.PURCHASE_MANAGER: frozenset(
        {Capability.CONVERT_TO_PURCHASE_ORDER, Capability.APPLY_FINAL_DISCOUNT, Capability.VIEW_ALL_QUOTES}
    ),
    Role.ADMIN: frozenset(Capability),
}


def resolve_capabilities(roles) -> frozenset[Capability]:
    """Every capability granted by a role set; admin grants all of them."""
    granted: set[Capability] = set()
    for role in roles:
        granted |= ROLE_CAPABILITIES[Role(role)]
    return frozenset(granted)


def roles_from_flags(
    *,
    is_sales_associate: bool = False,
    is_quote_manager: bool = False,
    is_purchase_manager: bool = False,
    is_admin: bool = False,
) -> frozenset[Role]:
    roles = set()
    if is_sales_associate:
        roles.add(Role.SALES_ASSOCIATE)
    if is_quote_manager:
        roles.add(Role.QUOTE_MANAGER)
    if is_purchase_manager:
        roles.add(Role.PURCHASE_MANAGER)
    if is_admin:
        roles.add(Role.ADMIN)
    return frozenset(roles)


@dataclass(frozen=True)
class Principal:
    id: int
    name: str
    email: str
    roles: frozenset[Role] = field(default_factory=frozenset)
    active: bool = True

    @property
    def capabilities(self) -> frozenset[Capability]:
        return resolve_capabilities(self.roles)

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    @property
    def is_admin(self) -> bool:
        return Role.ADMIN in self.roles

    @property
    def is_sales_associate(self) -> bool:
        return Role.SALES_ASSOCIATE in self.roles


def principal_from_employee(employee) -> Principal:
    return Principal(
        id=employee.id,
        name=employee.name,
        email=employee.email,
        roles=roles_from_flags(
            is_sales_associate=employee.is_sales_associate,
            is_quote_manager=employee.is_quote_manager,
            is_purchase_manager=employee.is_purchase_manager,
            is_admin=employee.is_admin,
        ),
        active=employee.active,
    )


def get_current_principal(request: Request) -> Principal:
    principal = getattr(request.state, 'principal', None)
    if not principal:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED)
    if not principal.active:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
    return principal


def require_capability(*required: Capability):
    def _dep(principal: Principal = Depends(get_current_principal)) -> Principal:
        if not any(principal.can(capability) for capability in required):
            raise HTTPException(status_code=status.HTTP_403_FORBIDDEN)
        return principal

    return _dep
