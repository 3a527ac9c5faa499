from __future__ import annotations

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from sqlalchemy.orm import Session

from quotedesk.auth import Principal, get_current_principal, principal_from_employee
from quotedesk.config import settings
from quotedesk.db import get_db
from quotedesk.dependencies import get_client_ip
from quotedesk.security.passwords import verify_and_rehash
from quotedesk.security.sessions import create_web_session, revoke_web_session
from quotedesk.services.audit_service import log_audit, log_auth_event
from quotedesk.services.quote_repository import QuoteRepository

router = APIRouter(tags=['auth'])

INVALID_LOGIN = {'kind': 'AuthenticationError', 'message': 'Invalid email or password'}


class LoginRequest(BaseModel):
    email: str
    password: str


def principal_to_dict(principal: Principal) -> dict:
    return {
        'id': principal.id,
        'name': principal.name,
        'email': principal.email,
        'roles': sorted(role.value for role in principal.roles),
        'capabilities': sorted(capability.value for capability in principal.capabilities),
    }


@router.post('/login')
def login(payload: LoginRequest, request: Request, db: Session = Depends(get_db)):
    email = payload.email.strip().lower()
    ip = get_client_ip(request)
    user_agent = request.headers.get('user-agent')

    employee = QuoteRepository(db).find_employee_by_email(email)
    failure_reason = None
    if not employee:
        failure_reason = 'UNKNOWN_EMAIL'
    elif not employee.active:
        failure_reason = 'INACTIVE_EMPLOYEE'
    else:
        valid, updated_hash = verify_and_rehash(payload.password, employee.password_hash)
        if not valid:
            failure_reason = 'BAD_PASSWORD'
        elif updated_hash:
            employee.password_hash = updated_hash

    if failure_reason:
        log_auth_event(
            db,
            attempted_email=email,
            success=False,
            failure_reason=failure_reason,
            employee_id=employee.id if employee else None,
            ip=ip,
            user_agent=user_agent,
        )
        db.commit()
        return JSONResponse(INVALID_LOGIN, status_code=401)

    token = create_web_session(db, employee.id, ip=ip, user_agent=user_agent)
    log_auth_event(
        db,
        attempted_email=email,
        success=True,
        failure_reason=None,
        employee_id=employee.id,
        ip=ip,
        user_agent=user_agent,
    )
    log_audit(db, actor_employee_id=employee.id, action='AUTH_LOGIN', ip=ip, metadata={'email': email})
    db.commit()

    response = JSONResponse(principal_to_dict(principal_from_employee(employee)))
    response.set_cookie(
        key=settings.session_cookie_name,
        value=token,
        httponly=True,
        secure=settings.session_cookie_secure,
        samesite=settings.session_cookie_samesite,
        max_age=settings.session_ttl_minutes * 60,
    )
    return response


@router.post('/logout')
def logout(request: Request, db: Session = Depends(get_db)):
    principal = getattr(request.state, 'principal', None)
    token = request.cookies.get(settings.session_cookie_name)
    if token:
        revoke_web_session(db, token)

    log_audit(
        db,
        actor_employee_id=principal.id if principal else None,
        action='AUTH_LOGOUT',
        ip=get_client_ip(request),
    )
    db.commit()

    response = JSONResponse({'message': 'Logged out'})
    response.delete_cookie(settings.session_cookie_name)
    return response


@router.get('/me')
def me(principal: Principal = Depends(get_current_principal)):
    return principal_to_dict(principal)
