from __future__ import annotations

from sqlalchemy.orm import Session

from quotedesk.models import AuditLog, AuthEvent


def log_auth_event(
    db: Session,
    *,
    attempted_email: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    employee_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_email=attempted_email,
            success=success,
            failure_reason=failure_reason,
            employee_id=employee_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_employee_id: int | None,
    action: str,
    quote_id: int | None = None,
    ip: str | None = None,
    metadata: dict | None = None,
) -> None:
    db.add(
        AuditLog(
            actor_employee_id=actor_employee_id,
            action=action,
            quote_id=quote_id,
            ip=ip,
            meta=metadata or {},
        )
    )
