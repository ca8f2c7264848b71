"""Best-effort activity log writer."""
from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..models import ActivityLog

logger = logging.getLogger(__name__)

SENSITIVE_KEYS = frozenset({
    "password",
    "current_password",
    "new_password",
    "admin_password",
    "password_hash",
    "token",
    "refresh_token",
    "credit_card",
    "cvv",
})
REDACTED = "[REDACTED]"


def sanitize(value: Any) -> Any:
    """Recursively replace sensitive values before they reach the log table."""
    if isinstance(value, dict):
        return {
            key: REDACTED if str(key).lower() in SENSITIVE_KEYS else sanitize(item)
            for key, item in value.items()
        }
    if isinstance(value, (list, tuple)):
        return [sanitize(item) for item in value]
    if isinstance(value, UUID):
        return str(value)
    return value


def record_activity(
    db: Session,
    *,
    action: str,
    resource: str,
    principal: Any = None,
    company_id: Optional[UUID] = None,
    resource_id: Any = None,
    details: Optional[dict] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> None:
    """Write one activity row in its own commit.

    Failures are rolled back and logged; they never fail the operation that
    triggered them.
    """
    if company_id is None and principal is not None:
        company_id = getattr(principal, "company_id", None)
    try:
        db.add(
            ActivityLog(
                company_id=company_id,
                user_id=getattr(principal, "user_id", None),
                user_email=getattr(principal, "email", None),
                action=action,
                resource=resource,
                resource_id=str(resource_id) if resource_id is not None else None,
                details=sanitize(details or {}),
                ip_address=ip_address,
                user_agent=(user_agent or "")[:512] or None,
            )
        )
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("Failed to write activity log: action=%s resource=%s", action, resource)
