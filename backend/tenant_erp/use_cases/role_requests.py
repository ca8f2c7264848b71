"""Role upgrade requests.

A USER asks to become MANAGER; a company admin approves or rejects the
request. Only PENDING requests can be reviewed, and a user has at most one
PENDING request at a time. Approval promotes the user in the same commit.
"""
from __future__ import annotations

from datetime import datetime
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import Principal
from ..domain_errors import BadRequest, Conflict, NotFound
from ..enums import RoleRequestStatus
from ..models import RoleRequest, User
from ..permissions import Role
from ..schemas import RoleRequestCreate
from ..security import require_company_id, scoped_query
from ..services.pagination import paginate
from ..timeutils import as_utc, utc_now

logger = logging.getLogger(__name__)


def _pending_exists(db: Session, user_id: UUID) -> bool:
    return db.query(RoleRequest.id).filter(
        RoleRequest.user_id == user_id,
        RoleRequest.status == RoleRequestStatus.PENDING.value,
    ).first() is not None


def create_role_request_use_case(*, db: Session, principal: Principal, payload: RoleRequestCreate) -> RoleRequest:
    company_id = require_company_id(principal)
    user = scoped_query(db, User, principal, id=principal.user_id, is_deleted=False).first()
    if not user:
        raise NotFound("USER_NOT_FOUND", "User not found")
    if user.role != Role.USER.value:
        raise BadRequest("ROLE_ALREADY_GRANTED", "You already have manager or admin role")
    if _pending_exists(db, user.id):
        raise Conflict("ROLE_REQUEST_PENDING", "You already have a pending request")

    request = RoleRequest(
        company_id=company_id,
        user_id=user.id,
        current_role=user.role,
        requested_role=Role.MANAGER.value,
        status=RoleRequestStatus.PENDING.value,
        reason=payload.reason.strip() if payload.reason else None,
    )
    db.add(request)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("ROLE_REQUEST_PENDING", "You already have a pending request")
    db.refresh(request)
    return request


def list_role_requests_use_case(
    *,
    db: Session,
    principal: Principal,
    status: Optional[RoleRequestStatus] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[RoleRequest], int]:
    """Requests of the caller's company, newest first."""
    query = scoped_query(db, RoleRequest, principal, status=status.value if status else None)
    return paginate(query.order_by(RoleRequest.created_at.desc(), RoleRequest.id.asc()), page=page, limit=limit)


def list_own_role_requests_use_case(*, db: Session, principal: Principal) -> list[RoleRequest]:
    return (
        scoped_query(db, RoleRequest, principal, user_id=principal.user_id)
        .order_by(RoleRequest.created_at.desc(), RoleRequest.id.asc())
        .all()
    )


def _get_pending_for_update(db: Session, *, principal: Principal, request_id: UUID) -> RoleRequest:
    request = scoped_query(db, RoleRequest, principal, id=request_id).with_for_update().first()
    if not request:
        raise NotFound("ROLE_REQUEST_NOT_FOUND", "Request not found")
    if request.status != RoleRequestStatus.PENDING.value:
        raise BadRequest(
            "ROLE_REQUEST_NOT_PENDING",
            "Request is not pending",
            details={"status": request.status},
        )
    return request


def _close(request: RoleRequest, *, principal: Principal, status: RoleRequestStatus, notes: Optional[str], now) -> None:
    request.status = status.value
    request.reviewed_by = principal.user_id
    request.reviewed_at = now
    request.review_notes = notes


def approve_role_request_use_case(
    *,
    db: Session,
    principal: Principal,
    request_id: UUID,
    review_notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RoleRequest:
    """PENDING -> APPROVED; a requester still holding USER becomes MANAGER."""
    request = _get_pending_for_update(db, principal=principal, request_id=request_id)
    user = scoped_query(db, User, principal, id=request.user_id, is_deleted=False).first()
    if not user:
        raise NotFound("USER_NOT_FOUND", "User not found")

    _close(request, principal=principal, status=RoleRequestStatus.APPROVED, notes=review_notes,
           now=as_utc(now) or utc_now())
    # A role granted in the meantime is never lowered by an old request.
    if user.role == Role.USER.value:
        user.role = Role.MANAGER.value
    logger.info("Role request approved: request=%s user=%s by %s", request.id, user.id, principal.user_id)
    db.commit()
    db.refresh(request)
    return request


def reject_role_request_use_case(
    *,
    db: Session,
    principal: Principal,
    request_id: UUID,
    review_notes: Optional[str] = None,
    now: Optional[datetime] = None,
) -> RoleRequest:
    """PENDING -> REJECTED; the requester's role is unchanged."""
    request = _get_pending_for_update(db, principal=principal, request_id=request_id)
    _close(request, principal=principal, status=RoleRequestStatus.REJECTED, notes=review_notes,
           now=as_utc(now) or utc_now())
    db.commit()
    db.refresh(request)
    return request
