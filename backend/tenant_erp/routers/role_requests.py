"""Role upgrade request endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, Principal, RoleChecker
from ..database import get_db
from ..enums import RoleRequestStatus
from ..http_utils import paginated, request_meta
from ..permissions import Action, Resource, Role
from ..schemas import PaginatedResponse, RoleRequestCreate, RoleRequestResponse, RoleRequestReview
from ..services.activity_log import record_activity
from ..use_cases.role_requests import (
    approve_role_request_use_case,
    create_role_request_use_case,
    list_own_role_requests_use_case,
    list_role_requests_use_case,
    reject_role_request_use_case,
)

router = APIRouter(prefix="/role-requests", tags=["role-requests"])

# Requests are raised by plain users and reviewed by their company admin.
user_only = RoleChecker(Role.USER)
company_admin_only = RoleChecker(Role.COMPANY_ADMIN)


def _audit(db: Session, request: Request, principal: Principal, role_request, action: str) -> None:
    record_activity(
        db,
        action=action,
        resource="role_request",
        principal=principal,
        company_id=role_request.company_id,
        resource_id=role_request.id,
        details={"user_id": str(role_request.user_id), "status": role_request.status},
        **request_meta(request),
    )


@router.post(
    "",
    response_model=RoleRequestResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(user_only)],
)
def create_role_request(
    payload: RoleRequestCreate,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.ROLE_REQUEST, Action.CREATE)),
    db: Session = Depends(get_db),
):
    """Ask to be promoted to MANAGER."""
    role_request = create_role_request_use_case(db=db, principal=principal, payload=payload)
    _audit(db, request, principal, role_request, "ROLE_REQUEST_CREATED")
    return RoleRequestResponse.model_validate(role_request)


@router.get("/mine", response_model=list[RoleRequestResponse], dependencies=[Depends(user_only)])
def list_my_role_requests(
    principal: Principal = Depends(PermissionChecker(Resource.ROLE_REQUEST, Action.READ)),
    db: Session = Depends(get_db),
):
    requests = list_own_role_requests_use_case(db=db, principal=principal)
    return [RoleRequestResponse.model_validate(r) for r in requests]


@router.get("", response_model=PaginatedResponse, dependencies=[Depends(company_admin_only)])
def list_role_requests(
    status_filter: Optional[RoleRequestStatus] = Query(default=None, alias="status"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(PermissionChecker(Resource.MANAGER, Action.APPROVE)),
    db: Session = Depends(get_db),
):
    """Role requests of the caller's company."""
    requests, total = list_role_requests_use_case(
        db=db,
        principal=principal,
        status=status_filter,
        page=page,
        limit=limit,
    )
    return paginated([RoleRequestResponse.model_validate(r) for r in requests], total=total, page=page, limit=limit)


@router.patch("/{request_id}/approve", response_model=RoleRequestResponse, dependencies=[Depends(company_admin_only)])
def approve_role_request(
    request_id: UUID,
    payload: RoleRequestReview,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.MANAGER, Action.APPROVE)),
    db: Session = Depends(get_db),
):
    role_request = approve_role_request_use_case(
        db=db,
        principal=principal,
        request_id=request_id,
        review_notes=payload.review_notes,
    )
    _audit(db, request, principal, role_request, "ROLE_REQUEST_APPROVED")
    return RoleRequestResponse.model_validate(role_request)


@router.patch("/{request_id}/reject", response_model=RoleRequestResponse, dependencies=[Depends(company_admin_only)])
def reject_role_request(
    request_id: UUID,
    payload: RoleRequestReview,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.MANAGER, Action.REJECT)),
    db: Session = Depends(get_db),
):
    role_request = reject_role_request_use_case(
        db=db,
        principal=principal,
        request_id=request_id,
        review_notes=payload.review_notes,
    )
    _audit(db, request, principal, role_request, "ROLE_REQUEST_REJECTED")
    return RoleRequestResponse.model_validate(role_request)
