"""Company endpoints (registration and lifecycle)."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, Principal, RoleChecker
from ..database import get_db
from ..enums import CompanyStatus
from ..http_utils import paginated, request_meta
from ..permissions import Action, Resource, Role
from ..schemas import (
    CompanyApproveRequest,
    CompanyRegisterRequest,
    CompanyRegisterResponse,
    CompanyResponse,
    CompanyUpdate,
    PaginatedResponse,
)
from ..security import require_company_id
from ..services.activity_log import record_activity
from ..use_cases.company_lifecycle import (
    approve_company_use_case,
    delete_company_use_case,
    get_company_use_case,
    list_companies_use_case,
    register_company_use_case,
    reject_company_use_case,
    suspend_company_use_case,
    update_company_use_case,
)

router = APIRouter(prefix="/companies", tags=["companies"])

super_admin_only = RoleChecker(Role.SUPER_ADMIN)


@router.post("/register", response_model=CompanyRegisterResponse, status_code=status.HTTP_201_CREATED)
def register_company(payload: CompanyRegisterRequest, request: Request, db: Session = Depends(get_db)):
    """Public sign-up. The company waits in PENDING until a super-admin approves it."""
    company = register_company_use_case(db=db, payload=payload)
    record_activity(
        db,
        action="COMPANY_REGISTERED",
        resource="company",
        company_id=company.id,
        resource_id=company.id,
        details=payload.model_dump(mode="json"),
        **request_meta(request),
    )
    return CompanyRegisterResponse(
        message="Company registered successfully. Awaiting approval.",
        company=CompanyResponse.model_validate(company),
    )


@router.get("", response_model=PaginatedResponse)
def list_companies(
    status_filter: Optional[CompanyStatus] = Query(default=None, alias="status"),
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(super_admin_only),
    db: Session = Depends(get_db),
):
    """List companies (super-admin)."""
    companies, total = list_companies_use_case(db=db, status=status_filter, search=search, page=page, limit=limit)
    return paginated(
        [CompanyResponse.model_validate(c) for c in companies],
        total=total,
        page=page,
        limit=limit,
    )


@router.get("/me", response_model=CompanyResponse)
def get_my_company(
    principal: Principal = Depends(PermissionChecker(Resource.COMPANY, Action.READ)),
    db: Session = Depends(get_db),
):
    """The caller's own company."""
    company_id = require_company_id(principal)
    return CompanyResponse.model_validate(get_company_use_case(db=db, principal=principal, company_id=company_id))


@router.get("/{company_id}", response_model=CompanyResponse)
def get_company(
    company_id: UUID,
    principal: Principal = Depends(PermissionChecker(Resource.COMPANY, Action.READ)),
    db: Session = Depends(get_db),
):
    """Get company by ID."""
    return CompanyResponse.model_validate(get_company_use_case(db=db, principal=principal, company_id=company_id))


@router.put("/{company_id}", response_model=CompanyResponse)
def update_company(
    company_id: UUID,
    payload: CompanyUpdate,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.COMPANY, Action.UPDATE)),
    db: Session = Depends(get_db),
):
    """Update company profile and settings."""
    company = update_company_use_case(db=db, principal=principal, company_id=company_id, payload=payload)
    record_activity(
        db,
        action="COMPANY_UPDATED",
        resource="company",
        principal=principal,
        company_id=company.id,
        resource_id=company.id,
        details=payload.model_dump(mode="json", exclude_unset=True),
        **request_meta(request),
    )
    return CompanyResponse.model_validate(company)


def _lifecycle_response(db: Session, request: Request, principal: Principal, company, action: str) -> CompanyResponse:
    record_activity(
        db,
        action=action,
        resource="company",
        principal=principal,
        company_id=company.id,
        resource_id=company.id,
        details={"status": company.status},
        **request_meta(request),
    )
    return CompanyResponse.model_validate(company)


@router.patch("/{company_id}/approve", response_model=CompanyResponse)
def approve_company(
    company_id: UUID,
    request: Request,
    payload: Optional[CompanyApproveRequest] = Body(default=None),
    principal: Principal = Depends(super_admin_only),
    db: Session = Depends(get_db),
):
    """Approve a pending company and activate its admins."""
    company = approve_company_use_case(
        db=db,
        company_id=company_id,
        subscription=payload.subscription if payload else None,
    )
    return _lifecycle_response(db, request, principal, company, "COMPANY_APPROVED")


@router.patch("/{company_id}/reject", response_model=CompanyResponse)
def reject_company(
    company_id: UUID,
    request: Request,
    principal: Principal = Depends(super_admin_only),
    db: Session = Depends(get_db),
):
    """Reject a pending company."""
    company = reject_company_use_case(db=db, company_id=company_id)
    return _lifecycle_response(db, request, principal, company, "COMPANY_REJECTED")


@router.patch("/{company_id}/suspend", response_model=CompanyResponse)
def suspend_company(
    company_id: UUID,
    request: Request,
    principal: Principal = Depends(super_admin_only),
    db: Session = Depends(get_db),
):
    """Suspend a company and deactivate all of its users."""
    company = suspend_company_use_case(db=db, company_id=company_id)
    return _lifecycle_response(db, request, principal, company, "COMPANY_SUSPENDED")


@router.delete("/{company_id}")
def delete_company(
    company_id: UUID,
    request: Request,
    principal: Principal = Depends(super_admin_only),
    db: Session = Depends(get_db),
):
    """Soft-delete a company and its users."""
    company = delete_company_use_case(db=db, company_id=company_id)
    record_activity(
        db,
        action="COMPANY_DELETED",
        resource="company",
        principal=principal,
        company_id=company.id,
        resource_id=company.id,
        **request_meta(request),
    )
    return {"message": "Company deleted successfully"}
