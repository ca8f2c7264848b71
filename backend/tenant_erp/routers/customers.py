"""Customer endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, Principal
from ..database import get_db
from ..http_utils import paginated, request_meta
from ..permissions import Action, Resource
from ..schemas import CustomerCreate, CustomerResponse, CustomerUpdate, PaginatedResponse
from ..services.activity_log import record_activity
from ..use_cases.catalog import (
    create_customer_use_case,
    deactivate_customer_use_case,
    get_customer_use_case,
    list_customers_use_case,
    update_customer_use_case,
)

router = APIRouter(prefix="/customers", tags=["customers"])


@router.post("", response_model=CustomerResponse, status_code=status.HTTP_201_CREATED)
def create_customer(
    payload: CustomerCreate,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.CUSTOMER, Action.CREATE)),
    db: Session = Depends(get_db),
):
    customer = create_customer_use_case(db=db, principal=principal, payload=payload)
    record_activity(
        db,
        action="CUSTOMER_CREATED",
        resource="customer",
        principal=principal,
        resource_id=customer.id,
        **request_meta(request),
    )
    return CustomerResponse.model_validate(customer)


@router.get("", response_model=PaginatedResponse)
def list_customers(
    company_id: Optional[UUID] = None,
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(PermissionChecker(Resource.CUSTOMER, Action.READ)),
    db: Session = Depends(get_db),
):
    customers, total = list_customers_use_case(
        db=db,
        principal=principal,
        company_id=company_id,
        search=search,
        page=page,
        limit=limit,
    )
    return paginated([CustomerResponse.model_validate(c) for c in customers], total=total, page=page, limit=limit)


@router.get("/{customer_id}", response_model=CustomerResponse)
def get_customer(
    customer_id: UUID,
    principal: Principal = Depends(PermissionChecker(Resource.CUSTOMER, Action.READ)),
    db: Session = Depends(get_db),
):
    return CustomerResponse.model_validate(get_customer_use_case(db=db, principal=principal, customer_id=customer_id))


@router.put("/{customer_id}", response_model=CustomerResponse)
def update_customer(
    customer_id: UUID,
    payload: CustomerUpdate,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.CUSTOMER, Action.UPDATE)),
    db: Session = Depends(get_db),
):
    customer = update_customer_use_case(db=db, principal=principal, customer_id=customer_id, payload=payload)
    record_activity(
        db,
        action="CUSTOMER_UPDATED",
        resource="customer",
        principal=principal,
        resource_id=customer.id,
        details=payload.model_dump(mode="json", exclude_unset=True),
        **request_meta(request),
    )
    return CustomerResponse.model_validate(customer)


@router.delete("/{customer_id}")
def delete_customer(
    customer_id: UUID,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.CUSTOMER, Action.DELETE)),
    db: Session = Depends(get_db),
):
    customer = deactivate_customer_use_case(db=db, principal=principal, customer_id=customer_id)
    record_activity(
        db,
        action="CUSTOMER_DELETED",
        resource="customer",
        principal=principal,
        resource_id=customer.id,
        **request_meta(request),
    )
    return {"message": "Customer deleted successfully"}
