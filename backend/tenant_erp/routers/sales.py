"""Sales invoice endpoints."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, Principal, RoleChecker
from ..database import get_db
from ..enums import InvoiceStatus, PaymentStatus
from ..http_utils import paginated, request_meta
from ..permissions import Action, Resource, Role
from ..schemas import InvoiceCreate, InvoiceResponse, PaginatedResponse
from ..security import require_company_id
from ..services.activity_log import record_activity
from ..use_cases.sales_invoices import (
    cancel_invoice_use_case,
    create_invoice_use_case,
    get_invoice_use_case,
    list_invoices_use_case,
    refund_invoice_use_case,
)

router = APIRouter(prefix="/sales", tags=["sales"])

# Cancel and refund are reserved for the company admin.
company_admin_only = RoleChecker(Role.COMPANY_ADMIN)


def _audit(db: Session, request: Request, principal: Principal, invoice, action: str) -> None:
    record_activity(
        db,
        action=action,
        resource="sales",
        principal=principal,
        resource_id=invoice.id,
        details={
            "invoice_number": invoice.invoice_number,
            "grand_total": str(invoice.grand_total),
            "status": invoice.status,
        },
        **request_meta(request),
    )


@router.post("/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
def create_invoice(
    payload: InvoiceCreate,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.SALES, Action.CREATE)),
    db: Session = Depends(get_db),
):
    """Create an invoice and issue its stock."""
    invoice = create_invoice_use_case(
        db=db,
        company_id=require_company_id(principal),
        actor_id=principal.user_id,
        payload=payload,
    )
    _audit(db, request, principal, invoice, "INVOICE_CREATED")
    return InvoiceResponse.model_validate(invoice)


@router.get("/invoices", response_model=PaginatedResponse)
def list_invoices(
    company_id: Optional[UUID] = None,
    status_filter: Optional[InvoiceStatus] = Query(default=None, alias="status"),
    payment_status: Optional[PaymentStatus] = None,
    customer_id: Optional[UUID] = None,
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(PermissionChecker(Resource.SALES, Action.READ)),
    db: Session = Depends(get_db),
):
    invoices, total = list_invoices_use_case(
        db=db,
        principal=principal,
        company_id=company_id,
        status=status_filter,
        payment_status=payment_status,
        customer_id=customer_id,
        start=start_date,
        end=end_date,
        page=page,
        limit=limit,
    )
    return paginated([InvoiceResponse.model_validate(i) for i in invoices], total=total, page=page, limit=limit)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
def get_invoice(
    invoice_id: UUID,
    principal: Principal = Depends(PermissionChecker(Resource.SALES, Action.READ)),
    db: Session = Depends(get_db),
):
    return InvoiceResponse.model_validate(get_invoice_use_case(db=db, principal=principal, invoice_id=invoice_id))


@router.patch(
    "/invoices/{invoice_id}/cancel",
    response_model=InvoiceResponse,
    dependencies=[Depends(company_admin_only)],
)
def cancel_invoice(
    invoice_id: UUID,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.SALES, Action.UPDATE)),
    db: Session = Depends(get_db),
):
    """Cancel a completed invoice (no stock or customer effect). Company admins only."""
    invoice = cancel_invoice_use_case(db=db, principal=principal, invoice_id=invoice_id)
    _audit(db, request, principal, invoice, "INVOICE_CANCELLED")
    return InvoiceResponse.model_validate(invoice)


@router.post(
    "/invoices/{invoice_id}/refund",
    response_model=InvoiceResponse,
    dependencies=[Depends(company_admin_only)],
)
def refund_invoice(
    invoice_id: UUID,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.SALES, Action.REFUND)),
    db: Session = Depends(get_db),
):
    """Refund a completed invoice: restock and reverse customer totals."""
    invoice = refund_invoice_use_case(db=db, principal=principal, invoice_id=invoice_id)
    _audit(db, request, principal, invoice, "INVOICE_REFUNDED")
    return InvoiceResponse.model_validate(invoice)
