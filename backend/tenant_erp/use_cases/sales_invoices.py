"""Sales invoice use-cases.

Creating or refunding an invoice touches the invoice, the stock ledger and
the customer's purchase aggregates. All of it is one transaction: a failure
at any step (for example insufficient stock on the third line) rolls back
every earlier step.
"""
from __future__ import annotations

from datetime import datetime
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from ..auth import Principal
from ..domain_errors import BadRequest, DomainError, NotFound
from ..enums import InvoiceStatus, PaymentStatus
from ..models import Customer, Invoice, InvoiceItem, InvoiceSequence, Product
from ..schemas import InvoiceCreate
from ..security import apply_scope
from ..services.invoice_math import compute_invoice_totals, format_invoice_number, invoice_period
from ..services.pagination import paginate
from ..timeutils import as_utc, utc_now
from .inventory_ledger import stock_in, stock_out

logger = logging.getLogger(__name__)

_CONFLICT_IGNORING_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


def _lock_sequence(db: Session, *, company_id: UUID, period: str) -> Optional[InvoiceSequence]:
    return db.query(InvoiceSequence).filter(
        InvoiceSequence.company_id == company_id,
        InvoiceSequence.period == period,
    ).with_for_update().populate_existing().first()


def _create_sequence(db: Session, *, company_id: UUID, period: str) -> None:
    """Insert the month counter, tolerating a concurrent insert of the same row."""
    insert = _CONFLICT_IGNORING_INSERTS.get(db.get_bind().dialect.name)
    if insert is not None:
        db.execute(
            insert(InvoiceSequence)
            .values(company_id=company_id, period=period, last_value=0)
            .on_conflict_do_nothing(index_elements=["company_id", "period"])
        )
        return
    try:
        with db.begin_nested():
            db.add(InvoiceSequence(company_id=company_id, period=period, last_value=0))
    except IntegrityError:
        logger.info("Invoice sequence %s/%s created concurrently", company_id, period)


def _allocate_invoice_number(db: Session, *, company_id: UUID, now: datetime) -> str:
    """Next INV-YYYYMM-NNNN for the company, under a row lock on the month counter."""
    period = invoice_period(now)
    sequence = _lock_sequence(db, company_id=company_id, period=period)
    if sequence is None:
        _create_sequence(db, company_id=company_id, period=period)
        sequence = _lock_sequence(db, company_id=company_id, period=period)
    sequence.last_value += 1
    db.flush()
    return format_invoice_number(period, sequence.last_value)


def _load_customer(db: Session, *, company_id: UUID, customer_id: UUID) -> Customer:
    customer = db.query(Customer).filter(
        Customer.id == customer_id,
        Customer.company_id == company_id,
    ).with_for_update().first()
    if not customer:
        raise NotFound("CUSTOMER_NOT_FOUND", "Customer not found")
    return customer


def _load_products(db: Session, *, company_id: UUID, product_ids: set[UUID]) -> dict[UUID, Product]:
    products = db.query(Product).filter(
        Product.company_id == company_id,
        Product.id.in_(list(product_ids)),
        Product.is_active == True,  # noqa: E712
    ).all()
    found = {p.id: p for p in products}
    missing = product_ids - set(found)
    if missing:
        raise NotFound(
            "PRODUCT_NOT_FOUND",
            "Product not found",
            details={"product_ids": sorted(str(pid) for pid in missing)},
        )
    return found


def _get_invoice_for_update(db: Session, *, principal: Principal, invoice_id: UUID) -> Invoice:
    invoice = apply_scope(db.query(Invoice), Invoice, principal, id=invoice_id).with_for_update().first()
    if not invoice:
        raise NotFound("INVOICE_NOT_FOUND", "Invoice not found")
    return invoice


def _require_completed(invoice: Invoice, action: str) -> None:
    if invoice.status != InvoiceStatus.COMPLETED.value:
        raise BadRequest(
            "INVOICE_NOT_COMPLETED",
            f"Only completed invoices can be {action}",
            details={"status": invoice.status},
        )


def create_invoice_use_case(
    *,
    db: Session,
    company_id: UUID,
    actor_id: UUID,
    payload: InvoiceCreate,
    now: Optional[datetime] = None,
) -> Invoice:
    """Persist a COMPLETED invoice, issue stock for every line and update the customer."""
    if not payload.items:
        raise BadRequest("INVOICE_EMPTY", "Invoice must contain at least one item")
    now = as_utc(now) or utc_now()

    try:
        customer = None
        customer_name = payload.customer_name
        if payload.customer_id is not None:
            customer = _load_customer(db, company_id=company_id, customer_id=payload.customer_id)
            customer_name = customer_name or customer.name

        products = _load_products(
            db,
            company_id=company_id,
            product_ids={item.product_id for item in payload.items},
        )
        totals = compute_invoice_totals(payload.items, payload.discount, payload.paid_amount)
        invoice_number = _allocate_invoice_number(db, company_id=company_id, now=now)

        invoice = Invoice(
            company_id=company_id,
            invoice_number=invoice_number,
            customer_id=customer.id if customer else None,
            customer_name=customer_name,
            subtotal=totals.subtotal,
            discount=totals.discount,
            tax=totals.tax,
            grand_total=totals.grand_total,
            payment_method=payload.payment_method.value,
            payment_status=totals.payment_status.value,
            paid_amount=totals.paid_amount,
            due_amount=totals.due_amount,
            status=InvoiceStatus.COMPLETED.value,
            notes=payload.notes,
            created_by=actor_id,
        )
        for position, (item, total) in enumerate(zip(payload.items, totals.line_totals)):
            invoice.items.append(InvoiceItem(
                position=position,
                product_id=item.product_id,
                product_name=products[item.product_id].name,
                variation_sku=item.variation_sku,
                quantity=item.quantity,
                unit_price=item.unit_price,
                discount=item.discount,
                tax=item.tax,
                total=total,
            ))
        db.add(invoice)
        db.flush()

        for item in payload.items:
            stock_out(
                db,
                company_id=company_id,
                actor_id=actor_id,
                product_id=item.product_id,
                variation_sku=item.variation_sku,
                quantity=item.quantity,
                reason="Sale",
                reference_id=str(invoice.id),
                notes=f"Sale - Invoice {invoice_number}",
                autocommit=False,
                now=now,
            )

        if customer is not None:
            customer.total_purchases = (customer.total_purchases or 0) + 1
            customer.total_spent = (customer.total_spent or 0) + totals.grand_total
            customer.last_purchase_date = now

        db.commit()
    except (DomainError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(invoice)
    logger.info(
        "Invoice created: company=%s number=%s total=%s status=%s",
        company_id, invoice.invoice_number, invoice.grand_total, invoice.payment_status,
    )
    return invoice


def cancel_invoice_use_case(*, db: Session, principal: Principal, invoice_id: UUID) -> Invoice:
    """COMPLETED -> CANCELLED. Stock and customer aggregates are left as they are."""
    invoice = _get_invoice_for_update(db, principal=principal, invoice_id=invoice_id)
    _require_completed(invoice, "cancelled")

    invoice.status = InvoiceStatus.CANCELLED.value
    db.commit()
    db.refresh(invoice)
    return invoice


def refund_invoice_use_case(*, db: Session, principal: Principal, invoice_id: UUID) -> Invoice:
    """COMPLETED -> REFUNDED: restock every line and reverse the customer's aggregates."""
    try:
        invoice = _get_invoice_for_update(db, principal=principal, invoice_id=invoice_id)
        _require_completed(invoice, "refunded")

        for item in invoice.items:
            stock_in(
                db,
                company_id=invoice.company_id,
                actor_id=principal.user_id,
                product_id=item.product_id,
                variation_sku=item.variation_sku,
                quantity=item.quantity,
                reason="Refund",
                reference_id=str(invoice.id),
                notes=f"Refund - Invoice {invoice.invoice_number}",
                autocommit=False,
            )

        if invoice.customer_id is not None:
            customer = _load_customer(db, company_id=invoice.company_id, customer_id=invoice.customer_id)
            customer.total_purchases = max(0, (customer.total_purchases or 0) - 1)
            customer.total_spent = (customer.total_spent or 0) - invoice.grand_total

        invoice.status = InvoiceStatus.REFUNDED.value
        db.commit()
    except (DomainError, SQLAlchemyError):
        db.rollback()
        raise

    db.refresh(invoice)
    logger.info("Invoice refunded: company=%s number=%s", invoice.company_id, invoice.invoice_number)
    return invoice


def get_invoice_use_case(*, db: Session, principal: Principal, invoice_id: UUID) -> Invoice:
    invoice = apply_scope(
        db.query(Invoice).options(selectinload(Invoice.items)),
        Invoice,
        principal,
        id=invoice_id,
    ).first()
    if not invoice:
        raise NotFound("INVOICE_NOT_FOUND", "Invoice not found")
    return invoice


def list_invoices_use_case(
    *,
    db: Session,
    principal: Principal,
    company_id: Optional[UUID] = None,
    status: Optional[InvoiceStatus] = None,
    payment_status: Optional[PaymentStatus] = None,
    customer_id: Optional[UUID] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Invoice], int]:
    query = apply_scope(
        db.query(Invoice).options(selectinload(Invoice.items)),
        Invoice,
        principal,
        company_id=company_id,
        status=status.value if status else None,
        payment_status=payment_status.value if payment_status else None,
        customer_id=customer_id,
    )
    if start is not None:
        query = query.filter(Invoice.created_at >= as_utc(start))
    if end is not None:
        query = query.filter(Invoice.created_at <= as_utc(end))
    query = query.order_by(Invoice.created_at.desc(), Invoice.invoice_number.desc())
    return paginate(query, page=page, limit=limit)
