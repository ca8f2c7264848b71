"""Product and customer use-cases (tenant-scoped)."""
from __future__ import annotations

from typing import Optional
from uuid import UUID

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import Principal
from ..domain_errors import Conflict
from ..models import Customer, Product
from ..schemas import CustomerCreate, CustomerUpdate, ProductCreate, ProductUpdate
from ..security import require_company_id, require_tenant_entity, scoped_query
from ..services.pagination import paginate


def _commit_unique(db: Session, *, code: str, message: str) -> None:
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict(code, message)


# Products

def create_product_use_case(*, db: Session, principal: Principal, payload: ProductCreate) -> Product:
    company_id = require_company_id(principal)
    sku = payload.sku.strip()
    if db.query(Product.id).filter(Product.company_id == company_id, Product.sku == sku).first():
        raise Conflict("PRODUCT_SKU_EXISTS", "Product with this SKU already exists")

    product = Product(
        company_id=company_id,
        name=payload.name.strip(),
        sku=sku,
        description=payload.description,
        base_price=payload.base_price,
        cost_price=payload.cost_price,
        tax_rate=payload.tax_rate,
        unit=payload.unit,
        is_active=True,
        created_by=principal.user_id,
    )
    db.add(product)
    _commit_unique(db, code="PRODUCT_SKU_EXISTS", message="Product with this SKU already exists")
    db.refresh(product)
    return product


def get_product_use_case(*, db: Session, principal: Principal, product_id: UUID) -> Product:
    return require_tenant_entity(
        db,
        Product,
        entity_id=product_id,
        principal=principal,
        not_found="Product not found",
        code="PRODUCT_NOT_FOUND",
    )


def list_products_use_case(
    *,
    db: Session,
    principal: Principal,
    company_id: Optional[UUID] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Product], int]:
    query = scoped_query(db, Product, principal, company_id=company_id, is_active=is_active)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Product.name.ilike(pattern), Product.sku.ilike(pattern)))
    return paginate(query.order_by(Product.name.asc(), Product.id.asc()), page=page, limit=limit)


def update_product_use_case(
    *,
    db: Session,
    principal: Principal,
    product_id: UUID,
    payload: ProductUpdate,
) -> Product:
    product = get_product_use_case(db=db, principal=principal, product_id=product_id)
    for field, value in payload.model_dump(exclude_unset=True).items():
        if field in {"name", "base_price", "tax_rate", "unit", "is_active"} and value is None:
            continue
        setattr(product, field, value)
    db.commit()
    db.refresh(product)
    return product


def deactivate_product_use_case(*, db: Session, principal: Principal, product_id: UUID) -> Product:
    """Products stay referenced by the ledger and invoices, so they are never hard-deleted."""
    product = get_product_use_case(db=db, principal=principal, product_id=product_id)
    product.is_active = False
    db.commit()
    db.refresh(product)
    return product


# Customers

def _phone_taken(db: Session, *, company_id: UUID, phone: str, exclude_id: Optional[UUID] = None) -> bool:
    query = db.query(Customer.id).filter(Customer.company_id == company_id, Customer.phone == phone)
    if exclude_id is not None:
        query = query.filter(Customer.id != exclude_id)
    return query.first() is not None


def create_customer_use_case(*, db: Session, principal: Principal, payload: CustomerCreate) -> Customer:
    company_id = require_company_id(principal)
    phone = payload.phone.strip()
    if _phone_taken(db, company_id=company_id, phone=phone):
        raise Conflict("CUSTOMER_PHONE_EXISTS", "Customer with this phone already exists")

    customer = Customer(
        company_id=company_id,
        name=payload.name.strip(),
        email=payload.email.strip().lower() if payload.email else None,
        phone=phone,
        address=payload.address,
        notes=payload.notes,
    )
    db.add(customer)
    _commit_unique(db, code="CUSTOMER_PHONE_EXISTS", message="Customer with this phone already exists")
    db.refresh(customer)
    return customer


def get_customer_use_case(*, db: Session, principal: Principal, customer_id: UUID) -> Customer:
    return require_tenant_entity(
        db,
        Customer,
        entity_id=customer_id,
        principal=principal,
        not_found="Customer not found",
        code="CUSTOMER_NOT_FOUND",
    )


def list_customers_use_case(
    *,
    db: Session,
    principal: Principal,
    company_id: Optional[UUID] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Customer], int]:
    query = scoped_query(db, Customer, principal, company_id=company_id, is_active=True)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(
            Customer.name.ilike(pattern),
            Customer.phone.ilike(pattern),
            Customer.email.ilike(pattern),
        ))
    return paginate(query.order_by(Customer.name.asc(), Customer.id.asc()), page=page, limit=limit)


def update_customer_use_case(
    *,
    db: Session,
    principal: Principal,
    customer_id: UUID,
    payload: CustomerUpdate,
) -> Customer:
    customer = get_customer_use_case(db=db, principal=principal, customer_id=customer_id)
    changes = payload.model_dump(exclude_unset=True)
    phone = changes.get("phone")
    if phone and _phone_taken(db, company_id=customer.company_id, phone=phone.strip(), exclude_id=customer.id):
        raise Conflict("CUSTOMER_PHONE_EXISTS", "Customer with this phone already exists")
    for field, value in changes.items():
        if field in {"name", "phone"} and value is None:
            continue
        setattr(customer, field, value.strip() if isinstance(value, str) and field == "phone" else value)
    _commit_unique(db, code="CUSTOMER_PHONE_EXISTS", message="Customer with this phone already exists")
    db.refresh(customer)
    return customer


def deactivate_customer_use_case(*, db: Session, principal: Principal, customer_id: UUID) -> Customer:
    customer = get_customer_use_case(db=db, principal=principal, customer_id=customer_id)
    customer.is_active = False
    db.commit()
    db.refresh(customer)
    return customer
