"""Company (tenant) lifecycle use-cases.

PENDING -> APPROVED | REJECTED, APPROVED -> SUSPENDED. SUSPENDED and REJECTED
are terminal. Each cascade updates the company row first, then its users, in
one transaction.
"""
from __future__ import annotations

import logging
from typing import Any, Optional
from uuid import UUID

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import Principal, get_password_hash
from ..domain_errors import BadRequest, Conflict, NotFound
from ..enums import CompanyStatus
from ..models import Company, SuperAdmin, User, default_company_settings, default_subscription
from ..permissions import Role
from ..schemas import CompanyRegisterRequest, CompanyUpdate, SubscriptionOverride
from ..services.pagination import paginate
from ..timeutils import utc_now

logger = logging.getLogger(__name__)

_NOT_SUSPENDABLE = frozenset({CompanyStatus.SUSPENDED.value, CompanyStatus.REJECTED.value})


def _get_company_or_404(*, db: Session, company_id: UUID) -> Company:
    company = db.query(Company).filter(
        Company.id == company_id,
        Company.is_deleted == False,  # noqa: E712
    ).first()
    if not company:
        raise NotFound("COMPANY_NOT_FOUND", "Company not found")
    return company


def _require_pending(company: Company, action: str) -> None:
    if company.status != CompanyStatus.PENDING.value:
        raise BadRequest(
            "COMPANY_NOT_PENDING",
            f"Only pending companies can be {action}",
            details={"status": company.status},
        )


def _transition(company: Company, new_status: CompanyStatus) -> None:
    logger.info("Company %s: %s -> %s", company.id, company.status, new_status.value)
    company.status = new_status.value


def _email_taken(db: Session, email: str) -> bool:
    in_users = db.query(User.id).filter(func.lower(User.email) == email).first()
    if in_users:
        return True
    # Tenant logins are resolved before super-admin logins, so a tenant account
    # must never shadow a super-admin email.
    return db.query(SuperAdmin.id).filter(func.lower(SuperAdmin.email) == email).first() is not None


def register_company_use_case(*, db: Session, payload: CompanyRegisterRequest) -> Company:
    """Create a PENDING company together with its (inactive) first admin."""
    company_email = payload.email.strip().lower()
    admin_email = payload.admin_email.strip().lower()

    if db.query(Company.id).filter(func.lower(Company.email) == company_email).first():
        raise Conflict("COMPANY_EMAIL_EXISTS", "Company with this email already exists")
    if _email_taken(db, admin_email):
        raise Conflict("ADMIN_EMAIL_EXISTS", "User with this email already exists")
    if payload.admin_phone and db.query(User.id).filter(User.phone == payload.admin_phone).first():
        raise Conflict("ADMIN_PHONE_EXISTS", "User with this phone already exists")

    company = Company(
        company_name=payload.company_name.strip(),
        email=company_email,
        phone=payload.phone,
        address=payload.address,
        status=CompanyStatus.PENDING.value,
        is_active=True,
        is_deleted=False,
        subscription=default_subscription(),
        settings=default_company_settings(),
    )
    db.add(company)
    db.flush()

    db.add(User(
        company_id=company.id,
        name=payload.admin_name.strip(),
        email=admin_email,
        phone=payload.admin_phone,
        password_hash=get_password_hash(payload.admin_password),
        role=Role.COMPANY_ADMIN.value,
        is_active=False,
    ))
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("COMPANY_ALREADY_REGISTERED", "Company or admin account already exists")
    db.refresh(company)
    logger.info("Company registered: id=%s email=%s", company.id, company.email)
    return company


def _merged_subscription(current: Optional[dict], override: Optional[SubscriptionOverride]) -> dict:
    merged = dict(default_subscription())
    merged.update(current or {})
    if override is not None:
        merged.update(override.model_dump(mode="json", exclude_none=True))
    if not merged.get("start_date"):
        merged["start_date"] = utc_now().isoformat()
    return merged


def approve_company_use_case(
    *,
    db: Session,
    company_id: UUID,
    subscription: Optional[SubscriptionOverride] = None,
) -> Company:
    """PENDING -> APPROVED; activates every company admin."""
    company = _get_company_or_404(db=db, company_id=company_id)
    _require_pending(company, "approved")

    _transition(company, CompanyStatus.APPROVED)
    company.is_active = True
    # New dict so the JSON column is flagged dirty.
    company.subscription = _merged_subscription(company.subscription, subscription)
    db.query(User).filter(
        User.company_id == company.id,
        User.role == Role.COMPANY_ADMIN.value,
        User.is_deleted == False,  # noqa: E712
    ).update({User.is_active: True}, synchronize_session=False)
    db.commit()
    db.refresh(company)
    return company


def reject_company_use_case(*, db: Session, company_id: UUID) -> Company:
    """PENDING -> REJECTED."""
    company = _get_company_or_404(db=db, company_id=company_id)
    _require_pending(company, "rejected")

    _transition(company, CompanyStatus.REJECTED)
    db.commit()
    db.refresh(company)
    return company


def suspend_company_use_case(*, db: Session, company_id: UUID) -> Company:
    """Suspend the company and deactivate all of its users."""
    company = _get_company_or_404(db=db, company_id=company_id)
    if company.status in _NOT_SUSPENDABLE:
        raise BadRequest(
            "COMPANY_NOT_SUSPENDABLE",
            f"Company in status {company.status} cannot be suspended",
            details={"status": company.status},
        )

    _transition(company, CompanyStatus.SUSPENDED)
    company.is_active = False
    db.query(User).filter(User.company_id == company.id).update(
        {User.is_active: False},
        synchronize_session=False,
    )
    db.commit()
    db.refresh(company)
    return company


def delete_company_use_case(*, db: Session, company_id: UUID) -> Company:
    """Soft-delete the company and every user it owns."""
    company = _get_company_or_404(db=db, company_id=company_id)

    company.is_deleted = True
    company.is_active = False
    db.query(User).filter(User.company_id == company.id).update(
        {User.is_deleted: True, User.is_active: False},
        synchronize_session=False,
    )
    db.commit()
    logger.info("Company soft-deleted: id=%s", company.id)
    return company


def list_companies_use_case(
    *,
    db: Session,
    status: Optional[CompanyStatus] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Company], int]:
    query = db.query(Company).filter(Company.is_deleted == False)  # noqa: E712
    if status is not None:
        query = query.filter(Company.status == CompanyStatus(status).value)
    if search:
        pattern = f"%{search.strip()}%"
        query = query.filter(or_(Company.company_name.ilike(pattern), Company.email.ilike(pattern)))
    query = query.order_by(Company.created_at.desc(), Company.id.asc())
    return paginate(query, page=page, limit=limit)


def get_company_use_case(*, db: Session, principal: Principal, company_id: UUID) -> Company:
    """Super-admins see any company; tenant users only their own."""
    if not principal.is_super_admin and principal.company_id != company_id:
        raise NotFound("COMPANY_NOT_FOUND", "Company not found")
    return _get_company_or_404(db=db, company_id=company_id)


def update_company_use_case(
    *,
    db: Session,
    principal: Principal,
    company_id: UUID,
    payload: CompanyUpdate,
) -> Company:
    """Profile and settings edits. Status only changes through lifecycle actions."""
    company = get_company_use_case(db=db, principal=principal, company_id=company_id)
    changes: dict[str, Any] = payload.model_dump(exclude_unset=True, exclude_none=True)

    new_settings = changes.pop("settings", None)
    for field, value in changes.items():
        setattr(company, field, value)
    if new_settings is not None:
        merged = dict(default_company_settings())
        merged.update(company.settings or {})
        merged.update({k: (float(v) if k == "tax_rate" else v) for k, v in new_settings.items()})
        company.settings = merged

    db.commit()
    db.refresh(company)
    return company
