"""Credential verification and account lockout.

Two disjoint credential spaces exist: tenant users and super-admins. Login
tries the tenant space first, then the super-admin space, and hands back one
tagged ``PrincipalSeed`` either way. Only tenant users carry a lockout
counter; super-admin logins are never locked out.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.orm import Session

from ..auth import Principal, get_password_hash, verify_password
from ..config import settings
from ..domain_errors import BadRequest, Forbidden, NotFound, Unauthorized
from ..enums import CompanyStatus, PrincipalKind
from ..models import Company, SuperAdmin, User
from ..permissions import Role
from ..timeutils import as_utc, minutes_until, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PrincipalSeed:
    """Authenticated identity handed to the token issuer."""

    kind: PrincipalKind
    user_id: UUID
    email: str
    role: Role
    company_id: Optional[UUID] = None
    name: Optional[str] = None


def _account_locked(lock_until: datetime, now: datetime) -> Forbidden:
    minutes = minutes_until(lock_until, now)
    return Forbidden(
        "ACCOUNT_LOCKED",
        f"Account is locked due to too many failed login attempts. Try again in {minutes} minute(s).",
        details={
            "retry_after_minutes": minutes,
            "retry_after_seconds": max(1, int((as_utc(lock_until) - as_utc(now)).total_seconds())),
        },
    )


def _find_tenant_user(db: Session, email: str) -> Optional[User]:
    return db.query(User).filter(
        func.lower(User.email) == email,
        User.is_deleted == False,  # noqa: E712
    ).first()


def _find_super_admin(db: Session, email: str) -> Optional[SuperAdmin]:
    return db.query(SuperAdmin).filter(func.lower(SuperAdmin.email) == email).first()


def _check_company(db: Session, user: User) -> None:
    company = db.query(Company).filter(
        Company.id == user.company_id,
        Company.is_deleted == False,  # noqa: E712
    ).first()
    if company is None:
        raise NotFound("COMPANY_NOT_FOUND", "Company not found")
    if company.status != CompanyStatus.APPROVED.value:
        raise Forbidden("COMPANY_NOT_APPROVED", "Your company is not approved yet")
    if not company.is_active:
        raise Forbidden("COMPANY_SUSPENDED", "Your company account has been suspended")


def _register_failure(db: Session, user: User, now: datetime) -> None:
    """Count a failed password for ``user``; lock the account at the threshold."""
    # Single UPDATE so concurrent failures cannot lose increments.
    db.query(User).filter(User.id == user.id).update(
        {User.failed_login_attempts: User.failed_login_attempts + 1},
        synchronize_session=False,
    )
    attempts = db.query(User.failed_login_attempts).filter(User.id == user.id).scalar() or 0

    threshold = settings.AUTH_LOGIN_USER_FAIL_THRESHOLD
    if attempts >= threshold:
        lock_until = now + timedelta(seconds=settings.AUTH_LOGIN_USER_LOCK_SECONDS)
        db.query(User).filter(User.id == user.id).update(
            {User.lock_until: lock_until},
            synchronize_session=False,
        )
        db.commit()
        logger.warning("Account locked after %s failed logins: user=%s", attempts, user.id)
        raise _account_locked(lock_until, now)

    db.commit()
    raise Unauthorized(
        "INVALID_CREDENTIALS",
        "Invalid credentials",
        details={"attempts_remaining": threshold - attempts},
    )


def _authenticate_tenant_user(db: Session, user: User, password: str, now: datetime) -> PrincipalSeed:
    if not user.is_active:
        raise Forbidden("ACCOUNT_INACTIVE", "Account is inactive. Please contact your administrator.")

    lock_until = as_utc(user.lock_until)
    if lock_until is not None:
        if lock_until > now:
            raise _account_locked(lock_until, now)
        # Lock elapsed: the user gets a fresh set of attempts.
        user.lock_until = None
        user.failed_login_attempts = 0
        db.flush()

    _check_company(db, user)

    if not verify_password(password, user.password_hash):
        _register_failure(db, user, now)

    user.failed_login_attempts = 0
    user.lock_until = None
    user.last_login = now
    db.commit()
    return PrincipalSeed(
        kind=PrincipalKind.TENANT_USER,
        user_id=user.id,
        email=user.email,
        role=Role(user.role),
        company_id=user.company_id,
        name=user.name,
    )


def _authenticate_super_admin(db: Session, admin: SuperAdmin, password: str, now: datetime) -> PrincipalSeed:
    if not admin.is_active:
        raise Forbidden("ACCOUNT_INACTIVE", "Account is inactive")
    if not verify_password(password, admin.password_hash):
        raise Unauthorized("INVALID_CREDENTIALS", "Invalid credentials")

    admin.last_login = now
    db.commit()
    return PrincipalSeed(
        kind=PrincipalKind.SUPER_ADMIN,
        user_id=admin.id,
        email=admin.email,
        role=Role.SUPER_ADMIN,
        name=admin.name,
    )


def authenticate(db: Session, *, email: str, password: str, now: datetime | None = None) -> PrincipalSeed:
    """Verify credentials and return the principal seed, enforcing lockout."""
    now = as_utc(now) or utc_now()
    normalized = email.strip().lower()

    user = _find_tenant_user(db, normalized)
    if user is not None:
        return _authenticate_tenant_user(db, user, password, now)

    admin = _find_super_admin(db, normalized)
    if admin is not None:
        return _authenticate_super_admin(db, admin, password, now)

    raise NotFound("USER_NOT_FOUND", "User not found")


def change_password(db: Session, *, principal: Principal, current_password: str, new_password: str) -> None:
    """Change the caller's own password after re-verifying the current one."""
    if principal.is_super_admin:
        account = db.query(SuperAdmin).filter(SuperAdmin.id == principal.user_id).first()
    else:
        account = db.query(User).filter(
            User.id == principal.user_id,
            User.company_id == principal.company_id,
        ).first()
    if account is None:
        raise NotFound("USER_NOT_FOUND", "User not found")

    if not verify_password(current_password, account.password_hash):
        raise BadRequest("CURRENT_PASSWORD_INVALID", "Current password is incorrect")
    if len(new_password) < settings.PASSWORD_MIN_LENGTH:
        raise BadRequest(
            "PASSWORD_TOO_SHORT",
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters",
        )
    if verify_password(new_password, account.password_hash):
        raise BadRequest("PASSWORD_UNCHANGED", "New password must differ from the current one")

    account.password_hash = get_password_hash(new_password)
    db.commit()


def unlock_expired_accounts(db: Session, *, now: datetime | None = None) -> int:
    """Clear locks whose window has elapsed and reset their failure counters."""
    now = as_utc(now) or utc_now()
    count = db.query(User).filter(
        User.lock_until.isnot(None),
        User.lock_until <= now,
    ).update(
        {User.lock_until: None, User.failed_login_attempts: 0},
        synchronize_session=False,
    )
    db.commit()
    return int(count or 0)
