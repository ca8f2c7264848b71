"""Staff management inside one company."""
from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..auth import Principal, get_password_hash
from ..domain_errors import BadRequest, Conflict, NotFound
from ..models import SuperAdmin, User
from ..permissions import TENANT_ROLES, Role
from ..schemas import UserCreate
from ..security import require_company_id, scoped_query
from ..services.pagination import paginate

logger = logging.getLogger(__name__)


def _tenant_role(value: str) -> Role:
    try:
        role = Role(value)
    except ValueError:
        role = None
    if role not in TENANT_ROLES:
        raise BadRequest("INVALID_ROLE", "Role must be COMPANY_ADMIN, MANAGER or USER")
    return role


def _get_user_or_404(*, db: Session, principal: Principal, user_id: UUID) -> User:
    user = scoped_query(db, User, principal, id=user_id, is_deleted=False).first()
    if not user:
        raise NotFound("USER_NOT_FOUND", "User not found")
    return user


def _forbid_self(principal: Principal, user: User, action: str) -> None:
    if user.id == principal.user_id:
        raise BadRequest("SELF_MODIFICATION", f"You cannot {action} your own account")


def create_user_use_case(*, db: Session, principal: Principal, payload: UserCreate) -> User:
    company_id = require_company_id(principal)
    role = _tenant_role(payload.role)
    email = payload.email.strip().lower()

    if db.query(User.id).filter(func.lower(User.email) == email).first() or db.query(SuperAdmin.id).filter(
        func.lower(SuperAdmin.email) == email
    ).first():
        raise Conflict("USER_EMAIL_EXISTS", "User with this email already exists")
    if payload.phone and db.query(User.id).filter(User.phone == payload.phone).first():
        raise Conflict("USER_PHONE_EXISTS", "User with this phone already exists")

    user = User(
        company_id=company_id,
        name=payload.name.strip(),
        email=email,
        phone=payload.phone,
        password_hash=get_password_hash(payload.password),
        role=role.value,
        is_active=True,
        created_by=principal.user_id,
    )
    db.add(user)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise Conflict("USER_EMAIL_EXISTS", "User with this email already exists")
    db.refresh(user)
    return user


def list_users_use_case(
    *,
    db: Session,
    principal: Principal,
    company_id: Optional[UUID] = None,
    role: Optional[str] = None,
    search: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[User], int]:
    query = scoped_query(db, User, principal, company_id=company_id, role=role, is_deleted=False)
    if search:
        query = query.filter(User.email.ilike(f"%{search.strip()}%"))
    return paginate(query.order_by(User.created_at.desc(), User.id.asc()), page=page, limit=limit)


def get_user_use_case(*, db: Session, principal: Principal, user_id: UUID) -> User:
    return _get_user_or_404(db=db, principal=principal, user_id=user_id)


def change_user_role_use_case(*, db: Session, principal: Principal, user_id: UUID, role: str) -> User:
    user = _get_user_or_404(db=db, principal=principal, user_id=user_id)
    _forbid_self(principal, user, "change the role of")
    new_role = _tenant_role(role)
    logger.info("Role change: user=%s %s -> %s by %s", user.id, user.role, new_role.value, principal.user_id)
    user.role = new_role.value
    db.commit()
    db.refresh(user)
    return user


def toggle_user_status_use_case(*, db: Session, principal: Principal, user_id: UUID) -> User:
    user = _get_user_or_404(db=db, principal=principal, user_id=user_id)
    _forbid_self(principal, user, "deactivate")
    user.is_active = not user.is_active
    db.commit()
    db.refresh(user)
    return user


def delete_user_use_case(*, db: Session, principal: Principal, user_id: UUID) -> User:
    user = _get_user_or_404(db=db, principal=principal, user_id=user_id)
    _forbid_self(principal, user, "delete")
    user.is_deleted = True
    user.is_active = False
    db.commit()
    return user
