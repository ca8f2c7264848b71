"""Company user endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, Principal
from ..database import get_db
from ..http_utils import paginated, request_meta
from ..permissions import Action, Resource
from ..schemas import PaginatedResponse, UserCreate, UserResponse, UserRoleUpdate
from ..services.activity_log import record_activity
from ..use_cases.company_users import (
    change_user_role_use_case,
    create_user_use_case,
    delete_user_use_case,
    get_user_use_case,
    list_users_use_case,
    toggle_user_status_use_case,
)

router = APIRouter(prefix="/users", tags=["users"])


def _audit(db: Session, request: Request, principal: Principal, user, action: str, details: dict | None = None) -> None:
    record_activity(
        db,
        action=action,
        resource="user",
        principal=principal,
        company_id=user.company_id,
        resource_id=user.id,
        details=details,
        **request_meta(request),
    )


@router.post("", response_model=UserResponse, status_code=status.HTTP_201_CREATED)
def create_user(
    payload: UserCreate,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.USER, Action.CREATE)),
    db: Session = Depends(get_db),
):
    """Create a user in the caller's company."""
    user = create_user_use_case(db=db, principal=principal, payload=payload)
    _audit(db, request, principal, user, "USER_CREATED", payload.model_dump(mode="json"))
    return UserResponse.model_validate(user)


@router.get("", response_model=PaginatedResponse)
def list_users(
    company_id: Optional[UUID] = None,
    role: Optional[str] = None,
    search: Optional[str] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(PermissionChecker(Resource.USER, Action.READ)),
    db: Session = Depends(get_db),
):
    """Get users of the caller's company."""
    users, total = list_users_use_case(
        db=db,
        principal=principal,
        company_id=company_id,
        role=role,
        search=search,
        page=page,
        limit=limit,
    )
    return paginated([UserResponse.model_validate(u) for u in users], total=total, page=page, limit=limit)


@router.get("/{user_id}", response_model=UserResponse)
def get_user(
    user_id: UUID,
    principal: Principal = Depends(PermissionChecker(Resource.USER, Action.READ)),
    db: Session = Depends(get_db),
):
    """Get user by ID."""
    return UserResponse.model_validate(get_user_use_case(db=db, principal=principal, user_id=user_id))


@router.patch("/{user_id}/role", response_model=UserResponse)
def change_user_role(
    user_id: UUID,
    payload: UserRoleUpdate,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.USER, Action.UPDATE)),
    db: Session = Depends(get_db),
):
    """Change a user's role."""
    user = change_user_role_use_case(db=db, principal=principal, user_id=user_id, role=payload.role)
    _audit(db, request, principal, user, "USER_ROLE_CHANGED", {"role": user.role})
    return UserResponse.model_validate(user)


@router.patch("/{user_id}/toggle-status", response_model=UserResponse)
def toggle_user_status(
    user_id: UUID,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.USER, Action.UPDATE)),
    db: Session = Depends(get_db),
):
    """Activate or deactivate a user."""
    user = toggle_user_status_use_case(db=db, principal=principal, user_id=user_id)
    _audit(db, request, principal, user, "USER_STATUS_CHANGED", {"is_active": user.is_active})
    return UserResponse.model_validate(user)


@router.delete("/{user_id}")
def delete_user(
    user_id: UUID,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.USER, Action.DELETE)),
    db: Session = Depends(get_db),
):
    """Soft-delete a user."""
    user = delete_user_use_case(db=db, principal=principal, user_id=user_id)
    _audit(db, request, principal, user, "USER_DELETED")
    return {"message": "User deleted successfully"}
