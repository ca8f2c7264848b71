"""Auth endpoints."""
import logging

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.orm import Session

from ..auth import (
    Principal,
    clear_auth_cookie,
    create_access_token,
    get_current_principal,
    set_auth_cookie,
)
from ..database import get_db
from ..domain_errors import DomainError
from ..enums import PrincipalKind
from ..http_utils import get_client_ip, request_meta, set_no_store
from ..permissions import Role, permissions_for
from ..schemas import ChangePasswordRequest, LoginRequest, LoginResponse, SessionUserResponse
from ..services.activity_log import record_activity
from ..services.credentials import authenticate, change_password
from ..services.rate_limit import CounterStore, enforce_login_rate_limit, get_counter_store

router = APIRouter(prefix="/auth", tags=["auth"])
logger = logging.getLogger(__name__)


def _session_user(identity) -> SessionUserResponse:
    role = Role(identity.role)
    return SessionUserResponse(
        id=identity.user_id,
        email=identity.email,
        name=identity.name,
        role=role.value,
        kind=(PrincipalKind.SUPER_ADMIN if role == Role.SUPER_ADMIN else PrincipalKind.TENANT_USER).value,
        company_id=identity.company_id,
        permissions=permissions_for(role),
    )


@router.post("/login", response_model=LoginResponse)
def login(
    payload: LoginRequest,
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
    store: CounterStore = Depends(get_counter_store),
):
    """Verify credentials and start a cookie session.

    The token only travels in the http-only cookie, never in the body.
    """
    set_no_store(response)
    enforce_login_rate_limit(store, get_client_ip(request))

    try:
        seed = authenticate(db, email=payload.email, password=payload.password)
    except DomainError as exc:
        logger.info("Login failed: email=%s code=%s", payload.email, exc.code)
        raise

    set_auth_cookie(response, create_access_token(seed))
    record_activity(
        db,
        action="LOGIN",
        resource="auth",
        principal=seed,
        resource_id=seed.user_id,
        **request_meta(request),
    )
    return LoginResponse(message="Login successful", user=_session_user(seed))


@router.post("/logout")
def logout(response: Response):
    """Clear the session cookie."""
    set_no_store(response)
    clear_auth_cookie(response)
    return {"message": "Logged out successfully"}


@router.get("/me", response_model=SessionUserResponse)
def me(response: Response, principal: Principal = Depends(get_current_principal)):
    """Current principal with its effective permissions."""
    set_no_store(response)
    return _session_user(principal)


@router.post("/change-password")
def change_own_password(
    payload: ChangePasswordRequest,
    request: Request,
    principal: Principal = Depends(get_current_principal),
    db: Session = Depends(get_db),
):
    """Change the caller's password."""
    change_password(
        db,
        principal=principal,
        current_password=payload.current_password,
        new_password=payload.new_password,
    )
    record_activity(
        db,
        action="PASSWORD_CHANGED",
        resource="auth",
        principal=principal,
        resource_id=principal.user_id,
        **request_meta(request),
    )
    return {"message": "Password changed successfully"}
