"""Authentication and authorization."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Optional
import logging
import time
from uuid import UUID
from jose import JWTError, jwt
from passlib.context import CryptContext
from fastapi import Depends, Request, Response
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.orm import Session
from .config import settings
from .database import get_db
from .domain_errors import Forbidden, Unauthorized
from .enums import PrincipalKind
from .models import SuperAdmin, User
from .permissions import TENANT_ROLES, Action, Resource, Role, has_role, is_allowed

# Password hashing
pwd_context = CryptContext(
    schemes=["bcrypt"],
    deprecated="auto",
    bcrypt__rounds=settings.PASSWORD_BCRYPT_ROUNDS,
)
logger = logging.getLogger(__name__)

# Bearer token scheme; the session cookie is tried first so the header is optional.
security = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class Principal:
    """Authenticated caller reconstructed from a verified token."""

    user_id: UUID
    email: str
    role: Role
    company_id: Optional[UUID] = None
    name: Optional[str] = None

    @property
    def is_super_admin(self) -> bool:
        return self.role == Role.SUPER_ADMIN

    @property
    def kind(self) -> PrincipalKind:
        return PrincipalKind.SUPER_ADMIN if self.is_super_admin else PrincipalKind.TENANT_USER


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """Verify password against hash."""
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except Exception:
        # Invalid/corrupted hash should not crash login flow.
        logger.exception("Password verification failed due to invalid hash format")
        return False


def get_password_hash(password: str) -> str:
    """Hash password."""
    return pwd_context.hash(password)


# Alias for convenience
hash_password = get_password_hash


def create_access_token(seed: Any, expires_delta: Optional[timedelta] = None) -> str:
    """Create JWT access token for an authenticated principal seed."""
    role = Role(seed.role)
    to_encode: dict[str, Any] = {
        "sub": str(seed.user_id),
        "email": seed.email,
        "role": role.value,
    }
    if seed.company_id is not None:
        to_encode["company_id"] = str(seed.company_id)
    now = int(time.time())
    if expires_delta:
        exp = now + int(expires_delta.total_seconds())
    else:
        exp = now + int(settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60
    to_encode.update({"exp": exp, "iat": now, "type": "access"})
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def _invalid_token(message: str = "Could not validate credentials") -> Unauthorized:
    return Unauthorized("TOKEN_INVALID", message)


def decode_token(token: str) -> dict:
    """Decode JWT token."""
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_exp": False},
        )
    except JWTError:
        raise _invalid_token()

    now = int(time.time())
    exp = payload.get("exp")
    if exp is None:
        raise _invalid_token()
    try:
        exp_int = int(exp)
    except (TypeError, ValueError):
        raise _invalid_token()
    if now > exp_int + int(settings.JWT_LEEWAY_SECONDS):
        raise Unauthorized("TOKEN_EXPIRED", "Token expired")

    iat = payload.get("iat")
    if iat is not None:
        try:
            iat_int = int(iat)
        except (TypeError, ValueError):
            raise _invalid_token()
        # Reject tokens issued in the future (clock skew / forged tokens).
        if iat_int > now + int(settings.JWT_LEEWAY_SECONDS):
            raise _invalid_token()
    return payload


def principal_from_token(token: str) -> Principal:
    """Verify ``token`` and rebuild the principal from its claims."""
    payload = decode_token(token)
    if payload.get("type") != "access":
        raise _invalid_token("Invalid token type")

    try:
        user_id = UUID(str(payload.get("sub")))
        role = Role(payload.get("role"))
    except ValueError:
        raise _invalid_token()

    company_id = None
    raw_company = payload.get("company_id")
    if raw_company is not None:
        try:
            company_id = UUID(str(raw_company))
        except ValueError:
            raise _invalid_token()
    if role in TENANT_ROLES and company_id is None:
        raise _invalid_token()

    email = payload.get("email")
    if not isinstance(email, str) or not email:
        raise _invalid_token()
    return Principal(user_id=user_id, email=email, role=role, company_id=company_id)


def extract_token(request: Request, credentials: Optional[HTTPAuthorizationCredentials]) -> Optional[str]:
    """Session cookie first, bearer header as fallback."""
    cookie_token = request.cookies.get(settings.AUTH_COOKIE_NAME)
    if cookie_token:
        return cookie_token
    if credentials and credentials.scheme.lower() == "bearer" and credentials.credentials:
        return credentials.credentials
    return None


def set_auth_cookie(response: Response, token: str) -> None:
    response.set_cookie(
        key=settings.AUTH_COOKIE_NAME,
        value=token,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
        path=settings.AUTH_COOKIE_PATH,
        max_age=int(settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES) * 60,
    )


def clear_auth_cookie(response: Response) -> None:
    response.delete_cookie(
        key=settings.AUTH_COOKIE_NAME,
        path=settings.AUTH_COOKIE_PATH,
        httponly=True,
        secure=settings.auth_cookie_secure,
        samesite=settings.auth_cookie_samesite,
    )


def _load_account(db: Session, claims: Principal):
    if claims.is_super_admin:
        return db.query(SuperAdmin).filter(SuperAdmin.id == claims.user_id).first()
    return db.query(User).filter(
        User.id == claims.user_id,
        User.company_id == claims.company_id,
        User.is_deleted == False,  # noqa: E712
    ).first()


def get_current_principal(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    db: Session = Depends(get_db),
) -> Principal:
    """Get current authenticated principal."""
    token = extract_token(request, credentials)
    if not token:
        raise Unauthorized("AUTH_REQUIRED", "Authentication required")

    claims = principal_from_token(token)
    account = _load_account(db, claims)
    if account is None:
        raise Unauthorized("ACCOUNT_NOT_FOUND", "User not found")
    if not account.is_active:
        raise Forbidden("ACCOUNT_INACTIVE", "Account is inactive")

    # Role changes take effect on the next request, not at token expiry.
    return Principal(
        user_id=account.id,
        email=account.email,
        role=Role(account.role),
        company_id=getattr(account, "company_id", None),
        name=account.name,
    )


# Permission checks
class PermissionChecker:
    """Require a (resource, action) grant for the current principal's role."""

    def __init__(self, resource: Resource, action: Action):
        self.resource = resource
        self.action = action

    def __call__(self, principal: Principal = Depends(get_current_principal)) -> Principal:
        if not is_allowed(principal.role, self.resource, self.action):
            logger.info(
                "Permission denied: user=%s role=%s resource=%s action=%s",
                principal.user_id, principal.role.value, self.resource.value, self.action.value,
            )
            raise Forbidden(
                "PERMISSION_DENIED",
                f"Permission denied: {self.resource.value}:{self.action.value} required",
            )
        return principal


class RoleChecker:
    """Require one of the given roles."""

    def __init__(self, *roles: Role):
        self.roles = roles

    def __call__(self, principal: Principal = Depends(get_current_principal)) -> Principal:
        if not has_role(principal, self.roles):
            raise Forbidden("ROLE_NOT_ALLOWED", "Access denied for this role")
        return principal
