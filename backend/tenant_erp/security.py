"""Tenant scoping helpers (multi-tenant isolation and object-level access checks)."""

from __future__ import annotations

import logging
from typing import Any, TypeVar
from uuid import UUID

from sqlalchemy.orm import Query, Session

from .auth import Principal
from .domain_errors import Forbidden, NotFound

T = TypeVar("T")

logger = logging.getLogger(__name__)

TENANT_KEY = "company_id"


def scope_for(principal: Principal) -> dict[str, Any]:
    """Effective tenant filter for a principal.

    Super-admins see every tenant; anyone else is pinned to their company.
    """
    if principal.is_super_admin:
        return {}
    if principal.company_id is None:
        raise Forbidden("TENANT_CONTEXT_MISSING", "User not associated with any company")
    return {TENANT_KEY: principal.company_id}


def merge_scope(principal: Principal, filters: dict[str, Any] | None = None) -> dict[str, Any]:
    """AND caller filters with the principal's scope; the scope can never be widened."""
    merged = {key: value for key, value in (filters or {}).items() if value is not None}
    scope = scope_for(principal)
    if TENANT_KEY in scope:
        requested = merged.get(TENANT_KEY)
        if requested is not None and str(requested) != str(scope[TENANT_KEY]):
            logger.warning(
                "Cross-tenant filter rejected: user=%s company=%s requested=%s",
                principal.user_id, scope[TENANT_KEY], requested,
            )
            raise Forbidden("TENANT_SCOPE_VIOLATION", "Access to another company's data is not allowed")
        merged.update(scope)
    return merged


def apply_scope(query: Query, model: type, principal: Principal, **filters: Any) -> Query:
    """Apply the merged tenant filter to an existing query on ``model``."""
    for column, value in merge_scope(principal, filters).items():
        query = query.filter(getattr(model, column) == value)
    return query


def scoped_query(db: Session, model: type[T], principal: Principal, **filters: Any) -> Query:
    """Query ``model`` restricted to the principal's tenant (plus equality filters)."""
    return apply_scope(db.query(model), model, principal, **filters)


def require_tenant_entity(
    db: Session,
    model: type[T],
    *,
    entity_id: UUID,
    principal: Principal,
    not_found: str,
    code: str,
) -> T:
    """Load an entity by id inside the principal's tenant or raise 404.

    Rows owned by another tenant are reported as missing so existence is not leaked.
    """
    entity = scoped_query(db, model, principal, id=entity_id).first()
    if not entity:
        raise NotFound(code, not_found)
    return entity


def require_company_id(principal: Principal) -> UUID:
    """Concrete tenant for write operations that create tenant-owned rows."""
    if principal.company_id is None:
        raise Forbidden("TENANT_REQUIRED", "This operation requires a company account")
    return principal.company_id
