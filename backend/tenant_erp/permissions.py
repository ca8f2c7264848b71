"""Role/permission matrix and pure permission checks.

The matrix is static and enum-keyed. ``Resource.ANY`` and ``Action.ANY`` act
as wildcards. Anything not listed (or wildcarded) for a role is denied.
Role permission never implies tenant access; scoping is enforced separately
in ``security``.
"""
from __future__ import annotations

from enum import Enum
from typing import Any, Iterable


class Role(str, Enum):
    SUPER_ADMIN = "SUPER_ADMIN"
    COMPANY_ADMIN = "COMPANY_ADMIN"
    MANAGER = "MANAGER"
    USER = "USER"


class Resource(str, Enum):
    ANY = "*"
    COMPANY = "company"
    USER = "user"
    MANAGER = "manager"
    PRODUCT = "product"
    CATEGORY = "category"
    BRAND = "brand"
    INVENTORY = "inventory"
    SALES = "sales"
    CUSTOMER = "customer"
    REPORTS = "reports"
    LOGS = "logs"
    PROFILE = "profile"
    ROLE_REQUEST = "role_request"


class Action(str, Enum):
    ANY = "*"
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"
    ADJUST = "adjust"
    REFUND = "refund"
    APPROVE = "approve"
    REJECT = "reject"
    EXPORT = "export"


TENANT_ROLES: frozenset[Role] = frozenset({Role.COMPANY_ADMIN, Role.MANAGER, Role.USER})

_CRUD = frozenset({Action.CREATE, Action.READ, Action.UPDATE, Action.DELETE})
_CRU = frozenset({Action.CREATE, Action.READ, Action.UPDATE})

ROLE_PERMISSIONS: dict[Role, dict[Resource, frozenset[Action]]] = {
    Role.SUPER_ADMIN: {
        Resource.ANY: frozenset({Action.ANY}),
    },
    Role.COMPANY_ADMIN: {
        Resource.COMPANY: frozenset({Action.READ, Action.UPDATE}),
        Resource.USER: _CRUD,
        Resource.MANAGER: frozenset({Action.APPROVE, Action.REJECT}),
        Resource.PRODUCT: _CRUD,
        Resource.CATEGORY: _CRUD,
        Resource.BRAND: _CRUD,
        Resource.INVENTORY: _CRUD | {Action.ADJUST},
        Resource.SALES: _CRUD | {Action.REFUND},
        Resource.CUSTOMER: _CRUD,
        Resource.REPORTS: frozenset({Action.READ, Action.EXPORT}),
        Resource.LOGS: frozenset({Action.READ}),
    },
    Role.MANAGER: {
        Resource.PRODUCT: _CRU,
        Resource.CATEGORY: _CRU,
        Resource.BRAND: _CRU,
        Resource.INVENTORY: _CRU | {Action.ADJUST},
        Resource.SALES: _CRU,
        Resource.CUSTOMER: _CRU,
        Resource.REPORTS: frozenset({Action.READ}),
        Resource.USER: frozenset({Action.READ}),
    },
    Role.USER: {
        Resource.PROFILE: frozenset({Action.READ, Action.UPDATE}),
        Resource.ROLE_REQUEST: frozenset({Action.CREATE, Action.READ}),
    },
}


def _coerce(enum_cls, value):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        return None


def is_allowed(role: Role | str | None, resource: Resource | str, action: Action | str) -> bool:
    """Return True when ``role`` may perform ``action`` on ``resource``."""
    role_ = _coerce(Role, role)
    resource_ = _coerce(Resource, resource)
    action_ = _coerce(Action, action)
    if role_ is None or resource_ is None or action_ is None:
        return False

    grants = ROLE_PERMISSIONS.get(role_, {})
    for key in (resource_, Resource.ANY):
        actions = grants.get(key)
        if actions and (action_ in actions or Action.ANY in actions):
            return True
    return False


def has_role(principal: Any, allowed_roles: Iterable[Role | str]) -> bool:
    role = _coerce(Role, getattr(principal, "role", None))
    if role is None:
        return False
    allowed = {_coerce(Role, r) for r in allowed_roles}
    return role in allowed


def permissions_for(role: Role | str) -> dict[str, list[str]]:
    """Serializable grant set for a role (used by the session profile endpoint)."""
    role_ = _coerce(Role, role)
    if role_ is None:
        return {}
    return {
        resource.value: sorted(action.value for action in actions)
        for resource, actions in ROLE_PERMISSIONS[role_].items()
    }
