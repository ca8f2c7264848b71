from __future__ import annotations

import pytest

from conftest import login, make_user, principal_for
from tenant_erp.domain_errors import BadRequest, Conflict, NotFound
from tenant_erp.enums import RoleRequestStatus
from tenant_erp.models import ActivityLog, RoleRequest
from tenant_erp.permissions import Role
from tenant_erp.schemas import RoleRequestCreate
from tenant_erp.use_cases.role_requests import (
    approve_role_request_use_case,
    create_role_request_use_case,
    list_own_role_requests_use_case,
    list_role_requests_use_case,
    reject_role_request_use_case,
)


@pytest.fixture()
def clerk_a(db_session, company_a):
    return make_user(db_session, company_a, email="clerk@acme.test", role=Role.USER)


@pytest.fixture()
def clerk_b(db_session, company_b):
    return make_user(db_session, company_b, email="clerk@beta.test", role=Role.USER)


def _ask(db, user, reason: str = "I run the night shift alone") -> RoleRequest:
    return create_role_request_use_case(db=db, principal=principal_for(user), payload=RoleRequestCreate(reason=reason))


def test_user_requests_manager_role(db_session, company_a, clerk_a) -> None:
    request = _ask(db_session, clerk_a)

    assert request.status == RoleRequestStatus.PENDING.value
    assert request.company_id == company_a.id
    assert request.current_role == "USER"
    assert request.requested_role == "MANAGER"


def test_only_one_pending_request_per_user(db_session, clerk_a) -> None:
    _ask(db_session, clerk_a)

    with pytest.raises(Conflict) as exc_info:
        _ask(db_session, clerk_a)
    assert exc_info.value.code == "ROLE_REQUEST_PENDING"
    assert db_session.query(RoleRequest).count() == 1


def test_managers_and_admins_cannot_request(db_session, admin_a, manager_a) -> None:
    for account in (admin_a, manager_a):
        with pytest.raises(BadRequest) as exc_info:
            _ask(db_session, account)
        assert exc_info.value.code == "ROLE_ALREADY_GRANTED"


def test_approval_promotes_requester(db_session, admin_a, clerk_a) -> None:
    request = _ask(db_session, clerk_a)

    approved = approve_role_request_use_case(
        db=db_session,
        principal=principal_for(admin_a),
        request_id=request.id,
        review_notes="Welcome aboard",
    )

    assert approved.status == RoleRequestStatus.APPROVED.value
    assert approved.reviewed_by == admin_a.id
    assert approved.reviewed_at is not None
    assert approved.review_notes == "Welcome aboard"
    db_session.refresh(clerk_a)
    assert clerk_a.role == Role.MANAGER.value


def test_rejection_keeps_role_and_allows_a_new_request(db_session, admin_a, clerk_a) -> None:
    request = _ask(db_session, clerk_a)

    rejected = reject_role_request_use_case(db=db_session, principal=principal_for(admin_a), request_id=request.id)

    assert rejected.status == RoleRequestStatus.REJECTED.value
    db_session.refresh(clerk_a)
    assert clerk_a.role == Role.USER.value
    assert _ask(db_session, clerk_a).status == RoleRequestStatus.PENDING.value


@pytest.mark.parametrize("first", [approve_role_request_use_case, reject_role_request_use_case])
def test_only_pending_requests_can_be_reviewed(db_session, admin_a, clerk_a, first) -> None:
    request = _ask(db_session, clerk_a)
    first(db=db_session, principal=principal_for(admin_a), request_id=request.id)

    for review in (approve_role_request_use_case, reject_role_request_use_case):
        with pytest.raises(BadRequest) as exc_info:
            review(db=db_session, principal=principal_for(admin_a), request_id=request.id)
        assert exc_info.value.code == "ROLE_REQUEST_NOT_PENDING"


def test_approval_never_lowers_a_role_granted_meanwhile(db_session, admin_a, clerk_a) -> None:
    request = _ask(db_session, clerk_a)
    clerk_a.role = Role.COMPANY_ADMIN.value
    db_session.commit()

    approve_role_request_use_case(db=db_session, principal=principal_for(admin_a), request_id=request.id)

    db_session.refresh(clerk_a)
    assert clerk_a.role == Role.COMPANY_ADMIN.value


def test_requests_of_other_tenants_are_invisible(db_session, admin_a, admin_b, clerk_a, clerk_b) -> None:
    own = _ask(db_session, clerk_a)
    foreign = _ask(db_session, clerk_b)

    requests, total = list_role_requests_use_case(db=db_session, principal=principal_for(admin_a))
    assert total == 1
    assert requests[0].id == own.id

    with pytest.raises(NotFound) as exc_info:
        approve_role_request_use_case(db=db_session, principal=principal_for(admin_a), request_id=foreign.id)
    assert exc_info.value.code == "ROLE_REQUEST_NOT_FOUND"
    db_session.refresh(clerk_b)
    assert clerk_b.role == Role.USER.value


def test_listing_filters_by_status_and_own_history(db_session, admin_a, clerk_a, company_a) -> None:
    other = make_user(db_session, company_a, email="other@acme.test", role=Role.USER)
    first = _ask(db_session, clerk_a)
    reject_role_request_use_case(db=db_session, principal=principal_for(admin_a), request_id=first.id)
    _ask(db_session, clerk_a)
    _ask(db_session, other)

    pending, total = list_role_requests_use_case(
        db=db_session,
        principal=principal_for(admin_a),
        status=RoleRequestStatus.PENDING,
    )
    assert total == 2
    assert all(r.status == "PENDING" for r in pending)

    mine = list_own_role_requests_use_case(db=db_session, principal=principal_for(clerk_a))
    assert len(mine) == 2
    assert {r.user_id for r in mine} == {clerk_a.id}


def test_role_request_routes(client, db_session, admin_a, manager_a, clerk_a) -> None:
    login(client, clerk_a.email)
    too_short = client.post("/api/v1/role-requests", json={"reason": "pls"})
    assert too_short.status_code == 422
    created = client.post("/api/v1/role-requests", json={"reason": "I cover the warehouse on weekends"})
    assert created.status_code == 201
    request_id = created.json()["id"]
    assert client.get("/api/v1/role-requests/mine").json()[0]["status"] == "PENDING"
    assert client.get("/api/v1/role-requests").status_code == 403
    assert client.patch(f"/api/v1/role-requests/{request_id}/approve", json={}).status_code == 403
    client.cookies.clear()

    login(client, manager_a.email)
    assert client.post("/api/v1/role-requests", json={}).status_code == 403
    assert client.patch(f"/api/v1/role-requests/{request_id}/approve", json={}).status_code == 403
    client.cookies.clear()

    login(client, admin_a.email)
    listing = client.get("/api/v1/role-requests?status=PENDING").json()
    assert listing["pagination"]["total"] == 1
    approved = client.patch(f"/api/v1/role-requests/{request_id}/approve", json={"review_notes": "ok"})
    assert approved.status_code == 200
    assert approved.json()["status"] == "APPROVED"
    again = client.patch(f"/api/v1/role-requests/{request_id}/reject", json={})
    assert again.status_code == 400
    assert again.json()["code"] == "ROLE_REQUEST_NOT_PENDING"

    db_session.refresh(clerk_a)
    assert clerk_a.role == Role.MANAGER.value
    assert db_session.query(ActivityLog).filter(ActivityLog.action == "ROLE_REQUEST_APPROVED").count() == 1
