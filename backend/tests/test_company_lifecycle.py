from __future__ import annotations

from uuid import uuid4

import pytest

from conftest import PASSWORD, make_company, make_user, principal_for
from tenant_erp.domain_errors import BadRequest, Conflict, Forbidden, NotFound
from tenant_erp.enums import CompanyStatus, SubscriptionPlan
from tenant_erp.models import Company, User
from tenant_erp.permissions import Role
from tenant_erp.schemas import CompanyRegisterRequest, CompanySettings, CompanyUpdate, SubscriptionOverride
from tenant_erp.services.credentials import authenticate
from tenant_erp.use_cases.company_lifecycle import (
    approve_company_use_case,
    delete_company_use_case,
    get_company_use_case,
    list_companies_use_case,
    register_company_use_case,
    reject_company_use_case,
    suspend_company_use_case,
    update_company_use_case,
)


def _registration(**overrides) -> CompanyRegisterRequest:
    data = {
        "company_name": "Delta Traders",
        "email": "hello@delta.test",
        "phone": "+15550001",
        "admin_name": "Dana Admin",
        "admin_email": "dana@delta.test",
        "admin_password": PASSWORD,
    }
    data.update(overrides)
    return CompanyRegisterRequest(**data)


def _register(db, **overrides) -> Company:
    return register_company_use_case(db=db, payload=_registration(**overrides))


def test_registration_creates_pending_company_with_inactive_admin(db_session) -> None:
    company = _register(db_session)

    assert company.status == CompanyStatus.PENDING.value
    assert company.subscription["plan"] == "FREE"
    admin = db_session.query(User).filter(User.company_id == company.id).one()
    assert admin.role == Role.COMPANY_ADMIN.value
    assert admin.is_active is False
    assert admin.password_hash != PASSWORD


def test_duplicate_company_email_conflicts(db_session) -> None:
    _register(db_session)
    with pytest.raises(Conflict) as exc_info:
        _register(db_session, admin_email="other@delta.test")
    assert exc_info.value.code == "COMPANY_EMAIL_EXISTS"
    assert exc_info.value.http_status == 409


def test_duplicate_admin_email_conflicts(db_session, admin_a) -> None:
    with pytest.raises(Conflict) as exc_info:
        _register(db_session, admin_email=admin_a.email.upper())
    assert exc_info.value.code == "ADMIN_EMAIL_EXISTS"


def test_admin_email_may_not_reuse_super_admin_email(db_session, super_admin) -> None:
    with pytest.raises(Conflict) as exc_info:
        _register(db_session, admin_email=super_admin.email)
    assert exc_info.value.code == "ADMIN_EMAIL_EXISTS"


def test_pending_company_admin_cannot_log_in(db_session) -> None:
    _register(db_session)
    with pytest.raises(Forbidden) as exc_info:
        authenticate(db_session, email="dana@delta.test", password=PASSWORD)
    assert exc_info.value.code == "ACCOUNT_INACTIVE"


def test_approve_activates_admins_and_applies_subscription(db_session) -> None:
    company = _register(db_session)

    approved = approve_company_use_case(
        db=db_session,
        company_id=company.id,
        subscription=SubscriptionOverride(plan=SubscriptionPlan.PREMIUM, features=["reports"]),
    )

    assert approved.status == CompanyStatus.APPROVED.value
    assert approved.subscription["plan"] == "PREMIUM"
    assert approved.subscription["features"] == ["reports"]
    assert approved.subscription["start_date"]
    seed = authenticate(db_session, email="dana@delta.test", password=PASSWORD)
    assert seed.company_id == company.id


@pytest.mark.parametrize("status", [CompanyStatus.APPROVED, CompanyStatus.REJECTED, CompanyStatus.SUSPENDED])
def test_only_pending_companies_can_be_approved_or_rejected(db_session, status) -> None:
    company = make_company(db_session, name="Eps", email="eps@test", status=status)

    with pytest.raises(BadRequest) as exc_info:
        approve_company_use_case(db=db_session, company_id=company.id)
    assert exc_info.value.code == "COMPANY_NOT_PENDING"

    with pytest.raises(BadRequest):
        reject_company_use_case(db=db_session, company_id=company.id)


def test_reject_pending_company(db_session) -> None:
    company = _register(db_session)
    rejected = reject_company_use_case(db=db_session, company_id=company.id)
    assert rejected.status == CompanyStatus.REJECTED.value


def test_suspend_deactivates_company_and_all_users(db_session, company_a, admin_a, manager_a) -> None:
    suspended = suspend_company_use_case(db=db_session, company_id=company_a.id)

    assert suspended.status == CompanyStatus.SUSPENDED.value
    assert suspended.is_active is False
    users = db_session.query(User).filter(User.company_id == company_a.id).all()
    assert users and all(u.is_active is False for u in users)

    with pytest.raises(Forbidden):
        authenticate(db_session, email=admin_a.email, password=PASSWORD)


@pytest.mark.parametrize("status", [CompanyStatus.SUSPENDED, CompanyStatus.REJECTED])
def test_terminal_companies_cannot_be_suspended(db_session, status) -> None:
    company = make_company(db_session, name="Zeta", email="zeta@test", status=status)
    with pytest.raises(BadRequest) as exc_info:
        suspend_company_use_case(db=db_session, company_id=company.id)
    assert exc_info.value.code == "COMPANY_NOT_SUSPENDABLE"


def test_delete_cascades_soft_delete_to_users(db_session, company_a, admin_a, company_b, admin_b) -> None:
    delete_company_use_case(db=db_session, company_id=company_a.id)

    db_session.refresh(admin_a)
    db_session.refresh(admin_b)
    assert admin_a.is_deleted is True
    assert admin_b.is_deleted is False

    with pytest.raises(NotFound):
        delete_company_use_case(db=db_session, company_id=company_a.id)
    with pytest.raises(NotFound):
        authenticate(db_session, email=admin_a.email, password=PASSWORD)


def test_unknown_company_is_not_found(db_session) -> None:
    with pytest.raises(NotFound) as exc_info:
        approve_company_use_case(db=db_session, company_id=uuid4())
    assert exc_info.value.code == "COMPANY_NOT_FOUND"


def test_tenant_user_only_sees_own_company(db_session, company_a, company_b, admin_a, super_admin) -> None:
    own = get_company_use_case(db=db_session, principal=principal_for(admin_a), company_id=company_a.id)
    assert own.id == company_a.id

    with pytest.raises(NotFound):
        get_company_use_case(db=db_session, principal=principal_for(admin_a), company_id=company_b.id)

    other = get_company_use_case(db=db_session, principal=principal_for(super_admin), company_id=company_b.id)
    assert other.id == company_b.id


def test_update_merges_settings(db_session, company_a, admin_a) -> None:
    updated = update_company_use_case(
        db=db_session,
        principal=principal_for(admin_a),
        company_id=company_a.id,
        payload=CompanyUpdate(address="1 Main St", settings=CompanySettings(currency="EUR", tax_rate="7.5")),
    )

    assert updated.address == "1 Main St"
    assert updated.settings == {"currency": "EUR", "timezone": "UTC", "tax_rate": 7.5}
    assert updated.status == CompanyStatus.APPROVED.value


def test_list_companies_filters_by_status(db_session, company_a, company_b) -> None:
    _register(db_session)

    pending, total = list_companies_use_case(db=db_session, status=CompanyStatus.PENDING)
    assert total == 1
    assert pending[0].email == "hello@delta.test"

    everything, total = list_companies_use_case(db=db_session)
    assert total == 3

    found, total = list_companies_use_case(db=db_session, search="beta")
    assert total == 1
    assert found[0].id == company_b.id


def test_user_added_to_suspended_company_cannot_log_in(db_session, company_a) -> None:
    suspend_company_use_case(db=db_session, company_id=company_a.id)
    user = make_user(db_session, company_a, email="late@acme.test", role=Role.MANAGER)

    with pytest.raises(Forbidden) as exc_info:
        authenticate(db_session, email=user.email, password=PASSWORD)
    assert exc_info.value.code == "COMPANY_NOT_APPROVED"
