from __future__ import annotations

from uuid import uuid4

from sqlalchemy.exc import OperationalError

from conftest import principal_for
from tenant_erp.models import ActivityLog
from tenant_erp.services.activity_log import REDACTED, record_activity, sanitize


class FailingSession:
    def __init__(self) -> None:
        self.rolled_back = False

    def add(self, _row) -> None:
        pass

    def commit(self) -> None:
        raise OperationalError("INSERT INTO activity_logs", {}, Exception("disk full"))

    def rollback(self) -> None:
        self.rolled_back = True


def test_sanitize_redacts_nested_secrets() -> None:
    ref = uuid4()
    cleaned = sanitize({
        "email": "a@b.c",
        "Password": "hunter2",
        "nested": {"token": "abc", "ref": ref},
        "items": [{"cvv": "123", "qty": 2}],
    })

    assert cleaned == {
        "email": "a@b.c",
        "Password": REDACTED,
        "nested": {"token": REDACTED, "ref": str(ref)},
        "items": [{"cvv": REDACTED, "qty": 2}],
    }


def test_record_activity_persists_row_with_tenant(db_session, admin_a) -> None:
    record_activity(
        db_session,
        action="PRODUCT_CREATED",
        resource="product",
        principal=principal_for(admin_a),
        resource_id=uuid4(),
        details={"sku": "A-1", "admin_password": "x"},
        ip_address="10.0.0.1",
    )

    row = db_session.query(ActivityLog).one()
    assert row.company_id == admin_a.company_id
    assert row.user_id == admin_a.id
    assert row.details == {"sku": "A-1", "admin_password": REDACTED}
    assert row.ip_address == "10.0.0.1"


def test_record_activity_failure_is_swallowed() -> None:
    session = FailingSession()

    record_activity(session, action="LOGIN", resource="auth")

    assert session.rolled_back is True
