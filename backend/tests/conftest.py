"""
Pytest fixtures: in-memory database per test, two tenants, and an API client.
"""
from __future__ import annotations

import os

# Must be set before tenant_erp.config is imported.
os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("ENV", "test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key")
os.environ.setdefault("PASSWORD_BCRYPT_ROUNDS", "4")
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")

from decimal import Decimal

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.orm import sessionmaker

from tenant_erp import models  # noqa: F401
from tenant_erp.auth import Principal, get_password_hash
from tenant_erp.database import Base, build_engine, get_db
from tenant_erp.enums import CompanyStatus
from tenant_erp.main import app
from tenant_erp.models import Company, Customer, Product, SuperAdmin, User
from tenant_erp.permissions import Role
from tenant_erp.services.rate_limit import MemoryCounterStore, get_counter_store

PASSWORD = "secret123"


@pytest.fixture()
def db_session():
    """Fresh schema for every test."""
    engine = build_engine("sqlite://")
    Base.metadata.create_all(bind=engine)
    session = sessionmaker(bind=engine, autocommit=False, autoflush=False)()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def make_company(db, *, name: str, email: str, status: CompanyStatus = CompanyStatus.APPROVED, is_active=True):
    company = Company(
        company_name=name,
        email=email,
        phone="+1000",
        status=status.value,
        is_active=is_active,
        subscription=models.default_subscription(),
        settings=models.default_company_settings(),
    )
    db.add(company)
    db.commit()
    return company


def make_user(db, company, *, email: str, role: Role = Role.COMPANY_ADMIN, password: str = PASSWORD, is_active=True):
    user = User(
        company_id=company.id,
        name=email.split("@")[0],
        email=email,
        password_hash=get_password_hash(password),
        role=role.value,
        is_active=is_active,
    )
    db.add(user)
    db.commit()
    return user


def make_product(db, company, *, sku: str, name: str | None = None, price: str = "10.00", is_active=True):
    product = Product(
        company_id=company.id,
        sku=sku,
        name=name or sku,
        base_price=Decimal(price),
        is_active=is_active,
    )
    db.add(product)
    db.commit()
    return product


def make_customer(db, company, *, phone: str, name: str = "Walk-in"):
    customer = Customer(company_id=company.id, name=name, phone=phone)
    db.add(customer)
    db.commit()
    return customer


def principal_for(account) -> Principal:
    return Principal(
        user_id=account.id,
        email=account.email,
        role=Role(account.role),
        company_id=getattr(account, "company_id", None),
        name=account.name,
    )


@pytest.fixture()
def company_a(db_session):
    return make_company(db_session, name="Acme Corp", email="office@acme.test")


@pytest.fixture()
def company_b(db_session):
    return make_company(db_session, name="Beta Inc", email="office@beta.test")


@pytest.fixture()
def admin_a(db_session, company_a):
    return make_user(db_session, company_a, email="admin@acme.test")


@pytest.fixture()
def admin_b(db_session, company_b):
    return make_user(db_session, company_b, email="admin@beta.test")


@pytest.fixture()
def manager_a(db_session, company_a):
    return make_user(db_session, company_a, email="manager@acme.test", role=Role.MANAGER)


@pytest.fixture()
def super_admin(db_session):
    admin = SuperAdmin(
        name="Root",
        email="root@platform.test",
        password_hash=get_password_hash(PASSWORD),
        role=Role.SUPER_ADMIN.value,
    )
    db_session.add(admin)
    db_session.commit()
    return admin


@pytest.fixture()
def counter_store():
    return MemoryCounterStore()


@pytest.fixture()
def client(db_session, counter_store):
    def _override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = _override_get_db
    app.dependency_overrides[get_counter_store] = lambda: counter_store
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


def login(client: TestClient, email: str, password: str = PASSWORD):
    return client.post("/api/v1/auth/login", json={"email": email, "password": password})
