"""Seed the platform super-admin (and optionally a demo tenant)."""
import argparse
from decimal import Decimal
import logging

from alembic_bootstrap import stamp_if_unversioned
from tenant_erp.auth import get_password_hash
from tenant_erp.config import settings
from tenant_erp.database import Base, SessionLocal, engine
from tenant_erp.enums import CompanyStatus
from tenant_erp.models import Company, Product, SuperAdmin, User, default_company_settings, default_subscription
from tenant_erp.permissions import Role

logger = logging.getLogger("seed_data")


def seed_super_admin(db) -> SuperAdmin | None:
    """Create the super-admin from SUPER_ADMIN_EMAIL / SUPER_ADMIN_PASSWORD if missing."""
    if not settings.SUPER_ADMIN_EMAIL or not settings.SUPER_ADMIN_PASSWORD:
        logger.warning("SUPER_ADMIN_EMAIL / SUPER_ADMIN_PASSWORD not set; skipping super-admin seed")
        return None

    email = settings.SUPER_ADMIN_EMAIL.strip().lower()
    existing = db.query(SuperAdmin).filter(SuperAdmin.email == email).first()
    if existing:
        logger.info("Super-admin already exists: %s", email)
        return existing

    admin = SuperAdmin(
        name=settings.SUPER_ADMIN_NAME,
        email=email,
        password_hash=get_password_hash(settings.SUPER_ADMIN_PASSWORD),
        role=Role.SUPER_ADMIN.value,
        is_active=True,
    )
    db.add(admin)
    db.flush()
    logger.info("Super-admin created: %s", email)
    return admin


def seed_demo_company(db) -> Company:
    """Approved demo tenant with one admin, one manager and a few products."""
    company = db.query(Company).filter(Company.email == "demo@example.com").first()
    if company:
        return company

    company = Company(
        company_name="Demo Trading Co",
        email="demo@example.com",
        phone="+10000000000",
        status=CompanyStatus.APPROVED.value,
        subscription=default_subscription(),
        settings=default_company_settings(),
    )
    db.add(company)
    db.flush()

    for name, email, role in (
        ("Demo Admin", "admin@demo.example.com", Role.COMPANY_ADMIN),
        ("Demo Manager", "manager@demo.example.com", Role.MANAGER),
    ):
        db.add(User(
            company_id=company.id,
            name=name,
            email=email,
            password_hash=get_password_hash("demo1234"),
            role=role.value,
            is_active=True,
        ))

    for sku, name, price in (("SKU-001", "Notebook", "3.50"), ("SKU-002", "Pen", "1.20")):
        db.add(Product(company_id=company.id, sku=sku, name=name, base_price=Decimal(price)))
    db.flush()
    return company


def seed(with_demo: bool = False) -> None:
    """Seed database."""
    Base.metadata.create_all(bind=engine)
    stamp_if_unversioned(engine)
    db = SessionLocal()
    try:
        seed_super_admin(db)
        if with_demo:
            seed_demo_company(db)
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--demo", action="store_true", help="also create an approved demo company")
    args = parser.parse_args()
    seed(with_demo=args.demo)
