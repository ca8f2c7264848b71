"""SQLAlchemy models.

Every tenant-owned table carries ``company_id``; it is the partition key the
scope resolver filters on.
"""
from sqlalchemy import (
    JSON, Boolean, CheckConstraint, Column, DateTime, ForeignKey, Index, Integer,
    Numeric, String, Text, UniqueConstraint, Uuid,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
from .database import Base


def default_subscription() -> dict:
    return {"plan": "FREE", "start_date": None, "end_date": None, "features": []}


def default_company_settings() -> dict:
    return {"currency": "USD", "timezone": "UTC", "tax_rate": 0}


class SuperAdmin(Base):
    """Platform operator. Lives outside every tenant."""
    __tablename__ = "super_admins"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="SUPER_ADMIN")
    is_active = Column(Boolean, nullable=False, default=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(role == "SUPER_ADMIN", name="chk_super_admin_role"),
    )


class Company(Base):
    """Tenant."""
    __tablename__ = "companies"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50), nullable=False)
    address = Column(Text, nullable=True)
    status = Column(String(20), nullable=False, default="PENDING", index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    subscription = Column(JSON, nullable=False, default=default_subscription)
    settings = Column(JSON, nullable=False, default=default_company_settings)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            status.in_(["PENDING", "APPROVED", "SUSPENDED", "REJECTED"]),
            name="chk_company_status",
        ),
    )

    users = relationship("User", back_populates="company")


class User(Base):
    """Tenant user (company admin, manager or plain user)."""
    __tablename__ = "users"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), unique=True, nullable=False, index=True)
    phone = Column(String(50), unique=True, nullable=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(50), nullable=False, default="USER", index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    is_deleted = Column(Boolean, nullable=False, default=False)
    failed_login_attempts = Column(Integer, nullable=False, default=0)
    lock_until = Column(DateTime(timezone=True), nullable=True)
    last_login = Column(DateTime(timezone=True), nullable=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            role.in_(["COMPANY_ADMIN", "MANAGER", "USER"]),
            name="chk_user_role",
        ),
        CheckConstraint("failed_login_attempts >= 0", name="chk_user_failed_attempts"),
    )

    company = relationship("Company", back_populates="users")


class Product(Base):
    __tablename__ = "products"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    sku = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    base_price = Column(Numeric(12, 2), nullable=False)
    cost_price = Column(Numeric(12, 2), nullable=True)
    tax_rate = Column(Numeric(5, 2), nullable=False, default=0)
    unit = Column(String(30), nullable=False, default="pcs")
    is_active = Column(Boolean, nullable=False, default=True)
    created_by = Column(Uuid, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("company_id", "sku", name="uq_product_company_sku"),
    )


class Customer(Base):
    __tablename__ = "customers"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    email = Column(String(255), nullable=True)
    phone = Column(String(50), nullable=False)
    address = Column(Text, nullable=True)
    total_purchases = Column(Integer, nullable=False, default=0)
    total_spent = Column(Numeric(14, 2), nullable=False, default=0)
    last_purchase_date = Column(DateTime(timezone=True), nullable=True)
    notes = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("company_id", "phone", name="uq_customer_company_phone"),
    )


class Inventory(Base):
    """Current stock per (company, product, variation).

    ``variation_sku`` is stored as an empty string for the base product so the
    unique constraint also covers products without variations.
    """
    __tablename__ = "inventory"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False, index=True)
    variation_sku = Column(String(100), nullable=False, default="")
    current_stock = Column(Integer, nullable=False, default=0)
    min_stock_level = Column(Integer, nullable=False, default=10)
    max_stock_level = Column(Integer, nullable=True)
    location = Column(String(255), nullable=True)
    last_restock_date = Column(DateTime(timezone=True), nullable=True)
    last_stock_out_date = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("company_id", "product_id", "variation_sku", name="uq_inventory_company_product_sku"),
        CheckConstraint("current_stock >= 0", name="chk_inventory_stock_non_negative"),
        CheckConstraint("min_stock_level >= 0", name="chk_inventory_min_level"),
    )

    product = relationship("Product")


class StockMovement(Base):
    """Append-only stock ledger entry."""
    __tablename__ = "stock_movements"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False)
    variation_sku = Column(String(100), nullable=False, default="")
    type = Column(String(20), nullable=False)
    quantity = Column(Integer, nullable=False)
    previous_stock = Column(Integer, nullable=False)
    new_stock = Column(Integer, nullable=False)
    reason = Column(String(255), nullable=True)
    reference_id = Column(String(100), nullable=True)
    performed_by = Column(Uuid, nullable=False)
    notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint(type.in_(["IN", "OUT", "ADJUSTMENT"]), name="chk_stock_movement_type"),
        CheckConstraint("quantity >= 0", name="chk_stock_movement_quantity"),
        Index("idx_stock_movements_company_product", "company_id", "product_id"),
        Index("idx_stock_movements_company_created", "company_id", "created_at"),
    )


class Invoice(Base):
    __tablename__ = "invoices"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    invoice_number = Column(String(32), nullable=False)
    customer_id = Column(Uuid, ForeignKey("customers.id"), nullable=True, index=True)
    customer_name = Column(String(255), nullable=True)
    subtotal = Column(Numeric(14, 2), nullable=False)
    discount = Column(Numeric(14, 2), nullable=False, default=0)
    tax = Column(Numeric(14, 2), nullable=False, default=0)
    grand_total = Column(Numeric(14, 2), nullable=False)
    payment_method = Column(String(20), nullable=False)
    payment_status = Column(String(20), nullable=False)
    paid_amount = Column(Numeric(14, 2), nullable=False, default=0)
    due_amount = Column(Numeric(14, 2), nullable=False, default=0)
    status = Column(String(20), nullable=False, default="COMPLETED", index=True)
    notes = Column(Text, nullable=True)
    created_by = Column(Uuid, nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        UniqueConstraint("company_id", "invoice_number", name="uq_invoice_company_number"),
        CheckConstraint(
            payment_method.in_(["CASH", "CARD", "BANK_TRANSFER", "DUE"]),
            name="chk_invoice_payment_method",
        ),
        CheckConstraint(payment_status.in_(["PAID", "PARTIAL", "DUE"]), name="chk_invoice_payment_status"),
        CheckConstraint(status.in_(["COMPLETED", "CANCELLED", "REFUNDED"]), name="chk_invoice_status"),
    )

    items = relationship(
        "InvoiceItem",
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceItem.position",
    )


class InvoiceItem(Base):
    __tablename__ = "invoice_items"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    invoice_id = Column(Uuid, ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False, index=True)
    position = Column(Integer, nullable=False, default=0)
    product_id = Column(Uuid, ForeignKey("products.id"), nullable=False)
    product_name = Column(String(255), nullable=False)
    variation_sku = Column(String(100), nullable=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(12, 2), nullable=False)
    discount = Column(Numeric(12, 2), nullable=False, default=0)
    tax = Column(Numeric(12, 2), nullable=False, default=0)
    total = Column(Numeric(14, 2), nullable=False)

    __table_args__ = (
        CheckConstraint("quantity > 0", name="chk_invoice_item_quantity"),
    )

    invoice = relationship("Invoice", back_populates="items")


class InvoiceSequence(Base):
    """Per-company monthly invoice counter (locked while allocating)."""
    __tablename__ = "invoice_sequences"

    company_id = Column(Uuid, ForeignKey("companies.id"), primary_key=True)
    period = Column(String(6), primary_key=True)  # YYYYMM
    last_value = Column(Integer, nullable=False, default=0)


class RoleRequest(Base):
    """A USER's request to be promoted to MANAGER, reviewed by a company admin."""
    __tablename__ = "role_requests"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, ForeignKey("companies.id"), nullable=False, index=True)
    user_id = Column(Uuid, ForeignKey("users.id"), nullable=False, index=True)
    current_role = Column(String(50), nullable=False)
    requested_role = Column(String(50), nullable=False, default="MANAGER")
    status = Column(String(20), nullable=False, default="PENDING")
    reason = Column(Text, nullable=True)
    reviewed_by = Column(Uuid, nullable=True)
    reviewed_at = Column(DateTime(timezone=True), nullable=True)
    review_notes = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(requested_role == "MANAGER", name="chk_role_request_requested_role"),
        CheckConstraint(status.in_(["PENDING", "APPROVED", "REJECTED"]), name="chk_role_request_status"),
        Index("idx_role_requests_company_status", "company_id", "status"),
        # At most one open request per user.
        Index(
            "uq_role_requests_pending_user",
            "user_id",
            unique=True,
            postgresql_where=(status == "PENDING"),
            sqlite_where=(status == "PENDING"),
        ),
    )

    user = relationship("User")


class ActivityLog(Base):
    """Audit trail of successful mutating operations."""
    __tablename__ = "activity_logs"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    company_id = Column(Uuid, nullable=True, index=True)
    user_id = Column(Uuid, nullable=True)
    user_email = Column(String(255), nullable=True)
    action = Column(String(100), nullable=False)
    resource = Column(String(100), nullable=False)
    resource_id = Column(String(100), nullable=True)
    details = Column(JSON, nullable=True)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
