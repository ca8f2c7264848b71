"""Pydantic schemas for API."""
from pydantic import BaseModel, Field, ConfigDict, field_validator
from typing import Optional
from datetime import datetime
from decimal import Decimal
from uuid import UUID

from .enums import (
    AdjustmentMode,
    CompanyStatus,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
    RoleRequestStatus,
    StockMovementType,
    SubscriptionPlan,
)


def _normalize_email(value: str) -> str:
    email = value.strip().lower()
    if "@" not in email or email.startswith("@") or email.endswith("@"):
        raise ValueError("Invalid email address")
    return email


# Auth schemas
class LoginRequest(BaseModel):
    email: str
    password: str = Field(min_length=1)

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _normalize_email(value)


class ChangePasswordRequest(BaseModel):
    current_password: str
    new_password: str = Field(min_length=6, max_length=256)


class SessionUserResponse(BaseModel):
    """Profile of the authenticated principal (never carries the token)."""
    id: UUID
    email: str
    name: Optional[str] = None
    role: str
    kind: str
    company_id: Optional[UUID] = None
    permissions: dict[str, list[str]]


class LoginResponse(BaseModel):
    message: str
    user: SessionUserResponse


# Company schemas
class SubscriptionInfo(BaseModel):
    plan: SubscriptionPlan = SubscriptionPlan.FREE
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    features: list[str] = Field(default_factory=list)


class SubscriptionOverride(BaseModel):
    plan: Optional[SubscriptionPlan] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    features: Optional[list[str]] = None


class CompanySettings(BaseModel):
    currency: str = "USD"
    timezone: str = "UTC"
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)


class CompanyRegisterRequest(BaseModel):
    company_name: str = Field(min_length=2, max_length=255)
    email: str
    phone: str = Field(min_length=3, max_length=50)
    address: Optional[str] = None
    admin_name: str = Field(min_length=2, max_length=255)
    admin_email: str
    admin_phone: Optional[str] = None
    admin_password: str = Field(min_length=6, max_length=256)

    @field_validator("email", "admin_email")
    @classmethod
    def _emails(cls, value: str) -> str:
        return _normalize_email(value)


class CompanyApproveRequest(BaseModel):
    subscription: Optional[SubscriptionOverride] = None


class CompanyUpdate(BaseModel):
    company_name: Optional[str] = Field(default=None, min_length=2, max_length=255)
    phone: Optional[str] = None
    address: Optional[str] = None
    settings: Optional[CompanySettings] = None


class CompanyResponse(BaseModel):
    id: UUID
    company_name: str
    email: str
    phone: str
    address: Optional[str] = None
    status: CompanyStatus
    is_active: bool
    subscription: dict
    settings: dict
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class CompanyRegisterResponse(BaseModel):
    message: str
    company: CompanyResponse


# User schemas
class UserCreate(BaseModel):
    name: str = Field(min_length=2, max_length=255)
    email: str
    phone: Optional[str] = None
    password: str = Field(min_length=6, max_length=256)
    role: str = "USER"

    @field_validator("email")
    @classmethod
    def _email(cls, value: str) -> str:
        return _normalize_email(value)


class UserRoleUpdate(BaseModel):
    role: str


class UserResponse(BaseModel):
    id: UUID
    company_id: UUID
    name: str
    email: str
    phone: Optional[str] = None
    role: str
    is_active: bool
    last_login: Optional[datetime] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Role request schemas
class RoleRequestCreate(BaseModel):
    reason: Optional[str] = Field(default=None, min_length=10, max_length=2000)


class RoleRequestReview(BaseModel):
    review_notes: Optional[str] = Field(default=None, max_length=2000)


class RoleRequestResponse(BaseModel):
    id: UUID
    company_id: UUID
    user_id: UUID
    current_role: str
    requested_role: str
    status: RoleRequestStatus
    reason: Optional[str] = None
    reviewed_by: Optional[UUID] = None
    reviewed_at: Optional[datetime] = None
    review_notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Product schemas
class ProductCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    sku: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None
    base_price: Decimal = Field(ge=0)
    cost_price: Optional[Decimal] = Field(default=None, ge=0)
    tax_rate: Decimal = Field(default=Decimal("0"), ge=0, le=100)
    unit: str = "pcs"


class ProductUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    description: Optional[str] = None
    base_price: Optional[Decimal] = Field(default=None, ge=0)
    cost_price: Optional[Decimal] = Field(default=None, ge=0)
    tax_rate: Optional[Decimal] = Field(default=None, ge=0, le=100)
    unit: Optional[str] = None
    is_active: Optional[bool] = None


class ProductResponse(BaseModel):
    id: UUID
    company_id: UUID
    name: str
    sku: str
    description: Optional[str] = None
    base_price: Decimal
    cost_price: Optional[Decimal] = None
    tax_rate: Decimal
    unit: str
    is_active: bool

    model_config = ConfigDict(from_attributes=True)


# Customer schemas
class CustomerCreate(BaseModel):
    name: str = Field(min_length=1, max_length=255)
    email: Optional[str] = None
    phone: str = Field(min_length=3, max_length=50)
    address: Optional[str] = None
    notes: Optional[str] = None


class CustomerUpdate(BaseModel):
    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    email: Optional[str] = None
    phone: Optional[str] = Field(default=None, min_length=3, max_length=50)
    address: Optional[str] = None
    notes: Optional[str] = None


class CustomerResponse(BaseModel):
    id: UUID
    company_id: UUID
    name: str
    email: Optional[str] = None
    phone: str
    address: Optional[str] = None
    total_purchases: int
    total_spent: Decimal
    last_purchase_date: Optional[datetime] = None
    notes: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


# Inventory schemas
class StockInRequest(BaseModel):
    product_id: UUID
    quantity: int = Field(gt=0)
    variation_sku: Optional[str] = None
    reason: Optional[str] = None
    reference_id: Optional[str] = None
    notes: Optional[str] = None


class StockOutRequest(StockInRequest):
    pass


class StockAdjustRequest(BaseModel):
    product_id: UUID
    quantity: int = Field(ge=0)
    mode: AdjustmentMode = AdjustmentMode.ADD
    variation_sku: Optional[str] = None
    reason: str = Field(min_length=1)
    notes: Optional[str] = None


class StockLevelsUpdate(BaseModel):
    min_stock_level: Optional[int] = Field(default=None, ge=0)
    max_stock_level: Optional[int] = Field(default=None, ge=0)
    location: Optional[str] = None


class InventoryResponse(BaseModel):
    id: UUID
    company_id: UUID
    product_id: UUID
    variation_sku: Optional[str] = None
    current_stock: int
    min_stock_level: int
    max_stock_level: Optional[int] = None
    location: Optional[str] = None
    last_restock_date: Optional[datetime] = None
    last_stock_out_date: Optional[datetime] = None
    is_low_stock: bool = False

    model_config = ConfigDict(from_attributes=True)

    @field_validator("variation_sku")
    @classmethod
    def _blank_sku(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class StockMovementResponse(BaseModel):
    id: UUID
    company_id: UUID
    product_id: UUID
    variation_sku: Optional[str] = None
    type: StockMovementType
    quantity: int
    previous_stock: int
    new_stock: int
    reason: Optional[str] = None
    reference_id: Optional[str] = None
    performed_by: UUID
    notes: Optional[str] = None
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

    @field_validator("variation_sku")
    @classmethod
    def _blank_sku(cls, value: Optional[str]) -> Optional[str]:
        return value or None


class StockMutationResponse(BaseModel):
    inventory: InventoryResponse
    movement: StockMovementResponse


# Sales schemas
class InvoiceItemCreate(BaseModel):
    product_id: UUID
    variation_sku: Optional[str] = None
    quantity: int = Field(gt=0)
    unit_price: Decimal = Field(gt=0)
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    tax: Decimal = Field(default=Decimal("0"), ge=0)


class InvoiceCreate(BaseModel):
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    items: list[InvoiceItemCreate]
    discount: Decimal = Field(default=Decimal("0"), ge=0)
    payment_method: PaymentMethod
    paid_amount: Decimal = Field(default=Decimal("0"), ge=0)
    notes: Optional[str] = None


class InvoiceItemResponse(BaseModel):
    product_id: UUID
    product_name: str
    variation_sku: Optional[str] = None
    quantity: int
    unit_price: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal

    model_config = ConfigDict(from_attributes=True)


class InvoiceResponse(BaseModel):
    id: UUID
    company_id: UUID
    invoice_number: str
    customer_id: Optional[UUID] = None
    customer_name: Optional[str] = None
    items: list[InvoiceItemResponse]
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    grand_total: Decimal
    payment_method: PaymentMethod
    payment_status: PaymentStatus
    paid_amount: Decimal
    due_amount: Decimal
    status: InvoiceStatus
    notes: Optional[str] = None
    created_by: UUID
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


# Pagination
class PaginationResponse(BaseModel):
    total: int
    page: int
    limit: int
    pages: int


class PaginatedResponse(BaseModel):
    data: list
    pagination: PaginationResponse


# System
class HealthCheckResponse(BaseModel):
    status: str
    database: str
    version: str
