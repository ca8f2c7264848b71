"""Product endpoints."""
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, Principal
from ..database import get_db
from ..http_utils import paginated, request_meta
from ..permissions import Action, Resource
from ..schemas import PaginatedResponse, ProductCreate, ProductResponse, ProductUpdate
from ..services.activity_log import record_activity
from ..use_cases.catalog import (
    create_product_use_case,
    deactivate_product_use_case,
    get_product_use_case,
    list_products_use_case,
    update_product_use_case,
)

router = APIRouter(prefix="/products", tags=["products"])


@router.post("", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
def create_product(
    payload: ProductCreate,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.PRODUCT, Action.CREATE)),
    db: Session = Depends(get_db),
):
    product = create_product_use_case(db=db, principal=principal, payload=payload)
    record_activity(
        db,
        action="PRODUCT_CREATED",
        resource="product",
        principal=principal,
        resource_id=product.id,
        details={"sku": product.sku, "name": product.name},
        **request_meta(request),
    )
    return ProductResponse.model_validate(product)


@router.get("", response_model=PaginatedResponse)
def list_products(
    company_id: Optional[UUID] = None,
    search: Optional[str] = None,
    is_active: Optional[bool] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(PermissionChecker(Resource.PRODUCT, Action.READ)),
    db: Session = Depends(get_db),
):
    products, total = list_products_use_case(
        db=db,
        principal=principal,
        company_id=company_id,
        search=search,
        is_active=is_active,
        page=page,
        limit=limit,
    )
    return paginated([ProductResponse.model_validate(p) for p in products], total=total, page=page, limit=limit)


@router.get("/{product_id}", response_model=ProductResponse)
def get_product(
    product_id: UUID,
    principal: Principal = Depends(PermissionChecker(Resource.PRODUCT, Action.READ)),
    db: Session = Depends(get_db),
):
    return ProductResponse.model_validate(get_product_use_case(db=db, principal=principal, product_id=product_id))


@router.put("/{product_id}", response_model=ProductResponse)
def update_product(
    product_id: UUID,
    payload: ProductUpdate,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.PRODUCT, Action.UPDATE)),
    db: Session = Depends(get_db),
):
    product = update_product_use_case(db=db, principal=principal, product_id=product_id, payload=payload)
    record_activity(
        db,
        action="PRODUCT_UPDATED",
        resource="product",
        principal=principal,
        resource_id=product.id,
        details=payload.model_dump(mode="json", exclude_unset=True),
        **request_meta(request),
    )
    return ProductResponse.model_validate(product)


@router.delete("/{product_id}")
def delete_product(
    product_id: UUID,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.PRODUCT, Action.DELETE)),
    db: Session = Depends(get_db),
):
    """Deactivate a product (it stays referenced by stock and invoices)."""
    product = deactivate_product_use_case(db=db, principal=principal, product_id=product_id)
    record_activity(
        db,
        action="PRODUCT_DELETED",
        resource="product",
        principal=principal,
        resource_id=product.id,
        **request_meta(request),
    )
    return {"message": "Product deleted successfully"}
