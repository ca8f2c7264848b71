"""Inventory endpoints (stock levels and the movement ledger)."""
from datetime import datetime
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Request
from sqlalchemy.orm import Session

from ..auth import PermissionChecker, Principal
from ..database import get_db
from ..enums import StockMovementType
from ..http_utils import paginated, request_meta
from ..models import Inventory
from ..permissions import Action, Resource
from ..schemas import (
    InventoryResponse,
    PaginatedResponse,
    StockAdjustRequest,
    StockInRequest,
    StockLevelsUpdate,
    StockMovementResponse,
    StockMutationResponse,
    StockOutRequest,
)
from ..security import require_company_id
from ..services.activity_log import record_activity
from ..use_cases.inventory_ledger import (
    StockChange,
    adjust_stock,
    list_inventory_use_case,
    list_stock_movements_use_case,
    stock_in,
    stock_out,
    update_stock_levels_use_case,
)

router = APIRouter(prefix="/inventory", tags=["inventory"])


def _inventory_out(row: Inventory) -> InventoryResponse:
    result = InventoryResponse.model_validate(row)
    result.is_low_stock = row.current_stock < row.min_stock_level
    return result


def _mutation_out(
    db: Session,
    request: Request,
    principal: Principal,
    change: StockChange,
    action: str,
) -> StockMutationResponse:
    movement = change.movement
    record_activity(
        db,
        action=action,
        resource="inventory",
        principal=principal,
        resource_id=change.inventory.id,
        details={
            "product_id": movement.product_id,
            "type": movement.type,
            "quantity": movement.quantity,
            "previous_stock": movement.previous_stock,
            "new_stock": movement.new_stock,
        },
        **request_meta(request),
    )
    return StockMutationResponse(
        inventory=_inventory_out(change.inventory),
        movement=StockMovementResponse.model_validate(movement),
    )


@router.get("", response_model=PaginatedResponse)
def list_inventory(
    company_id: Optional[UUID] = None,
    product_id: Optional[UUID] = None,
    low_stock: bool = False,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(PermissionChecker(Resource.INVENTORY, Action.READ)),
    db: Session = Depends(get_db),
):
    """Stock levels, lowest first."""
    rows, total = list_inventory_use_case(
        db=db,
        principal=principal,
        company_id=company_id,
        product_id=product_id,
        low_stock=low_stock,
        page=page,
        limit=limit,
    )
    return paginated([_inventory_out(r) for r in rows], total=total, page=page, limit=limit)


@router.post("/stock-in", response_model=StockMutationResponse)
def receive_stock(
    payload: StockInRequest,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.INVENTORY, Action.CREATE)),
    db: Session = Depends(get_db),
):
    change = stock_in(
        db,
        company_id=require_company_id(principal),
        actor_id=principal.user_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        variation_sku=payload.variation_sku,
        reason=payload.reason,
        reference_id=payload.reference_id,
        notes=payload.notes,
    )
    return _mutation_out(db, request, principal, change, "STOCK_IN")


@router.post("/stock-out", response_model=StockMutationResponse)
def issue_stock(
    payload: StockOutRequest,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.INVENTORY, Action.UPDATE)),
    db: Session = Depends(get_db),
):
    change = stock_out(
        db,
        company_id=require_company_id(principal),
        actor_id=principal.user_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        variation_sku=payload.variation_sku,
        reason=payload.reason,
        reference_id=payload.reference_id,
        notes=payload.notes,
    )
    return _mutation_out(db, request, principal, change, "STOCK_OUT")


@router.post("/adjust", response_model=StockMutationResponse)
def adjust(
    payload: StockAdjustRequest,
    request: Request,
    principal: Principal = Depends(PermissionChecker(Resource.INVENTORY, Action.ADJUST)),
    db: Session = Depends(get_db),
):
    change = adjust_stock(
        db,
        company_id=require_company_id(principal),
        actor_id=principal.user_id,
        product_id=payload.product_id,
        quantity=payload.quantity,
        mode=payload.mode,
        variation_sku=payload.variation_sku,
        reason=payload.reason,
        notes=payload.notes,
    )
    return _mutation_out(db, request, principal, change, "STOCK_ADJUSTED")


@router.patch("/{inventory_id}/levels", response_model=InventoryResponse)
def update_levels(
    inventory_id: UUID,
    payload: StockLevelsUpdate,
    principal: Principal = Depends(PermissionChecker(Resource.INVENTORY, Action.UPDATE)),
    db: Session = Depends(get_db),
):
    """Change reorder thresholds and location."""
    row = update_stock_levels_use_case(
        db=db,
        principal=principal,
        inventory_id=inventory_id,
        min_stock_level=payload.min_stock_level,
        max_stock_level=payload.max_stock_level,
        location=payload.location,
    )
    return _inventory_out(row)


@router.get("/movements", response_model=PaginatedResponse)
def list_movements(
    company_id: Optional[UUID] = None,
    product_id: Optional[UUID] = None,
    movement_type: Optional[StockMovementType] = Query(default=None, alias="type"),
    start_date: Optional[datetime] = None,
    end_date: Optional[datetime] = None,
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    principal: Principal = Depends(PermissionChecker(Resource.INVENTORY, Action.READ)),
    db: Session = Depends(get_db),
):
    """Stock movement history, newest first."""
    movements, total = list_stock_movements_use_case(
        db=db,
        principal=principal,
        company_id=company_id,
        product_id=product_id,
        movement_type=movement_type,
        start=start_date,
        end=end_date,
        page=page,
        limit=limit,
    )
    return paginated(
        [StockMovementResponse.model_validate(m) for m in movements],
        total=total,
        page=page,
        limit=limit,
    )
