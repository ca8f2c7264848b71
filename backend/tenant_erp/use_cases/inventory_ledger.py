"""Inventory ledger use-cases.

Every stock mutation locks the inventory row, changes ``current_stock`` and
appends exactly one ``StockMovement`` in the same transaction. With
``autocommit=False`` the functions only flush so a caller (the sales engine)
can compose several mutations into one commit.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
import logging
from typing import Iterable, Optional
from uuid import UUID

from sqlalchemy.orm import Session

from ..auth import Principal
from ..config import settings
from ..domain_errors import BadRequest, NotFound
from ..enums import AdjustmentMode, StockMovementType
from ..models import Inventory, Product, StockMovement
from ..security import apply_scope, require_tenant_entity, scoped_query
from ..services.pagination import paginate
from ..timeutils import as_utc, utc_now

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StockChange:
    inventory: Inventory
    movement: StockMovement


def _sku(variation_sku: Optional[str]) -> str:
    return (variation_sku or "").strip()


def _check_quantity(quantity: int, *, allow_zero: bool = False) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise BadRequest("INVALID_QUANTITY", "Quantity must be a whole number")
    if quantity < 0 or (quantity == 0 and not allow_zero):
        raise BadRequest("INVALID_QUANTITY", "Quantity must be greater than zero")
    return quantity


def _require_product(db: Session, *, company_id: UUID, product_id: UUID) -> Product:
    product = db.query(Product).filter(
        Product.id == product_id,
        Product.company_id == company_id,
        Product.is_active == True,  # noqa: E712
    ).first()
    if not product:
        raise NotFound("PRODUCT_NOT_FOUND", "Product not found")
    return product


def _lock_row(db: Session, *, company_id: UUID, product_id: UUID, sku: str) -> Optional[Inventory]:
    # Re-read under the lock; a copy already in the session may be stale.
    return db.query(Inventory).filter(
        Inventory.company_id == company_id,
        Inventory.product_id == product_id,
        Inventory.variation_sku == sku,
    ).with_for_update().populate_existing().first()


def _create_row(db: Session, *, company_id: UUID, product_id: UUID, sku: str) -> Inventory:
    _require_product(db, company_id=company_id, product_id=product_id)
    row = Inventory(
        company_id=company_id,
        product_id=product_id,
        variation_sku=sku,
        current_stock=0,
        min_stock_level=settings.INVENTORY_DEFAULT_MIN_STOCK,
    )
    db.add(row)
    db.flush()
    return row


def _record(
    db: Session,
    row: Inventory,
    *,
    movement_type: StockMovementType,
    quantity: int,
    new_stock: int,
    actor_id: UUID,
    reason: Optional[str],
    reference_id: Optional[str],
    notes: Optional[str],
) -> StockMovement:
    movement = StockMovement(
        company_id=row.company_id,
        product_id=row.product_id,
        variation_sku=row.variation_sku,
        type=movement_type.value,
        quantity=quantity,
        previous_stock=row.current_stock,
        new_stock=new_stock,
        reason=reason,
        reference_id=str(reference_id) if reference_id is not None else None,
        performed_by=actor_id,
        notes=notes,
    )
    row.current_stock = new_stock
    db.add(movement)
    db.flush()
    return movement


def _finish(db: Session, change: StockChange, autocommit: bool) -> StockChange:
    if autocommit:
        db.commit()
        db.refresh(change.inventory)
        db.refresh(change.movement)
    return change


def stock_in(
    db: Session,
    *,
    company_id: UUID,
    actor_id: UUID,
    product_id: UUID,
    quantity: int,
    variation_sku: Optional[str] = None,
    reason: Optional[str] = None,
    reference_id: Optional[str] = None,
    notes: Optional[str] = None,
    autocommit: bool = True,
    now: Optional[datetime] = None,
) -> StockChange:
    """Receive ``quantity`` units; creates the inventory row on first receipt."""
    _check_quantity(quantity)
    sku = _sku(variation_sku)
    row = _lock_row(db, company_id=company_id, product_id=product_id, sku=sku)
    if row is None:
        row = _create_row(db, company_id=company_id, product_id=product_id, sku=sku)

    row.last_restock_date = as_utc(now) or utc_now()
    movement = _record(
        db,
        row,
        movement_type=StockMovementType.IN,
        quantity=quantity,
        new_stock=row.current_stock + quantity,
        actor_id=actor_id,
        reason=reason or "Purchase",
        reference_id=reference_id,
        notes=notes,
    )
    return _finish(db, StockChange(row, movement), autocommit)


def stock_out(
    db: Session,
    *,
    company_id: UUID,
    actor_id: UUID,
    product_id: UUID,
    quantity: int,
    variation_sku: Optional[str] = None,
    reason: Optional[str] = None,
    reference_id: Optional[str] = None,
    notes: Optional[str] = None,
    autocommit: bool = True,
    now: Optional[datetime] = None,
) -> StockChange:
    """Issue ``quantity`` units; never drives stock below zero."""
    _check_quantity(quantity)
    sku = _sku(variation_sku)
    row = _lock_row(db, company_id=company_id, product_id=product_id, sku=sku)
    available = row.current_stock if row is not None else 0
    if row is None:
        # Unknown product is a 404; a known product without a row simply has no stock.
        _require_product(db, company_id=company_id, product_id=product_id)
    if available < quantity:
        raise BadRequest(
            "INSUFFICIENT_STOCK",
            f"Insufficient stock. Available: {available}, requested: {quantity}",
            details={"product_id": str(product_id), "available": available, "requested": quantity},
        )

    row.last_stock_out_date = as_utc(now) or utc_now()
    movement = _record(
        db,
        row,
        movement_type=StockMovementType.OUT,
        quantity=quantity,
        new_stock=row.current_stock - quantity,
        actor_id=actor_id,
        reason=reason or "Sale",
        reference_id=reference_id,
        notes=notes,
    )
    return _finish(db, StockChange(row, movement), autocommit)


def adjust_stock(
    db: Session,
    *,
    company_id: UUID,
    actor_id: UUID,
    product_id: UUID,
    quantity: int,
    reason: str,
    mode: AdjustmentMode | str = AdjustmentMode.ADD,
    variation_sku: Optional[str] = None,
    notes: Optional[str] = None,
    autocommit: bool = True,
) -> StockChange:
    """Manual correction: add, remove or set an absolute level."""
    _check_quantity(quantity, allow_zero=True)
    try:
        mode = AdjustmentMode(mode)
    except ValueError:
        raise BadRequest("INVALID_ADJUSTMENT_MODE", "Adjustment mode must be add, remove or set")

    sku = _sku(variation_sku)
    row = _lock_row(db, company_id=company_id, product_id=product_id, sku=sku)
    if row is None:
        _require_product(db, company_id=company_id, product_id=product_id)
    current = row.current_stock if row is not None else 0

    if mode is AdjustmentMode.ADD:
        new_stock = current + quantity
    elif mode is AdjustmentMode.REMOVE:
        new_stock = current - quantity
    else:
        new_stock = quantity
    if new_stock < 0:
        raise BadRequest(
            "NEGATIVE_RESULTING_STOCK",
            "Stock cannot be negative",
            details={"current_stock": current, "requested": quantity, "mode": mode.value},
        )

    if row is None:
        row = _create_row(db, company_id=company_id, product_id=product_id, sku=sku)
    movement = _record(
        db,
        row,
        movement_type=StockMovementType.ADJUSTMENT,
        quantity=abs(new_stock - current),
        new_stock=new_stock,
        actor_id=actor_id,
        reason=reason,
        reference_id=None,
        notes=notes,
    )
    logger.info(
        "Stock adjusted: company=%s product=%s %s -> %s by %s",
        company_id, product_id, current, new_stock, actor_id,
    )
    return _finish(db, StockChange(row, movement), autocommit)


def signed_delta(movement) -> int:
    """Signed stock change carried by one movement."""
    movement_type = StockMovementType(movement.type)
    if movement_type is StockMovementType.IN:
        return movement.quantity
    if movement_type is StockMovementType.OUT:
        return -movement.quantity
    return movement.new_stock - movement.previous_stock


def reconstruct_stock(movements: Iterable, initial: int = 0) -> int:
    """Replay the ledger: initial level plus the signed sum of movement deltas."""
    return initial + sum(signed_delta(m) for m in movements)


def _sync_missing_rows(db: Session, *, company_id: UUID) -> int:
    """Create zero-stock rows for active products that have none yet."""
    existing = db.query(Inventory.product_id).filter(
        Inventory.company_id == company_id,
        Inventory.variation_sku == "",
    )
    missing = db.query(Product.id).filter(
        Product.company_id == company_id,
        Product.is_active == True,  # noqa: E712
        ~Product.id.in_(existing),
    ).all()
    for (product_id,) in missing:
        db.add(Inventory(
            company_id=company_id,
            product_id=product_id,
            variation_sku="",
            current_stock=0,
            min_stock_level=settings.INVENTORY_DEFAULT_MIN_STOCK,
        ))
    if missing:
        db.commit()
    return len(missing)


def list_inventory_use_case(
    *,
    db: Session,
    principal: Principal,
    company_id: Optional[UUID] = None,
    product_id: Optional[UUID] = None,
    low_stock: bool = False,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[Inventory], int]:
    """Inventory rows of the caller's tenant, lowest stock first."""
    query = scoped_query(db, Inventory, principal, company_id=company_id, product_id=product_id)
    sync_company = principal.company_id or company_id
    if sync_company is not None:
        _sync_missing_rows(db, company_id=sync_company)
    if low_stock:
        query = query.filter(Inventory.current_stock < Inventory.min_stock_level)
    query = query.order_by(Inventory.current_stock.asc(), Inventory.id.asc())
    return paginate(query, page=page, limit=limit)


def get_inventory_use_case(*, db: Session, principal: Principal, inventory_id: UUID) -> Inventory:
    return require_tenant_entity(
        db,
        Inventory,
        entity_id=inventory_id,
        principal=principal,
        not_found="Inventory record not found",
        code="INVENTORY_NOT_FOUND",
    )


def update_stock_levels_use_case(
    *,
    db: Session,
    principal: Principal,
    inventory_id: UUID,
    min_stock_level: Optional[int] = None,
    max_stock_level: Optional[int] = None,
    location: Optional[str] = None,
) -> Inventory:
    """Change reorder thresholds or location; stock itself only moves through the ledger."""
    row = get_inventory_use_case(db=db, principal=principal, inventory_id=inventory_id)
    new_min = row.min_stock_level if min_stock_level is None else min_stock_level
    new_max = row.max_stock_level if max_stock_level is None else max_stock_level
    if new_max is not None and new_max < new_min:
        raise BadRequest(
            "INVALID_STOCK_LEVELS",
            "Maximum stock level cannot be below the minimum",
            details={"min_stock_level": new_min, "max_stock_level": new_max},
        )

    row.min_stock_level = new_min
    row.max_stock_level = new_max
    if location is not None:
        row.location = location
    db.commit()
    db.refresh(row)
    return row


def list_stock_movements_use_case(
    *,
    db: Session,
    principal: Principal,
    company_id: Optional[UUID] = None,
    product_id: Optional[UUID] = None,
    movement_type: Optional[StockMovementType] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    page: int = 1,
    limit: int = 20,
) -> tuple[list[StockMovement], int]:
    query = apply_scope(
        db.query(StockMovement),
        StockMovement,
        principal,
        company_id=company_id,
        product_id=product_id,
        type=movement_type.value if movement_type else None,
    )
    if start is not None:
        query = query.filter(StockMovement.created_at >= as_utc(start))
    if end is not None:
        query = query.filter(StockMovement.created_at <= as_utc(end))
    query = query.order_by(StockMovement.created_at.desc(), StockMovement.id.desc())
    return paginate(query, page=page, limit=limit)
