from __future__ import annotations

from types import SimpleNamespace
from uuid import uuid4

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import sessionmaker

from conftest import make_company, make_product, make_user, principal_for
from tenant_erp.database import Base, build_engine
from tenant_erp.domain_errors import BadRequest, NotFound
from tenant_erp.enums import StockMovementType
from tenant_erp.models import Inventory, StockMovement
from tenant_erp.use_cases.inventory_ledger import (
    adjust_stock,
    get_inventory_use_case,
    list_inventory_use_case,
    list_stock_movements_use_case,
    reconstruct_stock,
    signed_delta,
    stock_in,
    stock_out,
    update_stock_levels_use_case,
)


@pytest.fixture()
def widget(db_session, company_a):
    return make_product(db_session, company_a, sku="W-1", name="Widget")


def _receive(db, company, actor, product, quantity: int, **kwargs):
    return stock_in(
        db,
        company_id=company.id,
        actor_id=actor.id,
        product_id=product.id,
        quantity=quantity,
        **kwargs,
    )


def _issue(db, company, actor, product, quantity: int, **kwargs):
    return stock_out(
        db,
        company_id=company.id,
        actor_id=actor.id,
        product_id=product.id,
        quantity=quantity,
        **kwargs,
    )


def _adjust(db, company, actor, product, quantity: int, mode: str):
    return adjust_stock(
        db,
        company_id=company.id,
        actor_id=actor.id,
        product_id=product.id,
        quantity=quantity,
        mode=mode,
        reason="Cycle count",
    )


def _movement_count(db) -> int:
    return db.query(StockMovement).count()


def test_first_stock_in_creates_row_and_movement(db_session, company_a, admin_a, widget) -> None:
    change = _receive(db_session, company_a, admin_a, widget, 25)

    assert change.inventory.current_stock == 25
    assert change.inventory.min_stock_level == 10
    assert change.inventory.last_restock_date is not None
    assert change.movement.type == StockMovementType.IN.value
    assert (change.movement.previous_stock, change.movement.new_stock) == (0, 25)
    assert change.movement.reason == "Purchase"
    assert change.movement.performed_by == admin_a.id


def test_stock_in_accumulates_on_the_same_row(db_session, company_a, admin_a, widget) -> None:
    _receive(db_session, company_a, admin_a, widget, 5)
    change = _receive(db_session, company_a, admin_a, widget, 7, reason="Restock")

    assert change.inventory.current_stock == 12
    assert change.movement.reason == "Restock"
    assert db_session.query(Inventory).count() == 1


def test_variations_are_tracked_separately(db_session, company_a, admin_a, widget) -> None:
    _receive(db_session, company_a, admin_a, widget, 5)
    change = _receive(db_session, company_a, admin_a, widget, 3, variation_sku="W-1-RED")

    assert change.inventory.current_stock == 3
    assert db_session.query(Inventory).count() == 2


@pytest.mark.parametrize("quantity", [0, -3])
def test_non_positive_quantity_is_rejected(db_session, company_a, admin_a, widget, quantity) -> None:
    with pytest.raises(BadRequest) as exc_info:
        _receive(db_session, company_a, admin_a, widget, quantity)
    assert exc_info.value.code == "INVALID_QUANTITY"
    assert _movement_count(db_session) == 0


def test_stock_out_decrements_with_default_reason(db_session, company_a, admin_a, widget) -> None:
    _receive(db_session, company_a, admin_a, widget, 10)
    change = _issue(db_session, company_a, admin_a, widget, 4)

    assert change.inventory.current_stock == 6
    assert change.inventory.last_stock_out_date is not None
    assert change.movement.reason == "Sale"
    assert (change.movement.previous_stock, change.movement.new_stock) == (10, 6)


def test_insufficient_stock_leaves_state_unchanged(db_session, company_a, admin_a, widget) -> None:
    _receive(db_session, company_a, admin_a, widget, 3)

    with pytest.raises(BadRequest) as exc_info:
        _issue(db_session, company_a, admin_a, widget, 4)

    assert exc_info.value.code == "INSUFFICIENT_STOCK"
    assert exc_info.value.details["available"] == 3
    assert exc_info.value.details["requested"] == 4
    db_session.rollback()
    row = db_session.query(Inventory).one()
    assert row.current_stock == 3
    assert _movement_count(db_session) == 1


def test_stock_out_without_inventory_row_is_insufficient(db_session, company_a, admin_a, widget) -> None:
    with pytest.raises(BadRequest) as exc_info:
        _issue(db_session, company_a, admin_a, widget, 1)
    assert exc_info.value.details["available"] == 0


def test_foreign_product_is_not_found(db_session, company_a, company_b, admin_a) -> None:
    foreign = make_product(db_session, company_b, sku="B-1")

    with pytest.raises(NotFound) as exc_info:
        _receive(db_session, company_a, admin_a, foreign, 5)
    assert exc_info.value.code == "PRODUCT_NOT_FOUND"

    with pytest.raises(NotFound):
        _issue(db_session, company_a, admin_a, foreign, 1)
    assert db_session.query(Inventory).count() == 0


@pytest.mark.parametrize(
    ("mode", "quantity", "expected_stock", "movement_quantity"),
    [
        ("add", 5, 15, 5),
        ("remove", 4, 6, 4),
        ("set", 3, 3, 7),
        ("set", 10, 10, 0),
    ],
)
def test_adjustment_modes(db_session, company_a, admin_a, widget, mode, quantity, expected_stock, movement_quantity) -> None:
    _receive(db_session, company_a, admin_a, widget, 10)

    change = _adjust(db_session, company_a, admin_a, widget, quantity, mode)

    assert change.inventory.current_stock == expected_stock
    assert change.movement.type == StockMovementType.ADJUSTMENT.value
    assert change.movement.quantity == movement_quantity
    assert change.movement.reason == "Cycle count"


def test_adjustment_may_not_go_negative(db_session, company_a, admin_a, widget) -> None:
    _receive(db_session, company_a, admin_a, widget, 2)

    with pytest.raises(BadRequest) as exc_info:
        _adjust(db_session, company_a, admin_a, widget, 5, "remove")

    assert exc_info.value.code == "NEGATIVE_RESULTING_STOCK"
    db_session.rollback()
    assert db_session.query(Inventory).one().current_stock == 2


def test_unknown_adjustment_mode(db_session, company_a, admin_a, widget) -> None:
    with pytest.raises(BadRequest) as exc_info:
        _adjust(db_session, company_a, admin_a, widget, 1, "multiply")
    assert exc_info.value.code == "INVALID_ADJUSTMENT_MODE"


def test_adjust_creates_missing_row(db_session, company_a, admin_a, widget) -> None:
    change = _adjust(db_session, company_a, admin_a, widget, 4, "set")
    assert change.inventory.current_stock == 4
    assert change.movement.previous_stock == 0


def test_ledger_replays_to_current_stock(db_session, company_a, admin_a, widget) -> None:
    _receive(db_session, company_a, admin_a, widget, 20)
    _issue(db_session, company_a, admin_a, widget, 5)
    _adjust(db_session, company_a, admin_a, widget, 3, "remove")
    _adjust(db_session, company_a, admin_a, widget, 30, "set")
    _issue(db_session, company_a, admin_a, widget, 8)

    movements = db_session.query(StockMovement).all()
    row = db_session.query(Inventory).one()
    assert reconstruct_stock(movements) == row.current_stock == 22
    assert all(m.new_stock == m.previous_stock + signed_delta(m) for m in movements)


def test_signed_delta_for_downward_adjustment() -> None:
    movement = SimpleNamespace(type="ADJUSTMENT", quantity=4, previous_stock=10, new_stock=6)
    assert signed_delta(movement) == -4


def test_listing_syncs_rows_and_filters_low_stock(db_session, company_a, company_b, admin_a, admin_b) -> None:
    plenty = make_product(db_session, company_a, sku="A-1")
    make_product(db_session, company_a, sku="A-2")
    make_product(db_session, company_a, sku="A-OFF", is_active=False)
    make_product(db_session, company_b, sku="B-1")
    _receive(db_session, company_a, admin_a, plenty, 50)

    rows, total = list_inventory_use_case(db=db_session, principal=principal_for(admin_a))
    assert total == 2
    assert [r.current_stock for r in rows] == [0, 50]
    assert all(r.company_id == company_a.id for r in rows)

    low, total = list_inventory_use_case(db=db_session, principal=principal_for(admin_a), low_stock=True)
    assert total == 1
    assert low[0].current_stock == 0


def test_inventory_of_other_tenant_is_not_found(db_session, company_b, admin_a, admin_b) -> None:
    product = make_product(db_session, company_b, sku="B-1")
    change = _receive(db_session, company_b, admin_b, product, 5)

    with pytest.raises(NotFound):
        get_inventory_use_case(db=db_session, principal=principal_for(admin_a), inventory_id=change.inventory.id)


def test_update_stock_levels_validates_bounds(db_session, company_a, admin_a, widget) -> None:
    change = _receive(db_session, company_a, admin_a, widget, 5)
    principal = principal_for(admin_a)

    row = update_stock_levels_use_case(
        db=db_session,
        principal=principal,
        inventory_id=change.inventory.id,
        min_stock_level=2,
        max_stock_level=40,
        location="Aisle 3",
    )
    assert (row.min_stock_level, row.max_stock_level, row.location) == (2, 40, "Aisle 3")

    with pytest.raises(BadRequest) as exc_info:
        update_stock_levels_use_case(
            db=db_session,
            principal=principal,
            inventory_id=change.inventory.id,
            max_stock_level=1,
        )
    assert exc_info.value.code == "INVALID_STOCK_LEVELS"
    assert not db_session.dirty
    assert (row.min_stock_level, row.max_stock_level) == (2, 40)


def test_movement_history_is_scoped_and_filterable(db_session, company_a, company_b, admin_a, admin_b, widget) -> None:
    foreign = make_product(db_session, company_b, sku="B-1")
    _receive(db_session, company_b, admin_b, foreign, 9)
    _receive(db_session, company_a, admin_a, widget, 10)
    _issue(db_session, company_a, admin_a, widget, 1)

    movements, total = list_stock_movements_use_case(db=db_session, principal=principal_for(admin_a))
    assert total == 2
    assert all(m.company_id == company_a.id for m in movements)

    outs, total = list_stock_movements_use_case(
        db=db_session,
        principal=principal_for(admin_a),
        movement_type=StockMovementType.OUT,
    )
    assert total == 1
    assert outs[0].quantity == 1

    nothing, total = list_stock_movements_use_case(
        db=db_session,
        principal=principal_for(admin_a),
        product_id=uuid4(),
    )
    assert (nothing, total) == ([], 0)


@pytest.fixture()
def two_sessions(tmp_path):
    """Two independent connections to one file database."""
    engine = build_engine(f"sqlite:///{tmp_path / 'ledger.db'}")
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(bind=engine, autocommit=False, autoflush=False)
    first, second = factory(), factory()
    try:
        yield first, second
    finally:
        first.close()
        second.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def test_competing_stock_outs_cannot_oversell(two_sessions) -> None:
    first, second = two_sessions
    company = make_company(first, name="Race Ltd", email="office@race.test")
    clerk = make_user(first, company, email="clerk@race.test")
    product = make_product(first, company, sku="R-1")
    _receive(first, company, clerk, product, 5)

    # The first session holds a copy of the row showing 5 units.
    seen = first.query(Inventory).filter(Inventory.product_id == product.id).one()
    assert seen.current_stock == 5

    _issue(second, company, clerk, product, 5)

    with pytest.raises(BadRequest) as exc_info:
        _issue(first, company, clerk, product, 5)
    assert exc_info.value.code == "INSUFFICIENT_STOCK"
    assert exc_info.value.details["available"] == 0
    first.rollback()

    row = first.query(Inventory).filter(Inventory.product_id == product.id).one()
    movements = first.query(StockMovement).filter(StockMovement.product_id == product.id).all()
    assert row.current_stock == 0
    assert [m.type for m in movements].count(StockMovementType.OUT.value) == 1
    assert reconstruct_stock(movements) == row.current_stock


def test_negative_stock_is_refused_by_the_database(db_session, company_a, admin_a, widget) -> None:
    change = _receive(db_session, company_a, admin_a, widget, 1)

    change.inventory.current_stock = -1
    with pytest.raises(IntegrityError):
        db_session.flush()
    db_session.rollback()

    db_session.refresh(change.inventory)
    assert change.inventory.current_stock == 1
