import pytest

from fleetdesk.db_models import db, AuditLog, Part, PartMovement
from fleetdesk.services.inventory import StockError, is_low_stock, move_stock


def test_move_stock_records_movement_and_audit(admin, make_part):
    part = make_part(quantity=10, unit_cost=12.5)
    movement = move_stock(part, -4, "adjustment", admin.id, notes="Used on service")
    db.session.commit()

    assert part.quantity_in_stock == 6
    assert (movement.previous_quantity, movement.new_quantity) == (10, 6)
    assert movement.unit_cost == 12.5
    audit = db.session.query(AuditLog).filter(AuditLog.action == "stock_adjustment").one()
    assert audit.old_values == {"quantity_in_stock": 10}
    assert audit.new_values["quantity_in_stock"] == 6


def test_stock_cannot_go_negative(admin, make_part):
    part = make_part(quantity=2)
    with pytest.raises(StockError, match="below zero"):
        move_stock(part, -3, "work_order", admin.id)
    assert part.quantity_in_stock == 2
    assert db.session.query(PartMovement).count() == 0


def test_zero_and_unknown_movements_are_rejected(admin, make_part):
    part = make_part()
    with pytest.raises(StockError):
        move_stock(part, 0, "adjustment", admin.id)
    with pytest.raises(StockError):
        move_stock(part, 1, "teleport", admin.id)


def test_receive_uses_given_unit_cost(admin, make_part):
    part = make_part(quantity=1, unit_cost=10)
    movement = move_stock(part, 5, "receive", admin.id, unit_cost=9.25)
    assert movement.unit_cost == 9.25
    assert part.quantity_in_stock == 6


def test_low_stock_prefers_reorder_threshold():
    assert is_low_stock(Part(quantity_in_stock=2, minimum_stock=2))
    assert not is_low_stock(Part(quantity_in_stock=3, minimum_stock=2))
    assert is_low_stock(Part(quantity_in_stock=4, minimum_stock=2, reorder_threshold=5))
