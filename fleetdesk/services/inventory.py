# fleetdesk/services/inventory.py
from __future__ import annotations

from typing import Optional

from fleetdesk.db_models import db, Part, PartMovement
from fleetdesk.services.audit import record_audit

UNITS = ("each", "liters", "gallons", "kg", "lbs", "meters", "feet", "box", "set", "pair")
ADJUSTMENT_TYPES = ("adjustment", "restock", "return", "damaged", "expired")
MOVEMENT_TYPES = ADJUSTMENT_TYPES + ("receive", "work_order", "initial")


class StockError(ValueError):
    pass


def move_stock(part: Part, quantity_change: float, movement_type: str, user_id: Optional[int],
               notes: Optional[str] = None, work_order_id: Optional[int] = None,
               unit_cost: Optional[float] = None) -> PartMovement:
    """Apply a stock change and stage the movement row and audit entry."""
    if movement_type not in MOVEMENT_TYPES:
        raise StockError(f"Unknown movement type '{movement_type}'")
    if not quantity_change:
        raise StockError("Quantity change cannot be zero")

    previous = part.quantity_in_stock or 0
    new_quantity = previous + quantity_change
    if new_quantity < 0:
        raise StockError("Cannot reduce stock below zero")

    part.quantity_in_stock = new_quantity
    movement = PartMovement(
        organisation_id=part.organisation_id,
        part_id=part.id,
        work_order_id=work_order_id,
        movement_type=movement_type,
        quantity_change=quantity_change,
        previous_quantity=previous,
        new_quantity=new_quantity,
        unit_cost=unit_cost if unit_cost is not None else part.unit_cost,
        notes=notes,
        user_id=user_id,
    )
    db.session.add(movement)
    record_audit(
        part.organisation_id, user_id, "stock_adjustment", "part", part.id,
        old_values={"quantity_in_stock": previous},
        new_values={"quantity_in_stock": new_quantity, "movement_type": movement_type},
    )
    return movement


def is_low_stock(part: Part) -> bool:
    threshold = part.reorder_threshold if part.reorder_threshold is not None else part.minimum_stock
    return (part.quantity_in_stock or 0) <= (threshold or 0)
