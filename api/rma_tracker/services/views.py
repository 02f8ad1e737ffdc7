# rma_tracker/services/views.py
"""
Joined display rows: InventoryUnit + Item + dock receipt timestamp.

Every listing that shows units (location page, lookup, intake response)
goes through ``unit_select`` / ``unit_row`` so the row shape is the same
everywhere.
"""
from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import Select, select

from rma_tracker.db_models import DockReceivingEntry, InventoryUnit, Item

UNIT_FIELDS = (
    "id", "rma_num", "serial_num", "tracking_num", "item_id",
    "location_current", "location_previous", "grade", "status", "progress",
    "lamp_hours", "missing_accessories", "ownership", "shipped", "shipout_id",
    "date_shipped", "notes", "user_created", "user_last_updated",
    "date_rma_received", "date_shelved", "date_updated",
)

ITEM_FIELDS = (
    "model", "part_num", "brand", "product_type", "description",
    "upc", "asin", "date_released", "msrp",
)


def jsonable(value: Any) -> Any:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Decimal):
        return float(value)
    return value


def unit_select() -> Select:
    """SELECT unit, item, dock_received_at with the lookup joins applied."""
    return (
        select(InventoryUnit, Item, DockReceivingEntry.date_created.label("dock_received_at"))
        .join(Item, Item.id == InventoryUnit.item_id)
        .outerjoin(DockReceivingEntry, DockReceivingEntry.tracking_num == InventoryUnit.tracking_num)
    )


def unit_row(unit: InventoryUnit, item: Item, dock_received_at: Optional[datetime] = None) -> Dict[str, Any]:
    out = {name: jsonable(getattr(item, name)) for name in ITEM_FIELDS}
    # unit columns win on overlap (id)
    out.update({name: jsonable(getattr(unit, name)) for name in UNIT_FIELDS})
    out["dock_received_at"] = jsonable(dock_received_at)
    return out


def model_to_dict(obj: Any, fields) -> Dict[str, Any]:
    return {name: jsonable(getattr(obj, name)) for name in fields}
