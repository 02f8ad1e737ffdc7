# rma_tracker/services/filters.py
"""
Filter Query Builder - client field filters to bound SQLAlchemy predicates.

Handles:
- Allow-listed field names per table (inventory / catalog / dock receiving)
- ``!value`` exclusion vs ``%value%`` substring match
- Date range on date_rma_received, shipout status restriction
- Sort column / direction validation, page / limit coercion

Field names never reach the SQL text; values are always bound parameters.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Dict, List, Mapping, Optional, Tuple

from sqlalchemy import Boolean, Date, String, cast, func, or_
from sqlalchemy.sql.elements import ColumnElement

from rma_tracker.db_models import DockReceivingEntry, InventoryUnit, Item
from rma_tracker.errors import ValidationError
from rma_tracker.settings import Settings

RESERVED_KEYS = frozenset({
    "page", "limit", "order", "orderBy", "startDate", "endDate", "shipout", "groupByModel",
})

INVENTORY_FIELDS: Dict[str, Any] = {
    "id": InventoryUnit.id,
    "rma_num": InventoryUnit.rma_num,
    "serial_num": InventoryUnit.serial_num,
    "tracking_num": InventoryUnit.tracking_num,
    "location_current": InventoryUnit.location_current,
    "status": InventoryUnit.status,
    "grade": InventoryUnit.grade,
    "shipped": InventoryUnit.shipped,
    "ownership": InventoryUnit.ownership,
}

CATALOG_FIELDS: Dict[str, Any] = {
    "model": Item.model,
    "brand": Item.brand,
    "product_type": Item.product_type,
    "part_num": Item.part_num,
}

DOCK_FIELDS: Dict[str, Any] = {
    "date_created": DockReceivingEntry.date_created,
    "dock_received_at": DockReceivingEntry.date_created,
}

SORT_COLUMNS: Dict[str, Any] = {
    "id": InventoryUnit.id,
    "rma_num": InventoryUnit.rma_num,
    "serial_num": InventoryUnit.serial_num,
    "tracking_num": InventoryUnit.tracking_num,
    "location_current": InventoryUnit.location_current,
    "status": InventoryUnit.status,
    "grade": InventoryUnit.grade,
    "date_rma_received": InventoryUnit.date_rma_received,
    "ownership": InventoryUnit.ownership,
    "shipped": InventoryUnit.shipped,
    "dock_received_at": DockReceivingEntry.date_created,
}
DEFAULT_SORT = "id"

_TRUTHY = {"1", "true", "yes", "on"}


def _as_text(column) -> ColumnElement:
    if isinstance(column.type, String):
        return column
    return cast(column, String)


def match_predicate(column, raw: str) -> Optional[ColumnElement]:
    """
    ``!x`` -> NOT LIKE %x% (NULLs kept), ``x`` -> LIKE %x%; blank -> None.

    Boolean columns compare by truthiness instead (``shipped=1``,
    ``shipped=!true``); their text form differs between dialects.
    """
    value = (raw or "").strip()
    if not value:
        return None
    negate = value.startswith("!")
    if negate:
        value = value[1:]
        if not value:
            return None
    if isinstance(column.type, Boolean):
        return column.is_(is_truthy(value) != negate)
    col = _as_text(column)
    pattern = f"%{value}%"
    if negate:
        return or_(column.is_(None), col.not_like(pattern))
    return col.like(pattern)


def _lookup_field(key: str):
    for fields in (INVENTORY_FIELDS, CATALOG_FIELDS, DOCK_FIELDS):
        if key in fields:
            return fields[key]
    return None


def is_truthy(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    return str(value or "").strip().lower() in _TRUTHY


def parse_date(value: Any, name: str) -> Optional[date]:
    if value in (None, ""):
        return None
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip().replace("/", "-"))
    except ValueError:
        raise ValidationError(f"{name} must be a date (YYYY-MM-DD)", field=name)


def parse_positive_int(value: Any, default: int, name: str) -> int:
    if value in (None, ""):
        return default
    try:
        n = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", field=name)
    if n < 1:
        raise ValidationError(f"{name} must be positive", field=name)
    return n


def sort_direction(order: Any) -> str:
    return "ASC" if str(order or "").strip().lower() == "asc" else "DESC"


# ============================================================================
# Inventory filter
# ============================================================================

@dataclass
class InventoryFilter:
    """Predicates plus paging / sorting for the inventory join."""
    conditions: List[ColumnElement] = field(default_factory=list)
    sort_key: str = DEFAULT_SORT
    direction: str = "ASC"
    page: int = 1
    limit: int = 25
    applied: Dict[str, str] = field(default_factory=dict)

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def where(self) -> List[ColumnElement]:
        return list(self.conditions)

    def order_by(self) -> List[ColumnElement]:
        column = SORT_COLUMNS[self.sort_key]
        primary = column.asc() if self.direction == "ASC" else column.desc()
        if self.sort_key == "id":
            return [primary]
        # stable paging
        return [primary, InventoryUnit.id.asc()]


def build_inventory_filter(
    params: Mapping[str, Any],
    settings: Settings,
    *,
    default_order: str = "asc",
) -> InventoryFilter:
    """
    Turn query-string filters into an ``InventoryFilter``.

    Unknown field names are dropped, ``brand=All`` means no brand filter.
    """
    flt = InventoryFilter(
        page=parse_positive_int(params.get("page"), 1, "page"),
        limit=min(
            parse_positive_int(params.get("limit"), settings.DEFAULT_PAGE_SIZE, "limit"),
            settings.MAX_PAGE_SIZE,
        ),
        direction=sort_direction(params.get("order") or default_order),
    )

    order_by = str(params.get("orderBy") or "").strip()
    flt.sort_key = order_by if order_by in SORT_COLUMNS else DEFAULT_SORT

    if is_truthy(params.get("shipout")):
        flt.conditions.append(InventoryUnit.status == settings.SHIPOUT_FILTER_STATUS)

    start = parse_date(params.get("startDate"), "startDate")
    end = parse_date(params.get("endDate"), "endDate")
    received_day = func.date(InventoryUnit.date_rma_received, type_=Date)
    if start:
        flt.conditions.append(received_day >= start)
    if end:
        flt.conditions.append(received_day <= end)

    for key, raw in params.items():
        if key in RESERVED_KEYS or raw is None:
            continue
        if key == "brand" and str(raw).strip() == "All":
            continue
        column = _lookup_field(key)
        if column is None:
            continue
        predicate = match_predicate(column, str(raw))
        if predicate is not None:
            flt.conditions.append(predicate)
            flt.applied[key] = str(raw)

    return flt


# ============================================================================
# Smaller listings
# ============================================================================

DOCK_SORT_COLUMNS: Dict[str, Any] = {
    "date_created": DockReceivingEntry.date_created,
    "tracking_num": DockReceivingEntry.tracking_num,
    "carrier": DockReceivingEntry.carrier,
    "rma_num": DockReceivingEntry.rma_num,
    "rma_type": DockReceivingEntry.rma_type,
    "quantity": DockReceivingEntry.quantity,
    "user": DockReceivingEntry.user_created,
}


def build_dock_sort(order_by: Optional[str], order: Optional[str]) -> Tuple[ColumnElement, ...]:
    column = DOCK_SORT_COLUMNS.get(order_by or "", DockReceivingEntry.date_created)
    primary = column.asc() if sort_direction(order) == "ASC" else column.desc()
    return (primary, DockReceivingEntry.id.desc())


CATALOG_FILTER_FIELDS: Dict[str, Any] = {
    **CATALOG_FIELDS,
    "description": Item.description,
    "upc": Item.upc,
    "asin": Item.asin,
}


def build_catalog_filter(params: Mapping[str, Any]) -> List[ColumnElement]:
    conditions: List[ColumnElement] = []
    for key, raw in params.items():
        column = CATALOG_FILTER_FIELDS.get(key)
        if column is None or raw is None:
            continue
        predicate = match_predicate(column, str(raw))
        if predicate is not None:
            conditions.append(predicate)
    return conditions
