# rma_tracker/services/reporting.py
"""
Grouped / paginated inventory lookup.

Both modes read the same InventoryUnit + Item + dock receiving join and
apply the same ``InventoryFilter``.

Grouped mode returns one row per (model, brand, product_type) with a
``status_counts`` mapping whose keys are whatever status values exist in
inventory at query time, so the column set of the report changes between
calls. It is built in two phases:

1. distinct statuses + the requested page of groups (quantity, latest receipt)
2. sparse (model, brand, product_type, status, count) rows for that page,
   pivoted here in Python

Status values are only ever bound or used as dict keys, never spliced into
the SQL text.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Mapping, Tuple

from sqlalchemy import Select, and_, func, or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.db_models import DockReceivingEntry, InventoryUnit, Item
from rma_tracker.services.filters import InventoryFilter, build_inventory_filter, is_truthy
from rma_tracker.services.views import jsonable, unit_row, unit_select
from rma_tracker.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

GROUP_COLUMNS = (Item.model, Item.brand, Item.product_type)


def _joined(stmt: Select) -> Select:
    return (
        stmt.select_from(InventoryUnit)
        .join(Item, Item.id == InventoryUnit.item_id)
        .outerjoin(DockReceivingEntry, DockReceivingEntry.tracking_num == InventoryUnit.tracking_num)
    )


def _group_match(keys: List[Tuple[Any, Any, Any]]):
    # NULL brand / product_type never compare equal, so match them explicitly
    clauses = []
    for model, brand, product_type in keys:
        clauses.append(and_(
            Item.model == model,
            Item.brand.is_(None) if brand is None else Item.brand == brand,
            Item.product_type.is_(None) if product_type is None else Item.product_type == product_type,
        ))
    return or_(*clauses)


class InventoryReportService:
    """Inventory lookup page: plain listing or grouped-by-model report."""

    def __init__(self, db: AsyncSession, settings: Settings = default_settings):
        self.db = db
        self.settings = settings

    async def lookup(self, params: Mapping[str, Any]) -> Dict[str, Any]:
        flt = build_inventory_filter(params, self.settings)
        if is_truthy(params.get("groupByModel")):
            return await self.grouped(flt)
        return await self.ungrouped(flt)

    # =========================================================================
    # Ungrouped
    # =========================================================================

    async def ungrouped(self, flt: InventoryFilter) -> Dict[str, Any]:
        where = flt.where()

        total = await self.db.scalar(_joined(select(func.count(InventoryUnit.id))).where(*where))
        in_stock = await self.db.scalar(
            _joined(select(func.count(InventoryUnit.id)))
            .where(*where)
            .where(InventoryUnit.ownership == self.settings.IN_STOCK_OWNERSHIP)
        )

        stmt = (
            unit_select()
            .where(*where)
            .order_by(*flt.order_by())
            .limit(flt.limit)
            .offset(flt.offset)
        )
        rows = [unit_row(*row) for row in (await self.db.execute(stmt)).all()]
        return {"rows": rows, "totalCount": total or 0, "inStockCount": in_stock or 0}

    # =========================================================================
    # Grouped by model
    # =========================================================================

    async def statuses(self) -> List[str]:
        stmt = select(InventoryUnit.status).distinct().order_by(InventoryUnit.status)
        return list((await self.db.scalars(stmt)).all())

    async def grouped(self, flt: InventoryFilter) -> Dict[str, Any]:
        where = flt.where()
        statuses = await self.statuses()

        group_count = await self.db.scalar(
            select(func.count()).select_from(
                _joined(select(*GROUP_COLUMNS)).where(*where).group_by(*GROUP_COLUMNS).subquery()
            )
        )

        page_stmt = (
            _joined(select(
                *GROUP_COLUMNS,
                func.count(InventoryUnit.id).label("quantity"),
                func.max(InventoryUnit.date_rma_received).label("latest_received"),
            ))
            .where(*where)
            .group_by(*GROUP_COLUMNS)
            .order_by(Item.model.asc(), Item.brand.asc(), Item.product_type.asc())
            .limit(flt.limit)
            .offset(flt.offset)
        )
        groups = (await self.db.execute(page_stmt)).all()

        rows: List[Dict[str, Any]] = []
        index: Dict[Tuple[Any, Any, Any], Dict[str, Any]] = {}
        for model, brand, product_type, quantity, latest in groups:
            row = {
                "model": model,
                "brand": brand,
                "product_type": product_type,
                "quantity": quantity,
                "latest_received": jsonable(latest),
                "status_counts": {status: 0 for status in statuses},
            }
            rows.append(row)
            index[(model, brand, product_type)] = row

        if index:
            sparse_stmt = (
                _joined(select(*GROUP_COLUMNS, InventoryUnit.status, func.count(InventoryUnit.id)))
                .where(*where)
                .where(_group_match(list(index)))
                .group_by(*GROUP_COLUMNS, InventoryUnit.status)
            )
            for model, brand, product_type, status, count in (await self.db.execute(sparse_stmt)).all():
                counts = index[(model, brand, product_type)]["status_counts"]
                # a status inserted between the two phases still gets its own key
                counts[status] = counts.get(status, 0) + count

        return {"statuses": statuses, "rows": rows, "totalCount": group_count or 0}
