# rma_tracker/services/inventory.py
"""
Inventory Lifecycle Manager - intake, relocation and edits of physical units.

Handles:
- Intake: reference checks, ownership resolution, receipt counter bump
- Bulk relocation with single-slot location history
- Field edits guarded by item / brand consistency
- Per-brand unit listing for the RMA receiving page
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional

from sqlalchemy import and_, case, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.db_models import DockReceivingEntry, InventoryUnit, Item, RmaReceivingEntry
from rma_tracker.errors import (
    CONSTRAINT_ERRORS, ConflictError, NotFoundError, ReferentialError,
    ValidationError, translate_integrity_error,
)
from rma_tracker.identity import Actor
from rma_tracker.services.filters import parse_positive_int, sort_direction
from rma_tracker.services.views import unit_row, unit_select
from rma_tracker.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

CREATE_REQUIRED = (
    "rma_num", "serial_num", "tracking_num", "item_id",
    "grade", "status", "progress", "user_created",
)
CREATE_OPTIONAL = ("location_current", "lamp_hours", "missing_accessories", "notes")

UPDATABLE = (
    "rma_num", "serial_num", "tracking_num", "status", "progress", "grade",
    "lamp_hours", "location_current", "notes", "missing_accessories",
)

BRAND_SORT_COLUMNS = {
    "id": InventoryUnit.id,
    "rma_num": InventoryUnit.rma_num,
    "item_id": InventoryUnit.item_id,
    "brand": Item.brand,
    "serial_num": InventoryUnit.serial_num,
    "tracking_num": InventoryUnit.tracking_num,
    "location_current": InventoryUnit.location_current,
    "grade": InventoryUnit.grade,
    "status": InventoryUnit.status,
    "notes": InventoryUnit.notes,
    "user": InventoryUnit.user_created,
    "date_rma_received": InventoryUnit.date_rma_received,
}


def _message(constraint: str) -> str:
    return CONSTRAINT_ERRORS[constraint][1]


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"{name} must be an integer", field=name)


def _chunks(values: List[str], size: int) -> Iterable[List[str]]:
    for start in range(0, len(values), size):
        yield values[start:start + size]


class InventoryService:
    """Service for inventory unit lifecycle operations."""

    def __init__(self, db: AsyncSession, settings: Settings = default_settings):
        self.db = db
        self.settings = settings

    # =========================================================================
    # Lookups
    # =========================================================================

    async def get_view(self, unit_id: int) -> Dict[str, Any]:
        stmt = (
            unit_select()
            .where(InventoryUnit.id == unit_id)
            .execution_options(populate_existing=True)
        )
        row = (await self.db.execute(stmt)).first()
        if row is None:
            raise NotFoundError("Item not found")
        return unit_row(*row)

    async def _dock_received(self, tracking_num: str) -> bool:
        stmt = select(DockReceivingEntry.id).where(DockReceivingEntry.tracking_num == tracking_num).limit(1)
        return (await self.db.scalar(stmt)) is not None

    async def _serial_taken(self, serial_num: str, exclude_id: Optional[int] = None) -> bool:
        stmt = select(InventoryUnit.id).where(InventoryUnit.serial_num == serial_num)
        if exclude_id is not None:
            stmt = stmt.where(InventoryUnit.id != exclude_id)
        return (await self.db.scalar(stmt.limit(1))) is not None

    async def _rma_type(self, rma_num: str) -> Optional[str]:
        stmt = select(RmaReceivingEntry.rma_type).where(RmaReceivingEntry.rma_num == rma_num).limit(1)
        return await self.db.scalar(stmt)

    # =========================================================================
    # Intake
    # =========================================================================

    async def create(self, data: Mapping[str, Any], actor: Optional[Actor] = None) -> Dict[str, Any]:
        """
        Create a unit and count it against its RMA.

        Must run inside the caller's transaction: the unit insert and the
        counter increment commit or roll back together.
        """
        for name in CREATE_REQUIRED:
            value = data.get(name)
            if value is None or (isinstance(value, str) and not value.strip()):
                raise ValidationError(f"{name} is required", field=name)

        item_id = _as_int(data["item_id"], "item_id")
        rma_num = str(data["rma_num"]).strip()
        serial_num = str(data["serial_num"]).strip()
        tracking_num = str(data["tracking_num"]).strip()

        item = await self.db.get(Item, item_id)
        if item is None:
            raise ReferentialError(_message("fk_inventory_item"), "item_id")
        if not await self._dock_received(tracking_num):
            raise ReferentialError(_message("fk_inventory_tracking"), "tracking_num")
        if await self._serial_taken(serial_num):
            raise ConflictError(_message("uq_inventory_serial"), constraint="uq_inventory_serial")

        ownership = None
        if await self._rma_type(rma_num) == self.settings.MASS_MERCHANT_RMA_TYPE:
            ownership = item.brand

        unit = InventoryUnit(
            rma_num=rma_num,
            serial_num=serial_num,
            tracking_num=tracking_num,
            item_id=item_id,
            grade=data["grade"],
            status=data["status"],
            progress=data["progress"],
            user_created=str(data["user_created"]),
            ownership=ownership,
            **{name: data.get(name) for name in CREATE_OPTIONAL},
        )
        self.db.add(unit)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e) from e

        await self._count_receipt(rma_num, item_id)
        logger.info("Unit %s received on RMA %s (item %s)", serial_num, rma_num, item_id)
        return await self.get_view(unit.id)

    async def _count_receipt(self, rma_num: str, item_id: int) -> None:
        stmt = (
            update(RmaReceivingEntry)
            .where(RmaReceivingEntry.rma_num == rma_num, RmaReceivingEntry.item_id == item_id)
            .values(quantity_received=RmaReceivingEntry.quantity_received + 1)
            .execution_options(synchronize_session=False)
        )
        if self.settings.RECEIPT_OVERAGE_POLICY == "block":
            stmt = stmt.where(RmaReceivingEntry.quantity_received < RmaReceivingEntry.quantity_reported)
            result = await self.db.execute(stmt)
            if result.rowcount == 0:
                raise ConflictError(
                    f"No outstanding reported quantity for item {item_id} on RMA {rma_num}.",
                    constraint="quantity_reported",
                )
            return

        result = await self.db.execute(stmt)
        if result.rowcount == 0:
            logger.warning("No rma_receiving row for RMA %s item %s; receipt not counted", rma_num, item_id)

    # =========================================================================
    # Relocation
    # =========================================================================

    async def relocate(self, serials: Any, location: Optional[str], actor: Actor) -> int:
        """
        Move units to ``location``; returns how many units matched.

        location_previous only takes the old value when the unit had a
        location and it differs from the target, so re-saving is a no-op
        for history. date_shelved is stamped on first placement only.
        """
        if not isinstance(serials, (list, tuple)) or not serials:
            raise ValidationError("No serial numbers provided", field="serialNumbers")
        location = (location or "").strip()
        if not location:
            raise ValidationError("New location is required", field="location")

        wanted = list(dict.fromkeys(str(s).strip() for s in serials if s and str(s).strip()))
        if not wanted:
            raise ValidationError("No serial numbers provided", field="serialNumbers")

        moves_away = and_(
            InventoryUnit.location_current.is_not(None),
            InventoryUnit.location_current != location,
        )
        matched = 0
        for chunk in _chunks(wanted, self.settings.RELOCATE_CHUNK_SIZE):
            stmt = (
                update(InventoryUnit)
                .where(InventoryUnit.serial_num.in_(chunk))
                .values(
                    location_previous=case(
                        (moves_away, InventoryUnit.location_current),
                        else_=InventoryUnit.location_previous,
                    ),
                    location_current=location,
                    date_shelved=func.coalesce(InventoryUnit.date_shelved, func.now()),
                    user_last_updated=actor.label,
                )
                .execution_options(synchronize_session=False)
            )
            result = await self.db.execute(stmt)
            matched += result.rowcount

        logger.info("Relocated %d/%d units to %s by %s", matched, len(wanted), location, actor.label)
        return matched

    # =========================================================================
    # Edits
    # =========================================================================

    async def update(self, unit_id: int, fields: Mapping[str, Any], actor: Optional[Actor] = None) -> Dict[str, Any]:
        if not fields.get("item_id") or not fields.get("brand"):
            raise ValidationError("item_id and brand are required", field="item_id")
        item_id = _as_int(fields["item_id"], "item_id")

        stmt = select(Item.id).where(Item.id == item_id, Item.brand == fields["brand"])
        if await self.db.scalar(stmt) is None:
            raise ValidationError("Item ID does not belong to the specified brand", field="brand")

        unit = await self.db.get(InventoryUnit, unit_id)
        if unit is None:
            raise NotFoundError("Item not found")

        changes = {name: fields[name] for name in UPDATABLE if name in fields}

        tracking_num = changes.get("tracking_num")
        if tracking_num and tracking_num != unit.tracking_num and not await self._dock_received(tracking_num):
            raise ReferentialError(_message("fk_inventory_tracking"), "tracking_num")

        serial_num = changes.get("serial_num")
        if serial_num and serial_num != unit.serial_num and await self._serial_taken(serial_num, unit.id):
            raise ConflictError(_message("uq_inventory_serial"), constraint="uq_inventory_serial")

        if "location_current" in changes:
            new_location = changes["location_current"] or None
            if unit.location_current is not None and unit.location_current != new_location:
                unit.location_previous = unit.location_current
            changes["location_current"] = new_location

        for name, value in changes.items():
            setattr(unit, name, value)
        unit.item_id = item_id
        unit.user_last_updated = fields.get("user") or (actor.label if actor else unit.user_last_updated)

        try:
            await self.db.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e) from e

        logger.info("Unit %s updated (%s)", unit_id, ", ".join(sorted(changes)) or "no field changes")
        return await self.get_view(unit_id)

    # =========================================================================
    # Listing
    # =========================================================================

    async def list_by_brand(
        self,
        brand: Optional[str],
        page: Any = 1,
        limit: Any = 5,
        order: Optional[str] = "desc",
        order_by: Optional[str] = "date_rma_received",
    ) -> Dict[str, Any]:
        if not brand:
            raise ValidationError("brand is required", field="brand")
        page = parse_positive_int(page, 1, "page")
        limit = min(parse_positive_int(limit, 5, "limit"), self.settings.MAX_PAGE_SIZE)

        column = BRAND_SORT_COLUMNS.get(order_by or "", InventoryUnit.date_rma_received)
        primary = column.asc() if sort_direction(order) == "ASC" else column.desc()

        stmt = (
            unit_select()
            .where(Item.brand == brand)
            .order_by(primary, InventoryUnit.id.asc())
            .limit(limit)
            .offset((page - 1) * limit)
        )
        rows = [unit_row(*row) for row in (await self.db.execute(stmt)).all()]

        count_stmt = (
            select(func.count(InventoryUnit.id))
            .join(Item, Item.id == InventoryUnit.item_id)
            .where(Item.brand == brand)
        )
        total = await self.db.scalar(count_stmt)
        return {"rows": rows, "totalCount": total or 0}
