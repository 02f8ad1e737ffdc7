# rma_tracker/services/locations.py
"""
Location Registry - named storage places plus per-location unit counts.

Units with no location are reported under the synthetic ``Unassigned``
entry, which is never stored in the locations table.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.db_models import InventoryUnit, Location
from rma_tracker.errors import NotFoundError, ValidationError, translate_integrity_error
from rma_tracker.services.views import unit_row, unit_select

logger = logging.getLogger(__name__)

UNASSIGNED = "Unassigned"


class LocationService:
    """Service for the location registry and the location page lookups."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_with_counts(self) -> List[Dict[str, Any]]:
        unassigned = await self.db.scalar(
            select(func.count(InventoryUnit.id)).where(InventoryUnit.location_current.is_(None))
        )
        stmt = (
            select(Location.name, Location.description, func.count(InventoryUnit.id))
            .outerjoin(InventoryUnit, InventoryUnit.location_current == Location.name)
            .group_by(Location.id, Location.name, Location.description)
            .order_by(Location.name)
        )
        rows = (await self.db.execute(stmt)).all()

        out = [{"name": UNASSIGNED, "description": "", "itemCount": unassigned or 0}]
        out.extend(
            {"name": name, "description": description or "", "itemCount": count}
            for name, description, count in rows
        )
        return out

    async def add(self, name: Optional[str], description: Optional[str] = None) -> Location:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Name is required.", field="name")
        if name == UNASSIGNED:
            raise ValidationError(f"'{UNASSIGNED}' is reserved.", field="name")

        location = Location(name=name, description=description)
        self.db.add(location)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e) from e
        logger.info("Location added: %s", name)
        return location

    async def delete(self, name: str) -> None:
        result = await self.db.execute(delete(Location).where(Location.name == name))
        if result.rowcount == 0:
            raise NotFoundError("Location not found.")
        logger.info("Location deleted: %s", name)

    async def units_at(self, name: str) -> List[Dict[str, Any]]:
        stmt = unit_select()
        if name == UNASSIGNED:
            stmt = stmt.where(InventoryUnit.location_current.is_(None))
        else:
            stmt = stmt.where(InventoryUnit.location_current == name)
        stmt = stmt.order_by(InventoryUnit.id)
        rows = (await self.db.execute(stmt)).all()
        return [unit_row(unit, item, received) for unit, item, received in rows]

    async def unit_by_serial(self, serial_num: Optional[str]) -> Dict[str, Any]:
        if not serial_num:
            raise ValidationError("Serial number is required", field="serial_num")
        stmt = unit_select().where(InventoryUnit.serial_num == serial_num)
        row = (await self.db.execute(stmt)).first()
        if row is None:
            raise NotFoundError("Item not found")
        return unit_row(*row)
