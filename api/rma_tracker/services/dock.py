# rma_tracker/services/dock.py
"""
Dock receiving - parcels logged on arrival, keyed by tracking number.

Inventory units reference a parcel by tracking_num, so an entry with
units against it cannot be deleted.
"""
from __future__ import annotations
import logging
from typing import Any, Dict, Mapping, Optional

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.db_models import Customer, DockReceivingEntry, InventoryUnit
from rma_tracker.errors import ConflictError, NotFoundError, ValidationError, translate_integrity_error
from rma_tracker.identity import Actor
from rma_tracker.services.catalog import CUSTOMER_COLUMNS, CUSTOMER_EDITABLE, CustomerService
from rma_tracker.services.filters import build_dock_sort, parse_positive_int
from rma_tracker.services.views import jsonable
from rma_tracker.settings import Settings, settings as default_settings

logger = logging.getLogger(__name__)

DOCK_EDITABLE = ("tracking_num", "carrier", "rma_num", "rma_type", "quantity")


class DockReceivingService:
    def __init__(self, db: AsyncSession, settings: Settings = default_settings):
        self.db = db
        self.settings = settings

    async def _flush(self) -> None:
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e) from e

    async def create(self, data: Mapping[str, Any], actor: Optional[Actor] = None) -> DockReceivingEntry:
        tracking_num = (data.get("tracking_num") or "").strip()
        user_created = data.get("user_created") or (actor.label if actor else None)
        if not tracking_num:
            raise ValidationError("Required fields are missing.", field="tracking_num")
        if not data.get("rma_type"):
            raise ValidationError("Required fields are missing.", field="rma_type")
        if not user_created:
            raise ValidationError("Required fields are missing.", field="user_created")

        customer_id = None
        if data.get("customer_name"):
            customer = await CustomerService(self.db).by_name(data["customer_name"])
            customer_id = customer.id if customer else None

        entry = DockReceivingEntry(
            tracking_num=tracking_num,
            carrier=data.get("carrier"),
            rma_num=data.get("rma_num"),
            rma_type=data["rma_type"],
            quantity=data.get("quantity"),
            customer_id=customer_id,
            user_created=str(user_created),
        )
        self.db.add(entry)
        await self._flush()
        logger.info("Dock received %s (RMA %s)", tracking_num, entry.rma_num)
        return entry

    async def list(self, page: Any = 1, limit: Any = 5, order: Optional[str] = "desc",
                   order_by: Optional[str] = "date_created") -> Dict[str, Any]:
        page = parse_positive_int(page, 1, "page")
        limit = min(parse_positive_int(limit, 5, "limit"), self.settings.MAX_PAGE_SIZE)

        stmt = (
            select(DockReceivingEntry, Customer)
            .outerjoin(Customer, Customer.id == DockReceivingEntry.customer_id)
            .order_by(*build_dock_sort(order_by, order))
            .limit(limit)
            .offset((page - 1) * limit)
        )
        rows = []
        for entry, customer in (await self.db.execute(stmt)).all():
            row = {name: (getattr(customer, name) if customer else None) for name in CUSTOMER_COLUMNS[1:]}
            row.update({
                "id": entry.id,
                "tracking_num": entry.tracking_num,
                "carrier": entry.carrier,
                "rma_num": entry.rma_num,
                "rma_type": entry.rma_type,
                "quantity": entry.quantity,
                "customer_id": entry.customer_id,
                "user_created": entry.user_created,
                "date_created": jsonable(entry.date_created),
            })
            rows.append(row)

        total = await self.db.scalar(select(func.count(DockReceivingEntry.id)))
        return {"rows": rows, "totalCount": total or 0}

    async def update(self, entry_id: int, data: Mapping[str, Any]) -> DockReceivingEntry:
        """Edit the entry and, when ``customer_id`` is given, that customer's record."""
        entry = await self.db.get(DockReceivingEntry, entry_id)
        if entry is None:
            raise NotFoundError("Dock receiving record not found")

        for name in DOCK_EDITABLE:
            if name in data:
                setattr(entry, name, data[name])
        if entry.tracking_num is None or not str(entry.tracking_num).strip():
            raise ValidationError("tracking_num cannot be empty", field="tracking_num")

        customer_id = data.get("customer_id")
        if customer_id:
            customer = await self.db.get(Customer, customer_id)
            if customer is None:
                raise NotFoundError("Customer record not found")
            if data.get("name"):
                customer.name = data["name"]
            for name in CUSTOMER_EDITABLE:
                if name in data:
                    setattr(customer, name, data[name])

        # units follow a changed tracking_num through ON UPDATE CASCADE
        await self._flush()
        logger.info("Dock receiving %s updated", entry_id)
        return entry

    async def delete(self, entry_id: int) -> None:
        entry = await self.db.get(DockReceivingEntry, entry_id)
        if entry is None:
            raise NotFoundError("Dock receiving entry not found.")

        stmt = select(func.count(InventoryUnit.id)).where(InventoryUnit.tracking_num == entry.tracking_num)
        units = await self.db.scalar(stmt)
        if units:
            raise ConflictError(
                f"{units} inventory unit(s) reference tracking # {entry.tracking_num}.",
                constraint="fk_inventory_tracking",
            )
        await self.db.delete(entry)
        await self._flush()
        logger.info("Dock receiving %s deleted", entry_id)
