# rma_tracker/services/rma_import.py
"""
RMA Import Reconciler - declared RMA rows to rma_receiving counters.

Handles:
- Part number normalization (letters, digits and dashes only)
- Catalog resolution by (model, part_num), falling back to a dash-insensitive
  part number; unresolved rows are skipped, not fatal
- Atomic upsert: insert with quantity_reported = 1 or bump it server-side
- One import_id per batch
"""
from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.db_models import Item, RmaReceivingEntry
from rma_tracker.errors import InternalError, ValidationError
from rma_tracker.identity import Actor
from rma_tracker.services.views import jsonable

logger = logging.getLogger(__name__)

_PART_NUM_JUNK = re.compile(r"[^A-Za-z0-9-]")

_UPSERT_DIALECTS = {
    "postgresql": postgresql.insert,
    "sqlite": sqlite.insert,
}


def normalize_part_num(part_num: Any) -> str:
    """Keep only letters, digits and dashes."""
    return _PART_NUM_JUNK.sub("", str(part_num or ""))


@dataclass
class ImportResult:
    added_count: int = 0
    skipped_entries: List[Dict[str, Any]] = field(default_factory=list)
    import_id: Optional[int] = None

    @property
    def all_added(self) -> bool:
        return not self.skipped_entries

    def to_dict(self) -> Dict[str, Any]:
        return {
            "addedCount": self.added_count,
            "skippedEntries": self.skipped_entries,
            "importId": self.import_id,
        }


class RmaImportService:
    """Reconciles imported RMA rows against the catalog."""

    def __init__(self, db: AsyncSession):
        self.db = db

    def _insert(self):
        dialect = self.db.get_bind().dialect.name
        try:
            return _UPSERT_DIALECTS[dialect]
        except KeyError:
            raise InternalError(f"RMA import upsert not supported on {dialect}") from None

    async def next_import_id(self) -> int:
        current = await self.db.scalar(select(func.max(RmaReceivingEntry.import_id)))
        return (current or 0) + 1

    async def _resolve_item(self, model: str, part_num: str) -> Optional[int]:
        """Exact (model, part_num) first, then the same part number with dashes ignored."""
        stmt = (
            select(Item.id)
            .where(Item.model == model, Item.part_num == part_num)
            .limit(1)
        )
        item_id = await self.db.scalar(stmt)
        if item_id is not None:
            return item_id

        stmt = (
            select(Item.id)
            .where(Item.model == model, func.replace(Item.part_num, "-", "") == part_num.replace("-", ""))
            .order_by(Item.id)
            .limit(1)
        )
        return await self.db.scalar(stmt)

    async def import_batch(self, rows: Sequence[Dict[str, Any]], actor: Optional[Actor] = None) -> ImportResult:
        """
        Reconcile one batch. Must run inside the caller's transaction.

        Rows that cannot be resolved are collected into ``skipped_entries``;
        a database failure propagates and the caller rolls the batch back.
        """
        if not isinstance(rows, (list, tuple)) or not rows:
            raise ValidationError("Invalid or empty data", field="rows")

        insert = self._insert()
        result = ImportResult(import_id=await self.next_import_id())

        for index, row in enumerate(rows):
            row = row if isinstance(row, dict) else {}
            model = str(row.get("model") or "").strip()
            rma_num = str(row.get("rma_num") or "").strip()
            part_num = normalize_part_num(row.get("part_num"))

            missing = [
                name for name, value in (("model", model), ("part_num", part_num), ("rma_num", rma_num))
                if not value
            ]
            if missing:
                result.skipped_entries.append(
                    self._skipped(index, row, part_num, f"Missing required fields: {', '.join(missing)}")
                )
                continue

            item_id = await self._resolve_item(model, part_num)
            if item_id is None:
                reason = f"Model: {model}, Part No: {part_num} not found."
                logger.warning("RMA import %s row %d skipped: %s", result.import_id, index, reason)
                result.skipped_entries.append(self._skipped(index, row, part_num, reason))
                continue

            stmt = insert(RmaReceivingEntry).values(
                rma_num=rma_num,
                rma_type=row.get("rma_type"),
                item_id=item_id,
                user_id=actor.user_id if actor else None,
                quantity_reported=1,
                quantity_received=0,
                import_id=result.import_id,
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[RmaReceivingEntry.rma_num, RmaReceivingEntry.item_id],
                set_={"quantity_reported": RmaReceivingEntry.quantity_reported + 1},
            )
            await self.db.execute(stmt)
            result.added_count += 1

        logger.info(
            "RMA import %s: %d added, %d skipped",
            result.import_id, result.added_count, len(result.skipped_entries),
        )
        return result

    @staticmethod
    def _skipped(index: int, row: Dict[str, Any], part_num: str, reason: str) -> Dict[str, Any]:
        return {
            "row": index,
            "model": row.get("model"),
            "part_num": part_num,
            "rma_num": row.get("rma_num"),
            "reason": reason,
        }

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_entries(self, rma_num: Optional[str] = None, brand: Optional[str] = None) -> List[Dict[str, Any]]:
        """Counter rows joined with the catalog, for the RMA receiving page."""
        stmt = select(RmaReceivingEntry, Item).join(Item, Item.id == RmaReceivingEntry.item_id)
        if rma_num:
            stmt = stmt.where(RmaReceivingEntry.rma_num == rma_num)
        if brand:
            stmt = stmt.where(Item.brand == brand)
        stmt = stmt.order_by(RmaReceivingEntry.id)

        out = []
        for entry, item in (await self.db.execute(stmt)).all():
            out.append({
                "id": entry.id,
                "rma_num": entry.rma_num,
                "rma_type": entry.rma_type,
                "item_id": entry.item_id,
                "date_created": jsonable(entry.date_created),
                "import_id": entry.import_id,
                "user_id": entry.user_id,
                "model": item.model,
                "part_num": item.part_num,
                "product_type": item.product_type,
                "quantity_reported": entry.quantity_reported,
                "quantity_received": entry.quantity_received,
            })
        return out

    async def list_rma_numbers(self) -> List[str]:
        stmt = select(RmaReceivingEntry.rma_num).distinct().order_by(RmaReceivingEntry.rma_num)
        return list((await self.db.scalars(stmt)).all())
