# rma_tracker/services/shipout.py
"""
Shipout Transaction State Machine.

Pending -> Shipped is the only transition, and only ``complete`` makes it.
A Shipped transaction is frozen: header, pick list and packaging rows
can no longer change.
"""
from __future__ import annotations
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Sequence

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.db_models import (
    Customer, InventoryUnit, Item, ShipoutItem, ShipoutStatus,
    ShipoutTransaction, TransactionType,
)
from rma_tracker.errors import (
    ConflictError, NotFoundError, ReferentialError, ValidationError,
    translate_integrity_error,
)
from rma_tracker.services.views import jsonable

logger = logging.getLogger(__name__)

HEADER_FIELDS = ("customer_id", "user", "transaction_type", "courier", "license_plate")
DIMENSIONS = ("length", "width", "height", "weight")


def _transaction_type(value: Any) -> TransactionType:
    if isinstance(value, TransactionType):
        return value
    try:
        return TransactionType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in TransactionType)
        raise ValidationError(f"transaction_type must be one of: {allowed}", field="transaction_type")


class ShipoutService:
    """Service for pick lists, packaging and shipout completion."""

    def __init__(self, db: AsyncSession):
        self.db = db

    # =========================================================================
    # Helpers
    # =========================================================================

    async def _get(self, transaction_id: Any, *, for_update: bool = False) -> ShipoutTransaction:
        stmt = select(ShipoutTransaction).where(ShipoutTransaction.id == transaction_id)
        if for_update:
            stmt = stmt.with_for_update()
        tx = await self.db.scalar(stmt)
        if tx is None:
            raise NotFoundError("Transaction not found")
        return tx

    @staticmethod
    def _ensure_pending(tx: ShipoutTransaction) -> None:
        if tx.status == ShipoutStatus.shipped:
            raise ConflictError("Cannot modify a completed transaction", constraint="shipout_status")

    async def _ensure_customer(self, customer_id: Any) -> None:
        if await self.db.get(Customer, customer_id) is None:
            raise ReferentialError("Customer not found.", "customer_id")

    @staticmethod
    def _validate_header(header: Mapping[str, Any]) -> None:
        for name in ("customer_id", "user", "transaction_type"):
            if not header.get(name):
                raise ValidationError("Missing required fields", field=name)

    # =========================================================================
    # Pick list
    # =========================================================================

    async def create(self, header: Mapping[str, Any]) -> ShipoutTransaction:
        """Open an empty Pending transaction; lines come later through the pick list."""
        self._validate_header(header)
        status = header.get("status")
        if status not in (None, "", ShipoutStatus.pending.value):
            raise ValidationError("New transactions start as Pending", field="status")
        tx_type = _transaction_type(header["transaction_type"])
        await self._ensure_customer(header["customer_id"])

        tx = ShipoutTransaction(
            customer_id=header["customer_id"],
            user=header["user"],
            transaction_type=tx_type,
            status=ShipoutStatus.pending,
            courier=header.get("courier"),
            license_plate=header.get("license_plate"),
        )
        self.db.add(tx)
        await self.db.flush()
        logger.info("Transaction %s opened", tx.id)
        return tx

    async def create_or_update(self, header: Mapping[str, Any], lines: Sequence[Mapping[str, Any]]) -> int:
        """
        Save a pick list. Returns the transaction id.

        Every model is resolved before anything is written, so an unknown
        model leaves no header or line behind.
        """
        self._validate_header(header)
        if not lines:
            raise ValidationError("Missing required fields", field="items")
        tx_type = _transaction_type(header["transaction_type"])
        await self._ensure_customer(header["customer_id"])

        resolved = []
        for line in lines:
            model = (line.get("model") or "").strip()
            item_id = None
            if model:
                stmt = select(Item.id).where(Item.model == model).order_by(Item.id).limit(1)
                item_id = await self.db.scalar(stmt)
            if item_id is None:
                raise ReferentialError(f'Item with model "{model}" not found', "model")
            resolved.append((item_id, line))

        tx = None
        transaction_id = header.get("transaction_id")
        if transaction_id:
            tx = await self.db.scalar(
                select(ShipoutTransaction).where(ShipoutTransaction.id == transaction_id).with_for_update()
            )

        if tx is not None:
            self._ensure_pending(tx)
            tx.customer_id = header["customer_id"]
            tx.user = header["user"]
            tx.transaction_type = tx_type
            tx.courier = header.get("courier")
            tx.license_plate = header.get("license_plate")
            # pick list rows only; per-unit packaging rows stay
            await self.db.execute(
                delete(ShipoutItem)
                .where(ShipoutItem.transaction_id == tx.id, ShipoutItem.inventory_id.is_(None))
                .execution_options(synchronize_session=False)
            )
        else:
            tx = ShipoutTransaction(
                customer_id=header["customer_id"],
                user=header["user"],
                transaction_type=tx_type,
                status=ShipoutStatus.pending,
                courier=header.get("courier"),
                license_plate=header.get("license_plate"),
            )
            self.db.add(tx)
            await self.db.flush()

        for item_id, line in resolved:
            self.db.add(ShipoutItem(
                transaction_id=tx.id,
                item_id=item_id,
                requested_quantity=line.get("quantity") or 1,
                skid_number=line.get("skid_number"),
                **{name: line.get(name) for name in DIMENSIONS},
            ))
        await self.db.flush()

        logger.info("Pick list saved for transaction %s (%d lines)", tx.id, len(resolved))
        return tx.id

    async def update(self, transaction_id: Any, fields: Mapping[str, Any]) -> ShipoutTransaction:
        """Edit header fields of a Pending transaction. Status is not editable here."""
        tx = await self._get(transaction_id, for_update=True)
        self._ensure_pending(tx)

        if "status" in fields and fields["status"] not in (None, tx.status.value):
            raise ValidationError("Status can only change by completing the transaction", field="status")

        if fields.get("customer_id") is not None:
            await self._ensure_customer(fields["customer_id"])
        for name in HEADER_FIELDS:
            if name not in fields or fields[name] is None:
                continue
            value = fields[name]
            if name == "transaction_type":
                value = _transaction_type(value)
            setattr(tx, name, value)

        await self.db.flush()
        logger.info("Transaction %s updated", tx.id)
        return tx

    # =========================================================================
    # Packaging / completion
    # =========================================================================

    async def _upsert_packaging(self, tx: ShipoutTransaction, unit: InventoryUnit, entry: Mapping[str, Any]) -> None:
        stmt = select(ShipoutItem).where(
            ShipoutItem.transaction_id == tx.id, ShipoutItem.inventory_id == unit.id
        )
        row = await self.db.scalar(stmt)
        if row is None:
            row = ShipoutItem(transaction_id=tx.id, inventory_id=unit.id, item_id=unit.item_id, requested_quantity=1)
            self.db.add(row)

        if tx.transaction_type == TransactionType.skid:
            row.skid_number = entry.get("skid_number")
        else:
            for name in DIMENSIONS:
                setattr(row, name, entry.get(name))

    async def _units_by_serial(self, entries: Sequence[Mapping[str, Any]]) -> List[tuple]:
        serials = [str(e.get("serial_num") or "").strip() for e in entries]
        if not all(serials):
            raise ValidationError("Every unit needs a serial_num", field="serial_num")
        if len(set(serials)) != len(serials):
            raise ValidationError("Duplicate serial numbers in request", field="serial_num")

        stmt = select(InventoryUnit).where(InventoryUnit.serial_num.in_(set(serials))).with_for_update()
        by_serial = {u.serial_num: u for u in (await self.db.scalars(stmt)).all()}

        missing = [s for s in serials if s not in by_serial]
        if missing:
            raise NotFoundError(f"Unknown serial numbers: {', '.join(missing)}")
        return [(by_serial[s], e) for s, e in zip(serials, entries)]

    async def record_packaging(self, transaction_id: Any, entries: Sequence[Mapping[str, Any]]) -> int:
        """Store skid number or dimensions per unit on a Pending transaction."""
        if not entries:
            raise ValidationError("Shipout items are required", field="items")
        tx = await self._get(transaction_id, for_update=True)
        self._ensure_pending(tx)

        pairs = await self._units_by_serial(entries)
        for unit, entry in pairs:
            await self._upsert_packaging(tx, unit, entry)
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e) from e
        return len(pairs)

    async def complete(self, transaction_id: Any, units: Sequence[Mapping[str, Any]]) -> ShipoutTransaction:
        """
        Ship every listed unit and move the transaction to Shipped.

        Must run inside the caller's transaction; any failure leaves both
        the units and the transaction untouched.
        """
        if not units:
            raise ValidationError("Missing required fields", field="items")
        tx = await self._get(transaction_id, for_update=True)
        if tx.status == ShipoutStatus.shipped:
            raise ConflictError("Transaction already shipped", constraint="shipout_status")

        pairs = await self._units_by_serial(units)
        already = [unit.serial_num for unit, _ in pairs if unit.shipped]
        if already:
            raise ConflictError(f"Already shipped: {', '.join(already)}", constraint="inventory_shipped")

        now = datetime.now(timezone.utc)
        for unit, entry in pairs:
            unit.shipped = True
            unit.shipout_id = tx.id
            unit.date_shipped = now
            await self._upsert_packaging(tx, unit, entry)

        tx.status = ShipoutStatus.shipped
        try:
            await self.db.flush()
        except IntegrityError as e:
            raise translate_integrity_error(e) from e

        logger.info("Transaction %s shipped with %d units", tx.id, len(pairs))
        return tx

    # =========================================================================
    # Reads
    # =========================================================================

    async def lines(self, transaction_id: Any) -> List[Dict[str, Any]]:
        """Line shape depends on transaction_type: skid number vs dimensions per unit."""
        tx = await self._get(transaction_id)
        stmt = (
            select(ShipoutItem, Item.model, InventoryUnit.serial_num)
            .outerjoin(Item, Item.id == ShipoutItem.item_id)
            .outerjoin(InventoryUnit, InventoryUnit.id == ShipoutItem.inventory_id)
            .where(ShipoutItem.transaction_id == tx.id)
            .order_by(ShipoutItem.id)
        )
        rows = (await self.db.execute(stmt)).all()

        if tx.transaction_type == TransactionType.skid:
            return [
                {
                    "item_id": line.item_id,
                    "quantity": line.requested_quantity,
                    "skid_number": line.skid_number,
                    "model": model,
                }
                for line, model, _serial in rows
            ]
        return [
            {
                "model": model,
                "quantity": line.requested_quantity,
                "item_id": line.item_id,
                **{name: jsonable(getattr(line, name)) for name in DIMENSIONS},
                "serial_num": serial,
            }
            for line, model, serial in rows
        ]

    async def list_transactions(self) -> List[Dict[str, Any]]:
        stmt = (
            select(ShipoutTransaction, Customer)
            .outerjoin(Customer, Customer.id == ShipoutTransaction.customer_id)
            .order_by(ShipoutTransaction.id)
        )
        out = []
        for tx, customer in (await self.db.execute(stmt)).all():
            row = self.header(tx)
            for name in ("name", "address", "phone", "city", "country", "province", "postal_code", "email"):
                row[f"customer_{name}"] = getattr(customer, name) if customer else None
            out.append(row)
        return out

    async def list_pending(self) -> List[Dict[str, Any]]:
        stmt = (
            select(ShipoutTransaction)
            .where(ShipoutTransaction.status == ShipoutStatus.pending)
            .order_by(ShipoutTransaction.id)
        )
        return [self.header(tx) for tx in (await self.db.scalars(stmt)).all()]

    @staticmethod
    def header(tx: ShipoutTransaction) -> Dict[str, Any]:
        return {
            "id": tx.id,
            "customer_id": tx.customer_id,
            "user": tx.user,
            "transaction_type": tx.transaction_type.value,
            "status": tx.status.value,
            "courier": tx.courier,
            "license_plate": tx.license_plate,
            "date_created": jsonable(tx.date_created),
        }
