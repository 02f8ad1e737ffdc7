# rma_tracker/db_models.py
"""
SQLAlchemy ORM Models for RMA Tracker.

Catalog, dock receiving, RMA counters, located inventory and shipout tables.
"""
from __future__ import annotations
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List
import enum

from sqlalchemy import (
    String, Integer, BigInteger, Boolean, Text, Date, DateTime,
    Numeric, ForeignKey, Index, UniqueConstraint,
    Enum as SQLEnum, func
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from rma_tracker.database import Base

# BIGINT keys on PostgreSQL, INTEGER on SQLite so rowid autoincrement works
PK = BigInteger().with_variant(Integer, "sqlite")


# ============================================================================
# ENUMS
# ============================================================================

class TransactionType(str, enum.Enum):
    single_item = "Single-item"
    multiple_item = "Multiple-item"
    skid = "Skid"


class ShipoutStatus(str, enum.Enum):
    pending = "Pending"
    shipped = "Shipped"


def _enum_values(e):
    return [m.value for m in e]


# ============================================================================
# 1. ITEMS (catalog)
# ============================================================================

class Item(Base):
    __tablename__ = "items"

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    model: Mapped[str] = mapped_column(String(100), nullable=False)
    part_num: Mapped[str] = mapped_column(String(100), nullable=False)
    brand: Mapped[Optional[str]] = mapped_column(String(100))
    product_type: Mapped[Optional[str]] = mapped_column(String(100))
    description: Mapped[Optional[str]] = mapped_column(Text)
    upc: Mapped[Optional[str]] = mapped_column(String(50))
    asin: Mapped[Optional[str]] = mapped_column(String(50))
    date_released: Mapped[Optional[date]] = mapped_column(Date)
    msrp: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2))

    __table_args__ = (
        UniqueConstraint("model", "part_num", name="uq_items_model_part"),
        Index("idx_items_brand", "brand"),
    )


# ============================================================================
# 2. CUSTOMERS / CARRIERS
# ============================================================================

class Customer(Base):
    __tablename__ = "customers"

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    address: Mapped[Optional[str]] = mapped_column(Text)
    city: Mapped[Optional[str]] = mapped_column(String(100))
    province: Mapped[Optional[str]] = mapped_column(String(100))
    postal_code: Mapped[Optional[str]] = mapped_column(String(20))
    country: Mapped[Optional[str]] = mapped_column(String(100))
    phone: Mapped[Optional[str]] = mapped_column(String(50))
    email: Mapped[Optional[str]] = mapped_column(String(255))

    __table_args__ = (
        UniqueConstraint("name", name="uq_customers_name"),
    )


class Carrier(Base):
    __tablename__ = "carriers"

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)


# ============================================================================
# 3. DOCK RECEIVING
# ============================================================================

class DockReceivingEntry(Base):
    __tablename__ = "dock_receiving"

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    tracking_num: Mapped[str] = mapped_column(String(100), nullable=False)
    carrier: Mapped[Optional[str]] = mapped_column(String(100))
    rma_num: Mapped[Optional[str]] = mapped_column(String(100))
    rma_type: Mapped[str] = mapped_column(String(100), nullable=False)
    quantity: Mapped[Optional[int]] = mapped_column(Integer)
    customer_id: Mapped[Optional[int]] = mapped_column(PK, ForeignKey("customers.id", ondelete="SET NULL"))
    user_created: Mapped[str] = mapped_column(String(100), nullable=False)
    date_created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)

    # Relationships
    customer: Mapped[Optional["Customer"]] = relationship()

    __table_args__ = (
        UniqueConstraint("tracking_num", name="uq_dock_tracking"),
        Index("idx_dock_rma", "rma_num"),
    )


# ============================================================================
# 4. RMA RECEIVING (reported / received counters)
# ============================================================================

class RmaReceivingEntry(Base):
    __tablename__ = "rma_receiving"

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    rma_num: Mapped[str] = mapped_column(String(100), nullable=False)
    rma_type: Mapped[Optional[str]] = mapped_column(String(100))
    item_id: Mapped[int] = mapped_column(PK, ForeignKey("items.id", ondelete="RESTRICT"), nullable=False)
    user_id: Mapped[Optional[int]] = mapped_column(Integer)
    quantity_reported: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    quantity_received: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    import_id: Mapped[Optional[int]] = mapped_column(Integer)
    date_created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)

    # Relationships
    item: Mapped["Item"] = relationship()

    __table_args__ = (
        UniqueConstraint("rma_num", "item_id", name="uq_rma_receiving_item"),
        Index("idx_rma_receiving_import", "import_id"),
    )


# ============================================================================
# 5. LOCATIONS
# ============================================================================

class Location(Base):
    __tablename__ = "locations"

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text)

    __table_args__ = (
        UniqueConstraint("name", name="uq_locations_name"),
    )


# ============================================================================
# 6. INVENTORY UNITS
# ============================================================================

class InventoryUnit(Base):
    __tablename__ = "inventory"

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    rma_num: Mapped[str] = mapped_column(String(100), nullable=False)
    serial_num: Mapped[str] = mapped_column(String(100), nullable=False)
    tracking_num: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("dock_receiving.tracking_num", name="fk_inventory_tracking", onupdate="CASCADE"),
        nullable=False,
    )
    item_id: Mapped[int] = mapped_column(
        PK, ForeignKey("items.id", name="fk_inventory_item", ondelete="RESTRICT"), nullable=False
    )
    location_current: Mapped[Optional[str]] = mapped_column(String(100))
    location_previous: Mapped[Optional[str]] = mapped_column(String(100))
    grade: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    progress: Mapped[Optional[str]] = mapped_column(String(100))
    lamp_hours: Mapped[Optional[int]] = mapped_column(Integer)
    missing_accessories: Mapped[Optional[str]] = mapped_column(Text)
    ownership: Mapped[Optional[str]] = mapped_column(String(100))
    shipped: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    shipout_id: Mapped[Optional[int]] = mapped_column(PK, ForeignKey("shipout_transactions.id", ondelete="SET NULL"))
    date_shipped: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    notes: Mapped[Optional[str]] = mapped_column(Text)
    user_created: Mapped[str] = mapped_column(String(100), nullable=False)
    user_last_updated: Mapped[Optional[str]] = mapped_column(String(100))
    date_rma_received: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)
    date_shelved: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    date_updated: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=func.now(),
        onupdate=func.now(),
        nullable=False
    )

    # Relationships
    item: Mapped["Item"] = relationship()

    __table_args__ = (
        UniqueConstraint("serial_num", name="uq_inventory_serial"),
        Index("idx_inventory_location", "location_current"),
        Index("idx_inventory_rma_item", "rma_num", "item_id"),
        Index("idx_inventory_status", "status"),
    )


# ============================================================================
# 7. SHIPOUT TRANSACTIONS
# ============================================================================

class ShipoutTransaction(Base):
    __tablename__ = "shipout_transactions"

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    customer_id: Mapped[int] = mapped_column(PK, ForeignKey("customers.id", ondelete="RESTRICT"), nullable=False)
    user: Mapped[str] = mapped_column(String(100), nullable=False)
    transaction_type: Mapped[TransactionType] = mapped_column(
        SQLEnum(TransactionType, name="shipout_transaction_type", values_callable=_enum_values),
        nullable=False
    )
    status: Mapped[ShipoutStatus] = mapped_column(
        SQLEnum(ShipoutStatus, name="shipout_status", values_callable=_enum_values),
        default=ShipoutStatus.pending,
        nullable=False
    )
    courier: Mapped[Optional[str]] = mapped_column(String(100))
    license_plate: Mapped[Optional[str]] = mapped_column(String(50))
    date_created: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=func.now(), nullable=False)

    # Relationships
    customer: Mapped["Customer"] = relationship()
    lines: Mapped[List["ShipoutItem"]] = relationship(
        back_populates="transaction", cascade="all, delete-orphan", passive_deletes=True
    )

    __table_args__ = (
        Index("idx_shipout_status", "status"),
    )


class ShipoutItem(Base):
    __tablename__ = "shipout_items"

    id: Mapped[int] = mapped_column(PK, primary_key=True)
    transaction_id: Mapped[int] = mapped_column(
        PK, ForeignKey("shipout_transactions.id", ondelete="CASCADE"), nullable=False
    )
    item_id: Mapped[Optional[int]] = mapped_column(PK, ForeignKey("items.id", ondelete="RESTRICT"))
    inventory_id: Mapped[Optional[int]] = mapped_column(PK, ForeignKey("inventory.id", ondelete="SET NULL"))
    requested_quantity: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    # Skid transactions
    skid_number: Mapped[Optional[str]] = mapped_column(String(50))
    # Single-item / Multiple-item transactions
    length: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    width: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    height: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))
    weight: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2))

    # Relationships
    transaction: Mapped["ShipoutTransaction"] = relationship(back_populates="lines")
    item: Mapped[Optional["Item"]] = relationship()
    unit: Mapped[Optional["InventoryUnit"]] = relationship()

    __table_args__ = (
        UniqueConstraint("transaction_id", "inventory_id", name="uq_shipout_item_unit"),
        Index("idx_shipout_items_transaction", "transaction_id"),
    )
