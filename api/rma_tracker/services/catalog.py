# rma_tracker/services/catalog.py
"""
Reference data: catalog items, customers and carriers.
"""
from __future__ import annotations
import logging
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.db_models import Carrier, Customer, Item
from rma_tracker.errors import NotFoundError, ValidationError, translate_integrity_error
from rma_tracker.services.filters import build_catalog_filter, parse_date
from rma_tracker.services.views import model_to_dict

logger = logging.getLogger(__name__)

ITEM_COLUMNS = (
    "id", "model", "part_num", "brand", "product_type", "description",
    "upc", "asin", "date_released", "msrp",
)
ITEM_EDITABLE = ("upc", "asin", "model", "brand", "product_type", "description", "date_released", "msrp")

CUSTOMER_COLUMNS = (
    "id", "name", "address", "city", "province", "postal_code", "country", "phone", "email",
)
CUSTOMER_EDITABLE = CUSTOMER_COLUMNS[2:]


async def _flush(db: AsyncSession) -> None:
    try:
        await db.flush()
    except IntegrityError as e:
        raise translate_integrity_error(e) from e


class ItemService:
    """Catalog lookups and edits."""

    SEARCH_LIMIT = 10

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self, params: Mapping[str, Any]) -> List[Dict[str, Any]]:
        stmt = select(Item).where(*build_catalog_filter(params)).order_by(Item.id)
        return [model_to_dict(i, ITEM_COLUMNS) for i in (await self.db.scalars(stmt)).all()]

    async def search(self, model: Optional[str]) -> List[Dict[str, Any]]:
        if not model:
            raise ValidationError("Model query parameter is required", field="model")
        stmt = (
            select(Item.id, Item.model, Item.brand, Item.product_type)
            .where(Item.model.like(f"%{model}%"))
            .order_by(Item.model)
            .limit(self.SEARCH_LIMIT)
        )
        return [dict(row._mapping) for row in (await self.db.execute(stmt)).all()]

    async def update(self, item_id: int, fields: Mapping[str, Any]) -> Dict[str, Any]:
        item = await self.db.get(Item, item_id)
        if item is None:
            raise NotFoundError("Item not found")

        for name in ITEM_EDITABLE:
            if name not in fields:
                continue
            value = fields[name]
            if name == "date_released":
                value = parse_date(value, name)
            elif name == "msrp" and value not in (None, ""):
                try:
                    value = Decimal(str(value))
                except InvalidOperation:
                    raise ValidationError("msrp must be a number", field="msrp")
            elif name == "msrp":
                value = None
            elif name == "model" and not value:
                raise ValidationError("model cannot be empty", field="model")
            setattr(item, name, value)

        await _flush(self.db)
        logger.info("Item %s updated", item_id)
        return model_to_dict(item, ITEM_COLUMNS)


class CustomerService:
    """Customer records; ``name`` is the business key."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list(self) -> List[Dict[str, Any]]:
        stmt = select(Customer).order_by(Customer.name)
        return [model_to_dict(c, CUSTOMER_COLUMNS) for c in (await self.db.scalars(stmt)).all()]

    async def by_name(self, name: str) -> Optional[Customer]:
        return await self.db.scalar(select(Customer).where(Customer.name == name))

    async def add(self, data: Mapping[str, Any]) -> Customer:
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Customer name is required.", field="name")
        customer = Customer(name=name, **{k: data.get(k) for k in CUSTOMER_EDITABLE})
        self.db.add(customer)
        await _flush(self.db)
        logger.info("Customer added: %s", name)
        return customer

    async def upsert(self, data: Mapping[str, Any]) -> Customer:
        """Insert by name, or update the address fields of the existing record."""
        name = (data.get("name") or "").strip()
        if not name:
            raise ValidationError("Customer name is required.", field="name")
        customer = await self.by_name(name)
        if customer is None:
            return await self.add(data)
        for k in CUSTOMER_EDITABLE:
            if k in data:
                setattr(customer, k, data[k])
        await _flush(self.db)
        return customer

    @staticmethod
    def to_dict(customer: Customer) -> Dict[str, Any]:
        return model_to_dict(customer, CUSTOMER_COLUMNS)


class CarrierService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def names(self) -> List[str]:
        stmt = select(Carrier.name).distinct().order_by(Carrier.name)
        return list((await self.db.scalars(stmt)).all())
