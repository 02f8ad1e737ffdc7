# rma_tracker/routers/items.py
"""
Catalog Router - items and carriers.
"""
from __future__ import annotations
from datetime import date
from typing import Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.database import get_session
from rma_tracker.identity import get_actor
from rma_tracker.services.catalog import CarrierService, ItemService

router = APIRouter(tags=["Catalog"], dependencies=[Depends(get_actor)])


class ItemUpdateRequest(BaseModel):
    upc: Optional[str] = None
    asin: Optional[str] = None
    model: Optional[str] = None
    brand: Optional[str] = None
    product_type: Optional[str] = None
    description: Optional[str] = None
    date_released: Optional[Union[date, str]] = None
    msrp: Optional[Union[float, str]] = None


@router.get("/items")
async def list_items(request: Request, db: AsyncSession = Depends(get_session)):
    """Catalog filtered by any of model, brand, product_type, part_num, description, upc, asin."""
    return await ItemService(db).list(dict(request.query_params))


@router.get("/items/search")
async def search_items(model: Optional[str] = Query(None), db: AsyncSession = Depends(get_session)):
    return await ItemService(db).search(model)


@router.put("/items/{item_id}")
async def update_item(item_id: int, request: ItemUpdateRequest, db: AsyncSession = Depends(get_session)):
    item = await ItemService(db).update(item_id, request.model_dump(exclude_unset=True))
    return {"message": "Item updated successfully", "item": item}


@router.get("/carriers")
async def list_carriers(db: AsyncSession = Depends(get_session)):
    return await CarrierService(db).names()
