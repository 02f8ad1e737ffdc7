# rma_tracker/routers/dock_receiving.py
"""
Dock Receiving Router - parcels logged at the dock by tracking number.
"""
from __future__ import annotations
from typing import Any, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.database import get_session
from rma_tracker.identity import Actor, get_actor
from rma_tracker.services.dock import DockReceivingService
from rma_tracker.settings import Settings, get_settings

router = APIRouter(prefix="/dock-receiving", tags=["Dock Receiving"], dependencies=[Depends(get_actor)])


class DockEntryRequest(BaseModel):
    tracking_num: Optional[str] = None
    carrier: Optional[str] = None
    rma_num: Optional[str] = None
    rma_type: Optional[str] = None
    quantity: Optional[int] = None
    user_created: Optional[str] = None
    customer_name: Optional[str] = None


class DockEntryUpdateRequest(BaseModel):
    tracking_num: Optional[str] = None
    carrier: Optional[str] = None
    rma_num: Optional[str] = None
    rma_type: Optional[str] = None
    quantity: Optional[int] = None
    # linked customer
    customer_id: Optional[int] = None
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    postal_code: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@router.post("", status_code=201)
async def create_entry(
    request: DockEntryRequest,
    db: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    entry = await DockReceivingService(db).create(request.model_dump(), actor)
    return {"message": "Dock receiving entry added successfully.", "id": entry.id}


@router.get("")
async def list_entries(
    page: Any = Query(1),
    limit: Any = Query(5),
    order: str = Query("desc"),
    orderBy: str = Query("date_created"),
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    return await DockReceivingService(db, settings).list(page, limit, order, orderBy)


@router.put("/{entry_id}")
async def update_entry(
    entry_id: int,
    request: DockEntryUpdateRequest,
    db: AsyncSession = Depends(get_session),
):
    await DockReceivingService(db).update(entry_id, request.model_dump(exclude_unset=True))
    return {"message": "Dock receiving record updated successfully"}


@router.delete("/{entry_id}")
async def delete_entry(entry_id: int, db: AsyncSession = Depends(get_session)):
    await DockReceivingService(db).delete(entry_id)
    return {"message": "Dock receiving entry deleted successfully."}
