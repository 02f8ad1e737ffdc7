# rma_tracker/routers/inventory.py
"""
Inventory Router - unit intake, edits, relocation and the lookup page.
"""
from __future__ import annotations
from typing import Any, List, Optional, Union

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.database import get_session
from rma_tracker.identity import Actor, get_actor
from rma_tracker.services.inventory import InventoryService
from rma_tracker.services.reporting import InventoryReportService
from rma_tracker.settings import Settings, get_settings

router = APIRouter(prefix="/inventory", tags=["Inventory"], dependencies=[Depends(get_actor)])


# ============================================================================
# Pydantic Models for API
# ============================================================================

class UnitCreateRequest(BaseModel):
    rma_num: Optional[str] = None
    serial_num: Optional[str] = None
    tracking_num: Optional[str] = None
    item_id: Optional[Union[int, str]] = None
    location_current: Optional[str] = None
    grade: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[str] = None
    lamp_hours: Optional[int] = None
    missing_accessories: Optional[str] = None
    notes: Optional[str] = None
    user_created: Optional[str] = None


class UnitUpdateRequest(BaseModel):
    item_id: Optional[Union[int, str]] = None
    brand: Optional[str] = None
    rma_num: Optional[str] = None
    serial_num: Optional[str] = None
    tracking_num: Optional[str] = None
    status: Optional[str] = None
    progress: Optional[str] = None
    grade: Optional[str] = None
    lamp_hours: Optional[int] = None
    location_current: Optional[str] = None
    missing_accessories: Optional[str] = None
    notes: Optional[str] = None
    user: Optional[str] = None


class RelocateRequest(BaseModel):
    serialNumbers: Optional[List[str]] = None
    location: Optional[str] = None
    user: Optional[str] = None


# ============================================================================
# Endpoints
# ============================================================================

@router.post("", status_code=201)
async def create_unit(
    request: UnitCreateRequest,
    db: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    """Intake a unit; returns it joined with catalog and dock receipt fields."""
    item = await InventoryService(db, settings).create(request.model_dump(), actor)
    return {"message": "Inventory item added successfully", "item": item}


@router.put("/{unit_id}")
async def update_unit(
    unit_id: int,
    request: UnitUpdateRequest,
    db: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    item = await InventoryService(db, settings).update(unit_id, request.model_dump(exclude_unset=True), actor)
    return {"message": "Inventory item updated successfully", "item": item}


@router.post("/relocate")
async def relocate_units(
    request: RelocateRequest,
    db: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
    settings: Settings = Depends(get_settings),
):
    updated = await InventoryService(db, settings).relocate(request.serialNumbers, request.location, actor)
    return {"message": "Locations updated successfully", "updated": updated}


@router.get("")
async def list_units_by_brand(
    brand: Optional[str] = Query(None),
    page: Any = Query(1),
    limit: Any = Query(5),
    order: str = Query("desc"),
    orderBy: str = Query("date_rma_received"),
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """Units of one brand, newest receipts first (RMA receiving page)."""
    return await InventoryService(db, settings).list_by_brand(brand, page, limit, order, orderBy)


@router.get("/lookup")
async def lookup_units(
    request: Request,
    db: AsyncSession = Depends(get_session),
    settings: Settings = Depends(get_settings),
):
    """
    Inventory lookup: any allow-listed field as a query parameter, plus
    page / limit / order / orderBy / startDate / endDate / shipout / groupByModel.
    """
    params = dict(request.query_params)
    return await InventoryReportService(db, settings).lookup(params)


@router.get("/{unit_id}")
async def get_unit(unit_id: int, db: AsyncSession = Depends(get_session)):
    return await InventoryService(db).get_view(unit_id)
