# rma_tracker/routers/locations.py
"""
Locations Router - registry of storage places and what sits in them.
"""
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.database import get_session
from rma_tracker.identity import get_actor
from rma_tracker.services.locations import LocationService

router = APIRouter(prefix="/locations", tags=["Locations"], dependencies=[Depends(get_actor)])


class LocationCreateRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None


@router.get("")
async def list_locations(db: AsyncSession = Depends(get_session)):
    """All locations with unit counts; ``Unassigned`` first."""
    return await LocationService(db).list_with_counts()


@router.post("", status_code=201)
async def add_location(request: LocationCreateRequest, db: AsyncSession = Depends(get_session)):
    location = await LocationService(db).add(request.name, request.description)
    return {"message": "Location added successfully", "id": location.id, "name": location.name}


@router.get("/units/by-serial")
async def unit_by_serial(serial_num: Optional[str] = Query(None), db: AsyncSession = Depends(get_session)):
    return await LocationService(db).unit_by_serial(serial_num)


@router.get("/{name}/units")
async def units_at_location(name: str, db: AsyncSession = Depends(get_session)):
    return await LocationService(db).units_at(name)


@router.delete("/{name}")
async def delete_location(name: str, db: AsyncSession = Depends(get_session)):
    await LocationService(db).delete(name)
    return {"message": "Location deleted successfully"}
