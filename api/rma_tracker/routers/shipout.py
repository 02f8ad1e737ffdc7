# rma_tracker/routers/shipout.py
"""
Shipout Router - pick lists, per-unit packaging and completion.
"""
from __future__ import annotations
from typing import List, Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.database import get_session
from rma_tracker.errors import ValidationError
from rma_tracker.identity import get_actor
from rma_tracker.services.shipout import ShipoutService

router = APIRouter(prefix="/shipout", tags=["Shipout"], dependencies=[Depends(get_actor)])


# ============================================================================
# Pydantic Models for API
# ============================================================================

class PickListLine(BaseModel):
    model: Optional[str] = None
    quantity: Optional[int] = None
    skid_number: Optional[str] = None
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    weight: Optional[float] = None


class PickListRequest(BaseModel):
    transaction_id: Optional[int] = None
    customer_id: Optional[int] = None
    user: Optional[str] = None
    transaction_type: Optional[str] = None
    courier: Optional[str] = None
    license_plate: Optional[str] = None
    items: List[PickListLine] = []


class TransactionUpdateRequest(BaseModel):
    customer_id: Optional[int] = None
    user: Optional[str] = None
    transaction_type: Optional[str] = None
    courier: Optional[str] = None
    license_plate: Optional[str] = None
    status: Optional[str] = None


class ShippedUnit(BaseModel):
    serial_num: Optional[str] = None
    skid_number: Optional[str] = None
    length: Optional[float] = None
    width: Optional[float] = None
    height: Optional[float] = None
    weight: Optional[float] = None


class PackagingRequest(BaseModel):
    items: List[ShippedUnit] = []


class CompleteRequest(BaseModel):
    transaction_id: Optional[int] = None
    items: List[ShippedUnit] = []


# ============================================================================
# Endpoints
# ============================================================================

@router.post("/pick-list")
async def save_pick_list(request: PickListRequest, db: AsyncSession = Depends(get_session)):
    header = request.model_dump(exclude={"items"})
    lines = [line.model_dump() for line in request.items]
    transaction_id = await ShipoutService(db).create_or_update(header, lines)
    return {"success": True, "transaction_id": transaction_id}


@router.get("/transactions")
async def list_transactions(db: AsyncSession = Depends(get_session)):
    return await ShipoutService(db).list_transactions()


@router.post("/transactions", status_code=201)
async def create_transaction(request: TransactionUpdateRequest, db: AsyncSession = Depends(get_session)):
    tx = await ShipoutService(db).create(request.model_dump())
    return {"id": tx.id}


@router.get("/transactions/pending")
async def list_pending(db: AsyncSession = Depends(get_session)):
    return await ShipoutService(db).list_pending()


@router.put("/transactions/{transaction_id}")
async def update_transaction(
    transaction_id: int,
    request: TransactionUpdateRequest,
    db: AsyncSession = Depends(get_session),
):
    tx = await ShipoutService(db).update(transaction_id, request.model_dump(exclude_unset=True))
    return {"message": "Transaction updated successfully", "transaction": ShipoutService.header(tx)}


@router.get("/transactions/{transaction_id}/lines")
async def transaction_lines(transaction_id: int, db: AsyncSession = Depends(get_session)):
    return await ShipoutService(db).lines(transaction_id)


@router.post("/transactions/{transaction_id}/packaging")
async def record_packaging(
    transaction_id: int,
    request: PackagingRequest,
    db: AsyncSession = Depends(get_session),
):
    count = await ShipoutService(db).record_packaging(transaction_id, [u.model_dump() for u in request.items])
    return {"message": "Shipout items processed successfully", "count": count}


@router.post("/complete")
async def complete_transaction(request: CompleteRequest, db: AsyncSession = Depends(get_session)):
    if request.transaction_id is None:
        raise ValidationError("Missing required fields", field="transaction_id")
    await ShipoutService(db).complete(request.transaction_id, [u.model_dump() for u in request.items])
    return {"success": True}
