# rma_tracker/routers/rma.py
"""
RMA Router - import of declared RMA rows and the RMA receiving page reads.
"""
from __future__ import annotations
from typing import Any, Optional

from fastapi import APIRouter, Body, Depends, Query
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.database import get_session
from rma_tracker.identity import Actor, get_actor
from rma_tracker.services.rma_import import RmaImportService

router = APIRouter(prefix="/rma", tags=["RMA"], dependencies=[Depends(get_actor)])


@router.post("/import")
async def import_rma(
    rows: Any = Body(...),
    db: AsyncSession = Depends(get_session),
    actor: Actor = Depends(get_actor),
):
    """
    Import a batch of {model, part_num, rma_num, rma_type} rows.

    201 when every row was added, 207 when some were skipped,
    400 (nothing written) when none could be added.
    """
    result = await RmaImportService(db).import_batch(rows, actor)
    body = result.to_dict()

    if result.added_count == 0:
        await db.rollback()
        body["error"] = "No entries were added."
        return JSONResponse(status_code=400, content=body)
    if result.skipped_entries:
        body["message"] = f"Some entries were added, but {len(result.skipped_entries)} were skipped."
        return JSONResponse(status_code=207, content=body)
    body["message"] = "All RMA entries added successfully"
    return JSONResponse(status_code=201, content=body)


@router.get("/entries")
async def list_entries(
    rma_num: Optional[str] = Query(None),
    brand: Optional[str] = Query(None),
    db: AsyncSession = Depends(get_session),
):
    return await RmaImportService(db).list_entries(rma_num=rma_num, brand=brand)


@router.get("/numbers")
async def list_rma_numbers(db: AsyncSession = Depends(get_session)):
    return {"rma_numbers": await RmaImportService(db).list_rma_numbers()}
