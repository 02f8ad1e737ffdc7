# rma_tracker/routers/customers.py
"""
Customers Router.
"""
from __future__ import annotations
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from rma_tracker.database import get_session
from rma_tracker.identity import get_actor
from rma_tracker.services.catalog import CustomerService

router = APIRouter(prefix="/customers", tags=["Customers"], dependencies=[Depends(get_actor)])


class CustomerRequest(BaseModel):
    name: Optional[str] = None
    address: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    postal_code: Optional[str] = None
    country: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None


@router.get("")
async def list_customers(db: AsyncSession = Depends(get_session)):
    return await CustomerService(db).list()


@router.post("", status_code=201)
async def add_customer(request: CustomerRequest, db: AsyncSession = Depends(get_session)):
    customer = await CustomerService(db).add(request.model_dump())
    return {"message": "Customer added successfully", "id": customer.id}


@router.put("")
async def upsert_customer(request: CustomerRequest, db: AsyncSession = Depends(get_session)):
    """Create or update by name."""
    customer = await CustomerService(db).upsert(request.model_dump(exclude_unset=True))
    return CustomerService.to_dict(customer)
