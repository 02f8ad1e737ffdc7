# rma_tracker/errors.py
"""
Error taxonomy shared by all services.

Services raise these; ``register_error_handlers`` turns them into HTTP
responses so routers never build error payloads themselves.
"""
from __future__ import annotations
import logging
import re
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy.exc import IntegrityError

logger = logging.getLogger(__name__)


class TrackerError(Exception):
    """Base class for every domain error."""
    status_code = 500
    kind = "internal"

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def payload(self) -> Dict[str, Any]:
        return {"error": self.message, "kind": self.kind}


class ValidationError(TrackerError):
    """Missing or malformed required field."""
    status_code = 400
    kind = "validation"

    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field

    def payload(self) -> Dict[str, Any]:
        out = super().payload()
        if self.field:
            out["field"] = self.field
        return out


class ReferentialError(TrackerError):
    """A foreign key (tracking_num, item_id, model, ...) does not resolve."""
    status_code = 400
    kind = "referential"

    def __init__(self, message: str, reference: Optional[str] = None):
        super().__init__(message)
        self.reference = reference

    def payload(self) -> Dict[str, Any]:
        out = super().payload()
        if self.reference:
            out["reference"] = self.reference
        return out


class ConflictError(TrackerError):
    """Duplicate unique key or mutation of a terminal-state record."""
    status_code = 409
    kind = "conflict"

    def __init__(self, message: str, constraint: Optional[str] = None):
        super().__init__(message)
        self.constraint = constraint

    def payload(self) -> Dict[str, Any]:
        out = super().payload()
        if self.constraint:
            out["constraint"] = self.constraint
        return out


class NotFoundError(TrackerError):
    status_code = 404
    kind = "not_found"


class InternalError(TrackerError):
    status_code = 500
    kind = "internal"


# ============================================================================
# IntegrityError translation
# ============================================================================

# constraint name -> (error class, client message)
CONSTRAINT_ERRORS: Dict[str, tuple] = {
    "uq_inventory_serial": (ConflictError, "Duplicate Serial # exists. Please check the item history."),
    "fk_inventory_tracking": (ReferentialError, "Tracking # not found. Please ensure it was dock received first."),
    "fk_inventory_item": (ReferentialError, "Item does not exist."),
    "uq_rma_receiving_item": (ConflictError, "RMA entry already exists for this item."),
    "uq_locations_name": (ConflictError, "Location already exists."),
    "uq_customers_name": (ConflictError, "Customer already exists."),
    "uq_dock_tracking": (ConflictError, "Tracking # already dock received."),
    "uq_items_model_part": (ConflictError, "Item with this model and part # already exists."),
    "uq_shipout_item_unit": (ConflictError, "Unit already packed in this transaction."),
}

# SQLite reports the columns of a failed UNIQUE, not the constraint name
_SQLITE_UNIQUE_COLUMNS: Dict[str, str] = {
    "inventory.serial_num": "uq_inventory_serial",
    "rma_receiving.rma_num, rma_receiving.item_id": "uq_rma_receiving_item",
    "locations.name": "uq_locations_name",
    "customers.name": "uq_customers_name",
    "dock_receiving.tracking_num": "uq_dock_tracking",
    "items.model, items.part_num": "uq_items_model_part",
    "shipout_items.transaction_id, shipout_items.inventory_id": "uq_shipout_item_unit",
}

_SQLITE_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: (.+)$")


def constraint_name(exc: IntegrityError) -> Optional[str]:
    """Name of the violated constraint as reported by the driver."""
    orig = exc.orig
    # asyncpg (wrapped by the SQLAlchemy adapter) and psycopg expose it directly
    for candidate in (orig, getattr(orig, "__cause__", None)):
        name = getattr(candidate, "constraint_name", None)
        if name:
            return name
        diag = getattr(candidate, "diag", None)
        if diag is not None and getattr(diag, "constraint_name", None):
            return diag.constraint_name
    m = _SQLITE_UNIQUE_RE.search(str(orig))
    if m:
        return _SQLITE_UNIQUE_COLUMNS.get(m.group(1).strip())
    return None


def translate_integrity_error(exc: IntegrityError) -> TrackerError:
    """Map a database integrity failure onto the taxonomy."""
    name = constraint_name(exc)
    if name in CONSTRAINT_ERRORS:
        cls, message = CONSTRAINT_ERRORS[name]
        if cls is ConflictError:
            return ConflictError(message, constraint=name)
        return cls(message, name)
    logger.error("Unmapped integrity error (constraint=%s): %s", name, exc.orig)
    return InternalError("An unexpected server error occurred. Please try again.")


# ============================================================================
# FastAPI handlers
# ============================================================================

def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(TrackerError)
    async def _tracker_error(request: Request, exc: TrackerError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return JSONResponse(status_code=exc.status_code, content=exc.payload())

    @app.exception_handler(RequestValidationError)
    async def _request_invalid(request: Request, exc: RequestValidationError):
        first = exc.errors()[0] if exc.errors() else {}
        field = ".".join(str(p) for p in first.get("loc", ())[1:]) or None
        err = ValidationError(first.get("msg", "Invalid request"), field=field)
        return JSONResponse(status_code=err.status_code, content=err.payload())

    @app.exception_handler(IntegrityError)
    async def _integrity_error(request: Request, exc: IntegrityError):
        err = translate_integrity_error(exc)
        return JSONResponse(status_code=err.status_code, content=err.payload())

    @app.exception_handler(Exception)
    async def _unexpected(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "kind": "internal"},
        )
