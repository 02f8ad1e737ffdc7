# rma_tracker/services/__init__.py
"""
Business logic services for RMA Tracker.
"""
from rma_tracker.services.catalog import CarrierService, CustomerService, ItemService
from rma_tracker.services.dock import DockReceivingService
from rma_tracker.services.inventory import InventoryService
from rma_tracker.services.locations import LocationService
from rma_tracker.services.reporting import InventoryReportService
from rma_tracker.services.rma_import import ImportResult, RmaImportService
from rma_tracker.services.shipout import ShipoutService

__all__ = [
    "CarrierService",
    "CustomerService",
    "DockReceivingService",
    "ImportResult",
    "InventoryReportService",
    "InventoryService",
    "ItemService",
    "LocationService",
    "RmaImportService",
    "ShipoutService",
]
