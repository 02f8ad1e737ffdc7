import pytest
from sqlalchemy import select

from rma_tracker.db_models import Carrier, Customer, DockReceivingEntry
from rma_tracker.errors import ConflictError, NotFoundError, ValidationError
from rma_tracker.identity import Actor
from rma_tracker.services.catalog import CarrierService, CustomerService, ItemService
from rma_tracker.services.dock import DockReceivingService
from rma_tracker.services.inventory import InventoryService

ACTOR = Actor(user_id=7, username="jdoe")


class TestDockReceiving:
    async def test_create_links_customer(self, session, settings, catalog):
        svc = DockReceivingService(session, settings)
        entry = await svc.create({
            "tracking_num": " TRK9 ", "carrier": "DHL", "rma_num": "R900",
            "rma_type": "Education", "quantity": 2, "customer_name": "Acme School District",
        }, ACTOR)

        assert entry.tracking_num == "TRK9"
        assert entry.user_created == "jdoe"
        assert entry.customer_id is not None

    @pytest.mark.parametrize("missing", ["tracking_num", "rma_type"])
    async def test_required_fields(self, session, settings, catalog, missing):
        data = {"tracking_num": "TRK9", "rma_type": "Education"}
        data[missing] = ""
        with pytest.raises(ValidationError):
            await DockReceivingService(session, settings).create(data, ACTOR)

    async def test_duplicate_tracking_number(self, session, settings, catalog):
        with pytest.raises(ConflictError) as exc:
            await DockReceivingService(session, settings).create({"tracking_num": "TRK1", "rma_type": "Education"}, ACTOR)
        assert exc.value.constraint == "uq_dock_tracking"

    async def test_list_sorted_with_total(self, session, settings, catalog):
        result = await DockReceivingService(session, settings).list(
            page=1, limit=1, order="asc", order_by="tracking_num"
        )
        assert result["totalCount"] == 2
        assert [r["tracking_num"] for r in result["rows"]] == ["TRK1"]
        assert "city" in result["rows"][0]

    async def test_update_and_customer_edit(self, session, settings, catalog):
        svc = DockReceivingService(session, settings)
        entry_id = await session.scalar(select(DockReceivingEntry.id).where(DockReceivingEntry.tracking_num == "TRK2"))
        customer_id = await session.scalar(select(Customer.id))

        await svc.update(entry_id, {"carrier": "Canada Post", "customer_id": customer_id, "city": "Ottawa"})

        carrier = await session.scalar(select(DockReceivingEntry.carrier).where(DockReceivingEntry.id == entry_id))
        city = await session.scalar(select(Customer.city).where(Customer.id == customer_id))
        assert (carrier, city) == ("Canada Post", "Ottawa")

    async def test_update_missing(self, session, settings, catalog):
        with pytest.raises(NotFoundError):
            await DockReceivingService(session, settings).update(999, {"carrier": "UPS"})

    async def test_delete_refused_while_units_reference_it(self, session, settings, catalog):
        await InventoryService(session, settings).create({
            "rma_num": "R100", "serial_num": "D-1", "tracking_num": "TRK1", "item_id": catalog["X1"],
            "grade": "A", "status": "Unowned", "progress": "Ready", "user_created": "jdoe",
        }, ACTOR)
        svc = DockReceivingService(session, settings)
        trk1 = await session.scalar(select(DockReceivingEntry.id).where(DockReceivingEntry.tracking_num == "TRK1"))
        trk2 = await session.scalar(select(DockReceivingEntry.id).where(DockReceivingEntry.tracking_num == "TRK2"))

        with pytest.raises(ConflictError):
            await svc.delete(trk1)
        await svc.delete(trk2)
        with pytest.raises(NotFoundError):
            await svc.delete(trk2)


class TestCatalog:
    async def test_item_search_is_substring_and_capped(self, session, catalog):
        rows = await ItemService(session).search("X")
        assert [r["model"] for r in rows] == ["X1", "X2"]
        with pytest.raises(ValidationError):
            await ItemService(session).search("")

    async def test_item_list_filters(self, session, catalog):
        rows = await ItemService(session).list({"brand": "Sony"})
        assert [r["model"] for r in rows] == ["Y1"]
        rows = await ItemService(session).list({"brand": "!Sony"})
        assert [r["model"] for r in rows] == ["X1", "X2"]

    async def test_item_update(self, session, catalog):
        item = await ItemService(session).update(catalog["X1"], {"msrp": "499.99", "date_released": "2021-03-01"})
        assert item["msrp"] == pytest.approx(499.99)
        assert item["date_released"] == "2021-03-01"

    async def test_item_update_rejects_bad_msrp(self, session, catalog):
        with pytest.raises(ValidationError):
            await ItemService(session).update(catalog["X1"], {"msrp": "cheap"})

    async def test_customer_upsert_by_name(self, session, catalog):
        svc = CustomerService(session)
        existing = await svc.upsert({"name": "Acme School District", "phone": "555-0100"})
        created = await svc.upsert({"name": "Northside High"})

        assert existing.phone == "555-0100"
        assert [c["name"] for c in await svc.list()] == ["Acme School District", "Northside High"]
        assert created.id != existing.id

    async def test_customer_requires_name(self, session, catalog):
        with pytest.raises(ValidationError):
            await CustomerService(session).add({"name": "  "})

    async def test_carrier_names(self, session, catalog):
        session.add_all([Carrier(name="UPS"), Carrier(name="DHL")])
        await session.flush()
        assert await CarrierService(session).names() == ["DHL", "UPS"]


class TestReferenceApi:
    async def test_dock_roundtrip(self, client, catalog):
        resp = await client.post("/dock-receiving", json={"tracking_num": "TRK7", "rma_type": "Education"})
        assert resp.status_code == 201

        resp = await client.get("/dock-receiving", params={"limit": 10})
        assert resp.json()["totalCount"] == 3

    async def test_customers(self, client, catalog):
        resp = await client.post("/customers", json={"name": "Northside High"})
        assert resp.status_code == 201
        resp = await client.post("/customers", json={"name": "Northside High"})
        assert resp.status_code == 409

    async def test_item_search(self, client, catalog):
        resp = await client.get("/items/search", params={"model": "Y"})
        assert [r["model"] for r in resp.json()] == ["Y1"]
        resp = await client.get("/items/search")
        assert resp.status_code == 400
