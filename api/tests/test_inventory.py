"""Inventory Lifecycle Manager: intake, relocation, edits."""
import pytest
from sqlalchemy import func, select

from rma_tracker.db_models import InventoryUnit, RmaReceivingEntry
from rma_tracker.errors import ConflictError, NotFoundError, ReferentialError, ValidationError
from rma_tracker.identity import Actor
from rma_tracker.services.inventory import InventoryService
from rma_tracker.services.rma_import import RmaImportService

ACTOR = Actor(user_id=7, username="jdoe")


def unit_data(item_id, **overrides):
    data = {
        "rma_num": "R100",
        "serial_num": "SN-1",
        "tracking_num": "TRK1",
        "item_id": item_id,
        "grade": "A",
        "status": "Pending",
        "progress": "Tested",
        "user_created": "jdoe",
    }
    data.update(overrides)
    return data


async def _received(session, rma_num, item_id):
    stmt = select(RmaReceivingEntry.quantity_received).where(
        RmaReceivingEntry.rma_num == rma_num, RmaReceivingEntry.item_id == item_id
    )
    return await session.scalar(stmt)


async def _unit(session, serial):
    stmt = select(
        InventoryUnit.location_current, InventoryUnit.location_previous,
        InventoryUnit.date_shelved, InventoryUnit.user_last_updated,
    ).where(InventoryUnit.serial_num == serial)
    return (await session.execute(stmt)).one()


@pytest.fixture()
async def reported(session, catalog):
    """R100 declares X1 twice and Y1 once (Mass Merchant); R200 declares X1 (Education)."""
    await RmaImportService(session).import_batch([
        {"model": "X1", "part_num": "A1", "rma_num": "R100", "rma_type": "Mass Merchant"},
        {"model": "X1", "part_num": "A1", "rma_num": "R100", "rma_type": "Mass Merchant"},
        {"model": "Y1", "part_num": "C3", "rma_num": "R100", "rma_type": "Mass Merchant"},
        {"model": "X1", "part_num": "A1", "rma_num": "R200", "rma_type": "Education"},
    ], ACTOR)
    return catalog


class TestCreate:
    async def test_create_counts_receipt_and_returns_joined_view(self, session, reported):
        svc = InventoryService(session)
        view = await svc.create(unit_data(reported["X1"]), ACTOR)

        assert view["serial_num"] == "SN-1"
        assert view["model"] == "X1"
        assert view["brand"] == "Epson"
        assert view["dock_received_at"] is not None
        assert view["date_rma_received"] is not None
        assert await _received(session, "R100", reported["X1"]) == 1

    async def test_every_create_increments_by_exactly_one(self, session, reported):
        svc = InventoryService(session)
        await svc.create(unit_data(reported["X1"], serial_num="SN-1"), ACTOR)
        await svc.create(unit_data(reported["X1"], serial_num="SN-2"), ACTOR)
        assert await _received(session, "R100", reported["X1"]) == 2
        assert await _received(session, "R200", reported["X1"]) == 0

    async def test_mass_merchant_ownership_is_item_brand(self, session, reported):
        view = await InventoryService(session).create(unit_data(reported["Y1"]), ACTOR)
        assert view["ownership"] == "Sony"

    async def test_other_rma_types_leave_ownership_null(self, session, reported):
        view = await InventoryService(session).create(
            unit_data(reported["X1"], rma_num="R200", tracking_num="TRK2"), ACTOR
        )
        assert view["ownership"] is None

    async def test_unknown_tracking_number_is_referential(self, session, reported):
        with pytest.raises(ReferentialError) as exc:
            await InventoryService(session).create(unit_data(reported["X1"], tracking_num="NOPE"), ACTOR)
        assert exc.value.reference == "tracking_num"
        assert "dock received first" in exc.value.message
        assert await session.scalar(select(func.count(InventoryUnit.id))) == 0
        assert await _received(session, "R100", reported["X1"]) == 0

    async def test_unknown_item_is_referential(self, session, reported):
        with pytest.raises(ReferentialError):
            await InventoryService(session).create(unit_data(99999), ACTOR)

    async def test_duplicate_serial_is_conflict(self, session, reported):
        svc = InventoryService(session)
        await svc.create(unit_data(reported["X1"]), ACTOR)
        with pytest.raises(ConflictError) as exc:
            await svc.create(unit_data(reported["X1"]), ACTOR)
        assert exc.value.constraint == "uq_inventory_serial"
        assert await _received(session, "R100", reported["X1"]) == 1

    @pytest.mark.parametrize("field", ["rma_num", "serial_num", "grade", "status", "progress", "user_created"])
    async def test_required_fields(self, session, reported, field):
        with pytest.raises(ValidationError) as exc:
            await InventoryService(session).create(unit_data(reported["X1"], **{field: ""}), ACTOR)
        assert exc.value.field == field

    async def test_allow_policy_counts_past_reported(self, session, reported):
        svc = InventoryService(session)
        for n in range(3):
            await svc.create(unit_data(reported["Y1"], serial_num=f"Y-{n}"), ACTOR)
        assert await _received(session, "R100", reported["Y1"]) == 3

    async def test_allow_policy_tolerates_missing_counter_row(self, session, reported):
        # nothing was declared on R999, so there is no counter row to bump
        view = await InventoryService(session).create(unit_data(reported["X1"], rma_num="R999"), ACTOR)
        assert view["rma_num"] == "R999"

    async def test_block_policy_refuses_overage(self, session, reported, settings):
        strict = settings.model_copy(update={"RECEIPT_OVERAGE_POLICY": "block"})
        svc = InventoryService(session, strict)
        await svc.create(unit_data(reported["Y1"], serial_num="Y-0"), ACTOR)
        with pytest.raises(ConflictError):
            await svc.create(unit_data(reported["Y1"], serial_num="Y-1"), ACTOR)

    async def test_block_policy_requires_counter_row(self, session, reported, settings):
        strict = settings.model_copy(update={"RECEIPT_OVERAGE_POLICY": "block"})
        with pytest.raises(ConflictError):
            await InventoryService(session, strict).create(unit_data(reported["X2"]), ACTOR)


class TestRelocate:
    @pytest.fixture()
    async def units(self, session, reported):
        svc = InventoryService(session)
        for serial in ("S1", "S2", "S3"):
            await svc.create(unit_data(reported["X1"], serial_num=serial), ACTOR)
        return ["S1", "S2", "S3"]

    async def test_first_placement(self, session, units):
        matched = await InventoryService(session).relocate(units, "A-01", ACTOR)
        assert matched == 3
        loc, prev, shelved, user = await _unit(session, "S1")
        assert (loc, prev, user) == ("A-01", None, "jdoe")
        assert shelved is not None

    async def test_move_shifts_history_and_keeps_shelved_date(self, session, units):
        svc = InventoryService(session)
        await svc.relocate(units, "A-01", ACTOR)
        _, _, first_shelved, _ = await _unit(session, "S2")

        await svc.relocate(["S2"], "B-02", Actor(user_id=8, username="amy"))
        loc, prev, shelved, user = await _unit(session, "S2")
        assert (loc, prev, user) == ("B-02", "A-01", "amy")
        assert shelved == first_shelved

    async def test_idempotent(self, session, units):
        svc = InventoryService(session)
        await svc.relocate(units, "A-01", ACTOR)
        await svc.relocate(units, "B-02", ACTOR)
        await svc.relocate(units, "B-02", ACTOR)
        loc, prev, _, _ = await _unit(session, "S3")
        assert (loc, prev) == ("B-02", "A-01")

    async def test_chunked_batches_update_every_serial(self, session, units, settings):
        tiny = settings.model_copy(update={"RELOCATE_CHUNK_SIZE": 1})
        matched = await InventoryService(session, tiny).relocate(units + ["missing"], "A-01", ACTOR)
        assert matched == 3

    async def test_empty_list(self, session):
        with pytest.raises(ValidationError):
            await InventoryService(session).relocate([], "A-01", ACTOR)

    async def test_missing_location(self, session):
        with pytest.raises(ValidationError) as exc:
            await InventoryService(session).relocate(["S1"], "", ACTOR)
        assert exc.value.field == "location"


class TestUpdate:
    async def test_brand_must_match_item(self, session, reported):
        view = await InventoryService(session).create(unit_data(reported["X1"]), ACTOR)
        with pytest.raises(ValidationError):
            await InventoryService(session).update(view["id"], {"item_id": reported["X1"], "brand": "Sony"}, ACTOR)

    async def test_item_id_and_brand_required(self, session, reported):
        with pytest.raises(ValidationError):
            await InventoryService(session).update(1, {"status": "Unowned"}, ACTOR)

    async def test_not_found(self, session, reported):
        with pytest.raises(NotFoundError):
            await InventoryService(session).update(424242, {"item_id": reported["X1"], "brand": "Epson"}, ACTOR)

    async def test_update_fields_and_location_history(self, session, reported):
        svc = InventoryService(session)
        view = await svc.create(unit_data(reported["X1"], location_current="A-01"), ACTOR)
        updated = await svc.update(view["id"], {
            "item_id": reported["X1"], "brand": "Epson",
            "status": "Unowned", "location_current": "B-02", "user": "amy",
        }, ACTOR)
        assert updated["status"] == "Unowned"
        assert updated["location_current"] == "B-02"
        assert updated["location_previous"] == "A-01"
        assert updated["user_last_updated"] == "amy"

    async def test_serial_clash_is_conflict(self, session, reported):
        svc = InventoryService(session)
        await svc.create(unit_data(reported["X1"], serial_num="ONE"), ACTOR)
        two = await svc.create(unit_data(reported["X1"], serial_num="TWO"), ACTOR)
        with pytest.raises(ConflictError):
            await svc.update(two["id"], {"item_id": reported["X1"], "brand": "Epson", "serial_num": "ONE"}, ACTOR)

    async def test_tracking_must_exist(self, session, reported):
        svc = InventoryService(session)
        view = await svc.create(unit_data(reported["X1"]), ACTOR)
        with pytest.raises(ReferentialError):
            await svc.update(view["id"], {"item_id": reported["X1"], "brand": "Epson", "tracking_num": "NOPE"}, ACTOR)


class TestListByBrand:
    async def test_pages_and_counts(self, session, reported):
        svc = InventoryService(session)
        for n in range(3):
            await svc.create(unit_data(reported["X1"], serial_num=f"E{n}"), ACTOR)
        await svc.create(unit_data(reported["Y1"], serial_num="S0"), ACTOR)

        page = await svc.list_by_brand("Epson", page=1, limit=2, order="asc", order_by="serial_num")
        assert page["totalCount"] == 3
        assert [r["serial_num"] for r in page["rows"]] == ["E0", "E1"]

    async def test_brand_required(self, session):
        with pytest.raises(ValidationError):
            await InventoryService(session).list_by_brand(None)


class TestInventoryApi:
    async def test_create_then_fetch(self, client, db, catalog):
        await client.post("/rma/import", json=[
            {"model": "X1", "part_num": "A1", "rma_num": "R100", "rma_type": "Mass Merchant"},
        ])
        resp = await client.post("/inventory", json=unit_data(catalog["X1"]))
        assert resp.status_code == 201
        item = resp.json()["item"]
        assert item["ownership"] == "Epson"

        resp = await client.get(f"/inventory/{item['id']}")
        assert resp.json()["serial_num"] == "SN-1"

        async with db.session() as s:
            assert await _received(s, "R100", catalog["X1"]) == 1

    async def test_missing_dock_receipt_is_400_referential(self, client, db, catalog):
        resp = await client.post("/inventory", json=unit_data(catalog["X1"], tracking_num="NOPE"))
        assert resp.status_code == 400
        assert resp.json()["kind"] == "referential"
        async with db.session() as s:
            assert await s.scalar(select(func.count(InventoryUnit.id))) == 0

    async def test_duplicate_serial_is_409(self, client, catalog):
        assert (await client.post("/inventory", json=unit_data(catalog["X1"]))).status_code == 201
        resp = await client.post("/inventory", json=unit_data(catalog["X1"]))
        assert resp.status_code == 409
        assert resp.json()["constraint"] == "uq_inventory_serial"

    async def test_relocate_endpoint(self, client, catalog):
        await client.post("/inventory", json=unit_data(catalog["X1"]))
        resp = await client.post("/inventory/relocate", json={"serialNumbers": ["SN-1"], "location": "A-01"})
        assert resp.status_code == 200
        assert resp.json()["updated"] == 1

        resp = await client.post("/inventory/relocate", json={"serialNumbers": [], "location": "A-01"})
        assert resp.status_code == 400
