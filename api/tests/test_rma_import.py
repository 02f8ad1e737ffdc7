"""RMA Import Reconciler."""
import pytest
from sqlalchemy import func, select

from rma_tracker.db_models import RmaReceivingEntry
from rma_tracker.errors import ValidationError
from rma_tracker.identity import Actor
from rma_tracker.services.rma_import import RmaImportService, normalize_part_num

ACTOR = Actor(user_id=7, username="jdoe")


async def _entries(session):
    stmt = select(
        RmaReceivingEntry.rma_num, RmaReceivingEntry.item_id,
        RmaReceivingEntry.quantity_reported, RmaReceivingEntry.quantity_received,
        RmaReceivingEntry.import_id, RmaReceivingEntry.user_id,
    ).order_by(RmaReceivingEntry.id)
    return (await session.execute(stmt)).all()


class TestNormalizePartNum:
    def test_keeps_letters_digits_and_dashes(self):
        assert normalize_part_num(" AB-12/3 #x ") == "AB-123x"

    def test_none(self):
        assert normalize_part_num(None) == ""


class TestImportBatch:
    async def test_dash_is_kept_and_row_resolves(self, session, catalog):
        rows = [{"model": "X2", "part_num": "B-22", "rma_num": "R100", "rma_type": "Mass Merchant"}]
        result = await RmaImportService(session).import_batch(rows, ACTOR)

        assert result.added_count == 1
        assert result.skipped_entries == []
        assert await _entries(session) == [("R100", catalog["X2"], 1, 0, 1, 7)]

    async def test_dashed_part_num_matches_undashed_catalog_entry(self, session, catalog):
        rows = [{"model": "X1", "part_num": "A-1", "rma_num": "R100", "rma_type": "Mass Merchant"}]
        result = await RmaImportService(session).import_batch(rows, ACTOR)

        assert result.added_count == 1
        assert result.skipped_entries == []
        assert await _entries(session) == [("R100", catalog["X1"], 1, 0, 1, 7)]

    async def test_undashed_part_num_matches_dashed_catalog_entry(self, session, catalog):
        rows = [{"model": "X2", "part_num": "B22", "rma_num": "R100", "rma_type": "Mass Merchant"}]
        result = await RmaImportService(session).import_batch(rows, ACTOR)
        assert result.added_count == 1

    async def test_dash_fallback_still_requires_model(self, session, catalog):
        rows = [{"model": "X2", "part_num": "A-1", "rma_num": "R100", "rma_type": "Mass Merchant"}]
        result = await RmaImportService(session).import_batch(rows, ACTOR)
        assert result.added_count == 0
        assert result.skipped_entries[0]["reason"] == "Model: X2, Part No: A-1 not found."

    async def test_punctuation_is_stripped_before_matching(self, session, catalog):
        rows = [{"model": "Y1", "part_num": "C.3 ", "rma_num": "R100", "rma_type": "Mass Merchant"}]
        result = await RmaImportService(session).import_batch(rows, ACTOR)
        assert result.added_count == 1

    async def test_reimport_bumps_quantity_reported(self, session, catalog):
        svc = RmaImportService(session)
        row = {"model": "X1", "part_num": "A1", "rma_num": "R100", "rma_type": "Mass Merchant"}
        first = await svc.import_batch([row], ACTOR)
        second = await svc.import_batch([row], ACTOR)

        entries = await _entries(session)
        assert len(entries) == 1
        assert entries[0].quantity_reported == 2
        # the row keeps the import_id of the batch that created it
        assert entries[0].import_id == first.import_id
        assert second.import_id == first.import_id + 1

    async def test_duplicate_rows_in_one_batch(self, session, catalog):
        row = {"model": "X1", "part_num": "A1", "rma_num": "R300", "rma_type": "Education"}
        result = await RmaImportService(session).import_batch([row, dict(row), dict(row)], ACTOR)
        assert result.added_count == 3
        assert [e.quantity_reported for e in await _entries(session)] == [3]

    async def test_unresolved_rows_are_skipped_not_fatal(self, session, catalog):
        rows = [
            {"model": "X1", "part_num": "A1", "rma_num": "R100", "rma_type": "Mass Merchant"},
            {"model": "NOPE", "part_num": "Z9", "rma_num": "R100", "rma_type": "Mass Merchant"},
            {"model": "X1", "rma_num": "R100"},
        ]
        result = await RmaImportService(session).import_batch(rows, ACTOR)

        assert result.added_count + len(result.skipped_entries) == len(rows)
        assert result.added_count == 1
        assert result.skipped_entries[0]["reason"] == "Model: NOPE, Part No: Z9 not found."
        assert result.skipped_entries[0]["row"] == 1
        assert "part_num" in result.skipped_entries[1]["reason"]

    async def test_one_import_id_per_batch(self, session, catalog):
        rows = [
            {"model": "X1", "part_num": "A1", "rma_num": "R500", "rma_type": "Education"},
            {"model": "Y1", "part_num": "C3", "rma_num": "R500", "rma_type": "Education"},
        ]
        result = await RmaImportService(session).import_batch(rows, ACTOR)
        ids = {e.import_id for e in await _entries(session)}
        assert ids == {result.import_id}

    @pytest.mark.parametrize("rows", [[], None, {"model": "X1"}])
    async def test_empty_or_non_list_input(self, session, rows):
        with pytest.raises(ValidationError):
            await RmaImportService(session).import_batch(rows, ACTOR)

    async def test_reads(self, session, catalog):
        svc = RmaImportService(session)
        await svc.import_batch([
            {"model": "X1", "part_num": "A1", "rma_num": "R100", "rma_type": "Mass Merchant"},
            {"model": "Y1", "part_num": "C3", "rma_num": "R200", "rma_type": "Education"},
        ], ACTOR)

        assert await svc.list_rma_numbers() == ["R100", "R200"]
        epson = await svc.list_entries(brand="Epson")
        assert [e["model"] for e in epson] == ["X1"]
        assert epson[0]["quantity_reported"] == 1


class TestImportApi:
    async def test_all_added_is_201(self, client, catalog):
        resp = await client.post("/rma/import", json=[
            {"model": "X1", "part_num": "A1", "rma_num": "R100", "rma_type": "Mass Merchant"},
        ])
        assert resp.status_code == 201
        assert resp.json()["addedCount"] == 1

    async def test_some_skipped_is_207(self, client, catalog):
        resp = await client.post("/rma/import", json=[
            {"model": "X1", "part_num": "A1", "rma_num": "R100", "rma_type": "Mass Merchant"},
            {"model": "Q", "part_num": "Q", "rma_num": "R100", "rma_type": "Mass Merchant"},
        ])
        assert resp.status_code == 207
        body = resp.json()
        assert body["addedCount"] == 1
        assert len(body["skippedEntries"]) == 1

    async def test_none_added_is_400_with_every_skipped_row(self, client, catalog, db):
        resp = await client.post("/rma/import", json=[
            {"model": "Q", "part_num": "Q", "rma_num": "R100"},
            {"model": "W", "part_num": "W", "rma_num": "R100"},
        ])
        assert resp.status_code == 400
        assert len(resp.json()["skippedEntries"]) == 2

        async with db.session() as s:
            assert await s.scalar(select(func.count(RmaReceivingEntry.id))) == 0

    async def test_empty_body_is_validation_error(self, client):
        resp = await client.post("/rma/import", json=[])
        assert resp.status_code == 400
        assert resp.json()["kind"] == "validation"

    async def test_requires_actor(self, client):
        resp = await client.post("/rma/import", json=[{"model": "X1"}], headers={"X-User-Id": ""})
        assert resp.status_code == 401
