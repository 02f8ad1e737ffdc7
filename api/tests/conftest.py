import os

import httpx
import pytest

os.environ.setdefault("LOG_DIR", os.path.join(os.path.dirname(__file__), ".logs"))

from rma_tracker.database import Database  # noqa: E402
from rma_tracker.db_models import (  # noqa: E402
    Customer, DockReceivingEntry, Item, Location,
)
from rma_tracker.main import create_app  # noqa: E402
from rma_tracker.settings import Settings  # noqa: E402

ACTOR_HEADERS = {"X-User-Id": "7", "X-User-Name": "jdoe"}


@pytest.fixture()
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'rma.db'}",
        LOG_DIR=tmp_path / "logs",
    )


@pytest.fixture()
async def db(settings):
    database = Database.from_settings(settings)
    await database.open()
    await database.create_all()
    yield database
    await database.close()


@pytest.fixture()
async def session(db):
    """Session for service tests; the test decides when to commit."""
    async with db.session() as s:
        yield s
        await s.rollback()


@pytest.fixture()
async def catalog(db):
    """A small catalog, a customer, two locations and two received parcels."""
    async with db.transaction() as s:
        items = {
            "X1": Item(model="X1", part_num="A1", brand="Epson", product_type="Projector"),
            "X2": Item(model="X2", part_num="B-22", brand="Epson", product_type="Projector"),
            "Y1": Item(model="Y1", part_num="C3", brand="Sony", product_type="Display"),
        }
        s.add_all(items.values())
        s.add(Customer(name="Acme School District", city="Toronto"))
        s.add_all([Location(name="A-01", description="Aisle A"), Location(name="B-02")])
        s.add_all([
            DockReceivingEntry(tracking_num="TRK1", carrier="UPS", rma_num="R100",
                               rma_type="Mass Merchant", quantity=3, user_created="dock"),
            DockReceivingEntry(tracking_num="TRK2", carrier="FedEx", rma_num="R200",
                               rma_type="Education", quantity=1, user_created="dock"),
        ])
        await s.flush()
        ids = {model: item.id for model, item in items.items()}
    return ids


@pytest.fixture()
def app(settings, db):
    application = create_app(settings, db)
    return application


@pytest.fixture()
async def client(app):
    # ASGITransport does not run the lifespan; the db fixture is already open
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test", headers=ACTOR_HEADERS) as c:
        yield c
