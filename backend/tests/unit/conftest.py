"""
Conftest for unit tests with an in-memory Supabase client.

All tests in this directory are automatically marked as unit tests.
"""
from datetime import datetime, timezone
from uuid import uuid4

import pytest
from fastapi.testclient import TestClient

from core.database import get_supabase
from main import app
from services.clock import get_clock
from services.history import HistoryStore
from services.ledger import InventoryLedger
from services.offers import OfferStore
from services.settlement import SettlementEngine
from trade_helpers import OWNER, FakeSupabase, FrozenClock, stack


def pytest_collection_modifyitems(items):
    """Automatically mark all tests in this directory as unit tests."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)


# ============== Core fixtures ==============

@pytest.fixture
def fake_db():
    db = FakeSupabase()
    db.tables["item_definitions"] = [
        {"id": "water_bottle", "name": "Purified Water", "category": "water", "rarity": "common", "icon": "drop.fill"},
        {"id": "iron_ore", "name": "Iron", "category": "material", "rarity": "common", "icon": "cube.fill"},
        {"id": "bandage", "name": "Bandage", "category": "medical", "rarity": "uncommon", "icon": "bandage.fill"},
    ]
    return db


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def client(fake_db, clock):
    """Create a test client for the FastAPI app, wired to the fake database."""
    app.dependency_overrides[get_supabase] = lambda: fake_db
    app.dependency_overrides[get_clock] = lambda: clock
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def ledger(fake_db):
    return InventoryLedger(fake_db)


@pytest.fixture
def offers(fake_db, ledger, clock):
    return OfferStore(fake_db, ledger, clock)


@pytest.fixture
def history(fake_db):
    return HistoryStore(fake_db)


@pytest.fixture
def engine(offers, ledger, clock):
    return SettlementEngine(offers, ledger, clock)


# ============== Inventory fixtures ==============

@pytest.fixture
def give(fake_db):
    """Put normal stock into a user's inventory."""
    def _give(user_id, item_id, quantity):
        fake_db.tables.setdefault("inventory_items", []).append({
            "id": str(uuid4()),
            "user_id": user_id,
            "item_id": item_id,
            "quantity": quantity,
        })
    return _give


@pytest.fixture
def give_ai(fake_db):
    """Create a unique AI item owned by a user and return its instance id."""
    def _give_ai(user_id, name, quantity=1, rarity="epic"):
        instance_id = str(uuid4())
        fake_db.tables.setdefault("ai_inventory_items", []).append({
            "id": instance_id,
            "user_id": user_id,
            "name": name,
            "quantity": quantity,
            "category": "weapon",
            "rarity": rarity,
            "icon": "sparkles",
        })
        return instance_id
    return _give_ai


@pytest.fixture
def water_for_iron(offers, give):
    """OWNER offers 5 water for 10 iron, 24h."""
    give(OWNER, "water_bottle", 8)
    return offers.create_offer(
        owner_id=OWNER,
        offering_items=[stack("water_bottle", 5)],
        requesting_items=[stack("iron_ore", 10)],
        expires_hours=24,
    )


@pytest.fixture
def open_offer(offers, give):
    """OWNER gives away 2 bandages to anyone."""
    give(OWNER, "bandage", 2)
    return offers.create_offer(
        owner_id=OWNER,
        offering_items=[stack("bandage", 2)],
        expires_hours=12,
    )

