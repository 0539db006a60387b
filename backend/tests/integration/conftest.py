"""
Integration test fixtures for testing with real local Supabase database.

These fixtures connect to a local Supabase instance and perform real database operations.
Run `supabase start` before running integration tests.
All tests in this directory are automatically marked as integration tests.
"""
import os
import subprocess
import warnings
from pathlib import Path
from uuid import uuid4

import pytest
from dotenv import load_dotenv
from fastapi.testclient import TestClient
from supabase import Client, create_client

# Path to the project root (where supabase/ folder is located)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent

ITEM_DEFINITIONS = [
    {"id": "water_bottle", "name": "Purified Water", "category": "water", "rarity": "common", "icon": "drop.fill"},
    {"id": "iron_ore", "name": "Iron", "category": "material", "rarity": "common", "icon": "cube.fill"},
]


def pytest_collection_modifyitems(items):
    """Automatically mark all tests in this directory as integration tests."""
    for item in items:
        if "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


@pytest.fixture(scope="session")
def setup_test_environment():
    """Load .env.test at session start."""
    # .env.test is in the backend root
    env_test_path = Path(__file__).parent.parent.parent / ".env.test"
    load_dotenv(env_test_path, override=True)
    yield


@pytest.fixture(scope="session")
def supabase_client(setup_test_environment) -> Client:
    """Create a real Supabase client connected to local instance."""
    url = os.getenv("SUPABASE_URL")
    key = os.getenv("SERVICE_ROLE_KEY") or os.getenv("SUPABASE_KEY")

    if not url or not key:
        pytest.skip("SUPABASE_URL and SERVICE_ROLE_KEY must be set in .env.test")

    return create_client(url, key)


@pytest.fixture(scope="session")
def reset_database(supabase_client):
    """
    Reset the database before the test session.

    If the supabase CLI is not available the reset is skipped; run
    `supabase db reset` manually before running integration tests if needed.
    """
    try:
        result = subprocess.run(
            ["supabase", "db", "reset", "--no-seed"],
            cwd=str(PROJECT_ROOT),
            capture_output=True,
            text=True,
            timeout=60
        )

        if result.returncode != 0:
            # Database might already be in good state
            warnings.warn(f"Could not reset database: {result.stderr}")
    except FileNotFoundError:
        warnings.warn("supabase CLI not found. Skipping database reset.")
    except subprocess.TimeoutExpired:
        warnings.warn("Database reset timed out. Continuing anyway.")

    supabase_client.table("item_definitions").upsert(ITEM_DEFINITIONS).execute()
    yield


@pytest.fixture(scope="session")
def integration_client(supabase_client, reset_database):
    """FastAPI TestClient wired to the local Supabase instance."""
    from core.database import get_supabase
    from main import app

    app.dependency_overrides[get_supabase] = lambda: supabase_client
    yield TestClient(app)
    app.dependency_overrides.pop(get_supabase, None)


def _cleanup_user(client: Client, user_id: str):
    """Delete everything a test user created, children first."""
    client.table("trade_history").delete().eq("seller_id", user_id).execute()
    client.table("trade_history").delete().eq("buyer_id", user_id).execute()
    client.table("trade_offers").delete().eq("owner_id", user_id).execute()
    client.table("inventory_items").delete().eq("user_id", user_id).execute()
    client.table("ai_inventory_items").delete().eq("user_id", user_id).execute()


@pytest.fixture
def test_user_id(supabase_client):
    """Generate a unique test user ID for each test."""
    user_id = f"test_user_{uuid4().hex[:8]}"
    yield user_id
    _cleanup_user(supabase_client, user_id)


@pytest.fixture
def second_test_user_id(supabase_client):
    """Generate a unique second test user ID for trading tests."""
    user_id = f"test_user_2_{uuid4().hex[:8]}"
    yield user_id
    _cleanup_user(supabase_client, user_id)


@pytest.fixture
def third_test_user_id(supabase_client):
    user_id = f"test_user_3_{uuid4().hex[:8]}"
    yield user_id
    _cleanup_user(supabase_client, user_id)


@pytest.fixture
def stock(supabase_client):
    """Insert normal stock for a user."""
    def _stock(user_id: str, item_id: str, quantity: int):
        result = supabase_client.table("inventory_items").insert({
            "user_id": user_id,
            "item_id": item_id,
            "quantity": quantity,
        }).execute()
        if not result.data:
            pytest.fail(f"Failed to stock {item_id} for {user_id}")
        return result.data[0]
    return _stock


@pytest.fixture
def held(supabase_client):
    """Total normal stock of an item held by a user."""
    def _held(user_id: str, item_id: str) -> int:
        result = supabase_client.table("inventory_items").select("quantity").eq(
            "user_id", user_id
        ).eq("item_id", item_id).execute()
        return sum(row["quantity"] for row in result.data)
    return _held
