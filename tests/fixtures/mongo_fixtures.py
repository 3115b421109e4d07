"""MongoDB/Beanie fixtures for testing."""

import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from beanie import init_beanie
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase

from peerloom.schemas import MeetingRequest

# All Beanie document models
BEANIE_MODELS = [
    MeetingRequest,
]


@pytest.fixture(scope="session")
def mongo_url() -> str:
    """
    MongoDB URL for testing, from MONGO_URL_PEERLOOM_PRIMARY.

    Registry tests run against a real database; a missing URL is an error,
    not a skip.
    """
    url = os.environ.get("MONGO_URL_PEERLOOM_PRIMARY")
    if url:
        return url

    raise RuntimeError("MONGO_URL_PEERLOOM_PRIMARY environment variable not set for tests.")


@pytest.fixture(scope="session")
def test_db_name() -> str:
    return "peerloom_test_db"


@pytest_asyncio.fixture(scope="function")
async def mongo_client(mongo_url: str) -> AsyncGenerator[AsyncIOMotorClient]:
    """Function-scoped to avoid event loop issues."""
    client: AsyncIOMotorClient = AsyncIOMotorClient(mongo_url, tz_aware=True)
    yield client
    client.close()


@pytest_asyncio.fixture(scope="function")
async def beanie_db(
    mongo_client: AsyncIOMotorClient,
    test_db_name: str,
) -> AsyncGenerator[AsyncIOMotorDatabase]:
    """Initialize Beanie with the test database."""
    db = mongo_client[test_db_name]

    await init_beanie(
        database=db,  # type: ignore[arg-type]
        document_models=BEANIE_MODELS,
    )

    yield db


@pytest_asyncio.fixture(autouse=False)
async def clear_collections(beanie_db: AsyncIOMotorDatabase) -> None:
    """
    Clear all collections before a test.

    Usage:
        @pytest.mark.usefixtures("clear_collections")
        async def test_something(beanie_db):
            ...
    """
    for model in BEANIE_MODELS:
        await model.get_pymongo_collection().delete_many({})
