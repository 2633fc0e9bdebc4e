# tests/conftest.py
import os

# keep the app's global engine off the working directory
os.environ["CONDOSYNC_DB_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["API_KEY"] = ""

import pytest  # noqa: E402
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402

from condosync.domain.types import Building  # noqa: E402
from condosync.models import Base  # noqa: E402


@pytest.fixture
async def engine():
    """
    Fresh in-memory DB per test. StaticPool makes all connections share the same
    in-memory database for the lifetime of this engine fixture.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    try:
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def async_session_maker(engine):
    return async_sessionmaker(engine, expire_on_commit=False, autoflush=True)


@pytest.fixture
def buildings():
    return [
        Building(slug="seaholm-residences", name="Seaholm Residences", address="222 West Ave"),
        Building(slug="the-modern-austin", name="The Modern Austin", address="40 N IH 35"),
        Building(slug="the-independent", name="The Independent", address="301 West Ave"),
        Building(slug="70-rainey", name="70 Rainey", address="70 Rainey St"),
    ]
