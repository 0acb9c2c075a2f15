import contextlib
from uuid import UUID, uuid4

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from guestlink.communications.repository.orm_models import CommunicationRecord  # noqa: F401
from guestlink.guests.repository.orm_models import Guest
from guestlink.main import app
from guestlink.models.base import BaseModel
from guestlink.tokens.repository.orm_models import RSVPToken  # noqa: F401


@pytest.fixture
def client_factory():
    """
    Build a test client with dependency overrides.

    Usage:
        async with client_factory({get_token_validator: lambda: validator}) as client:
            ...
    """

    @contextlib.asynccontextmanager
    async def factory(overrides: dict | None = None):
        app.dependency_overrides.update(overrides or {})
        try:
            transport = ASGITransport(app=app)
            async with AsyncClient(transport=transport, base_url="http://test") as client:
                yield client
        finally:
            app.dependency_overrides.clear()

    return factory


@pytest.fixture
async def client(client_factory):
    async with client_factory() as client:
        yield client


@pytest.fixture
async def db_session(tmp_path):
    """Session on a throwaway SQLite file with every table created."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}")

    @event.listens_for(engine.sync_engine, "connect")
    def enable_foreign_keys(dbapi_connection, connection_record):
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    async with engine.begin() as conn:
        await conn.run_sync(BaseModel.metadata.create_all)

    session_maker = async_sessionmaker(engine, expire_on_commit=False)
    async with session_maker() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def add_guest(db_session: AsyncSession):
    async def add(
        event_id: UUID | None = None,
        first_name: str = "Jane",
        last_name: str = "Doe",
        email: str | None = "jane@example.com",
        **kwargs,
    ) -> Guest:
        guest = Guest(
            uuid=uuid4(),
            event_id=event_id or uuid4(),
            first_name=first_name,
            last_name=last_name,
            email=email,
            **kwargs,
        )
        db_session.add(guest)
        await db_session.flush()
        return guest

    return add
