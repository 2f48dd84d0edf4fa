"""Pytest configuration and fixtures."""

import json
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("JWT_SECRET", "test-secret")
os.environ.setdefault("OPENAI_API_KEY", "test-openai-key")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from coauthor.core.db import Base, get_db, get_session_factory
from coauthor.core.events import DocumentEventBus
from coauthor.core.security import create_access_token
from coauthor.db import models  # noqa: F401
from coauthor.domains.documents.services import DocumentService
from coauthor.domains.generation.client import get_text_generator
from tests.fakes import FakeClock, FakeGenerator

OWNER = "user-1"
OTHER_OWNER = "user-2"


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def events():
    return DocumentEventBus()


@pytest.fixture
def document_service(db_session, clock, events):
    return DocumentService(db_session, clock=clock, events=events)


@pytest.fixture
def generator():
    return FakeGenerator()


@pytest_asyncio.fixture
async def client(session_factory, generator):
    from coauthor.main import app

    async def override_get_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_text_generator] = lambda: generator

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as test_client:
        yield test_client

    app.dependency_overrides.clear()


def auth_headers(user_id: str = OWNER) -> dict:
    return {"Authorization": f"Bearer {create_access_token({'sub': user_id})}"}


def parse_sse(body: str) -> list:
    return [json.loads(frame[len("data: "):]) for frame in body.split("\n\n") if frame.startswith("data: ")]
