"""
Pytest configuration and fixtures for the Flight Training Tracker tests.
"""

from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from ftt.db import create_engine_for, create_session_factory, init_models
from ftt.models import StudentCreate
from ftt.services.student_service import create_student
from ftt.services.template_library import TemplateLibrary


async def _make_engine(path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{path}")
    await init_models(engine)
    return engine


@pytest_asyncio.fixture(scope="function")
async def async_engine(tmp_path):
    """Create a test database engine on a fresh SQLite file."""
    engine = await _make_engine(tmp_path / "tracker.db")
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return create_session_factory(async_engine)


@pytest_asyncio.fixture(scope="function")
async def async_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def peer_engine(tmp_path):
    """A second, independent database (the other device)."""
    engine = await _make_engine(tmp_path / "peer.db")
    yield engine
    await engine.dispose()


@pytest.fixture
def peer_session_factory(peer_engine):
    return create_session_factory(peer_engine)


@pytest.fixture
def library() -> TemplateLibrary:
    return TemplateLibrary.load_default()


@pytest_asyncio.fixture
async def student(async_session):
    """A student with complete personal info and no documents subsystem."""
    return await create_student(
        async_session,
        StudentCreate(
            first_name="Amelia",
            last_name="Earhart",
            email="amelia@example.com",
            telephone="555-0100",
            home_address="1 Hangar Row",
        ),
    )


@pytest.fixture
def p1_l1(library):
    """PPL lesson with four items."""
    return library.find_by_identifier("default_p1_l1")


@pytest.fixture
def p1_l2(library):
    """PPL lesson with three items."""
    return library.find_by_identifier("default_p1_l2")


@pytest.fixture
def flight_review(library):
    """Review checklist with three items."""
    return library.find_by_identifier("default_flight_review")
