import os
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

PROJECT_ROOT = Path(__file__).resolve().parents[2]
BACKEND_ROOT = PROJECT_ROOT / "backend"
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

import medreq.db.audit  # noqa: F401,E402
import medreq.db.models  # noqa: F401,E402
from medreq.core.config import settings  # noqa: E402
from medreq.db.base import Base  # noqa: E402
from medreq.models.enums import Department, Role, SignatureSlot  # noqa: E402
from medreq.models.user import User  # noqa: E402
from medreq.schemas.requisition import SignatureIn  # noqa: E402
from medreq.services.proof_storage import LocalProofStorage  # noqa: E402


@pytest.fixture
def test_database_url(tmp_path) -> str:
    # Throwaway SQLite file unless TEST_DATABASE_URL is set.
    return os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'medreq_test.db'}"


@pytest_asyncio.fixture
async def async_engine(test_database_url: str) -> AsyncEngine:
    engine = create_async_engine(test_database_url, pool_pre_ping=True)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)
    try:
        yield engine
    finally:
        await engine.dispose()


@pytest_asyncio.fixture
async def async_session(async_engine: AsyncEngine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest_asyncio.fixture
async def db_session(async_session):
    session: AsyncSession = async_session()
    try:
        yield session
    finally:
        await session.close()


@pytest_asyncio.fixture
async def actors(db_session):
    """One active user per workflow role, including both named approvers."""
    people = {
        "lab": User(email="lab@example.org", name="Lab Admin", role=Role.LAB_ADMIN, department=Department.LAB),
        "pharmacy": User(
            email="pharmacy@example.org",
            name="Pharmacy Admin",
            role=Role.PHARMACY_ADMIN,
            department=Department.PHARMACY,
        ),
        "chairman": User(
            email="chairman@example.org",
            name=settings.chairman_name,
            role=Role.APPROVER,
            department=Department.MANAGEMENT,
        ),
        "auditor": User(
            email="auditor@example.org",
            name=settings.auditor_name,
            role=Role.APPROVER,
            department=Department.MANAGEMENT,
        ),
        "accounts": User(
            email="accounts@example.org",
            name="Accounts Officer",
            role=Role.ACCOUNTS,
            department=Department.FINANCE,
        ),
    }
    db_session.add_all(people.values())
    await db_session.commit()
    return SimpleNamespace(**people)


@pytest.fixture
def lab_signatures():
    return {
        SignatureSlot.PREPARED_BY: SignatureIn(signature="data:image/png;base64,cHJlcA=="),
        SignatureSlot.LEVEL_CONFIRMED_BY: SignatureIn(signature="data:image/png;base64,bGV2ZWw="),
    }


@pytest.fixture
def proof_storage(tmp_path) -> LocalProofStorage:
    return LocalProofStorage(tmp_path / "proofs")