"""
Journal Ledger - Test Configuration

Pytest fixtures and configuration.

Every test gets its own SQLite database file, so the concurrent lookups of
the row transform pipeline open real, separate connections.
"""

import calendar
import os
from datetime import date
from decimal import Decimal
from typing import AsyncGenerator, Callable, Dict, List
from uuid import UUID, uuid4

# Settings are read at import time
os.environ["DATABASE_URL_ASYNC"] = "sqlite+aiosqlite:///./ledger_test.db"
os.environ["APP_ENV"] = "test"
os.environ["FX_RATE_CACHE_ENABLED"] = "false"
os.environ["ENFORCE_BALANCED_TRANSACTIONS"] = "false"

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

import ledger.models  # noqa: F401
from ledger.database import Base, get_async_session, get_session_factory
from ledger.dependencies import get_current_user
from ledger.models import (
    Account,
    DocumentMap,
    Enterprise,
    EntityMap,
    ExchangeRate,
    FiscalYear,
    GeneralLedger,
    Period,
    PostingJournal,
    Project,
    User,
)
from main import app


# ===========================================
# DATABASE FIXTURES
# ===========================================

@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create a fresh SQLite database for each test."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine) -> async_sessionmaker:
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a database session for each test."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session, session_factory, test_user) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client authenticated as test_user."""

    async def override_get_session():
        yield db_session

    app.dependency_overrides[get_async_session] = override_get_session
    app.dependency_overrides[get_session_factory] = lambda: session_factory
    app.dependency_overrides[get_current_user] = lambda: test_user

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# REFERENCE DATA FIXTURES
# ===========================================

async def create_fiscal_year(
    session: AsyncSession,
    year: int,
    locked: bool = False,
) -> FiscalYear:
    """Fiscal year on the calendar year with an opening period and twelve monthly periods."""
    fiscal_year = FiscalYear(
        id=uuid4(),
        label=f"Fiscal Year {year}",
        start_date=date(year, 1, 1),
        end_date=date(year, 12, 31),
        locked=locked,
    )
    session.add(fiscal_year)
    session.add(Period(id=uuid4(), fiscal_year_id=fiscal_year.id, number=0))
    for month in range(1, 13):
        last_day = calendar.monthrange(year, month)[1]
        session.add(Period(
            id=uuid4(),
            fiscal_year_id=fiscal_year.id,
            number=month,
            start_date=date(year, month, 1),
            end_date=date(year, month, last_day),
        ))
    await session.commit()
    return fiscal_year


async def get_period(session: AsyncSession, fiscal_year: FiscalYear, number: int) -> Period:
    result = await session.execute(
        select(Period).where(Period.fiscal_year_id == fiscal_year.id, Period.number == number)
    )
    return result.scalar_one()


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    """Create a test user."""
    user = User(
        id=uuid4(),
        username="jdoe",
        display_name="Jo Doe",
        is_active=True,
    )
    db_session.add(user)
    await db_session.commit()
    return user


@pytest_asyncio.fixture
async def test_project(db_session: AsyncSession) -> Project:
    """Create an enterprise keeping its books in USD, with one project."""
    enterprise = Enterprise(id=uuid4(), name="Test Enterprise", currency_id="USD")
    db_session.add(enterprise)
    project = Project(id=uuid4(), enterprise_id=enterprise.id, name="Test Project", abbr="TPA")
    db_session.add(project)
    db_session.add_all([
        ExchangeRate(id=uuid4(), enterprise_id=enterprise.id, currency_id="CDF",
                     rate=Decimal("2800"), rate_date=date(2024, 1, 1)),
        ExchangeRate(id=uuid4(), enterprise_id=enterprise.id, currency_id="CDF",
                     rate=Decimal("2900"), rate_date=date(2024, 3, 1)),
    ])
    await db_session.commit()
    return project


@pytest_asyncio.fixture
async def test_accounts(db_session: AsyncSession) -> Dict[str, Account]:
    """Create a small chart of accounts keyed by number."""
    accounts = {
        "1000": Account(id=uuid4(), number="1000", label="Cash"),
        "4000": Account(id=uuid4(), number="4000", label="Sales Revenue"),
        "5000": Account(id=uuid4(), number="5000", label="Office Expenses"),
    }
    db_session.add_all(accounts.values())
    await db_session.commit()
    return accounts


@pytest_asyncio.fixture
async def code_maps(db_session: AsyncSession) -> Dict[str, UUID]:
    """Printed entity and document codes."""
    entity_uuid = uuid4()
    document_uuid = uuid4()
    db_session.add(EntityMap(uuid=entity_uuid, text="PA.TPA.1"))
    db_session.add(DocumentMap(uuid=document_uuid, text="VO.TPA.7"))
    await db_session.commit()
    return {"PA.TPA.1": entity_uuid, "VO.TPA.7": document_uuid}


@pytest_asyncio.fixture
async def fiscal_year_2024(db_session: AsyncSession) -> FiscalYear:
    return await create_fiscal_year(db_session, 2024)


@pytest_asyncio.fixture
async def fiscal_year_2023_locked(db_session: AsyncSession) -> FiscalYear:
    return await create_fiscal_year(db_session, 2023, locked=True)


# ===========================================
# JOURNAL FIXTURES
# ===========================================

@pytest.fixture
def make_transaction(db_session, test_user, test_project, test_accounts) -> Callable:
    """
    Factory writing a balanced two-row transaction (cash debit, revenue
    credit) into the posting journal, or the general ledger when posted.
    """

    async def _make(
        fiscal_year: FiscalYear,
        trans_date: date = date(2024, 1, 1),
        amount: Decimal = Decimal("100.0000"),
        currency_id: str = "USD",
        posted: bool = False,
        trans_id: str = "TPA1",
    ) -> List:
        model = GeneralLedger if posted else PostingJournal
        period = await get_period(db_session, fiscal_year, trans_date.month)
        record_uuid = uuid4()
        common = dict(
            record_uuid=record_uuid,
            trans_id=trans_id,
            project_id=test_project.id,
            fiscal_year_id=fiscal_year.id,
            period_id=period.id,
            trans_date=trans_date,
            description="Cash sale",
            currency_id=currency_id,
            origin_id=1,
            user_id=test_user.id,
        )
        rows = [
            model(uuid=uuid4(), account_id=test_accounts["1000"].id,
                  debit=amount, credit=Decimal("0"),
                  debit_equiv=amount, credit_equiv=Decimal("0"), **common),
            model(uuid=uuid4(), account_id=test_accounts["4000"].id,
                  debit=Decimal("0"), credit=amount,
                  debit_equiv=Decimal("0"), credit_equiv=amount, **common),
        ]
        db_session.add_all(rows)
        await db_session.commit()
        return rows

    return _make


@pytest_asyncio.fixture
async def unposted_transaction(make_transaction, fiscal_year_2024) -> List[PostingJournal]:
    """Two-row unposted transaction dated 2024-01-01."""
    return await make_transaction(fiscal_year_2024)


@pytest.fixture
def period_of(db_session) -> Callable:
    """Look up a period of a fiscal year by number."""

    async def _period_of(fiscal_year: FiscalYear, number: int) -> Period:
        return await get_period(db_session, fiscal_year, number)

    return _period_of


@pytest_asyncio.fixture
async def current_fiscal_year(db_session: AsyncSession, fiscal_year_2024) -> FiscalYear:
    """Open fiscal year containing today, for operations dated today."""
    year = date.today().year
    if year == 2024:
        return fiscal_year_2024
    return await create_fiscal_year(db_session, year)
