"""
Paystream - Test Configuration

Pytest fixtures and configuration.

Every test gets its own SQLite file database so that separate sessions (and
concurrent writers) see each other's committed work.
"""

from decimal import Decimal
from typing import AsyncGenerator, Callable, Dict, List
from uuid import uuid4

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from paystream.database import create_engine_from_url, create_session_factory, get_async_session, init_db
from paystream.models import Company, Employee, PayrollRecord
from paystream.services.payroll_service import PayrollService
from main import app


TEST_PERIOD = "2025-03"
TEST_MONTH = 3
TEST_YEAR = 2025


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path) -> AsyncGenerator[AsyncEngine, None]:
    """Fresh database file with all tables created."""
    engine = create_engine_from_url(f"sqlite+aiosqlite:///{tmp_path / 'paystream_test.db'}")
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker:
    return create_session_factory(test_engine)


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create a fresh database session for each test."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create a test client whose requests each get their own session."""

    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_async_session] = override_get_session

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


# ===========================================
# DATA FIXTURES
# ===========================================

async def create_company(db_session: AsyncSession, name: str = "Acme Manufacturing (Pty) Ltd") -> Company:
    company = Company(
        id=uuid4(),
        name=name,
        currency_code="ZAR",
        paye_reference="7000123456",
        uif_reference="U123456789",
        sdl_reference="L700012345",
        is_active=True,
    )
    db_session.add(company)
    await db_session.commit()
    return company


async def create_employee(
    db_session: AsyncSession,
    tenant_id,
    first_name: str,
    last_name: str,
    basic_salary,
    **extra,
) -> Employee:
    employee = Employee(
        id=uuid4(),
        tenant_id=tenant_id,
        first_name=first_name,
        last_name=last_name,
        basic_salary=Decimal(basic_salary) if basic_salary is not None else None,
        is_active=extra.pop("is_active", True),
        **extra,
    )
    db_session.add(employee)
    await db_session.commit()
    return employee


@pytest_asyncio.fixture
async def company(db_session: AsyncSession) -> Company:
    """Tenant company."""
    return await create_company(db_session)


@pytest_asyncio.fixture
async def other_company(db_session: AsyncSession) -> Company:
    """A second, unrelated tenant."""
    return await create_company(db_session, name="Other Tenant CC")


@pytest_asyncio.fixture
async def employees(db_session: AsyncSession, company: Company) -> Dict[str, Employee]:
    """
    Three active employees and one inactive one:
    - thandi: R20,000 on the bracket table
    - pieter: R30,000 with a 25% flat override and 7.5% pension
    - lerato: no salary captured yet
    - sipho: inactive
    """
    return {
        "thandi": await create_employee(
            db_session, company.id, "Thandi", "Nkosi", "20000.00",
            id_number="9001015800085", tax_number="0123456789", uif_number="U0001",
        ),
        "pieter": await create_employee(
            db_session, company.id, "Pieter", "van der Merwe", "30000.00",
            custom_tax_rate=Decimal("25"), pension_rate=Decimal("7.5"),
            id_number="8505055800084", tax_number="1234567890",
        ),
        "lerato": await create_employee(db_session, company.id, "Lerato", "Mokoena", None),
        "sipho": await create_employee(db_session, company.id, "Sipho", "Dlamini", "15000.00", is_active=False),
    }


@pytest_asyncio.fixture
async def initialized_period(db_session: AsyncSession, company: Company, employees) -> Dict[str, PayrollRecord]:
    """Draft records for TEST_PERIOD keyed by employee fixture name."""
    service = PayrollService(db_session)
    await service.initialize_period(company.id, TEST_MONTH, TEST_YEAR)
    records, _ = await service.list_records(company.id, TEST_PERIOD)
    by_employee = {r.employee_id: r for r in records}
    return {
        name: by_employee[employee.id]
        for name, employee in employees.items()
        if employee.id in by_employee
    }


@pytest.fixture
def finalize() -> Callable:
    """Process (and optionally pay) records so declarations pick them up."""

    async def _finalize(
        db_session: AsyncSession,
        tenant_id,
        period: str,
        employee_ids: List,
        pay: bool = False,
    ):
        service = PayrollService(db_session)
        result = await service.process(tenant_id, period, employee_ids)
        if pay:
            for record_id in result.record_ids:
                await service.mark_paid(tenant_id, record_id, payment_reference="EFT-BATCH")
        return result

    return _finalize


def tenant_headers(tenant_id, actor_id=None) -> Dict[str, str]:
    headers = {"X-Tenant-ID": str(tenant_id)}
    if actor_id is not None:
        headers["X-Actor-ID"] = str(actor_id)
    return headers

