"""
Shared pytest fixtures for the prospector test suite.
"""
from typing import List, Optional

import pytest
from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import StaticPool

from prospector.core.data_types import CompanyDraft, CompanySearchParams, SourceRecord
from prospector.core.database import Base
from prospector.core.errors import SourceUnavailableError
from prospector.core.models import Capability
from prospector.companies.database import ClientModel, CompanyModel, ContactModel
from prospector.funnel.database import FunnelModel, PersonaModel, TargetProfileModel
from prospector.jobs import database as jobs_db  # noqa: F401
from prospector.signals import database as signals_db  # noqa: F401
from prospector.sources import database as sources_db  # noqa: F401
from prospector.sources.base import BaseSource


# --- Database Fixtures ---

def _memory_engine():
    # One shared connection so every session sees the same in-memory database
    return create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )


@pytest.fixture
async def session_factory():
    """async_sessionmaker over a fresh in-memory SQLite schema."""
    engine = _memory_engine()
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    await engine.dispose()


@pytest.fixture
async def async_db_session(session_factory):
    """Async in-memory SQLite session for testing."""
    async with session_factory() as session:
        yield session


# --- Data Fixtures ---

@pytest.fixture
def make_client(async_db_session):
    async def _create(name="Acme Analytics", product_keywords=None, strategy=None):
        client = ClientModel(
            name=name,
            product_keywords=product_keywords or ["snowflake", "dbt"],
            product_description="Data observability for analytics teams",
            strategy=strategy or {},
        )
        async_db_session.add(client)
        await async_db_session.flush()
        return client
    return _create


@pytest.fixture
def make_company(async_db_session):
    async def _create(client_id, name="Northwind Data", domain="northwind.io", **fields):
        values = dict(
            industry="Software",
            employee_count=120,
            country="US",
            sources=[{"source": "apollo", "fetched_at": "2026-01-01T00:00:00", "fields_provided": ["name"]}],
        )
        values.update(fields)
        company = CompanyModel(client_id=client_id, name=name, domain=domain, **values)
        async_db_session.add(company)
        await async_db_session.flush()
        return company
    return _create


@pytest.fixture
def make_contact(async_db_session):
    async def _create(company, title="VP of Engineering", seniority="vp", **fields):
        contact = ContactModel(
            client_id=company.client_id,
            company_id=company.id,
            full_name=fields.pop("full_name", "Dana Reyes"),
            title=title,
            seniority=seniority,
            **fields,
        )
        async_db_session.add(contact)
        await async_db_session.flush()
        return contact
    return _create


@pytest.fixture
def make_funnel(async_db_session):
    async def _create(client_id, filters=None, persona: Optional[dict] = None, **fields):
        profile = TargetProfileModel(
            client_id=client_id,
            name="Mid-market software",
            filters=filters if filters is not None else {"industries": ["software"], "countries": ["US"]},
        )
        async_db_session.add(profile)
        await async_db_session.flush()

        persona_id = None
        if persona is not None:
            persona_row = PersonaModel(client_id=client_id, name="Engineering leaders", **persona)
            async_db_session.add(persona_row)
            await async_db_session.flush()
            persona_id = persona_row.id

        funnel = FunnelModel(
            client_id=client_id,
            target_profile_id=profile.id,
            persona_id=persona_id,
            name=fields.pop("name", "Q3 outbound"),
            **fields,
        )
        async_db_session.add(funnel)
        await async_db_session.flush()
        return funnel
    return _create


# --- Fake Sources ---

class FakeSource(BaseSource):
    """In-memory source returning canned drafts; records every call."""

    def __init__(
        self,
        name: str,
        priority: int = 1,
        companies: Optional[List[CompanyDraft]] = None,
        enrich_result: Optional[CompanyDraft] = None,
        capabilities=None,
        costs=None,
        fail: bool = False,
    ):
        self.name = name
        self.display_name = name.title()
        self.capabilities = frozenset(capabilities or {Capability.COMPANY_SEARCH, Capability.COMPANY_ENRICH})
        self.costs = costs or {}
        super().__init__(api_key="test", priority=priority)
        self.companies = companies or []
        self.enrich_result = enrich_result
        self.fail = fail
        self.calls: List[Capability] = []

    async def _search_companies(self, params: CompanySearchParams) -> List[CompanyDraft]:
        self.calls.append(Capability.COMPANY_SEARCH)
        if self.fail:
            raise SourceUnavailableError(self.name, "HTTP 503", status_code=503)
        return [CompanyDraft(**{k: v for k, v in c.to_dict().items() if k != "sources"}) for c in self.companies]

    async def _enrich_company(self, hints) -> Optional[CompanyDraft]:
        self.calls.append(Capability.COMPANY_ENRICH)
        if self.fail:
            raise SourceUnavailableError(self.name, "HTTP 503", status_code=503)
        if self.enrich_result is None:
            return None
        return CompanyDraft(**{k: v for k, v in self.enrich_result.to_dict().items() if k != "sources"})


@pytest.fixture
def fake_source():
    return FakeSource


def draft(name, domain, **fields) -> CompanyDraft:
    company = CompanyDraft(name=name, domain=domain, **fields)
    company.sources.append(SourceRecord(source="test", fields_provided=company.populated_fields()))
    return company


@pytest.fixture
def make_draft():
    return draft
