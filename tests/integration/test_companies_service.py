"""
Company and contact upserts against an in-memory database.
"""
import pytest
from sqlalchemy import func, select

from prospector.core.data_types import ContactDraft, SourceRecord
from prospector.core.models import PipelineStage
from prospector.companies.database import CompanyModel
from prospector.companies.service import (
    draft_from_model,
    get_companies_by_domains,
    upsert_companies,
    upsert_company,
    upsert_contacts,
)


async def company_count(session):
    return await session.scalar(select(func.count(CompanyModel.id)))


@pytest.mark.asyncio
class TestUpsertCompany:
    async def test_insert_normalizes_domain(self, async_db_session, make_client, make_draft):
        client = await make_client()
        row, created = await upsert_company(
            async_db_session, client.id, make_draft("Contoso", "https://www.Contoso.com/about"), cost=1.5
        )

        assert created is True
        assert row.domain == "contoso.com"
        assert row.pipeline_stage == PipelineStage.TAM
        assert row.primary_source == "test"
        assert row.enrichment_cost == pytest.approx(1.5)

    async def test_same_domain_updates_without_nulling(self, async_db_session, make_client, make_draft):
        client = await make_client()
        first, _ = await upsert_company(
            async_db_session, client.id,
            make_draft("Contoso", "contoso.com", industry="Software", employee_count=250), cost=1.0,
        )

        incoming = make_draft("Contoso Inc", "CONTOSO.com", country="US")
        incoming.sources = [SourceRecord(source="exa", fields_provided=["name", "country"])]
        second, created = await upsert_company(async_db_session, client.id, incoming, cost=2.0)

        assert created is False
        assert second.id == first.id
        assert second.name == "Contoso Inc"
        assert second.country == "US"
        assert second.industry == "Software"
        assert second.employee_count == 250
        assert second.enrichment_cost == pytest.approx(3.0)
        assert {s["source"] for s in second.sources} == {"test", "exa"}
        assert await company_count(async_db_session) == 1

    async def test_domains_are_scoped_per_client(self, async_db_session, make_client, make_draft):
        a = await make_client("Client A")
        b = await make_client("Client B")
        await upsert_company(async_db_session, a.id, make_draft("Contoso", "contoso.com"))
        _, created = await upsert_company(async_db_session, b.id, make_draft("Contoso", "contoso.com"))

        assert created is True
        assert await company_count(async_db_session) == 2

    async def test_companies_without_domain_are_never_merged(self, async_db_session, make_client, make_draft):
        client = await make_client()
        summary = await upsert_companies(
            async_db_session, client.id, [make_draft("Fabrikam", None), make_draft("Fabrikam", None)]
        )

        assert len(summary.created) == 2
        assert summary.updated == []

    async def test_lookup_and_round_trip(self, async_db_session, make_client, make_draft):
        client = await make_client()
        await upsert_company(
            async_db_session, client.id,
            make_draft("Contoso", "contoso.com", tech_stack=["Snowflake"], external_ids={"apollo": "a1"}),
        )

        found = await get_companies_by_domains(async_db_session, client.id, ["https://contoso.com", "", None])
        assert list(found) == ["contoso.com"]

        draft = draft_from_model(found["contoso.com"])
        assert draft.tech_stack == ["Snowflake"]
        assert draft.external_ids == {"apollo": "a1"}
        assert draft.sources[0].source == "test"


@pytest.mark.asyncio
class TestUpsertContacts:
    async def test_matches_on_linkedin_then_email(self, async_db_session, make_client, make_company):
        client = await make_client()
        company = await make_company(client.id)

        stored = await upsert_contacts(async_db_session, company, [
            ContactDraft(full_name="Dana Reyes", title="VP Engineering",
                         linkedin_url="https://linkedin.com/in/dana"),
            ContactDraft(full_name="Sam Patel", title="Director of Data", work_email="Sam@northwind.io"),
        ])
        assert len(stored) == 2

        again = await upsert_contacts(async_db_session, company, [
            ContactDraft(linkedin_url="https://linkedin.com/in/dana", title="CTO"),
            ContactDraft(work_email="sam@northwind.io", seniority="director"),
        ])

        assert [c.id for c in again] == [c.id for c in stored]
        assert again[0].title == "CTO"
        assert again[0].full_name == "Dana Reyes"
        assert again[1].seniority == "director"
