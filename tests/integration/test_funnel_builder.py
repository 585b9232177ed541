"""
Funnel membership, stage advancement and explicit transitions.
"""
from datetime import date, timedelta

import pytest
from sqlalchemy import func, select

from prospector.core.errors import ConfigurationError, InvalidStageTransitionError, NotFoundError
from prospector.core.models import PipelineStage
from prospector.funnel.builder import FunnelBuilder
from prospector.funnel.database import FunnelMemberModel, TargetProfileModel
from prospector.funnel.service import list_members, transition_stage
from prospector.signals.detector import SignalDetector

PERSONA = {"title_patterns": ["VP of Engineering"], "seniority_levels": ["vp"]}


async def seed_pool(make_client, make_company):
    client = await make_client()
    northwind = await make_company(client.id, latest_funding_stage="Series B")
    contoso = await make_company(client.id, name="Contoso Cloud", domain="contoso.com")
    await make_company(client.id, name="Globex Retail", domain="globex.de", industry="Retail", country="DE")
    return client, northwind, contoso


async def member_rows(session, funnel_id):
    return await session.scalar(select(func.count(FunnelMemberModel.id)).where(FunnelMemberModel.funnel_id == funnel_id))


@pytest.mark.asyncio
class TestBuildFunnel:
    async def test_build_adds_fitting_companies_and_promotes(
        self, async_db_session, make_client, make_company, make_funnel
    ):
        client, northwind, contoso = await seed_pool(make_client, make_company)
        funnel = await make_funnel(client.id)

        result = await FunnelBuilder().build_funnel(async_db_session, funnel.id)

        assert result.candidates == 3
        assert result.companies_added == 2
        assert result.promoted == 2
        assert result.used_signals is False
        assert funnel.company_count == 2
        assert funnel.filter_snapshot["filters"]["industries"] == ["software"]
        assert northwind.pipeline_stage == PipelineStage.ACTIVE_SEGMENT
        members = await list_members(async_db_session, funnel.id)
        assert {company.id for _, company in members} == {northwind.id, contoso.id}
        assert float(members[0][0].fit_score) == pytest.approx(1.0)

    async def test_rebuild_is_idempotent(self, async_db_session, make_client, make_company, make_funnel):
        client, _, _ = await seed_pool(make_client, make_company)
        funnel = await make_funnel(client.id)
        builder = FunnelBuilder()

        await builder.build_funnel(async_db_session, funnel.id)
        again = await builder.build_funnel(async_db_session, funnel.id)

        assert again.companies_added == 0
        assert again.promoted == 0
        assert funnel.company_count == 2
        assert await member_rows(async_db_session, funnel.id) == 2

    async def test_refresh_soft_removes_and_applies_new_exclusions(
        self, async_db_session, make_client, make_company, make_funnel
    ):
        client, northwind, _ = await seed_pool(make_client, make_company)
        funnel = await make_funnel(client.id)
        builder = FunnelBuilder()
        await builder.build_funnel(async_db_session, funnel.id)

        profile = await async_db_session.get(TargetProfileModel, funnel.target_profile_id)
        profile.filters = {"industries": ["software"], "countries": ["US"], "exclude_domains": ["contoso.com"]}
        await async_db_session.flush()

        result = await builder.refresh_funnel(async_db_session, funnel.id)

        assert result.companies_added == 1
        assert funnel.company_count == 1
        assert funnel.last_refreshed_at is not None
        active = await list_members(async_db_session, funnel.id)
        assert [company.id for _, company in active] == [northwind.id]
        history = await list_members(async_db_session, funnel.id, active_only=False)
        assert len(history) == 3

    async def test_consecutive_refreshes_keep_the_same_active_set(
        self, async_db_session, make_client, make_company, make_funnel
    ):
        client, _, _ = await seed_pool(make_client, make_company)
        funnel = await make_funnel(client.id)
        builder = FunnelBuilder()
        await builder.build_funnel(async_db_session, funnel.id)

        await builder.refresh_funnel(async_db_session, funnel.id)
        first_ids = {company.id for _, company in await list_members(async_db_session, funnel.id)}
        first_count = funnel.company_count

        await builder.refresh_funnel(async_db_session, funnel.id)
        second_ids = {company.id for _, company in await list_members(async_db_session, funnel.id)}

        assert second_ids == first_ids
        assert funnel.company_count == first_count == 2
        active_rows = await async_db_session.scalar(
            select(func.count(FunnelMemberModel.id)).where(
                FunnelMemberModel.funnel_id == funnel.id, FunnelMemberModel.removed_at.is_(None)
            )
        )
        assert active_rows == 2

    async def test_limit_keeps_best_scores(self, async_db_session, make_client, make_company, make_funnel):
        client = await make_client()
        await make_company(client.id, name="Partial Fit", domain="partial.io", country="CA")
        best = await make_company(client.id, name="Full Fit", domain="full.io")
        funnel = await make_funnel(client.id)

        result = await FunnelBuilder().build_funnel(async_db_session, funnel.id, limit=1)

        assert result.companies_added == 1
        [(_, company)] = await list_members(async_db_session, funnel.id)
        assert company.id == best.id


@pytest.mark.asyncio
class TestStageTransitions:
    async def built_member(self, session, make_client, make_company, make_funnel):
        client, northwind, _ = await seed_pool(make_client, make_company)
        funnel = await make_funnel(client.id)
        await FunnelBuilder().build_funnel(session, funnel.id)
        member = await session.scalar(
            select(FunnelMemberModel).where(FunnelMemberModel.company_id == northwind.id)
        )
        return member, northwind

    async def test_single_step_forward(self, async_db_session, make_client, make_company, make_funnel):
        member, company = await self.built_member(async_db_session, make_client, make_company, make_funnel)

        await transition_stage(async_db_session, member.id, PipelineStage.QUALIFIED, reason="replied")

        assert company.pipeline_stage == PipelineStage.QUALIFIED
        assert "active_segment -> qualified: replied" in member.added_reason

    async def test_skipping_forward_is_rejected(self, async_db_session, make_client, make_company, make_funnel):
        member, company = await self.built_member(async_db_session, make_client, make_company, make_funnel)

        with pytest.raises(InvalidStageTransitionError):
            await transition_stage(async_db_session, member.id, PipelineStage.IN_SEQUENCE)
        with pytest.raises(InvalidStageTransitionError):
            await transition_stage(async_db_session, member.id, PipelineStage.ACTIVE_SEGMENT)
        assert company.pipeline_stage == PipelineStage.ACTIVE_SEGMENT

    async def test_demotion_may_skip(self, async_db_session, make_client, make_company, make_funnel):
        member, company = await self.built_member(async_db_session, make_client, make_company, make_funnel)
        await transition_stage(async_db_session, member.id, PipelineStage.QUALIFIED)

        await transition_stage(async_db_session, member.id, PipelineStage.TAM, reason="bad timing")

        assert company.pipeline_stage == PipelineStage.TAM

    async def test_unknown_member(self, async_db_session):
        with pytest.raises(NotFoundError):
            await transition_stage(async_db_session, 404, PipelineStage.QUALIFIED)


@pytest.mark.asyncio
class TestSignalAdvancement:
    async def test_company_signals_qualify_members_with_evidence(
        self, async_db_session, make_client, make_company, make_funnel
    ):
        client, northwind, contoso = await seed_pool(make_client, make_company)
        funnel = await make_funnel(client.id)
        builder = FunnelBuilder(signal_detector=SignalDetector())
        built = await builder.build_funnel(async_db_session, funnel.id)
        assert built.used_signals is True

        outcome = await builder.run_company_signals(async_db_session, funnel.id)

        assert outcome["processed"] == 2
        assert outcome["qualified"] == 1
        assert northwind.pipeline_stage == PipelineStage.QUALIFIED
        assert contoso.pipeline_stage == PipelineStage.ACTIVE_SEGMENT

    async def test_persona_signals_make_company_ready(
        self, async_db_session, make_client, make_company, make_contact, make_funnel
    ):
        client, northwind, _ = await seed_pool(make_client, make_company)
        started = (date.today() - timedelta(days=30)).isoformat()
        await make_contact(northwind, employment_history=[
            {"company": "Northwind Data", "title": "VP of Engineering", "start_date": started, "is_current": True},
        ])
        await make_contact(northwind, title="Office Manager", seniority="entry", full_name="Lee Chen")
        funnel = await make_funnel(client.id, persona=PERSONA)
        builder = FunnelBuilder(signal_detector=SignalDetector())

        built = await builder.build_funnel(async_db_session, funnel.id)
        assert built.contacts_added == 1
        assert funnel.contact_count == 1

        await builder.run_company_signals(async_db_session, funnel.id)
        assert await builder.build_contact_funnel(async_db_session, funnel.id) == 0

        outcome = await builder.run_persona_signals(async_db_session, funnel.id)

        assert outcome == {"processed": 1, "ready": 1, "signals_detected": 3}
        assert northwind.pipeline_stage == PipelineStage.READY_TO_APPROACH

    async def test_title_and_seniority_match_alone_make_company_ready(
        self, async_db_session, make_client, make_company, make_contact, make_funnel
    ):
        client, northwind, _ = await seed_pool(make_client, make_company)
        contact = await make_contact(northwind)
        funnel = await make_funnel(client.id, persona=PERSONA)
        builder = FunnelBuilder(signal_detector=SignalDetector())
        await builder.build_funnel(async_db_session, funnel.id)
        await builder.run_company_signals(async_db_session, funnel.id)

        outcome = await builder.run_persona_signals(async_db_session, funnel.id)

        assert outcome == {"processed": 1, "ready": 1, "signals_detected": 2}
        assert northwind.pipeline_stage == PipelineStage.READY_TO_APPROACH
        member = await async_db_session.scalar(
            select(FunnelMemberModel).where(FunnelMemberModel.contact_id == contact.id)
        )
        assert float(member.persona_score) == pytest.approx(0.78)

    async def test_missing_collaborators_raise(self, async_db_session, make_client, make_company, make_funnel):
        client, _, _ = await seed_pool(make_client, make_company)
        funnel = await make_funnel(client.id)
        builder = FunnelBuilder()

        with pytest.raises(ConfigurationError):
            await builder.run_company_signals(async_db_session, funnel.id)
        with pytest.raises(ConfigurationError):
            await builder.run_persona_signals(async_db_session, funnel.id)
        with pytest.raises(ConfigurationError):
            await builder.build_contact_funnel(async_db_session, funnel.id)
        with pytest.raises(ConfigurationError):
            await builder.build_with_discovery(async_db_session, funnel.id)

    async def test_unknown_funnel(self, async_db_session):
        with pytest.raises(NotFoundError):
            await FunnelBuilder().build_funnel(async_db_session, 999)
