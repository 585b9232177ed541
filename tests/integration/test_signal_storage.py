"""
Persisted company signals: write-once per live type, expiry on read.
"""
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock, MagicMock

import pytest

from prospector.core.policy import policy
from prospector.signals.database import CompanySignalModel
from prospector.signals.detector import ClientContext, SignalDetector


@pytest.mark.asyncio
class TestSignalStorage:
    async def test_detect_persists_with_decay_expiry(self, async_db_session, make_client, make_company):
        client = await make_client()
        company = await make_company(client.id, latest_funding_stage="Series A", tech_stack=["Snowflake"])
        detector = SignalDetector()

        stored = await detector.detect(async_db_session, company, ClientContext.from_model(client))

        types = {s.signal_type for s in stored}
        assert types == {"recent_funding", "tech_adoption"}
        funding = next(s for s in stored if s.signal_type == "recent_funding")
        window = funding.expires_at - funding.detected_at
        assert window == timedelta(days=policy.decay_days("recent_funding"))
        assert funding.source == "rule_based"

    async def test_live_type_is_not_written_twice(self, async_db_session, make_client, make_company):
        client = await make_client()
        company = await make_company(client.id, latest_funding_stage="Series A")
        detector = SignalDetector()
        context = ClientContext.from_model(client)

        await detector.detect(async_db_session, company, context)
        again = await detector.detect(async_db_session, company, context)

        assert len(again) == 1
        live = await SignalDetector.get_signals_for_companies(async_db_session, [company.id])
        assert len(live[company.id]) == 1

    async def test_expired_signals_are_ignored_and_replaced(self, async_db_session, make_client, make_company):
        client = await make_client()
        company = await make_company(client.id, latest_funding_stage="Seed")
        past = datetime.utcnow() - timedelta(days=200)
        async_db_session.add(CompanySignalModel(
            client_id=client.id, company_id=company.id, signal_type="recent_funding", strength=Decimal("0.70"),
            evidence="old round", source="rule_based", detected_at=past, expires_at=past + timedelta(days=90),
        ))
        await async_db_session.flush()

        assert await SignalDetector.get_signals_for_companies(async_db_session, [company.id]) == {}

        stored = await SignalDetector().detect(async_db_session, company, ClientContext.from_model(client))
        assert [s.evidence for s in stored] == ["Funding stage: Seed"]

    async def test_llm_signals_are_stored_alongside_rules(self, async_db_session, make_client, make_company):
        client = await make_client()
        company = await make_company(
            client.id,
            description="Northwind runs a warehouse-native analytics platform for retailers in twelve countries.",
        )
        llm = MagicMock()
        llm.complete = AsyncMock(return_value='[{"type": "new_product_launch", "strength": 0.8, '
                                              '"evidence": "Launched Northwind Stream in March 2026", '
                                              '"source": "company blog"}]')

        stored = await SignalDetector(llm).detect(async_db_session, company, ClientContext.from_model(client))

        assert [(s.signal_type, s.source) for s in stored] == [("new_product_launch", "llm_analysis")]
        assert float(stored[0].strength) == pytest.approx(0.8)
