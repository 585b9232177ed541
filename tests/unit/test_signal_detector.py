"""
Rule-based and LLM signal detection (no database).
"""
import json
from datetime import date
from unittest.mock import AsyncMock, MagicMock

import pytest

from prospector.core.data_types import CompanyDraft
from prospector.signals.detector import SOURCE_LLM, ClientContext, SignalDetector

LONG_DESCRIPTION = (
    "Northwind builds a warehouse-native analytics platform used by mid-market retailers "
    "across North America and Europe."
)


def context(**overrides):
    values = dict(client_id=1, product_keywords=["snowflake", "dbt"])
    values.update(overrides)
    return ClientContext(**values)


def llm_returning(payload):
    llm = MagicMock()
    llm.complete = AsyncMock(return_value=payload if isinstance(payload, str) else json.dumps(payload))
    return llm


class TestRuleBasedSignals:
    def setup_method(self):
        self.detector = SignalDetector()

    def by_type(self, signals):
        return {s.signal_type: s for s in signals}

    def test_funding(self):
        company = CompanyDraft(name="N", latest_funding_stage="Series B", total_funding=30_000_000,
                               latest_funding_date=date(2026, 2, 1))
        signal = self.by_type(self.detector.detect_rule_based(company, context()))["recent_funding"]
        assert signal.strength == 0.7
        assert signal.event_date == date(2026, 2, 1)
        assert "Series B" in signal.evidence and "$30,000,000" in signal.evidence

    def test_tech_adoption_strength_grows_with_matches(self):
        company = CompanyDraft(name="N", tech_stack=["Snowflake", "dbt Cloud", "Looker"])
        signal = self.by_type(self.detector.detect_rule_based(company, context()))["tech_adoption"]
        assert signal.strength == pytest.approx(0.8)
        assert signal.details["matched_tech"] == ["Snowflake", "dbt Cloud"]

    def test_hiring_surge_needs_two_indicators(self):
        one = CompanyDraft(name="N", employee_count=200, description="We are hiring")
        assert "hiring_surge" not in self.by_type(self.detector.detect_rule_based(one, context()))

        two = CompanyDraft(name="N", employee_count=200, employee_range="201-500+",
                           description="We are hiring engineers")
        signal = self.by_type(self.detector.detect_rule_based(two, context()))["hiring_surge"]
        assert signal.strength == pytest.approx(0.8)

    def test_hiring_surge_ignores_small_companies(self):
        company = CompanyDraft(name="N", employee_count=20, description="hiring, growing and expanding")
        assert "hiring_surge" not in self.by_type(self.detector.detect_rule_based(company, context()))

    def test_expansion_requires_location(self):
        company = CompanyDraft(name="N", description="Announced a new office in Berlin",
                               address="1 Main St", country="US")
        assert "expansion" in self.by_type(self.detector.detect_rule_based(company, context()))
        company.address = None
        assert "expansion" not in self.by_type(self.detector.detect_rule_based(company, context()))

    def test_nothing_to_report(self):
        assert self.detector.detect_rule_based(CompanyDraft(name="Quiet Co"), context()) == []


@pytest.mark.asyncio
class TestLLMSignals:
    async def test_short_descriptions_skip_the_llm(self):
        llm = llm_returning([])
        detector = SignalDetector(llm)
        assert await detector.detect_llm(CompanyDraft(name="N", description="Short."), context()) == []
        llm.complete.assert_not_called()

    async def test_keeps_only_cited_strong_known_signals(self):
        llm = llm_returning({"signals": [
            {"type": "expansion", "strength": 0.85, "evidence": "Opened Berlin office in May 2026",
             "source": "company press release", "event_date": "2026-05-12"},
            {"type": "pain_point_detected", "strength": 0.9, "evidence": "Likely struggling with data quality",
             "source": ""},
            {"type": "leadership_change", "strength": 0.5, "evidence": "New CFO", "source": "LinkedIn"},
            {"type": "world_domination", "strength": 0.99, "evidence": "x", "source": "y"},
            "not a dict",
        ]})
        detector = SignalDetector(llm)

        signals = await detector.detect_llm(CompanyDraft(name="N", description=LONG_DESCRIPTION), context())

        assert [s.signal_type for s in signals] == ["expansion"]
        assert signals[0].source == SOURCE_LLM
        assert signals[0].event_date == date(2026, 5, 12)
        assert signals[0].details == {"cited_source": "company press release"}

    async def test_llm_failure_yields_nothing(self):
        llm = MagicMock()
        llm.complete = AsyncMock(side_effect=RuntimeError("provider down"))
        detector = SignalDetector(llm)
        assert await detector.detect_llm(CompanyDraft(name="N", description=LONG_DESCRIPTION), context()) == []

    async def test_unparseable_output_yields_nothing(self):
        detector = SignalDetector(llm_returning("I could not find anything relevant."))
        assert await detector.detect_llm(CompanyDraft(name="N", description=LONG_DESCRIPTION), context()) == []
