"""
Waterfall orchestration over fake in-memory sources.
"""
import pytest

from prospector.core.data_types import CompanyDraft, CompanySearchParams, EnrichHints
from prospector.core.models import Capability
from prospector.sources.orchestrator import (
    SKIP_BUDGET,
    SourceOrchestrator,
    WaterfallStrategy,
    strategy_from_performance,
)
from prospector.sources.performance import SourceStats

RICH = dict(
    name="Northwind Data", domain="northwind.io", industry="Software", employee_count=120,
    employee_range="51-200", annual_revenue=12_000_000, founded_year=2015, city="Austin", state="TX",
    country="US", description="Data platform", linkedin_url="https://linkedin.com/company/northwind",
    website_url="https://northwind.io", total_funding=30_000_000, latest_funding_stage="Series B",
)


def strategy(**overrides):
    values = dict(quality_threshold=0.7, max_providers=3, required_fields=["name", "domain"])
    values.update(overrides)
    return WaterfallStrategy(**values)


@pytest.mark.asyncio
class TestEnrichWaterfall:
    async def test_stops_once_quality_and_required_fields_are_met(self, fake_source):
        first = fake_source("alpha", priority=1, enrich_result=CompanyDraft(**RICH))
        second = fake_source("beta", priority=2, enrich_result=CompanyDraft(name="Other"))
        orchestrator = SourceOrchestrator([second, first])

        result = await orchestrator.enrich(EnrichHints(domain="northwind.io"), strategy())

        assert result.sources_used == ["alpha"]
        assert second.calls == []
        assert result.quality_score >= 0.7

    async def test_fill_gaps_never_overwrites(self, fake_source):
        first = fake_source("alpha", priority=1, enrich_result=CompanyDraft(name="Northwind", industry="Software"))
        second = fake_source("beta", priority=2, enrich_result=CompanyDraft(
            name="Northwind Inc", industry="Retail", domain="northwind.io", country="US",
            external_ids={"beta": "b-1"},
        ))
        orchestrator = SourceOrchestrator([first, second])

        result = await orchestrator.enrich(EnrichHints(domain="northwind.io"), strategy())

        assert result.sources_used == ["alpha", "beta"]
        assert result.company.name == "Northwind"
        assert result.company.industry == "Software"
        assert result.company.domain == "northwind.io"
        assert result.company.country == "US"
        assert result.company.external_ids == {"beta": "b-1"}
        assert [s.source for s in result.company.sources] == ["alpha", "beta"]

    async def test_max_providers_caps_calls(self, fake_source):
        sources = [fake_source(f"s{i}", priority=i, enrich_result=CompanyDraft(name="Thin")) for i in range(4)]
        orchestrator = SourceOrchestrator(sources)

        result = await orchestrator.enrich(EnrichHints(domain="thin.io"), strategy(max_providers=2))

        assert result.sources_used == ["s0", "s1"]
        assert sources[2].calls == [] and sources[3].calls == []

    async def test_failure_is_not_fatal(self, fake_source):
        broken = fake_source("alpha", priority=1, fail=True)
        healthy = fake_source("beta", priority=2, enrich_result=CompanyDraft(**RICH))
        orchestrator = SourceOrchestrator([broken, healthy])

        result = await orchestrator.enrich(EnrichHints(domain="northwind.io"), strategy())

        assert result.company is not None
        assert result.sources_used == ["beta"]
        assert "alpha" in result.errors
        assert orchestrator.tracker.pending_count == 2

    async def test_cost_budget_skips_expensive_sources(self, fake_source):
        cheap = fake_source("cheap", priority=2, enrich_result=CompanyDraft(name="Thin"),
                            costs={Capability.COMPANY_ENRICH: 0.5})
        pricey = fake_source("pricey", priority=1, enrich_result=CompanyDraft(**RICH),
                             costs={Capability.COMPANY_ENRICH: 5.0})
        orchestrator = SourceOrchestrator([pricey, cheap])

        result = await orchestrator.enrich(EnrichHints(domain="northwind.io"), strategy(cost_budget=1.0))

        assert pricey.calls == []
        assert result.sources_used == ["cheap"]
        assert result.total_cost == 0.5
        assert [(s.source, s.reason) for s in result.skipped] == [("pricey", SKIP_BUDGET)]


@pytest.mark.asyncio
class TestSearchWaterfall:
    async def test_concatenates_until_limit(self, fake_source, make_draft):
        first = fake_source("alpha", priority=1, companies=[make_draft(f"Co {i}", f"co{i}.com") for i in range(3)])
        second = fake_source("beta", priority=2, companies=[make_draft("Co 9", "co9.com")])
        third = fake_source("gamma", priority=3, companies=[make_draft("Co 10", "co10.com")])
        orchestrator = SourceOrchestrator([third, second, first])

        result = await orchestrator.search(CompanySearchParams(limit=4), strategy())

        assert len(result.companies) == 4
        assert result.sources_used == ["alpha", "beta"]
        assert third.calls == []

    async def test_skipped_due_to_budget(self, fake_source, make_draft):
        paid = fake_source("paid", companies=[make_draft("Co", "co.com")], costs={Capability.COMPANY_SEARCH: 2.0})
        orchestrator = SourceOrchestrator([paid])

        result = await orchestrator.search(CompanySearchParams(limit=5), strategy(cost_budget=1.0))

        assert result.companies == []
        assert result.skipped_due_to_budget == ["paid"]
        assert not result.attempted

    async def test_search_failure_moves_on(self, fake_source, make_draft):
        broken = fake_source("alpha", priority=1, fail=True)
        healthy = fake_source("beta", priority=2, companies=[make_draft("Co", "co.com")])
        orchestrator = SourceOrchestrator([broken, healthy])

        result = await orchestrator.search(CompanySearchParams(limit=5), strategy())

        assert [c.domain for c in result.companies] == ["co.com"]
        assert result.errors["alpha"].startswith("alpha:")
        assert result.attempted


class TestStrategy:
    def test_priority_order_overrides_priority(self, fake_source):
        a = fake_source("a", priority=1)
        b = fake_source("b", priority=2)
        orchestrator = SourceOrchestrator([a, b])
        ordered = orchestrator.ordered(Capability.COMPANY_ENRICH, strategy(priority_order=["b"]))
        assert [s.name for s in ordered] == ["b", "a"]

    def test_from_overrides_ignores_unknown_keys(self):
        result = WaterfallStrategy.from_overrides({"max_providers": 1, "bogus": True, "cost_budget": None})
        assert result.max_providers == 1
        assert not hasattr(result, "bogus")

    def test_strategy_from_performance_ranks_by_value(self):
        stats = {
            "apollo": SourceStats("apollo", 50, 0.9, 0.8, 300, 10, 50.0),
            "exa": SourceStats("exa", 40, 0.8, 0.5, 800, 4, 0.0),
            "new": SourceStats("new", 2, 1.0, 1.0, 100, 15, 0.0),
        }
        result = strategy_from_performance(stats, strategy())
        # exa: 0.4 / 1.0 beats apollo: 0.72 / 2.0; "new" has too few calls to rank
        assert result.priority_order == ["exa", "apollo"]
