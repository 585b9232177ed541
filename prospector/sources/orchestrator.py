"""
Waterfall orchestration across data sources.

Sources are visited strictly in priority order. Enrichment merges results
with a fill-gaps-only policy and stops once the record is good enough;
search concatenates batches until enough candidates are collected. A
source failure is never fatal: it is logged, recorded as a failed call and
the next source is tried.
"""
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession

from prospector.core.data_types import (
    CompanyDraft,
    CompanySearchParams,
    ContactDraft,
    EnrichHints,
    PeopleSearchParams,
    SourceRecord,
    is_populated,
)
from prospector.core.errors import SourceError
from prospector.core.models import Capability
from prospector.core.policy import policy
from prospector.sources.base import ENRICH_QUALITY_FIELDS, BaseSource, EmailLookup, SourceResponse
from prospector.sources.performance import PerformanceTracker, SourceStats

logger = logging.getLogger(__name__)

SKIP_RATE_LIMITED = "rate_limited"
SKIP_BUDGET = "budget"


@dataclass
class WaterfallStrategy:
    """How a waterfall call may spend. Passed explicitly per call or per client."""
    quality_threshold: float = 0.7
    max_providers: int = 3
    cost_budget: Optional[float] = None
    required_fields: List[str] = field(default_factory=lambda: ["name", "domain"])
    priority_order: Optional[List[str]] = None

    @classmethod
    def default(cls) -> "WaterfallStrategy":
        w = policy.waterfall
        return cls(
            quality_threshold=w.quality_threshold,
            max_providers=w.max_providers,
            cost_budget=w.cost_budget,
            required_fields=list(w.required_fields),
        )

    @classmethod
    def from_overrides(cls, overrides: Optional[Dict[str, Any]]) -> "WaterfallStrategy":
        strategy = cls.default()
        for key, value in (overrides or {}).items():
            if hasattr(strategy, key) and value is not None:
                setattr(strategy, key, value)
        return strategy


@dataclass
class SkippedSource:
    source: str
    reason: str


@dataclass
class EnrichResult:
    company: Optional[CompanyDraft]
    sources_used: List[str] = field(default_factory=list)
    total_cost: float = 0.0
    quality_score: float = 0.0
    skipped: List[SkippedSource] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)


@dataclass
class SearchResult:
    companies: List[CompanyDraft] = field(default_factory=list)
    sources_used: List[str] = field(default_factory=list)
    total_cost: float = 0.0
    skipped: List[SkippedSource] = field(default_factory=list)
    errors: Dict[str, str] = field(default_factory=dict)

    @property
    def skipped_due_to_budget(self) -> List[str]:
        return [s.source for s in self.skipped if s.reason == SKIP_BUDGET]

    @property
    def attempted(self) -> bool:
        """False when every source was skipped, i.e. nothing was actually asked."""
        return bool(self.sources_used or self.errors)


def enrich_quality(company: CompanyDraft) -> float:
    return min(len(company.populated_fields()) / ENRICH_QUALITY_FIELDS, 1.0)


class SourceOrchestrator:
    """
    Holds an explicit list of typed source adapters and runs waterfall calls
    over them.
    """

    def __init__(
        self,
        sources: Sequence[BaseSource],
        tracker: Optional[PerformanceTracker] = None,
        client_id: Optional[int] = None,
    ):
        self.sources = list(sources)
        self.tracker = tracker or PerformanceTracker()
        self.client_id = client_id

    def has_capability(self, capability: Capability) -> bool:
        return any(s.supports(capability) for s in self.sources)

    def ordered(self, capability: Capability, strategy: Optional[WaterfallStrategy] = None) -> List[BaseSource]:
        """Sources supporting `capability`, explicit strategy order first, then by priority."""
        candidates = sorted((s for s in self.sources if s.supports(capability)), key=lambda s: s.priority)
        order = (strategy.priority_order if strategy else None) or []
        if not order:
            return candidates
        rank = {name: i for i, name in enumerate(order)}
        return sorted(candidates, key=lambda s: (rank.get(s.name, len(rank)), s.priority))

    async def flush_metrics(self, session: AsyncSession) -> int:
        return await self.tracker.flush(session)

    # ──── Waterfall operations ────

    async def enrich(self, hints: EnrichHints, strategy: Optional[WaterfallStrategy] = None) -> EnrichResult:
        """
        Enrich one company across sources with fill-gaps-only merging.

        Stops when the merged record reaches the quality threshold with all
        required fields present, or once max_providers sources were called.
        """
        strategy = strategy or WaterfallStrategy.default()
        result = EnrichResult(company=None)
        called = 0

        for source in self.ordered(Capability.COMPANY_ENRICH, strategy):
            if called >= strategy.max_providers:
                break
            if not self._may_call(source, Capability.COMPANY_ENRICH, result.total_cost, strategy, result.skipped):
                continue

            called += 1
            response = await self._invoke(source, Capability.COMPANY_ENRICH, hints, result.errors)
            if response is None or not response.has_data:
                continue

            result.sources_used.append(source.name)
            result.total_cost += response.credits_consumed
            incoming: CompanyDraft = response.data

            if result.company is None:
                result.company = incoming
            else:
                filled = result.company.merge_fill_gaps(incoming)
                result.company.sources.append(SourceRecord(source=source.name, fields_provided=filled))

            result.quality_score = enrich_quality(result.company)
            if result.quality_score >= strategy.quality_threshold and self._has_required(result.company, strategy):
                logger.debug(
                    f"Enrichment of {hints.domain or hints.name} satisfied after {source.name} "
                    f"(quality {result.quality_score:.2f})"
                )
                break

        return result

    async def search(self, params: CompanySearchParams, strategy: Optional[WaterfallStrategy] = None) -> SearchResult:
        """
        Collect company candidates from every search source in order until
        `params.limit` candidates are collected. No cross-source dedup here.
        """
        strategy = strategy or WaterfallStrategy.default()
        result = SearchResult()

        for source in self.ordered(Capability.COMPANY_SEARCH, strategy):
            if len(result.companies) >= params.limit:
                break
            if not self._may_call(source, Capability.COMPANY_SEARCH, result.total_cost, strategy, result.skipped):
                continue

            response = await self._invoke(source, Capability.COMPANY_SEARCH, params, result.errors)
            if response is None:
                continue
            result.sources_used.append(source.name)
            result.total_cost += response.credits_consumed
            result.companies.extend(response.data or [])

        logger.info(
            f"Search collected {len(result.companies)} candidates from {result.sources_used or 'no sources'}"
            + (f", skipped {[s.source for s in result.skipped]}" if result.skipped else "")
        )
        return result

    async def search_people(
        self, params: PeopleSearchParams, strategy: Optional[WaterfallStrategy] = None
    ) -> List[ContactDraft]:
        """First non-empty people search in priority order."""
        strategy = strategy or WaterfallStrategy.default()
        skipped: List[SkippedSource] = []
        errors: Dict[str, str] = {}
        spent = 0.0
        for source in self.ordered(Capability.PEOPLE_SEARCH, strategy):
            if not self._may_call(source, Capability.PEOPLE_SEARCH, spent, strategy, skipped):
                continue
            response = await self._invoke(source, Capability.PEOPLE_SEARCH, params, errors)
            if response is not None:
                spent += response.credits_consumed
                if response.has_data:
                    return response.data
        return []

    async def find_email(
        self, first_name: str, last_name: str, domain: str, strategy: Optional[WaterfallStrategy] = None
    ) -> Optional[str]:
        """First email found in priority order."""
        strategy = strategy or WaterfallStrategy.default()
        lookup = EmailLookup(first_name=first_name, last_name=last_name, domain=domain)
        skipped: List[SkippedSource] = []
        errors: Dict[str, str] = {}
        spent = 0.0
        for source in self.ordered(Capability.EMAIL_FIND, strategy):
            if not self._may_call(source, Capability.EMAIL_FIND, spent, strategy, skipped):
                continue
            response = await self._invoke(source, Capability.EMAIL_FIND, lookup, errors)
            if response is not None:
                spent += response.credits_consumed
                if response.has_data:
                    return response.data
        return None

    # ──── Internals ────

    def _may_call(
        self,
        source: BaseSource,
        capability: Capability,
        spent: float,
        strategy: WaterfallStrategy,
        skipped: List[SkippedSource],
    ) -> bool:
        if source.is_rate_limited():
            logger.info(f"Skipping {source.name} for {capability.value}: rate limit budget exhausted")
            skipped.append(SkippedSource(source.name, SKIP_RATE_LIMITED))
            return False
        if strategy.cost_budget is not None and spent + source.cost_of(capability) > strategy.cost_budget:
            logger.info(
                f"Skipping {source.name} for {capability.value}: cost {source.cost_of(capability)} "
                f"exceeds remaining budget {strategy.cost_budget - spent:.2f}"
            )
            skipped.append(SkippedSource(source.name, SKIP_BUDGET))
            return False
        return True

    async def _invoke(
        self, source: BaseSource, capability: Capability, params: Any, errors: Dict[str, str]
    ) -> Optional[SourceResponse]:
        """Call one source, record the outcome and swallow source failures."""
        started = time.perf_counter()
        try:
            response = await source.call(capability, params)
        except SourceError as e:
            logger.warning(f"Source {source.name} failed on {capability.value}: {e}")
            errors[source.name] = str(e)
            self._record_failure(source, capability, started, str(e))
            return None
        except Exception as e:
            logger.error(f"Unexpected error from {source.name} on {capability.value}: {e}", exc_info=True)
            errors[source.name] = str(e)
            self._record_failure(source, capability, started, str(e))
            return None

        self.tracker.record(
            source=source.name,
            operation=capability.value,
            success=response.has_data,
            quality_score=response.quality_score,
            response_time_ms=response.response_time_ms,
            fields_populated=len(response.fields_populated),
            cost_credits=response.credits_consumed,
            client_id=self.client_id,
        )
        return response

    def _record_failure(self, source: BaseSource, capability: Capability, started: float, error: str) -> None:
        self.tracker.record(
            source=source.name,
            operation=capability.value,
            success=False,
            response_time_ms=int((time.perf_counter() - started) * 1000),
            client_id=self.client_id,
            error=error,
        )

    @staticmethod
    def _has_required(company: CompanyDraft, strategy: WaterfallStrategy) -> bool:
        return all(is_populated(getattr(company, name, None)) for name in strategy.required_fields)


def strategy_from_performance(
    stats: Dict[str, SourceStats],
    base: Optional[WaterfallStrategy] = None,
    min_calls: int = 5,
) -> WaterfallStrategy:
    """
    Reorder sources by observed value: quality times success rate per unit
    of average cost. Sources with too few calls keep their configured
    priority and follow the ranked ones.
    """
    strategy = base or WaterfallStrategy.default()
    ranked = [s for s in stats.values() if s.calls >= min_calls]
    ranked.sort(key=lambda s: (s.avg_quality * s.success_rate) / (1.0 + s.avg_cost), reverse=True)
    strategy.priority_order = [s.source for s in ranked] or None
    return strategy
