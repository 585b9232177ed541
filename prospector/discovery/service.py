"""
Company discovery.

Drives the source orchestrator for a target profile, removes noise,
falls back to LLM suggestions when sources return nothing, backfills thin
records, deduplicates against the client's existing companies, upserts
and scores. Source failures never abort a run and an empty result is a
reported outcome, not an error.
"""
import logging
from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional, Tuple

from sqlalchemy.ext.asyncio import AsyncSession

from prospector.core.data_types import (
    CompanyDraft,
    CompanySearchParams,
    EnrichHints,
    PeopleSearchParams,
    PersonaFilter,
    ScoreResult,
    TargetFilters,
)
from prospector.core.models import Capability
from prospector.core.policy import FunnelPolicy, policy as default_policy
from prospector.core.utils import normalize_domain
from prospector.companies.database import CompanyModel
from prospector.companies.service import (
    draft_from_model,
    get_companies_by_domains,
    upsert_company,
    upsert_contacts,
)
from prospector.discovery.fallback import SuggestionFallback
from prospector.discovery.filters import apply_exclusions, check_company_name, is_blocked_domain
from prospector.scoring.fit import FitScorer, fit_scorer
from prospector.signals.persona import matches_persona
from prospector.sources.orchestrator import SourceOrchestrator, WaterfallStrategy

logger = logging.getLogger(__name__)


@dataclass
class DiscoveryResult:
    discovered: int = 0
    after_blocklist: int = 0
    scored: int = 0
    added: int = 0
    contacts_found: int = 0
    warnings: List[str] = field(default_factory=list)
    sources_used: List[str] = field(default_factory=list)
    skipped_due_to_budget: List[str] = field(default_factory=list)
    total_cost: float = 0.0
    used_fallback: bool = False
    company_ids: List[int] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "companies_discovered": self.discovered,
            "companies_after_blocklist": self.after_blocklist,
            "companies_scored": self.scored,
            "companies_added": self.added,
            "contacts_found": self.contacts_found,
            "warnings": list(self.warnings),
            "sources_used": list(self.sources_used),
            "skipped_due_to_budget": list(self.skipped_due_to_budget),
            "total_cost": round(self.total_cost, 4),
            "used_fallback": self.used_fallback,
        }


def build_search_params(filters: TargetFilters, limit: int, over_fetch: int = 2) -> CompanySearchParams:
    """Translate profile filters and hints into a provider-agnostic search, over-fetching by `over_fetch`."""
    keywords: List[str] = []
    for kw in list(filters.keywords) + list(filters.hints.keyword_search_terms):
        if kw and kw not in keywords:
            keywords.append(kw)
    return CompanySearchParams(
        industries=list(filters.industries),
        employee_count_min=filters.employee_count_min,
        employee_count_max=filters.employee_count_max,
        revenue_min=filters.revenue_min,
        revenue_max=filters.revenue_max,
        funding_stages=list(filters.funding_stages),
        tech_stack=list(filters.tech_stack),
        countries=list(filters.countries),
        states=list(filters.states),
        cities=list(filters.cities),
        keywords=keywords,
        query=filters.hints.semantic_query,
        limit=limit * over_fetch,
    )


class DiscoveryService:
    def __init__(
        self,
        orchestrator: SourceOrchestrator,
        fallback: Optional[SuggestionFallback] = None,
        scorer: Optional[FitScorer] = None,
        funnel_policy: Optional[FunnelPolicy] = None,
    ):
        self.orchestrator = orchestrator
        self.fallback = fallback or SuggestionFallback(None)
        self.scorer = scorer or fit_scorer
        self.policy = funnel_policy or default_policy

    async def discover(
        self,
        session: AsyncSession,
        client_id: int,
        filters: TargetFilters,
        limit: int = 100,
        persona: Optional[PersonaFilter] = None,
        job=None,
        enrich_top: bool = True,
        strategy: Optional[WaterfallStrategy] = None,
    ) -> DiscoveryResult:
        """
        Find, clean, dedupe, upsert and score companies for a target profile.

        `job` is an optional JobContext used for progress reporting and
        cooperative cancellation between steps. Source metrics recorded so
        far are staged on the session even when a step raises.
        """
        try:
            return await self._discover(session, client_id, filters, limit, persona, job, enrich_top, strategy)
        finally:
            flushed = await self.orchestrator.flush_metrics(session)
            if flushed:
                logger.debug(f"Flushed {flushed} source performance records")

    async def _discover(
        self,
        session: AsyncSession,
        client_id: int,
        filters: TargetFilters,
        limit: int,
        persona: Optional[PersonaFilter],
        job,
        enrich_top: bool,
        strategy: Optional[WaterfallStrategy],
    ) -> DiscoveryResult:
        strategy = strategy or WaterfallStrategy.default()
        result = DiscoveryResult()
        discovery_policy = self.policy.discovery

        # 1-2. Search
        params = build_search_params(filters, limit, discovery_policy.over_fetch_multiplier)
        logger.info(f"Starting discovery for client {client_id} (limit {limit}, fetching {params.limit})")
        search = await self.orchestrator.search(params, strategy)
        result.discovered = len(search.companies)
        result.sources_used = list(search.sources_used)
        result.total_cost = search.total_cost
        result.skipped_due_to_budget = search.skipped_due_to_budget
        if not search.attempted and search.skipped:
            result.warnings.append(
                "No data sources were called: " + ", ".join(f"{s.source} ({s.reason})" for s in search.skipped)
            )
        await self._checkpoint(job)

        # 3. Platform blocklist
        candidates = [c for c in search.companies if not is_blocked_domain(c.domain)]
        if len(candidates) < len(search.companies):
            logger.info(f"Dropped {len(search.companies) - len(candidates)} blocklisted domains")
        result.after_blocklist = len(candidates)

        # 4. Fallback when nothing survived
        if not candidates:
            candidates = await self._run_fallback(filters, limit, strategy, result)
            if not candidates:
                result.warnings.append(
                    "No companies found: data sources returned no results and the suggestion fallback found none"
                )
                await self._finish(session, job, result, 0)
                return result
            await self._checkpoint(job)

        # 5-6. Name heuristics and profile exclusions
        candidates = self._apply_noise_filters(candidates, filters)

        # 7. Backfill thin records
        candidates, backfill_costs = await self._backfill(candidates, strategy, result, job)

        # 8. In-batch dedup, then look up existing rows
        candidates = self._dedupe_batch(candidates)
        existing = await get_companies_by_domains(session, client_id, [c.domain for c in candidates if c.domain])

        # 9. Upsert
        search_cost_each = search.total_cost / len(search.companies) if search.companies else 0.0
        stored: List[Tuple[CompanyModel, CompanyDraft]] = []
        total = len(candidates)
        if job is not None:
            await job.progress(0, total)
        for i, draft in enumerate(candidates, 1):
            await self._checkpoint(job)
            cost = backfill_costs.get(normalize_domain(draft.domain) or "", 0.0) + search_cost_each
            row, created = await upsert_company(session, client_id, draft, cost=cost)
            if created:
                result.added += 1
            stored.append((row, draft))
            if job is not None:
                await job.progress(i, total)
        logger.info(
            f"Upserted {len(stored)} companies ({result.added} new, {len(stored) - result.added} existing)"
        )

        # 10. Score new and pre-existing matches
        threshold = self.policy.thresholds.discovery_fit_threshold
        scored: List[Tuple[CompanyModel, ScoreResult]] = []
        for row, _ in stored:
            fit = self.scorer.score(row, filters)
            if fit.score >= threshold:
                scored.append((row, fit))
        scored.sort(key=lambda pair: pair[1].score, reverse=True)
        scored = scored[:limit]
        result.scored = len(scored)
        result.company_ids = [row.id for row, _ in scored]
        logger.info(f"Scored {len(stored)} candidates, {len(scored)} at or above {threshold}")

        # 11. Deeper enrichment of the best new candidates
        if enrich_top and scored:
            await self._enrich_top(session, client_id, scored, existing, limit, persona, strategy, result, job)

        await self._finish(session, job, result, total)
        return result

    # ──── Steps ────

    async def _run_fallback(
        self, filters: TargetFilters, limit: int, strategy: WaterfallStrategy, result: DiscoveryResult
    ) -> List[CompanyDraft]:
        if not self.fallback.available:
            result.warnings.append("Data sources returned no results and no LLM is configured for suggestions")
            return []

        logger.info("No source results; asking the LLM for company suggestions")
        result.used_fallback = True
        suggestions = [s for s in await self.fallback.suggest(filters, limit) if not is_blocked_domain(s.domain)]
        if not suggestions:
            return []

        single_call = replace(strategy, max_providers=1)
        upgraded: List[CompanyDraft] = []
        can_enrich = self.orchestrator.has_capability(Capability.COMPANY_ENRICH)
        for suggestion in suggestions:
            if not suggestion.domain or not can_enrich:
                upgraded.append(suggestion)
                continue
            enriched = await self.orchestrator.enrich(
                EnrichHints(domain=suggestion.domain, name=suggestion.name), single_call
            )
            result.total_cost += enriched.total_cost
            for name in enriched.sources_used:
                if name not in result.sources_used:
                    result.sources_used.append(name)
            if enriched.company is None:
                upgraded.append(suggestion)
                continue
            enriched.company.merge_fill_gaps(suggestion)
            enriched.company.sources.extend(suggestion.sources)
            upgraded.append(enriched.company)

        result.warnings.append(
            f"Data sources returned no results; used {len(upgraded)} LLM-suggested companies"
        )
        return upgraded

    def _apply_noise_filters(self, candidates: List[CompanyDraft], filters: TargetFilters) -> List[CompanyDraft]:
        kept = []
        for company in candidates:
            ok, reason = check_company_name(company.name)
            if ok:
                ok, reason = apply_exclusions(company, filters)
            if not ok:
                logger.debug(f"Dropping candidate: {reason}")
                continue
            kept.append(company)
        if len(kept) < len(candidates):
            logger.info(f"Noise and exclusion filters removed {len(candidates) - len(kept)} candidates")
        return kept

    async def _backfill(
        self, candidates: List[CompanyDraft], strategy: WaterfallStrategy, result: DiscoveryResult, job
    ) -> Tuple[List[CompanyDraft], Dict[str, float]]:
        """One best-effort enrichment per thin record, capped at the backfill batch size."""
        costs: Dict[str, float] = {}
        if not self.orchestrator.has_capability(Capability.COMPANY_ENRICH):
            return candidates, costs

        thin = [c for c in candidates if c.domain and c.missing_core_attributes()]
        batch = thin[: self.policy.discovery.backfill_batch_size]
        single_call = replace(strategy, max_providers=1)
        for company in batch:
            await self._checkpoint(job)
            enriched = await self.orchestrator.enrich(EnrichHints(domain=company.domain, name=company.name), single_call)
            if enriched.company is None:
                continue
            company.merge_fill_gaps(enriched.company)
            company.sources.extend(enriched.company.sources)
            costs[normalize_domain(company.domain)] = enriched.total_cost
            result.total_cost += enriched.total_cost
        if batch:
            logger.info(f"Backfilled {len(costs)}/{len(batch)} thin records ({len(thin)} needed it)")
        return candidates, costs

    @staticmethod
    def _dedupe_batch(candidates: List[CompanyDraft]) -> List[CompanyDraft]:
        """Collapse candidates sharing a domain; companies without one are always kept."""
        by_domain: Dict[str, CompanyDraft] = {}
        unique: List[CompanyDraft] = []
        for company in candidates:
            domain = normalize_domain(company.domain)
            if not domain:
                unique.append(company)
                continue
            company.domain = domain
            first = by_domain.get(domain)
            if first is None:
                by_domain[domain] = company
                unique.append(company)
            else:
                first.merge_fill_gaps(company)
                first.sources.extend(company.sources)
        return unique

    async def _enrich_top(
        self,
        session: AsyncSession,
        client_id: int,
        scored: List[Tuple[CompanyModel, ScoreResult]],
        existing: Dict[str, CompanyModel],
        limit: int,
        persona: Optional[PersonaFilter],
        strategy: WaterfallStrategy,
        result: DiscoveryResult,
        job,
    ) -> None:
        cap = min(self.policy.discovery.top_enrich_limit, limit)
        targets = [row for row, _ in scored if row.domain and row.domain not in existing][:cap]
        can_enrich = self.orchestrator.has_capability(Capability.COMPANY_ENRICH)
        can_find_people = persona is not None and self.orchestrator.has_capability(Capability.PEOPLE_SEARCH)

        for row in targets:
            await self._checkpoint(job)
            if can_enrich:
                enriched = await self.orchestrator.enrich(EnrichHints(domain=row.domain, name=row.name), strategy)
                if enriched.company is not None:
                    enriched.company.domain = row.domain
                    await upsert_company(session, client_id, enriched.company, cost=enriched.total_cost)
                    result.total_cost += enriched.total_cost
            if can_find_people:
                people = await self.orchestrator.search_people(
                    PeopleSearchParams(
                        domain=row.domain,
                        company_name=row.name,
                        titles=[t for t in (p.replace("*", "").strip() for p in persona.title_patterns) if t],
                        seniorities=list(persona.seniority_levels),
                        departments=list(persona.departments),
                    ),
                    strategy,
                )
                matching = [p for p in people if matches_persona(p, persona)]
                if matching:
                    stored = await upsert_contacts(session, row, matching)
                    result.contacts_found += len(stored)

        if targets:
            logger.info(f"Enriched top {len(targets)} candidates, found {result.contacts_found} contacts")

    # ──── Job plumbing ────

    @staticmethod
    async def _checkpoint(job) -> None:
        if job is not None:
            await job.checkpoint()

    async def _finish(self, session: AsyncSession, job, result: DiscoveryResult, total: int) -> None:
        flushed = await self.orchestrator.flush_metrics(session)
        logger.debug(f"Flushed {flushed} source performance records")
        if job is not None:
            await job.progress(total, total, force=True)
        logger.info(
            f"Discovery finished: {result.discovered} found, {result.added} added, {result.scored} scored"
            + (f", warnings: {result.warnings}" if result.warnings else "")
        )
