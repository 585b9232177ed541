"""
Funnel building and stage advancement.

    tam --(fit pass)--> active_segment --(signals)--> qualified
        --(persona match)--> ready_to_approach --(manual)--> in_sequence --(manual)--> converted

Every build rescores the client's whole company pool. Rebuilds are
idempotent: a company that is already an active member is skipped, and
the partial unique indexes on funnel_members reject any duplicate active
row that slips through concurrently.
"""
import logging
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prospector.core.data_types import PersonaFilter, ScoreResult, TargetFilters
from prospector.core.database import insert_ignore, to_score_decimal
from prospector.core.errors import ConfigurationError, NotFoundError
from prospector.core.models import PipelineStage
from prospector.core.policy import FunnelPolicy, policy as default_policy
from prospector.companies.database import ClientModel, CompanyModel, ContactModel
from prospector.companies.service import history_from_json, list_client_companies
from prospector.discovery.filters import apply_exclusions, check_company_name, is_blocked_domain
from prospector.discovery.service import DiscoveryResult, DiscoveryService
from prospector.funnel.database import FunnelMemberModel, FunnelModel, PersonaModel, TargetProfileModel
from prospector.funnel.service import (
    active_company_ids,
    advance_companies,
    get_funnel,
    list_members,
    refresh_counts,
    soft_remove_members,
)
from prospector.scoring.composite import CompositeScorer
from prospector.scoring.fit import FitScorer, fit_scorer
from prospector.signals.detector import ClientContext, SignalDetector
from prospector.signals.persona import PersonaSignalDetector, matches_persona
from prospector.sources.orchestrator import WaterfallStrategy

logger = logging.getLogger(__name__)

MAX_REASON_PARTS = 5


@dataclass
class ScoredCompany:
    company: CompanyModel
    fit: ScoreResult
    signal_score: float = 0.0
    originality_score: Optional[float] = None
    composite_score: float = 0.0
    reasons: List[str] = field(default_factory=list)


@dataclass
class BuildResult:
    candidates: int = 0
    scored: int = 0
    companies_added: int = 0
    contacts_added: int = 0
    promoted: int = 0
    used_signals: bool = False
    discovery: Optional[DiscoveryResult] = None

    def to_dict(self) -> Dict:
        out = {
            "candidates": self.candidates,
            "companies_scored": self.scored,
            "companies_added": self.companies_added,
            "contacts_added": self.contacts_added,
            "promoted_to_active_segment": self.promoted,
            "used_signals": self.used_signals,
        }
        if self.discovery is not None:
            out["discovery"] = self.discovery.to_dict()
            if self.discovery.warnings:
                out["warnings"] = list(self.discovery.warnings)
        return out


class FunnelBuilder:
    """
    Orchestrates discovery, scoring, membership and stage advancement for
    one funnel at a time. Signal and discovery collaborators are optional;
    operations that need a missing one raise ConfigurationError.
    """

    def __init__(
        self,
        discovery: Optional[DiscoveryService] = None,
        signal_detector: Optional[SignalDetector] = None,
        persona_detector: Optional[PersonaSignalDetector] = None,
        scorer: Optional[FitScorer] = None,
        funnel_policy: Optional[FunnelPolicy] = None,
    ):
        self.discovery = discovery
        self.signal_detector = signal_detector
        self.persona_detector = persona_detector or PersonaSignalDetector()
        self.scorer = scorer or fit_scorer
        self.policy = funnel_policy or default_policy

    # ──── Loading ────

    async def _load_context(
        self, session: AsyncSession, funnel: FunnelModel
    ) -> Tuple[TargetFilters, Optional[PersonaFilter], ClientModel]:
        if funnel.target_profile_id is None:
            raise ConfigurationError(f"Funnel {funnel.id} has no target profile")
        profile = await session.get(TargetProfileModel, funnel.target_profile_id)
        if profile is None:
            raise NotFoundError("Target profile", funnel.target_profile_id)
        persona = None
        if funnel.persona_id is not None:
            persona_row = await session.get(PersonaModel, funnel.persona_id)
            if persona_row is None:
                raise NotFoundError("Persona", funnel.persona_id)
            persona = persona_row.to_filter()
        client = await session.get(ClientModel, funnel.client_id)
        if client is None:
            raise NotFoundError("Client", funnel.client_id)
        return profile.to_filters(), persona, client

    def _scorer_for(self, funnel: FunnelModel, client: ClientModel) -> CompositeScorer:
        return CompositeScorer.for_strategy(funnel.strategy or client.strategy)

    # ──── Build ────

    async def build_funnel(
        self, session: AsyncSession, funnel_id: int, limit: Optional[int] = None, job=None
    ) -> BuildResult:
        funnel = await get_funnel(session, funnel_id)
        filters, persona, client = await self._load_context(session, funnel)
        result = BuildResult()

        companies = await list_client_companies(session, funnel.client_id)
        already_active = await active_company_ids(session, funnel.id)
        candidates = [c for c in companies if c.id not in already_active and self._eligible(c, filters)]
        result.candidates = len(candidates)
        if already_active:
            logger.info(f"Funnel {funnel.id}: skipping {len(already_active)} companies already active")

        threshold = self.policy.thresholds.funnel_fit_threshold
        scored: List[ScoredCompany] = []
        for company in candidates:
            fit = self.scorer.score(company, filters)
            if fit.score >= threshold:
                scored.append(ScoredCompany(company, fit, composite_score=fit.score, reasons=list(fit.reasons)))
        dropped = len(candidates) - len(scored)
        if dropped:
            logger.info(f"Funnel {funnel.id}: {dropped} candidates below fit threshold {threshold}")

        if self.signal_detector is not None and scored:
            result.used_signals = True
            await self._apply_composite(session, funnel, client, scored, job)

        scored.sort(key=lambda s: (-s.composite_score, s.company.id))
        if limit:
            scored = scored[:limit]
        result.scored = len(scored)

        total = len(scored)
        if job is not None:
            await job.progress(0, total)
        for i, item in enumerate(scored, 1):
            if job is not None:
                await job.checkpoint()
            inserted = await insert_ignore(session, FunnelMemberModel, [self._member_row(funnel.id, item)])
            result.companies_added += inserted
            if persona is not None:
                result.contacts_added += await self._add_contact_members(
                    session, funnel.id, item.company, persona, item.composite_score, item.reasons
                )
            if job is not None:
                await job.progress(i, total)

        result.promoted = await advance_companies(
            session, [s.company.id for s in scored], PipelineStage.TAM
        )

        funnel.filter_snapshot = {
            "filters": filters.to_dict(),
            "persona": asdict(persona) if persona else None,
            "strategy": funnel.strategy or client.strategy or None,
            "applied_at": datetime.utcnow().isoformat(),
        }
        funnel.last_built_at = datetime.utcnow()
        await refresh_counts(session, funnel)
        logger.info(
            f"Funnel {funnel.id} built: {result.companies_added} companies, "
            f"{result.contacts_added} contacts added ({funnel.company_count} active)"
        )
        return result

    async def refresh_funnel(
        self, session: AsyncSession, funnel_id: int, limit: Optional[int] = None, job=None
    ) -> BuildResult:
        """Soft-remove every active member, then rebuild from the current pool."""
        funnel = await get_funnel(session, funnel_id)
        removed = await soft_remove_members(session, funnel.id)
        await session.flush()
        logger.info(f"Funnel {funnel.id}: soft-removed {removed} members before rebuild")

        result = await self.build_funnel(session, funnel_id, limit=limit, job=job)
        funnel.last_refreshed_at = datetime.utcnow()
        await session.flush()
        return result

    async def build_with_discovery(
        self,
        session: AsyncSession,
        funnel_id: int,
        limit: int = 100,
        job=None,
        strategy: Optional[WaterfallStrategy] = None,
    ) -> BuildResult:
        """Discover new companies for the funnel's profile, then build from the enlarged pool."""
        if self.discovery is None:
            raise ConfigurationError("Discovery service is not configured")
        funnel = await get_funnel(session, funnel_id)
        filters, persona, client = await self._load_context(session, funnel)
        overrides = (funnel.strategy or client.strategy or {}).get("waterfall")

        discovery = await self.discovery.discover(
            session,
            funnel.client_id,
            filters,
            limit=limit,
            persona=persona,
            job=job,
            strategy=strategy or WaterfallStrategy.from_overrides(overrides),
        )
        result = await self.build_funnel(session, funnel_id, limit=limit, job=job)
        result.discovery = discovery
        return result

    async def build_contact_funnel(self, session: AsyncSession, funnel_id: int) -> int:
        """Add persona-matching contacts under the funnel's qualified company members."""
        funnel = await get_funnel(session, funnel_id)
        _, persona, _ = await self._load_context(session, funnel)
        if persona is None:
            raise ConfigurationError(f"Funnel {funnel.id} has no persona")

        added = 0
        for member, company in await list_members(session, funnel.id, stage=PipelineStage.QUALIFIED):
            reasons = (member.added_reason or "").split("; ")[:3]
            added += await self._add_contact_members(
                session, funnel.id, company, persona, float(member.composite_score or 0), reasons
            )
        await refresh_counts(session, funnel)
        logger.info(f"Funnel {funnel.id}: added {added} contacts under qualified companies")
        return added

    # ──── Stage advancement ────

    async def run_company_signals(self, session: AsyncSession, funnel_id: int, job=None) -> Dict[str, int]:
        """Detect signals for active_segment members and qualify the ones with enough evidence."""
        if self.signal_detector is None:
            raise ConfigurationError("Signal services not configured; cannot run company signals")
        funnel = await get_funnel(session, funnel_id)
        filters, _, client = await self._load_context(session, funnel)
        context = ClientContext.from_model(client)
        composite = self._scorer_for(funnel, client)
        thresholds = self.policy.thresholds

        rows = await list_members(session, funnel.id, stage=PipelineStage.ACTIVE_SEGMENT)
        if not rows:
            logger.info(f"Funnel {funnel.id}: no active_segment members to run company signals on")
            return {"processed": 0, "qualified": 0, "signals_detected": 0}

        to_qualify: List[int] = []
        signals_detected = 0
        if job is not None:
            await job.progress(0, len(rows))
        for i, (member, company) in enumerate(rows, 1):
            if job is not None:
                await job.checkpoint()
            signals = await self.signal_detector.detect(session, company, context)
            signals_detected += len(signals)

            scored = composite.score(
                self.scorer.score(company, filters),
                signals,
                company.sources or [],
                total_cost=company.enrichment_cost or 0.0,
            )
            member.signal_score = to_score_decimal(scored.signal_score)
            member.originality_score = to_score_decimal(scored.originality_score)
            member.composite_score = to_score_decimal(scored.composite_score)
            if scored.reasons:
                member.added_reason = "; ".join(scored.reasons[:MAX_REASON_PARTS])

            strong = any(float(s.strength) >= thresholds.company_signal_strength for s in signals)
            if strong or scored.signal_score >= thresholds.company_signal_score:
                to_qualify.append(company.id)
            if job is not None:
                await job.progress(i, len(rows))

        await session.flush()
        qualified = await advance_companies(session, to_qualify, PipelineStage.ACTIVE_SEGMENT)
        logger.info(
            f"Funnel {funnel.id}: company signals processed {len(rows)}, qualified {qualified}, "
            f"{signals_detected} live signals"
        )
        return {"processed": len(rows), "qualified": qualified, "signals_detected": signals_detected}

    async def run_persona_signals(self, session: AsyncSession, funnel_id: int, job=None) -> Dict[str, int]:
        """Score contact members under qualified companies; strong persona matches make the company ready."""
        funnel = await get_funnel(session, funnel_id)
        _, persona, _ = await self._load_context(session, funnel)
        if persona is None:
            raise ConfigurationError(f"Funnel {funnel.id} has no persona; cannot run persona signals")

        rows = await list_members(session, funnel.id, stage=PipelineStage.QUALIFIED, contacts=True)
        if not rows:
            logger.info(f"Funnel {funnel.id}: no contact members under qualified companies")
            return {"processed": 0, "ready": 0, "signals_detected": 0}

        contact_ids = [member.contact_id for member, _ in rows]
        contact_result = await session.execute(select(ContactModel).where(ContactModel.id.in_(contact_ids)))
        contacts = {c.id: c for c in contact_result.scalars().all()}

        threshold = self.policy.thresholds.persona_score_threshold
        ready: List[int] = []
        signals_detected = 0
        if job is not None:
            await job.progress(0, len(rows))
        for i, (member, company) in enumerate(rows, 1):
            if job is not None:
                await job.checkpoint()
            contact = contacts.get(member.contact_id)
            if contact is None:
                continue
            signals = await self.persona_detector.detect_and_store(
                session, contact, history_from_json(contact.employment_history), persona,
                persona_id=funnel.persona_id,
            )
            signals_detected += len(signals)
            score = self.persona_detector.persona_score(signals)
            member.persona_score = to_score_decimal(score)
            if score >= threshold and company.id not in ready:
                ready.append(company.id)
            if job is not None:
                await job.progress(i, len(rows))

        await session.flush()
        moved = await advance_companies(session, ready, PipelineStage.QUALIFIED)
        logger.info(
            f"Funnel {funnel.id}: persona signals processed {len(rows)} contacts, "
            f"{moved} companies ready to approach"
        )
        return {"processed": len(rows), "ready": moved, "signals_detected": signals_detected}

    # ──── Internals ────

    @staticmethod
    def _eligible(company: CompanyModel, filters: TargetFilters) -> bool:
        if is_blocked_domain(company.domain):
            return False
        ok, _ = check_company_name(company.name)
        if not ok:
            return False
        ok, reason = apply_exclusions(company, filters)
        if not ok:
            logger.debug(f"Excluding {company.name}: {reason}")
        return ok

    async def _apply_composite(
        self, session: AsyncSession, funnel: FunnelModel, client: ClientModel, scored: List[ScoredCompany], job
    ) -> None:
        context = ClientContext.from_model(client)
        composite = self._scorer_for(funnel, client)
        live = await self.signal_detector.get_signals_for_companies(session, [s.company.id for s in scored])
        detected = 0
        for item in scored:
            if job is not None:
                await job.checkpoint()
            signals = live.get(item.company.id)
            if signals is None:
                signals = await self.signal_detector.detect(session, item.company, context)
                detected += 1
            result = composite.score(
                item.fit, signals, item.company.sources or [], total_cost=item.company.enrichment_cost or 0.0
            )
            item.signal_score = result.signal_score
            item.originality_score = result.originality_score
            item.composite_score = result.composite_score
            item.reasons = result.reasons
        logger.info(f"Funnel {funnel.id}: composite scored {len(scored)} companies ({detected} newly analysed)")

    @staticmethod
    def _member_row(funnel_id: int, item: ScoredCompany) -> Dict:
        return {
            "funnel_id": funnel_id,
            "company_id": item.company.id,
            "contact_id": None,
            "fit_score": to_score_decimal(item.fit.score),
            "signal_score": to_score_decimal(item.signal_score),
            "originality_score": to_score_decimal(item.originality_score),
            "composite_score": to_score_decimal(item.composite_score),
            "added_reason": "; ".join(item.reasons[:MAX_REASON_PARTS]),
            "added_at": datetime.utcnow(),
        }

    async def _add_contact_members(
        self,
        session: AsyncSession,
        funnel_id: int,
        company: CompanyModel,
        persona: PersonaFilter,
        composite_score: float,
        reasons: List[str],
    ) -> int:
        result = await session.execute(select(ContactModel).where(ContactModel.company_id == company.id))
        matching = [c for c in result.scalars().all() if matches_persona(c, persona)]
        rows = [
            {
                "funnel_id": funnel_id,
                "company_id": company.id,
                "contact_id": contact.id,
                "composite_score": to_score_decimal(composite_score),
                "added_reason": f"{'; '.join(reasons[:3])} | Title: {contact.title}",
                "added_at": datetime.utcnow(),
            }
            for contact in matching
        ]
        return await insert_ignore(session, FunnelMemberModel, rows)
