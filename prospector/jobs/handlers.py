"""
Job handlers and service wiring.

Sources and the LLM client are built once and shared by every job so
rate-limit buckets span jobs; orchestrators are per job so performance
rows carry the client id.
"""
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from prospector.core.ai_client import LLMClient, build_llm_client
from prospector.core.errors import ConfigurationError, NotFoundError
from prospector.core.models import JobType
from prospector.companies.database import ClientModel
from prospector.discovery.fallback import SuggestionFallback
from prospector.discovery.service import DiscoveryService
from prospector.funnel.builder import FunnelBuilder
from prospector.funnel.database import FunnelModel, PersonaModel, TargetProfileModel
from prospector.jobs.runner import Handler, JobContext
from prospector.signals.detector import SignalDetector
from prospector.signals.persona import PersonaSignalDetector
from prospector.sources.base import BaseSource
from prospector.sources.orchestrator import SourceOrchestrator, WaterfallStrategy, strategy_from_performance
from prospector.sources.registry import build_default_sources

logger = logging.getLogger(__name__)


class Pipeline:
    """Builds the per-job service graph from shared sources and LLM client."""

    def __init__(self, sources: Optional[List[BaseSource]] = None, llm: Optional[LLMClient] = None):
        self.sources = sources if sources is not None else build_default_sources()
        self.llm = llm

    @classmethod
    def from_settings(cls) -> "Pipeline":
        return cls(build_default_sources(), build_llm_client())

    def orchestrator(self, client_id: int) -> SourceOrchestrator:
        return SourceOrchestrator(self.sources, client_id=client_id)

    def discovery(self, client_id: int) -> DiscoveryService:
        return DiscoveryService(self.orchestrator(client_id), SuggestionFallback(self.llm))

    def builder(self, client_id: int) -> FunnelBuilder:
        return FunnelBuilder(
            discovery=self.discovery(client_id),
            signal_detector=SignalDetector(self.llm),
            persona_detector=PersonaSignalDetector(self.llm),
        )

    async def strategy_for(
        self, session: AsyncSession, orchestrator: SourceOrchestrator, overrides: Optional[Dict[str, Any]]
    ) -> WaterfallStrategy:
        """Client overrides first, then reorder sources by their recent track record."""
        base = WaterfallStrategy.from_overrides(overrides)
        if base.priority_order:
            return base
        stats = await orchestrator.tracker.stats(session, client_id=orchestrator.client_id)
        return strategy_from_performance(stats, base)


async def _require(session: AsyncSession, model, identifier, label: str):
    if identifier is None:
        raise ConfigurationError(f"Job input is missing {label}")
    row = await session.get(model, int(identifier))
    if row is None:
        raise NotFoundError(label, identifier)
    return row


def build_handlers(pipeline: Pipeline) -> Dict[JobType, Handler]:
    async def discover(session: AsyncSession, payload: Dict[str, Any], job: JobContext) -> Dict[str, Any]:
        profile = await _require(session, TargetProfileModel, payload.get("target_profile_id"), "Target profile")
        client = await _require(session, ClientModel, profile.client_id, "Client")
        persona = None
        if payload.get("persona_id") is not None:
            persona = (await _require(session, PersonaModel, payload["persona_id"], "Persona")).to_filter()

        service = pipeline.discovery(client.id)
        strategy = await pipeline.strategy_for(session, service.orchestrator, (client.strategy or {}).get("waterfall"))
        result = await service.discover(
            session,
            client.id,
            profile.to_filters(),
            limit=int(payload.get("limit", 100)),
            persona=persona,
            job=job,
            enrich_top=bool(payload.get("enrich_top", True)),
            strategy=strategy,
        )
        return result.to_dict()

    async def build_funnel(session: AsyncSession, payload: Dict[str, Any], job: JobContext) -> Dict[str, Any]:
        funnel = await _require(session, FunnelModel, payload.get("funnel_id"), "Funnel")
        builder = pipeline.builder(funnel.client_id)
        limit = payload.get("limit")
        if payload.get("discover", True):
            client = await _require(session, ClientModel, funnel.client_id, "Client")
            overrides = (funnel.strategy or client.strategy or {}).get("waterfall")
            strategy = await pipeline.strategy_for(session, builder.discovery.orchestrator, overrides)
            result = await builder.build_with_discovery(
                session, funnel.id, limit=int(limit or 100), job=job, strategy=strategy
            )
        else:
            result = await builder.build_funnel(session, funnel.id, limit=limit, job=job)
        return result.to_dict()

    async def refresh_funnel(session: AsyncSession, payload: Dict[str, Any], job: JobContext) -> Dict[str, Any]:
        funnel = await _require(session, FunnelModel, payload.get("funnel_id"), "Funnel")
        result = await pipeline.builder(funnel.client_id).refresh_funnel(
            session, funnel.id, limit=payload.get("limit"), job=job
        )
        return result.to_dict()

    async def company_signals(session: AsyncSession, payload: Dict[str, Any], job: JobContext) -> Dict[str, Any]:
        funnel = await _require(session, FunnelModel, payload.get("funnel_id"), "Funnel")
        return await pipeline.builder(funnel.client_id).run_company_signals(session, funnel.id, job=job)

    async def persona_signals(session: AsyncSession, payload: Dict[str, Any], job: JobContext) -> Dict[str, Any]:
        funnel = await _require(session, FunnelModel, payload.get("funnel_id"), "Funnel")
        builder = pipeline.builder(funnel.client_id)
        contacts_added = 0
        if payload.get("build_contacts", True):
            contacts_added = await builder.build_contact_funnel(session, funnel.id)
        output = await builder.run_persona_signals(session, funnel.id, job=job)
        output["contacts_added"] = contacts_added
        return output

    return {
        JobType.DISCOVER: discover,
        JobType.BUILD_FUNNEL: build_funnel,
        JobType.REFRESH_FUNNEL: refresh_funnel,
        JobType.COMPANY_SIGNALS: company_signals,
        JobType.PERSONA_SIGNALS: persona_signals,
    }
