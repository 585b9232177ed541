"""
Buying-signal detection.

Two paths feed the same persisted signal table:
  - rule-based checks over structured company fields (deterministic)
  - an LLM pass over free-text descriptions, kept only when the model
    cites a verifiable fact and reports a strong enough signal

Signals are written once with an expiry derived from the per-type decay
window. Reads filter on expires_at, nothing sweeps old rows.
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prospector.core.ai_client import LLMClient, parse_json_lenient
from prospector.core.database import to_score_decimal
from prospector.core.models import SignalType
from prospector.core.policy import FunnelPolicy, policy as default_policy
from prospector.core.utils import parse_date
from prospector.companies.database import ClientModel
from prospector.signals.database import CompanySignalModel

logger = logging.getLogger(__name__)

SOURCE_RULES = "rule_based"
SOURCE_LLM = "llm_analysis"

GROWTH_KEYWORDS = ("hiring", "growing", "expanding")
EXPANSION_KEYWORDS = ("new office", "expansion", "new market", "opened")

_VALID_TYPES = {t.value for t in SignalType}

SIGNAL_SYSTEM_PROMPT = (
    "You are a B2B sales intelligence analyst. You report only facts that a "
    "salesperson could verify. Respond ONLY in valid JSON."
)

SIGNAL_PROMPT = """Analyze this company for buying signals relevant to a vendor.

COMPANY:
{company_json}

VENDOR PRODUCTS / KEYWORDS: {products}

Signal types: {signal_types}

RULES:
- Every signal MUST cite a specific, verifiable fact from the company data above
  (a dated event, a named product, a stated number) together with where it came from.
- Do NOT treat background analysis, industry generalisations or anything you
  inferred yourself as evidence. If the only support is your own reasoning, omit the signal.
- strength is 0.0-1.0. Only report signals you would rate 0.7 or higher.
- If there are no qualifying signals, return [].

Return a JSON array:
[{{"type": "<signal type>", "strength": 0.0, "evidence": "<the cited fact>",
   "source": "<where the fact came from>", "source_url": null, "event_date": "YYYY-MM-DD or null"}}]"""


@dataclass
class DetectedSignal:
    signal_type: str
    strength: float
    evidence: str
    source: str = SOURCE_RULES
    details: Dict[str, Any] = field(default_factory=dict)
    event_date: Optional[date] = None
    source_url: Optional[str] = None


@dataclass
class ClientContext:
    """What the client sells. Drives tech-adoption matching and the LLM prompt."""
    client_id: int
    product_keywords: List[str] = field(default_factory=list)
    product_description: Optional[str] = None

    @classmethod
    def from_model(cls, client: ClientModel) -> "ClientContext":
        return cls(
            client_id=client.id,
            product_keywords=list(client.product_keywords or []),
            product_description=client.product_description,
        )


def _funding_evidence(company: Any) -> str:
    parts = []
    if company.latest_funding_stage:
        parts.append(f"Funding stage: {company.latest_funding_stage}")
    if company.total_funding:
        parts.append(f"Total: ${company.total_funding:,}")
    return ", ".join(parts)


class SignalDetector:
    def __init__(self, llm: Optional[LLMClient] = None, funnel_policy: Optional[FunnelPolicy] = None):
        self.llm = llm
        self.policy = funnel_policy or default_policy

    # ──── Rule-based ────

    def detect_rule_based(self, company: Any, context: ClientContext) -> List[DetectedSignal]:
        """Deterministic checks over structured fields. Each check emits at most one signal."""
        signals: List[DetectedSignal] = []

        if company.latest_funding_stage or company.total_funding:
            signals.append(DetectedSignal(
                signal_type=SignalType.RECENT_FUNDING.value,
                strength=0.7,
                evidence=_funding_evidence(company),
                details={
                    "stage": company.latest_funding_stage,
                    "total_funding": company.total_funding,
                },
                event_date=parse_date(company.latest_funding_date),
            ))

        tech_stack = [t for t in (company.tech_stack or []) if t]
        keywords = [k.lower() for k in context.product_keywords if k]
        if tech_stack and keywords:
            matched = [
                tech for tech in tech_stack
                if any(kw in tech.lower() or tech.lower() in kw for kw in keywords)
            ]
            if matched:
                signals.append(DetectedSignal(
                    signal_type=SignalType.TECH_ADOPTION.value,
                    strength=min(0.6 + 0.1 * len(matched), 1.0),
                    evidence=f"Uses related technologies: {', '.join(matched)}",
                    details={"matched_tech": matched},
                ))

        description = (company.description or "").lower()
        if company.employee_count is not None and company.employee_count > 50:
            indicators = []
            if company.employee_range and "+" in company.employee_range:
                indicators.append(f"employee range {company.employee_range}")
            indicators.extend(kw for kw in GROWTH_KEYWORDS if kw in description)
            if len(indicators) >= 2:
                signals.append(DetectedSignal(
                    signal_type=SignalType.HIRING_SURGE.value,
                    strength=min(0.6 + 0.1 * len(indicators), 1.0),
                    evidence=f"Growth indicators at {company.employee_count} employees: {', '.join(indicators)}",
                    details={"indicators": indicators, "employee_count": company.employee_count},
                ))

        if company.address and company.country:
            hits = [kw for kw in EXPANSION_KEYWORDS if kw in description]
            if hits:
                signals.append(DetectedSignal(
                    signal_type=SignalType.EXPANSION.value,
                    strength=0.7,
                    evidence=f"Expansion mentioned in company description ({', '.join(hits)})",
                    details={"keywords": hits, "country": company.country},
                ))

        return signals

    # ──── LLM ────

    def _company_payload(self, company: Any) -> Dict[str, Any]:
        return {
            "name": company.name,
            "domain": company.domain,
            "industry": company.industry,
            "description": (company.description or "")[:500],
            "employee_count": company.employee_count,
            "tech_stack": list(company.tech_stack or []),
            "funding_stage": company.latest_funding_stage,
            "total_funding": company.total_funding,
            "country": company.country,
        }

    async def detect_llm(self, company: Any, context: ClientContext) -> List[DetectedSignal]:
        """
        Ask the LLM for signals grounded in cited facts.
        Skipped for short descriptions; unparseable output yields nothing.
        """
        if self.llm is None:
            return []
        text = company.description or ""
        if len(text) <= self.policy.thresholds.llm_text_min_chars:
            return []

        products = ", ".join(context.product_keywords) or context.product_description or "not specified"
        prompt = SIGNAL_PROMPT.format(
            company_json=json.dumps(self._company_payload(company), default=str, indent=2),
            products=products,
            signal_types=", ".join(sorted(_VALID_TYPES)),
        )
        try:
            raw = await self.llm.complete(
                prompt, system_prompt=SIGNAL_SYSTEM_PROMPT, temperature=0.1, max_tokens=1200,
                purpose="signal_detection",
            )
        except Exception as e:
            logger.warning(f"LLM signal detection failed for {company.name}: {e}")
            return []

        parsed = parse_json_lenient(raw)
        if isinstance(parsed, dict):
            parsed = parsed.get("signals", [])
        if not isinstance(parsed, list):
            logger.info(f"LLM returned no usable signals for {company.name}")
            return []
        return self._accept_llm_signals(parsed)

    def _accept_llm_signals(self, items: Iterable[Any]) -> List[DetectedSignal]:
        cutoff = self.policy.thresholds.llm_signal_min_strength
        accepted = []
        for item in items:
            if not isinstance(item, dict):
                continue
            signal_type = str(item.get("type") or item.get("signal_type") or "").strip().lower()
            evidence = (item.get("evidence") or "").strip()
            cited_source = (item.get("source") or "").strip()
            try:
                strength = float(item.get("strength", 0))
            except (TypeError, ValueError):
                continue

            if signal_type not in _VALID_TYPES:
                logger.debug(f"Dropping LLM signal with unknown type {signal_type!r}")
                continue
            if not evidence or not cited_source:
                logger.debug(f"Dropping uncited LLM {signal_type} signal")
                continue
            if strength < cutoff:
                continue

            accepted.append(DetectedSignal(
                signal_type=signal_type,
                strength=min(strength, 1.0),
                evidence=evidence,
                source=SOURCE_LLM,
                details={"cited_source": cited_source},
                event_date=parse_date(item.get("event_date")),
                source_url=item.get("source_url"),
            ))
        return accepted

    # ──── Persistence ────

    async def detect(self, session: AsyncSession, company: Any, context: ClientContext) -> List[CompanySignalModel]:
        """
        Run both detection paths and persist new signals.
        A type that already has a live signal for this company is not written again.
        Returns every live signal for the company after the run.
        """
        found = self.detect_rule_based(company, context)
        found.extend(await self.detect_llm(company, context))

        live = await self.get_signals_for_companies(session, [company.id])
        live_types = {s.signal_type for s in live.get(company.id, [])}

        now = datetime.utcnow()
        created = []
        for signal in found:
            if signal.signal_type in live_types:
                continue
            live_types.add(signal.signal_type)
            row = CompanySignalModel(
                client_id=context.client_id,
                company_id=company.id,
                signal_type=signal.signal_type,
                strength=to_score_decimal(signal.strength),
                evidence=signal.evidence,
                source=signal.source,
                source_url=signal.source_url,
                details=signal.details,
                event_date=signal.event_date,
                detected_at=now,
                expires_at=now + timedelta(days=self.policy.decay_days(signal.signal_type)),
            )
            session.add(row)
            created.append(row)

        if created:
            await session.flush()
            logger.info(f"Stored {len(created)} new signal(s) for {company.name}")
        return live.get(company.id, []) + created

    @staticmethod
    async def get_signals_for_companies(
        session: AsyncSession, company_ids: Iterable[int], now: Optional[datetime] = None
    ) -> Dict[int, List[CompanySignalModel]]:
        """Non-expired signals grouped by company id."""
        ids = list(company_ids)
        if not ids:
            return {}
        now = now or datetime.utcnow()
        result = await session.execute(
            select(CompanySignalModel)
            .where(CompanySignalModel.company_id.in_(ids), CompanySignalModel.expires_at >= now)
            .order_by(CompanySignalModel.strength.desc())
        )
        grouped: Dict[int, List[CompanySignalModel]] = {}
        for row in result.scalars().all():
            grouped.setdefault(row.company_id, []).append(row)
        return grouped
