"""
Persona signals for contacts: how well a person fits the target persona
and whether a recent career event makes them worth approaching now.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from rapidfuzz import fuzz
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession

from prospector.core.ai_client import LLMClient, parse_json_lenient
from prospector.core.data_types import EmploymentRecord, PersonaFilter
from prospector.core.database import to_score_decimal
from prospector.core.models import PersonaSignalType
from prospector.core.utils import wildcard_to_regex
from prospector.signals.database import ContactSignalModel

logger = logging.getLogger(__name__)

# Minimum token-set similarity for a title to count as a partial match
FUZZY_TITLE_MIN_RATIO = 90

DAYS_PER_MONTH = 30

SOURCE_RULES = "rule_based"
SOURCE_LLM = "llm_analysis"

# Contacts need at least this many employment records before the LLM sees them
LLM_MIN_HISTORY = 2
LLM_MIN_STRENGTH = 0.5

_VALID_TYPES = {t.value for t in PersonaSignalType}
_FIT_WEIGHTS = {PersonaSignalType.TITLE_MATCH.value: 0.60, PersonaSignalType.SENIORITY_MATCH.value: 0.40}
_EVENT_WEIGHTS = {PersonaSignalType.JOB_CHANGE.value: 0.65, PersonaSignalType.TENURE_SIGNAL.value: 0.35}

CAREER_SYSTEM_PROMPT = (
    "You analyse B2B contacts for sales teams. Respond ONLY in valid JSON."
)

CAREER_PROMPT = """Analyze this contact's career trajectory against the target persona and detect
person-specific buying signals.

TARGET PERSONA:
Title patterns: {title_patterns}
Seniority: {seniority_levels}
Departments: {departments}

CONTACT:
Title: {title}
Seniority: {seniority}
Department: {department}
Employment history:
{history}

Signal types: {signal_types}
Only include signals with strength >= 0.5. Return [] if there are none.

Return a JSON array:
[{{"type": "<signal type>", "strength": 0.0, "evidence": "<brief explanation>"}}]"""


@dataclass
class PersonaSignal:
    signal_type: str
    strength: float
    evidence: str
    details: Dict[str, Any] = field(default_factory=dict)
    source: str = SOURCE_RULES


def match_title(title: Optional[str], patterns: Iterable[str]) -> Tuple[Optional[str], bool]:
    """
    Find the first pattern matching `title`.
    Returns (pattern, exact); (None, False) when nothing matches.
    """
    if not title:
        return None, False
    title_lower = title.strip().lower()
    for pattern in patterns:
        pattern_lower = pattern.strip().lower()
        if not pattern_lower:
            continue
        if "*" in pattern_lower:
            if wildcard_to_regex(pattern_lower).match(title_lower):
                return pattern, False
            continue
        if title_lower == pattern_lower:
            return pattern, True
        if pattern_lower in title_lower or title_lower in pattern_lower:
            return pattern, False
        if fuzz.token_set_ratio(pattern_lower, title_lower) >= FUZZY_TITLE_MIN_RATIO:
            return pattern, False
    return None, False


def matches_persona(contact: Any, persona: PersonaFilter) -> bool:
    """True when a contact passes every populated dimension of the persona filter."""
    if persona.is_empty:
        return False
    if persona.exclude_title_patterns:
        excluded, _ = match_title(contact.title, persona.exclude_title_patterns)
        if excluded:
            return False
    if persona.title_patterns:
        pattern, _ = match_title(contact.title, persona.title_patterns)
        if pattern is None:
            return False
    if persona.seniority_levels:
        levels = {s.lower() for s in persona.seniority_levels}
        if (contact.seniority or "").lower() not in levels:
            return False
    if persona.departments:
        departments = {d.lower() for d in persona.departments}
        if (contact.department or "").lower() not in departments:
            return False
    return True


def _months_since(start: date, today: date) -> float:
    return (today - start).days / DAYS_PER_MONTH


class PersonaSignalDetector:
    def __init__(self, llm: Optional[LLMClient] = None):
        self.llm = llm

    def detect(
        self,
        title: Optional[str],
        seniority: Optional[str],
        history: List[EmploymentRecord],
        persona: PersonaFilter,
        today: Optional[date] = None,
    ) -> List[PersonaSignal]:
        """Rule-based persona signals for one contact."""
        today = today or date.today()
        signals: List[PersonaSignal] = []

        pattern, exact = match_title(title, persona.title_patterns)
        if pattern:
            signals.append(PersonaSignal(
                signal_type=PersonaSignalType.TITLE_MATCH.value,
                strength=0.9 if exact else 0.6,
                evidence=f'Title "{title}" matches persona pattern "{pattern}"',
                details={"matched_pattern": pattern, "contact_title": title},
            ))

        if seniority and persona.seniority_levels:
            if seniority.lower() in {s.lower() for s in persona.seniority_levels}:
                signals.append(PersonaSignal(
                    signal_type=PersonaSignalType.SENIORITY_MATCH.value,
                    strength=0.6,
                    evidence=f'Seniority "{seniority}" matches target levels',
                    details={"contact_seniority": seniority, "target_levels": list(persona.seniority_levels)},
                ))

        current = next((h for h in history if h.is_current), None)
        if current and current.start_date:
            months = _months_since(current.start_date, today)
            if 0 <= months < 6:
                signals.append(PersonaSignal(
                    signal_type=PersonaSignalType.JOB_CHANGE.value,
                    strength=0.8 if months < 3 else 0.7,
                    evidence=f"Started current role {round(months)} months ago",
                    details={"months_in_role": round(months), "start_date": current.start_date.isoformat()},
                ))

        previous = next((h for h in history if not h.is_current), None)
        if (
            current and previous and current.start_date
            and current.company and current.company == previous.company
            and current.title != previous.title
        ):
            months = _months_since(current.start_date, today)
            if 0 <= months < 12:
                signals.append(PersonaSignal(
                    signal_type=PersonaSignalType.TENURE_SIGNAL.value,
                    strength=0.8 if months < 6 else 0.6,
                    evidence=f'Promoted from "{previous.title}" to "{current.title}"',
                    details={
                        "previous_title": previous.title,
                        "current_title": current.title,
                        "months_since_promotion": round(months),
                    },
                ))

        return signals

    # ──── LLM ────

    @staticmethod
    def _history_lines(history: List[EmploymentRecord]) -> str:
        lines = []
        for record in history:
            span = ""
            if record.start_date:
                end = record.end_date.isoformat() if record.end_date else "present"
                span = f" ({record.start_date.isoformat()} - {end})"
            lines.append(f"  - {record.title or 'Unknown'} at {record.company or 'Unknown'}{span}")
        return "\n".join(lines)

    async def detect_llm(
        self, contact: Any, history: List[EmploymentRecord], persona: PersonaFilter
    ) -> List[PersonaSignal]:
        """
        Career-trajectory analysis for contacts with more than one employment record.
        Errors and unparseable output yield no signals.
        """
        if self.llm is None or len(history) < LLM_MIN_HISTORY:
            return []

        prompt = CAREER_PROMPT.format(
            title_patterns=", ".join(persona.title_patterns) or "any",
            seniority_levels=", ".join(persona.seniority_levels) or "any",
            departments=", ".join(persona.departments) or "any",
            title=contact.title or "Unknown",
            seniority=contact.seniority or "Unknown",
            department=contact.department or "Unknown",
            history=self._history_lines(history),
            signal_types=", ".join(sorted(_VALID_TYPES)),
        )
        try:
            raw = await self.llm.complete(
                prompt, system_prompt=CAREER_SYSTEM_PROMPT, temperature=0.1, max_tokens=1024,
                purpose="persona_signals",
            )
        except Exception as e:
            logger.warning(f"LLM persona analysis failed for contact {contact.id}: {e}")
            return []

        parsed = parse_json_lenient(raw)
        if isinstance(parsed, dict):
            parsed = parsed.get("signals", [])
        if not isinstance(parsed, list):
            logger.info(f"LLM returned no usable persona signals for contact {contact.id}")
            return []

        accepted = []
        for item in parsed:
            if not isinstance(item, dict):
                continue
            signal_type = str(item.get("type") or item.get("signal_type") or "").strip().lower()
            try:
                strength = float(item.get("strength", item.get("signal_strength", 0)))
            except (TypeError, ValueError):
                continue
            if signal_type not in _VALID_TYPES or strength < LLM_MIN_STRENGTH:
                continue
            accepted.append(PersonaSignal(
                signal_type=signal_type,
                strength=min(strength, 1.0),
                evidence=(item.get("evidence") or "").strip(),
                source=SOURCE_LLM,
            ))
        return accepted

    # ──── Scoring ────

    @staticmethod
    def _weighted_average(strengths: Dict[str, float], weights: Dict[str, float]) -> Optional[float]:
        present = [t for t in weights if t in strengths]
        if not present:
            return None
        total = sum(weights[t] for t in present)
        return min(1.0, sum(strengths[t] * weights[t] for t in present) / total)

    @staticmethod
    def persona_score(signals: Iterable[Any]) -> float:
        """
        Fit and event parts are weighted averages over the signals present
        (title 0.6 / seniority 0.4, job change 0.65 / tenure 0.35).
        With career events the score is 0.6 * fit + 0.4 * event; without any
        it is the fit part alone.
        """
        strengths: Dict[str, float] = {}
        for s in signals:
            strengths[s.signal_type] = max(strengths.get(s.signal_type, 0.0), float(s.strength))

        fit = PersonaSignalDetector._weighted_average(strengths, _FIT_WEIGHTS)
        event = PersonaSignalDetector._weighted_average(strengths, _EVENT_WEIGHTS)
        if event is None:
            return round(fit or 0.0, 2)
        return round(0.6 * (fit or 0.0) + 0.4 * event, 2)

    async def detect_and_store(
        self,
        session: AsyncSession,
        contact: Any,
        history: List[EmploymentRecord],
        persona: PersonaFilter,
        persona_id: Optional[int] = None,
        today: Optional[date] = None,
    ) -> List[PersonaSignal]:
        """Replace the contact's stored persona signals with a fresh detection run."""
        signals = self.detect(contact.title, contact.seniority, history, persona, today)
        signals.extend(await self.detect_llm(contact, history, persona))

        await session.execute(delete(ContactSignalModel).where(ContactSignalModel.contact_id == contact.id))
        now = datetime.utcnow()
        for signal in signals:
            session.add(ContactSignalModel(
                client_id=contact.client_id,
                contact_id=contact.id,
                persona_id=persona_id,
                signal_type=signal.signal_type,
                strength=to_score_decimal(signal.strength),
                source=signal.source,
                evidence=signal.evidence,
                details=signal.details,
                detected_at=now,
            ))
        await session.flush()
        return signals
