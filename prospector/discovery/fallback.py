"""
LLM suggestion fallback.

Used only when every data source came back empty. The model is asked for
real companies it is confident exist; each suggestion becomes a bare
CompanyDraft tagged with the `llm_suggestion` source.
"""
import json
import logging
from typing import List, Optional

from prospector.core.ai_client import LLMClient, parse_json_lenient
from prospector.core.data_types import CompanyDraft, SourceRecord, TargetFilters, is_populated
from prospector.core.policy import FunnelPolicy, policy as default_policy
from prospector.core.utils import normalize_domain

logger = logging.getLogger(__name__)

SUGGESTION_SOURCE = "llm_suggestion"

SUGGESTION_SYSTEM_PROMPT = (
    "You are a B2B market researcher. You never invent companies. "
    "Respond ONLY in valid JSON."
)

SUGGESTION_PROMPT = """Suggest up to {limit} real companies that match this ideal customer profile.

PROFILE:
{profile_json}
{query_line}
STRICT RULES:
- Only include companies you are confident actually exist and are still operating.
- Each company must have its real primary website domain (no social media, directories or news sites).
- If you are not sure about a company, leave it out. An empty list is acceptable.

Return a JSON array:
[{{"name": "...", "domain": "example.com", "industry": "...", "country": "...", "description": "one sentence"}}]"""


def _profile_payload(filters: TargetFilters) -> dict:
    payload = {
        "industries": filters.industries,
        "employee_count_min": filters.employee_count_min,
        "employee_count_max": filters.employee_count_max,
        "revenue_min": filters.revenue_min,
        "revenue_max": filters.revenue_max,
        "funding_stages": filters.funding_stages,
        "countries": filters.countries,
        "tech_stack": filters.tech_stack,
        "keywords": filters.keywords,
        "exclude_industries": filters.exclude_industries,
    }
    return {k: v for k, v in payload.items() if is_populated(v)}


class SuggestionFallback:
    def __init__(self, llm: Optional[LLMClient], funnel_policy: Optional[FunnelPolicy] = None):
        self.llm = llm
        self.policy = funnel_policy or default_policy

    @property
    def available(self) -> bool:
        return self.llm is not None

    async def suggest(self, filters: TargetFilters, limit: int) -> List[CompanyDraft]:
        """Ask for companies matching the profile. Any failure yields an empty list."""
        if self.llm is None:
            return []

        cap = max(1, min(limit, self.policy.discovery.fallback_suggestion_limit))
        query = filters.hints.semantic_query
        prompt = SUGGESTION_PROMPT.format(
            limit=cap,
            profile_json=json.dumps(_profile_payload(filters), indent=2),
            query_line=f"\nSEARCH INTENT: {query}\n" if query else "",
        )
        try:
            raw = await self.llm.complete(
                prompt, system_prompt=SUGGESTION_SYSTEM_PROMPT, temperature=0.2, max_tokens=2000,
                purpose="discovery_fallback",
            )
        except Exception as e:
            logger.warning(f"LLM fallback suggestion call failed: {e}")
            return []

        parsed = parse_json_lenient(raw)
        if isinstance(parsed, dict):
            parsed = parsed.get("companies", [])
        if not isinstance(parsed, list):
            logger.info("LLM fallback returned nothing parseable")
            return []

        suggestions: List[CompanyDraft] = []
        seen = set()
        for item in parsed:
            if not isinstance(item, dict) or not item.get("name"):
                continue
            domain = normalize_domain(item.get("domain"))
            key = domain or item["name"].strip().lower()
            if key in seen:
                continue
            seen.add(key)
            draft = CompanyDraft(
                name=item["name"].strip(),
                domain=domain,
                website_url=f"https://{domain}" if domain else None,
                industry=item.get("industry") or None,
                country=item.get("country") or None,
                description=item.get("description") or None,
            )
            draft.sources.append(SourceRecord(source=SUGGESTION_SOURCE, fields_provided=draft.populated_fields()))
            suggestions.append(draft)
            if len(suggestions) >= cap:
                break

        logger.info(f"LLM fallback suggested {len(suggestions)} companies")
        return suggestions
