"""
Exa.ai adapter: semantic company search and page-content enrichment.
"""
from typing import Any, Dict, List, Optional

from prospector.core.data_types import CompanyDraft, CompanySearchParams, EnrichHints
from prospector.core.models import Capability
from prospector.core.utils import clean_company_name, normalize_domain
from prospector.sources.base import BaseSource


def build_search_query(params: CompanySearchParams) -> str:
    """Prefer the precomputed semantic query, else describe the filters in prose."""
    if params.query:
        return params.query

    parts = []
    if params.keywords:
        parts.append(" ".join(params.keywords))
    if params.industries:
        parts.append(f"in {', '.join(params.industries)} industry")
    if params.employee_count_min is not None or params.employee_count_max is not None:
        parts.append(f"with {params.employee_count_min or 1}-{params.employee_count_max or 100000} employees")
    if params.countries:
        parts.append(f"based in {', '.join(params.countries)}")
    return f"Companies {' '.join(parts)}" if parts else "Companies"


def map_result(result: Dict[str, Any]) -> CompanyDraft:
    domain = normalize_domain(result.get("url"))
    name = clean_company_name(result.get("title") or "") or domain
    text = result.get("text") or ""
    return CompanyDraft(
        name=name,
        domain=domain,
        website_url=result.get("url"),
        description=text[:1000] or None,
        external_ids={"exa": result["id"]} if result.get("id") else {},
    )


class ExaSource(BaseSource):
    name = "exa"
    display_name = "Exa.ai"
    base_url = "https://api.exa.ai"
    priority = 4
    capabilities = frozenset({Capability.COMPANY_SEARCH, Capability.COMPANY_ENRICH})
    costs = {
        Capability.COMPANY_SEARCH: 0.5,
        Capability.COMPANY_ENRICH: 0.3,
    }
    per_second = 10
    per_minute = 600
    search_quality = 0.4

    async def _search_companies(self, params: CompanySearchParams) -> List[CompanyDraft]:
        body = {
            "query": build_search_query(params),
            "numResults": min(params.limit, 100),
            "type": "auto",
            "category": "company",
            "contents": {"text": {"maxCharacters": 1000}},
        }
        raw = await self._request("post", "/search", json_body=body)
        return [map_result(r) for r in raw.get("results") or []]

    async def _enrich_company(self, hints: EnrichHints) -> Optional[CompanyDraft]:
        if not (hints.domain or hints.name):
            return None
        body: Dict[str, Any] = {
            "query": f"Company website: {hints.domain}" if hints.domain else f"Company: {hints.name}",
            "numResults": 1,
            "type": "auto",
            "category": "company",
            "contents": {"text": {"maxCharacters": 2000}},
        }
        if hints.domain:
            body["includeDomains"] = [hints.domain]

        raw = await self._request("post", "/search", json_body=body)
        results = raw.get("results") or []
        if not results:
            return None
        return map_result(results[0])
