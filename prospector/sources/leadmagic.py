"""
LeadMagic adapter: company enrichment and email finding.
"""
from typing import Any, Dict, Optional

from prospector.core.data_types import CompanyDraft, EnrichHints
from prospector.core.models import Capability
from prospector.core.utils import normalize_domain
from prospector.sources.base import BaseSource, EmailLookup

# Emails below this confidence (0-100) are treated as not found
MIN_EMAIL_CONFIDENCE = 70


def map_company(raw: Dict[str, Any]) -> CompanyDraft:
    return CompanyDraft(
        name=raw.get("company_name"),
        domain=normalize_domain(raw.get("domain")),
        linkedin_url=raw.get("linkedin_url"),
        website_url=raw.get("website"),
        industry=raw.get("industry"),
        employee_count=raw.get("employee_count"),
        employee_range=raw.get("employee_range"),
        annual_revenue=raw.get("revenue"),
        revenue_range=raw.get("revenue_range"),
        founded_year=raw.get("founded_year"),
        total_funding=raw.get("total_funding"),
        latest_funding_stage=raw.get("funding_stage"),
        city=raw.get("city"),
        state=raw.get("state"),
        country=raw.get("country"),
        address=raw.get("address"),
        description=raw.get("description"),
        phone=raw.get("phone"),
        logo_url=raw.get("logo_url"),
        tech_stack=list(raw.get("technologies") or []),
    )


class LeadMagicSource(BaseSource):
    name = "leadmagic"
    display_name = "LeadMagic"
    base_url = "https://api.leadmagic.io"
    priority = 2
    capabilities = frozenset({Capability.COMPANY_ENRICH, Capability.EMAIL_FIND})
    costs = {
        Capability.COMPANY_ENRICH: 1.0,
        Capability.EMAIL_FIND: 1.0,
    }
    per_minute = 60

    def _auth_headers(self) -> Dict[str, str]:
        return {"X-API-Key": self.api_key, "Content-Type": "application/json"}

    async def _enrich_company(self, hints: EnrichHints) -> Optional[CompanyDraft]:
        body = {}
        if hints.domain:
            body["domain"] = hints.domain
        if hints.name:
            body["company_name"] = hints.name
        if not body:
            return None

        raw = await self._request("post", "/company/enrich", json_body=body)
        if not raw.get("success", True) or not raw.get("data"):
            return None
        return map_company(raw["data"])

    async def _find_email(self, lookup: EmailLookup) -> Optional[str]:
        raw = await self._request("post", "/email/find", json_body={
            "first_name": lookup.first_name,
            "last_name": lookup.last_name,
            "domain": lookup.domain,
        })
        data = raw.get("data") or {}
        if not data.get("email") or (data.get("confidence") or 0) < MIN_EMAIL_CONFIDENCE:
            return None
        return data["email"]
