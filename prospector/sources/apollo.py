"""
Apollo.io adapter: company search/enrich and people search.
"""
import logging
from typing import Any, Dict, List, Optional

from prospector.core.data_types import (
    CompanyDraft,
    CompanySearchParams,
    ContactDraft,
    EmploymentRecord,
    EnrichHints,
    PeopleSearchParams,
)
from prospector.core.models import Capability
from prospector.core.utils import normalize_domain, parse_date
from prospector.sources.base import BaseSource

logger = logging.getLogger(__name__)

SENIORITY_MAP = {
    "c_suite": "c_suite",
    "owner": "c_suite",
    "founder": "c_suite",
    "partner": "c_suite",
    "vp": "vp",
    "vice_president": "vp",
    "director": "director",
    "manager": "manager",
    "senior": "senior",
    "entry": "entry",
    "intern": "entry",
}


def normalize_seniority(raw: Optional[str]) -> Optional[str]:
    if not raw:
        return None
    key = raw.strip().lower()
    return SENIORITY_MAP.get(key, key)


def map_organization(raw: Dict[str, Any]) -> CompanyDraft:
    domain = raw.get("primary_domain") or normalize_domain(raw.get("website_url"))
    return CompanyDraft(
        name=raw.get("name"),
        domain=normalize_domain(domain),
        linkedin_url=raw.get("linkedin_url"),
        website_url=raw.get("website_url"),
        industry=raw.get("industry"),
        sub_industry=raw.get("sub_industry"),
        employee_count=raw.get("estimated_num_employees"),
        employee_range=raw.get("employee_range"),
        annual_revenue=raw.get("annual_revenue"),
        founded_year=raw.get("founded_year"),
        total_funding=raw.get("total_funding"),
        latest_funding_stage=raw.get("latest_funding_stage"),
        latest_funding_date=parse_date(raw.get("latest_funding_round_date")),
        city=raw.get("city"),
        state=raw.get("state"),
        country=raw.get("country"),
        address=raw.get("street_address") or raw.get("raw_address"),
        tech_stack=list(raw.get("technology_names") or []),
        logo_url=raw.get("logo_url"),
        description=raw.get("short_description"),
        phone=(raw.get("primary_phone") or {}).get("number") or raw.get("phone"),
        external_ids={"apollo": raw["id"]} if raw.get("id") else {},
    )


def map_person(raw: Dict[str, Any]) -> ContactDraft:
    organization = raw.get("organization") or {}
    history = [
        EmploymentRecord(
            company=eh.get("organization_name"),
            title=eh.get("title"),
            start_date=parse_date(eh.get("start_date")),
            end_date=parse_date(eh.get("end_date")),
            is_current=bool(eh.get("current")),
        )
        for eh in raw.get("employment_history") or []
    ]
    departments = raw.get("departments") or []
    return ContactDraft(
        first_name=raw.get("first_name"),
        last_name=raw.get("last_name"),
        full_name=raw.get("name"),
        title=raw.get("title"),
        seniority=normalize_seniority(raw.get("seniority")),
        department=departments[0] if departments else None,
        linkedin_url=raw.get("linkedin_url"),
        # Apollo returns guessed addresses too; only verified ones are kept
        work_email=raw.get("email") if raw.get("email_status") == "verified" else None,
        email_verified=True if raw.get("email_status") == "verified" else None,
        city=raw.get("city"),
        country=raw.get("country"),
        company_name=organization.get("name"),
        company_domain=normalize_domain(organization.get("primary_domain")),
        employment_history=history,
        external_ids={"apollo": raw["id"]} if raw.get("id") else {},
    )


class ApolloSource(BaseSource):
    name = "apollo"
    display_name = "Apollo.io"
    base_url = "https://api.apollo.io/api/v1"
    priority = 1
    capabilities = frozenset({
        Capability.COMPANY_SEARCH,
        Capability.COMPANY_ENRICH,
        Capability.PEOPLE_SEARCH,
    })
    costs = {
        Capability.COMPANY_SEARCH: 0.0,
        Capability.COMPANY_ENRICH: 1.0,
        Capability.PEOPLE_SEARCH: 0.0,
    }
    per_second = 5
    per_minute = 100
    search_quality = 0.5

    async def _search_companies(self, params: CompanySearchParams) -> List[CompanyDraft]:
        body: Dict[str, Any] = {"per_page": min(params.limit, 100), "page": 1}
        if params.industries:
            body["organization_industries"] = params.industries
        if params.employee_count_min is not None or params.employee_count_max is not None:
            body["organization_num_employees_ranges"] = [
                f"{params.employee_count_min or 1},{params.employee_count_max or 1000000}"
            ]
        locations = params.countries + params.states + params.cities
        if locations:
            body["organization_locations"] = locations
        if params.keywords:
            body["q_organization_keyword_tags"] = params.keywords
        if params.tech_stack:
            body["currently_using_any_of_technology_uids"] = [t.lower().replace(" ", "_") for t in params.tech_stack]
        if params.revenue_min is not None or params.revenue_max is not None:
            body["revenue_range"] = {"min": params.revenue_min, "max": params.revenue_max}

        raw = await self._request("post", "/mixed_companies/search", json_body=body)
        organizations = raw.get("organizations") or raw.get("accounts") or []
        return [map_organization(o) for o in organizations]

    async def _enrich_company(self, hints: EnrichHints) -> Optional[CompanyDraft]:
        if not hints.domain:
            return None
        raw = await self._request("get", "/organizations/enrich", params={"domain": hints.domain})
        organization = raw.get("organization")
        if not organization:
            return None
        return map_organization(organization)

    async def _search_people(self, params: PeopleSearchParams) -> List[ContactDraft]:
        body: Dict[str, Any] = {"per_page": min(params.limit, 100), "page": 1}
        if params.titles:
            body["person_titles"] = [t.replace("*", "").strip() for t in params.titles]
        if params.seniorities:
            body["person_seniorities"] = params.seniorities
        if params.departments:
            body["person_departments"] = params.departments
        if params.domain:
            body["q_organization_domains"] = params.domain

        raw = await self._request("post", "/mixed_people/search", json_body=body)
        return [map_person(p) for p in raw.get("people") or []]
