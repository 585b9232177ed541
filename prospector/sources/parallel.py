"""
Parallel.ai adapter: deep company research through asynchronous task runs.

Parallel does not answer inline. A task run is created, polled until it
finishes, and then its structured output is fetched. Callers only see a
normal enrichment call that takes longer.
"""
import asyncio
import logging
import time
from typing import Any, Dict, Optional

from prospector.core.ai_client import parse_json_lenient
from prospector.core.data_types import CompanyDraft, EnrichHints
from prospector.core.errors import SourceUnavailableError
from prospector.core.models import Capability
from prospector.core.utils import normalize_domain
from prospector.sources.base import BaseSource

logger = logging.getLogger(__name__)

POLL_TIMEOUT_SECONDS = 120
POLL_INTERVAL_SECONDS = 3.0

COMPANY_OUTPUT_SCHEMA = {
    "type": "json",
    "json_schema": {
        "type": "object",
        "properties": {
            "name": {"type": "string"},
            "domain": {"type": "string"},
            "linkedin_url": {"type": "string"},
            "website_url": {"type": "string"},
            "industry": {"type": "string"},
            "sub_industry": {"type": "string"},
            "employee_count": {"type": "integer"},
            "employee_range": {"type": "string"},
            "annual_revenue": {"type": "integer"},
            "founded_year": {"type": "integer"},
            "total_funding": {"type": "integer"},
            "latest_funding_stage": {"type": "string"},
            "city": {"type": "string"},
            "state": {"type": "string"},
            "country": {"type": "string"},
            "description": {"type": "string"},
            "tech_stack": {"type": "array", "items": {"type": "string"}},
            "phone": {"type": "string"},
        },
    },
}


def map_company(raw: Dict[str, Any]) -> CompanyDraft:
    description = raw.get("description")
    return CompanyDraft(
        name=raw.get("name"),
        domain=normalize_domain(raw.get("domain")),
        linkedin_url=raw.get("linkedin_url"),
        website_url=raw.get("website_url"),
        industry=raw.get("industry"),
        sub_industry=raw.get("sub_industry"),
        employee_count=raw.get("employee_count"),
        employee_range=raw.get("employee_range"),
        annual_revenue=raw.get("annual_revenue"),
        founded_year=raw.get("founded_year"),
        total_funding=raw.get("total_funding"),
        latest_funding_stage=raw.get("latest_funding_stage"),
        city=raw.get("city"),
        state=raw.get("state"),
        country=raw.get("country"),
        description=description[:1000] if description else None,
        tech_stack=list(raw.get("tech_stack") or []),
        phone=raw.get("phone"),
    )


class ParallelSource(BaseSource):
    name = "parallel"
    display_name = "Parallel.ai"
    base_url = "https://api.parallel.ai"
    priority = 7
    capabilities = frozenset({Capability.COMPANY_ENRICH})
    costs = {Capability.COMPANY_ENRICH: 1.0}
    per_second = 30
    per_minute = 2000

    poll_interval = POLL_INTERVAL_SECONDS
    poll_timeout = POLL_TIMEOUT_SECONDS

    async def _enrich_company(self, hints: EnrichHints) -> Optional[CompanyDraft]:
        if hints.domain:
            task_input = f"Research the company with domain {hints.domain}. Find all available business information."
        elif hints.name:
            task_input = f'Research the company named "{hints.name}". Find all available business information.'
        else:
            return None

        output = await self._run_task(task_input)
        company = map_company(output)
        if hints.domain:
            company.domain = hints.domain
        return company

    async def _run_task(self, task_input: str) -> Dict[str, Any]:
        created = await self._request("post", "/v1/tasks/runs", json_body={
            "processor": "pro",
            "input": task_input,
            "task_spec": {"output_schema": COMPANY_OUTPUT_SCHEMA},
        })
        run_id = created["run_id"]
        status = created.get("status")

        deadline = time.monotonic() + self.poll_timeout
        while status not in ("completed", "failed", "cancelled"):
            if time.monotonic() > deadline:
                raise SourceUnavailableError(self.name, f"task run {run_id} timed out")
            await asyncio.sleep(self.poll_interval)
            polled = await self._request("get", f"/v1/tasks/runs/{run_id}")
            status = polled.get("status")
            if status == "failed":
                message = (polled.get("error") or {}).get("message", "unknown error")
                raise SourceUnavailableError(self.name, f"task failed: {message}")

        if status == "cancelled":
            raise SourceUnavailableError(self.name, f"task run {run_id} was cancelled")

        result = await self._request("get", f"/v1/tasks/runs/{run_id}/result")
        content = result["output"]["content"]
        if isinstance(content, str):
            content = parse_json_lenient(content) or {}
        return content
