"""
Base class for every external data source.

A source declares its capabilities, advertised cost per capability and rate
limits, and returns data already normalised to CompanyDraft / ContactDraft.
Provider quirks (auth headers, pagination, polling) stay inside the
subclass; the orchestrator only sees `call(op, params)`.
"""
import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, List, Optional

import aiohttp

from prospector.core.config import settings
from prospector.core.data_types import (
    CompanyDraft,
    CompanySearchParams,
    ContactDraft,
    EnrichHints,
    PeopleSearchParams,
    SourceRecord,
)
from prospector.core.errors import RateLimitedError, SourceUnavailableError
from prospector.core.models import Capability
from prospector.core.retry import with_retry
from prospector.sources.rate_limiter import SourceRateLimiter

logger = logging.getLogger(__name__)

# Enrich quality = populated fields / this, capped at 1
ENRICH_QUALITY_FIELDS = 15


@dataclass
class EmailLookup:
    first_name: str
    last_name: str
    domain: str


@dataclass
class SourceResponse:
    """Outcome of one successful source call."""
    source: str
    capability: Capability
    data: Any = None
    credits_consumed: float = 0.0
    fields_populated: List[str] = field(default_factory=list)
    quality_score: float = 0.0
    response_time_ms: int = 0

    @property
    def has_data(self) -> bool:
        if self.data is None:
            return False
        if isinstance(self.data, list):
            return len(self.data) > 0
        return True


class BaseSource:
    """
    Abstract data source.

    Subclasses set `name`, `base_url`, `capabilities`, `costs`, the rate
    limits and implement the `_capability` coroutines they support.
    """
    name: str = "base"
    display_name: str = "Base"
    base_url: str = ""
    priority: int = 100
    capabilities: FrozenSet[Capability] = frozenset()
    costs: Dict[Capability, float] = {}
    per_second: Optional[int] = None
    per_minute: Optional[int] = None
    search_quality: float = 0.5

    def __init__(
        self,
        api_key: str,
        priority: Optional[int] = None,
        rate_limiter: Optional[SourceRateLimiter] = None,
        request_timeout: Optional[float] = None,
    ):
        self.api_key = api_key
        if priority is not None:
            self.priority = priority
        self.rate_limiter = rate_limiter or SourceRateLimiter(
            self.name,
            per_second=self.per_second,
            per_minute=self.per_minute,
            wait_timeout=settings.source_wait_timeout_seconds,
        )
        self.request_timeout = request_timeout or settings.source_request_timeout

    def __repr__(self):
        return f"<Source(name='{self.name}', priority={self.priority})>"

    # ──── Capability surface ────

    def supports(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def cost_of(self, capability: Capability) -> float:
        return self.costs.get(capability, 0.0)

    def is_rate_limited(self) -> bool:
        return self.rate_limiter.is_exhausted()

    async def call(self, capability: Capability, params: Any) -> SourceResponse:
        """
        Run one capability and wrap the normalised result.
        Raises SourceError subclasses on any failure.
        """
        if not self.supports(capability):
            raise SourceUnavailableError(self.name, f"does not support {capability.value}")

        handlers = {
            Capability.COMPANY_SEARCH: self._search_companies,
            Capability.COMPANY_ENRICH: self._enrich_company,
            Capability.PEOPLE_SEARCH: self._search_people,
            Capability.EMAIL_FIND: self._find_email,
            Capability.EMAIL_VERIFY: self._verify_email,
        }
        handler = handlers.get(capability)
        if handler is None:
            raise SourceUnavailableError(self.name, f"{capability.value} is not implemented")

        started = time.perf_counter()
        try:
            data = await handler(params)
        except (AttributeError, KeyError, TypeError, ValueError, aiohttp.ContentTypeError) as e:
            raise SourceUnavailableError(self.name, f"malformed response: {e}") from e
        elapsed_ms = int((time.perf_counter() - started) * 1000)

        return self._build_response(capability, data, elapsed_ms)

    def _build_response(self, capability: Capability, data: Any, elapsed_ms: int) -> SourceResponse:
        response = SourceResponse(source=self.name, capability=capability, data=data, response_time_ms=elapsed_ms)

        if isinstance(data, (CompanyDraft, ContactDraft)):
            populated = data.populated_fields()
            data.sources.append(SourceRecord(source=self.name, fields_provided=populated))
            response.fields_populated = populated
            response.quality_score = min(len(populated) / ENRICH_QUALITY_FIELDS, 1.0)
        elif isinstance(data, list):
            for item in data:
                item.sources.append(SourceRecord(source=self.name, fields_provided=item.populated_fields()))
            response.fields_populated = sorted({f for item in data for f in item.populated_fields()})
            response.quality_score = self.search_quality if data else 0.0
        elif data is not None:
            response.fields_populated = [capability.value]
            response.quality_score = 1.0

        response.credits_consumed = self.cost_of(capability) if response.has_data else 0.0
        return response

    # ──── Capability implementations (override) ────

    async def _search_companies(self, params: CompanySearchParams) -> List[CompanyDraft]:
        raise NotImplementedError

    async def _enrich_company(self, hints: EnrichHints) -> Optional[CompanyDraft]:
        raise NotImplementedError

    async def _search_people(self, params: PeopleSearchParams) -> List[ContactDraft]:
        raise NotImplementedError

    async def _find_email(self, lookup: EmailLookup) -> Optional[str]:
        raise NotImplementedError

    async def _verify_email(self, email: str) -> Optional[bool]:
        raise NotImplementedError

    # ──── HTTP ────

    def _auth_headers(self) -> Dict[str, str]:
        return {"x-api-key": self.api_key, "Content-Type": "application/json"}

    async def _request(
        self,
        method: str,
        path: str,
        json_body: Optional[Dict[str, Any]] = None,
        params: Optional[Dict[str, Any]] = None,
        retries: int = 2,
    ) -> Dict[str, Any]:
        """One rate-limited HTTP request with retry on transient failures."""
        url = f"{self.base_url}{path}"

        async def _once() -> Dict[str, Any]:
            await self.rate_limiter.acquire()
            timeout = aiohttp.ClientTimeout(total=self.request_timeout)
            try:
                async with aiohttp.ClientSession(timeout=timeout) as session:
                    async with session.request(
                        method.upper(), url, headers=self._auth_headers(), json=json_body, params=params
                    ) as response:
                        if response.status == 429:
                            retry_after = float(response.headers.get("Retry-After", 0) or 0)
                            raise RateLimitedError(self.name, retry_after=retry_after)
                        if response.status >= 400:
                            error_text = await response.text()
                            logger.error(f"{self.display_name} API Error {response.status}: {error_text[:300]}")
                            raise SourceUnavailableError(
                                self.name, f"HTTP {response.status}", status_code=response.status
                            )
                        return await response.json(content_type=None)
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise SourceUnavailableError(self.name, f"network error: {e}") from e

        return await with_retry(_once, retries=retries, label=f"{self.name} {method.upper()} {path}")
