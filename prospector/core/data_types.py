"""
Core lightweight data types for the prospecting pipeline.

These are transfer objects (Dataclasses), NOT database models.
For SQLAlchemy ORM models, see prospector/<module>/database.py.

Every optional field uses None for "unknown". Zero and False are real
values and count as populated.
"""
from dataclasses import dataclass, field, fields, asdict
from datetime import date, datetime
from typing import List, Dict, Optional, Any

# Fields that never count towards "populated" and never take part in the
# fill-gaps merge.
NON_DATA_FIELDS = {"external_ids", "sources"}


def is_populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str) and not value.strip():
        return False
    if isinstance(value, (list, tuple, dict, set)) and len(value) == 0:
        return False
    return True


@dataclass
class SourceRecord:
    """Provenance of one contribution to an entity."""
    source: str
    fetched_at: datetime = field(default_factory=datetime.utcnow)
    fields_provided: List[str] = field(default_factory=list)

    def to_json(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "fetched_at": self.fetched_at.isoformat(),
            "fields_provided": list(self.fields_provided),
        }

    @classmethod
    def from_json(cls, raw: Dict[str, Any]) -> "SourceRecord":
        fetched = raw.get("fetched_at")
        if isinstance(fetched, str):
            fetched = datetime.fromisoformat(fetched)
        return cls(
            source=raw.get("source", "unknown"),
            fetched_at=fetched or datetime.utcnow(),
            fields_provided=list(raw.get("fields_provided") or []),
        )


class _Draft:
    """Shared field-presence helpers for entity drafts."""

    def data_fields(self) -> List[str]:
        return [f.name for f in fields(self) if f.name not in NON_DATA_FIELDS]

    def populated_fields(self) -> List[str]:
        return [name for name in self.data_fields() if is_populated(getattr(self, name))]

    def merge_fill_gaps(self, incoming: "_Draft") -> List[str]:
        """
        Copy every field that is unknown here and known in `incoming`.
        Already-populated fields are never overwritten. External ids are
        unioned with existing keys winning. Returns the names of filled fields.
        """
        filled = []
        for name in self.data_fields():
            if is_populated(getattr(self, name)):
                continue
            value = getattr(incoming, name, None)
            if is_populated(value):
                setattr(self, name, value)
                filled.append(name)

        for key, value in (incoming.external_ids or {}).items():
            self.external_ids.setdefault(key, value)
        return filled

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class CompanyDraft(_Draft):
    """Canonical company shape every source adapter normalises into."""
    name: Optional[str] = None
    domain: Optional[str] = None
    linkedin_url: Optional[str] = None
    website_url: Optional[str] = None
    industry: Optional[str] = None
    sub_industry: Optional[str] = None
    employee_count: Optional[int] = None
    employee_range: Optional[str] = None
    annual_revenue: Optional[int] = None
    revenue_range: Optional[str] = None
    founded_year: Optional[int] = None
    total_funding: Optional[int] = None
    latest_funding_stage: Optional[str] = None
    latest_funding_date: Optional[date] = None
    city: Optional[str] = None
    state: Optional[str] = None
    country: Optional[str] = None
    address: Optional[str] = None
    tech_stack: List[str] = field(default_factory=list)
    logo_url: Optional[str] = None
    description: Optional[str] = None
    phone: Optional[str] = None
    external_ids: Dict[str, str] = field(default_factory=dict)
    sources: List[SourceRecord] = field(default_factory=list)

    def missing_core_attributes(self) -> bool:
        return not (
            is_populated(self.industry)
            and is_populated(self.employee_count)
            and is_populated(self.country)
        )


@dataclass
class EmploymentRecord:
    company: Optional[str] = None
    title: Optional[str] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    is_current: bool = False


@dataclass
class ContactDraft(_Draft):
    """Canonical person shape."""
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    full_name: Optional[str] = None
    title: Optional[str] = None
    seniority: Optional[str] = None
    department: Optional[str] = None
    linkedin_url: Optional[str] = None
    work_email: Optional[str] = None
    email_verified: Optional[bool] = None
    phone: Optional[str] = None
    city: Optional[str] = None
    country: Optional[str] = None
    company_name: Optional[str] = None
    company_domain: Optional[str] = None
    employment_history: List[EmploymentRecord] = field(default_factory=list)
    external_ids: Dict[str, str] = field(default_factory=dict)
    sources: List[SourceRecord] = field(default_factory=list)


@dataclass
class CompanySearchParams:
    """Provider-agnostic company search request."""
    industries: List[str] = field(default_factory=list)
    employee_count_min: Optional[int] = None
    employee_count_max: Optional[int] = None
    revenue_min: Optional[int] = None
    revenue_max: Optional[int] = None
    funding_stages: List[str] = field(default_factory=list)
    tech_stack: List[str] = field(default_factory=list)
    countries: List[str] = field(default_factory=list)
    states: List[str] = field(default_factory=list)
    cities: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    query: Optional[str] = None
    limit: int = 25


@dataclass
class PeopleSearchParams:
    domain: Optional[str] = None
    company_name: Optional[str] = None
    titles: List[str] = field(default_factory=list)
    seniorities: List[str] = field(default_factory=list)
    departments: List[str] = field(default_factory=list)
    limit: int = 25


@dataclass
class EnrichHints:
    """Identity hints for an enrichment call. At least one should be set."""
    domain: Optional[str] = None
    name: Optional[str] = None
    linkedin_url: Optional[str] = None


@dataclass
class ScoreResult:
    score: float
    reasons: List[str] = field(default_factory=list)
    breakdown: Dict[str, float] = field(default_factory=dict)


@dataclass
class SearchHints:
    """Precomputed query material for sources (semantic query, extra keyword terms)."""
    semantic_query: Optional[str] = None
    keyword_search_terms: List[str] = field(default_factory=list)


@dataclass
class TargetFilters:
    """A client's ideal-customer filter set. Every list or bound is optional."""
    industries: List[str] = field(default_factory=list)
    exclude_industries: List[str] = field(default_factory=list)
    employee_count_min: Optional[int] = None
    employee_count_max: Optional[int] = None
    revenue_min: Optional[int] = None
    revenue_max: Optional[int] = None
    funding_stages: List[str] = field(default_factory=list)
    founded_after: Optional[int] = None
    founded_before: Optional[int] = None
    countries: List[str] = field(default_factory=list)
    states: List[str] = field(default_factory=list)
    cities: List[str] = field(default_factory=list)
    exclude_countries: List[str] = field(default_factory=list)
    tech_stack: List[str] = field(default_factory=list)
    keywords: List[str] = field(default_factory=list)
    exclude_domains: List[str] = field(default_factory=list)
    exclude_company_ids: List[int] = field(default_factory=list)
    hints: SearchHints = field(default_factory=SearchHints)

    @classmethod
    def from_dict(cls, raw: Optional[Dict[str, Any]]) -> "TargetFilters":
        raw = dict(raw or {})
        hints = raw.pop("hints", None) or {}
        known = {f.name for f in fields(cls)}
        filters = cls(**{k: v for k, v in raw.items() if k in known and v is not None})
        filters.hints = hints if isinstance(hints, SearchHints) else SearchHints(
            semantic_query=hints.get("semantic_query"),
            keyword_search_terms=list(hints.get("keyword_search_terms") or []),
        )
        return filters

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class PersonaFilter:
    """Title / seniority / department patterns selecting contacts. `*` is a wildcard in titles."""
    title_patterns: List[str] = field(default_factory=list)
    exclude_title_patterns: List[str] = field(default_factory=list)
    seniority_levels: List[str] = field(default_factory=list)
    departments: List[str] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not (self.title_patterns or self.seniority_levels or self.departments)
