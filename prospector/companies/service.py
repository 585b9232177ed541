"""
Company and contact persistence.

Public interface used by discovery and funnel building:
  - upsert_companies / upsert_company: dedup by (client, lower-cased domain)
  - draft_from_model: ORM row -> CompanyDraft for scoring
  - list_client_companies / get_companies_by_domains
  - upsert_contacts
"""
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Callable, Dict, Iterable, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from prospector.core.data_types import (
    NON_DATA_FIELDS,
    CompanyDraft,
    ContactDraft,
    EmploymentRecord,
    SourceRecord,
    is_populated,
)
from prospector.core.database import insert_ignore
from prospector.core.models import PipelineStage
from prospector.core.utils import normalize_domain, parse_date
from prospector.companies.database import CompanyModel, ContactModel

logger = logging.getLogger(__name__)

COMPANY_FIELDS = [n for n in CompanyDraft.__dataclass_fields__ if n not in NON_DATA_FIELDS]
CONTACT_FIELDS = [
    n for n in ContactDraft.__dataclass_fields__
    if n not in NON_DATA_FIELDS and n not in ("company_name", "company_domain", "employment_history")
]


@dataclass
class UpsertSummary:
    created: List[CompanyModel] = field(default_factory=list)
    updated: List[CompanyModel] = field(default_factory=list)

    @property
    def companies(self) -> List[CompanyModel]:
        return self.created + self.updated


# ──── Conversion ────

def merge_source_records(existing: Iterable[dict], incoming: Iterable[SourceRecord]) -> List[dict]:
    """Union provenance by source name; the newest fetch wins, provided fields are unioned."""
    merged: Dict[str, SourceRecord] = {}
    for raw in existing or []:
        record = SourceRecord.from_json(raw)
        merged[record.source] = record
    for record in incoming:
        current = merged.get(record.source)
        if current is None:
            merged[record.source] = SourceRecord(record.source, record.fetched_at, list(record.fields_provided))
            continue
        current.fields_provided = sorted(set(current.fields_provided) | set(record.fields_provided))
        current.fetched_at = max(current.fetched_at, record.fetched_at)
    return [r.to_json() for r in merged.values()]


def _company_values(draft: CompanyDraft) -> Dict:
    """Only the populated fields of a draft. Unknown fields are never written."""
    values = {}
    for name in COMPANY_FIELDS:
        value = getattr(draft, name)
        if is_populated(value):
            values[name] = value
    if "domain" in values:
        values["domain"] = normalize_domain(values["domain"])
    if "tech_stack" in values:
        values["tech_stack"] = list(values["tech_stack"])
    return values


def draft_from_model(company: CompanyModel) -> CompanyDraft:
    draft = CompanyDraft(**{name: getattr(company, name) for name in COMPANY_FIELDS})
    draft.tech_stack = list(company.tech_stack or [])
    draft.external_ids = dict(company.external_ids or {})
    draft.sources = [SourceRecord.from_json(r) for r in company.sources or []]
    return draft


def _history_json(history: List[EmploymentRecord]) -> List[dict]:
    def _iso(d: Optional[date]) -> Optional[str]:
        return d.isoformat() if d else None

    return [
        {
            "company": h.company,
            "title": h.title,
            "start_date": _iso(h.start_date),
            "end_date": _iso(h.end_date),
            "is_current": h.is_current,
        }
        for h in history
    ]


def history_from_json(raw: Optional[List[dict]]) -> List[EmploymentRecord]:
    return [
        EmploymentRecord(
            company=h.get("company"),
            title=h.get("title"),
            start_date=parse_date(h.get("start_date")),
            end_date=parse_date(h.get("end_date")),
            is_current=bool(h.get("is_current")),
        )
        for h in raw or []
    ]


# ──── Queries ────

async def get_company_by_domain(session: AsyncSession, client_id: int, domain: str) -> Optional[CompanyModel]:
    result = await session.execute(
        select(CompanyModel).where(
            CompanyModel.client_id == client_id,
            CompanyModel.domain == normalize_domain(domain),
        )
    )
    return result.scalars().first()


async def get_companies_by_domains(
    session: AsyncSession, client_id: int, domains: Iterable[str]
) -> Dict[str, CompanyModel]:
    normalized = sorted({d for d in (normalize_domain(x) for x in domains) if d})
    if not normalized:
        return {}
    result = await session.execute(
        select(CompanyModel).where(CompanyModel.client_id == client_id, CompanyModel.domain.in_(normalized))
    )
    return {c.domain: c for c in result.scalars().all()}


async def list_client_companies(
    session: AsyncSession, client_id: int, limit: Optional[int] = None
) -> List[CompanyModel]:
    stmt = select(CompanyModel).where(CompanyModel.client_id == client_id).order_by(CompanyModel.id)
    if limit:
        stmt = stmt.limit(limit)
    result = await session.execute(stmt)
    return list(result.scalars().all())


# ──── Upserts ────

def _apply_update(company: CompanyModel, values: Dict, draft: CompanyDraft) -> List[str]:
    """Overwrite only fields present in the incoming payload; never null anything out."""
    changed = []
    for name, value in values.items():
        if name == "domain":
            continue
        if name == "enrichment_cost":
            company.enrichment_cost = (company.enrichment_cost or 0.0) + value
            continue
        if getattr(company, name) != value:
            setattr(company, name, value)
            changed.append(name)

    if draft.external_ids:
        company.external_ids = {**(company.external_ids or {}), **draft.external_ids}
    if draft.sources:
        company.sources = merge_source_records(company.sources, draft.sources)
        if not company.primary_source:
            company.primary_source = draft.sources[0].source
    company.updated_at = datetime.utcnow()
    return changed


def _insert_values(client_id: int, values: Dict, draft: CompanyDraft) -> Dict:
    now = datetime.utcnow()
    row = dict(values)
    row.setdefault("enrichment_cost", 0.0)
    row.setdefault("name", values.get("domain") or "Unknown")
    row.update(
        client_id=client_id,
        external_ids=dict(draft.external_ids or {}),
        sources=merge_source_records([], draft.sources),
        primary_source=draft.sources[0].source if draft.sources else None,
        pipeline_stage=PipelineStage.TAM,
        created_at=now,
        updated_at=now,
    )
    return row


async def upsert_company(
    session: AsyncSession, client_id: int, draft: CompanyDraft, cost: float = 0.0
) -> Tuple[CompanyModel, bool]:
    """
    Insert a new company or update the existing row for its domain.
    Returns (row, created). Concurrent inserts of the same domain collapse
    onto one row through the unique (client_id, domain) index.
    """
    values = _company_values(draft)
    values["enrichment_cost"] = cost
    domain = values.get("domain")

    if not domain:
        company = CompanyModel(**_insert_values(client_id, values, draft))
        session.add(company)
        await session.flush()
        return company, True

    existing = await get_company_by_domain(session, client_id, domain)
    if existing is None:
        inserted = await insert_ignore(session, CompanyModel, [_insert_values(client_id, values, draft)])
        existing = await get_company_by_domain(session, client_id, domain)
        if inserted:
            return existing, True
        logger.debug(f"Concurrent insert for {domain}; updating instead")

    _apply_update(existing, values, draft)
    await session.flush()
    return existing, False


async def upsert_companies(
    session: AsyncSession,
    client_id: int,
    drafts: Iterable[CompanyDraft],
    on_progress: Optional[Callable[[int], object]] = None,
) -> UpsertSummary:
    summary = UpsertSummary()
    for i, draft in enumerate(drafts, 1):
        company, created = await upsert_company(session, client_id, draft)
        (summary.created if created else summary.updated).append(company)
        if on_progress is not None:
            await on_progress(i)
    return summary


async def upsert_contacts(
    session: AsyncSession, company: CompanyModel, contacts: Iterable[ContactDraft]
) -> List[ContactModel]:
    """Store people found under a company; matched on LinkedIn URL, then work email."""
    existing_result = await session.execute(select(ContactModel).where(ContactModel.company_id == company.id))
    existing = list(existing_result.scalars().all())
    by_linkedin = {c.linkedin_url: c for c in existing if c.linkedin_url}
    by_email = {c.work_email.lower(): c for c in existing if c.work_email}

    stored = []
    for draft in contacts:
        row = by_linkedin.get(draft.linkedin_url) if draft.linkedin_url else None
        if row is None and draft.work_email:
            row = by_email.get(draft.work_email.lower())

        values = {n: getattr(draft, n) for n in CONTACT_FIELDS if is_populated(getattr(draft, n))}
        if row is None:
            row = ContactModel(
                client_id=company.client_id,
                company_id=company.id,
                employment_history=_history_json(draft.employment_history),
                external_ids=dict(draft.external_ids or {}),
                sources=merge_source_records([], draft.sources),
                **values,
            )
            session.add(row)
            if row.linkedin_url:
                by_linkedin[row.linkedin_url] = row
            if row.work_email:
                by_email[row.work_email.lower()] = row
        else:
            for name, value in values.items():
                setattr(row, name, value)
            if draft.employment_history:
                row.employment_history = _history_json(draft.employment_history)
            row.sources = merge_source_records(row.sources, draft.sources)
        stored.append(row)

    await session.flush()
    return stored
