"""
Noise filters applied to discovered companies.

Sources regularly return things that are not companies: social profiles,
link aggregators, "Top 10 ..." listicles, associations and job boards.
Each check returns (keep, reason) so callers can log why a candidate
was dropped.
"""
import logging
import re
from functools import lru_cache
from typing import Any, FrozenSet, Iterable, List, Optional, Tuple

from prospector.core.data_types import TargetFilters
from prospector.core.policy import policy
from prospector.core.utils import is_country_suffix, normalize_domain, parent_domain

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 100
MAX_NAME_WORDS = 10


@lru_cache(maxsize=8)
def _blocked_index(blocked: Tuple[str, ...]) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    hosts = frozenset(d for d in (normalize_domain(b) for b in blocked) if d)
    parents = frozenset(p for p in (parent_domain(h) for h in hosts) if p)
    return hosts, parents


@lru_cache(maxsize=8)
def _compiled(patterns: Tuple[str, ...]) -> List[re.Pattern]:
    return [re.compile(p, re.IGNORECASE) for p in patterns]


def is_blocked_domain(domain: Optional[str], blocked: Optional[Iterable[str]] = None) -> bool:
    """
    True for non-company platforms. Matches exactly, as a subdomain
    ("m.linkedin.com") or by parent name under a country suffix ("linkedin.co.uk",
    "facebook.de"). Generic TLDs sharing the name ("x.ai", "angel.com") pass.
    """
    host = normalize_domain(domain)
    if not host:
        return False
    hosts, parents = _blocked_index(tuple(blocked if blocked is not None else policy.discovery.blocked_domains))
    if host in hosts:
        return True
    if any(host.endswith("." + b) for b in hosts):
        return True
    return is_country_suffix(host) and parent_domain(host) in parents


def is_blocked_company_name(name: Optional[str], blocked: Optional[Iterable[str]] = None) -> bool:
    """A result named after a blocked platform ("LinkedIn", "Facebook")."""
    if not name:
        return False
    _, parents = _blocked_index(tuple(blocked if blocked is not None else policy.discovery.blocked_domains))
    squashed = re.sub(r"[^a-z0-9]", "", name.lower())
    return squashed in parents


def is_non_company_name(name: Optional[str], patterns: Optional[Iterable[str]] = None) -> bool:
    """Lists, directories, award pages, associations, job boards."""
    if not name:
        return False
    compiled = _compiled(tuple(patterns if patterns is not None else policy.discovery.non_company_patterns))
    return any(p.search(name) for p in compiled)


def is_plausible_company_name(name: Optional[str]) -> bool:
    if not name:
        return False
    s = name.strip()
    if len(s) < 2 or len(s) > MAX_NAME_LENGTH:
        return False
    if not re.search(r"[A-Za-z]", s):
        return False
    if s.lower().startswith(("http://", "https://", "www.")):
        return False
    if "|" in s or len(s.split()) > MAX_NAME_WORDS:
        return False
    return True


def check_company_name(name: Optional[str]) -> Tuple[bool, str]:
    if not is_plausible_company_name(name):
        return False, f"implausible name {name!r}"
    if is_blocked_company_name(name):
        return False, f"platform name {name!r}"
    if is_non_company_name(name):
        return False, f"non-company name {name!r}"
    return True, ""


def apply_exclusions(company: Any, filters: TargetFilters) -> Tuple[bool, str]:
    """Target profile exclusions: domains, industries (substring) and countries."""
    domain = normalize_domain(company.domain)
    if domain and filters.exclude_domains:
        for excluded in filters.exclude_domains:
            ex = normalize_domain(excluded)
            if ex and (domain == ex or domain.endswith("." + ex)):
                return False, f"excluded domain {domain}"

    industry = (company.industry or "").lower()
    if industry:
        for excluded in filters.exclude_industries:
            if excluded and excluded.lower() in industry:
                return False, f"excluded industry {company.industry}"

    country = (company.country or "").lower()
    if country and country in {c.lower() for c in filters.exclude_countries}:
        return False, f"excluded country {company.country}"

    company_id = getattr(company, "id", None)
    if company_id is not None and company_id in set(filters.exclude_company_ids):
        return False, f"excluded company id {company_id}"

    return True, ""
