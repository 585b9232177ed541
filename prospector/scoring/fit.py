"""
Target-profile fit scoring.

Pure and deterministic: no I/O, no clock, no randomness. Each configured
filter dimension contributes a weighted partial score; unset dimensions
contribute nothing. Works on CompanyDraft or CompanyModel alike.
"""
from typing import Any, List, Optional

from prospector.core.data_types import ScoreResult, TargetFilters

WEIGHTS = {
    "industry": 3.0,
    "employee_count": 2.0,
    "geography": 2.0,
    "revenue": 2.0,
    "tech_stack": 2.0,
    "funding": 1.0,
    "founded_year": 1.0,
    "keywords": 1.0,
}

# Revenue known but outside the range still says something about size
REVENUE_OUT_OF_RANGE_CREDIT = 0.3


def _lower(value: Optional[str]) -> str:
    return (value or "").strip().lower()


def _in_range(value: float, low: Optional[float], high: Optional[float]) -> bool:
    return (low is None or value >= low) and (high is None or value <= high)


class FitScorer:
    """Scores a company against TargetFilters. Stateless; safe to share."""

    weights = WEIGHTS

    def score(self, company: Any, filters: TargetFilters) -> ScoreResult:
        breakdown = {}
        reasons: List[str] = []
        total_weight = 0.0
        total_score = 0.0

        def add(dimension: str, partial: float, reason: Optional[str] = None):
            nonlocal total_weight, total_score
            weight = self.weights[dimension]
            total_weight += weight
            total_score += partial * weight
            breakdown[dimension] = round(partial, 4)
            if reason:
                reasons.append(reason)

        industry = getattr(company, "industry", None)
        if filters.industries:
            match = next((i for i in filters.industries if i and _lower(i) in _lower(industry)), None)
            add("industry", 1.0 if match else 0.0, f"Industry match: {industry}" if match else None)

        if filters.employee_count_min is not None or filters.employee_count_max is not None:
            count = getattr(company, "employee_count", None)
            if count is None:
                add("employee_count", 0.0)
            else:
                in_range = _in_range(count, filters.employee_count_min, filters.employee_count_max)
                add("employee_count", 1.0 if in_range else 0.0,
                    f"Employee count {count} in range" if in_range else None)

        if filters.countries:
            country = getattr(company, "country", None)
            wanted = {c.strip().upper() for c in filters.countries}
            match = bool(country) and country.strip().upper() in wanted
            add("geography", 1.0 if match else 0.0, f"Country match: {country}" if match else None)

        if filters.revenue_min is not None or filters.revenue_max is not None:
            revenue = getattr(company, "annual_revenue", None)
            if revenue is None:
                add("revenue", 0.0)
            else:
                in_range = _in_range(revenue, filters.revenue_min, filters.revenue_max)
                add("revenue", 1.0 if in_range else REVENUE_OUT_OF_RANGE_CREDIT,
                    f"Revenue ${revenue:,} in range" if in_range else None)

        company_tech = [t for t in (getattr(company, "tech_stack", None) or []) if t]
        if filters.tech_stack and company_tech:
            lowered = [_lower(t) for t in company_tech]
            matched = [t for t in filters.tech_stack if any(_lower(t) in ct for ct in lowered)]
            add("tech_stack", len(matched) / len(filters.tech_stack),
                f"Tech match: {len(matched)}/{len(filters.tech_stack)}" if matched else None)

        if filters.funding_stages:
            stage = getattr(company, "latest_funding_stage", None)
            match = any(f and _lower(f) in _lower(stage) for f in filters.funding_stages)
            add("funding", 1.0 if match else 0.0, f"Funding stage match: {stage}" if match else None)

        if filters.founded_after is not None or filters.founded_before is not None:
            year = getattr(company, "founded_year", None)
            if year is None:
                add("founded_year", 0.0)
            else:
                in_range = _in_range(year, filters.founded_after, filters.founded_before)
                add("founded_year", 1.0 if in_range else 0.0, f"Founded {year} in range" if in_range else None)

        if filters.keywords:
            haystack = f"{_lower(getattr(company, 'name', None))} {_lower(getattr(company, 'description', None))}"
            matched = [k for k in filters.keywords if k and _lower(k) in haystack]
            add("keywords", len(matched) / len(filters.keywords),
                f"Keyword match: {', '.join(matched)}" if matched else None)

        final = total_score / total_weight if total_weight > 0 else 0.0
        return ScoreResult(score=round(final, 2), reasons=reasons, breakdown=breakdown)


fit_scorer = FitScorer()
