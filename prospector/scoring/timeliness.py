"""
Signal timeliness: fresher evidence counts for more.
"""
from datetime import date, datetime
from typing import Optional, Tuple, Union

# (label, max age in days, multiplier)
TIMELINESS_BANDS = [
    ("excellent", 30, 1.0),
    ("strong", 90, 0.85),
    ("ok", 180, 0.6),
    ("weak", 365, 0.3),
]
UNKNOWN_DATE_MULTIPLIER = 0.4

DateLike = Union[date, datetime, None]


def timeliness_multiplier(event_date: DateLike, reference: Optional[datetime] = None) -> Tuple[float, str]:
    """Return (multiplier, band label) for an event date. Future dates count as fresh."""
    if event_date is None:
        return UNKNOWN_DATE_MULTIPLIER, "unknown"

    reference = reference or datetime.utcnow()
    if isinstance(event_date, datetime):
        event_day = event_date.date()
    else:
        event_day = event_date
    age_days = (reference.date() - event_day).days

    if age_days < 0:
        return 1.0, "excellent"
    for label, max_age, multiplier in TIMELINESS_BANDS:
        if age_days <= max_age:
            return multiplier, label
    return 0.0, "expired"


def apply_timeliness(strength: float, event_date: DateLike, reference: Optional[datetime] = None) -> float:
    multiplier, _ = timeliness_multiplier(event_date, reference)
    return round(strength * multiplier, 2)
