"""
Shared utilities.
"""
import re
from datetime import date, datetime
from typing import Optional
from urllib.parse import urlparse

# Two-label public suffixes common in B2B data. Anything not listed is
# treated as a single-label TLD.
_COMPOUND_SUFFIXES = {
    "co.uk", "org.uk", "ac.uk", "gov.uk", "ltd.uk", "plc.uk",
    "com.au", "net.au", "org.au", "co.nz", "co.jp", "co.in", "co.za",
    "com.br", "com.mx", "com.ar", "com.sg", "com.hk", "com.tr", "com.cn",
    "co.kr", "co.il", "com.my", "com.ph",
}
# Two-letter TLDs that startups use as generic suffixes rather than country sites
_GENERIC_CCTLDS = {"ai", "io", "co", "me", "ly", "tv", "cc", "gg", "sh", "so", "to", "fm", "ws", "la"}


def normalize_domain(value: Optional[str]) -> Optional[str]:
    """
    Reduce a URL or host to a bare lower-cased domain.

    "https://WWW.Acme.com/about" -> "acme.com". Returns None for empty input.
    """
    if not value:
        return None
    s = value.strip().lower()
    if not s:
        return None
    if "://" not in s:
        s = "http://" + s
    host = urlparse(s).hostname or ""
    host = host.strip(".")
    if host.startswith("www."):
        host = host[4:]
    return host or None


def parent_domain(domain: Optional[str]) -> Optional[str]:
    """
    Registrable name of a domain without its public suffix.

    "m.linkedin.com" -> "linkedin", "uk.linkedin.co.uk" -> "linkedin".
    """
    host = normalize_domain(domain)
    if not host:
        return None
    labels = host.split(".")
    if len(labels) == 1:
        return labels[0]
    if len(labels) >= 3 and ".".join(labels[-2:]) in _COMPOUND_SUFFIXES:
        return labels[-3]
    return labels[-2]


def is_country_suffix(domain: Optional[str]) -> bool:
    """
    True when the domain sits under a country-site suffix: a compound one
    like "co.uk" or a two-letter ccTLD not commonly used generically.

    "linkedin.de" -> True, "linkedin.co.uk" -> True, "x.ai" -> False.
    """
    host = normalize_domain(domain)
    if not host or "." not in host:
        return False
    labels = host.split(".")
    if len(labels) >= 3 and ".".join(labels[-2:]) in _COMPOUND_SUFFIXES:
        return True
    tld = labels[-1]
    return len(tld) == 2 and tld.isalpha() and tld not in _GENERIC_CCTLDS


def clean_company_name(text: str) -> str:
    """
    Clean company name from web titles/snippets.
    """
    if not text:
        return ""

    s = text.strip()

    # Common separators in page titles
    for sep in (" - ", " | ", " : ", " – ", " — "):
        if sep in s:
            s = s.split(sep)[0]

    s = re.sub(r'^(Home|Welcome) to ', '', s, flags=re.IGNORECASE)
    s = re.sub(r'Official Website', '', s, flags=re.IGNORECASE)

    return s.strip()


def wildcard_to_regex(pattern: str) -> re.Pattern:
    """Compile a persona pattern where `*` matches any run of characters."""
    parts = [re.escape(p) for p in pattern.strip().lower().split("*")]
    return re.compile("^" + ".*".join(parts) + "$")


def parse_date(value) -> Optional[date]:
    """Parse provider date strings ("2024-03", "March 2024", ISO timestamps)."""
    from dateutil import parser as date_parser

    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date_parser.parse(str(value), default=datetime(2000, 1, 1)).date()
    except (ValueError, OverflowError):
        return None
