# card_crawler/urls.py

from __future__ import annotations
import logging
import re
from typing import List, Optional, Pattern, Tuple
from urllib.parse import urljoin, urlsplit, urlunsplit

from .config_behavior import (
    URL_CORRUPTION_SIGNATURES,
    URL_MAX_LENGTH,
    URL_REPAIRS,
    URL_TEMPLATE_MARKERS,
)

logger = logging.getLogger(__name__)


# Schemes that never point at a fetchable page
NON_WEB_PREFIXES = ("javascript:", "mailto:", "tel:", "data:", "vbscript:", "file:")

_CORRUPTION_RES: List[Pattern[str]] = [
    re.compile(p, re.IGNORECASE) for p in URL_CORRUPTION_SIGNATURES
]

_MULTI_SLASH_RE = re.compile(r"/{2,}")
_WHITESPACE_RE = re.compile(r"\s+")

# Guard against a repair table that keeps rewriting its own output
_MAX_REPAIR_PASSES = 10


def _has_template_marker(url: str) -> bool:
    lower = url.lower()
    return any(marker in lower for marker in URL_TEMPLATE_MARKERS)


def repair_url(url: str, repairs: List[Tuple[str, str]] = URL_REPAIRS) -> str:
    """
    Apply the literal repair table until the string stops changing.

    Whitespace inside the href is percent-encoded first so the "%20%20" style
    repairs also cover "a  b".
    """
    repaired = _WHITESPACE_RE.sub("%20", url)
    for _ in range(_MAX_REPAIR_PASSES):
        before = repaired
        for bad, good in repairs:
            if bad in repaired:
                repaired = repaired.replace(bad, good)
        if repaired == before:
            break
    return repaired


def _clean_path(path: str, host: str) -> str:
    """
    Collapse slash runs, drop a doubled "/<host>/" prefix and the trailing slash.
    """
    path = _MULTI_SLASH_RE.sub("/", path)

    doubled = f"/{host}/"
    while host and path.lower().startswith(doubled):
        path = path[len(host) + 1 :]

    return path.rstrip("/")


def normalize(href: Optional[str], base_url: Optional[str] = None) -> Optional[str]:
    """
    Turn a raw href into a canonical absolute URL, or None if it cannot be used.

    - Rejects empty / "#" / fragment-only hrefs and non-web schemes
    - Rejects template markers ({{ }} and their encoded forms) and corruption signatures
    - Repairs known doubled-letter corruptions from the configured table
    - Resolves relative hrefs against base_url
    - Lowercases scheme and host, strips fragment, slash runs, doubled host
      segments and the trailing slash
    - Rejects anything longer than URL_MAX_LENGTH

    None means "drop this link silently", never "fail the crawl".
    """
    if not href or not isinstance(href, str):
        return None

    candidate = href.strip()
    if not candidate or candidate.startswith("#"):
        return None

    if candidate.lower().startswith(NON_WEB_PREFIXES):
        return None

    if len(candidate) > URL_MAX_LENGTH or _has_template_marker(candidate):
        return None

    candidate = repair_url(candidate)

    if base_url:
        try:
            candidate = urljoin(base_url, candidate)
        except ValueError:
            return None

    try:
        parts = urlsplit(candidate)
        host = parts.hostname
    except ValueError:
        logger.debug("Unparseable URL dropped: %s", candidate)
        return None

    scheme = parts.scheme.lower()
    if scheme not in ("http", "https") or not host:
        return None

    netloc = parts.netloc.lower()
    path = _clean_path(parts.path, host.lower())

    normalized = urlunsplit((scheme, netloc, path, parts.query, ""))

    if len(normalized) > URL_MAX_LENGTH or _has_template_marker(normalized):
        return None

    if any(p.search(normalized) for p in _CORRUPTION_RES):
        logger.debug("URL matches a corruption signature, dropped: %s", normalized)
        return None

    return normalized


def hostname(url: str) -> str:
    """
    Lowercased host of a URL ("" when it has none).
    """
    try:
        return (urlsplit(url).hostname or "").lower()
    except ValueError:
        return ""


def is_same_site(url: str, base_domain: str) -> bool:
    """
    True for the base domain itself and any of its subdomains.
    e.g. "www.hdfcbank.com" is same-site for base_domain="hdfcbank.com"
    """
    host = hostname(url)
    base = base_domain.lower().strip(".")
    return bool(host) and (host == base or host.endswith("." + base))


def is_pdf_url(url: str) -> bool:
    try:
        return urlsplit(url).path.lower().endswith(".pdf")
    except ValueError:
        return False
