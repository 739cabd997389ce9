# card_crawler/triage.py

from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Pattern, Tuple

from .config_behavior import (
    TRIAGE_CATEGORIES,
    TRIAGE_DEFAULT_CATEGORY,
    TRIAGE_IGNORE_PATTERNS,
    TRIAGE_PRIORITY_PATTERNS,
)
from .models import LinkCandidate, ScoredLink, utc_now
from .urls import is_pdf_url, is_same_site, normalize

logger = logging.getLogger(__name__)


@dataclass
class TriageRules:
    """
    Compiled rule tables used to keep, score and categorize links.
    Defaults come from config_behavior; tests pass their own tables.
    """
    ignore: List[Pattern[str]] = field(default_factory=list)
    priority: List[Tuple[Pattern[str], int]] = field(default_factory=list)
    categories: List[Tuple[str, Pattern[str]]] = field(default_factory=list)
    default_category: str = TRIAGE_DEFAULT_CATEGORY

    @classmethod
    def from_tables(
        cls,
        ignore: Iterable[str] = TRIAGE_IGNORE_PATTERNS,
        priority: Iterable[Tuple[str, int]] = TRIAGE_PRIORITY_PATTERNS,
        categories: Iterable[Tuple[str, str]] = TRIAGE_CATEGORIES,
        default_category: str = TRIAGE_DEFAULT_CATEGORY,
    ) -> "TriageRules":
        return cls(
            ignore=[re.compile(p, re.IGNORECASE) for p in ignore],
            priority=[(re.compile(p, re.IGNORECASE), w) for p, w in priority],
            categories=[(name, re.compile(p, re.IGNORECASE)) for name, p in categories],
            default_category=default_category,
        )

    def is_ignored(self, url: str) -> bool:
        return any(p.search(url) for p in self.ignore)

    def score(self, url: str) -> int:
        return sum(weight for p, weight in self.priority if p.search(url))

    def category(self, url: str) -> str:
        for name, p in self.categories:
            if p.search(url):
                return name
        return self.default_category


@dataclass
class TriageResult:
    internal: List[ScoredLink] = field(default_factory=list)
    pdfs: List[ScoredLink] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=dict)


_default_rules: Optional[TriageRules] = None


def default_rules() -> TriageRules:
    global _default_rules
    if _default_rules is None:
        _default_rules = TriageRules.from_tables()
    return _default_rules


def triage_links(
    links: Iterable[LinkCandidate],
    base_domain: str,
    base_url: Optional[str] = None,
    rules: Optional[TriageRules] = None,
) -> TriageResult:
    """
    Turn raw link candidates from one page into scored, deduplicated links.

    Steps per candidate:
    1. Canonicalize (re-using the parser's canonical_url when present)
    2. Drop unusable URLs and hosts outside base_domain
    3. Drop ignore-pattern matches, even when they would score high
    4. Score, categorize, flag PDFs

    Duplicates keep the position of their first sighting and the metadata of
    the last one.
    """
    rules = rules or default_rules()
    stats = {"total": 0, "invalid": 0, "external": 0, "ignored": 0, "duplicate": 0, "kept": 0}
    kept: Dict[str, ScoredLink] = {}

    for link in links:
        stats["total"] += 1

        url = link.canonical_url or normalize(link.raw_href, base_url)
        if url is None:
            stats["invalid"] += 1
            continue

        if not is_same_site(url, base_domain):
            stats["external"] += 1
            continue

        if rules.is_ignored(url):
            logger.debug("Ignored link: %s", url)
            stats["ignored"] += 1
            continue

        if url in kept:
            stats["duplicate"] += 1

        # dict assignment keeps first insertion position, overwrites metadata
        kept[url] = ScoredLink(
            url=url,
            priority_score=rules.score(url),
            category=rules.category(url),
            is_pdf=is_pdf_url(url),
            discovered_at=utc_now(),
            anchor_text=link.anchor_text,
            title=link.title,
        )

    result = TriageResult(stats=stats)
    for scored in kept.values():
        if scored.is_pdf:
            result.pdfs.append(scored)
        else:
            result.internal.append(scored)

    stats["kept"] = len(kept)
    logger.info(
        "Triaged %d links: %d internal, %d PDFs (%d invalid, %d external, %d ignored, %d duplicate)",
        stats["total"], len(result.internal), len(result.pdfs),
        stats["invalid"], stats["external"], stats["ignored"], stats["duplicate"],
    )
    return result


def prioritized(links: Iterable[ScoredLink]) -> List[ScoredLink]:
    """
    Highest priority_score first; ties keep discovery order.
    """
    return sorted(links, key=lambda link: link.priority_score, reverse=True)
