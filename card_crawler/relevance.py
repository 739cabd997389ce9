# card_crawler/relevance.py

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import List, Optional, Tuple
from urllib.parse import urlsplit

from .config_behavior import (
    MIN_RELEVANCE_SCORE,
    RELEVANCE_CREDIT_CARD_URL_BONUS,
    RELEVANCE_DOCUMENT_BONUS,
    RELEVANCE_DOCUMENT_HINTS,
    RELEVANCE_HIGH_PRIORITY_KEYWORDS,
    RELEVANCE_MEDIUM_PRIORITY_KEYWORDS,
    RELEVANCE_OFF_TOPIC_KEYWORDS,
    RELEVANCE_OFF_TOPIC_PENALTY,
    RELEVANCE_URL_TOKENS,
)

logger = logging.getLogger(__name__)


@dataclass
class RelevanceRules:
    high_priority: List[str] = field(default_factory=lambda: list(RELEVANCE_HIGH_PRIORITY_KEYWORDS))
    medium_priority: List[str] = field(default_factory=lambda: list(RELEVANCE_MEDIUM_PRIORITY_KEYWORDS))
    off_topic: List[str] = field(default_factory=lambda: list(RELEVANCE_OFF_TOPIC_KEYWORDS))
    url_tokens: List[Tuple[str, int]] = field(default_factory=lambda: list(RELEVANCE_URL_TOKENS))
    credit_card_url_bonus: int = RELEVANCE_CREDIT_CARD_URL_BONUS
    off_topic_penalty: int = RELEVANCE_OFF_TOPIC_PENALTY
    document_hints: List[str] = field(default_factory=lambda: list(RELEVANCE_DOCUMENT_HINTS))
    document_bonus: int = RELEVANCE_DOCUMENT_BONUS


def _url_path(url: str) -> str:
    try:
        return urlsplit(url).path.lower()
    except ValueError:
        return ""


def score_relevance(text: str, url: str, rules: Optional[RelevanceRules] = None) -> int:
    """
    Score how much a page is about the card being crawled.

    - URL: +bonus when the path mentions both "credit" and "card", plus product token bonuses
    - Text: +2 per high-priority keyword occurrence, +1 per medium-priority occurrence
    - Text: -penalty once for each off-topic keyword present
    - Text: +bonus when the page points at downloadable documents

    Never negative.
    """
    rules = rules or RelevanceRules()
    score = 0

    path = _url_path(url)
    if "credit" in path and "card" in path:
        score += rules.credit_card_url_bonus
    for token, bonus in rules.url_tokens:
        if token in path:
            score += bonus

    lower = (text or "").lower()

    for keyword in rules.high_priority:
        score += lower.count(keyword) * 2
    for keyword in rules.medium_priority:
        score += lower.count(keyword)

    for keyword in rules.off_topic:
        if keyword in lower:
            score -= rules.off_topic_penalty

    if any(hint in lower for hint in rules.document_hints):
        score += rules.document_bonus

    return max(0, score)


def is_relevant(score: int, minimum: int = MIN_RELEVANCE_SCORE) -> bool:
    return score >= minimum
