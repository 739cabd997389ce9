# card_crawler/enrich.py

from __future__ import annotations
import logging
import re
from typing import Any, Dict, List, Optional, Pattern

from langdetect import DetectorFactory, LangDetectException, detect

from .config_behavior import (
    FIELD_SENTENCE_KEYWORDS,
    FIELD_SENTENCE_LIMIT,
    FIELD_SENTENCE_MAX_LEN,
    FIELD_SENTENCE_MIN_LEN,
)

logger = logging.getLogger(__name__)

# langdetect is non-deterministic unless seeded
DetectorFactory.seed = 0


# --- Simple language detection ---------------------------------------------


def detect_language(text: str) -> str:
    if not text or len(text.strip()) < 20:
        return "unknown"
    try:
        return detect(text)
    except LangDetectException:
        return "unknown"


# --- Patterns ---------------------------------------------------------------

_AMOUNT = r"(?:₹|rs\.?|inr)?\s*([0-9][0-9,]*(?:\.\d+)?)"

_CARD_NAME_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(?:HDFC\s+(?:Bank\s+)?)?Regalia\s+Gold\s+Credit\s+Card", re.IGNORECASE),
    re.compile(r"HDFC\s+(?:Bank\s+)?Regalia\s+Gold", re.IGNORECASE),
    re.compile(r"\b((?:[A-Z][A-Za-z0-9&+]*\s+){1,4}Credit\s+Card)\b"),
]

_ANNUAL_FEE_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(?:annual|yearly|renewal)\s*(?:membership\s*)?fees?\s*(?:of|is|:|-)?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"(?:₹|rs\.?|inr)\s*([0-9][0-9,]*)\s*(?:\+\s*(?:applicable\s*)?(?:gst|taxes)\s*)?(?:annual|yearly|renewal)", re.IGNORECASE),
]

_JOINING_FEE_PATTERNS: List[Pattern[str]] = [
    re.compile(r"(?:joining|first[- ]year)\s*(?:membership\s*)?fees?\s*(?:of|is|:|-)?\s*" + _AMOUNT, re.IGNORECASE),
    re.compile(r"(?:₹|rs\.?|inr)\s*([0-9][0-9,]*)\s*(?:\+\s*(?:applicable\s*)?(?:gst|taxes)\s*)?joining", re.IGNORECASE),
]

_INTEREST_RATE_PATTERNS: List[Pattern[str]] = [
    re.compile(
        r"(?:interest\s*rate|finance\s*charges?|apr)\s*(?:of|is|:|-|at)?\s*(?:up\s*to\s*)?"
        r"\d+(?:\.\d+)?\s*%(?:\s*(?:per\s*month|p\.\s?m\.?|per\s*annum|p\.\s?a\.?|annually|monthly))?",
        re.IGNORECASE,
    ),
    re.compile(r"\d+(?:\.\d+)?\s*%\s*(?:per\s*month|p\.\s?m\.|per\s*annum|p\.\s?a\.|annually)", re.IGNORECASE),
]

_FOREX_MARKUP_RE = re.compile(
    r"(?:foreign\s*currency|forex|cross[- ]currency)\s*(?:transaction\s*)?mark[- ]?up"
    r"[^0-9%]{0,40}(\d+(?:\.\d+)?)\s*%",
    re.IGNORECASE,
)

_PHONE_RE = re.compile(r"(?:phone|call|helpline|customer\s*care)[^0-9+]{0,15}(\+?\d[\d\s-]{8,}\d)", re.IGNORECASE)
_EMAIL_RE = re.compile(r"[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}")

_SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+|\n+")

_FIELD_KEYWORD_RES: Dict[str, Pattern[str]] = {
    name: re.compile(r"\b(?:" + "|".join(re.escape(k) for k in keywords) + r")\b", re.IGNORECASE)
    for name, keywords in FIELD_SENTENCE_KEYWORDS.items()
}

# sub-record key -> words that must appear in a sentence about it
_LOUNGE_KEYS = {
    "domestic": ("domestic", "india"),
    "international": ("international", "overseas", "priority pass"),
}

_INSURANCE_KEYS = {
    "travel_insurance": ("travel insurance", "baggage", "flight delay"),
    "accidental_death": ("accidental death", "air accident", "accident cover"),
    "liability_cover": ("liability", "lost card", "fraud"),
}


# --- Helpers ----------------------------------------------------------------

def _sentences(text: str) -> List[str]:
    out = []
    for raw in _SENTENCE_SPLIT_RE.split(text or ""):
        sentence = " ".join(raw.split())
        if FIELD_SENTENCE_MIN_LEN <= len(sentence) <= FIELD_SENTENCE_MAX_LEN:
            out.append(sentence)
    return out


def _first_amount(patterns: List[Pattern[str]], text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return f"₹{match.group(1)}"
    return None


def _first_match(patterns: List[Pattern[str]], text: str) -> Optional[str]:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return " ".join(match.group(0).split())
    return None


def _collect_sentences(sentences: List[str], pattern: Pattern[str]) -> List[str]:
    collected: List[str] = []
    for sentence in sentences:
        if pattern.search(sentence) and sentence not in collected:
            collected.append(sentence)
            if len(collected) >= FIELD_SENTENCE_LIMIT:
                break
    return collected


def _sub_record(sentences: List[str], anchor: str, keys: Dict[str, tuple]) -> Dict[str, str]:
    """
    First sentence per sub key that mentions one of its words (and `anchor`, when set).
    """
    record: Dict[str, str] = {}
    for sentence in sentences:
        lower = sentence.lower()
        for key, words in keys.items():
            if key in record:
                continue
            if any(w in lower for w in words) and (anchor in lower or anchor == ""):
                record[key] = sentence
    return record


# --- Main extractor ---------------------------------------------------------

def extract_card_fields(text: str, url: str) -> Dict[str, Any]:
    """
    Pull card record fields out of page or PDF text with regex / keyword heuristics.

    Only fields that were actually found are returned; the aggregator decides
    how they combine with other sources. Amounts are reported as "₹<amount>".
    """
    if not text:
        return {}

    fields: Dict[str, Any] = {}
    sentences = _sentences(text)

    card_name = _first_match(_CARD_NAME_PATTERNS, text)
    if card_name:
        fields["card_name"] = card_name

    annual_fee = _first_amount(_ANNUAL_FEE_PATTERNS, text)
    if annual_fee:
        fields["annual_fee"] = annual_fee

    joining_fee = _first_amount(_JOINING_FEE_PATTERNS, text)
    if joining_fee:
        fields["joining_fee"] = joining_fee

    interest_rate = _first_match(_INTEREST_RATE_PATTERNS, text)
    if interest_rate:
        fields["interest_rate"] = interest_rate

    markup = _FOREX_MARKUP_RE.search(text)
    if markup:
        fields["foreign_currency_markup"] = f"{markup.group(1)}%"

    for name, pattern in _FIELD_KEYWORD_RES.items():
        collected = _collect_sentences(sentences, pattern)
        if collected:
            fields[name] = collected

    lounge = _sub_record(sentences, "lounge", _LOUNGE_KEYS)
    if lounge:
        fields["lounge_access"] = lounge

    insurance = _sub_record(sentences, "", _INSURANCE_KEYS)
    if insurance:
        fields["insurance"] = insurance

    contact: Dict[str, str] = {}
    phone = _PHONE_RE.search(text)
    if phone:
        contact["phone"] = " ".join(phone.group(1).split())
    email = _EMAIL_RE.search(text)
    if email:
        contact["email"] = email.group(0)
    if contact:
        fields["contact_info"] = contact

    logger.debug("Extracted %d fields from %s", len(fields), url)
    return fields
