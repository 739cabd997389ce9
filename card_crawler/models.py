# card_crawler/models.py

from __future__ import annotations
from dataclasses import dataclass, asdict, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Dict, Any, Optional


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ContentType(str, Enum):
    HTML = "html"
    PDF = "pdf"


class FetchOutcome(str, Enum):
    """
    Terminal state of one fetch: the content, a skip that the crawl absorbs, or a fatal abort signal.
    """

    OK = "ok"
    SKIP = "skip"
    FATAL = "fatal"


class FieldKind(str, Enum):
    SCALAR = "scalar"
    COLLECTION = "collection"
    OBJECT = "object"


@dataclass
class LinkCandidate:
    """
    One <a href> pulled out of a page, before triage.

    canonical_url is filled in by the parser when the href could be normalized
    against the page URL; triage re-normalizes either way.
    """

    raw_href: str
    canonical_url: Optional[str] = None
    anchor_text: str = ""
    title: str = ""


@dataclass(frozen=True)
class ScoredLink:
    """
    A link that survived triage. Immutable; the orchestrator either fetches it or drops it
    when the page / PDF budget is used up.
    """

    url: str
    priority_score: int
    category: str
    is_pdf: bool
    discovered_at: datetime
    anchor_text: str = ""
    title: str = ""


@dataclass
class FetchResult:
    """
    Result of fetching a single URL (HTML page or PDF).

    For HTML, raw_content is the markup and text is filled once the page is parsed.
    For PDFs, raw_content and text both hold the extracted text.
    """

    url: str
    content_type: ContentType
    outcome: FetchOutcome = FetchOutcome.OK
    raw_content: Optional[str] = None
    text: Optional[str] = None
    final_url: Optional[str] = None
    status_code: int = 0
    relevance_score: Optional[int] = None
    error: Optional[str] = None
    error_kind: Optional[str] = None
    attempts: int = 0
    file_path: Optional[str] = None
    fetched_at: datetime = field(default_factory=utc_now)

    @property
    def ok(self) -> bool:
        return self.outcome == FetchOutcome.OK

    def to_serializable_dict(self) -> Dict[str, Any]:
        """
        Fetch metadata without the (possibly large) content.
        """
        return {
            "url": self.url,
            "content_type": self.content_type.value,
            "outcome": self.outcome.value,
            "final_url": self.final_url,
            "status_code": self.status_code,
            "relevance_score": self.relevance_score,
            "error": self.error,
            "error_kind": self.error_kind,
            "attempts": self.attempts,
            "file_path": self.file_path,
            "content_chars": len(self.raw_content or ""),
            "fetched_at": self.fetched_at.isoformat(),
        }


@dataclass(frozen=True)
class SourceFieldSet:
    """
    Fields extracted from one successfully parsed source, in the form the aggregator merges.
    """

    source_type: ContentType
    source_url: str
    fields: Dict[str, Any]
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_serializable_dict(self) -> Dict[str, Any]:
        return {
            "source_type": self.source_type.value,
            "url": self.source_url,
            "fields": self.fields,
            "metadata": self.metadata,
        }


@dataclass
class AggregatedRecord:
    """
    The merged card record plus every source that contributed to it, in arrival order.
    """

    fields: Dict[str, Any]
    sources: List[SourceFieldSet] = field(default_factory=list)

    def to_serializable_dict(self) -> Dict[str, Any]:
        return {
            "card_data": self.fields,
            "sources": [s.to_serializable_dict() for s in self.sources],
        }


@dataclass
class CompletenessReport:
    total_fields: int
    filled_fields: int
    empty_fields: int
    per_field_status: Dict[str, str]

    @property
    def percentage(self) -> float:
        if self.total_fields == 0:
            return 0.0
        return (self.filled_fields * 100) / self.total_fields

    def to_serializable_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["percentage"] = round(self.percentage, 2)
        return d


@dataclass
class ValidationResult:
    """
    Format and plausibility checks over a merged card record.

    Errors make the record invalid; warnings only lower the score (0-100).
    """

    is_valid: bool
    score: float
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_serializable_dict(self) -> Dict[str, Any]:
        d = asdict(self)
        d["score"] = round(self.score, 1)
        return d
