# card_crawler/crawler.py

from __future__ import annotations
import logging
import queue
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from .aggregator import CardDataAggregator
from .enrich import detect_language, extract_card_fields
from .errors import ErrorTracker, FatalCrawlError
from .fetcher import DEFAULT_USER_AGENT, Fetcher
from .models import (
    AggregatedRecord,
    CompletenessReport,
    ContentType,
    FetchOutcome,
    FetchResult,
    ScoredLink,
    ValidationResult,
    utc_now,
)
from .parser import ParsedPage, parse_html
from .rate_limiter import DomainRateLimiter
from .relevance import is_relevant, score_relevance
from .triage import TriageResult, prioritized, triage_links
from .urls import normalize
from .validator import validate_card_record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CrawlConfig:
    """
    Configuration for one crawl run.

    This determines where the crawl starts, which domain it stays on, how many
    pages and PDFs it fetches, and how politely it talks to the server.
    """

    # Product page the crawl starts from
    start_url: str

    # Root domain restriction, e.g. "hdfcbank.com" (subdomains allowed)
    base_domain: str

    # Budgets for the two crawl phases (the seed page is not counted)
    max_pages: int = 10
    max_pdfs: int = 5

    # Extra pause before every fetch after the first of each phase
    delay_seconds: float = 1.5

    # Worker threads per phase
    concurrency: int = 1

    # Per-domain rate limiting
    requests_per_second: float = 2.0
    burst_size: int = 5
    min_interval_seconds: float = 0.5

    # Retry policy
    max_attempts: int = 3
    backoff_base_seconds: float = 1.0

    # Fatal thresholds, tripped when a count reaches the limit
    max_consecutive_errors: int = 3
    max_total_errors: int = 50

    timeout_seconds: float = 30
    max_pdf_bytes: int = 10 * 1024 * 1024
    keep_pdfs: bool = False
    pdf_dir: Optional[str] = None

    # Wall-clock budget for the whole run; None means no limit
    run_timeout_seconds: Optional[float] = None

    user_agent: str = DEFAULT_USER_AGENT

    def __post_init__(self) -> None:
        if normalize(self.start_url) is None:
            raise ValueError(f"start_url is not a usable http(s) URL: {self.start_url!r}")
        if not self.base_domain or not self.base_domain.strip("."):
            raise ValueError("base_domain must not be empty.")
        if self.max_pages < 0 or self.max_pdfs < 0:
            raise ValueError("max_pages and max_pdfs must not be negative.")
        if self.delay_seconds < 0:
            raise ValueError("delay_seconds must not be negative.")
        if self.concurrency < 1:
            raise ValueError("concurrency must be at least 1.")
        if self.requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive.")
        if self.burst_size < 1:
            raise ValueError("burst_size must be at least 1.")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1.")
        if self.max_consecutive_errors < 1 or self.max_total_errors < 1:
            raise ValueError("error thresholds must be at least 1.")
        if self.timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be positive.")
        if self.max_pdf_bytes <= 0:
            raise ValueError("max_pdf_bytes must be positive.")
        if self.run_timeout_seconds is not None and self.run_timeout_seconds <= 0:
            raise ValueError("run_timeout_seconds must be positive when set.")


class CrawlState(str, Enum):
    SEED = "seed"
    LINKS_TRIAGED = "links_triaged"
    PAGES_CRAWLING = "pages_crawling"
    PDFS_CRAWLING = "pdfs_crawling"
    DONE = "done"
    FAILED = "failed"


@dataclass
class CrawlReport:
    """
    Everything one run produced: the merged record, its completeness and
    validation, every fetch result (seed first, then completion order) and
    error statistics.
    """

    state: CrawlState
    record: AggregatedRecord
    completeness: CompletenessReport
    results: List[FetchResult] = field(default_factory=list)
    error_stats: Dict[str, Any] = field(default_factory=dict)
    fatal_reason: Optional[str] = None
    timed_out: bool = False
    validation: Optional[ValidationResult] = None
    summary: str = ""
    started_at: datetime = field(default_factory=utc_now)
    finished_at: datetime = field(default_factory=utc_now)

    @property
    def processing_seconds(self) -> float:
        return (self.finished_at - self.started_at).total_seconds()

    def raise_for_state(self) -> None:
        if self.state == CrawlState.FAILED:
            raise FatalCrawlError(self.fatal_reason or "crawl failed")

    def to_serializable_dict(self) -> Dict[str, Any]:
        """
        Run metadata without the record itself.
        """
        return {
            "state": self.state.value,
            "fatal_reason": self.fatal_reason,
            "timed_out": self.timed_out,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat(),
            "processing_seconds": round(self.processing_seconds, 3),
            "completeness": self.completeness.to_serializable_dict(),
            "validation": self.validation.to_serializable_dict() if self.validation else None,
            "error_stats": self.error_stats,
            "fetch_results": [r.to_serializable_dict() for r in self.results],
        }


# (result, parsed page for HTML pages); None when the task never fetched
_TaskOutput = Optional[Tuple[FetchResult, Optional[ParsedPage]]]


class CrawlOrchestrator:
    """
    Runs one crawl: seed page -> link triage -> pages -> PDFs -> merged record.

    Responsibilities:
    - Own the per-run coordinators (rate limiter, error tracker, aggregator)
    - Respect the page / PDF budgets and the delay between fetches
    - Fan fetches out over a thread pool and aggregate in completion order
    - Stop issuing fetches on a fatal signal or when the run deadline passes

    Per-resource failures never stop the run; they are logged and skipped.
    """

    def __init__(
        self,
        config: CrawlConfig,
        fetcher: Optional[Fetcher] = None,
        extract_fields: Callable[[str, str], Dict[str, Any]] = extract_card_fields,
        aggregator: Optional[CardDataAggregator] = None,
    ) -> None:
        self.config = config
        self.extract_fields = extract_fields
        self.aggregator = aggregator or CardDataAggregator()

        if fetcher is None:
            self.rate_limiter = DomainRateLimiter(
                requests_per_second=config.requests_per_second,
                burst_size=config.burst_size,
                min_interval_seconds=config.min_interval_seconds,
            )
            self.error_tracker = ErrorTracker(
                max_consecutive_errors=config.max_consecutive_errors,
                max_total_errors=config.max_total_errors,
            )
            fetcher = Fetcher(
                rate_limiter=self.rate_limiter,
                error_tracker=self.error_tracker,
                user_agent=config.user_agent,
                timeout_seconds=config.timeout_seconds,
                max_attempts=config.max_attempts,
                backoff_base_seconds=config.backoff_base_seconds,
                max_pdf_bytes=config.max_pdf_bytes,
                pdf_dir=config.pdf_dir,
                keep_pdfs=config.keep_pdfs,
            )
        else:
            self.rate_limiter = fetcher.rate_limiter
            self.error_tracker = fetcher.error_tracker
        self.fetcher = fetcher

        self.state = CrawlState.SEED
        self._stop = threading.Event()
        self._results: List[FetchResult] = []
        self._fatal_reason: Optional[str] = None
        self._timed_out = False

    # -------- state -------------------------------------------------------

    def _set_state(self, state: CrawlState) -> None:
        logger.info("Crawl state %s -> %s", self.state.value, state.value)
        self.state = state

    def _fail(self, reason: str) -> None:
        if self._fatal_reason is None:
            self._fatal_reason = reason
            logger.error("Aborting crawl: %s", reason)
        self._stop.set()

    def _on_deadline(self) -> None:
        if not self._stop.is_set():
            logger.warning(
                "Run timeout of %.1fs reached, no new fetches will be issued",
                self.config.run_timeout_seconds,
            )
            self._timed_out = True
            self._stop.set()

    # -------- run ---------------------------------------------------------

    def run(self) -> CrawlReport:
        """
        Execute the full crawl and return a CrawlReport.

        Ends in DONE (possibly partial, possibly timed out) or FAILED when the
        seed could not be fetched or a fatal error threshold was crossed.
        """
        started_at = utc_now()
        timer: Optional[threading.Timer] = None
        if self.config.run_timeout_seconds:
            timer = threading.Timer(self.config.run_timeout_seconds, self._on_deadline)
            timer.daemon = True
            timer.start()

        try:
            triaged = self._crawl_seed()

            if triaged is not None and self._fatal_reason is None:
                pages = self._exclude_seed(prioritized(triaged.internal))[: self.config.max_pages]
                self._set_state(CrawlState.PAGES_CRAWLING)
                logger.info("Crawling %d of %d internal page(s)", len(pages), len(triaged.internal))
                self._run_phase(pages, ContentType.HTML)

            if triaged is not None and self._fatal_reason is None:
                pdfs = prioritized(triaged.pdfs)[: self.config.max_pdfs]
                self._set_state(CrawlState.PDFS_CRAWLING)
                logger.info("Crawling %d of %d PDF(s)", len(pdfs), len(triaged.pdfs))
                self._run_phase(pdfs, ContentType.PDF)
        finally:
            if timer is not None:
                timer.cancel()
            self.fetcher.close()

        self._set_state(CrawlState.FAILED if self._fatal_reason else CrawlState.DONE)

        self.aggregator.clean()
        record = self.aggregator.merge()
        completeness = self.aggregator.completeness()
        report = CrawlReport(
            state=self.state,
            record=record,
            completeness=completeness,
            results=list(self._results),
            error_stats=self.error_tracker.stats(),
            fatal_reason=self._fatal_reason,
            timed_out=self._timed_out,
            validation=validate_card_record(record.fields, self.aggregator.schema),
            summary=self.aggregator.summary(),
            started_at=started_at,
            finished_at=utc_now(),
        )
        logger.info(
            "Crawl finished: state=%s, %d fetch result(s), %d source(s), completeness %.1f%%",
            report.state.value,
            len(report.results),
            len(report.record.sources),
            completeness.percentage,
        )
        return report

    # -------- seed --------------------------------------------------------

    def _crawl_seed(self) -> Optional[TriageResult]:
        url = self.config.start_url
        logger.info("Fetching seed page %s", url)

        result = self.fetcher.fetch(url, ContentType.HTML, cancel=self._stop)
        self._results.append(result)

        if not result.ok:
            self._fail(f"seed page could not be fetched: {url} ({result.error})")
            return None

        page_url = result.final_url or url
        parsed = parse_html(result.raw_content or "", page_url)
        result.text = parsed.text

        # Scored for the record only; the seed is the product page itself
        result.relevance_score = score_relevance(parsed.text, page_url)
        if not is_relevant(result.relevance_score):
            logger.warning(
                "Seed page %s scores low for card relevance (score=%d)", url, result.relevance_score
            )

        triaged = triage_links(parsed.links, self.config.base_domain, base_url=page_url)
        self._set_state(CrawlState.LINKS_TRIAGED)

        fields = self._safe_extract(parsed.text, url)
        fields["links"] = {**(fields.get("links") or {}), **self._seed_links(triaged)}

        self.aggregator.add_source(
            fields,
            ContentType.HTML,
            url,
            metadata=self._source_metadata(result, parsed, link=None),
        )
        return triaged

    def _seed_links(self, triaged: TriageResult) -> Dict[str, Any]:
        links: Dict[str, Any] = {"card_page": self.config.start_url}
        if triaged.pdfs:
            links["pdfs"] = [link.url for link in triaged.pdfs]
        terms = [link.url for link in triaged.pdfs if link.category == "terms"]
        if terms:
            links["terms_and_conditions"] = terms[0]
        return links

    def _exclude_seed(self, links: List[ScoredLink]) -> List[ScoredLink]:
        seed_urls = {normalize(self.config.start_url)}
        if self._results and self._results[0].final_url:
            seed_urls.add(normalize(self._results[0].final_url))
        return [link for link in links if link.url not in seed_urls]

    # -------- phases ------------------------------------------------------

    def _run_phase(self, links: List[ScoredLink], kind: ContentType) -> None:
        """
        Fetch `links` on a thread pool and aggregate each result as soon as it
        completes. Only this thread touches the aggregator.
        """
        if not links:
            return

        done: "queue.Queue[Future]" = queue.Queue()
        origin: Dict[Future, ScoredLink] = {}

        with ThreadPoolExecutor(
            max_workers=self.config.concurrency,
            thread_name_prefix=f"crawl-{kind.value}",
        ) as pool:
            for index, link in enumerate(links):
                future = pool.submit(self._fetch_task, link, kind, index)
                origin[future] = link
                future.add_done_callback(done.put)

            for _ in range(len(links)):
                future = done.get()
                link = origin[future]
                try:
                    output = future.result()
                except Exception:
                    logger.exception("Unexpected error while fetching %s", link.url)
                    continue
                if output is not None:
                    self._absorb(link, kind, *output)

    def _fetch_task(self, link: ScoredLink, kind: ContentType, index: int) -> _TaskOutput:
        if index > 0 and self.config.delay_seconds > 0:
            if self._stop.wait(self.config.delay_seconds):
                return None
        if self._stop.is_set() or self.error_tracker.fatal:
            return None

        result = self.fetcher.fetch(link.url, kind, cancel=self._stop)

        parsed: Optional[ParsedPage] = None
        if kind == ContentType.HTML and result.ok:
            parsed = parse_html(result.raw_content or "", result.final_url or link.url)
            result.text = parsed.text
        return result, parsed

    def _absorb(
        self,
        link: ScoredLink,
        kind: ContentType,
        result: FetchResult,
        parsed: Optional[ParsedPage],
    ) -> None:
        self._results.append(result)

        if result.outcome == FetchOutcome.FATAL or self.error_tracker.fatal:
            self._fail(self.error_tracker.fatal_reason or result.error or "fatal fetch error")

        if not result.ok:
            logger.warning("Skipped %s (%s): %s", link.url, result.error_kind or "skip", result.error)
            return

        text = result.text or ""

        if kind == ContentType.HTML:
            result.relevance_score = score_relevance(text, result.final_url or link.url)
            if not is_relevant(result.relevance_score):
                logger.info(
                    "Skipping low-relevance page %s (score=%d)", link.url, result.relevance_score
                )
                return

        fields = self._safe_extract(text, link.url)
        self.aggregator.add_source(
            fields, kind, link.url, metadata=self._source_metadata(result, parsed, link)
        )

    # -------- helpers -----------------------------------------------------

    def _safe_extract(self, text: str, url: str) -> Dict[str, Any]:
        try:
            return dict(self.extract_fields(text, url) or {})
        except Exception:
            logger.exception("Field extraction failed for %s", url)
            return {}

    def _source_metadata(
        self,
        result: FetchResult,
        parsed: Optional[ParsedPage],
        link: Optional[ScoredLink],
    ) -> Dict[str, Any]:
        metadata: Dict[str, Any] = {
            "fetched_at": result.fetched_at.isoformat(),
            "final_url": result.final_url,
            "language": detect_language(result.text or ""),
            "content_chars": len(result.text or ""),
        }
        if parsed is not None:
            metadata["title"] = parsed.title
            metadata["headings"] = parsed.headings
        if result.relevance_score is not None:
            metadata["relevance_score"] = result.relevance_score
        if link is not None:
            metadata["category"] = link.category
            metadata["priority_score"] = link.priority_score
        if result.file_path:
            metadata["file_path"] = result.file_path
        return metadata
