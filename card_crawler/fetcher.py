# card_crawler/fetcher.py

from __future__ import annotations

import logging
import os
import random
import re
import shutil
import tempfile
import threading
import time
from pathlib import Path
from typing import Callable, Optional, Union

import requests
from requests import Response

from .errors import (
    ContentValidationError,
    ErrorKind,
    ErrorTracker,
    backoff_delay,
    classify,
    should_retry,
)
from .models import ContentType, FetchOutcome, FetchResult
from .parser import extract_pdf_text
from .rate_limiter import DomainRateLimiter
from .urls import hostname

logger = logging.getLogger(__name__)


DEFAULT_USER_AGENT = "CardCrawler/1.0 (credit card product research crawler)"

DEFAULT_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,application/pdf;q=0.8,*/*;q=0.7",
    "Accept-Language": "en-US,en;q=0.9",
}

PDF_SIGNATURE = b"%PDF-"

_CHUNK_SIZE = 64 * 1024
_UNSAFE_FILENAME_RE = re.compile(r"[^A-Za-z0-9._-]+")


class Fetcher:
    """
    HTTP fetcher for HTML pages and PDF documents using the `requests` library

    Responsibilities:
    - Attach a custom User-Agent header and apply per-request timeouts
    - Pass every network call through the shared DomainRateLimiter
    - Classify failures, retry transient ones with backoff, skip permanent ones
    - Report every failed attempt to the shared ErrorTracker
    - Return a FetchResult whose `outcome` tells the crawler what to do next

    fetch() never raises for network or content problems; it only returns
    ok / skip / fatal results.
    """

    def __init__(
        self,
        rate_limiter: Optional[DomainRateLimiter] = None,
        error_tracker: Optional[ErrorTracker] = None,
        user_agent: str = DEFAULT_USER_AGENT,
        timeout_seconds: float = 30,
        max_attempts: int = 3,
        backoff_base_seconds: float = 1.0,
        max_pdf_bytes: int = 10 * 1024 * 1024,
        min_pdf_bytes: int = 100,
        min_html_chars: int = 50,
        pdf_dir: Optional[Union[str, Path]] = None,
        keep_pdfs: bool = False,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
        rng: Optional[random.Random] = None,
        pdf_text_extractor: Callable[[Path], str] = extract_pdf_text,
    ) -> None:
        """
        param rate_limiter / error_tracker: Shared per-run coordinators
        param max_attempts: Attempts for transient failures (429 gets two more)
        param backoff_base_seconds: First retry waits roughly this long (plus jitter)
        param max_pdf_bytes / min_pdf_bytes: Size window a downloaded PDF must fall into
        param min_html_chars: Shorter HTML bodies are treated as invalid content
        param pdf_dir: Where PDFs are downloaded; a temporary directory if None
        param keep_pdfs: Leave downloaded PDFs on disk after text extraction
        param session: Anything with requests.Session's get/head; injectable for tests
        """
        self.rate_limiter = rate_limiter or DomainRateLimiter()
        self.error_tracker = error_tracker or ErrorTracker()
        self.user_agent = user_agent
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max_attempts
        self.backoff_base_seconds = backoff_base_seconds
        self.max_pdf_bytes = max_pdf_bytes
        self.min_pdf_bytes = min_pdf_bytes
        self.min_html_chars = min_html_chars
        self.keep_pdfs = keep_pdfs
        self._sleep = sleep
        self._rng = rng
        self._extract_pdf_text = pdf_text_extractor

        self._pdf_dir: Optional[Path] = Path(pdf_dir) if pdf_dir else None
        self._owns_pdf_dir = False
        self._pdf_dir_lock = threading.Lock()

        # Use a Session for connection pooling and efficiency.
        self.session = session if session is not None else requests.Session()
        self.session.headers.update({"User-Agent": self.user_agent, **DEFAULT_HEADERS})

    # -------- public API --------------------------------------------------

    def fetch(
        self,
        url: str,
        kind: Union[ContentType, str] = ContentType.HTML,
        cancel: Optional[threading.Event] = None,
    ) -> FetchResult:
        """
        Fetch a single URL as HTML or PDF and return a FetchResult.

        Every attempt first takes a token from the rate limiter for the URL's host.
        A cancelled wait (rate limiter or backoff) returns a skip without
        counting an error.
        """
        kind = ContentType(kind)
        host = hostname(url)

        if kind == ContentType.PDF and not self._probe_pdf(url, host, cancel):
            return FetchResult(
                url=url,
                content_type=kind,
                outcome=FetchOutcome.SKIP,
                error="PDF probe failed",
            )

        attempt = 0
        while True:
            attempt += 1

            if not self.rate_limiter.acquire(host, cancel):
                return self._cancelled(url, kind, attempt - 1)

            try:
                logger.debug("Fetching %s %s (attempt %d)", kind.value, url, attempt)
                if kind == ContentType.PDF:
                    result = self._fetch_pdf(url)
                else:
                    result = self._fetch_html(url)
            except Exception as e:
                error_kind = classify(e)
                fatal = self.error_tracker.record(error_kind, url, str(e))

                if fatal:
                    return self._failed(url, kind, FetchOutcome.FATAL, error_kind, e, attempt)

                if should_retry(error_kind, attempt, self.max_attempts):
                    delay = backoff_delay(error_kind, attempt, self.backoff_base_seconds, self._rng)
                    logger.warning(
                        "Retrying %s in %.2fs after %s error (attempt %d): %s",
                        url, delay, error_kind.value, attempt, e,
                    )
                    if not self._wait(delay, cancel):
                        return self._cancelled(url, kind, attempt)
                    continue

                logger.warning(
                    "Skipping %s after %d attempt(s), %s error: %s",
                    url, attempt, error_kind.value, e,
                )
                return self._failed(url, kind, FetchOutcome.SKIP, error_kind, e, attempt)

            self.error_tracker.record_success(url)
            result.attempts = attempt
            logger.info("Fetched %s %s with status %d", kind.value, url, result.status_code)
            return result

    def close(self) -> None:
        """
        Remove the temporary PDF directory this fetcher created (unless keep_pdfs).
        """
        with self._pdf_dir_lock:
            if self._owns_pdf_dir and self._pdf_dir is not None and not self.keep_pdfs:
                shutil.rmtree(self._pdf_dir, ignore_errors=True)
                self._pdf_dir = None
                self._owns_pdf_dir = False

    # -------- HTML --------------------------------------------------------

    def _fetch_html(self, url: str) -> FetchResult:
        resp: Response = self.session.get(
            url,
            timeout=self.timeout_seconds,
            allow_redirects=True,
        )
        self._raise_for_status(resp)

        html = resp.text or ""
        if len(html.strip()) < self.min_html_chars:
            raise ContentValidationError(f"HTML body too short ({len(html)} chars)")
        if "<" not in html or ">" not in html:
            raise ContentValidationError("Response body does not look like HTML")

        return FetchResult(
            url=url,
            content_type=ContentType.HTML,
            raw_content=html,
            final_url=str(resp.url),
            status_code=resp.status_code,
        )

    # -------- PDF ---------------------------------------------------------

    def _probe_pdf(self, url: str, host: str, cancel: Optional[threading.Event]) -> bool:
        """
        HEAD request before downloading. A negative answer is a quiet skip,
        not an error.
        """
        if not self.rate_limiter.acquire(host, cancel):
            return False
        try:
            resp = self.session.head(url, timeout=self.timeout_seconds, allow_redirects=True)
        except requests.exceptions.RequestException as e:
            logger.info("PDF probe failed for %s: %s", url, e)
            return False

        if resp.status_code != 200:
            logger.info("PDF probe for %s returned status %d, skipping", url, resp.status_code)
            return False
        return True

    def _fetch_pdf(self, url: str) -> FetchResult:
        resp: Response = self.session.get(
            url,
            timeout=self.timeout_seconds,
            allow_redirects=True,
            stream=True,
        )
        path: Optional[Path] = None
        try:
            self._raise_for_status(resp)

            declared = resp.headers.get("Content-Length")
            if declared and str(declared).isdigit() and int(declared) > self.max_pdf_bytes:
                raise ContentValidationError(
                    f"PDF too large: {declared} bytes (limit {self.max_pdf_bytes})"
                )

            path = self._new_pdf_path(url)
            size = self._stream_to_file(resp, path)
            self._validate_pdf_file(path, size)
            text = self._extract_pdf_text(path)
        except Exception:
            if path is not None:
                self._discard(path)
            raise
        finally:
            resp.close()

        kept_path: Optional[str] = str(path)
        if not self.keep_pdfs:
            self._discard(path)
            kept_path = None

        return FetchResult(
            url=url,
            content_type=ContentType.PDF,
            raw_content=text,
            text=text,
            final_url=str(resp.url),
            status_code=resp.status_code,
            file_path=kept_path,
        )

    def _stream_to_file(self, resp: Response, path: Path) -> int:
        size = 0
        with open(path, "wb") as fh:
            for chunk in resp.iter_content(chunk_size=_CHUNK_SIZE):
                if not chunk:
                    continue
                size += len(chunk)
                if size > self.max_pdf_bytes:
                    raise ContentValidationError(
                        f"PDF exceeded {self.max_pdf_bytes} bytes while downloading"
                    )
                fh.write(chunk)
        return size

    def _validate_pdf_file(self, path: Path, size: int) -> None:
        if size < self.min_pdf_bytes:
            raise ContentValidationError(f"PDF too small: {size} bytes")
        with open(path, "rb") as fh:
            head = fh.read(len(PDF_SIGNATURE))
        if head != PDF_SIGNATURE:
            raise ContentValidationError("Missing %PDF- signature")

    def _ensure_pdf_dir(self) -> Path:
        with self._pdf_dir_lock:
            if self._pdf_dir is None:
                self._pdf_dir = Path(tempfile.mkdtemp(prefix="card_crawler_pdfs_"))
                self._owns_pdf_dir = True
            else:
                self._pdf_dir.mkdir(parents=True, exist_ok=True)
            return self._pdf_dir

    def _new_pdf_path(self, url: str) -> Path:
        """
        Unique file per download so concurrent fetches of similar URLs never collide.
        """
        name = url.rstrip("/").rsplit("/", 1)[-1] or "document.pdf"
        stem = _UNSAFE_FILENAME_RE.sub("_", name)[:80].removesuffix(".pdf") or "document"
        fd, raw_path = tempfile.mkstemp(prefix=f"{stem}_", suffix=".pdf", dir=self._ensure_pdf_dir())
        os.close(fd)
        return Path(raw_path)

    def _discard(self, path: Path) -> None:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not delete PDF file %s: %s", path, e)

    # -------- helpers -----------------------------------------------------

    def _raise_for_status(self, resp: Response) -> None:
        if resp.status_code >= 400:
            raise requests.exceptions.HTTPError(f"HTTP {resp.status_code}", response=resp)

    def _wait(self, seconds: float, cancel: Optional[threading.Event]) -> bool:
        if cancel is not None:
            return not cancel.wait(seconds)
        self._sleep(seconds)
        return True

    def _cancelled(self, url: str, kind: ContentType, attempts: int) -> FetchResult:
        logger.info("Fetch of %s cancelled", url)
        return FetchResult(
            url=url,
            content_type=kind,
            outcome=FetchOutcome.SKIP,
            error="cancelled",
            attempts=attempts,
        )

    def _failed(
        self,
        url: str,
        kind: ContentType,
        outcome: FetchOutcome,
        error_kind: ErrorKind,
        exc: Exception,
        attempts: int,
    ) -> FetchResult:
        response = getattr(exc, "response", None)
        status = getattr(response, "status_code", 0)
        return FetchResult(
            url=url,
            content_type=kind,
            outcome=outcome,
            status_code=status if isinstance(status, int) else 0,
            error=str(exc),
            error_kind=error_kind.value,
            attempts=attempts,
        )
