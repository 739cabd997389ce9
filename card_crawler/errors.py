# card_crawler/errors.py

from __future__ import annotations
import logging
import random
import socket
import threading
from collections import Counter
from enum import Enum
from typing import Any, Dict, Optional, Tuple

import requests

from .urls import hostname

logger = logging.getLogger(__name__)


class CrawlerError(Exception):
    """Base class for errors raised inside card_crawler."""
    pass


class ContentValidationError(CrawlerError):
    """The response arrived but is not usable content (not HTML, bad PDF, too large...)."""
    pass


class FatalCrawlError(CrawlerError):
    """Raised by callers that prefer an exception over inspecting CrawlReport.state."""
    pass


class ErrorKind(str, Enum):
    RATE_LIMITED = "rate_limited"
    TIMEOUT = "timeout"
    DNS_FAILURE = "dns_failure"
    CONNECTION_REFUSED = "connection_refused"
    CONNECTION_RESET = "connection_reset"
    CLIENT_ERROR = "client_error"
    NOT_FOUND = "not_found"
    SERVER_ERROR = "server_error"
    VALIDATION = "validation"
    UNKNOWN = "unknown"

    @property
    def category(self) -> str:
        """
        "permanent" (skip now), "transient" (retry with backoff) or "unknown".
        """
        if self in PERMANENT_KINDS:
            return "permanent"
        if self in TRANSIENT_KINDS or self == ErrorKind.RATE_LIMITED:
            return "transient"
        return "unknown"


# Waiting will not make these fetchable
PERMANENT_KINDS = frozenset({
    ErrorKind.CLIENT_ERROR,
    ErrorKind.NOT_FOUND,
    ErrorKind.VALIDATION,
})

TRANSIENT_KINDS = frozenset({
    ErrorKind.TIMEOUT,
    ErrorKind.DNS_FAILURE,
    ErrorKind.CONNECTION_REFUSED,
    ErrorKind.CONNECTION_RESET,
    ErrorKind.SERVER_ERROR,
})

# Rate limiting resolves itself, so it gets this many extra attempts
RATE_LIMIT_EXTRA_ATTEMPTS = 2

BACKOFF_FACTORS: Dict[ErrorKind, float] = {
    ErrorKind.RATE_LIMITED: 3.0,
    ErrorKind.SERVER_ERROR: 2.0,
    ErrorKind.DNS_FAILURE: 1.5,
    ErrorKind.CONNECTION_REFUSED: 1.5,
    ErrorKind.CONNECTION_RESET: 1.5,
}

MAX_BACKOFF_SECONDS = 60.0

_DNS_HINTS = (
    "name or service not known",
    "nodename nor servname",
    "getaddrinfo failed",
    "failed to resolve",
    "nameresolutionerror",
    "temporary failure in name resolution",
    "no address associated with hostname",
)
_REFUSED_HINTS = ("connection refused", "connectionrefusederror", "errno 111", "actively refused")
_RESET_HINTS = ("connection reset", "connectionreseterror", "remotedisconnected", "connection aborted", "broken pipe")


# -------- classification --------------------------------------------------

def classify_status(status_code: int) -> Optional[ErrorKind]:
    """
    Map an HTTP status to an ErrorKind (None for success-ish statuses).
    """
    if status_code == 429:
        return ErrorKind.RATE_LIMITED
    if status_code == 404:
        return ErrorKind.NOT_FOUND
    if 400 <= status_code < 500:
        return ErrorKind.CLIENT_ERROR
    if status_code >= 500:
        return ErrorKind.SERVER_ERROR
    return None


def _exception_chain(exc: BaseException):
    """
    Walk exc and everything it wraps (__cause__, __context__, and the urllib3
    `reason` attribute requests hides the socket error behind).
    """
    seen = set()
    stack = [exc]
    while stack:
        current = stack.pop()
        if current is None or id(current) in seen:
            continue
        seen.add(id(current))
        yield current
        stack.append(current.__cause__)
        stack.append(current.__context__)
        reason = getattr(current, "reason", None)
        if isinstance(reason, BaseException):
            stack.append(reason)
        for arg in getattr(current, "args", ()):
            if isinstance(arg, BaseException):
                stack.append(arg)


def _classify_connection_error(exc: BaseException) -> ErrorKind:
    for inner in _exception_chain(exc):
        if isinstance(inner, socket.gaierror):
            return ErrorKind.DNS_FAILURE
        if isinstance(inner, ConnectionRefusedError):
            return ErrorKind.CONNECTION_REFUSED
        if isinstance(inner, ConnectionResetError):
            return ErrorKind.CONNECTION_RESET

    text = " ".join(f"{type(e).__name__} {e}" for e in _exception_chain(exc)).lower()
    if any(h in text for h in _DNS_HINTS):
        return ErrorKind.DNS_FAILURE
    if any(h in text for h in _REFUSED_HINTS):
        return ErrorKind.CONNECTION_REFUSED
    if any(h in text for h in _RESET_HINTS):
        return ErrorKind.CONNECTION_RESET

    # Any other connection-level failure behaves like a dropped connection
    return ErrorKind.CONNECTION_RESET


def classify(exc: BaseException) -> ErrorKind:
    """
    Put a fetch failure into one ErrorKind bucket.

    Order matters: HTTP status beats exception type, and timeouts are checked
    before generic connection errors (requests.ConnectTimeout is both).
    """
    if isinstance(exc, ContentValidationError):
        return ErrorKind.VALIDATION

    response = getattr(exc, "response", None)
    status = getattr(response, "status_code", None)
    if isinstance(status, int):
        kind = classify_status(status)
        if kind is not None:
            return kind

    if isinstance(exc, (requests.exceptions.Timeout, socket.timeout, TimeoutError)):
        return ErrorKind.TIMEOUT

    if isinstance(exc, socket.gaierror):
        return ErrorKind.DNS_FAILURE
    if isinstance(exc, ConnectionRefusedError):
        return ErrorKind.CONNECTION_REFUSED
    if isinstance(exc, ConnectionResetError):
        return ErrorKind.CONNECTION_RESET

    if isinstance(
        exc,
        (
            requests.exceptions.ConnectionError,
            requests.exceptions.ChunkedEncodingError,
            ConnectionError,
        ),
    ):
        return _classify_connection_error(exc)

    if isinstance(exc, (requests.exceptions.InvalidURL, requests.exceptions.MissingSchema)):
        return ErrorKind.VALIDATION

    return ErrorKind.UNKNOWN


# -------- retry policy ----------------------------------------------------

def max_attempts_for(kind: ErrorKind, max_attempts: int) -> int:
    if kind == ErrorKind.RATE_LIMITED:
        return max_attempts + RATE_LIMIT_EXTRA_ATTEMPTS
    if kind in TRANSIENT_KINDS:
        return max_attempts
    return 1


def should_retry(kind: ErrorKind, attempt: int, max_attempts: int) -> bool:
    """
    Decide whether to try again after `attempt` failed attempts (1-based).

    - CLIENT_ERROR / NOT_FOUND / VALIDATION / UNKNOWN -> never
    - TIMEOUT, DNS, connection refused/reset, 5xx     -> while attempt < max_attempts
    - RATE_LIMITED                                    -> while attempt < max_attempts + 2
    """
    return attempt < max_attempts_for(kind, max_attempts)


def backoff_delay(
    kind: ErrorKind,
    attempt: int,
    base_seconds: float = 1.0,
    rng: Optional[random.Random] = None,
) -> float:
    """
    Seconds to wait before the next attempt.

    Exponential on the attempt number plus up to 1s of jitter, scaled by a
    per-kind factor (429 x3, 5xx x2, connection-level x1.5), capped at 60s.
    """
    jitter = (rng or random).uniform(0.0, 1.0)
    delay = base_seconds * (2 ** max(0, attempt - 1)) + jitter
    delay *= BACKOFF_FACTORS.get(kind, 1.0)
    return min(delay, MAX_BACKOFF_SECONDS)


# -------- fatal thresholds ------------------------------------------------

class ErrorTracker:
    """
    Counts failures per (kind, url) and decides when the run should be aborted.

    Two signals, both distinct from a single request running out of retries:
    - the same (kind, url) failing max_consecutive_errors times without a success in between
    - max_total_errors failures across the whole run

    Each key keeps its own run of failures, so interleaved failures from
    concurrent workers do not reset each other. Shared by every fetcher thread
    of one run; all state sits behind one lock.
    """

    def __init__(self, max_consecutive_errors: int = 3, max_total_errors: int = 50) -> None:
        self.max_consecutive_errors = max_consecutive_errors
        self.max_total_errors = max_total_errors
        self._lock = threading.Lock()
        self.reset()

    def reset(self) -> None:
        # Called from __init__ before anyone else can see the object, and by
        # operators between runs.
        with self._lock:
            self._counts: Counter = Counter()
            self._consecutive: Dict[Tuple[str, str], int] = {}
            self._total = 0
            self._last_error: Optional[Dict[str, Any]] = None
            self.fatal = False
            self.fatal_reason: Optional[str] = None

    @property
    def total_errors(self) -> int:
        return self._total

    def record(self, kind: ErrorKind, url: str, message: str = "") -> bool:
        """
        Count one failed attempt. Returns True once the run has reached a fatal threshold.
        """
        key = (kind.value, url)
        with self._lock:
            self._total += 1
            self._counts[key] += 1
            self._consecutive[key] = self._consecutive.get(key, 0) + 1
            self._last_error = {"kind": kind.value, "url": url, "message": message}

            consecutive = self._consecutive[key]
            if not self.fatal:
                if consecutive >= self.max_consecutive_errors:
                    self.fatal = True
                    self.fatal_reason = (
                        f"{consecutive} consecutive {kind.value} errors for {url}"
                    )
                elif self._total >= self.max_total_errors:
                    self.fatal = True
                    self.fatal_reason = f"{self._total} errors in total"
                if self.fatal:
                    logger.error("Fatal error threshold reached: %s", self.fatal_reason)

            return self.fatal

    def record_success(self, url: str) -> None:
        """
        A success ends every run of consecutive failures for this URL.
        """
        with self._lock:
            for key in [k for k in self._consecutive if k[1] == url]:
                del self._consecutive[key]

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            by_kind: Counter = Counter()
            by_domain: Counter = Counter()
            for (kind, url), count in self._counts.items():
                by_kind[kind] += count
                host = hostname(url)
                if host:
                    by_domain[host] += count
            return {
                "total_errors": self._total,
                "errors_by_kind": dict(by_kind),
                "errors_by_domain": dict(by_domain),
                "consecutive_errors": {
                    f"{kind}:{url}": n for (kind, url), n in self._consecutive.items()
                },
                "last_error": self._last_error,
                "fatal": self.fatal,
                "fatal_reason": self.fatal_reason,
            }
