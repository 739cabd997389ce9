# card_crawler/rate_limiter.py

from __future__ import annotations
import logging
import threading
import time
from dataclasses import dataclass, replace
from typing import Callable, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class DomainBudget:
    """
    Token-bucket state for one hostname.

    Lives for the whole run; only DomainRateLimiter.reset() throws it away.
    """

    domain: str
    tokens: float
    last_refill_at: float
    last_request_at: Optional[float] = None


class _DomainSlot:
    """
    A DomainBudget plus the lock that serializes every read/write of it.
    """

    def __init__(self, budget: DomainBudget) -> None:
        self.budget = budget
        self.lock = threading.Lock()


class DomainRateLimiter:
    """
    Per-domain token bucket with a minimum spacing between consecutive requests.

    Responsibilities:
    - Allow bursts of up to burst_size requests per domain, refilling at requests_per_second
    - Keep at least min_interval_seconds between two requests to the same domain
    - Block callers (politely, never spinning faster than poll_interval_seconds) until allowed
    - Consume exactly one token per successful acquire, under a per-domain lock

    One instance is created per crawl run and handed to every Fetcher.
    """

    def __init__(
        self,
        requests_per_second: float = 2.0,
        burst_size: int = 5,
        min_interval_seconds: float = 0.5,
        max_wait_seconds: float = 10.0,
        poll_interval_seconds: float = 0.05,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """
        param requests_per_second: Refill rate of each domain's bucket
        param burst_size: Bucket capacity; a fresh bucket starts full
        param min_interval_seconds: Smallest gap allowed between two requests to one domain
        param max_wait_seconds: Longest single wait step while a bucket is empty
        param poll_interval_seconds: Shortest single wait step
        param clock / sleep: Injectable for tests
        """
        if requests_per_second <= 0:
            raise ValueError("requests_per_second must be positive.")
        if burst_size < 1:
            raise ValueError("burst_size must be at least 1.")

        self.requests_per_second = requests_per_second
        self.burst_size = burst_size
        self.min_interval_seconds = max(0.0, min_interval_seconds)
        self.max_wait_seconds = max_wait_seconds
        self.poll_interval_seconds = poll_interval_seconds
        self._clock = clock
        self._sleep = sleep

        self._slots: Dict[str, _DomainSlot] = {}
        self._slots_lock = threading.Lock()

    # -------- state -------------------------------------------------------

    def _slot(self, domain: str) -> _DomainSlot:
        key = domain.lower()
        with self._slots_lock:
            slot = self._slots.get(key)
            if slot is None:
                slot = _DomainSlot(
                    DomainBudget(
                        domain=key,
                        tokens=float(self.burst_size),
                        last_refill_at=self._clock(),
                    )
                )
                self._slots[key] = slot
            return slot

    def _refill(self, budget: DomainBudget) -> None:
        now = self._clock()
        elapsed = max(0.0, now - budget.last_refill_at)
        budget.tokens = min(
            float(self.burst_size),
            budget.tokens + elapsed * self.requests_per_second,
        )
        budget.last_refill_at = now

    def budget(self, domain: str) -> DomainBudget:
        """
        Snapshot of a domain's current bucket (refilled to now).
        """
        slot = self._slot(domain)
        with slot.lock:
            self._refill(slot.budget)
            return replace(slot.budget)

    def reset(self, domain: Optional[str] = None) -> None:
        """
        Forget one domain's state, or every domain's when domain is None.
        """
        with self._slots_lock:
            if domain is None:
                self._slots.clear()
            else:
                self._slots.pop(domain.lower(), None)

    # -------- waiting ------------------------------------------------------

    def _wait(self, seconds: float, cancel: Optional[threading.Event]) -> bool:
        """
        Sleep for `seconds`. Returns False if cancel fired during the wait.
        """
        if cancel is not None:
            return not cancel.wait(seconds)
        self._sleep(seconds)
        return True

    def acquire(self, domain: str, cancel: Optional[threading.Event] = None) -> bool:
        """
        Block until `domain` may be hit again, then take one token.

        Returns True once the token is taken, False if `cancel` was set first
        (in which case no token is consumed).
        """
        slot = self._slot(domain)

        with slot.lock:
            budget = slot.budget

            if cancel is not None and cancel.is_set():
                return False

            # Spacing first: smooths out burst-then-silence patterns
            if budget.last_request_at is not None and self.min_interval_seconds > 0:
                gap = self.min_interval_seconds - (self._clock() - budget.last_request_at)
                if gap > 0:
                    if not self._wait(gap, cancel):
                        return False

            while True:
                self._refill(budget)
                if budget.tokens >= 1.0:
                    budget.tokens -= 1.0
                    budget.last_request_at = self._clock()
                    return True

                needed = (1.0 - budget.tokens) / self.requests_per_second
                wait_s = min(max(needed, self.poll_interval_seconds), self.max_wait_seconds)
                logger.debug("Rate limit hit for %s, waiting %.3fs", budget.domain, wait_s)
                if not self._wait(wait_s, cancel):
                    return False
