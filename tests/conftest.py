# tests/conftest.py
"""
Shared fakes: a requests-like session that serves canned responses, and a
manual clock for the rate limiter. Nothing in the suite touches the network.
"""

from __future__ import annotations

import threading
from typing import Callable, Dict, List, Tuple, Union

import pytest

from card_crawler.errors import ErrorTracker
from card_crawler.fetcher import Fetcher
from card_crawler.rate_limiter import DomainRateLimiter


class FakeResponse:
    def __init__(
        self,
        status_code: int = 200,
        text: str = "",
        content: bytes = b"",
        url: str = "",
        headers: Dict[str, str] = None,
    ) -> None:
        self.status_code = status_code
        self.text = text
        self.content = content or text.encode("utf-8")
        self.url = url
        self.headers = dict(headers or {})
        self.closed = False

    def iter_content(self, chunk_size: int = 1):
        for start in range(0, len(self.content), chunk_size):
            yield self.content[start : start + chunk_size]

    def close(self) -> None:
        self.closed = True


Reply = Union[FakeResponse, Exception, Callable[[], FakeResponse]]


class FakeSession:
    """
    Serves queued replies per (method, url). The last reply for a route repeats.
    Unknown routes answer 404.
    """

    def __init__(self) -> None:
        self.headers: Dict[str, str] = {}
        self.calls: List[Tuple[str, str]] = []
        self._routes: Dict[Tuple[str, str], List[Reply]] = {}
        self._lock = threading.Lock()

    def route(self, url: str, *replies: Reply, method: str = "GET") -> "FakeSession":
        self._routes[(method, url)] = list(replies)
        return self

    def _reply(self, method: str, url: str) -> FakeResponse:
        with self._lock:
            self.calls.append((method, url))
            queue = self._routes.get((method, url))
            if not queue:
                reply: Reply = FakeResponse(404, url=url)
            elif len(queue) > 1:
                reply = queue.pop(0)
            else:
                reply = queue[0]

        if isinstance(reply, Exception):
            raise reply
        if callable(reply) and not isinstance(reply, FakeResponse):
            reply = reply()
        if not reply.url:
            reply.url = url
        return reply

    def get(self, url: str, **kwargs) -> FakeResponse:
        return self._reply("GET", url)

    def head(self, url: str, **kwargs) -> FakeResponse:
        return self._reply("HEAD", url)

    def count(self, method: str, url: str) -> int:
        return sum(1 for call in self.calls if call == (method, url))


class NoJitter:
    """Stands in for random.Random in backoff_delay."""

    def uniform(self, a: float, b: float) -> float:
        return a


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start
        self.sleeps: List[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += seconds


def html_page(title: str, body: str, links: List[Tuple[str, str]] = ()) -> str:
    anchors = "\n".join(f'<a href="{href}">{text}</a>' for href, text in links)
    return (
        f"<html><head><title>{title}</title></head><body>"
        f"<main><h1>{title}</h1><p>{body}</p></main>"
        f"<nav>{anchors}</nav>"
        f"</body></html>"
    )


def pdf_bytes(size: int = 400) -> bytes:
    head = b"%PDF-1.4\n"
    return head + b"0" * max(0, size - len(head))


@pytest.fixture
def session() -> FakeSession:
    return FakeSession()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def make_fetcher(session, tmp_path):
    """
    Fetcher wired to the fake session, a permissive limiter and no real sleeping.
    """

    def _make(**overrides) -> Fetcher:
        kwargs = dict(
            rate_limiter=DomainRateLimiter(
                requests_per_second=1000.0, burst_size=1000, min_interval_seconds=0.0
            ),
            # Room for the 5 rate-limited attempts a single URL may make
            error_tracker=ErrorTracker(max_consecutive_errors=10),
            session=session,
            sleep=lambda seconds: None,
            backoff_base_seconds=0.0,
            rng=NoJitter(),
            pdf_dir=tmp_path / "pdfs",
            pdf_text_extractor=lambda path: "Regalia Gold terms and conditions. Annual fee of Rs. 2,500.",
        )
        kwargs.update(overrides)
        return Fetcher(**kwargs)

    return _make
