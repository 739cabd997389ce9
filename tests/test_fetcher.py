# tests/test_fetcher.py

import threading
from pathlib import Path

import requests

from card_crawler.errors import ContentValidationError, ErrorTracker
from card_crawler.models import ContentType, FetchOutcome
from conftest import FakeResponse, html_page, pdf_bytes

PAGE = "https://www.hdfcbank.com/personal/pay/cards/credit-cards/regalia-gold-credit-card"
PDF = "https://www.hdfcbank.com/content/bbp/repositories/regalia-gold/MITC.pdf"

HTML = html_page("Regalia Gold Credit Card", "Annual fee of Rs. 2,500 plus applicable taxes.")


# 1. HTML

def test_html_ok(session, make_fetcher):
    session.route(PAGE, FakeResponse(200, text=HTML))
    fetcher = make_fetcher()

    result = fetcher.fetch(PAGE, ContentType.HTML)

    assert result.outcome == FetchOutcome.OK
    assert result.raw_content == HTML
    assert result.status_code == 200
    assert result.final_url == PAGE
    assert result.attempts == 1
    assert session.headers["User-Agent"].startswith("CardCrawler")


def test_not_found_is_skipped_without_retry(session, make_fetcher):
    session.route(PAGE, FakeResponse(404))
    fetcher = make_fetcher()

    result = fetcher.fetch(PAGE)

    assert result.outcome == FetchOutcome.SKIP
    assert result.error_kind == "not_found"
    assert result.status_code == 404
    assert session.count("GET", PAGE) == 1


def test_server_error_retried_then_ok(session, make_fetcher):
    sleeps = []
    session.route(PAGE, FakeResponse(503), FakeResponse(200, text=HTML))
    fetcher = make_fetcher(sleep=sleeps.append, backoff_base_seconds=1.0)

    result = fetcher.fetch(PAGE)

    assert result.ok
    assert result.attempts == 2
    assert session.count("GET", PAGE) == 2
    assert sleeps == [2.0]


def test_timeouts_exhaust_attempts_then_skip(session, make_fetcher):
    session.route(PAGE, requests.exceptions.ReadTimeout("read timed out"))
    fetcher = make_fetcher(max_attempts=3)

    result = fetcher.fetch(PAGE)

    assert result.outcome == FetchOutcome.SKIP
    assert result.error_kind == "timeout"
    assert result.attempts == 3
    assert session.count("GET", PAGE) == 3


def test_rate_limited_gets_extra_attempts(session, make_fetcher):
    session.route(PAGE, FakeResponse(429))
    fetcher = make_fetcher(max_attempts=3)

    result = fetcher.fetch(PAGE)

    assert result.error_kind == "rate_limited"
    assert session.count("GET", PAGE) == 5


def test_short_body_is_validation_error(session, make_fetcher):
    session.route(PAGE, FakeResponse(200, text="<p>hi</p>"))
    fetcher = make_fetcher()

    result = fetcher.fetch(PAGE)

    assert result.outcome == FetchOutcome.SKIP
    assert result.error_kind == "validation"
    assert session.count("GET", PAGE) == 1


def test_fatal_when_tracker_threshold_crossed(session, make_fetcher):
    session.route(PAGE, FakeResponse(500))
    fetcher = make_fetcher(error_tracker=ErrorTracker(max_consecutive_errors=1), max_attempts=3)

    result = fetcher.fetch(PAGE)

    assert result.outcome == FetchOutcome.FATAL
    assert fetcher.error_tracker.fatal


def test_cancelled_fetch_never_hits_network(session, make_fetcher):
    session.route(PAGE, FakeResponse(200, text=HTML))
    cancel = threading.Event()
    cancel.set()

    result = make_fetcher().fetch(PAGE, cancel=cancel)

    assert result.outcome == FetchOutcome.SKIP
    assert result.error == "cancelled"
    assert session.calls == []


# 2. PDF

def test_pdf_ok_and_file_removed(session, make_fetcher, tmp_path):
    seen_paths = []

    def extractor(path: Path) -> str:
        seen_paths.append(path)
        assert path.exists()
        return "Most Important Terms and Conditions"

    session.route(PDF, FakeResponse(200), method="HEAD")
    session.route(PDF, FakeResponse(200, content=pdf_bytes()))
    fetcher = make_fetcher(pdf_text_extractor=extractor)

    result = fetcher.fetch(PDF, ContentType.PDF)

    assert result.ok
    assert result.text == "Most Important Terms and Conditions"
    assert result.file_path is None
    assert not seen_paths[0].exists()


def test_pdf_kept_when_requested(session, make_fetcher):
    session.route(PDF, FakeResponse(200), method="HEAD")
    session.route(PDF, FakeResponse(200, content=pdf_bytes()))
    fetcher = make_fetcher(keep_pdfs=True)

    result = fetcher.fetch(PDF, ContentType.PDF)

    assert result.ok
    assert Path(result.file_path).exists()
    assert Path(result.file_path).read_bytes().startswith(b"%PDF-")


def test_pdf_failed_head_request_is_silent_skip(session, make_fetcher):
    session.route(PDF, FakeResponse(404), method="HEAD")
    fetcher = make_fetcher()

    result = fetcher.fetch(PDF, ContentType.PDF)

    assert result.outcome == FetchOutcome.SKIP
    assert result.error_kind is None
    assert session.count("GET", PDF) == 0
    assert fetcher.error_tracker.total_errors == 0


def test_pdf_without_signature_rejected(session, make_fetcher, tmp_path):
    session.route(PDF, FakeResponse(200), method="HEAD")
    session.route(PDF, FakeResponse(200, content=b"<html>" + b"x" * 500))
    fetcher = make_fetcher()

    result = fetcher.fetch(PDF, ContentType.PDF)

    assert result.outcome == FetchOutcome.SKIP
    assert result.error_kind == "validation"
    assert list((tmp_path / "pdfs").glob("*.pdf")) == []


def test_pdf_too_small_rejected(session, make_fetcher):
    session.route(PDF, FakeResponse(200), method="HEAD")
    session.route(PDF, FakeResponse(200, content=b"%PDF-1.4"))

    result = make_fetcher().fetch(PDF, ContentType.PDF)

    assert result.error_kind == "validation"


def test_pdf_oversize_by_header_or_stream(session, make_fetcher, tmp_path):
    session.route(PDF, FakeResponse(200), method="HEAD")
    session.route(
        PDF,
        FakeResponse(200, content=pdf_bytes(400), headers={"Content-Length": "999999"}),
        FakeResponse(200, content=pdf_bytes(5000)),
    )
    fetcher = make_fetcher(max_pdf_bytes=1000)

    by_header = fetcher.fetch(PDF, ContentType.PDF)
    by_stream = fetcher.fetch(PDF, ContentType.PDF)

    assert by_header.error_kind == "validation"
    assert "too large" in by_header.error
    assert by_stream.error_kind == "validation"
    assert list((tmp_path / "pdfs").glob("*.pdf")) == []


def test_pdf_extraction_failure_is_skip(session, make_fetcher, tmp_path):
    def extractor(path):
        raise ContentValidationError("No extractable text")

    session.route(PDF, FakeResponse(200), method="HEAD")
    session.route(PDF, FakeResponse(200, content=pdf_bytes()))

    result = make_fetcher(pdf_text_extractor=extractor).fetch(PDF, ContentType.PDF)

    assert result.outcome == FetchOutcome.SKIP
    assert result.error_kind == "validation"
    assert list((tmp_path / "pdfs").glob("*.pdf")) == []


def test_close_removes_owned_temp_dir(session, make_fetcher):
    session.route(PDF, FakeResponse(200), method="HEAD")
    session.route(PDF, FakeResponse(200, content=pdf_bytes()))
    fetcher = make_fetcher(pdf_dir=None)

    fetcher.fetch(PDF, ContentType.PDF)
    pdf_dir = fetcher._pdf_dir
    assert pdf_dir is not None and pdf_dir.exists()

    fetcher.close()
    assert not pdf_dir.exists()
