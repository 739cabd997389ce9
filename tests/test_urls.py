# tests/test_urls.py

import pytest

from card_crawler.urls import hostname, is_pdf_url, is_same_site, normalize, repair_url

BASE = "https://www.hdfcbank.com/personal/pay/cards/credit-cards/regalia-gold-credit-card"


# 1. Canonical form

def test_relative_href_resolved_against_base():
    assert (
        normalize("/personal/pay/cards/credit-cards/regalia-gold-credit-card/fees-and-charges", BASE)
        == "https://www.hdfcbank.com/personal/pay/cards/credit-cards/regalia-gold-credit-card/fees-and-charges"
    )


def test_fragment_dropped_and_host_lowercased():
    assert normalize("HTTPS://WWW.HDFCBank.com/Personal/Pay/#top") == "https://www.hdfcbank.com/Personal/Pay"


def test_query_kept():
    assert normalize("https://www.hdfcbank.com/search-page?card=regalia") == "https://www.hdfcbank.com/search-page?card=regalia"


def test_slash_runs_and_doubled_host_removed():
    assert (
        normalize("https://www.hdfcbank.com/www.hdfcbank.com//personal///pay/")
        == "https://www.hdfcbank.com/personal/pay"
    )


@pytest.mark.parametrize(
    "href",
    [
        "/personal/pay/cards/credit-cards/",
        "https://www.hdfcbank.com/www.hdfcbank.com/personal//pay/#x",
        "https://www.hdfcbank.com/content/CCredit%%20Cards/fees.pdf",
        "HTTP://WWW.HDFCBANK.COM/A/B/",
    ],
)
def test_normalize_is_idempotent(href):
    once = normalize(href, BASE)
    assert once is not None
    assert normalize(once) == once


# 2. Repairs

def test_known_corruptions_repaired():
    assert repair_url("/content/CCredit%20Carrds/MITC.pdf") == "/content/Credit%20Cards/MITC.pdf"


def test_repairs_run_until_stable():
    assert repair_url("a%20%20%20%20b") == "a%20b"


def test_whitespace_encoded_before_repairs():
    assert repair_url("/fees  and charges") == "/fees%20and%20charges"


# 3. Rejections

@pytest.mark.parametrize(
    "href",
    [
        None,
        "",
        "   ",
        "#section",
        "javascript:void(0)",
        "mailto:support@hdfcbank.com",
        "tel:18002026161",
        "ftp://files.hdfcbank.com/a.pdf",
        "/cards/{{cardName}}/apply",
        "/cards/%7B%7BcardName%7D%7D",
        "/docs/fees.pdf/terms.pdf",
        "/personal/traansfer-money",
    ],
)
def test_unusable_hrefs_rejected(href):
    assert normalize(href, BASE) is None


def test_overlong_url_rejected():
    assert normalize("/" + "a" * 2100, BASE) is None


# 4. Helpers

def test_same_site_accepts_subdomains_only():
    assert is_same_site("https://www.hdfcbank.com/x", "hdfcbank.com")
    assert is_same_site("https://hdfcbank.com/x", "hdfcbank.com")
    assert not is_same_site("https://nothdfcbank.com/x", "hdfcbank.com")
    assert not is_same_site("https://hdfcbank.com.evil.io/x", "hdfcbank.com")


def test_pdf_detection_ignores_case_and_query():
    assert is_pdf_url("https://www.hdfcbank.com/content/MITC.PDF")
    assert is_pdf_url("https://www.hdfcbank.com/content/mitc.pdf?v=2")
    assert not is_pdf_url("https://www.hdfcbank.com/content/pdf-guide")


def test_hostname_lowercases():
    assert hostname("https://WWW.HDFCBANK.com/a") == "www.hdfcbank.com"
    assert hostname("not a url") == ""
