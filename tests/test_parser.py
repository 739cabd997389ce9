# tests/test_parser.py

import pytest
from pypdf import PdfWriter

from card_crawler.errors import ContentValidationError
from card_crawler.parser import clean_pdf_text, extract_pdf_text, parse_html

URL = "https://www.hdfcbank.com/personal/pay/cards/credit-cards/regalia-gold-credit-card"

HTML = """\
<!DOCTYPE html>
<html>
<head><title> Regalia Gold Credit Card | HDFC Bank </title>
<script>var tracking = "credit card";</script></head>
<body>
  <header class="site-menu"><a href="/personal/pay/cards/credit-cards">All cards</a></header>
  <main>
    <h1>Regalia Gold Credit Card</h1>
    <p>Annual fee of Rs. 2,500 plus applicable taxes.</p>


    <p>Complimentary lounge access at domestic airports.</p>
    <a href="fees-and-charges" title="Fees">Fees &amp; Charges</a>
    <a href="javascript:void(0)">Apply</a>
    <a href="mailto:cards@hdfcbank.com">Mail</a>
    <a href="#benefits">Benefits</a>
    <a href="/">Home</a>
    <form><input name="q"/><a href="/search">Search</a></form>
  </main>
  <footer><a href="/content/Regalia-Gold-MITC.pdf">MITC</a> Footer legal text</footer>
</body>
</html>
"""


def test_title_and_text_without_chrome_or_scripts():
    page = parse_html(HTML, URL)

    assert page.title == "Regalia Gold Credit Card | HDFC Bank"
    assert "Annual fee of Rs. 2,500" in page.text
    assert "Footer legal text" not in page.text
    assert "All cards" not in page.text
    assert "tracking" not in page.text
    assert "\n\n\n" not in page.text
    assert page.headings == ["Regalia Gold Credit Card"]


def test_links_collected_from_whole_document():
    page = parse_html(HTML, URL)
    hrefs = [link.raw_href for link in page.links]

    assert "/personal/pay/cards/credit-cards" in hrefs
    assert "/content/Regalia-Gold-MITC.pdf" in hrefs
    assert "/search" in hrefs
    assert "javascript:void(0)" not in hrefs
    assert "mailto:cards@hdfcbank.com" not in hrefs
    assert "#benefits" not in hrefs
    assert "/" not in hrefs


def test_link_metadata_and_canonical_url():
    page = parse_html(HTML, URL)
    fees = next(link for link in page.links if link.raw_href == "fees-and-charges")

    assert fees.anchor_text == "Fees & Charges"
    assert fees.title == "Fees"
    assert fees.canonical_url == "https://www.hdfcbank.com/personal/pay/cards/credit-cards/fees-and-charges"


def test_title_falls_back_to_h1():
    page = parse_html("<html><body><h1>Regalia Gold</h1><p>Text</p></body></html>", URL)
    assert page.title == "Regalia Gold"


def test_clean_pdf_text():
    raw = "Fees\r\nand\x07   charges\t\tapply\n\n\n\n\fSchedule"
    assert clean_pdf_text(raw) == "Fees\nand charges apply\n\nSchedule"


def test_pdf_without_text_rejected(tmp_path):
    path = tmp_path / "blank.pdf"
    writer = PdfWriter()
    writer.add_blank_page(width=200, height=200)
    with open(path, "wb") as fh:
        writer.write(fh)

    with pytest.raises(ContentValidationError):
        extract_pdf_text(path)


def test_unreadable_pdf_rejected(tmp_path):
    path = tmp_path / "broken.pdf"
    path.write_bytes(b"%PDF-1.4\nthis is not really a pdf")

    with pytest.raises(ContentValidationError):
        extract_pdf_text(path)
