# card_crawler/parser.py

from __future__ import annotations
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

from bs4 import BeautifulSoup, Tag
from pypdf import PdfReader

from .config_behavior import (
    PARSER_BAD_CONTAINER_HINTS,
    PARSER_CHROME_TAGS,
    PARSER_DROP_TAGS,
    PARSER_SKIP_HREF_PREFIXES,
)
from .errors import ContentValidationError
from .models import LinkCandidate
from .urls import normalize

logger = logging.getLogger(__name__)


@dataclass
class ParsedPage:
    """
    Structured representation of a parsed HTML page: its clean text plus every
    link candidate found on it.
    """
    url: str
    title: str
    text: str
    headings: List[str] = field(default_factory=list)
    links: List[LinkCandidate] = field(default_factory=list)


def _extract_title(soup: BeautifulSoup) -> str:
    """
    Extract best page title:
    1. <title> tag (browser title)
    2. First <h1> (main visible title)
    """
    if soup.title and soup.title.string:
        return soup.title.string.strip()

    h1 = soup.find("h1")
    if h1 and h1.get_text(strip=True):
        return h1.get_text(strip=True)

    return ""


def _clean_text(raw_text: str) -> str:
    """
    Normalize extracted text:
    - Strip whitespace
    - Collapse multiple blank lines
    - Preserve natural paragraph structure
    """
    lines = raw_text.splitlines()
    cleaned = []

    for line in lines:
        stripped = " ".join(line.split())
        if not stripped:
            # preserve single blank line but collapse multiples
            if cleaned and cleaned[-1] != "":
                cleaned.append("")
            continue
        cleaned.append(stripped)

    return "\n".join(cleaned).strip()


def _is_chrome_container(tag: Tag) -> bool:
    """
    Determine if a tag appears to be a nav/footer/sidebar container
    by checking its class/id/role/aria-label for known hint substrings.
    """
    if tag.name in PARSER_CHROME_TAGS:
        return True

    attr_values = []

    for attr in ("class", "id", "role", "aria-label"):
        v = tag.get(attr)
        if not v:
            continue

        # classes can be lists, convert all to lowercase strings
        if isinstance(v, list):
            attr_values.extend(str(x).lower() for x in v)
        else:
            attr_values.append(str(v).lower())

    return any(hint in value for value in attr_values for hint in PARSER_BAD_CONTAINER_HINTS)


def _remove_chrome_sections(container: Tag) -> None:
    """
    Remove nav/footer/sidebar sections so boilerplate does not leak into the
    text the relevance filter and field heuristics see.
    """
    to_remove = [tag for tag in container.find_all(True) if _is_chrome_container(tag)]

    # Decompose after collecting to avoid altering DOM during iteration
    for tag in to_remove:
        if not tag.decomposed:
            tag.decompose()


def extract_links(soup: BeautifulSoup, page_url: str) -> List[LinkCandidate]:
    """
    Collect <a href> candidates from the whole document (nav and footer included,
    that is where fee and terms links usually live).
    """
    links: List[LinkCandidate] = []

    for a in soup.find_all("a", href=True):
        href = a["href"].strip()

        if not href or href == "/" or href.lower().startswith(PARSER_SKIP_HREF_PREFIXES):
            continue

        title = a.get("title") or ""
        links.append(
            LinkCandidate(
                raw_href=href,
                canonical_url=normalize(href, page_url),
                anchor_text=a.get_text(" ", strip=True),
                title=title.strip() if isinstance(title, str) else "",
            )
        )

    return links


def parse_html(html: str, url: str) -> ParsedPage:
    """
    Convert raw HTML into a ParsedPage with:
      - Clean title
      - Headings (H1–H6)
      - Body text without scripts, forms or nav/footer/sidebar chrome
      - Link candidates (collected before chrome is removed)
    """
    soup = BeautifulSoup(html, "lxml")

    links = extract_links(soup, url)

    for tag in soup(PARSER_DROP_TAGS):
        tag.decompose()

    title = _extract_title(soup)
    body = soup.body or soup

    _remove_chrome_sections(body)

    headings = [
        h.get_text(" ", strip=True)
        for h in body.find_all(["h1", "h2", "h3", "h4", "h5", "h6"])
        if h.get_text(strip=True)
    ]

    text = _clean_text(body.get_text(separator="\n"))

    if len(text) < 50:
        logger.warning("Page may have minimal content: %s (%d chars)", url, len(text))

    return ParsedPage(url=url, title=title, text=text, headings=headings, links=links)


# --- PDF text ---------------------------------------------------------------

_CONTROL_CHARS_RE = re.compile(r"[\x00-\x08\x0b-\x1f\x7f]")
_SPACES_RE = re.compile(r"[ \t]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")


def clean_pdf_text(text: str) -> str:
    text = text.replace("\r\n", "\n").replace("\f", "\n")
    text = _CONTROL_CHARS_RE.sub("", text)
    text = _SPACES_RE.sub(" ", text)
    text = _BLANK_LINES_RE.sub("\n\n", text)
    return text.strip()


def extract_pdf_text(path: Union[str, Path], max_pages: Optional[int] = None) -> str:
    """
    Return the text of a downloaded PDF using ``pypdf``.

    Raises ContentValidationError when the file cannot be read or yields no text
    (e.g. scanned documents); the fetcher treats that as a permanent skip.
    """
    pdf_path = Path(path)
    try:
        reader = PdfReader(str(pdf_path))
        pages = reader.pages if not max_pages else reader.pages[:max_pages]
        chunks = [page.extract_text() or "" for page in pages]
    except Exception as e:
        raise ContentValidationError(f"PDF parsing failed for {pdf_path.name}: {e}") from e

    text = clean_pdf_text("\n\n".join(c for c in chunks if c.strip()))
    if not text:
        raise ContentValidationError(f"No extractable text in {pdf_path.name}")

    logger.info("Parsed PDF %s: %d pages, %d chars", pdf_path.name, len(chunks), len(text))
    return text
