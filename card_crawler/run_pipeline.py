#!/usr/bin/env python
"""
End-to-end runner for the seed page → links → pages → PDFs → card JSON pipeline.

Usage examples:

    # Use the Regalia Gold profile (defined in config_runtime_profiles.py)
    python -m card_crawler.run_pipeline --profile hdfc_regalia_gold

    # Override output path and budgets
    python -m card_crawler.run_pipeline --profile hdfc_regalia_gold \
        --output output_data/regalia_gold_full.json \
        --max-pages 20 --max-pdfs 8

    # Dry run: fetch the seed page, print the crawl plan, no JSON written
    python -m card_crawler.run_pipeline --profile hdfc_regalia_gold --dry-run

    # No profile: specify a start URL directly
    card-crawler \
        --url https://www.hdfcbank.com/personal/pay/cards/credit-cards/regalia-gold-credit-card \
        --max-pages 5 \
        --output output_data/regalia_gold.json
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import fields as dataclass_fields
from pathlib import Path
from typing import List, Optional
from urllib.parse import urlparse

from card_crawler.config_runtime_profiles import CRAWL_PROFILES
from card_crawler.crawler import CrawlConfig, CrawlOrchestrator, CrawlState
from card_crawler.enrich import extract_card_fields
from card_crawler.fetcher import Fetcher
from card_crawler.models import ContentType
from card_crawler.parser import parse_html
from card_crawler.triage import prioritized, triage_links
from card_crawler.writer import write_card_json

logger = logging.getLogger(__name__)

# Safety caps to avoid accidentally hammering a server
MAX_PAGES_HARD_CAP = 100
MAX_PDFS_HARD_CAP = 25


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """
    Parse card-crawler arguments.

    Two modes:
      --profile <name>   settings from config_runtime_profiles.CRAWL_PROFILES
      --url <start_url>  ad-hoc crawl of one product page

    One of the two must be given.
    """
    parser = argparse.ArgumentParser(
        description="Crawl a credit card product page, its linked pages and PDFs into one card record."
    )

    group = parser.add_mutually_exclusive_group(required=True)
    group.add_argument(
        "--profile",
        choices=sorted(CRAWL_PROFILES.keys()),
        help="Crawl profile name (see config_runtime_profiles.py).",
    )
    group.add_argument(
        "--url",
        type=str,
        help=(
            "Card product page to start from. "
            "Links must stay on its domain (www. stripped) unless --base-domain is set."
        ),
    )

    parser.add_argument(
        "--base-domain",
        type=str,
        default=None,
        help="Domain links must stay on (subdomains allowed), e.g. hdfcbank.com.",
    )

    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help=(
            "Card JSON path. "
            "Defaults to the profile's default_output, "
            "otherwise falls back to output_data/card_data.json."
        ),
    )

    parser.add_argument(
        "--max-pages",
        type=int,
        default=None,
        help=f"Linked HTML pages to fetch after the seed (hard cap {MAX_PAGES_HARD_CAP}).",
    )

    parser.add_argument(
        "--max-pdfs",
        type=int,
        default=None,
        help=f"Linked PDFs to fetch after the pages (hard cap {MAX_PDFS_HARD_CAP}).",
    )

    parser.add_argument(
        "--delay-seconds",
        type=float,
        default=None,
        help="Pause between fetches within a phase, in seconds.",
    )

    parser.add_argument(
        "--concurrency",
        type=int,
        default=None,
        help="Number of fetch workers per phase. Default: 1.",
    )

    parser.add_argument(
        "--keep-pdfs",
        action="store_true",
        help="Keep downloaded PDFs on disk instead of deleting them after text extraction.",
    )

    parser.add_argument(
        "--dry-run",
        action="store_true",
        help=(
            "Dry run mode: fetch only the seed page, print the fields found and "
            "the links that would be crawled, and do NOT write a JSON file."
        ),
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        help="DEBUG, INFO, WARNING or ERROR (default INFO).",
    )

    return parser.parse_args(argv)


def _apply_cap(name: str, value: int, cap: int) -> int:
    """
    Enforce a hard safety cap on a fetch budget to avoid hammering servers.
    """
    if value < 0:
        raise ValueError(f"{name} must not be negative.")
    if value > cap:
        logger.warning(
            "Requested %s=%d exceeds hard cap of %d. Capping to %d.",
            name,
            value,
            cap,
            cap,
        )
        return cap
    return value


def _apply_overrides(settings: dict, args: argparse.Namespace) -> dict:
    if args.base_domain:
        settings["base_domain"] = args.base_domain
    if args.max_pages is not None:
        settings["max_pages"] = args.max_pages
    if args.max_pdfs is not None:
        settings["max_pdfs"] = args.max_pdfs
    if args.delay_seconds is not None:
        settings["delay_seconds"] = args.delay_seconds
    if args.concurrency is not None:
        settings["concurrency"] = args.concurrency
    if args.keep_pdfs:
        settings["keep_pdfs"] = True

    settings["max_pages"] = _apply_cap("max_pages", settings.get("max_pages", 10), MAX_PAGES_HARD_CAP)
    settings["max_pdfs"] = _apply_cap("max_pdfs", settings.get("max_pdfs", 5), MAX_PDFS_HARD_CAP)
    return settings


def _config_kwargs(settings: dict) -> dict:
    """
    Keep only keys CrawlConfig understands (profiles also carry e.g. default_output).
    """
    known = {f.name for f in dataclass_fields(CrawlConfig)}
    return {k: v for k, v in settings.items() if k in known}


def build_crawl_config_from_profile(
    profile_name: str, args: argparse.Namespace
) -> tuple[CrawlConfig, dict]:
    """
    Profile settings, then CLI overrides, then the hard caps.
    Returns:
      (crawl_config, profile_dict)
    """
    profile = CRAWL_PROFILES[profile_name]
    settings = _apply_overrides(dict(profile), args)

    logger.info(
        "Using profile '%s' crawl config: domain=%s, start_url=%s, "
        "max_pages=%s, max_pdfs=%s, delay_seconds=%s",
        profile_name,
        settings["base_domain"],
        settings["start_url"],
        settings["max_pages"],
        settings["max_pdfs"],
        settings.get("delay_seconds"),
    )

    return CrawlConfig(**_config_kwargs(settings)), profile


def build_crawl_config_from_url(args: argparse.Namespace) -> CrawlConfig:
    """
    CrawlConfig for --url mode.
    - base_domain inferred from the URL host (without "www.") unless given
    """
    if not args.url:
        raise ValueError("URL mode requires --url.")

    parsed = urlparse(args.url)
    if not parsed.scheme or not parsed.netloc:
        raise ValueError(f"Invalid URL provided: {args.url}")

    host = (parsed.hostname or "").lower()
    if host.startswith("www."):
        host = host[len("www.") :]

    settings = _apply_overrides({"start_url": args.url, "base_domain": host}, args)

    logger.info(
        "Using URL-based crawl config: domain=%s, start_url=%s, "
        "max_pages=%s, max_pdfs=%s, delay_seconds=%s",
        settings["base_domain"],
        settings["start_url"],
        settings["max_pages"],
        settings["max_pdfs"],
        settings.get("delay_seconds"),
    )

    return CrawlConfig(**_config_kwargs(settings))


def run_dry_run(crawl_config: CrawlConfig, fetcher: Optional[Fetcher] = None, max_preview: int = 10) -> int:
    """
    Preview a crawl without running it:
    - Fetch and parse the seed page only
    - Print the fields extracted from it and the top links per phase
    - Do NOT crawl further or write JSON
    """
    logger.info("Running in DRY-RUN mode (max_preview=%d)", max_preview)

    fetcher = fetcher or Fetcher(
        user_agent=crawl_config.user_agent,
        timeout_seconds=crawl_config.timeout_seconds,
        max_attempts=crawl_config.max_attempts,
    )
    try:
        result = fetcher.fetch(crawl_config.start_url, ContentType.HTML)
    finally:
        fetcher.close()

    if not result.ok:
        logger.error("Seed page could not be fetched: %s", result.error)
        return 1

    page_url = result.final_url or crawl_config.start_url
    parsed = parse_html(result.raw_content or "", page_url)
    triaged = triage_links(parsed.links, crawl_config.base_domain, base_url=page_url)
    card_fields = extract_card_fields(parsed.text, page_url)

    print("\n-----------------------------")
    print(f"    URL:          {page_url}")
    print(f"    Title:        {parsed.title!r}")
    print(f"    Text chars:   {len(parsed.text)}")
    print(f"    Link stats:   {triaged.stats}")
    print(f"    Seed fields:  {sorted(card_fields)}")

    for label, links, budget in (
        ("Pages", triaged.internal, crawl_config.max_pages),
        ("PDFs", triaged.pdfs, crawl_config.max_pdfs),
    ):
        planned = prioritized(links)[: min(budget, max_preview)]
        print(f"\n    {label} to crawl ({len(planned)} of {len(links)}, budget {budget}):")
        for link in planned:
            print(f"      [{link.priority_score:>3}] {link.category:<12} {link.url}")
    print("-----------------------------\n")

    logger.info("Dry run finished. No output file written.")
    return 0


def _resolve_output_path(
    args: argparse.Namespace,
    profile: Optional[dict] = None,
) -> Path:
    """
    Where the card JSON goes, first match wins:
      1) --output
      2) the profile's default_output
      3) output_data/card_data.json
    """
    if args.output:
        return Path(args.output)

    if profile is not None and "default_output" in profile:
        return Path(profile["default_output"])

    return Path("output_data/card_data.json")


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )

    if args.profile:
        logger.info("Starting pipeline in PROFILE mode: profile=%s", args.profile)
        crawl_config, profile = build_crawl_config_from_profile(args.profile, args)
        output_path = _resolve_output_path(args, profile)
    else:
        logger.info("Starting pipeline in URL mode: url=%s", args.url)
        crawl_config = build_crawl_config_from_url(args)
        output_path = _resolve_output_path(args, profile=None)

    if args.dry_run:
        return run_dry_run(crawl_config)

    logger.info("Beginning crawl...")
    report = CrawlOrchestrator(crawl_config).run()

    output_file = write_card_json(report, crawl_config, output_path)

    logger.info(
        "Pipeline completed with state=%s. Wrote card record (%.1f%% complete, %d source(s)) to %s.",
        report.state.value,
        report.completeness.percentage,
        len(report.record.sources),
        output_file,
    )
    if report.summary:
        logger.info("Card record summary:\n%s", report.summary)
    if report.validation is not None:
        logger.info(
            "Validation: valid=%s, score=%.1f, %d error(s), %d warning(s)",
            report.validation.is_valid,
            report.validation.score,
            len(report.validation.errors),
            len(report.validation.warnings),
        )

    if report.state == CrawlState.FAILED:
        logger.error("Crawl failed: %s", report.fatal_reason)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
