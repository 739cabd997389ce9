# tests/test_writer.py

import json

from card_crawler.aggregator import CardDataAggregator
from card_crawler.crawler import CrawlConfig, CrawlReport, CrawlState
from card_crawler.models import ContentType, FetchResult
from card_crawler.validator import validate_card_record
from card_crawler.writer import build_output, write_card_json

SEED = "https://www.hdfcbank.com/personal/pay/cards/credit-cards/regalia-gold-credit-card"


def _report():
    agg = CardDataAggregator()
    agg.add_source(
        {"card_name": "Regalia Gold Credit Card", "annual_fee": "₹2,500", "benefits": ["Lounge Access"]},
        ContentType.HTML,
        SEED,
        metadata={"title": "Regalia Gold"},
    )
    record = agg.merge()
    return CrawlReport(
        state=CrawlState.DONE,
        record=record,
        completeness=agg.completeness(),
        results=[FetchResult(url=SEED, content_type=ContentType.HTML, raw_content="<html>", status_code=200)],
        error_stats={"total_errors": 0},
        validation=validate_card_record(record.fields),
    )


def test_build_output_layout():
    config = CrawlConfig(start_url=SEED, base_domain="hdfcbank.com", max_pages=4)

    doc = build_output(_report(), config)

    assert list(doc) == ["card_url", "extraction_metadata", "card_data", "sources"]
    assert doc["card_url"] == SEED
    meta = doc["extraction_metadata"]
    assert meta["state"] == "done"
    assert meta["timed_out"] is False
    assert meta["settings"]["max_pages"] == 4
    assert meta["settings"]["base_domain"] == "hdfcbank.com"
    assert meta["completeness"]["filled_fields"] == 3
    assert meta["completeness"]["total_fields"] == 19
    assert meta["fetch_results"][0]["status_code"] == 200
    assert "raw_content" not in meta["fetch_results"][0]
    assert meta["validation"]["is_valid"] is False
    assert meta["validation"]["errors"] == ["Required field 'joining_fee' is missing or empty"]


def test_write_card_json(tmp_path):
    config = CrawlConfig(start_url=SEED, base_domain="hdfcbank.com")
    output = tmp_path / "nested" / "card.json"

    written = write_card_json(_report(), config, output)

    assert written == output
    raw = output.read_text(encoding="utf-8")
    assert "₹2,500" in raw
    assert raw.startswith("{\n  ")

    data = json.loads(raw)
    assert data["card_data"]["annual_fee"] == "₹2,500"
    assert data["card_data"]["benefits"] == ["Lounge Access"]
    assert data["card_data"]["rewards"] == []
    assert data["sources"][0]["source_type"] == "html"
    assert data["sources"][0]["metadata"]["title"] == "Regalia Gold"
    assert data["extraction_metadata"]["error_stats"] == {"total_errors": 0}
