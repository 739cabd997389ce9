# card_crawler/writer.py

from __future__ import annotations
import json
from dataclasses import asdict
from pathlib import Path
from typing import Any, Dict, Union

from .crawler import CrawlConfig, CrawlReport


def build_output(report: CrawlReport, config: CrawlConfig) -> Dict[str, Any]:
    """
    Assemble the JSON document for one crawl run:
      - card_url: the product page the crawl started from
      - extraction_metadata: state, timings, completeness, validation, settings, error stats
      - card_data: the merged card record
      - sources: every source that contributed, in aggregation order
    """
    record = report.record.to_serializable_dict()
    metadata = report.to_serializable_dict()
    metadata["settings"] = asdict(config)
    return {
        "card_url": config.start_url,
        "extraction_metadata": metadata,
        "card_data": record["card_data"],
        "sources": record["sources"],
    }


def write_card_json(
    report: CrawlReport,
    config: CrawlConfig,
    output_path: Union[str, Path],
) -> Path:
    """
    Write one crawl run to a pretty-printed JSON file.

    Non-ASCII text (e.g. the "₹" in fee amounts) is written as-is.

    Returns:
        Path to the written JSON file.
    """
    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)

    document = build_output(report, config)
    with output_path.open("w", encoding="utf-8") as f:
        json.dump(document, f, ensure_ascii=False, indent=2, default=str)
        f.write("\n")

    return output_path
