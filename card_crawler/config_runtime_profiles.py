# card_crawler/config_runtime_profiles.py
"""
Crawl profiles:
Define card-specific crawling settings.
Used by run_pipeline.py to construct CrawlConfig.
"""

CRAWL_PROFILES = {
    "hdfc_regalia_gold": {
        "start_url": "https://www.hdfcbank.com/personal/pay/cards/credit-cards/regalia-gold-credit-card",
        "base_domain": "hdfcbank.com",
        "max_pages": 10,
        "max_pdfs": 5,
        "delay_seconds": 1.5,
        "concurrency": 1,
        "requests_per_second": 2.0,
        "burst_size": 5,
        "min_interval_seconds": 0.5,
        "max_attempts": 3,
        "timeout_seconds": 30,
        "default_output": "output_data/hdfc_regalia_gold.json",
    },

    # Add more profiles here...
}
