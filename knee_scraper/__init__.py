# knee_scraper/__init__.py
"""
KneeScraper package initializer.
Defines package version, exposes the crawl API and CLI.
"""
__version__ = "0.1.0"

from knee_scraper.config import CrawlConfig, load_config
from knee_scraper.crawler.crawler import RecursiveCrawler, rec_scrape
from knee_scraper.crawler.extractor import extract, extract_links, scrape_js_content
from knee_scraper.crawler.registry import VisitedRegistry
from knee_scraper.engine import run, run_many

# Expose CLI entry point
from .cli import cli  # экспорт для pytest
