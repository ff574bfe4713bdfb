"""knee_scraper.report: сохранение отчётов обхода, используется CLI и тестами."""

from knee_scraper.report.json_report import render_json

__all__ = ["render_json"]
