# knee_scraper/report/json_report.py

"""
Генерация JSON-отчёта для проекта KneeScraper.

Сериализация одного или нескольких объектов CrawlReport в файл.
"""
import json
from pathlib import Path
from typing import Sequence, Union

from knee_scraper.crawler.models import CrawlReport


def render_json(
    reports: Union[CrawlReport, Sequence[CrawlReport]],
    output_path: Union[Path, str],
    *,
    pretty: bool = True,
) -> Path:
    """
    Сохраняет отчёт(ы) в формате JSON по указанному пути.

    Один отчёт сохраняется объектом, несколько списком.

    Пример:
    ```python
    from knee_scraper.report import render_json
    report_path = render_json(report, 'reports/report.json')
    print(f"JSON report saved to: {report_path}")
    ```
    """
    output = Path(output_path)
    output.parent.mkdir(parents=True, exist_ok=True)

    if isinstance(reports, CrawlReport):
        data = reports.to_dict()
    else:
        data = [r.to_dict() for r in reports]

    with output.open("w", encoding="utf-8") as f:
        json.dump(data, f, ensure_ascii=False, indent=2 if pretty else None)

    return output
