# === FILE: knee_scraper/cli.py ===
#!/usr/bin/env python3
"""
Точка входа для запуска скрейпера KneeScraper через командную строку.

Команды:
  run       Полный сценарий (robots.txt, открытые директории, cookies, обход) для одного или нескольких URL
  scrape    Рекурсивный обход с явными параметрами (глубина, целевая фраза, ключевые слова)
  links     Загрузить одну страницу и вывести найденные ссылки
  config    Показать текущую конфигурацию

Общие опции:
  --config PATH       Путь к YAML/JSON-конфигу (значения по умолчанию, если не указан)
  --log-level LEVEL   Уровень логирования (DEBUG, INFO, ...)
  --log-file PATH     Файл для логов (stdout, если не указан)
  --log-format FORMAT Формат логирования
  --error-log PATH    Файл для ошибок отдельных страниц

Пример:
  knee-scraper scrape https://example.com --max-depth 2 --target "Contact" --json report.json --pretty
"""
import asyncio
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import click
from pydantic import ValidationError

from knee_scraper import __version__
from knee_scraper.config import CrawlConfig, load_config
from knee_scraper.crawler.crawler import rec_scrape
from knee_scraper.crawler.extractor import extract_links
from knee_scraper.crawler.fetcher import Fetcher
from knee_scraper.crawler.models import CrawlReport
from knee_scraper.engine import run_many
from knee_scraper.errors import ConfigError, FetchError
from knee_scraper.logger import ErrorLog, init_logging
from knee_scraper.media import DiskSink
from knee_scraper.report.json_report import render_json
from knee_scraper.utils import random_user_agent, validate_seed

CONTEXT_SETTINGS = dict(help_option_names=["--help"])


def print_error(message: str):
    click.secho(message, fg='red', err=True)
    sys.exit(1)


def _emit(reports: Any, json_output: Optional[Path], pretty: bool) -> None:
    """Печатает отчёт(ы) в stdout или сохраняет в файл."""
    if json_output:
        try:
            saved = render_json(reports, json_output, pretty=pretty)
        except OSError as e:
            print_error(f'Ошибка при сохранении JSON: {e}')
        click.echo(f'JSON report: {saved}')
        return
    if isinstance(reports, CrawlReport):
        click.echo(reports.json(pretty=pretty))
    else:
        click.echo('[' + ','.join(r.json(pretty=pretty) for r in reports) + ']')


def _run_async(coro, timeout: Optional[float]):
    if timeout:
        return asyncio.run(asyncio.wait_for(coro, timeout=timeout))
    return asyncio.run(coro)


@click.group(context_settings=CONTEXT_SETTINGS)
@click.version_option(__version__, '--version', '-v', message='KneeScraper, version %(version)s')
@click.option(
    '--config', '-c', 'config_path',
    default=None,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help='Путь к файлу конфигурации YAML/JSON.'
)
@click.option(
    '--log-level', 'log_level',
    default='INFO', show_default=True,
    type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
    help='Уровень логирования'
)
@click.option(
    '--log-file', 'log_file',
    default=None,
    type=click.Path(writable=True, dir_okay=False, path_type=Path),
    help='Путь к файлу логов (stdout, если не указан)'
)
@click.option(
    '--log-format', 'log_format',
    default='%(asctime)s %(levelname)s %(message)s',
    show_default=True,
    help='Строка формата для логов'
)
@click.option(
    '--error-log', 'error_log',
    default='error.log',
    show_default=True,
    type=click.Path(dir_okay=False, path_type=Path),
    help='Файл для ошибок отдельных страниц'
)
@click.pass_context
def cli(ctx, config_path, log_level, log_file, log_format, error_log):
    """Группа команд KneeScraper CLI."""
    init_logging(
        level=log_level,
        log_file=str(log_file) if log_file else None,
        log_format=log_format
    )
    try:
        cfg = load_config(config_path) if config_path else CrawlConfig()
    except (OSError, ValueError, TypeError) as e:
        print_error(f'Ошибка загрузки конфигурации: {e}')
    ctx.ensure_object(dict)
    ctx.obj['config'] = cfg
    ctx.obj['error_log'] = error_log


@cli.command('run', context_settings=CONTEXT_SETTINGS)
@click.argument('urls', nargs=-1, required=True)
@click.option('--json', '-j', 'json_output', default=None,
              type=click.Path(writable=True, dir_okay=False, path_type=Path),
              help='Сохранить JSON-отчёт в файл')
@click.option('--pretty', is_flag=True, help='Преформатировать JSON-вывод (отступ 2)')
@click.option('--media-dir', 'media_dir', default=None,
              type=click.Path(file_okay=False, path_type=Path),
              help='Скачивать найденные медиа-файлы в эту папку')
@click.option('--scan-timeout', 'scan_timeout', type=float, default=None,
              help='Таймаут всего обхода (секунд)')
@click.pass_context
def run_cmd(ctx, urls, json_output, pretty, media_dir, scan_timeout):
    """Полный сценарий обхода для каждого URL (независимые запуски)."""
    cfg = ctx.obj['config']
    error_log = ErrorLog(ctx.obj['error_log'])
    try:
        reports = _run_async(
            run_many(list(urls), cfg, error_log=error_log, media_dir=media_dir), scan_timeout
        )
    except ConfigError as e:
        print_error(f'Неверный URL: {e}')
    except asyncio.TimeoutError:
        print_error(f'Обход не завершён за {scan_timeout} секунд')
    finally:
        error_log.close()
    _emit(reports[0] if len(reports) == 1 else reports, json_output, pretty)


@cli.command('scrape', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.option('--max-depth', '-d', 'max_depth', type=click.IntRange(min=0), default=None,
              help='Максимальная глубина (включительно)')
@click.option('--no-follow', 'no_follow', is_flag=True, help='Не переходить по ссылкам')
@click.option('--target', '-t', 'target', default=None,
              help='Целевая фраза: ссылки страницы без неё не обходятся')
@click.option('--user-agent', '-u', 'user_agent', default=None, help='Заголовок User-Agent')
@click.option('--random-agent', is_flag=True, help='Случайный User-Agent браузера')
@click.option('--keyword', '-k', 'keywords', multiple=True,
              help='Ключевое слово для поиска в скриптах (можно несколько раз)')
@click.option('--same-host', is_flag=True, help='Не покидать хост стартового URL')
@click.option('--strategy', type=click.Choice(['depth', 'breadth']), default=None,
              help='Порядок обхода')
@click.option('--media-dir', 'media_dir', default=None,
              type=click.Path(file_okay=False, path_type=Path),
              help='Скачивать найденные медиа-файлы в эту папку')
@click.option('--json', '-j', 'json_output', default=None,
              type=click.Path(writable=True, dir_okay=False, path_type=Path),
              help='Сохранить JSON-отчёт в файл')
@click.option('--pretty', is_flag=True, help='Преформатировать JSON-вывод (отступ 2)')
@click.option('--scan-timeout', 'scan_timeout', type=float, default=None,
              help='Таймаут всего обхода (секунд)')
@click.pass_context
def scrape(ctx, url, max_depth, no_follow, target, user_agent, random_agent, keywords,
           same_host, strategy, media_dir, json_output, pretty, scan_timeout):
    """Рекурсивный обход с явными параметрами."""
    overrides: Dict[str, Any] = {}
    if max_depth is not None:
        overrides['max_depth'] = max_depth
    if no_follow:
        overrides['follow_links'] = False
    if random_agent:
        overrides['user_agent'] = random_user_agent()
    if user_agent:
        overrides['user_agent'] = user_agent
    if keywords:
        overrides['js_keywords'] = list(keywords)
    if same_host:
        overrides['same_host_only'] = True
    if strategy:
        overrides['strategy'] = strategy
    try:
        cfg = ctx.obj['config'].with_updates(**overrides)
    except ValidationError as e:
        print_error(f'Ошибка конфигурации: {e}')

    async def _scrape():
        async with Fetcher(cfg) as fetcher:
            sink = DiskSink(fetcher, media_dir) if media_dir else None
            return await rec_scrape(url, cfg, None, target, fetcher=fetcher,
                                    media_sink=sink, error_log=error_log)

    error_log = ErrorLog(ctx.obj['error_log'])
    try:
        validate_seed(url)
        report = _run_async(_scrape(), scan_timeout)
    except ConfigError as e:
        print_error(f'Неверный URL: {e}')
    except asyncio.TimeoutError:
        print_error(f'Обход не завершён за {scan_timeout} секунд')
    finally:
        error_log.close()
    _emit(report, json_output, pretty)


@cli.command('links', context_settings=CONTEXT_SETTINGS)
@click.argument('url')
@click.pass_context
def links(ctx, url):
    """Загрузить страницу и вывести абсолютные ссылки в порядке появления."""
    cfg = ctx.obj['config']

    async def _links() -> List[str]:
        async with Fetcher(cfg) as fetcher:
            response = await fetcher.fetch(url)
        return extract_links(response.text, response.url)

    try:
        validate_seed(url)
        found = asyncio.run(_links())
    except ConfigError as e:
        print_error(f'Неверный URL: {e}')
    except FetchError as e:
        print_error(f'Ошибка загрузки: {e}')
    for link in found:
        click.echo(link)


@cli.command('config', context_settings=CONTEXT_SETTINGS)
@click.pass_context
def show_config(ctx):
    """Показать текущую конфигурацию в JSON."""
    cfg = ctx.obj['config']
    click.echo(cfg.model_dump_json(indent=2))


if __name__ == "__main__":
    cli()
