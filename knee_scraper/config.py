# === FILE: knee_scraper/config.py ===
"""
Модуль для загрузки и валидации конфигурации скрейпера KneeScraper.
Используется Pydantic для описания схемы и проверки данных.
"""
from __future__ import annotations

import errno
import json
import os
from pathlib import Path
from typing import Any, List, Literal, Optional, Tuple, Union

import yaml
from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)

DEFAULT_OPEN_DIRECTORIES: Tuple[str, ...] = ("/backup", "/config", "/logs", "/uploads")
DEFAULT_JS_KEYWORDS: Tuple[str, ...] = ("apiKey", "token")


class CrawlConfig(BaseModel):
    """Неизменяемый снимок настроек одного запуска обхода."""
    model_config = ConfigDict(extra="forbid", frozen=True)

    follow_links: bool = Field(True, description="Переходить ли по найденным ссылкам.")
    max_depth: int = Field(3, ge=0, description="Максимальная глубина обхода (включительно).")
    user_agent: Optional[str] = Field(None, min_length=1, description="Заголовок User-Agent.")
    timeout: float = Field(10.0, gt=0, description="Таймаут на один запрос (секунд).")
    rate_limit: Optional[float] = Field(None, gt=0, description="Лимит запросов в секунду.")
    delay_range: Optional[Tuple[float, float]] = Field(
        None, description="Случайная пауза перед запросом (мин, макс), секунд."
    )
    respect_robots: bool = Field(True, description="Учитывать robots.txt.")
    same_host_only: bool = Field(False, description="Не выходить за хост стартового URL.")
    strategy: Literal["depth", "breadth"] = Field("depth", description="Порядок обхода.")
    max_pages: Optional[int] = Field(None, ge=1, description="Жесткий лимит по числу страниц.")
    run_timeout: Optional[float] = Field(None, gt=0, description="Дедлайн всего обхода (секунд).")

    probe_open_directories: bool = Field(False, description="Проверять открытые директории.")
    open_directory_paths: List[str] = Field(
        default_factory=lambda: list(DEFAULT_OPEN_DIRECTORIES),
        description="Пути для проверки открытых директорий.",
    )
    open_directory_wordlist: Optional[Path] = Field(
        None, description="Файл-словарь с дополнительными путями."
    )

    js_keywords: List[str] = Field(
        default_factory=lambda: list(DEFAULT_JS_KEYWORDS),
        description="Ключевые слова для поиска в скриптах.",
    )
    fetch_external_scripts: bool = Field(False, description="Загружать внешние <script src>.")

    @field_validator("open_directory_paths", mode="before")
    def _ensure_leading_slash(cls, v: Any) -> Any:
        if isinstance(v, (list, tuple)):
            return [p if str(p).startswith("/") else f"/{p}" for p in v]
        return v

    @model_validator(mode="after")
    def _check_delay_range(self) -> CrawlConfig:
        if self.delay_range is not None:
            low, high = self.delay_range
            if low < 0 or high < low:
                raise ValueError("delay_range must satisfy 0 <= min <= max")
        return self

    @model_validator(mode="after")
    def _check_wordlist_exists(self) -> CrawlConfig:
        path = self.open_directory_wordlist
        if path is not None and not Path(path).is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path))
        return self

    def with_updates(self, **changes: Any) -> CrawlConfig:
        """Возвращает новый проверенный снимок с изменёнными полями."""
        data = self.model_dump()
        data.update(changes)
        return type(self).model_validate(data)


_DEFAULT_CFG = Path("configs/default.yaml")


def _read_yaml(path: Path) -> dict[str, Any]:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:
        raise ValueError(f"Неправильный YAML в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень YAML должен быть mapping, получено {type(data).__name__}")
    return data


def _read_json(path: Path) -> dict[str, Any]:
    try:
        data = json.loads(path.read_text(encoding="utf-8")) or {}
    except json.JSONDecodeError as exc:
        raise ValueError(f"Неправильный JSON в {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise TypeError(f"Верхний уровень JSON должен быть mapping, получено {type(data).__name__}")
    return data


def load_config(path: Union[str, Path, None]) -> CrawlConfig:
    """
    Читает YAML или JSON и возвращает проверенный объект CrawlConfig.
    При отсутствии файла конфига бросает FileNotFoundError.
    """
    if path is None:
        if not _DEFAULT_CFG.exists():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(_DEFAULT_CFG))
        path_obj = _DEFAULT_CFG
    else:
        path_obj = Path(path).expanduser().resolve()
        if not path_obj.is_file():
            raise FileNotFoundError(errno.ENOENT, os.strerror(errno.ENOENT), str(path_obj))

    suffix = path_obj.suffix.lower()
    if suffix in (".yaml", ".yml"):
        data = _read_yaml(path_obj)
    elif suffix == ".json":
        data = _read_json(path_obj)
    else:
        raise ValueError(f"Неподдерживаемый формат конфига: {suffix}")

    return CrawlConfig(**data)


__all__ = ["CrawlConfig", "load_config", "ValidationError", "DEFAULT_OPEN_DIRECTORIES", "DEFAULT_JS_KEYWORDS"]
