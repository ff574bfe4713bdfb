"""knee_scraper.probe: Модуль для проверки открытых директорий на сайте."""

from .open_directories import OpenDirectoryProber, probe_open_directories

__all__ = ["OpenDirectoryProber", "probe_open_directories"]
