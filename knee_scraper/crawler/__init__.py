"""knee_scraper.crawler: обход сайта и его составные части."""
