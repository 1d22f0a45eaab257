from .linkedin import LinkedInScraper
from .mock import MockScraper

from job_hunter.config import LinkedInConfig
from job_hunter.log import get_logger
from job_hunter.ports import Scraper

log = get_logger(__name__)

__all__ = ["LinkedInScraper", "MockScraper", "get_scraper"]


def get_scraper(config: LinkedInConfig) -> Scraper:
    if config.mock:
        log.info("linkedin.mock is set, using MockScraper")
        return MockScraper()
    return LinkedInScraper(config)
