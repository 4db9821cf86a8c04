"""
Application Configuration
Loads settings from environment variables with sensible defaults.
"""

import tempfile
from pydantic_settings import BaseSettings
from typing import Any, Dict, List
from pathlib import Path


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    api_debug: bool = False

    # CORS Configuration
    cors_origins: List[str] = ["*"]  # Allow all origins for development

    # Scraper Configuration
    scraper_site: str = "akakce"
    scraper_profile_dir: Path = Path(tempfile.gettempdir()) / "PricewatchChromeProfile"
    scraper_headless: bool = False
    scraper_page_load_timeout: float = 60.0
    scraper_challenge_timeout: float = 90.0
    scraper_challenge_poll_interval: float = 1.0
    scraper_max_retries: int = 3
    scraper_navigation_delay_min: float = 5.0
    scraper_navigation_delay_max: float = 10.0
    scraper_item_delay_min: float = 3.0
    scraper_item_delay_max: float = 6.0
    scraper_block_cooldown: float = 30.0
    scraper_item_retries: int = 2
    scraper_max_pages: int = 20
    scraper_max_batch_size: int = 500

    # Logging Configuration
    log_level: str = "INFO"
    log_format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

    # Paths
    @property
    def log_dir(self) -> Path:
        """Get the log directory path."""
        return Path(__file__).parent.parent.parent / "logs"

    @property
    def log_file(self) -> Path:
        """Get the log file path."""
        return self.log_dir / "backend.log"

    def scraper_options(self) -> Dict[str, Any]:
        """Keyword arguments for ScrapeSessionManager."""
        from pricewatch.config import get_site_config

        return {
            'site': get_site_config(self.scraper_site),
            'profile_dir': self.scraper_profile_dir,
            'headless': self.scraper_headless,
            'page_load_timeout': self.scraper_page_load_timeout,
            'challenge_timeout': self.scraper_challenge_timeout,
            'challenge_poll_interval': self.scraper_challenge_poll_interval,
            'max_retries': self.scraper_max_retries,
            'navigation_delay': (self.scraper_navigation_delay_min, self.scraper_navigation_delay_max),
            'item_delay': (self.scraper_item_delay_min, self.scraper_item_delay_max),
            'block_cooldown': self.scraper_block_cooldown,
            'item_retries': self.scraper_item_retries,
            'max_pages': self.scraper_max_pages,
            'max_batch_size': self.scraper_max_batch_size,
        }

    class Config:
        # Only load .env if it exists to avoid permission errors
        env_file = ".env" if __import__("pathlib").Path(".env").exists() else None
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"  # Ignore extra environment variables


# Global settings instance
settings = Settings()
