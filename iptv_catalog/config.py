from pathlib import Path
import logging

from croniter import croniter
from pydantic import field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from iptv_catalog.utils.logging_helpers import sanitize_url_for_logging


logger = logging.getLogger(__name__)

DEFAULT_LIVE_PLAYLIST_URL = "https://raw.githubusercontent.com/androbjk34/iptv-tr/refs/heads/main/iptv.m3u"
DEFAULT_MOVIES_PLAYLIST_URL = "https://raw.githubusercontent.com/GitLatte/patr0n/refs/heads/site/lists/power-sinema.m3u"
DEFAULT_SERIES_PLAYLIST_URL = "https://raw.githubusercontent.com/androbjk34/dizi/refs/heads/main/yabanci-dizi.m3u"
DEFAULT_GUIDE_SOURCES = [
    "https://raw.githubusercontent.com/braveheart1983/tvg-macther/refs/heads/main/tr-epg.xml",
    "https://raw.githubusercontent.com/androbjk34/epg/main/epg.xml",
]


class CustomSettings(BaseSettings):
    """Application settings loaded from environment variables.

    Validates configuration at startup to catch misconfiguration early.
    """

    database_path: str = "./data/catalog.db"
    live_playlist_url: str = DEFAULT_LIVE_PLAYLIST_URL
    movies_playlist_url: str = DEFAULT_MOVIES_PLAYLIST_URL
    series_playlist_url: str = DEFAULT_SERIES_PLAYLIST_URL
    guide_sources: list[str] | None = list(DEFAULT_GUIDE_SOURCES)
    cache_freshness_hours: float = 6.0  # Cached live channels older than this are revalidated
    fetch_timeout_sec: float = 120.0  # 0 keeps the transport default
    fetch_max_retries: int = 3
    fetch_backoff_factor: float = 2.0
    guide_parse_timeout_sec: int = 300  # XML parsing timeout, 0 disables timeout
    revalidate_cron: str = "0 */6 * * *"
    revalidate_misfire_grace_sec: int = 3600
    sqlite_journal_mode: str = "WAL"
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("guide_sources", mode="before")
    @classmethod
    def parse_guide_sources(cls, value):
        """Parse comma-separated URLs or list."""
        if value is None:
            return []
        if isinstance(value, str):
            if not value.strip():
                return []
            return [url.strip() for url in value.split(",") if url.strip()]
        if isinstance(value, list):
            return value
        return []

    @field_validator("guide_sources", mode="after")
    @classmethod
    def validate_guide_sources(cls, value):
        """Validate guide source URLs are HTTP/HTTPS."""
        if not value:
            return value

        for url in value:
            if not url.lower().startswith(("http://", "https://")):
                raise ValueError(f"Guide source URL must be HTTP/HTTPS: {url}")
        return value

    @field_validator("live_playlist_url", "movies_playlist_url", "series_playlist_url")
    @classmethod
    def validate_playlist_url(cls, value: str, info) -> str:
        """Validate playlist URLs are HTTP/HTTPS (empty disables the target)."""
        value = value.strip()
        if value and not value.lower().startswith(("http://", "https://")):
            raise ValueError(f"{info.field_name} must be HTTP/HTTPS: {value}")
        return value

    @field_validator("database_path")
    @classmethod
    def validate_database_path(cls, value: str) -> str:
        """Validate database path is accessible."""
        path = Path(value)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return value
        except (OSError, PermissionError) as exc:
            raise ValueError(f"Cannot access database path '{value}': {exc}") from exc

    @field_validator("cache_freshness_hours")
    @classmethod
    def validate_freshness(cls, value: float) -> float:
        """Ensure the freshness window is positive."""
        if value <= 0:
            raise ValueError("cache_freshness_hours must be > 0")
        return value

    @field_validator("fetch_timeout_sec", "guide_parse_timeout_sec", "revalidate_misfire_grace_sec")
    @classmethod
    def validate_non_negative(cls, value, info):
        """Timeouts and grace periods may be zero but never negative."""
        if value < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return value

    @field_validator("fetch_max_retries")
    @classmethod
    def validate_max_retries(cls, value: int) -> int:
        """At least one attempt is always made."""
        if value < 1:
            raise ValueError("fetch_max_retries must be >= 1")
        return value

    @field_validator("fetch_backoff_factor")
    @classmethod
    def validate_backoff_factor(cls, value: float) -> float:
        """Ensure the backoff factor is at least 1."""
        if value < 1:
            raise ValueError("fetch_backoff_factor must be >= 1")
        return value

    @field_validator("sqlite_journal_mode")
    @classmethod
    def validate_journal_mode(cls, value: str) -> str:
        """Validate SQLite journal mode."""
        normalized = value.upper()
        allowed = {"DELETE", "TRUNCATE", "PERSIST", "MEMORY", "WAL", "OFF"}
        if normalized not in allowed:
            raise ValueError(f"sqlite_journal_mode must be one of {sorted(allowed)}")
        return normalized

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, value: str) -> str:
        """Validate the log level name."""
        normalized = value.upper()
        allowed = {"CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"}
        if normalized not in allowed:
            raise ValueError(f"log_level must be one of {sorted(allowed)}")
        return normalized

    @field_validator("revalidate_cron")
    @classmethod
    def validate_cron_expression(cls, value: str) -> str:
        """Validate cron expression is valid."""
        try:
            croniter(value)
            return value
        except (ValueError, KeyError) as exc:
            raise ValueError(f"Invalid cron expression '{value}': {exc}") from exc

    @model_validator(mode="after")
    def validate_feed_configuration(self):
        """Validate cross-field configuration."""
        if not (self.live_playlist_url or self.movies_playlist_url or self.series_playlist_url):
            raise ValueError("At least one playlist URL must be configured")

        if not self.guide_sources:
            logger.warning(
                "No guide sources configured - live channels will have no program data"
            )

        return self

    def __init__(self, **data):
        """Initialize settings and log configuration."""
        super().__init__(**data)

        logger.info("Configuration loaded:")
        logger.info("  Database: %s", self.database_path)
        logger.info("  Live playlist: %s", sanitize_url_for_logging(self.live_playlist_url) or "disabled")
        logger.info("  Movies playlist: %s", sanitize_url_for_logging(self.movies_playlist_url) or "disabled")
        logger.info("  Series playlist: %s", sanitize_url_for_logging(self.series_playlist_url) or "disabled")
        logger.info("  Guide Sources: %s configured", len(self.guide_sources or []))
        logger.info("  Cache Freshness: %s hours", self.cache_freshness_hours)
        logger.info(
            "  Fetch: timeout=%s retries=%s backoff=%.1f",
            f"{self.fetch_timeout_sec}s" if self.fetch_timeout_sec else "default",
            self.fetch_max_retries,
            self.fetch_backoff_factor,
        )
        logger.info(
            "  Guide Parse Timeout: %s seconds",
            self.guide_parse_timeout_sec or "disabled",
        )
        logger.info("  Revalidate Schedule: %s", self.revalidate_cron)
        logger.info("  SQLite Journal Mode: %s", self.sqlite_journal_mode)


settings = CustomSettings()


def setup_logging() -> None:
    """Configure application logging."""
    logging.basicConfig(
        level=getattr(logging, settings.log_level),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
