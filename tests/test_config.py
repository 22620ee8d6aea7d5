import pytest
from pydantic import ValidationError

from iptv_catalog.config import CustomSettings
from iptv_catalog.services.refresh_orchestrator import FeedSources, FetchTarget


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "data" / "catalog.db")


class TestCustomSettings:
    """Tests for settings validation"""

    def test_guide_sources_from_comma_separated_string(self, db_path):
        settings = CustomSettings(
            database_path=db_path,
            guide_sources="http://a/guide.xml, http://b/guide.xml,",
        )

        assert settings.guide_sources == ["http://a/guide.xml", "http://b/guide.xml"]

    def test_database_directory_is_created(self, db_path, tmp_path):
        CustomSettings(database_path=db_path)

        assert (tmp_path / "data").is_dir()

    @pytest.mark.parametrize(
        "overrides",
        [
            {"guide_sources": ["ftp://guide.xml"]},
            {"live_playlist_url": "file:///tmp/live.m3u"},
            {"cache_freshness_hours": 0},
            {"fetch_max_retries": 0},
            {"fetch_backoff_factor": 0.5},
            {"fetch_timeout_sec": -1},
            {"sqlite_journal_mode": "FAST"},
            {"log_level": "LOUD"},
            {"revalidate_cron": "every six hours"},
            {"live_playlist_url": "", "movies_playlist_url": "", "series_playlist_url": ""},
        ],
    )
    def test_invalid_values_are_rejected(self, db_path, overrides):
        with pytest.raises(ValidationError):
            CustomSettings(database_path=db_path, **overrides)

    def test_normalized_values(self, db_path):
        settings = CustomSettings(database_path=db_path, sqlite_journal_mode="wal", log_level="debug")

        assert settings.sqlite_journal_mode == "WAL"
        assert settings.log_level == "DEBUG"

    def test_feed_sources_from_settings(self, db_path):
        settings = CustomSettings(
            database_path=db_path,
            series_playlist_url="",
            guide_sources="http://a/guide.xml",
        )

        sources = FeedSources.from_settings(settings)

        assert sources.playlist_url(FetchTarget.SERIES) == ""
        assert sources.playlist_url(FetchTarget.LIVE) == settings.live_playlist_url
        assert sources.guide_urls == ("http://a/guide.xml",)
