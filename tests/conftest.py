"""
Shared fixtures and fakes for the catalog tests.
"""
import os
import tempfile
from datetime import datetime, timezone

# Settings validate (and create) the database directory at import time
os.environ.setdefault("DATABASE_PATH", os.path.join(tempfile.mkdtemp(prefix="iptv-catalog-"), "catalog.db"))

import pytest

from iptv_catalog.exceptions import NetworkError, StorageError
from iptv_catalog.services.cache_service import CatalogCache
from iptv_catalog.services.refresh_orchestrator import FeedSources, RefreshOrchestrator


LIVE_URL = "http://feeds.test/live.m3u"
MOVIES_URL = "http://feeds.test/movies.m3u"
SERIES_URL = "http://feeds.test/series.m3u"
GUIDE_A_URL = "http://feeds.test/guide-a.xml"
GUIDE_B_URL = "http://feeds.test/guide-b.xml"

LIVE_PLAYLIST = """#EXTM3U
#EXTINF:-1 tvg-id="c1" tvg-logo="http://logo/1.png" group-title="Spor",Kanal 1 HD (TR)
http://x/1
#EXTINF:-1 tvg-id="c2" group-title="Haber",Kanal 2
http://x/2
"""

MOVIES_PLAYLIST = """#EXTM3U
#EXTINF:-1 group-title="Aksiyon",Film Bir
http://vod/movie-1.mp4
#EXTINF:-1 group-title="Dram",Film Iki
http://vod/movie-2.mp4
"""

SERIES_PLAYLIST = """#EXTM3U
#EXTINF:-1 group-title="Bilim Kurgu",Dizi Bir S01E01
http://vod/series-1.mp4
"""

GUIDE_A = """<?xml version="1.0" encoding="UTF-8"?>
<tv>
  <programme channel="c1" start="20240101180000 +0300" stop="20240101190000 +0300">
    <title>Haber</title>
    <desc>Evening news</desc>
  </programme>
  <programme channel="c1" start="20240101190000 +0300" stop="20240101200000 +0300">
    <title>Mac</title>
  </programme>
</tv>
"""

GUIDE_B = """<?xml version="1.0" encoding="UTF-8"?>
<tv>
  <programme channel="c1" start="20240101150000" stop="20240101160000">
    <title>Haber</title>
    <desc>Duplicate from the second feed</desc>
  </programme>
  <programme channel="c2" start="20240101150000" stop="20240101170000">
    <title>Gundem</title>
  </programme>
</tv>
"""

NOW = datetime(2024, 1, 1, 15, 30, tzinfo=timezone.utc)


def utc(*args) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


class FakeStore:
    """In-memory key-value store with switchable failures"""

    def __init__(self, data: dict | None = None):
        self.data: dict[str, str] = dict(data or {})
        self.fail_reads = False
        self.fail_writes = False
        self.removed: list[str] = []

    async def get(self, key: str) -> str | None:
        if self.fail_reads:
            raise StorageError(f"read failed: {key}")
        return self.data.get(key)

    async def set(self, key: str, value: str) -> None:
        if self.fail_writes:
            raise StorageError(f"write failed: {key}")
        self.data[key] = value

    async def remove(self, key: str) -> None:
        if self.fail_writes:
            raise StorageError(f"remove failed: {key}")
        self.removed.append(key)
        self.data.pop(key, None)


class FakeFetcher:
    """Fetch primitive answering from a URL -> text (or exception) table"""

    def __init__(self, responses: dict | None = None):
        self.responses: dict = dict(responses or {})
        self.calls: list[str] = []

    async def fetch(self, url: str) -> str:
        self.calls.append(url)
        response = self.responses.get(url)
        if response is None:
            raise NetworkError(f"Feed could not be fetched (status 404): {url}", status_code=404)
        if isinstance(response, Exception):
            raise response
        return response


class Clock:
    """Manually advanced clock"""

    def __init__(self, now: datetime = NOW):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


def all_feeds() -> dict:
    return {
        LIVE_URL: LIVE_PLAYLIST,
        MOVIES_URL: MOVIES_PLAYLIST,
        SERIES_URL: SERIES_PLAYLIST,
        GUIDE_A_URL: GUIDE_A,
        GUIDE_B_URL: GUIDE_B,
    }


@pytest.fixture
def sources() -> FeedSources:
    return FeedSources(
        live_playlist_url=LIVE_URL,
        movies_playlist_url=MOVIES_URL,
        series_playlist_url=SERIES_URL,
        guide_urls=(GUIDE_A_URL, GUIDE_B_URL),
    )


@pytest.fixture
def store() -> FakeStore:
    return FakeStore()


@pytest.fixture
def fetcher() -> FakeFetcher:
    return FakeFetcher(all_feeds())


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def make_orchestrator(sources, store, fetcher, clock):
    def factory(**kwargs) -> RefreshOrchestrator:
        return RefreshOrchestrator(
            kwargs.pop("sources", sources),
            CatalogCache(kwargs.pop("store", store)),
            kwargs.pop("fetch", fetcher.fetch),
            clock=kwargs.pop("clock", clock),
            **kwargs,
        )

    return factory
