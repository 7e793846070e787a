"""Tests for the oEmbed and page-scrape metadata tiers (infra/http_probes.py).

HTTP goes through ``httpx.MockTransport``; no internet access.
"""

from __future__ import annotations

import httpx
import pytest

from fakes import mock_client
from vidrelay.config import Settings
from vidrelay.core.models import MetadataSource, PlatformId
from vidrelay.core.quality import GENERIC_LADDER
from vidrelay.exceptions import ExtractionFailedError
from vidrelay.infra.http_probes import OEmbedProbe, PageScrapeProbe, parse_iso_duration

YOUTUBE = "https://www.youtube.com/watch?v=abc123"
INSTAGRAM = "https://www.instagram.com/reel/abc/"

PAGE = """<!doctype html>
<html><head>
<title>Fallback title</title>
<meta property="og:title" content="Reel by someone">
<meta property="og:description" content="A short reel">
<meta property="og:image" content="https://cdn.example/thumb.jpg">
<meta property="og:video:duration" content="95">
<meta name="twitter:creator" content="@someone">
</head><body></body></html>
"""

LD_PAGE = """<html><head>
<script type="application/ld+json">
{"@context": "https://schema.org", "@graph": [
  {"@type": "WebPage", "name": "Page name"},
  {"@type": "VideoObject", "name": "Video name", "duration": "PT1M30S",
   "thumbnailUrl": ["https://cdn.example/ld.jpg"], "author": {"name": "LD Author"}}
]}
</script>
</head></html>
"""


# ---------------------------------------------------------------------------
# oEmbed
# ---------------------------------------------------------------------------

class TestOEmbedProbe:
    @pytest.mark.asyncio
    async def test_success(self, settings: Settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json={
                "title": "Example",
                "author_name": "Someone",
                "thumbnail_url": "https://i.example/t.jpg",
            })

        async with mock_client(handler) as client:
            meta = await OEmbedProbe(client, settings).probe(YOUTUBE, PlatformId.YOUTUBE)

        assert meta.title == "Example"
        assert meta.uploader == "Someone"
        assert meta.thumbnail_url == "https://i.example/t.jpg"
        assert meta.source is MetadataSource.OEMBED
        assert meta.qualities == GENERIC_LADDER
        request = seen[0]
        assert request.url.host == "www.youtube.com"
        assert request.url.path == "/oembed"
        assert request.url.params["url"] == YOUTUBE
        assert request.url.params["format"] == "json"

    def test_supports(self, settings: Settings) -> None:
        probe = OEmbedProbe(httpx.AsyncClient(), settings)
        assert probe.supports(PlatformId.VIMEO)
        assert not probe.supports(PlatformId.INSTAGRAM)

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "response",
        [
            httpx.Response(404, text="not found"),
            httpx.Response(200, text="<html>"),
            httpx.Response(200, json={"author_name": "no title"}),
        ],
    )
    async def test_failures_are_extraction_errors(
        self, settings: Settings, response: httpx.Response,
    ) -> None:
        async with mock_client(lambda request: response) as client:
            with pytest.raises(ExtractionFailedError):
                await OEmbedProbe(client, settings).probe(YOUTUBE, PlatformId.YOUTUBE)

    @pytest.mark.asyncio
    async def test_timeout_is_extraction_error(self, settings: Settings) -> None:
        def handler(request: httpx.Request) -> httpx.Response:
            raise httpx.ReadTimeout("timed out", request=request)

        async with mock_client(handler) as client:
            with pytest.raises(ExtractionFailedError, match="oEmbed request failed"):
                await OEmbedProbe(client, settings).probe(YOUTUBE, PlatformId.YOUTUBE)

    def test_duration_when_present(self) -> None:
        meta = OEmbedProbe.parse_payload(
            "https://vimeo.com/1", PlatformId.VIMEO, {"title": "x", "duration": 125},
        )
        assert meta.duration == "02:05"
        assert meta.uploader == "Unknown"


# ---------------------------------------------------------------------------
# Page scrape
# ---------------------------------------------------------------------------

class TestPageScrapeProbe:
    @pytest.mark.asyncio
    async def test_open_graph_page(self, settings: Settings) -> None:
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, text=PAGE, headers={"Content-Type": "text/html"})

        async with mock_client(handler) as client:
            meta = await PageScrapeProbe(client, settings).probe(INSTAGRAM, PlatformId.INSTAGRAM)

        assert meta.title == "Reel by someone"
        assert meta.description == "A short reel"
        assert meta.thumbnail_url == "https://cdn.example/thumb.jpg"
        assert meta.duration == "01:35"
        assert meta.uploader == "@someone"
        assert meta.source is MetadataSource.SCRAPE
        assert seen[0].headers["Referer"] == "https://www.instagram.com/"
        assert seen[0].headers["User-Agent"] == settings.user_agent

    def test_json_ld_fallback(self) -> None:
        meta = PageScrapeProbe.parse_page(INSTAGRAM, PlatformId.INSTAGRAM, LD_PAGE)
        assert meta.title == "Video name"
        assert meta.duration == "01:30"
        assert meta.thumbnail_url == "https://cdn.example/ld.jpg"
        assert meta.uploader == "LD Author"

    def test_no_title(self) -> None:
        with pytest.raises(ExtractionFailedError, match="No title"):
            PageScrapeProbe.parse_page(INSTAGRAM, PlatformId.INSTAGRAM, "<html></html>")

    def test_broken_json_ld_ignored(self) -> None:
        html = (
            '<script type="application/ld+json">{broken</script>'
            '<meta name="twitter:title" content="Tweet video">'
            '<meta property="og:site_name" content="X">'
        )
        meta = PageScrapeProbe.parse_page(INSTAGRAM, PlatformId.TWITTER_X, html)
        assert meta.title == "Tweet video"
        assert meta.uploader == "X"

    @pytest.mark.asyncio
    async def test_login_wall_status(self, settings: Settings) -> None:
        async with mock_client(lambda request: httpx.Response(403)) as client:
            with pytest.raises(ExtractionFailedError, match="Page fetch failed"):
                await PageScrapeProbe(client, settings).probe(INSTAGRAM, PlatformId.INSTAGRAM)

    def test_supports(self, settings: Settings) -> None:
        probe = PageScrapeProbe(httpx.AsyncClient(), settings)
        assert probe.supports(PlatformId.FACEBOOK)
        assert not probe.supports(PlatformId.YOUTUBE)


class TestParseIsoDuration:
    @pytest.mark.parametrize(
        ("value", "seconds"),
        [
            ("PT1M30S", 90.0),
            ("PT2H", 7200.0),
            ("P1DT1S", 86401.0),
            ("pt45.5s", 45.5),
            ("", None),
            (None, None),
            ("90", None),
        ],
    )
    def test_values(self, value: str | None, seconds: float | None) -> None:
        assert parse_iso_duration(value) == seconds

