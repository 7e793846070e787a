"""Fast HTTP metadata tiers: oEmbed endpoints and page scraping.

Both probes satisfy :class:`~vidrelay.core.protocols.MetadataProbe` and
return metadata carrying the generic quality ladder; the authoritative
ladder comes later from the tool tier.  Every ``httpx`` error, non-2xx
response and unusable payload is re-raised as
:class:`~vidrelay.exceptions.ExtractionFailedError`.
"""

from __future__ import annotations

import json
import logging
import re
from html.parser import HTMLParser
from typing import Any

import httpx

from vidrelay.config import Settings
from vidrelay.core.models import MetadataSource, PlatformId, VideoMetadata
from vidrelay.core.quality import GENERIC_LADDER, format_duration
from vidrelay.core.tool_args import referer_for
from vidrelay.exceptions import ExtractionFailedError

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# oEmbed
# ---------------------------------------------------------------------------

OEMBED_ENDPOINTS: dict[PlatformId, str] = {
    PlatformId.YOUTUBE: "https://www.youtube.com/oembed",
    PlatformId.TIKTOK: "https://www.tiktok.com/oembed",
    PlatformId.VIMEO: "https://vimeo.com/api/oembed.json",
    PlatformId.REDDIT: "https://www.reddit.com/oembed",
    PlatformId.DAILYMOTION: "https://www.dailymotion.com/services/oembed",
}


class OEmbedProbe:
    """Metadata from the platform's public oEmbed endpoint."""

    name: str = "oembed"

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    def supports(self, platform: PlatformId) -> bool:
        return platform in OEMBED_ENDPOINTS

    async def probe(self, url: str, platform: PlatformId) -> VideoMetadata:
        endpoint = OEMBED_ENDPOINTS.get(platform)
        if endpoint is None:
            raise ExtractionFailedError(f"No oEmbed endpoint for {platform}")

        try:
            response = await self._client.get(
                endpoint,
                params={"url": url, "format": "json"},
                headers={"User-Agent": self._settings.user_agent, "Accept": "application/json"},
                timeout=self._settings.probe_timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPError as exc:
            raise ExtractionFailedError(f"oEmbed request failed: {exc}") from exc
        except ValueError as exc:
            raise ExtractionFailedError("oEmbed response is not JSON") from exc

        return self.parse_payload(url, platform, payload)

    @staticmethod
    def parse_payload(url: str, platform: PlatformId, payload: Any) -> VideoMetadata:
        if not isinstance(payload, dict) or not payload.get("title"):
            raise ExtractionFailedError("oEmbed response has no title")

        duration = payload.get("duration")
        return VideoMetadata(
            url=url,
            platform=platform,
            title=str(payload["title"]),
            description=str(payload.get("description") or "") or None,
            thumbnail_url=str(payload.get("thumbnail_url") or "") or None,
            duration=format_duration(duration if isinstance(duration, (int, float)) else None),
            uploader=str(payload.get("author_name") or "Unknown"),
            qualities=GENERIC_LADDER,
            source=MetadataSource.OEMBED,
        )


# ---------------------------------------------------------------------------
# Page scrape
# ---------------------------------------------------------------------------

SCRAPE_PLATFORMS: frozenset[PlatformId] = frozenset({
    PlatformId.INSTAGRAM,
    PlatformId.FACEBOOK,
    PlatformId.TWITTER_X,
    PlatformId.LINKEDIN,
    PlatformId.PINTEREST,
})

_ISO_DURATION = re.compile(
    r"^P(?:(?P<days>\d+)D)?(?:T(?:(?P<hours>\d+)H)?(?:(?P<minutes>\d+)M)?"
    r"(?:(?P<seconds>\d+(?:\.\d+)?)S)?)?$",
    re.IGNORECASE,
)


class _MetaTagParser(HTMLParser):
    """Collect ``<meta>`` tags, JSON-LD blocks and the ``<title>`` text."""

    def __init__(self) -> None:
        super().__init__()
        self.meta: dict[str, str] = {}
        self.json_ld: list[str] = []
        self.title: str = ""
        self._in_json_ld = False
        self._in_title = False
        self._buffer: list[str] = []

    def handle_starttag(self, tag: str, attrs: list[tuple[str, str | None]]) -> None:
        tag = tag.lower()
        attr_map = {k.lower(): (v or "").strip() for k, v in attrs if k}
        if tag == "meta":
            key = (attr_map.get("property") or attr_map.get("name") or "").lower()
            content = attr_map.get("content", "")
            if key and content and key not in self.meta:
                self.meta[key] = content
        elif tag == "script" and attr_map.get("type", "").lower() == "application/ld+json":
            self._in_json_ld = True
            self._buffer = []
        elif tag == "title" and not self.title:
            self._in_title = True
            self._buffer = []

    def handle_endtag(self, tag: str) -> None:
        tag = tag.lower()
        if tag == "script" and self._in_json_ld:
            self.json_ld.append("".join(self._buffer))
            self._in_json_ld = False
        elif tag == "title" and self._in_title:
            self.title = "".join(self._buffer).strip()
            self._in_title = False

    def handle_data(self, data: str) -> None:
        if self._in_json_ld or self._in_title:
            self._buffer.append(data)


def _json_ld_objects(blobs: list[str]) -> list[dict[str, Any]]:
    objects: list[dict[str, Any]] = []
    for blob in blobs:
        try:
            parsed = json.loads(blob)
        except json.JSONDecodeError:
            continue
        stack = parsed if isinstance(parsed, list) else [parsed]
        for item in stack:
            if not isinstance(item, dict):
                continue
            objects.append(item)
            graph = item.get("@graph")
            if isinstance(graph, list):
                objects.extend(node for node in graph if isinstance(node, dict))
    # VideoObject nodes carry the most relevant fields.
    objects.sort(key=lambda obj: obj.get("@type") != "VideoObject")
    return objects


def _first_text(value: Any) -> str | None:
    if isinstance(value, str) and value.strip():
        return value.strip()
    if isinstance(value, list):
        for item in value:
            text = _first_text(item)
            if text:
                return text
    if isinstance(value, dict):
        return _first_text(value.get("name") or value.get("url"))
    return None


def parse_iso_duration(value: str | None) -> float | None:
    """Parse an ISO-8601 duration such as ``PT1M30S`` into seconds."""
    if not value:
        return None
    match = _ISO_DURATION.match(value.strip())
    if match is None:
        return None
    parts = {k: float(v) for k, v in match.groupdict().items() if v}
    return (
        parts.get("days", 0.0) * 86400
        + parts.get("hours", 0.0) * 3600
        + parts.get("minutes", 0.0) * 60
        + parts.get("seconds", 0.0)
    )


class PageScrapeProbe:
    """Metadata from OpenGraph/Twitter meta tags, with JSON-LD as backup."""

    name: str = "scrape"

    def __init__(self, client: httpx.AsyncClient, settings: Settings) -> None:
        self._client = client
        self._settings = settings

    def supports(self, platform: PlatformId) -> bool:
        return platform in SCRAPE_PLATFORMS

    def _headers(self, platform: PlatformId) -> dict[str, str]:
        headers = {
            "User-Agent": self._settings.user_agent,
            "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            "Accept-Language": "en-US,en;q=0.9",
        }
        referer = referer_for(platform)
        if referer is not None:
            headers["Referer"] = referer
        return headers

    async def probe(self, url: str, platform: PlatformId) -> VideoMetadata:
        try:
            response = await self._client.get(
                url,
                headers=self._headers(platform),
                timeout=self._settings.scrape_timeout,
                follow_redirects=True,
            )
            response.raise_for_status()
        except httpx.HTTPError as exc:
            raise ExtractionFailedError(f"Page fetch failed: {exc}") from exc

        return self.parse_page(url, platform, response.text)

    @staticmethod
    def parse_page(url: str, platform: PlatformId, html: str) -> VideoMetadata:
        parser = _MetaTagParser()
        parser.feed(html)
        parser.close()
        meta = parser.meta
        ld_objects = _json_ld_objects(parser.json_ld)

        def from_ld(*keys: str) -> str | None:
            for obj in ld_objects:
                for key in keys:
                    text = _first_text(obj.get(key))
                    if text:
                        return text
            return None

        title = (
            meta.get("og:title")
            or meta.get("twitter:title")
            or from_ld("name", "headline")
        )
        if not title:
            raise ExtractionFailedError("No title found in page metadata")

        raw_duration = meta.get("og:video:duration") or meta.get("video:duration")
        seconds: float | None
        if raw_duration and raw_duration.isdigit():
            seconds = float(raw_duration)
        else:
            seconds = parse_iso_duration(from_ld("duration"))

        return VideoMetadata(
            url=url,
            platform=platform,
            title=title,
            description=(
                meta.get("og:description")
                or meta.get("twitter:description")
                or meta.get("description")
                or from_ld("description")
            ),
            thumbnail_url=(
                meta.get("og:image:secure_url")
                or meta.get("og:image")
                or meta.get("twitter:image")
                or meta.get("twitter:image:src")
                or from_ld("thumbnailUrl", "image")
            ),
            duration=format_duration(seconds),
            uploader=(
                from_ld("author", "creator")
                or meta.get("twitter:creator")
                or meta.get("article:author")
                or meta.get("og:site_name")
                or "Unknown"
            ),
            qualities=GENERIC_LADDER,
            source=MetadataSource.SCRAPE,
        )
