"""Core metadata service: tiered extraction with a classified fallback.

The service walks an ordered list of :class:`~vidrelay.core.protocols.MetadataProbe`
strategies and returns the first success.  Typical wiring:

1. oEmbed probe (fast, generic ladder)
2. page-scrape probe (fast, generic ladder)
3. :class:`ToolMetadataProbe` (slow, real ladder)

When every tier fails, the stderr of the last tool run is classified:
authentication or blocking signatures yield a labelled placeholder,
anything else raises :class:`~vidrelay.exceptions.ExtractionFailedError`.

Guarantees
----------
* No direct I/O; everything goes through injected protocols.
* Only :class:`~vidrelay.exceptions.VidRelayError` subclasses escape.
* Background enrichment is submitted, never awaited.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Any

from vidrelay.config import Settings
from vidrelay.core.fallbacks import classify_failure, is_placeholder_worthy, placeholder_metadata
from vidrelay.core.models import MetadataSource, PlatformId, VideoMetadata
from vidrelay.core.platforms import resolve_platform, validate_url
from vidrelay.core.protocols import (
    ExternalToolInvoker,
    MetadataProbe,
    MetadataStore,
    TaskSubmitter,
)
from vidrelay.core.quality import build_quality_ladder, format_duration
from vidrelay.core.tool_args import metadata_args
from vidrelay.exceptions import ExtractionFailedError, append_ytdlp_upgrade_suggestion

logger = logging.getLogger(__name__)


class ToolMetadataProbe:
    """Metadata tier backed by the external tool's ``--dump-json`` mode."""

    name: str = "tool"

    def __init__(self, invoker: ExternalToolInvoker, settings: Settings) -> None:
        self._invoker: ExternalToolInvoker = invoker
        self._settings: Settings = settings

    def supports(self, platform: PlatformId) -> bool:
        return True

    async def probe(self, url: str, platform: PlatformId) -> VideoMetadata:
        result = await self._invoker.run(
            metadata_args(url, platform, self._settings),
            timeout=self._settings.metadata_timeout,
        )
        if not result.ok:
            raise ExtractionFailedError(
                f"Video extraction failed: {result.diagnostics}",
                diagnostics=result.diagnostics,
            )

        record = self.first_record(result.stdout)
        if record is None:
            raise ExtractionFailedError(
                "No valid video data found in tool output.",
                diagnostics=result.stdout[:200],
            )
        return self.parse_record(url, platform, record)

    # ------------------------------------------------------------------
    # Output parsing (pure)
    # ------------------------------------------------------------------

    @staticmethod
    def first_record(stdout: str) -> dict[str, Any] | None:
        """Return the first JSON line that looks like a real video record.

        Auxiliary JSON lines (without ``title`` or ``id``) and non-JSON
        noise are skipped.
        """
        for line in stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                parsed = json.loads(line)
            except json.JSONDecodeError:
                continue
            if isinstance(parsed, dict) and (parsed.get("title") or parsed.get("id")):
                return parsed
        return None

    @staticmethod
    def _thumbnail(info: dict[str, Any]) -> str | None:
        thumbnail = info.get("thumbnail")
        if thumbnail:
            return str(thumbnail)
        thumbnails = info.get("thumbnails")
        if isinstance(thumbnails, list) and thumbnails:
            first = thumbnails[0]
            if isinstance(first, dict) and first.get("url"):
                return str(first["url"])
        return None

    @classmethod
    def parse_record(
        cls,
        url: str,
        platform: PlatformId,
        info: dict[str, Any],
    ) -> VideoMetadata:
        """Convert a raw tool record into :class:`VideoMetadata`."""
        raw_formats = info.get("formats")
        formats: list[dict[str, Any]] = (
            [entry for entry in raw_formats if isinstance(entry, dict)]
            if isinstance(raw_formats, list)
            else []
        )
        if not formats:
            # Single-format extractors describe the stream at top level.
            formats = [info]

        raw_views = info.get("view_count")
        raw_duration = info.get("duration")
        return VideoMetadata(
            url=url,
            platform=platform,
            title=str(info.get("title") or "Unknown Title"),
            description=str(info.get("description") or "") or None,
            thumbnail_url=cls._thumbnail(info),
            duration=format_duration(
                raw_duration if isinstance(raw_duration, (int, float)) else None,
            ),
            uploader=str(
                info.get("uploader")
                or info.get("channel")
                or info.get("uploader_id")
                or "Unknown"
            ),
            view_count=raw_views if isinstance(raw_views, int) else None,
            qualities=build_quality_ladder(formats),
            source=MetadataSource.TOOL,
        )


class MetadataService:
    """Tiered metadata extraction for a single URL.

    Parameters
    ----------
    probes:
        Ordered strategies; the first success wins.
    enrichment_probe:
        Authoritative probe run in the background after a fast tier
        succeeded.  ``None`` disables enrichment.
    store:
        Cache written after every successful extraction.
    tasks:
        Background job submitter used for enrichment.
    placeholder_fallback:
        Serve demo metadata for authentication/blocking failures instead
        of raising.
    """

    def __init__(
        self,
        probes: Sequence[MetadataProbe],
        *,
        enrichment_probe: MetadataProbe | None = None,
        store: MetadataStore | None = None,
        tasks: TaskSubmitter | None = None,
        placeholder_fallback: bool = True,
    ) -> None:
        self._probes: tuple[MetadataProbe, ...] = tuple(probes)
        self._enrichment_probe = enrichment_probe
        self._store = store
        self._tasks = tasks
        self._placeholder_fallback = placeholder_fallback

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def extract(self, url: str) -> VideoMetadata:
        """Extract metadata for *url*, trying each tier in order.

        Raises
        ------
        InvalidURLError
            If *url* is empty or malformed.
        UnsupportedPlatformError
            If *url* belongs to no supported platform.
        ExtractionFailedError
            If every tier failed and the failure is not classifiable.
        """
        url = validate_url(url)
        platform = resolve_platform(url)

        failures: list[ExtractionFailedError] = []
        for probe in self._probes:
            if not probe.supports(platform):
                continue
            try:
                metadata = await probe.probe(url, platform)
            except ExtractionFailedError as exc:
                logger.info("%s probe failed for %s: %s", probe.name, url, exc)
                failures.append(exc)
                continue
            except Exception as exc:
                logger.warning(
                    "%s probe raised unexpectedly for %s", probe.name, url, exc_info=True,
                )
                failures.append(ExtractionFailedError(f"Unexpected probe error: {exc}"))
                continue

            logger.info("Metadata for %s served by %s probe", url, probe.name)
            metadata = await self._save(metadata)
            if metadata.source in (MetadataSource.OEMBED, MetadataSource.SCRAPE):
                self._schedule_enrichment(url, platform)
            return metadata

        return await self._fallback(url, platform, failures)

    # ------------------------------------------------------------------
    # Fallback and enrichment
    # ------------------------------------------------------------------

    async def _fallback(
        self,
        url: str,
        platform: PlatformId,
        failures: list[ExtractionFailedError],
    ) -> VideoMetadata:
        diagnostics = next((f.diagnostics for f in reversed(failures) if f.diagnostics), "")
        kind = classify_failure(platform, diagnostics)
        if self._placeholder_fallback and is_placeholder_worthy(kind):
            logger.warning(
                "Serving placeholder metadata for %s (%s): %s",
                url, kind.value, diagnostics.splitlines()[0] if diagnostics else "",
            )
            return await self._save(placeholder_metadata(url, platform))

        message = diagnostics or (str(failures[-1]) if failures else "no extraction tier applies")
        raise ExtractionFailedError(
            f"Video extraction failed: {message}",
            hint=append_ytdlp_upgrade_suggestion(
                "The video may be private, removed, or geo-restricted.",
            ),
            diagnostics=diagnostics,
        )

    async def _save(self, metadata: VideoMetadata) -> VideoMetadata:
        if self._store is None:
            return metadata
        return await self._store.put(metadata)

    def _schedule_enrichment(self, url: str, platform: PlatformId) -> None:
        if self._enrichment_probe is None or self._tasks is None:
            return

        async def enrich() -> None:
            await self.enrich(url, platform)

        self._tasks.submit(enrich, name=f"enrich:{url}")

    async def enrich(self, url: str, platform: PlatformId) -> VideoMetadata | None:
        """Merge the authoritative ladder for *url* into the cached record.

        Extraction failures are logged and swallowed; the cached record
        is left untouched.
        """
        if self._enrichment_probe is None:
            return None
        try:
            enriched = await self._enrichment_probe.probe(url, platform)
        except ExtractionFailedError as exc:
            logger.info("Background enrichment skipped for %s: %s", url, exc)
            return None
        if self._store is None:
            return None
        merged = await self._store.merge(url, enriched.qualities)
        if merged is not None:
            logger.info("Enriched quality ladder for %s (%d options)", url, len(merged.qualities))
        return merged
