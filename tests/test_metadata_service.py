"""Tests for MetadataService and ToolMetadataProbe (core/metadata_service.py).

Probes and the external tool are faked; no internet access, no yt-dlp
invocation.  These tests verify:

* Tier ordering and fall-through
* Raw tool record → domain-model parsing
* Classified fallback (placeholder vs. error)
* Background enrichment merged into the cache
"""

from __future__ import annotations

import pytest

from fakes import (
    FakeInvoker,
    FakeProbe,
    RecordingSubmitter,
    extraction_error,
    failed,
    metadata,
    ok,
    timed_out,
    tool_record,
)
from vidrelay.config import Settings
from vidrelay.core.metadata_service import MetadataService, ToolMetadataProbe
from vidrelay.core.models import AUDIO_ONLY_LABEL, MetadataSource, PlatformId, QualityOption
from vidrelay.core.quality import GENERIC_LADDER, is_generic_ladder
from vidrelay.exceptions import ExtractionFailedError, InvalidURLError, UnsupportedPlatformError
from vidrelay.infra.memory_store import InMemoryMetadataStore

URL = "https://youtu.be/abc123"
SIGN_IN = "ERROR: [youtube] abc123: Sign in to confirm you're not a bot"


# ---------------------------------------------------------------------------
# ToolMetadataProbe: output parsing
# ---------------------------------------------------------------------------

class TestFirstRecord:
    def test_skips_noise_and_auxiliary_lines(self) -> None:
        stdout = "\n".join([
            "WARNING: something",
            '{"_type": "aux"}',
            tool_record(title="Real"),
        ])
        record = ToolMetadataProbe.first_record(stdout)
        assert record is not None
        assert record["title"] == "Real"

    def test_none_when_nothing_usable(self) -> None:
        assert ToolMetadataProbe.first_record("not json\n[1, 2]\n") is None


class TestParseRecord:
    def test_full_record(self) -> None:
        meta = ToolMetadataProbe.parse_record(
            URL, PlatformId.YOUTUBE, {
                "title": "Example",
                "duration": 185,
                "uploader": "Someone",
                "view_count": 42,
                "thumbnail": "https://i.example/t.jpg",
                "formats": [
                    {"ext": "mp4", "height": 1080, "filesize": 50},
                    {"ext": "m4a", "vcodec": "none"},
                ],
            },
        )
        assert meta.title == "Example"
        assert meta.duration == "03:05"
        assert meta.view_count == 42
        assert meta.source is MetadataSource.TOOL
        assert [q.label for q in meta.qualities] == ["1080p HD", AUDIO_ONLY_LABEL]

    def test_defaults_and_fallbacks(self) -> None:
        meta = ToolMetadataProbe.parse_record(
            URL, PlatformId.YOUTUBE, {
                "id": "abc123",
                "channel": "Channel Name",
                "thumbnails": [{"url": "https://i.example/first.jpg"}],
                "view_count": "many",
            },
        )
        assert meta.title == "Unknown Title"
        assert meta.uploader == "Channel Name"
        assert meta.thumbnail_url == "https://i.example/first.jpg"
        assert meta.duration == "00:00"
        assert meta.view_count is None
        assert meta.description is None

    def test_single_format_record(self) -> None:
        meta = ToolMetadataProbe.parse_record(
            URL, PlatformId.VIMEO, {"title": "Solo", "ext": "mp4", "height": 720, "formats": []},
        )
        assert meta.find_quality("720p HD") == QualityOption("720p HD", "mp4")

    def test_uploader_unknown(self) -> None:
        meta = ToolMetadataProbe.parse_record(URL, PlatformId.YOUTUBE, {"title": "x"})
        assert meta.uploader == "Unknown"


# ---------------------------------------------------------------------------
# ToolMetadataProbe: invocation
# ---------------------------------------------------------------------------

class TestToolMetadataProbe:
    @pytest.mark.asyncio
    async def test_success(self, settings: Settings) -> None:
        invoker = FakeInvoker(ok(tool_record()))
        probe = ToolMetadataProbe(invoker, settings)
        meta = await probe.probe(URL, PlatformId.YOUTUBE)
        assert meta.title == "Example"
        assert invoker.calls[0][0] == "--dump-json"
        assert invoker.calls[0][-1] == URL
        assert invoker.timeouts == [settings.metadata_timeout]

    @pytest.mark.asyncio
    async def test_failure_carries_stderr(self, settings: Settings) -> None:
        probe = ToolMetadataProbe(FakeInvoker(failed(SIGN_IN)), settings)
        with pytest.raises(ExtractionFailedError) as exc_info:
            await probe.probe(URL, PlatformId.YOUTUBE)
        assert exc_info.value.diagnostics == SIGN_IN

    @pytest.mark.asyncio
    async def test_no_record(self, settings: Settings) -> None:
        probe = ToolMetadataProbe(FakeInvoker(ok("garbage")), settings)
        with pytest.raises(ExtractionFailedError, match="No valid video data"):
            await probe.probe(URL, PlatformId.YOUTUBE)


# ---------------------------------------------------------------------------
# MetadataService: tiers
# ---------------------------------------------------------------------------

class TestMetadataServiceTiers:
    @pytest.mark.asyncio
    async def test_first_success_wins(self) -> None:
        first = FakeProbe("oembed", metadata())
        second = FakeProbe("tool", metadata(source=MetadataSource.TOOL))
        service = MetadataService([first, second])
        meta = await service.extract(URL)
        assert meta.source is MetadataSource.OEMBED
        assert second.calls == 0

    @pytest.mark.asyncio
    async def test_timeout_falls_through_to_tool(self, settings: Settings) -> None:
        fast = FakeProbe("oembed", extraction_error("oEmbed request failed: timed out"))
        tool = ToolMetadataProbe(FakeInvoker(ok(tool_record())), settings)
        store = InMemoryMetadataStore()
        service = MetadataService([fast, tool], store=store)

        meta = await service.extract(URL)

        assert fast.calls == 1
        assert meta.source is MetadataSource.TOOL
        assert not is_generic_ladder(meta.qualities)
        assert await store.get(URL) == meta

    @pytest.mark.asyncio
    async def test_unsupported_tier_skipped(self) -> None:
        scrape = FakeProbe("scrape", metadata(), platforms=frozenset({PlatformId.INSTAGRAM}))
        tool = FakeProbe("tool", metadata(source=MetadataSource.TOOL))
        meta = await MetadataService([scrape, tool]).extract(URL)
        assert scrape.calls == 0
        assert meta.source is MetadataSource.TOOL

    @pytest.mark.asyncio
    async def test_unexpected_probe_error_is_contained(self) -> None:
        broken = FakeProbe("oembed", RuntimeError("boom"))
        tool = FakeProbe("tool", metadata(source=MetadataSource.TOOL))
        meta = await MetadataService([broken, tool]).extract(URL)
        assert meta.source is MetadataSource.TOOL

    @pytest.mark.asyncio
    async def test_invalid_url(self) -> None:
        probe = FakeProbe("tool", metadata())
        with pytest.raises(InvalidURLError):
            await MetadataService([probe]).extract("youtube.com/watch?v=x")
        assert probe.calls == 0

    @pytest.mark.asyncio
    async def test_unsupported_platform(self) -> None:
        with pytest.raises(UnsupportedPlatformError):
            await MetadataService([FakeProbe("tool", metadata())]).extract(
                "https://www.netflix.com/watch/1",
            )


# ---------------------------------------------------------------------------
# MetadataService: fallback
# ---------------------------------------------------------------------------

class TestMetadataServiceFallback:
    @pytest.mark.asyncio
    async def test_sign_in_yields_placeholder(self, settings: Settings) -> None:
        store = InMemoryMetadataStore()
        service = MetadataService(
            [
                FakeProbe("oembed", extraction_error()),
                ToolMetadataProbe(FakeInvoker(failed(SIGN_IN)), settings),
            ],
            store=store,
        )
        meta = await service.extract(URL)
        assert meta.placeholder is True
        assert meta.source is MetadataSource.PLACEHOLDER
        assert meta.platform is PlatformId.YOUTUBE
        assert await store.get(URL) == meta

    @pytest.mark.asyncio
    async def test_placeholder_disabled(self, settings: Settings) -> None:
        service = MetadataService(
            [ToolMetadataProbe(FakeInvoker(failed(SIGN_IN)), settings)],
            placeholder_fallback=False,
        )
        with pytest.raises(ExtractionFailedError):
            await service.extract(URL)

    @pytest.mark.asyncio
    async def test_unclassified_failure_raises(self, settings: Settings) -> None:
        service = MetadataService(
            [ToolMetadataProbe(FakeInvoker(failed("ERROR: Video unavailable")), settings)],
        )
        with pytest.raises(ExtractionFailedError) as exc_info:
            await service.extract(URL)
        assert "Video unavailable" in str(exc_info.value)
        assert exc_info.value.hint is not None
        assert "pip install --upgrade yt-dlp" in exc_info.value.hint

    @pytest.mark.asyncio
    async def test_tool_timeout_raises(self, settings: Settings) -> None:
        service = MetadataService([ToolMetadataProbe(FakeInvoker(timed_out()), settings)])
        with pytest.raises(ExtractionFailedError, match="timed out"):
            await service.extract(URL)

    @pytest.mark.asyncio
    async def test_no_tiers(self) -> None:
        with pytest.raises(ExtractionFailedError, match="no extraction tier applies"):
            await MetadataService([]).extract(URL)


# ---------------------------------------------------------------------------
# MetadataService: enrichment
# ---------------------------------------------------------------------------

class TestEnrichment:
    @pytest.mark.asyncio
    async def test_fast_tier_schedules_merge(self, settings: Settings) -> None:
        store = InMemoryMetadataStore()
        tasks = RecordingSubmitter()
        service = MetadataService(
            [FakeProbe("oembed", metadata())],
            enrichment_probe=ToolMetadataProbe(FakeInvoker(ok(tool_record())), settings),
            store=store,
            tasks=tasks,
        )

        meta = await service.extract(URL)
        assert meta.qualities == GENERIC_LADDER
        assert [name for name, _ in tasks.jobs] == [f"enrich:{URL}"]

        await tasks.run_all()
        cached = await store.get(URL)
        assert cached is not None
        assert cached.title == "Example"
        assert cached.find_quality("1080p HD") == QualityOption("1080p HD", "mp4", 50_000_000)
        assert cached.find_quality("480p") == QualityOption("480p", "mp4")
        assert cached.qualities[-1].is_audio_only

    @pytest.mark.asyncio
    async def test_tool_tier_does_not_schedule(self) -> None:
        tasks = RecordingSubmitter()
        service = MetadataService(
            [FakeProbe("tool", metadata(source=MetadataSource.TOOL))],
            enrichment_probe=FakeProbe("tool", metadata()),
            store=InMemoryMetadataStore(),
            tasks=tasks,
        )
        await service.extract(URL)
        assert tasks.jobs == []

    @pytest.mark.asyncio
    async def test_enrichment_failure_leaves_cache(self) -> None:
        store = InMemoryMetadataStore()
        original = await store.put(metadata())
        service = MetadataService(
            [], enrichment_probe=FakeProbe("tool", extraction_error()), store=store,
        )
        assert await service.enrich(URL, PlatformId.YOUTUBE) is None
        assert await store.get(URL) == original

    @pytest.mark.asyncio
    async def test_enrich_without_probe(self) -> None:
        assert await MetadataService([]).enrich(URL, PlatformId.YOUTUBE) is None
