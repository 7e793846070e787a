"""Tests for domain models (core/models.py).

The models are frozen value objects; these tests cover immutability,
derived properties and the history wire shape.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest

from vidrelay.core.models import (
    AUDIO_ONLY_LABEL,
    HistoryRecord,
    MetadataSource,
    PlatformId,
    QualityOption,
    ToolOutcome,
    ToolResult,
    VideoMetadata,
)


def _make_metadata(**overrides: object) -> VideoMetadata:
    defaults: dict[str, object] = {
        "url": "https://youtu.be/abc123",
        "platform": PlatformId.YOUTUBE,
        "title": "Test Video",
        "duration": "02:00",
        "uploader": "Someone",
        "qualities": (QualityOption("720p HD", "mp4", 10),),
        "source": MetadataSource.TOOL,
    }
    defaults.update(overrides)
    return VideoMetadata(**defaults)  # type: ignore[arg-type]


# ---------------------------------------------------------------------------
# PlatformId
# ---------------------------------------------------------------------------

class TestPlatformId:
    def test_str_is_display_name(self) -> None:
        assert str(PlatformId.TWITTER_X) == "Twitter/X"

    def test_lookup_by_value(self) -> None:
        assert PlatformId("Vimeo") is PlatformId.VIMEO


# ---------------------------------------------------------------------------
# QualityOption
# ---------------------------------------------------------------------------

class TestQualityOption:
    def test_audio_only(self) -> None:
        assert QualityOption(AUDIO_ONLY_LABEL, "mp3").is_audio_only
        assert not QualityOption("720p HD", "mp4").is_audio_only

    def test_size_known(self) -> None:
        assert QualityOption("720p HD", "mp4", 0).size_known
        assert not QualityOption("720p HD", "mp4").size_known

    def test_frozen(self) -> None:
        option = QualityOption("720p HD", "mp4")
        with pytest.raises(AttributeError):
            option.label = "1080p HD"  # type: ignore[misc]


# ---------------------------------------------------------------------------
# VideoMetadata
# ---------------------------------------------------------------------------

class TestVideoMetadata:
    def test_defaults(self) -> None:
        m = _make_metadata()
        assert m.placeholder is False
        assert m.description is None
        assert m.view_count is None

    def test_with_qualities_returns_copy(self) -> None:
        m = _make_metadata()
        ladder = [QualityOption("1080p HD", "mp4")]
        updated = m.with_qualities(ladder)
        assert updated.qualities == tuple(ladder)
        assert m.qualities == (QualityOption("720p HD", "mp4", 10),)
        assert updated.title == m.title

    def test_find_quality(self) -> None:
        m = _make_metadata()
        assert m.find_quality("720p HD") == QualityOption("720p HD", "mp4", 10)
        assert m.find_quality("4K (2160p)") is None

    def test_equality(self) -> None:
        assert _make_metadata() == _make_metadata()
        assert _make_metadata(title="a") != _make_metadata(title="b")


# ---------------------------------------------------------------------------
# ToolResult
# ---------------------------------------------------------------------------

class TestToolResult:
    def test_ok(self) -> None:
        assert ToolResult(ToolOutcome.SUCCESS, 0, "out", "").ok
        assert not ToolResult(ToolOutcome.EXIT_CODE, 1, "", "").ok

    def test_diagnostics_prefers_stderr(self) -> None:
        result = ToolResult(ToolOutcome.EXIT_CODE, 1, "", "  ERROR: boom\n")
        assert result.diagnostics == "ERROR: boom"

    @pytest.mark.parametrize(
        ("outcome", "exit_code", "text"),
        [
            (ToolOutcome.TIMEOUT, None, "external tool timed out"),
            (ToolOutcome.KILLED, -9, "external tool was killed"),
            (ToolOutcome.NOT_FOUND, None, "external tool not found"),
            (ToolOutcome.EXIT_CODE, 2, "external tool exited with code 2"),
        ],
    )
    def test_diagnostics_without_stderr(
        self, outcome: ToolOutcome, exit_code: int | None, text: str,
    ) -> None:
        assert ToolResult(outcome, exit_code, "", "").diagnostics == text


# ---------------------------------------------------------------------------
# HistoryRecord
# ---------------------------------------------------------------------------

class TestHistoryRecord:
    def test_to_dict(self) -> None:
        created = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        record = HistoryRecord(
            id="r1",
            url="https://youtu.be/abc123",
            platform=PlatformId.YOUTUBE,
            title="Example",
            quality="720p HD",
            container="mp4",
            download_url="/api/stream-video?url=x",
            file_size="20.0 MB",
            created_at=created,
        )
        assert record.to_dict() == {
            "id": "r1",
            "url": "https://youtu.be/abc123",
            "platform": "YouTube",
            "title": "Example",
            "thumbnail": None,
            "duration": None,
            "quality": "720p HD",
            "format": "mp4",
            "fileSize": "20.0 MB",
            "downloadUrl": "/api/stream-video?url=x",
            "status": "completed",
            "createdAt": "2024-01-02T03:04:05+00:00",
        }

    def test_created_at_defaults_to_now_utc(self) -> None:
        record = HistoryRecord("r", "u", PlatformId.VIMEO, "t", "q", "mp4", "d")
        assert record.created_at.tzinfo is timezone.utc
