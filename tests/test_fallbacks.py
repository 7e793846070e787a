"""Tests for failure classification and placeholders (core/fallbacks.py)."""

from __future__ import annotations

import pytest

from vidrelay.core.fallbacks import (
    DEMO_QUALITIES,
    FailureKind,
    classify_failure,
    is_format_unavailable,
    is_malformed_metadata,
    is_placeholder_worthy,
    placeholder_metadata,
)
from vidrelay.core.models import MetadataSource, PlatformId


class TestClassifyFailure:
    @pytest.mark.parametrize(
        ("platform", "stderr", "kind"),
        [
            (PlatformId.YOUTUBE, "ERROR: [youtube] abc: Sign in to confirm you're not a bot", FailureKind.AUTH_REQUIRED),
            (PlatformId.VIMEO, "Login required to view", FailureKind.AUTH_REQUIRED),
            (PlatformId.YOUTUBE, "ERROR: Requested format is not available", FailureKind.FORMAT_UNAVAILABLE),
            (PlatformId.REDDIT, "ERROR: Unable to extract video data", FailureKind.MALFORMED_METADATA),
            (PlatformId.INSTAGRAM, "HTTP Error 403: Forbidden", FailureKind.BLOCKED),
            (PlatformId.TIKTOK, "This video is private", FailureKind.BLOCKED),
            (PlatformId.VIMEO, "HTTP Error 403: Forbidden", FailureKind.OTHER),
            (PlatformId.YOUTUBE, "network is unreachable", FailureKind.OTHER),
            (PlatformId.YOUTUBE, "", FailureKind.OTHER),
        ],
    )
    def test_classification(self, platform: PlatformId, stderr: str, kind: FailureKind) -> None:
        assert classify_failure(platform, stderr) is kind

    def test_format_signature_wins_over_blocking(self) -> None:
        stderr = "HTTP Error 403; Requested format is not available"
        assert classify_failure(PlatformId.INSTAGRAM, stderr) is FailureKind.FORMAT_UNAVAILABLE

    def test_predicates(self) -> None:
        assert is_format_unavailable("requested format not available")
        assert is_malformed_metadata("json.decoder.JSONDecodeError: Expecting value")
        assert not is_malformed_metadata("HTTP Error 404")

    @pytest.mark.parametrize(
        ("kind", "worthy"),
        [
            (FailureKind.AUTH_REQUIRED, True),
            (FailureKind.BLOCKED, True),
            (FailureKind.FORMAT_UNAVAILABLE, False),
            (FailureKind.MALFORMED_METADATA, False),
            (FailureKind.OTHER, False),
        ],
    )
    def test_placeholder_worthy(self, kind: FailureKind, worthy: bool) -> None:
        assert is_placeholder_worthy(kind) is worthy


class TestPlaceholderMetadata:
    def test_clearly_labelled(self) -> None:
        meta = placeholder_metadata("https://www.instagram.com/reel/x/", PlatformId.INSTAGRAM)
        assert meta.placeholder is True
        assert meta.source is MetadataSource.PLACEHOLDER
        assert "Demo" in meta.title
        assert meta.platform is PlatformId.INSTAGRAM
        assert meta.url == "https://www.instagram.com/reel/x/"

    def test_demo_ladder(self) -> None:
        meta = placeholder_metadata("https://youtu.be/x", PlatformId.YOUTUBE)
        assert meta.qualities == DEMO_QUALITIES
        assert len(DEMO_QUALITIES) == 7
        assert DEMO_QUALITIES[-1].is_audio_only
        assert all(option.size_known for option in DEMO_QUALITIES)
