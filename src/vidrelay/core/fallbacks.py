"""Failure classification and degraded-mode placeholders.

The external tool reports every problem through stderr text.  This
module maps that text onto a small set of :class:`FailureKind` values
and provides the clearly-labelled synthetic results served when a
platform blocks anonymous extraction.
"""

from __future__ import annotations

import enum

from vidrelay.core.models import (
    AUDIO_ONLY_LABEL,
    MetadataSource,
    PlatformId,
    QualityOption,
    VideoMetadata,
)

_MB = 1024 * 1024


class FailureKind(str, enum.Enum):
    AUTH_REQUIRED = "auth_required"
    BLOCKED = "blocked"
    FORMAT_UNAVAILABLE = "format_unavailable"
    MALFORMED_METADATA = "malformed_metadata"
    OTHER = "other"


AUTH_SIGNATURES: tuple[str, ...] = (
    "sign in to confirm",
    "error: [youtube]",
    "login required",
    "confirm you're not a bot",
)

BLOCKING_SIGNATURES: tuple[str, ...] = (
    "403",
    "401",
    "login",
    "log in",
    "private",
    "blocked",
    "forbidden",
)

FORMAT_UNAVAILABLE_SIGNATURES: tuple[str, ...] = (
    "requested format is not available",
    "requested format not available",
    "no video formats found",
)

MALFORMED_METADATA_SIGNATURES: tuple[str, ...] = (
    "unable to extract",
    "failed to parse json",
    "jsondecodeerror",
    "expecting value",
    "malformed",
)

BLOCKING_PRONE_PLATFORMS: frozenset[PlatformId] = frozenset({
    PlatformId.INSTAGRAM,
    PlatformId.FACEBOOK,
    PlatformId.TIKTOK,
    PlatformId.TWITTER_X,
    PlatformId.LINKEDIN,
    PlatformId.PINTEREST,
})
"""Platforms whose privacy/blocking errors are served as placeholders."""

AUTH_PRONE_PLATFORMS: frozenset[PlatformId] = frozenset({
    PlatformId.YOUTUBE,
    PlatformId.INSTAGRAM,
    PlatformId.FACEBOOK,
    PlatformId.TIKTOK,
})
"""Platforms that commonly refuse anonymous link resolution."""


def _contains_any(text: str, signatures: tuple[str, ...]) -> bool:
    return any(signature in text for signature in signatures)


def is_format_unavailable(stderr: str) -> bool:
    return _contains_any(stderr.lower(), FORMAT_UNAVAILABLE_SIGNATURES)


def is_malformed_metadata(stderr: str) -> bool:
    return _contains_any(stderr.lower(), MALFORMED_METADATA_SIGNATURES)


def classify_failure(platform: PlatformId, stderr: str) -> FailureKind:
    """Map tool stderr onto a :class:`FailureKind`.

    Format and parsing signatures are checked before the broad
    blocking keywords, which only apply to :data:`BLOCKING_PRONE_PLATFORMS`.
    """
    text = stderr.lower()
    if _contains_any(text, FORMAT_UNAVAILABLE_SIGNATURES):
        return FailureKind.FORMAT_UNAVAILABLE
    if _contains_any(text, AUTH_SIGNATURES):
        return FailureKind.AUTH_REQUIRED
    if _contains_any(text, MALFORMED_METADATA_SIGNATURES):
        return FailureKind.MALFORMED_METADATA
    if platform in BLOCKING_PRONE_PLATFORMS and _contains_any(text, BLOCKING_SIGNATURES):
        return FailureKind.BLOCKED
    return FailureKind.OTHER


def is_placeholder_worthy(kind: FailureKind) -> bool:
    return kind in (FailureKind.AUTH_REQUIRED, FailureKind.BLOCKED)


DEMO_QUALITIES: tuple[QualityOption, ...] = (
    QualityOption("4K (2160p)", "mp4", 245 * _MB),
    QualityOption("2K (1440p)", "mp4", 156 * _MB),
    QualityOption("1080p HD", "mp4", 89 * _MB),
    QualityOption("720p HD", "mp4", 45 * _MB),
    QualityOption("480p", "mp4", 28 * _MB),
    QualityOption("360p", "mp4", 18 * _MB),
    QualityOption(AUDIO_ONLY_LABEL, "mp3", int(4.2 * _MB)),
)

DEMO_THUMBNAIL_URL: str = (
    "https://images.unsplash.com/photo-1611162617474-5b21e879e113"
    "?ixlib=rb-4.0.3&auto=format&fit=crop&w=800&h=450"
)


def placeholder_metadata(url: str, platform: PlatformId) -> VideoMetadata:
    """Synthetic demo metadata for a platform that blocked extraction."""
    return VideoMetadata(
        url=url,
        platform=platform,
        title="Sample Video (Demo Mode)",
        description=(
            f"Demo content: {platform.value} requires authentication for this "
            "video. Configure cookies to extract the real metadata."
        ),
        thumbnail_url=DEMO_THUMBNAIL_URL,
        duration="03:45",
        uploader="Demo Channel",
        view_count=123456,
        qualities=DEMO_QUALITIES,
        source=MetadataSource.PLACEHOLDER,
        placeholder=True,
    )
