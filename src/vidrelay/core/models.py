"""Domain models for vidrelay.

All models are **frozen** dataclasses: immutable value objects with no
behaviour beyond data access and trivial derived properties.  They carry
zero I/O and zero dependencies on external packages.
"""

from __future__ import annotations

import dataclasses
import enum
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


# ---------------------------------------------------------------------------
# Platform identity
# ---------------------------------------------------------------------------

class PlatformId(str, enum.Enum):
    """Supported source platforms.  The value is the display name."""

    YOUTUBE = "YouTube"
    TIKTOK = "TikTok"
    INSTAGRAM = "Instagram"
    FACEBOOK = "Facebook"
    TWITTER_X = "Twitter/X"
    VIMEO = "Vimeo"
    REDDIT = "Reddit"
    LINKEDIN = "LinkedIn"
    PINTEREST = "Pinterest"
    DAILYMOTION = "Dailymotion"
    UNKNOWN = "Unknown"

    def __str__(self) -> str:
        return self.value


class MetadataSource(str, enum.Enum):
    """Which extraction tier produced a :class:`VideoMetadata`."""

    OEMBED = "oembed"
    SCRAPE = "scrape"
    TOOL = "tool"
    PLACEHOLDER = "placeholder"


# ---------------------------------------------------------------------------
# Quality ladder entries
# ---------------------------------------------------------------------------

AUDIO_ONLY_LABEL: str = "Audio Only"
"""Label of the single audio-only entry of every quality ladder."""


@dataclass(frozen=True, slots=True)
class QualityOption:
    """One selectable download option of a video."""

    label: str
    """Human-readable label (e.g. ``"1080p HD"``, ``"Audio Only"``)."""

    container: str
    """Delivered container extension (``mp4``, ``webm``, ``mp3``)."""

    filesize: int | None = None
    """Estimated size in bytes, or ``None`` when unknown."""

    @property
    def is_audio_only(self) -> bool:
        return self.label == AUDIO_ONLY_LABEL

    @property
    def size_known(self) -> bool:
        return self.filesize is not None


# ---------------------------------------------------------------------------
# Video metadata
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class VideoMetadata:
    """Descriptive metadata plus the quality ladder for one URL."""

    url: str
    """The URL exactly as submitted by the caller (cache key)."""

    platform: PlatformId
    title: str
    duration: str
    """Formatted duration, ``MM:SS`` or ``HH:MM:SS``."""

    uploader: str
    qualities: tuple[QualityOption, ...]
    """Ordered ladder: highest resolution first, audio-only last."""

    source: MetadataSource
    description: str | None = None
    thumbnail_url: str | None = None
    view_count: int | None = None
    placeholder: bool = False
    """``True`` for synthetic demo content served in degraded mode."""

    def with_qualities(self, qualities: Iterable[QualityOption]) -> VideoMetadata:
        """Return a copy carrying *qualities* as its ladder."""
        return dataclasses.replace(self, qualities=tuple(qualities))

    def find_quality(self, label: str) -> QualityOption | None:
        return next((q for q in self.qualities if q.label == label), None)


# ---------------------------------------------------------------------------
# Download resolution
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ResolvedDownload:
    """A concrete fetchable media URL for a single download request."""

    media_url: str
    quality: str
    container: str
    is_sample: bool = False
    """``True`` when the URL is the configured sample, not the real media."""


# ---------------------------------------------------------------------------
# External tool invocation
# ---------------------------------------------------------------------------

class ToolOutcome(str, enum.Enum):
    """Terminal state of one external-tool process."""

    SUCCESS = "success"
    EXIT_CODE = "exit_code"
    TIMEOUT = "timeout"
    KILLED = "killed"
    NOT_FOUND = "not_found"


@dataclass(frozen=True, slots=True)
class ToolResult:
    """Captured output of one external-tool invocation.

    Non-zero exits are data, not exceptions: the retry ladders inspect
    :attr:`stderr` to decide what to do next.
    """

    outcome: ToolOutcome
    exit_code: int | None
    stdout: str
    stderr: str

    @property
    def ok(self) -> bool:
        return self.outcome is ToolOutcome.SUCCESS

    @property
    def diagnostics(self) -> str:
        """Best human-readable explanation of a failure."""
        text = self.stderr.strip()
        if text:
            return text
        if self.outcome is ToolOutcome.TIMEOUT:
            return "external tool timed out"
        if self.outcome is ToolOutcome.KILLED:
            return "external tool was killed"
        if self.outcome is ToolOutcome.NOT_FOUND:
            return "external tool not found"
        return f"external tool exited with code {self.exit_code}"


# ---------------------------------------------------------------------------
# Download history
# ---------------------------------------------------------------------------

def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True, slots=True)
class HistoryRecord:
    """One entry of the download history kept by the request layer."""

    id: str
    url: str
    platform: PlatformId
    title: str
    quality: str
    container: str
    download_url: str
    thumbnail_url: str | None = None
    duration: str | None = None
    file_size: str | None = None
    status: str = "completed"
    created_at: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "url": self.url,
            "platform": self.platform.value,
            "title": self.title,
            "thumbnail": self.thumbnail_url,
            "duration": self.duration,
            "quality": self.quality,
            "format": self.container,
            "fileSize": self.file_size,
            "downloadUrl": self.download_url,
            "status": self.status,
            "createdAt": self.created_at.isoformat(),
        }
