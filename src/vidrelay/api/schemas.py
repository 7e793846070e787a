"""Request bodies and response serialisers of the HTTP API.

Responses use the camelCase field names the browser client expects.
"""

from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

from vidrelay.core.models import HistoryRecord, VideoMetadata
from vidrelay.core.quality import format_file_size

Container = Literal["mp4", "webm", "mp3", "m4a"]

# Ladder labels such as "1080p HD" or "Audio Only"; no selector syntax.
QUALITY_PATTERN: str = r"^[A-Za-z0-9][A-Za-z0-9 .+-]*$"
QUALITY_MAX_LENGTH: int = 32


class UrlRequest(BaseModel):
    url: str = Field(min_length=1)


class DownloadRequest(BaseModel):
    url: str = Field(min_length=1)
    quality: str = Field(min_length=1, max_length=QUALITY_MAX_LENGTH, pattern=QUALITY_PATTERN)
    format: Container = "mp4"


def serialize_metadata(metadata: VideoMetadata) -> dict[str, Any]:
    return {
        "url": metadata.url,
        "platform": metadata.platform.value,
        "title": metadata.title,
        "description": metadata.description,
        "thumbnail": metadata.thumbnail_url,
        "duration": metadata.duration,
        "uploader": metadata.uploader,
        "viewCount": metadata.view_count,
        "availableQualities": [
            {
                "quality": option.label,
                "format": option.container,
                "fileSize": format_file_size(option.filesize),
            }
            for option in metadata.qualities
        ],
        "source": metadata.source.value,
        "isPlaceholder": metadata.placeholder,
    }


def serialize_history(records: list[HistoryRecord]) -> list[dict[str, Any]]:
    return [record.to_dict() for record in records]
