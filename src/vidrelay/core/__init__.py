"""Core / service layer: pure business logic and data transformations.

Rules
-----
* No ``print()`` calls.
* No filesystem or network I/O; side effects go through the protocols
  in :mod:`vidrelay.core.protocols`.
* No imports from ``api``, ``cli`` or ``infra``.
"""

from vidrelay.core.download_service import DownloadService
from vidrelay.core.metadata_service import MetadataService, ToolMetadataProbe
from vidrelay.core.models import (
    HistoryRecord,
    MetadataSource,
    PlatformId,
    QualityOption,
    ResolvedDownload,
    ToolOutcome,
    ToolResult,
    VideoMetadata,
)
from vidrelay.core.platforms import resolve_platform, validate_url

__all__: list[str] = [
    "DownloadService",
    "HistoryRecord",
    "MetadataService",
    "MetadataSource",
    "PlatformId",
    "QualityOption",
    "ResolvedDownload",
    "ToolMetadataProbe",
    "ToolOutcome",
    "ToolResult",
    "VideoMetadata",
    "resolve_platform",
    "validate_url",
]
