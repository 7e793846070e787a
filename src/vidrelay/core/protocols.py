"""Protocols (interfaces) consumed by the core layer.

These define the contracts that infrastructure adapters must satisfy.
Core code depends ONLY on these protocols, never on concrete
implementations.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Protocol

from vidrelay.core.models import (
    HistoryRecord,
    PlatformId,
    QualityOption,
    ToolResult,
    VideoMetadata,
)


class ExternalToolInvoker(Protocol):
    """Contract for running the external extraction tool.

    Implementations spawn the tool, capture stdout/stderr and classify
    the exit into a :class:`~vidrelay.core.models.ToolResult`.  A
    non-zero exit is returned, never raised.
    """

    async def run(
        self,
        args: Sequence[str],
        *,
        timeout: float | None = None,
    ) -> ToolResult:
        """Run the tool with *args* (binary name excluded).

        The process must be killed when *timeout* expires or when the
        awaiting task is cancelled; cancellation is re-raised after the
        kill.
        """
        ...  # pragma: no cover


class MetadataProbe(Protocol):
    """One tier of the metadata extraction ladder."""

    name: str

    def supports(self, platform: PlatformId) -> bool:
        """Return whether this tier applies to *platform* at all."""
        ...  # pragma: no cover

    async def probe(self, url: str, platform: PlatformId) -> VideoMetadata:
        """Return metadata for *url*.

        Raises
        ------
        ExtractionFailedError
            When this tier cannot produce metadata.  ``diagnostics``
            carries the raw failure text when there is one.
        """
        ...  # pragma: no cover


class MetadataStore(Protocol):
    """Keyed cache of :class:`VideoMetadata`, at most one record per URL."""

    async def get(self, url: str) -> VideoMetadata | None:
        ...  # pragma: no cover

    async def put(self, metadata: VideoMetadata) -> VideoMetadata:
        ...  # pragma: no cover

    async def merge(
        self,
        url: str,
        qualities: Iterable[QualityOption],
    ) -> VideoMetadata | None:
        """Merge *qualities* into the cached ladder of *url*.

        Returns the updated record, or ``None`` when *url* is not cached.
        """
        ...  # pragma: no cover


class HistoryStore(Protocol):
    """Download history, newest first."""

    async def append(self, record: HistoryRecord) -> HistoryRecord:
        ...  # pragma: no cover

    async def list(self) -> list[HistoryRecord]:
        ...  # pragma: no cover

    async def delete_one(self, record_id: str) -> bool:
        ...  # pragma: no cover

    async def clear(self) -> None:
        ...  # pragma: no cover


class TaskSubmitter(Protocol):
    """Fire-and-forget execution of background jobs."""

    def submit(self, job: Callable[[], Awaitable[None]], *, name: str) -> None:
        """Schedule *job* without awaiting it.

        Failures of the job are logged by the submitter and never reach
        the caller.
        """
        ...  # pragma: no cover
