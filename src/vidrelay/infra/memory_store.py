"""In-process implementations of the metadata cache and download history.

Both stores live for the lifetime of the server process.  Writes for the
same URL are last-write-wins; the quality ladder is combined with
:func:`~vidrelay.core.quality.merge_qualities`, so concurrent merges
converge without locking.
"""

from __future__ import annotations

from collections.abc import Iterable

from vidrelay.core.models import HistoryRecord, QualityOption, VideoMetadata
from vidrelay.core.quality import merge_qualities


class InMemoryMetadataStore:
    """Dict-backed :class:`~vidrelay.core.protocols.MetadataStore`."""

    def __init__(self) -> None:
        self._records: dict[str, VideoMetadata] = {}

    def __len__(self) -> int:
        return len(self._records)

    async def get(self, url: str) -> VideoMetadata | None:
        return self._records.get(url)

    async def put(self, metadata: VideoMetadata) -> VideoMetadata:
        self._records[metadata.url] = metadata
        return metadata

    async def merge(
        self,
        url: str,
        qualities: Iterable[QualityOption],
    ) -> VideoMetadata | None:
        current = self._records.get(url)
        if current is None:
            return None
        merged = current.with_qualities(merge_qualities(current.qualities, qualities))
        self._records[url] = merged
        return merged


class InMemoryHistoryStore:
    """List-backed :class:`~vidrelay.core.protocols.HistoryStore`, newest first."""

    def __init__(self) -> None:
        self._records: list[HistoryRecord] = []

    async def append(self, record: HistoryRecord) -> HistoryRecord:
        self._records.insert(0, record)
        return record

    async def list(self) -> list[HistoryRecord]:
        return list(self._records)

    async def delete_one(self, record_id: str) -> bool:
        for index, record in enumerate(self._records):
            if record.id == record_id:
                del self._records[index]
                return True
        return False

    async def clear(self) -> None:
        self._records.clear()
