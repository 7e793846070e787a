"""Infrastructure layer: external system integration.

This layer wraps all interaction with the extraction tool, remote HTTP
servers, the filesystem and in-process storage.  Every raw third-party
exception must be caught here and re-raised as a
:class:`~vidrelay.exceptions.VidRelayError` subclass.

Rules
-----
* No imports from ``api`` or ``cli``.
* No user-facing output (no ``print()``, no Rich rendering).
"""

from vidrelay.infra.background import AsyncioTaskSubmitter
from vidrelay.infra.binary_detector import BinaryStatus, detect_binary, detect_ffmpeg
from vidrelay.infra.http_probes import OEmbedProbe, PageScrapeProbe
from vidrelay.infra.memory_store import InMemoryHistoryStore, InMemoryMetadataStore
from vidrelay.infra.streaming_proxy import ProxyResponse, StreamingProxy, StreamRequest
from vidrelay.infra.tool_invoker import SubprocessToolInvoker

__all__: list[str] = [
    "AsyncioTaskSubmitter",
    "BinaryStatus",
    "InMemoryHistoryStore",
    "InMemoryMetadataStore",
    "OEmbedProbe",
    "PageScrapeProbe",
    "ProxyResponse",
    "StreamRequest",
    "StreamingProxy",
    "SubprocessToolInvoker",
    "detect_binary",
    "detect_ffmpeg",
]
