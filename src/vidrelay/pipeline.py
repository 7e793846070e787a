"""Public facade over the resolution and streaming pipeline.

:class:`MediaPipeline` exposes the four caller-facing operations and
:func:`build_pipeline` wires the core services to their infrastructure
adapters from a :class:`~vidrelay.config.Settings`.

Usage::

    async with httpx.AsyncClient() as client:
        pipeline = build_pipeline(Settings.from_env(), client)
        info = await pipeline.extract_metadata("https://youtu.be/abc123")
"""

from __future__ import annotations

import logging

import httpx

from vidrelay.config import Settings
from vidrelay.core.download_service import DownloadService
from vidrelay.core.metadata_service import MetadataService, ToolMetadataProbe
from vidrelay.core.models import PlatformId, ResolvedDownload, VideoMetadata
from vidrelay.core.platforms import resolve_platform, validate_url
from vidrelay.core.protocols import ExternalToolInvoker, HistoryStore, MetadataStore
from vidrelay.infra.background import AsyncioTaskSubmitter
from vidrelay.infra.binary_detector import resolve_tool_command
from vidrelay.infra.http_probes import OEmbedProbe, PageScrapeProbe
from vidrelay.infra.memory_store import InMemoryHistoryStore, InMemoryMetadataStore
from vidrelay.infra.streaming_proxy import ProxyResponse, StreamingProxy, StreamRequest
from vidrelay.infra.tool_invoker import SubprocessToolInvoker

logger = logging.getLogger(__name__)


class MediaPipeline:
    """Caller-facing operations over already-wired services."""

    def __init__(
        self,
        *,
        metadata: MetadataService,
        links: DownloadService,
        proxy: StreamingProxy,
        store: MetadataStore,
        history: HistoryStore,
        tasks: AsyncioTaskSubmitter | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.metadata = metadata
        self.links = links
        self.proxy = proxy
        self.store = store
        self.history = history
        self.tasks = tasks
        self.settings = settings or Settings()

    @staticmethod
    def resolve_platform(url: str) -> PlatformId:
        return resolve_platform(validate_url(url))

    async def extract_metadata(self, url: str) -> VideoMetadata:
        """Return cached metadata for *url*, extracting it on a miss."""
        url = validate_url(url)
        cached = await self.store.get(url)
        if cached is not None:
            logger.debug("Metadata cache hit for %s", url)
            return cached
        return await self.metadata.extract(url)

    async def resolve_download_link(
        self,
        url: str,
        quality: str,
        container: str,
    ) -> ResolvedDownload:
        return await self.links.resolve(url, quality, container)

    async def stream_media(
        self,
        url: str,
        quality: str,
        container: str,
        range_header: str | None = None,
        start_token: str | None = None,
        compatible: bool = False,
    ) -> ProxyResponse:
        return await self.proxy.open(
            StreamRequest(
                url=url,
                quality=quality,
                container=container,
                range_header=range_header,
                start_token=start_token,
                compatible=compatible,
            )
        )

    async def aclose(self) -> None:
        """Cancel outstanding background jobs."""
        if self.tasks is not None:
            await self.tasks.shutdown()


def build_pipeline(
    settings: Settings,
    client: httpx.AsyncClient,
    *,
    invoker: ExternalToolInvoker | None = None,
    store: MetadataStore | None = None,
    history: HistoryStore | None = None,
) -> MediaPipeline:
    """Wire a :class:`MediaPipeline` with the default adapters.

    Any of *invoker*, *store* and *history* may be injected, which is
    how tests replace the external tool.
    """
    if invoker is None:
        invoker = SubprocessToolInvoker(resolve_tool_command(settings.tool_binary))
    store = store if store is not None else InMemoryMetadataStore()
    history = history if history is not None else InMemoryHistoryStore()
    tasks = AsyncioTaskSubmitter()

    tool_probe = ToolMetadataProbe(invoker, settings)
    metadata = MetadataService(
        [
            OEmbedProbe(client, settings),
            PageScrapeProbe(client, settings),
            tool_probe,
        ],
        enrichment_probe=tool_probe if settings.background_enrichment else None,
        store=store,
        tasks=tasks,
        placeholder_fallback=settings.demo_fallback,
    )
    links = DownloadService(invoker, settings)
    proxy = StreamingProxy(links, invoker, client, settings, store=store)
    return MediaPipeline(
        metadata=metadata,
        links=links,
        proxy=proxy,
        store=store,
        history=history,
        tasks=tasks,
        settings=settings,
    )
