"""FastAPI application exposing the pipeline over HTTP.

Every :class:`~vidrelay.exceptions.VidRelayError` raised before a
response starts is rendered as ``{"error": ..., "hint": ...}`` with the
status from :data:`ERROR_STATUS`.  Once a stream response has started,
failures only close the connection.
"""

from __future__ import annotations

import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from typing import Any
from urllib.parse import urlencode

import httpx
from fastapi import Depends, FastAPI, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, StreamingResponse
from starlette.types import Receive, Scope, Send

from vidrelay.api.schemas import (
    QUALITY_MAX_LENGTH,
    QUALITY_PATTERN,
    Container,
    DownloadRequest,
    UrlRequest,
    serialize_history,
    serialize_metadata,
)
from vidrelay.config import Settings
from vidrelay.core.models import HistoryRecord
from vidrelay.core.quality import format_file_size
from vidrelay.exceptions import (
    EnvironmentError,
    ExtractionFailedError,
    InvalidURLError,
    LinkResolutionError,
    TranscodeError,
    UpstreamFetchError,
    VidRelayError,
)
from vidrelay.infra.streaming_proxy import ProxyResponse
from vidrelay.pipeline import MediaPipeline, build_pipeline
from vidrelay.version import __version__

logger = logging.getLogger(__name__)

STREAM_PATH: str = "/api/stream-video"

ERROR_STATUS: tuple[tuple[type[VidRelayError], int], ...] = (
    (InvalidURLError, 400),
    (ExtractionFailedError, 422),
    (LinkResolutionError, 502),
    (UpstreamFetchError, 502),
    (TranscodeError, 500),
    (EnvironmentError, 503),
)
"""First matching class wins; anything else maps to 500."""


def status_for(exc: VidRelayError) -> int:
    for error_class, status in ERROR_STATUS:
        if isinstance(exc, error_class):
            return status
    return 500


def error_body(exc: VidRelayError) -> dict[str, Any]:
    return {"error": str(exc), "hint": exc.hint}


def stream_url(url: str, quality: str, container: str) -> str:
    return f"{STREAM_PATH}?{urlencode({'url': url, 'quality': quality, 'format': container})}"


class RelayResponse(StreamingResponse):
    """Streams a committed :class:`ProxyResponse` and always closes it."""

    def __init__(self, relay: ProxyResponse) -> None:
        super().__init__(
            relay.iter_bytes(),
            status_code=relay.status_code,
            headers=relay.headers,
        )
        self.relay = relay
        signal = relay.transfer_signal
        if signal is not None:
            self.set_cookie(
                signal.name,
                signal.token,
                max_age=signal.max_age,
                path=signal.path,
                samesite=signal.same_site,
            )

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await super().__call__(scope, receive, send)
        finally:
            await self.relay.aclose()


def get_pipeline(request: Request) -> MediaPipeline:
    return request.app.state.pipeline


def create_app(
    settings: Settings | None = None,
    pipeline: MediaPipeline | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    When *pipeline* is given it is used as-is and its lifetime belongs
    to the caller; otherwise the lifespan creates the shared HTTP client
    and pipeline and closes both on shutdown.
    """
    settings = settings or (pipeline.settings if pipeline is not None else Settings())

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        if pipeline is not None:
            app.state.pipeline = pipeline
            yield
            return

        async with httpx.AsyncClient() as client:
            app.state.pipeline = build_pipeline(settings, client)
            logger.info("vidrelay %s ready", __version__)
            try:
                yield
            finally:
                await app.state.pipeline.aclose()

    app = FastAPI(title="vidrelay", version=__version__, lifespan=lifespan)
    if pipeline is not None:
        app.state.pipeline = pipeline

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["Content-Disposition", "Content-Length", "Content-Range", "Accept-Ranges"],
    )

    @app.exception_handler(VidRelayError)
    async def vidrelay_error_handler(request: Request, exc: VidRelayError) -> JSONResponse:
        status = status_for(exc)
        log = logger.warning if status < 500 else logger.error
        log("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(error_body(exc), status_code=status)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    @app.post("/api/validate-url")
    async def validate_url(body: UrlRequest, pipeline: MediaPipeline = Depends(get_pipeline)) -> JSONResponse:
        try:
            platform = pipeline.resolve_platform(body.url)
        except InvalidURLError as exc:
            return JSONResponse(
                {"valid": False, "error": str(exc), "hint": exc.hint},
                status_code=400,
            )
        return JSONResponse({"valid": True, "platform": platform.value, "url": body.url.strip()})

    @app.post("/api/extract-video-info")
    async def extract_video_info(
        body: UrlRequest,
        pipeline: MediaPipeline = Depends(get_pipeline),
    ) -> dict[str, Any]:
        metadata = await pipeline.extract_metadata(body.url)
        return serialize_metadata(metadata)

    @app.post("/api/generate-download-link")
    async def generate_download_link(
        body: DownloadRequest,
        pipeline: MediaPipeline = Depends(get_pipeline),
    ) -> dict[str, Any]:
        url = body.url.strip()
        pipeline.resolve_platform(url)
        download_url = stream_url(url, body.quality, body.format)

        metadata = await pipeline.store.get(url)
        if metadata is not None:
            option = metadata.find_quality(body.quality)
            await pipeline.history.append(
                HistoryRecord(
                    id=str(uuid.uuid4()),
                    url=url,
                    platform=metadata.platform,
                    title=metadata.title,
                    quality=body.quality,
                    container=body.format,
                    download_url=download_url,
                    thumbnail_url=metadata.thumbnail_url,
                    duration=metadata.duration,
                    file_size=format_file_size(option.filesize if option else None),
                )
            )
        return {"downloadUrl": download_url, "expiresIn": "24 hours"}

    @app.get(STREAM_PATH, response_model=None)
    async def stream_video(
        request: Request,
        url: str | None = Query(default=None),
        quality: str | None = Query(
            default=None, max_length=QUALITY_MAX_LENGTH, pattern=QUALITY_PATTERN,
        ),
        format: Container | None = Query(default=None),
        compatible: bool = Query(default=False),
        token: str | None = Query(default=None),
        pipeline: MediaPipeline = Depends(get_pipeline),
    ) -> StreamingResponse | JSONResponse:
        if not url or not quality or not format:
            return JSONResponse({"error": "Missing required parameters", "hint": None}, status_code=400)

        relay = await pipeline.stream_media(
            url,
            quality,
            format,
            range_header=request.headers.get("range"),
            start_token=token,
            compatible=compatible,
        )
        return RelayResponse(relay)

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    @app.get("/api/download-history")
    async def download_history(pipeline: MediaPipeline = Depends(get_pipeline)) -> list[dict[str, Any]]:
        return serialize_history(await pipeline.history.list())

    @app.delete("/api/download-history")
    async def clear_download_history(pipeline: MediaPipeline = Depends(get_pipeline)) -> dict[str, bool]:
        await pipeline.history.clear()
        return {"success": True}

    @app.delete("/api/download-history/{record_id}")
    async def delete_download_history(
        record_id: str,
        pipeline: MediaPipeline = Depends(get_pipeline),
    ) -> JSONResponse:
        if not await pipeline.history.delete_one(record_id):
            return JSONResponse({"success": False, "error": "History item not found"}, status_code=404)
        return JSONResponse({"success": True})

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok", "version": __version__}

    return app
