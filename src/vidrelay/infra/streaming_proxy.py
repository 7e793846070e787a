"""Streaming reverse-proxy from a resolved media URL to the caller.

One request runs the state machine::

    RESOLVING ─┬─> DIRECT_FETCH ─┬─> RELAYING ─> DONE
               └─> TRANSCODE ────┘
    (ERROR from any state before RELAYING)

:meth:`StreamingProxy.open` performs everything up to the point of no
return and raises typed errors while nothing has been sent.  The
returned :class:`ProxyResponse` is committed: its status and headers are
final and only the body remains to be relayed.

Rules
-----
* The caller's ``Range`` header is forwarded verbatim upstream.
* ``Accept-Ranges: bytes`` is always advertised.
* Transcode output lives in a private temporary directory that is
  removed on every exit path, including cancellation.
* The transfer-start cookie is attached only to a committed response.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import tempfile
from collections.abc import AsyncIterator
from dataclasses import dataclass
from pathlib import Path
from typing import BinaryIO, Protocol

import httpx

from vidrelay.config import Settings
from vidrelay.core.delivery import (
    ProxyState,
    TransferStartSignal,
    choose_extension,
    content_disposition,
    content_type_for,
    parse_byte_range,
    range_not_satisfiable,
    sanitize_filename,
    should_transcode,
)
from vidrelay.core.download_service import DownloadService
from vidrelay.core.format_selector import is_audio_request
from vidrelay.core.models import PlatformId, ResolvedDownload
from vidrelay.core.platforms import resolve_platform, validate_url
from vidrelay.core.protocols import ExternalToolInvoker, MetadataStore
from vidrelay.core.tool_args import origin_for, referer_for, transcode_args
from vidrelay.exceptions import (
    StreamInterruptedError,
    TranscodeError,
    UpstreamFetchError,
    VidRelayError,
)

logger = logging.getLogger(__name__)

TRANSCODE_STEM: str = "media"


@dataclass(frozen=True, slots=True)
class StreamRequest:
    """Everything the caller asked for in one streaming request."""

    url: str
    quality: str
    container: str
    range_header: str | None = None
    start_token: str | None = None
    compatible: bool = False


# ---------------------------------------------------------------------------
# Body sources
# ---------------------------------------------------------------------------

class _BodySource(Protocol):
    def chunks(self) -> AsyncIterator[bytes]: ...

    async def aclose(self) -> None: ...


class _UpstreamBody:
    """Raw bytes of an open ``httpx`` streaming response."""

    def __init__(self, response: httpx.Response, chunk_size: int) -> None:
        self._response = response
        self._chunk_size = chunk_size

    async def chunks(self) -> AsyncIterator[bytes]:
        if self._response.is_stream_consumed:
            # Body already read into memory by the transport.
            content = self._response.content
            for offset in range(0, len(content), self._chunk_size):
                yield content[offset:offset + self._chunk_size]
            return
        async for chunk in self._response.aiter_raw(self._chunk_size):
            yield chunk

    async def aclose(self) -> None:
        await self._response.aclose()


def _remove_tree(path: Path) -> None:
    shutil.rmtree(path, ignore_errors=True)
    if path.exists():
        logger.warning("Temporary directory %s could not be removed", path)


class _FileBody:
    """A byte range of a transcoded file; the owning directory goes on close."""

    def __init__(
        self,
        path: Path,
        temp_dir: Path,
        chunk_size: int,
        *,
        start: int = 0,
        length: int | None = None,
    ) -> None:
        self._path = path
        self._temp_dir = temp_dir
        self._chunk_size = chunk_size
        self._start = start
        self._length = length
        self._handle: BinaryIO | None = None
        self._removed = False

    async def chunks(self) -> AsyncIterator[bytes]:
        self._handle = await asyncio.to_thread(self._path.open, "rb")
        if self._start:
            await asyncio.to_thread(self._handle.seek, self._start)
        remaining = self._length
        while remaining is None or remaining > 0:
            size = self._chunk_size if remaining is None else min(self._chunk_size, remaining)
            chunk = await asyncio.to_thread(self._handle.read, size)
            if not chunk:
                break
            if remaining is not None:
                remaining -= len(chunk)
            yield chunk
        await asyncio.to_thread(self._release)

    def _release(self) -> None:
        if self._handle is not None:
            self._handle.close()
            self._handle = None
        if not self._removed:
            self._removed = True
            _remove_tree(self._temp_dir)

    async def aclose(self) -> None:
        # No awaits: must run to completion inside a cancelled task.
        self._release()


# ---------------------------------------------------------------------------
# Committed response
# ---------------------------------------------------------------------------

class ProxyResponse:
    """A committed streaming response.

    Iterate :meth:`iter_bytes` exactly once.  :meth:`aclose` releases the
    upstream connection or the temporary files and is safe to call any
    number of times.
    """

    def __init__(
        self,
        status_code: int,
        headers: dict[str, str],
        source: _BodySource,
        *,
        transfer_signal: TransferStartSignal | None = None,
        description: str = "",
    ) -> None:
        self.status_code = status_code
        self.headers = headers
        self.transfer_signal = transfer_signal
        self.state = ProxyState.RELAYING
        self.bytes_sent = 0
        self._source = source
        self._description = description
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def iter_bytes(self) -> AsyncIterator[bytes]:
        try:
            async for chunk in self._source.chunks():
                self.bytes_sent += len(chunk)
                yield chunk
        except (httpx.HTTPError, OSError) as exc:
            self.state = ProxyState.ERROR
            logger.warning(
                "Relay of %s interrupted after %d bytes: %s",
                self._description, self.bytes_sent, exc,
            )
            raise StreamInterruptedError(f"Relay interrupted: {exc}") from exc
        else:
            self.state = ProxyState.DONE
            logger.info("Relayed %s (%d bytes)", self._description, self.bytes_sent)
        finally:
            await self.aclose()

    async def aclose(self) -> None:
        if self._closed:
            return
        self._closed = True
        await self._source.aclose()


# ---------------------------------------------------------------------------
# Proxy
# ---------------------------------------------------------------------------

def _usable_length(response: httpx.Response) -> bool:
    value = response.headers.get("content-length", "")
    return value.isdigit() and int(value) > 0


class StreamingProxy:
    """Open committed :class:`ProxyResponse` objects for stream requests.

    Parameters
    ----------
    resolver:
        Produces the direct media URL (RESOLVING state).
    invoker:
        Runs the external tool for the TRANSCODE path.
    client:
        Shared ``httpx.AsyncClient`` used for DIRECT_FETCH.
    settings:
        Timeouts, chunk size, transcode policy and cookie parameters.
    store:
        Optional metadata cache; the cached title names the download.
    """

    def __init__(
        self,
        resolver: DownloadService,
        invoker: ExternalToolInvoker,
        client: httpx.AsyncClient,
        settings: Settings,
        *,
        store: MetadataStore | None = None,
    ) -> None:
        self._resolver = resolver
        self._invoker = invoker
        self._client = client
        self._settings = settings
        self._store = store

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def open(self, request: StreamRequest) -> ProxyResponse:
        """Run RESOLVING and DIRECT_FETCH/TRANSCODE for *request*.

        Raises
        ------
        InvalidURLError
            For malformed or unsupported URLs.
        LinkResolutionError
            When no media URL can be obtained.
        UpstreamFetchError
            When the media URL is unreachable or answers non-2xx.
        TranscodeError
            When the tool fails to produce the output file.
        """
        url = validate_url(request.url)
        platform = resolve_platform(url)
        container = request.container.lower()
        self._transition(url, ProxyState.RESOLVING)

        try:
            resolved = await self._resolver.resolve(url, request.quality, container)
            stem = await self._filename_stem(url)
            transcode = not resolved.is_sample and should_transcode(
                platform,
                request.quality,
                container,
                compatible=request.compatible,
                transcode_platforms=self._settings.transcode_platforms,
            )
            if transcode:
                self._transition(url, ProxyState.TRANSCODE)
                response = await self._transcode(url, platform, request, container, stem)
            else:
                self._transition(url, ProxyState.DIRECT_FETCH)
                response = await self._direct_fetch(platform, request, resolved, stem)
        except VidRelayError as exc:
            self._transition(url, ProxyState.ERROR, detail=str(exc))
            raise

        response.transfer_signal = self._transfer_signal(request.start_token)
        self._transition(url, ProxyState.RELAYING)
        return response

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(url: str, state: ProxyState, *, detail: str = "") -> None:
        if state is ProxyState.ERROR:
            logger.warning("stream %s -> %s: %s", url, state.value, detail)
        else:
            logger.debug("stream %s -> %s", url, state.value)

    async def _filename_stem(self, url: str) -> str:
        if self._store is None:
            return sanitize_filename(None)
        metadata = await self._store.get(url)
        return sanitize_filename(metadata.title if metadata is not None else None)

    def _transfer_signal(self, token: str | None) -> TransferStartSignal | None:
        if not token:
            return None
        return TransferStartSignal(
            name=self._settings.transfer_cookie_name,
            token=token,
            max_age=self._settings.transfer_cookie_max_age,
        )

    def _upstream_headers(
        self,
        platform: PlatformId,
        range_header: str | None,
        *,
        is_sample: bool,
    ) -> dict[str, str]:
        headers = {
            "User-Agent": self._settings.user_agent,
            "Accept": "*/*",
            "Accept-Language": "en-US,en;q=0.9",
            "Accept-Encoding": "identity",
            "Sec-Fetch-Dest": "video",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": "cross-site",
        }
        if not is_sample:
            referer = referer_for(platform)
            origin = origin_for(platform)
            if referer is not None:
                headers["Referer"] = referer
            if origin is not None:
                headers["Origin"] = origin
        if range_header:
            headers["Range"] = range_header
        return headers

    async def _send(self, media_url: str, headers: dict[str, str]) -> httpx.Response:
        upstream = self._client.build_request(
            "GET", media_url, headers=headers, timeout=self._settings.upstream_timeout,
        )
        try:
            response = await self._client.send(upstream, stream=True, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise UpstreamFetchError(f"Failed to fetch media: {exc}") from exc

        if response.status_code >= 400:
            await response.aclose()
            raise UpstreamFetchError(
                f"Failed to fetch media: upstream answered {response.status_code}"
                f" {response.reason_phrase}".rstrip(),
                status_code=response.status_code,
            )
        return response

    # ------------------------------------------------------------------
    # DIRECT_FETCH
    # ------------------------------------------------------------------

    async def _direct_fetch(
        self,
        platform: PlatformId,
        request: StreamRequest,
        resolved: ResolvedDownload,
        stem: str,
    ) -> ProxyResponse:
        media_url = resolved.media_url
        response = await self._send(
            media_url,
            self._upstream_headers(platform, request.range_header, is_sample=resolved.is_sample),
        )

        committed = False
        try:
            if request.range_header is None and not _usable_length(response):
                response = await self._retry_for_length(platform, resolved, response)

            content_type = response.headers.get("content-type")
            extension = choose_extension(str(response.url), content_type, resolved.container)
            headers = {
                "Content-Type": content_type or content_type_for(extension),
                "Content-Disposition": content_disposition(stem, extension),
                "Accept-Ranges": "bytes",
            }
            if _usable_length(response):
                headers["Content-Length"] = response.headers["content-length"]

            status_code = 200
            if request.range_header is not None and response.status_code == 206:
                status_code = 206
                content_range = response.headers.get("content-range")
                if content_range:
                    headers["Content-Range"] = content_range

            proxy_response = ProxyResponse(
                status_code,
                headers,
                _UpstreamBody(response, self._settings.chunk_size),
                description=f"{stem}.{extension}",
            )
            committed = True
            return proxy_response
        finally:
            if not committed:
                await response.aclose()

    async def _retry_for_length(
        self,
        platform: PlatformId,
        resolved: ResolvedDownload,
        first: httpx.Response,
    ) -> httpx.Response:
        """Re-request with ``Range: bytes=0-`` to obtain a Content-Length.

        The first response is kept when the retry fails or is no better.
        """
        logger.info("Upstream sent no Content-Length; retrying with an open range")
        try:
            retry = await self._send(
                resolved.media_url,
                self._upstream_headers(platform, "bytes=0-", is_sample=resolved.is_sample),
            )
        except UpstreamFetchError as exc:
            logger.info("Open-range retry failed, relaying without length: %s", exc)
            return first

        if not _usable_length(retry):
            await retry.aclose()
            return first
        await first.aclose()
        return retry

    # ------------------------------------------------------------------
    # TRANSCODE
    # ------------------------------------------------------------------

    def _make_temp_dir(self) -> Path:
        root = self._settings.temp_dir
        if root is not None:
            root.mkdir(parents=True, exist_ok=True)
        return Path(tempfile.mkdtemp(prefix="vidrelay-", dir=root))

    @staticmethod
    def _produced_file(stdout: str, temp_dir: Path) -> Path | None:
        for line in reversed(stdout.splitlines()):
            candidate = Path(line.strip())
            if line.strip() and candidate.is_file() and candidate.parent == temp_dir:
                return candidate
        files = [p for p in temp_dir.iterdir() if p.is_file()]
        return files[0] if len(files) == 1 else None

    async def _transcode(
        self,
        url: str,
        platform: PlatformId,
        request: StreamRequest,
        container: str,
        stem: str,
    ) -> ProxyResponse:
        try:
            temp_dir = self._make_temp_dir()
        except OSError as exc:
            raise TranscodeError(f"Cannot create a temporary directory: {exc}") from exc

        try:
            args = transcode_args(
                url,
                platform,
                self._settings,
                output_dir=temp_dir,
                stem=TRANSCODE_STEM,
                quality=request.quality,
                container=container,
                audio_only=is_audio_request(request.quality, container),
                compatible=request.compatible,
            )
            result = await self._invoker.run(args, timeout=self._settings.transcode_timeout)
            if not result.ok:
                raise TranscodeError(
                    f"Transcode failed: {result.diagnostics.splitlines()[0]}",
                    diagnostics=result.diagnostics,
                )

            produced = self._produced_file(result.stdout, temp_dir)
            if produced is None:
                raise TranscodeError(
                    "Transcode finished without an output file",
                    diagnostics=result.stdout[:200],
                )

            size = produced.stat().st_size
            extension = produced.suffix.lstrip(".").lower() or container
            headers = {
                "Content-Type": content_type_for(extension),
                "Content-Disposition": content_disposition(stem, extension),
                "Accept-Ranges": "bytes",
            }
            byte_range = parse_byte_range(request.range_header, size)
            if range_not_satisfiable(request.range_header, size):
                status_code = 416
                start, length = 0, 0
                headers["Content-Range"] = f"bytes */{size}"
            elif byte_range is None:
                status_code = 200
                start, length = 0, size
            else:
                status_code = 206
                start, end = byte_range
                length = end - start + 1
                headers["Content-Range"] = f"bytes {start}-{end}/{size}"
            headers["Content-Length"] = str(length)

            return ProxyResponse(
                status_code,
                headers,
                _FileBody(
                    produced, temp_dir, self._settings.chunk_size,
                    start=start, length=length,
                ),
                description=f"{stem}.{extension}",
            )
        except asyncio.CancelledError:
            _remove_tree(temp_dir)
            raise
        except OSError as exc:
            await asyncio.to_thread(_remove_tree, temp_dir)
            raise TranscodeError(f"Transcode output unusable: {exc}") from exc
        except Exception:
            await asyncio.to_thread(_remove_tree, temp_dir)
            raise
