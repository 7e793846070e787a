"""Core download-link service: turns (url, quality, container) into a media URL.

The service drives the external tool in ``--get-url`` mode through an
injected :class:`~vidrelay.core.protocols.ExternalToolInvoker` and owns
the retry ladder:

1. strict selector from :func:`~vidrelay.core.format_selector.build_video_selector`
2. "requested format is not available" → one retry, permissive selector
3. malformed-metadata signature → one retry with the generic extractor
4. authentication-prone platform → configured sample URL (demo mode)
5. otherwise → :class:`~vidrelay.exceptions.LinkResolutionError`

Guarantees
----------
* No direct I/O; the invoker is the only side effect.
* Each retry kind runs at most once per request.
"""

from __future__ import annotations

import logging

from vidrelay.config import Settings
from vidrelay.core.fallbacks import (
    AUTH_PRONE_PLATFORMS,
    is_format_unavailable,
    is_malformed_metadata,
)
from vidrelay.core.format_selector import (
    PERMISSIVE_SELECTOR,
    build_video_selector,
    is_audio_request,
)
from vidrelay.core.models import PlatformId, ResolvedDownload, ToolResult
from vidrelay.core.platforms import resolve_platform, validate_url
from vidrelay.core.protocols import ExternalToolInvoker
from vidrelay.core.tool_args import resolve_url_args
from vidrelay.exceptions import LinkResolutionError, append_ytdlp_upgrade_suggestion

logger = logging.getLogger(__name__)


def first_media_url(stdout: str) -> str | None:
    """Return the first non-empty line of *stdout*, or ``None``.

    Merged video+audio selectors print one URL per stream; the first one
    is the video stream.
    """
    for line in stdout.splitlines():
        line = line.strip()
        if line:
            return line
    return None


class DownloadService:
    """Resolve a direct, fetchable media URL for one download request.

    Parameters
    ----------
    invoker:
        Any object satisfying the :class:`ExternalToolInvoker` protocol.
    settings:
        Supplies cookies, timeouts and the demo-mode sample URL.
    """

    def __init__(self, invoker: ExternalToolInvoker, settings: Settings) -> None:
        self._invoker: ExternalToolInvoker = invoker
        self._settings: Settings = settings

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def resolve(self, url: str, quality: str, container: str) -> ResolvedDownload:
        """Resolve *url* at *quality* into a :class:`ResolvedDownload`.

        Raises
        ------
        InvalidURLError
            If *url* is malformed or its platform is unsupported.
        LinkResolutionError
            When every attempt failed and no sample fallback applies.
        """
        url = validate_url(url)
        platform = resolve_platform(url)
        container = container.lower()
        audio_only = is_audio_request(quality, container)
        selector = None if audio_only else build_video_selector(quality, container, platform)

        tried_permissive = False
        tried_generic = False
        force_generic = False
        while True:
            result = await self._run(
                url, platform, selector,
                audio_only=audio_only, force_generic=force_generic,
            )
            media_url = first_media_url(result.stdout) if result.ok else None
            if media_url is not None:
                logger.info("Resolved %s (%s, %s)", url, quality, container)
                return ResolvedDownload(media_url, quality, container)

            if not audio_only and not tried_permissive and is_format_unavailable(result.stderr):
                logger.info("Format not available for %s; retrying with permissive selector", url)
                tried_permissive = True
                selector = PERMISSIVE_SELECTOR
                continue
            if not tried_generic and is_malformed_metadata(result.stderr):
                logger.info("Malformed metadata for %s; retrying with generic extractor", url)
                tried_generic = True
                force_generic = True
                continue
            break

        return self._fallback(url, platform, quality, container, result)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run(
        self,
        url: str,
        platform: PlatformId,
        selector: str | None,
        *,
        audio_only: bool,
        force_generic: bool,
    ) -> ToolResult:
        args = resolve_url_args(
            url, platform, self._settings,
            selector=selector,
            audio_only=audio_only,
            force_generic=force_generic,
        )
        return await self._invoker.run(args, timeout=self._settings.resolve_timeout)

    def _fallback(
        self,
        url: str,
        platform: PlatformId,
        quality: str,
        container: str,
        result: ToolResult,
    ) -> ResolvedDownload:
        diagnostics = result.diagnostics if not result.ok else "no media URL in tool output"
        if self._settings.demo_fallback and platform in AUTH_PRONE_PLATFORMS:
            logger.warning(
                "%s refused link resolution for %s; serving sample media", platform, url,
            )
            return ResolvedDownload(
                self._settings.sample_media_url, quality, container, is_sample=True,
            )
        raise LinkResolutionError(
            f"Download link generation failed: {diagnostics.splitlines()[0]}",
            hint=append_ytdlp_upgrade_suggestion(
                "Try a different quality or format.",
            ),
            diagnostics=diagnostics,
        )
