"""Runtime configuration for vidrelay.

Settings are an immutable value object built from ``VIDRELAY_*``
environment variables.  Every field has a working default so that the
service starts with no configuration at all.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

DEFAULT_SAMPLE_MEDIA_URL: str = (
    "https://sample-videos.com/zip/10/mp4/720/SampleVideo_720p_1mb.mp4"
)

ENV_PREFIX: str = "VIDRELAY_"

_TRUE_VALUES: frozenset[str] = frozenset({"1", "true", "yes", "on"})
_FALSE_VALUES: frozenset[str] = frozenset({"0", "false", "no", "off"})


@dataclass(frozen=True, slots=True)
class Settings:
    """All tunables of the resolution and streaming pipeline."""

    # --- external tool -------------------------------------------------
    tool_binary: str = "yt-dlp"
    user_agent: str = DEFAULT_USER_AGENT
    cookies_file: Path | None = None
    cookies_from_browser: str | None = None

    # --- timeouts (seconds) --------------------------------------------
    probe_timeout: float = 4.0
    scrape_timeout: float = 5.0
    metadata_timeout: float = 90.0
    resolve_timeout: float = 90.0
    transcode_timeout: float = 900.0
    upstream_timeout: float = 30.0

    # --- streaming -----------------------------------------------------
    chunk_size: int = 256 * 1024
    temp_dir: Path | None = None
    transcode_platforms: frozenset[str] = field(
        default_factory=lambda: frozenset({"TikTok"}),
    )
    transfer_cookie_name: str = "fileDownloadToken"
    transfer_cookie_max_age: int = 60

    # --- degraded mode -------------------------------------------------
    demo_fallback: bool = True
    """Serve placeholder metadata and the sample URL for blocked platforms."""

    sample_media_url: str = DEFAULT_SAMPLE_MEDIA_URL
    background_enrichment: bool = True

    # --- server --------------------------------------------------------
    host: str = "127.0.0.1"
    port: int = 5000
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        """Build settings from ``VIDRELAY_*`` variables of *environ*.

        Unset or blank variables keep their defaults.

        Raises
        ------
        ValueError
            If a numeric or boolean variable cannot be parsed.
        """
        env = os.environ if environ is None else environ
        defaults = cls()

        def text(name: str, default: str) -> str:
            value = env.get(ENV_PREFIX + name, "").strip()
            return value or default

        def optional(name: str) -> str | None:
            value = env.get(ENV_PREFIX + name, "").strip()
            return value or None

        def number(name: str, default: float) -> float:
            value = env.get(ENV_PREFIX + name, "").strip()
            return float(value) if value else default

        def integer(name: str, default: int) -> int:
            value = env.get(ENV_PREFIX + name, "").strip()
            return int(value) if value else default

        def flag(name: str, default: bool) -> bool:
            value = env.get(ENV_PREFIX + name, "").strip().lower()
            if not value:
                return default
            if value in _TRUE_VALUES:
                return True
            if value in _FALSE_VALUES:
                return False
            raise ValueError(f"{ENV_PREFIX}{name} must be a boolean, got {value!r}")

        cookies_file = optional("COOKIES_FILE")
        temp_dir = optional("TEMP_DIR")
        platforms = optional("TRANSCODE_PLATFORMS")

        return cls(
            tool_binary=text("TOOL_BINARY", defaults.tool_binary),
            user_agent=text("USER_AGENT", defaults.user_agent),
            cookies_file=Path(cookies_file) if cookies_file else None,
            cookies_from_browser=optional("COOKIES_FROM_BROWSER"),
            probe_timeout=number("PROBE_TIMEOUT", defaults.probe_timeout),
            scrape_timeout=number("SCRAPE_TIMEOUT", defaults.scrape_timeout),
            metadata_timeout=number("METADATA_TIMEOUT", defaults.metadata_timeout),
            resolve_timeout=number("RESOLVE_TIMEOUT", defaults.resolve_timeout),
            transcode_timeout=number("TRANSCODE_TIMEOUT", defaults.transcode_timeout),
            upstream_timeout=number("UPSTREAM_TIMEOUT", defaults.upstream_timeout),
            chunk_size=integer("CHUNK_SIZE", defaults.chunk_size),
            temp_dir=Path(temp_dir) if temp_dir else None,
            transcode_platforms=(
                frozenset(p.strip() for p in platforms.split(",") if p.strip())
                if platforms is not None
                else defaults.transcode_platforms
            ),
            transfer_cookie_name=text("TRANSFER_COOKIE_NAME", defaults.transfer_cookie_name),
            transfer_cookie_max_age=integer(
                "TRANSFER_COOKIE_MAX_AGE", defaults.transfer_cookie_max_age,
            ),
            demo_fallback=flag("DEMO_FALLBACK", defaults.demo_fallback),
            sample_media_url=text("SAMPLE_MEDIA_URL", defaults.sample_media_url),
            background_enrichment=flag(
                "BACKGROUND_ENRICHMENT", defaults.background_enrichment,
            ),
            host=text("HOST", defaults.host),
            port=integer("PORT", defaults.port),
            log_level=text("LOG_LEVEL", defaults.log_level).upper(),
        )
