"""Command-line construction for the external extraction tool (yt-dlp).

Pure functions only: every builder returns a fresh ``list[str]`` of
arguments (without the binary name) and never touches the filesystem.
"""

from __future__ import annotations

from pathlib import Path

from vidrelay.config import Settings
from vidrelay.core.format_selector import AUDIO_SELECTOR, build_transcode_selector
from vidrelay.core.models import PlatformId

PLATFORM_REFERERS: dict[PlatformId, str] = {
    PlatformId.YOUTUBE: "https://www.youtube.com/",
    PlatformId.TIKTOK: "https://www.tiktok.com/",
    PlatformId.INSTAGRAM: "https://www.instagram.com/",
    PlatformId.FACEBOOK: "https://www.facebook.com/",
    PlatformId.TWITTER_X: "https://x.com/",
    PlatformId.VIMEO: "https://vimeo.com/",
    PlatformId.REDDIT: "https://www.reddit.com/",
    PlatformId.LINKEDIN: "https://www.linkedin.com/",
    PlatformId.PINTEREST: "https://www.pinterest.com/",
    PlatformId.DAILYMOTION: "https://www.dailymotion.com/",
}

_PAGE_HEADERS: tuple[str, ...] = (
    "Accept:text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language:en-us,en;q=0.5",
    "Sec-Fetch-Mode:navigate",
)

_MEDIA_HEADERS: tuple[str, ...] = (
    "Accept:*/*",
    "Accept-Language:en-us,en;q=0.5",
    "Sec-Fetch-Mode:cors",
    "Sec-Fetch-Site:cross-site",
)


def referer_for(platform: PlatformId) -> str | None:
    return PLATFORM_REFERERS.get(platform)


def origin_for(platform: PlatformId) -> str | None:
    referer = referer_for(platform)
    return referer.rstrip("/") if referer else None


def _add_headers(args: list[str], headers: tuple[str, ...]) -> None:
    for header in headers:
        args.extend(("--add-header", header))


def _base_args(settings: Settings, platform: PlatformId) -> list[str]:
    args = [
        "--no-warnings",
        "--no-playlist",
        "--ignore-config",
        "--no-check-certificate",
        "--geo-bypass",
        "--user-agent", settings.user_agent,
    ]
    referer = referer_for(platform)
    if referer is not None:
        args.extend(("--add-header", f"Referer:{referer}"))
    if settings.cookies_file is not None:
        args.extend(("--cookies", str(settings.cookies_file)))
    elif settings.cookies_from_browser:
        args.extend(("--cookies-from-browser", settings.cookies_from_browser))
    return args


def metadata_args(url: str, platform: PlatformId, settings: Settings) -> list[str]:
    """Arguments for a ``--dump-json`` metadata probe."""
    args = ["--dump-json", "--no-download", *_base_args(settings, platform)]
    _add_headers(args, _PAGE_HEADERS)
    args.extend(("--extractor-retries", "3", "--socket-timeout", "30", url))
    return args


def resolve_url_args(
    url: str,
    platform: PlatformId,
    settings: Settings,
    *,
    selector: str | None,
    audio_only: bool = False,
    force_generic: bool = False,
) -> list[str]:
    """Arguments for a ``--get-url`` run that prints the direct media URL.

    Audio requests use the audio-extraction mode instead of *selector*.
    """
    args = ["--get-url", *_base_args(settings, platform)]
    _add_headers(args, _MEDIA_HEADERS)
    args.extend((
        "--extractor-retries", "5",
        "--fragment-retries", "5",
        "--socket-timeout", "30",
    ))
    if audio_only:
        args.extend((
            "--format", AUDIO_SELECTOR,
            "--extract-audio", "--audio-format", "mp3",
        ))
    elif selector:
        args.extend(("--format", selector))
    if force_generic:
        args.append("--force-generic-extractor")
    args.append(url)
    return args


def transcode_args(
    url: str,
    platform: PlatformId,
    settings: Settings,
    *,
    output_dir: Path,
    stem: str,
    quality: str,
    container: str,
    audio_only: bool,
    compatible: bool,
) -> list[str]:
    """Arguments for a download-and-remux run into *output_dir*.

    The final file path is printed on stdout once post-processing has
    finished.
    """
    args = [*_base_args(settings, platform)]
    _add_headers(args, _MEDIA_HEADERS)
    args.extend((
        "--extractor-retries", "5",
        "--fragment-retries", "5",
        "--socket-timeout", "30",
        "--no-part",
        "--no-mtime",
        "--no-progress",
        "--no-simulate",
        "--print", "after_move:filepath",
        "--output", str(output_dir / f"{stem}.%(ext)s"),
    ))
    if audio_only:
        args.extend((
            "--format", "bestaudio/best",
            "--extract-audio",
            "--audio-format", container if container in ("mp3", "m4a") else "mp3",
        ))
    else:
        args.extend((
            "--format", build_transcode_selector(quality, compatible=compatible),
            "--merge-output-format", container,
        ))
        if compatible:
            args.extend(("--remux-video", container))
    args.append(url)
    return args
