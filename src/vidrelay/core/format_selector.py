"""Format selector expressions passed to the external tool.

Selectors are ``/``-separated alternatives evaluated left to right by
yt-dlp.  The video ladder always keeps this preference order:

(a) height ceiling + preferred container + HTTP delivery
(b) height ceiling only
(c) preferred container only
(d) anything

Sparse-catalog platforms swap the container filter for an HTTP-delivery
filter.  Audio requests never use the video ladder.
"""

from __future__ import annotations

from vidrelay.core.models import AUDIO_ONLY_LABEL, PlatformId
from vidrelay.core.quality import height_from_label

HTTP_DELIVERY: str = "[protocol^=http]"

AUDIO_CONTAINERS: frozenset[str] = frozenset({"mp3", "m4a"})

LOOSE_SELECTOR_PLATFORMS: frozenset[PlatformId] = frozenset({
    PlatformId.TIKTOK,
    PlatformId.INSTAGRAM,
    PlatformId.FACEBOOK,
    PlatformId.TWITTER_X,
    PlatformId.PINTEREST,
    PlatformId.REDDIT,
    PlatformId.LINKEDIN,
})

AUDIO_SELECTOR: str = "bestaudio[ext=m4a]/bestaudio/best"
PERMISSIVE_SELECTOR: str = "best/bestvideo*/bestaudio*"


def is_audio_request(quality: str, container: str) -> bool:
    return container.lower() in AUDIO_CONTAINERS or quality.strip() == AUDIO_ONLY_LABEL


def _join(alternatives: list[str]) -> str:
    unique: list[str] = []
    for alt in alternatives:
        if alt not in unique:
            unique.append(alt)
    return "/".join(unique)


def _ceiling(quality: str) -> str:
    height = height_from_label(quality)
    return f"[height<={height}]" if height else ""


def build_video_selector(
    quality: str,
    container: str = "mp4",
    platform: PlatformId | None = None,
) -> str:
    """Build the selector used to resolve a direct media URL.

    >>> build_video_selector("1080p HD", "mp4")
    'best[height<=1080][ext=mp4][protocol^=http]/best[height<=1080]/best[ext=mp4]/best'
    """
    ceiling = _ceiling(quality)
    if platform in LOOSE_SELECTOR_PLATFORMS:
        return _join([
            f"best{ceiling}{HTTP_DELIVERY}",
            f"best{ceiling}",
            f"best{HTTP_DELIVERY}",
            "best",
        ])
    ext = f"[ext={container.lower()}]"
    return _join([
        f"best{ceiling}{ext}{HTTP_DELIVERY}",
        f"best{ceiling}",
        f"best{ext}",
        "best",
    ])


def build_transcode_selector(quality: str, *, compatible: bool) -> str:
    """Build the selector for a download-and-remux run.

    Compatible mode favours H.264 video with AAC audio so the merged
    file plays everywhere; otherwise the best streams under the ceiling
    are merged as-is.
    """
    ceiling = _ceiling(quality)
    if compatible:
        return _join([
            f"bestvideo{ceiling}[vcodec^=avc1]+bestaudio[acodec^=mp4a]",
            f"best{ceiling}[vcodec^=avc1][acodec^=mp4a]",
            f"bestvideo{ceiling}+bestaudio",
            f"best{ceiling}",
            "best",
        ])
    return _join([
        f"bestvideo{ceiling}+bestaudio",
        f"best{ceiling}",
        "best",
    ])
