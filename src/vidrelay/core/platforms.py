"""Platform detection from a media URL.

Matching walks a fixed, ordered table of domains (canonical domains and
their short-link aliases).  A domain matches when the URL host equals it
or ends with ``"." + domain`` so that ``m.youtube.com`` resolves to
YouTube while ``netflix.com`` does not match ``x.com``.
"""

from __future__ import annotations

from urllib.parse import urlsplit

from vidrelay.core.models import PlatformId
from vidrelay.exceptions import InvalidURLError, UnsupportedPlatformError

PLATFORM_DOMAINS: tuple[tuple[str, PlatformId], ...] = (
    ("youtube.com", PlatformId.YOUTUBE),
    ("youtu.be", PlatformId.YOUTUBE),
    ("youtube-nocookie.com", PlatformId.YOUTUBE),
    ("tiktok.com", PlatformId.TIKTOK),
    ("instagram.com", PlatformId.INSTAGRAM),
    ("instagr.am", PlatformId.INSTAGRAM),
    ("facebook.com", PlatformId.FACEBOOK),
    ("fb.watch", PlatformId.FACEBOOK),
    ("fb.com", PlatformId.FACEBOOK),
    ("twitter.com", PlatformId.TWITTER_X),
    ("x.com", PlatformId.TWITTER_X),
    ("vimeo.com", PlatformId.VIMEO),
    ("reddit.com", PlatformId.REDDIT),
    ("redd.it", PlatformId.REDDIT),
    ("linkedin.com", PlatformId.LINKEDIN),
    ("lnkd.in", PlatformId.LINKEDIN),
    ("pinterest.com", PlatformId.PINTEREST),
    ("pin.it", PlatformId.PINTEREST),
    ("dailymotion.com", PlatformId.DAILYMOTION),
    ("dai.ly", PlatformId.DAILYMOTION),
)


def validate_url(url: str) -> str:
    """Return the stripped URL or raise :class:`InvalidURLError`."""
    stripped = url.strip()
    if not stripped:
        raise InvalidURLError("URL must not be empty.")
    if not stripped.lower().startswith(("http://", "https://")):
        raise InvalidURLError(
            f"Invalid URL: {stripped}",
            hint="URL must start with http:// or https://",
        )
    return stripped


def _host_of(url: str) -> str:
    host = urlsplit(url).hostname or ""
    return host.lower().rstrip(".")


def _host_matches(host: str, domain: str) -> bool:
    return host == domain or host.endswith("." + domain)


def resolve_platform(url: str) -> PlatformId:
    """Classify *url* into a :class:`PlatformId`.

    Raises
    ------
    InvalidURLError
        If *url* is empty or not an HTTP(S) URL.
    UnsupportedPlatformError
        If the host matches none of the supported domains.
    """
    host = _host_of(validate_url(url))
    for domain, platform in PLATFORM_DOMAINS:
        if _host_matches(host, domain):
            return platform
    raise UnsupportedPlatformError(
        "Unsupported platform",
        hint="Supported: " + ", ".join(
            sorted({p.value for _, p in PLATFORM_DOMAINS}),
        ),
    )
